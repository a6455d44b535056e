"""Minimal asyncio HTTP/1.1 server with an auth-by-default router."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable
from urllib.parse import parse_qs, urlsplit

from loguru import logger

from inbox_agent.errors import AuthError

MAX_REQUEST_BYTES = 1024 * 1024

_REASONS = {
    200: "OK",
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    413: "Payload Too Large",
    500: "Internal Server Error",
}


@dataclass
class Request:
    method: str
    path: str
    query: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    client_ip: str = ""
    claims: dict[str, Any] | None = None

    def json(self) -> Any:
        """Decode the body as JSON; an empty body decodes to an empty dict."""
        if not self.body.strip():
            return {}
        return json.loads(self.body.decode("utf-8"))


@dataclass
class Response:
    status: int = 200
    body: str = ""
    content_type: str = "text/plain; charset=utf-8"

    def encode(self) -> bytes:
        reason = _REASONS.get(self.status, "OK")
        data = self.body.encode("utf-8")
        headers = [
            f"HTTP/1.1 {self.status} {reason}",
            f"Content-Type: {self.content_type}",
            f"Content-Length: {len(data)}",
            "Connection: close",
            "",
            "",
        ]
        return "\r\n".join(headers).encode("utf-8") + data


def json_response(payload: Any, status: int = 200) -> Response:
    return Response(
        status=status,
        body=json.dumps(payload, ensure_ascii=False) + "\n",
        content_type="application/json; charset=utf-8",
    )


def text_response(body: str, status: int = 200) -> Response:
    return Response(status=status, body=body)


Handler = Callable[[Request], Awaitable[Response]]


@dataclass(frozen=True)
class Route:
    method: str
    path: str
    handler: Handler
    public: bool = False


class Router:
    """
    Route table. Every route added here is authenticated unless it was
    registered with `public=True`.
    """

    def __init__(self, auth: Any | None = None):
        self.auth = auth
        self._routes: dict[tuple[str, str], Route] = {}

    @staticmethod
    def _normalize(path: str) -> str:
        path = "/" + path.strip("/")
        return path

    def add(self, method: str, path: str, handler: Handler, *, public: bool = False) -> Route:
        route = Route(method=method.upper(), path=self._normalize(path), handler=handler, public=public)
        key = (route.method, route.path)
        if key in self._routes:
            raise ValueError(f"Route already registered: {route.method} {route.path}")
        self._routes[key] = route
        return route

    def include(self, routes: list[Route]) -> None:
        for route in routes:
            self.add(route.method, route.path, route.handler, public=route.public)

    @property
    def routes(self) -> list[Route]:
        return list(self._routes.values())

    async def dispatch(self, request: Request) -> Response:
        path = self._normalize(request.path)
        route = self._routes.get((request.method.upper(), path))
        if route is None:
            if any(p == path for _, p in self._routes):
                return text_response("method not allowed\n", 405)
            return text_response("not found\n", 404)

        if not route.public:
            if self.auth is None:
                return json_response({"success": False, "message": "Admin API disabled"}, 403)
            try:
                request.claims = self.auth.verify(request)
            except AuthError as e:
                return json_response({"success": False, "message": str(e)}, e.status)

        try:
            return await route.handler(request)
        except Exception as e:
            logger.error(f"Error handling {request.method} {path}: {e}")
            return text_response("internal error\n", 500)


class HttpServer:
    """Serve a Router over a small asyncio stream server."""

    def __init__(self, router: Router, *, host: str = "0.0.0.0", port: int = 3012):
        self.router = router
        self.host = str(host or "0.0.0.0").strip()
        self.port = max(0, int(port))
        self._server: asyncio.AbstractServer | None = None

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def bound_port(self) -> int:
        if not self._server or not self._server.sockets:
            return self.port
        return int(self._server.sockets[0].getsockname()[1])

    async def start(self) -> None:
        if self._server:
            return
        self._server = await asyncio.start_server(self._handle_client, host=self.host, port=self.port)
        logger.info(f"HTTP server listening on {self.host}:{self.bound_port}")

    async def stop(self) -> None:
        if not self._server:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None

    async def _read_request(self, reader: asyncio.StreamReader) -> tuple[bytes, bytes]:
        data = b""
        while b"\r\n\r\n" not in data:
            chunk = await reader.read(65536)
            if not chunk:
                break
            data += chunk
            if len(data) > MAX_REQUEST_BYTES:
                raise OverflowError("request too large")

        head, _, body = data.partition(b"\r\n\r\n")
        length = 0
        for line in head.decode("latin-1").split("\r\n")[1:]:
            name, _, value = line.partition(":")
            if name.strip().lower() == "content-length":
                try:
                    length = int(value.strip())
                except ValueError:
                    length = 0
        if length > MAX_REQUEST_BYTES:
            raise OverflowError("request too large")
        while len(body) < length:
            chunk = await reader.read(length - len(body))
            if not chunk:
                break
            body += chunk
        return head, body[:length] if length else body

    def _parse_request(self, head: bytes, body: bytes, peer: str) -> Request | None:
        lines = head.decode("utf-8", errors="ignore").split("\r\n")
        parts = lines[0].split() if lines and lines[0] else []
        if len(parts) < 2:
            return None

        headers: dict[str, str] = {}
        for line in lines[1:]:
            name, sep, value = line.partition(":")
            if sep:
                headers[name.strip().lower()] = value.strip()

        parsed = urlsplit(parts[1])
        query = {k: v[0] for k, v in parse_qs(parsed.query or "", keep_blank_values=True).items()}
        return Request(
            method=parts[0].upper(),
            path=parsed.path or "/",
            query=query,
            headers=headers,
            body=body,
            client_ip=peer,
        )

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        try:
            peername = writer.get_extra_info("peername") if hasattr(writer, "get_extra_info") else None
            peer = str(peername[0]) if isinstance(peername, tuple) and peername else ""
            try:
                head, body = await self._read_request(reader)
            except OverflowError:
                writer.write(text_response("payload too large\n", 413).encode())
                await writer.drain()
                return

            request = self._parse_request(head, body, peer)
            if request is None:
                writer.write(text_response("bad request\n", 400).encode())
                await writer.drain()
                return

            response = await self.router.dispatch(request)
            writer.write(response.encode())
            await writer.drain()
        except ConnectionError as e:
            logger.debug(f"HTTP client went away: {e!r}")
        except Exception as e:
            logger.error(f"HTTP connection error: {e}")
            try:
                writer.write(text_response("internal error\n", 500).encode())
                await writer.drain()
            except OSError as write_error:
                logger.debug(f"HTTP client went away before error response: {write_error!r}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except Exception:
                pass
