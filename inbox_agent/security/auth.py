"""HS256 bearer-token authentication for the admin API."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Any

from inbox_agent.errors import AuthError
from inbox_agent.server.http import Request


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _sign(secret: str, signing_input: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), signing_input.encode("ascii"), hashlib.sha256).digest()
    return _b64url_encode(digest)


def issue_admin_token(
    secret: str,
    *,
    ttl_seconds: int | None = 3600,
    ip: str | None = None,
    subject: str = "admin",
) -> str:
    """Create a signed admin token, optionally bound to a client IP."""
    header = {"alg": "HS256", "typ": "JWT"}
    now = int(time.time())
    payload: dict[str, Any] = {"sub": subject, "iat": now}
    if ttl_seconds:
        payload["exp"] = now + int(ttl_seconds)
    if ip:
        payload["ip"] = ip
    signing_input = ".".join(
        _b64url_encode(json.dumps(part, separators=(",", ":")).encode("utf-8"))
        for part in (header, payload)
    )
    return f"{signing_input}.{_sign(secret, signing_input)}"


def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, falling back to the socket peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    for hop in forwarded.split(","):
        if hop.strip():
            return hop.strip()
    return request.client_ip


class AdminAuth:
    """Verify `Authorization: Bearer <jwt>` headers on admin routes."""

    def __init__(self, secret: str):
        self.secret = secret

    def verify(self, request: Request) -> dict[str, Any]:
        auth = request.headers.get("authorization", "")
        if not auth.startswith("Bearer "):
            raise AuthError("Missing token")
        token = auth[len("Bearer "):].strip()
        parts = token.split(".")
        if len(parts) != 3 or not all(parts):
            raise AuthError("Invalid token format")

        header_b64, payload_b64, signature = parts
        expected = _sign(self.secret, f"{header_b64}.{payload_b64}")
        if not hmac.compare_digest(signature, expected):
            raise AuthError("Invalid signature")

        try:
            header = json.loads(_b64url_decode(header_b64))
            payload = json.loads(_b64url_decode(payload_b64))
        except (ValueError, UnicodeDecodeError):
            raise AuthError("Invalid token") from None
        if not isinstance(header, dict) or header.get("alg") != "HS256" or not isinstance(payload, dict):
            raise AuthError("Invalid token")

        exp = payload.get("exp")
        if exp is not None:
            if not isinstance(exp, (int, float)):
                raise AuthError("Invalid token")
            if time.time() >= exp:
                raise AuthError("Token expired")

        bound_ip = payload.get("ip")
        if bound_ip and bound_ip != client_ip(request):
            raise AuthError("IP mismatch", status=403)

        return payload
