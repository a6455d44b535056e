"""Shared behavior for Graph-API messaging channels."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Any, Iterator

from loguru import logger

from inbox_agent.agent.aggregator import Fragment, MessageAggregator
from inbox_agent.channels.graph import GraphMessagingGateway
from inbox_agent.modules.base import ActionDescriptor, ModuleBase, ModuleContext, SettingSpec
from inbox_agent.server.http import Request, Response, Route, json_response, text_response


@dataclass(slots=True)
class InboundText:
    """A text message extracted from a webhook payload."""

    sender: str
    text: str
    timestamp: float
    aliases: tuple[str, ...] = ()


def _parse_timestamp(raw: Any) -> float:
    """Webhook timestamps arrive as epoch seconds (str) or milliseconds (int)."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return time.time()
    if value > 1e12:
        value /= 1000.0
    return value if value > 0 else time.time()


class SocialModule(ModuleBase):
    """
    Base class for messaging-channel modules.

    Each channel receives webhooks, resolves senders to internal ids, buffers
    text fragments in its own aggregator and sends replies through the Graph
    messaging gateway.
    """

    messaging_product: str = "whatsapp"

    settings = {
        "accessToken": SettingSpec("secret", True, "Graph API access token", ""),
        "phoneNumberId": SettingSpec("string", True, "Numeric id of the sending business account", ""),
        "verifyToken": SettingSpec("secret", True, "Pre-shared token for the webhook handshake", ""),
        "allowModuleInterop": SettingSpec("boolean", False, "Share this channel's user data with other modules", False),
        "debounceSeconds": SettingSpec("number", False, "Quiet period before a batch is sent for reasoning", 10),
        "allowFrom": SettingSpec("json", False, "Allowed sender ids (empty allows everyone)", []),
        "systemPrompt": SettingSpec("string", False, "Extra instructions for this channel", ""),
    }

    def __init__(self) -> None:
        super().__init__()
        self.aggregator: MessageAggregator | None = None
        self._gateway: GraphMessagingGateway | None = None

    def action_descriptors(self) -> list[ActionDescriptor]:
        return [
            ActionDescriptor.declare("sendMessage", ["user_id", "message"], "@send_message_handler"),
        ]

    def bind(self, context: ModuleContext) -> None:
        super().bind(context)
        self._gateway = context.gateway or GraphMessagingGateway()
        try:
            window = float(self.setting("debounceSeconds", 10))
        except (TypeError, ValueError):
            logger.warning(f"{self.name}: invalid debounceSeconds setting, using 10s")
            window = 10.0
        self.aggregator = MessageAggregator(self._on_flush, debounce_seconds=window, name=self.name)

    async def _on_flush(self, user_id: str, fragments: list[Fragment]) -> None:
        handler = self.context.on_batch if self.context else None
        if handler is None:
            logger.warning(f"{self.name}: no batch handler bound; dropping {len(fragments)} fragment(s)")
            return
        await handler(self.name, user_id, fragments)

    # -- identity --------------------------------------------------------

    def external_id(self, raw: str) -> str:
        return f"{self.name}:{raw}"

    def is_allowed(self, sender_id: str) -> bool:
        """Check the sender against the allowFrom setting (empty allows everyone)."""
        allow_list = self.setting("allowFrom", []) or []
        if not isinstance(allow_list, list) or not allow_list:
            return True
        sender_variants = self._identity_variants(sender_id)
        return any(sender_variants & self._identity_variants(str(item)) for item in allow_list)

    def _identity_variants(self, raw: str) -> set[str]:
        text = str(raw or "").strip()
        variants = {text}
        digits = re.sub(r"\D+", "", text)
        if digits:
            variants.add(digits)
            variants.add(digits.lstrip("0"))
        return {v for v in variants if v}

    def _resolve_sender(self, item: InboundText) -> str:
        identity = self.context.identity if self.context else None
        if identity is None:
            return self.external_id(item.sender)
        ids = [self.external_id(item.sender)]
        for alias in item.aliases:
            namespaced = self.external_id(alias)
            if alias and namespaced not in ids:
                ids.append(namespaced)
        if len(ids) > 1:
            return identity.merge(ids)
        return identity.resolve(ids[0])

    def recipient_for(self, user_id: str) -> str | None:
        """
        External id to reply to for an internal user on this channel.

        Merged identities list their ids oldest first; the most recently linked
        id for this channel wins.
        """
        prefix = f"{self.name}:"
        identity = self.context.identity if self.context else None
        if identity is None:
            return user_id[len(prefix):] if user_id.startswith(prefix) else None
        for external_id in reversed(identity.external_ids(user_id)):
            if external_id.startswith(prefix):
                return external_id[len(prefix):]
        return None

    def get_user_data(self, user_id: str) -> dict[str, Any] | None:
        recipient = self.recipient_for(user_id)
        if not recipient:
            return None
        return {self.name: {"externalId": recipient}}

    # -- inbound ---------------------------------------------------------

    def iter_messages(self, payload: dict[str, Any]) -> Iterator[InboundText]:
        """Yield text messages from a Graph `entry[].changes[]` webhook payload."""
        for entry in payload.get("entry") or []:
            if not isinstance(entry, dict):
                continue
            for change in entry.get("changes") or []:
                value = change.get("value") if isinstance(change, dict) else None
                if not isinstance(value, dict):
                    continue
                contacts = [c for c in value.get("contacts") or [] if isinstance(c, dict)]
                for message in value.get("messages") or []:
                    if not isinstance(message, dict):
                        continue
                    if message.get("type", "text") != "text":
                        logger.debug(f"{self.name}: ignoring {message.get('type')} message")
                        continue
                    text = message.get("text")
                    body = text.get("body") if isinstance(text, dict) else None
                    sender = str(message.get("from") or "")
                    contact = next(
                        (c for c in contacts if str(c.get("wa_id", "")) == sender),
                        contacts[0] if contacts else {},
                    )
                    sender = sender or str(contact.get("wa_id") or "")
                    if not sender or not isinstance(body, str):
                        continue
                    aliases = tuple(
                        str(contact[key])
                        for key in ("wa_id", "user_id")
                        if contact.get(key) and str(contact[key]) != sender
                    )
                    yield InboundText(
                        sender=sender,
                        text=body,
                        timestamp=_parse_timestamp(message.get("timestamp")),
                        aliases=aliases,
                    )

    def handle_webhook(self, payload: dict[str, Any]) -> int:
        """Resolve senders and buffer every text message. Returns the number buffered."""
        if self.aggregator is None:
            raise RuntimeError(f"{self.name} module is not bound")
        if not isinstance(payload, dict):
            return 0

        pushed = 0
        for item in self.iter_messages(payload):
            if not self.is_allowed(item.sender):
                logger.warning(
                    f"Access denied for sender {item.sender} on {self.name}. "
                    f"Add them to the allowFrom setting to grant access."
                )
                continue
            user_id = self._resolve_sender(item)
            self.aggregator.push(user_id, Fragment(content=item.text, timestamp=item.timestamp))
            pushed += 1
        return pushed

    def verify_webhook(self, query: dict[str, str]) -> tuple[int, str]:
        """Challenge/response handshake: echo hub.challenge when the token matches."""
        verify_token = self.setting("verifyToken", "")
        mode = query.get("hub.mode")
        token = query.get("hub.verify_token")
        if mode == "subscribe" and verify_token and token == verify_token:
            logger.info(f"{self.name}: webhook verified")
            return 200, query.get("hub.challenge", "")
        return 403, ""

    async def _webhook_get(self, request: Request) -> Response:
        status, body = self.verify_webhook(request.query)
        return text_response(body, status)

    async def _webhook_post(self, request: Request) -> Response:
        try:
            payload = request.json()
        except ValueError:
            return text_response("invalid json\n", 400)
        count = self.handle_webhook(payload)
        return json_response({"received": count})

    def routes(self) -> list[Route]:
        path = f"{self.mount_path}/webhook"
        return [
            Route("GET", path, self._webhook_get, public=True),
            Route("POST", path, self._webhook_post, public=True),
        ]

    # -- outbound --------------------------------------------------------

    async def send_message_handler(self, user_id: str, message: str) -> None:
        recipient = self.recipient_for(user_id)
        if not recipient:
            raise ValueError(f"{self.name}: no known recipient for user {user_id}")
        gateway = self._gateway or GraphMessagingGateway()
        await gateway.send(
            recipient,
            message,
            access_token=self.setting("accessToken"),
            sender_id=self.setting("phoneNumberId"),
            messaging_product=self.messaging_product,
        )
        logger.info(f"{self.name}: sent reply to {user_id}")

    async def close(self) -> None:
        if self.aggregator is not None:
            await self.aggregator.close()
