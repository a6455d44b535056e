"""Instagram messaging channel."""

from __future__ import annotations

from typing import Any, Iterator

from inbox_agent.channels.base import InboundText, SocialModule, _parse_timestamp


class InstagramModule(SocialModule):
    """
    Instagram direct messages.

    Instagram delivers either the `entry[].changes[]` shape shared with
    WhatsApp or the Messenger-style `entry[].messaging[]` shape; both are read.
    """

    name = "instagram"
    display_name = "Instagram"
    controller_path = "/instagram"
    messaging_product = "instagram"

    def iter_messages(self, payload: dict[str, Any]) -> Iterator[InboundText]:
        yield from super().iter_messages(payload)
        for entry in payload.get("entry") or []:
            if not isinstance(entry, dict):
                continue
            for event in entry.get("messaging") or []:
                if not isinstance(event, dict):
                    continue
                message = event.get("message")
                if not isinstance(message, dict) or message.get("is_echo"):
                    continue
                text = message.get("text")
                sender = str((event.get("sender") or {}).get("id") or "")
                if not sender or not isinstance(text, str):
                    continue
                yield InboundText(
                    sender=sender,
                    text=text,
                    timestamp=_parse_timestamp(event.get("timestamp")),
                )
