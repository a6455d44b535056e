"""Outbound text messages through the Meta Graph API."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from inbox_agent.errors import MessagingConfigError, MessagingHTTPError

GRAPH_API_BASE = "https://graph.facebook.com/v22.0"


class GraphMessagingGateway:
    """Send text messages on behalf of a module's business account."""

    def __init__(
        self,
        *,
        api_base: str = GRAPH_API_BASE,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def send(
        self,
        to: str,
        text: str,
        *,
        access_token: str | None,
        sender_id: str | int | None,
        messaging_product: str = "whatsapp",
    ) -> dict[str, Any]:
        """
        POST one text message.

        Raises:
            MessagingConfigError: access token or sending account id missing.
            MessagingHTTPError: the API answered with a non-success status.
        """
        if not access_token:
            raise MessagingConfigError(f"{messaging_product}: access token is not configured")
        if sender_id in (None, ""):
            raise MessagingConfigError(f"{messaging_product}: sending account id is not configured")

        url = f"{self.api_base}/{sender_id}/messages"
        payload = {
            "messaging_product": messaging_product,
            "to": to,
            "type": "text",
            "text": {"body": text},
        }
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(url, json=payload, headers=headers)

        if response.is_error:
            body = response.text
            logger.error(
                f"{messaging_product}: failed to send message. Status: {response.status_code}, "
                f"Response: {body[:500]}"
            )
            raise MessagingHTTPError(
                f"{messaging_product}: failed to send message (status {response.status_code})",
                status=response.status_code,
                body=body,
            )

        try:
            data = response.json()
        except ValueError:
            data = {}
        logger.debug(f"{messaging_product}: message sent to {to}")
        return data if isinstance(data, dict) else {}
