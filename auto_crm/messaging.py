"""Outbound messaging gateways.

Sends are fire-and-forget: :func:`send_message` logs and swallows failures so
a broken gateway never aborts lead processing.  Nothing is retried.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from auto_crm.clients.whatsapp import WhatsAppClient
from auto_crm.config import CRMConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class MessagingGateway(Protocol):
    async def send(self, phone: str, text: str) -> None: ...


class WhatsAppGateway:
    """Delivers each message through a short-lived :class:`WhatsAppClient`."""

    def __init__(self, token: str, phone_number_id: str, *, api_version: str = "v20.0") -> None:
        self.token = token
        self.phone_number_id = phone_number_id
        self.api_version = api_version

    async def send(self, phone: str, text: str) -> None:
        async with WhatsAppClient(
            self.token, self.phone_number_id, api_version=self.api_version,
        ) as client:
            await client.send_text(phone, text)


class LoggingGateway:
    """Dry-run gateway: logs and records messages instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, phone: str, text: str) -> None:
        logger.info("Would send to %s: %s", phone, text)
        self.sent.append((phone, text))

    def messages_to(self, phone: str) -> list[str]:
        return [text for to, text in self.sent if to == phone]


def build_gateway(config: CRMConfig) -> MessagingGateway:
    if config.whatsapp_enabled:
        return WhatsAppGateway(
            config.whatsapp_token,
            config.phone_number_id,
            api_version=config.whatsapp_api_version,
        )
    logger.warning("WhatsApp credentials not configured; using dry-run gateway")
    return LoggingGateway()


async def send_message(gateway: MessagingGateway, phone: str, text: str) -> bool:
    """Send once; returns False (after logging) instead of raising on failure."""
    if not phone or not text:
        return False
    try:
        await gateway.send(phone, text)
    except Exception:
        logger.exception("Failed to send message to %s", phone)
        return False
    return True
