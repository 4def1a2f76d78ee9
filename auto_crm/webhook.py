"""WhatsApp Cloud API webhook parsing and subscription verification.

Pure functions over already-decoded payloads; the HTTP layer is whatever
fronts the MCP server or CLI.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

logger = logging.getLogger(__name__)

WEBHOOK_PARSER_VERSION = 1


class WebhookVerificationError(ValueError):
    """Raised when a subscription handshake does not match the verify token."""


@dataclass(frozen=True)
class InboundMessage:
    phone: str
    message_type: str
    text: str
    display_name: str | None = None
    message_id: str = ""
    timestamp: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "phone": self.phone,
            "message_type": self.message_type,
            "text": self.text,
            "display_name": self.display_name,
            "message_id": self.message_id,
            "timestamp": self.timestamp,
        }


def verify_subscription(params: Mapping[str, Any], verify_token: str) -> str:
    """Return ``hub.challenge`` for a valid subscribe request."""
    if not verify_token:
        raise WebhookVerificationError("WHATSAPP_VERIFY_TOKEN is not configured.")
    mode = params.get("hub.mode")
    token = params.get("hub.verify_token")
    if mode != "subscribe" or token != verify_token:
        raise WebhookVerificationError("Webhook verification failed.")
    return str(params.get("hub.challenge") or "")


def _message_text(message: Mapping[str, Any]) -> str:
    kind = message.get("type")
    if kind == "text":
        return str((message.get("text") or {}).get("body") or "")
    if kind == "button":
        button = message.get("button") or {}
        return str(button.get("text") or button.get("payload") or "")
    if kind == "interactive":
        interactive = message.get("interactive") or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        return str(reply.get("title") or "")
    return ""


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def parse_webhook(payload: Mapping[str, Any]) -> list[InboundMessage]:
    """Extract inbound messages from every entry and change of a payload.

    Delivery status callbacks carry no customer text and are skipped.
    """
    messages: list[InboundMessage] = []
    statuses = 0
    for entry in _as_list(payload.get("entry")):
        for change in _as_list((entry or {}).get("changes")):
            value = (change or {}).get("value") or {}
            names = {
                str(contact.get("wa_id")): (contact.get("profile") or {}).get("name")
                for contact in _as_list(value.get("contacts"))
                if isinstance(contact, Mapping)
            }
            for message in _as_list(value.get("messages")):
                if not isinstance(message, Mapping) or not message.get("from"):
                    continue
                sender = str(message["from"])
                messages.append(InboundMessage(
                    phone=sender,
                    message_type=str(message.get("type") or "unknown"),
                    text=_message_text(message).strip(),
                    display_name=names.get(sender) or None,
                    message_id=str(message.get("id") or ""),
                    timestamp=str(message.get("timestamp") or ""),
                ))
            statuses += len(_as_list(value.get("statuses")))
    if statuses:
        logger.info("Ignoring %d delivery status callbacks", statuses)
    return messages
