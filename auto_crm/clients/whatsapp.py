"""Async WhatsApp Cloud API client (text messages only)."""

from __future__ import annotations

import json
import logging
from typing import Any

import aiohttp

from auto_crm.normalization import normalize_phone

logger = logging.getLogger(__name__)

_REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=15)
MAX_TEXT_LENGTH = 4096


class WhatsAppClientError(RuntimeError):
    """Raised for WhatsApp request/config errors with structured metadata."""

    def __init__(
        self,
        message: str,
        *,
        code: str,
        status: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status
        self.details = details or {}


class WhatsAppClient:
    """Async client for the Graph API ``/{phone_number_id}/messages`` endpoint."""

    BASE_URL = "https://graph.facebook.com"

    def __init__(
        self,
        token: str,
        phone_number_id: str,
        *,
        api_version: str = "v20.0",
    ) -> None:
        self.token = token.strip()
        self.phone_number_id = phone_number_id.strip()
        self.api_version = api_version
        self.session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> WhatsAppClient:
        if not self.token:
            raise WhatsAppClientError(
                "WHATSAPP_TOKEN is not configured.",
                code="MISSING_TOKEN",
            )
        if not self.phone_number_id:
            raise WhatsAppClientError(
                "PHONE_NUMBER_ID is not configured.",
                code="MISSING_PHONE_NUMBER_ID",
            )
        self.session = aiohttp.ClientSession(
            headers={"Authorization": f"Bearer {self.token}"},
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self.session:
            await self.session.close()

    @property
    def messages_url(self) -> str:
        return f"{self.BASE_URL}/{self.api_version}/{self.phone_number_id}/messages"

    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        if not self.session:
            raise RuntimeError("Client not entered as context manager")

        try:
            async with self.session.post(
                self.messages_url,
                json=body,
                timeout=_REQUEST_TIMEOUT,
            ) as resp:
                raw_text = await resp.text()
                payload: Any = {}
                if raw_text:
                    try:
                        payload = json.loads(raw_text)
                    except json.JSONDecodeError:
                        payload = {"raw": raw_text}

                if resp.status >= 400:
                    message = f"WhatsApp request failed with HTTP {resp.status}."
                    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
                        message = str(payload["error"].get("message") or message)
                    raise WhatsAppClientError(
                        message,
                        code="WHATSAPP_HTTP_ERROR",
                        status=resp.status,
                        details=payload if isinstance(payload, dict) else {"response": payload},
                    )
                return payload if isinstance(payload, dict) else {"data": payload}
        except WhatsAppClientError:
            raise
        except TimeoutError as exc:
            raise WhatsAppClientError(
                "WhatsApp request timed out.",
                code="TIMEOUT",
                details={"to": body.get("to", "")},
            ) from exc
        except aiohttp.ClientError as exc:
            logger.error("WhatsApp client error (to=%s): %s", body.get("to", ""), exc)
            raise WhatsAppClientError(
                "WhatsApp request failed due to a network/client error.",
                code="NETWORK_ERROR",
                details={"to": body.get("to", ""), "error": str(exc)},
            ) from exc

    async def send_text(self, to: str, body: str) -> dict[str, Any]:
        """Send a plain text message; returns the Graph API response payload."""
        recipient = normalize_phone(to)
        if not recipient:
            raise ValueError("Recipient phone number is required.")
        text = body.strip()
        if not text:
            raise ValueError("Message body is required.")
        return await self._post({
            "messaging_product": "whatsapp",
            "to": recipient,
            "type": "text",
            "text": {"body": text[:MAX_TEXT_LENGTH]},
        })
