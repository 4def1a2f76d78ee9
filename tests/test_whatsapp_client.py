"""Tests for the WhatsApp Cloud API client and the messaging gateways."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from auto_crm.clients.whatsapp import MAX_TEXT_LENGTH, WhatsAppClient, WhatsAppClientError
from auto_crm.config import CRMConfig
from auto_crm.messaging import (
    LoggingGateway,
    MessagingGateway,
    WhatsAppGateway,
    build_gateway,
    send_message,
)


def _response(status: int, body: Any) -> MagicMock:
    resp = MagicMock()
    resp.status = status
    resp.text = AsyncMock(return_value=body if isinstance(body, str) else json.dumps(body))
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=resp)
    ctx.__aexit__ = AsyncMock(return_value=False)
    return ctx


def _client(post: MagicMock) -> WhatsAppClient:
    client = WhatsAppClient("token-abc", "1234567890")
    client.session = MagicMock()
    client.session.post = post
    return client


class TestWhatsAppClient:
    async def test_send_text_posts_graph_payload(self):
        post = MagicMock(return_value=_response(200, {"messages": [{"id": "wamid.X"}]}))
        client = _client(post)

        result = await client.send_text("+351 912 345 678", "  Hello!  ")

        assert result["messages"][0]["id"] == "wamid.X"
        url = post.call_args.args[0]
        assert url == "https://graph.facebook.com/v20.0/1234567890/messages"
        body = post.call_args.kwargs["json"]
        assert body == {
            "messaging_product": "whatsapp",
            "to": "351912345678",
            "type": "text",
            "text": {"body": "Hello!"},
        }

    async def test_long_text_is_truncated(self):
        post = MagicMock(return_value=_response(200, {}))
        await _client(post).send_text("351912345678", "x" * (MAX_TEXT_LENGTH + 10))
        assert len(post.call_args.kwargs["json"]["text"]["body"]) == MAX_TEXT_LENGTH

    async def test_http_error_uses_graph_message(self):
        post = MagicMock(return_value=_response(
            401, {"error": {"message": "Invalid OAuth access token.", "code": 190}},
        ))
        with pytest.raises(WhatsAppClientError, match="Invalid OAuth") as excinfo:
            await _client(post).send_text("351912345678", "hi")
        assert excinfo.value.code == "WHATSAPP_HTTP_ERROR"
        assert excinfo.value.status == 401

    async def test_http_error_with_non_json_body(self):
        post = MagicMock(return_value=_response(502, "<html>Bad Gateway</html>"))
        with pytest.raises(WhatsAppClientError, match="HTTP 502") as excinfo:
            await _client(post).send_text("351912345678", "hi")
        assert excinfo.value.details == {"raw": "<html>Bad Gateway</html>"}

    async def test_timeout(self):
        post = MagicMock(side_effect=TimeoutError())
        with pytest.raises(WhatsAppClientError) as excinfo:
            await _client(post).send_text("351912345678", "hi")
        assert excinfo.value.code == "TIMEOUT"

    async def test_network_error(self):
        post = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        with pytest.raises(WhatsAppClientError) as excinfo:
            await _client(post).send_text("351912345678", "hi")
        assert excinfo.value.code == "NETWORK_ERROR"

    @pytest.mark.parametrize(("to", "body"), [("", "hi"), ("351912345678", "   ")])
    async def test_rejects_empty_input(self, to: str, body: str):
        post = MagicMock()
        with pytest.raises(ValueError):
            await _client(post).send_text(to, body)
        post.assert_not_called()

    async def test_requires_context_manager(self):
        with pytest.raises(RuntimeError, match="context manager"):
            await WhatsAppClient("token", "123").send_text("351912345678", "hi")

    @pytest.mark.parametrize(
        ("token", "phone_number_id", "code"),
        [("", "123", "MISSING_TOKEN"), ("token", " ", "MISSING_PHONE_NUMBER_ID")],
    )
    async def test_missing_credentials(self, token: str, phone_number_id: str, code: str):
        with pytest.raises(WhatsAppClientError) as excinfo:
            async with WhatsAppClient(token, phone_number_id):
                pass
        assert excinfo.value.code == code


class TestGateways:
    def test_build_gateway_without_credentials_is_dry_run(self):
        assert isinstance(build_gateway(CRMConfig()), LoggingGateway)

    def test_build_gateway_with_credentials(self):
        gateway = build_gateway(CRMConfig(whatsapp_token="t", phone_number_id="1"))
        assert isinstance(gateway, WhatsAppGateway)
        assert isinstance(gateway, MessagingGateway)

    async def test_whatsapp_gateway_uses_client(self):
        with patch("auto_crm.messaging.WhatsAppClient") as mock_cls:
            instance = AsyncMock()
            instance.__aenter__ = AsyncMock(return_value=instance)
            instance.__aexit__ = AsyncMock(return_value=False)
            mock_cls.return_value = instance

            await WhatsAppGateway("t", "1", api_version="v19.0").send("351912345678", "hi")

        mock_cls.assert_called_once_with("t", "1", api_version="v19.0")
        instance.send_text.assert_awaited_once_with("351912345678", "hi")


class TestSendMessage:
    async def test_records_on_success(self):
        gateway = LoggingGateway()
        assert await send_message(gateway, "351912345678", "hi")
        assert gateway.messages_to("351912345678") == ["hi"]

    async def test_failure_is_swallowed(self):
        gateway = MagicMock()
        gateway.send = AsyncMock(side_effect=WhatsAppClientError("down", code="NETWORK_ERROR"))
        assert await send_message(gateway, "351912345678", "hi") is False

    @pytest.mark.parametrize(("phone", "text"), [("", "hi"), ("351912345678", "")])
    async def test_blank_input_is_not_sent(self, phone: str, text: str):
        gateway = LoggingGateway()
        assert await send_message(gateway, phone, text) is False
        assert gateway.sent == []
