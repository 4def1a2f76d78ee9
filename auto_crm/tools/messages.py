"""Inbound WhatsApp message and webhook tool implementations."""

from __future__ import annotations

import json
from typing import Any

from auto_crm.engine.orchestrator import AutomationMaster, AutomationResult
from auto_crm.tools.formatting import build_raw_response, format_preferences
from auto_crm.webhook import verify_subscription


def _render_result(result: AutomationResult) -> str:
    if not result.success:
        return (
            f"Automation stopped early for lead {result.lead_id or 'unknown'}: "
            f"{result.error}"
        )
    lines = [
        f"Lead {result.lead_id} ({'new' if result.created else 'returning'})",
        f"Stage: {result.previous_stage} -> {result.stage}",
        f"Score: {result.score} ({result.category})",
        f"Preferences: {format_preferences(result.preferences)}",
        f"Recommendations sent: {result.recommendations}",
    ]
    if result.reservation:
        lines.append(f"Reservation: {result.reservation['status']}")
    if result.price_alert:
        lines.append(f"Price alert: {result.price_alert['id']}")
    failed = [o.kind for o in result.effects if not o.ok]
    if failed:
        lines.append(f"Failed effects: {', '.join(failed)}")
    return "\n".join(lines)


async def process_inbound_message_impl(
    master: AutomationMaster,
    *,
    phone: str,
    text: str,
    display_name: str = "",
    raw: bool = False,
) -> str:
    """Run the inbound automation pipeline for one WhatsApp message."""
    if not phone.strip():
        return "Please provide the sender phone number."
    if not text.strip():
        return "Please provide the message text."

    result = await master.process_incoming_message(
        phone.strip(), text, display_name.strip() or None,
    )
    if raw:
        return build_raw_response("process_inbound_message", result.to_dict())
    return _render_result(result)


async def process_whatsapp_webhook_impl(
    master: AutomationMaster,
    *,
    payload_json: str,
    raw: bool = False,
) -> str:
    """Process every text message in a WhatsApp Cloud API webhook payload."""
    try:
        payload: Any = json.loads(payload_json)
    except ValueError:
        return "Webhook payload must be valid JSON."
    if not isinstance(payload, dict):
        return "Webhook payload must be a JSON object."

    results = await master.process_webhook(payload)
    if raw:
        return build_raw_response(
            "process_whatsapp_webhook",
            {"processed": len(results), "results": [r.to_dict() for r in results]},
        )
    if not results:
        return "No inbound text messages in payload."
    return "\n\n".join(_render_result(r) for r in results)


def verify_webhook_impl(
    *,
    mode: str,
    verify_token: str,
    challenge: str,
    expected_token: str,
) -> str:
    """Answer the webhook subscription handshake with the challenge."""
    return verify_subscription(
        {"hub.mode": mode, "hub.verify_token": verify_token, "hub.challenge": challenge},
        expected_token,
    )
