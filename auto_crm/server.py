"""AutoCRM MCP server: FastMCP entry point for the dealership WhatsApp automations."""

from __future__ import annotations

import logging

from mcp.server.fastmcp import FastMCP

from auto_crm.config import CRMConfig
from auto_crm.data.registry import get_store
from auto_crm.engine.matching import LIVE_MATCH_LIMIT, ORDER_RELEVANCE
from auto_crm.engine.orchestrator import AutomationMaster
from auto_crm.engine.reservations import RESERVATION_HOURS
from auto_crm.messaging import MessagingGateway, build_gateway
from auto_crm.tools.formatting import (
    log_and_return_tool_error as _log_and_return_tool_error,
)
from auto_crm.tools.inventory import (
    match_inventory_impl,
    reserve_vehicle_impl,
    run_automation_impl,
)
from auto_crm.tools.leads import (
    create_price_alert_impl,
    get_lead_impl,
    score_lead_impl,
    set_journey_stage_impl,
)
from auto_crm.tools.messages import (
    process_inbound_message_impl,
    process_whatsapp_webhook_impl,
    verify_webhook_impl,
)

mcp = FastMCP("AutoCRM")
logger = logging.getLogger(__name__)

_config_ref: CRMConfig | None = None
_master_ref: AutomationMaster | None = None
_gateway_override: MessagingGateway | None = None


def _get_config() -> CRMConfig:
    global _config_ref  # noqa: PLW0603
    if _config_ref is None:
        _config_ref = CRMConfig.from_env()
    return _config_ref


def _get_master() -> AutomationMaster:
    """Lazy accessor: builds the automation master on first tool call."""
    global _master_ref  # noqa: PLW0603
    if _master_ref is None:
        config = _get_config()
        gateway = _gateway_override or build_gateway(config)
        _master_ref = AutomationMaster(get_store(config), gateway, config)
    return _master_ref


def set_gateway_override(
    gateway: MessagingGateway | None,
    config: CRMConfig | None = None,
) -> None:
    """Inject a gateway (and optionally a config) for testing; resets the master."""
    global _gateway_override, _master_ref, _config_ref  # noqa: PLW0603
    _gateway_override = gateway
    _config_ref = config
    _master_ref = None


# ── Inbound messages ──────────────────────────────────────────────


@mcp.tool()
async def process_inbound_message(
    phone: str,
    text: str,
    display_name: str = "",
    raw: bool = False,
) -> str:
    """Run lead capture, journey, scoring, matching and intent handling for a WhatsApp message."""
    try:
        return await process_inbound_message_impl(
            _get_master(),
            phone=phone,
            text=text,
            display_name=display_name,
            raw=raw,
        )
    except ValueError as exc:
        return str(exc)
    except Exception as exc:
        return _log_and_return_tool_error(
            tool_name="process_inbound_message",
            exc=exc,
            user_message=(
                "I am having trouble processing that message right now. "
                "Please try again in a moment."
            ),
        )


@mcp.tool()
async def process_whatsapp_webhook(payload_json: str, raw: bool = False) -> str:
    """Process every inbound text message in a WhatsApp Cloud API webhook payload (JSON)."""
    try:
        return await process_whatsapp_webhook_impl(
            _get_master(),
            payload_json=payload_json,
            raw=raw,
        )
    except ValueError as exc:
        return str(exc)
    except Exception as exc:
        return _log_and_return_tool_error(
            tool_name="process_whatsapp_webhook",
            exc=exc,
            user_message=(
                "I am having trouble processing that webhook right now. "
                "Please try again in a moment."
            ),
        )


@mcp.tool()
def verify_webhook(mode: str, verify_token: str, challenge: str) -> str:
    """Answer the WhatsApp webhook subscription handshake (hub.mode/hub.verify_token/hub.challenge)."""
    try:
        return verify_webhook_impl(
            mode=mode,
            verify_token=verify_token,
            challenge=challenge,
            expected_token=_get_config().whatsapp_verify_token,
        )
    except ValueError as exc:
        return str(exc)
    except Exception as exc:
        return _log_and_return_tool_error(
            tool_name="verify_webhook",
            exc=exc,
            user_message=(
                "I am having trouble verifying the webhook right now. "
                "Please try again in a moment."
            ),
        )


# ── Periodic automations ──────────────────────────────────────────


@mcp.tool()
async def run_automation(mode: str = "hourly", raw: bool = False) -> str:
    """Run the hourly (hot leads + follow-ups) or daily (full inventory + lead) automation batch."""
    try:
        return await run_automation_impl(_get_master(), mode=mode, raw=raw)
    except ValueError as exc:
        return str(exc)
    except Exception as exc:
        return _log_and_return_tool_error(
            tool_name="run_automation",
            exc=exc,
            user_message=(
                "I am having trouble running automations right now. "
                "Please try again in a moment."
            ),
        )


# ── Leads ─────────────────────────────────────────────────────────


@mcp.tool()
def get_lead(lead_id: str = "", phone: str = "", raw: bool = False) -> str:
    """Show a lead's journey stage, score, preferences and automation history."""
    try:
        return get_lead_impl(_get_master(), lead_id=lead_id, phone=phone, raw=raw)
    except ValueError as exc:
        return str(exc)
    except Exception as exc:
        return _log_and_return_tool_error(
            tool_name="get_lead",
            exc=exc,
            user_message=(
                "I am having trouble loading that lead right now. "
                "Please try again in a moment."
            ),
        )


@mcp.tool()
def score_lead(lead_id: str, raw: bool = False) -> str:
    """Compute a lead's 0-100 score and category (hot, warm, qualified or cold)."""
    try:
        return score_lead_impl(_get_master(), lead_id=lead_id, raw=raw)
    except ValueError as exc:
        return str(exc)
    except Exception as exc:
        return _log_and_return_tool_error(
            tool_name="score_lead",
            exc=exc,
            user_message=(
                "I am having trouble scoring that lead right now. "
                "Please try again in a moment."
            ),
        )


@mcp.tool()
async def set_journey_stage(lead_id: str, stage: str, raw: bool = False) -> str:
    """Manually move a lead to a journey stage (e.g. converted or dormant)."""
    try:
        return await set_journey_stage_impl(
            _get_master(), lead_id=lead_id, stage=stage, raw=raw,
        )
    except ValueError as exc:
        return str(exc)
    except Exception as exc:
        return _log_and_return_tool_error(
            tool_name="set_journey_stage",
            exc=exc,
            user_message=(
                "I am having trouble updating that lead's stage right now. "
                "Please try again in a moment."
            ),
        )


@mcp.tool()
def create_price_alert(
    lead_id: str,
    max_budget: int,
    make: str = "",
    fuel: str = "",
    transmission: str = "",
    raw: bool = False,
) -> str:
    """Alert a lead when a matching car at or under their budget is on display."""
    try:
        return create_price_alert_impl(
            _get_master(),
            lead_id=lead_id,
            max_budget=max_budget,
            make=make,
            fuel=fuel,
            transmission=transmission,
            raw=raw,
        )
    except ValueError as exc:
        return str(exc)
    except Exception as exc:
        return _log_and_return_tool_error(
            tool_name="create_price_alert",
            exc=exc,
            user_message=(
                "I am having trouble creating that price alert right now. "
                "Please try again in a moment."
            ),
        )


# ── Inventory ─────────────────────────────────────────────────────


@mcp.tool()
def match_inventory(
    make: str = "",
    max_budget: int | None = None,
    fuel: str = "",
    transmission: str = "",
    limit: int = LIVE_MATCH_LIMIT,
    order: str = ORDER_RELEVANCE,
    raw: bool = False,
) -> str:
    """List on-display vehicles matching make, budget, fuel and transmission.

    order="relevance" ranks by demand then stock age; order="recency" by arrival.
    """
    try:
        return match_inventory_impl(
            _get_master(),
            make=make,
            max_budget=max_budget,
            fuel=fuel,
            transmission=transmission,
            limit=limit,
            order=order,
            raw=raw,
        )
    except ValueError as exc:
        return str(exc)
    except Exception as exc:
        return _log_and_return_tool_error(
            tool_name="match_inventory",
            exc=exc,
            user_message=(
                "I am having trouble searching inventory right now. "
                "Please try again in a moment."
            ),
        )


@mcp.tool()
def reserve_vehicle(
    lead_id: str,
    vehicle: str,
    hold_hours: int = RESERVATION_HOURS,
    raw: bool = False,
) -> str:
    """Hold a vehicle (ID, plate, or recommendation number) for a lead."""
    try:
        return reserve_vehicle_impl(
            _get_master(),
            lead_id=lead_id,
            vehicle=vehicle,
            hold_hours=hold_hours,
            raw=raw,
        )
    except ValueError as exc:
        return str(exc)
    except Exception as exc:
        return _log_and_return_tool_error(
            tool_name="reserve_vehicle",
            exc=exc,
            user_message=(
                "I am having trouble creating a reservation hold right now. "
                "Please try again in a moment."
            ),
        )


if __name__ == "__main__":
    mcp.run()
