"""Lead inspection and staff-driven lead update tools."""

from __future__ import annotations

from typing import Any

from auto_crm.data.models import CarPreferences, Lead
from auto_crm.engine.orchestrator import AutomationMaster
from auto_crm.engine.scoring import classify_score, score_lead
from auto_crm.messages import format_price
from auto_crm.normalization import utc_now
from auto_crm.tools.formatting import build_raw_response, format_preferences


def _find_lead(master: AutomationMaster, lead_id: str, phone: str) -> Lead | None:
    if lead_id.strip():
        return master.store.get_lead(lead_id.strip())
    if phone.strip():
        return master.store.find_lead_by_phone(phone.strip())
    raise ValueError("Please provide a lead ID or phone number.")


def _lead_summary(lead: Lead) -> dict[str, Any]:
    meta = lead.meta
    return {
        "id": lead.id,
        "phone": lead.phone,
        "name": lead.name,
        "email": lead.email,
        "intent": lead.intent,
        "status": lead.status,
        "status_reason": lead.status_reason,
        "journey_stage": meta.journey_stage,
        "lead_score": meta.lead_score,
        "message_count": meta.message_count,
        "preferences": meta.car_preferences.to_dict(),
        "recommended_cars": meta.recommended_cars,
        "reservations": [r.to_dict() for r in meta.car_reservations],
        "follow_ups_fired": list(meta.automated_follow_ups),
        "price_alerts": meta.price_alerts,
        "last_contact_date": meta.last_contact_date,
    }


def get_lead_impl(
    master: AutomationMaster,
    *,
    lead_id: str = "",
    phone: str = "",
    raw: bool = False,
) -> str:
    """Show a lead's journey, score and automation history."""
    lead = _find_lead(master, lead_id, phone)
    if lead is None:
        return f"Lead '{lead_id or phone}' not found."

    summary = _lead_summary(lead)
    if raw:
        return build_raw_response("get_lead", summary)

    lines = [
        f"Lead {lead.id}: {lead.name or 'unnamed'} ({lead.phone})",
        f"Intent: {lead.intent} | Status: {lead.status} | Stage: {lead.meta.journey_stage}",
        f"Score: {lead.meta.lead_score if lead.meta.lead_score is not None else 'not scored'}",
        f"Messages: {lead.meta.message_count}",
        f"Preferences: {format_preferences(summary['preferences'])}",
    ]
    if lead.meta.recommended_cars:
        cars = ", ".join(
            f"{c.get('make')} {c.get('model')} ({c.get('plate')})"
            for c in lead.meta.recommended_cars
        )
        lines.append(f"Recommended: {cars}")
    if lead.meta.automated_follow_ups:
        lines.append(f"Follow-ups fired: {', '.join(lead.meta.automated_follow_ups)}")
    return "\n".join(lines)


def score_lead_impl(
    master: AutomationMaster,
    *,
    lead_id: str,
    raw: bool = False,
) -> str:
    """Compute a lead's current score without changing its stored status."""
    if not lead_id.strip():
        return "Lead ID is required."
    lead = master.store.get_lead(lead_id.strip())
    if lead is None:
        return f"Lead '{lead_id}' not found."

    scored = score_lead(lead, utc_now())
    band = classify_score(scored.score)
    data = {
        "lead_id": lead.id,
        "score": scored.score,
        "category": scored.category,
        "status_reason": band[1] if band else None,
    }
    if raw:
        return build_raw_response("score_lead", data)
    return f"Lead {lead.id} scores {scored.score}/100 ({scored.category})."


async def set_journey_stage_impl(
    master: AutomationMaster,
    *,
    lead_id: str,
    stage: str,
    raw: bool = False,
) -> str:
    """Move a lead to a journey stage and run that stage's entry effects."""
    if not lead_id.strip():
        return "Lead ID is required."
    now = utc_now()
    result = master.journey.move_to_stage(lead_id.strip(), stage.strip(), now)
    outcomes = await master.dispatcher.dispatch(result.effects, now)
    data = {
        "lead_id": result.lead_id,
        "previous_stage": result.previous_stage,
        "stage": result.stage,
        "effects": [{"kind": o.kind, "ok": o.ok, "detail": o.detail} for o in outcomes],
    }
    if raw:
        return build_raw_response("set_journey_stage", data)
    if not result.changed:
        return f"Lead {result.lead_id} is already in stage '{result.stage}'."
    text = f"Lead {result.lead_id} moved {result.previous_stage} -> {result.stage}."
    if outcomes:
        text += " Effects: " + ", ".join(
            f"{o.kind} ({'ok' if o.ok else 'failed'})" for o in outcomes
        )
    return text


def create_price_alert_impl(
    master: AutomationMaster,
    *,
    lead_id: str,
    max_budget: int,
    make: str = "",
    fuel: str = "",
    transmission: str = "",
    raw: bool = False,
) -> str:
    """Register a price alert for a lead."""
    if not lead_id.strip():
        return "Lead ID is required."
    if max_budget <= 0:
        return "Maximum budget must be greater than 0."
    lead = master.store.get_lead(lead_id.strip())
    if lead is None:
        return f"Lead '{lead_id}' not found."

    prefs = CarPreferences(
        make=make.strip() or None,
        max_budget=max_budget,
        fuel=fuel.strip() or None,
        transmission=transmission.strip() or None,
    )
    alert = master.matcher.setup_price_alert(lead, prefs, now=utc_now())
    if raw:
        return build_raw_response("create_price_alert", alert)
    return (
        f"Price alert {alert['id']} active for lead {lead.id}: "
        f"{make or 'any make'} under {format_price(max_budget)}."
    )
