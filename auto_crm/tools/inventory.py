"""Inventory matching, reservation and batch automation tools."""

from __future__ import annotations

from auto_crm.data.models import CarPreferences
from auto_crm.engine.matching import LIVE_MATCH_LIMIT, ORDER_RELEVANCE
from auto_crm.engine.orchestrator import AutomationMaster
from auto_crm.engine.reservations import RESERVATION_HOURS
from auto_crm.messages import format_mileage, format_price
from auto_crm.normalization import utc_now
from auto_crm.tools.formatting import build_raw_response


def match_inventory_impl(
    master: AutomationMaster,
    *,
    make: str = "",
    max_budget: int | None = None,
    fuel: str = "",
    transmission: str = "",
    limit: int = LIVE_MATCH_LIMIT,
    order: str = ORDER_RELEVANCE,
    raw: bool = False,
) -> str:
    """List on-display vehicles matching the given preferences."""
    if limit <= 0:
        return "Limit must be greater than 0."
    if limit > 50:
        return "Limit must be 50 or fewer."
    if max_budget is not None and max_budget <= 0:
        return "Maximum budget must be greater than 0."

    prefs = CarPreferences(
        make=make.strip() or None,
        max_budget=max_budget,
        fuel=fuel.strip() or None,
        transmission=transmission.strip() or None,
    )
    vehicles = master.matcher.match(prefs, limit=limit, order=order)
    if raw:
        return build_raw_response("match_inventory", {
            "filters": prefs.to_dict(),
            "order": order,
            "count": len(vehicles),
            "vehicles": [v.to_row() for v in vehicles],
        })
    if not vehicles:
        return "No vehicles on display match those preferences."
    lines = [f"{len(vehicles)} matching vehicle(s):"]
    for index, vehicle in enumerate(vehicles, start=1):
        lines.append(
            f"{index}. {vehicle.display_name} | {format_price(vehicle.price)} | "
            f"{vehicle.fuel} | {format_mileage(vehicle.mileage)} | {vehicle.plate} "
            f"({vehicle.days_in_stock} days, demand {vehicle.demand_count})"
        )
    return "\n".join(lines)


def reserve_vehicle_impl(
    master: AutomationMaster,
    *,
    lead_id: str,
    vehicle: str,
    hold_hours: int = RESERVATION_HOURS,
    raw: bool = False,
) -> str:
    """Place a hold on a vehicle (by ID, plate or recommendation number) for a lead."""
    if not lead_id.strip():
        return "Lead ID is required."
    if hold_hours <= 0:
        return "Hold hours must be greater than 0."
    if hold_hours > 168:
        return "Hold hours must be 168 or fewer."
    lead = master.store.get_lead(lead_id.strip())
    if lead is None:
        return f"Lead '{lead_id}' not found."

    target = master.store.get_vehicle(vehicle.strip()) or master.reservations.resolve_vehicle(
        lead, vehicle,
    )
    if target is None:
        return f"Vehicle '{vehicle}' not found."

    outcome = master.reservations.reserve(lead, target, now=utc_now(), hours=hold_hours)
    if raw:
        return build_raw_response("reserve_vehicle", outcome.to_dict())
    if outcome.ok and outcome.reservation is not None:
        return (
            f"{target.display_name} ({target.plate}) reserved for lead {lead.id} "
            f"until {outcome.reservation.reserved_until}."
        )
    return f"{target.display_name} ({target.plate}) could not be reserved: {outcome.status}."


async def run_automation_impl(
    master: AutomationMaster,
    *,
    mode: str,
    raw: bool = False,
) -> str:
    """Run the hourly or daily automation batch."""
    summary = await master.run_automations(mode.strip().lower())
    if raw:
        return build_raw_response("run_automation", summary)
    if not summary["success"]:
        return f"{mode} automations failed: {summary['error']}"
    counts = ", ".join(f"{key}: {value}" for key, value in summary["processed"].items())
    return f"{mode.capitalize()} automations complete ({counts})."
