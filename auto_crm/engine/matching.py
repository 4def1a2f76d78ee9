"""Inventory matching, demand analysis, slow movers and inventory notifications."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from auto_crm.constants import (
    INTENT_CAR_SHOPPING,
    INTENT_PRICING,
    INTENT_PURCHASE,
    ON_DISPLAY_STATUS,
    STATUS_CONVERTED,
    WHATSAPP_SOURCE,
)
from auto_crm.data.models import CarPreferences, Lead, Vehicle
from auto_crm.data.store import RECENCY_ORDER, RELEVANCE_ORDER, CRMStore
from auto_crm.messages import (
    new_arrival_message,
    price_alert_message,
    targeted_offer_message,
)
from auto_crm.messaging import MessagingGateway, send_message
from auto_crm.normalization import to_iso, utc_now

logger = logging.getLogger(__name__)

LIVE_MATCH_LIMIT = 5
PERSONAL_RECOMMENDATION_LIMIT = 3
GENERIC_RECOMMENDATION_LIMIT = 10

ORDER_RELEVANCE = "relevance"
ORDER_RECENCY = "recency"
_ORDERINGS = {ORDER_RELEVANCE: RELEVANCE_ORDER, ORDER_RECENCY: RECENCY_ORDER}

DEMAND_WINDOW_DAYS = 30
SLOW_MOVER_MIN_DAYS = 90
SLOW_MOVER_MAX_DEMAND = 1
BUYER_BUDGET_TOLERANCE = 1.1
NEW_ARRIVAL_WINDOW_HOURS = 24

BUYER_INTENTS = (INTENT_PURCHASE, INTENT_CAR_SHOPPING, INTENT_PRICING)
NEW_ARRIVAL_INTENTS = (INTENT_PURCHASE, INTENT_CAR_SHOPPING)

# (more than N days in stock, discount %), evaluated top-down.
DISCOUNT_STEPS: tuple[tuple[int, int], ...] = ((180, 15), (120, 10), (90, 5))


def suggested_discount(days_in_stock: int) -> int:
    for threshold, pct in DISCOUNT_STEPS:
        if days_in_stock > threshold:
            return pct
    return 0


def vehicle_matches_preferences(
    vehicle: Vehicle,
    prefs: CarPreferences,
    *,
    budget_tolerance: float = 1.0,
) -> bool:
    if prefs.make and prefs.make.lower() not in vehicle.make.lower():
        return False
    if prefs.max_budget and vehicle.price > prefs.max_budget * budget_tolerance:
        return False
    if prefs.fuel and vehicle.fuel != prefs.fuel:
        return False
    if prefs.transmission and vehicle.transmission != prefs.transmission:
        return False
    return True


@dataclass
class DemandReport:
    demand_by_make: dict[str, int] = field(default_factory=dict)
    vehicles_updated: int = 0


@dataclass
class SlowMover:
    vehicle_id: str
    plate: str
    days_in_stock: int
    demand_count: int
    discount_pct: int
    suggested_price: float | None
    offers_sent: int = 0


class InventoryMatcher:
    def __init__(self, store: CRMStore, gateway: MessagingGateway) -> None:
        self.store = store
        self.gateway = gateway

    # ── Matching ───────────────────────────────────────────────────

    def match(
        self,
        prefs: CarPreferences,
        *,
        limit: int = LIVE_MATCH_LIMIT,
        order: str = ORDER_RELEVANCE,
    ) -> list[Vehicle]:
        """Active on-display vehicles satisfying ``prefs``, best first."""
        if order not in _ORDERINGS:
            raise ValueError(
                f"Unknown ordering '{order}'. Expected one of: {', '.join(_ORDERINGS)}."
            )
        return self.store.scan_vehicles(
            active_only=True,
            status=ON_DISPLAY_STATUS,
            make_like=prefs.make,
            max_price=prefs.max_budget,
            fuel=prefs.fuel,
            transmission=prefs.transmission,
            order_by=_ORDERINGS[order],
            limit=limit,
        )

    def recommend_for(self, lead: Lead, *, limit: int = PERSONAL_RECOMMENDATION_LIMIT) -> list[Vehicle]:
        return self.match(lead.meta.car_preferences, limit=limit, order=ORDER_RECENCY)

    def record_recommendations(
        self,
        lead: Lead,
        vehicles: list[Vehicle],
        *,
        now: datetime,
    ) -> None:
        stamp = to_iso(now)
        lead.meta.recommended_cars = [
            {**v.summary(), "recommended_at": stamp} for v in vehicles
        ]
        self.store.update_lead(
            lead.id,
            meta=lead.meta,
            status_reason="car_recommendations_sent",
            status_at=stamp,
        )

    # ── Demand ─────────────────────────────────────────────────────

    def analyze_demand(self, now: datetime | None = None) -> DemandReport:
        """Count recent make preferences and sync each vehicle's demand counter."""
        now = now or utc_now()
        since = now - timedelta(days=DEMAND_WINDOW_DAYS)
        counts: dict[str, int] = {}
        for lead in self.store.scan_leads(source=WHATSAPP_SOURCE, created_since=since):
            make = lead.meta.car_preferences.make
            if make:
                key = make.lower()
                counts[key] = counts.get(key, 0) + 1

        report = DemandReport(demand_by_make=dict(sorted(counts.items())))
        for vehicle in self.store.scan_vehicles(active_only=True, order_by=(("id", False),)):
            vehicle_make = vehicle.make.lower()
            demand = sum(n for make, n in counts.items() if make in vehicle_make)
            if demand != vehicle.demand_count:
                self.store.update_vehicle(vehicle.id, demand_count=demand)
                report.vehicles_updated += 1
        logger.info(
            "Demand analysis: %d makes, %d vehicles updated",
            len(counts), report.vehicles_updated,
        )
        return report

    # ── Slow movers ────────────────────────────────────────────────

    def pricing_suggestion(self, vehicle: Vehicle, *, now: datetime) -> dict[str, Any] | None:
        pct = suggested_discount(vehicle.days_in_stock)
        if not pct:
            return None
        return {
            "original_price": vehicle.price,
            "suggested_price": round(vehicle.price * (100 - pct) / 100, 2),
            "discount_percentage": pct,
            "reason": "slow_moving_inventory",
            "suggested_at": to_iso(now),
        }

    async def detect_slow_movers(self, now: datetime | None = None) -> list[SlowMover]:
        now = now or utc_now()
        movers: list[SlowMover] = []
        vehicles = self.store.scan_vehicles(
            active_only=True,
            min_days_in_stock=SLOW_MOVER_MIN_DAYS,
            max_demand=SLOW_MOVER_MAX_DEMAND,
            order_by=(("days_in_stock", True), ("id", False)),
        )
        for vehicle in vehicles:
            suggestion = self.pricing_suggestion(vehicle, now=now)
            if suggestion is not None:
                vehicle.automation_meta.pricing_suggestion = suggestion
                vehicle.pricing_signal = "discount"
                self.store.update_vehicle(
                    vehicle.id,
                    automation_meta=vehicle.automation_meta,
                    pricing_signal="discount",
                )
            offers = await self.send_targeted_offers(vehicle, suggestion, now=now)
            movers.append(SlowMover(
                vehicle_id=vehicle.id,
                plate=vehicle.plate,
                days_in_stock=vehicle.days_in_stock,
                demand_count=vehicle.demand_count,
                discount_pct=suggestion["discount_percentage"] if suggestion else 0,
                suggested_price=suggestion["suggested_price"] if suggestion else None,
                offers_sent=offers,
            ))
        logger.info("Slow movers flagged: %d", len(movers))
        return movers

    def find_potential_buyers(self, vehicle: Vehicle) -> list[Lead]:
        leads = self.store.scan_leads(
            source=WHATSAPP_SOURCE,
            intents=BUYER_INTENTS,
            exclude_status=STATUS_CONVERTED,
        )
        return [
            lead for lead in leads
            if not lead.meta.car_preferences.is_empty()
            and vehicle_matches_preferences(
                vehicle,
                lead.meta.car_preferences,
                budget_tolerance=BUYER_BUDGET_TOLERANCE,
            )
        ]

    async def send_targeted_offers(
        self,
        vehicle: Vehicle,
        suggestion: dict[str, Any] | None,
        *,
        now: datetime,
    ) -> int:
        """Offer ``vehicle`` to each matching lead once; returns offers sent."""
        sent = 0
        for lead in self.find_potential_buyers(vehicle):
            if any(o.get("vehicle_id") == vehicle.id for o in lead.meta.targeted_offers):
                continue
            await send_message(self.gateway, lead.phone, targeted_offer_message(vehicle, suggestion))
            lead.meta.targeted_offers.append({
                "kind": "slow_mover",
                "vehicle_id": vehicle.id,
                "plate": vehicle.plate,
                "offered_price": (suggestion or {}).get("suggested_price", vehicle.price),
                "sent_at": to_iso(now),
            })
            self.store.update_lead(lead.id, meta=lead.meta)
            sent += 1
        return sent

    # ── New arrivals ───────────────────────────────────────────────

    async def notify_new_arrivals(self, now: datetime | None = None) -> int:
        now = now or utc_now()
        arrivals = self.store.scan_vehicles(
            active_only=True,
            status=ON_DISPLAY_STATUS,
            created_since=now - timedelta(hours=NEW_ARRIVAL_WINDOW_HOURS),
            order_by=RECENCY_ORDER,
        )
        if not arrivals:
            return 0

        sent = 0
        leads = self.store.scan_leads(
            source=WHATSAPP_SOURCE,
            intents=NEW_ARRIVAL_INTENTS,
            exclude_status=STATUS_CONVERTED,
        )
        for lead in leads:
            prefs = lead.meta.car_preferences
            if prefs.is_empty():
                continue
            notified = {o.get("vehicle_id") for o in lead.meta.targeted_offers}
            changed = False
            for vehicle in arrivals:
                if vehicle.id in notified or not vehicle_matches_preferences(vehicle, prefs):
                    continue
                await send_message(self.gateway, lead.phone, new_arrival_message(vehicle))
                lead.meta.targeted_offers.append({
                    "kind": "new_arrival",
                    "vehicle_id": vehicle.id,
                    "plate": vehicle.plate,
                    "offered_price": vehicle.price,
                    "sent_at": to_iso(now),
                })
                changed = True
                sent += 1
            if changed:
                self.store.update_lead(lead.id, meta=lead.meta)
        logger.info("New-arrival alerts sent: %d", sent)
        return sent

    # ── Price alerts ───────────────────────────────────────────────

    def setup_price_alert(
        self,
        lead: Lead,
        prefs: CarPreferences,
        *,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Register an alert for cars matching ``prefs`` under its budget."""
        if not prefs.max_budget:
            raise ValueError("A price alert needs a maximum budget.")
        criteria = {
            "make": prefs.make,
            "max_budget": prefs.max_budget,
            "fuel": prefs.fuel,
            "transmission": prefs.transmission,
        }
        for alert in lead.meta.price_alerts:
            if alert.get("active") and all(alert.get(k) == v for k, v in criteria.items()):
                return alert

        alert = {
            "id": f"alert-{uuid.uuid4().hex[:8]}",
            **criteria,
            "active": True,
            "created_at": to_iso(now or utc_now()),
            "notified_vehicle_ids": [],
        }
        lead.meta.price_alerts.append(alert)
        self.store.update_lead(lead.id, meta=lead.meta)
        return alert

    async def check_price_alerts(self, now: datetime | None = None) -> int:
        """Notify each active alert once per matching vehicle; returns messages sent."""
        sent = 0
        for lead in self.store.scan_leads(source=WHATSAPP_SOURCE, exclude_status=STATUS_CONVERTED):
            changed = False
            for alert in lead.meta.price_alerts:
                if not alert.get("active") or not alert.get("max_budget"):
                    continue
                prefs = CarPreferences.from_dict({
                    "make": alert.get("make"),
                    "maxBudget": alert.get("max_budget"),
                    "fuel": alert.get("fuel"),
                    "transmission": alert.get("transmission"),
                })
                notified = alert.setdefault("notified_vehicle_ids", [])
                for vehicle in self.match(prefs, limit=GENERIC_RECOMMENDATION_LIMIT):
                    if vehicle.id in notified:
                        continue
                    await send_message(
                        self.gateway, lead.phone, price_alert_message(vehicle, prefs.max_budget),
                    )
                    notified.append(vehicle.id)
                    changed = True
                    sent += 1
            if changed:
                self.store.update_lead(lead.id, meta=lead.meta)
        logger.info("Price alerts sent: %d", sent)
        return sent
