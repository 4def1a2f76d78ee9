"""Tests for inventory matching, demand analysis, slow movers and inventory alerts."""

from __future__ import annotations

from datetime import timedelta

import pytest

from auto_crm.constants import (
    INTENT_GENERAL,
    INTENT_PRICING,
    INTENT_PURCHASE,
    ON_DISPLAY_STATUS,
    STATUS_CONVERTED,
    WHATSAPP_SOURCE,
)
from auto_crm.data.models import CarPreferences, Lead, LeadMeta, Vehicle
from auto_crm.data.store import SqliteStore
from auto_crm.engine.matching import (
    ORDER_RECENCY,
    InventoryMatcher,
    suggested_discount,
    vehicle_matches_preferences,
)
from auto_crm.normalization import to_iso


@pytest.fixture()
def matcher(store, gateway) -> InventoryMatcher:
    return InventoryMatcher(store, gateway)


class TestDiscounts:
    @pytest.mark.parametrize(
        ("days", "pct"),
        [(200, 15), (181, 15), (180, 10), (121, 10), (120, 5), (100, 5), (91, 5), (90, 0), (50, 0)],
    )
    def test_suggested_discount(self, days: int, pct: int):
        assert suggested_discount(days) == pct


class TestMatch:
    def test_relevance_order_is_demand_then_age(self, matcher):
        ids = [v.id for v in matcher.match(CarPreferences(), limit=10)]
        # car-007 is in preparation and car-008 is sold/inactive
        assert ids == ["car-002", "car-001", "car-005", "car-003", "car-006", "car-004"]

    def test_deterministic(self, matcher):
        prefs = CarPreferences(fuel="Diesel")
        assert [v.id for v in matcher.match(prefs)] == [v.id for v in matcher.match(prefs)]

    def test_filters(self, matcher):
        prefs = CarPreferences(make="bmw", max_budget=20000, fuel="Diesel", transmission="Automática")
        assert [v.id for v in matcher.match(prefs)] == ["car-001"]

    def test_make_is_substring(self, matcher):
        assert [v.id for v in matcher.match(CarPreferences(make="Mercedes"))] == ["car-003"]

    def test_inactive_never_returned(self, matcher):
        vehicles = matcher.match(CarPreferences(make="Audi"))
        assert vehicles == []

    def test_limit(self, matcher):
        assert len(matcher.match(CarPreferences(), limit=2)) == 2

    def test_recency_order(self, matcher, store):
        store.upsert_vehicle(Vehicle(
            id="car-100", plate="ZZ-99-ZZ", make="Seat", model="Leon", price=12000,
            status=ON_DISPLAY_STATUS, created_at="2099-01-01T00:00:00+00:00",
        ))
        assert matcher.match(CarPreferences(), order=ORDER_RECENCY)[0].id == "car-100"

    def test_unknown_order(self, matcher):
        with pytest.raises(ValueError, match="Unknown ordering"):
            matcher.match(CarPreferences(), order="random")

    def test_no_matches_is_valid(self, matcher):
        assert matcher.match(CarPreferences(make="Ferrari")) == []


class TestVehicleMatchesPreferences:
    def test_budget_tolerance(self, store):
        car = store.get_vehicle("car-001")  # 18500
        prefs = CarPreferences(max_budget=17000)
        assert not vehicle_matches_preferences(car, prefs)
        assert vehicle_matches_preferences(car, prefs, budget_tolerance=1.1)

    def test_empty_preferences_match_everything(self, store):
        assert vehicle_matches_preferences(store.get_vehicle("car-004"), CarPreferences())


class TestDemandAnalysis:
    def test_counts_recent_make_preferences(self, matcher, store, make_lead, now):
        make_lead(preferences=CarPreferences(make="Bmw"))
        make_lead(preferences=CarPreferences(make="bmw"))
        make_lead(preferences=CarPreferences(make="Mercedes"))
        make_lead(preferences=CarPreferences(make="Toyota"), hours_ago=24 * 31)

        report = matcher.analyze_demand(now)

        assert report.demand_by_make == {"bmw": 2, "mercedes": 1}
        assert store.get_vehicle("car-001").demand_count == 2
        assert store.get_vehicle("car-003").demand_count == 1
        assert store.get_vehicle("car-005").demand_count == 0

    def test_rerun_writes_nothing_new(self, matcher, make_lead, now):
        make_lead(preferences=CarPreferences(make="Bmw"))
        matcher.analyze_demand(now)
        assert matcher.analyze_demand(now).vehicles_updated == 0


class TestSlowMovers:
    async def test_flags_and_prices(self, matcher, store, now):
        movers = {m.vehicle_id: m for m in await matcher.detect_slow_movers(now)}

        # car-003 (140d, demand 1), car-004 (200d), car-006 (95d)
        assert set(movers) == {"car-003", "car-004", "car-006"}
        assert movers["car-004"].discount_pct == 15
        assert movers["car-004"].suggested_price == 12665.0
        assert movers["car-003"].discount_pct == 10
        assert movers["car-006"].discount_pct == 5

        stored = store.get_vehicle("car-004")
        assert stored.pricing_signal == "discount"
        assert stored.price == 14900  # suggestion only, never applied
        suggestion = stored.automation_meta.pricing_suggestion
        assert suggestion["reason"] == "slow_moving_inventory"
        assert suggestion["discount_percentage"] == 15

    async def test_recent_stock_not_flagged(self, matcher, now):
        movers = await matcher.detect_slow_movers(now)
        assert "car-001" not in {m.vehicle_id for m in movers}

    async def test_targeted_offers_sent_once(self, matcher, store, gateway, make_lead, now):
        buyer = make_lead(
            intent=INTENT_PURCHASE,
            preferences=CarPreferences(make="Volkswagen", max_budget=14000, fuel="Diesel"),
        )
        make_lead(intent=INTENT_GENERAL, preferences=CarPreferences(make="Volkswagen"))
        converted = make_lead(intent=INTENT_PRICING, preferences=CarPreferences(make="Volkswagen"))
        store.update_lead(converted.id, status=STATUS_CONVERTED)

        first = await matcher.detect_slow_movers(now)
        await matcher.detect_slow_movers(now)

        golf = next(m for m in first if m.vehicle_id == "car-004")
        assert golf.offers_sent == 1
        offers = store.get_lead(buyer.id).meta.targeted_offers
        assert [o["vehicle_id"] for o in offers] == ["car-004"]
        assert len(gateway.messages_to(buyer.phone)) == 1
        assert "RESERVE BB-34-CD" in gateway.messages_to(buyer.phone)[0]


class TestNewArrivals:
    @pytest.fixture()
    def fresh_store(self, now):
        fresh = SqliteStore(":memory:")
        fresh.upsert_vehicles([
            Vehicle(
                id="car-old", plate="EE-11-FF", make="BMW", model="116d", price=15000,
                fuel="Diesel", status=ON_DISPLAY_STATUS,
                created_at=to_iso(now - timedelta(days=30)),
            ),
            Vehicle(
                id="car-new", plate="GG-22-HH", make="BMW", model="118i", price=16000,
                fuel="Gasolina", status=ON_DISPLAY_STATUS,
                created_at=to_iso(now - timedelta(hours=3)),
            ),
        ])
        yield fresh
        fresh.close()

    @staticmethod
    def _buyer(store, lead_id: str, make: str) -> Lead:
        return store.insert_lead(Lead(
            id=lead_id, phone=f"35191{lead_id[-4:]}", source=WHATSAPP_SOURCE,
            intent=INTENT_PURCHASE, meta=LeadMeta(car_preferences=CarPreferences(make=make)),
        ))

    async def test_notifies_matching_buyers_once(self, fresh_store, gateway, now):
        buyer = self._buyer(fresh_store, "lead-0001", "Bmw")
        self._buyer(fresh_store, "lead-0002", "Toyota")
        matcher = InventoryMatcher(fresh_store, gateway)

        assert await matcher.notify_new_arrivals(now) == 1
        assert await matcher.notify_new_arrivals(now) == 0
        offers = fresh_store.get_lead(buyer.id).meta.targeted_offers
        assert [(o["kind"], o["vehicle_id"]) for o in offers] == [("new_arrival", "car-new")]
        assert "118i" in gateway.messages_to(buyer.phone)[0]

    async def test_nothing_new(self, fresh_store, gateway, now):
        self._buyer(fresh_store, "lead-0001", "Bmw")
        later = now + timedelta(days=2)
        assert await InventoryMatcher(fresh_store, gateway).notify_new_arrivals(later) == 0
        assert gateway.sent == []


class TestPriceAlerts:
    def test_requires_budget(self, matcher, make_lead, now):
        lead = make_lead()
        with pytest.raises(ValueError, match="budget"):
            matcher.setup_price_alert(lead, CarPreferences(make="Bmw"), now=now)

    def test_identical_alert_is_reused(self, matcher, store, make_lead, now):
        lead = make_lead()
        prefs = CarPreferences(make="Bmw", max_budget=20000)
        first = matcher.setup_price_alert(lead, prefs, now=now)
        second = matcher.setup_price_alert(lead, prefs, now=now)
        assert first["id"] == second["id"]
        assert len(store.get_lead(lead.id).meta.price_alerts) == 1

    async def test_alerts_converge(self, matcher, store, gateway, make_lead, now):
        lead = make_lead()
        matcher.setup_price_alert(lead, CarPreferences(make="Bmw", max_budget=20000), now=now)

        assert await matcher.check_price_alerts(now) == 1
        assert await matcher.check_price_alerts(now) == 0
        alert = store.get_lead(lead.id).meta.price_alerts[0]
        assert alert["notified_vehicle_ids"] == ["car-001"]
        assert "Price Alert" in gateway.messages_to(lead.phone)[0]

        store.update_vehicle("car-002", price=19900)
        assert await matcher.check_price_alerts(now) == 1
