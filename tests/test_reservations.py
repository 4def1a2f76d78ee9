"""Tests for WhatsApp vehicle reservations."""

from __future__ import annotations

from datetime import timedelta

import pytest

from auto_crm.data.models import RESERVATION_ACTIVE, RESERVATION_EXPIRED
from auto_crm.engine.reservations import (
    ALREADY_RESERVED,
    ALREADY_YOURS,
    NO_VEHICLE,
    RESERVED,
    UNAVAILABLE,
    ReservationService,
)
from auto_crm.normalization import to_iso


@pytest.fixture()
def service(store, gateway) -> ReservationService:
    return ReservationService(store, gateway)


def _recommended(*ids: str) -> list[dict[str, str]]:
    return [{"id": vid} for vid in ids]


class TestResolveVehicle:
    def test_by_plate_case_insensitive(self, service, make_lead):
        vehicle = service.resolve_vehicle(make_lead(), "please reserve aa-12-bc")
        assert vehicle.id == "car-001"

    def test_by_recommendation_number(self, service, make_lead):
        lead = make_lead(recommended_cars=_recommended("car-005", "car-003"))
        assert service.resolve_vehicle(lead, "reserve 2").id == "car-003"

    def test_number_out_of_range(self, service, make_lead):
        lead = make_lead(recommended_cars=_recommended("car-005"))
        assert service.resolve_vehicle(lead, "reserve 3") is None

    def test_number_without_recommendations(self, service, make_lead):
        assert service.resolve_vehicle(make_lead(), "reserve 1") is None

    @pytest.mark.parametrize("text", ["can you hold it for 2 days?", "I have 2 kids, book a visit"])
    def test_loose_digits_are_not_choices(self, service, make_lead, text: str):
        lead = make_lead(recommended_cars=_recommended("car-005", "car-003"))
        assert service.resolve_vehicle(lead, text) is None

    @pytest.mark.parametrize("text", ["book #2", "Hold number 2", "reserve nº2"])
    def test_choice_forms(self, service, make_lead, text: str):
        lead = make_lead(recommended_cars=_recommended("car-005", "car-003"))
        assert service.resolve_vehicle(lead, text).id == "car-003"


class TestReserve:
    def test_reserves_for_a_day(self, service, store, make_lead, now):
        lead = make_lead()
        outcome = service.reserve(lead, store.get_vehicle("car-005"), now=now)

        assert outcome.status == RESERVED
        assert outcome.ok
        vehicle = store.get_vehicle("car-005")
        assert vehicle.available_to == lead.id
        hold = vehicle.automation_meta.reservation
        assert hold.lead_id == lead.id
        assert hold.reserved_until == to_iso(now + timedelta(hours=24))
        stored = store.get_lead(lead.id)
        assert stored.status_reason == "car_reserved"
        assert stored.meta.specific_car_interest
        assert [r.vehicle_id for r in stored.meta.car_reservations] == ["car-005"]

    def test_same_lead_again(self, service, store, make_lead, now):
        lead = make_lead()
        service.reserve(lead, store.get_vehicle("car-005"), now=now)
        outcome = service.reserve(lead, store.get_vehicle("car-005"), now=now + timedelta(hours=1))
        assert outcome.status == ALREADY_YOURS
        assert outcome.ok
        assert len(store.get_lead(lead.id).meta.car_reservations) == 1

    def test_held_by_someone_else(self, service, store, make_lead, now):
        first, second = make_lead(), make_lead()
        service.reserve(first, store.get_vehicle("car-005"), now=now)
        outcome = service.reserve(second, store.get_vehicle("car-005"), now=now)
        assert outcome.status == ALREADY_RESERVED
        assert not outcome.ok
        assert store.get_vehicle("car-005").available_to == first.id

    def test_expired_hold_is_overwritten(self, service, store, make_lead, now):
        first, second = make_lead(), make_lead()
        service.reserve(first, store.get_vehicle("car-005"), now=now)
        outcome = service.reserve(second, store.get_vehicle("car-005"), now=now + timedelta(hours=25))
        assert outcome.status == RESERVED
        assert store.get_vehicle("car-005").automation_meta.reservation.lead_id == second.id

    def test_lead_history_marks_expired_holds(self, service, store, make_lead, now):
        lead = make_lead()
        service.reserve(lead, store.get_vehicle("car-005"), now=now)
        lead = store.get_lead(lead.id)
        service.reserve(lead, store.get_vehicle("car-001"), now=now + timedelta(days=2))
        history = store.get_lead(lead.id).meta.car_reservations
        assert [r.status for r in history] == [RESERVATION_EXPIRED, RESERVATION_ACTIVE]

    @pytest.mark.parametrize("vehicle_id", ["car-007", "car-008"])
    def test_not_on_display(self, service, store, make_lead, now, vehicle_id: str):
        outcome = service.reserve(make_lead(), store.get_vehicle(vehicle_id), now=now)
        assert outcome.status == UNAVAILABLE
        assert store.get_vehicle(vehicle_id).automation_meta.reservation is None


class TestHandleRequest:
    async def test_confirms(self, service, gateway, make_lead, now):
        lead = make_lead(recommended_cars=_recommended("car-002"))
        outcome = await service.handle_request(lead, "reserve 1", now)
        assert outcome.status == RESERVED
        assert "Car Reserved Successfully" in gateway.messages_to(lead.phone)[0]
        assert outcome.to_dict()["vehicle"]["id"] == "car-002"

    async def test_unresolved_choice_gets_help(self, service, gateway, make_lead, now):
        lead = make_lead(recommended_cars=_recommended("car-002"))
        outcome = await service.handle_request(lead, "reserve 3", now)
        assert outcome.status == NO_VEHICLE
        assert outcome.to_dict()["vehicle"] is None
        assert "number of one of my recommendations" in gateway.messages_to(lead.phone)[0]

    async def test_unknown_plate_gets_help(self, service, gateway, make_lead, now):
        lead = make_lead()
        await service.handle_request(lead, "reserve ZZ-99-ZZ", now)
        assert "number of one of my recommendations" in gateway.messages_to(lead.phone)[0]

    async def test_no_car_named_stays_silent(self, service, gateway, make_lead, now):
        lead = make_lead()
        outcome = await service.handle_request(lead, "can I book a visit?", now)
        assert outcome.status == NO_VEHICLE
        assert gateway.messages_to(lead.phone) == []

    async def test_reports_unavailable(self, service, store, gateway, make_lead, now):
        holder, lead = make_lead(), make_lead()
        service.reserve(holder, store.get_vehicle("car-001"), now=now)
        await service.handle_request(lead, "reserve AA-12-BC", now)
        assert "already reserved" in gateway.messages_to(lead.phone)[0]
