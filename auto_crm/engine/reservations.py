"""24-hour vehicle holds requested over WhatsApp.

A reservation lives in two places: the vehicle's ``automation_meta`` (the
authoritative hold, checked before reserving) and the lead's
``car_reservations`` history.  Holds expire lazily: an expired hold is simply
ignored and overwritten by the next request.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from auto_crm.constants import ON_DISPLAY_STATUS, PLATE_RE
from auto_crm.data.models import (
    RESERVATION_ACTIVE,
    RESERVATION_EXPIRED,
    Lead,
    Reservation,
    Vehicle,
)
from auto_crm.data.store import CRMStore
from auto_crm.messages import (
    reservation_confirmed_message,
    reservation_help_message,
    reservation_unavailable_message,
)
from auto_crm.messaging import MessagingGateway, send_message
from auto_crm.normalization import to_iso, utc_now

logger = logging.getLogger(__name__)

RESERVATION_HOURS = 24

RESERVED = "reserved"
ALREADY_YOURS = "already_yours"
ALREADY_RESERVED = "already_reserved"
UNAVAILABLE = "unavailable"
NO_VEHICLE = "no_vehicle"

# "reserve 2", "book #1", "hold number 3"
_CHOICE_RE = re.compile(
    r"\b(?:reserve|book|hold)\s+(?:#\s*|number\s+|n[ºo.]?\s*)?([1-9])\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ReservationOutcome:
    status: str
    vehicle: Vehicle | None = None
    reservation: Reservation | None = None

    @property
    def ok(self) -> bool:
        return self.status in (RESERVED, ALREADY_YOURS)

    def to_dict(self) -> dict[str, object]:
        return {
            "status": self.status,
            "vehicle": self.vehicle.summary() if self.vehicle else None,
            "reservation": self.reservation.to_dict() if self.reservation else None,
        }


class ReservationService:
    def __init__(self, store: CRMStore, gateway: MessagingGateway) -> None:
        self.store = store
        self.gateway = gateway

    def resolve_vehicle(self, lead: Lead, text: str) -> Vehicle | None:
        """Find the car a message refers to: a plate, or a recommendation number."""
        plate = PLATE_RE.search(text or "")
        if plate:
            return self.store.get_vehicle_by_plate(plate.group(1))

        choice = _CHOICE_RE.search(text or "")
        recommended = lead.meta.recommended_cars
        if choice and recommended:
            index = int(choice.group(1)) - 1
            if index < len(recommended):
                vehicle_id = recommended[index].get("id")
                if vehicle_id:
                    return self.store.get_vehicle(str(vehicle_id))
        return None

    def reserve(
        self,
        lead: Lead,
        vehicle: Vehicle,
        *,
        now: datetime | None = None,
        hours: int = RESERVATION_HOURS,
    ) -> ReservationOutcome:
        now = now or utc_now()
        if not vehicle.is_active or vehicle.status != ON_DISPLAY_STATUS:
            return ReservationOutcome(UNAVAILABLE, vehicle)

        current = vehicle.automation_meta.reservation
        if current is not None and current.is_active(now):
            if current.lead_id == lead.id:
                return ReservationOutcome(ALREADY_YOURS, vehicle, current)
            return ReservationOutcome(ALREADY_RESERVED, vehicle, current)

        reservation = Reservation(
            id=f"res-{uuid.uuid4().hex[:8]}",
            lead_id=lead.id,
            vehicle_id=vehicle.id,
            reserved_until=to_iso(now + timedelta(hours=hours)),
            status=RESERVATION_ACTIVE,
            created_at=to_iso(now),
        )
        vehicle.automation_meta.reservation = reservation
        vehicle.available_to = lead.id
        self.store.update_vehicle(
            vehicle.id,
            automation_meta=vehicle.automation_meta,
            available_to=lead.id,
        )

        for previous in lead.meta.car_reservations:
            if previous.status == RESERVATION_ACTIVE and not previous.is_active(now):
                previous.status = RESERVATION_EXPIRED
        lead.meta.car_reservations.append(reservation)
        lead.meta.specific_car_interest = True
        self.store.update_lead(
            lead.id,
            meta=lead.meta,
            status_reason="car_reserved",
            status_at=to_iso(now),
        )
        logger.info("Lead %s reserved %s until %s", lead.id, vehicle.plate, reservation.reserved_until)
        return ReservationOutcome(RESERVED, vehicle, reservation)

    async def handle_request(
        self,
        lead: Lead,
        text: str,
        now: datetime | None = None,
    ) -> ReservationOutcome:
        """Resolve, reserve and reply to a reservation message."""
        now = now or utc_now()
        vehicle = self.resolve_vehicle(lead, text)
        if vehicle is None:
            # Only a car the lead named but we could not find gets a reply.
            if PLATE_RE.search(text or "") or _CHOICE_RE.search(text or ""):
                await send_message(self.gateway, lead.phone, reservation_help_message())
            return ReservationOutcome(NO_VEHICLE)

        outcome = self.reserve(lead, vehicle, now=now)
        if outcome.ok and outcome.reservation is not None:
            await send_message(
                self.gateway,
                lead.phone,
                reservation_confirmed_message(
                    vehicle, outcome.reservation.reserved_until, RESERVATION_HOURS,
                ),
            )
        else:
            await send_message(self.gateway, lead.phone, reservation_unavailable_message(vehicle))
        return outcome
