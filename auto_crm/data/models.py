"""Typed lead and vehicle records.

The stores keep ``meta`` and ``automation_meta`` as JSON text.  These
dataclasses are the validated view of those blobs: parsing is tolerant
(malformed blobs become empty records) and unknown keys survive a round trip
through ``extra``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any, Mapping

from auto_crm.constants import (
    INTENT_GENERAL,
    JOURNEY_STAGES,
    STAGE_INITIAL_INTEREST,
    STATUS_NEW,
    WHATSAPP_SOURCE,
)
from auto_crm.normalization import parse_int, parse_iso_datetime, parse_price

logger = logging.getLogger(__name__)

RESERVATION_ACTIVE = "active"
RESERVATION_EXPIRED = "expired"
RESERVATION_CANCELLED = "cancelled"


def load_json_object(raw: Any) -> dict[str, Any]:
    """Decode a stored JSON blob into a dict; anything malformed becomes ``{}``."""
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, (str, bytes)) and raw:
        try:
            parsed = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding malformed JSON blob (%d bytes)", len(raw))
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def _opt_str(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return value if isinstance(value, str) else str(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes", "y"}
    return bool(value)


def _dict_list(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [dict(item) for item in value if isinstance(item, Mapping)]


# ── Preferences ─────────────────────────────────────────────────────

# Attribute name -> stored blob key.
_PREFERENCE_KEYS: dict[str, str] = {
    "make": "make",
    "max_budget": "maxBudget",
    "fuel": "fuel",
    "transmission": "transmission",
    "body_type": "type",
}


@dataclass
class CarPreferences:
    """Structured car preferences extracted from free text."""

    make: str | None = None
    max_budget: int | None = None
    fuel: str | None = None
    transmission: str | None = None
    body_type: str | None = None

    def populated_count(self) -> int:
        return sum(1 for name in _PREFERENCE_KEYS if getattr(self, name) not in (None, ""))

    def is_empty(self) -> bool:
        return self.populated_count() == 0

    def merge(self, other: CarPreferences) -> CarPreferences:
        """Return a copy where every populated field of ``other`` overwrites ours."""
        updates = {
            name: getattr(other, name)
            for name in _PREFERENCE_KEYS
            if getattr(other, name) not in (None, "")
        }
        return replace(self, **updates)

    def to_dict(self) -> dict[str, Any]:
        return {
            key: getattr(self, name)
            for name, key in _PREFERENCE_KEYS.items()
            if getattr(self, name) not in (None, "")
        }

    @classmethod
    def from_dict(cls, data: Any) -> CarPreferences:
        if not isinstance(data, Mapping):
            return cls()
        budget = parse_int(data.get("maxBudget", data.get("max_budget")))
        return cls(
            make=_opt_str(data.get("make")),
            max_budget=budget if budget and budget > 0 else None,
            fuel=_opt_str(data.get("fuel")),
            transmission=_opt_str(data.get("transmission")),
            body_type=_opt_str(data.get("type", data.get("body_type"))),
        )


# ── Interactions / reservations ─────────────────────────────────────


@dataclass
class Interaction:
    type: str
    content: str
    timestamp: str
    stage: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "content": self.content,
            "timestamp": self.timestamp,
            "stage": self.stage,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Interaction | None:
        if not isinstance(data, Mapping):
            return None
        return cls(
            type=_as_str(data.get("type"), "message"),
            content=_as_str(data.get("content")),
            timestamp=_as_str(data.get("timestamp")),
            stage=_as_str(data.get("stage"), STAGE_INITIAL_INTEREST),
        )


@dataclass
class Reservation:
    lead_id: str
    vehicle_id: str
    reserved_until: str
    status: str = RESERVATION_ACTIVE
    created_at: str = ""
    id: str = ""

    def is_active(self, now: datetime) -> bool:
        if self.status != RESERVATION_ACTIVE:
            return False
        until = parse_iso_datetime(self.reserved_until)
        return until is not None and until > now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "lead_id": self.lead_id,
            "vehicle_id": self.vehicle_id,
            "reserved_until": self.reserved_until,
            "status": self.status,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Reservation | None:
        if not isinstance(data, Mapping):
            return None
        vehicle_id = _as_str(data.get("vehicle_id") or data.get("car_id"))
        if not vehicle_id:
            return None
        return cls(
            id=_as_str(data.get("id")),
            lead_id=_as_str(data.get("lead_id")),
            vehicle_id=vehicle_id,
            reserved_until=_as_str(data.get("reserved_until")),
            status=_as_str(data.get("status"), RESERVATION_ACTIVE),
            created_at=_as_str(data.get("created_at") or data.get("reserved_at")),
        )


# ── Lead ────────────────────────────────────────────────────────────


@dataclass
class LeadMeta:
    journey_stage: str = STAGE_INITIAL_INTEREST
    interactions: list[Interaction] = field(default_factory=list)
    car_preferences: CarPreferences = field(default_factory=CarPreferences)
    lead_score: int | None = None
    score_calculated_at: str = ""
    automated_follow_ups: list[str] = field(default_factory=list)
    car_reservations: list[Reservation] = field(default_factory=list)
    first_message: str = ""
    last_message: str = ""
    message_count: int = 1
    initial_contact_date: str = ""
    last_contact_date: str = ""
    last_interaction: str = ""
    specific_car_interest: bool = False
    recommended_cars: list[dict[str, Any]] = field(default_factory=list)
    targeted_offers: list[dict[str, Any]] = field(default_factory=list)
    price_alerts: list[dict[str, Any]] = field(default_factory=list)
    follow_up_sequence: list[dict[str, Any]] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    def has_fired(self, tag: str) -> bool:
        return tag in self.automated_follow_ups

    def mark_fired(self, tag: str) -> None:
        if tag not in self.automated_follow_ups:
            self.automated_follow_ups.append(tag)

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "journey_stage": self.journey_stage,
            "interactions": [i.to_dict() for i in self.interactions],
            "car_preferences": self.car_preferences.to_dict(),
            "lead_score": self.lead_score,
            "score_calculated_at": self.score_calculated_at,
            "automated_follow_ups": list(self.automated_follow_ups),
            "car_reservations": [r.to_dict() for r in self.car_reservations],
            "first_message": self.first_message,
            "last_message": self.last_message,
            "message_count": self.message_count,
            "initial_contact_date": self.initial_contact_date,
            "last_contact_date": self.last_contact_date,
            "last_interaction": self.last_interaction,
            "specific_car_interest": self.specific_car_interest,
            "recommended_cars": list(self.recommended_cars),
            "targeted_offers": list(self.targeted_offers),
            "price_alerts": list(self.price_alerts),
            "follow_up_sequence": list(self.follow_up_sequence),
        })
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    @classmethod
    def from_dict(cls, data: Any) -> LeadMeta:
        raw = dict(data) if isinstance(data, Mapping) else {}
        known = {f.name for f in fields(cls)} | {"last_whatsapp_message"}
        extra = {k: v for k, v in raw.items() if k not in known}

        stage = _as_str(raw.get("journey_stage"))
        if stage not in JOURNEY_STAGES:
            stage = STAGE_INITIAL_INTEREST

        score = parse_int(raw.get("lead_score"))
        if score is not None:
            score = max(0, min(100, score))

        count = parse_int(raw.get("message_count"))

        interactions = [
            i for i in (Interaction.from_dict(d) for d in raw.get("interactions") or [])
            if i is not None
        ] if isinstance(raw.get("interactions"), list) else []
        reservations = [
            r for r in (Reservation.from_dict(d) for d in raw.get("car_reservations") or [])
            if r is not None
        ] if isinstance(raw.get("car_reservations"), list) else []
        follow_ups = raw.get("automated_follow_ups")

        return cls(
            journey_stage=stage,
            interactions=interactions,
            car_preferences=CarPreferences.from_dict(raw.get("car_preferences")),
            lead_score=score,
            score_calculated_at=_as_str(raw.get("score_calculated_at")),
            automated_follow_ups=(
                [str(t) for t in follow_ups] if isinstance(follow_ups, list) else []
            ),
            car_reservations=reservations,
            first_message=_as_str(raw.get("first_message")),
            last_message=_as_str(
                raw.get("last_message") or raw.get("last_whatsapp_message")
            ),
            message_count=count if count and count > 0 else 1,
            initial_contact_date=_as_str(raw.get("initial_contact_date")),
            last_contact_date=_as_str(raw.get("last_contact_date")),
            last_interaction=_as_str(raw.get("last_interaction")),
            specific_car_interest=_as_bool(raw.get("specific_car_interest")),
            recommended_cars=_dict_list(raw.get("recommended_cars")),
            targeted_offers=_dict_list(raw.get("targeted_offers")),
            price_alerts=_dict_list(raw.get("price_alerts")),
            follow_up_sequence=_dict_list(raw.get("follow_up_sequence")),
            extra=extra,
        )

    @classmethod
    def from_json(cls, raw: Any) -> LeadMeta:
        return cls.from_dict(load_json_object(raw))


@dataclass
class Lead:
    id: str
    phone: str
    normalized_phone: str = ""
    name: str | None = None
    email: str | None = None
    source: str = WHATSAPP_SOURCE
    intent: str = INTENT_GENERAL
    status: str = STATUS_NEW
    status_reason: str = ""
    status_at: str = ""
    created_at: str = ""
    updated_at: str = ""
    meta: LeadMeta = field(default_factory=LeadMeta)

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "phone": self.phone,
            "normalized_phone": self.normalized_phone,
            "name": self.name,
            "email": self.email,
            "source": self.source,
            "intent": self.intent,
            "status": self.status,
            "status_reason": self.status_reason,
            "status_at": self.status_at,
            "meta": self.meta.to_json(),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Lead:
        return cls(
            id=_as_str(row.get("id")),
            phone=_as_str(row.get("phone")),
            normalized_phone=_as_str(row.get("normalized_phone")),
            name=_opt_str(row.get("name")),
            email=_opt_str(row.get("email")),
            source=_as_str(row.get("source"), WHATSAPP_SOURCE),
            intent=_as_str(row.get("intent")) or INTENT_GENERAL,
            status=_as_str(row.get("status")) or STATUS_NEW,
            status_reason=_as_str(
                row.get("status_reason") or row.get("automation_status_reason")
            ),
            status_at=_as_str(row.get("status_at") or row.get("automation_status_at")),
            created_at=_as_str(row.get("created_at")),
            updated_at=_as_str(row.get("updated_at")),
            meta=LeadMeta.from_json(row.get("meta")),
        )


# ── Vehicle ─────────────────────────────────────────────────────────


@dataclass
class VehicleAutomationMeta:
    pricing_suggestion: dict[str, Any] | None = None
    reservation: Reservation | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        if self.pricing_suggestion is not None:
            data["pricing_suggestion"] = dict(self.pricing_suggestion)
        if self.reservation is not None:
            data["reservation"] = self.reservation.to_dict()
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, raw: Any) -> VehicleAutomationMeta:
        data = load_json_object(raw)
        suggestion = data.pop("pricing_suggestion", None)
        reservation = Reservation.from_dict(data.pop("reservation", None))
        return cls(
            pricing_suggestion=dict(suggestion) if isinstance(suggestion, Mapping) else None,
            reservation=reservation,
            extra=data,
        )


@dataclass
class Vehicle:
    id: str
    plate: str
    make: str
    model: str
    price: float
    version: str = ""
    fuel: str = ""
    transmission: str = ""
    body_type: str = ""
    color: str = ""
    mileage: int = 0
    status: str = ""
    is_active: bool = True
    days_in_stock: int = 0
    demand_count: int = 0
    pricing_signal: str = ""
    available_to: str = ""
    automation_meta: VehicleAutomationMeta = field(default_factory=VehicleAutomationMeta)
    created_at: str = ""
    updated_at: str = ""

    @property
    def display_name(self) -> str:
        name = f"{self.make} {self.model}".strip()
        return f"{name} {self.version}".strip() if self.version else name

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "make": self.make,
            "model": self.model,
            "price": self.price,
            "plate": self.plate,
        }

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "plate": self.plate,
            "make": self.make,
            "model": self.model,
            "version": self.version,
            "price": self.price,
            "fuel": self.fuel,
            "transmission": self.transmission,
            "body_type": self.body_type,
            "color": self.color,
            "mileage": self.mileage,
            "status": self.status,
            "is_active": self.is_active,
            "days_in_stock": self.days_in_stock,
            "demand_count": self.demand_count,
            "pricing_signal": self.pricing_signal,
            "available_to": self.available_to,
            "automation_meta": self.automation_meta.to_json(),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Vehicle:
        return cls(
            id=_as_str(row.get("id")),
            plate=_as_str(row.get("plate")),
            make=_as_str(row.get("make")),
            model=_as_str(row.get("model")),
            version=_as_str(row.get("version")),
            price=parse_price(row.get("price")) or 0.0,
            fuel=_as_str(row.get("fuel")),
            transmission=_as_str(row.get("transmission")),
            body_type=_as_str(row.get("body_type")),
            color=_as_str(row.get("color")),
            mileage=parse_int(row.get("mileage", row.get("KM"))) or 0,
            status=_as_str(row.get("status")),
            is_active=_as_bool(row.get("is_active")),
            days_in_stock=parse_int(row.get("days_in_stock")) or 0,
            demand_count=parse_int(row.get("demand_count")) or 0,
            pricing_signal=_as_str(row.get("pricing_signal")),
            available_to=_as_str(row.get("available_to")),
            automation_meta=VehicleAutomationMeta.from_json(row.get("automation_meta")),
            created_at=_as_str(row.get("created_at")),
            updated_at=_as_str(row.get("updated_at")),
        )
