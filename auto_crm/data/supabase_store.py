"""Supabase (hosted Postgres) implementation of the CRM store protocols.

Tables mirror the SQLite schema: ``leads`` and ``cars`` with JSON text
``meta`` / ``automation_meta`` columns.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Sequence

from postgrest.exceptions import APIError
from supabase import Client, create_client

from auto_crm.config import CRMConfig
from auto_crm.data.models import Lead, Vehicle
from auto_crm.data.store import (
    LEAD_COLUMNS,
    LEAD_ORDER_COLUMNS,
    RELEVANCE_ORDER,
    VEHICLE_COLUMNS,
    VEHICLE_ORDER_COLUMNS,
    StoreError,
    new_lead_id,
    serialize_fields,
    validate_order,
)
from auto_crm.normalization import normalize_phone, to_iso

logger = logging.getLogger(__name__)


class SupabaseStore:
    """Lead + vehicle store backed by a supabase ``Client``."""

    def __init__(
        self,
        client: Client,
        *,
        leads_table: str = "leads",
        vehicles_table: str = "cars",
    ) -> None:
        self.client = client
        self.leads_table = leads_table
        self.vehicles_table = vehicles_table

    @classmethod
    def from_config(cls, config: CRMConfig) -> SupabaseStore:
        if not config.supabase_url or not config.supabase_key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set "
                "for the supabase store backend."
            )
        return cls(create_client(config.supabase_url, config.supabase_key))

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except APIError as exc:
            logger.error("Supabase %s failed: %s", operation, exc)
            raise StoreError(f"{operation} failed: {exc}") from exc

    @staticmethod
    def _first(data: Any) -> dict[str, Any] | None:
        if isinstance(data, list) and data:
            return data[0]
        return None

    # ── Leads ──────────────────────────────────────────────────────

    def get_lead(self, lead_id: str) -> Lead | None:
        with self._guard("get_lead"):
            resp = (
                self.client.table(self.leads_table)
                .select("*")
                .eq("id", lead_id)
                .limit(1)
                .execute()
            )
        row = self._first(resp.data)
        return Lead.from_row(row) if row else None

    def find_lead_by_phone(self, phone: str) -> Lead | None:
        normalized = normalize_phone(phone)
        with self._guard("find_lead_by_phone"):
            resp = (
                self.client.table(self.leads_table)
                .select("*")
                .or_(f"normalized_phone.eq.{normalized},phone.eq.{phone}")
                .order("created_at")
                .limit(1)
                .execute()
            )
        row = self._first(resp.data)
        return Lead.from_row(row) if row else None

    def insert_lead(self, lead: Lead) -> Lead:
        now = self._now()
        lead.id = lead.id or new_lead_id()
        lead.normalized_phone = lead.normalized_phone or normalize_phone(lead.phone)
        lead.created_at = lead.created_at or now
        lead.updated_at = now
        with self._guard("insert_lead"):
            resp = self.client.table(self.leads_table).insert(lead.to_row()).execute()
        row = self._first(resp.data)
        return Lead.from_row(row) if row else lead

    def update_lead(self, lead_id: str, **fields: Any) -> None:
        encoded = serialize_fields(
            fields,
            allowed=[c for c in LEAD_COLUMNS if c not in ("id", "created_at")],
        )
        encoded.setdefault("updated_at", self._now())
        with self._guard("update_lead"):
            self.client.table(self.leads_table).update(encoded).eq("id", lead_id).execute()

    def scan_leads(
        self,
        *,
        source: str | None = None,
        statuses: Sequence[str] | None = None,
        exclude_status: str | None = None,
        intents: Sequence[str] | None = None,
        created_since: datetime | None = None,
        order_by: str = "created_at",
        descending: bool = True,
        limit: int | None = None,
    ) -> list[Lead]:
        validate_order([(order_by, descending)], LEAD_ORDER_COLUMNS)
        query = self.client.table(self.leads_table).select("*")
        if source:
            query = query.eq("source", source)
        if statuses:
            query = query.in_("status", list(statuses))
        if exclude_status:
            query = query.neq("status", exclude_status)
        if intents:
            query = query.in_("intent", list(intents))
        if created_since is not None:
            query = query.gte("created_at", to_iso(created_since))
        query = query.order(order_by, desc=descending).order("id")
        if limit is not None:
            query = query.limit(max(0, int(limit)))
        with self._guard("scan_leads"):
            resp = query.execute()
        return [Lead.from_row(r) for r in resp.data or []]

    def count_leads(self) -> int:
        with self._guard("count_leads"):
            resp = (
                self.client.table(self.leads_table)
                .select("id", count="exact")
                .limit(1)
                .execute()
            )
        return resp.count or 0

    # ── Vehicles ───────────────────────────────────────────────────

    def _vehicle_row(self, vehicle: Vehicle, *, now: str) -> dict[str, Any]:
        row = vehicle.to_row()
        row["created_at"] = row["created_at"] or now
        row["updated_at"] = now
        return row

    def get_vehicle(self, vehicle_id: str) -> Vehicle | None:
        with self._guard("get_vehicle"):
            resp = (
                self.client.table(self.vehicles_table)
                .select("*")
                .eq("id", vehicle_id)
                .limit(1)
                .execute()
            )
        row = self._first(resp.data)
        return Vehicle.from_row(row) if row else None

    def get_vehicle_by_plate(self, plate: str) -> Vehicle | None:
        with self._guard("get_vehicle_by_plate"):
            resp = (
                self.client.table(self.vehicles_table)
                .select("*")
                .ilike("plate", plate.strip())
                .limit(1)
                .execute()
            )
        row = self._first(resp.data)
        return Vehicle.from_row(row) if row else None

    def upsert_vehicle(self, vehicle: Vehicle) -> None:
        self.upsert_vehicles([vehicle])

    def upsert_vehicles(self, vehicles: Iterable[Vehicle]) -> None:
        now = self._now()
        rows = [self._vehicle_row(v, now=now) for v in vehicles]
        if not rows:
            return
        with self._guard("upsert_vehicles"):
            self.client.table(self.vehicles_table).upsert(rows).execute()

    def update_vehicle(self, vehicle_id: str, **fields: Any) -> None:
        encoded = serialize_fields(
            fields,
            allowed=[c for c in VEHICLE_COLUMNS if c not in ("id", "created_at")],
        )
        encoded.setdefault("updated_at", self._now())
        with self._guard("update_vehicle"):
            self.client.table(self.vehicles_table).update(encoded).eq("id", vehicle_id).execute()

    def scan_vehicles(
        self,
        *,
        active_only: bool = True,
        status: str | None = None,
        make_like: str | None = None,
        max_price: float | None = None,
        fuel: str | None = None,
        transmission: str | None = None,
        min_days_in_stock: int | None = None,
        max_demand: int | None = None,
        created_since: datetime | None = None,
        order_by: Sequence[tuple[str, bool]] = RELEVANCE_ORDER,
        limit: int | None = None,
    ) -> list[Vehicle]:
        pairs = validate_order(order_by, VEHICLE_ORDER_COLUMNS)
        query = self.client.table(self.vehicles_table).select("*")
        if active_only:
            query = query.eq("is_active", True)
        if status:
            query = query.eq("status", status)
        if make_like:
            query = query.ilike("make", f"%{make_like}%")
        if max_price is not None:
            query = query.lte("price", max_price)
        if fuel:
            query = query.eq("fuel", fuel)
        if transmission:
            query = query.eq("transmission", transmission)
        if min_days_in_stock is not None:
            query = query.gte("days_in_stock", min_days_in_stock)
        if max_demand is not None:
            query = query.lte("demand_count", max_demand)
        if created_since is not None:
            query = query.gte("created_at", to_iso(created_since))
        for column, desc in pairs:
            query = query.order(column, desc=desc)
        if limit is not None:
            query = query.limit(max(0, int(limit)))
        with self._guard("scan_vehicles"):
            resp = query.execute()
        return [Vehicle.from_row(r) for r in resp.data or []]

    def count_vehicles(self) -> int:
        with self._guard("count_vehicles"):
            resp = (
                self.client.table(self.vehicles_table)
                .select("id", count="exact")
                .limit(1)
                .execute()
            )
        return resp.count or 0
