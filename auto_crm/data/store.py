"""LeadStore/VehicleStore protocols and the SQLite implementation."""

from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import (
    Any,
    Iterable,
    Iterator,
    Protocol,
    Sequence,
    runtime_checkable,
)

from auto_crm.data.models import Lead, LeadMeta, Vehicle, VehicleAutomationMeta
from auto_crm.normalization import normalize_phone, to_iso

logger = logging.getLogger(__name__)

LEAD_COLUMNS = (
    "id", "phone", "normalized_phone", "name", "email", "source", "intent",
    "status", "status_reason", "status_at", "meta", "created_at", "updated_at",
)
VEHICLE_COLUMNS = (
    "id", "plate", "make", "model", "version", "price", "fuel", "transmission",
    "body_type", "color", "mileage", "status", "is_active", "days_in_stock",
    "demand_count", "pricing_signal", "available_to", "automation_meta",
    "created_at", "updated_at",
)
LEAD_SELECT = ", ".join(LEAD_COLUMNS)
VEHICLE_SELECT = ", ".join(VEHICLE_COLUMNS)

_VEHICLE_UPDATE_COLS = [c for c in VEHICLE_COLUMNS if c not in ("id", "created_at")]
VEHICLE_UPSERT_SQL = (
    "INSERT INTO vehicles ("
    + VEHICLE_SELECT
    + ") VALUES ("
    + ", ".join(["?"] * len(VEHICLE_COLUMNS))
    + ") ON CONFLICT(id) DO UPDATE SET "
    + ", ".join(f"{c}=excluded.{c}" for c in _VEHICLE_UPDATE_COLS)
)

LEAD_ORDER_COLUMNS = frozenset({"created_at", "updated_at", "status_at"})
VEHICLE_ORDER_COLUMNS = frozenset({
    "demand_count", "days_in_stock", "created_at", "price", "mileage", "id",
})

# (column, descending) pairs; id last so ties never depend on scan order.
RELEVANCE_ORDER: tuple[tuple[str, bool], ...] = (
    ("demand_count", True),
    ("days_in_stock", False),
    ("id", False),
)
RECENCY_ORDER: tuple[tuple[str, bool], ...] = (
    ("created_at", True),
    ("id", False),
)


class StoreError(RuntimeError):
    """Raised when a store backend fails to read or write."""


# ── Protocols ───────────────────────────────────────────────────────


@runtime_checkable
class LeadStore(Protocol):
    """Minimal interface for lead persistence."""

    def get_lead(self, lead_id: str) -> Lead | None: ...
    def find_lead_by_phone(self, phone: str) -> Lead | None: ...
    def insert_lead(self, lead: Lead) -> Lead: ...
    def update_lead(self, lead_id: str, **fields: Any) -> None: ...
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
    ) -> list[Lead]: ...
    def count_leads(self) -> int: ...


@runtime_checkable
class VehicleStore(Protocol):
    """Minimal interface for vehicle inventory persistence."""

    def get_vehicle(self, vehicle_id: str) -> Vehicle | None: ...
    def get_vehicle_by_plate(self, plate: str) -> Vehicle | None: ...
    def upsert_vehicle(self, vehicle: Vehicle) -> None: ...
    def upsert_vehicles(self, vehicles: Iterable[Vehicle]) -> None: ...
    def update_vehicle(self, vehicle_id: str, **fields: Any) -> None: ...
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
    ) -> list[Vehicle]: ...
    def count_vehicles(self) -> int: ...


@runtime_checkable
class CRMStore(LeadStore, VehicleStore, Protocol):
    """Both halves of the CRM data model behind one backend."""


# ── Shared field serialization ─────────────────────────────────────


def new_lead_id() -> str:
    return f"lead-{uuid.uuid4().hex[:10]}"


def serialize_fields(
    fields: dict[str, Any],
    *,
    allowed: Sequence[str],
    bool_as_int: bool = False,
) -> dict[str, Any]:
    """Validate column names and encode typed values for storage."""
    unknown = sorted(set(fields) - set(allowed))
    if unknown:
        raise ValueError(f"Unknown column(s): {', '.join(unknown)}")
    encoded: dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, (LeadMeta, VehicleAutomationMeta)):
            value = value.to_json()
        elif isinstance(value, datetime):
            value = to_iso(value)
        elif bool_as_int and isinstance(value, bool):
            value = int(value)
        encoded[key] = value
    return encoded


def validate_order(
    order_by: Sequence[tuple[str, bool]],
    allowed: frozenset[str],
) -> list[tuple[str, bool]]:
    pairs = list(order_by)
    for column, _ in pairs:
        if column not in allowed:
            raise ValueError(f"Cannot order by '{column}'.")
    return pairs


# ── SQLite implementation ──────────────────────────────────────────


class SqliteStore:
    """SQLite-backed lead + vehicle store with WAL mode and NOCASE indexes."""

    def __init__(self, db_path: str = ":memory:") -> None:
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._lock:
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
            self._conn.execute("PRAGMA temp_store=MEMORY")
            self._create_schema()

    # ── Schema ─────────────────────────────────────────────────────

    def _create_schema(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS leads (
                id               TEXT PRIMARY KEY,
                phone            TEXT NOT NULL,
                normalized_phone TEXT NOT NULL DEFAULT '',
                name             TEXT,
                email            TEXT,
                source           TEXT NOT NULL DEFAULT 'whatsapp',
                intent           TEXT NOT NULL DEFAULT 'general_inquiry',
                status           TEXT NOT NULL DEFAULT 'new',
                meta             TEXT NOT NULL DEFAULT '{}',
                created_at       TEXT NOT NULL,
                updated_at       TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS vehicles (
                id              TEXT PRIMARY KEY,
                plate           TEXT NOT NULL UNIQUE COLLATE NOCASE,
                make            TEXT NOT NULL COLLATE NOCASE,
                model           TEXT NOT NULL COLLATE NOCASE,
                version         TEXT NOT NULL DEFAULT '',
                price           REAL NOT NULL,
                fuel            TEXT NOT NULL DEFAULT '',
                transmission    TEXT NOT NULL DEFAULT '',
                color           TEXT NOT NULL DEFAULT '',
                mileage         INTEGER NOT NULL DEFAULT 0,
                status          TEXT NOT NULL DEFAULT '',
                is_active       INTEGER NOT NULL DEFAULT 1,
                days_in_stock   INTEGER NOT NULL DEFAULT 0,
                demand_count    INTEGER NOT NULL DEFAULT 0,
                automation_meta TEXT NOT NULL DEFAULT '{}',
                created_at      TEXT NOT NULL,
                updated_at      TEXT NOT NULL
            );
        """)

        # Migration: add new columns to existing databases
        new_columns = [
            ("leads", "status_reason", "TEXT NOT NULL DEFAULT ''"),
            ("leads", "status_at", "TEXT NOT NULL DEFAULT ''"),
            ("vehicles", "body_type", "TEXT NOT NULL DEFAULT ''"),
            ("vehicles", "pricing_signal", "TEXT NOT NULL DEFAULT ''"),
            ("vehicles", "available_to", "TEXT NOT NULL DEFAULT ''"),
        ]
        for table, col_name, col_def in new_columns:
            try:
                self._conn.execute(f"ALTER TABLE {table} ADD COLUMN {col_name} {col_def}")
            except sqlite3.OperationalError:
                pass  # column already exists

        self._conn.executescript("""
            CREATE INDEX IF NOT EXISTS idx_leads_normalized_phone
                ON leads(normalized_phone);
            CREATE INDEX IF NOT EXISTS idx_leads_phone
                ON leads(phone);
            CREATE INDEX IF NOT EXISTS idx_leads_source_status
                ON leads(source, status);
            CREATE INDEX IF NOT EXISTS idx_leads_created_at
                ON leads(created_at);
            CREATE INDEX IF NOT EXISTS idx_vehicles_make
                ON vehicles(make COLLATE NOCASE);
            CREATE INDEX IF NOT EXISTS idx_vehicles_active_status
                ON vehicles(is_active, status);
            CREATE INDEX IF NOT EXISTS idx_vehicles_price
                ON vehicles(price);
            -- Relevance ordering hot path
            CREATE INDEX IF NOT EXISTS idx_vehicles_demand_days
                ON vehicles(demand_count DESC, days_in_stock ASC);
        """)
        self._conn.commit()

    # ── Helpers ────────────────────────────────────────────────────

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    @contextmanager
    def _guard(self, operation: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as exc:
                logger.error("SQLite %s failed: %s", operation, exc)
                raise StoreError(f"{operation} failed: {exc}") from exc

    @staticmethod
    def _vehicle_params(vehicle: Vehicle, *, now: str) -> tuple[Any, ...]:
        row = vehicle.to_row()
        row["is_active"] = int(bool(row["is_active"]))
        row["created_at"] = row["created_at"] or now
        row["updated_at"] = now
        return tuple(row[c] for c in VEHICLE_COLUMNS)

    @staticmethod
    def _order_clause(order_by: Sequence[tuple[str, bool]], allowed: frozenset[str]) -> str:
        pairs = validate_order(order_by, allowed)
        if not pairs:
            return ""
        return " ORDER BY " + ", ".join(
            f"{column} {'DESC' if desc else 'ASC'}" for column, desc in pairs
        )

    # ── Leads ──────────────────────────────────────────────────────

    def get_lead(self, lead_id: str) -> Lead | None:
        with self._guard("get_lead") as conn:
            row = conn.execute(
                f"SELECT {LEAD_SELECT} FROM leads WHERE id = ?", (lead_id,),
            ).fetchone()
        return Lead.from_row(dict(row)) if row else None

    def find_lead_by_phone(self, phone: str) -> Lead | None:
        normalized = normalize_phone(phone)
        with self._guard("find_lead_by_phone") as conn:
            row = conn.execute(
                f"""SELECT {LEAD_SELECT} FROM leads
                    WHERE normalized_phone = ? OR phone = ?
                    ORDER BY created_at ASC LIMIT 1""",
                (normalized, phone),
            ).fetchone()
        return Lead.from_row(dict(row)) if row else None

    def insert_lead(self, lead: Lead) -> Lead:
        now = self._now()
        lead.id = lead.id or new_lead_id()
        lead.normalized_phone = lead.normalized_phone or normalize_phone(lead.phone)
        lead.created_at = lead.created_at or now
        lead.updated_at = now
        row = lead.to_row()
        placeholders = ", ".join("?" for _ in LEAD_COLUMNS)
        with self._guard("insert_lead") as conn:
            conn.execute(
                f"INSERT INTO leads ({LEAD_SELECT}) VALUES ({placeholders})",
                tuple(row[c] for c in LEAD_COLUMNS),
            )
            conn.commit()
        return lead

    def update_lead(self, lead_id: str, **fields: Any) -> None:
        encoded = serialize_fields(
            fields,
            allowed=[c for c in LEAD_COLUMNS if c not in ("id", "created_at")],
        )
        encoded.setdefault("updated_at", self._now())
        assignments = ", ".join(f"{k} = ?" for k in encoded)
        with self._guard("update_lead") as conn:
            conn.execute(
                f"UPDATE leads SET {assignments} WHERE id = ?",
                (*encoded.values(), lead_id),
            )
            conn.commit()

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
        clauses: list[str] = []
        params: list[Any] = []
        if source:
            clauses.append("source = ?")
            params.append(source)
        if statuses:
            clauses.append(f"status IN ({', '.join('?' for _ in statuses)})")
            params.extend(statuses)
        if exclude_status:
            clauses.append("status != ?")
            params.append(exclude_status)
        if intents:
            clauses.append(f"intent IN ({', '.join('?' for _ in intents)})")
            params.extend(intents)
        if created_since is not None:
            clauses.append("created_at >= ?")
            params.append(to_iso(created_since))

        where = " AND ".join(clauses) if clauses else "1=1"
        sql = f"SELECT {LEAD_SELECT} FROM leads WHERE {where}"
        sql += self._order_clause([(order_by, descending), ("id", False)], LEAD_ORDER_COLUMNS | {"id"})
        if limit is not None:
            sql += " LIMIT ?"
            params.append(max(0, int(limit)))
        with self._guard("scan_leads") as conn:
            rows = conn.execute(sql, params).fetchall()
        return [Lead.from_row(dict(r)) for r in rows]

    def count_leads(self) -> int:
        with self._guard("count_leads") as conn:
            row = conn.execute("SELECT COUNT(*) FROM leads").fetchone()
        return row[0]

    # ── Vehicles ───────────────────────────────────────────────────

    def get_vehicle(self, vehicle_id: str) -> Vehicle | None:
        with self._guard("get_vehicle") as conn:
            row = conn.execute(
                f"SELECT {VEHICLE_SELECT} FROM vehicles WHERE id = ?", (vehicle_id,),
            ).fetchone()
        return Vehicle.from_row(dict(row)) if row else None

    def get_vehicle_by_plate(self, plate: str) -> Vehicle | None:
        with self._guard("get_vehicle_by_plate") as conn:
            row = conn.execute(
                f"SELECT {VEHICLE_SELECT} FROM vehicles WHERE plate = ? COLLATE NOCASE",
                (plate.strip().upper(),),
            ).fetchone()
        return Vehicle.from_row(dict(row)) if row else None

    def upsert_vehicle(self, vehicle: Vehicle) -> None:
        now = self._now()
        with self._guard("upsert_vehicle") as conn:
            conn.execute(VEHICLE_UPSERT_SQL, self._vehicle_params(vehicle, now=now))
            conn.commit()

    def upsert_vehicles(self, vehicles: Iterable[Vehicle]) -> None:
        now = self._now()
        rows = [self._vehicle_params(v, now=now) for v in vehicles]
        if not rows:
            return
        with self._guard("upsert_vehicles") as conn:
            with conn:
                conn.executemany(VEHICLE_UPSERT_SQL, rows)

    def update_vehicle(self, vehicle_id: str, **fields: Any) -> None:
        encoded = serialize_fields(
            fields,
            allowed=[c for c in VEHICLE_COLUMNS if c not in ("id", "created_at")],
            bool_as_int=True,
        )
        encoded.setdefault("updated_at", self._now())
        assignments = ", ".join(f"{k} = ?" for k in encoded)
        with self._guard("update_vehicle") as conn:
            conn.execute(
                f"UPDATE vehicles SET {assignments} WHERE id = ?",
                (*encoded.values(), vehicle_id),
            )
            conn.commit()

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
        clauses: list[str] = []
        params: list[Any] = []
        if active_only:
            clauses.append("is_active = 1")
        if status:
            clauses.append("status = ?")
            params.append(status)
        if make_like:
            clauses.append("make LIKE ? COLLATE NOCASE")
            params.append(f"%{make_like}%")
        if max_price is not None:
            clauses.append("price <= ?")
            params.append(max_price)
        if fuel:
            clauses.append("fuel = ?")
            params.append(fuel)
        if transmission:
            clauses.append("transmission = ?")
            params.append(transmission)
        if min_days_in_stock is not None:
            clauses.append("days_in_stock >= ?")
            params.append(min_days_in_stock)
        if max_demand is not None:
            clauses.append("demand_count <= ?")
            params.append(max_demand)
        if created_since is not None:
            clauses.append("created_at >= ?")
            params.append(to_iso(created_since))

        where = " AND ".join(clauses) if clauses else "1=1"
        sql = f"SELECT {VEHICLE_SELECT} FROM vehicles WHERE {where}"
        sql += self._order_clause(order_by, VEHICLE_ORDER_COLUMNS)
        if limit is not None:
            sql += " LIMIT ?"
            params.append(max(0, int(limit)))
        with self._guard("scan_vehicles") as conn:
            rows = conn.execute(sql, params).fetchall()
        return [Vehicle.from_row(dict(r)) for r in rows]

    def count_vehicles(self) -> int:
        with self._guard("count_vehicles") as conn:
            row = conn.execute("SELECT COUNT(*) FROM vehicles").fetchone()
        return row[0]

    def close(self) -> None:
        with self._lock:
            self._conn.close()
