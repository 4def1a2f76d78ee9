"""Shared canonical normalization functions for lead and vehicle data.

Single source of truth for phones, numbers and timestamps, imported by the
store backends, the webhook parser and the engine modules.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def clean_numeric_string(raw: str) -> str:
    """Keep only digits, ``'.'``, and ``'-'``."""
    return "".join(c for c in raw if c.isdigit() or c in {".", "-"})


def parse_price(value: Any) -> float | None:
    """Best-effort price parsing.  Returns ``None`` for unparseable input."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        cleaned = clean_numeric_string(stripped)
        if not cleaned:
            return None
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def parse_int(value: Any) -> int | None:
    """Best-effort integer parsing.  Returns ``None`` for unparseable input."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        parsed = parse_price(stripped)
        if parsed is None:
            return None
        return int(parsed)
    return None


def normalize_phone(phone: str) -> str:
    """Strip the leading ``+`` and any spaces/dashes from a phone number."""
    return "".join(c for c in phone.strip().lstrip("+") if c not in {" ", "-", "(", ")"})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_iso_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware UTC datetime, or ``None``."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def hours_since(value: Any, *, now: datetime) -> float | None:
    parsed = parse_iso_datetime(value)
    if parsed is None:
        return None
    return (now - parsed).total_seconds() / 3600
