"""Shared test fixtures: isolated seeded store, recording gateway, fixed clock."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from auto_crm.config import CRMConfig
from auto_crm.constants import INTENT_GENERAL, WHATSAPP_SOURCE
from auto_crm.data.models import CarPreferences, Lead, LeadMeta
from auto_crm.data.registry import set_store
from auto_crm.data.seed import seed_demo_data
from auto_crm.data.store import SqliteStore
from auto_crm.engine.orchestrator import AutomationMaster
from auto_crm.messaging import LoggingGateway
from auto_crm.normalization import to_iso
from auto_crm.server import set_gateway_override

SALES_PHONE = "351910000001"
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def now() -> datetime:
    """A fixed clock so time-window rules are deterministic."""
    return NOW


@pytest.fixture()
def config() -> CRMConfig:
    return CRMConfig(
        db_path=":memory:",
        seed_demo_inventory=False,
        whatsapp_verify_token="verify-me",
        sales_team_phones=(SALES_PHONE,),
        dealer_name="AutoTrust",
        dealer_phone="+351 210 000 000",
        showroom_address="Rua das Flores 10, Lisboa",
    )


@pytest.fixture()
def gateway() -> LoggingGateway:
    """Records every outbound message instead of sending it."""
    return LoggingGateway()


@pytest.fixture(autouse=True)
def store() -> SqliteStore:
    """Give every test a fresh, isolated, seeded in-memory store."""
    store = SqliteStore(":memory:")
    seed_demo_data(store)
    set_store(store)
    yield store
    set_store(None)
    store.close()


@pytest.fixture(autouse=True)
def _inject_gateway(gateway: LoggingGateway, config: CRMConfig):
    """Route the MCP server through the recording gateway and test config."""
    set_gateway_override(gateway, config)
    yield
    set_gateway_override(None)


@pytest.fixture()
def master(store: SqliteStore, gateway: LoggingGateway, config: CRMConfig) -> AutomationMaster:
    return AutomationMaster(store, gateway, config)


@pytest.fixture()
def make_lead(store: SqliteStore, now: datetime) -> Callable[..., Lead]:
    """Insert a WhatsApp lead; ``hours_ago`` backdates creation and last contact."""
    counter = iter(range(1, 10_000))

    def _make(
        *,
        intent: str = INTENT_GENERAL,
        hours_ago: float = 0,
        preferences: CarPreferences | None = None,
        **meta_fields: Any,
    ) -> Lead:
        n = next(counter)
        stamp = to_iso(now - timedelta(hours=hours_ago))
        meta_fields.setdefault("last_contact_date", stamp)
        meta = LeadMeta(car_preferences=preferences or CarPreferences(), **meta_fields)
        return store.insert_lead(Lead(
            id=f"lead-test-{n:03d}",
            phone=f"35191234{n:04d}",
            source=WHATSAPP_SOURCE,
            intent=intent,
            created_at=stamp,
            meta=meta,
        ))

    return _make


@pytest.fixture()
def sales_phone(config: CRMConfig) -> str:
    return config.sales_team_phones[0]


@pytest.fixture()
def webhook_payload() -> Callable[..., dict[str, Any]]:
    """Build a WhatsApp Cloud API webhook body around the given messages."""

    def _build(*messages: dict[str, Any], contacts=(), statuses=()) -> dict[str, Any]:
        return {
            "object": "whatsapp_business_account",
            "entry": [{
                "id": "waba-1",
                "changes": [{
                    "field": "messages",
                    "value": {
                        "messaging_product": "whatsapp",
                        "contacts": list(contacts),
                        "messages": list(messages),
                        "statuses": list(statuses),
                    },
                }],
            }],
        }

    return _build
