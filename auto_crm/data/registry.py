"""Process-wide store facade.

Tools and the CLI fetch the active backend through :func:`get_store`; tests
inject an isolated in-memory store with :func:`set_store`.
"""

from __future__ import annotations

import logging

from auto_crm.config import CRMConfig
from auto_crm.data.store import CRMStore, SqliteStore

logger = logging.getLogger(__name__)

_store: CRMStore | None = None


def build_store(config: CRMConfig) -> CRMStore:
    """Create the backend named by ``config.store_backend``."""
    if config.store_backend == "supabase":
        from auto_crm.data.supabase_store import SupabaseStore

        return SupabaseStore.from_config(config)

    store = SqliteStore(config.db_path)
    if config.seed_demo_inventory and store.count_vehicles() == 0:
        from auto_crm.data.seed import seed_demo_data

        count = seed_demo_data(store)
        logger.info("Seeded %d demo vehicles into %s", count, config.db_path)
    return store


def get_store(config: CRMConfig | None = None) -> CRMStore:
    """Return the active store singleton, creating it on first use."""
    global _store  # noqa: PLW0603
    if _store is None:
        _store = build_store(config or CRMConfig.from_env())
    return _store


def set_store(store: CRMStore | None) -> None:
    """Inject a store instance for testing."""
    global _store  # noqa: PLW0603
    _store = store
