"""Runtime configuration for the AutoCRM automation layer.

Built once at the process boundary (MCP server, CLI) and passed down to every
component, so business logic never reads the environment directly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from auto_crm.normalization import parse_int

_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_DEFAULT_DB_PATH = str(Path(__file__).resolve().parent / "data" / "crm.db")

STORE_BACKENDS = ("sqlite", "supabase")
DEFAULT_BUDGET_MULTIPLIER = 1000
DEFAULT_WHATSAPP_API_VERSION = "v20.0"


def load_env_file(path: Path = _ENV_FILE) -> None:
    """Load KEY=VALUE lines from a .env file (no extra dependency)."""
    if not path.is_file():
        return
    for line in path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            k, _, v = line.partition("=")
            os.environ.setdefault(k.strip(), v.strip())


def _split_phones(raw: str) -> tuple[str, ...]:
    return tuple(p.strip() for p in raw.split(",") if p.strip())


def _as_bool(raw: str, default: bool) -> bool:
    lowered = raw.strip().lower()
    if lowered in {"true", "1", "yes", "y"}:
        return True
    if lowered in {"false", "0", "no", "n"}:
        return False
    return default


@dataclass(frozen=True)
class CRMConfig:
    store_backend: str = "sqlite"
    db_path: str = _DEFAULT_DB_PATH
    seed_demo_inventory: bool = True
    supabase_url: str = ""
    supabase_key: str = ""
    whatsapp_token: str = ""
    phone_number_id: str = ""
    whatsapp_verify_token: str = ""
    whatsapp_api_version: str = DEFAULT_WHATSAPP_API_VERSION
    sales_team_phones: tuple[str, ...] = field(default_factory=tuple)
    budget_multiplier: int = DEFAULT_BUDGET_MULTIPLIER
    dealer_name: str = "AutoTrust"
    dealer_phone: str = ""
    showroom_address: str = ""
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.store_backend not in STORE_BACKENDS:
            raise ValueError(
                f"Unknown store backend '{self.store_backend}'. "
                f"Expected one of: {', '.join(STORE_BACKENDS)}."
            )
        if self.budget_multiplier < 1:
            raise ValueError("budget_multiplier must be a positive integer.")

    @property
    def whatsapp_enabled(self) -> bool:
        return bool(self.whatsapp_token and self.phone_number_id)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> CRMConfig:
        """Build a config from environment variables (after loading ``.env``)."""
        if environ is None:
            load_env_file()
            environ = os.environ
        get = environ.get

        multiplier = parse_int(get("CRM_BUDGET_MULTIPLIER", ""))
        return cls(
            store_backend=get("CRM_STORE_BACKEND", "sqlite").strip().lower() or "sqlite",
            db_path=get("CRM_DB_PATH", "") or _DEFAULT_DB_PATH,
            seed_demo_inventory=_as_bool(get("CRM_SEED_DEMO", ""), True),
            supabase_url=get("SUPABASE_URL", "").strip(),
            supabase_key=(
                get("SUPABASE_SERVICE_ROLE_KEY", "") or get("SUPABASE_KEY", "")
            ).strip(),
            whatsapp_token=get("WHATSAPP_TOKEN", "").strip(),
            phone_number_id=get("PHONE_NUMBER_ID", "").strip(),
            whatsapp_verify_token=get("WHATSAPP_VERIFY_TOKEN", "").strip(),
            whatsapp_api_version=(
                get("WHATSAPP_API_VERSION", "").strip() or DEFAULT_WHATSAPP_API_VERSION
            ),
            sales_team_phones=_split_phones(get("SALES_TEAM_PHONES", "")),
            budget_multiplier=multiplier if multiplier else DEFAULT_BUDGET_MULTIPLIER,
            dealer_name=get("DEALER_NAME", "").strip() or "AutoTrust",
            dealer_phone=get("DEALER_PHONE", "").strip(),
            showroom_address=get("SHOWROOM_ADDRESS", "").strip(),
            log_level=get("CRM_LOG_LEVEL", "").strip().upper() or "INFO",
        )
