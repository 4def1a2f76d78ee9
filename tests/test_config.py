"""Tests for environment configuration and store construction."""

from __future__ import annotations

import os

import pytest

from auto_crm.config import DEFAULT_BUDGET_MULTIPLIER, CRMConfig, load_env_file
from auto_crm.data.registry import build_store
from auto_crm.data.store import SqliteStore


class TestCRMConfig:
    def test_defaults(self):
        config = CRMConfig.from_env({})
        assert config.store_backend == "sqlite"
        assert config.seed_demo_inventory is True
        assert config.budget_multiplier == DEFAULT_BUDGET_MULTIPLIER
        assert config.sales_team_phones == ()
        assert config.dealer_name == "AutoTrust"
        assert config.log_level == "INFO"
        assert not config.whatsapp_enabled

    def test_from_env(self):
        config = CRMConfig.from_env({
            "CRM_STORE_BACKEND": " Supabase ",
            "SUPABASE_URL": "https://x.supabase.co",
            "SUPABASE_KEY": "anon-key",
            "WHATSAPP_TOKEN": "tok",
            "PHONE_NUMBER_ID": "123",
            "SALES_TEAM_PHONES": "351910000001, ,351910000002",
            "CRM_BUDGET_MULTIPLIER": "500",
            "CRM_SEED_DEMO": "no",
            "CRM_LOG_LEVEL": "debug",
        })
        assert config.store_backend == "supabase"
        assert config.supabase_key == "anon-key"
        assert config.whatsapp_enabled
        assert config.sales_team_phones == ("351910000001", "351910000002")
        assert config.budget_multiplier == 500
        assert config.seed_demo_inventory is False
        assert config.log_level == "DEBUG"

    def test_service_role_key_wins(self):
        config = CRMConfig.from_env({"SUPABASE_SERVICE_ROLE_KEY": "service", "SUPABASE_KEY": "anon"})
        assert config.supabase_key == "service"

    def test_unparseable_multiplier_falls_back(self):
        assert CRMConfig.from_env({"CRM_BUDGET_MULTIPLIER": "lots"}).budget_multiplier == 1000

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown store backend"):
            CRMConfig.from_env({"CRM_STORE_BACKEND": "mongo"})

    def test_multiplier_must_be_positive(self):
        with pytest.raises(ValueError, match="budget_multiplier"):
            CRMConfig(budget_multiplier=0)


class TestLoadEnvFile:
    def test_sets_missing_keys_only(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# dealership settings\n"
            "DEALER_NAME=Garagem Central\n"
            "DEALER_PHONE = +351 210 000 000\n"
            "not a pair\n"
        )
        monkeypatch.setenv("DEALER_NAME", "")
        monkeypatch.delenv("DEALER_NAME")
        monkeypatch.setenv("DEALER_PHONE", "keep-me")

        load_env_file(env_file)

        assert os.environ["DEALER_NAME"] == "Garagem Central"
        assert os.environ["DEALER_PHONE"] == "keep-me"

    def test_missing_file_is_ignored(self, tmp_path):
        load_env_file(tmp_path / "absent.env")


class TestBuildStore:
    def test_sqlite_seeds_empty_database(self, tmp_path):
        store = build_store(CRMConfig(db_path=str(tmp_path / "crm.db")))
        try:
            assert isinstance(store, SqliteStore)
            assert store.count_vehicles() > 0
        finally:
            store.close()

    def test_sqlite_without_seed(self):
        store = build_store(CRMConfig(db_path=":memory:", seed_demo_inventory=False))
        try:
            assert store.count_vehicles() == 0
        finally:
            store.close()

    def test_supabase_needs_credentials(self):
        with pytest.raises(ValueError, match="SUPABASE_URL"):
            build_store(CRMConfig(store_backend="supabase"))
