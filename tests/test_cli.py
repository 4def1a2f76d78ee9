"""Tests for the auto-crm command-line entry point."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from auto_crm.cli import build_parser, main
from auto_crm.config import CRMConfig


@pytest.fixture(autouse=True)
def _config(config: CRMConfig):
    with patch.object(CRMConfig, "from_env", return_value=config):
        yield


class TestParser:
    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_process_arguments(self):
        args = build_parser().parse_args(["process", "--phone", "351912345678", "--text", "hi"])
        assert (args.phone, args.text, args.name) == ("351912345678", "hi", None)


class TestMain:
    def test_unknown_mode_exits_2(self, capsys):
        assert main(["run", "--mode", "bogus"]) == 2
        assert "Unknown automation mode 'bogus'" in capsys.readouterr().err

    def test_unknown_mode_opens_no_store(self):
        with patch("auto_crm.cli._master") as build_master:
            assert main(["run", "--mode", "weekly"]) == 2
        build_master.assert_not_called()

    def test_hourly_run(self, capsys):
        assert main(["run", "--mode", "hourly"]) == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary["success"] is True
        assert summary["mode"] == "hourly"

    def test_process_message(self, capsys, store):
        assert main(["process", "--phone", "351912345678", "--text", "I want a BMW", "--name", "Ana"]) == 0
        result = json.loads(capsys.readouterr().out)
        assert result["success"] is True
        assert store.get_lead(result["lead_id"]).name == "Ana"

    def test_webhook_file(self, tmp_path, capsys, webhook_payload):
        path = tmp_path / "payload.json"
        path.write_text(json.dumps(webhook_payload(
            {"from": "351912345678", "id": "wamid.1", "type": "text", "text": {"body": "Hello"}},
        )))
        assert main(["webhook", str(path)]) == 0
        [result] = json.loads(capsys.readouterr().out)
        assert result["created"] is True

    def test_webhook_missing_file(self, tmp_path):
        assert main(["webhook", str(tmp_path / "absent.json")]) == 1

    def test_webhook_invalid_json(self, tmp_path):
        path = tmp_path / "payload.json"
        path.write_text("{not json")
        assert main(["webhook", str(path)]) == 1

    def test_serve_runs_mcp(self):
        with patch("auto_crm.server.mcp.run") as run:
            assert main(["serve"]) == 0
        run.assert_called_once_with()
