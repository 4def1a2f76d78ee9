"""Command-line entry point: periodic automation runs, one-off messages, MCP serving."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Sequence

from auto_crm.config import CRMConfig
from auto_crm.data.registry import get_store
from auto_crm.engine.orchestrator import (
    AUTOMATION_MODES,
    AutomationMaster,
    InvalidAutomationModeError,
    validate_mode,
)
from auto_crm.messaging import build_gateway

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="auto-crm",
        description="WhatsApp lead automation for a car dealership.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a periodic automation batch.")
    run.add_argument("--mode", required=True, help=f"One of: {', '.join(AUTOMATION_MODES)}.")

    process = sub.add_parser("process", help="Process one inbound WhatsApp message.")
    process.add_argument("--phone", required=True)
    process.add_argument("--text", required=True)
    process.add_argument("--name", default=None, help="Sender display name.")

    webhook = sub.add_parser("webhook", help="Process a saved webhook payload (JSON file).")
    webhook.add_argument("path", type=Path)

    sub.add_parser("serve", help="Start the MCP server on stdio.")
    return parser


def _master(config: CRMConfig) -> AutomationMaster:
    return AutomationMaster(get_store(config), build_gateway(config), config)


async def _run(args: argparse.Namespace, config: CRMConfig) -> int:
    if args.command == "run":
        validate_mode(args.mode)
    master = _master(config)
    if args.command == "run":
        summary = await master.run_automations(args.mode)
        print(json.dumps(summary, indent=2, default=str))
        return 0 if summary["success"] else 1

    if args.command == "process":
        result = await master.process_incoming_message(args.phone, args.text, args.name)
        print(json.dumps(result.to_dict(), indent=2, default=str))
        return 0 if result.success else 1

    payload = json.loads(args.path.read_text())
    if not isinstance(payload, dict):
        raise ValueError("Webhook payload must be a JSON object.")
    results = await master.process_webhook(payload)
    print(json.dumps([r.to_dict() for r in results], indent=2, default=str))
    return 0 if all(r.success for r in results) else 1


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = CRMConfig.from_env()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve":
        from auto_crm.server import mcp

        mcp.run()
        return 0

    try:
        return asyncio.run(_run(args, config))
    except InvalidAutomationModeError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except (OSError, ValueError) as exc:
        logger.error("auto-crm %s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
