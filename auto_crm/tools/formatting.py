"""Shared response helpers for MCP tool implementations."""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def build_raw_response(tool_name: str, data_context: dict[str, Any]) -> str:
    payload = {
        "_raw": True,
        "_tool": tool_name,
        "_meta": {"schema_version": 1},
        "data": data_context,
    }
    return json.dumps(payload, indent=2, default=str)


def log_and_return_tool_error(*, tool_name: str, exc: Exception, user_message: str) -> str:
    """Log an unexpected tool failure with traceback and return a safe message."""
    logger.error("Tool %s failed: %s", tool_name, exc, exc_info=exc)
    return user_message


def format_preferences(preferences: dict[str, Any]) -> str:
    if not preferences:
        return "none yet"
    return ", ".join(f"{key}: {value}" for key, value in preferences.items())
