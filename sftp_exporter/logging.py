"""
sftp_exporter.logging
AUTHOR: carter-vin

Structured JSON event logging for ops ingestion

Contract:
- One JSON object per line to stdout
- Stable event vocabulary (allowlist), each event with a fixed level
- UTC timestamps only
- Events below the configured level are dropped
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

# Event types -> level
EVENT_LEVELS = {
    "exporter_start": "info",
    "exporter_shutdown": "info",
    "sftp_connected": "info",
    "sftp_disconnected": "info",
    "sftp_connect_failed": "error",
    "sftp_close_failed": "error",
    "capacity_check": "debug",
    "scrape_completed": "debug",
    "scrape_failed": "error",
    "http_request": "info",
}

VALID_EVENT_TYPES = set(EVENT_LEVELS)

LEVELS = {"debug": 10, "info": 20, "warning": 30, "error": 40}

_min_level = LEVELS["info"]


def configure_logging(level: str) -> None:
    """
    Set the minimum level for emitted events
    """
    global _min_level

    key = level.strip().lower()
    if key not in LEVELS:
        raise ValueError(f"invalid log level: {level}")
    _min_level = LEVELS[key]


def _truncate_message(value: str, *, limit: int = 200) -> str:
    """
    Cap message length to keep events compact
    """
    if len(value) <= limit:
        return value
    return value[:limit] + f"...[truncated {len(value) - limit} chars]"


# Time: current in UTC ISO 8601
def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def emit_event(event_type: str, *, exporter_version: str, **fields: Any) -> None:
    """
    Emit structured event line to stdout

    Rules:
    - event_type in VALID_EVENT_TYPES
    - event_type, level, exporter_version, timestamp always present
    - sort_keys + compact separators for format
    """
    if event_type not in VALID_EVENT_TYPES:
        raise ValueError(f"invalid event_type: {event_type}")

    level = EVENT_LEVELS[event_type]
    if LEVELS[level] < _min_level:
        return

    if "message" in fields and isinstance(fields["message"], str):
        # Avoid emitting long strings in event fields
        fields["message"] = _truncate_message(fields["message"])

    payload: dict[str, Any] = {
        "event_type": event_type,
        "level": level,
        "utc_now": utc_now_iso(),
        "exporter_version": exporter_version,
        **fields,
    }

    print(
        json.dumps(
            payload,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        ),
        flush=True,
    )
