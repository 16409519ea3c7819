"""Shared structured JSON logging helpers."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any


def emit_json_event(
    event_type: str,
    *,
    sync_id: str | None = None,
    level: str = "info",
    **payload: Any,
) -> str:
    """Emit one JSON event line to stdout and return the rendered line."""
    event: dict[str, Any] = {
        "event_type": event_type,
        "level": level,
        "timestamp": datetime.now(UTC).isoformat(),
        "sync_id": sync_id,
    }
    event.update(payload)
    line = json.dumps(event, ensure_ascii=True, sort_keys=True, default=str)
    print(line)
    return line


def emit_error_event(
    event_type: str,
    exc: BaseException,
    *,
    component: str,
    sync_id: str | None = None,
    **payload: Any,
) -> str:
    """Emit a warning-level event describing a caught exception."""
    return emit_json_event(
        event_type,
        sync_id=sync_id,
        level="warning",
        component=component,
        error_type=type(exc).__name__,
        error=str(exc),
        **payload,
    )
