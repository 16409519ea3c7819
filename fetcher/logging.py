"""Fetch log lines for outbound feed and image requests."""

from __future__ import annotations

from typing import Any

from core.models import FetchLog
from core.structured_logging import emit_json_event


def fetch_log_fields(fetch_log: FetchLog) -> dict[str, Any]:
    """JSON-safe request fields; the event envelope is added by the emitter."""
    return {
        "fetch_id": fetch_log.id,
        "url": fetch_log.url,
        "status_code": fetch_log.status_code,
        "latency_ms": fetch_log.latency_ms,
        "bytes_received": fetch_log.bytes_received,
        "error_code": fetch_log.error_code.value if fetch_log.error_code else None,
        "requested_at": fetch_log.created_at.isoformat(),
    }


def emit_fetch_log(fetch_log: FetchLog, kind: str = "feed") -> str:
    """Emit one `<kind>_fetch` line; failed requests are logged at warning level."""
    return emit_json_event(
        f"{kind}_fetch",
        sync_id=fetch_log.sync_id,
        level="warning" if fetch_log.error_code else "info",
        component="fetcher",
        **fetch_log_fields(fetch_log),
    )
