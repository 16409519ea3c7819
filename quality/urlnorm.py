"""URL canonicalization and the stable article identity scheme."""

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit
from uuid import NAMESPACE_URL, uuid5


_REMOVABLE_QUERY_PARAMS = {
    "session",
    "sessionid",
    "sid",
    "phpsessid",
    "jsessionid",
    "fbclid",
    "gclid",
}


def canonicalize_url(url: str) -> str:
    """
    Canonicalize URL so the same article always maps to the same key.

    Rules:
    - Lowercase scheme and host (path case is preserved)
    - Prefer https over http
    - Drop default ports and the fragment
    - Drop `utm_*` and common tracking/session params, sort the rest
    """
    parsed = urlsplit(url.strip())
    if parsed.scheme.lower() not in {"http", "https"}:
        return url.strip()

    hostname = (parsed.hostname or "").lower()
    try:
        port = parsed.port
    except ValueError:
        port = None
    if port and port not in {80, 443}:
        netloc = f"{hostname}:{port}"
    else:
        netloc = hostname

    path = parsed.path or "/"

    query_pairs = parse_qsl(parsed.query, keep_blank_values=True)
    kept = [
        (key, value)
        for key, value in query_pairs
        if not key.lower().startswith("utm_") and key.lower() not in _REMOVABLE_QUERY_PARAMS
    ]
    kept.sort(key=lambda item: (item[0], item[1]))
    query = urlencode(kept, doseq=True)

    return urlunsplit(("https", netloc, path, query, ""))


def article_id_for_url(url: str) -> str:
    """Derive the stable article id for a source URL (UUIDv5 of canonical form)."""
    return str(uuid5(NAMESPACE_URL, canonicalize_url(url)))
