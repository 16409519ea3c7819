"""Integration tests for background image caching."""

from __future__ import annotations

import json

import pytest
import requests

from fetcher.images import ImagePrefetcher


class DummyResponse:
    def __init__(self, status_code: int, body: bytes = b"") -> None:
        self.status_code = status_code
        self._body = body
        self.closed = False

    def iter_content(self, chunk_size: int = 8192):
        for index in range(0, len(self._body), chunk_size):
            yield self._body[index : index + chunk_size]

    def close(self) -> None:
        self.closed = True


class DummySession:
    """URL-keyed session; unknown URLs raise a connection error."""

    def __init__(self, routes: dict[str, object]) -> None:
        self.routes = routes
        self.calls: list[str] = []

    def get(self, url: str, **_: object):
        self.calls.append(url)
        outcome = self.routes.get(url, requests.ConnectionError("no route"))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _parse_json_lines(captured: str) -> list[dict[str, object]]:
    return [json.loads(line) for line in captured.splitlines() if line.strip()]


@pytest.fixture
def make_prefetcher(blob_store):
    created: list[ImagePrefetcher] = []

    def _make(session: DummySession, **kwargs) -> ImagePrefetcher:
        prefetcher = ImagePrefetcher(blob_store, session=session, **kwargs)
        created.append(prefetcher)
        return prefetcher

    yield _make
    for prefetcher in created:
        prefetcher.close(wait=True)


@pytest.mark.integration
def test_prefetch_stores_images_by_url(make_prefetcher, blob_store):
    url = "https://cdn.example.com/a.jpg"
    session = DummySession({url: DummyResponse(200, b"jpeg-bytes")})
    prefetcher = make_prefetcher(session)

    futures = prefetcher.prefetch([url, url])

    assert [future.result(timeout=5) for future in futures] == [True]
    assert blob_store.get(url) == b"jpeg-bytes"
    assert session.calls == [url]


@pytest.mark.integration
def test_prefetch_skips_cached_and_non_http_urls(make_prefetcher, blob_store):
    cached = "https://cdn.example.com/cached.jpg"
    blob_store.put(cached, b"old")
    session = DummySession({})
    prefetcher = make_prefetcher(session)

    futures = prefetcher.prefetch([cached, "data:image/png;base64,AAAA", ""])

    assert futures == []
    assert session.calls == []


@pytest.mark.integration
def test_failed_download_is_logged_not_cached(make_prefetcher, blob_store, capsys):
    missing = "https://cdn.example.com/missing.jpg"
    broken = "https://cdn.example.com/broken.jpg"
    session = DummySession({missing: DummyResponse(404)})
    prefetcher = make_prefetcher(session)

    results = [future.result(timeout=5) for future in prefetcher.prefetch([missing, broken])]

    assert results == [False, False]
    assert blob_store.get(missing) is None
    assert blob_store.get(broken) is None
    events = _parse_json_lines(capsys.readouterr().out)
    codes = {event["url"]: event["error_code"] for event in events if event["event_type"] == "image_fetch"}
    assert codes == {missing: "HTTP_STATUS", broken: "FETCH_ERROR"}


@pytest.mark.integration
def test_oversized_image_is_rejected(make_prefetcher, blob_store):
    url = "https://cdn.example.com/huge.jpg"
    response = DummyResponse(200, b"x" * 64)
    prefetcher = make_prefetcher(DummySession({url: response}), max_bytes=16, log_fetches=False)

    assert prefetcher.cache_image(url) is False
    assert blob_store.get(url) is None
    assert response.closed is True


@pytest.mark.integration
def test_prefetch_tags_fetch_lines_with_sync_id(make_prefetcher, capsys):
    url = "https://cdn.example.com/tagged.jpg"
    prefetcher = make_prefetcher(DummySession({url: DummyResponse(200, b"jpeg")}))

    for future in prefetcher.prefetch([url], sync_id="sync-9"):
        future.result(timeout=5)

    events = _parse_json_lines(capsys.readouterr().out)
    fetch_events = [event for event in events if event["event_type"] == "image_fetch"]
    assert [event["sync_id"] for event in fetch_events] == ["sync-9"]
