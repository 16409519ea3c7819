"""Integration-style tests for the feed client over a stubbed session."""

from __future__ import annotations

import json

import pytest
import requests

from core.errors import FeedDecodeError, NetworkError
from fetcher.feed import NewsApiFeedClient, parse_feed_payload
from quality.urlnorm import article_id_for_url


class DummyResponse:
    """Minimal response object for exercising the feed client."""

    def __init__(self, status_code: int, body: bytes = b"") -> None:
        self.status_code = status_code
        self.content = body

    def iter_content(self, chunk_size: int = 8192):
        for index in range(0, len(self.content), chunk_size):
            yield self.content[index : index + chunk_size]

    def close(self) -> None:
        return None


class DummySession:
    """Sequence-driven session for deterministic HTTP behavior."""

    def __init__(self, responses: list[object] | None = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[tuple[str, dict[str, object]]] = []

    def get(self, url: str, **kwargs: object):
        self.calls.append((url, kwargs))
        if not self.responses:
            raise AssertionError("No more stubbed responses available")
        next_item = self.responses.pop(0)
        if isinstance(next_item, Exception):
            raise next_item
        return next_item


def _parse_json_lines(captured: str) -> list[dict[str, object]]:
    """Decode structured log lines emitted to stdout."""
    lines = [line for line in captured.splitlines() if line.strip()]
    return [json.loads(line) for line in lines]


def _feed_body(articles: list[dict[str, object]]) -> bytes:
    return json.dumps(
        {"status": "ok", "totalResults": len(articles), "articles": articles}
    ).encode("utf-8")


VALID_ITEM = {
    "source": {"id": None, "name": "Example"},
    "author": "Jane Doe",
    "title": "Quantum chips ship",
    "description": "Summary",
    "url": "https://news.example.com/quantum?utm_source=feed",
    "urlToImage": "https://cdn.example.com/quantum.jpg",
    "publishedAt": "2025-09-12T08:30:00Z",
    "content": "Body",
}


@pytest.mark.integration
def test_fetch_success_maps_articles(capsys):
    session = DummySession([DummyResponse(200, _feed_body([VALID_ITEM]))])
    client = NewsApiFeedClient(api_key="secret", session=session)

    articles = client.fetch_articles()

    assert len(articles) == 1
    article = articles[0]
    assert article.id == article_id_for_url("https://news.example.com/quantum")
    assert article.image_url == "https://cdn.example.com/quantum.jpg"
    assert article.published_at.year == 2025
    assert article.is_bookmarked is None
    assert article.is_cached is False

    url, kwargs = session.calls[0]
    assert url == client.base_url
    assert kwargs["params"] == {"country": "us", "category": "technology", "apiKey": "secret"}

    events = _parse_json_lines(capsys.readouterr().out)
    fetch_events = [event for event in events if event["event_type"] == "feed_fetch"]
    assert len(fetch_events) == 1
    assert fetch_events[0]["status_code"] == 200
    assert fetch_events[0]["error_code"] is None
    assert "secret" not in json.dumps(events)


@pytest.mark.integration
def test_invalid_items_are_dropped_and_logged(capsys):
    missing_title = dict(VALID_ITEM, title="", url="https://news.example.com/untitled")
    bad_url = dict(VALID_ITEM, url="ftp://files.example.com/x")
    session = DummySession([DummyResponse(200, _feed_body([missing_title, VALID_ITEM, bad_url]))])
    client = NewsApiFeedClient(api_key="k", session=session)

    articles = client.fetch_articles()

    assert [a.title for a in articles] == ["Quantum chips ship"]
    events = _parse_json_lines(capsys.readouterr().out)
    rejected = [event for event in events if event["event_type"] == "feed_article_rejected"]
    assert len(rejected) == 2
    assert all(event["level"] == "warning" for event in rejected)


@pytest.mark.integration
def test_non_200_raises_network_error(capsys):
    session = DummySession([DummyResponse(401, b'{"status":"error"}')])
    client = NewsApiFeedClient(api_key="bad", session=session)

    with pytest.raises(NetworkError) as exc_info:
        client.fetch_articles()

    assert exc_info.value.status_code == 401
    events = _parse_json_lines(capsys.readouterr().out)
    assert events[-1]["error_code"] == "HTTP_STATUS"


@pytest.mark.integration
@pytest.mark.parametrize(
    ("error", "code"),
    [
        (requests.Timeout("slow"), "TIMEOUT"),
        (requests.ConnectionError("refused"), "FETCH_ERROR"),
    ],
)
def test_transport_errors_raise_network_error(error, code, capsys):
    client = NewsApiFeedClient(api_key="k", session=DummySession([error]))

    with pytest.raises(NetworkError):
        client.fetch_articles()

    events = _parse_json_lines(capsys.readouterr().out)
    assert events[-1]["error_code"] == code


@pytest.mark.integration
def test_malformed_json_raises_decode_error(capsys):
    client = NewsApiFeedClient(api_key="k", session=DummySession([DummyResponse(200, b"<html>")]))

    with pytest.raises(FeedDecodeError):
        client.fetch_articles()

    events = _parse_json_lines(capsys.readouterr().out)
    assert events[-1]["error_code"] == "DECODE_ERROR"


@pytest.mark.integration
def test_envelope_without_articles_raises_decode_error():
    body = json.dumps({"status": "ok", "totalResults": 0}).encode("utf-8")
    client = NewsApiFeedClient(api_key="k", session=DummySession([DummyResponse(200, body)]))

    with pytest.raises(FeedDecodeError, match="validation"):
        client.fetch_articles()


def test_decode_error_is_a_network_error():
    with pytest.raises(NetworkError):
        parse_feed_payload({"status": "error", "articles": []})


def test_non_http_base_url_rejected():
    with pytest.raises(ValueError):
        NewsApiFeedClient(api_key="k", base_url="file:///etc/passwd")


@pytest.mark.integration
def test_sync_id_tags_fetch_and_rejection_lines(capsys):
    bad_url = dict(VALID_ITEM, url="ftp://files.example.com/x")
    session = DummySession([DummyResponse(200, _feed_body([VALID_ITEM, bad_url]))])
    client = NewsApiFeedClient(api_key="k", session=session)

    client.fetch_articles(sync_id="sync-42")

    events = _parse_json_lines(capsys.readouterr().out)
    tagged = [
        event
        for event in events
        if event["event_type"] in {"feed_fetch", "feed_article_rejected"}
    ]
    assert {event["event_type"] for event in tagged} == {"feed_fetch", "feed_article_rejected"}
    assert all(event["sync_id"] == "sync-42" for event in tagged)


@pytest.mark.integration
def test_failed_fetch_line_carries_sync_id(capsys):
    session = DummySession([DummyResponse(503)])
    client = NewsApiFeedClient(api_key="k", session=session)

    with pytest.raises(NetworkError):
        client.fetch_articles(sync_id="sync-7")

    events = _parse_json_lines(capsys.readouterr().out)
    fetch_events = [event for event in events if event["event_type"] == "feed_fetch"]
    assert fetch_events[0]["error_code"] == "HTTP_STATUS"
    assert fetch_events[0]["sync_id"] == "sync-7"
