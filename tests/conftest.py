"""
Shared pytest fixtures and configuration for reader-cache tests.
"""

import threading
from datetime import UTC, datetime, timedelta

import pytest

from core.connectivity import ManualConnectivityMonitor
from core.errors import NetworkError
from core.events import EventBus
from core.interfaces import FeedClient
from core.models import Article
from quality.urlnorm import article_id_for_url
from storage.blobs import ContentAddressedBlobStore
from storage.bookmarks import SQLiteBookmarkIndex
from storage.sqlite import SQLiteArticleStore


# ============================================================================
# Helpers
# ============================================================================

def make_article(slug: str, **overrides) -> Article:
    """Build a valid article whose id derives from its URL."""
    url = overrides.pop("url", f"https://news.example.com/{slug}")
    fields = {
        "id": article_id_for_url(url),
        "title": f"Story {slug}",
        "author": "Jane Doe",
        "published_at": datetime(2025, 9, 12, 8, 30, tzinfo=UTC),
        "content": f"Body of {slug}",
        "image_url": f"https://cdn.example.com/{slug}.jpg",
        "url": url,
    }
    fields.update(overrides)
    return Article(**fields)


class MutableClock:
    """Deterministic clock for stores; advance() moves it forward."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 9, 12, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeFeedClient(FeedClient):
    """Scripted feed: returns queued article lists or raises queued errors."""

    def __init__(self, responses: list[object] | None = None) -> None:
        self.responses = list(responses or [])
        self.calls = 0
        self.sync_ids: list[str | None] = []
        self.gate: threading.Event | None = None

    def fetch_articles(self, sync_id: str | None = None) -> list[Article]:
        self.calls += 1
        self.sync_ids.append(sync_id)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if not self.responses:
            raise NetworkError("No more stubbed responses available")
        next_item = self.responses.pop(0)
        if isinstance(next_item, Exception):
            raise next_item
        return list(next_item)


class EventRecorder:
    """Collect every event published on a bus."""

    def __init__(self, bus: EventBus) -> None:
        self.events: list[object] = []
        bus.subscribe(self.events.append)

    def of_kind(self, kind: str) -> list[object]:
        return [event for event in self.events if event.kind == kind]


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def db_path(tmp_path):
    """Temporary SQLite database path."""
    return tmp_path / "reader.db"


@pytest.fixture
def blob_store(tmp_path) -> ContentAddressedBlobStore:
    return ContentAddressedBlobStore(tmp_path / "ImageCache")


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def article_store(db_path, blob_store, clock) -> SQLiteArticleStore:
    return SQLiteArticleStore(db_path, blob_store=blob_store, clock=clock)


@pytest.fixture
def bookmark_index(db_path, events, clock) -> SQLiteBookmarkIndex:
    return SQLiteBookmarkIndex(db_path, events=events, clock=clock)


@pytest.fixture
def connectivity() -> ManualConnectivityMonitor:
    return ManualConnectivityMonitor(connected=True)


@pytest.fixture
def article_factory():
    """Factory for valid articles: article_factory("slug", title=...)."""
    return make_article


@pytest.fixture
def fake_feed() -> FakeFeedClient:
    return FakeFeedClient()


@pytest.fixture
def recorder(events) -> EventRecorder:
    return EventRecorder(events)


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "contract: model and identity contract tests")
    config.addinivalue_line("markers", "integration: store, fetcher and coordinator tests")
    config.addinivalue_line("markers", "unit: unit tests")
