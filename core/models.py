"""
Core Pydantic models for reader-cache.

Design principles:
- Every persisted entity is an explicit typed record (no property bags)
- Article identity is assigned once at ingestion and never re-derived
- Timestamps are timezone-aware UTC
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Optional, List
from urllib.parse import urlparse
from uuid import uuid4

from pydantic import BaseModel, Field, ValidationError, field_validator

from core.errors import ArticleValidationError


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(UTC)


# ============================================================================
# Enums
# ============================================================================

class SyncPhase(str, Enum):
    """Where is the coordinator in its load cycle?"""
    IDLE = "IDLE"
    LOADING = "LOADING"
    LOADED = "LOADED"
    FAILED = "FAILED"


class ConnectionType(str, Enum):
    """Link type reported by a connectivity monitor."""
    WIFI = "wifi"
    CELLULAR = "cellular"
    ETHERNET = "ethernet"
    UNKNOWN = "unknown"


class FetchErrorCode(str, Enum):
    """Why did an outbound request fail?"""
    TIMEOUT = "TIMEOUT"
    FETCH_ERROR = "FETCH_ERROR"  # Transport error
    HTTP_STATUS = "HTTP_STATUS"  # Non-200 response
    DECODE_ERROR = "DECODE_ERROR"
    BODY_TOO_LARGE = "BODY_TOO_LARGE"
    UNSUPPORTED_SCHEME = "UNSUPPORTED_SCHEME"


# ============================================================================
# Article
# ============================================================================

class Article(BaseModel):
    """
    A news item as seen by the cache and the read side.

    - id: stable identity, derived from the canonical URL at ingestion
    - is_bookmarked: tri-state (None = never set)
    - is_cached: True once the article has a persisted record
    """
    id: str
    title: str
    author: Optional[str] = None
    published_at: datetime = Field(default_factory=utc_now)
    content: Optional[str] = None
    image_url: Optional[str] = None
    url: str

    is_bookmarked: Optional[bool] = None
    is_cached: bool = False

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Article ID is required")
        return v

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Article title is required")
        return v

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require an absolute http(s) URL with a host."""
        if not v.strip():
            raise ValueError("Article URL is required")
        parsed = urlparse(v.strip())
        if parsed.scheme.lower() not in {"http", "https"} or not parsed.netloc:
            raise ValueError("Article URL is not valid")
        return v.strip()

    @field_validator("image_url")
    @classmethod
    def normalize_image_url(cls, v: Optional[str]) -> Optional[str]:
        """Treat blank image URLs as absent."""
        if v is None or not v.strip():
            return None
        return v.strip()

    @property
    def has_image(self) -> bool:
        return bool(self.image_url)

    class Config:
        json_schema_extra = {
            "examples": [
                {
                    "id": "6f1c2a4e-0d55-5b63-9d7e-3f1f0b0c2a11",
                    "title": "Chipmakers brace for another volatile quarter",
                    "author": "Jane Doe",
                    "published_at": "2025-09-12T08:30:00+00:00",
                    "content": "Shares of the largest chipmakers...",
                    "image_url": "https://cdn.example.com/chips.jpg",
                    "url": "https://news.example.com/markets/chips",
                    "is_bookmarked": False,
                    "is_cached": True,
                }
            ]
        }


def validate_article(data: object) -> Article:
    """
    Build (or rebuild) an Article, raising the cache's own validation error.

    Accepts a mapping or an existing model; models are re-validated from
    their dumped fields, so copies made with model_copy/model_construct
    are checked too.

    Raises:
        ArticleValidationError: Missing id/title/url or an invalid URL
    """
    if isinstance(data, BaseModel):
        payload = data.model_dump()
    else:
        payload = data
    try:
        return Article.model_validate(payload)
    except ValidationError as exc:
        messages = "; ".join(str(error["msg"]) for error in exc.errors())
        raise ArticleValidationError(messages, payload=payload) from exc


# ============================================================================
# Persisted records
# ============================================================================

class CachedArticleRecord(Article):
    """
    Persisted superset of Article held by the ArticleStore.

    cached_at is set on first persist and never changed by later upserts.
    bookmarked_at is stamped when the flag turns on and left in place when
    it turns off (BookmarkIndex is authoritative for membership).
    """
    is_cached: bool = True
    cached_at: datetime = Field(default_factory=utc_now)
    bookmarked_at: Optional[datetime] = None

    def to_article(self) -> Article:
        return Article(**self.model_dump(exclude={"cached_at", "bookmarked_at"}))


class BookmarkRecord(BaseModel):
    """
    One saved-for-later article. Existence of the row is bookmark membership.
    """
    id: str
    title: str
    author: Optional[str] = None
    content: Optional[str] = None
    url: str
    image_url: Optional[str] = None
    published_at: datetime
    bookmarked_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_article(cls, article: Article, bookmarked_at: datetime) -> "BookmarkRecord":
        return cls(
            id=article.id,
            title=article.title,
            author=article.author,
            content=article.content,
            url=article.url,
            image_url=article.image_url,
            published_at=article.published_at,
            bookmarked_at=bookmarked_at,
        )

    def to_article(self) -> Article:
        return Article(
            id=self.id,
            title=self.title,
            author=self.author,
            published_at=self.published_at,
            content=self.content,
            image_url=self.image_url,
            url=self.url,
            is_bookmarked=True,
            is_cached=True,
        )


class UpsertResult(BaseModel):
    """Outcome of one ArticleStore.upsert batch."""
    inserted: List[str] = Field(default_factory=list)
    updated: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)

    @property
    def persisted(self) -> List[str]:
        return self.inserted + self.updated


# ============================================================================
# Sync state
# ============================================================================

class SyncState(BaseModel):
    """
    Snapshot of the coordinator state machine.

    Loaded(online) and Loaded(offline) are both LOADED, told apart by `online`.
    """
    phase: SyncPhase = SyncPhase.IDLE
    online: Optional[bool] = None
    error: Optional[str] = None
    sync_id: Optional[str] = None

    @property
    def is_offline(self) -> bool:
        return self.phase == SyncPhase.LOADED and self.online is False


# ============================================================================
# Fetch / Network Logging
# ============================================================================

class FetchLog(BaseModel):
    """
    Log entry for a single outbound request (feed or image).
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    url: str

    status_code: Optional[int] = None
    latency_ms: Optional[int] = None
    bytes_received: Optional[int] = None

    error_code: Optional[FetchErrorCode] = None

    created_at: datetime = Field(default_factory=utc_now)
    sync_id: Optional[str] = None
