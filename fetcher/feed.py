"""Remote feed client: one HTTP fetch + JSON decode per call."""

from __future__ import annotations

import json
import time
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import jsonschema
import requests

from core.config import CacheConfig
from core.errors import ArticleValidationError, FeedDecodeError, NetworkError
from core.interfaces import FeedClient
from core.models import Article, FetchErrorCode, FetchLog, utc_now, validate_article
from core.structured_logging import emit_json_event
from fetcher.logging import emit_fetch_log
from quality.urlnorm import article_id_for_url

FEED_RESPONSE_SCHEMA = json.loads(
    (Path(__file__).resolve().parent / "feed_response.schema.json").read_text(encoding="utf-8")
)


def _parse_published_at(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp; unparsable or missing values fall back to now."""
    if not isinstance(value, str) or not value.strip():
        return utc_now()
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return utc_now()


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def article_from_payload(payload: Any) -> Article:
    """
    Map one feed item to an Article.

    The id is derived from the canonical URL here, once, at ingestion.

    Raises:
        ArticleValidationError: Missing title/url or an invalid URL
    """
    if not isinstance(payload, dict):
        raise ArticleValidationError("Article payload must be an object", payload=payload)

    url = _optional_text(payload.get("url"))
    if url is None:
        raise ArticleValidationError("Article URL is required", payload=payload)

    try:
        return validate_article(
            {
                "id": article_id_for_url(url),
                "title": str(payload.get("title") or ""),
                "author": _optional_text(payload.get("author")),
                "published_at": _parse_published_at(payload.get("publishedAt")),
                "content": _optional_text(payload.get("content")),
                "image_url": _optional_text(payload.get("urlToImage")),
                "url": url,
                "is_bookmarked": None,
                "is_cached": False,
            }
        )
    except ArticleValidationError as exc:
        raise ArticleValidationError(str(exc), payload=payload) from exc


def parse_feed_payload(data: Any) -> tuple[list[Article], list[ArticleValidationError]]:
    """
    Validate the response envelope and map each item.

    Returns:
        (articles, rejections) in feed order

    Raises:
        FeedDecodeError: Envelope does not match the feed response schema
    """
    try:
        jsonschema.validate(data, FEED_RESPONSE_SCHEMA)
    except jsonschema.ValidationError as exc:
        raise FeedDecodeError(f"Feed response failed validation: {exc.message}") from exc

    articles: list[Article] = []
    rejections: list[ArticleValidationError] = []
    for item in data["articles"]:
        try:
            articles.append(article_from_payload(item))
        except ArticleValidationError as exc:
            rejections.append(exc)
    return articles, rejections


class NewsApiFeedClient(FeedClient):
    """Top-headlines feed over requests; single attempt, no retry."""

    def __init__(
        self,
        api_key: str,
        base_url: str = CacheConfig.FEED_BASE_URL,
        country: str = CacheConfig.FEED_COUNTRY,
        category: str = CacheConfig.FEED_CATEGORY,
        session: requests.Session | None = None,
        timeout_seconds: int = CacheConfig.FEED_TIMEOUT_SECONDS,
        user_agent: str = CacheConfig.USER_AGENT,
        log_fetches: bool = True,
    ) -> None:
        if urlparse(base_url).scheme.lower() not in CacheConfig.ALLOWED_PROTOCOLS:
            raise ValueError(f"Unsupported feed URL: {base_url}")
        self.api_key = api_key
        self.base_url = base_url
        self.country = country
        self.category = category
        self.session = session or requests.Session()
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent
        self.log_fetches = log_fetches

    def _log(self, fetch_log: FetchLog) -> None:
        if self.log_fetches:
            emit_fetch_log(fetch_log, kind="feed")

    def _fail(
        self,
        start: float,
        error_code: FetchErrorCode,
        status_code: int | None = None,
        sync_id: str | None = None,
    ) -> None:
        self._log(
            FetchLog(
                url=self.base_url,
                sync_id=sync_id,
                status_code=status_code,
                error_code=error_code,
                latency_ms=int((time.monotonic() - start) * 1000),
            )
        )

    def fetch_articles(self, sync_id: str | None = None) -> list[Article]:
        start = time.monotonic()
        params = {"country": self.country, "category": self.category, "apiKey": self.api_key}

        try:
            response = self.session.get(
                self.base_url,
                params=params,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout_seconds,
            )
        except requests.Timeout as exc:
            self._fail(start, FetchErrorCode.TIMEOUT, sync_id=sync_id)
            raise NetworkError(f"Feed request timed out: {exc}") from exc
        except requests.RequestException as exc:
            self._fail(start, FetchErrorCode.FETCH_ERROR, sync_id=sync_id)
            raise NetworkError(f"Feed request failed: {exc}") from exc

        if response.status_code != 200:
            self._fail(
                start,
                FetchErrorCode.HTTP_STATUS,
                status_code=response.status_code,
                sync_id=sync_id,
            )
            raise NetworkError(
                f"Feed responded with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        body = response.content or b""
        try:
            data = json.loads(body)
        except ValueError as exc:
            self._fail(
                start,
                FetchErrorCode.DECODE_ERROR,
                status_code=response.status_code,
                sync_id=sync_id,
            )
            raise FeedDecodeError(f"Feed body is not valid JSON: {exc}") from exc

        try:
            articles, rejections = parse_feed_payload(data)
        except FeedDecodeError:
            self._fail(
                start,
                FetchErrorCode.DECODE_ERROR,
                status_code=response.status_code,
                sync_id=sync_id,
            )
            raise

        for rejection in rejections:
            payload = rejection.payload if isinstance(rejection.payload, dict) else {}
            emit_json_event(
                "feed_article_rejected",
                sync_id=sync_id,
                level="warning",
                component="feed",
                url=payload.get("url"),
                title=payload.get("title"),
                error=str(rejection),
            )

        self._log(
            FetchLog(
                url=self.base_url,
                sync_id=sync_id,
                status_code=response.status_code,
                bytes_received=len(body),
                latency_ms=int((time.monotonic() - start) * 1000),
            )
        )
        return articles
