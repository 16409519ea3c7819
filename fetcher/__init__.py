"""Fetcher subsystem: remote feed client and background image caching."""

from fetcher.feed import NewsApiFeedClient, article_from_payload, parse_feed_payload
from fetcher.images import ImagePrefetcher
from fetcher.logging import emit_fetch_log

__all__ = [
    "NewsApiFeedClient",
    "article_from_payload",
    "parse_feed_payload",
    "ImagePrefetcher",
    "emit_fetch_log",
]
