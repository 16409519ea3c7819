"""
Default cache configuration for reader-cache.

These settings are IMMUTABLE at runtime. Values that differ per
installation (database path, cache directory, API key) are passed in by the
application bootstrap instead of living here.

Design: the cache is best-effort for images and durable for article text.
"""

from typing import Set


class CacheConfig:
    """
    Immutable cache, feed and connectivity settings.
    """

    # ========================================================================
    # Article cache
    # ========================================================================

    # Age-based cleanup threshold; bookmarked articles are exempt
    DEFAULT_EVICTION_DAYS: int = 30
    """Records cached longer ago than this are eligible for cleanup."""

    # Rough text footprint per cached record for size estimates
    ESTIMATED_RECORD_BYTES: int = 2 * 1024
    """Heuristic bytes per cached article (text only)."""

    DEFAULT_DB_FILENAME: str = "reader_cache.db"
    """SQLite file used when the host does not pass an explicit path."""

    # ========================================================================
    # Image blob cache
    # ========================================================================

    IMAGE_CACHE_DIRNAME: str = "ImageCache"
    """Subdirectory of the cache root holding content-addressed image blobs."""

    MAX_IMAGE_BYTES: int = 10_000_000
    """Images larger than this are not cached (10 MB)."""

    IMAGE_PREFETCH_WORKERS: int = 2
    """Background threads used for fire-and-forget image caching."""

    IMAGE_FETCH_TIMEOUT_SECONDS: int = 20
    """Maximum time to wait for a single image download."""

    # ========================================================================
    # Remote feed
    # ========================================================================

    FEED_BASE_URL: str = "https://newsapi.org/v2/top-headlines"
    """Top-headlines endpoint of the remote feed."""

    FEED_COUNTRY: str = "us"
    FEED_CATEGORY: str = "technology"

    FEED_TIMEOUT_SECONDS: int = 30
    """Maximum time to wait for the feed response (single attempt, no retry)."""

    ALLOWED_PROTOCOLS: Set[str] = {"http", "https"}
    """Only HTTP(S) is fetched, for the feed and for images."""

    USER_AGENT: str = "reader-cache/0.1"
    """User-Agent header sent with every outbound request."""

    API_KEY_ENV_VAR: str = "NEWS_API_KEY"
    """Environment variable consulted when no API key is passed explicitly."""

    # ========================================================================
    # Connectivity probe
    # ========================================================================

    CONNECTIVITY_PROBE_HOST: str = "1.1.1.1"
    CONNECTIVITY_PROBE_PORT: int = 53
    CONNECTIVITY_PROBE_TIMEOUT_SECONDS: float = 3.0
    CONNECTIVITY_PROBE_INTERVAL_SECONDS: float = 10.0

    @classmethod
    def validate(cls) -> None:
        """
        Validate configuration at startup.

        Raises:
            AssertionError: If any constraint is violated.
        """
        assert cls.DEFAULT_EVICTION_DAYS >= 1, "DEFAULT_EVICTION_DAYS must be >= 1"

        assert cls.ESTIMATED_RECORD_BYTES > 0, "ESTIMATED_RECORD_BYTES must be > 0"

        assert cls.MAX_IMAGE_BYTES > 0, "MAX_IMAGE_BYTES must be > 0"

        assert cls.IMAGE_PREFETCH_WORKERS >= 1, "IMAGE_PREFETCH_WORKERS must be >= 1"

        assert cls.FEED_TIMEOUT_SECONDS > 0, "FEED_TIMEOUT_SECONDS must be > 0"

        assert (
            cls.ALLOWED_PROTOCOLS <= {"http", "https"}
        ), "ALLOWED_PROTOCOLS may only contain http/https"

        assert (
            cls.CONNECTIVITY_PROBE_INTERVAL_SECONDS > 0
        ), "CONNECTIVITY_PROBE_INTERVAL_SECONDS must be > 0"


# Validate at module import time
CacheConfig.validate()
