"""Error taxonomy shared by the stores, the feed client and the coordinator."""

from __future__ import annotations


class ReaderCacheError(Exception):
    """Base class for reader-cache errors."""


class ArticleValidationError(ReaderCacheError, ValueError):
    """Raised when an article is missing id/title/url or has an invalid URL."""

    def __init__(self, message: str, payload: object | None = None) -> None:
        super().__init__(message)
        self.payload = payload


class PersistenceError(ReaderCacheError):
    """Raised when a store read/write could not proceed at all."""

    def __init__(self, message: str, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation


class NetworkError(ReaderCacheError):
    """Raised by the feed client when a fetch attempt fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FeedDecodeError(NetworkError):
    """Raised when the feed response body is not a valid feed payload."""


class NotFoundError(ReaderCacheError):
    """An id has no record. Stores treat this as a no-op and do not raise it."""
