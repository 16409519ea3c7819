"""Fire-and-forget image caching into the blob store."""

from __future__ import annotations

import time
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from urllib.parse import urlparse

import requests

from core.config import CacheConfig
from core.interfaces import BlobStore
from core.models import FetchErrorCode, FetchLog
from core.structured_logging import emit_error_event
from fetcher.logging import emit_fetch_log


class BodyLimitExceeded(Exception):
    """Raised when an image body exceeds the configured limit."""


def _read_body_with_limit(response: requests.Response, max_bytes: int) -> bytes:
    """Read response body up to the configured maximum size."""
    chunks: list[bytes] = []
    total = 0
    for chunk in response.iter_content(chunk_size=8192):
        if not chunk:
            continue
        total += len(chunk)
        if total > max_bytes:
            raise BodyLimitExceeded(f"image exceeds {max_bytes} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


class ImagePrefetcher:
    """
    Download article images on background threads and store them by URL.

    Nothing here is a correctness dependency: every failure is logged and
    the image is simply not cached.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        session: requests.Session | None = None,
        max_workers: int = CacheConfig.IMAGE_PREFETCH_WORKERS,
        timeout_seconds: int = CacheConfig.IMAGE_FETCH_TIMEOUT_SECONDS,
        max_bytes: int = CacheConfig.MAX_IMAGE_BYTES,
        user_agent: str = CacheConfig.USER_AGENT,
        log_fetches: bool = True,
    ) -> None:
        self.blob_store = blob_store
        self.session = session or requests.Session()
        self.timeout_seconds = timeout_seconds
        self.max_bytes = max_bytes
        self.user_agent = user_agent
        self.log_fetches = log_fetches
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="image-prefetch",
        )

    def prefetch(self, urls: Iterable[str], sync_id: str | None = None) -> list[Future]:
        """Schedule a fetch-then-put for every uncached http(s) URL."""
        futures: list[Future] = []
        seen: set[str] = set()
        for url in urls:
            if not url or url in seen:
                continue
            seen.add(url)
            if urlparse(url).scheme.lower() not in CacheConfig.ALLOWED_PROTOCOLS:
                continue
            if self.blob_store.contains(url):
                continue
            futures.append(self._executor.submit(self.cache_image, url, sync_id))
        return futures

    def cache_image(self, url: str, sync_id: str | None = None) -> bool:
        """Fetch one image and store it; returns True when a blob was written."""
        start = time.monotonic()
        error_code: FetchErrorCode | None = None
        status_code: int | None = None
        body = b""

        try:
            response = self.session.get(
                url,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout_seconds,
                stream=True,
            )
            try:
                status_code = response.status_code
                if status_code != 200:
                    error_code = FetchErrorCode.HTTP_STATUS
                else:
                    body = _read_body_with_limit(response, self.max_bytes)
            finally:
                response.close()
        except BodyLimitExceeded:
            error_code = FetchErrorCode.BODY_TOO_LARGE
        except requests.Timeout:
            error_code = FetchErrorCode.TIMEOUT
        except requests.RequestException as exc:
            error_code = FetchErrorCode.FETCH_ERROR
            emit_error_event(
                "image_fetch_error", exc, component="image_prefetch", sync_id=sync_id, url=url
            )

        if self.log_fetches:
            emit_fetch_log(
                FetchLog(
                    url=url,
                    sync_id=sync_id,
                    status_code=status_code,
                    error_code=error_code,
                    bytes_received=len(body),
                    latency_ms=int((time.monotonic() - start) * 1000),
                ),
                kind="image",
            )

        if error_code is not None or not body:
            return False
        self.blob_store.put(url, body)
        return True

    def close(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
