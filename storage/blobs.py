"""Content-addressed on-disk blob cache for article images."""

from __future__ import annotations

import hashlib
import os
import threading
from pathlib import Path
from typing import Optional
from uuid import uuid4

from core.interfaces import BlobStore
from core.structured_logging import emit_error_event

_TEMP_SUFFIX = ".part"


def blob_digest(key: str) -> str:
    """Return the SHA-256 hex digest used as the on-disk filename for key."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


class ContentAddressedBlobStore(BlobStore):
    """
    Map URL strings to files under cache_dir named by SHA-256(url).

    First write wins: put() never overwrites an existing blob. Writes go to
    a temp file that is renamed into place, so readers never observe a
    partial blob. All I/O errors are logged and absorbed.
    """

    def __init__(self, cache_dir: str | Path) -> None:
        self.cache_dir = Path(cache_dir)
        self._lock = threading.Lock()
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            self._log_error("create_dir", str(self.cache_dir), exc)

    def path_for(self, key: str) -> Path:
        return self.cache_dir / blob_digest(key)

    @staticmethod
    def _log_error(operation: str, key: str, exc: OSError) -> None:
        emit_error_event(
            "blob_store_io_error",
            exc,
            component="blob_store",
            operation=operation,
            key=key,
        )

    def put(self, key: str, data: bytes) -> None:
        target = self.path_for(key)
        temp = target.with_name(f"{target.name}.{uuid4().hex}{_TEMP_SUFFIX}")
        with self._lock:
            if target.exists():
                return
            try:
                temp.write_bytes(data)
                os.replace(temp, target)
            except OSError as exc:
                self._log_error("put", key, exc)
                if temp.exists():
                    temp.unlink()

    def get(self, key: str) -> Optional[bytes]:
        target = self.path_for(key)
        try:
            return target.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            self._log_error("get", key, exc)
            return None

    def contains(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def remove(self, key: str) -> None:
        with self._lock:
            try:
                self.path_for(key).unlink(missing_ok=True)
            except OSError as exc:
                self._log_error("remove", key, exc)

    def _iter_blob_files(self):
        try:
            entries = list(self.cache_dir.iterdir())
        except OSError as exc:
            self._log_error("list", str(self.cache_dir), exc)
            return
        for entry in entries:
            if entry.is_file():
                yield entry

    def clear(self) -> None:
        with self._lock:
            for entry in self._iter_blob_files():
                try:
                    entry.unlink(missing_ok=True)
                except OSError as exc:
                    self._log_error("clear", entry.name, exc)

    def size_bytes(self) -> int:
        total = 0
        for entry in self._iter_blob_files():
            if entry.name.endswith(_TEMP_SUFFIX):
                continue
            try:
                total += entry.stat().st_size
            except OSError as exc:
                self._log_error("stat", entry.name, exc)
        return total
