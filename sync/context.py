"""Single-writer execution context for store access and state transitions."""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, TypeVar

T = TypeVar("T")


class MainContext:
    """
    One worker thread that owns every store write and state mutation.

    Work arriving from other threads (feed completions, connectivity
    callbacks, caller requests) is queued here and runs strictly in order.
    """

    def __init__(self, name: str = "sync-main") -> None:
        self.name = name
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._local = threading.local()

    def _run(self, fn: Callable[..., T], args: tuple[Any, ...], kwargs: dict[str, Any]) -> T:
        self._local.active = True
        try:
            return fn(*args, **kwargs)
        finally:
            self._local.active = False

    def is_current(self) -> bool:
        """True when called from the context's own worker thread."""
        return bool(getattr(self._local, "active", False))

    def submit(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Future:
        """
        Queue fn on the context and return its future.

        Raises:
            RuntimeError: The context has been closed
        """
        return self._executor.submit(self._run, fn, args, kwargs)

    def close(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
