"""Connectivity monitors: host-driven and TCP-probe based."""

from __future__ import annotations

import socket
import threading
from collections.abc import Callable

from core.config import CacheConfig
from core.interfaces import ConnectivityMonitor
from core.models import ConnectionType
from core.structured_logging import emit_error_event, emit_json_event


class _CallbackRegistry:
    """Thread-safe list of transition callbacks."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[bool], None]] = []

    def add(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        with self._lock:
            self._callbacks.append(callback)

        def _remove() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return _remove

    def fire(self, connected: bool) -> None:
        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(connected)
            except Exception as exc:
                emit_error_event(
                    "connectivity_callback_error",
                    exc,
                    component="connectivity",
                    connected=connected,
                )


class ManualConnectivityMonitor(ConnectivityMonitor):
    """
    Connectivity state pushed by the host (OS reachability hooks, tests).

    Callbacks fire on the thread that calls set_connected and only when the
    connected flag actually changes.
    """

    def __init__(
        self,
        connected: bool = True,
        connection_type: ConnectionType = ConnectionType.UNKNOWN,
    ) -> None:
        self._lock = threading.Lock()
        self._connected = connected
        self._connection_type = connection_type
        self._callbacks = _CallbackRegistry()

    def is_connected(self) -> bool:
        with self._lock:
            return self._connected

    @property
    def connection_type(self) -> ConnectionType:
        with self._lock:
            return self._connection_type

    def on_change(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        return self._callbacks.add(callback)

    def set_connected(
        self,
        connected: bool,
        connection_type: ConnectionType | None = None,
    ) -> None:
        with self._lock:
            changed = connected != self._connected
            self._connected = connected
            if connection_type is not None:
                self._connection_type = connection_type
        if changed:
            self._callbacks.fire(connected)


class SocketProbeMonitor(ConnectivityMonitor):
    """
    Periodic TCP reachability probe.

    Call refresh() for a one-shot check or start() to poll on a daemon
    thread. The link type cannot be observed from a socket, so it is
    always reported as unknown.
    """

    def __init__(
        self,
        host: str = CacheConfig.CONNECTIVITY_PROBE_HOST,
        port: int = CacheConfig.CONNECTIVITY_PROBE_PORT,
        timeout_seconds: float = CacheConfig.CONNECTIVITY_PROBE_TIMEOUT_SECONDS,
        interval_seconds: float = CacheConfig.CONNECTIVITY_PROBE_INTERVAL_SECONDS,
        connect_fn: Callable[[tuple[str, int], float], socket.socket] | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.timeout_seconds = timeout_seconds
        self.interval_seconds = interval_seconds
        self._connect = connect_fn or socket.create_connection

        self._lock = threading.Lock()
        self._connected = False
        self._callbacks = _CallbackRegistry()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def is_connected(self) -> bool:
        with self._lock:
            return self._connected

    @property
    def connection_type(self) -> ConnectionType:
        return ConnectionType.UNKNOWN

    def on_change(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        return self._callbacks.add(callback)

    def _probe(self) -> bool:
        try:
            sock = self._connect((self.host, self.port), self.timeout_seconds)
        except OSError:
            return False
        sock.close()
        return True

    def refresh(self) -> bool:
        """Probe once, update state, fire callbacks on a transition."""
        connected = self._probe()
        with self._lock:
            changed = connected != self._connected
            self._connected = connected
        if changed:
            emit_json_event(
                "connectivity_changed",
                component="connectivity",
                connected=connected,
                probe=f"{self.host}:{self.port}",
            )
            self._callbacks.fire(connected)
        return connected

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self.refresh()
        self._thread = threading.Thread(
            target=self._run,
            name="connectivity-probe",
            daemon=True,
        )
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.refresh()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval_seconds + self.timeout_seconds)
            self._thread = None
