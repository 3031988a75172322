"""
Bounded connection pool.

Hands out connections for single operations and takes them back. Invariant:
in_use + idle <= size. When the pool is exhausted, acquire blocks until a
release or until its deadline, then raises PoolExhaustedError (timeout=0 is
fail-fast). The condition lock only guards bookkeeping; connection creation,
health checks and closes run outside it.

Includes health-check on checkout (for connections idle longer than
ping_idle_threshold) and max-age eviction.
"""

import logging
import threading
import time
from collections.abc import Callable
from typing import Any, NamedTuple

from datahub.errors import HubConnectionError, PoolClosedError, PoolExhaustedError

from .connect import close_quietly
from .health import health_check

_log = logging.getLogger(__name__)

_DEFAULT_MAX_AGE_SEC = 600  # 10 minutes
_PING_IDLE_THRESHOLD = 30.0  # only ping connections idle longer than this (seconds)


class _PoolEntry(NamedTuple):
    conn: Any
    created_at: float  # time.monotonic() when the connection was opened
    last_used: float   # time.monotonic() when last returned to pool


class ConnectionPool:
    """Thread-safe pool of connections produced by *provider*."""

    def __init__(
        self,
        provider: Callable[[], Any],
        size: int,
        *,
        acquire_timeout: float | None = None,
        max_age: float = _DEFAULT_MAX_AGE_SEC,
        ping_idle_threshold: float = _PING_IDLE_THRESHOLD,
    ) -> None:
        if size < 1:
            raise ValueError(f"pool size must be >= 1, got {size}")
        self._provider = provider
        self._size = size
        self._acquire_timeout = acquire_timeout
        self._max_age = float(max_age)
        self._ping_idle_threshold = float(ping_idle_threshold)

        self._cond = threading.Condition(threading.Lock())
        self._idle: list[_PoolEntry] = []
        self._borrowed: dict[int, float] = {}  # id(conn) -> created_at
        self._in_use = 0
        self._peak_in_use = 0
        self._closed = False

    @property
    def size(self) -> int:
        return self._size

    @property
    def closed(self) -> bool:
        return self._closed

    def acquire(self, timeout: float | None = None) -> Any:
        """
        Borrow a connection; the caller must ``release`` it.

        - timeout: seconds to wait when exhausted; None uses the pool default
          (which may itself be None = wait forever); 0 fails immediately.
        """
        if timeout is None:
            timeout = self._acquire_timeout
        deadline = None if timeout is None else time.monotonic() + timeout

        entry = self._checkout(deadline)
        if entry is not None and self._is_fresh(entry):
            self._mark_borrowed(entry.conn, entry.created_at)
            return entry.conn
        if entry is not None:
            # stale: its slot stays reserved for the replacement
            close_quietly(entry.conn)
        return self._open()

    def release(self, conn: Any) -> None:
        """Return *conn*; unusable connections (or any after close_all) are closed."""
        usable = conn.is_usable()
        with self._cond:
            created_at = self._borrowed.pop(id(conn), None)
            if created_at is None:
                raise ValueError(f"{conn!r} was not acquired from this pool")
            self._in_use -= 1
            keep = usable and not self._closed
            if keep:
                self._idle.append(_PoolEntry(conn, created_at, time.monotonic()))
            self._cond.notify()
        if not keep:
            _log.debug("pool discard %r (usable=%s closed=%s)", conn, usable, self._closed)
            close_quietly(conn)

    def prewarm(self, n: int) -> None:
        """Open up to *n* connections now so provider failures surface early."""
        conns = []
        try:
            for _ in range(min(n, self._size)):
                conns.append(self.acquire(timeout=0))
        finally:
            for c in conns:
                self.release(c)

    def close_all(self) -> None:
        """Close idle connections and refuse further acquires. Idempotent."""
        with self._cond:
            self._closed = True
            entries, self._idle = self._idle, []
            self._cond.notify_all()
        for e in entries:
            close_quietly(e.conn)
        if entries:
            _log.debug("pool closed %d idle connection(s)", len(entries))

    def stats(self) -> dict[str, int]:
        """Return pool statistics for monitoring."""
        with self._cond:
            return {
                "size": self._size,
                "idle": len(self._idle),
                "in_use": self._in_use,
                "peak_in_use": self._peak_in_use,
            }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _checkout(self, deadline: float | None) -> _PoolEntry | None:
        """Take an idle entry, or reserve a slot for a new connection (None)."""
        with self._cond:
            while True:
                if self._closed:
                    raise PoolClosedError("Acquire", "pool is closed")
                if self._idle:
                    entry = self._idle.pop()
                    self._take_slot()
                    return entry
                if self._in_use < self._size:
                    self._take_slot()
                    return None
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    raise PoolExhaustedError(
                        "Acquire", f"all {self._size} connection(s) are in use"
                    )
                self._cond.wait(remaining)

    def _take_slot(self) -> None:
        self._in_use += 1
        if self._in_use > self._peak_in_use:
            self._peak_in_use = self._in_use

    def _free_slot(self) -> None:
        with self._cond:
            self._in_use -= 1
            self._cond.notify()

    def _open(self) -> Any:
        try:
            conn = self._provider()
        except Exception as e:
            self._free_slot()
            raise HubConnectionError("Acquire", e) from e
        self._mark_borrowed(conn, time.monotonic())
        _log.debug("pool opened %r", conn)
        return conn

    def _mark_borrowed(self, conn: Any, created_at: float) -> None:
        with self._cond:
            self._borrowed[id(conn)] = created_at

    def _is_fresh(self, entry: _PoolEntry) -> bool:
        now = time.monotonic()
        if now - entry.created_at > self._max_age:
            return False
        if now - entry.last_used > self._ping_idle_threshold:
            return health_check(entry.conn)
        return entry.conn.is_usable()
