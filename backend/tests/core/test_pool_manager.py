"""Unit tests for core.pool.manager.ConnectionPool with fake connections."""

import threading
import time
from unittest.mock import MagicMock

import pytest

from datahub.core.pool import ConnectionPool
from datahub.errors import HubConnectionError, PoolClosedError, PoolExhaustedError


class FakeConn:
    def __init__(self, n: int) -> None:
        self.n = n
        self.usable = True
        self.closed = False
        self.pings = 0
        self.ping_error: Exception | None = None

    def __repr__(self) -> str:
        return f"<FakeConn {self.n}>"

    def is_usable(self) -> bool:
        return self.usable and not self.closed

    def ping(self) -> None:
        self.pings += 1
        if self.ping_error is not None:
            raise self.ping_error

    def close(self) -> None:
        self.closed = True


class FakeProvider:
    def __init__(self) -> None:
        self.made: list[FakeConn] = []
        self._lock = threading.Lock()

    def __call__(self) -> FakeConn:
        with self._lock:
            conn = FakeConn(len(self.made))
            self.made.append(conn)
            return conn


def test_acquire_opens_lazily_and_reuses() -> None:
    provider = FakeProvider()
    pool = ConnectionPool(provider, 3)
    assert provider.made == []

    c1 = pool.acquire()
    pool.release(c1)
    c2 = pool.acquire()
    assert c2 is c1
    assert len(provider.made) == 1
    pool.release(c2)
    assert pool.stats() == {"size": 3, "idle": 1, "in_use": 0, "peak_in_use": 1}


def test_exhausted_fail_fast_then_release() -> None:
    pool = ConnectionPool(FakeProvider(), 2)
    a, b = pool.acquire(), pool.acquire()
    with pytest.raises(PoolExhaustedError, match="fail Acquire"):
        pool.acquire(timeout=0)
    pool.release(a)
    assert pool.acquire(timeout=0) is a
    pool.release(b)


def test_acquire_times_out_without_leaking() -> None:
    pool = ConnectionPool(FakeProvider(), 1, acquire_timeout=0.05)
    held = pool.acquire()
    started = time.monotonic()
    with pytest.raises(PoolExhaustedError):
        pool.acquire()
    assert time.monotonic() - started >= 0.04
    assert pool.stats()["in_use"] == 1
    pool.release(held)
    assert pool.stats()["in_use"] == 0


def test_blocked_acquire_wakes_on_release() -> None:
    pool = ConnectionPool(FakeProvider(), 1)
    held = pool.acquire()
    got: list = []

    t = threading.Thread(target=lambda: got.append(pool.acquire(timeout=5)))
    t.start()
    time.sleep(0.05)
    assert got == []
    pool.release(held)
    t.join(timeout=5)

    assert got == [held]
    pool.release(held)


def test_release_unusable_discards_and_frees_capacity() -> None:
    provider = FakeProvider()
    pool = ConnectionPool(provider, 1)
    c = pool.acquire()
    c.usable = False
    pool.release(c)

    assert c.closed
    assert pool.stats()["idle"] == 0
    c2 = pool.acquire(timeout=0)
    assert c2 is not c
    assert len(provider.made) == 2
    pool.release(c2)


def test_provider_failure_frees_slot() -> None:
    provider = MagicMock(side_effect=OSError("refused"))
    pool = ConnectionPool(provider, 1)
    with pytest.raises(HubConnectionError, match="refused") as ei:
        pool.acquire()
    assert isinstance(ei.value.__cause__, OSError)
    assert pool.stats()["in_use"] == 0

    provider.side_effect = None
    provider.return_value = FakeConn(1)
    assert pool.acquire(timeout=0) is provider.return_value


def test_close_all() -> None:
    pool = ConnectionPool(FakeProvider(), 2)
    idle = pool.acquire()
    busy = pool.acquire()
    pool.release(idle)

    pool.close_all()
    pool.close_all()

    assert idle.closed
    assert not busy.closed
    with pytest.raises(PoolClosedError):
        pool.acquire()
    pool.release(busy)
    assert busy.closed
    assert pool.closed


def test_close_all_wakes_waiters() -> None:
    pool = ConnectionPool(FakeProvider(), 1)
    pool.acquire()
    errors: list[Exception] = []

    def _wait() -> None:
        try:
            pool.acquire(timeout=5)
        except PoolClosedError as e:
            errors.append(e)

    t = threading.Thread(target=_wait)
    t.start()
    time.sleep(0.05)
    pool.close_all()
    t.join(timeout=5)
    assert len(errors) == 1


def test_max_age_eviction() -> None:
    provider = FakeProvider()
    pool = ConnectionPool(provider, 1, max_age=0.01)
    old = pool.acquire()
    pool.release(old)
    time.sleep(0.03)

    new = pool.acquire()
    assert new is not old
    assert old.closed
    pool.release(new)


def test_idle_connection_is_pinged_and_replaced_when_dead() -> None:
    provider = FakeProvider()
    pool = ConnectionPool(provider, 1, ping_idle_threshold=0)
    c = pool.acquire()
    pool.release(c)

    assert pool.acquire() is c
    assert c.pings == 1
    c.ping_error = RuntimeError("server closed the connection")
    pool.release(c)

    c2 = pool.acquire()
    assert c2 is not c
    assert c.closed
    pool.release(c2)


def test_prewarm_opens_connections() -> None:
    provider = FakeProvider()
    pool = ConnectionPool(provider, 2)
    pool.prewarm(5)
    assert len(provider.made) == 2
    assert pool.stats()["idle"] == 2


def test_release_foreign_connection() -> None:
    pool = ConnectionPool(FakeProvider(), 1)
    with pytest.raises(ValueError):
        pool.release(FakeConn(99))


def test_invalid_size() -> None:
    with pytest.raises(ValueError):
        ConnectionPool(FakeProvider(), 0)


def test_concurrent_acquire_never_exceeds_capacity() -> None:
    """K threads over a pool of P < K: at no instant more than P borrowed."""
    provider = FakeProvider()
    pool = ConnectionPool(provider, 3, acquire_timeout=10)
    lock = threading.Lock()
    current = 0
    highest = 0

    def _work() -> None:
        nonlocal current, highest
        for _ in range(5):
            conn = pool.acquire()
            try:
                with lock:
                    current += 1
                    highest = max(highest, current)
                time.sleep(0.002)
                with lock:
                    current -= 1
            finally:
                pool.release(conn)

    threads = [threading.Thread(target=_work) for _ in range(12)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert highest <= 3
    assert len(provider.made) <= 3
    stats = pool.stats()
    assert stats["peak_in_use"] <= 3
    assert stats["in_use"] == 0
    assert stats["idle"] == len(provider.made)
