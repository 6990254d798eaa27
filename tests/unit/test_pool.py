from __future__ import annotations

import threading
import time
from typing import Any, Dict, List

import pytest

from erpstore.diagnostics import CollectingSink
from erpstore.errors import ConnectionUnavailable, ErrorCategory, InvalidRelease, PoolExhausted
from erpstore.infrastructure.connection import Connection
from erpstore.infrastructure.pool import ConnectionPool

SHORT_TIMEOUT = 0.2
HOLD_SECONDS = 0.8
WORKERS = 8
ROUNDS = 25


class FakeConnection(Connection):
    """In-memory connection that records resets and closes."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._open = True
        self.resets = 0

    def _execute(self, sql: str, params: Dict[str, Any]) -> int:
        return 0

    def _query(self, sql: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        return []

    @property
    def is_open(self) -> bool:
        return self._open

    def close(self) -> None:
        self._open = False

    def _in_transaction(self) -> bool:
        return False

    def reset(self) -> None:
        self.resets += 1
        super().reset()


class FakeFactory:
    def __init__(self) -> None:
        self.created: List[FakeConnection] = []
        self._lock = threading.Lock()

    def __call__(self) -> FakeConnection:
        with self._lock:
            conn = FakeConnection(f"fake-{len(self.created)}")
            self.created.append(conn)
            return conn


@pytest.fixture
def factory() -> FakeFactory:
    return FakeFactory()


def _pool(factory, sink, max_size=2, **kwargs) -> ConnectionPool:
    return ConnectionPool(factory, max_size=max_size, acquire_timeout=SHORT_TIMEOUT, diagnostics=sink, **kwargs)


def test_connections_are_created_lazily_and_reused(factory: FakeFactory, sink: CollectingSink) -> None:
    pool = _pool(factory, sink)

    first = pool.acquire()
    pool.release(first)
    second = pool.acquire()

    assert second is first
    assert len(factory.created) == 1
    assert first.resets == 1


def test_capacity_plus_one_acquire_times_out(factory: FakeFactory, sink: CollectingSink) -> None:
    pool = _pool(factory, sink, max_size=2)
    held = [pool.acquire(), pool.acquire()]

    started = time.monotonic()
    with pytest.raises(PoolExhausted):
        pool.acquire()

    assert time.monotonic() - started >= SHORT_TIMEOUT * 0.9
    assert held[0] is not held[1]
    assert sink.categories() == [ErrorCategory.POOL_EXHAUSTED]
    assert pool.stats().checked_out == 2


def test_capacity_plus_one_concurrent_acquires_exactly_one_fails(
    factory: FakeFactory, sink: CollectingSink
) -> None:
    capacity = 3
    pool = _pool(factory, sink, max_size=capacity)
    barrier = threading.Barrier(capacity + 1)
    outcomes: List[str] = []
    lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        try:
            conn = pool.acquire(timeout=SHORT_TIMEOUT)
        except PoolExhausted:
            with lock:
                outcomes.append("exhausted")
            return
        with lock:
            outcomes.append("acquired")
        time.sleep(HOLD_SECONDS)
        pool.release(conn)

    threads = [threading.Thread(target=worker) for _ in range(capacity + 1)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("exhausted") == 1
    assert outcomes.count("acquired") == capacity
    assert len(factory.created) == capacity


def test_no_connection_is_handed_out_twice(factory: FakeFactory, sink: CollectingSink) -> None:
    pool = ConnectionPool(factory, max_size=3, acquire_timeout=5.0, diagnostics=sink)
    in_use = set()
    violations: List[str] = []
    lock = threading.Lock()

    def worker() -> None:
        for _ in range(ROUNDS):
            with pool.connection() as conn:
                with lock:
                    if conn in in_use:
                        violations.append(conn.name)
                    in_use.add(conn)
                time.sleep(0.001)
                with lock:
                    in_use.discard(conn)

    threads = [threading.Thread(target=worker) for _ in range(WORKERS)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert violations == []
    assert len(factory.created) <= 3
    stats = pool.stats()
    assert stats.checked_out == 0
    assert stats.waiting == 0
    assert not sink.entries


def test_release_unblocks_waiter(factory: FakeFactory, sink: CollectingSink) -> None:
    pool = ConnectionPool(factory, max_size=1, acquire_timeout=5.0, diagnostics=sink)
    held = pool.acquire()
    received: List[Connection] = []

    waiter = threading.Thread(target=lambda: received.append(pool.acquire()))
    waiter.start()
    _wait_for(lambda: pool.stats().waiting == 1)
    pool.release(held)
    waiter.join(timeout=5)

    assert received == [held]


def test_waiters_are_served_in_arrival_order(factory: FakeFactory, sink: CollectingSink) -> None:
    pool = ConnectionPool(factory, max_size=1, acquire_timeout=5.0, diagnostics=sink)
    held = pool.acquire()
    order: List[str] = []

    def waiter(label: str) -> None:
        conn = pool.acquire()
        order.append(label)
        pool.release(conn)

    threads = []
    for count, label in enumerate(["first", "second", "third"], start=1):
        thread = threading.Thread(target=waiter, args=(label,))
        thread.start()
        threads.append(thread)
        _wait_for(lambda: pool.stats().waiting == count)

    pool.release(held)
    for thread in threads:
        thread.join(timeout=5)

    assert order == ["first", "second", "third"]


def test_release_of_foreign_connection_is_rejected(factory: FakeFactory, sink: CollectingSink) -> None:
    pool = _pool(factory, sink)

    with pytest.raises(InvalidRelease):
        pool.release(FakeConnection("stranger"))

    assert sink.last().category is ErrorCategory.INVALID_RELEASE


def test_double_release_is_rejected(factory: FakeFactory, sink: CollectingSink) -> None:
    pool = _pool(factory, sink)
    conn = pool.acquire()
    pool.release(conn)

    with pytest.raises(InvalidRelease):
        pool.release(conn)

    assert pool.stats().available == 1


def test_factory_failure_frees_the_slot(sink: CollectingSink) -> None:
    calls = []

    def failing_factory() -> Connection:
        calls.append(1)
        raise RuntimeError("database is down")

    pool = _pool(failing_factory, sink, max_size=1)

    for _ in range(2):
        with pytest.raises(ConnectionUnavailable):
            pool.acquire()

    assert len(calls) == 2
    assert pool.stats().created == 0
    assert sink.categories() == [ErrorCategory.CONNECTION_UNAVAILABLE] * 2


def test_closed_connection_is_discarded_on_release(factory: FakeFactory, sink: CollectingSink) -> None:
    pool = _pool(factory, sink, max_size=1)
    broken = pool.acquire()
    broken.close()

    pool.release(broken)
    replacement = pool.acquire()

    assert replacement is not broken
    assert len(factory.created) == 2


def test_context_manager_releases_on_error(factory: FakeFactory, sink: CollectingSink) -> None:
    pool = _pool(factory, sink, max_size=1)

    with pytest.raises(RuntimeError):
        with pool.connection():
            raise RuntimeError("boom")

    assert pool.stats().available == 1
    assert pool.stats().checked_out == 0


def test_open_prewarms_min_size(factory: FakeFactory, sink: CollectingSink) -> None:
    pool = _pool(factory, sink, max_size=3, min_size=2).open()

    stats = pool.stats()
    assert (stats.created, stats.available) == (2, 2)


def test_open_raises_when_no_connection_can_be_created(sink: CollectingSink) -> None:
    def failing_factory() -> Connection:
        raise OSError("refused")

    pool = _pool(failing_factory, sink, max_size=2, min_size=2)

    with pytest.raises(ConnectionUnavailable):
        pool.open()


def test_close_wakes_waiters_and_closes_connections(factory: FakeFactory, sink: CollectingSink) -> None:
    pool = ConnectionPool(factory, max_size=2, acquire_timeout=5.0, diagnostics=sink)
    idle, held = pool.acquire(), pool.acquire()
    pool.release(idle)
    pool.acquire()  # take the idle one back so the next caller waits
    errors: List[BaseException] = []

    def waiter() -> None:
        try:
            pool.acquire()
        except ConnectionUnavailable as exc:
            errors.append(exc)

    thread = threading.Thread(target=waiter)
    thread.start()
    _wait_for(lambda: pool.stats().waiting == 1)
    pool.close()
    thread.join(timeout=5)

    assert len(errors) == 1
    pool.release(held)
    assert not held.is_open
    assert pool.closed
    with pytest.raises(ConnectionUnavailable):
        pool.acquire()


def test_invalid_sizes_are_rejected(factory: FakeFactory) -> None:
    with pytest.raises(ValueError):
        ConnectionPool(factory, max_size=0)
    with pytest.raises(ValueError):
        ConnectionPool(factory, max_size=1, min_size=2)


def _wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        time.sleep(0.005)
