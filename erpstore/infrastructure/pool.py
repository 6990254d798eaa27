"""
Bounded, thread-safe pool of :class:`~erpstore.infrastructure.connection.Connection` objects.

Connections are created lazily up to ``max_size`` (``open()`` pre-warms
``min_size`` of them) and handed out exclusively: a connection is either
available or checked out to exactly one caller. When none is available,
``acquire()`` blocks until a release or until the acquire timeout elapses,
then raises :class:`~erpstore.errors.PoolExhausted`.

Waiters are served in arrival order (one ticket queue under a single
condition variable), so a bounded number of releases always unblocks any
given waiter.

Example
-------
    pool = ConnectionPool(lambda: SQLiteConnection("erp.db"), max_size=4)
    with pool.connection() as conn:
        conn.execute("DELETE FROM payments WHERE id = :id", params)
"""

from __future__ import annotations

import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Deque, Generator, List, Optional, Set

from erpstore.diagnostics import DiagnosticsSink, LoggingSink
from erpstore.errors import ConnectionUnavailable, InvalidRelease, PoolExhausted
from erpstore.infrastructure.connection import Connection
from erpstore.utils.logging import get_logger

log = get_logger(__name__)

ConnectionFactory = Callable[[], Connection]


@dataclass(frozen=True)
class PoolStats:
    """Point-in-time view of the pool partition."""

    max_size: int
    created: int
    available: int
    checked_out: int
    waiting: int
    closed: bool


class ConnectionPool:
    """
    Fixed-capacity connection pool.

    Parameters
    ----------
    factory : Callable[[], Connection]
        Creates one new open connection; may raise on an unreachable store.
    max_size : int
        Capacity; the number of live connections never exceeds it.
    min_size : int
        Connections created eagerly by :meth:`open`.
    acquire_timeout : float
        Default seconds :meth:`acquire` waits before raising ``PoolExhausted``.
    diagnostics : DiagnosticsSink, optional
        Receives exhaustion, unavailability and invalid-release reports.
    name : str
        Used in log messages and reports.
    """

    def __init__(
        self,
        factory: ConnectionFactory,
        max_size: int = 10,
        min_size: int = 0,
        acquire_timeout: float = 5.0,
        diagnostics: Optional[DiagnosticsSink] = None,
        name: str = "pool",
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        if not 0 <= min_size <= max_size:
            raise ValueError("min_size must be between 0 and max_size")
        self._factory = factory
        self.max_size = max_size
        self.min_size = min_size
        self.acquire_timeout = acquire_timeout
        self.name = name
        self._diagnostics: DiagnosticsSink = diagnostics or LoggingSink()

        self._cond = threading.Condition(threading.Lock())
        self._available: Deque[Connection] = deque()
        self._checked_out: Set[Connection] = set()
        self._waiters: Deque[object] = deque()
        # live connections plus slots reserved for connections being created
        self._created = 0
        self._closed = False

    # -- lifecycle ---------------------------------------------------------

    def open(self) -> "ConnectionPool":
        """
        Pre-create ``min_size`` connections.

        Raises
        ------
        ConnectionUnavailable
            If ``min_size > 0`` and not a single connection could be created.
        """
        errors: List[BaseException] = []
        for _ in range(self.min_size):
            with self._cond:
                if self._closed or self._created >= self.max_size:
                    break
                self._created += 1
            try:
                conn = self._factory()
            except Exception as exc:
                errors.append(exc)
                with self._cond:
                    self._created -= 1
                continue
            with self._cond:
                self._available.append(conn)
                self._cond.notify_all()

        if errors:
            message = f"{self.name}: {len(errors)} of {self.min_size} connections failed to open: {errors[-1]}"
            self._diagnostics.report(
                ConnectionUnavailable.category, message, source="ConnectionPool", exc=errors[-1]
            )
            if len(errors) == self.min_size:
                raise ConnectionUnavailable(message) from errors[-1]
        log.info("%s: opened with %d connection(s) (max %d)", self.name, self._created, self.max_size)
        return self

    def close(self) -> None:
        """Close idle connections; checked-out ones are closed when released."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            idle = list(self._available)
            self._available.clear()
            self._created -= len(idle)
            in_use = len(self._checked_out)
            self._cond.notify_all()
        for conn in idle:
            self._close_quietly(conn)
        log.info("%s: closed (%d still checked out)", self.name, in_use)

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "ConnectionPool":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -- acquire / release ---------------------------------------------------

    def acquire(self, timeout: Optional[float] = None) -> Connection:
        """
        Check out a connection for exclusive use.

        Raises
        ------
        PoolExhausted
            No connection became available within ``timeout`` seconds.
        ConnectionUnavailable
            The pool is closed or a new connection could not be created.
        """
        timeout = self.acquire_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout
        ticket = object()

        with self._cond:
            self._waiters.append(ticket)
            try:
                while True:
                    if self._closed:
                        raise self._unavailable(f"{self.name}: pool is closed")
                    if self._waiters[0] is ticket:
                        if self._available:
                            conn = self._available.popleft()
                            self._checked_out.add(conn)
                            return conn
                        if self._created < self.max_size:
                            # slot reserved; the connection is opened outside the lock
                            self._created += 1
                            break
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        message = (
                            f"{self.name}: no connection available after {timeout:.2f}s "
                            f"({len(self._checked_out)}/{self.max_size} checked out)"
                        )
                        self._diagnostics.report(PoolExhausted.category, message, source="ConnectionPool")
                        raise PoolExhausted(message)
                    self._cond.wait(remaining)
            finally:
                self._waiters.remove(ticket)
                self._cond.notify_all()

        return self._create()

    def release(self, conn: Connection) -> None:
        """
        Return a checked-out connection.

        Raises
        ------
        InvalidRelease
            If ``conn`` is not currently checked out from this pool.
        """
        with self._cond:
            if conn not in self._checked_out:
                message = f"{self.name}: release of a connection that is not checked out: {conn!r}"
                self._diagnostics.report(InvalidRelease.category, message, source="ConnectionPool")
                raise InvalidRelease(message)
            self._checked_out.discard(conn)

        keep = not self._closed
        if keep:
            try:
                conn.reset()
            except Exception as exc:
                log.warning("%s: discarding connection that failed to reset: %s", self.name, exc)
                keep = False
            keep = keep and conn.is_open

        with self._cond:
            if keep and not self._closed:
                self._available.append(conn)
            else:
                self._created -= 1
                keep = False
            self._cond.notify_all()
        if not keep:
            self._close_quietly(conn)

    @contextmanager
    def connection(self, timeout: Optional[float] = None) -> Generator[Connection, None, None]:
        """
        Context manager: acquire a connection and release it on every path.

        Example
        -------
            with pool.connection() as conn:
                rows = conn.query("SELECT * FROM payments", DynamicRecord())
        """
        conn = self.acquire(timeout)
        try:
            yield conn
        finally:
            self.release(conn)

    def stats(self) -> PoolStats:
        with self._cond:
            return PoolStats(
                max_size=self.max_size,
                created=self._created,
                available=len(self._available),
                checked_out=len(self._checked_out),
                waiting=len(self._waiters),
                closed=self._closed,
            )

    # -- internals -----------------------------------------------------------

    def _create(self) -> Connection:
        """Create a connection for a slot already reserved by the caller."""
        try:
            conn = self._factory()
        except Exception as exc:
            with self._cond:
                self._created -= 1
                self._cond.notify_all()
            raise self._unavailable(f"{self.name}: could not open a connection: {exc}", exc) from exc
        with self._cond:
            if self._closed:
                self._created -= 1
                closed = True
            else:
                self._checked_out.add(conn)
                closed = False
        if closed:
            self._close_quietly(conn)
            raise self._unavailable(f"{self.name}: pool is closed")
        log.debug("%s: opened connection %r", self.name, conn)
        return conn

    def _unavailable(self, message: str, exc: Optional[BaseException] = None) -> ConnectionUnavailable:
        self._diagnostics.report(ConnectionUnavailable.category, message, source="ConnectionPool", exc=exc)
        return ConnectionUnavailable(message)

    def _close_quietly(self, conn: Connection) -> None:
        try:
            conn.close()
        except Exception as exc:
            log.warning("%s: error closing %r: %s", self.name, conn, exc)


__all__ = ["ConnectionPool", "ConnectionFactory", "PoolStats"]
