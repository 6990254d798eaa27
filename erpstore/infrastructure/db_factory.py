"""
Connection factory utilities for erpstore.

Builds :class:`~erpstore.infrastructure.connection.Connection` factories from
:class:`~erpstore.config.Settings` and wires them into a
:class:`~erpstore.infrastructure.pool.ConnectionPool`. Pools are created
explicitly and handed to the record stores; there is no process-wide pool.

Opening a connection is retried with exponential backoff (tenacity) for
transient failures. Statements themselves are never retried.
"""

from __future__ import annotations

import sqlite3
from typing import Optional

import psycopg
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from erpstore.config import Settings, get_settings
from erpstore.diagnostics import DiagnosticsSink
from erpstore.infrastructure.connection import Connection, PsycopgConnection, SQLiteConnection
from erpstore.infrastructure.pool import ConnectionFactory, ConnectionPool
from erpstore.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a PostgreSQL DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


def _retrying(attempts: int, exceptions: tuple) -> Retrying:
    return Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(exceptions),
        reraise=True,
    )


def connect_sqlite(path: str, attempts: int = 3, timeout: float = 5.0) -> SQLiteConnection:
    """
    Open a SQLite connection, retrying on transient ``sqlite3.OperationalError``.

    Raises
    ------
    sqlite3.OperationalError
        If the database cannot be opened after all attempts.
    """
    for attempt in _retrying(attempts, (sqlite3.OperationalError,)):
        with attempt:
            return SQLiteConnection(path, timeout=timeout)
    raise AssertionError("unreachable")  # pragma: no cover


def connect_postgres(dsn: str, attempts: int = 3, connect_timeout: int = 10) -> PsycopgConnection:
    """
    Open a PostgreSQL connection with automatic retry.

    Retries with exponential backoff for transient connection errors.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    for attempt in _retrying(attempts, (psycopg.OperationalError, psycopg.InterfaceError)):
        with attempt:
            return PsycopgConnection.connect(dsn, connect_timeout=connect_timeout)
    raise AssertionError("unreachable")  # pragma: no cover


def connection_factory(settings: Optional[Settings] = None) -> ConnectionFactory:
    """Return a zero-argument callable opening one connection per call."""
    settings = settings or get_settings()
    if settings.db_backend == "postgres":
        dsn = build_dsn(settings)

        def _postgres() -> Connection:
            return connect_postgres(
                dsn,
                attempts=settings.connect_retries,
                connect_timeout=settings.db_connect_timeout_seconds,
            )

        return _postgres

    path = settings.sqlite_path

    def _sqlite() -> Connection:
        return connect_sqlite(path, attempts=settings.connect_retries)

    return _sqlite


def create_pool(
    settings: Optional[Settings] = None,
    diagnostics: Optional[DiagnosticsSink] = None,
    open_pool: bool = True,
) -> ConnectionPool:
    """
    Build a connection pool sized from settings.

    Parameters
    ----------
    settings : Settings, optional
        Defaults to the cached application settings.
    diagnostics : DiagnosticsSink, optional
        Shared error channel for the pool.
    open_pool : bool
        Whether to pre-create ``pool_min_size`` connections immediately.

    Returns
    -------
    ConnectionPool
        A pool the caller owns and must close.
    """
    settings = settings or get_settings()
    pool = ConnectionPool(
        connection_factory(settings),
        max_size=settings.pool_size,
        min_size=min(settings.pool_min_size, settings.pool_size),
        acquire_timeout=settings.pool_acquire_timeout_seconds,
        diagnostics=diagnostics,
        name=f"{settings.db_backend}-pool",
    )
    log.debug("Created %s (max=%d)", pool.name, pool.max_size)
    return pool.open() if open_pool else pool


__all__ = [
    "build_dsn",
    "connect_sqlite",
    "connect_postgres",
    "connection_factory",
    "create_pool",
]
