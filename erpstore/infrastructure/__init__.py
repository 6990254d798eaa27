"""
Infrastructure package for erpstore.

Centralizes database connectivity concerns (connections, pooling, factories).
Keep this layer focused on I/O and resource management, decoupled from
entity and record-store logic.
"""

from erpstore.infrastructure.connection import Connection, PsycopgConnection, SQLiteConnection
from erpstore.infrastructure.db_factory import (
    build_dsn,
    connect_postgres,
    connect_sqlite,
    connection_factory,
    create_pool,
)
from erpstore.infrastructure.pool import ConnectionPool, PoolStats

__all__ = [
    "Connection",
    "PsycopgConnection",
    "SQLiteConnection",
    "ConnectionPool",
    "PoolStats",
    "build_dsn",
    "connect_postgres",
    "connect_sqlite",
    "connection_factory",
    "create_pool",
]
