"""
Pytest configuration for erpstore.

Provides fixtures for:
- Temporary SQLite databases with the sample entity tables
- Connection pools and record stores wired to a collecting diagnostics sink
- Settings and connectivity checks for PostgreSQL integration tests
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Generator

import psycopg
import pytest

from erpstore.config import Settings
from erpstore.diagnostics import CollectingSink
from erpstore.infrastructure.connection import SQLiteConnection
from erpstore.infrastructure.pool import ConnectionPool
from erpstore.modules.config_entry import ConfigEntry, ConfigEntryCodec
from erpstore.modules.payment import Payment, PaymentCodec
from erpstore.store import GenericRecordStore

BASE_COLUMNS = """
    id TEXT PRIMARY KEY,
    status INTEGER,
    created_at TEXT,
    updated_at TEXT,
    created_by TEXT,
    updated_by TEXT
"""

SQLITE_SCHEMA = (
    f"""
    CREATE TABLE payments (
        {BASE_COLUMNS},
        customer_id TEXT,
        invoice_id TEXT,
        payment_number TEXT,
        amount REAL,
        payment_date TEXT,
        method INTEGER,
        payment_status INTEGER,
        transaction_id TEXT,
        notes TEXT,
        currency TEXT
    )
    """,
    f"""
    CREATE TABLE configs (
        {BASE_COLUMNS},
        config_key TEXT,
        config_value TEXT,
        config_type INTEGER,
        description TEXT,
        is_encrypted INTEGER,
        metadata_json TEXT
    )
    """,
)

POSTGRES_SCHEMA = (
    f"""
    CREATE TABLE IF NOT EXISTS payments (
        {BASE_COLUMNS},
        customer_id TEXT,
        invoice_id TEXT,
        payment_number TEXT,
        amount DOUBLE PRECISION,
        payment_date TEXT,
        method INTEGER,
        payment_status INTEGER,
        transaction_id TEXT,
        notes TEXT,
        currency TEXT
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS configs (
        {BASE_COLUMNS},
        config_key TEXT,
        config_value TEXT,
        config_type INTEGER,
        description TEXT,
        is_encrypted BOOLEAN,
        metadata_json TEXT
    )
    """,
)

TEST_POOL_SIZE = 4
TEST_ACQUIRE_TIMEOUT = 2.0


@pytest.fixture
def sink() -> CollectingSink:
    return CollectingSink()


@pytest.fixture
def sqlite_path(tmp_path: Path) -> str:
    """
    Path of a fresh SQLite database holding the ``payments`` and ``configs`` tables.
    """
    path = str(tmp_path / "erp.db")
    conn = SQLiteConnection(path)
    try:
        for ddl in SQLITE_SCHEMA:
            assert conn.execute(ddl), conn.last_error()
    finally:
        conn.close()
    return path


@pytest.fixture
def sqlite_pool(sqlite_path: str, sink: CollectingSink) -> Generator[ConnectionPool, None, None]:
    pool = ConnectionPool(
        lambda: SQLiteConnection(sqlite_path),
        max_size=TEST_POOL_SIZE,
        acquire_timeout=TEST_ACQUIRE_TIMEOUT,
        diagnostics=sink,
        name="test-pool",
    )
    with pool:
        yield pool


@pytest.fixture
def payment_store(sqlite_pool: ConnectionPool, sink: CollectingSink) -> GenericRecordStore[Payment]:
    return GenericRecordStore(sqlite_pool, "payments", PaymentCodec(), diagnostics=sink)


@pytest.fixture
def config_store(sqlite_pool: ConnectionPool, sink: CollectingSink) -> GenericRecordStore[ConfigEntry]:
    return GenericRecordStore(sqlite_pool, "configs", ConfigEntryCodec(), diagnostics=sink)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_backend="postgres",
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "erp_test"),
        connect_retries=1,
        pool_size=TEST_POOL_SIZE,
        pool_min_size=1,
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn, autocommit=True)
    try:
        with conn.cursor() as cur:
            for ddl in POSTGRES_SCHEMA:
                cur.execute(ddl)
        yield conn
    finally:
        conn.close()


@pytest.fixture
def clean_tables(db_connection: psycopg.Connection) -> Generator[None, None, None]:
    """
    Empty the entity tables before and after each test function.
    """
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE payments, configs;")
    yield
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE payments, configs;")
