"""
erpstore - persistence core for a multi-module ERP application.

This package provides the shared engine every entity-specific data-access
module sits on:

- A bounded, thread-safe connection pool
- A connection abstraction with named ``:name`` parameter binding
  (SQLite and PostgreSQL backends)
- A tagged dynamic record representation and codec helpers
- A generic record store implementing create / get_by_id / update / remove /
  find_all / filtered_find / count for any entity + codec pair

Failures are reported through an injected diagnostics sink and returned as
failure values; callers check return values.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from erpstore.config import Settings, get_settings
from erpstore.diagnostics import CollectingSink, Diagnostic, DiagnosticsSink, LoggingSink
from erpstore.domain import (
    BaseEntity,
    DynamicRecord,
    EntityStatus,
    Kind,
    RecordCodec,
    RecordReader,
    RecordWriter,
    Value,
    read_base,
    write_base,
)
from erpstore.errors import (
    ConnectionUnavailable,
    DecodeTypeMismatch,
    ErrorCategory,
    InvalidRelease,
    MissingParameter,
    PoolExhausted,
    StatementFailed,
    StoreError,
)
from erpstore.infrastructure import (
    Connection,
    ConnectionPool,
    PsycopgConnection,
    SQLiteConnection,
    create_pool,
)
from erpstore.store import DecodePolicy, GenericRecordStore
from erpstore.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Records and codecs
    "BaseEntity",
    "DynamicRecord",
    "EntityStatus",
    "Kind",
    "RecordCodec",
    "RecordReader",
    "RecordWriter",
    "Value",
    "read_base",
    "write_base",
    # Connections and pooling
    "Connection",
    "ConnectionPool",
    "PsycopgConnection",
    "SQLiteConnection",
    "create_pool",
    # Record store
    "DecodePolicy",
    "GenericRecordStore",
    # Diagnostics and errors
    "CollectingSink",
    "Diagnostic",
    "DiagnosticsSink",
    "LoggingSink",
    "ErrorCategory",
    "StoreError",
    "PoolExhausted",
    "ConnectionUnavailable",
    "StatementFailed",
    "DecodeTypeMismatch",
    "MissingParameter",
    "InvalidRelease",
    # Logging
    "configure_logging",
    "get_logger",
]
