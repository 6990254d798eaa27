"""
Error taxonomy for the persistence core.

Every error carries an :class:`ErrorCategory` so the diagnostics sink can
group failures regardless of which layer raised them. The store converts
these into boolean / empty results at its public boundary; the pool and the
connections raise them.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence


class ErrorCategory(str, Enum):
    """Categories reported through the diagnostics sink."""

    POOL_EXHAUSTED = "pool_exhausted"
    CONNECTION_UNAVAILABLE = "connection_unavailable"
    STATEMENT_FAILED = "statement_failed"
    DECODE_TYPE_MISMATCH = "decode_type_mismatch"
    DECODE_FAILED = "decode_failed"
    MISSING_PARAMETER = "missing_parameter"
    INVALID_RELEASE = "invalid_release"
    INVALID_INPUT = "invalid_input"


class StoreError(Exception):
    """Base class for all persistence-core errors."""

    category: ErrorCategory = ErrorCategory.STATEMENT_FAILED


class PoolExhausted(StoreError):
    """No connection became available within the acquire timeout."""

    category = ErrorCategory.POOL_EXHAUSTED


class ConnectionUnavailable(StoreError):
    """The pool could not produce a connection at all."""

    category = ErrorCategory.CONNECTION_UNAVAILABLE


class InvalidRelease(StoreError):
    """A connection was released that is not checked out from this pool."""

    category = ErrorCategory.INVALID_RELEASE


class StatementFailed(StoreError):
    """The backing store rejected or failed a statement."""

    category = ErrorCategory.STATEMENT_FAILED

    def __init__(self, message: str, sql: Optional[str] = None) -> None:
        super().__init__(message)
        self.sql = sql


class MissingParameter(StoreError):
    """A statement referenced placeholders absent from the bound record."""

    category = ErrorCategory.MISSING_PARAMETER

    def __init__(self, names: Sequence[str], sql: Optional[str] = None) -> None:
        self.names: List[str] = list(names)
        self.sql = sql
        super().__init__(f"Missing value for parameter(s): {', '.join(':' + n for n in self.names)}")


@dataclass(frozen=True)
class FieldMismatch:
    """One attribute whose stored value did not match the expected kind."""

    key: str
    expected: str
    actual: str

    def __str__(self) -> str:
        return f"'{self.key}' expected {self.expected}, got {self.actual}"


class DecodeTypeMismatch(StoreError):
    """
    One or more attributes of a row had the wrong kind during decode.

    ``partial`` holds the entity decoded from the remaining attributes (the
    mismatched ones left at their defaults), so callers can choose between
    keeping it and aborting.
    """

    category = ErrorCategory.DECODE_TYPE_MISMATCH

    def __init__(self, mismatches: Sequence[FieldMismatch], partial: Any = None) -> None:
        self.mismatches: List[FieldMismatch] = list(mismatches)
        self.partial = partial
        super().__init__("Type mismatch for " + "; ".join(str(m) for m in self.mismatches))


__all__ = [
    "ErrorCategory",
    "StoreError",
    "PoolExhausted",
    "ConnectionUnavailable",
    "InvalidRelease",
    "StatementFailed",
    "MissingParameter",
    "FieldMismatch",
    "DecodeTypeMismatch",
]
