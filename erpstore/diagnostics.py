"""
Diagnostics sinks shared by the pool and the record stores.

A sink is passed into every :class:`~erpstore.infrastructure.pool.ConnectionPool`
and :class:`~erpstore.store.GenericRecordStore` at construction. Failures are
reported here *and* returned to the caller as a failure value, so operational
logs capture them even when callers ignore return values.

Usage:
    from erpstore.diagnostics import CollectingSink, LoggingSink

    sink = CollectingSink(forward_to=LoggingSink())
    store = GenericRecordStore(pool, "payments", PaymentCodec(), diagnostics=sink)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Protocol, runtime_checkable

from erpstore.errors import ErrorCategory
from erpstore.utils.logging import get_logger


@dataclass(frozen=True)
class Diagnostic:
    """A single reported failure."""

    category: ErrorCategory
    message: str
    source: str
    exc: Optional[BaseException] = None
    reported_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@runtime_checkable
class DiagnosticsSink(Protocol):
    """Shared error-reporting channel (category + message)."""

    def report(
        self,
        category: ErrorCategory,
        message: str,
        source: str = "erpstore",
        exc: Optional[BaseException] = None,
    ) -> None:
        ...


class LoggingSink:
    """Writes every report to a logger at ERROR level with structured fields."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._log = logger or get_logger("erpstore.diagnostics")

    def report(
        self,
        category: ErrorCategory,
        message: str,
        source: str = "erpstore",
        exc: Optional[BaseException] = None,
    ) -> None:
        self._log.error(
            "%s: %s",
            source,
            message,
            exc_info=exc if exc is not None and exc.__traceback__ is not None else None,
            extra={"category": category.value, "source": source},
        )


class CollectingSink:
    """
    Keeps reports in memory, optionally forwarding each one to another sink.

    Thread safe; used by tests and by the CLI to summarize failures.
    """

    def __init__(self, forward_to: Optional[DiagnosticsSink] = None) -> None:
        self._forward_to = forward_to
        self._lock = threading.Lock()
        self._entries: List[Diagnostic] = []

    def report(
        self,
        category: ErrorCategory,
        message: str,
        source: str = "erpstore",
        exc: Optional[BaseException] = None,
    ) -> None:
        with self._lock:
            self._entries.append(Diagnostic(category=category, message=message, source=source, exc=exc))
        if self._forward_to is not None:
            self._forward_to.report(category, message, source=source, exc=exc)

    @property
    def entries(self) -> List[Diagnostic]:
        with self._lock:
            return list(self._entries)

    def categories(self) -> List[ErrorCategory]:
        return [entry.category for entry in self.entries]

    def last(self) -> Optional[Diagnostic]:
        with self._lock:
            return self._entries[-1] if self._entries else None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["Diagnostic", "DiagnosticsSink", "LoggingSink", "CollectingSink"]
