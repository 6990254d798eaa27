"""
Connection abstraction over the backing store.

A :class:`Connection` executes statement templates with named ``:name``
placeholders bound from a :class:`~erpstore.domain.values.DynamicRecord`.
Binding is by name: every placeholder must have a matching key, otherwise
:class:`~erpstore.errors.MissingParameter` is raised before anything is sent.

Backends:
- :class:`SQLiteConnection`: ``sqlite3`` understands ``:name`` natively.
- :class:`PsycopgConnection`: PostgreSQL via psycopg; placeholders are
  rewritten to ``%(name)s``.

A failed :meth:`Connection.execute` returns ``False`` and leaves the
connection open with :meth:`Connection.last_error` set. A failed
:meth:`Connection.query` raises :class:`~erpstore.errors.StatementFailed`,
so an empty list always means "no rows".
"""

from __future__ import annotations

import abc
import re
import sqlite3
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type

import psycopg
from psycopg.rows import dict_row

from erpstore.domain.values import DynamicRecord, Value
from erpstore.errors import MissingParameter, StatementFailed
from erpstore.utils.logging import get_logger

log = get_logger(__name__)

# Raised while binding values the backend cannot represent (e.g. SQLite
# integers beyond 64 bits); treated like a rejected statement.
BIND_ERRORS: Tuple[Type[BaseException], ...] = (OverflowError, ValueError, TypeError)

# Quoted literals and '::' casts are matched first so they are never
# mistaken for placeholders.
_TOKENS = re.compile(r"'(?:[^']|'')*'|::|:([A-Za-z_][A-Za-z0-9_]*)|%")


@lru_cache(maxsize=512)
def placeholders(template: str) -> Tuple[str, ...]:
    """Names of the ``:name`` placeholders in ``template``, in first-use order."""
    seen: Dict[str, None] = {}
    for match in _TOKENS.finditer(template):
        name = match.group(1)
        if name:
            seen.setdefault(name, None)
    return tuple(seen)


@lru_cache(maxsize=512)
def to_pyformat(template: str) -> str:
    """Rewrite ``:name`` placeholders to psycopg's ``%(name)s`` style."""

    def _replace(match: "re.Match[str]") -> str:
        token = match.group(0)
        if match.group(1):
            return f"%({match.group(1)})s"
        if token == "%":
            return "%%"
        if token.startswith("'"):
            return token.replace("%", "%%")
        return token

    return _TOKENS.sub(_replace, template)


def bind_parameters(template: str, params: Optional[Mapping[str, Value]]) -> Dict[str, Any]:
    """
    Resolve the template's placeholders against ``params``.

    Raises
    ------
    MissingParameter
        If a placeholder has no corresponding key.
    """
    params = params or {}
    names = placeholders(template)
    missing = [name for name in names if name not in params]
    if missing:
        raise MissingParameter(missing, sql=template)
    bound: Dict[str, Any] = {}
    for name in names:
        value = params[name]
        bound[name] = value.to_param() if isinstance(value, Value) else value
    return bound


class Connection(abc.ABC):
    """One live handle to the backing store."""

    #: driver exceptions converted into a failed statement
    driver_errors: Tuple[Type[BaseException], ...] = ()

    def __init__(self, name: str) -> None:
        self.name = name
        self.rowcount: int = -1
        self._last_error: Optional[str] = None

    # -- backend hooks -----------------------------------------------------

    @abc.abstractmethod
    def _execute(self, sql: str, params: Dict[str, Any]) -> int:
        """Run a statement, returning the affected row count."""

    @abc.abstractmethod
    def _query(self, sql: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Run a query, returning rows as column -> raw value mappings."""

    @property
    @abc.abstractmethod
    def is_open(self) -> bool:
        ...

    @abc.abstractmethod
    def close(self) -> None:
        ...

    @abc.abstractmethod
    def _in_transaction(self) -> bool:
        ...

    # -- public API --------------------------------------------------------

    def last_error(self) -> Optional[str]:
        return self._last_error

    def execute(self, template: str, params: Optional[Mapping[str, Value]] = None) -> bool:
        """Apply a statement; ``False`` on storage failure (see :meth:`last_error`)."""
        bound = bind_parameters(template, params)
        if not self.is_open:
            self._fail("Connection is not open.", template)
            return False
        try:
            self.rowcount = self._execute(template, bound)
        except self.driver_errors + BIND_ERRORS as exc:
            self._fail(str(exc), template)
            return False
        self._last_error = None
        return True

    def query(self, template: str, params: Optional[Mapping[str, Value]] = None) -> List[DynamicRecord]:
        """
        Run a query and return one record per row, in storage order.

        Raises
        ------
        StatementFailed
            If the storage rejected the query or returned unsupported values.
        MissingParameter
            If a placeholder has no corresponding key.
        """
        bound = bind_parameters(template, params)
        if not self.is_open:
            self._fail("Connection is not open.", template)
            raise StatementFailed(self._last_error or "", sql=template)
        try:
            rows = self._query(template, bound)
            records = [DynamicRecord.from_raw(row) for row in rows]
        except self.driver_errors + BIND_ERRORS as exc:
            self._fail(str(exc), template)
            raise StatementFailed(str(exc), sql=template) from exc
        self._last_error = None
        return records

    def begin(self) -> bool:
        return self.execute("BEGIN")

    def commit(self) -> bool:
        return self.execute("COMMIT")

    def rollback(self) -> bool:
        return self.execute("ROLLBACK")

    def reset(self) -> None:
        """Return the connection to a clean state before it goes back to a pool."""
        if self.is_open and self._in_transaction():
            log.warning("Rolling back transaction left open on %s", self.name)
            self.rollback()
        self._last_error = None
        self.rowcount = -1

    def _fail(self, message: str, sql: str) -> None:
        self._last_error = message
        log.warning("%s: statement failed: %s", self.name, message, extra={"sql": sql})

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<{type(self).__name__} {self.name} {state}>"


class SQLiteConnection(Connection):
    """Connection to a SQLite database file."""

    driver_errors = (sqlite3.Error,)

    def __init__(self, path: str, timeout: float = 5.0, name: Optional[str] = None) -> None:
        super().__init__(name or f"sqlite:{path}")
        # Exclusivity is guaranteed by the pool, so the handle may move between threads.
        self._conn: Optional[sqlite3.Connection] = sqlite3.connect(
            path,
            timeout=timeout,
            check_same_thread=False,
            isolation_level=None,
            uri=path.startswith("file:"),
        )

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def _handle(self) -> sqlite3.Connection:
        if self._conn is None:
            raise sqlite3.ProgrammingError("Cannot operate on a closed database.")
        return self._conn

    def _execute(self, sql: str, params: Dict[str, Any]) -> int:
        cursor = self._handle().execute(sql, params)
        try:
            return cursor.rowcount
        finally:
            cursor.close()

    def _query(self, sql: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        cursor = self._handle().execute(sql, params)
        try:
            columns = [column[0] for column in cursor.description or ()]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]
        finally:
            cursor.close()

    def _in_transaction(self) -> bool:
        return self._conn is not None and self._conn.in_transaction

    def close(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            finally:
                self._conn = None


class PsycopgConnection(Connection):
    """Connection to PostgreSQL through psycopg (autocommit mode)."""

    driver_errors = (psycopg.Error,)

    def __init__(self, conn: psycopg.Connection, name: Optional[str] = None) -> None:
        super().__init__(name or f"postgres:{conn.info.host}/{conn.info.dbname}")
        self._conn = conn
        self._conn.autocommit = True

    @classmethod
    def connect(cls, dsn: str, connect_timeout: int = 10) -> "PsycopgConnection":
        return cls(psycopg.connect(dsn, connect_timeout=connect_timeout, autocommit=True))

    @property
    def is_open(self) -> bool:
        return not self._conn.closed and not self._conn.broken

    def _execute(self, sql: str, params: Dict[str, Any]) -> int:
        with self._conn.cursor() as cur:
            cur.execute(to_pyformat(sql), params)
            return cur.rowcount

    def _query(self, sql: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._conn.cursor(row_factory=dict_row) as cur:
            cur.execute(to_pyformat(sql), params)
            if cur.description is None:
                return []
            return cur.fetchall()

    def _in_transaction(self) -> bool:
        return self._conn.info.transaction_status != psycopg.pq.TransactionStatus.IDLE

    def close(self) -> None:
        self._conn.close()


__all__ = [
    "Connection",
    "SQLiteConnection",
    "PsycopgConnection",
    "bind_parameters",
    "placeholders",
    "to_pyformat",
]
