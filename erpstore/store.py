"""
Generic record store: CRUD, filtered find and count for one table.

A :class:`GenericRecordStore` is composed from a pool, a table name and the
entity's :class:`~erpstore.domain.codec.RecordCodec`. Every public operation
acquires its own connection, runs one parameterized statement and releases
the connection on every path. Failures are reported through the diagnostics
sink and returned as ``False`` / ``None`` / ``[]`` / ``0``; no statement is
retried and no operation spans more than one statement.

Statement shapes (``:name`` placeholders bound from the encoded record)::

    INSERT INTO t (a, b) VALUES (:a, :b)
    SELECT * FROM t WHERE a = :a AND b = :b
    SELECT COUNT(*) AS row_count FROM t WHERE a = :a
    UPDATE t SET a = :a, b = :b WHERE id = :id
    DELETE FROM t WHERE id = :id
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Generic, List, Mapping, Optional, Tuple, TypeVar

from erpstore.diagnostics import DiagnosticsSink, LoggingSink
from erpstore.domain.codec import RecordCodec
from erpstore.domain.values import DynamicRecord, Kind, Value
from erpstore.errors import (
    DecodeTypeMismatch,
    ErrorCategory,
    MissingParameter,
    StatementFailed,
    StoreError,
)
from erpstore.infrastructure.connection import Connection
from erpstore.infrastructure.pool import ConnectionPool
from erpstore.utils.logging import get_logger

log = get_logger(__name__)

E = TypeVar("E")

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
COUNT_COLUMN = "row_count"


class DecodePolicy(str, Enum):
    """How a read reacts to rows that do not decode cleanly."""

    #: report and keep going: partial entity on type mismatch, default entity otherwise
    BEST_EFFORT = "best_effort"
    #: report and abort the whole read
    FAIL_FAST = "fail_fast"


class _DecodeAborted(Exception):
    pass


class GenericRecordStore(Generic[E]):
    """
    Data access for one entity type stored in one table.

    Parameters
    ----------
    pool : ConnectionPool
        Source of connections; one is acquired per operation.
    table : str
        Table name (a plain SQL identifier).
    codec : RecordCodec
        Converts entities to and from :class:`DynamicRecord`.
    diagnostics : DiagnosticsSink, optional
        Shared error channel; defaults to a :class:`LoggingSink`.
    id_column : str
        Identifier column used by get_by_id / update / remove.
    decode_policy : DecodePolicy
        Leniency of reads towards undecodable rows.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        table: str,
        codec: RecordCodec[E],
        diagnostics: Optional[DiagnosticsSink] = None,
        id_column: str = "id",
        decode_policy: DecodePolicy = DecodePolicy.BEST_EFFORT,
    ) -> None:
        for identifier in (table, id_column):
            if not _IDENTIFIER.match(identifier):
                raise ValueError(f"Invalid SQL identifier: {identifier!r}")
        self.pool = pool
        self.table = table
        self.codec = codec
        self.id_column = id_column
        self.decode_policy = DecodePolicy(decode_policy)
        self._diagnostics: DiagnosticsSink = diagnostics or LoggingSink()
        self._source = f"GenericRecordStore[{table}]"
        log.debug("%s: initialized", self._source)

    # -- public operations -------------------------------------------------

    def create(self, entity: E) -> bool:
        """Insert every encoded column of ``entity``."""
        record = self._encode(entity, "create")
        if record is None:
            return False
        if not record:
            self._report(ErrorCategory.INVALID_INPUT, "create called with an empty record")
            return False
        bad = self._invalid_columns(record)
        if bad:
            self._report(ErrorCategory.INVALID_INPUT, f"create: invalid column name(s) {bad}")
            return False
        columns = list(record)
        sql = (
            f"INSERT INTO {self.table} ({', '.join(columns)}) "
            f"VALUES ({', '.join(':' + c for c in columns)})"
        )
        return self._execute("create", sql, record)

    def get_by_id(self, entity_id: Any) -> Optional[E]:
        """
        Return the first row whose identifier equals ``entity_id``, or ``None``.

        Identifier uniqueness is not checked here; extra matches are ignored.
        """
        params = self._id_params(entity_id, "get_by_id")
        if params is None:
            return None
        sql = f"SELECT * FROM {self.table} WHERE {self.id_column} = :{self.id_column}"
        rows = self._query("get_by_id", sql, params)
        if not rows:
            log.debug("%s: id %r not found", self._source, entity_id)
            return None
        entities = self._decode_rows(rows[:1])
        return entities[0] if entities else None

    def update(self, entity: E) -> bool:
        """
        Set every encoded column except the identifier, matching on the identifier.

        Zero rows affected is reported as success, the same as one row.
        """
        record = self._encode(entity, "update")
        if record is None:
            return False
        entity_id = record.get(self.id_column)
        if entity_id is None or entity_id.is_null or entity_id.payload == "":
            self._report(ErrorCategory.INVALID_INPUT, f"update called without '{self.id_column}'")
            return False
        assignments = [column for column in record if column != self.id_column]
        if not assignments:
            self._report(ErrorCategory.INVALID_INPUT, "update called with nothing to set")
            return False
        bad = self._invalid_columns(record)
        if bad:
            self._report(ErrorCategory.INVALID_INPUT, f"update: invalid column name(s) {bad}")
            return False
        sql = (
            f"UPDATE {self.table} SET {', '.join(f'{c} = :{c}' for c in assignments)} "
            f"WHERE {self.id_column} = :{self.id_column}"
        )
        return self._execute("update", sql, record)

    def remove(self, entity_id: Any) -> bool:
        params = self._id_params(entity_id, "remove")
        if params is None:
            return False
        sql = f"DELETE FROM {self.table} WHERE {self.id_column} = :{self.id_column}"
        return self._execute("remove", sql, params)

    def find_all(self) -> List[E]:
        return self.filtered_find({})

    def filtered_find(self, filter: Optional[Mapping[str, Any]] = None) -> List[E]:
        """
        Return every row matching the equality conjunction ``filter``, decoded.

        Column names are passed to the backing store as given; unknown columns
        are rejected there and reported as a failed statement.
        """
        built = self._where(filter, "filtered_find")
        if built is None:
            return []
        where, params = built
        rows = self._query("filtered_find", f"SELECT * FROM {self.table}{where}", params)
        if not rows:
            return []
        return self._decode_rows(rows)

    def count(self, filter: Optional[Mapping[str, Any]] = None) -> int:
        """Number of rows matching ``filter`` (same WHERE clause as filtered_find)."""
        built = self._where(filter, "count")
        if built is None:
            return 0
        where, params = built
        sql = f"SELECT COUNT(*) AS {COUNT_COLUMN} FROM {self.table}{where}"
        rows = self._query("count", sql, params)
        if not rows:
            return 0
        value = rows[0].get(COUNT_COLUMN)
        if value is None or value.kind is not Kind.INTEGER:
            self._report(ErrorCategory.STATEMENT_FAILED, f"count returned an unexpected value: {value!r}")
            return 0
        return value.payload

    # -- statement construction ----------------------------------------------

    def _where(
        self, filter: Optional[Mapping[str, Any]], operation: str
    ) -> Optional[Tuple[str, DynamicRecord]]:
        if not filter:
            return "", DynamicRecord()
        try:
            params = DynamicRecord.from_raw(filter)
        except TypeError as exc:
            self._report(ErrorCategory.INVALID_INPUT, f"{operation}: unsupported filter value: {exc}", exc)
            return None
        bad = self._invalid_columns(params)
        if bad:
            self._report(ErrorCategory.INVALID_INPUT, f"{operation}: invalid filter column(s) {bad}")
            return None
        clause = " AND ".join(f"{column} = :{column}" for column in params)
        return f" WHERE {clause}", params

    def _id_params(self, entity_id: Any, operation: str) -> Optional[DynamicRecord]:
        try:
            return DynamicRecord({self.id_column: Value.of(entity_id)})
        except TypeError as exc:
            self._report(ErrorCategory.INVALID_INPUT, f"{operation}: unsupported identifier: {exc}", exc)
            return None

    @staticmethod
    def _invalid_columns(record: Mapping[str, Any]) -> List[str]:
        return [column for column in record if not _IDENTIFIER.match(column)]

    # -- execution -------------------------------------------------------------

    def _execute(self, operation: str, sql: str, params: DynamicRecord) -> bool:
        conn = self._acquire(operation)
        if conn is None:
            return False
        try:
            ok = conn.execute(sql, params)
            error, affected = conn.last_error(), conn.rowcount
        except MissingParameter as exc:
            self._report(exc.category, f"{operation}: {exc}. SQL: {sql}", exc)
            raise
        except Exception as exc:
            self._report(ErrorCategory.STATEMENT_FAILED, f"{operation} failed: {exc!r}. SQL: {sql}", exc)
            return False
        finally:
            self.pool.release(conn)
        if not ok:
            self._report(ErrorCategory.STATEMENT_FAILED, f"{operation} failed: {error}. SQL: {sql}")
            return False
        log.info("%s: %s completed (%d row(s))", self._source, operation, affected)
        return True

    def _query(self, operation: str, sql: str, params: DynamicRecord) -> List[DynamicRecord]:
        conn = self._acquire(operation)
        if conn is None:
            return []
        try:
            rows = conn.query(sql, params)
        except MissingParameter as exc:
            self._report(exc.category, f"{operation}: {exc}. SQL: {sql}", exc)
            raise
        except StatementFailed as exc:
            self._report(exc.category, f"{operation} failed: {exc}. SQL: {sql}", exc)
            return []
        except Exception as exc:
            self._report(ErrorCategory.STATEMENT_FAILED, f"{operation} failed: {exc!r}. SQL: {sql}", exc)
            return []
        finally:
            self.pool.release(conn)
        log.info("%s: %s retrieved %d row(s)", self._source, operation, len(rows))
        return rows

    def _acquire(self, operation: str) -> Optional[Connection]:
        # The pool has already reported the failure through the shared sink.
        try:
            return self.pool.acquire()
        except StoreError as exc:
            log.error("%s: %s aborted, no connection: %s", self._source, operation, exc)
            return None

    # -- codec -------------------------------------------------------------------

    def _encode(self, entity: E, operation: str) -> Optional[DynamicRecord]:
        try:
            return self.codec.encode(entity)
        except Exception as exc:
            self._report(ErrorCategory.INVALID_INPUT, f"{operation}: could not encode entity: {exc}", exc)
            return None

    def _decode_rows(self, rows: List[DynamicRecord]) -> List[E]:
        try:
            return [self._decode(row) for row in rows]
        except _DecodeAborted:
            return []

    def _decode(self, row: DynamicRecord) -> E:
        try:
            return self.codec.decode(row)
        except DecodeTypeMismatch as exc:
            self._report(exc.category, f"decode: {exc}", exc)
            if self.decode_policy is DecodePolicy.FAIL_FAST:
                raise _DecodeAborted() from exc
            if exc.partial is not None:
                return exc.partial
            return self.codec.default()
        except Exception as exc:
            self._report(ErrorCategory.DECODE_FAILED, f"decode: {exc}", exc)
            if self.decode_policy is DecodePolicy.FAIL_FAST:
                raise _DecodeAborted() from exc
            return self.codec.default()

    def _report(self, category: ErrorCategory, message: str, exc: Optional[BaseException] = None) -> None:
        self._diagnostics.report(category, message, source=self._source, exc=exc)

    def __repr__(self) -> str:
        return f"GenericRecordStore(table={self.table!r}, codec={type(self.codec).__name__})"


__all__ = ["GenericRecordStore", "DecodePolicy", "COUNT_COLUMN"]
