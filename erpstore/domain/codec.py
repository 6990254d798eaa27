"""
Record codec contract and the helpers entity modules build codecs from.

Each entity module supplies a codec object satisfying :class:`RecordCodec`.
Codecs are composed into a :class:`~erpstore.store.GenericRecordStore` at
construction; they are plain objects, not store subclasses.

Writing::

    record = (
        write_base(RecordWriter(), payment)
        .put_string("currency", payment.currency)
        .put_optional_string("notes", payment.notes)
        .build()
    )

Reading::

    reader = RecordReader(record)
    return reader.build(
        Payment,
        **read_base(reader),
        currency=reader.string("currency"),
        notes=reader.string("notes"),
    )

Reader methods return ``None`` for a missing or NULL column (the attribute
keeps its default) and record a :class:`~erpstore.errors.FieldMismatch` when
the stored kind does not fit. :meth:`RecordReader.build` raises
:class:`~erpstore.errors.DecodeTypeMismatch` carrying the partially decoded
entity when any mismatch was recorded.
"""

from __future__ import annotations

import json
from datetime import datetime
from enum import IntEnum
from typing import Any, Dict, List, Mapping, Optional, Protocol, Type, TypeVar, runtime_checkable

from pydantic import BaseModel

from erpstore.domain.models import BaseEntity, EntityStatus
from erpstore.domain.values import DynamicRecord, Kind, Value, parse_timestamp
from erpstore.errors import DecodeTypeMismatch, FieldMismatch

E = TypeVar("E")
M = TypeVar("M", bound=BaseModel)
N = TypeVar("N", bound=IntEnum)

JSON_SUFFIX = "_json"
_TRUE_STRINGS = {"true", "1", "yes"}
_FALSE_STRINGS = {"false", "0", "no"}


@runtime_checkable
class RecordCodec(Protocol[E]):
    """Converts one entity type to and from a :class:`DynamicRecord`."""

    def encode(self, entity: E) -> DynamicRecord:
        """Every column the table expects; absent optional attributes omitted."""
        ...

    def decode(self, record: DynamicRecord) -> E:
        """Tolerates missing optional keys; raises DecodeTypeMismatch on kind errors."""
        ...

    def default(self) -> E:
        """A default-constructed entity, used when a row cannot be decoded at all."""
        ...


class RecordWriter:
    """Builds a :class:`DynamicRecord` column by column."""

    def __init__(self) -> None:
        self._values: Dict[str, Value] = {}

    def put(self, key: str, value: Value) -> "RecordWriter":
        if key in self._values:
            raise ValueError(f"Column '{key}' written twice")
        self._values[key] = value
        return self

    def put_string(self, key: str, value: str) -> "RecordWriter":
        return self.put(key, Value.string(value))

    def put_integer(self, key: str, value: int) -> "RecordWriter":
        return self.put(key, Value.integer(value))

    def put_float(self, key: str, value: float) -> "RecordWriter":
        return self.put(key, Value.floating(value))

    def put_bool(self, key: str, value: bool) -> "RecordWriter":
        return self.put(key, Value.boolean(value))

    def put_timestamp(self, key: str, value: datetime) -> "RecordWriter":
        return self.put(key, Value.timestamp(value))

    def put_enum(self, key: str, value: IntEnum) -> "RecordWriter":
        return self.put(key, Value.integer(int(value)))

    def put_json_map(self, field: str, value: Mapping[str, Any]) -> "RecordWriter":
        """Write ``value`` as JSON text into ``<field>_json``; ``{}`` becomes ``""``."""
        text = json.dumps(dict(value), sort_keys=True, default=str) if value else ""
        return self.put(field + JSON_SUFFIX, Value.blob(text))

    def put_optional_string(self, key: str, value: Optional[str]) -> "RecordWriter":
        return self if value is None else self.put_string(key, value)

    def put_optional_integer(self, key: str, value: Optional[int]) -> "RecordWriter":
        return self if value is None else self.put_integer(key, value)

    def put_optional_float(self, key: str, value: Optional[float]) -> "RecordWriter":
        return self if value is None else self.put_float(key, value)

    def put_optional_timestamp(self, key: str, value: Optional[datetime]) -> "RecordWriter":
        return self if value is None else self.put_timestamp(key, value)

    def build(self) -> DynamicRecord:
        return DynamicRecord(self._values)


class RecordReader:
    """Typed, mismatch-recording access to a :class:`DynamicRecord`."""

    def __init__(self, record: Mapping[str, Value]) -> None:
        self.record = record
        self.mismatches: List[FieldMismatch] = []

    def _get(self, key: str) -> Optional[Value]:
        value = self.record.get(key)
        if value is None or value.is_null:
            return None
        return value

    def _mismatch(self, key: str, expected: str, value: Value) -> None:
        self.mismatches.append(FieldMismatch(key=key, expected=expected, actual=value.kind.value))
        return None

    def string(self, key: str) -> Optional[str]:
        value = self._get(key)
        if value is None:
            return None
        if value.kind is Kind.STRING:
            return value.payload
        # integer identifiers coming back from loosely typed columns
        if value.kind is Kind.INTEGER:
            return str(value.payload)
        return self._mismatch(key, Kind.STRING.value, value)

    def integer(self, key: str) -> Optional[int]:
        value = self._get(key)
        if value is None:
            return None
        if value.kind is Kind.INTEGER:
            return value.payload
        if value.kind is Kind.BOOLEAN:
            return int(value.payload)
        return self._mismatch(key, Kind.INTEGER.value, value)

    def floating(self, key: str) -> Optional[float]:
        value = self._get(key)
        if value is None:
            return None
        if value.kind in (Kind.FLOAT, Kind.INTEGER):
            return float(value.payload)
        return self._mismatch(key, Kind.FLOAT.value, value)

    def boolean(self, key: str) -> Optional[bool]:
        value = self._get(key)
        if value is None:
            return None
        if value.kind is Kind.BOOLEAN:
            return value.payload
        if value.kind is Kind.INTEGER and value.payload in (0, 1):
            return bool(value.payload)
        if value.kind is Kind.STRING:
            lowered = value.payload.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        return self._mismatch(key, Kind.BOOLEAN.value, value)

    def timestamp(self, key: str) -> Optional[datetime]:
        value = self._get(key)
        if value is None:
            return None
        if value.kind is Kind.TIMESTAMP:
            return value.payload
        if value.kind is Kind.STRING:
            try:
                return parse_timestamp(value.payload)
            except ValueError:
                pass
        return self._mismatch(key, Kind.TIMESTAMP.value, value)

    def enum(self, key: str, enum_cls: Type[N]) -> Optional[N]:
        value = self._get(key)
        if value is None:
            return None
        if value.kind is Kind.INTEGER:
            try:
                return enum_cls(value.payload)
            except ValueError:
                pass
        return self._mismatch(key, enum_cls.__name__, value)

    def json_map(self, field: str) -> Optional[Dict[str, Any]]:
        """Read ``<field>_json``; ``""`` decodes to an empty map."""
        key = field + JSON_SUFFIX
        value = self._get(key)
        if value is None:
            return None
        if value.kind in (Kind.STRING, Kind.BLOB):
            text = value.payload
            if isinstance(text, bytes):
                text = text.decode("utf-8", errors="replace")
            if not text:
                return {}
            try:
                parsed = json.loads(text)
            except ValueError:
                parsed = None
            if isinstance(parsed, dict):
                return parsed
        return self._mismatch(key, "json map", value)

    def build(self, model: Type[M], **attrs: Any) -> M:
        """
        Construct ``model`` from the decoded attributes, skipping unset ones.

        Raises
        ------
        DecodeTypeMismatch
            If any reader call recorded a mismatch; ``partial`` holds the entity.
        """
        entity = model(**{key: value for key, value in attrs.items() if value is not None})
        if self.mismatches:
            raise DecodeTypeMismatch(self.mismatches, partial=entity)
        return entity


def write_base(writer: RecordWriter, entity: BaseEntity) -> RecordWriter:
    """Write the attributes every entity shares."""
    return (
        writer.put_string("id", entity.id)
        .put_enum("status", entity.status)
        .put_timestamp("created_at", entity.created_at)
        .put_optional_timestamp("updated_at", entity.updated_at)
        .put_optional_string("created_by", entity.created_by)
        .put_optional_string("updated_by", entity.updated_by)
    )


def read_base(reader: RecordReader) -> Dict[str, Any]:
    """Read the shared attributes as keyword arguments for :meth:`RecordReader.build`."""
    status = reader.enum("status", EntityStatus)
    if status is None and "status" not in reader.record:
        status = EntityStatus.UNKNOWN
    return {
        "id": reader.string("id"),
        "status": status,
        "created_at": reader.timestamp("created_at"),
        "updated_at": reader.timestamp("updated_at"),
        "created_by": reader.string("created_by"),
        "updated_by": reader.string("updated_by"),
    }


__all__ = [
    "JSON_SUFFIX",
    "RecordCodec",
    "RecordWriter",
    "RecordReader",
    "write_base",
    "read_base",
]
