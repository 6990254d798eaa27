"""
Dynamic record representation exchanged between entities and storage.

A :class:`DynamicRecord` maps column names to :class:`Value` objects. Each
value carries an explicit :class:`Kind` discriminant, so codecs check the
kind instead of guessing from Python types. A key that is absent is
different from a key holding ``Value.null()``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Iterator, Optional
from uuid import UUID

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class Kind(str, Enum):
    NULL = "null"
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    BLOB = "blob"


def normalize_timestamp(value: datetime) -> datetime:
    """Convert to naive UTC with whole-second precision, as stored."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0)


def format_timestamp(value: datetime) -> str:
    return normalize_timestamp(value).strftime(DATETIME_FORMAT)


def parse_timestamp(text: str) -> datetime:
    """Parse a stored timestamp; raises ValueError on a malformed string."""
    return datetime.strptime(text, DATETIME_FORMAT)


@dataclass(frozen=True)
class Value:
    """
    A single tagged column value.

    ``payload`` is a ``str`` for STRING, ``int`` for INTEGER, ``float`` for
    FLOAT, ``bool`` for BOOLEAN, a naive UTC ``datetime`` for TIMESTAMP and
    ``str`` or ``bytes`` for BLOB.
    """

    kind: Kind
    payload: Any = None

    @classmethod
    def null(cls) -> "Value":
        return cls(Kind.NULL)

    @classmethod
    def string(cls, value: str) -> "Value":
        return cls(Kind.STRING, str(value))

    @classmethod
    def integer(cls, value: int) -> "Value":
        return cls(Kind.INTEGER, int(value))

    @classmethod
    def floating(cls, value: float) -> "Value":
        return cls(Kind.FLOAT, float(value))

    @classmethod
    def boolean(cls, value: bool) -> "Value":
        return cls(Kind.BOOLEAN, bool(value))

    @classmethod
    def timestamp(cls, value: datetime) -> "Value":
        return cls(Kind.TIMESTAMP, normalize_timestamp(value))

    @classmethod
    def blob(cls, value: Any) -> "Value":
        """Wrap serialized text or bytes; mappings and lists are JSON-encoded."""
        if isinstance(value, (dict, list)):
            value = json.dumps(value, sort_keys=True) if value else ""
        return cls(Kind.BLOB, value)

    @classmethod
    def of(cls, raw: Any) -> "Value":
        """
        Infer the kind of a plain Python value (as returned by a DB driver).

        Driver types without a kind of their own map as follows: ``date`` and
        ``time`` to STRING in ISO form, ``UUID`` to STRING, ``timedelta`` to
        FLOAT seconds and ``Decimal`` to FLOAT.

        Raises
        ------
        TypeError
            If the value has no corresponding kind.
        """
        if isinstance(raw, Value):
            return raw
        if raw is None:
            return cls.null()
        # bool before int: bool is an int subclass
        if isinstance(raw, bool):
            return cls.boolean(raw)
        if isinstance(raw, int):
            return cls.integer(raw)
        if isinstance(raw, float):
            return cls.floating(raw)
        if isinstance(raw, str):
            return cls.string(raw)
        if isinstance(raw, datetime):
            return cls.timestamp(raw)
        # date after datetime: datetime is a date subclass
        if isinstance(raw, (date, time)):
            return cls.string(raw.isoformat())
        if isinstance(raw, UUID):
            return cls.string(str(raw))
        if isinstance(raw, timedelta):
            return cls.floating(raw.total_seconds())
        if isinstance(raw, (bytes, bytearray, memoryview, dict, list)):
            return cls.blob(bytes(raw) if isinstance(raw, (bytearray, memoryview)) else raw)
        # Decimal and other numeric driver types
        if hasattr(raw, "__float__"):
            return cls.floating(float(raw))
        raise TypeError(f"Unsupported column value type: {type(raw).__name__}")

    @property
    def is_null(self) -> bool:
        return self.kind is Kind.NULL

    def to_param(self) -> Any:
        """Driver-facing value used when binding a placeholder."""
        if self.kind is Kind.TIMESTAMP:
            return self.payload.strftime(DATETIME_FORMAT)
        return self.payload

    def to_json(self) -> Any:
        """JSON-friendly rendering (CLI output)."""
        if self.kind is Kind.TIMESTAMP:
            return self.payload.strftime(DATETIME_FORMAT)
        if self.kind is Kind.BLOB and isinstance(self.payload, bytes):
            return self.payload.hex()
        return self.payload


class DynamicRecord(Mapping):
    """
    Immutable mapping of column name to :class:`Value`.

    Construct from already-tagged values, or with :meth:`from_raw` from plain
    Python values (query results, filters).
    """

    __slots__ = ("_values",)

    def __init__(self, values: Optional[Mapping[str, Value]] = None) -> None:
        items: Dict[str, Value] = {}
        for key, value in (values or {}).items():
            if not isinstance(value, Value):
                raise TypeError(f"Column '{key}' holds {type(value).__name__}, expected Value")
            items[str(key)] = value
        self._values = items

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "DynamicRecord":
        return cls({key: Value.of(value) for key, value in raw.items()})

    def __getitem__(self, key: str) -> Value:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v.kind.value}:{v.payload!r}" for k, v in self._values.items())
        return f"DynamicRecord({body})"

    def without(self, *keys: str) -> "DynamicRecord":
        return DynamicRecord({k: v for k, v in self._values.items() if k not in keys})

    def merged(self, other: Mapping[str, Value]) -> "DynamicRecord":
        """Return a copy with ``other``'s keys added (``other`` wins on collision)."""
        combined = dict(self._values)
        combined.update(other)
        return DynamicRecord(combined)

    def to_params(self) -> Dict[str, Any]:
        return {key: value.to_param() for key, value in self._values.items()}

    def to_json(self) -> Dict[str, Any]:
        return {key: value.to_json() for key, value in self._values.items()}


__all__ = [
    "DATETIME_FORMAT",
    "Kind",
    "Value",
    "DynamicRecord",
    "normalize_timestamp",
    "format_timestamp",
    "parse_timestamp",
]
