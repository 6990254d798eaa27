"""
Domain package for erpstore.

Exports the dynamic record representation, the base entity model and the
codec helpers entity modules are built from. Keep this package free of I/O.
"""

from erpstore.domain.codec import RecordCodec, RecordReader, RecordWriter, read_base, write_base
from erpstore.domain.models import BaseEntity, EntityStatus
from erpstore.domain.values import DATETIME_FORMAT, DynamicRecord, Kind, Value

__all__ = [
    "DATETIME_FORMAT",
    "DynamicRecord",
    "Kind",
    "Value",
    "BaseEntity",
    "EntityStatus",
    "RecordCodec",
    "RecordReader",
    "RecordWriter",
    "read_base",
    "write_base",
]
