"""
Application configuration entries (``configs`` table).

``metadata`` is stored as JSON text in ``metadata_json``; an empty map is
stored as an empty string. Timestamps are UTC at whole-second precision.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Dict, Optional

from pydantic import Field

from erpstore.domain.codec import RecordReader, RecordWriter, read_base, write_base
from erpstore.domain.models import BaseEntity
from erpstore.domain.values import DynamicRecord

TABLE = "configs"


class ConfigType(IntEnum):
    STRING = 0
    INTEGER = 1
    BOOLEAN = 2
    DOUBLE = 3
    JSON = 4
    DATETIME = 5
    PASSWORD = 6


class ConfigEntry(BaseEntity):
    config_key: str = ""
    config_value: str = ""
    config_type: ConfigType = ConfigType.STRING
    description: Optional[str] = None
    is_encrypted: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Validation rules, UI hints.")


class ConfigEntryCodec:
    def encode(self, entry: ConfigEntry) -> DynamicRecord:
        return (
            write_base(RecordWriter(), entry)
            .put_string("config_key", entry.config_key)
            .put_string("config_value", entry.config_value)
            .put_enum("config_type", entry.config_type)
            .put_optional_string("description", entry.description)
            .put_bool("is_encrypted", entry.is_encrypted)
            .put_json_map("metadata", entry.metadata)
            .build()
        )

    def decode(self, record: DynamicRecord) -> ConfigEntry:
        reader = RecordReader(record)
        return reader.build(
            ConfigEntry,
            **read_base(reader),
            config_key=reader.string("config_key"),
            config_value=reader.string("config_value"),
            config_type=reader.enum("config_type", ConfigType),
            description=reader.string("description"),
            is_encrypted=reader.boolean("is_encrypted"),
            metadata=reader.json_map("metadata"),
        )

    def default(self) -> ConfigEntry:
        return ConfigEntry()


__all__ = ["TABLE", "ConfigEntry", "ConfigEntryCodec", "ConfigType"]
