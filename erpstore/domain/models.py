"""
Base entity model shared by every business record type.

Entity modules (payments, configs, ...) derive from :class:`BaseEntity` and add
their own attributes. Entities are frozen: changes are made with
``entity.model_copy(update={...})``, which also keeps ``id`` immutable once a
record has been persisted.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import IntEnum
from typing import Optional

from pydantic import BaseModel, Field

from erpstore.domain.values import normalize_timestamp


class EntityStatus(IntEnum):
    """Lifecycle status persisted as its integer ordinal."""

    INACTIVE = 0
    ACTIVE = 1
    PENDING = 2
    DELETED = 3
    UNKNOWN = 99


def utcnow() -> datetime:
    """Current time already normalized to the stored precision."""
    return normalize_timestamp(datetime.now(timezone.utc))


class BaseEntity(BaseModel):
    """
    Attributes common to every persisted record.
    """

    id: str = Field("", description="Identifier, assigned before persistence.")
    status: EntityStatus = Field(EntityStatus.ACTIVE, description="Lifecycle status.")
    created_at: datetime = Field(default_factory=utcnow, description="Creation timestamp (UTC).")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp (UTC).")
    created_by: Optional[str] = Field(None, description="User that created the record.")
    updated_by: Optional[str] = Field(None, description="User that last updated the record.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "arbitrary_types_allowed": False,
    }


__all__ = ["BaseEntity", "EntityStatus", "utcnow"]
