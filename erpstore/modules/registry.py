"""Registry of the entity modules available to the CLI."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, NamedTuple

from erpstore.domain.codec import RecordCodec
from erpstore.modules import config_entry, payment


class EntityModule(NamedTuple):
    table: str
    codec_factory: Callable[[], RecordCodec[Any]]


def _entity_modules() -> Dict[str, EntityModule]:
    return {
        "payment": EntityModule(payment.TABLE, payment.PaymentCodec),
        "config": EntityModule(config_entry.TABLE, config_entry.ConfigEntryCodec),
    }


def available_entities() -> List[str]:
    """List registered entity names."""
    return sorted(_entity_modules())


def resolve_entity(name: str) -> EntityModule:
    modules = _entity_modules()
    if name not in modules:
        raise ValueError(f"Unknown entity '{name}'. Available: {', '.join(sorted(modules))}")
    return modules[name]


__all__ = ["EntityModule", "available_entities", "resolve_entity"]
