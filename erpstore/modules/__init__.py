"""
Entity modules: one model + codec pair per business record type.

Each module exposes ``TABLE``, the pydantic entity and its codec; the
registry maps CLI names to them.
"""

from erpstore.modules.config_entry import ConfigEntry, ConfigEntryCodec, ConfigType
from erpstore.modules.payment import Payment, PaymentCodec, PaymentMethod, PaymentStatus
from erpstore.modules.registry import EntityModule, available_entities, resolve_entity

__all__ = [
    "ConfigEntry",
    "ConfigEntryCodec",
    "ConfigType",
    "Payment",
    "PaymentCodec",
    "PaymentMethod",
    "PaymentStatus",
    "EntityModule",
    "available_entities",
    "resolve_entity",
]
