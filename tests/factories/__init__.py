"""
Test factories for generating realistic request payloads.

Uses factory_boy for declarative test data generation. Payloads use the
camelCase keys the API accepts; schemas accept them as keyword arguments too.
"""

from .inventory import (
    InventoryItemFactory,
    EquipmentItemFactory,
    CableItemFactory,
    ToolItemFactory,
    InstanceFactory,
    BatchFactory,
)
from .crew import CrewFactory, InactiveCrewFactory

__all__ = [
    "InventoryItemFactory",
    "EquipmentItemFactory",
    "CableItemFactory",
    "ToolItemFactory",
    "InstanceFactory",
    "BatchFactory",
    "CrewFactory",
    "InactiveCrewFactory",
]
