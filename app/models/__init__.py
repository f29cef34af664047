from app.models.user import User
from app.models.inventory import InventoryItem, EquipmentInstance
from app.models.crew import Crew, CrewInventoryItem
from app.models.inventory_batch import InventoryBatch
from app.models.inventory_history import InventoryHistory
from app.models.inventory_snapshot import InventorySnapshot

__all__ = [
    "User",
    "InventoryItem",
    "EquipmentInstance",
    "Crew",
    "CrewInventoryItem",
    "InventoryBatch",
    "InventoryHistory",
    "InventorySnapshot",
]
