"""Inventory catalog model and the serialized equipment instances it owns."""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, String, DateTime, Text, Integer, Boolean, ForeignKey
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import relationship

from app.database import Base
from app.exceptions import DerivedStockError


ITEM_TYPES = ("material", "equipment", "tool")

INSTANCE_STATUSES = ("in-stock", "assigned", "installed", "damaged", "retired")

DEFAULT_UNIT = "unidades"
METERS_UNIT = "metros"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InventoryItem(Base):
    """Catalog entry for a material, equipment or tool.

    ``current_stock`` is authoritative for material and tool items and is
    moved through signed increments. For equipment it is a derived figure
    (count of in-stock instances) that only the stock reconciler writes.
    """

    __tablename__ = "inventory_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # Item identification
    code = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(String(255), nullable=False)
    unit = Column(String(20), default=DEFAULT_UNIT, nullable=False)  # unidades, metros, ...
    type = Column(String(20), nullable=False, index=True)  # material, equipment, tool

    # Stock levels
    _current_stock = Column("current_stock", Integer, default=0, nullable=False)
    minimum_stock = Column(Integer, default=5, nullable=False)

    # Audit
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    instances = relationship(
        "EquipmentInstance",
        back_populates="item",
        lazy="selectin",
        order_by="EquipmentInstance.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<InventoryItem {self.code} - {self.description}>"

    @hybrid_property
    def current_stock(self):
        return self._current_stock

    @current_stock.setter
    def current_stock(self, value):
        if self.type == "equipment":
            raise DerivedStockError(self.description or self.code or "equipo")
        self._current_stock = value

    @property
    def is_equipment(self) -> bool:
        return self.type == "equipment"

    @property
    def needs_reorder(self) -> bool:
        """Stock at or below the reorder threshold."""
        return (self._current_stock or 0) <= (self.minimum_stock or 0)

    def find_instance(self, unique_id: str):
        for instance in self.instances:
            if instance.unique_id == unique_id:
                return instance
        return None


class EquipmentInstance(Base):
    """One physically serialized unit of an equipment item."""

    __tablename__ = "equipment_instances"

    # Autoincrement key preserves insertion order for listings
    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(String(36), ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True)

    unique_id = Column(String(100), unique=True, nullable=False, index=True)
    serial_number = Column(String(100), nullable=True)
    mac_address = Column(String(50), nullable=True)

    status = Column(String(20), default="in-stock", nullable=False, index=True)

    # Assignment (present once assigned)
    assigned_crew_id = Column(String(36), ForeignKey("crews.id"), nullable=True, index=True)
    assigned_order_id = Column(String(36), nullable=True)
    assigned_at = Column(DateTime(timezone=True), nullable=True)

    # Installation (present once installed)
    installed_order_id = Column(String(36), nullable=True, index=True)
    installed_date = Column(DateTime(timezone=True), nullable=True)
    installed_location = Column(String(255), nullable=True)

    notes = Column(Text, nullable=True)

    # Set on first assignment; blocks deletion even after a return to stock
    was_deployed = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    item = relationship("InventoryItem", back_populates="instances")

    def __repr__(self):
        return f"<EquipmentInstance {self.unique_id} ({self.status})>"

    @property
    def assigned_to(self) -> dict | None:
        if not self.assigned_crew_id:
            return None
        return {
            "crewId": self.assigned_crew_id,
            "orderId": self.assigned_order_id,
            "assignedAt": self.assigned_at.isoformat() if self.assigned_at else None,
        }

    @property
    def installed_at(self) -> dict | None:
        if not self.installed_order_id:
            return None
        return {
            "orderId": self.installed_order_id,
            "installedDate": self.installed_date.isoformat() if self.installed_date else None,
            "location": self.installed_location,
        }
