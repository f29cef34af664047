"""Field crews and the material each one carries."""
from uuid import uuid4

from sqlalchemy import Column, String, DateTime, Integer, Boolean, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.inventory import utcnow


class Crew(Base):
    """Installation/repair crew."""

    __tablename__ = "crews"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name = Column(String(100), unique=True, nullable=False, index=True)
    leader_name = Column(String(150), nullable=True)
    members = Column(JSON, default=list)  # ["Nombre Apellido", ...]
    vehicles = Column(JSON, default=list)  # [{"id": ..., "name": ...}]
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    assigned_inventory = relationship(
        "CrewInventoryItem",
        back_populates="crew",
        lazy="selectin",
        order_by="CrewInventoryItem.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Crew {self.name}>"

    def holding(self, item_id: str):
        """Assigned-inventory entry for an item, if the crew carries it."""
        for entry in self.assigned_inventory:
            if entry.item_id == item_id:
                return entry
        return None


class CrewInventoryItem(Base):
    """Quantity of one catalog item held by a crew. Rows at zero are removed."""

    __tablename__ = "crew_inventory_items"
    __table_args__ = (UniqueConstraint("crew_id", "item_id", name="uq_crew_inventory_item"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    crew_id = Column(String(36), ForeignKey("crews.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = Column(String(36), ForeignKey("inventory_items.id"), nullable=False, index=True)
    quantity = Column(Integer, default=0, nullable=False)
    last_update = Column(DateTime(timezone=True), default=utcnow)

    crew = relationship("Crew", back_populates="assigned_inventory")
    item = relationship("InventoryItem", lazy="selectin")

    def __repr__(self):
        return f"<CrewInventoryItem crew={self.crew_id} item={self.item_id} qty={self.quantity}>"
