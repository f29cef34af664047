from uuid import uuid4

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.inventory import utcnow


MOVEMENT_TYPES = ("entry", "assignment", "return", "usage_order", "adjustment")


class InventoryHistory(Base):
    """Append-only audit trail of inventory movements."""

    __tablename__ = "inventory_history"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    item_id = Column(String(36), ForeignKey("inventory_items.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False, index=True)  # entry, assignment, return, usage_order, adjustment
    quantity_change = Column(Integer, nullable=False)  # signed
    reason = Column(String(500))
    crew_id = Column(String(36), ForeignKey("crews.id"), nullable=True, index=True)
    order_id = Column(String(36), nullable=True, index=True)
    batch_id = Column(String(36), ForeignKey("inventory_batches.id"), nullable=True)
    instance_ids = Column(JSON, nullable=True)
    performed_by = Column(Integer)  # user_id
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    item = relationship("InventoryItem", lazy="selectin")
    crew = relationship("Crew", lazy="selectin")

    def __repr__(self):
        return f"<InventoryHistory {self.type} item={self.item_id} qty={self.quantity_change}>"
