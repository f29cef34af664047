from uuid import uuid4

from sqlalchemy import Column, String, Integer, DateTime, JSON

from app.database import Base
from app.models.inventory import utcnow


class InventorySnapshot(Base):
    """Immutable point-in-time copy of warehouse and crew inventory.

    Rows are never deduplicated; two snapshots taken the same day are both kept.
    """

    __tablename__ = "inventory_snapshots"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    snapshot_date = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    # [{"item", "code", "description", "quantity"}]
    warehouse_inventory = Column(JSON, default=list, nullable=False)
    # [{"crew", "crewName", "items": [{"item", "code", "description", "quantity"}]}]
    crew_inventories = Column(JSON, default=list, nullable=False)

    total_items = Column(Integer, default=0, nullable=False)
    total_warehouse_stock = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<InventorySnapshot {self.snapshot_date} items={self.total_items}>"
