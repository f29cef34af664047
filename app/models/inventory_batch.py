from uuid import uuid4

from sqlalchemy import Column, String, DateTime, Text, Integer, ForeignKey
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.inventory import utcnow, METERS_UNIT


BATCH_LOCATIONS = ("warehouse", "crew")
BATCH_STATUSES = ("active", "depleted", "returned")


class InventoryBatch(Base):
    """Length-measured stock unit (cable bobbin) belonging to a metres item."""

    __tablename__ = "inventory_batches"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    batch_code = Column(String(50), unique=True, nullable=False, index=True)  # stored upper-case
    item_id = Column(String(36), ForeignKey("inventory_items.id"), nullable=False, index=True)

    initial_quantity = Column(Integer, nullable=False)
    current_quantity = Column(Integer, nullable=False)
    unit = Column(String(20), default=METERS_UNIT)

    location = Column(String(20), default="warehouse", nullable=False)  # warehouse, crew
    crew_id = Column(String(36), ForeignKey("crews.id"), nullable=True, index=True)
    status = Column(String(20), default="active", nullable=False)  # active, depleted, returned

    supplier = Column(String(100), default="Netuno")
    acquisition_date = Column(DateTime(timezone=True), default=utcnow)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    item = relationship("InventoryItem", lazy="selectin")
    crew = relationship("Crew", lazy="selectin")

    def __repr__(self):
        return f"<InventoryBatch {self.batch_code} {self.current_quantity}/{self.initial_quantity}>"
