"""Crew records and the per-crew assigned-inventory list."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import DuplicateError, InsufficientStockError, NotFoundError
from app.models.crew import Crew, CrewInventoryItem
from app.models.inventory import InventoryItem, utcnow
from app.schemas.crew import CrewCreate, CrewUpdate

logger = logging.getLogger(__name__)


async def get_crew(db: AsyncSession, crew_id: str, lock: bool = False) -> Crew:
    query = select(Crew).where(Crew.id == crew_id)
    if lock:
        query = query.with_for_update().execution_options(populate_existing=True)
    crew = (await db.execute(query)).scalar_one_or_none()
    if crew is None:
        raise NotFoundError("Cuadrilla", crew_id)
    return crew


def add_to_crew(crew: Crew, item: InventoryItem, quantity: int) -> CrewInventoryItem:
    """Increase the crew's holding of an item, appending a new entry if needed."""
    entry = crew.holding(item.id)
    if entry is None:
        entry = CrewInventoryItem(item_id=item.id, item=item, quantity=0)
        crew.assigned_inventory.append(entry)
    entry.quantity += quantity
    entry.last_update = utcnow()
    return entry


def remove_from_crew(crew: Crew, item: InventoryItem, quantity: int) -> int:
    """Decrease the crew's holding; entries reaching zero are dropped.

    Raises InsufficientStockError when the crew carries less than requested.
    Returns the quantity left with the crew.
    """
    entry = crew.holding(item.id)
    available = entry.quantity if entry else 0
    if available < quantity:
        logger.warning(
            f"Crew {crew.name} holds {available} of {item.code}, {quantity} requested"
        )
        raise InsufficientStockError(item.description, available, quantity)

    entry.quantity -= quantity
    entry.last_update = utcnow()
    if entry.quantity == 0:
        crew.assigned_inventory.remove(entry)
        return 0
    return entry.quantity


async def list_crews(db: AsyncSession, is_active: Optional[bool] = None) -> list[Crew]:
    query = select(Crew).order_by(Crew.name)
    if is_active is not None:
        query = query.where(Crew.is_active == is_active)
    return list((await db.execute(query)).scalars().all())


async def create_crew(db: AsyncSession, data: CrewCreate) -> Crew:
    existing = await db.execute(select(Crew.id).where(Crew.name == data.name))
    if existing.scalar_one_or_none():
        raise DuplicateError(f"Ya existe una cuadrilla con el nombre {data.name}")

    crew = Crew(
        name=data.name,
        leader_name=data.leader_name,
        members=list(data.members),
        vehicles=[v.model_dump() for v in data.vehicles],
        is_active=data.is_active,
        assigned_inventory=[],
    )
    db.add(crew)
    try:
        await db.flush()
    except IntegrityError:
        raise DuplicateError(f"Ya existe una cuadrilla con el nombre {data.name}")
    logger.info(f"Crew created: {crew.name}")
    return crew


async def update_crew(db: AsyncSession, crew_id: str, data: CrewUpdate) -> Crew:
    crew = await get_crew(db, crew_id, lock=True)
    update_data = data.model_dump(exclude_unset=True)

    if "name" in update_data and update_data["name"] != crew.name:
        clash = await db.execute(select(Crew.id).where(Crew.name == update_data["name"]))
        if clash.scalar_one_or_none():
            raise DuplicateError(f"Ya existe una cuadrilla con el nombre {update_data['name']}")

    for field, value in update_data.items():
        setattr(crew, field, value)
    await db.flush()
    return crew
