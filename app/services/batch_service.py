"""
Cable bobbins (length-measured batches).

A bobbin's metres are part of its item's warehouse stock while it sits in
the warehouse, and part of the owning crew's assigned inventory once handed
over. Every quantity edit moves the matching aggregate by the same delta.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import (
    DuplicateError,
    InvalidItemTypeError,
    NotFoundError,
    ValidationError,
)
from app.models.inventory import InventoryItem, METERS_UNIT
from app.models.inventory_batch import InventoryBatch
from app.schemas.inventory import BatchCreate, BatchUpdate
from app.services import crew_inventory
from app.services.inventory_history import record_movement
from app.services.inventory_service import get_item
from app.services.stock_reconciler import adjust_stock

logger = logging.getLogger(__name__)


def is_meters_item(item: InventoryItem) -> bool:
    return (item.unit or "").strip().lower() == METERS_UNIT


def require_meters_item(item: InventoryItem) -> None:
    if not is_meters_item(item):
        raise InvalidItemTypeError(
            f"El ítem '{item.description}' no se mide en {METERS_UNIT} (unidad: {item.unit})"
        )


def status_for(quantity: int) -> str:
    return "depleted" if quantity == 0 else "active"


async def get_batch(db: AsyncSession, batch_code: str, lock: bool = False) -> InventoryBatch:
    code = batch_code.strip().upper()
    query = select(InventoryBatch).where(InventoryBatch.batch_code == code)
    if lock:
        query = query.with_for_update().execution_options(populate_existing=True)
    batch = (await db.execute(query)).scalar_one_or_none()
    if batch is None:
        raise NotFoundError("Bobina", code)
    return batch


async def get_batches(
    db: AsyncSession,
    *,
    item_id: Optional[str] = None,
    location: Optional[str] = None,
    crew_id: Optional[str] = None,
    status: Optional[str] = None,
    batch_code: Optional[str] = None,
) -> list[InventoryBatch]:
    query = select(InventoryBatch)
    if item_id:
        query = query.where(InventoryBatch.item_id == item_id)
    if location:
        query = query.where(InventoryBatch.location == location)
    if crew_id:
        query = query.where(InventoryBatch.crew_id == crew_id)
    if status:
        query = query.where(InventoryBatch.status == status)
    if batch_code:
        query = query.where(InventoryBatch.batch_code.ilike(f"%{batch_code}%"))
    result = await db.execute(query.order_by(InventoryBatch.batch_code))
    return list(result.scalars().all())


async def create_batch(db: AsyncSession, data: BatchCreate, performed_by: Optional[int] = None) -> InventoryBatch:
    """Register a new warehouse bobbin; its metres join the item's stock."""
    item = await get_item(db, data.item_id)
    require_meters_item(item)

    code = data.batch_code.strip().upper()
    clash = await db.execute(select(InventoryBatch.id).where(InventoryBatch.batch_code == code))
    if clash.scalar_one_or_none():
        raise DuplicateError(f"Ya existe una bobina con el código {code}")

    batch = InventoryBatch(
        batch_code=code,
        item_id=item.id,
        item=item,
        initial_quantity=data.initial_quantity,
        current_quantity=data.initial_quantity,
        unit=data.unit or item.unit or METERS_UNIT,
        supplier=data.supplier or "Netuno",
        notes=data.notes,
        location="warehouse",
        status="active",
    )
    if data.acquisition_date:
        batch.acquisition_date = data.acquisition_date
    db.add(batch)
    try:
        await db.flush()
    except IntegrityError:
        raise DuplicateError(f"Ya existe una bobina con el código {code}")

    await adjust_stock(db, item.id, data.initial_quantity)
    record_movement(
        db,
        item_id=item.id,
        type="entry",
        quantity_change=data.initial_quantity,
        reason=f"Ingreso de bobina {code}",
        batch_id=batch.id,
        performed_by=performed_by,
    )
    await db.flush()
    logger.info(f"Bobbin {code} created with {data.initial_quantity}m of {item.code}")
    return batch


async def _shift_holder(db: AsyncSession, batch: InventoryBatch, item: InventoryItem, delta: int) -> None:
    """Apply a metres delta to whoever holds the bobbin: warehouse stock or crew list."""
    if delta == 0:
        return
    if batch.location == "crew" and batch.crew_id:
        crew = await crew_inventory.get_crew(db, batch.crew_id, lock=True)
        if delta > 0:
            crew_inventory.add_to_crew(crew, item, delta)
        else:
            crew_inventory.remove_from_crew(crew, item, -delta)
    else:
        await adjust_stock(db, item.id, delta)


async def add_meters(
    db: AsyncSession, batch_code: str, meters: int, performed_by: Optional[int] = None
) -> InventoryBatch:
    batch = await get_batch(db, batch_code, lock=True)
    if batch.status == "depleted":
        raise ValidationError("No se pueden añadir metros a una bobina agotada")

    batch.current_quantity += meters
    await _shift_holder(db, batch, batch.item, meters)
    record_movement(
        db,
        item_id=batch.item_id,
        type="entry",
        quantity_change=meters,
        reason=f"Metros añadidos a bobina {batch.batch_code}",
        crew_id=batch.crew_id if batch.location == "crew" else None,
        batch_id=batch.id,
        performed_by=performed_by,
    )
    await db.flush()
    logger.info(f"Added {meters}m to bobbin {batch.batch_code}")
    return batch


async def update_batch(db: AsyncSession, data: BatchUpdate, performed_by: Optional[int] = None) -> InventoryBatch:
    """Correct a bobbin's remaining metres, optionally moving it to another metres item.

    The holder's aggregate moves by exactly (new - old). When the item
    changes, the old item loses the old quantity and the new item gains the
    new one.
    """
    batch = await get_batch(db, data.batch_code, lock=True)
    new_item = await get_item(db, data.item_id)
    require_meters_item(new_item)

    old_item = batch.item
    old_quantity = batch.current_quantity
    new_quantity = data.current_quantity
    crew_id = batch.crew_id if batch.location == "crew" else None

    if old_item.id == new_item.id:
        delta = new_quantity - old_quantity
        await _shift_holder(db, batch, new_item, delta)
        record_movement(
            db,
            item_id=new_item.id,
            type="adjustment",
            quantity_change=delta,
            reason=f"Edición de bobina {batch.batch_code}: {old_quantity}m -> {new_quantity}m",
            crew_id=crew_id,
            batch_id=batch.id,
            performed_by=performed_by,
        )
    else:
        await _shift_holder(db, batch, old_item, -old_quantity)
        await _shift_holder(db, batch, new_item, new_quantity)
        record_movement(
            db,
            item_id=old_item.id,
            type="adjustment",
            quantity_change=-old_quantity,
            reason=f"Bobina {batch.batch_code} reasignada a {new_item.code}",
            crew_id=crew_id,
            batch_id=batch.id,
            performed_by=performed_by,
        )
        record_movement(
            db,
            item_id=new_item.id,
            type="adjustment",
            quantity_change=new_quantity,
            reason=f"Bobina {batch.batch_code} reasignada desde {old_item.code}",
            crew_id=crew_id,
            batch_id=batch.id,
            performed_by=performed_by,
        )
        batch.item_id = new_item.id
        batch.item = new_item

    batch.current_quantity = new_quantity
    batch.status = status_for(new_quantity)
    await db.flush()
    logger.info(f"Bobbin {batch.batch_code} updated: {old_quantity}m -> {new_quantity}m ({batch.status})")
    return batch


async def delete_batch(db: AsyncSession, batch_code: str, performed_by: Optional[int] = None) -> InventoryBatch:
    """Retire an empty bobbin. The row is kept for history."""
    batch = await get_batch(db, batch_code, lock=True)
    if batch.current_quantity > 0 and batch.status != "depleted":
        raise ValidationError("Solo se pueden eliminar bobinas agotadas (0 metros restantes)")

    batch.status = "depleted"
    batch.current_quantity = 0
    record_movement(
        db,
        item_id=batch.item_id,
        type="adjustment",
        quantity_change=0,
        reason=f"Bobina {batch.batch_code} marcada como agotada y eliminada",
        batch_id=batch.id,
        performed_by=performed_by,
    )
    await db.flush()
    logger.info(f"Bobbin {batch.batch_code} deleted")
    return batch
