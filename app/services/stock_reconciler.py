"""
Stock reconciler.

Equipment stock is derived: ``current_stock`` always equals the number of the
item's instances with status ``in-stock`` and is only written here.
Material and tool stock is authoritative and moves through atomic
conditional updates, so two concurrent decrements can never take the figure
below zero.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.exceptions import InsufficientStockError, InvalidItemTypeError, NotFoundError
from app.models.inventory import InventoryItem

logger = logging.getLogger(__name__)

items_table = InventoryItem.__table__


def count_in_stock(item: InventoryItem) -> int:
    return sum(1 for instance in item.instances if instance.status == "in-stock")


async def reconcile_equipment(db: AsyncSession, item: InventoryItem) -> int:
    """Recompute an equipment item's stock from its instances and flush it."""
    if not item.is_equipment:
        raise InvalidItemTypeError(f"El ítem '{item.description}' no es un equipo")

    derived = count_in_stock(item)
    if item._current_stock != derived:
        item._current_stock = derived
    await db.flush()
    return derived


async def adjust_stock(db: AsyncSession, item_id: str, delta: int) -> int:
    """Apply a signed delta to a material/tool item's stock atomically.

    The guard runs inside the UPDATE statement itself, so a stale read in
    another session cannot push the stock below zero. Returns the new stock.
    """
    stmt = (
        update(items_table)
        .where(
            items_table.c.id == item_id,
            items_table.c.type != "equipment",
            items_table.c.current_stock + delta >= 0,
        )
        .values(current_stock=items_table.c.current_stock + delta)
        .returning(items_table.c.current_stock)
    )
    new_stock = (await db.execute(stmt)).scalar_one_or_none()

    if new_stock is None:
        row = (
            await db.execute(
                select(items_table.c.description, items_table.c.type, items_table.c.current_stock)
                .where(items_table.c.id == item_id)
            )
        ).first()
        if row is None:
            raise NotFoundError("Ítem de inventario", item_id)
        if row.type == "equipment":
            raise InvalidItemTypeError(
                f"El ítem '{row.description}' es un equipo y su stock se gestiona por instancias"
            )
        logger.warning(
            f"Rejected stock change of {delta} on {item_id}: available {row.current_stock}"
        )
        raise InsufficientStockError(row.description, row.current_stock, -delta)

    # Keep an already-loaded instance in step with the row
    key = InventoryItem.__mapper__.identity_key_from_primary_key((item_id,))
    item = db.sync_session.identity_map.get(key)
    if item is not None:
        set_committed_value(item, "_current_stock", new_stock)

    return new_stock


async def reconcile_all(db: AsyncSession) -> list[dict]:
    """Audit pass: recompute every equipment item and report the corrections."""
    result = await db.execute(
        select(InventoryItem).where(InventoryItem.type == "equipment").order_by(InventoryItem.code)
    )
    corrections = []
    for item in result.scalars().all():
        derived = count_in_stock(item)
        if item._current_stock != derived:
            logger.warning(
                f"Stock drift on {item.code}: stored {item._current_stock}, derived {derived}"
            )
            corrections.append({
                "itemId": item.id,
                "code": item.code,
                "previousStock": item._current_stock,
                "currentStock": derived,
            })
            item._current_stock = derived
    await db.flush()
    return corrections
