"""
Inventory operations.

Transactional use-cases composing the instance ledger, the stock reconciler
and the movement history. Functions here never commit: the caller wraps each
call in ``app.database.transaction`` so a batch either applies completely or
not at all.
"""

import logging
from typing import Optional

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import (
    ConflictError,
    DerivedStockError,
    DuplicateError,
    InsufficientStockError,
    InvalidItemTypeError,
    NotFoundError,
    ValidationError,
)
from app.models.crew import Crew
from app.models.inventory import InventoryItem, EquipmentInstance
from app.models.inventory_batch import InventoryBatch
from app.models.inventory_history import InventoryHistory
from app.schemas.inventory import (
    AssignLine,
    InventoryItemCreate,
    InventoryItemUpdate,
    OrderMaterial,
    RestockLine,
    ReturnLine,
)
from app.services import crew_inventory, instance_ledger
from app.services.inventory_history import record_movement
from app.services.stock_reconciler import adjust_stock

logger = logging.getLogger(__name__)


# Catalog

async def get_item(db: AsyncSession, item_id: str) -> InventoryItem:
    item = (await db.execute(select(InventoryItem).where(InventoryItem.id == item_id))).scalar_one_or_none()
    if item is None:
        raise NotFoundError("Ítem de inventario", item_id)
    return item


async def list_items(
    db: AsyncSession,
    *,
    search: Optional[str] = None,
    type: Optional[str] = None,
    low_stock: bool = False,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[InventoryItem], int]:
    query = select(InventoryItem)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(InventoryItem.code.ilike(pattern), InventoryItem.description.ilike(pattern)))
    if type:
        query = query.where(InventoryItem.type == type)
    if low_stock:
        query = query.where(InventoryItem.current_stock <= InventoryItem.minimum_stock)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    query = query.order_by(InventoryItem.code).offset((page - 1) * page_size).limit(page_size)
    items = (await db.execute(query)).scalars().all()
    return list(items), total


async def create_item(db: AsyncSession, data: InventoryItemCreate, performed_by: Optional[int] = None) -> InventoryItem:
    clash = await db.execute(select(InventoryItem.id).where(InventoryItem.code == data.code))
    if clash.scalar_one_or_none():
        raise DuplicateError(f"Ya existe un ítem con el código {data.code}")

    item = InventoryItem(
        code=data.code,
        description=data.description,
        unit=data.unit,
        type=data.type,
        minimum_stock=data.minimum_stock,
        instances=[],
    )
    if data.type == "equipment":
        if data.current_stock:
            raise DerivedStockError(data.description)
        item._current_stock = 0
    else:
        item.current_stock = data.current_stock or 0

    db.add(item)
    try:
        await db.flush()
    except IntegrityError:
        raise DuplicateError(f"Ya existe un ítem con el código {data.code}")

    if item.current_stock:
        record_movement(
            db,
            item_id=item.id,
            type="entry",
            quantity_change=item.current_stock,
            reason="Stock inicial",
            performed_by=performed_by,
        )
        await db.flush()

    logger.info(f"Inventory item created: {item.code} ({item.type})")
    return item


async def update_item(
    db: AsyncSession, item_id: str, data: InventoryItemUpdate, performed_by: Optional[int] = None
) -> InventoryItem:
    item = await instance_ledger.load_item(db, item_id)
    update_data = data.model_dump(exclude_unset=True)

    if "code" in update_data and update_data["code"] != item.code:
        clash = await db.execute(select(InventoryItem.id).where(InventoryItem.code == update_data["code"]))
        if clash.scalar_one_or_none():
            raise DuplicateError(f"Ya existe un ítem con el código {update_data['code']}")

    new_stock = update_data.pop("current_stock", None)
    for field, value in update_data.items():
        setattr(item, field, value)

    if new_stock is not None and new_stock != item.current_stock:
        # Raises DerivedStockError for equipment
        previous = item.current_stock
        item.current_stock = new_stock
        record_movement(
            db,
            item_id=item.id,
            type="adjustment",
            quantity_change=new_stock - previous,
            reason=f"Ajuste manual de stock ({previous} -> {new_stock})",
            performed_by=performed_by,
        )

    await db.flush()
    return item


async def delete_item(db: AsyncSession, item_id: str) -> None:
    item = await instance_ledger.load_item(db, item_id)

    references = [
        (EquipmentInstance, EquipmentInstance.item_id, "instancias"),
        (InventoryBatch, InventoryBatch.item_id, "bobinas"),
        (InventoryHistory, InventoryHistory.item_id, "historial"),
    ]
    for model, column, label in references:
        count = (await db.execute(select(func.count()).select_from(model).where(column == item_id))).scalar()
        if count:
            raise ConflictError(f"El ítem {item.code} tiene {label} asociados y no puede eliminarse")

    held = (await db.execute(
        select(func.count()).select_from(Crew).where(Crew.assigned_inventory.any(item_id=item_id))
    )).scalar()
    if held:
        raise ConflictError(f"El ítem {item.code} está asignado a cuadrillas y no puede eliminarse")

    await db.delete(item)
    await db.flush()
    logger.info(f"Inventory item deleted: {item.code}")


# Movements

async def restock_inventory(
    db: AsyncSession,
    items: list[RestockLine],
    reason: str,
    performed_by: Optional[int] = None,
) -> list[InventoryItem]:
    """Increase warehouse stock of material/tool items."""
    restocked = []
    for line in items:
        item = await get_item(db, line.item_id)
        if item.is_equipment:
            raise InvalidItemTypeError(
                f"El ítem '{item.description}' es un equipo; agregue instancias en lugar de cantidad"
            )
        await adjust_stock(db, item.id, line.quantity)
        record_movement(
            db,
            item_id=item.id,
            type="entry",
            quantity_change=line.quantity,
            reason=reason,
            performed_by=performed_by,
        )
        restocked.append(item)

    await db.flush()
    logger.info(f"Restocked {len(items)} line(s): {reason}")
    return restocked


async def assign_material_to_crew(
    db: AsyncSession,
    crew_id: str,
    items: list[AssignLine],
    performed_by: Optional[int] = None,
) -> Crew:
    """Move stock from the warehouse to a crew. All-or-nothing.

    Each line is a plain quantity (material/tool), a whole warehouse bobbin
    (``batch_code``) or a list of equipment instances (``instance_ids``).
    """
    crew = await crew_inventory.get_crew(db, crew_id, lock=True)
    if not crew.is_active:
        raise ValidationError(f"La cuadrilla {crew.name} no está activa")

    for line in items:
        if line.batch_code:
            await _assign_bobbin(db, crew, line, performed_by)
        elif line.instance_ids:
            await instance_ledger.assign_instances(db, line.item_id, line.instance_ids, crew, performed_by)
        else:
            await _assign_quantity(db, crew, line, performed_by)

    await db.flush()
    return crew


async def _assign_quantity(db: AsyncSession, crew: Crew, line: AssignLine, performed_by: Optional[int]) -> None:
    item = await get_item(db, line.item_id)
    if item.is_equipment:
        raise InvalidItemTypeError(
            f"El ítem '{item.description}' es un equipo y debe asignarse por instancias específicas. "
            f"No se puede asignar por cantidad."
        )

    remaining = await adjust_stock(db, item.id, -line.quantity)
    crew_inventory.add_to_crew(crew, item, line.quantity)
    record_movement(
        db,
        item_id=item.id,
        type="assignment",
        quantity_change=-line.quantity,
        reason=f"Asignado a cuadrilla {crew.name}",
        crew_id=crew.id,
        performed_by=performed_by,
    )
    logger.info(f"Assigned {line.quantity} x {item.code} to crew {crew.name}; warehouse {remaining}")


async def _assign_bobbin(db: AsyncSession, crew: Crew, line: AssignLine, performed_by: Optional[int]) -> None:
    from app.services.batch_service import get_batch

    batch = await get_batch(db, line.batch_code, lock=True)
    if batch.item_id != line.item_id:
        raise ValidationError(f"La bobina {batch.batch_code} no pertenece al ítem {line.item_id}")
    if batch.location != "warehouse":
        raise ValidationError(f"Bobina {batch.batch_code} no está en almacén")
    if batch.status != "active":
        raise ValidationError(f"Bobina {batch.batch_code} no está activa")

    meters = batch.current_quantity
    await adjust_stock(db, batch.item_id, -meters)
    batch.location = "crew"
    batch.crew_id = crew.id
    crew_inventory.add_to_crew(crew, batch.item, meters)
    record_movement(
        db,
        item_id=batch.item_id,
        type="assignment",
        quantity_change=-meters,
        reason=f"Bobina {batch.batch_code} asignada a cuadrilla {crew.name}",
        crew_id=crew.id,
        batch_id=batch.id,
        performed_by=performed_by,
    )
    logger.info(f"Bobbin {batch.batch_code} ({meters}m) assigned to crew {crew.name}")


async def return_material_from_crew(
    db: AsyncSession,
    crew_id: str,
    items: list[ReturnLine],
    reason: str,
    performed_by: Optional[int] = None,
) -> Crew:
    """Return material/tool quantities from a crew to the warehouse. All-or-nothing."""
    crew = await crew_inventory.get_crew(db, crew_id, lock=True)

    for line in items:
        item = await get_item(db, line.item_id)
        if item.is_equipment:
            raise InvalidItemTypeError(
                f"El ítem '{item.description}' es un equipo; devuelva las instancias específicas"
            )
        entry = crew.holding(item.id)
        if entry is None:
            raise ValidationError(f"La cuadrilla no tiene asignado el material: {item.description}")

        # Metres still on a crew bobbin come back with the bobbin, not as loose stock
        on_bobbins = await _meters_on_crew_bobbins(db, crew.id, item.id)
        loose = entry.quantity - on_bobbins
        if line.quantity > loose:
            raise InsufficientStockError(f"{item.description} (fuera de bobinas)", max(loose, 0), line.quantity)

        crew_inventory.remove_from_crew(crew, item, line.quantity)
        await adjust_stock(db, item.id, line.quantity)
        record_movement(
            db,
            item_id=item.id,
            type="return",
            quantity_change=line.quantity,
            reason=reason,
            crew_id=crew.id,
            performed_by=performed_by,
        )

    await db.flush()
    logger.info(f"Crew {crew.name} returned {len(items)} line(s): {reason}")
    return crew


async def _meters_on_crew_bobbins(db: AsyncSession, crew_id: str, item_id: str) -> int:
    total = await db.execute(
        select(func.coalesce(func.sum(InventoryBatch.current_quantity), 0)).where(
            InventoryBatch.crew_id == crew_id,
            InventoryBatch.item_id == item_id,
            InventoryBatch.location == "crew",
        )
    )
    return int(total.scalar() or 0)


async def process_order_usage(
    db: AsyncSession,
    order_id: str,
    crew_id: str,
    materials: list[OrderMaterial],
    performed_by: Optional[int] = None,
) -> dict:
    """Consume crew inventory when a field order is completed."""
    crew = await crew_inventory.get_crew(db, crew_id, lock=True)
    consumed = 0

    for material in materials:
        if material.batch_code:
            await _consume_bobbin(db, crew, order_id, material, performed_by)
            consumed += 1
        elif material.instance_ids:
            if await instance_ledger.install_for_order(
                db, material.item_id, material.instance_ids, crew, order_id, performed_by
            ):
                consumed += 1
        else:
            item = await get_item(db, material.item_id)
            if item.is_equipment:
                raise InvalidItemTypeError(
                    f"El equipo \"{item.description}\" debe especificar qué instancia se utilizó. "
                    f"No se puede consumir por cantidad sin instanceIds."
                )
            if material.quantity <= 0:
                raise ValidationError(f"Cantidad inválida para {item.description}")
            if crew.holding(item.id) is None:
                raise ValidationError(f"La cuadrilla no tiene asignado el material: {item.description}")
            crew_inventory.remove_from_crew(crew, item, material.quantity)
            record_movement(
                db,
                item_id=item.id,
                type="usage_order",
                quantity_change=-material.quantity,
                reason=f"Usado en orden {order_id}",
                crew_id=crew.id,
                order_id=order_id,
                performed_by=performed_by,
            )
            consumed += 1

    await db.flush()
    logger.info(f"Order {order_id}: {consumed} material line(s) consumed by crew {crew.name}")
    return {"crewId": crew.id, "orderId": order_id, "processed": consumed}


async def _consume_bobbin(
    db: AsyncSession, crew: Crew, order_id: str, material: OrderMaterial, performed_by: Optional[int]
) -> None:
    from app.services.batch_service import get_batch

    batch = await get_batch(db, material.batch_code, lock=True)
    if batch.crew_id != crew.id:
        raise NotFoundError("Bobina de la cuadrilla", batch.batch_code)
    if material.quantity <= 0:
        raise ValidationError(f"Metros inválidos para la bobina {batch.batch_code}")
    if batch.current_quantity < material.quantity:
        raise InsufficientStockError(f"la bobina {batch.batch_code}", batch.current_quantity, material.quantity)

    batch.current_quantity -= material.quantity
    if batch.current_quantity == 0:
        batch.status = "depleted"

    entry = crew.holding(batch.item_id)
    if entry is not None:
        crew_inventory.remove_from_crew(crew, batch.item, min(material.quantity, entry.quantity))

    record_movement(
        db,
        item_id=batch.item_id,
        type="usage_order",
        quantity_change=-material.quantity,
        reason=f"Bobina {batch.batch_code}: {material.quantity}m usados en orden {order_id}",
        crew_id=crew.id,
        order_id=order_id,
        batch_id=batch.id,
        performed_by=performed_by,
    )


async def restore_inventory_from_order(
    db: AsyncSession,
    order_id: str,
    crew_id: str,
    materials: list[OrderMaterial],
    performed_by: Optional[int] = None,
) -> dict:
    """Give back to the crew what an order had consumed (materials removed from it)."""
    crew = await crew_inventory.get_crew(db, crew_id, lock=True)
    restored = 0

    for material in materials:
        if material.batch_code:
            from app.services.batch_service import get_batch

            batch = await get_batch(db, material.batch_code, lock=True)
            if batch.crew_id != crew.id:
                raise NotFoundError("Bobina de la cuadrilla", batch.batch_code)
            batch.current_quantity += material.quantity
            if batch.status == "depleted" and batch.current_quantity > 0:
                batch.status = "active"
            crew_inventory.add_to_crew(crew, batch.item, material.quantity)
            record_movement(
                db,
                item_id=batch.item_id,
                type="return",
                quantity_change=material.quantity,
                reason=f"Restaurado desde orden {order_id} (eliminado)",
                crew_id=crew.id,
                order_id=order_id,
                batch_id=batch.id,
                performed_by=performed_by,
            )
            restored += 1
        elif material.instance_ids:
            if await instance_ledger.restore_from_order(
                db, material.item_id, material.instance_ids, crew, order_id, performed_by
            ):
                restored += 1
        else:
            item = await get_item(db, material.item_id)
            if item.is_equipment:
                raise InvalidItemTypeError(
                    f"El equipo \"{item.description}\" debe especificar las instancias a restaurar"
                )
            if material.quantity <= 0:
                continue
            crew_inventory.add_to_crew(crew, item, material.quantity)
            record_movement(
                db,
                item_id=item.id,
                type="return",
                quantity_change=material.quantity,
                reason=f"Material restaurado desde orden {order_id}",
                crew_id=crew.id,
                order_id=order_id,
                performed_by=performed_by,
            )
            restored += 1

    await db.flush()
    logger.info(f"Order {order_id}: {restored} material line(s) restored to crew {crew.name}")
    return {"crewId": crew.id, "orderId": order_id, "restored": restored}


async def get_crew_inventory(db: AsyncSession, crew_id: str) -> Crew:
    return await crew_inventory.get_crew(db, crew_id)
