"""
Equipment instance ledger.

Owns the per-unit status machine of serialized equipment. Every mutation
loads the parent item ``FOR UPDATE``, changes instance state, lets the stock
reconciler recompute the derived stock and appends one history row, all on
the caller's session so the whole step commits or rolls back together.

Status transitions:

    in-stock  -> assigned, damaged, retired
    assigned  -> installed, in-stock, damaged, retired
    installed -> assigned (order restore), damaged, retired
    damaged   -> in-stock (repair), retired
    retired   -> (terminal)
"""

import logging
from collections import Counter
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.exceptions import (
    DuplicateError,
    InvalidItemTypeError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.models.crew import Crew
from app.models.inventory import EquipmentInstance, InventoryItem, utcnow
from app.schemas.inventory import InstanceInput, InstanceUpdates
from app.services import crew_inventory
from app.services.inventory_history import record_movement
from app.services.stock_reconciler import reconcile_equipment

logger = logging.getLogger(__name__)


TRANSITIONS: dict[str, set[str]] = {
    "in-stock": {"assigned", "damaged", "retired"},
    "assigned": {"installed", "in-stock", "damaged", "retired"},
    "installed": {"assigned", "damaged", "retired"},
    "damaged": {"in-stock", "retired"},
    "retired": set(),
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, set())


def check_transition(instance: EquipmentInstance, target: str) -> None:
    if not can_transition(instance.status, target):
        logger.warning(
            f"Rejected transition {instance.status} -> {target} for {instance.unique_id}"
        )
        raise InvalidTransitionError(instance.unique_id, instance.status, target)


async def load_item(db: AsyncSession, item_id: str, lock: bool = True) -> InventoryItem:
    """Load an item (and its instances) for mutation, row-locked on PostgreSQL."""
    query = select(InventoryItem).where(InventoryItem.id == item_id)
    if lock:
        query = query.with_for_update().execution_options(populate_existing=True)
    item = (await db.execute(query)).scalar_one_or_none()
    if item is None:
        raise NotFoundError("Ítem de inventario", item_id)
    return item


def require_equipment(item: InventoryItem) -> None:
    if not item.is_equipment:
        raise InvalidItemTypeError(
            f"El ítem '{item.description}' no es un equipo y no admite instancias"
        )


def get_instance(item: InventoryItem, unique_id: str) -> EquipmentInstance:
    instance = item.find_instance(unique_id)
    if instance is None:
        raise NotFoundError("Instancia", unique_id)
    return instance


# Transition helpers. They only touch instance fields; callers handle crew
# bookkeeping, reconciliation and history.

def _to_assigned(instance: EquipmentInstance, crew_id: str, order_id: Optional[str] = None) -> None:
    check_transition(instance, "assigned")
    instance.status = "assigned"
    instance.assigned_crew_id = crew_id
    instance.assigned_order_id = order_id
    instance.assigned_at = utcnow()
    instance.installed_order_id = None
    instance.installed_date = None
    instance.installed_location = None
    instance.was_deployed = True


def _to_installed(
    instance: EquipmentInstance,
    order_id: str,
    location: Optional[str] = None,
    installed_date: Optional[datetime] = None,
) -> None:
    check_transition(instance, "installed")
    instance.status = "installed"
    instance.installed_order_id = order_id
    instance.installed_date = installed_date or utcnow()
    instance.installed_location = location


def _to_in_stock(instance: EquipmentInstance) -> None:
    check_transition(instance, "in-stock")
    instance.status = "in-stock"
    instance.assigned_crew_id = None
    instance.assigned_order_id = None
    instance.assigned_at = None


def _to_terminal(instance: EquipmentInstance, target: str) -> None:
    check_transition(instance, target)
    instance.status = target


# Public operations

async def add_instances(
    db: AsyncSession,
    item_id: str,
    instances: list[InstanceInput],
    performed_by: Optional[int] = None,
) -> list[EquipmentInstance]:
    """Add new in-stock instances. All-or-nothing on any uniqueId collision."""
    item = await load_item(db, item_id)
    require_equipment(item)

    unique_ids = [i.unique_id for i in instances]
    repeated = sorted(uid for uid, n in Counter(unique_ids).items() if n > 1)
    if repeated:
        raise DuplicateError(f"IDs únicos repetidos en la solicitud: {', '.join(repeated)}")

    existing = await db.execute(
        select(EquipmentInstance.unique_id).where(EquipmentInstance.unique_id.in_(unique_ids))
    )
    taken = sorted(existing.scalars().all())
    if taken:
        logger.warning(f"Duplicate instance ids for {item.code}: {taken}")
        raise DuplicateError(f"Ya existen instancias con ID único: {', '.join(taken)}")

    created = []
    for data in instances:
        instance = EquipmentInstance(
            unique_id=data.unique_id,
            serial_number=data.serial_number,
            mac_address=data.mac_address,
            notes=data.notes,
            status="in-stock",
        )
        item.instances.append(instance)
        created.append(instance)

    await reconcile_equipment(db, item)
    record_movement(
        db,
        item_id=item.id,
        type="entry",
        quantity_change=len(created),
        reason=f"{len(created)} instancia(s) agregada(s) a {item.description}",
        instance_ids=unique_ids,
        performed_by=performed_by,
    )
    await db.flush()

    logger.info(f"Added {len(created)} instances to {item.code}; stock {item.current_stock}")
    return created


async def get_instances(
    db: AsyncSession, item_id: str, status: Optional[str] = None
) -> tuple[InventoryItem, list[EquipmentInstance]]:
    """Instances of an item in insertion order, optionally filtered by status."""
    item = await load_item(db, item_id, lock=False)
    require_equipment(item)
    instances = [i for i in item.instances if status is None or i.status == status]
    return item, instances


async def update_instance(
    db: AsyncSession,
    item_id: str,
    unique_id: str,
    updates: InstanceUpdates,
    performed_by: Optional[int] = None,
) -> EquipmentInstance:
    """Patch mutable fields; status changes go through the transition table."""
    item = await load_item(db, item_id)
    require_equipment(item)
    instance = get_instance(item, unique_id)

    patch = updates.model_dump(exclude_unset=True)
    for field in ("serial_number", "mac_address", "notes"):
        if field in patch:
            setattr(instance, field, patch[field])

    target = updates.status
    if target is None and updates.assigned_to is not None and instance.status == "in-stock":
        target = "assigned"
    if target is None and updates.installed_at is not None and instance.status == "assigned":
        target = "installed"

    if target is not None and target != instance.status:
        await _apply_status_change(db, item, instance, target, updates, performed_by)
    else:
        await reconcile_equipment(db, item)

    await db.flush()
    return instance


async def _apply_status_change(
    db: AsyncSession,
    item: InventoryItem,
    instance: EquipmentInstance,
    target: str,
    updates: InstanceUpdates,
    performed_by: Optional[int],
) -> None:
    check_transition(instance, target)
    previous = instance.status
    previous_crew_id = instance.assigned_crew_id

    if target == "assigned":
        if updates.assigned_to is None:
            raise ValidationError("assignedTo.crewId es requerido para asignar una instancia")
        crew = await crew_inventory.get_crew(db, updates.assigned_to.crew_id, lock=True)
        _to_assigned(instance, crew.id, updates.assigned_to.order_id)
        crew_inventory.add_to_crew(crew, item, 1)
        history = dict(type="assignment", quantity_change=-1, crew_id=crew.id,
                       reason=f"Instancia {instance.unique_id} asignada a cuadrilla {crew.name}")
    elif target == "installed":
        if updates.installed_at is None:
            raise ValidationError("installedAt.orderId es requerido para instalar una instancia")
        crew = await crew_inventory.get_crew(db, previous_crew_id, lock=True)
        _to_installed(instance, updates.installed_at.order_id,
                      updates.installed_at.location, updates.installed_at.installed_date)
        crew_inventory.remove_from_crew(crew, item, 1)
        history = dict(type="usage_order", quantity_change=-1, crew_id=crew.id,
                       order_id=updates.installed_at.order_id,
                       reason=f"Instancia {instance.unique_id} instalada")
    elif target == "in-stock":
        if previous == "assigned":
            crew = await crew_inventory.get_crew(db, previous_crew_id, lock=True)
            crew_inventory.remove_from_crew(crew, item, 1)
        _to_in_stock(instance)
        history = dict(type="return" if previous == "assigned" else "adjustment", quantity_change=1,
                       crew_id=previous_crew_id if previous == "assigned" else None,
                       reason=f"Instancia {instance.unique_id} devuelta a bodega ({previous})")
    else:
        if previous == "assigned":
            crew = await crew_inventory.get_crew(db, previous_crew_id, lock=True)
            crew_inventory.remove_from_crew(crew, item, 1)
        _to_terminal(instance, target)
        history = dict(type="adjustment", quantity_change=-1 if previous == "in-stock" else 0,
                       crew_id=previous_crew_id if previous == "assigned" else None,
                       reason=f"Instancia {instance.unique_id} marcada como {target} ({previous})")

    await reconcile_equipment(db, item)
    record_movement(db, item_id=item.id, instance_ids=[instance.unique_id],
                    performed_by=performed_by, **history)
    logger.info(f"Instance {instance.unique_id} of {item.code}: {previous} -> {target}")


async def delete_instance(
    db: AsyncSession,
    item_id: str,
    unique_id: str,
    performed_by: Optional[int] = None,
) -> None:
    """Remove an instance that never left the warehouse."""
    item = await load_item(db, item_id)
    require_equipment(item)
    instance = get_instance(item, unique_id)

    if instance.status != "in-stock" or instance.was_deployed:
        logger.warning(f"Refused to delete instance {unique_id} ({instance.status})")
        raise InvalidTransitionError(
            unique_id, instance.status, "deleted",
            detail=(
                f"Solo se pueden eliminar instancias en bodega sin historial de asignación "
                f"(instancia {unique_id}, estado: {instance.status})"
            ),
        )

    item.instances.remove(instance)
    await reconcile_equipment(db, item)
    record_movement(
        db,
        item_id=item.id,
        type="adjustment",
        quantity_change=-1,
        reason=f"Instancia {unique_id} eliminada",
        instance_ids=[unique_id],
        performed_by=performed_by,
    )
    await db.flush()
    logger.info(f"Deleted instance {unique_id} of {item.code}; stock {item.current_stock}")


async def assign_instances(
    db: AsyncSession,
    item_id: str,
    unique_ids: list[str],
    crew: Crew,
    performed_by: Optional[int] = None,
) -> list[EquipmentInstance]:
    """Assign in-stock instances to a crew. All-or-nothing."""
    item = await load_item(db, item_id)
    require_equipment(item)

    if len(set(unique_ids)) != len(unique_ids):
        raise ValidationError("La lista de instancias contiene IDs repetidos")

    targets = [get_instance(item, uid) for uid in unique_ids]
    for instance in targets:
        if instance.status != "in-stock":
            raise InvalidTransitionError(
                instance.unique_id, instance.status, "assigned",
                detail=f"Instancia {instance.unique_id} no está disponible (estado: {instance.status})",
            )

    for instance in targets:
        _to_assigned(instance, crew.id)
    crew_inventory.add_to_crew(crew, item, len(targets))

    await reconcile_equipment(db, item)
    record_movement(
        db,
        item_id=item.id,
        type="assignment",
        quantity_change=-len(targets),
        reason=f"{len(targets)} instancia(s) de {item.description} asignada(s) a cuadrilla {crew.name}",
        crew_id=crew.id,
        instance_ids=list(unique_ids),
        performed_by=performed_by,
    )
    await db.flush()
    logger.info(f"Assigned {len(targets)} x {item.code} to crew {crew.name}")
    return targets


async def mark_installed(
    db: AsyncSession,
    item_id: str,
    unique_id: str,
    order_id: str,
    location: Optional[str] = None,
    performed_by: Optional[int] = None,
) -> EquipmentInstance:
    """Record installation of an assigned instance on a field order."""
    item = await load_item(db, item_id)
    require_equipment(item)
    instance = get_instance(item, unique_id)

    if instance.status != "assigned":
        raise InvalidTransitionError(
            unique_id, instance.status, "installed",
            detail=f"La instancia {unique_id} debe estar asignada para instalarse (estado: {instance.status})",
        )

    crew = await crew_inventory.get_crew(db, instance.assigned_crew_id, lock=True)
    _to_installed(instance, order_id, location)
    crew_inventory.remove_from_crew(crew, item, 1)

    await reconcile_equipment(db, item)
    record_movement(
        db,
        item_id=item.id,
        type="usage_order",
        quantity_change=-1,
        reason=f"Instancia {unique_id} instalada en orden {order_id}",
        crew_id=crew.id,
        order_id=order_id,
        instance_ids=[unique_id],
        performed_by=performed_by,
    )
    await db.flush()
    logger.info(f"Instance {unique_id} installed on order {order_id}")
    return instance


async def install_for_order(
    db: AsyncSession,
    item_id: str,
    unique_ids: list[str],
    crew: Crew,
    order_id: str,
    performed_by: Optional[int] = None,
) -> int:
    """Mark crew instances installed on completion of an order.

    Instances already installed on the same order are skipped, so replaying a
    completion is harmless. Returns the number newly installed.
    """
    item = await load_item(db, item_id)
    require_equipment(item)

    installed = []
    for uid in unique_ids:
        instance = get_instance(item, uid)
        if instance.status == "installed" and instance.installed_order_id == order_id:
            continue
        if instance.status != "assigned":
            raise InvalidTransitionError(
                uid, instance.status, "installed",
                detail=f"Instancia {uid} no está disponible en la cuadrilla (estado: {instance.status})",
            )
        if instance.assigned_crew_id != crew.id:
            raise ValidationError(f"Instancia {uid} no pertenece a esta cuadrilla")
        _to_installed(instance, order_id, "installed-via-order-completion")
        installed.append(uid)

    if not installed:
        return 0

    crew_inventory.remove_from_crew(crew, item, len(installed))
    await reconcile_equipment(db, item)
    record_movement(
        db,
        item_id=item.id,
        type="usage_order",
        quantity_change=-len(installed),
        reason=f"Equipos instalados ({len(installed)}): {', '.join(installed)}",
        crew_id=crew.id,
        order_id=order_id,
        instance_ids=installed,
        performed_by=performed_by,
    )
    await db.flush()
    return len(installed)


async def restore_from_order(
    db: AsyncSession,
    item_id: str,
    unique_ids: list[str],
    crew: Crew,
    order_id: str,
    performed_by: Optional[int] = None,
) -> int:
    """Undo installation on an order: installed instances go back to the crew.

    Instances already assigned to the crew only restore the crew count.
    Anything else is skipped. Returns the number restored.
    """
    item = await load_item(db, item_id)
    require_equipment(item)

    restored = []
    for uid in unique_ids:
        instance = item.find_instance(uid)
        if instance is None:
            logger.warning(f"Restore skipped unknown instance {uid}")
            continue
        if instance.status == "installed" and instance.installed_order_id == order_id:
            _to_assigned(instance, crew.id)
            restored.append(uid)
        elif instance.status == "assigned" and instance.assigned_crew_id == crew.id:
            restored.append(uid)
        else:
            logger.warning(f"Restore skipped instance {uid} ({instance.status})")

    if not restored:
        return 0

    crew_inventory.add_to_crew(crew, item, len(restored))
    await reconcile_equipment(db, item)
    record_movement(
        db,
        item_id=item.id,
        type="return",
        quantity_change=len(restored),
        reason=f"Equipos restaurados desde orden {order_id}: {', '.join(restored)}",
        crew_id=crew.id,
        order_id=order_id,
        instance_ids=restored,
        performed_by=performed_by,
    )
    await db.flush()
    return len(restored)


async def return_instances(
    db: AsyncSession,
    crew_id: str,
    unique_ids: list[str],
    reason: str,
    performed_by: Optional[int] = None,
) -> int:
    """Return instances from a crew to the warehouse.

    Ids that are unknown or not assigned to this crew are skipped rather than
    failing the call. Returns the number actually returned.
    """
    crew = await crew_inventory.get_crew(db, crew_id, lock=True)

    rows = await db.execute(
        select(EquipmentInstance.item_id, EquipmentInstance.unique_id)
        .where(
            EquipmentInstance.unique_id.in_(unique_ids),
            EquipmentInstance.status == "assigned",
            EquipmentInstance.assigned_crew_id == crew.id,
        )
    )
    by_item: dict[str, list[str]] = {}
    for item_id, uid in rows.all():
        by_item.setdefault(item_id, []).append(uid)

    returned = 0
    for item_id in sorted(by_item):
        item = await load_item(db, item_id)
        # Re-check under the item lock
        instances = [
            inst for inst in (item.find_instance(uid) for uid in by_item[item_id])
            if inst is not None and inst.status == "assigned" and inst.assigned_crew_id == crew.id
        ]
        if not instances:
            continue
        uids = [inst.unique_id for inst in instances]
        for instance in instances:
            _to_in_stock(instance)
        crew_inventory.remove_from_crew(crew, item, len(uids))
        await reconcile_equipment(db, item)
        record_movement(
            db,
            item_id=item.id,
            type="return",
            quantity_change=len(uids),
            reason=reason,
            crew_id=crew.id,
            instance_ids=uids,
            performed_by=performed_by,
        )
        returned += len(uids)

    await db.flush()
    skipped = len(unique_ids) - returned
    if skipped:
        logger.warning(f"Return from crew {crew.name}: {skipped} instance id(s) skipped")
    logger.info(f"Returned {returned} instance(s) from crew {crew.name}")
    return returned


async def get_crew_instances(db: AsyncSession, crew_id: str) -> list[EquipmentInstance]:
    """Instances currently assigned to a crew, with their catalog item loaded."""
    await crew_inventory.get_crew(db, crew_id)
    result = await db.execute(
        select(EquipmentInstance)
        .options(selectinload(EquipmentInstance.item))
        .where(
            EquipmentInstance.assigned_crew_id == crew_id,
            EquipmentInstance.status == "assigned",
        )
        .order_by(EquipmentInstance.item_id, EquipmentInstance.id)
    )
    return list(result.scalars().all())
