"""Inventory API - catalog, equipment instances, bobbins, movements and statistics."""

from datetime import date, datetime
from typing import Optional
import logging

from fastapi import APIRouter, Depends, Query, status
from pydantic import ValidationError as PydanticValidationError

from app.api.deps import DbSession, CurrentUser
from app.database import transaction
from app.exceptions import ValidationError
from app.models.crew import Crew
from app.models.inventory import InventoryItem, EquipmentInstance
from app.models.inventory_batch import InventoryBatch
from app.models.inventory_history import InventoryHistory
from app.models.inventory_snapshot import InventorySnapshot
from app.schemas.inventory import (
    AddInstancesRequest,
    AssignData,
    AssignInstancesRequest,
    BatchAddMeters,
    BatchCreate,
    BatchUpdate,
    InstallInstanceRequest,
    InstanceStatus,
    InventoryItemCreate,
    InventoryItemUpdate,
    ItemType,
    MovementRequest,
    MovementType,
    OrderMaterialsRequest,
    RestockData,
    UpdateInstanceRequest,
)
from app.security.rbac import Permission, require_permission
from app.services import (
    batch_service,
    crew_inventory,
    instance_ledger,
    inventory_history,
    inventory_service,
    inventory_snapshot,
    stock_reconciler,
)
from app.utils.business_calendar import default_report_range, local_today

logger = logging.getLogger(__name__)
router = APIRouter()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def item_ref(item: Optional[InventoryItem]) -> Optional[dict]:
    if item is None:
        return None
    return {"id": item.id, "code": item.code, "description": item.description, "unit": item.unit, "type": item.type}


def inventory_to_response(item: InventoryItem) -> dict:
    """Convert InventoryItem model to response dict."""
    data = {
        "id": item.id,
        "code": item.code,
        "description": item.description,
        "unit": item.unit,
        "type": item.type,
        "currentStock": item.current_stock or 0,
        "minimumStock": item.minimum_stock or 0,
        "needsReorder": item.needs_reorder,
        "createdAt": _iso(item.created_at),
        "updatedAt": _iso(item.updated_at),
    }
    if item.is_equipment:
        data["instanceCount"] = len(item.instances)
    return data


def instance_to_response(instance: EquipmentInstance) -> dict:
    return {
        "id": instance.id,
        "uniqueId": instance.unique_id,
        "serialNumber": instance.serial_number,
        "macAddress": instance.mac_address,
        "status": instance.status,
        "assignedTo": instance.assigned_to,
        "installedAt": instance.installed_at,
        "notes": instance.notes,
        "wasDeployed": bool(instance.was_deployed),
        "createdAt": _iso(instance.created_at),
    }


def batch_to_response(batch: InventoryBatch) -> dict:
    return {
        "id": batch.id,
        "batchCode": batch.batch_code,
        "item": item_ref(batch.item),
        "initialQuantity": batch.initial_quantity,
        "currentQuantity": batch.current_quantity,
        "unit": batch.unit,
        "location": batch.location,
        "crewId": batch.crew_id,
        "crewName": batch.crew.name if batch.crew and batch.crew.id == batch.crew_id else None,
        "status": batch.status,
        "supplier": batch.supplier,
        "acquisitionDate": _iso(batch.acquisition_date),
        "notes": batch.notes,
        "createdAt": _iso(batch.created_at),
        "updatedAt": _iso(batch.updated_at),
    }


def history_to_response(row: InventoryHistory) -> dict:
    return {
        "id": row.id,
        "item": item_ref(row.item),
        "type": row.type,
        "quantityChange": row.quantity_change,
        "reason": row.reason,
        "crew": {"id": row.crew.id, "name": row.crew.name} if row.crew else None,
        "orderId": row.order_id,
        "batchId": row.batch_id,
        "instanceIds": row.instance_ids or [],
        "performedBy": row.performed_by,
        "createdAt": _iso(row.created_at),
    }


def snapshot_to_response(snapshot: InventorySnapshot) -> dict:
    return {
        "id": snapshot.id,
        "snapshotDate": _iso(snapshot.snapshot_date),
        "warehouseInventory": snapshot.warehouse_inventory or [],
        "crewInventories": snapshot.crew_inventories or [],
        "totalItems": snapshot.total_items,
        "totalWarehouseStock": snapshot.total_warehouse_stock,
        "createdAt": _iso(snapshot.created_at),
    }


def crew_to_response(crew: Crew) -> dict:
    return {
        "id": crew.id,
        "name": crew.name,
        "leaderName": crew.leader_name,
        "members": crew.members or [],
        "vehicles": crew.vehicles or [],
        "isActive": bool(crew.is_active),
        "assignedInventory": [
            {
                "item": item_ref(entry.item),
                "quantity": entry.quantity,
                "lastUpdate": _iso(entry.last_update),
            }
            for entry in crew.assigned_inventory
        ],
        "createdAt": _iso(crew.created_at),
        "updatedAt": _iso(crew.updated_at),
    }


def _parse(model, data: dict):
    """Validate a nested payload, reporting failures as a 400 with field errors."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in e.errors()
        ]
        raise ValidationError("Datos del movimiento inválidos", errors=errors)


# Catalog

@router.get("")
async def list_inventory(
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.VIEW_INVENTORY)),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200, alias="pageSize"),
    type: Optional[ItemType] = None,
    low_stock: bool = Query(False, alias="lowStock"),
    search: Optional[str] = None,  # Search by code or description
):
    """List inventory items with pagination and filtering."""
    items, total = await inventory_service.list_items(
        db, search=search, type=type, low_stock=low_stock, page=page, page_size=page_size
    )
    return {
        "success": True,
        "count": len(items),
        "total": total,
        "page": page,
        "pageSize": page_size,
        "items": [inventory_to_response(i) for i in items],
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_inventory_item(
    data: InventoryItemCreate,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.MANAGE_INVENTORY)),
):
    async with transaction(db):
        item = await inventory_service.create_item(db, data, performed_by=current_user.id)
    return {"success": True, "item": inventory_to_response(item)}


@router.get("/history")
async def get_inventory_history(
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.VIEW_INVENTORY)),
    crew_id: Optional[str] = Query(None, alias="crewId"),
    item_id: Optional[str] = Query(None, alias="itemId"),
    type: Optional[MovementType] = None,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500, alias="pageSize"),
):
    """Movement history, newest first."""
    rows, total = await inventory_history.get_history(
        db,
        crew_id=crew_id,
        item_id=item_id,
        type=type,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=page_size,
    )
    return {
        "success": True,
        "count": len(rows),
        "total": total,
        "page": page,
        "pageSize": page_size,
        "history": [history_to_response(r) for r in rows],
    }


@router.post("/reconcile")
async def reconcile_stock(
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.ADMIN_PANEL)),
):
    """Recompute equipment stock from instances and report corrections."""
    async with transaction(db):
        corrections = await stock_reconciler.reconcile_all(db)
    return {"success": True, "count": len(corrections), "corrections": corrections}


# Equipment instances

@router.get("/instances")
async def list_instances(
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.VIEW_INVENTORY)),
    inventory_id: str = Query(..., alias="inventoryId"),
    status_filter: Optional[InstanceStatus] = Query(None, alias="status"),
):
    item, instances = await instance_ledger.get_instances(db, inventory_id, status_filter)
    return {
        "success": True,
        "count": len(instances),
        "item": inventory_to_response(item),
        "instances": [instance_to_response(i) for i in instances],
    }


@router.post("/instances", status_code=status.HTTP_201_CREATED)
async def add_instances(
    request: AddInstancesRequest,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.MANAGE_INVENTORY)),
):
    async with transaction(db):
        created = await instance_ledger.add_instances(
            db, request.inventory_id, request.instances, performed_by=current_user.id
        )
        item = await instance_ledger.load_item(db, request.inventory_id, lock=False)
    return {
        "success": True,
        "count": len(created),
        "item": inventory_to_response(item),
        "instances": [instance_to_response(i) for i in created],
    }


@router.put("/instances")
async def update_instance(
    request: UpdateInstanceRequest,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.MANAGE_INVENTORY)),
):
    async with transaction(db):
        instance = await instance_ledger.update_instance(
            db, request.inventory_id, request.unique_id, request.updates, performed_by=current_user.id
        )
        item = await instance_ledger.load_item(db, request.inventory_id, lock=False)
    return {"success": True, "item": inventory_to_response(item), "instance": instance_to_response(instance)}


@router.delete("/instances")
async def delete_instance(
    db: DbSession,
    current_user: CurrentUser,
    inventory_id: str = Query(..., alias="inventoryId"),
    unique_id: str = Query(..., alias="uniqueId"),
    _: None = Depends(require_permission(Permission.DELETE_INVENTORY)),
):
    async with transaction(db):
        await instance_ledger.delete_instance(db, inventory_id, unique_id, performed_by=current_user.id)
        item = await instance_ledger.load_item(db, inventory_id, lock=False)
    return {"success": True, "item": inventory_to_response(item)}


@router.post("/instances/assign")
async def assign_instances(
    request: AssignInstancesRequest,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.MANAGE_INVENTORY)),
):
    async with transaction(db):
        crew = await crew_inventory.get_crew(db, request.crew_id, lock=True)
        if not crew.is_active:
            raise ValidationError(f"La cuadrilla {crew.name} no está activa")
        assigned = await instance_ledger.assign_instances(
            db, request.inventory_id, request.instance_ids, crew, performed_by=current_user.id
        )
    return {
        "success": True,
        "count": len(assigned),
        "instances": [instance_to_response(i) for i in assigned],
    }


@router.post("/instances/install")
async def install_instance(
    request: InstallInstanceRequest,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.MANAGE_INVENTORY)),
):
    async with transaction(db):
        instance = await instance_ledger.mark_installed(
            db,
            request.inventory_id,
            request.unique_id,
            request.order_id,
            location=request.location,
            performed_by=current_user.id,
        )
    return {"success": True, "instance": instance_to_response(instance)}


# Movements

@router.post("/movements")
async def inventory_movement(
    request: MovementRequest,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.MANAGE_INVENTORY)),
):
    """Dispatch a restock or a crew assignment."""
    if request.action == "restock":
        data = _parse(RestockData, request.data)
        async with transaction(db):
            items = await inventory_service.restock_inventory(
                db, data.items, data.reason, performed_by=current_user.id
            )
        return {
            "success": True,
            "action": "restock",
            "count": len(items),
            "items": [inventory_to_response(i) for i in items],
        }

    data = _parse(AssignData, request.data)
    async with transaction(db):
        crew = await inventory_service.assign_material_to_crew(
            db, data.crew_id, data.items, performed_by=current_user.id
        )
    return {"success": True, "action": "assign", "count": len(data.items), "crew": crew_to_response(crew)}


@router.post("/orders/{order_id}/usage")
async def order_usage(
    order_id: str,
    request: OrderMaterialsRequest,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.MANAGE_INVENTORY)),
):
    """Consume crew inventory for a completed order."""
    async with transaction(db):
        result = await inventory_service.process_order_usage(
            db, order_id, request.crew_id, request.materials, performed_by=current_user.id
        )
    return {"success": True, **result}


@router.post("/orders/{order_id}/restore")
async def order_restore(
    order_id: str,
    request: OrderMaterialsRequest,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.MANAGE_INVENTORY)),
):
    """Give materials removed from an order back to the crew."""
    async with transaction(db):
        result = await inventory_service.restore_inventory_from_order(
            db, order_id, request.crew_id, request.materials, performed_by=current_user.id
        )
    return {"success": True, **result}


# Snapshots and statistics

@router.get("/snapshots")
async def list_snapshots(
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.VIEW_INVENTORY)),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
):
    snapshots = await inventory_snapshot.list_snapshots(db, start_date, end_date)
    return {"success": True, "count": len(snapshots), "snapshots": [snapshot_to_response(s) for s in snapshots]}


@router.post("/snapshots", status_code=status.HTTP_201_CREATED)
async def create_snapshot(
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.RUN_SNAPSHOTS)),
):
    async with transaction(db):
        snapshot = await inventory_snapshot.create_daily_snapshot(db)
    return {"success": True, "snapshot": snapshot_to_response(snapshot)}


@router.get("/statistics")
async def get_statistics(
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.VIEW_INVENTORY)),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    crew_id: Optional[str] = Query(None, alias="crewId"),
    item_id: Optional[str] = Query(None, alias="itemId"),
):
    """Usage statistics; defaults to the current month's business period."""
    if start_date is None and end_date is None:
        start_date, end_date = default_report_range(local_today())
    elif start_date is None or end_date is None:
        raise ValidationError("Se requieren startDate y endDate")

    statistics = await inventory_snapshot.get_inventory_statistics(
        db, start_date, end_date, crew_id=crew_id, item_id=item_id
    )
    return {"success": True, "statistics": statistics}


# Bobbins

@router.get("/batches")
async def list_batches(
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.VIEW_INVENTORY)),
    item_id: Optional[str] = Query(None, alias="itemId"),
    location: Optional[str] = None,
    crew_id: Optional[str] = Query(None, alias="crewId"),
    status_filter: Optional[str] = Query(None, alias="status"),
    batch_code: Optional[str] = Query(None, alias="batchCode"),
):
    batches = await batch_service.get_batches(
        db, item_id=item_id, location=location, crew_id=crew_id, status=status_filter, batch_code=batch_code
    )
    return {"success": True, "count": len(batches), "batches": [batch_to_response(b) for b in batches]}


@router.post("/batches", status_code=status.HTTP_201_CREATED)
async def create_batch(
    data: BatchCreate,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.MANAGE_INVENTORY)),
):
    async with transaction(db):
        batch = await batch_service.create_batch(db, data, performed_by=current_user.id)
    return {"success": True, "batch": batch_to_response(batch)}


@router.put("/batches")
async def add_meters_to_batch(
    data: BatchAddMeters,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.MANAGE_INVENTORY)),
):
    async with transaction(db):
        batch = await batch_service.add_meters(db, data.batch_code, data.meters, performed_by=current_user.id)
    return {"success": True, "batch": batch_to_response(batch)}


@router.put("/batches/update")
async def update_batch(
    data: BatchUpdate,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.MANAGE_INVENTORY)),
):
    """Edit a bobbin's remaining metres (and optionally its item)."""
    async with transaction(db):
        batch = await batch_service.update_batch(db, data, performed_by=current_user.id)
    return {"success": True, "batch": batch_to_response(batch)}


@router.delete("/batches")
async def delete_batch(
    db: DbSession,
    current_user: CurrentUser,
    batch_code: str = Query(..., alias="batchCode"),
    _: None = Depends(require_permission(Permission.DELETE_INVENTORY)),
):
    async with transaction(db):
        batch = await batch_service.delete_batch(db, batch_code, performed_by=current_user.id)
    return {"success": True, "batch": batch_to_response(batch)}


# Single item

@router.get("/{item_id}")
async def get_inventory_item(
    item_id: str,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.VIEW_INVENTORY)),
):
    item = await inventory_service.get_item(db, item_id)
    return {"success": True, "item": inventory_to_response(item)}


@router.get("/{item_id}/instances")
async def list_item_instances(
    item_id: str,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.VIEW_INVENTORY)),
    status_filter: Optional[InstanceStatus] = Query(None, alias="status"),
):
    item, instances = await instance_ledger.get_instances(db, item_id, status_filter)
    return {
        "success": True,
        "count": len(instances),
        "item": inventory_to_response(item),
        "instances": [instance_to_response(i) for i in instances],
    }


@router.patch("/{item_id}")
async def update_inventory_item(
    item_id: str,
    data: InventoryItemUpdate,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.MANAGE_INVENTORY)),
):
    async with transaction(db):
        item = await inventory_service.update_item(db, item_id, data, performed_by=current_user.id)
    return {"success": True, "item": inventory_to_response(item)}


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_inventory_item(
    item_id: str,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.DELETE_INVENTORY)),
):
    async with transaction(db):
        await inventory_service.delete_item(db, item_id)
