"""Crews API - crew records, crew inventory and returns to the warehouse."""

from typing import Optional
import logging

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import DbSession, CurrentUser
from app.api.v2.inventory import crew_to_response, instance_to_response, item_ref
from app.database import transaction
from app.schemas.crew import CrewCreate, CrewUpdate
from app.schemas.inventory import ReturnInstancesRequest, ReturnMaterialRequest
from app.security.rbac import Permission, require_permission
from app.services import crew_inventory, instance_ledger, inventory_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def list_crews(
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.VIEW_INVENTORY)),
    is_active: Optional[bool] = Query(None, alias="isActive"),
):
    crews = await crew_inventory.list_crews(db, is_active=is_active)
    return {"success": True, "count": len(crews), "crews": [crew_to_response(c) for c in crews]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_crew(
    data: CrewCreate,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.MANAGE_CREWS)),
):
    async with transaction(db):
        crew = await crew_inventory.create_crew(db, data)
    return {"success": True, "crew": crew_to_response(crew)}


@router.get("/{crew_id}")
async def get_crew(
    crew_id: str,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.VIEW_INVENTORY)),
):
    crew = await crew_inventory.get_crew(db, crew_id)
    return {"success": True, "crew": crew_to_response(crew)}


@router.patch("/{crew_id}")
async def update_crew(
    crew_id: str,
    data: CrewUpdate,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.MANAGE_CREWS)),
):
    async with transaction(db):
        crew = await crew_inventory.update_crew(db, crew_id, data)
    return {"success": True, "crew": crew_to_response(crew)}


@router.get("/{crew_id}/inventory")
async def get_crew_inventory(
    crew_id: str,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.VIEW_INVENTORY)),
):
    """Material, tool and equipment counts currently held by the crew."""
    crew = await inventory_service.get_crew_inventory(db, crew_id)
    payload = crew_to_response(crew)
    return {
        "success": True,
        "count": len(payload["assignedInventory"]),
        "crew": {"id": crew.id, "name": crew.name},
        "inventory": payload["assignedInventory"],
    }


@router.get("/{crew_id}/equipment-instances")
async def get_crew_equipment_instances(
    crew_id: str,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.VIEW_INVENTORY)),
):
    instances = await instance_ledger.get_crew_instances(db, crew_id)
    return {
        "success": True,
        "count": len(instances),
        "instances": [{**instance_to_response(i), "item": item_ref(i.item)} for i in instances],
    }


@router.post("/{crew_id}/equipment-instances/return")
async def return_equipment_instances(
    crew_id: str,
    request: ReturnInstancesRequest,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.MANAGE_INVENTORY)),
):
    """Return instances to the warehouse. Ids not assigned to this crew are skipped."""
    async with transaction(db):
        returned = await instance_ledger.return_instances(
            db, crew_id, request.instance_ids, request.reason, performed_by=current_user.id
        )
    return {
        "success": True,
        "returnedCount": returned,
        "skippedCount": len(request.instance_ids) - returned,
    }


@router.post("/{crew_id}/materials/return")
async def return_materials(
    crew_id: str,
    request: ReturnMaterialRequest,
    db: DbSession,
    current_user: CurrentUser,
    _: None = Depends(require_permission(Permission.MANAGE_INVENTORY)),
):
    async with transaction(db):
        crew = await inventory_service.return_material_from_crew(
            db, crew_id, request.items, request.reason, performed_by=current_user.id
        )
    return {"success": True, "count": len(request.items), "crew": crew_to_response(crew)}
