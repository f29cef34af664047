"""Request schemas for the inventory API."""
from datetime import datetime
from typing import Optional, Literal

from pydantic import Field, model_validator

from app.schemas.types import CamelModel, IdStr, NonEmptyStr


ItemType = Literal["material", "equipment", "tool"]
InstanceStatus = Literal["in-stock", "assigned", "installed", "damaged", "retired"]
MovementType = Literal["entry", "assignment", "return", "usage_order", "adjustment"]
BatchLocation = Literal["warehouse", "crew"]
BatchStatus = Literal["active", "depleted", "returned"]


# Catalog

class InventoryItemCreate(CamelModel):
    code: NonEmptyStr = Field(..., max_length=50)
    description: NonEmptyStr = Field(..., max_length=255)
    unit: str = Field("unidades", max_length=20)
    type: ItemType
    current_stock: Optional[int] = Field(None, ge=0)
    minimum_stock: int = Field(5, ge=0)


class InventoryItemUpdate(CamelModel):
    code: Optional[NonEmptyStr] = Field(None, max_length=50)
    description: Optional[NonEmptyStr] = Field(None, max_length=255)
    unit: Optional[str] = Field(None, max_length=20)
    current_stock: Optional[int] = Field(None, ge=0)
    minimum_stock: Optional[int] = Field(None, ge=0)


# Equipment instances

class InstanceInput(CamelModel):
    unique_id: NonEmptyStr = Field(..., max_length=100)
    serial_number: Optional[str] = Field(None, max_length=100)
    mac_address: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class AddInstancesRequest(CamelModel):
    inventory_id: IdStr
    instances: list[InstanceInput] = Field(..., min_length=1)


class AssignedToPatch(CamelModel):
    crew_id: IdStr
    order_id: Optional[IdStr] = None


class InstalledAtPatch(CamelModel):
    order_id: IdStr
    location: Optional[str] = None
    installed_date: Optional[datetime] = None


class InstanceUpdates(CamelModel):
    status: Optional[InstanceStatus] = None
    serial_number: Optional[str] = Field(None, max_length=100)
    mac_address: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None
    assigned_to: Optional[AssignedToPatch] = None
    installed_at: Optional[InstalledAtPatch] = None


class UpdateInstanceRequest(CamelModel):
    inventory_id: IdStr
    unique_id: NonEmptyStr
    updates: InstanceUpdates


class AssignInstancesRequest(CamelModel):
    inventory_id: IdStr
    instance_ids: list[NonEmptyStr] = Field(..., min_length=1)
    crew_id: IdStr


class InstallInstanceRequest(CamelModel):
    inventory_id: IdStr
    unique_id: NonEmptyStr
    order_id: IdStr
    location: Optional[str] = None


# Movements

class RestockLine(CamelModel):
    item_id: IdStr
    quantity: int = Field(..., gt=0)


class RestockData(CamelModel):
    items: list[RestockLine] = Field(..., min_length=1)
    reason: str = "Reposición de inventario"


class AssignLine(CamelModel):
    """One line of a crew assignment: a quantity, a whole bobbin, or instances."""

    item_id: IdStr
    quantity: Optional[int] = Field(None, gt=0)
    batch_code: Optional[str] = None
    instance_ids: Optional[list[NonEmptyStr]] = None

    @model_validator(mode="after")
    def check_target(self):
        if not self.batch_code and not self.instance_ids and self.quantity is None:
            raise ValueError("Se requiere quantity, batchCode o instanceIds")
        return self


class AssignData(CamelModel):
    crew_id: IdStr
    items: list[AssignLine] = Field(..., min_length=1)


class MovementRequest(CamelModel):
    action: Literal["restock", "assign"]
    data: dict


class ReturnLine(CamelModel):
    item_id: IdStr
    quantity: int = Field(..., gt=0)


class ReturnMaterialRequest(CamelModel):
    items: list[ReturnLine] = Field(..., min_length=1)
    reason: str = "Devolución de material"


class ReturnInstancesRequest(CamelModel):
    instance_ids: list[NonEmptyStr] = Field(..., min_length=1)
    reason: str = "Devolución de equipos"


class OrderMaterial(CamelModel):
    """Material recorded on a field order."""

    item_id: IdStr
    quantity: int = Field(0, ge=0)
    batch_code: Optional[str] = None
    instance_ids: Optional[list[NonEmptyStr]] = None


class OrderMaterialsRequest(CamelModel):
    crew_id: IdStr
    materials: list[OrderMaterial] = Field(..., min_length=1)


# Batches

class BatchCreate(CamelModel):
    batch_code: NonEmptyStr = Field(..., max_length=50)
    item_id: IdStr
    initial_quantity: int = Field(..., gt=0)
    unit: Optional[str] = None
    supplier: Optional[str] = None
    acquisition_date: Optional[datetime] = None
    notes: Optional[str] = None


class BatchAddMeters(CamelModel):
    batch_code: NonEmptyStr
    meters: int = Field(..., gt=0)


class BatchUpdate(CamelModel):
    batch_code: NonEmptyStr
    item_id: IdStr
    current_quantity: int = Field(..., ge=0)
