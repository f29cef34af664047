from app.schemas.auth import (
    UserResponse,
    AuthMeResponse,
    Token,
    TokenData,
    LoginRequest,
)
from app.schemas.crew import CrewCreate, CrewUpdate
from app.schemas.inventory import (
    InventoryItemCreate,
    InventoryItemUpdate,
    AddInstancesRequest,
    UpdateInstanceRequest,
    MovementRequest,
    BatchCreate,
    BatchUpdate,
)

__all__ = [
    "UserResponse",
    "AuthMeResponse",
    "Token",
    "TokenData",
    "LoginRequest",
    "CrewCreate",
    "CrewUpdate",
    "InventoryItemCreate",
    "InventoryItemUpdate",
    "AddInstancesRequest",
    "UpdateInstanceRequest",
    "MovementRequest",
    "BatchCreate",
    "BatchUpdate",
]
