"""
Role-based access control.

Users carry one of three roles derived from their flags. Each role grants
a fixed set of inventory permissions; routes declare what they need with
``_: None = Depends(require_permission(Permission.X))``.

    user       view + manage stock
    admin      everything below the superuser, including deletes,
               crew management, snapshots and reconciliation
    superuser  every permission
"""

from enum import Enum
import logging

from app.api.deps import CurrentUser
from app.exceptions import PermissionDeniedError
from app.models.user import User

logger = logging.getLogger(__name__)


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    SUPERUSER = "superuser"


class Permission(str, Enum):
    VIEW_INVENTORY = "view_inventory"
    MANAGE_INVENTORY = "manage_inventory"
    DELETE_INVENTORY = "delete_inventory"
    MANAGE_CREWS = "manage_crews"
    RUN_SNAPSHOTS = "run_snapshots"
    ADMIN_PANEL = "admin_panel"


_STOCK_PERMISSIONS = frozenset({Permission.VIEW_INVENTORY, Permission.MANAGE_INVENTORY})

ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.USER: _STOCK_PERMISSIONS,
    Role.ADMIN: _STOCK_PERMISSIONS | {
        Permission.DELETE_INVENTORY,
        Permission.MANAGE_CREWS,
        Permission.RUN_SNAPSHOTS,
        Permission.ADMIN_PANEL,
    },
    Role.SUPERUSER: frozenset(Permission),
}


def get_user_role(user: User) -> Role:
    if user.is_superuser:
        return Role.SUPERUSER
    return Role.ADMIN if user.is_admin else Role.USER


def get_user_permissions(user: User) -> frozenset[Permission]:
    return ROLE_PERMISSIONS[get_user_role(user)]


def has_permission(user: User, permission: Permission) -> bool:
    return permission in get_user_permissions(user)


def require_permission(permission: Permission):
    """Build a dependency that rejects users without ``permission`` (403)."""

    async def checker(current_user: CurrentUser) -> None:
        if has_permission(current_user, permission):
            return
        logger.warning(
            "Permission denied",
            extra={"user_id": current_user.id, "permission": permission.value},
        )
        raise PermissionDeniedError(f"Permiso denegado: requiere {permission.value}")

    checker.__name__ = f"require_{permission.value}"
    return checker
