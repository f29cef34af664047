"""
Tests for role and permission resolution.
"""
import pytest

from app.exceptions import ErrorCode, PermissionDeniedError
from app.models.user import User
from app.security.rbac import (
    Role, Permission, ROLE_PERMISSIONS,
    get_user_role, get_user_permissions, has_permission,
    require_permission,
)


def make_user(superuser=False, admin=False) -> User:
    return User(id=5, email="cuadrilla@example.com", is_superuser=superuser, is_admin=admin)


@pytest.mark.parametrize(
    "superuser,admin,expected",
    [
        (True, False, Role.SUPERUSER),
        (True, True, Role.SUPERUSER),
        (False, True, Role.ADMIN),
        (False, False, Role.USER),
    ],
)
def test_role_from_flags(superuser, admin, expected):
    assert get_user_role(make_user(superuser, admin)) == expected


class TestRoleGrants:
    def test_field_staff_move_stock_only(self):
        assert ROLE_PERMISSIONS[Role.USER] == {Permission.VIEW_INVENTORY, Permission.MANAGE_INVENTORY}

    def test_admin_grants_everything_a_user_has(self):
        assert ROLE_PERMISSIONS[Role.USER] < ROLE_PERMISSIONS[Role.ADMIN]

    @pytest.mark.parametrize(
        "permission",
        [
            Permission.DELETE_INVENTORY,
            Permission.MANAGE_CREWS,
            Permission.RUN_SNAPSHOTS,
            Permission.ADMIN_PANEL,
        ],
    )
    def test_admin_only_permissions(self, permission):
        assert has_permission(make_user(admin=True), permission)
        assert not has_permission(make_user(), permission)

    def test_superuser_gets_every_permission(self):
        assert get_user_permissions(make_user(superuser=True)) == set(Permission)


class TestRequirePermission:
    @pytest.mark.asyncio
    async def test_allowed_user_passes(self):
        checker = require_permission(Permission.MANAGE_INVENTORY)
        assert await checker(make_user()) is None

    @pytest.mark.asyncio
    async def test_missing_permission_is_403_problem(self):
        checker = require_permission(Permission.RUN_SNAPSHOTS)
        with pytest.raises(PermissionDeniedError) as exc:
            await checker(make_user())

        assert exc.value.status_code == 403
        assert exc.value.code == ErrorCode.FORBIDDEN
        assert exc.value.detail == "Permiso denegado: requiere run_snapshots"

    def test_checkers_are_named_after_permission(self):
        assert require_permission(Permission.MANAGE_CREWS).__name__ == "require_manage_crews"
