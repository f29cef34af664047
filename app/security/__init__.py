from app.security.rbac import Permission, Role, require_permission

__all__ = ["Permission", "Role", "require_permission"]
