from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class Token(BaseModel):
    """Login response. ``token`` duplicates ``access_token`` for the dashboard client."""

    access_token: str
    token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    user_id: Optional[int] = None
    email: Optional[str] = None


class UserResponse(BaseModel):
    id: str
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: str
    is_active: bool
    role: Literal["superuser", "admin", "user"] = "user"
    permissions: list[str] = []
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_db_user(cls, user) -> "UserResponse":
        from app.security.rbac import get_user_role, get_user_permissions

        return cls(
            id=str(user.id),
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            full_name=user.full_name,
            is_active=bool(user.is_active),
            role=get_user_role(user).value,
            permissions=sorted(p.value for p in get_user_permissions(user)),
            last_login_at=user.last_login_at,
            created_at=user.created_at,
        )


class AuthMeResponse(BaseModel):
    user: UserResponse
