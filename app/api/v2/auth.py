"""Login, logout and the current-user endpoint."""

import logging

from fastapi import APIRouter, Response
from sqlalchemy import func, select

from app.api.deps import (
    DbSession,
    CurrentUser,
    SESSION_COOKIE,
    issue_token_for,
    verify_password,
)
from app.config import settings
from app.database import transaction
from app.exceptions import AuthenticationError
from app.models.inventory import utcnow
from app.models.user import User
from app.schemas.auth import UserResponse, Token, LoginRequest, AuthMeResponse

logger = logging.getLogger(__name__)
router = APIRouter()


async def authenticate(db, email: str, password: str) -> User:
    """Return the active user owning ``email`` when ``password`` matches."""
    user = (
        await db.execute(select(User).where(func.lower(User.email) == email.lower()))
    ).scalar_one_or_none()

    if user is None or not verify_password(password, user.hashed_password):
        logger.warning("Failed login", extra={"email_domain": email.rsplit("@", 1)[-1]})
        raise AuthenticationError("Correo o contraseña incorrectos")
    if not user.is_active:
        raise AuthenticationError("La cuenta de usuario está desactivada")
    return user


@router.post("/login", response_model=Token)
async def login(login_data: LoginRequest, response: Response, db: DbSession):
    async with transaction(db):
        user = await authenticate(db, login_data.email, login_data.password)
        user.last_login_at = utcnow()
    access_token = issue_token_for(user)

    response.set_cookie(
        SESSION_COOKIE,
        access_token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )
    logger.info("User logged in", extra={"user_id": user.id})
    return Token(access_token=access_token, token=access_token)


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(SESSION_COOKIE)
    return {"success": True, "message": "Sesión cerrada"}


@router.get("/me", response_model=AuthMeResponse)
async def me(current_user: CurrentUser):
    return AuthMeResponse(user=UserResponse.from_db_user(current_user))
