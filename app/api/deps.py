"""
Request dependencies: database session, password hashing and the
authenticated user behind a request.

A request authenticates with ``Authorization: Bearer <jwt>`` or with the
``session`` cookie set at login. Token contents are never logged.
"""

from typing import Annotated, Optional
from fastapi import Depends, Cookie
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from jose import JWTError, jwt
import bcrypt
from datetime import datetime, timedelta, timezone
import logging

from app.database import get_db
from app.config import settings
from app.exceptions import AuthenticationError
from app.models.user import User
from app.schemas.auth import TokenData

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session"

bearer_scheme = HTTPBearer(auto_error=False)


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Sign ``data`` as an HS256 JWT that expires after ``expires_delta``
    (ACCESS_TOKEN_EXPIRE_MINUTES by default)."""
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {**data, "exp": datetime.now(timezone.utc) + lifetime}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> TokenData:
    """Verify a JWT and return its claims.

    Raises JWTError for a bad signature or an expired token, and ValueError
    when the token carries no user id.
    """
    claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    if claims.get("sub") is None:
        raise ValueError("token without subject")
    return TokenData(user_id=int(claims["sub"]), email=claims.get("email"))


def issue_token_for(user: User) -> str:
    return create_access_token({"sub": str(user.id), "email": user.email})


async def get_current_user(
    db: Annotated[AsyncSession, Depends(get_db)],
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)] = None,
    session_token: Annotated[Optional[str], Cookie(alias=SESSION_COOKIE)] = None,
) -> User:
    if credentials is not None:
        token, source = credentials.credentials, "bearer"
    elif session_token:
        token, source = session_token, "cookie"
    else:
        raise AuthenticationError()

    try:
        token_data = decode_access_token(token)
    except (JWTError, ValueError):
        logger.warning("Rejected access token", extra={"auth_method": source})
        raise AuthenticationError()

    user = await db.get(User, token_data.user_id)
    if user is None or not user.is_active:
        logger.warning("Token for missing or inactive user", extra={"user_id": token_data.user_id})
        raise AuthenticationError()

    return user


DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
