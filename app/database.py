"""
Database Configuration

The engine is owned by a ``Database`` handle built once at process start
(see ``app.main.lifespan``) and disposed at shutdown. Request handlers get
their session through the ``get_db`` dependency.

SECURITY:
- SQLAlchemy echo disabled in production to prevent credential leakage
- Connection string never logged
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)

SLOW_QUERY_THRESHOLD_MS = 500


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# Slow query logging
def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    conn.info["query_start_time"] = time.monotonic()


def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    start = conn.info.get("query_start_time")
    if start is None:
        return
    duration_ms = (time.monotonic() - start) * 1000
    if duration_ms >= SLOW_QUERY_THRESHOLD_MS:
        param_count = len(parameters) if parameters else 0
        truncated = statement[:200] + ("..." if len(statement) > 200 else "")
        logger.warning(
            "Slow query (%.0fms, %d params): %s", duration_ms, param_count, truncated
        )


class Database:
    """Engine plus session factory with an explicit lifecycle."""

    def __init__(self, url: str, echo: bool = False, **engine_kwargs):
        if not url.startswith("sqlite"):
            # Connection pool settings for production stability
            engine_kwargs.setdefault("pool_size", 20)
            engine_kwargs.setdefault("max_overflow", 10)
            engine_kwargs.setdefault("pool_recycle", 3600)
            engine_kwargs.setdefault("pool_pre_ping", True)

        self.engine = create_async_engine(url, echo=echo, future=True, **engine_kwargs)
        self.session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        event.listen(self.engine.sync_engine, "before_cursor_execute", _before_cursor_execute)
        event.listen(self.engine.sync_engine, "after_cursor_execute", _after_cursor_execute)

    def session(self) -> AsyncSession:
        return self.session_maker()

    async def create_all(self) -> None:
        """Initialize database tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Database engine disposed")


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Commit everything done inside the block once, or roll all of it back."""
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Dependency to get database session.

    Note: Endpoints wrap mutating service calls in ``transaction()``.
    This dependency only provides the session and handles cleanup.
    """
    database: Database = request.app.state.database
    session = database.session()
    try:
        yield session
    finally:
        await session.close()
