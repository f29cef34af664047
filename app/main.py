"""
Field Inventory API.

Warehouse and crew inventory for field-service operations: catalog items,
serialized equipment instances, cable bobbins, movement history and daily
snapshots. Run with ``uvicorn app.main:app``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v2.router import api_router
from app.config import settings
from app.database import Database
from app.exceptions import register_exception_handlers
from app.middleware.correlation import (
    CORRELATION_HEADER,
    REQUEST_HEADER,
    CorrelationIdMiddleware,
    install_log_filter,
)
from app.tasks.snapshot_scheduler import start_snapshot_scheduler, stop_snapshot_scheduler

# Registers every table on Base.metadata before create_all()
from app import models  # noqa: F401

API_VERSION = "2.0.0"
DEV_ORIGINS = ["http://localhost:5173", "http://localhost:3000"]

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s [%(correlation_id)s/%(request_id)s] %(message)s",
)
install_log_filter()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Never log the full URL, it carries credentials
    logger.info(
        f"Starting Field Inventory API {API_VERSION} ({settings.ENVIRONMENT}), "
        f"database driver {settings.DATABASE_URL.split('://', 1)[0]}"
    )
    database = Database(settings.DATABASE_URL, echo=settings.sqlalchemy_echo)
    await database.create_all()
    app.state.database = database

    if settings.SNAPSHOT_SCHEDULER_ENABLED:
        start_snapshot_scheduler(database)

    try:
        yield
    finally:
        logger.info("Stopping Field Inventory API")
        stop_snapshot_scheduler()
        await database.dispose()


app = FastAPI(
    title="Field Inventory API",
    description="Warehouse, crew and equipment inventory for field-service operations",
    version=API_VERSION,
    docs_url="/docs" if settings.DOCS_ENABLED else None,
    redoc_url="/redoc" if settings.DOCS_ENABLED else None,
    lifespan=lifespan,
)

register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL] + ([] if settings.is_production else DEV_ORIGINS),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[CORRELATION_HEADER, REQUEST_HEADER],
)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(api_router, prefix="/api/v2")


@app.get("/")
async def root():
    info = {"name": "Field Inventory API", "version": API_VERSION, "health": "/health"}
    if settings.DOCS_ENABLED:
        info["docs"] = "/docs"
    return info


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": API_VERSION, "environment": settings.ENVIRONMENT}
