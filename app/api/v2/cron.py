"""Cron-triggered jobs. Authenticated by the shared CRON_SECRET, not by user tokens."""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Header

from app.api.deps import DbSession
from app.config import settings
from app.exceptions import AuthenticationError, ConfigurationError
from app.tasks.snapshot_scheduler import run_snapshot_now

logger = logging.getLogger(__name__)
router = APIRouter()


def verify_cron_secret(authorization: Optional[str]) -> None:
    """Accept the secret as the raw Authorization value or as a Bearer token."""
    secret = settings.CRON_SECRET
    if not secret:
        logger.error("CRON_SECRET is not configured")
        raise ConfigurationError("CRON_SECRET")

    supplied = authorization or ""
    if supplied.lower().startswith("bearer "):
        supplied = supplied[7:]
    if not hmac.compare_digest(supplied.encode("utf-8"), secret.encode("utf-8")):
        logger.warning("Unauthorized daily snapshot cron call")
        raise AuthenticationError("No autorizado")


@router.get("/daily-snapshot")
async def daily_snapshot_status():
    """Report that the endpoint is live without creating a snapshot."""
    return {
        "endpoint": "daily-snapshot",
        "status": "active",
        "message": "Use POST con Authorization header para ejecutar snapshot",
    }


@router.post("/daily-snapshot")
async def run_daily_snapshot(
    db: DbSession,
    authorization: Optional[str] = Header(None),
):
    verify_cron_secret(authorization)
    snapshot = await run_snapshot_now(db)
    return {"success": True, "message": "Snapshot diario creado correctamente", "snapshot": snapshot}
