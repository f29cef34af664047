"""Daily inventory snapshot scheduler.

Creates one inventory snapshot per day at the configured local time
(23:59 America/Caracas by default). The external cron endpoint can trigger
the same work, so both paths share ``run_snapshot_now``.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import Database, transaction
from app.services.inventory_snapshot import create_daily_snapshot

logger = logging.getLogger(__name__)

JOB_ID = "daily_inventory_snapshot"

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler instance."""
    global scheduler
    if scheduler is None:
        scheduler = AsyncIOScheduler(timezone=settings.SNAPSHOT_TIMEZONE)
    return scheduler


async def run_snapshot_now(db: AsyncSession) -> dict:
    """Create a snapshot on the given session and summarize it.

    Used by the cron endpoint and by the scheduled job. Errors propagate.
    """
    async with transaction(db):
        snapshot = await create_daily_snapshot(db)
    return {
        "id": snapshot.id,
        "date": snapshot.snapshot_date.isoformat(),
        "totalItems": snapshot.total_items,
        "totalWarehouseStock": snapshot.total_warehouse_stock,
        "crewsTracked": len(snapshot.crew_inventories),
    }


async def take_daily_snapshot(database: Database) -> Optional[dict]:
    """Scheduled job: snapshot in its own session. Failures are logged, not raised."""
    logger.info("Starting daily inventory snapshot...")
    try:
        async with database.session() as db:
            summary = await run_snapshot_now(db)
    except Exception as e:
        logger.error(f"Daily inventory snapshot failed: {e}", exc_info=True)
        return None

    logger.info(f"Daily inventory snapshot {summary['id']} stored")
    return summary


def start_snapshot_scheduler(database: Database) -> AsyncIOScheduler:
    """Register the daily snapshot job and start the scheduler."""
    sched = get_scheduler()

    sched.add_job(
        take_daily_snapshot,
        CronTrigger(
            hour=settings.SNAPSHOT_HOUR,
            minute=settings.SNAPSHOT_MINUTE,
            timezone=settings.SNAPSHOT_TIMEZONE,
        ),
        args=[database],
        id=JOB_ID,
        name="Daily inventory snapshot",
        replace_existing=True,
    )

    if not sched.running:
        sched.start()
        logger.info("Inventory snapshot scheduler started")
        for job in sched.get_jobs():
            logger.info(f"  - {job.name}: {job.trigger}")
    return sched


def stop_snapshot_scheduler():
    """Stop the snapshot scheduler."""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Inventory snapshot scheduler stopped")
    scheduler = None
