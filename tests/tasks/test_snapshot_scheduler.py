"""
Tests for the daily snapshot scheduler.
"""

import pytest
from unittest.mock import patch

from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.pool import StaticPool

from app.database import Database
from app.tasks import snapshot_scheduler
from app.tasks.snapshot_scheduler import (
    JOB_ID,
    get_scheduler,
    run_snapshot_now,
    start_snapshot_scheduler,
    stop_snapshot_scheduler,
    take_daily_snapshot,
)


@pytest.fixture(autouse=True)
def reset_scheduler():
    stop_snapshot_scheduler()
    yield
    stop_snapshot_scheduler()


class TestSchedulerSetup:
    def test_get_scheduler_singleton(self):
        assert get_scheduler() is get_scheduler()

    def test_scheduler_uses_snapshot_timezone(self):
        assert str(get_scheduler().timezone) == "America/Caracas"

    @pytest.mark.asyncio
    async def test_start_registers_daily_job(self):
        database = Database("sqlite+aiosqlite://")
        try:
            sched = start_snapshot_scheduler(database)
            job = sched.get_job(JOB_ID)

            assert sched.running
            assert isinstance(job.trigger, CronTrigger)
            fields = {f.name: str(f) for f in job.trigger.fields}
            assert fields["hour"] == "23"
            assert fields["minute"] == "59"
            assert job.args == (database,)

            # Starting twice keeps a single job
            start_snapshot_scheduler(database)
            assert len(sched.get_jobs()) == 1
        finally:
            stop_snapshot_scheduler()
            await database.dispose()

        assert snapshot_scheduler.scheduler is None


class TestSnapshotJob:
    @pytest.mark.asyncio
    async def test_job_stores_snapshot(self):
        # Single in-memory connection shared by every session
        database = Database("sqlite+aiosqlite://", poolclass=StaticPool)
        await database.create_all()
        try:
            result = await take_daily_snapshot(database)
        finally:
            await database.dispose()

        assert result is not None
        assert result["totalItems"] == 0
        assert result["totalWarehouseStock"] == 0

    @pytest.mark.asyncio
    async def test_job_failure_is_logged_not_raised(self, caplog):
        database = Database("sqlite+aiosqlite://")
        try:
            with patch(
                "app.tasks.snapshot_scheduler.create_daily_snapshot",
                side_effect=RuntimeError("db down"),
            ):
                result = await take_daily_snapshot(database)
        finally:
            await database.dispose()

        assert result is None
        assert "Daily inventory snapshot failed" in caplog.text

    @pytest.mark.asyncio
    async def test_run_now_propagates_errors(self):
        database = Database("sqlite+aiosqlite://", poolclass=StaticPool)
        await database.create_all()
        try:
            async with database.session() as db:
                with patch(
                    "app.tasks.snapshot_scheduler.create_daily_snapshot",
                    side_effect=RuntimeError("db down"),
                ):
                    with pytest.raises(RuntimeError):
                        await run_snapshot_now(db)
        finally:
            await database.dispose()
