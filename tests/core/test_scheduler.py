"""
Tests del scheduler de tareas en segundo plano.
"""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import OperationalError

from app.core import scheduler as scheduler_module
from app.core.scheduler import _every_minutes, init_scheduler, retry_on_db_error


def _db_error():
    return OperationalError("SELECT 1", {}, Exception("server closed the connection"))


class TestInitScheduler:

    def test_registers_booking_jobs(self):
        scheduler = init_scheduler()

        job_ids = {job.id for job in scheduler.get_jobs()}
        assert job_ids == {"expire_waitlist_offers", "complete_finished_bookings"}
        assert scheduler_module.get_scheduler() is scheduler

        job = scheduler.get_job("expire_waitlist_offers")
        assert job.max_instances == 1
        assert job.coalesce is True

    def test_trigger_choice(self):
        assert isinstance(_every_minutes(5), CronTrigger)
        assert isinstance(_every_minutes(15), CronTrigger)
        assert isinstance(_every_minutes(7), IntervalTrigger)
        assert isinstance(_every_minutes(90), IntervalTrigger)


class TestRetryOnDbError:

    def test_sync_retries_then_succeeds(self):
        calls = Mock(side_effect=[_db_error(), "ok"])

        @retry_on_db_error(max_retries=3, delay=0)
        def job():
            return calls()

        assert job() == "ok"
        assert calls.call_count == 2

    def test_sync_gives_up(self):
        calls = Mock(side_effect=_db_error())

        @retry_on_db_error(max_retries=2, delay=0)
        def job():
            return calls()

        with pytest.raises(OperationalError):
            job()
        assert calls.call_count == 2

    @pytest.mark.asyncio
    async def test_async_retries(self):
        calls = AsyncMock(side_effect=[_db_error(), 3])

        @retry_on_db_error(max_retries=3, delay=0)
        async def job():
            return await calls()

        assert await job() == 3
        assert calls.await_count == 2


class TestJobs:

    @pytest.mark.asyncio
    async def test_expire_job_uses_own_session(self):
        db = Mock()
        with patch.object(scheduler_module, "SessionLocal", return_value=db), \
                patch.object(scheduler_module.waitlist_service, "expire_offers", AsyncMock(return_value=2)) as expire:
            assert await scheduler_module.expire_waitlist_offers() == 2

        expire.assert_awaited_once()
        assert expire.await_args.args[0] is db
        db.close.assert_called_once()

    def test_complete_job_rolls_back_on_error(self):
        db = Mock()
        with patch.object(scheduler_module, "SessionLocal", return_value=db), \
                patch.object(scheduler_module.booking_service, "complete_finished_bookings",
                             side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                scheduler_module.complete_finished_bookings()

        db.rollback.assert_called_once()
        db.close.assert_called_once()
