"""Unit tests for the scheduler service.

Tests the SchedulerService including:
- Job registration with correct configuration
- Immediate first run (next_run_time set to now)
- Prevents overlapping runs (max_instances=1)
- Start/shutdown lifecycle
- Trigger now functionality
- Errors inside a sweep never stop the scheduler
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from notifier.scheduler import SchedulerService
from notifier.scheduler.service import RETRY_JOB_ID


@pytest.fixture
def shutdown_event():
    return asyncio.Event()


class TestSchedulerService:
    """Test suite for SchedulerService."""

    async def test_scheduler_initialization(self, shutdown_event):
        """Test that scheduler initializes with correct parameters."""
        retry_callable = AsyncMock()

        scheduler = SchedulerService(retry_callable, 60, shutdown_event=shutdown_event)

        assert scheduler.interval_seconds == 60
        assert scheduler.retry_callable is retry_callable
        assert scheduler.shutdown_event is shutdown_event
        assert not scheduler.is_running()
        assert scheduler.get_next_run_time() is None

    async def test_job_defaults_prevent_overlap(self):
        scheduler = SchedulerService(AsyncMock(), 120)

        defaults = scheduler.scheduler._job_defaults
        assert defaults["max_instances"] == 1
        assert defaults["coalesce"] is True
        assert defaults["misfire_grace_time"] == 120

    async def test_start_registers_job_and_shutdown_sets_event(self, shutdown_event):
        """Test scheduler start and shutdown lifecycle."""
        scheduler = SchedulerService(AsyncMock(), 300, shutdown_event=shutdown_event)

        scheduler.start()
        try:
            assert scheduler.is_running()
            job = scheduler.scheduler.get_job(RETRY_JOB_ID)
            assert job is not None
            assert job.trigger.interval.total_seconds() == 300
        finally:
            scheduler.shutdown(wait=False)

        assert not scheduler.is_running()
        assert shutdown_event.is_set()

    async def test_first_sweep_runs_immediately(self):
        """Test the job runs right after start instead of waiting an interval."""
        ran = asyncio.Event()

        async def sweep():
            ran.set()

        scheduler = SchedulerService(sweep, 3600)
        scheduler.start()
        try:
            await asyncio.wait_for(ran.wait(), timeout=5)
            next_run = scheduler.get_next_run_time()
            assert next_run is not None
            assert next_run > datetime.now(timezone.utc)
        finally:
            scheduler.shutdown(wait=False)

    async def test_trigger_now_awaits_callable(self):
        retry_callable = AsyncMock(return_value=["result"])
        scheduler = SchedulerService(retry_callable, 60)

        result = await scheduler.trigger_now()

        assert result == ["result"]
        retry_callable.assert_awaited_once()

    async def test_trigger_now_propagates_errors(self):
        scheduler = SchedulerService(AsyncMock(side_effect=RuntimeError("boom")), 60)

        with pytest.raises(RuntimeError, match="boom"):
            await scheduler.trigger_now()

    async def test_scheduled_sweep_swallows_errors(self):
        retry_callable = AsyncMock(side_effect=RuntimeError("database locked"))
        scheduler = SchedulerService(retry_callable, 60)

        await scheduler._run_sweep()

        retry_callable.assert_awaited_once()

    async def test_shutdown_before_start(self, shutdown_event):
        scheduler = SchedulerService(AsyncMock(), 60, shutdown_event=shutdown_event)

        scheduler.shutdown()

        assert shutdown_event.is_set()
