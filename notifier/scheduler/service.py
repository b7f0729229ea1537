"""Scheduler service for periodic retry sweeps."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from notifier.logging import get_logger

logger = get_logger(__name__, component="scheduler")

RETRY_JOB_ID = "notification-retries"


class SchedulerService:
    """
    Wraps APScheduler to run the retry sweep at configured intervals.

    Uses AsyncIOScheduler so sweeps run as coroutines on the caller's
    event loop, next to the rest of the service.
    """

    def __init__(
        self,
        retry_callable: Callable[[], Awaitable[Any]],
        interval_seconds: int,
        shutdown_event: Optional[asyncio.Event] = None,
    ):
        """
        Initialize the scheduler service.

        Args:
            retry_callable: Coroutine function run on each tick (e.g., service.process_retries)
            interval_seconds: Interval between sweeps in seconds
            shutdown_event: Optional event to set on shutdown for coordination
        """
        self.retry_callable = retry_callable
        self.interval_seconds = interval_seconds
        self.shutdown_event = shutdown_event

        self.scheduler = AsyncIOScheduler(
            job_defaults={
                "max_instances": 1,  # Prevent overlapping sweeps
                "coalesce": True,
                "misfire_grace_time": interval_seconds,
            },
            timezone=timezone.utc,
        )

    def start(self) -> None:
        """
        Register the retry job and start the scheduler.

        Must be called with a running event loop. The first sweep runs
        immediately; later ones follow the interval.
        """
        trigger = IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc)

        next_run = datetime.now(timezone.utc)
        self.scheduler.add_job(
            func=self._run_sweep,
            trigger=trigger,
            id=RETRY_JOB_ID,
            name="Notification Retry Sweep",
            replace_existing=True,
            next_run_time=next_run,
        )
        self.scheduler.start()

        logger.info(
            f"Scheduler started with interval: {self.interval_seconds} seconds",
            extra={
                "event": "scheduler.started",
                "interval_seconds": self.interval_seconds,
                "next_run_time": next_run.isoformat(),
            },
        )

    async def _run_sweep(self) -> None:
        try:
            await self.retry_callable()
        except Exception as e:
            logger.error(
                f"Scheduled retry sweep failed: {e}",
                exc_info=True,
                extra={"event": "scheduler.job.failed", "error_type": type(e).__name__},
            )

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler.

        Args:
            wait: If True, wait for running jobs to complete before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    async def trigger_now(self) -> Any:
        """Run a sweep immediately in the current task and return its result."""
        logger.info("Triggering immediate retry sweep", extra={"event": "scheduler.trigger_now"})
        return await self.retry_callable()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(RETRY_JOB_ID)
        return job.next_run_time if job else None
