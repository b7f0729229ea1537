"""Retry sweep over failed delivery log entries."""

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional
from uuid import uuid4

from notifier.config.models import RetryConfig
from notifier.domain.models import SendResult
from notifier.logging import get_logger
from notifier.logging.context import log_context
from notifier.notifications.interfaces import DeliveryLogger
from notifier.notifications.models import RetrySummary
from notifier.utils.timestamps import utc_now

if TYPE_CHECKING:
    from notifier.notifications.service import NotificationService

logger = get_logger(__name__, component="retry")

DEFAULT_BATCH_SIZE = 100


class RetryScheduler:
    """
    Re-submits failed notifications whose retry time has come.

    Each sweep picks at most ``batch_size`` entries, oldest ``retry_after``
    first, and sends them again through NotificationService on their
    original log entry. Overlapping sweeps in one process are skipped;
    sweeps in different processes are kept apart by the log entry claim.
    """

    def __init__(
        self,
        service: "NotificationService",
        delivery_logger: DeliveryLogger,
        retry_config: Optional[RetryConfig] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the retry scheduler.

        Args:
            service: Service used to re-send each entry
            delivery_logger: Source of retry-eligible entries
            retry_config: Retry ceiling shared with the service
            batch_size: Maximum entries per sweep
            clock: Source of the current UTC time
        """
        self.service = service
        self.delivery_logger = delivery_logger
        self.retry_config = retry_config or RetryConfig()
        self.batch_size = batch_size
        self.clock = clock
        self._lock = asyncio.Lock()

    async def process_retries(self) -> List[SendResult]:
        """
        Run one sweep.

        Returns:
            One SendResult per entry processed, in pickup order. Never
            raises: a failed query yields an empty list and a failed entry
            yields a failure result.
        """
        sweep_id = uuid4().hex

        if self._lock.locked():
            with log_context(sweep_id=sweep_id):
                logger.warning(
                    "Retry sweep skipped: previous sweep still in progress",
                    extra={"event": "retry.sweep.skipped", "reason": "lock_held"},
                )
            return []

        async with self._lock:
            with log_context(sweep_id=sweep_id):
                try:
                    entries = await self.delivery_logger.list_retry_eligible(
                        self.clock(), self.retry_config.max_retries, self.batch_size
                    )
                except Exception as e:
                    logger.error(
                        f"Failed to load retry-eligible notifications: {e}",
                        exc_info=True,
                        extra={"event": "retry.sweep.query_failed", "error_type": type(e).__name__},
                    )
                    return []

                if not entries:
                    logger.debug("No notifications due for retry", extra={"event": "retry.sweep.empty"})
                    return []

                logger.info(
                    f"Retrying {len(entries)} failed notifications",
                    extra={"event": "retry.sweep.started", "entry_count": len(entries)},
                )

                results: List[SendResult] = []
                for entry in entries:
                    try:
                        result = await self.service.send(entry.to_message(), log_id=entry.id)
                    except Exception as e:
                        logger.error(
                            f"Retry of log entry {entry.id} failed unexpectedly: {e}",
                            exc_info=True,
                            extra={"event": "retry.entry.error", "log_id": entry.id},
                        )
                        result = SendResult(success=False, log_id=entry.id, error=str(e))
                    results.append(result)

                summary = self.summarize(results)
                logger.info(
                    f"Retry sweep complete: {summary.succeeded} succeeded, {summary.failed} failed",
                    extra={
                        "event": "retry.sweep.completed",
                        "processed": summary.processed,
                        "succeeded": summary.succeeded,
                        "failed": summary.failed,
                    },
                )
                return results

    @staticmethod
    def summarize(results: Iterable[SendResult]) -> RetrySummary:
        summary = RetrySummary()
        for result in results:
            summary.processed += 1
            if result.success:
                summary.succeeded += 1
            else:
                summary.failed += 1
        return summary
