"""Exponential backoff policy for notification retries."""

import random
from datetime import datetime, timedelta
from typing import Callable, Optional

from notifier.config.models import RetryConfig
from notifier.utils.timestamps import utc_now

MIN_DELAY_SECONDS = 1.0


class RetryPolicy:
    """Computes retry delays and the retry ceiling from RetryConfig.

    ``delay = min(base * 2**retry_count, max)``, spread by ``jitter_factor``
    in both directions and never below one second, so a scheduled retry is
    always strictly in the future.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        random_func: Callable[[], float] = random.random,
    ):
        self.config = config or RetryConfig()
        self._random = random_func

    @property
    def max_retries(self) -> int:
        return self.config.max_retries

    def compute_delay(self, retry_count: int) -> float:
        """Delay in seconds before the retry that follows ``retry_count`` prior retries."""
        exponent = max(retry_count, 0)
        delay = min(
            self.config.base_delay_seconds * (2 ** exponent),
            self.config.max_delay_seconds,
        )

        jitter = self.config.jitter_factor
        if jitter:
            # uniform in [-jitter, +jitter]
            delay *= 1 + jitter * (2 * self._random() - 1)

        return max(float(delay), MIN_DELAY_SECONDS)

    def next_retry_at(self, retry_count: int, now: Optional[datetime] = None) -> datetime:
        return (now or utc_now()) + timedelta(seconds=self.compute_delay(retry_count))

    def has_exceeded(self, retry_count: int) -> bool:
        """True once ``retry_count`` failures leave no retries."""
        return retry_count >= self.config.max_retries
