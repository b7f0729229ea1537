"""Scheduling of retry sweeps over the delivery log."""

from .retry import RetryScheduler
from .service import SchedulerService

__all__ = [
    "RetryScheduler",
    "SchedulerService",
]
