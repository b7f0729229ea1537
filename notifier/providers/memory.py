"""In-memory providers that record messages instead of delivering them.

Used for dry runs when credentials are absent and as test doubles.
"""

import uuid
from collections import deque
from typing import Deque, Optional, Union

from notifier.domain.models import EmailParams, ProviderResult, SMSParams
from notifier.notifications.templates import calculate_segment_count

from .base import BaseEmailProvider, BaseSMSProvider

Failure = Union[str, Exception]


class _RecordingMixin:
    """Keeps every call in ``attempts`` and successful ones in ``sent``."""

    prefix = "rec"

    def _init_recording(self, fail_with: Optional[Failure]) -> None:
        self.fail_with = fail_with
        self.attempts: list = []
        self.sent: list = []
        self._queued: Deque[Failure] = deque()

    def fail_next(self, failure: Failure, times: int = 1) -> None:
        """Fail the next ``times`` sends with ``failure``.

        A string produces a failed ProviderResult; an exception is raised.
        """
        self._queued.extend([failure] * times)

    def _record(self, params, segment_count: Optional[int] = None) -> ProviderResult:
        self.attempts.append(params)
        failure = self._queued.popleft() if self._queued else self.fail_with
        if isinstance(failure, Exception):
            raise failure
        if failure is not None:
            return ProviderResult(success=False, error=failure)

        self.sent.append(params)
        return ProviderResult(
            success=True,
            message_id=f"{self.prefix}-{uuid.uuid4().hex[:16]}",
            segment_count=segment_count,
        )


class RecordingEmailProvider(_RecordingMixin, BaseEmailProvider):
    name = "recording-email"
    prefix = "rec-email"

    def __init__(self, fail_with: Optional[Failure] = None):
        self._init_recording(fail_with)

    async def send(self, params: EmailParams) -> ProviderResult:
        return self._record(params)


class RecordingSMSProvider(_RecordingMixin, BaseSMSProvider):
    name = "recording-sms"
    prefix = "rec-sms"

    def __init__(self, fail_with: Optional[Failure] = None):
        self._init_recording(fail_with)

    async def send(self, params: SMSParams) -> ProviderResult:
        return self._record(params, segment_count=calculate_segment_count(params.body))
