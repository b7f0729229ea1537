"""Data models and exceptions for the notification service.

This module defines the failure taxonomy used throughout the send pipeline
and the summary type reported by retry sweeps.
"""

from dataclasses import dataclass
from typing import Optional


class NotificationError(Exception):
    """Base exception for notification-related errors.

    ``transient`` tells the error classifier whether a failure of this type
    may succeed on a later attempt.
    """

    transient = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ChannelDisabledError(NotificationError):
    """Raised when the settings disable a channel for a notification type."""


class CustomerOptOutError(NotificationError):
    """Raised when a customer's preferences block a notification.

    The message is the preference reason code, for example
    ``customer_preference_marketing_disabled``.
    """


class TemplateNotFoundError(NotificationError):
    """Raised when no active template exists for a type/channel or id."""


class NotificationTemplateError(NotificationError):
    """Raised when a template cannot be parsed or rendered."""


class ProviderTransientError(NotificationError):
    """Raised by providers for failures worth retrying (timeouts, 5xx)."""

    transient = True


class ProviderPermanentError(NotificationError):
    """Raised by providers for failures that will not succeed on retry."""


class UnclassifiedError(NotificationError):
    """A failure that carries nothing to classify; treated as permanent."""


@dataclass
class RetrySummary:
    """Outcome counts of one retry sweep.

    Attributes:
        processed: Entries re-submitted
        succeeded: Re-submissions that were sent
        failed: Re-submissions that failed again
    """

    processed: int = 0
    succeeded: int = 0
    failed: int = 0

    def has_failures(self) -> bool:
        return self.failed > 0
