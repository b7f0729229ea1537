"""Exceptions raised by channel providers.

Providers raise the notification taxonomy so that the error classifier can
decide retry eligibility without inspecting provider-specific types.
"""

from notifier.notifications.models import (
    NotificationError,
    ProviderPermanentError,
    ProviderTransientError,
)


class InvalidRecipientError(ProviderPermanentError):
    """Raised when a recipient address or number cannot be used."""


__all__ = [
    "NotificationError",
    "ProviderTransientError",
    "ProviderPermanentError",
    "InvalidRecipientError",
]
