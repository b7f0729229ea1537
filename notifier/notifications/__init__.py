"""Notification pipeline for transactional email and SMS.

This module provides the core of the service:
- NotificationService: send, batch send, resend, retries and metrics
- TemplateEngine: sandboxed Jinja2 rendering with visible placeholders
- classify: maps provider failures to retry categories
- RetryPolicy: exponential backoff with optional jitter
- Protocols for the repositories, delivery logger and channel providers
"""

from .backoff import RetryPolicy
from .classifier import classify
from .interfaces import (
    CustomerPreferencesRepository,
    DeliveryLogger,
    EmailProvider,
    NotificationSettingsRepository,
    SMSProvider,
    TemplateRepository,
)
from .models import (
    ChannelDisabledError,
    CustomerOptOutError,
    NotificationError,
    NotificationTemplateError,
    ProviderPermanentError,
    ProviderTransientError,
    RetrySummary,
    TemplateNotFoundError,
    UnclassifiedError,
)
from .service import NotificationService
from .templates import TemplateEngine, calculate_segment_count

__all__ = [
    # Main service
    "NotificationService",
    # Components
    "TemplateEngine",
    "RetryPolicy",
    "classify",
    "calculate_segment_count",
    # Interfaces
    "TemplateRepository",
    "NotificationSettingsRepository",
    "CustomerPreferencesRepository",
    "DeliveryLogger",
    "EmailProvider",
    "SMSProvider",
    # Models and exceptions
    "RetrySummary",
    "NotificationError",
    "ChannelDisabledError",
    "CustomerOptOutError",
    "TemplateNotFoundError",
    "NotificationTemplateError",
    "ProviderTransientError",
    "ProviderPermanentError",
    "UnclassifiedError",
]
