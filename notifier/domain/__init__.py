"""Domain models for the notification core."""

from .models import (
    ClassifiedError,
    CustomerPreferences,
    DeliveryCounts,
    DeliveryLogEntry,
    EmailParams,
    ErrorKind,
    FailureReason,
    NotificationChannel,
    NotificationMessage,
    NotificationMetrics,
    NotificationSettings,
    NotificationStatus,
    ProviderResult,
    RenderedContent,
    SendResult,
    SMSParams,
    Template,
    TemplateVariable,
    ValidationResult,
)

__all__ = [
    "NotificationChannel",
    "NotificationStatus",
    "ErrorKind",
    "NotificationMessage",
    "NotificationSettings",
    "CustomerPreferences",
    "Template",
    "TemplateVariable",
    "RenderedContent",
    "DeliveryLogEntry",
    "SendResult",
    "ValidationResult",
    "ClassifiedError",
    "EmailParams",
    "SMSParams",
    "ProviderResult",
    "DeliveryCounts",
    "FailureReason",
    "NotificationMetrics",
]
