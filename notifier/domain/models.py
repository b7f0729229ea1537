"""Core domain models for notifications, templates, and the delivery log.

This module defines the data structures used throughout the package:
- NotificationMessage: a request to notify one recipient on one channel
- Template / TemplateVariable: stored message templates and their declared inputs
- RenderedContent: the result of rendering a template against data
- DeliveryLogEntry: one row of the auditable delivery log
- SendResult / ValidationResult / ClassifiedError: operation results
- EmailParams / SMSParams / ProviderResult: the channel provider contract
- NotificationMetrics: aggregate delivery statistics for a time range
- CustomerPreferences: a customer's notification opt-outs
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from notifier.utils.timestamps import ensure_utc


class NotificationChannel(str, Enum):
    """Delivery channel."""

    EMAIL = "email"
    SMS = "sms"


class NotificationStatus(str, Enum):
    """Delivery log entry status."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class ErrorKind(str, Enum):
    """Failure categories produced by the error classifier."""

    TRANSIENT = "transient"
    RATE_LIMIT = "rate_limit"
    VALIDATION = "validation"
    PERMANENT = "permanent"


class NotificationMessage(BaseModel):
    """A request to deliver one notification.

    Transient: the persisted record of an attempt is the DeliveryLogEntry.
    """

    type: str = Field(..., description="Notification type, e.g. booking_confirmation")
    channel: NotificationChannel
    recipient: str = Field(..., description="Email address or phone number")
    user_id: Optional[str] = Field(None, description="Customer the notification is about")
    template_data: Dict[str, Any] = Field(default_factory=dict)
    is_test: bool = Field(False, description="Admin test send; never retried")

    @field_validator("type", "recipient")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        """Strip whitespace from required string fields."""
        if not v or not v.strip():
            raise ValueError("Field cannot be empty or whitespace-only")
        return v.strip()

    model_config = {"json_schema_extra": {"example": {
        "type": "booking_confirmation",
        "channel": "email",
        "recipient": "jane@example.com",
        "user_id": "cust-123",
        "template_data": {"customer_name": "Jane", "pet_name": "Biscuit"},
    }}}


class TemplateVariable(BaseModel):
    """A variable a template declares."""

    name: str
    description: str = ""
    required: bool = False
    max_length: Optional[int] = Field(None, ge=0, description="Used for SMS length estimates")
    default_value: Optional[str] = None


class Template(BaseModel):
    """A stored message template for one (type, channel) pair.

    Email templates carry a subject and an HTML body; ``text_template`` is
    the SMS body or the plain-text alternative of an email.
    """

    id: str
    name: str
    type: str
    channel: NotificationChannel
    subject_template: Optional[str] = None
    html_template: Optional[str] = None
    text_template: str = ""
    variables: List[TemplateVariable] = Field(default_factory=list)
    is_active: bool = True
    version: int = Field(1, ge=1)


class NotificationSettings(BaseModel):
    """Per-type channel switches. A type without settings sends nothing."""

    notification_type: str
    email_enabled: bool = False
    sms_enabled: bool = False
    email_template_id: Optional[str] = None
    sms_template_id: Optional[str] = None

    def is_enabled(self, channel: NotificationChannel) -> bool:
        if channel == NotificationChannel.EMAIL:
            return self.email_enabled
        return self.sms_enabled


MARKETING_NOTIFICATION_TYPES = frozenset({"retention_reminder"})


def is_transactional(notification_type: str) -> bool:
    """Transactional types bypass customer opt-outs."""
    return notification_type == "booking_confirmation" or notification_type.startswith(
        "appointment_status"
    )


class CustomerPreferences(BaseModel):
    """A customer's opt-outs. A customer without stored preferences gets everything."""

    customer_id: str
    marketing_enabled: bool = True
    email_appointment_reminders: bool = True
    sms_appointment_reminders: bool = True
    email_retention_reminders: bool = True
    sms_retention_reminders: bool = True

    def blocked_reason(
        self, notification_type: str, channel: NotificationChannel
    ) -> Optional[str]:
        """Reason code when this customer has opted out, or None when allowed."""
        if is_transactional(notification_type):
            return None

        if notification_type in MARKETING_NOTIFICATION_TYPES and not self.marketing_enabled:
            return "customer_preference_marketing_disabled"

        channel = NotificationChannel(channel)
        if notification_type == "appointment_reminder":
            if channel == NotificationChannel.EMAIL and not self.email_appointment_reminders:
                return "customer_preference_email_reminders_disabled"
            if channel == NotificationChannel.SMS and not self.sms_appointment_reminders:
                return "customer_preference_sms_reminders_disabled"

        if notification_type == "retention_reminder":
            if channel == NotificationChannel.EMAIL and not self.email_retention_reminders:
                return "customer_preference_email_retention_disabled"
            if channel == NotificationChannel.SMS and not self.sms_retention_reminders:
                return "customer_preference_sms_retention_disabled"

        return None


class RenderedContent(BaseModel):
    """Output of rendering a template against data."""

    subject: Optional[str] = None
    html: Optional[str] = None
    text: str = ""
    character_count: int = 0
    segment_count: int = 0
    warnings: List[str] = Field(default_factory=list)


class DeliveryLogEntry(BaseModel):
    """One row of the delivery log.

    A retry lineage is a single entry updated in place: ``retry_count`` only
    grows, ``retry_after`` is set only while a transient failure still has
    retries left, and a ``sent`` entry always has a ``message_id``.
    """

    id: Optional[str] = None
    customer_id: Optional[str] = None
    type: str
    channel: NotificationChannel
    recipient: str
    subject: Optional[str] = None
    content: str = ""
    status: NotificationStatus = NotificationStatus.PENDING
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    clicked_at: Optional[datetime] = None
    campaign_id: Optional[str] = None
    campaign_send_id: Optional[str] = None
    tracking_id: Optional[str] = None
    cost_cents: Optional[int] = None
    template_id: Optional[str] = None
    template_data: Dict[str, Any] = Field(default_factory=dict)
    retry_count: int = Field(0, ge=0)
    retry_after: Optional[datetime] = None
    is_test: bool = False
    message_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator(
        "sent_at", "delivered_at", "clicked_at", "retry_after", "created_at"
    )
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Ensure datetime is timezone-aware and in UTC."""
        return ensure_utc(v)

    def to_message(self) -> NotificationMessage:
        """Rebuild the message that produced this entry."""
        return NotificationMessage(
            type=self.type,
            channel=self.channel,
            recipient=self.recipient,
            user_id=self.customer_id,
            template_data=dict(self.template_data),
            is_test=self.is_test,
        )


class SendResult(BaseModel):
    """Outcome of a single send attempt."""

    success: bool
    message_id: Optional[str] = None
    log_id: Optional[str] = None
    error: Optional[str] = None
    retryable: bool = Field(False, description="True when a retry was scheduled")


class ValidationResult(BaseModel):
    """Outcome of validating a template against its declared variables."""

    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ClassifiedError(BaseModel):
    """A provider or pipeline failure with its retry category."""

    kind: ErrorKind
    message: str
    status_code: Optional[int] = None

    @property
    def transient(self) -> bool:
        return self.kind in (ErrorKind.TRANSIENT, ErrorKind.RATE_LIMIT)


class EmailParams(BaseModel):
    """Input to an email provider."""

    to: str
    subject: str
    html: str
    text: Optional[str] = None
    from_: Optional[str] = None
    reply_to: Optional[str] = None


class SMSParams(BaseModel):
    """Input to an SMS provider."""

    to: str
    body: str
    from_: Optional[str] = None


class ProviderResult(BaseModel):
    """Output of a provider send."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    segment_count: Optional[int] = None
    status_code: Optional[int] = None


class DeliveryCounts(BaseModel):
    """Delivery counters for one slice of the log (a channel or a type)."""

    sent: int = 0
    failed: int = 0
    pending: int = 0
    delivered: int = 0
    clicked: int = 0
    cost_cents: int = 0

    @property
    def delivery_rate(self) -> float:
        """Percentage of settled attempts that were sent."""
        return _percentage(self.sent, self.sent + self.failed)


class FailureReason(BaseModel):
    reason: str
    count: int
    percentage: float


class NotificationMetrics(BaseModel):
    """Aggregate delivery statistics for a time range."""

    start: datetime
    end: datetime
    total: int = 0
    total_sent: int = 0
    total_failed: int = 0
    total_pending: int = 0
    total_delivered: int = 0
    total_clicked: int = 0
    delivery_rate: float = 0.0
    click_rate: float = 0.0
    by_channel: Dict[str, DeliveryCounts] = Field(default_factory=dict)
    by_type: Dict[str, DeliveryCounts] = Field(default_factory=dict)
    failure_reasons: List[FailureReason] = Field(default_factory=list)


def _percentage(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 2)
