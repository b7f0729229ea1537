"""Unit tests for domain models."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from notifier.domain.models import (
    ClassifiedError,
    CustomerPreferences,
    DeliveryCounts,
    DeliveryLogEntry,
    ErrorKind,
    NotificationChannel,
    NotificationMessage,
    NotificationSettings,
    NotificationStatus,
    Template,
    is_transactional,
)


class TestNotificationMessage:
    """Tests for NotificationMessage model."""

    def test_valid_message(self):
        message = NotificationMessage(
            type="booking_confirmation",
            channel="email",
            recipient="jane@petmail.com",
            template_data={"pet_name": "Biscuit"},
        )

        assert message.channel == NotificationChannel.EMAIL
        assert message.user_id is None
        assert message.is_test is False

    def test_strips_whitespace(self):
        message = NotificationMessage(
            type="  booking_confirmation ", channel="sms", recipient=" +16575550100 "
        )

        assert message.type == "booking_confirmation"
        assert message.recipient == "+16575550100"

    @pytest.mark.parametrize("field", ["type", "recipient"])
    def test_rejects_blank_required_fields(self, field):
        values = {"type": "booking_confirmation", "channel": "email", "recipient": "a@b.com"}
        values[field] = "   "

        with pytest.raises(ValidationError):
            NotificationMessage(**values)

    def test_rejects_unknown_channel(self):
        with pytest.raises(ValidationError):
            NotificationMessage(type="booking_confirmation", channel="fax", recipient="x")


class TestDeliveryLogEntry:
    """Tests for DeliveryLogEntry model."""

    def test_defaults(self):
        entry = DeliveryLogEntry(type="booking_confirmation", channel="email", recipient="a@b.com")

        assert entry.status == NotificationStatus.PENDING
        assert entry.retry_count == 0
        assert entry.retry_after is None

    def test_converts_naive_datetime_to_utc(self):
        entry = DeliveryLogEntry(
            type="booking_confirmation",
            channel="email",
            recipient="a@b.com",
            retry_after=datetime(2024, 12, 20, 10, 0, 0),
        )

        assert entry.retry_after.tzinfo == timezone.utc

    def test_converts_offset_datetime_to_utc(self):
        pacific = timezone(timedelta(hours=-8))
        entry = DeliveryLogEntry(
            type="booking_confirmation",
            channel="email",
            recipient="a@b.com",
            created_at=datetime(2024, 12, 20, 10, 0, 0, tzinfo=pacific),
        )

        assert entry.created_at.hour == 18

    def test_rejects_negative_retry_count(self):
        with pytest.raises(ValidationError):
            DeliveryLogEntry(
                type="booking_confirmation", channel="email", recipient="a@b.com", retry_count=-1
            )

    def test_to_message_rebuilds_request(self):
        entry = DeliveryLogEntry(
            type="appointment_reminder",
            channel="sms",
            recipient="+16575550100",
            customer_id="cust-7",
            template_data={"pet_name": "Max"},
            is_test=True,
            retry_count=2,
        )

        message = entry.to_message()

        assert message == NotificationMessage(
            type="appointment_reminder",
            channel="sms",
            recipient="+16575550100",
            user_id="cust-7",
            template_data={"pet_name": "Max"},
            is_test=True,
        )
        message.template_data["pet_name"] = "Rex"
        assert entry.template_data == {"pet_name": "Max"}


class TestTemplateAndSettings:
    def test_template_version_must_be_positive(self):
        with pytest.raises(ValidationError):
            Template(id="t", name="T", type="x", channel="sms", version=0)

    def test_settings_default_to_disabled(self):
        settings = NotificationSettings(notification_type="retention_reminder")

        assert settings.is_enabled(NotificationChannel.EMAIL) is False
        assert settings.is_enabled(NotificationChannel.SMS) is False

    def test_settings_per_channel(self):
        settings = NotificationSettings(notification_type="booking_confirmation", sms_enabled=True)

        assert settings.is_enabled(NotificationChannel.SMS) is True
        assert settings.is_enabled(NotificationChannel.EMAIL) is False


class TestResults:
    @pytest.mark.parametrize(
        "kind,transient",
        [
            (ErrorKind.TRANSIENT, True),
            (ErrorKind.RATE_LIMIT, True),
            (ErrorKind.VALIDATION, False),
            (ErrorKind.PERMANENT, False),
        ],
    )
    def test_classified_error_transient(self, kind, transient):
        assert ClassifiedError(kind=kind, message="x").transient is transient

    def test_delivery_rate(self):
        assert DeliveryCounts(sent=2, failed=1, pending=5).delivery_rate == 66.67
        assert DeliveryCounts().delivery_rate == 0.0


class TestCustomerPreferences:
    """Tests for opt-out decisions."""

    def test_defaults_allow_everything(self):
        preferences = CustomerPreferences(customer_id="cust-1")

        for notification_type in ("appointment_reminder", "retention_reminder", "promo"):
            for channel in NotificationChannel:
                assert preferences.blocked_reason(notification_type, channel) is None

    @pytest.mark.parametrize(
        "field,notification_type,channel,reason",
        [
            ("marketing_enabled", "retention_reminder", "sms", "marketing_disabled"),
            ("email_appointment_reminders", "appointment_reminder", "email", "email_reminders_disabled"),
            ("sms_appointment_reminders", "appointment_reminder", "sms", "sms_reminders_disabled"),
            ("email_retention_reminders", "retention_reminder", "email", "email_retention_disabled"),
            ("sms_retention_reminders", "retention_reminder", "sms", "sms_retention_disabled"),
        ],
    )
    def test_opt_out_reasons(self, field, notification_type, channel, reason):
        preferences = CustomerPreferences(customer_id="cust-1", **{field: False})

        assert preferences.blocked_reason(notification_type, channel) == f"customer_preference_{reason}"

    def test_opt_out_is_per_channel(self):
        preferences = CustomerPreferences(customer_id="cust-1", sms_appointment_reminders=False)

        assert preferences.blocked_reason("appointment_reminder", NotificationChannel.EMAIL) is None

    @pytest.mark.parametrize(
        "notification_type", ["booking_confirmation", "appointment_status_checked_in"]
    )
    def test_transactional_types_are_never_blocked(self, notification_type):
        preferences = CustomerPreferences(
            customer_id="cust-1",
            marketing_enabled=False,
            email_appointment_reminders=False,
            sms_appointment_reminders=False,
            email_retention_reminders=False,
            sms_retention_reminders=False,
        )

        assert is_transactional(notification_type) is True
        for channel in NotificationChannel:
            assert preferences.blocked_reason(notification_type, channel) is None
