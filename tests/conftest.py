"""Shared fixtures for notifier tests."""

from datetime import datetime, timezone

import pytest

from notifier.config.models import BatchConfig, BusinessContext, RetryConfig
from notifier.domain.models import (
    NotificationChannel,
    NotificationMessage,
    NotificationSettings,
    Template,
    TemplateVariable,
)
from notifier.notifications.service import NotificationService
from notifier.providers.memory import RecordingEmailProvider, RecordingSMSProvider
from tests.helpers import (
    InMemoryDeliveryLogger,
    InMemoryPreferencesRepository,
    InMemorySettingsRepository,
    InMemoryTemplateRepository,
    MutableClock,
)


@pytest.fixture
def booking_email_template():
    return Template(
        id="booking_confirmation_email",
        name="Booking Confirmation",
        type="booking_confirmation",
        channel=NotificationChannel.EMAIL,
        subject_template="Booking confirmed for {{ pet_name }}",
        html_template="<p>Hi {{ customer_name }}, {{ pet_name }} is booked for "
        "{{ appointment_date }} at {{ appointment_time }}.</p>",
        text_template="Hi {{ customer_name }}, {{ pet_name }} is booked for "
        "{{ appointment_date }} at {{ appointment_time }}. {{ business.name }}",
        variables=[
            TemplateVariable(name="customer_name", required=True, max_length=50),
            TemplateVariable(name="pet_name", required=True, max_length=30),
            TemplateVariable(name="appointment_date", required=True, max_length=20),
            TemplateVariable(name="appointment_time", required=True, max_length=10),
        ],
    )


@pytest.fixture
def reminder_sms_template():
    return Template(
        id="appointment_reminder_sms",
        name="Appointment Reminder",
        type="appointment_reminder",
        channel=NotificationChannel.SMS,
        text_template="Reminder: {{ pet_name }}'s appointment is {{ appointment_time }}.",
        variables=[
            TemplateVariable(name="pet_name", required=True, max_length=30),
            TemplateVariable(name="appointment_time", required=True, max_length=20),
        ],
    )


@pytest.fixture
def template_repository(booking_email_template, reminder_sms_template):
    return InMemoryTemplateRepository([booking_email_template, reminder_sms_template])


@pytest.fixture
def settings_repository():
    return InMemorySettingsRepository(
        [
            NotificationSettings(
                notification_type="booking_confirmation", email_enabled=True, sms_enabled=False
            ),
            NotificationSettings(
                notification_type="appointment_reminder", email_enabled=False, sms_enabled=True
            ),
        ]
    )


@pytest.fixture
def preferences_repository():
    return InMemoryPreferencesRepository()


@pytest.fixture
def delivery_logger():
    return InMemoryDeliveryLogger()


@pytest.fixture
def email_provider():
    return RecordingEmailProvider()


@pytest.fixture
def sms_provider():
    return RecordingSMSProvider()


@pytest.fixture
def clock():
    return MutableClock(datetime(2024, 12, 1, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def retry_config():
    return RetryConfig(max_retries=3, base_delay_seconds=30, max_delay_seconds=300)


@pytest.fixture
def service(
    email_provider,
    sms_provider,
    template_repository,
    settings_repository,
    preferences_repository,
    delivery_logger,
    retry_config,
    clock,
):
    return NotificationService(
        email_provider=email_provider,
        sms_provider=sms_provider,
        template_repository=template_repository,
        settings_repository=settings_repository,
        delivery_logger=delivery_logger,
        preferences_repository=preferences_repository,
        retry_config=retry_config,
        batch_config=BatchConfig(concurrency=5),
        business_context=BusinessContext(),
        clock=clock,
    )


@pytest.fixture
def booking_message():
    return NotificationMessage(
        type="booking_confirmation",
        channel=NotificationChannel.EMAIL,
        recipient="john@example.com",
        user_id="cust-1",
        template_data={
            "customer_name": "John Doe",
            "pet_name": "Buddy",
            "appointment_date": "December 20, 2024",
            "appointment_time": "10:00 AM",
        },
    )

