"""Database schema definition and ORM models.

This module defines SQLAlchemy ORM models for the notification tables and
provides conversion methods between ORM models and domain models.

Timestamps are stored as fixed-width ISO 8601 strings (UTC, ``Z`` suffix) so
that comparisons such as ``retry_after <= now`` work as string comparisons.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, Column, Index, Integer, String, Text, inspect
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import declarative_base

from notifier.domain.models import (
    CustomerPreferences,
    DeliveryLogEntry,
    NotificationSettings,
    Template,
    TemplateVariable,
)
from notifier.utils.timestamps import format_timestamp, parse_iso_datetime

logger = logging.getLogger(__name__)

Base = declarative_base()

DATETIME_COLUMNS = (
    "sent_at",
    "delivered_at",
    "clicked_at",
    "retry_after",
    "created_at",
)


class DeliveryLogModel(Base):
    """ORM model for the notifications_log table.

    One row per retry lineage; analytics columns (delivered_at, clicked_at,
    campaign and tracking ids, cost) are written by other systems and passed
    through untouched.
    """

    __tablename__ = "notifications_log"

    id = Column(String(36), primary_key=True, nullable=False)
    customer_id = Column(String(64), nullable=True)
    type = Column(String(100), nullable=False)
    channel = Column(String(10), nullable=False)
    recipient = Column(String(255), nullable=False)
    subject = Column(Text, nullable=True)
    content = Column(Text, nullable=False, default="")
    status = Column(String(20), nullable=False)
    error_message = Column(Text, nullable=True)

    sent_at = Column(String(32), nullable=True)
    delivered_at = Column(String(32), nullable=True)
    clicked_at = Column(String(32), nullable=True)

    campaign_id = Column(String(64), nullable=True)
    campaign_send_id = Column(String(64), nullable=True)
    tracking_id = Column(String(64), nullable=True)
    cost_cents = Column(Integer, nullable=True)

    template_id = Column(String(64), nullable=True)
    template_data = Column(JSON, nullable=False, default=dict)

    retry_count = Column(Integer, nullable=False, default=0)
    retry_after = Column(String(32), nullable=True)
    is_test = Column(Boolean, nullable=False, default=False)
    message_id = Column(String(255), nullable=True)
    created_at = Column(String(32), nullable=False)

    __table_args__ = (
        Index("idx_notifications_log_retry", "status", "retry_after"),
        Index("idx_notifications_log_created", "created_at"),
        Index("idx_notifications_log_customer", "customer_id"),
        Index("idx_notifications_log_type", "type", "channel"),
    )

    def to_domain(self) -> DeliveryLogEntry:
        return DeliveryLogEntry(
            id=self.id,
            customer_id=self.customer_id,
            type=self.type,
            channel=self.channel,
            recipient=self.recipient,
            subject=self.subject,
            content=self.content or "",
            status=self.status,
            error_message=self.error_message,
            sent_at=_parse_datetime(self.sent_at),
            delivered_at=_parse_datetime(self.delivered_at),
            clicked_at=_parse_datetime(self.clicked_at),
            campaign_id=self.campaign_id,
            campaign_send_id=self.campaign_send_id,
            tracking_id=self.tracking_id,
            cost_cents=self.cost_cents,
            template_id=self.template_id,
            template_data=self.template_data or {},
            retry_count=self.retry_count or 0,
            retry_after=_parse_datetime(self.retry_after),
            is_test=bool(self.is_test),
            message_id=self.message_id,
            created_at=_parse_datetime(self.created_at),
        )

    @classmethod
    def from_domain(cls, entry: DeliveryLogEntry) -> "DeliveryLogModel":
        values = entry.model_dump(mode="python")
        for field in DATETIME_COLUMNS:
            values[field] = _format_datetime(values[field])
        values["channel"] = entry.channel.value
        values["status"] = entry.status.value
        return cls(**values)


class NotificationTemplateModel(Base):
    """ORM model for the notification_templates table."""

    __tablename__ = "notification_templates"

    id = Column(String(64), primary_key=True, nullable=False)
    name = Column(String(255), nullable=False)
    type = Column(String(100), nullable=False)
    channel = Column(String(10), nullable=False)
    subject_template = Column(Text, nullable=True)
    html_template = Column(Text, nullable=True)
    text_template = Column(Text, nullable=False, default="")
    variables = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(String(32), nullable=True)

    __table_args__ = (
        Index("idx_notification_templates_lookup", "type", "channel", "is_active"),
    )

    def to_domain(self) -> Template:
        return Template(
            id=self.id,
            name=self.name,
            type=self.type,
            channel=self.channel,
            subject_template=self.subject_template,
            html_template=self.html_template,
            text_template=self.text_template or "",
            variables=[TemplateVariable.model_validate(v) for v in (self.variables or [])],
            is_active=bool(self.is_active),
            version=self.version or 1,
        )

    def apply(self, template: Template, updated_at: Optional[datetime] = None) -> None:
        """Copy the fields of a domain template onto this row."""
        self.name = template.name
        self.type = template.type
        self.channel = template.channel.value
        self.subject_template = template.subject_template
        self.html_template = template.html_template
        self.text_template = template.text_template
        self.variables = [v.model_dump() for v in template.variables]
        self.is_active = template.is_active
        self.version = template.version
        self.updated_at = _format_datetime(updated_at)

    @classmethod
    def from_domain(
        cls, template: Template, updated_at: Optional[datetime] = None
    ) -> "NotificationTemplateModel":
        model = cls(id=template.id)
        model.apply(template, updated_at)
        return model


class NotificationSettingsModel(Base):
    """ORM model for the notification_settings table."""

    __tablename__ = "notification_settings"

    notification_type = Column(String(100), primary_key=True, nullable=False)
    email_enabled = Column(Boolean, nullable=False, default=False)
    sms_enabled = Column(Boolean, nullable=False, default=False)
    email_template_id = Column(String(64), nullable=True)
    sms_template_id = Column(String(64), nullable=True)
    updated_at = Column(String(32), nullable=True)

    def to_domain(self) -> NotificationSettings:
        return NotificationSettings(
            notification_type=self.notification_type,
            email_enabled=bool(self.email_enabled),
            sms_enabled=bool(self.sms_enabled),
            email_template_id=self.email_template_id,
            sms_template_id=self.sms_template_id,
        )


class CustomerPreferencesModel(Base):
    """ORM model for the customer_preferences table."""

    __tablename__ = "customer_preferences"

    customer_id = Column(String(64), primary_key=True, nullable=False)
    marketing_enabled = Column(Boolean, nullable=False, default=True)
    email_appointment_reminders = Column(Boolean, nullable=False, default=True)
    sms_appointment_reminders = Column(Boolean, nullable=False, default=True)
    email_retention_reminders = Column(Boolean, nullable=False, default=True)
    sms_retention_reminders = Column(Boolean, nullable=False, default=True)
    updated_at = Column(String(32), nullable=True)

    def to_domain(self) -> CustomerPreferences:
        return CustomerPreferences(
            customer_id=self.customer_id,
            marketing_enabled=bool(self.marketing_enabled),
            email_appointment_reminders=bool(self.email_appointment_reminders),
            sms_appointment_reminders=bool(self.sms_appointment_reminders),
            email_retention_reminders=bool(self.email_retention_reminders),
            sms_retention_reminders=bool(self.sms_retention_reminders),
        )


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    return format_timestamp(dt)


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    return parse_iso_datetime(dt_str)


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    logger.info("Creating database schema if not exists")

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all, checkfirst=True)
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")

    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
