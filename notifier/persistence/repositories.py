"""Data access layer (repositories) for persistence operations.

This module provides repository classes for the delivery log, templates,
notification settings and customer preferences. Repositories encapsulate database operations and
return domain models rather than ORM models.

Each method opens its own session from ``session_scope`` so that concurrent
sends never share an AsyncSession.
"""

import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, AsyncContextManager, Callable, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notifier.domain.models import (
    CustomerPreferences,
    DeliveryCounts,
    DeliveryLogEntry,
    FailureReason,
    NotificationChannel,
    NotificationMetrics,
    NotificationSettings,
    NotificationStatus,
    Template,
)
from notifier.utils.timestamps import format_timestamp, utc_now

from .database import get_session
from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import (
    DATETIME_COLUMNS,
    CustomerPreferencesModel,
    DeliveryLogModel,
    NotificationSettingsModel,
    NotificationTemplateModel,
)

logger = logging.getLogger(__name__)

SessionScope = Callable[[], AsyncContextManager[AsyncSession]]

UPDATABLE_COLUMNS = frozenset(
    column.name for column in DeliveryLogModel.__table__.columns if column.name != "id"
)

QUERY_FILTERS = frozenset(
    {"type", "channel", "status", "customer_id", "recipient", "is_test", "start", "end"}
)

TOP_FAILURE_REASONS = 5


class SqlDeliveryLogger:
    """Repository for the notifications_log table."""

    def __init__(self, session_scope: SessionScope = get_session):
        self.session_scope = session_scope

    async def create(self, entry: DeliveryLogEntry) -> str:
        """Insert a log entry.

        Assigns an id and ``created_at`` when the entry has none.

        Returns:
            The entry id

        Raises:
            DataIntegrityError: If the id already exists
            PersistenceError: If database error occurs
        """
        prepared = entry.model_copy(
            update={
                "id": entry.id or str(uuid.uuid4()),
                "created_at": entry.created_at or utc_now(),
            }
        )
        try:
            async with self.session_scope() as session:
                session.add(DeliveryLogModel.from_domain(prepared))
                await session.flush()
            return prepared.id

        except IntegrityError as e:
            logger.error(f"Integrity error creating log entry {prepared.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to create log entry due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error creating log entry: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create log entry: {e}") from e

    async def update(self, log_id: str, **changes: Any) -> None:
        """Update columns of one entry.

        Raises:
            ValueError: If a change names an unknown column
            RecordNotFoundError: If log_id doesn't exist
            PersistenceError: If database error occurs
        """
        unknown = set(changes) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown delivery log columns: {', '.join(sorted(unknown))}")
        if not changes:
            return

        values = {key: _to_column_value(key, value) for key, value in changes.items()}
        try:
            async with self.session_scope() as session:
                result = await session.execute(
                    update(DeliveryLogModel)
                    .where(DeliveryLogModel.id == log_id)
                    .values(**values)
                )
                if result.rowcount == 0:
                    raise RecordNotFoundError(f"Log entry {log_id} not found")

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating log entry {log_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update log entry: {e}") from e

    async def get(self, log_id: str) -> Optional[DeliveryLogEntry]:
        try:
            async with self.session_scope() as session:
                model = await session.get(DeliveryLogModel, log_id)
                return model.to_domain() if model is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving log entry {log_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve log entry: {e}") from e

    async def list_retry_eligible(
        self, now: datetime, max_retries: int, limit: int = 100
    ) -> List[DeliveryLogEntry]:
        """Failed, non-test entries whose retry is due, oldest ``retry_after`` first."""
        stmt = (
            select(DeliveryLogModel)
            .where(
                DeliveryLogModel.status == NotificationStatus.FAILED.value,
                DeliveryLogModel.retry_after.is_not(None),
                DeliveryLogModel.retry_after <= format_timestamp(now),
                DeliveryLogModel.retry_count < max_retries,
                DeliveryLogModel.is_test.is_(False),
            )
            .order_by(DeliveryLogModel.retry_after.asc())
            .limit(limit)
        )
        try:
            async with self.session_scope() as session:
                result = await session.execute(stmt)
                return [model.to_domain() for model in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error(f"Error listing retry-eligible entries: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list retry-eligible entries: {e}") from e

    async def claim(self, log_id: str) -> bool:
        """Move a scheduled failure back to pending if nobody else has.

        A single conditional UPDATE, so of two concurrent sweeps exactly
        one sees a changed row.
        """
        stmt = (
            update(DeliveryLogModel)
            .where(
                DeliveryLogModel.id == log_id,
                DeliveryLogModel.status == NotificationStatus.FAILED.value,
                DeliveryLogModel.retry_after.is_not(None),
            )
            .values(status=NotificationStatus.PENDING.value, retry_after=None)
        )
        try:
            async with self.session_scope() as session:
                result = await session.execute(stmt)
                return result.rowcount == 1

        except SQLAlchemyError as e:
            logger.error(f"Error claiming log entry {log_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to claim log entry: {e}") from e

    async def query(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[DeliveryLogEntry]:
        """List entries, newest first.

        Supported filters: type, channel, status, customer_id, recipient,
        is_test, and a ``start``/``end`` range on created_at (end exclusive).
        """
        filters = filters or {}
        unknown = set(filters) - QUERY_FILTERS
        if unknown:
            raise ValueError(f"Unknown log filters: {', '.join(sorted(unknown))}")

        stmt = select(DeliveryLogModel)
        for key, value in filters.items():
            if value is None:
                continue
            if key == "start":
                stmt = stmt.where(DeliveryLogModel.created_at >= format_timestamp(value))
            elif key == "end":
                stmt = stmt.where(DeliveryLogModel.created_at < format_timestamp(value))
            else:
                stmt = stmt.where(getattr(DeliveryLogModel, key) == _to_column_value(key, value))

        stmt = (
            stmt.order_by(DeliveryLogModel.created_at.desc()).limit(limit).offset(offset)
        )
        try:
            async with self.session_scope() as session:
                result = await session.execute(stmt)
                return [model.to_domain() for model in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error(f"Error querying log entries: {e}", exc_info=True)
            raise PersistenceError(f"Failed to query log entries: {e}") from e

    async def get_stats(self, start: datetime, end: datetime) -> NotificationMetrics:
        """Aggregate non-test entries created in ``[start, end)``."""
        in_range = (
            DeliveryLogModel.created_at >= format_timestamp(start),
            DeliveryLogModel.created_at < format_timestamp(end),
            DeliveryLogModel.is_test.is_(False),
        )
        counts_stmt = (
            select(
                DeliveryLogModel.channel,
                DeliveryLogModel.type,
                DeliveryLogModel.status,
                func.count(),
                func.count(DeliveryLogModel.delivered_at),
                func.count(DeliveryLogModel.clicked_at),
                func.coalesce(func.sum(DeliveryLogModel.cost_cents), 0),
            )
            .where(*in_range)
            .group_by(DeliveryLogModel.channel, DeliveryLogModel.type, DeliveryLogModel.status)
        )
        reasons_stmt = (
            select(DeliveryLogModel.error_message, func.count().label("n"))
            .where(*in_range, DeliveryLogModel.status == NotificationStatus.FAILED.value)
            .group_by(DeliveryLogModel.error_message)
            .order_by(func.count().desc())
            .limit(TOP_FAILURE_REASONS)
        )
        try:
            async with self.session_scope() as session:
                count_rows = (await session.execute(counts_stmt)).all()
                reason_rows = (await session.execute(reasons_stmt)).all()

        except SQLAlchemyError as e:
            logger.error(f"Error computing notification stats: {e}", exc_info=True)
            raise PersistenceError(f"Failed to compute notification stats: {e}") from e

        return build_metrics(start, end, count_rows, reason_rows)


def build_metrics(start: datetime, end: datetime, count_rows, reason_rows) -> NotificationMetrics:
    """Fold grouped (channel, type, status, n, delivered, clicked, cost) rows into metrics."""
    by_channel: Dict[str, DeliveryCounts] = {
        channel.value: DeliveryCounts() for channel in NotificationChannel
    }
    by_type: Dict[str, DeliveryCounts] = {}
    totals = DeliveryCounts()

    for channel, notification_type, status, n, delivered, clicked, cost in count_rows:
        slices = (
            totals,
            by_channel.setdefault(channel, DeliveryCounts()),
            by_type.setdefault(notification_type, DeliveryCounts()),
        )
        for counts in slices:
            if status in ("sent", "failed", "pending"):
                setattr(counts, status, getattr(counts, status) + n)
            counts.delivered += delivered
            counts.clicked += clicked
            counts.cost_cents += int(cost or 0)

    total_failed = totals.failed
    failure_reasons = [
        FailureReason(
            reason=reason or "Unknown error",
            count=n,
            percentage=round(n / total_failed * 100, 2) if total_failed else 0.0,
        )
        for reason, n in reason_rows
    ]

    return NotificationMetrics(
        start=start,
        end=end,
        total=totals.sent + totals.failed + totals.pending,
        total_sent=totals.sent,
        total_failed=totals.failed,
        total_pending=totals.pending,
        total_delivered=totals.delivered,
        total_clicked=totals.clicked,
        delivery_rate=totals.delivery_rate,
        click_rate=round(totals.clicked / totals.delivered * 100, 2) if totals.delivered else 0.0,
        by_channel=by_channel,
        by_type=by_type,
        failure_reasons=failure_reasons,
    )


class SqlTemplateRepository:
    """Repository for the notification_templates table."""

    def __init__(self, session_scope: SessionScope = get_session):
        self.session_scope = session_scope

    async def get_template(
        self, notification_type: str, channel: NotificationChannel
    ) -> Optional[Template]:
        """Active template for a type/channel pair; the highest version wins."""
        stmt = (
            select(NotificationTemplateModel)
            .where(
                NotificationTemplateModel.type == notification_type,
                NotificationTemplateModel.channel == NotificationChannel(channel).value,
                NotificationTemplateModel.is_active.is_(True),
            )
            .order_by(NotificationTemplateModel.version.desc())
            .limit(1)
        )
        try:
            async with self.session_scope() as session:
                model = (await session.execute(stmt)).scalar_one_or_none()
                return model.to_domain() if model is not None else None

        except SQLAlchemyError as e:
            logger.error(
                f"Error retrieving template for {notification_type}/{channel}: {e}",
                exc_info=True,
            )
            raise PersistenceError(f"Failed to retrieve template: {e}") from e

    async def get_template_by_id(self, template_id: str) -> Optional[Template]:
        try:
            async with self.session_scope() as session:
                model = await session.get(NotificationTemplateModel, template_id)
                return model.to_domain() if model is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving template {template_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve template: {e}") from e

    async def list_templates(self, active_only: bool = True) -> List[Template]:
        stmt = select(NotificationTemplateModel).order_by(NotificationTemplateModel.name)
        if active_only:
            stmt = stmt.where(NotificationTemplateModel.is_active.is_(True))
        try:
            async with self.session_scope() as session:
                result = await session.execute(stmt)
                return [model.to_domain() for model in result.scalars().all()]

        except SQLAlchemyError as e:
            logger.error(f"Error listing templates: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list templates: {e}") from e

    async def save(self, template: Template) -> Template:
        """Insert a template or overwrite the row with the same id."""
        try:
            async with self.session_scope() as session:
                existing = await session.get(NotificationTemplateModel, template.id)
                if existing is not None:
                    existing.apply(template, utc_now())
                else:
                    session.add(NotificationTemplateModel.from_domain(template, utc_now()))
                await session.flush()
            return template

        except IntegrityError as e:
            logger.error(f"Integrity error saving template {template.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to save template due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error saving template {template.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save template: {e}") from e


class SqlNotificationSettingsRepository:
    """Repository for the notification_settings table."""

    def __init__(self, session_scope: SessionScope = get_session):
        self.session_scope = session_scope

    async def get_settings(self, notification_type: str) -> Optional[NotificationSettings]:
        try:
            async with self.session_scope() as session:
                model = await session.get(NotificationSettingsModel, notification_type)
                return model.to_domain() if model is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving settings for {notification_type}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve notification settings: {e}") from e

    async def is_channel_enabled(
        self, notification_type: str, channel: NotificationChannel
    ) -> bool:
        """A type without a settings row is disabled on every channel."""
        settings = await self.get_settings(notification_type)
        if settings is None:
            return False
        return settings.is_enabled(NotificationChannel(channel))

    async def save(self, settings: NotificationSettings) -> NotificationSettings:
        try:
            async with self.session_scope() as session:
                model = await session.get(NotificationSettingsModel, settings.notification_type)
                if model is None:
                    model = NotificationSettingsModel(notification_type=settings.notification_type)
                    session.add(model)
                model.email_enabled = settings.email_enabled
                model.sms_enabled = settings.sms_enabled
                model.email_template_id = settings.email_template_id
                model.sms_template_id = settings.sms_template_id
                model.updated_at = format_timestamp(utc_now())
                await session.flush()
            return settings

        except SQLAlchemyError as e:
            logger.error(
                f"Error saving settings for {settings.notification_type}: {e}", exc_info=True
            )
            raise PersistenceError(f"Failed to save notification settings: {e}") from e


class SqlCustomerPreferencesRepository:
    """Repository for the customer_preferences table."""

    def __init__(self, session_scope: SessionScope = get_session):
        self.session_scope = session_scope

    async def get_preferences(self, customer_id: str) -> Optional[CustomerPreferences]:
        try:
            async with self.session_scope() as session:
                model = await session.get(CustomerPreferencesModel, customer_id)
                return model.to_domain() if model is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving preferences for {customer_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve customer preferences: {e}") from e

    async def save(self, preferences: CustomerPreferences) -> CustomerPreferences:
        try:
            async with self.session_scope() as session:
                model = await session.get(CustomerPreferencesModel, preferences.customer_id)
                if model is None:
                    model = CustomerPreferencesModel(customer_id=preferences.customer_id)
                    session.add(model)
                for field, value in preferences.model_dump(exclude={"customer_id"}).items():
                    setattr(model, field, value)
                model.updated_at = format_timestamp(utc_now())
                await session.flush()
            return preferences

        except SQLAlchemyError as e:
            logger.error(
                f"Error saving preferences for {preferences.customer_id}: {e}", exc_info=True
            )
            raise PersistenceError(f"Failed to save customer preferences: {e}") from e


def _to_column_value(key: str, value: Any) -> Any:
    if key in DATETIME_COLUMNS and isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, Enum):
        return value.value
    return value
