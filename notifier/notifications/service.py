"""Notification service for sending transactional email and SMS.

This module provides the NotificationService class that orchestrates the
send pipeline: channel settings check, template resolution and rendering,
delivery log bookkeeping, provider dispatch, and failure classification
with retry scheduling.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from notifier.config.models import BatchConfig, BusinessContext, RetryConfig
from notifier.domain.models import (
    CustomerPreferences,
    DeliveryLogEntry,
    EmailParams,
    NotificationChannel,
    NotificationMessage,
    NotificationMetrics,
    NotificationStatus,
    ProviderResult,
    RenderedContent,
    SendResult,
    SMSParams,
    Template,
    is_transactional,
)
from notifier.logging import get_logger
from notifier.logging.context import log_context
from notifier.utils.timestamps import utc_now

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
    TemplateNotFoundError,
    UnclassifiedError,
)
from .templates import TemplateEngine

logger = get_logger(__name__, component="notification")


class NotificationService:
    """Service for sending notifications through channel providers.

    Coordinates the send flow:
    1. Check the channel is enabled for the notification type
    2. Check the customer has not opted out (when the message has a user_id)
    3. Resolve and render the template
    4. Create (or, on the retry path, claim and refresh) the log entry
    5. Dispatch through the email or SMS provider
    6. Record success, or classify the failure and schedule a retry

    ``send``, ``send_batch`` and ``process_retries`` never raise; every
    failure ends up in the returned SendResult and, once a log entry
    exists, in the delivery log.
    """

    def __init__(
        self,
        email_provider: EmailProvider,
        sms_provider: SMSProvider,
        template_repository: TemplateRepository,
        settings_repository: NotificationSettingsRepository,
        delivery_logger: DeliveryLogger,
        preferences_repository: Optional[CustomerPreferencesRepository] = None,
        retry_config: Optional[RetryConfig] = None,
        batch_config: Optional[BatchConfig] = None,
        business_context: Optional[BusinessContext] = None,
        template_engine: Optional[TemplateEngine] = None,
        clock: Callable[[], datetime] = utc_now,
        logger_instance: Optional[logging.Logger] = None,
    ):
        """Initialize notification service.

        Args:
            email_provider: Provider used for the email channel
            sms_provider: Provider used for the SMS channel
            template_repository: Template lookup
            settings_repository: Channel enablement lookup
            delivery_logger: Delivery log persistence
            preferences_repository: Customer opt-out lookup (no opt-outs if None)
            retry_config: Retry ceiling and backoff constants
            batch_config: Batch concurrency bound and retry sweep size
            business_context: Values exposed to templates as ``business``
            template_engine: Template engine (creates default if None)
            clock: Source of the current UTC time
            logger_instance: Logger instance (uses module logger if None)
        """
        self.email_provider = email_provider
        self.sms_provider = sms_provider
        self.template_repository = template_repository
        self.settings_repository = settings_repository
        self.delivery_logger = delivery_logger
        self.preferences_repository = preferences_repository
        self.retry_config = retry_config or RetryConfig()
        self.batch_config = batch_config or BatchConfig()
        self.retry_policy = RetryPolicy(self.retry_config)
        self.business_context: Optional[Dict[str, Any]] = (
            business_context.model_dump() if business_context is not None else None
        )
        self.template_engine = template_engine or TemplateEngine()
        self.clock = clock
        self.logger = logger_instance or logger
        self._retry_scheduler = None

    async def send(self, message: NotificationMessage, *, log_id: Optional[str] = None) -> SendResult:
        """Send one notification.

        Args:
            message: The notification to deliver
            log_id: Existing log entry to extend (retry path); the entry is
                claimed first, and nothing is sent if the claim fails

        Returns:
            SendResult describing the outcome; never raises
        """
        with log_context(
            notification_type=message.type,
            channel=message.channel.value,
            log_id=log_id,
        ):
            try:
                return await self._send(message, log_id)
            except Exception as e:
                error_msg = f"Unexpected error in send: {e}"
                self.logger.error(
                    error_msg,
                    exc_info=True,
                    extra={"event": "notification.send.error", "error_type": type(e).__name__},
                )
                return SendResult(success=False, log_id=log_id, error=error_msg)

    async def _send(self, message: NotificationMessage, log_id: Optional[str]) -> SendResult:
        if log_id is not None:
            return await self._send_retry(message, log_id)

        try:
            template, content = await self._prepare(message)
        except CustomerOptOutError as e:
            return await self._record_opt_out(message, e)
        except NotificationError as e:
            self.logger.warning(
                f"Notification not sent: {e.message}",
                extra={"event": "notification.send.rejected", "error_type": type(e).__name__},
            )
            return SendResult(success=False, error=e.message)

        log_id = await self.delivery_logger.create(
            DeliveryLogEntry(
                customer_id=message.user_id,
                type=message.type,
                channel=message.channel,
                recipient=message.recipient,
                subject=content.subject,
                content=content.text,
                status=NotificationStatus.PENDING,
                template_id=template.id,
                template_data=dict(message.template_data),
                retry_count=0,
                is_test=message.is_test,
                created_at=self.clock(),
            )
        )
        return await self._attempt(message, content, log_id, 0)

    async def _send_retry(self, message: NotificationMessage, log_id: str) -> SendResult:
        """Claim an entry awaiting retry and attempt it again.

        Once the claim succeeds the entry is ``pending`` and owned by this
        call, so every exception from here on is written back to it.
        """
        entry = await self.delivery_logger.get(log_id)
        if entry is None:
            return SendResult(success=False, log_id=log_id, error=f"Log entry {log_id} not found")
        if not await self.delivery_logger.claim(log_id):
            self.logger.info(
                f"Log entry {log_id} is no longer awaiting retry, skipping",
                extra={"event": "notification.retry.skipped"},
            )
            return SendResult(
                success=False,
                log_id=log_id,
                error=f"Log entry {log_id} is not awaiting retry",
            )
        retry_count = entry.retry_count

        with log_context(log_id=log_id):
            try:
                template, content = await self._prepare(message)
                await self.delivery_logger.update(
                    log_id,
                    subject=content.subject,
                    content=content.text,
                    template_id=template.id,
                    template_data=dict(message.template_data),
                )
            except NotificationError as e:
                return await self._record_failure(log_id, retry_count, e)
            except Exception as e:
                self.logger.error(
                    f"Unexpected error preparing retry: {e}",
                    exc_info=True,
                    extra={"event": "notification.send.error", "error_type": type(e).__name__},
                )
                return await self._record_failure(log_id, retry_count, e)

        return await self._attempt(message, content, log_id, retry_count)

    async def _attempt(
        self,
        message: NotificationMessage,
        content: RenderedContent,
        log_id: str,
        retry_count: int,
    ) -> SendResult:
        """Dispatch for a pending entry and leave it ``sent`` or ``failed``."""
        with log_context(log_id=log_id):
            try:
                result = await self._dispatch(message, content)
            except Exception as e:
                return await self._record_failure(log_id, retry_count, e)

            if not result.success:
                if not result.error and result.status_code is None:
                    error = UnclassifiedError("Provider reported a failure without details")
                    return await self._record_failure(log_id, retry_count, error)
                return await self._record_failure(log_id, retry_count, result)

            try:
                await self.delivery_logger.update(
                    log_id,
                    status=NotificationStatus.SENT,
                    sent_at=self.clock(),
                    message_id=result.message_id,
                    error_message=None,
                    retry_after=None,
                )
            except Exception as e:
                self.logger.error(
                    f"Delivered as {result.message_id} but the log update failed: {e}",
                    exc_info=True,
                    extra={"event": "notification.log.error", "error_type": type(e).__name__},
                )
                # never retried, the provider already accepted the message
                error = UnclassifiedError(
                    f"Delivered as {result.message_id} but the log update failed: {e}"
                )
                return await self._record_failure(log_id, retry_count, error)

            self.logger.info(
                f"Notification sent ({message.channel.value}) to {message.recipient}",
                extra={
                    "event": "notification.send.success",
                    "message_id": result.message_id,
                    "retry_count": retry_count,
                },
            )
            return SendResult(success=True, message_id=result.message_id, log_id=log_id)

    async def _record_opt_out(
        self, message: NotificationMessage, error: CustomerOptOutError
    ) -> SendResult:
        self.logger.info(
            f"Notification blocked by customer preference: {error.message}",
            extra={"event": "notification.send.blocked", "reason": error.message},
        )
        log_id = await self.delivery_logger.create(
            DeliveryLogEntry(
                customer_id=message.user_id,
                type=message.type,
                channel=message.channel,
                recipient=message.recipient,
                status=NotificationStatus.FAILED,
                error_message=error.message,
                template_data=dict(message.template_data),
                is_test=message.is_test,
                created_at=self.clock(),
            )
        )
        return SendResult(success=False, log_id=log_id, error=error.message)

    async def _prepare(self, message: NotificationMessage) -> Tuple[Template, RenderedContent]:
        if not await self._is_channel_enabled(message.type, message.channel):
            raise ChannelDisabledError(
                f"Notification type '{message.type}' is disabled for channel '{message.channel.value}'"
            )

        reason = await self._opt_out_reason(message)
        if reason is not None:
            raise CustomerOptOutError(reason)

        template = await self.template_repository.get_template(message.type, message.channel)
        if template is None:
            raise TemplateNotFoundError(
                f"Template not found for notification type '{message.type}' "
                f"and channel '{message.channel.value}'"
            )

        content = self.template_engine.render_content(
            template, message.template_data, self.business_context
        )

        if message.channel == NotificationChannel.EMAIL and not (content.subject and content.html):
            raise NotificationTemplateError(
                f"Email template '{template.id}' must define a subject and an HTML body"
            )
        if message.channel == NotificationChannel.SMS and content.segment_count > 1:
            self.logger.warning(
                f"SMS is {content.character_count} characters ({content.segment_count} segments)",
                extra={"event": "notification.sms.multi_segment"},
            )

        return template, content

    async def _is_channel_enabled(self, notification_type: str, channel: NotificationChannel) -> bool:
        try:
            return bool(
                await self.settings_repository.is_channel_enabled(notification_type, channel)
            )
        except Exception as e:
            self.logger.error(
                f"Settings lookup failed for {notification_type}/{channel.value}, treating as disabled: {e}",
                extra={"event": "notification.settings.error", "error_type": type(e).__name__},
            )
            return False

    async def _opt_out_reason(self, message: NotificationMessage) -> Optional[str]:
        if (
            self.preferences_repository is None
            or not message.user_id
            or is_transactional(message.type)
        ):
            return None

        try:
            preferences = await self.preferences_repository.get_preferences(message.user_id)
        except Exception as e:
            self.logger.warning(
                f"Preferences lookup failed for customer {message.user_id}, using defaults: {e}",
                extra={"event": "notification.preferences.error", "error_type": type(e).__name__},
            )
            preferences = None

        if preferences is None:
            preferences = CustomerPreferences(customer_id=message.user_id)
        return preferences.blocked_reason(message.type, message.channel)

    async def _dispatch(self, message: NotificationMessage, content: RenderedContent) -> ProviderResult:
        if message.channel == NotificationChannel.EMAIL:
            return await self.email_provider.send(
                EmailParams(
                    to=message.recipient,
                    subject=content.subject,
                    html=content.html,
                    text=content.text or None,
                )
            )
        return await self.sms_provider.send(SMSParams(to=message.recipient, body=content.text))

    async def _record_failure(self, log_id: str, previous_count: int, error: Any) -> SendResult:
        """Classify a failure and write it to the log entry.

        ``retry_count`` grows on every failed attempt; ``retry_after`` is set
        only for a transient failure with retries left.
        """
        classified = classify(error)
        retry_count = previous_count + 1
        now = self.clock()

        if classified.transient and not self.retry_policy.has_exceeded(retry_count):
            retry_after: Optional[datetime] = self.retry_policy.next_retry_at(retry_count - 1, now)
            error_message = f"{classified.message} ({classified.kind.value})"
        else:
            retry_after = None
            reason = "Max retries exceeded" if classified.transient else "Non-retryable error"
            error_message = f"{classified.message} ({reason})"

        await self.delivery_logger.update(
            log_id,
            status=NotificationStatus.FAILED,
            error_message=error_message,
            retry_count=retry_count,
            retry_after=retry_after,
        )

        if retry_after is not None:
            self.logger.warning(
                f"Notification failed, retry {retry_count} scheduled at {retry_after.isoformat()}: "
                f"{classified.message}",
                extra={
                    "event": "notification.retry.scheduled",
                    "error_kind": classified.kind.value,
                    "retry_count": retry_count,
                },
            )
        else:
            self.logger.error(
                f"Notification failed permanently: {error_message}",
                extra={
                    "event": "notification.send.failure",
                    "error_kind": classified.kind.value,
                    "retry_count": retry_count,
                },
            )

        return SendResult(
            success=False,
            log_id=log_id,
            error=classified.message,
            retryable=retry_after is not None,
        )

    async def send_batch(self, messages: Sequence[NotificationMessage]) -> List[SendResult]:
        """Send messages concurrently, bounded by ``batch.concurrency``.

        Results keep the input order. A failing item never affects the
        others.
        """
        semaphore = asyncio.Semaphore(self.batch_config.concurrency)

        async def send_one(message: NotificationMessage) -> SendResult:
            async with semaphore:
                return await self.send(message)

        outcomes = await asyncio.gather(
            *(send_one(message) for message in messages), return_exceptions=True
        )

        results = []
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                self.logger.error(
                    f"Unexpected error in batch item: {outcome}",
                    extra={"event": "notification.batch.item_error"},
                )
                results.append(SendResult(success=False, error=str(outcome)))
            else:
                results.append(outcome)

        succeeded = sum(1 for r in results if r.success)
        self.logger.info(
            f"Notification batch complete: {succeeded} succeeded, "
            f"{len(results) - succeeded} failed (total: {len(results)})",
            extra={"event": "notification.batch.completed"},
        )
        return results

    async def render_template(
        self, template_id: str, data: Optional[Mapping[str, Any]] = None
    ) -> RenderedContent:
        """Preview a stored template against data.

        Raises:
            TemplateNotFoundError: If no template has this id
            NotificationTemplateError: If the template is malformed
        """
        template = await self.template_repository.get_template_by_id(template_id)
        if template is None:
            raise TemplateNotFoundError(f"Template not found: {template_id}")
        return self.template_engine.render_content(template, data, self.business_context)

    async def resend(self, log_id: str) -> SendResult:
        """Send a logged notification again as a new lineage."""
        try:
            entry = await self.delivery_logger.get(log_id)
        except Exception as e:
            self.logger.error(f"Failed to load log entry {log_id} for resend: {e}", exc_info=True)
            return SendResult(success=False, log_id=log_id, error=str(e))

        if entry is None:
            return SendResult(success=False, log_id=log_id, error=f"Log entry {log_id} not found")

        self.logger.info(
            f"Resending notification from log entry {log_id}",
            extra={"event": "notification.resend", "original_log_id": log_id},
        )
        return await self.send(entry.to_message())

    async def process_retries(self) -> List[SendResult]:
        """Run one retry sweep."""
        if self._retry_scheduler is None:
            from notifier.scheduler.retry import RetryScheduler

            self._retry_scheduler = RetryScheduler(
                service=self,
                delivery_logger=self.delivery_logger,
                retry_config=self.retry_config,
                batch_size=self.batch_config.retry_batch_size,
                clock=self.clock,
            )
        return await self._retry_scheduler.process_retries()

    async def get_metrics(self, start: datetime, end: datetime) -> NotificationMetrics:
        """Delivery statistics for log entries created in ``[start, end)``."""
        return await self.delivery_logger.get_stats(start, end)
