"""Collaborator contracts for the notification service.

The service depends only on these protocols; ``notifier.persistence`` and
``notifier.providers`` supply the concrete implementations.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from notifier.domain.models import (
    CustomerPreferences,
    DeliveryLogEntry,
    EmailParams,
    NotificationChannel,
    NotificationMetrics,
    ProviderResult,
    SMSParams,
    Template,
)


@runtime_checkable
class TemplateRepository(Protocol):
    async def get_template(
        self, notification_type: str, channel: NotificationChannel
    ) -> Optional[Template]:
        """Active template for a type/channel pair, or None."""
        ...

    async def get_template_by_id(self, template_id: str) -> Optional[Template]:
        ...


@runtime_checkable
class NotificationSettingsRepository(Protocol):
    async def is_channel_enabled(
        self, notification_type: str, channel: NotificationChannel
    ) -> bool:
        ...


@runtime_checkable
class CustomerPreferencesRepository(Protocol):
    async def get_preferences(self, customer_id: str) -> Optional[CustomerPreferences]:
        """Stored preferences for a customer, or None when there are none."""
        ...


@runtime_checkable
class DeliveryLogger(Protocol):
    """Persistence for the delivery log."""

    async def create(self, entry: DeliveryLogEntry) -> str:
        """Insert an entry and return its id."""
        ...

    async def update(self, log_id: str, **changes: Any) -> None:
        ...

    async def get(self, log_id: str) -> Optional[DeliveryLogEntry]:
        ...

    async def list_retry_eligible(
        self, now: datetime, max_retries: int, limit: int
    ) -> List[DeliveryLogEntry]:
        """Failed, non-test entries due for retry, oldest ``retry_after`` first."""
        ...

    async def claim(self, log_id: str) -> bool:
        """Atomically move a scheduled failure back to pending.

        Returns False when another worker already claimed the entry.
        """
        ...

    async def query(
        self, filters: Optional[Dict[str, Any]] = None, limit: int = 100, offset: int = 0
    ) -> List[DeliveryLogEntry]:
        ...

    async def get_stats(self, start: datetime, end: datetime) -> NotificationMetrics:
        ...


@runtime_checkable
class EmailProvider(Protocol):
    async def send(self, params: EmailParams) -> ProviderResult:
        ...


@runtime_checkable
class SMSProvider(Protocol):
    async def send(self, params: SMSParams) -> ProviderResult:
        ...
