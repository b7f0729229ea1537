"""Persistence layer for the delivery log, templates and settings.

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None  (async)
    - get_session() -> AsyncContextManager[AsyncSession]
    - close_database() -> None  (async)
    - get_engine() -> AsyncEngine

    # Repository classes
    - SqlDeliveryLogger: the notifications_log table
    - SqlTemplateRepository: the notification_templates table
    - SqlNotificationSettingsRepository: the notification_settings table
    - SqlCustomerPreferencesRepository: the customer_preferences table
    - seed_defaults: load default templates and settings from YAML

    # Exceptions
    - PersistenceError: Base exception for all persistence errors
    - DatabaseConnectionError: Database connection/initialization failures
    - RecordNotFoundError: Required record not found
    - DataIntegrityError: Constraint violations

Example usage:
    >>> from notifier.persistence import init_database, SqlDeliveryLogger
    >>> await init_database("sqlite+aiosqlite:///./data/notifications.db")
    >>> delivery_logger = SqlDeliveryLogger()
    >>> entry = await delivery_logger.get("0d6f...")
"""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)
from .repositories import (
    SqlCustomerPreferencesRepository,
    SqlDeliveryLogger,
    SqlNotificationSettingsRepository,
    SqlTemplateRepository,
)
from .seed import DEFAULT_TEMPLATES_PATH, seed_defaults

__all__ = [
    # Database functions
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    # Repositories
    "SqlDeliveryLogger",
    "SqlTemplateRepository",
    "SqlNotificationSettingsRepository",
    "SqlCustomerPreferencesRepository",
    "seed_defaults",
    "DEFAULT_TEMPLATES_PATH",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
