"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError so callers can
catch every database failure with a single except clause.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""


class DatabaseConnectionError(PersistenceError):
    """Raised when database connection or initialization fails.

    Examples:
    - Invalid database URL format
    - Database file not accessible
    - Async SQLite driver (aiosqlite) not installed
    """


class RecordNotFoundError(PersistenceError):
    """Raised when a required database record is not found.

    Optional lookups return None instead of raising this.
    """


class DataIntegrityError(PersistenceError):
    """Raised when a database constraint is violated."""
