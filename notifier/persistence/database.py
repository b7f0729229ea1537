"""Database connection and session management.

This module provides database initialization, async engine creation, and
session lifecycle management for the persistence layer. SQLite is accessed
through aiosqlite so that repository calls are suspension points of the
asyncio event loop.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from notifier.logging import get_logger

from .exceptions import DatabaseConnectionError

SQLITE_BUSY_TIMEOUT_MS = 5000

# Module-level engine and session factory
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None

logger = get_logger(__name__, component="database")


async def init_database(database_url: str) -> None:
    """Initialize the database engine and create the schema if needed.

    Call once during application startup. It:
    1. Creates the async SQLAlchemy engine
    2. Configures SQLite pragmas (WAL, busy timeout, foreign keys)
    3. Validates the connection
    4. Creates tables that do not exist yet

    Args:
        database_url: Async database URL (e.g., "sqlite+aiosqlite:///./data/notifications.db")

    Raises:
        DatabaseConnectionError: If database initialization fails
    """
    global _engine, _session_factory

    try:
        logger.info(
            "Initializing database",
            extra={
                "event": "database.initializing",
                "database_url": _redact_url(database_url),
            },
        )

        if not database_url or not isinstance(database_url, str):
            raise DatabaseConnectionError("Database URL must be a non-empty string")

        url = make_url(database_url)
        is_sqlite = url.get_backend_name() == "sqlite"

        # For SQLite file databases, ensure parent directory exists
        if is_sqlite and url.database and url.database != ":memory:":
            db_file = Path(url.database)
            if not db_file.parent.exists():
                logger.info(f"Creating database directory: {db_file.parent}")
                db_file.parent.mkdir(parents=True, exist_ok=True)

        _engine = create_async_engine(
            database_url,
            echo=False,
            poolclass=NullPool if is_sqlite else None,
            future=True,
        )

        if is_sqlite:
            _configure_sqlite(_engine)

        await _validate_connection(_engine)

        _session_factory = async_sessionmaker(
            _engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        from .schema import create_schema

        await create_schema(_engine)

        logger.info(
            "Database initialized successfully",
            extra={
                "event": "database.initialised",
                "database_url": _redact_url(database_url),
            },
        )

    except DatabaseConnectionError:
        raise
    except Exception as e:
        error_msg = f"Failed to initialize database: {e}"
        logger.error(error_msg, exc_info=True)
        raise DatabaseConnectionError(error_msg) from e


def _configure_sqlite(engine: AsyncEngine) -> None:
    """Enable SQLite pragmas on every new connection."""

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
        cursor.close()


async def _validate_connection(engine: AsyncEngine) -> None:
    try:
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            result.fetchone()
        logger.debug("Database connection validated successfully")
    except Exception as e:
        raise DatabaseConnectionError(f"Failed to validate database connection: {e}") from e


def _redact_url(url: str) -> str:
    """Redact the password from a database URL for logging."""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except Exception:
        return "<invalid url>"


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Provide a database session with automatic transaction management.

    Commits on successful exit, rolls back on exception, and always closes
    the session.

    Raises:
        DatabaseConnectionError: If database not initialized

    Example:
        >>> async with get_session() as session:
        ...     await session.execute(...)
    """
    if _session_factory is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_session()"
        )

    session = _session_factory()
    try:
        yield session
        await session.commit()
        logger.debug(
            "Database session committed",
            extra={"event": "database.session.committed"},
        )
    except Exception as e:
        await session.rollback()
        logger.warning(
            f"Database session rolled back due to exception: {e}",
            extra={
                "event": "database.session.rolled_back",
                "error_type": type(e).__name__,
            },
        )
        raise
    finally:
        await session.close()


def get_engine() -> AsyncEngine:
    """Get the database engine instance.

    Raises:
        DatabaseConnectionError: If database not initialized
    """
    if _engine is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_engine()"
        )

    return _engine


async def close_database() -> None:
    """Dispose of the engine. Call during application shutdown."""
    global _engine, _session_factory

    if _engine is not None:
        logger.info("Closing database connections")
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connections closed")
