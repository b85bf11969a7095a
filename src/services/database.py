"""
Database engine and session factory setup for the Cake Order Tracker.

This module provides:
- Database engine creation and configuration
- Session factory creation
- Database initialization (create tables)
- WAL mode configuration
- Foreign key enforcement

There is no module-level engine: each PersistenceGateway owns its engine
and session factory, so tests and tools can run isolated stores side by side.
"""

from typing import Optional
import logging

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..models.base import Base
from ..utils.constants import DEFAULT_DB_TIMEOUT

logger = logging.getLogger(__name__)

IN_MEMORY_URL = "sqlite:///:memory:"


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """
    Set SQLite pragmas on connection.

    This event listener is called for every new database connection.
    It enables foreign key constraints and sets WAL mode.
    """
    cursor = dbapi_connection.cursor()

    # Enable foreign key constraints (critical for referential integrity)
    cursor.execute("PRAGMA foreign_keys=ON")

    # Set WAL (Write-Ahead Logging) mode for better concurrency
    cursor.execute("PRAGMA journal_mode=WAL")

    # Set synchronous mode for better performance while maintaining safety
    cursor.execute("PRAGMA synchronous=NORMAL")

    cursor.close()


def create_database_engine(
    database_url: str = IN_MEMORY_URL,
    echo: bool = False,
    timeout: int = DEFAULT_DB_TIMEOUT,
) -> Engine:
    """
    Create and configure the database engine.

    Args:
        database_url: SQLAlchemy database URL (defaults to in-memory SQLite)
        echo: If True, log all SQL statements (useful for debugging)
        timeout: SQLite busy timeout in seconds for file databases

    Returns:
        Configured SQLAlchemy Engine
    """
    logger.info(f"Creating database engine: {database_url}")

    if ":memory:" in database_url or "mode=memory" in database_url:
        # In-memory databases live as long as their single connection
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": timeout},
        )

    return engine


def init_database(engine: Engine) -> None:
    """
    Initialize the database by creating all tables.

    Safe to call multiple times - existing tables won't be recreated.

    Args:
        engine: Engine to create tables on
    """
    logger.info("Initializing database tables")

    # Import all models to ensure they're registered with Base
    from .. import models  # noqa: F401

    Base.metadata.create_all(engine)

    logger.info("Database tables initialized successfully")


def create_session_factory(engine: Engine) -> sessionmaker:
    """
    Create a session factory bound to an engine.

    Objects stay usable after commit (expire_on_commit=False) so services
    can hand them back to callers.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)


def verify_database(engine: Engine) -> bool:
    """
    Verify that the database is accessible and has tables.

    Returns:
        True if database is valid, False otherwise
    """
    try:
        inspector = inspect(engine)
        tables = inspector.get_table_names()

        expected_tables = ["orders", "baking_tasks", "delivery_trips"]
        return all(table in tables for table in expected_tables)
    except Exception as e:
        logger.error(f"Database verification failed: {e}")
        return False


def dispose_engine(engine: Optional[Engine]) -> None:
    """Close all connections held by an engine."""
    if engine is not None:
        engine.dispose()
        logger.info("Database connections closed")
