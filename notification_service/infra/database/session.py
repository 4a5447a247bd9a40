"""Async database engine and session management.

The engine and session factory are created lazily on first use so importing
this module never opens a connection, and tests can point ``DB_DSN`` at a
throwaway SQLite file before anything touches the database.
"""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from notification_service.core.database import Base
from notification_service.core.settings import get_app_settings, get_db_settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Return the process-wide async engine, creating it on first call."""
    global _engine
    if _engine is None:
        db_settings = get_db_settings()
        kwargs = db_settings.engine_kwargs()
        kwargs["echo"] = bool(kwargs.get("echo")) or get_app_settings().debug
        _engine = create_async_engine(db_settings.get_sqlalchemy_url(), **kwargs)
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Return the session factory bound to :func:`get_engine`."""
    global _sessionmaker
    if _sessionmaker is None:
        _sessionmaker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _sessionmaker


async def init_database(*, create_tables: bool = True) -> None:
    """Verify connectivity and create missing tables.

    Raises:
        Exception: Whatever the driver raised when the database is unreachable.
    """
    engine = get_engine()
    logger.info("Initializing database connection", extra={"dialect": engine.dialect.name})
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if create_tables:
                await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        logger.error("Failed to connect to database", extra={"error": str(e)})
        raise
    logger.info("Database connection established successfully")


async def close_database() -> None:
    """Dispose of the engine and forget the session factory (application shutdown)."""
    global _engine, _sessionmaker
    if _engine is None:
        return
    logger.info("Closing database connection")
    try:
        await _engine.dispose()
        logger.info("Database connection closed successfully")
    except Exception as e:
        logger.exception("Error closing database connection", extra={"error": str(e)})
    finally:
        _engine = None
        _sessionmaker = None
