"""Database engine and session lifecycle."""

from __future__ import annotations

from notification_service.infra.database.session import (
    close_database,
    get_engine,
    get_sessionmaker,
    init_database,
)

__all__ = [
    "close_database",
    "get_engine",
    "get_sessionmaker",
    "init_database",
]
