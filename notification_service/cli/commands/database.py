"""Database commands."""

import sys

import click
from sqlalchemy.exc import SQLAlchemyError

from notification_service.cli.utils import coro, error, info, success
from notification_service.core.settings import get_db_settings
from notification_service.infra.database import close_database, init_database


@click.group(name="db")
def db() -> None:
    """Database management commands."""


@db.command()
@coro
async def init() -> None:
    """Verify connectivity and create the delivery record tables."""
    # Register models on Base.metadata before create_all
    import notification_service.features.notifications.models  # noqa: F401

    db_settings = get_db_settings()
    target = "sqlite" if db_settings.is_sqlite else f"{db_settings.host}/{db_settings.name}"
    info(f"Initializing database ({target})...")
    try:
        await init_database(create_tables=True)
        success("Database initialized")
    except SQLAlchemyError as e:
        error(f"Database initialization failed: {e}")
        sys.exit(1)
    finally:
        await close_database()
