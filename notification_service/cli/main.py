"""Main CLI entry point."""

import click

from notification_service import __version__
from notification_service.cli.commands import cache, database, notifications
from notification_service.infra.logging import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="notification-service")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Notification engine management CLI.

    \b
    Command Groups:
      db             Database initialization
      cache          Redis connectivity and cache invalidation
      notifications  Dispatch, delivery status and recipient reads
    """
    ctx.ensure_object(dict)
    setup_logging()


cli.add_command(database.db)
cli.add_command(cache.cache)
cli.add_command(notifications.notifications)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
