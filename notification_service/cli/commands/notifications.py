"""Notification commands: dispatch, delivery status and recipient reads."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import json
import sys

import click

from notification_service.cli.utils import coro, error, header, info, success, warning
from notification_service.core.exceptions import AppException
from notification_service.features.notifications import (
    DeliveryStatus,
    HistoryQuery,
    NotificationAggregate,
    NotificationChannel,
    NotificationEngine,
    NotificationPriority,
    NotificationType,
    build_notification_engine,
)
from notification_service.infra.cache import start_cache, stop_cache
from notification_service.infra.database import close_database, get_sessionmaker


@asynccontextmanager
async def engine_session() -> AsyncIterator[NotificationEngine]:
    """Wire an engine against the configured database and Redis for one command."""
    backend = await start_cache()
    engine = build_notification_engine(session_factory=get_sessionmaker(), cache_backend=backend)
    try:
        yield engine
    finally:
        await engine.aclose()
        await stop_cache()
        await close_database()


def _choice(enum_cls: type) -> click.Choice:
    return click.Choice([member.value for member in enum_cls])


@click.group(name="notifications")
def notifications() -> None:
    """Dispatch notifications and inspect delivery state."""


@notifications.command()
@click.option("--id", "notification_id", required=True, help="Notification identifier")
@click.option("--title", required=True)
@click.option("--body", default="")
@click.option("--type", "type_", type=_choice(NotificationType), default=NotificationType.SYSTEM.value)
@click.option("--priority", type=_choice(NotificationPriority), default=NotificationPriority.NORMAL.value)
@click.option("--channel", type=_choice(NotificationChannel), default=NotificationChannel.IN_APP.value)
@click.option("--data", default="{}", help="JSON payload data")
@click.option("--retry/--no-retry", default=True, help="Batch-level retries for failed recipients")
@click.argument("recipients", nargs=-1, required=True)
@coro
async def send(
    notification_id: str,
    title: str,
    body: str,
    type_: str,
    priority: str,
    channel: str,
    data: str,
    retry: bool,
    recipients: tuple[str, ...],
) -> None:
    """Send a notification to RECIPIENTS on one channel."""
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        error(f"--data is not valid JSON: {e}")
        sys.exit(2)

    notification = NotificationAggregate(
        id=notification_id,
        title=title,
        body=body,
        type=NotificationType(type_),
        priority=NotificationPriority(priority),
        channels=[NotificationChannel(channel)],
        user_ids=list(recipients),
        data=payload,
    )

    async with engine_session() as engine:
        dispatch = engine.dispatcher.send_notification_with_retry if retry else engine.dispatcher.send_notifications
        try:
            results = await dispatch(notification, list(recipients), NotificationChannel(channel))
        except AppException as e:
            error(f"{e.title}: {e.detail}")
            sys.exit(1)

    header(f"Dispatch results for {notification_id}")
    for result in results:
        if result.success:
            success(f"{result.user_id}: sent (delivery {result.delivery_id})")
        else:
            warning(f"{result.user_id}: failed [{result.error_code}]", result.error_message or "no error message")
    if not all(result.success for result in results):
        sys.exit(1)


@notifications.command(name="delivery-status")
@click.argument("delivery_id")
@click.argument("status", type=click.Choice([DeliveryStatus.DELIVERED.value, DeliveryStatus.FAILED.value]))
@click.option("--error-message", default=None)
@coro
async def delivery_status(delivery_id: str, status: str, error_message: str | None) -> None:
    """Apply a provider delivery outcome to every record of DELIVERY_ID."""
    async with engine_session() as engine:
        updated = await engine.dispatcher.update_delivery_status(delivery_id, DeliveryStatus(status), error_message)
    if updated:
        success(f"Updated {updated} record(s) to {status}")
    else:
        info("No records changed")


@notifications.command(name="retry")
@click.argument("record_id")
@coro
async def retry_record(record_id: str) -> None:
    """Dispatch the failed delivery record RECORD_ID again."""
    async with engine_session() as engine:
        try:
            result = await engine.dispatcher.retry_failed_delivery(record_id)
        except AppException as e:
            error(f"{e.title}: {e.detail}")
            sys.exit(1)
    if result.success:
        success(f"Record {record_id} sent (delivery {result.delivery_id})")
    else:
        warning(f"Record {record_id} failed again [{result.error_code}] after {result.retry_count} retries")


@notifications.command()
@click.argument("notification_id")
@coro
async def stats(notification_id: str) -> None:
    """Per-status delivery counts for NOTIFICATION_ID."""
    async with engine_session() as engine:
        counts = await engine.dispatcher.get_notification_stats(notification_id)
    header(f"Delivery stats for {notification_id}")
    for status, count in counts.model_dump().items():
        click.echo(f"  {status:<10} {count}")


@notifications.command()
@click.argument("user_id")
@click.option("--page", default=1, show_default=True)
@click.option("--limit", default=20, show_default=True)
@click.option("--status", type=_choice(DeliveryStatus), default=None)
@click.option("--channel", type=_choice(NotificationChannel), default=None)
@coro
async def history(user_id: str, page: int, limit: int, status: str | None, channel: str | None) -> None:
    """List the notification history of USER_ID."""
    query = HistoryQuery(
        page=page,
        limit=limit,
        status=DeliveryStatus(status) if status else None,
        channel=NotificationChannel(channel) if channel else None,
    )
    async with engine_session() as engine:
        result = await engine.queries.get_notification_history(user_id, query)

    pagination = result.pagination
    header(f"Page {pagination.page}/{max(pagination.total_pages, 1)} ({pagination.total} total)")
    for record in result.notifications:
        marker = "•" if record.is_unread else " "
        click.echo(f" {marker} {record.id}  {record.status.value:<9} {record.channel.value:<6} {record.title}")


@notifications.command()
@click.argument("user_id")
@coro
async def unread(user_id: str) -> None:
    """Show the unread count of USER_ID."""
    async with engine_session() as engine:
        count = await engine.queries.get_unread_count(user_id)
    click.echo(count.count)


@notifications.command(name="mark-read")
@click.argument("user_id")
@click.argument("notification_ids", nargs=-1)
@coro
async def mark_read(user_id: str, notification_ids: tuple[str, ...]) -> None:
    """Mark NOTIFICATION_IDS (or everything unread) of USER_ID as read."""
    async with engine_session() as engine:
        try:
            if notification_ids:
                result = await engine.commands.bulk_mark_as_read(user_id, list(notification_ids))
            else:
                result = await engine.commands.mark_all_as_read(user_id)
        except AppException as e:
            error(f"{e.title}: {e.detail}")
            sys.exit(1)
    details = (f"read_at {result.read_at.isoformat()}",) if result.read_at else ()
    success(f"Marked {result.updated_count} notification(s) as read", *details)
