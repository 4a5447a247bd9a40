"""Dispatch orchestration: provider call, delivery records, cache and events.

Write path for one batch:

    CircuitBreakerRegistry.execute -> RetryExecutor.execute_with_retry
        -> WorkflowProvider.trigger_workflow
    DeliveryRecordStore (one record per recipient, written concurrently)
    NotificationCache invalidation + domain events

Provider failures are recorded as failed delivery records and returned as
data. Only persistence failures are raised, after every write has settled.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
import logging
import time
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import httpx
from opentelemetry import trace

from notification_service.core.exceptions import CircuitBreakerOpenException
from notification_service.core.settings import NotificationSettings, get_notification_settings
from notification_service.features.notifications.enums import DeliveryStatus, NotificationChannel
from notification_service.features.notifications.events import (
    DeliveryStatusUpdated,
    NotificationFailed,
    NotificationSent,
)
from notification_service.features.notifications.exceptions import (
    DeliveryPersistenceError,
    InvalidStatusTransitionError,
    NotificationNotFoundException,
    RetryLimitExceededError,
)
from notification_service.features.notifications.metrics import (
    notification_batch_retries_total,
    notification_delivery_status_total,
    notification_dispatch_duration_seconds,
    notification_dispatched_total,
    notification_persistence_errors_total,
)
from notification_service.features.notifications.schemas import (
    DeliveryRecord,
    DeliveryResult,
    NotificationAggregate,
    NotificationDeliveryStats,
)
from notification_service.infra.logging import log_context
from notification_service.infra.resilience import CircuitOpenError
from notification_service.utils.retry import RetryExecutor, RetryOptions, classify_error

if TYPE_CHECKING:
    from collections.abc import Iterable

    from notification_service.core.events import EventBus
    from notification_service.features.notifications.cache import NotificationCache
    from notification_service.features.notifications.schemas import DeliveryWebhookPayload
    from notification_service.features.notifications.store import DeliveryRecordStore
    from notification_service.infra.external.workflow_provider import WorkflowProvider
    from notification_service.infra.resilience import CircuitBreakerRegistry

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

UNKNOWN_ERROR = "UNKNOWN_ERROR"
TIMEOUT_ERROR = "TIMEOUT"


@dataclass(frozen=True, slots=True)
class _PriorAttempt:
    """Failed record reused when a recipient is dispatched again."""

    record_id: str
    retry_count: int


def workflow_id_for(notification: NotificationAggregate, channel: NotificationChannel) -> str:
    return f"{notification.type}-{channel}"


def build_payload(notification: NotificationAggregate) -> dict[str, Any]:
    """Provider payload, identical for every recipient of a batch."""
    return {
        "title": notification.title,
        "body": notification.body,
        "type": notification.type.value,
        "priority": notification.priority.value,
        "data": notification.data,
        "timestamp": datetime.now(UTC).isoformat(),
        "notification_id": notification.id,
    }


def error_code_for(error: BaseException) -> str:
    """Machine-readable code stored on failed delivery records."""
    if isinstance(error, CircuitOpenError):
        return CircuitOpenError.code
    if isinstance(error, TimeoutError | httpx.TimeoutException):
        return TIMEOUT_ERROR
    if isinstance(error, httpx.HTTPStatusError):
        return f"HTTP_{error.response.status_code}"
    code = getattr(error, "code", None)
    if isinstance(code, str) and code:
        return code
    return UNKNOWN_ERROR


def _unique(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))


class DispatchOrchestrator:
    """Fan a notification out to recipients and track the outcome per recipient.

    Example:
        orchestrator = DispatchOrchestrator(
            provider=provider_client,
            store=store,
            cache=notification_cache,
            circuit_breakers=CircuitBreakerRegistry(),
            retry_executor=RetryExecutor(RetryOptions.from_settings(settings)),
            event_bus=bus,
        )
        results = await orchestrator.send_notifications(notification, ["u1", "u2"], NotificationChannel.PUSH)
    """

    def __init__(
        self,
        *,
        provider: WorkflowProvider,
        store: DeliveryRecordStore,
        cache: NotificationCache,
        circuit_breakers: CircuitBreakerRegistry,
        retry_executor: RetryExecutor,
        event_bus: EventBus | None = None,
        settings: NotificationSettings | None = None,
    ) -> None:
        self.provider = provider
        self.store = store
        self.cache = cache
        self.circuit_breakers = circuit_breakers
        self.retry_executor = retry_executor
        self.event_bus = event_bus
        self.settings = settings or get_notification_settings()
        self._persistence_options = RetryOptions(
            max_retries=self.settings.persistence_max_retries,
            base_delay=0.1,
            max_delay=1.0,
        )

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def send_notifications(
        self,
        notification: NotificationAggregate,
        recipient_ids: list[str],
        channel: NotificationChannel,
    ) -> list[DeliveryResult]:
        """Dispatch one batch; one result (and one record) per distinct recipient.

        Raises:
            DeliveryPersistenceError: Some delivery records could not be written.
        """
        return await self._dispatch(notification, _unique(recipient_ids), channel, {})

    async def send_notification_with_retry(
        self,
        notification: NotificationAggregate,
        recipient_ids: list[str],
        channel: NotificationChannel,
    ) -> list[DeliveryResult]:
        """Dispatch with batch-level retries for the recipients that failed.

        Up to ``batch_max_attempts`` attempts separated by ``batch_retry_delays``.
        Recipients that already succeeded are never sent again; a failed
        recipient's record is updated in place with an incremented retry count.
        Stops early when no failure is worth retrying (permanent error, open circuit).
        """
        recipients = _unique(recipient_ids)
        results: dict[str, DeliveryResult] = {}
        pending = recipients
        prior: dict[str, _PriorAttempt] = {}
        max_attempts = self.settings.batch_max_attempts

        for attempt in range(max_attempts):
            for result in await self._dispatch(notification, pending, channel, prior):
                results[result.user_id] = result

            failed = [results[user_id] for user_id in pending if not results[user_id].success]
            if not failed:
                break
            if attempt == max_attempts - 1:
                logger.error(
                    f"All {max_attempts} dispatch attempts failed for {len(failed)} recipient(s)",
                    extra={"notification_id": notification.id, "channel": channel.value, "failed": len(failed)},
                )
                break
            if not any(result.retryable for result in failed):
                logger.warning(
                    "Dispatch failures are not retryable, giving up",
                    extra={"notification_id": notification.id, "error_code": failed[0].error_code},
                )
                break

            delay = self.settings.batch_delay(attempt)
            notification_batch_retries_total.labels(channel=channel.value).inc()
            logger.warning(
                f"Dispatch attempt {attempt + 1} failed for {len(failed)} recipient(s), retrying in {delay}s",
                extra={"notification_id": notification.id, "channel": channel.value, "delay": delay},
            )
            await asyncio.sleep(delay)

            pending = [result.user_id for result in failed]
            prior = {
                result.user_id: _PriorAttempt(result.record_id, result.retry_count)
                for result in failed
                if result.record_id is not None
            }

        return [results[user_id] for user_id in recipients]

    async def _dispatch(
        self,
        notification: NotificationAggregate,
        recipients: list[str],
        channel: NotificationChannel,
        prior: dict[str, _PriorAttempt],
    ) -> list[DeliveryResult]:
        if not recipients:
            return []

        workflow_id = workflow_id_for(notification, channel)
        started = time.perf_counter()

        with (
            log_context(notification_id=notification.id, channel=channel.value),
            tracer.start_as_current_span(
                "notification.dispatch",
                attributes={
                    "notification.id": notification.id,
                    "notification.channel": channel.value,
                    "notification.workflow_id": workflow_id,
                    "notification.recipients": len(recipients),
                },
            ) as span,
        ):
            logger.info(f"Sending {channel.value} notifications to {len(recipients)} recipient(s)")
            try:
                delivery_id = await self._trigger(workflow_id, recipients, build_payload(notification))
            except Exception as error:
                span.record_exception(error)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(error)))
                code = error_code_for(error)
                retryable = classify_error(error).is_retryable and not isinstance(error, CircuitOpenError)
                logger.error(
                    f"Failed to send {channel.value} notifications: {error}",
                    extra={"workflow_id": workflow_id, "error_code": code, "error_type": type(error).__name__},
                )
                records = [
                    self._failed_record(notification, user_id, channel, str(error), code, prior.get(user_id))
                    for user_id in recipients
                ]
                results = [
                    DeliveryResult(
                        user_id=record.user_id,
                        success=False,
                        record_id=record.id,
                        error_message=record.error_message,
                        error_code=record.error_code,
                        retry_count=record.retry_count,
                        retryable=retryable,
                    )
                    for record in records
                ]
                await self._persist(records)
                notification_dispatched_total.labels(channel=channel.value, outcome="failed").inc(len(records))
                self._publish(
                    NotificationFailed(
                        notification_id=notification.id,
                        channel=channel.value,
                        user_ids=recipients,
                        error_code=code,
                        error_message=str(error),
                    )
                )
            else:
                sent_at = datetime.now(UTC)
                records = [
                    self._sent_record(notification, user_id, channel, delivery_id, sent_at, prior.get(user_id))
                    for user_id in recipients
                ]
                results = [
                    DeliveryResult(
                        user_id=record.user_id,
                        success=True,
                        record_id=record.id,
                        delivery_id=delivery_id,
                        retry_count=record.retry_count,
                    )
                    for record in records
                ]
                await self._persist(records)
                notification_dispatched_total.labels(channel=channel.value, outcome="sent").inc(len(records))
                span.set_attribute("notification.delivery_id", delivery_id)
                logger.info(
                    f"Successfully sent {channel.value} notifications",
                    extra={"delivery_id": delivery_id, "recipients": len(recipients)},
                )
                self._publish(
                    NotificationSent(
                        notification_id=notification.id,
                        delivery_id=delivery_id,
                        channel=channel.value,
                        user_ids=recipients,
                    )
                )
            finally:
                notification_dispatch_duration_seconds.labels(channel=channel.value).observe(
                    time.perf_counter() - started
                )

        return results

    async def _trigger(self, workflow_id: str, recipients: list[str], payload: dict[str, Any]) -> str:
        """Provider call through the circuit breaker, retried inside it.

        ``circuit_timeout`` bounds each provider call, not the retry loop.
        """
        return await self.circuit_breakers.execute(
            self.settings.circuit_key,
            lambda: self.retry_executor.execute_with_retry(
                lambda: asyncio.wait_for(
                    self.provider.trigger_workflow(workflow_id, recipients, payload),
                    timeout=self.settings.circuit_timeout,
                ),
                operation_name="trigger_workflow",
            ),
            failure_threshold=self.settings.circuit_failure_threshold,
            timeout=None,
            reset_timeout=self.settings.circuit_reset_timeout,
        )

    @staticmethod
    def _base_record(
        notification: NotificationAggregate,
        user_id: str,
        channel: NotificationChannel,
        prior: _PriorAttempt | None,
    ) -> dict[str, Any]:
        return {
            "id": prior.record_id if prior else str(uuid4()),
            "user_id": user_id,
            "notification_id": notification.id,
            "title": notification.title,
            "body": notification.body,
            "type": notification.type,
            "priority": notification.priority,
            "channel": channel,
            "data": notification.data,
            "retry_count": prior.retry_count + 1 if prior else 0,
        }

    def _sent_record(
        self,
        notification: NotificationAggregate,
        user_id: str,
        channel: NotificationChannel,
        delivery_id: str,
        sent_at: datetime,
        prior: _PriorAttempt | None,
    ) -> DeliveryRecord:
        return DeliveryRecord(
            **self._base_record(notification, user_id, channel, prior),
            status=DeliveryStatus.SENT,
            sent_at=sent_at,
            delivery_id=delivery_id,
        )

    def _failed_record(
        self,
        notification: NotificationAggregate,
        user_id: str,
        channel: NotificationChannel,
        error_message: str,
        error_code: str,
        prior: _PriorAttempt | None,
    ) -> DeliveryRecord:
        return DeliveryRecord(
            **self._base_record(notification, user_id, channel, prior),
            status=DeliveryStatus.FAILED,
            error_message=error_message,
            error_code=error_code,
        )

    async def _persist(self, records: list[DeliveryRecord]) -> None:
        """Write every record concurrently, then invalidate caches for those written.

        Raises:
            DeliveryPersistenceError: After all writes settled, if any failed.
        """

        async def _save(record: DeliveryRecord) -> DeliveryRecord:
            return await self.retry_executor.execute_with_retry(
                lambda: self.store.save_user_notification(record),
                self._persistence_options,
                operation_name="save_user_notification",
            )

        outcomes = await asyncio.gather(*(_save(record) for record in records), return_exceptions=True)

        failed_users: list[str] = []
        errors: list[BaseException] = []
        for record, outcome in zip(records, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                failed_users.append(record.user_id)
                errors.append(outcome)
                logger.error(
                    "Failed to persist delivery record",
                    extra={"record_id": record.id, "user_id": record.user_id, "error": str(outcome)},
                    exc_info=outcome,
                )

        written = [record.user_id for record in records if record.user_id not in failed_users]
        await self._invalidate(written)

        if errors:
            notification_persistence_errors_total.inc(len(errors))
            raise DeliveryPersistenceError(failed_users, errors)

    async def _invalidate(self, user_ids: Iterable[str]) -> None:
        await asyncio.gather(*(self.cache.invalidate_all(user_id) for user_id in _unique(user_ids)))

    def _publish(self, event: Any) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(event)

    # ------------------------------------------------------------------
    # Delivery status
    # ------------------------------------------------------------------

    async def update_delivery_status(
        self,
        delivery_id: str,
        status: DeliveryStatus,
        error_message: str | None = None,
    ) -> int:
        """Apply a provider delivery outcome to every record of ``delivery_id``.

        Returns:
            Number of records that changed; records that already moved past
            the target (for example already read) are skipped.
        """
        status = DeliveryStatus(status)
        if status not in (DeliveryStatus.DELIVERED, DeliveryStatus.FAILED):
            msg = f"Delivery status must be 'delivered' or 'failed', got '{status}'"
            raise ValueError(msg)

        extra: dict[str, Any] = {}
        if status is DeliveryStatus.DELIVERED:
            extra["delivered_at"] = datetime.now(UTC)
        elif error_message:
            extra["error_message"] = error_message

        with log_context(delivery_id=delivery_id):
            logger.info(f"Updating delivery status: {delivery_id} -> {status.value}")
            changed = await self.store.update_status_by_delivery_id(delivery_id, status, extra)

            if changed:
                user_ids = _unique(record.user_id for record in changed)
                await self._invalidate(user_ids)
                notification_delivery_status_total.labels(status=status.value).inc(len(changed))
                self._publish(
                    DeliveryStatusUpdated(
                        delivery_id=delivery_id,
                        status=status.value,
                        updated_count=len(changed),
                        user_ids=user_ids,
                    )
                )
        return len(changed)

    async def handle_delivery_webhook(self, payload: DeliveryWebhookPayload) -> int:
        """Route a provider delivery callback to :meth:`update_delivery_status`."""
        return await self.update_delivery_status(payload.delivery_id, payload.status, payload.error_message)

    # ------------------------------------------------------------------
    # Supplementary operations
    # ------------------------------------------------------------------

    async def get_notification_stats(self, notification_id: str) -> NotificationDeliveryStats:
        return await self.store.get_notification_delivery_stats(notification_id)

    async def retry_failed_delivery(self, record_id: str) -> DeliveryResult:
        """Dispatch a single failed delivery record again.

        Raises:
            NotificationNotFoundException: Unknown record.
            InvalidStatusTransitionError: The record is not in ``failed``.
            RetryLimitExceededError: ``max_delivery_retries`` already used.
            CircuitBreakerOpenException: The provider circuit is open; no retry consumed.
        """
        record = await self.store.get_user_notification(record_id)
        if record is None:
            raise NotificationNotFoundException(record_id)
        if record.status is not DeliveryStatus.FAILED:
            raise InvalidStatusTransitionError(record.id, record.status, DeliveryStatus.SENT)
        if record.retry_count >= self.settings.max_delivery_retries:
            raise RetryLimitExceededError(record.id, record.retry_count, self.settings.max_delivery_retries)
        if self.circuit_breakers.is_circuit_open(self.settings.circuit_key):
            raise CircuitBreakerOpenException(
                detail=f"Circuit '{self.settings.circuit_key}' is open",
                extra={"circuit": self.settings.circuit_key, "record_id": record.id},
            )

        notification = NotificationAggregate(
            id=record.notification_id,
            title=record.title,
            body=record.body,
            type=record.type,
            priority=record.priority,
            channels=[record.channel],
            user_ids=[record.user_id],
            data=record.data,
        )
        logger.info(
            "Retrying failed delivery",
            extra={"record_id": record.id, "user_id": record.user_id, "retry_count": record.retry_count},
        )
        results = await self._dispatch(
            notification,
            [record.user_id],
            record.channel,
            {record.user_id: _PriorAttempt(record.id, record.retry_count)},
        )
        return results[0]
