"""Prometheus metrics for notification dispatch and read state.

Usage:
    from notification_service.features.notifications.metrics import (
        notification_dispatched_total,
    )

    notification_dispatched_total.labels(channel="push", outcome="sent").inc(3)
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

from notification_service.infra.metrics.prometheus import REGISTRY

notification_dispatched_total = Counter(
    "notification_dispatched_total",
    "Delivery records written by dispatch, by channel and outcome",
    labelnames=["channel", "outcome"],
    registry=REGISTRY,
)
"""
Labels:
    channel: email, sms, push, in_app, webhook
    outcome: sent or failed
"""

notification_dispatch_duration_seconds = Histogram(
    "notification_dispatch_duration_seconds",
    "Time to dispatch one batch, including retries and persistence",
    labelnames=["channel"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
    registry=REGISTRY,
)

notification_batch_retries_total = Counter(
    "notification_batch_retries_total",
    "Batch-level redispatch attempts for failed recipients",
    labelnames=["channel"],
    registry=REGISTRY,
)

notification_delivery_status_total = Counter(
    "notification_delivery_status_total",
    "Delivery records moved by provider status updates",
    labelnames=["status"],
    registry=REGISTRY,
)

notification_persistence_errors_total = Counter(
    "notification_persistence_errors_total",
    "Delivery record writes that failed after retries",
    registry=REGISTRY,
)

notification_read_state_total = Counter(
    "notification_read_state_total",
    "Records changed by read-state commands",
    labelnames=["action"],
    registry=REGISTRY,
)
"""
Labels:
    action: read, read_all, bulk_read, bulk_archive
"""
