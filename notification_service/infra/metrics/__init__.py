"""Prometheus metrics and tracking helpers."""

from __future__ import annotations

from notification_service.infra.metrics.prometheus import DEFAULT_LATENCY_BUCKETS, REGISTRY

__all__ = ["DEFAULT_LATENCY_BUCKETS", "REGISTRY"]
