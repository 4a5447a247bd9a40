"""Clients for external services."""

from __future__ import annotations

from notification_service.infra.external.base_client import BaseHTTPClient
from notification_service.infra.external.workflow_provider import (
    ProviderError,
    WorkflowProvider,
    WorkflowProviderClient,
)

__all__ = ["BaseHTTPClient", "ProviderError", "WorkflowProvider", "WorkflowProviderClient"]
