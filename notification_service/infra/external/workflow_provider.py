"""Workflow provider integration.

The provider fans a triggered workflow out to the channel-specific
transports (push, email, SMS, in-app) and answers with one transaction id
for the whole batch, which is stored as the ``delivery_id`` of every record.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from notification_service.infra.external.base_client import BaseHTTPClient

logger = logging.getLogger(__name__)

TRIGGER_PATH = "/v1/events/trigger"


class ProviderError(Exception):
    """Failure reported by the workflow provider.

    Attributes:
        status_code: HTTP status of the provider response, if any.
        code: Machine-readable error code stored on failed delivery records.
        is_retryable: Explicit retry decision; None defers to status based
            classification.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
        is_retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code or (f"HTTP_{status_code}" if status_code is not None else None)
        if is_retryable is not None:
            self.is_retryable = is_retryable


@runtime_checkable
class WorkflowProvider(Protocol):
    """Anything that can trigger a notification workflow for a set of recipients."""

    async def trigger_workflow(
        self,
        workflow_id: str,
        recipients: list[str],
        payload: dict[str, Any],
    ) -> str:
        """Trigger ``workflow_id`` for ``recipients`` and return the delivery id."""
        ...


class WorkflowProviderClient(BaseHTTPClient):
    """HTTP client for the workflow provider's trigger endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url=base_url,
            timeout=timeout,
            headers={
                "Authorization": f"ApiKey {api_key}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    async def trigger_workflow(
        self,
        workflow_id: str,
        recipients: list[str],
        payload: dict[str, Any],
    ) -> str:
        """Trigger a workflow for every recipient in one request.

        Raises:
            ProviderError: Non-2xx response or a response without a transaction id.
            httpx.TransportError: Network failure (classified as retryable upstream).
        """
        body = {
            "name": workflow_id,
            "to": [{"subscriberId": recipient} for recipient in recipients],
            "payload": payload,
        }
        try:
            data = await self.post_json(TRIGGER_PATH, json=body)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            provider_code = None
            try:
                error_body = e.response.json()
            except ValueError:
                error_body = None
            if isinstance(error_body, dict):
                provider_code = error_body.get("code") or error_body.get("error")
            logger.warning(
                "Workflow provider rejected trigger",
                extra={"workflow_id": workflow_id, "status_code": status, "provider_code": provider_code},
            )
            raise ProviderError(
                f"Workflow provider returned {status} for workflow '{workflow_id}'",
                status_code=status,
                code=str(provider_code) if provider_code else None,
            ) from e

        transaction_id = (data.get("data") or {}).get("transactionId")
        if not transaction_id:
            msg = f"Workflow provider response for '{workflow_id}' has no transaction id"
            raise ProviderError(msg, code="INVALID_RESPONSE", is_retryable=False)

        logger.debug(
            "Workflow triggered",
            extra={"workflow_id": workflow_id, "recipients": len(recipients), "delivery_id": transaction_id},
        )
        return str(transaction_id)
