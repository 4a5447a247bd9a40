"""Pooled httpx client shared by outbound API integrations.

Retrying is left to the caller, which owns the retry budget and the
circuit breaker for the dependency.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Self

import httpx

logger = logging.getLogger(__name__)

DEFAULT_LIMITS = httpx.Limits(max_keepalive_connections=20, max_connections=100)


class BaseHTTPClient:
    """Thin JSON client over one ``httpx.AsyncClient``.

    Args:
        base_url: Root URL every request path is joined to.
        timeout: Total request timeout in seconds.
        headers: Headers sent with every request.
        transport: Replacement transport, e.g. ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            headers=headers or {},
            limits=DEFAULT_LIMITS,
            transport=transport,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()

    async def request_json(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Send a request and decode its JSON body (``{}`` when empty).

        Raises:
            httpx.HTTPStatusError: Non-2xx response.
            httpx.TransportError: Network failure or timeout.
        """
        started = time.perf_counter()
        response = await self.client.request(method, path, **kwargs)
        logger.info(
            f"{method} {path} -> {response.status_code}",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        response.raise_for_status()
        return response.json() if response.content else {}

    async def post_json(self, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self.request_json("POST", path, json=json)
