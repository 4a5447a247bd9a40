"""Context propagation for structured logging.

Fields bound here (recipient_id, notification_id, delivery_id...) are copied
onto every LogRecord emitted by the current asyncio task, so the dispatch and
command code does not need to repeat them in each ``extra`` dict.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator

# Each asyncio task gets its own copy automatically
_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


def set_log_context(**kwargs: Any) -> None:
    """Add fields to the logging context of the current task.

    Example:
        set_log_context(recipient_id="u1", notification_id="n1")
        logger.info("Marking as read")  # record carries both ids
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    _log_context.set(current)


def get_log_context() -> dict[str, Any]:
    """Return a copy of the current logging context."""
    return _log_context.get().copy()


def clear_log_context() -> None:
    """Drop every field from the current logging context."""
    _log_context.set({})


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Bind fields for the duration of a block, restoring the previous context after.

    Example:
        with log_context(delivery_id="d1"):
            await orchestrator.update_delivery_status("d1", DeliveryStatus.DELIVERED)
    """
    merged = {**_log_context.get(), **{k: v for k, v in kwargs.items() if v is not None}}
    token = _log_context.set(merged)
    try:
        yield
    finally:
        _log_context.reset(token)


class ContextInjectingFilter(logging.Filter):
    """Copy the contextvars logging context onto each LogRecord.

    Attached to the root logger by ``configure_logging``; explicit ``extra``
    values passed at the call site win over context values.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True
