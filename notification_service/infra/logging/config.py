"""Logging configuration setup.

Uses:
- dictConfig for the root logger, its level and filters
- QueueHandler + QueueListener so handlers never block the event loop
- ContextInjectingFilter for contextvars-bound fields
- JSONFormatter (JSON Lines) or a plain text format
"""

from __future__ import annotations

import atexit
import logging
import logging.config
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import Queue
from typing import TYPE_CHECKING, Any

from notification_service.infra.logging.context import ContextInjectingFilter
from notification_service.infra.logging.formatters import JSONFormatter

if TYPE_CHECKING:
    from notification_service.core.settings.logs import LoggingSettings

logger = logging.getLogger(__name__)

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_listener: QueueListener | None = None
_LOGGING_INITIALIZED = False


def setup_logging(
    log_settings: LoggingSettings | None = None,
    *,
    force: bool = False,
    **overrides: Any,
) -> None:
    """Configure logging once per process.

    Args:
        log_settings: Settings instance; loaded via get_logging_settings() when omitted.
        force: Reconfigure even if logging was already set up.
        **overrides: Explicit overrides for configure_logging().
    """
    global _LOGGING_INITIALIZED

    if _LOGGING_INITIALIZED and not force:
        return

    if log_settings is None:
        from notification_service.core.settings import get_logging_settings

        log_settings = get_logging_settings()

    configure_logging(**{**log_settings.to_logging_kwargs(), **overrides})
    _LOGGING_INITIALIZED = True


def configure_logging(
    service_name: str = "notification-service",
    log_level: str = "INFO",
    json_logs: bool = True,
    console_enabled: bool = True,
    file_path: str | Path | None = None,
    file_max_bytes: int = 10 * 1024 * 1024,
    file_backup_count: int = 5,
    include_context: bool = True,
) -> None:
    """Apply the logging configuration.

    The root logger gets a single QueueHandler; the real handlers (console,
    rotating file) are driven by a QueueListener thread.
    """
    global _listener

    root_filters = ["context"] if include_context else []
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"context": {"()": ContextInjectingFilter}},
            "root": {
                "level": log_level.upper(),
                "handlers": [],
                "filters": root_filters,
            },
        },
    )

    if json_logs:
        formatter: logging.Formatter = JSONFormatter(static={"service": service_name})
    else:
        formatter = logging.Formatter(_TEXT_FORMAT)

    handlers: list[logging.Handler] = []
    if console_enabled:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        handlers.append(console)
    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=file_max_bytes,
            backupCount=file_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    _stop_listener()
    queue: Queue[logging.LogRecord] = Queue(-1)
    queue_handler = QueueHandler(queue)
    if include_context:
        # Context must be read on the emitting task, not on the listener thread
        queue_handler.addFilter(ContextInjectingFilter())
    logging.getLogger().addHandler(queue_handler)

    _listener = QueueListener(queue, *handlers, respect_handler_level=True)
    _listener.start()

    logger.debug(
        "Logging configured",
        extra={"json_logs": json_logs, "file_path": str(file_path) if file_path else None},
    )


def _stop_listener() -> None:
    global _listener
    if _listener is not None:
        _listener.stop()
        _listener = None
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, QueueHandler):
            root.removeHandler(handler)


def shutdown() -> None:
    """Flush queued records and stop the listener thread."""
    global _LOGGING_INITIALIZED
    _stop_listener()
    _LOGGING_INITIALIZED = False


atexit.register(shutdown)
