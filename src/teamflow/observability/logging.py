"""Structured JSON logging for TeamFlow.

Provides structured logging with context tracking for workflows, tasks
and the calling principal.

Usage:
    from teamflow.observability.logging import configure_logging, get_logger

    # Configure at application startup
    configure_logging(log_level="INFO", json_format=True)

    # Use in your code
    logger = get_logger(__name__)
    logger.info("Spawning task", extra={"workflow_id": 1})
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context fields of the operation currently running in this task
_operation_context: ContextVar[dict[str, Any]] = ContextVar("teamflow_log_context", default={})

_CONTEXT_FIELDS = ("workflow_id", "task_id", "principal", "operation")

_RESERVED_ATTRS = frozenset(
    [
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        *_CONTEXT_FIELDS,
    ]
)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Outputs log records as JSON with timestamp, level, message, and context.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in _CONTEXT_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add any additional fields from extra={}
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ContextFilter(logging.Filter):
    """Add contextual information to log records.

    Static fields come from :meth:`set_context`; fields of the operation
    in progress come from :class:`OperationLogContext`.  Fields passed
    explicitly via ``extra={}`` win over both.
    """

    def __init__(self) -> None:
        super().__init__()
        self._context: dict[str, Any] = {}

    def set_context(self, **kwargs: Any) -> None:
        """Set context fields that will be added to all log records."""
        self._context.update(kwargs)

    def clear_context(self) -> None:
        """Clear all context fields."""
        self._context.clear()

    def filter(self, record: logging.LogRecord) -> bool:
        """Add context to log record."""
        for key, value in {**self._context, **_operation_context.get()}.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def configure_logging(
    log_level: str = "INFO",
    json_format: bool = True,
    include_stdlib: bool = False,
) -> ContextFilter:
    """Configure application-wide logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatter if True, plain text if False
        include_stdlib: Include logs from standard library and dependencies

    Returns:
        The :class:`ContextFilter` installed on the console handler
    """
    level = getattr(logging, log_level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    if json_format:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    handler.setFormatter(formatter)

    # Handler-level so records propagated from child loggers are enriched too
    context_filter = ContextFilter()
    handler.addFilter(context_filter)
    root_logger.addHandler(handler)

    if not include_stdlib:
        # Set higher level for noisy libraries
        logging.getLogger("asyncio").setLevel(logging.WARNING)
        logging.getLogger("asyncpg").setLevel(logging.WARNING)
        logging.getLogger("redis").setLevel(logging.WARNING)

    return context_filter


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def current_log_context() -> dict[str, Any]:
    return dict(_operation_context.get())


class OperationLogContext:
    """Context manager for adding operation context to logs.

    Nested contexts merge with the enclosing one.  The context is held
    in a :class:`~contextvars.ContextVar`, so concurrent asyncio tasks
    never see each other's fields.

    Usage:
        with OperationLogContext(workflow_id=1, principal="alice"):
            logger.info("Spawning task")  # Will include workflow_id, principal
    """

    def __init__(self, **context: Any) -> None:
        self._context = {k: v for k, v in context.items() if v is not None}
        self._token: Any = None

    def __enter__(self) -> OperationLogContext:
        """Set log context."""
        self._token = _operation_context.set({**_operation_context.get(), **self._context})
        return self

    def __exit__(self, *args: Any) -> None:
        """Restore the enclosing log context."""
        _operation_context.reset(self._token)
