"""Structured logging utilities for the ad report summarizer.

This module provides:
- Request and session ID tracking using contextvars for correlation
- Structured logging with consistent format and ``key=value`` metadata
- Performance metrics logging helpers

Usage:
    from ad_report_summarizer.utils.logging import (
        get_logger,
        set_request_id,
        LogContext,
    )

    logger = get_logger(__name__)

    set_request_id("abc-123")

    with LogContext(session_id="sess-456", operation="extraction"):
        logger.info("Reading workbook")
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# Context variables for request tracking
_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
_session_id_var: ContextVar[str | None] = ContextVar("session_id", default=None)
_extra_context_var: ContextVar[dict[str, Any] | None] = ContextVar(
    "extra_context", default=None
)


def get_request_id() -> str | None:
    """Get the current request ID from context."""
    return _request_id_var.get()


def set_request_id(request_id: str | None) -> None:
    """Set the request ID in context.

    Args:
        request_id: The request ID to set, or None to clear.
    """
    _request_id_var.set(request_id)


def get_session_id() -> str | None:
    """Get the current report session ID from context."""
    return _session_id_var.get()


def set_session_id(session_id: str | None) -> None:
    """Set the report session ID in context.

    Args:
        session_id: The session ID to set, or None to clear.
    """
    _session_id_var.set(session_id)


def get_extra_context() -> dict[str, Any]:
    """Get additional context from context vars."""
    ctx = _extra_context_var.get()
    return ctx if ctx is not None else {}


def set_extra_context(context: dict[str, Any]) -> None:
    """Set additional context in context vars."""
    _extra_context_var.set(context)


def clear_context() -> None:
    """Clear all context variables."""
    _request_id_var.set(None)
    _session_id_var.set(None)
    _extra_context_var.set(None)


@dataclass
class PerformanceMetrics:
    """Container for performance metrics during processing.

    Attributes:
        operation: Name of the operation being measured.
        start_time: When the operation started.
        end_time: When the operation ended.
        duration_seconds: Duration in seconds.
        attempts: Number of attempts made (retrying operations).
        custom_metrics: Additional custom metrics.
    """

    operation: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    duration_seconds: float = 0.0
    attempts: int = 0
    custom_metrics: dict[str, Any] = field(default_factory=dict)

    def finish(self) -> None:
        """Mark the operation as complete and calculate duration."""
        self.end_time = datetime.now(UTC)
        self.duration_seconds = (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging, omitting zero counters."""
        result: dict[str, Any] = {
            "operation": self.operation,
            "duration_seconds": self.duration_seconds,
        }
        if self.attempts > 0:
            result["attempts"] = self.attempts
        if self.custom_metrics:
            result["custom_metrics"] = self.custom_metrics
        return result


class StructuredLogFormatter(logging.Formatter):
    """Log formatter that prefixes messages with the correlation context."""

    def format(self, record: logging.LogRecord) -> str:
        prefix_parts = []
        request_id = get_request_id()
        session_id = get_session_id()
        if request_id:
            prefix_parts.append(f"request_id={request_id}")
        if session_id:
            prefix_parts.append(f"session_id={session_id}")

        for key, value in get_extra_context().items():
            prefix_parts.append(f"{key}={value}")

        prefix = f"[{' '.join(prefix_parts)}] " if prefix_parts else ""

        original_msg = record.msg
        record.msg = f"{prefix}{original_msg}"
        result = super().format(record)
        record.msg = original_msg

        return result


class StructuredLogger:
    """Enhanced logger with structured logging capabilities.

    Wraps a standard Python logger with additional methods for:
    - Logging with ``key=value`` metadata
    - Performance metrics logging
    - Outbound API call logging
    """

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)
        self._name = name

    @property
    def logger(self) -> logging.Logger:
        """Access the underlying Python logger."""
        return self._logger

    def _build_message(
        self,
        message: str,
        **kwargs: Any,
    ) -> str:
        if not kwargs:
            return message

        parts = [f"{k}={v}" for k, v in kwargs.items()]
        return f"{message} | {', '.join(parts)}"

    def debug(self, message: str, **kwargs: Any) -> None:
        self._logger.debug(self._build_message(message, **kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self._logger.info(self._build_message(message, **kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self._logger.warning(self._build_message(message, **kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self._logger.error(self._build_message(message, **kwargs), exc_info=exc_info)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log an exception with traceback."""
        self._logger.exception(self._build_message(message, **kwargs))

    def log_performance(self, metrics: PerformanceMetrics) -> None:
        self.info(
            f"Performance: {metrics.operation}",
            **metrics.to_dict(),
        )

    def log_api_call(
        self,
        service: str,
        operation: str,
        duration_seconds: float,
        attempt: int | None = None,
        success: bool = True,
        error_message: str | None = None,
    ) -> None:
        """Log an outbound API call.

        Args:
            service: Service name (e.g., "gemini").
            operation: Operation performed.
            duration_seconds: Time taken for the call.
            attempt: One-based attempt number for retried calls.
            success: Whether the call succeeded.
            error_message: Error message if call failed.
        """
        kwargs: dict[str, Any] = {
            "service": service,
            "operation": operation,
            "duration_seconds": f"{duration_seconds:.3f}",
            "success": success,
        }
        if attempt is not None:
            kwargs["attempt"] = attempt
        if error_message:
            kwargs["error"] = error_message

        level = logging.INFO if success else logging.WARNING
        self._logger.log(level, self._build_message("API call", **kwargs))


class LogContext:
    """Context manager for adding temporary context to logs.

    Usage:
        with LogContext(session_id="123", operation="extraction"):
            logger.info("Processing...")  # Will include session_id and operation
    """

    def __init__(self, **kwargs: Any) -> None:
        self._new_context = kwargs
        self._old_context: dict[str, Any] = {}
        self._old_session_id: str | None = None
        self._old_request_id: str | None = None

    def __enter__(self) -> "LogContext":
        self._old_context = get_extra_context().copy()
        self._old_session_id = get_session_id()
        self._old_request_id = get_request_id()

        new_context = dict(self._new_context)
        session_id = new_context.pop("session_id", None)
        request_id = new_context.pop("request_id", None)

        if session_id is not None:
            set_session_id(session_id)
        if request_id is not None:
            set_request_id(request_id)

        merged = self._old_context.copy()
        merged.update(new_context)
        set_extra_context(merged)

        return self

    def __exit__(self, *args: Any) -> None:
        set_extra_context(self._old_context)
        set_session_id(self._old_session_id)
        set_request_id(self._old_request_id)


@contextmanager
def timed_operation(
    logger: StructuredLogger,
    operation: str,
) -> Generator[PerformanceMetrics, None, None]:
    """Context manager for timing operations.

    Usage:
        with timed_operation(logger, "summary_generation") as metrics:
            metrics.attempts = 3

    Args:
        logger: Logger to use for output.
        operation: Name of the operation.

    Yields:
        PerformanceMetrics instance for tracking.
    """
    metrics = PerformanceMetrics(operation=operation)
    try:
        yield metrics
    finally:
        metrics.finish()
        logger.log_performance(metrics)


def configure_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
    use_structured_formatter: bool = True,
) -> None:
    """Configure root logging for the application.

    Args:
        level: Log level (int or string like "INFO").
        format_string: Custom format string (uses default if None).
        use_structured_formatter: Whether to use the structured formatter.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setLevel(level)

    formatter: logging.Formatter
    if use_structured_formatter:
        formatter = StructuredLogFormatter(format_string)
    else:
        formatter = logging.Formatter(format_string)

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module.

    Example:
        logger = get_logger(__name__)
        logger.info("Workbook loaded", sheets=3)
    """
    return StructuredLogger(name)
