"""Structured logging utilities for workbook conversion.

This module provides:
- Conversion ID tracking using contextvars for correlation across a run
- Structured logging with consistent format and metadata
- Performance metrics logging helpers
- Progress tracking for long-running conversions

Usage:
    from workbook_csv.utils.logging import get_logger, LogContext

    logger = get_logger(__name__)

    with LogContext(conversion_id="abc-123", sheet="Sheet1"):
        logger.info("Converting worksheet")

    with timed_operation(logger, "xlsx_to_csv") as metrics:
        metrics.rows_written = 1000
"""

import logging
import time
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# Context variables for conversion tracking
_conversion_id_var: ContextVar[str | None] = ContextVar("conversion_id", default=None)
_extra_context_var: ContextVar[dict[str, Any] | None] = ContextVar(
    "extra_context", default=None
)


def get_conversion_id() -> str | None:
    """Get the current conversion ID from context.

    Returns:
        The current conversion ID or None if not set.
    """
    return _conversion_id_var.get()


def set_conversion_id(conversion_id: str | None) -> None:
    """Set the conversion ID in context.

    Args:
        conversion_id: The conversion ID to set, or None to clear.
    """
    _conversion_id_var.set(conversion_id)


def get_extra_context() -> dict[str, Any]:
    """Get additional context from context vars.

    Returns:
        Dictionary of extra context values.
    """
    ctx = _extra_context_var.get()
    return ctx if ctx is not None else {}


def set_extra_context(context: dict[str, Any]) -> None:
    """Set additional context in context vars."""
    _extra_context_var.set(context)


def clear_context() -> None:
    """Clear all context variables."""
    _conversion_id_var.set(None)
    _extra_context_var.set(None)


@dataclass
class PerformanceMetrics:
    """Container for performance metrics of a conversion.

    Attributes:
        operation: Name of the operation being measured.
        start_time: When the operation started.
        end_time: When the operation ended.
        duration_seconds: Duration in seconds.
        rows_written: Number of CSV lines written.
        cells_written: Number of cell values written.
        records_processed: Number of decoder events or records consumed.
    """

    operation: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    duration_seconds: float = 0.0
    rows_written: int = 0
    cells_written: int = 0
    records_processed: int = 0

    def finish(self) -> None:
        """Mark the operation as complete and calculate duration."""
        self.end_time = datetime.now(UTC)
        self.duration_seconds = (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging.

        Returns:
            Dictionary with all non-zero metrics.
        """
        result: dict[str, Any] = {
            "operation": self.operation,
            "duration_seconds": self.duration_seconds,
        }
        if self.rows_written > 0:
            result["rows_written"] = self.rows_written
        if self.cells_written > 0:
            result["cells_written"] = self.cells_written
        if self.records_processed > 0:
            result["records_processed"] = self.records_processed
        return result


class StructuredLogFormatter(logging.Formatter):
    """Log formatter that includes context variables.

    Adds conversion_id and any LogContext keys to log records when
    available, creating a consistent structured prefix.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with context information."""
        prefix_parts = []
        conversion_id = get_conversion_id()
        if conversion_id:
            prefix_parts.append(f"conversion_id={conversion_id}")

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
    - Logging with key=value pairs
    - Performance metrics logging
    - Progress tracking
    """

    def __init__(self, name: str) -> None:
        """Initialize the structured logger.

        Args:
            name: Logger name (typically __name__ of the module).
        """
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
        """Build a message with structured key-value pairs.

        Args:
            message: Base message.
            **kwargs: Additional key-value pairs to include.

        Returns:
            Formatted message string.
        """
        if not kwargs:
            return message

        parts = [f"{k}={v}" for k, v in kwargs.items()]
        return f"{message} | {', '.join(parts)}"

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log a debug message."""
        self._logger.debug(self._build_message(message, **kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        """Log an info message."""
        self._logger.info(self._build_message(message, **kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log a warning message."""
        self._logger.warning(self._build_message(message, **kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        """Log an error message.

        Args:
            message: Log message.
            exc_info: Whether to include exception info.
            **kwargs: Additional structured data.
        """
        self._logger.error(self._build_message(message, **kwargs), exc_info=exc_info)

    def log_performance(self, metrics: PerformanceMetrics) -> None:
        """Log performance metrics.

        Args:
            metrics: Performance metrics to log.
        """
        self.info(
            f"Performance: {metrics.operation}",
            **metrics.to_dict(),
        )

    def log_progress(
        self,
        stage: str,
        current: int,
        total: int | None = None,
    ) -> None:
        """Log progress for long-running operations.

        Args:
            stage: Current processing stage.
            current: Current progress count.
            total: Total items to process, when known.
        """
        kwargs: dict[str, Any] = {"current": current}
        if total:
            kwargs["total"] = total
            kwargs["percentage"] = f"{current / total * 100:.1f}%"
        self.info(f"Progress: {stage}", **kwargs)


class LogContext:
    """Context manager for adding temporary context to logs.

    Usage:
        with LogContext(conversion_id="123", sheet="Sheet1"):
            logger.info("Decoding...")  # Includes conversion_id and sheet
    """

    def __init__(self, **kwargs: Any) -> None:
        """Initialize with context values.

        Args:
            **kwargs: Key-value pairs to add to log context.
        """
        self._new_context = kwargs
        self._old_context: dict[str, Any] = {}
        self._old_conversion_id: str | None = None

    def __enter__(self) -> "LogContext":
        """Enter the context, saving old values and setting new ones."""
        self._old_context = get_extra_context().copy()
        self._old_conversion_id = get_conversion_id()

        new_context = dict(self._new_context)
        conversion_id = new_context.pop("conversion_id", None)
        if conversion_id is not None:
            set_conversion_id(conversion_id)

        merged = self._old_context.copy()
        merged.update(new_context)
        set_extra_context(merged)

        return self

    def __exit__(self, *args: Any) -> None:
        """Exit the context, restoring old values."""
        set_extra_context(self._old_context)
        set_conversion_id(self._old_conversion_id)


@contextmanager
def timed_operation(
    logger: StructuredLogger,
    operation: str,
) -> Generator[PerformanceMetrics, None, None]:
    """Context manager for timing operations.

    Usage:
        with timed_operation(logger, "xls_to_csv") as metrics:
            metrics.rows_written = 1000

        # Logs: "Performance: xls_to_csv | operation=..., duration_seconds=..."

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
    """Configure logging for the application.

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

    Args:
        name: Logger name (typically __name__).

    Returns:
        StructuredLogger instance.

    Example:
        logger = get_logger(__name__)
        logger.info("Row written", row=10, cells=4)
    """
    return StructuredLogger(name)


class ProgressTracker:
    """Logs progress every ``log_interval`` updates of an open-ended count.

    Usage:
        tracker = ProgressTracker(logger, "Writing rows", log_interval=10000)
        for row in rows:
            write(row)
            tracker.update()
        tracker.complete()
    """

    def __init__(
        self,
        logger: StructuredLogger,
        stage: str,
        log_interval: int = 1,
        total: int | None = None,
    ) -> None:
        """Initialize the progress tracker.

        Args:
            logger: Logger to use.
            stage: Description of the stage being tracked.
            log_interval: Log every N updates (1 = every update).
            total: Total number of items, when known upfront.
        """
        self._logger = logger
        self._stage = stage
        self._total = total
        self._current = 0
        self._log_interval = log_interval
        self._start_time = time.time()

    @property
    def current(self) -> int:
        """Number of items counted so far."""
        return self._current

    def update(self, increment: int = 1) -> None:
        """Count completed items, logging when an interval boundary is crossed."""
        before = self._current // self._log_interval
        self._current += increment
        if self._current // self._log_interval != before:
            self._logger.log_progress(self._stage, self._current, self._total)

    def complete(self) -> float:
        """Mark progress as complete.

        Returns:
            Total duration in seconds.
        """
        duration = time.time() - self._start_time
        self._logger.debug(
            f"Completed: {self._stage}",
            total_items=self._current,
            duration_seconds=f"{duration:.2f}",
        )
        return duration
