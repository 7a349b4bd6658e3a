"""Utilities package for workbook conversion.

This package provides:
- Centralized exception classes (exceptions.py)
- Structured logging utilities (logging.py)
"""

from workbook_csv.utils.exceptions import (
    ContainerError,
    ContainerOpenError,
    DecodeError,
    ErrorCode,
    FileError,
    RecordSequenceError,
    UnsupportedFormatError,
    WorkbookCsvError,
)
from workbook_csv.utils.logging import (
    LogContext,
    StructuredLogger,
    get_conversion_id,
    get_logger,
    set_conversion_id,
)

__all__ = [
    # Exceptions
    "ContainerError",
    "ContainerOpenError",
    "DecodeError",
    "ErrorCode",
    "FileError",
    "RecordSequenceError",
    "UnsupportedFormatError",
    "WorkbookCsvError",
    # Logging
    "LogContext",
    "StructuredLogger",
    "get_conversion_id",
    "get_logger",
    "set_conversion_id",
]
