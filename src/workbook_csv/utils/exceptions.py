"""Centralized exception classes for workbook-to-CSV conversion.

This module provides a hierarchy of custom exceptions with error codes and
structured error details for consistent error handling throughout the
converter.

Exception Hierarchy:
    WorkbookCsvError (base)
    ├── FileError
    │   ├── WorkbookFileNotFoundError
    │   ├── FileTooLargeError
    │   └── UnsupportedFormatError
    ├── ContainerError
    │   ├── ContainerOpenError
    │   ├── WorksheetNotFoundError
    │   └── EncryptedWorkbookError
    ├── DecodeError
    │   ├── SheetParseError
    │   ├── MalformedRecordError
    │   └── RecordSequenceError
    └── ConfigurationError

Error Codes:
    All errors have a unique error code (e.g., "E1001") that can be used
    for programmatic error handling and documentation.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Enumeration of all error codes used by the converter.

    Error codes are grouped by category:
    - E1xxx: File errors
    - E2xxx: Container errors
    - E3xxx: Sheet decoding errors
    - E9xxx: Internal/unexpected errors
    """

    # File errors (E1xxx)
    FILE_NOT_FOUND = "E1001"
    FILE_TOO_LARGE = "E1002"
    UNSUPPORTED_FORMAT = "E1003"
    FILE_READ_ERROR = "E1004"
    FILE_WRITE_ERROR = "E1005"

    # Container errors (E2xxx)
    CONTAINER_OPEN_FAILED = "E2001"
    WORKSHEET_NOT_FOUND = "E2002"
    ENCRYPTED_WORKBOOK = "E2003"

    # Decoding errors (E3xxx)
    SHEET_PARSE_FAILED = "E3001"
    MALFORMED_RECORD = "E3002"
    RECORD_SEQUENCE_INVALID = "E3003"

    # Internal errors (E9xxx)
    INTERNAL_ERROR = "E9001"
    CONFIGURATION_ERROR = "E9002"


class WorkbookCsvError(Exception):
    """Base exception for all conversion errors.

    Attributes:
        message: Human-readable error message.
        error_code: Unique error code from ErrorCode enum.
        details: Optional dictionary with additional error details.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Error code from ErrorCode enum.
            details: Optional additional details about the error.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert the exception to a dictionary for logging or reporting.

        Returns:
            Dictionary with error information.
        """
        result: dict[str, Any] = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code.value}] {self.message}"


# =============================================================================
# File Errors (E1xxx)
# =============================================================================


class FileError(WorkbookCsvError):
    """Base class for file-related errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.FILE_READ_ERROR,
        file_path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with file path information.

        Args:
            message: Error message.
            error_code: Error code.
            file_path: Path to the problematic file.
            details: Additional details.
        """
        details = details or {}
        if file_path:
            details["file_path"] = file_path
        super().__init__(message, error_code, details)
        self.file_path = file_path


class WorkbookFileNotFoundError(FileError):
    """Raised when the input workbook does not exist.

    Note: Named to avoid shadowing the built-in FileNotFoundError.
    """

    def __init__(self, file_path: str, message: str | None = None) -> None:
        message = message or f"File not found: {file_path}"
        super().__init__(
            message=message,
            error_code=ErrorCode.FILE_NOT_FOUND,
            file_path=file_path,
        )


class FileTooLargeError(FileError):
    """Raised when a workbook exceeds the configured size limit."""

    def __init__(
        self,
        file_size: int,
        max_size: int,
        file_path: str | None = None,
    ) -> None:
        """Initialize with size information.

        Args:
            file_size: Actual file size in bytes.
            max_size: Maximum allowed size in bytes.
            file_path: Optional file path.
        """
        details = {"file_size_bytes": file_size, "max_size_bytes": max_size}
        message = (
            f"File size ({file_size} bytes) exceeds maximum "
            f"allowed size ({max_size} bytes)"
        )
        super().__init__(
            message=message,
            error_code=ErrorCode.FILE_TOO_LARGE,
            file_path=file_path,
            details=details,
        )
        self.file_size = file_size
        self.max_size = max_size


class UnsupportedFormatError(FileError):
    """Raised when the input is not a supported workbook container."""

    def __init__(
        self,
        message: str,
        detected_mime: str | None = None,
        file_path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if detected_mime:
            details["detected_mime_type"] = detected_mime
        super().__init__(
            message=message,
            error_code=ErrorCode.UNSUPPORTED_FORMAT,
            file_path=file_path,
            details=details,
        )
        self.detected_mime = detected_mime


# =============================================================================
# Container Errors (E2xxx)
# =============================================================================


class ContainerError(WorkbookCsvError):
    """Base class for errors raised while opening a workbook container."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CONTAINER_OPEN_FAILED,
        container: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with container information.

        Args:
            message: Error message.
            error_code: Error code.
            container: Container kind ("xlsx" or "xls").
            details: Additional details.
        """
        details = details or {}
        if container:
            details["container"] = container
        super().__init__(message, error_code, details)
        self.container = container


class ContainerOpenError(ContainerError):
    """Raised when the byte stream is not a valid container instance."""

    def __init__(
        self,
        message: str,
        container: str | None = None,
        cause: str | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if cause:
            details["cause"] = cause
        super().__init__(
            message=message,
            error_code=ErrorCode.CONTAINER_OPEN_FAILED,
            container=container,
            details=details,
        )


class WorksheetNotFoundError(ContainerError):
    """Raised when a workbook holds no worksheet to convert."""

    def __init__(self, container: str | None = None) -> None:
        super().__init__(
            message="Workbook does not contain any worksheet",
            error_code=ErrorCode.WORKSHEET_NOT_FOUND,
            container=container,
        )


class EncryptedWorkbookError(ContainerError):
    """Raised when a workbook is password protected."""

    def __init__(self, container: str | None = None) -> None:
        super().__init__(
            message="Workbook is encrypted and cannot be read",
            error_code=ErrorCode.ENCRYPTED_WORKBOOK,
            container=container,
        )


# =============================================================================
# Decoding Errors (E3xxx)
# =============================================================================


class DecodeError(WorkbookCsvError):
    """Base class for errors raised while decoding a worksheet."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.SHEET_PARSE_FAILED,
        sheet_name: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with sheet information.

        Args:
            message: Error message.
            error_code: Error code.
            sheet_name: Name of the worksheet being decoded, if known.
            details: Additional details.
        """
        details = details or {}
        if sheet_name:
            details["sheet_name"] = sheet_name
        super().__init__(message, error_code, details)
        self.sheet_name = sheet_name

    def attach_sheet(self, sheet_name: str | None) -> None:
        """Record the worksheet name if the raiser did not know it."""
        if sheet_name and not self.sheet_name:
            self.sheet_name = sheet_name
            self.details["sheet_name"] = sheet_name


class SheetParseError(DecodeError):
    """Raised when the worksheet XML cannot be parsed."""

    def __init__(
        self,
        message: str,
        sheet_name: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorCode.SHEET_PARSE_FAILED,
            sheet_name=sheet_name,
            details=details,
        )


class MalformedRecordError(DecodeError):
    """Raised when a binary record is truncated or cannot be decoded."""

    def __init__(
        self,
        message: str,
        record_code: int | None = None,
        offset: int | None = None,
        sheet_name: str | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if record_code is not None:
            details["record_code"] = f"0x{record_code:04X}"
        if offset is not None:
            details["offset"] = offset
        super().__init__(
            message=message,
            error_code=ErrorCode.MALFORMED_RECORD,
            sheet_name=sheet_name,
            details=details,
        )
        self.record_code = record_code
        self.offset = offset


class RecordSequenceError(DecodeError):
    """Raised when records arrive in an order the decoder cannot accept.

    Used for the pending formula-string buffer: a second pending value, or a
    string result with nothing pending.
    """

    def __init__(
        self,
        message: str,
        row: int | None = None,
        column: int | None = None,
        sheet_name: str | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if row is not None:
            details["row"] = row
        if column is not None:
            details["column"] = column
        super().__init__(
            message=message,
            error_code=ErrorCode.RECORD_SEQUENCE_INVALID,
            sheet_name=sheet_name,
            details=details,
        )


# =============================================================================
# Internal Errors (E9xxx)
# =============================================================================


class ConfigurationError(WorkbookCsvError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        setting_name: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if setting_name:
            details["setting_name"] = setting_name
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            details=details,
        )
        self.setting_name = setting_name
