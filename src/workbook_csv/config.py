"""Configuration management for workbook-to-CSV conversion.

This module provides centralized configuration using pydantic-settings.
All configuration options can be set via environment variables with the
WBCSV_ prefix, or via a .env file in the working directory.

Environment Variables:
    WBCSV_LOG_LEVEL: Logging level (default: INFO)
    WBCSV_DEBUG: Enable debug mode (default: false)
    WBCSV_TEMP_DIR: Directory for spooling non-seekable input (default: system temp)
    WBCSV_MAX_FILE_SIZE_MB: Optional input size limit in MB (default: unlimited)
    WBCSV_OUTPUT_ENCODING: Encoding of CSV files written by the CLI (default: utf-8)
    WBCSV_DEFAULT_OUTPUT_NAME: CSV file name used by the CLI (default: output.csv)
    WBCSV_PROGRESS_LOG_INTERVAL: Rows between progress log lines (default: 100000)
    WBCSV_XLS_IGNORE_WORKBOOK_CORRUPTION: Tolerate damaged OLE2 containers (default: false)
"""

import codecs
import logging
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Converter settings loaded from environment variables.

    Example .env file:
        WBCSV_LOG_LEVEL=DEBUG
        WBCSV_MAX_FILE_SIZE_MB=200
    """

    model_config = SettingsConfigDict(
        env_prefix="WBCSV_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # =========================================================================
    # Input Settings
    # =========================================================================

    temp_dir: str | None = None
    """Directory for spooling non-seekable input streams (None = system default)."""

    max_file_size_mb: int | None = None
    """Optional upper bound on the input workbook size in megabytes."""

    xls_ignore_workbook_corruption: bool = False
    """Let the OLE2 reader continue past recoverable container corruption."""

    # =========================================================================
    # Output Settings
    # =========================================================================

    output_encoding: str = "utf-8"
    """Encoding used when the CLI writes the CSV file."""

    default_output_name: str = "output.csv"
    """CSV file name the CLI writes to when no output path is given."""

    progress_log_interval: int = 100_000
    """Number of CSV rows between progress log lines."""

    # =========================================================================
    # Logging Settings
    # =========================================================================

    log_level: str = "INFO"
    """Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL."""

    debug: bool = False
    """Enable debug mode with additional logging and error details."""

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(valid_levels)}"
            )
        return upper_v

    @field_validator("max_file_size_mb")
    @classmethod
    def validate_file_size(cls, v: int | None) -> int | None:
        """Validate the size limit is positive and reasonable."""
        if v is not None and not 1 <= v <= 10240:
            raise ValueError(f"max_file_size_mb must be between 1 and 10240, got {v}")
        return v

    @field_validator("progress_log_interval")
    @classmethod
    def validate_progress_interval(cls, v: int) -> int:
        """Validate the progress interval is at least one row."""
        if v < 1:
            raise ValueError(f"progress_log_interval must be at least 1, got {v}")
        return v

    @field_validator("output_encoding")
    @classmethod
    def validate_output_encoding(cls, v: str) -> str:
        """Validate the output encoding is known to Python."""
        try:
            codecs.lookup(v)
        except LookupError as e:
            raise ValueError(f"Unknown output encoding: {v}") from e
        return v

    @field_validator("default_output_name")
    @classmethod
    def validate_output_name(cls, v: str) -> str:
        """Validate the default output name is non-empty."""
        if not v.strip():
            raise ValueError("default_output_name must be a non-empty string")
        return v.strip()

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def max_file_size_bytes(self) -> int | None:
        """Get the size limit in bytes, or None when unlimited."""
        if self.max_file_size_mb is None:
            return None
        return self.max_file_size_mb * 1024 * 1024

    @property
    def log_level_int(self) -> int:
        """Get log level as integer for logging module."""
        level: int = getattr(logging, self.log_level)
        return level

    def to_safe_dict(self) -> dict[str, Any]:
        """Convert settings to a dictionary for logging.

        Returns:
            Dictionary representation of the settings.
        """
        return {
            "temp_dir": self.temp_dir,
            "max_file_size_mb": self.max_file_size_mb,
            "xls_ignore_workbook_corruption": self.xls_ignore_workbook_corruption,
            "output_encoding": self.output_encoding,
            "default_output_name": self.default_output_name,
            "progress_log_interval": self.progress_log_interval,
            "log_level": self.log_level,
            "debug": self.debug,
        }


def validate_settings_on_startup(s: Settings) -> None:
    """Validate settings on startup and log a summary.

    Args:
        s: Settings instance to validate.
    """
    logger = logging.getLogger(__name__)

    if s.xls_ignore_workbook_corruption:
        logger.warning(
            "OLE2 corruption checks are relaxed. Damaged .xls files may "
            "produce incomplete output."
        )

    logger.info(
        f"Configuration loaded: log_level={s.log_level}, debug={s.debug}, "
        f"max_file_size_mb={s.max_file_size_mb}, "
        f"progress_log_interval={s.progress_log_interval}"
    )
    logger.debug(f"Effective settings: {s.to_safe_dict()}")


# Create the global settings instance
settings = Settings()
