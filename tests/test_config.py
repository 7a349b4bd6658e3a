"""Tests for configuration management module."""

import logging
import os
from unittest.mock import patch

import pytest

from workbook_csv.config import Settings, validate_settings_on_startup


class TestSettings:
    """Tests for the Settings class."""

    def test_default_values(self) -> None:
        """Test default configuration values."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        # Input defaults
        assert settings.temp_dir is None
        assert settings.max_file_size_mb is None
        assert settings.max_file_size_bytes is None
        assert settings.xls_ignore_workbook_corruption is False

        # Output defaults
        assert settings.output_encoding == "utf-8"
        assert settings.default_output_name == "output.csv"
        assert settings.progress_log_interval == 100_000

        # Logging defaults
        assert settings.log_level == "INFO"
        assert settings.debug is False

    def test_environment_variable_prefix(self) -> None:
        """Test that environment variables use WBCSV_ prefix."""
        env_vars = {
            "WBCSV_MAX_FILE_SIZE_MB": "25",
            "WBCSV_DEFAULT_OUTPUT_NAME": "sheet.csv",
            "WBCSV_LOG_LEVEL": "DEBUG",
            "WBCSV_XLS_IGNORE_WORKBOOK_CORRUPTION": "true",
        }
        with patch.dict(os.environ, env_vars, clear=True):
            settings = Settings(_env_file=None)

        assert settings.max_file_size_mb == 25
        assert settings.default_output_name == "sheet.csv"
        assert settings.log_level == "DEBUG"
        assert settings.xls_ignore_workbook_corruption is True

    def test_max_file_size_bytes_property(self) -> None:
        env_vars = {"WBCSV_MAX_FILE_SIZE_MB": "10"}
        with patch.dict(os.environ, env_vars, clear=True):
            settings = Settings(_env_file=None)

        assert settings.max_file_size_bytes == 10 * 1024 * 1024

    def test_log_level_int_property(self) -> None:
        env_vars = {"WBCSV_LOG_LEVEL": "WARNING"}
        with patch.dict(os.environ, env_vars, clear=True):
            settings = Settings(_env_file=None)

        assert settings.log_level_int == logging.WARNING

    def test_to_safe_dict(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        safe = settings.to_safe_dict()
        assert safe["log_level"] == "INFO"
        assert safe["default_output_name"] == "output.csv"
        assert safe["max_file_size_mb"] is None


class TestSettingsValidation:
    """Tests for settings validation."""

    def test_valid_log_level(self) -> None:
        for level in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            env_vars = {"WBCSV_LOG_LEVEL": level}
            with patch.dict(os.environ, env_vars, clear=True):
                settings = Settings(_env_file=None)
                assert settings.log_level == level

    def test_lowercase_log_level_normalized(self) -> None:
        env_vars = {"WBCSV_LOG_LEVEL": "debug"}
        with patch.dict(os.environ, env_vars, clear=True):
            settings = Settings(_env_file=None)
            assert settings.log_level == "DEBUG"

    def test_invalid_log_level_raises_error(self) -> None:
        env_vars = {"WBCSV_LOG_LEVEL": "INVALID"}
        with (
            patch.dict(os.environ, env_vars, clear=True),
            pytest.raises(ValueError, match="Invalid log level"),
        ):
            Settings(_env_file=None)

    def test_file_size_must_be_between_1_and_10240(self) -> None:
        for value in ("0", "10241"):
            env_vars = {"WBCSV_MAX_FILE_SIZE_MB": value}
            with (
                patch.dict(os.environ, env_vars, clear=True),
                pytest.raises(ValueError, match="max_file_size_mb"),
            ):
                Settings(_env_file=None)

    def test_progress_interval_must_be_positive(self) -> None:
        env_vars = {"WBCSV_PROGRESS_LOG_INTERVAL": "0"}
        with (
            patch.dict(os.environ, env_vars, clear=True),
            pytest.raises(ValueError, match="progress_log_interval"),
        ):
            Settings(_env_file=None)

    def test_unknown_output_encoding_rejected(self) -> None:
        env_vars = {"WBCSV_OUTPUT_ENCODING": "no-such-codec"}
        with (
            patch.dict(os.environ, env_vars, clear=True),
            pytest.raises(ValueError, match="Unknown output encoding"),
        ):
            Settings(_env_file=None)

    def test_blank_output_name_rejected(self) -> None:
        env_vars = {"WBCSV_DEFAULT_OUTPUT_NAME": "   "}
        with (
            patch.dict(os.environ, env_vars, clear=True),
            pytest.raises(ValueError, match="default_output_name"),
        ):
            Settings(_env_file=None)


class TestValidateSettingsOnStartup:
    """Tests for the validate_settings_on_startup function."""

    def test_warns_when_corruption_checks_relaxed(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        env_vars = {"WBCSV_XLS_IGNORE_WORKBOOK_CORRUPTION": "true"}
        with patch.dict(os.environ, env_vars, clear=True):
            settings = Settings(_env_file=None)

        with caplog.at_level(logging.WARNING):
            validate_settings_on_startup(settings)

        assert "OLE2 corruption checks are relaxed" in caplog.text

    def test_no_warning_by_default(self, caplog: pytest.LogCaptureFixture) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        with caplog.at_level(logging.WARNING):
            validate_settings_on_startup(settings)

        assert "OLE2 corruption checks" not in caplog.text

    def test_logs_configuration_summary(self, caplog: pytest.LogCaptureFixture) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        with caplog.at_level(logging.INFO):
            validate_settings_on_startup(settings)

        assert "Configuration loaded" in caplog.text
        assert "log_level=INFO" in caplog.text

    def test_logs_effective_settings_at_debug(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        with patch.dict(os.environ, {"WBCSV_TEMP_DIR": "/spool"}, clear=True):
            settings = Settings(_env_file=None)

        with caplog.at_level(logging.DEBUG):
            validate_settings_on_startup(settings)

        assert "Effective settings" in caplog.text
        assert "'temp_dir': '/spool'" in caplog.text
