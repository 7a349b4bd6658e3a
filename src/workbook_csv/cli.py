"""Command-line entry point: convert a workbook's first worksheet to CSV."""

from __future__ import annotations

import argparse
from collections.abc import Sequence

from workbook_csv import __version__
from workbook_csv.config import settings, validate_settings_on_startup
from workbook_csv.models import WorkbookFormat
from workbook_csv.services.converter import WorkbookConverter
from workbook_csv.utils.exceptions import ErrorCode, WorkbookCsvError
from workbook_csv.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workbook-csv",
        description="Convert the first worksheet of an .xlsx or .xls workbook to CSV.",
    )
    parser.add_argument("input", help="Path to the workbook")
    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help=f"CSV file to write (default: {settings.default_output_name})",
    )
    parser.add_argument(
        "--format",
        dest="workbook_format",
        choices=[f.value for f in WorkbookFormat],
        default=None,
        help="Container format; detected from content when omitted",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help=f"Logging level (default: {settings.log_level})",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the converter. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    configure_logging(args.log_level or settings.log_level_int)
    validate_settings_on_startup(settings)

    output_path = args.output or settings.default_output_name
    converter = WorkbookConverter(settings)
    try:
        with open(output_path, "w", encoding=settings.output_encoding, newline="") as out:
            result = converter.convert(args.input, out, args.workbook_format)
    except WorkbookCsvError as e:
        logger.error(
            "Conversion failed",
            error_code=e.error_code.value,
            error=e.message,
            details=e.details,
        )
        return 1
    except OSError as e:
        logger.error(
            "Conversion failed",
            error_code=ErrorCode.FILE_WRITE_ERROR.value,
            error=str(e),
        )
        return 1

    logger.info(
        "Wrote CSV",
        output=output_path,
        sheet=result.sheet_name,
        rows=result.rows_written,
        duration_seconds=f"{result.duration_seconds:.2f}",
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
