"""Workbook to CSV conversion.

Resolves the input, picks the decoder for the container format, and streams
the first worksheet into a text sink. The sink is owned by the caller.

Usage:
    with open("output.csv", "w", encoding="utf-8", newline="") as out:
        result = convert_workbook("book.xlsx", out)
"""

from __future__ import annotations

import os
import shutil
import tempfile
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO

from workbook_csv.config import Settings, settings
from workbook_csv.models import ConversionResult, WorkbookFormat
from workbook_csv.services.cell_formatter import CellValueFormatter
from workbook_csv.services.csv_rows import TextSink
from workbook_csv.services.format_detector import SNIFF_SIZE, FormatDetector
from workbook_csv.services.xls_decoder import XlsSheetDecoder
from workbook_csv.services.xls_records import iter_workbook_records, open_workbook_stream
from workbook_csv.services.xlsx_decoder import XlsxSheetDecoder
from workbook_csv.services.xlsx_reader import XlsxWorkbookReader
from workbook_csv.utils.exceptions import (
    ConfigurationError,
    DecodeError,
    FileTooLargeError,
    WorkbookFileNotFoundError,
)
from workbook_csv.utils.logging import (
    LogContext,
    PerformanceMetrics,
    ProgressTracker,
    get_logger,
    timed_operation,
)

logger = get_logger(__name__)

Source = str | os.PathLike[str] | IO[bytes]


class WorkbookConverter:
    """Converts the first worksheet of a workbook to CSV.

    Args:
        config: Settings to use. Defaults to the module-level settings.
    """

    def __init__(self, config: Settings | None = None) -> None:
        self.config = config or settings

    def convert(
        self,
        source: Source,
        output: TextSink,
        workbook_format: WorkbookFormat | str | None = None,
    ) -> ConversionResult:
        """Convert ``source`` and write CSV lines to ``output``.

        Args:
            source: Path or readable binary stream. Non-seekable streams are
                spooled to a temporary file first.
            output: Text sink receiving CSV lines.
            workbook_format: Container format; detected from content when None.

        Returns:
            ConversionResult summarizing the written output.

        Raises:
            WorkbookCsvError: Any file, container or decoding failure. Output
                already written is left in the sink.
        """
        conversion_id = uuid.uuid4().hex[:12]
        with LogContext(conversion_id=conversion_id), self._open_source(source) as (
            stream,
            name,
        ):
            fmt = (
                WorkbookFormat(workbook_format)
                if workbook_format is not None
                else self._detect_format(stream, name)
            )
            logger.info("Starting conversion", source=name, format=fmt.value)

            with timed_operation(logger, f"{fmt.value}_to_csv") as metrics:
                progress = ProgressTracker(
                    logger,
                    "Writing CSV rows",
                    log_interval=self.config.progress_log_interval,
                )
                if fmt == WorkbookFormat.XLSX:
                    sheet_name = self._convert_xlsx(stream, output, progress, metrics)
                else:
                    sheet_name = self._convert_xls(stream, output, progress, metrics)
                progress.complete()

            result = ConversionResult(
                workbook_format=fmt,
                sheet_name=sheet_name,
                rows_written=metrics.rows_written,
                cells_written=metrics.cells_written,
                duration_seconds=metrics.duration_seconds or 0.0,
            )
            logger.info(
                "Conversion complete",
                sheet=sheet_name,
                rows=result.rows_written,
                cells=result.cells_written,
            )
            return result

    def _convert_xlsx(
        self,
        stream: IO[bytes],
        output: TextSink,
        progress: ProgressTracker,
        metrics: PerformanceMetrics,
    ) -> str:
        with XlsxWorkbookReader(stream) as reader:
            decoder = XlsxSheetDecoder(
                output,
                shared_strings=reader.shared_strings,
                formatter=CellValueFormatter(reader.epoch),
                progress=progress,
            )
            with LogContext(sheet=reader.sheet_name):
                try:
                    decoder.consume(reader.iter_events())
                except DecodeError as e:
                    e.attach_sheet(reader.sheet_name)
                    raise
                finally:
                    metrics.rows_written = decoder.rows_written
                    metrics.cells_written = decoder.cells_written
            return reader.sheet_name

    def _convert_xls(
        self,
        stream: IO[bytes],
        output: TextSink,
        progress: ProgressTracker,
        metrics: PerformanceMetrics,
    ) -> str | None:
        with open_workbook_stream(
            stream,
            ignore_workbook_corruption=self.config.xls_ignore_workbook_corruption,
        ) as workbook_stream:
            decoder = XlsSheetDecoder(output, progress=progress)
            try:
                decoder.consume(iter_workbook_records(workbook_stream))
            except DecodeError as e:
                e.attach_sheet(decoder.sheet_name)
                raise
            finally:
                metrics.rows_written = decoder.rows_written
                metrics.cells_written = decoder.cells_written
                metrics.records_processed = decoder.records_processed
            return decoder.sheet_name

    def _detect_format(self, stream: IO[bytes], name: str | None) -> WorkbookFormat:
        stream.seek(0)
        head = stream.read(SNIFF_SIZE)
        stream.seek(0)
        info = FormatDetector().detect_from_content(head, filename=name)
        logger.debug(
            "Format detected",
            format=info.workbook_format.value,
            mime_type=info.mime_type,
            from_content=info.detected_from_content,
        )
        return info.workbook_format

    @contextmanager
    def _open_source(self, source: Source) -> Iterator[tuple[IO[bytes], str | None]]:
        """Yield a seekable binary stream for ``source`` and its display name."""
        if isinstance(source, (str, os.PathLike)):
            path = Path(source)
            if not path.is_file():
                raise WorkbookFileNotFoundError(str(path))
            self._check_size(path.stat().st_size, str(path))
            with path.open("rb") as f:
                yield f, path.name
            return

        name = getattr(source, "name", None)
        name = os.path.basename(name) if isinstance(name, str) else None
        seekable = getattr(source, "seekable", None)
        if seekable is not None and seekable():
            source.seek(0, os.SEEK_END)
            self._check_size(source.tell(), name)
            source.seek(0)
            yield source, name
            return

        temp_dir = self.config.temp_dir
        if temp_dir is not None and not os.path.isdir(temp_dir):
            raise ConfigurationError(
                f"Spool directory does not exist: {temp_dir}", setting_name="temp_dir"
            )
        with tempfile.TemporaryFile(dir=temp_dir) as spool:
            shutil.copyfileobj(source, spool)
            size = spool.tell()
            self._check_size(size, name)
            spool.seek(0)
            logger.debug("Spooled non-seekable input", bytes=size)
            yield spool, name

    def _check_size(self, size: int, file_path: str | None) -> None:
        limit = self.config.max_file_size_bytes
        if limit is not None and size > limit:
            raise FileTooLargeError(size, limit, file_path)


def convert_workbook(
    source: Source,
    output: TextSink,
    workbook_format: WorkbookFormat | str | None = None,
) -> ConversionResult:
    """Convert the first worksheet of any supported workbook."""
    return WorkbookConverter().convert(source, output, workbook_format)


def convert_xlsx(source: Source, output: TextSink) -> ConversionResult:
    return WorkbookConverter().convert(source, output, WorkbookFormat.XLSX)


def convert_xls(source: Source, output: TextSink) -> ConversionResult:
    return WorkbookConverter().convert(source, output, WorkbookFormat.XLS)
