"""Fold of ZIP/XML worksheet events into CSV rows."""

from __future__ import annotations

from collections.abc import Iterable

from openpyxl.utils.exceptions import CellCoordinatesException

from workbook_csv.events import CellEvent, CellKind, RowEnd, RowStart, SheetEvent
from workbook_csv.services.cell_formatter import CellValueFormatter, format_boolean
from workbook_csv.services.csv_rows import (
    ColumnBaseline,
    RowBuffer,
    TextSink,
    column_index,
    numeric_or_quoted,
)
from workbook_csv.services.shared_strings import SharedStringTable
from workbook_csv.utils.exceptions import SheetParseError
from workbook_csv.utils.logging import ProgressTracker, get_logger

logger = get_logger(__name__)


class XlsxSheetDecoder:
    """Writes one CSV line per worksheet row, filling skipped rows and columns.

    Numeric-looking values are written bare, everything else quoted.

    Args:
        output: Text sink receiving CSV lines.
        shared_strings: Shared strings of the workbook.
        formatter: Formatter for numeric and date cells.
        progress: Optional tracker updated once per written line.
    """

    def __init__(
        self,
        output: TextSink,
        shared_strings: SharedStringTable | None = None,
        formatter: CellValueFormatter | None = None,
        progress: ProgressTracker | None = None,
    ) -> None:
        self.shared_strings = shared_strings or SharedStringTable()
        self.formatter = formatter or CellValueFormatter()
        self.baseline = ColumnBaseline()
        self._buffer = RowBuffer(output)
        self._progress = progress

        self._last_row = -1
        self._current_col = -1
        self._first_cell = True
        self.cells_written = 0
        self.finished = False

    @property
    def rows_written(self) -> int:
        return self._buffer.rows_written

    def consume(self, events: Iterable[SheetEvent]) -> None:
        for event in events:
            self.handle(event)
        self.finish()

    def handle(self, event: SheetEvent) -> None:
        if isinstance(event, RowStart):
            self._start_row(event.row)
        elif isinstance(event, CellEvent):
            self._cell(event)
        elif isinstance(event, RowEnd):
            self._end_row(event.row)

    def finish(self) -> None:
        self.finished = True
        logger.debug(
            "Worksheet decoded",
            rows=self.rows_written,
            cells=self.cells_written,
            min_columns=self.baseline.min_columns,
        )

    def display_value(self, event: CellEvent) -> str:
        """Display text of a cell according to its kind and number format."""
        raw = event.raw_value
        if raw is None:
            return ""
        kind = event.kind
        if kind == CellKind.SHARED_STRING:
            return self.shared_strings.resolve(raw)
        if kind == CellKind.BOOLEAN:
            return format_boolean(raw)
        if kind == CellKind.DATE:
            return self.formatter.format_iso_datetime(str(raw), event.number_format)
        if kind == CellKind.NUMBER:
            if isinstance(raw, bool):
                return format_boolean(raw)
            try:
                number = float(raw)
            except (TypeError, ValueError):
                return str(raw)
            return self.formatter.format_number(number, event.number_format)
        return str(raw)

    def _start_row(self, row: int) -> None:
        for _ in range(self._last_row + 1, row):
            self._write_line(self.baseline.blank_row())
        self._last_row = max(self._last_row, row)
        self._current_col = -1
        self._first_cell = True

    def _cell(self, event: CellEvent) -> None:
        if event.reference:
            try:
                this_col = column_index(event.reference)
            except (CellCoordinatesException, ValueError) as e:
                raise SheetParseError(
                    f"Invalid cell reference: {event.reference!r}",
                    details={"row": event.row},
                ) from e
        else:
            this_col = self._current_col + 1

        if not self._first_cell:
            self._buffer.append(",")
        self._first_cell = False
        missed = this_col - self._current_col - 1
        if missed > 0:
            self._buffer.append("," * missed)

        self._buffer.append(numeric_or_quoted(self.display_value(event)))
        self._current_col = this_col
        self.cells_written += 1

    def _end_row(self, row: int) -> None:
        if row == 0:
            self.baseline.observe_header(self._current_col + 1)
        self._buffer.write_line(self.baseline.padding(self._current_col))
        self._tick()

    def _write_line(self, line: str) -> None:
        self._buffer.write_raw_line(line)
        self._tick()

    def _tick(self) -> None:
        if self._progress is not None:
            self._progress.update()
