"""Fold of BIFF8 records into CSV rows."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from openpyxl.utils.datetime import CALENDAR_MAC_1904, CALENDAR_WINDOWS_1900

from workbook_csv.events import (
    BiffRecord,
    BlankRecord,
    BofRecord,
    BoolErrRecord,
    BoundSheetRecord,
    DateModeRecord,
    EndOfRowMarker,
    EofRecord,
    FormatRecord,
    FormulaRecord,
    FormulaResultType,
    LabelRecord,
    LabelSstRecord,
    MissingCellMarker,
    NumberRecord,
    SstRecord,
    StringRecord,
    SubstreamType,
    XfRecord,
)
from workbook_csv.services.cell_formatter import (
    CellValueFormatter,
    format_boolean,
    format_error_code,
    normalize_record_number,
    resolve_number_format,
)
from workbook_csv.services.csv_rows import ColumnBaseline, RowBuffer, TextSink, quote_field
from workbook_csv.services.shared_strings import SharedStringTable
from workbook_csv.utils.exceptions import RecordSequenceError
from workbook_csv.utils.logging import ProgressTracker, get_logger

logger = get_logger(__name__)


@dataclass
class PendingFormula:
    """Cell whose formula result arrives in the next STRING record."""

    row: int
    column: int


class XlsSheetDecoder:
    """Writes the first worksheet of a BIFF8 record stream as CSV.

    Every value is quoted. Records after the first worksheet are ignored.

    Args:
        output: Text sink receiving CSV lines.
        formatter: Formatter for formula results; its epoch follows DATEMODE.
        progress: Optional tracker updated once per written line.
    """

    def __init__(
        self,
        output: TextSink,
        formatter: CellValueFormatter | None = None,
        progress: ProgressTracker | None = None,
    ) -> None:
        self.shared_strings = SharedStringTable()
        self.formatter = formatter or CellValueFormatter()
        self.baseline = ColumnBaseline()
        self._buffer = RowBuffer(output)
        self._progress = progress

        self._sheet_index = -1
        self._substreams: list[int] = []
        self._sheets: list[BoundSheetRecord] = []
        self._custom_formats: dict[int, str] = {}
        self._xf_formats: list[int] = []
        self._pending: PendingFormula | None = None

        self._last_column = -1
        self.cells_written = 0
        self.records_processed = 0
        self.finished = False

    @property
    def rows_written(self) -> int:
        return self._buffer.rows_written

    @property
    def sheet_name(self) -> str | None:
        """Name of the first worksheet, from the workbook's BOUNDSHEET records."""
        worksheets = sorted(
            (s for s in self._sheets if s.is_worksheet), key=lambda s: s.offset
        )
        return worksheets[0].name if worksheets else None

    def consume(self, records: Iterable[BiffRecord]) -> None:
        for record in records:
            self.handle(record)
            if self.finished:
                break
        self.finish()

    def finish(self) -> None:
        self.finished = True
        logger.debug(
            "Worksheet decoded",
            sheet=self.sheet_name,
            rows=self.rows_written,
            cells=self.cells_written,
            records=self.records_processed,
        )

    def handle(self, record: BiffRecord) -> None:
        if self.finished:
            return
        self.records_processed += 1

        if self._pending is not None and not isinstance(record, StringRecord):
            raise RecordSequenceError(
                f"{type(record).__name__} arrived while a formula string result was pending",
                row=self._pending.row,
                column=self._pending.column,
            )

        if isinstance(record, BofRecord):
            self._begin_substream(record)
        elif isinstance(record, EofRecord):
            self._end_substream()
        elif isinstance(record, BoundSheetRecord):
            self._sheets.append(record)
        elif isinstance(record, SstRecord):
            self.shared_strings.load(record.strings)
        elif isinstance(record, FormatRecord):
            self._custom_formats[record.format_id] = record.format_code
        elif isinstance(record, XfRecord):
            self._xf_formats.append(record.format_id)
        elif isinstance(record, DateModeRecord):
            self.formatter.epoch = CALENDAR_MAC_1904 if record.uses_1904 else CALENDAR_WINDOWS_1900
        elif isinstance(record, StringRecord):
            self._complete_pending(record)
        elif isinstance(record, EndOfRowMarker):
            self._end_row(record)
        else:
            self._cell(record)

    def _begin_substream(self, record: BofRecord) -> None:
        self._substreams.append(record.substream_type)
        if record.is_worksheet:
            self._sheet_index += 1
            if self._sheet_index > 0:
                self.finished = True
            else:
                logger.debug("Decoding worksheet", sheet=self.sheet_name)

    def _end_substream(self) -> None:
        closed = self._substreams.pop() if self._substreams else None
        if closed == SubstreamType.WORKSHEET and self._sheet_index == 0:
            self.finished = True

    def _cell(self, record: BiffRecord) -> None:
        if isinstance(record, MissingCellMarker):
            self._emit(record.row, record.column, "")
        elif isinstance(record, BlankRecord):
            self._emit(record.row, record.column, "")
        elif isinstance(record, BoolErrRecord):
            text = (
                format_error_code(record.value)
                if record.is_error
                else format_boolean(record.value)
            )
            self._emit(record.row, record.column, text)
        elif isinstance(record, FormulaRecord):
            self._formula(record)
        elif isinstance(record, LabelRecord):
            self._emit(record.row, record.column, record.text)
        elif isinstance(record, LabelSstRecord):
            self._emit(record.row, record.column, self.shared_strings.resolve(record.sst_index))
        elif isinstance(record, NumberRecord):
            self._emit(record.row, record.column, normalize_record_number(record.value))

    def _formula(self, record: FormulaRecord) -> None:
        result_type = record.result_type
        if result_type == FormulaResultType.STRING:
            self._pending = PendingFormula(record.row, record.column)
        elif result_type == FormulaResultType.BOOLEAN:
            self._emit(record.row, record.column, format_boolean(record.result_code))
        elif result_type == FormulaResultType.ERROR:
            self._emit(record.row, record.column, format_error_code(record.result_code))
        elif result_type == FormulaResultType.EMPTY:
            self._emit(record.row, record.column, "")
        else:
            text = self.formatter.format_number(
                record.value, self.number_format(record.xf_index)
            )
            self._emit(record.row, record.column, text)

    def _complete_pending(self, record: StringRecord) -> None:
        if self._pending is None:
            raise RecordSequenceError("STRING record without a preceding formula")
        pending, self._pending = self._pending, None
        self._emit(pending.row, pending.column, record.text)

    def number_format(self, xf_index: int) -> str:
        """Format code of the XF record at ``xf_index``."""
        if not 0 <= xf_index < len(self._xf_formats):
            return "General"
        return resolve_number_format(self._xf_formats[xf_index], self._custom_formats)

    def _emit(self, row: int, column: int, text: str) -> None:
        if column > 0:
            self._buffer.append(",")
        self._buffer.append(quote_field(text))
        self._last_column = column
        self.cells_written += 1

    def _end_row(self, marker: EndOfRowMarker) -> None:
        if marker.row == 0:
            self.baseline.observe_header(self._last_column + 1)
        self._buffer.write_line(self.baseline.padding(self._last_column))
        self._last_column = -1
        if self._progress is not None:
            self._progress.update()
