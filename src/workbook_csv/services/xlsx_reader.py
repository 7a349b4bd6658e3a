"""ZIP/XML workbook container reader.

Opens the package with openpyxl's ``ExcelReader`` for the manifest, the
shared strings and the workbook part, then streams the first worksheet's
XML with ``iterparse`` so the full sheet is never materialized.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime
from typing import IO, Any
from zipfile import BadZipFile

from openpyxl.cell.text import Text
from openpyxl.reader.excel import ExcelReader
from openpyxl.styles.numbers import BUILTIN_FORMATS_MAX_SIZE
from openpyxl.styles.stylesheet import Stylesheet
from openpyxl.utils.datetime import CALENDAR_WINDOWS_1900
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.xml.constants import ARC_STYLE, SHEET_MAIN_NS
from openpyxl.xml.functions import fromstring, iterparse

from workbook_csv.events import CellEvent, CellKind, RowEnd, RowStart, SheetEvent
from workbook_csv.services.cell_formatter import resolve_number_format
from workbook_csv.services.shared_strings import SharedStringTable
from workbook_csv.utils.exceptions import (
    ContainerOpenError,
    SheetParseError,
    WorksheetNotFoundError,
)
from workbook_csv.utils.logging import get_logger

logger = get_logger(__name__)

ROW_TAG = "{%s}row" % SHEET_MAIN_NS
CELL_TAG = "{%s}c" % SHEET_MAIN_NS
VALUE_TAG = "{%s}v" % SHEET_MAIN_NS
INLINE_STRING_TAG = "{%s}is" % SHEET_MAIN_NS

CONTAINER = "xlsx"


class StyleTable:
    """Maps cell style indices (the ``s`` attribute) to number format codes."""

    def __init__(self, stylesheet: Stylesheet | None = None) -> None:
        self._format_ids: list[int] = []
        self._custom: dict[int, str] = {}
        if stylesheet is not None:
            self._format_ids = [style.numFmtId for style in stylesheet.cell_styles]
            self._custom = {
                BUILTIN_FORMATS_MAX_SIZE + idx: code
                for idx, code in enumerate(stylesheet.number_formats)
            }

    @classmethod
    def from_archive(cls, archive: Any) -> StyleTable:
        try:
            src = archive.read(ARC_STYLE)
        except KeyError:
            return cls()
        return cls(Stylesheet.from_tree(fromstring(src)))

    def number_format(self, style_id: int) -> str:
        if not 0 <= style_id < len(self._format_ids):
            return "General"
        return resolve_number_format(self._format_ids[style_id], self._custom)


class XlsxWorkbookReader:
    """Reads the first worksheet of a ZIP/XML workbook as sheet events.

    Usage:
        with XlsxWorkbookReader(fileobj) as reader:
            decoder = XlsxSheetDecoder(out, reader.shared_strings)
            decoder.consume(reader.iter_events())
    """

    def __init__(self, source: IO[bytes] | str) -> None:
        try:
            self._reader = ExcelReader(source, read_only=True, data_only=True)
            self._reader.read_manifest()
            self._reader.read_strings()
            self._reader.read_workbook()
        except (BadZipFile, InvalidFileException, KeyError, OSError) as e:
            raise ContainerOpenError(
                f"Could not open ZIP/XML workbook: {e}",
                container=CONTAINER,
                cause=type(e).__name__,
            ) from e

        self.archive = self._reader.archive
        self.shared_strings = SharedStringTable(self._reader.shared_strings)
        self.styles = StyleTable.from_archive(self.archive)
        self.epoch: datetime = self._reader.wb.epoch or CALENDAR_WINDOWS_1900
        self.sheet_name, self.sheet_path = self._first_worksheet()

        logger.debug(
            "Opened ZIP/XML workbook",
            sheet=self.sheet_name,
            shared_strings=len(self.shared_strings),
            uses_1904=self.epoch != CALENDAR_WINDOWS_1900,
        )

    def _first_worksheet(self) -> tuple[str, str]:
        for sheet, rel in self._reader.parser.find_sheets():
            if rel.target not in self._reader.valid_files:
                continue
            if "chartsheet" in rel.Type:
                continue
            return sheet.name, rel.target
        raise WorksheetNotFoundError(container=CONTAINER)

    def iter_events(self) -> Iterator[SheetEvent]:
        """Yield RowStart / CellEvent / RowEnd for the first worksheet."""
        try:
            with self.archive.open(self.sheet_path) as src:
                yield from self._parse(src)
        except SyntaxError as e:
            raise SheetParseError(
                f"Malformed worksheet XML: {e}", sheet_name=self.sheet_name
            ) from e
        except ValueError as e:
            raise SheetParseError(
                f"Invalid worksheet content: {e}", sheet_name=self.sheet_name
            ) from e

    def _parse(self, src: IO[bytes]) -> Iterator[SheetEvent]:
        row_counter = 0
        for _, element in iterparse(src):
            if element.tag != ROW_TAG:
                continue
            r = element.get("r")
            row_counter = int(float(r)) if r else row_counter + 1
            row = row_counter - 1
            yield RowStart(row)
            for cell in element.iter(CELL_TAG):
                event = self._cell_event(cell, row)
                if event is not None:
                    yield event
            yield RowEnd(row)
            element.clear()

    def _cell_event(self, element: Any, row: int) -> CellEvent | None:
        data_type = element.get("t", "n")
        style_id = int(element.get("s", 0) or 0)

        if data_type == CellKind.INLINE_STRING.value:
            child = element.find(INLINE_STRING_TAG)
            if child is None:
                return None
            value: Any = Text.from_tree(child).content
        else:
            value = element.findtext(VALUE_TAG, None)
            if value is None:
                return None

        try:
            kind = CellKind(data_type)
        except ValueError:
            kind = CellKind.NUMBER
        return CellEvent(
            row=row,
            reference=element.get("r"),
            raw_value=value,
            kind=kind,
            number_format=self.styles.number_format(style_id),
        )

    def close(self) -> None:
        self.archive.close()

    def __enter__(self) -> XlsxWorkbookReader:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
