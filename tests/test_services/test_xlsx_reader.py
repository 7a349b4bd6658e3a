"""Tests for the ZIP/XML workbook reader."""

from __future__ import annotations

import io
import zipfile
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import pytest
from openpyxl.utils.datetime import CALENDAR_MAC_1904

from workbook_csv.events import CellEvent, CellKind, RowEnd, RowStart
from workbook_csv.services.cell_formatter import CellValueFormatter
from workbook_csv.services.xlsx_decoder import XlsxSheetDecoder
from workbook_csv.services.xlsx_reader import StyleTable, XlsxWorkbookReader
from workbook_csv.utils.exceptions import ContainerOpenError, SheetParseError


def _convert(path: Path) -> str:
    out = io.StringIO()
    with XlsxWorkbookReader(str(path)) as reader:
        decoder = XlsxSheetDecoder(
            out, reader.shared_strings, CellValueFormatter(reader.epoch)
        )
        decoder.consume(reader.iter_events())
    return out.getvalue()


def test_reads_first_sheet_events(xlsx_path: Callable[..., Path]) -> None:
    path = xlsx_path({"A1": "Name", "B1": 12})
    with XlsxWorkbookReader(str(path)) as reader:
        assert reader.sheet_name == "Sheet1"
        events = list(reader.iter_events())
        decoder = XlsxSheetDecoder(io.StringIO(), reader.shared_strings)

    assert events[0] == RowStart(0)
    assert events[-1] == RowEnd(0)
    name_cell, number_cell = events[1], events[2]
    assert isinstance(name_cell, CellEvent)
    assert name_cell.reference == "A1"
    assert name_cell.kind in (CellKind.SHARED_STRING, CellKind.INLINE_STRING)
    assert decoder.display_value(name_cell) == "Name"
    assert number_cell == CellEvent(0, "B1", "12", CellKind.NUMBER, "General")


def test_shared_string_cells(sheet_xml_path: Callable[..., Path]) -> None:
    path = sheet_xml_path(
        '<row r="1">'
        '<c r="A1" t="s"><v>0</v></c>'
        '<c r="B1" t="s"><v>1</v></c>'
        '<c r="C1" t="s"><v>2</v></c>'
        "</row>"
        '<row r="6"><c r="A6" t="s"><v>3</v></c><c r="B6"><v>1000000</v></c></row>',
        shared_strings=["A", "B", "C", 'say "hi"'],
    )
    with XlsxWorkbookReader(str(path)) as reader:
        assert len(reader.shared_strings) == 4
        events = list(reader.iter_events())
    assert events[1] == CellEvent(0, "A1", "0", CellKind.SHARED_STRING, "General")

    assert _convert(path) == (
        '"A","B","C"\n,,\n,,\n,,\n,,\n"say ""hi""",1000000,\n'
    )


def test_converts_mixed_values(xlsx_path: Callable[..., Path]) -> None:
    path = xlsx_path(
        {
            "A1": "Name",
            "B1": "Amount",
            "A2": "Alice",
            "B2": 123.45,
            "C2": True,
            "A3": "Bob",
            "B3": 10,
        }
    )
    assert _convert(path) == '"Name","Amount"\n"Alice",123.45,"TRUE"\n"Bob",10\n'


def test_integral_numbers_have_no_exponent(xlsx_path: Callable[..., Path]) -> None:
    path = xlsx_path({"A1": 1000000, "B1": 1e15})
    assert _convert(path) == "1000000,1000000000000000\n"


def test_gap_rows_match_header_width(xlsx_path: Callable[..., Path]) -> None:
    path = xlsx_path({"A1": "A", "B1": "B", "C1": "C", "A6": "x"})
    lines = _convert(path).splitlines(keepends=True)
    assert len(lines) == 6
    assert lines[1:5] == [",,\n"] * 4
    assert lines[5] == '"x",,\n'


def test_number_formats_from_styles(xlsx_path: Callable[..., Path]) -> None:
    path = xlsx_path(
        {"A1": 2.5, "B1": 1234.5, "C1": datetime(2024, 1, 15), "D1": 0.25},
        number_formats={
            "A1": "0.00",
            "B1": "#,##0.000",
            "C1": "yyyy-mm-dd",
            "D1": "0%",
        },
    )
    assert _convert(path) == '2.50,"1,234.500","2024-01-15","25%"\n'


def test_1904_date_system(xlsx_path: Callable[..., Path]) -> None:
    path = xlsx_path(
        {"A1": 1}, number_formats={"A1": "yyyy-mm-dd"}, epoch=CALENDAR_MAC_1904
    )
    with XlsxWorkbookReader(str(path)) as reader:
        assert reader.epoch == CALENDAR_MAC_1904
    assert _convert(path) == '"1904-01-02"\n'


def test_only_first_sheet_is_read(xlsx_path: Callable[..., Path]) -> None:
    path = xlsx_path({"A1": "first"}, title="Data", extra_sheets=["Second"])
    with XlsxWorkbookReader(str(path)) as reader:
        assert reader.sheet_name == "Data"
    assert _convert(path) == '"first"\n'


def test_rows_without_reference_continue_counter(
    sheet_xml_path: Callable[..., Path],
) -> None:
    path = sheet_xml_path("<row><c><v>1</v></c></row><row><c><v>2</v></c></row>")
    assert _convert(path) == "1\n2\n"


def test_row_and_column_gaps(sheet_xml_path: Callable[..., Path]) -> None:
    path = sheet_xml_path(
        '<row r="1"><c r="A1" t="inlineStr"><is><t>head</t></is></c>'
        '<c r="B1"><v>1</v></c></row>'
        '<row r="4"><c r="B4"><v>2</v></c></row>'
    )
    assert _convert(path) == '"head",1\n,\n,\n,2\n'


def test_cells_without_cached_value_are_skipped(
    sheet_xml_path: Callable[..., Path],
) -> None:
    path = sheet_xml_path('<row r="1"><c r="A1"><f>1+1</f></c><c r="B1"><v>3</v></c></row>')
    assert _convert(path) == ",3\n"


def test_cell_types(sheet_xml_path: Callable[..., Path]) -> None:
    path = sheet_xml_path(
        '<row r="1">'
        '<c r="A1" t="s"><v>1</v></c>'
        '<c r="B1" t="e"><v>#N/A</v></c>'
        '<c r="C1" t="str"><v>formula text</v></c>'
        '<c r="D1" t="b"><v>0</v></c>'
        '<c r="E1" t="d"><v>2024-01-15T00:00:00</v></c>'
        "</row>",
        shared_strings=["alpha", "beta"],
    )
    assert _convert(path) == (
        '"beta","#N/A","formula text","FALSE","2024-01-15 0:00:00"\n'
    )


def test_malformed_xml_raises_sheet_parse_error(
    sheet_xml_path: Callable[..., Path],
) -> None:
    path = sheet_xml_path('<row r="1"><c r="A1"><v>1</v></row>')
    with pytest.raises(SheetParseError) as exc_info:
        _convert(path)
    assert exc_info.value.sheet_name == "Sheet1"


def test_invalid_row_index_raises_sheet_parse_error(
    sheet_xml_path: Callable[..., Path],
) -> None:
    path = sheet_xml_path('<row r="abc"><c r="A1"><v>1</v></c></row>')
    with pytest.raises(SheetParseError):
        _convert(path)


def test_not_a_zip_raises_container_open_error() -> None:
    with pytest.raises(ContainerOpenError) as exc_info:
        XlsxWorkbookReader(io.BytesIO(b"this is not a workbook"))
    assert exc_info.value.details["container"] == "xlsx"


def test_zip_without_workbook_raises_container_open_error() -> None:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("hello.txt", "hi")
    buffer.seek(0)
    with pytest.raises(ContainerOpenError):
        XlsxWorkbookReader(buffer)


class TestStyleTable:
    def test_empty_table_is_general(self) -> None:
        assert StyleTable().number_format(0) == "General"
        assert StyleTable().number_format(5) == "General"

    def test_missing_styles_part(self) -> None:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            zf.writestr("hello.txt", "hi")
        with zipfile.ZipFile(buffer) as archive:
            assert StyleTable.from_archive(archive).number_format(1) == "General"
