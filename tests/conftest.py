from __future__ import annotations

import zipfile
from collections.abc import Callable, Iterator, Mapping, Sequence
from pathlib import Path
from typing import Any
from xml.sax.saxutils import escape

import pytest
from openpyxl import Workbook

from workbook_csv.utils.logging import clear_context

SHEET_MAIN_NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"
FIRST_SHEET_PART = "xl/worksheets/sheet1.xml"
SHARED_STRINGS_PART = "xl/sharedStrings.xml"
CONTENT_TYPES_PART = "[Content_Types].xml"
WORKBOOK_RELS_PART = "xl/_rels/workbook.xml.rels"
SHARED_STRINGS_CONTENT_TYPE = (
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sharedStrings+xml"
)
SHARED_STRINGS_REL_TYPE = (
    "http://schemas.openxmlformats.org/officeDocument/2006/relationships/sharedStrings"
)


@pytest.fixture(autouse=True)
def _reset_log_context() -> Iterator[None]:
    clear_context()
    yield
    clear_context()


@pytest.fixture
def xlsx_path(tmp_path: Path) -> Callable[..., Path]:
    """Factory saving an openpyxl workbook built from ``{"A1": value}`` cells."""

    def build(
        cells: Mapping[str, Any],
        name: str = "book.xlsx",
        title: str = "Sheet1",
        number_formats: Mapping[str, str] | None = None,
        extra_sheets: Sequence[str] = (),
        epoch: Any = None,
    ) -> Path:
        wb = Workbook()
        if epoch is not None:
            wb.epoch = epoch
        ws = wb.active
        ws.title = title
        for ref, value in cells.items():
            ws[ref] = value
        for ref, fmt in (number_formats or {}).items():
            ws[ref].number_format = fmt
        for sheet_name in extra_sheets:
            wb.create_sheet(sheet_name)["A1"] = "other sheet"
        path = tmp_path / name
        wb.save(path)
        return path

    return build


@pytest.fixture
def sheet_xml_path(tmp_path: Path, xlsx_path: Callable[..., Path]) -> Callable[..., Path]:
    """Factory for a workbook whose first worksheet holds ``sheet_data`` verbatim.

    ``shared_strings`` are written to ``xl/sharedStrings.xml`` in the given
    order, registered in the content types and the workbook relationships.
    """

    def build(
        sheet_data: str,
        shared_strings: Sequence[str] = (),
        name: str = "raw.xlsx",
    ) -> Path:
        base = xlsx_path({"A1": 0}, name=f"base_{name}")
        sheet_xml = (
            f'<worksheet xmlns="{SHEET_MAIN_NS}">'
            f"<sheetData>{sheet_data}</sheetData></worksheet>"
        )
        target = tmp_path / name
        with zipfile.ZipFile(base) as src, zipfile.ZipFile(
            target, "w", zipfile.ZIP_DEFLATED
        ) as dst:
            has_table = SHARED_STRINGS_PART in src.namelist()
            for item in src.infolist():
                if item.filename == SHARED_STRINGS_PART:
                    continue
                data = src.read(item.filename)
                if item.filename == FIRST_SHEET_PART:
                    data = sheet_xml.encode("utf-8")
                elif shared_strings and not has_table:
                    data = _register_shared_strings(item.filename, data)
                dst.writestr(item, data)
            if shared_strings or has_table:
                dst.writestr(SHARED_STRINGS_PART, _shared_strings_xml(shared_strings))
        return target

    return build


def _shared_strings_xml(strings: Sequence[str]) -> bytes:
    items = "".join(f'<si><t xml:space="preserve">{escape(s)}</t></si>' for s in strings)
    return (
        f'<sst xmlns="{SHEET_MAIN_NS}" count="{len(strings)}" '
        f'uniqueCount="{len(strings)}">{items}</sst>'
    ).encode("utf-8")


def _register_shared_strings(filename: str, data: bytes) -> bytes:
    if filename == CONTENT_TYPES_PART:
        override = (
            f'<Override PartName="/{SHARED_STRINGS_PART}" '
            f'ContentType="{SHARED_STRINGS_CONTENT_TYPE}"/>'
        )
        return data.replace(b"</Types>", override.encode("utf-8") + b"</Types>")
    if filename == WORKBOOK_RELS_PART:
        relationship = (
            f'<Relationship Id="rIdSharedStrings" Type="{SHARED_STRINGS_REL_TYPE}" '
            'Target="sharedStrings.xml"/>'
        )
        return data.replace(
            b"</Relationships>", relationship.encode("utf-8") + b"</Relationships>"
        )
    return data
