"""Dataclasses for the events and records the sheet decoders consume.

The ZIP/XML reader yields ``RowStart``, ``CellEvent`` and ``RowEnd``. The
BIFF reader yields the record types below, including the synthetic
``MissingCellMarker`` and ``EndOfRowMarker`` that close column and row gaps.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CellKind(str, Enum):
    """Value kinds of a SpreadsheetML cell (its ``t`` attribute)."""

    NUMBER = "n"
    SHARED_STRING = "s"
    INLINE_STRING = "inlineStr"
    FORMULA_STRING = "str"
    BOOLEAN = "b"
    ERROR = "e"
    DATE = "d"


# ---------------------------------------------------------------------------
# ZIP/XML worksheet events
# ---------------------------------------------------------------------------


@dataclass
class RowStart:
    """A ``<row>`` element begins."""

    row: int


@dataclass
class CellEvent:
    """A cell carrying a cached value."""

    row: int
    reference: str | None
    raw_value: Any
    kind: CellKind = CellKind.NUMBER
    number_format: str = "General"


@dataclass
class RowEnd:
    """A ``<row>`` element ends."""

    row: int


SheetEvent = RowStart | CellEvent | RowEnd


# ---------------------------------------------------------------------------
# BIFF8 records
# ---------------------------------------------------------------------------


class SubstreamType(int, Enum):
    """BOF substream types."""

    WORKBOOK_GLOBALS = 0x0005
    VISUAL_BASIC = 0x0006
    WORKSHEET = 0x0010
    CHART = 0x0020
    MACRO_SHEET = 0x0040
    WORKSPACE = 0x0100


class FormulaResultType(str, Enum):
    """Kind of cached result stored in a FORMULA record."""

    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    ERROR = "error"
    EMPTY = "empty"


@dataclass
class BofRecord:
    version: int
    substream_type: int

    @property
    def is_worksheet(self) -> bool:
        return self.substream_type == SubstreamType.WORKSHEET


@dataclass
class EofRecord:
    pass


@dataclass
class BoundSheetRecord:
    name: str
    offset: int
    visibility: int = 0
    sheet_type: int = 0

    @property
    def is_worksheet(self) -> bool:
        return self.sheet_type == 0


@dataclass
class SstRecord:
    strings: list[str] = field(default_factory=list)


@dataclass
class FormatRecord:
    format_id: int
    format_code: str


@dataclass
class XfRecord:
    format_id: int


@dataclass
class DateModeRecord:
    uses_1904: bool


@dataclass
class BlankRecord:
    row: int
    column: int
    xf_index: int = 0


@dataclass
class BoolErrRecord:
    row: int
    column: int
    value: int
    is_error: bool = False
    xf_index: int = 0


@dataclass
class FormulaRecord:
    """FORMULA cell. ``value`` is NaN unless the cached result is a number."""

    row: int
    column: int
    value: float
    result_type: FormulaResultType = FormulaResultType.NUMBER
    result_code: int = 0
    xf_index: int = 0


@dataclass
class StringRecord:
    """String result of the preceding FORMULA record."""

    text: str


@dataclass
class LabelRecord:
    row: int
    column: int
    text: str
    xf_index: int = 0


@dataclass
class LabelSstRecord:
    row: int
    column: int
    sst_index: int
    xf_index: int = 0


@dataclass
class NumberRecord:
    row: int
    column: int
    value: float
    xf_index: int = 0


@dataclass
class MissingCellMarker:
    """Synthetic: no record exists for this cell."""

    row: int
    column: int


@dataclass
class EndOfRowMarker:
    """Synthetic: ``row`` is complete. ``last_column`` is -1 for blank rows."""

    row: int
    last_column: int = -1


CellRecord = (
    BlankRecord
    | BoolErrRecord
    | FormulaRecord
    | LabelRecord
    | LabelSstRecord
    | NumberRecord
)

BiffRecord = (
    BofRecord
    | EofRecord
    | BoundSheetRecord
    | SstRecord
    | FormatRecord
    | XfRecord
    | DateModeRecord
    | CellRecord
    | StringRecord
    | MissingCellMarker
    | EndOfRowMarker
)
