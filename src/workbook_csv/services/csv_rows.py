"""Row reconstruction helpers shared by both sheet decoders.

Both decoders keep their own row state but pad and quote the same way:
row 0 fixes a column-count baseline every later row is padded to, and text
fields lose one layer of wrapping quotes before internal quotes are doubled.
"""

from __future__ import annotations

from typing import Protocol

from openpyxl.utils.cell import column_index_from_string, coordinate_from_string

from workbook_csv.services.cell_formatter import looks_numeric


class TextSink(Protocol):
    """Anything accepting CSV text, e.g. an open text file or ``io.StringIO``."""

    def write(self, text: str, /) -> object: ...


class ColumnBaseline:
    """Minimum highest column index every row is padded to.

    Starts unset (-1). The header row raises it to ``width - 1``; it never
    decreases.
    """

    def __init__(self) -> None:
        self.min_columns = -1

    def observe_header(self, width: int) -> None:
        self.min_columns = max(self.min_columns, width - 1)

    def padding(self, last_column: int) -> str:
        """Trailing commas for a row whose last written column is ``last_column``."""
        return "," * max(0, self.min_columns - max(last_column, 0))

    def blank_row(self) -> str:
        """A fully blank row, newline terminated."""
        return "," * max(self.min_columns, 0) + "\n"


def strip_wrapping_quotes(text: str) -> str:
    """Remove one layer of surrounding double quotes, if present."""
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        return text[1:-1]
    return text


def quote_field(text: str) -> str:
    """Always-quoted CSV field with internal quotes doubled."""
    return '"' + strip_wrapping_quotes(text).replace('"', '""') + '"'


def numeric_or_quoted(text: str) -> str:
    """Numeric-looking text unquoted, anything else through ``quote_field``."""
    if looks_numeric(text):
        return text
    return quote_field(text)


def column_index(reference: str) -> int:
    """0-based column of an A1-style reference (``"C7"`` -> 2)."""
    letters, _ = coordinate_from_string(reference)
    return column_index_from_string(letters) - 1


class RowBuffer:
    """Accumulates one CSV line and writes it to the sink when complete."""

    def __init__(self, sink: TextSink) -> None:
        self._sink = sink
        self._parts: list[str] = []
        self.rows_written = 0

    def append(self, text: str) -> None:
        self._parts.append(text)

    def write_line(self, tail: str = "") -> None:
        """Write the buffered fields plus ``tail`` and a newline."""
        self._parts.append(tail)
        self._parts.append("\n")
        self._sink.write("".join(self._parts))
        self._parts.clear()
        self.rows_written += 1

    def write_raw_line(self, line: str) -> None:
        """Write an already terminated line, e.g. a synthesized blank row."""
        self._sink.write(line)
        self.rows_written += 1
