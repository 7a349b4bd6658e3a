"""Builders for BIFF8 record streams and OLE2 compound documents.

There is no maintained writer for the binary workbook format, so tests
assemble record streams byte by byte and wrap them in a minimal compound
document with a single ``Workbook`` stream.
"""

from __future__ import annotations

import struct
from collections.abc import Sequence

OLE2_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
SECTOR_SIZE = 512
MIN_STANDARD_STREAM = 4096

GLOBALS = 0x0005
WORKSHEET = 0x0010
CHART = 0x0020


def record(code: int, payload: bytes = b"") -> bytes:
    return struct.pack("<HH", code, len(payload)) + payload


def unicode_string(text: str, lenlen: int = 2, compressed: bool = False) -> bytes:
    length = struct.pack("<B" if lenlen == 1 else "<H", len(text))
    if compressed:
        return length + b"\x00" + text.encode("latin-1")
    return length + b"\x01" + text.encode("utf-16-le")


def bof(substream: int = WORKSHEET, version: int = 0x0600) -> bytes:
    return record(0x0809, struct.pack("<HHHHII", version, substream, 0x0DBB, 0x07CC, 0, 0))


def eof() -> bytes:
    return record(0x000A)


def boundsheet(name: str, offset: int, sheet_type: int = 0) -> bytes:
    return record(0x0085, struct.pack("<IBB", offset, 0, sheet_type) + unicode_string(name, 1))


def sst(strings: Sequence[str]) -> bytes:
    body = b"".join(unicode_string(s) for s in strings)
    return record(0x00FC, struct.pack("<ii", len(strings), len(strings)) + body)


def sst_with_continue(strings: Sequence[str], split: int) -> bytes:
    """SST whose string data is split into a CONTINUE record after ``split`` strings."""
    head = b"".join(unicode_string(s) for s in strings[:split])
    tail = b"".join(unicode_string(s) for s in strings[split:])
    return record(0x00FC, struct.pack("<ii", len(strings), len(strings)) + head) + record(
        0x003C, tail
    )


def label_sst(row: int, col: int, index: int, xf: int = 0) -> bytes:
    return record(0x00FD, struct.pack("<HHHI", row, col, xf, index))


def label(row: int, col: int, text: str, xf: int = 0) -> bytes:
    return record(0x0204, struct.pack("<HHH", row, col, xf) + unicode_string(text))


def number(row: int, col: int, value: float, xf: int = 0) -> bytes:
    return record(0x0203, struct.pack("<HHHd", row, col, xf, value))


def _rk_int(value: int) -> int:
    return (value << 2) | 0x02


def rk(row: int, col: int, value: int, xf: int = 0) -> bytes:
    return record(0x027E, struct.pack("<HHHi", row, col, xf, _rk_int(value)))


def mulrk(row: int, first_col: int, values: Sequence[int], xf: int = 0) -> bytes:
    body = b"".join(struct.pack("<Hi", xf, _rk_int(v)) for v in values)
    last_col = first_col + len(values) - 1
    return record(0x00BD, struct.pack("<HH", row, first_col) + body + struct.pack("<H", last_col))


def blank(row: int, col: int, xf: int = 0) -> bytes:
    return record(0x0201, struct.pack("<HHH", row, col, xf))


def mulblank(row: int, first_col: int, last_col: int, xf: int = 0) -> bytes:
    body = struct.pack("<H", xf) * (last_col - first_col + 1)
    return record(0x00BE, struct.pack("<HH", row, first_col) + body + struct.pack("<H", last_col))


def boolerr(row: int, col: int, value: int, is_error: bool = False, xf: int = 0) -> bytes:
    return record(0x0205, struct.pack("<HHHBB", row, col, xf, value, int(is_error)))


def _formula(row: int, col: int, result: bytes, xf: int = 0) -> bytes:
    return record(0x0006, struct.pack("<HHH", row, col, xf) + result + struct.pack("<HIH", 0, 0, 0))


def formula_number(row: int, col: int, value: float, xf: int = 0) -> bytes:
    return _formula(row, col, struct.pack("<d", value), xf)


def formula_string(row: int, col: int, xf: int = 0) -> bytes:
    return _formula(row, col, bytes([0, 0, 0, 0, 0, 0, 0xFF, 0xFF]), xf)


def formula_boolean(row: int, col: int, value: bool, xf: int = 0) -> bytes:
    return _formula(row, col, bytes([1, 0, int(value), 0, 0, 0, 0xFF, 0xFF]), xf)


def formula_error(row: int, col: int, code: int, xf: int = 0) -> bytes:
    return _formula(row, col, bytes([2, 0, code, 0, 0, 0, 0xFF, 0xFF]), xf)


def formula_empty(row: int, col: int, xf: int = 0) -> bytes:
    return _formula(row, col, bytes([3, 0, 0, 0, 0, 0, 0xFF, 0xFF]), xf)


def string(text: str) -> bytes:
    return record(0x0207, unicode_string(text))


def format_record(format_id: int, code: str) -> bytes:
    return record(0x041E, struct.pack("<H", format_id) + unicode_string(code))


def xf(format_id: int) -> bytes:
    return record(0x00E0, struct.pack("<HH", 0, format_id) + b"\x00" * 16)


def datemode(uses_1904: bool) -> bytes:
    return record(0x0022, struct.pack("<H", int(uses_1904)))


def filepass() -> bytes:
    return record(0x002F, b"\x00\x00")


def workbook_stream(
    sheets: Sequence[tuple[str, Sequence[bytes]]],
    globals_records: Sequence[bytes] = (),
) -> bytes:
    """Globals substream followed by one substream per ``(name, records)``."""
    bodies = [bof(WORKSHEET) + b"".join(records) + eof() for _, records in sheets]
    placeholder = [boundsheet(name, 0) for name, _ in sheets]
    head_len = len(bof(GLOBALS)) + sum(map(len, globals_records)) + sum(map(len, placeholder))
    offset = head_len + len(eof())

    sheet_records = []
    for (name, _), body in zip(sheets, bodies, strict=True):
        sheet_records.append(boundsheet(name, offset))
        offset += len(body)

    return (
        bof(GLOBALS)
        + b"".join(globals_records)
        + b"".join(sheet_records)
        + eof()
        + b"".join(bodies)
    )


def _dir_entry(name: str, entry_type: int, child: int, start: int, size: int) -> bytes:
    encoded = (name + "\x00").encode("utf-16-le") if name else b""
    return (
        encoded.ljust(64, b"\x00")
        + struct.pack("<HBBiii", len(encoded), entry_type, 1, -1, -1, child)
        + b"\x00" * 36
        + struct.pack("<iII", start, size, 0)
    )


def ole2_document(stream: bytes, stream_name: str = "Workbook") -> bytes:
    """Compound document holding ``stream`` as its only user stream."""
    size = max(len(stream), MIN_STANDARD_STREAM)
    size += -size % SECTOR_SIZE
    data = stream.ljust(size, b"\x00")
    n_sectors = size // SECTOR_SIZE
    if n_sectors > 126:
        raise ValueError("stream too large for a single FAT sector")

    fat = [-3, -2]
    fat += [2 + i + 1 for i in range(n_sectors - 1)] + [-2]
    fat += [-1] * (128 - len(fat))

    header = (
        OLE2_SIGNATURE
        + b"\x00" * 16
        + struct.pack("<HHHHH", 0x3E, 3, 0xFFFE, 9, 6)
        + b"\x00" * 6
        + struct.pack("<iiiiiiiii", 0, 1, 1, 0, MIN_STANDARD_STREAM, -2, 0, -2, 0)
        + struct.pack("<109i", 0, *([-1] * 108))
    )
    directory = (
        _dir_entry("Root Entry", 5, 1, -2, 0)
        + _dir_entry(stream_name, 2, -1, 2, size)
        + _dir_entry("", 0, -1, 0, 0)
        + _dir_entry("", 0, -1, 0, 0)
    )
    return header + struct.pack("<128i", *fat) + directory + data
