"""BIFF8 record stream reader for compound-binary (.xls) workbooks.

``open_workbook_stream`` finds the ``Workbook`` stream inside the OLE2
container, ``BiffRecordReader`` turns its bytes into typed records and
``with_row_markers`` adds the synthetic markers the sheet decoder relies on
to close column gaps and finished rows.
"""

from __future__ import annotations

import math
import mmap
import struct
from collections.abc import Iterable, Iterator
from enum import IntEnum
from typing import IO, Any

from xlrd.biffh import unpack_unicode
from xlrd.book import unpack_SST_table
from xlrd.compdoc import SIGNATURE, CompDoc, CompDocError
from xlrd.sheet import unpack_RK

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
from workbook_csv.utils.exceptions import (
    ContainerOpenError,
    EncryptedWorkbookError,
    MalformedRecordError,
    UnsupportedFormatError,
)
from workbook_csv.utils.logging import get_logger

logger = get_logger(__name__)

CONTAINER = "xls"
BIFF8_VERSION = 0x0600
WORKBOOK_STREAM_NAMES = ("Workbook", "Book")

_HEADER = struct.Struct("<HH")
_CELL = struct.Struct("<HHH")


class BiffRecordType(IntEnum):
    """BIFF8 record identifiers the converter understands."""

    # Workbook/Worksheet Structure
    BOF = 0x0809
    EOF = 0x000A
    BOUNDSHEET = 0x0085
    FILEPASS = 0x002F
    DATEMODE = 0x0022

    # Cell Content Records
    NUMBER = 0x0203
    RK = 0x027E
    MULRK = 0x00BD
    LABEL = 0x0204
    LABELSST = 0x00FD
    BLANK = 0x0201
    MULBLANK = 0x00BE
    BOOLERR = 0x0205
    FORMULA = 0x0006
    STRING = 0x0207

    # Shared Strings
    SST = 0x00FC
    CONTINUE = 0x003C

    # Formatting Records
    FORMAT = 0x041E
    XF = 0x00E0


# BOF codes of BIFF2, BIFF3 and BIFF4 streams
_LEGACY_BOF_CODES = frozenset({0x0009, 0x0209, 0x0409})

_FORMULA_RESULT_TYPES = {
    0: FormulaResultType.STRING,
    1: FormulaResultType.BOOLEAN,
    2: FormulaResultType.ERROR,
    3: FormulaResultType.EMPTY,
}

_CELL_RECORD_TYPES = (
    BlankRecord,
    BoolErrRecord,
    FormulaRecord,
    LabelRecord,
    LabelSstRecord,
    NumberRecord,
)


class _LoggerStream:
    """File-like adapter so xlrd's diagnostic prints reach our logger."""

    def write(self, text: str) -> int:
        text = text.strip()
        if text:
            logger.debug("OLE2 container message", detail=text)
        return len(text)

    def flush(self) -> None:
        pass


class WorkbookStream:
    """Location of the BIFF record stream inside a byte buffer."""

    def __init__(
        self,
        mem: Any,
        base: int = 0,
        length: int | None = None,
        mapping: mmap.mmap | None = None,
    ) -> None:
        self.mem = mem
        self.base = base
        self.length = len(mem) - base if length is None else length
        self._mapping = mapping

    def records(self) -> BiffRecordReader:
        return BiffRecordReader(self.mem, self.base, self.length)

    def close(self) -> None:
        if self._mapping is not None and not self._mapping.closed:
            self._mapping.close()

    def __enter__(self) -> WorkbookStream:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def _map_source(source: IO[bytes]) -> Any:
    try:
        return mmap.mmap(source.fileno(), 0, access=mmap.ACCESS_READ)
    except (AttributeError, OSError, ValueError):
        source.seek(0)
        return source.read()


def open_workbook_stream(
    source: IO[bytes] | bytes, ignore_workbook_corruption: bool = False
) -> WorkbookStream:
    """Locate the workbook stream of an OLE2 compound document.

    Raw BIFF8 bytes, i.e. a stream already extracted from its container,
    are accepted as they are.

    Raises:
        ContainerOpenError: If the bytes are neither an OLE2 document holding
            a workbook stream nor a raw BIFF stream.
    """
    mem = bytes(source) if isinstance(source, (bytes, bytearray)) else _map_source(source)
    mapping = mem if isinstance(mem, mmap.mmap) else None
    if len(mem) == 0:
        raise ContainerOpenError("Workbook file is empty", container=CONTAINER)

    if mem[:8] != SIGNATURE:
        if len(mem) >= 4 and _HEADER.unpack(mem[:4])[0] in (
            BiffRecordType.BOF,
            *_LEGACY_BOF_CODES,
        ):
            logger.debug("Reading raw BIFF stream without OLE2 container")
            return WorkbookStream(mem, mapping=mapping)
        if mapping is not None:
            mapping.close()
        raise ContainerOpenError(
            "Not an OLE2 compound document", container=CONTAINER, cause="signature"
        )

    try:
        doc = CompDoc(
            mem,
            logfile=_LoggerStream(),
            ignore_workbook_corruption=ignore_workbook_corruption,
        )
        for name in WORKBOOK_STREAM_NAMES:
            stream_mem, base, length = doc.locate_named_stream(name)
            if stream_mem:
                logger.debug("Located workbook stream", stream=name, length=length)
                return WorkbookStream(stream_mem, base, length, mapping=mapping)
    except (CompDocError, AssertionError, struct.error, IndexError) as e:
        if mapping is not None:
            mapping.close()
        raise ContainerOpenError(
            f"Corrupt OLE2 compound document: {e}",
            container=CONTAINER,
            cause=type(e).__name__,
        ) from e

    if mapping is not None:
        mapping.close()
    raise ContainerOpenError(
        "Can't find workbook in OLE2 compound document",
        container=CONTAINER,
        cause="missing_stream",
    )


class BiffRecordReader:
    """Iterates the typed records of a BIFF8 stream in byte-offset order.

    SST CONTINUE records are joined, MULRK and MULBLANK are expanded into
    one record per cell, and records without a counterpart type are
    skipped.
    """

    def __init__(self, mem: Any, base: int = 0, length: int | None = None) -> None:
        self._mem = mem
        self._base = base
        self._end = len(mem) if length is None else base + length
        self.records_read = 0

    def raw_records(self) -> Iterator[tuple[int, int, list[bytes]]]:
        """Yield ``(code, offset, chunks)``; chunks hold CONTINUE payloads for SST."""
        mem = self._mem
        pos = self._base
        end = self._end
        pending: tuple[int, int, list[bytes]] | None = None

        while pos + 4 <= end:
            code, length = _HEADER.unpack(mem[pos : pos + 4])
            offset = pos - self._base
            data = mem[pos + 4 : pos + 4 + length]
            if len(data) < length or pos + 4 + length > end:
                raise MalformedRecordError(
                    f"Record truncated: expected {length} bytes, got {len(data)}",
                    record_code=code,
                    offset=offset,
                )
            pos += 4 + length
            self.records_read += 1

            if code == BiffRecordType.CONTINUE and pending is not None:
                pending[2].append(bytes(data))
                continue
            if pending is not None:
                yield pending
                pending = None
            if code == BiffRecordType.SST:
                pending = (code, offset, [bytes(data)])
                continue
            yield code, offset, [bytes(data)]

        if pending is not None:
            yield pending
        if pos < end and any(mem[pos:end]):
            raise MalformedRecordError(
                "Stream ends inside a record header", offset=pos - self._base
            )

    def __iter__(self) -> Iterator[BiffRecord]:
        first = True
        for code, offset, chunks in self.raw_records():
            if first:
                first = False
                if code in _LEGACY_BOF_CODES:
                    raise UnsupportedFormatError(
                        f"BIFF version older than BIFF8 (BOF 0x{code:04X})"
                    )
                if code != BiffRecordType.BOF:
                    raise MalformedRecordError(
                        "Workbook stream does not start with a BOF record",
                        record_code=code,
                        offset=offset,
                    )
            try:
                yield from self._decode(code, chunks)
            except (struct.error, IndexError, UnicodeDecodeError) as e:
                raise MalformedRecordError(
                    f"Cannot decode record: {e}", record_code=code, offset=offset
                ) from e

    def _decode(self, code: int, chunks: list[bytes]) -> Iterator[BiffRecord]:
        data = chunks[0]

        if code == BiffRecordType.BOF:
            version, substream = struct.unpack("<HH", data[:4])
            if version != BIFF8_VERSION:
                raise UnsupportedFormatError(
                    f"Unsupported BIFF version 0x{version:04X}, only BIFF8 is supported"
                )
            yield BofRecord(version, substream)
        elif code == BiffRecordType.EOF:
            yield EofRecord()
        elif code == BiffRecordType.FILEPASS:
            raise EncryptedWorkbookError(container=CONTAINER)
        elif code == BiffRecordType.BOUNDSHEET:
            offset, visibility, sheet_type = struct.unpack("<IBB", data[:6])
            yield BoundSheetRecord(
                unpack_unicode(data, 6, lenlen=1), offset, visibility, sheet_type
            )
        elif code == BiffRecordType.SST:
            unique = struct.unpack("<i", data[4:8])[0]
            strings, _ = unpack_SST_table(chunks, unique)
            yield SstRecord(strings)
        elif code == BiffRecordType.DATEMODE:
            yield DateModeRecord(struct.unpack("<H", data[:2])[0] == 1)
        elif code == BiffRecordType.FORMAT:
            format_id = struct.unpack("<H", data[:2])[0]
            yield FormatRecord(format_id, unpack_unicode(data, 2, lenlen=2))
        elif code == BiffRecordType.XF:
            yield XfRecord(struct.unpack("<H", data[2:4])[0])
        elif code == BiffRecordType.NUMBER:
            row, col, xf, value = struct.unpack("<HHHd", data[:14])
            yield NumberRecord(row, col, value, xf)
        elif code == BiffRecordType.RK:
            row, col, xf = _CELL.unpack(data[:6])
            yield NumberRecord(row, col, unpack_RK(data[6:10]), xf)
        elif code == BiffRecordType.MULRK:
            row, first_col = struct.unpack("<HH", data[:4])
            last_col = struct.unpack("<H", data[-2:])[0]
            if len(data) != 6 + 6 * (last_col - first_col + 1):
                raise struct.error("MULRK length does not match its column range")
            for i, col in enumerate(range(first_col, last_col + 1)):
                pos = 4 + 6 * i
                xf = struct.unpack("<H", data[pos : pos + 2])[0]
                yield NumberRecord(row, col, unpack_RK(data[pos + 2 : pos + 6]), xf)
        elif code == BiffRecordType.BLANK:
            row, col, xf = _CELL.unpack(data[:6])
            yield BlankRecord(row, col, xf)
        elif code == BiffRecordType.MULBLANK:
            row, first_col = struct.unpack("<HH", data[:4])
            last_col = struct.unpack("<H", data[-2:])[0]
            if len(data) != 6 + 2 * (last_col - first_col + 1):
                raise struct.error("MULBLANK length does not match its column range")
            for i, col in enumerate(range(first_col, last_col + 1)):
                xf = struct.unpack("<H", data[4 + 2 * i : 6 + 2 * i])[0]
                yield BlankRecord(row, col, xf)
        elif code == BiffRecordType.BOOLERR:
            row, col, xf, value, is_error = struct.unpack("<HHHBB", data[:8])
            yield BoolErrRecord(row, col, value, bool(is_error), xf)
        elif code == BiffRecordType.FORMULA:
            yield self._formula(data)
        elif code == BiffRecordType.STRING:
            yield StringRecord(unpack_unicode(data, 0, lenlen=2))
        elif code == BiffRecordType.LABEL:
            row, col, xf = _CELL.unpack(data[:6])
            yield LabelRecord(row, col, unpack_unicode(data, 6, lenlen=2), xf)
        elif code == BiffRecordType.LABELSST:
            row, col, xf, index = struct.unpack("<HHHI", data[:10])
            yield LabelSstRecord(row, col, index, xf)

    @staticmethod
    def _formula(data: bytes) -> FormulaRecord:
        row, col, xf = _CELL.unpack(data[:6])
        result = data[6:14]
        if len(result) < 8:
            raise struct.error("FORMULA record too short for its cached result")
        if result[6:8] == b"\xff\xff":
            result_type = _FORMULA_RESULT_TYPES.get(result[0], FormulaResultType.EMPTY)
            return FormulaRecord(row, col, math.nan, result_type, result[2], xf)
        value = struct.unpack("<d", result)[0]
        return FormulaRecord(row, col, value, FormulaResultType.NUMBER, 0, xf)


def with_row_markers(records: Iterable[BiffRecord]) -> Iterator[BiffRecord]:
    """Insert ``MissingCellMarker`` and ``EndOfRowMarker`` into a record stream.

    Inside a worksheet, every column skipped before a cell gets a missing
    cell marker, every finished row an end-of-row marker, and rows with no
    cell at all get an end-of-row marker with ``last_column=-1``. Row 0 is
    the first row accounted for.
    """
    substreams: list[int] = []
    last_row = -1
    last_col = -1

    for record in records:
        if isinstance(record, BofRecord):
            substreams.append(record.substream_type)
            if record.is_worksheet:
                last_row, last_col = -1, -1
            yield record
            continue

        if isinstance(record, EofRecord):
            closed = substreams.pop() if substreams else None
            if closed == SubstreamType.WORKSHEET and last_row >= 0:
                yield EndOfRowMarker(last_row, last_col)
                last_row, last_col = -1, -1
            yield record
            continue

        in_worksheet = bool(substreams) and substreams[-1] == SubstreamType.WORKSHEET
        if in_worksheet and isinstance(record, _CELL_RECORD_TYPES):
            row, col = record.row, record.column
            if row != last_row:
                if last_row >= 0:
                    yield EndOfRowMarker(last_row, last_col)
                for blank_row in range(last_row + 1, row):
                    yield EndOfRowMarker(blank_row, -1)
                last_row, last_col = row, -1
            for missing in range(last_col + 1, col):
                yield MissingCellMarker(row, missing)
            last_col = max(last_col, col)

        yield record


def iter_workbook_records(stream: WorkbookStream) -> Iterator[BiffRecord]:
    """Typed records of a workbook stream with synthetic markers inserted."""
    return with_row_markers(stream.records())
