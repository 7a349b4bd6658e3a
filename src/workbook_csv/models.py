"""Pydantic models describing detected formats and conversion results."""

from enum import Enum

from pydantic import BaseModel, Field


class WorkbookFormat(str, Enum):
    """Workbook container formats the converter can decode."""

    XLSX = "xlsx"
    """ZIP package of SpreadsheetML parts."""

    XLS = "xls"
    """OLE2 compound document holding a BIFF8 record stream."""


class FormatInfo(BaseModel):
    """Information about a detected workbook format."""

    workbook_format: WorkbookFormat = Field(
        ..., description="Container format used to pick the decoder"
    )
    mime_type: str = Field(..., description="Canonical MIME type of the workbook")
    extension: str = Field(..., description="Canonical file extension with dot")
    detected_from_content: bool = Field(
        default=True,
        description="Whether the format came from content rather than extension",
    )
    original_extension: str | None = Field(
        default=None,
        description="Original extension when it disagrees with the content",
    )


class ConversionResult(BaseModel):
    """Summary of a finished workbook conversion."""

    workbook_format: WorkbookFormat = Field(..., description="Decoded format")
    sheet_name: str | None = Field(
        default=None, description="Name of the converted worksheet"
    )
    rows_written: int = Field(default=0, description="CSV lines written")
    cells_written: int = Field(default=0, description="Cell values written")
    duration_seconds: float = Field(default=0.0, description="Wall-clock time")
