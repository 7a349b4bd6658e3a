"""Workbook container format detection.

This module detects whether a file is a ZIP/XML workbook or an OLE2 BIFF
workbook from its magic bytes, falling back to container signatures and then
to the file extension.
"""

from pathlib import Path

import magic
from xlrd.compdoc import SIGNATURE as OLE2_SIGNATURE

from workbook_csv.models import FormatInfo, WorkbookFormat
from workbook_csv.utils.exceptions import UnsupportedFormatError
from workbook_csv.utils.logging import get_logger

logger = get_logger(__name__)

__all__ = [
    "FormatDetector",
    "EXTENSION_TO_MIME",
    "MIME_TO_FORMAT",
]

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLSM_MIME = "application/vnd.ms-excel.sheet.macroEnabled.12"
XLS_MIME = "application/vnd.ms-excel"

ZIP_SIGNATURE = b"PK\x03\x04"
RAW_BIFF_SIGNATURE = b"\x09\x08"

# Number of leading bytes handed to libmagic
SNIFF_SIZE = 64 * 1024

EXTENSION_TO_MIME: dict[str, str] = {
    ".xlsx": XLSX_MIME,
    ".xlsm": XLSM_MIME,
    ".xltx": XLSX_MIME,
    ".xltm": XLSM_MIME,
    ".xls": XLS_MIME,
    ".xlt": XLS_MIME,
}

MIME_TO_FORMAT: dict[str, WorkbookFormat] = {
    XLSX_MIME: WorkbookFormat.XLSX,
    XLSM_MIME: WorkbookFormat.XLSX,
    XLS_MIME: WorkbookFormat.XLS,
}

FORMAT_TO_EXTENSION: dict[WorkbookFormat, str] = {
    WorkbookFormat.XLSX: ".xlsx",
    WorkbookFormat.XLS: ".xls",
}

# Generic container MIME types libmagic reports for workbooks it cannot name
CONTAINER_MIME_TYPES = {
    "application/zip",
    "application/x-zip-compressed",
    "application/octet-stream",
    "application/x-ole-storage",
    "application/vnd.ms-office",
    "application/cdfv2",
    "application/CDFV2",
    "application/CDF V2",
    "application/CDFV2-corrupt",
}


class FormatDetector:
    """Detects the container format of a workbook.

    Uses magic bytes first. Generic ZIP or OLE2 results are resolved from the
    container signature, and the file extension is the last resort.
    """

    def __init__(self) -> None:
        """Initialize the format detector with a magic instance."""
        self._magic = magic.Magic(mime=True)

    def detect_from_content(
        self,
        content: bytes,
        filename: str | None = None,
    ) -> FormatInfo:
        """Detect format from the leading bytes of a file.

        Args:
            content: File content, or at least its first few kilobytes.
            filename: Optional filename for extension-based fallback.

        Raises:
            UnsupportedFormatError: If the format is not supported.
        """
        original_extension = None
        if filename:
            ext = Path(filename).suffix.lower()
            original_extension = ext if ext else None

        detected_mime = self._detect_mime_from_content(content)
        mime_from_extension = EXTENSION_TO_MIME.get(original_extension or "")

        workbook_format: WorkbookFormat | None = None
        detected_from_content = True

        if detected_mime in MIME_TO_FORMAT:
            workbook_format = MIME_TO_FORMAT[detected_mime]
        elif detected_mime and detected_mime not in CONTAINER_MIME_TYPES:
            raise UnsupportedFormatError(
                f"Unsupported workbook format: {detected_mime}",
                detected_mime=detected_mime,
                file_path=filename,
            )
        else:
            workbook_format = self._detect_from_signature(content)
            if workbook_format is None and mime_from_extension:
                workbook_format = MIME_TO_FORMAT[mime_from_extension]
                detected_from_content = False

        if workbook_format is None:
            raise UnsupportedFormatError(
                "Unable to detect workbook format. Supported extensions: "
                f"{', '.join(self.get_supported_extensions())}",
                detected_mime=detected_mime,
                file_path=filename,
            )

        mismatched_extension: str | None = None
        if (
            detected_from_content
            and mime_from_extension
            and MIME_TO_FORMAT[mime_from_extension] != workbook_format
        ):
            mismatched_extension = original_extension
            logger.warning(
                "File extension does not match detected workbook format",
                extension=original_extension,
                detected_format=workbook_format.value,
            )

        mime_type = detected_mime if detected_mime in MIME_TO_FORMAT else (
            XLSX_MIME if workbook_format == WorkbookFormat.XLSX else XLS_MIME
        )
        return FormatInfo(
            workbook_format=workbook_format,
            mime_type=mime_type,
            extension=FORMAT_TO_EXTENSION[workbook_format],
            detected_from_content=detected_from_content,
            original_extension=mismatched_extension,
        )

    def _detect_mime_from_content(self, content: bytes) -> str | None:
        """Detect MIME type from file content using magic bytes."""
        if not content:
            return None

        try:
            detected: str = self._magic.from_buffer(content)
            return detected
        except Exception as e:
            logger.warning(
                "Magic detection failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    @staticmethod
    def _detect_from_signature(content: bytes) -> WorkbookFormat | None:
        if content.startswith(ZIP_SIGNATURE):
            return WorkbookFormat.XLSX
        if content.startswith(OLE2_SIGNATURE) or content.startswith(RAW_BIFF_SIGNATURE):
            return WorkbookFormat.XLS
        return None

    @staticmethod
    def get_supported_extensions() -> list[str]:
        """Get list of supported file extensions."""
        return sorted(EXTENSION_TO_MIME.keys())
