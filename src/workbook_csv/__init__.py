"""Workbook CSV - streaming conversion of .xlsx and .xls worksheets to CSV."""

from workbook_csv.services.converter import (
    WorkbookConverter,
    convert_workbook,
    convert_xls,
    convert_xlsx,
)

__all__ = ["WorkbookConverter", "convert_workbook", "convert_xls", "convert_xlsx"]
__version__ = "0.1.0"
