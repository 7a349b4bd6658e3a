"""Services for workbook-to-CSV conversion."""

from workbook_csv.services.converter import (
    WorkbookConverter,
    convert_workbook,
    convert_xls,
    convert_xlsx,
)

__all__ = ["WorkbookConverter", "convert_workbook", "convert_xls", "convert_xlsx"]
