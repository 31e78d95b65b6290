"""
Sheet access for uploaded spreadsheets.

This module hides the workbook library behind a tiny read-only interface:
- cell_text(row, col): display text of a cell, "" when absent
- last_row(): zero-based index of the last row within the sheet bounds

Both coordinates are zero-based. Accessors never raise for absent cells.
"""

import io
import zipfile
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, BinaryIO, Optional, Protocol, Union

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet._read_only import ReadOnlyWorksheet
from openpyxl.worksheet.worksheet import Worksheet

from .config import logger
from .errors import StructuralError


class Sheet(Protocol):
    """Read-only rectangular grid of cells addressed by (row, col)."""

    def cell_text(self, row: int, col: int) -> str:
        ...

    def last_row(self) -> int:
        ...


# ============================================================================
# Display Text
# ============================================================================

def display_text(value: Any) -> str:
    """
    Render a raw cell value the way a spreadsheet would display it.

    Integral floats lose their trailing ".0" and dates are shown as ISO
    dates, so "100" and "2024-03-01" compare equal to what users typed.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    return str(value)


# ============================================================================
# Sheet Implementations
# ============================================================================

class WorksheetSheet:
    """
    Sheet backed by an openpyxl worksheet.

    Cell values are snapshotted once on construction. openpyxl creates a
    cell on every `cell()` lookup of an editable worksheet, so reads go
    through the snapshot and never grow the worksheet.
    """

    def __init__(self, worksheet: Union[Worksheet, ReadOnlyWorksheet]):
        self._title = worksheet.title
        self._values = self._snapshot_values(worksheet)

        extent_row = max((row for row, _ in self._values), default=0) + 1
        extent_column = max((col for _, col in self._values), default=0) + 1
        self._max_row = max(worksheet.max_row or 1, extent_row)
        self._max_column = max(worksheet.max_column or 1, extent_column)

    @staticmethod
    def _snapshot_values(worksheet) -> dict[tuple[int, int], Any]:
        values: dict[tuple[int, int], Any] = {}

        if isinstance(worksheet, ReadOnlyWorksheet):
            for row, row_values in enumerate(worksheet.iter_rows(values_only=True)):
                for col, value in enumerate(row_values):
                    if value is not None:
                        values[(row, col)] = value
            return values

        # Existing cells only; iter_rows() would create the gaps
        for cell in worksheet._cells.values():
            if cell.value is not None:
                values[(cell.row - 1, cell.column - 1)] = cell.value
        return values

    @property
    def title(self) -> str:
        return self._title

    def cell_text(self, row: int, col: int) -> str:
        if row < 0 or col < 0 or row >= self._max_row or col >= self._max_column:
            return ""
        return display_text(self._values.get((row, col)))

    def last_row(self) -> int:
        return self._max_row - 1


class GridSheet:
    """Sheet backed by a list of row value lists (ragged rows allowed)."""

    def __init__(self, rows: Optional[list[list[Any]]] = None):
        self._rows = [list(row) for row in rows or []]

    def cell_text(self, row: int, col: int) -> str:
        if row < 0 or col < 0 or row >= len(self._rows):
            return ""
        cells = self._rows[row]
        if col >= len(cells):
            return ""
        return display_text(cells[col])

    def last_row(self) -> int:
        return max(len(self._rows) - 1, 0)


# ============================================================================
# Workbook Loading
# ============================================================================

def load_first_sheet(source: Union[bytes, BinaryIO, Path, str]) -> WorksheetSheet:
    """
    Open an .xlsx workbook and return its first worksheet.

    Args:
        source: Raw workbook bytes, a binary stream, or a file path

    Returns:
        WorksheetSheet wrapping the first worksheet

    Raises:
        StructuralError: If the document cannot be read as a workbook
    """
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)

    try:
        workbook = load_workbook(source, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
        logger.error(f"Could not open workbook: {e}")
        raise StructuralError(f"Unable to read spreadsheet: {e}") from e

    try:
        sheet = WorksheetSheet(workbook.worksheets[0])
    finally:
        workbook.close()

    logger.debug(f"Loaded sheet '{sheet.title}' ({sheet.last_row() + 1} rows)")
    return sheet
