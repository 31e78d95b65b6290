"""
Shared fixtures for building invoice spreadsheets in memory.
"""

import io
from typing import Any

import pytest
from openpyxl import Workbook

from invoice_intake.sheet import GridSheet


HEADER = [
    "Customer",
    "Cust No",
    "Project Type",
    "Quantity",
    "Price Per Item",
    "Price Currency",
    "Total Price",
    "Invoice Currency",
    "Status",
]

MANDATORY_FIELDS = [field.lower() for field in HEADER]


def invoice_rows() -> list[list[Any]]:
    """
    A typical upload: month label, rate block, blank line, header, data.

    Row 5 is the header, so data starts at row 6.
    """
    return [
        ["2024-03"],
        [],
        ["USD Rate", 1.0],
        ["EUR Rate", 0.9],
        [],
        HEADER,
        ["Acme Corp", "C-1", "Consulting", 10, 10, "EUR", 100, "EUR", "Ready"],
        ["Globex", "C-2", "Support", 2, 50, "USD", 100, "usd", "ready"],
        ["Initech", "C-3", "Licenses", 1, 30, "EUR", 30, "EUR", "Draft"],
        [None, "C-4", "Consulting", 1, 20, "GBP", 20, "GBP", "READY"],
    ]


def build_workbook_bytes(rows: list[list[Any]]) -> bytes:
    """Write rows to the first sheet of a fresh workbook and return .xlsx bytes."""
    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = "Invoices"
    for row_index, row in enumerate(rows, start=1):
        for col_index, value in enumerate(row, start=1):
            if value is not None:
                worksheet.cell(row=row_index, column=col_index, value=value)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def mandatory_fields() -> list[str]:
    return list(MANDATORY_FIELDS)


@pytest.fixture
def invoice_sheet() -> GridSheet:
    return GridSheet(invoice_rows())


@pytest.fixture
def invoice_workbook() -> bytes:
    return build_workbook_bytes(invoice_rows())
