"""
Spreadsheet interpretation engine for invoice uploads.

This module provides functionality to:
- Locate the header row by matching mandatory field names
- Extract the currency rate block above the invoice data
- Read the invoicing month label
- Convert data rows into normalized InvoiceRecord objects
- Run the full extraction for one uploaded sheet
"""

import math
import re
from typing import Iterator, Optional

from .config import (
    DEFAULT_CURRENCY_RATE,
    DEFAULT_TOTAL_PRICE,
    HEADER_SCAN_START_ROW,
    INVOICE_CURRENCY_FIELD,
    INVOICE_NUMBER_FIELD,
    INVOICING_MONTH_CELL,
    RATE_BLOCK_START_ROW,
    RATE_LABEL_COLUMN,
    RATE_LABEL_MARKER,
    RATE_VALUE_COLUMN,
    READY_STATUS,
    STATUS_FIELD,
    TOTAL_PRICE_FIELD,
    logger,
)
from .errors import StructuralError
from .matching import FieldMatcher, normalize_fields, substring_match
from .schemas import ExtractionResult, HeaderInfo, InvoiceRecord
from .sheet import Sheet


# ============================================================================
# Header Location
# ============================================================================

def read_header_labels(sheet: Sheet, row: int) -> list[str]:
    """
    Read the contiguous run of non-empty labels starting at column 0.

    Returns:
        Lower-cased labels in column order (stops at the first empty cell)
    """
    labels = []
    col = 0
    while True:
        text = sheet.cell_text(row, col)
        if not text:
            break
        labels.append(text.lower())
        col += 1
    return labels


def map_fields_to_columns(
    columns: list[str],
    mandatory_fields: list[str],
    matcher: FieldMatcher = substring_match,
) -> dict[str, str]:
    """
    Build the field -> column label mapping for one candidate header row.

    When several columns satisfy the same field, the right-most one wins.
    """
    mapping: dict[str, str] = {}
    for column in columns:
        for field in mandatory_fields:
            if matcher(column, field):
                mapping[field] = column
    return mapping


def find_header_row(
    sheet: Sheet,
    mandatory_fields: list[str],
    matcher: FieldMatcher = substring_match,
) -> HeaderInfo:
    """
    Scan rows top-down for the first row satisfying every mandatory field.

    Row 0 holds the invoicing month and is never considered.

    Args:
        sheet: Sheet to scan
        mandatory_fields: Field names (compared lower-cased)
        matcher: Policy deciding whether a label satisfies a field

    Returns:
        HeaderInfo with start_row/columns set, or an empty HeaderInfo
        when no row qualifies
    """
    fields = normalize_fields(mandatory_fields)

    for row in range(HEADER_SCAN_START_ROW, sheet.last_row() + 1):
        columns = read_header_labels(sheet, row)
        if not columns:
            continue

        mapping = map_fields_to_columns(columns, fields, matcher)

        if all(any(matcher(column, field) for column in columns) for field in fields):
            logger.info(f"Header row found at row {row} with {len(columns)} columns")
            return HeaderInfo(
                start_row=row + 1,
                columns=columns,
                field_column_mapping=mapping,
            )

    logger.warning("No header row satisfies all mandatory fields")
    return HeaderInfo()


# ============================================================================
# Currency Rates
# ============================================================================

# Signed decimal with optional exponent; no "_", "nan" or "inf"
PLAIN_NUMBER_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
GROUPED_NUMBER_PATTERN = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d+)?$")


def parse_number(value: Optional[str]) -> Optional[float]:
    """
    Parse a plain numeric cell text.

    Commas are accepted only as well-formed thousands separators ("1,234.5");
    a decimal comma ("12,50") is not a number. Empty text, NaN, infinities
    and "_" digit groups are rejected.
    """
    if value is None:
        return None

    value_str = value.strip()
    if "," in value_str:
        if not GROUPED_NUMBER_PATTERN.match(value_str):
            return None
        value_str = value_str.replace(",", "")

    if not PLAIN_NUMBER_PATTERN.match(value_str):
        return None

    number = float(value_str)
    if math.isinf(number):
        return None
    return number


def parse_rate_entry(label: str, value: str) -> Optional[tuple[str, float]]:
    """
    Interpret one row of the rate block.

    Returns:
        (currency_code, rate) if the label mentions "rate" and the value is
        numeric, otherwise None
    """
    label_lower = label.lower()
    if RATE_LABEL_MARKER not in label_lower:
        return None

    rate = parse_number(value)
    if rate is None:
        return None

    currency = label_lower.replace(RATE_LABEL_MARKER, "", 1).strip().upper()
    return currency, rate


def extract_currency_rates(sheet: Sheet) -> dict[str, float]:
    """
    Extract the contiguous "<CODE> Rate" / value block starting at row 2.

    Scanning stops at the first row that is not a rate entry, so rows after
    a gap are never included.
    """
    rates: dict[str, float] = {}

    for row in range(RATE_BLOCK_START_ROW, sheet.last_row() + 1):
        entry = parse_rate_entry(
            sheet.cell_text(row, RATE_LABEL_COLUMN),
            sheet.cell_text(row, RATE_VALUE_COLUMN),
        )
        if entry is None:
            break
        currency, rate = entry
        rates[currency] = rate

    logger.debug(f"Extracted {len(rates)} currency rates: {rates}")
    return rates


# ============================================================================
# Invoicing Month
# ============================================================================

def get_invoicing_month(sheet: Sheet) -> Optional[str]:
    """
    Return the invoicing month label as displayed, or None if blank.

    Number formats are not applied: a date-typed cell (e.g. shown as
    "Mar 2024") comes back as an ISO date such as "2024-03-01".
    """
    row, col = INVOICING_MONTH_CELL
    return sheet.cell_text(row, col) or None


# ============================================================================
# Default Policies
# ============================================================================

def resolve_total_price(record: InvoiceRecord) -> float:
    """Numeric total price of a record, 0 when absent or unparseable."""
    total_price = parse_number(record.get(TOTAL_PRICE_FIELD))
    return DEFAULT_TOTAL_PRICE if total_price is None else total_price


def resolve_invoice_currency(record: InvoiceRecord) -> Optional[str]:
    """Upper-cased invoice currency, or None if the field is unmapped."""
    currency = record.get(INVOICE_CURRENCY_FIELD)
    if currency is None:
        return None
    return currency.strip().upper()


def resolve_currency_rate(rates: dict[str, float], record: InvoiceRecord) -> float:
    """
    Conversion rate for a record's invoice currency.

    Falls back to 1 when the currency is unmapped, missing from the rate
    table, or recorded with a zero rate.
    """
    currency = resolve_invoice_currency(record)
    rate = rates.get(currency) if currency is not None else None
    if not rate:
        return DEFAULT_CURRENCY_RATE
    return rate


def is_relevant_line(record: InvoiceRecord) -> bool:
    """A line is relevant when marked ready or already carrying an invoice number."""
    status = record.get(STATUS_FIELD) or ""
    if status.lower() == READY_STATUS:
        return True
    return bool(record.get(INVOICE_NUMBER_FIELD))


# ============================================================================
# Row Extraction
# ============================================================================

def build_record(
    sheet: Sheet,
    row: int,
    columns: list[str],
    fields_by_column: dict[str, list[str]],
) -> InvoiceRecord:
    """Project one data row through the field mapping."""
    values: dict[str, str] = {}
    for index, column in enumerate(columns):
        fields = fields_by_column.get(column)
        if not fields:
            continue
        text = sheet.cell_text(row, index)
        for field in fields:
            values[field] = text
    return InvoiceRecord(field_values=values)


def iter_invoice_rows(
    sheet: Sheet,
    start_row: int,
    columns: list[str],
    field_column_mapping: dict[str, str],
    currency_rates: dict[str, float],
) -> Iterator[InvoiceRecord]:
    """
    Yield normalized records for every data row, relevant or not.

    Each record gets `invoice_total` = total price x invoice currency rate.
    """
    fields_by_column: dict[str, list[str]] = {}
    for field, column in field_column_mapping.items():
        fields_by_column.setdefault(column, []).append(field)

    for row in range(start_row, sheet.last_row() + 1):
        record = build_record(sheet, row, columns, fields_by_column)
        record.invoice_total = (
            resolve_total_price(record) * resolve_currency_rate(currency_rates, record)
        )
        yield record


def process_invoice_rows(
    sheet: Sheet,
    start_row: int,
    columns: list[str],
    field_column_mapping: dict[str, str],
    currency_rates: dict[str, float],
) -> list[InvoiceRecord]:
    """
    Extract the relevant invoice records below the header, in row order.

    Rows that are neither ready nor invoiced are dropped silently.
    Malformed cells never raise; they degrade to default values.
    """
    records: list[InvoiceRecord] = []
    dropped = 0

    for record in iter_invoice_rows(
        sheet, start_row, columns, field_column_mapping, currency_rates
    ):
        if is_relevant_line(record):
            records.append(record)
        else:
            dropped += 1

    logger.info(f"Kept {len(records)} relevant rows, dropped {dropped}")
    return records


# ============================================================================
# Main Extraction Function
# ============================================================================

def extract_invoice_sheet(
    sheet: Sheet,
    mandatory_fields: list[str],
    matcher: FieldMatcher = substring_match,
    header: Optional[HeaderInfo] = None,
) -> ExtractionResult:
    """
    Run the full extraction for one uploaded sheet.

    Args:
        sheet: Sheet to interpret
        mandatory_fields: Field names the header must expose
        matcher: Header matching policy
        header: Previously located header (skips a second scan)

    Returns:
        ExtractionResult with month label, rates and validated records

    Raises:
        StructuralError: If no header row can be found
    """
    from .validator import validate_records

    fields = normalize_fields(mandatory_fields)

    if header is None:
        header = find_header_row(sheet, fields, matcher)
    if not header.found:
        raise StructuralError("Unable to find the start row of invoices data")

    currency_rates = extract_currency_rates(sheet)
    invoicing_month = get_invoicing_month(sheet)

    records = process_invoice_rows(
        sheet,
        header.start_row,
        header.columns,
        header.field_column_mapping,
        currency_rates,
    )
    validate_records(records, fields)

    logger.info(
        f"Extracted {len(records)} invoice records for month {invoicing_month!r} "
        f"using {len(currency_rates)} currency rates"
    )

    return ExtractionResult(
        invoicing_month=invoicing_month,
        currency_rates=currency_rates,
        invoices_data=records,
    )
