"""
Validation for invoice uploads and extracted records.

This module covers two layers:
- Upload pre-checks that reject a request outright (missing input,
  unrecognized structure, mismatched invoicing period)
- Per-record validation that annotates missing mandatory fields without
  ever dropping a record
"""

import re
from collections import Counter
from datetime import datetime
from typing import Optional

from dateutil import parser as date_parser

from .config import INVOICE_CURRENCY_FIELD, PERIOD_FORMAT, PERIOD_PATTERN, logger
from .errors import MissingInputError, PeriodMismatchError, StructuralError
from .matching import FieldMatcher, normalize_fields, substring_match
from .schemas import ExtractionSummary, HeaderInfo, InvoiceRecord
from .sheet import Sheet


MISSING_FIELD_MESSAGE = "Missing required field: {field}"

# Anchor for dateutil so partial labels ("March 2024") resolve to day 1
_PERIOD_DEFAULT = datetime(2000, 1, 1)


# ============================================================================
# Record Validation
# ============================================================================

def validate_record(record: InvoiceRecord, mandatory_fields: list[str]) -> list[str]:
    """
    List the mandatory fields a record lacks, in mandatory-field order.

    Args:
        record: Extracted invoice record
        mandatory_fields: Lower-cased field names

    Returns:
        One "Missing required field: <field>" message per empty field
    """
    errors: list[str] = []
    for field in mandatory_fields:
        if not record.get(field):
            errors.append(MISSING_FIELD_MESSAGE.format(field=field))
    return errors


def validate_records(
    records: list[InvoiceRecord],
    mandatory_fields: list[str],
) -> list[InvoiceRecord]:
    """
    Attach validation errors to every record in place.

    Records are never removed; invalid ones are returned alongside valid
    ones for the caller to decide on.
    """
    for record in records:
        record.validation_errors = validate_record(record, mandatory_fields)

    invalid = sum(1 for record in records if record.validation_errors)
    if invalid:
        logger.warning(f"{invalid} of {len(records)} records are missing required fields")
    return records


# ============================================================================
# Upload Pre-checks
# ============================================================================

def resolve_sheet_period(label: Optional[str]) -> Optional[str]:
    """
    Interpret the sheet's invoicing month label as a YYYY-MM period.

    Returns:
        The period string, or None if the label is blank or not a date
    """
    if not label or not label.strip():
        return None
    try:
        parsed = date_parser.parse(label.strip(), default=_PERIOD_DEFAULT)
    except (ValueError, OverflowError):
        return None
    return parsed.strftime(PERIOD_FORMAT)


def is_valid_period(period: str) -> bool:
    """True if the declared period has the YYYY-MM form with a real month."""
    if not re.match(PERIOD_PATTERN, period):
        return False
    try:
        datetime.strptime(period, PERIOD_FORMAT)
    except ValueError:
        return False
    return True


def check_declared_period(invoicing_month_param: Optional[str]) -> str:
    """
    Return the declared period, stripped.

    Raises:
        MissingInputError: If the period is absent or not YYYY-MM
    """
    if not invoicing_month_param or not invoicing_month_param.strip():
        raise MissingInputError("Invoicing month parameter required")

    declared = invoicing_month_param.strip()
    if not is_valid_period(declared):
        raise MissingInputError(
            f"Invalid invoicing month parameter {declared!r}. Expected format: YYYY-MM"
        )
    return declared


def validate_upload(
    sheet: Optional[Sheet],
    mandatory_fields: list[str],
    invoicing_month_param: Optional[str],
    matcher: FieldMatcher = substring_match,
) -> HeaderInfo:
    """
    Check that an upload can be processed before extracting anything.

    Args:
        sheet: First sheet of the uploaded document (None if no document)
        mandatory_fields: Field names the header must expose
        invoicing_month_param: Declared period, YYYY-MM
        matcher: Header matching policy

    Returns:
        The located HeaderInfo, reusable for extraction

    Raises:
        MissingInputError: No document, or no/invalid declared period
        StructuralError: No header row satisfies the mandatory fields
        PeriodMismatchError: The sheet month differs from the declared period
    """
    from .extractor import find_header_row, get_invoicing_month

    if sheet is None:
        raise MissingInputError("No file uploaded")

    declared = check_declared_period(invoicing_month_param)

    header = find_header_row(sheet, normalize_fields(mandatory_fields), matcher)
    if not header.found:
        raise StructuralError("Invalid file structure. Unable to find the required header row.")

    label = get_invoicing_month(sheet)
    if resolve_sheet_period(label) != declared:
        logger.warning(f"Invoicing month mismatch: sheet={label!r}, declared={declared}")
        raise PeriodMismatchError(declared, label)

    return header


# ============================================================================
# Summaries
# ============================================================================

def summarize_records(records: list[InvoiceRecord]) -> ExtractionSummary:
    """
    Aggregate validation outcomes and invoice totals for a batch of records.
    """
    error_counts = Counter(
        error for record in records for error in record.validation_errors
    )

    totals: dict[str, float] = {}
    for record in records:
        currency = (record.get(INVOICE_CURRENCY_FIELD) or "").strip().upper() or "UNSPECIFIED"
        totals[currency] = totals.get(currency, 0.0) + record.invoice_total

    valid_count = sum(1 for record in records if record.is_valid)

    return ExtractionSummary(
        total_records=len(records),
        valid_records=valid_count,
        invalid_records=len(records) - valid_count,
        error_counts=dict(error_counts),
        totals_by_currency=totals,
    )


def format_summary_text(summary: ExtractionSummary) -> str:
    """
    Format an ExtractionSummary as human-readable text for CLI output.
    """
    lines = [
        "=" * 50,
        "EXTRACTION SUMMARY",
        "=" * 50,
        f"Invoice records extracted: {summary.total_records}",
        f"Valid records:             {summary.valid_records}",
        f"Invalid records:           {summary.invalid_records}",
        "",
    ]

    if summary.error_counts:
        lines.append("Validation Errors:")
        lines.append("-" * 40)
        for message, count in sorted(summary.error_counts.items(), key=lambda x: -x[1]):
            lines.append(f"  {message}: {count}")
        lines.append("")

    if summary.totals_by_currency:
        lines.append("Invoice Totals by Currency:")
        lines.append("-" * 40)
        for currency, total in sorted(summary.totals_by_currency.items()):
            lines.append(f"  {currency}: {total:,.2f}")
        lines.append("")

    lines.append("=" * 50)

    return "\n".join(lines)
