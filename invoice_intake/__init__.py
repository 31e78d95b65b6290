"""
Invoice Intake Service

A Python service for extracting structured invoice records from loosely
formatted spreadsheet uploads and flagging records with missing data.
"""

__version__ = "0.1.0"
__author__ = "Invoice Intake Team"

from .schemas import ExtractionResult, ExtractionSummary, HeaderInfo, InvoiceRecord
from .extractor import (
    extract_currency_rates,
    extract_invoice_sheet,
    find_header_row,
    get_invoicing_month,
    process_invoice_rows,
)
from .validator import validate_record, validate_records, validate_upload

__all__ = [
    "ExtractionResult",
    "ExtractionSummary",
    "HeaderInfo",
    "InvoiceRecord",
    "extract_currency_rates",
    "extract_invoice_sheet",
    "find_header_row",
    "get_invoicing_month",
    "process_invoice_rows",
    "validate_record",
    "validate_records",
    "validate_upload",
]
