"""
Configuration constants for the Invoice Intake Service.
"""

import logging
import os
from typing import Final

# ============================================================================
# Mandatory Fields
# ============================================================================

# Logical fields every upload must expose as columns (matched fuzzily)
DEFAULT_MANDATORY_FIELDS: Final[list[str]] = [
    field.strip().lower()
    for field in os.getenv(
        "MANDATORY_FIELDS",
        "Customer,Cust No,Project Type,Quantity,Price Per Item,"
        "Price Currency,Total Price,Invoice Currency,Status",
    ).split(",")
    if field.strip()
]

# Fields the row normalizer derives totals and relevance from
TOTAL_PRICE_FIELD: Final[str] = "total price"
INVOICE_CURRENCY_FIELD: Final[str] = "invoice currency"
STATUS_FIELD: Final[str] = "status"
INVOICE_NUMBER_FIELD: Final[str] = "invoice #"
READY_STATUS: Final[str] = "ready"

# ============================================================================
# Sheet Layout
# ============================================================================

# Row 0 holds the invoicing month label and is never a header candidate
INVOICING_MONTH_CELL: Final[tuple[int, int]] = (0, 0)
HEADER_SCAN_START_ROW: Final[int] = 1

# Currency rate block: "<CODE> Rate" in column A, value in column B
RATE_BLOCK_START_ROW: Final[int] = 2
RATE_LABEL_COLUMN: Final[int] = 0
RATE_VALUE_COLUMN: Final[int] = 1
RATE_LABEL_MARKER: Final[str] = "rate"

# ============================================================================
# Default Policies
# ============================================================================

DEFAULT_TOTAL_PRICE: Final[float] = 0.0
DEFAULT_CURRENCY_RATE: Final[float] = 1.0

# Declared invoicing period, e.g. 2024-03
PERIOD_FORMAT: Final[str] = "%Y-%m"
PERIOD_PATTERN: Final[str] = r"^\d{4}-\d{2}$"

# ============================================================================
# API Configuration
# ============================================================================

API_HOST: Final[str] = os.getenv("API_HOST", "0.0.0.0")
API_PORT: Final[int] = int(os.getenv("API_PORT", "3000"))
MAX_UPLOAD_SIZE_MB: Final[int] = int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))

# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO")

def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger("invoice_intake")


logger = setup_logging()
