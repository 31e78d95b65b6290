"""
Pydantic models for sheet interpretation and extraction results.

This module defines the core data structures used throughout the Invoice Intake Service:
- HeaderInfo for the located header row and its field-column mapping
- InvoiceRecord for a single normalized invoice line
- ExtractionResult for the full upload response
- ExtractionSummary for batch-level statistics
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_serializer, model_validator


# Keys an InvoiceRecord adds on top of its mapped fields
RESERVED_RECORD_KEYS: frozenset[str] = frozenset({
    "invoiceTotal",
    "validationErrors",
    "invoice_total",
    "validation_errors",
})


class HeaderInfo(BaseModel):
    """
    Result of scanning a sheet for its header row.

    Attributes:
        start_row: Zero-based index of the first data row (header row + 1)
        columns: Lower-cased header labels in column order
        field_column_mapping: Mandatory field -> header label that satisfied it

    `start_row` and `columns` are either both set (header found) or both None.
    """
    start_row: Optional[int] = Field(None, ge=1, description="First data row index")
    columns: Optional[list[str]] = Field(None, description="Lower-cased header labels")
    field_column_mapping: dict[str, str] = Field(
        default_factory=dict,
        description="Mandatory field to matched column label",
    )

    @model_validator(mode="after")
    def check_found_together(self) -> "HeaderInfo":
        if (self.start_row is None) != (self.columns is None):
            raise ValueError("start_row and columns must be both set or both absent")
        return self

    @property
    def found(self) -> bool:
        return self.start_row is not None


class InvoiceRecord(BaseModel):
    """
    A normalized invoice line extracted from one data row.

    Mapped field values are kept under their mandatory field names; a field
    is present only when its column was found. The record is serialized
    flat: every mapped field as its own key plus `invoiceTotal` and
    `validationErrors`.
    """
    field_values: dict[str, str] = Field(
        default_factory=dict,
        description="Mandatory field name to the cell's display text",
    )
    invoice_total: float = Field(
        0.0,
        description="Total price converted with the invoice currency rate",
    )
    validation_errors: list[str] = Field(
        default_factory=list,
        description="Advisory messages naming missing mandatory fields",
    )

    @model_validator(mode="before")
    @classmethod
    def collect_flat_fields(cls, data: Any) -> Any:
        """Accept the flat serialized form as input as well."""
        if not isinstance(data, dict) or "field_values" in data:
            return data
        return {
            "field_values": {
                key: "" if value is None else str(value)
                for key, value in data.items()
                if key not in RESERVED_RECORD_KEYS
            },
            "invoice_total": data.get("invoiceTotal", data.get("invoice_total", 0.0)),
            "validation_errors": data.get(
                "validationErrors", data.get("validation_errors", [])
            ),
        }

    @model_serializer
    def serialize_flat(self) -> dict[str, Any]:
        return {
            **self.field_values,
            "invoiceTotal": self.invoice_total,
            "validationErrors": list(self.validation_errors),
        }

    def get(self, field: str) -> Optional[str]:
        """Return the value extracted for a field, or None if unmapped."""
        return self.field_values.get(field)

    @property
    def is_valid(self) -> bool:
        return not self.validation_errors

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customer": "Acme Corp",
                    "cust no": "C-1001",
                    "project type": "Consulting",
                    "quantity": "10",
                    "price per item": "10",
                    "price currency": "EUR",
                    "total price": "100",
                    "invoice currency": "EUR",
                    "status": "Ready",
                    "invoiceTotal": 90.0,
                    "validationErrors": [],
                }
            ]
        }
    }


class ExtractionResult(BaseModel):
    """
    Everything extracted from one upload, in response order.
    """
    invoicing_month: Optional[str] = Field(
        None,
        alias="invoicingMonth",
        description="Verbatim text of the sheet's invoicing month cell",
    )
    currency_rates: dict[str, float] = Field(
        default_factory=dict,
        alias="currencyRates",
        description="Upper-cased currency code to conversion rate",
    )
    invoices_data: list[InvoiceRecord] = Field(
        default_factory=list,
        alias="invoicesData",
        description="Relevant invoice lines in sheet order",
    )

    model_config = ConfigDict(populate_by_name=True)


class ExtractionSummary(BaseModel):
    """
    Aggregated statistics for the records of one upload.
    """
    total_records: int = Field(..., ge=0, description="Number of relevant records")
    valid_records: int = Field(..., ge=0, description="Records with no validation errors")
    invalid_records: int = Field(..., ge=0, description="Records with validation errors")
    error_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Count of each validation message across all records",
    )
    totals_by_currency: dict[str, float] = Field(
        default_factory=dict,
        description="Sum of invoice totals grouped by invoice currency",
    )


class ErrorResponse(BaseModel):
    """Body returned when an upload cannot be processed."""
    success: bool = False
    error: str
