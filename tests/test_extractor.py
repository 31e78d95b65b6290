"""
Tests for the invoice sheet extractor module.

These tests verify header location, currency rate extraction, row
normalization and the end-to-end extraction of a sheet.
"""

from datetime import datetime

import pytest

from invoice_intake.errors import StructuralError
from invoice_intake.extractor import (
    extract_currency_rates,
    extract_invoice_sheet,
    find_header_row,
    get_invoicing_month,
    is_relevant_line,
    map_fields_to_columns,
    parse_number,
    parse_rate_entry,
    process_invoice_rows,
    read_header_labels,
    resolve_currency_rate,
    resolve_invoice_currency,
    resolve_total_price,
)
from invoice_intake.matching import exact_match
from invoice_intake.schemas import InvoiceRecord
from invoice_intake.sheet import GridSheet

from conftest import HEADER, MANDATORY_FIELDS


def record(**values) -> InvoiceRecord:
    """Build a record from keyword values, mapping underscores to spaces."""
    return InvoiceRecord(field_values={k.replace("_", " "): v for k, v in values.items()})


class TestFindHeaderRow:
    """Tests for header row location."""

    def test_header_at_row_three(self, mandatory_fields):
        sheet = GridSheet([["2024-03"], [], ["USD Rate", 1], HEADER, ["Acme"]])
        header = find_header_row(sheet, mandatory_fields)
        assert header.found
        assert header.start_row == 4
        assert header.columns == [label.lower() for label in HEADER]

    def test_start_row_is_one_past_header(self, invoice_sheet, mandatory_fields):
        header = find_header_row(invoice_sheet, mandatory_fields)
        assert header.start_row == 6

    def test_mapping_uses_lower_cased_labels(self, invoice_sheet, mandatory_fields):
        header = find_header_row(invoice_sheet, mandatory_fields)
        assert header.field_column_mapping["customer"] == "customer"
        assert header.field_column_mapping["invoice currency"] == "invoice currency"
        assert set(header.field_column_mapping) == set(mandatory_fields)

    def test_substring_matching_tolerates_wording(self):
        sheet = GridSheet([
            ["2024-03"],
            ["Customer Name", "Total Price (net)", "Current Status"],
        ])
        header = find_header_row(sheet, ["Customer", "Total Price", "Status"])
        assert header.found
        assert header.field_column_mapping == {
            "customer": "customer name",
            "total price": "total price (net)",
            "status": "current status",
        }

    def test_row_zero_is_never_a_header(self):
        sheet = GridSheet([["Customer", "Status"], ["x"]])
        header = find_header_row(sheet, ["customer", "status"])
        assert not header.found

    def test_header_stops_at_first_empty_cell(self):
        sheet = GridSheet([["2024-03"], ["Customer", None, "Status"]])
        header = find_header_row(sheet, ["customer", "status"])
        assert not header.found

    def test_not_found_result_is_empty(self, mandatory_fields):
        sheet = GridSheet([["2024-03"], ["Customer", "Status"]])
        header = find_header_row(sheet, mandatory_fields)
        assert header.start_row is None
        assert header.columns is None
        assert header.field_column_mapping == {}

    def test_first_matching_row_wins(self):
        sheet = GridSheet([
            ["2024-03"],
            ["Customer", "Status"],
            ["Customer ID", "Status Code"],
        ])
        header = find_header_row(sheet, ["customer", "status"])
        assert header.start_row == 2

    def test_last_matching_column_wins(self):
        sheet = GridSheet([["2024-03"], ["Status", "Customer", "Old Status"]])
        header = find_header_row(sheet, ["customer", "status"])
        assert header.field_column_mapping["status"] == "old status"

    def test_exact_matcher_rejects_partial_labels(self):
        sheet = GridSheet([["2024-03"], ["Customer Name", "Status"]])
        assert not find_header_row(sheet, ["customer", "status"], exact_match).found
        assert find_header_row(sheet, ["customer name", "status"], exact_match).found

    def test_empty_sheet_terminates(self, mandatory_fields):
        assert not find_header_row(GridSheet(), mandatory_fields).found

    def test_empty_mandatory_fields_rejected(self, invoice_sheet):
        with pytest.raises(ValueError):
            find_header_row(invoice_sheet, [])


class TestHeaderHelpers:
    """Tests for header label reading and field mapping."""

    def test_read_header_labels(self):
        sheet = GridSheet([[], ["A", "B", "", "C"]])
        assert read_header_labels(sheet, 1) == ["a", "b"]

    def test_map_fields_allows_unmapped(self):
        mapping = map_fields_to_columns(["customer"], ["customer", "status"])
        assert mapping == {"customer": "customer"}


class TestExtractCurrencyRates:
    """Tests for currency rate block extraction."""

    def test_rate_block_stops_at_first_non_rate(self):
        sheet = GridSheet([
            ["2024-03"],
            [],
            ["USD Rate", "1.0"],
            ["EUR Rate", "0.9"],
            ["notes", "x"],
            ["GBP Rate", "1.2"],
        ])
        assert extract_currency_rates(sheet) == {"USD": 1.0, "EUR": 0.9}

    def test_rows_after_gap_are_ignored(self):
        sheet = GridSheet([
            ["2024-03"],
            [],
            ["USD Rate", 1],
            [],
            ["EUR Rate", 0.9],
        ])
        assert extract_currency_rates(sheet) == {"USD": 1.0}

    def test_non_numeric_value_stops_scan(self):
        sheet = GridSheet([[], [], ["USD Rate", "n/a"], ["EUR Rate", 0.9]])
        assert extract_currency_rates(sheet) == {}

    def test_decimal_comma_rate_stops_scan(self):
        sheet = GridSheet([["2024-03"], [], ["EUR Rate", "1,5"], ["USD Rate", "1.0"]])
        assert extract_currency_rates(sheet) == {}

    def test_empty_value_is_not_a_rate(self):
        sheet = GridSheet([[], [], ["USD Rate"], ["EUR Rate", 0.9]])
        assert extract_currency_rates(sheet) == {}

    def test_rows_zero_and_one_are_skipped(self):
        sheet = GridSheet([["CHF Rate", 1.1], ["SEK Rate", 0.1], ["EUR Rate", 0.9]])
        assert extract_currency_rates(sheet) == {"EUR": 0.9}

    def test_no_rate_block(self, mandatory_fields):
        sheet = GridSheet([["2024-03"], HEADER])
        assert extract_currency_rates(sheet) == {}

    def test_rate_block_at_end_of_sheet(self):
        sheet = GridSheet([[], [], ["USD Rate", 1], ["EUR Rate", 0.9]])
        assert extract_currency_rates(sheet) == {"USD": 1.0, "EUR": 0.9}


class TestParseRateEntry:
    """Tests for single rate row interpretation."""

    def test_currency_code_upper_cased(self):
        assert parse_rate_entry("eur rate", "0.9") == ("EUR", 0.9)

    def test_marker_anywhere_in_label(self):
        assert parse_rate_entry("Rate CHF", "1.05") == ("CHF", 1.05)

    def test_label_without_marker(self):
        assert parse_rate_entry("EUR", "0.9") is None


class TestParseNumber:
    """Tests for number parsing."""

    def test_simple_number(self):
        assert parse_number("123.45") == 123.45

    def test_with_thousands_separator(self):
        assert parse_number("1,234.5") == 1234.5

    def test_surrounding_whitespace(self):
        assert parse_number("  42 ") == 42.0

    def test_none_input(self):
        assert parse_number(None) is None

    def test_empty_string(self):
        assert parse_number("") is None

    def test_invalid_string(self):
        assert parse_number("abc") is None

    def test_nan_rejected(self):
        assert parse_number("nan") is None

    def test_infinity_rejected(self):
        assert parse_number("inf") is None
        assert parse_number("1e999") is None

    def test_decimal_comma_rejected(self):
        assert parse_number("1,5") is None
        assert parse_number("12,50") is None

    def test_malformed_grouping_rejected(self):
        assert parse_number("1,23,456") is None
        assert parse_number(",5") is None

    def test_underscore_grouping_rejected(self):
        assert parse_number("1_000") is None

    def test_negative_and_exponent(self):
        assert parse_number("-2.5") == -2.5
        assert parse_number("1e-05") == 0.00001


class TestGetInvoicingMonth:
    """Tests for the invoicing month reader."""

    def test_returns_label_verbatim(self, invoice_sheet):
        assert get_invoicing_month(invoice_sheet) == "2024-03"

    def test_blank_label(self):
        assert get_invoicing_month(GridSheet([[None]])) is None

    def test_date_cell_read_as_iso_date(self):
        # A cell formatted "mmm yyyy" still holds a full date
        sheet = GridSheet([[datetime(2024, 3, 1)]])
        assert get_invoicing_month(sheet) == "2024-03-01"


class TestDefaultPolicies:
    """Tests for total price, currency and rate defaults."""

    def test_total_price_parsed(self):
        assert resolve_total_price(record(total_price="100")) == 100.0

    def test_missing_total_price_defaults_to_zero(self):
        assert resolve_total_price(record(status="Ready")) == 0.0

    def test_unparseable_total_price_defaults_to_zero(self):
        assert resolve_total_price(record(total_price="TBD")) == 0.0

    def test_decimal_comma_total_price_defaults_to_zero(self):
        assert resolve_total_price(record(total_price="12,50")) == 0.0

    def test_grouped_total_price_parsed(self):
        assert resolve_total_price(record(total_price="1,250.00")) == 1250.0

    def test_invoice_currency_upper_cased(self):
        assert resolve_invoice_currency(record(invoice_currency="eur")) == "EUR"

    def test_unmapped_invoice_currency(self):
        assert resolve_invoice_currency(record()) is None

    def test_known_currency_rate(self):
        assert resolve_currency_rate({"EUR": 0.9}, record(invoice_currency="eur")) == 0.9

    def test_unknown_currency_defaults_to_one(self):
        assert resolve_currency_rate({"EUR": 0.9}, record(invoice_currency="GBP")) == 1.0

    def test_unmapped_currency_defaults_to_one(self):
        assert resolve_currency_rate({"EUR": 0.9}, record()) == 1.0

    def test_zero_rate_defaults_to_one(self):
        assert resolve_currency_rate({"EUR": 0.0}, record(invoice_currency="EUR")) == 1.0


class TestIsRelevantLine:
    """Tests for the relevance filter."""

    def test_ready_status_any_case(self):
        assert is_relevant_line(record(status="READY"))
        assert is_relevant_line(record(status="Ready"))

    def test_invoice_number_present(self):
        assert is_relevant_line(record(status="Draft", **{"invoice #": "INV-1"}))

    def test_draft_without_invoice_number(self):
        assert not is_relevant_line(record(status="Draft"))

    def test_empty_invoice_number(self):
        assert not is_relevant_line(record(status="Draft", **{"invoice #": ""}))

    def test_no_status(self):
        assert not is_relevant_line(record())


class TestProcessInvoiceRows:
    """Tests for row extraction and normalization."""

    @pytest.fixture
    def header(self, invoice_sheet, mandatory_fields):
        return find_header_row(invoice_sheet, mandatory_fields)

    def test_relevant_rows_in_order(self, invoice_sheet, header):
        records = process_invoice_rows(
            invoice_sheet, header.start_row, header.columns,
            header.field_column_mapping, {"USD": 1.0, "EUR": 0.9},
        )
        assert [r.get("cust no") for r in records] == ["C-1", "C-2", "C-4"]

    def test_invoice_total_uses_rate(self, invoice_sheet, header):
        records = process_invoice_rows(
            invoice_sheet, header.start_row, header.columns,
            header.field_column_mapping, {"USD": 1.0, "EUR": 0.9},
        )
        assert records[0].invoice_total == pytest.approx(90.0)
        assert records[1].invoice_total == pytest.approx(100.0)
        # GBP has no rate
        assert records[2].invoice_total == pytest.approx(20.0)

    def test_values_are_display_text(self, invoice_sheet, header):
        records = process_invoice_rows(
            invoice_sheet, header.start_row, header.columns,
            header.field_column_mapping, {},
        )
        assert records[0].get("quantity") == "10"
        assert records[0].get("total price") == "100"

    def test_unmapped_fields_absent(self):
        sheet = GridSheet([
            ["2024-03"],
            ["Status", "Total Price", "Notes"],
            ["Ready", 50, "keep"],
        ])
        records = process_invoice_rows(
            sheet, 2, ["status", "total price", "notes"],
            {"status": "status", "total price": "total price"}, {},
        )
        assert records[0].field_values == {"status": "Ready", "total price": "50"}

    def test_draft_rows_dropped(self):
        sheet = GridSheet([[], ["Status"], ["Draft"], ["Pending"]])
        records = process_invoice_rows(sheet, 2, ["status"], {"status": "status"}, {})
        assert records == []

    def test_invoice_number_keeps_row(self):
        sheet = GridSheet([[], ["Status", "Invoice #"], ["Draft", "INV-7"]])
        mapping = {"status": "status", "invoice #": "invoice #"}
        records = process_invoice_rows(sheet, 2, ["status", "invoice #"], mapping, {})
        assert len(records) == 1
        assert records[0].get("invoice #") == "INV-7"

    def test_start_past_last_row(self):
        sheet = GridSheet([[], ["Status"]])
        assert process_invoice_rows(sheet, 2, ["status"], {"status": "status"}, {}) == []


class TestExtractInvoiceSheet:
    """Tests for the end-to-end extraction."""

    def test_full_extraction(self, invoice_sheet, mandatory_fields):
        result = extract_invoice_sheet(invoice_sheet, mandatory_fields)

        assert result.invoicing_month == "2024-03"
        assert result.currency_rates == {"USD": 1.0, "EUR": 0.9}
        assert len(result.invoices_data) == 3

    def test_records_are_validated(self, invoice_sheet, mandatory_fields):
        result = extract_invoice_sheet(invoice_sheet, mandatory_fields)

        assert result.invoices_data[0].validation_errors == []
        assert result.invoices_data[2].validation_errors == [
            "Missing required field: customer"
        ]

    def test_mixed_case_fields_accepted(self, invoice_sheet):
        result = extract_invoice_sheet(invoice_sheet, HEADER)
        assert len(result.invoices_data) == 3

    def test_missing_header_raises(self, mandatory_fields):
        sheet = GridSheet([["2024-03"], ["Customer"], ["Acme"]])
        with pytest.raises(StructuralError):
            extract_invoice_sheet(sheet, mandatory_fields)

    def test_serialized_shape(self, invoice_sheet, mandatory_fields):
        result = extract_invoice_sheet(invoice_sheet, mandatory_fields)
        data = result.model_dump(by_alias=True)

        assert set(data) == {"invoicingMonth", "currencyRates", "invoicesData"}
        first = data["invoicesData"][0]
        assert first["customer"] == "Acme Corp"
        assert first["invoiceTotal"] == pytest.approx(90.0)
        assert first["validationErrors"] == []
        assert set(first) == set(MANDATORY_FIELDS) | {"invoiceTotal", "validationErrors"}
