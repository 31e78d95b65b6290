"""
Command-line interface for the Invoice Intake Service.

Provides the following commands:
- extract: Extract invoice records from a spreadsheet to JSON
- validate: Re-validate previously extracted records
- fields: Show the default mandatory fields
"""

import json
from pathlib import Path
from typing import Optional

import typer

from .config import DEFAULT_MANDATORY_FIELDS, logger
from .errors import IntakeError
from .extractor import extract_invoice_sheet
from .matching import normalize_fields
from .schemas import ExtractionResult
from .sheet import load_first_sheet
from .validator import (
    check_declared_period,
    format_summary_text,
    summarize_records,
    validate_records,
    validate_upload,
)


# Create Typer app
app = typer.Typer(
    name="invoice-intake",
    help="Invoice Intake Service CLI",
    add_completion=False,
)


def parse_fields_option(fields: Optional[str]) -> list[str]:
    """Split a comma-separated --fields option, falling back to the defaults."""
    if not fields:
        return list(DEFAULT_MANDATORY_FIELDS)
    return normalize_fields(fields.split(","))


@app.command()
def extract(
    file: Path = typer.Option(
        ...,
        "--file",
        "-f",
        help="Invoice spreadsheet (.xlsx)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    month: Optional[str] = typer.Option(
        None,
        "--month",
        "-m",
        help="Declared invoicing period (YYYY-MM)",
    ),
    output: Path = typer.Option(
        "extracted_invoices.json",
        "--output",
        "-o",
        help="Output JSON file path",
    ),
    fields: Optional[str] = typer.Option(
        None,
        "--fields",
        "-F",
        help="Comma-separated mandatory fields (defaults to the configured set)",
    ),
    skip_period_check: bool = typer.Option(
        False,
        "--skip-period-check",
        help="Extract without comparing the sheet month to --month",
    ),
    fail_on_invalid: bool = typer.Option(
        False,
        "--fail-on-invalid",
        help="Exit with non-zero status if any record is missing required fields",
    ),
) -> None:
    """
    Extract invoice records from a spreadsheet to JSON.

    Locates the header row, applies the currency rate block to each line
    total, keeps lines that are ready or invoiced, and writes the result
    with per-record validation errors.
    """
    typer.echo(f"Extracting invoices from: {file}")

    try:
        mandatory_fields = parse_fields_option(fields)
        if not skip_period_check:
            check_declared_period(month)
        sheet = load_first_sheet(file)

        header = None
        if not skip_period_check:
            header = validate_upload(sheet, mandatory_fields, month)

        result = extract_invoice_sheet(sheet, mandatory_fields, header=header)

        with open(output, "w", encoding="utf-8") as f:
            json.dump(result.model_dump(mode="json", by_alias=True), f, indent=2)

    except IntakeError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    summary = summarize_records(result.invoices_data)

    typer.echo(f"\nInvoicing month: {result.invoicing_month or '-'}")
    if result.currency_rates:
        rates = ", ".join(f"{code}={rate}" for code, rate in result.currency_rates.items())
        typer.echo(f"Currency rates:  {rates}")
    typer.echo("\n" + format_summary_text(summary))
    typer.echo(f"\n[OK] Extracted {summary.total_records} record(s) to: {output}")

    if fail_on_invalid and summary.invalid_records > 0:
        raise typer.Exit(code=1)


@app.command()
def validate(
    input_file: Path = typer.Option(
        ...,
        "--input",
        "-i",
        help="JSON file written by the extract command",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    fields: Optional[str] = typer.Option(
        None,
        "--fields",
        "-F",
        help="Comma-separated mandatory fields (defaults to the configured set)",
    ),
    fail_on_invalid: bool = typer.Option(
        False,
        "--fail-on-invalid",
        help="Exit with non-zero status if any record is missing required fields",
    ),
) -> None:
    """
    Re-validate extracted invoice records against mandatory fields.
    """
    typer.echo(f"Validating invoices from: {input_file}")

    try:
        mandatory_fields = parse_fields_option(fields)
        with open(input_file, "r", encoding="utf-8") as f:
            result = ExtractionResult.model_validate(json.load(f))
    except json.JSONDecodeError as e:
        typer.echo(f"Error: Invalid JSON in input file: {e}", err=True)
        raise typer.Exit(code=1)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    records = validate_records(result.invoices_data, mandatory_fields)
    summary = summarize_records(records)
    typer.echo("\n" + format_summary_text(summary))

    invalid = [record for record in records if not record.is_valid]
    if invalid:
        typer.echo("\nInvalid Records:")
        for record in invalid[:5]:
            label = record.get("customer") or record.get("cust no") or "<unnamed>"
            typer.echo(f"  {label}:")
            for error in record.validation_errors:
                typer.echo(f"    - {error}")
        if len(invalid) > 5:
            typer.echo(f"  ... and {len(invalid) - 5} more invalid records")

    if fail_on_invalid and summary.invalid_records > 0:
        raise typer.Exit(code=1)


@app.command()
def fields() -> None:
    """Show the default mandatory fields."""
    for field in DEFAULT_MANDATORY_FIELDS:
        typer.echo(field)


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__
    typer.echo(f"Invoice Intake Service v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    logger.debug("Starting invoice-intake CLI")
    app()


if __name__ == "__main__":
    main()
