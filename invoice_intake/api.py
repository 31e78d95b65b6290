"""
FastAPI application for the Invoice Intake Service.

Provides REST API endpoints for:
- Health check
- Listing the default mandatory fields
- Spreadsheet upload, extraction and validation
"""

from typing import Optional

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import API_HOST, API_PORT, DEFAULT_MANDATORY_FIELDS, MAX_UPLOAD_SIZE_MB, logger
from .errors import IntakeError, MissingInputError
from .extractor import extract_invoice_sheet
from .matching import normalize_fields
from .schemas import ErrorResponse, ExtractionResult
from .sheet import load_first_sheet
from .validator import check_declared_period, validate_upload


# ============================================================================
# FastAPI App Configuration
# ============================================================================

app = FastAPI(
    title="Invoice Intake Service API",
    description="""
    Invoice Intake Service API.

    Extracts invoice lines from loosely formatted spreadsheet uploads.
    The header row is located by matching mandatory field names, a currency
    rate block above the data is applied to every line total, and each
    record is annotated with the mandatory fields it is missing.
    """,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Response Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class FieldsResponse(BaseModel):
    """Default mandatory fields used when an upload does not name its own."""
    mandatory_fields: list[str]


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Returns the service status and version information.
    """
    from . import __version__
    return HealthResponse(status="ok", version=__version__)


@app.get("/fields", response_model=FieldsResponse, tags=["System"])
async def list_fields() -> FieldsResponse:
    """List the mandatory fields every upload's header must expose."""
    return FieldsResponse(mandatory_fields=list(DEFAULT_MANDATORY_FIELDS))


@app.post(
    "/api/v1/upload",
    response_model=ExtractionResult,
    responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}},
    tags=["Extraction"],
    summary="Extract invoices from a spreadsheet",
)
def upload_invoices(
    file: Optional[UploadFile] = File(None, description="Invoice spreadsheet (.xlsx)"),
    invoicing_month: Optional[str] = Form(
        None,
        alias="invoicingMonth",
        description="Declared invoicing period, YYYY-MM",
    ),
    mandatory_fields: Optional[str] = Form(
        None,
        alias="mandatoryFields",
        description="Comma-separated mandatory fields (defaults to the configured set)",
    ),
) -> ExtractionResult:
    """
    Extract invoice records from an uploaded spreadsheet.

    **Processing Steps:**
    1. Check the upload (file present, period declared, header found,
       sheet month equals the declared period)
    2. Extract the currency rate block and invoicing month
    3. Normalize every relevant data row and compute its invoice total
    4. Annotate records with missing mandatory fields

    Declared as a plain function so workbook parsing runs in the threadpool.
    """
    if file is None:
        raise MissingInputError("No file uploaded")

    content = file.file.read()
    max_size = MAX_UPLOAD_SIZE_MB * 1024 * 1024
    if len(content) > max_size:
        raise HTTPException(
            status_code=413,
            detail=f"{file.filename}: File too large (max {MAX_UPLOAD_SIZE_MB}MB)",
        )
    if not content:
        raise MissingInputError("No file uploaded")

    try:
        fields = normalize_fields(
            mandatory_fields.split(",") if mandatory_fields else DEFAULT_MANDATORY_FIELDS
        )
    except ValueError as e:
        raise MissingInputError(str(e)) from e

    # Period is checked before the workbook is parsed
    check_declared_period(invoicing_month)

    logger.info(f"Received upload {file.filename!r} for month {invoicing_month!r}")

    sheet = load_first_sheet(content)
    header = validate_upload(sheet, fields, invoicing_month)
    return extract_invoice_sheet(sheet, fields, header=header)


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(IntakeError)
async def intake_exception_handler(request, exc: IntakeError):
    """Reject uploads that cannot be processed."""
    logger.warning(f"Upload rejected: {exc}")
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error=str(exc)).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """Render HTTP errors in the same shape as intake errors."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail)).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request, exc):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="Internal server error").model_dump(),
    )


# ============================================================================
# Main Entry Point
# ============================================================================

def run_server():
    """Run the API server using uvicorn."""
    import uvicorn
    logger.info(f"Invoice Intake Service API starting on {API_HOST}:{API_PORT}")
    uvicorn.run(app, host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    run_server()
