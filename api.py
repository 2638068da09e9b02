"""
Address Verifier — FastAPI Server
==================================

RESTful API for residential address verification records.

Endpoints:
    POST   /verifications                  Upsert a verification record
    GET    /verifications                  List records (newest first)
    DELETE /verifications                  Delete every record
    GET    /verifications/{id}             Fetch one record
    DELETE /verifications/{id}             Delete one record
    POST   /verifications/links            Create a placeholder + applicant link
    GET    /verifications/{id}/report      Report view (JSON)
    GET    /verifications/{id}/report.html Report page (?print=true for print view)
    GET    /verifications/{id}/report.pdf  Report download
    POST   /evaluations                    Address-match evaluation
    POST   /images/compress                Compress an evidence photo
    GET    /health                         Health check / readiness probe

Run:
    uvicorn api:app --reload              # Dev (http://localhost:8000)
    uvicorn api:app --host 0.0.0.0        # Production
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from dotenv import load_dotenv
from fastapi import Body, FastAPI, HTTPException, Query, Request, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel, Field, ValidationError

from address_verifier import __version__
from address_verifier.config import Settings
from address_verifier.dashboard import create_placeholder, delete_all_records, delete_record
from address_verifier.evaluator import evaluate_address
from address_verifier.exceptions import (
    AddressVerificationError,
    ImageDecodeError,
    MissingIdError,
    PersistenceFailure,
    RecordNotFound,
    StatusRegression,
)
from address_verifier.imaging import MAX_WIDTH, QUALITY, compress_image
from address_verifier.models import EvaluationResult, VerificationRecord
from address_verifier.render_html import render_html
from address_verifier.render_pdf import render_pdf
from address_verifier.report import ReportView, build_report
from address_verifier.store import VerificationStore, create_store

load_dotenv()

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 15 * 1_048_576


# ─── Application Lifespan (open the record store) ───────────────────

_store: VerificationStore | None = None
_settings: Settings | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the record store on startup."""
    global _store, _settings  # noqa: PLW0603
    _settings = Settings.from_env()
    _store = create_store(_settings)
    yield
    _store = None


# ─── FastAPI App ─────────────────────────────────────────────────────

app = FastAPI(
    title="Address Verifier API",
    description=(
        "Residential address verification: applicant records with photo "
        "evidence and GPS capture, LLM-backed address matching with an offline "
        "fallback, and screen/print/PDF reports."
    ),
    version=__version__,
    lifespan=lifespan,
)


# ─── Error Mapping ──────────────────────────────────────────────────

_STATUS_CODES: list[tuple[type[AddressVerificationError], int]] = [
    (MissingIdError, 400),
    (ImageDecodeError, 400),
    (RecordNotFound, 404),
    (StatusRegression, 409),
    (PersistenceFailure, 500),
]


@app.exception_handler(AddressVerificationError)
async def _domain_error(request: Request, exc: AddressVerificationError) -> JSONResponse:
    status = next((code for cls, code in _STATUS_CODES if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"error": exc.message})


# ─── Request / Response Schemas ─────────────────────────────────────


class EvaluateRequest(BaseModel):
    """Request body for the /evaluations endpoint."""

    address: Optional[str] = Field(default=None, description="Claimed address text")
    captured_lat: Optional[float] = None
    captured_lng: Optional[float] = None
    name: Optional[str] = None

    model_config = {"json_schema_extra": {"example": {
        "address": "Beach Road, Visakhapatnam, Andhra Pradesh 530017",
        "captured_lat": 17.6983203,
        "captured_lng": 83.162918,
        "name": "Ravi Kumar",
    }}}


class LinkResponse(BaseModel):
    success: bool
    id: str
    link: str


class CompressResponse(BaseModel):
    image: str = Field(description="JPEG data URI")
    size: int = Field(description="Encoded length in characters")


class HealthResponse(BaseModel):
    status: str
    version: str
    store: str
    evaluator: str


# ─── Helpers ─────────────────────────────────────────────────────────


def _get_store() -> VerificationStore:
    if _store is None:
        raise HTTPException(status_code=503, detail="Record store not initialised")
    return _store


def _get_settings() -> Settings:
    return _settings or Settings.from_env()


# ─── Records ─────────────────────────────────────────────────────────


@app.post("/verifications", status_code=201, tags=["Records"])
def save_verification(payload: dict[str, Any] = Body(...)) -> dict:
    """Insert or replace the record with this id (single upsert, no partial saves)."""
    if not payload.get("id"):
        raise MissingIdError()

    # created_at is server-assigned
    payload = {k: v for k, v in payload.items() if k != "created_at"}
    try:
        record = VerificationRecord.model_validate(payload)
    except ValidationError as e:
        return JSONResponse(status_code=400, content={"error": _first_error(e)})

    stored = _get_store().put(record)
    return {"success": True, "id": stored.id}


@app.get("/verifications", tags=["Records"])
def list_verifications() -> list[dict]:
    return [r.to_document() for r in _get_store().list_all()]


@app.delete("/verifications", tags=["Records"])
def delete_all_verifications() -> dict:
    deleted = delete_all_records(_get_store())
    return {"success": True, "deleted": deleted}


@app.post("/verifications/links", status_code=201, tags=["Records"])
def create_applicant_link() -> LinkResponse:
    """Create a pending placeholder record and a shareable applicant link."""
    record, link = create_placeholder(_get_store(), _get_settings().public_base_url)
    return LinkResponse(success=True, id=record.id, link=link)


@app.get(
    "/verifications/{record_id}",
    tags=["Records"],
    responses={404: {"description": "Verification not found"}},
)
def get_verification(record_id: str) -> dict:
    return _get_store().get(record_id).to_document()


@app.delete("/verifications/{record_id}", tags=["Records"])
def delete_verification(record_id: str) -> dict:
    delete_record(_get_store(), record_id)
    return {"success": True}


# ─── Reports ─────────────────────────────────────────────────────────


@app.get("/verifications/{record_id}/report", tags=["Reports"])
def get_report(record_id: str) -> ReportView:
    return build_report(_get_store().get(record_id))


@app.get("/verifications/{record_id}/report.html", tags=["Reports"], response_class=HTMLResponse)
def get_report_html(
    record_id: str, print_view: bool = Query(False, alias="print")
) -> HTMLResponse:
    view = build_report(_get_store().get(record_id))
    return HTMLResponse(render_html(view, print_mode=print_view, back_url="/verifications"))


@app.get("/verifications/{record_id}/report.pdf", tags=["Reports"])
async def get_report_pdf(record_id: str) -> Response:
    view = build_report(_get_store().get(record_id))
    pdf = await asyncio.to_thread(render_pdf, view)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{view.filename}"'},
    )


# ─── Applicant Helpers ───────────────────────────────────────────────


@app.post("/evaluations", tags=["Applicant"])
async def evaluate(request: EvaluateRequest) -> EvaluationResult:
    """Geocode the claimed address and judge it against the captured point.

    Never fails: without a reachable model the optimistic fallback is returned.
    """
    return await asyncio.to_thread(
        evaluate_address,
        request.address,
        request.captured_lat,
        request.captured_lng,
        name=request.name,
        settings=_get_settings(),
    )


@app.post(
    "/images/compress",
    tags=["Applicant"],
    responses={
        400: {"description": "Not a decodable image, or max_width/quality out of range"},
        413: {"description": "File too large (max 15 MB)"},
    },
)
async def compress(
    file: UploadFile,
    max_width: int = Query(MAX_WIDTH, description="Upper bound for the output width (> 0)"),
    quality: float = Query(QUALITY, description="JPEG quality in (0, 1]"),
) -> CompressResponse:
    """Shrink an evidence photo to a JPEG data URI (width <= max_width)."""
    if file.size and file.size > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File too large (max 15 MB)")

    content = await file.read()
    try:
        image = await asyncio.to_thread(compress_image, content, max_width, quality)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    return CompressResponse(image=image, size=len(image))


# ─── System ──────────────────────────────────────────────────────────


@app.get(
    "/health",
    summary="Health check",
    tags=["System"],
    responses={503: {"description": "Record store not initialised"}},
)
def health_check() -> HealthResponse:
    store = _get_store()
    return HealthResponse(
        status="healthy",
        version=__version__,
        store=type(store).__name__,
        evaluator="llm" if _get_settings().openai_api_key else "fallback",
    )


def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    location = ".".join(str(part) for part in err.get("loc", ()))
    return f"Invalid field '{location}': {err.get('msg')}"
