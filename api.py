"""
Unknown Owner Parser — FastAPI Server
======================================

Preview service for parsing cadastral "unknown owner" names.

Endpoints:
    POST /parse             Parse one record (preview)
    POST /parse/batch       Parse a list of records with import statistics
    GET  /health            Health check / readiness probe

Run:
    uvicorn api:app --reload              # Dev (http://localhost:8000)
    uvicorn api:app --host 0.0.0.0        # Production

Docs:
    http://localhost:8000/docs             # Swagger UI (auto-generated)
    http://localhost:8000/redoc            # ReDoc (alternative)
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from owner_parser import __version__
from owner_parser.config import Settings, configure_logging
from owner_parser.models import (
    ImportStats,
    LegacyTag,
    MergedTag,
    OwnerRow,
    ParsedRecord,
    ParseReport,
    TagRow,
)
from owner_parser.pipeline import OwnerParsingPipeline

# ─── Load .env ───────────────────────────────────────────────────────
load_dotenv()


# ─── Application Lifespan (pre-warm pipeline) ───────────────────────

_pipeline: OwnerParsingPipeline | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Pre-warm the pipeline (dictionary + compiled rules) on startup."""
    global _pipeline  # noqa: PLW0603
    settings = Settings.from_env()
    configure_logging(settings)
    _pipeline = OwnerParsingPipeline(settings)
    yield
    _pipeline = None


# ─── FastAPI App ─────────────────────────────────────────────────────

app = FastAPI(
    title="Unknown Owner Parser API",
    description=(
        "Structured records from cadastral unknown-owner names. "
        "Dual extraction (advanced rules + legacy tagger), confidence scoring, "
        "conflict detection and tag reconciliation."
    ),
    version=__version__,
    lifespan=lifespan,
)


# ─── Request / Response Schemas ─────────────────────────────────────


class ParseRequest(BaseModel):
    """One input row. Extra columns are passed through to SPF detection."""

    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={"example": {
            "territory": "Bošany",
            "sequence_number": 12,
            "ownership_list_number": "431",
            "raw_name": "Batóová Júlia r. Szivecová, (z Várkonyu, m.Ján)",
        }},
    )

    territory: str = ""
    sequence_number: Optional[int | str] = None
    ownership_list_number: Optional[int | str] = None
    raw_name: str = Field(..., description="The raw owner name as written in the register.")


class BatchRequest(BaseModel):
    records: list[ParseRequest] = Field(..., min_length=1, max_length=10_000)


class ParseResponse(BaseModel):
    """Everything the pipeline produced for one record."""

    original_hash: str = Field(description="SHA-256 hash of the raw name")
    record: ParsedRecord
    legacy_tags: list[LegacyTag]
    merged_tags: list[MergedTag]
    conflicts: list[MergedTag]
    owner_row: OwnerRow
    tag_rows: list[TagRow]


class BatchResponse(BaseModel):
    stats: ImportStats
    results: list[ParseResponse]
    errors: list[str]


class HealthResponse(BaseModel):
    status: str
    version: str
    given_names_loaded: int


# ─── Helpers ─────────────────────────────────────────────────────────


def _get_pipeline() -> OwnerParsingPipeline:
    if _pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialised")
    return _pipeline


def _build_response(report: ParseReport) -> ParseResponse:
    """Convert the internal ParseReport to the API response schema."""
    return ParseResponse(
        original_hash=report.original_hash,
        record=report.record,
        legacy_tags=report.legacy_tags,
        merged_tags=report.merged_tags,
        conflicts=report.conflicts,
        owner_row=report.owner_row,
        tag_rows=report.tag_rows,
    )


# ─── Endpoints ───────────────────────────────────────────────────────


@app.post(
    "/parse",
    summary="Parse a single owner record",
    tags=["Parsing"],
    responses={503: {"description": "Pipeline not yet initialised"}},
)
def parse_record(request: ParseRequest) -> ParseResponse:
    """Run both extractors and the reconciler on one raw name.

    Returns:
    - **record**: advanced fields with confidence, spans and parse errors
    - **legacy_tags**: the legacy tagger's flat tags
    - **merged_tags** / **conflicts**: the reconciled tag set
    - **owner_row** / **tag_rows**: rows as they would be persisted
    """
    pipeline = _get_pipeline()
    report = pipeline.run(request.model_dump())
    return _build_response(report)


@app.post(
    "/parse/batch",
    summary="Parse a batch of owner records",
    tags=["Parsing"],
    responses={503: {"description": "Pipeline not yet initialised"}},
)
async def parse_batch(request: BatchRequest) -> BatchResponse:
    """Parse up to 10 000 records; one failing record never fails the batch."""
    pipeline = _get_pipeline()
    rows = [r.model_dump() for r in request.records]
    result = await asyncio.to_thread(pipeline.run_batch, rows)
    return BatchResponse(
        stats=result.stats,
        results=[_build_response(r) for r in result.reports],
        errors=result.errors,
    )


@app.get(
    "/health",
    summary="Health check",
    tags=["System"],
    responses={503: {"description": "Pipeline not yet initialised"}},
)
def health_check() -> HealthResponse:
    """Returns service status and configuration info."""
    pipeline = _get_pipeline()
    return HealthResponse(
        status="healthy",
        version=__version__,
        given_names_loaded=len(pipeline.given_names),
    )
