"""
Date-Swap Reconciler — FastAPI Server
=====================================

HTTP surface over the three reconciliation phases.

Endpoints:
    POST /analyze        Count matches and swaps (read-only)
    POST /fix            Correct every detected swap
    POST /verify         Report swaps that remain (read-only)
    GET  /count          Records stored on one date
    GET  /health         Health check / readiness probe

Run:
    uvicorn api:app --reload              # Dev (http://localhost:8000)
    uvicorn api:app --host 0.0.0.0        # Production
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from swap_reconciler import __version__
from swap_reconciler.config import Settings, load_settings
from swap_reconciler.driver import ReconciliationDriver
from swap_reconciler.exceptions import ConfigurationError, SourceUnavailable
from swap_reconciler.models import AnalyzeReport, FixReport, VerifyReport
from swap_reconciler.postgrest import PostgrestRecordSource
from swap_reconciler.source import InMemoryRecordSource, RecordSource, sample_records

load_dotenv()

logger = logging.getLogger(__name__)


# ─── Application Lifespan (one source per process) ──────────────────

_driver: ReconciliationDriver | None = None
_settings: Settings | None = None


def _open_source(settings: Settings) -> RecordSource:
    if settings.sample_mode:
        logger.warning("Sample mode: serving the built-in demo table, no store is contacted")
        return InMemoryRecordSource(sample_records())
    return PostgrestRecordSource.from_settings(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect to the store on startup and close the connection on shutdown.

    A configuration error leaves the app up but uninitialised; every route
    then answers 503 until the configuration is fixed and the app restarted.
    """
    global _driver, _settings  # noqa: PLW0603
    source: RecordSource | None = None
    try:
        settings = load_settings()
        tz = settings.zone()
        source = _open_source(settings)
    except ConfigurationError as exc:
        logger.error("Reconciler not initialised: [%s] %s", exc.code, exc)
        _driver = None
        _settings = None
    else:
        _settings = settings
        _driver = ReconciliationDriver(source, sample_size=settings.sample_size, tz=tz)
    try:
        yield
    finally:
        if source is not None:
            source.close()
        _driver = None
        _settings = None


# ─── FastAPI App ─────────────────────────────────────────────────────

app = FastAPI(
    title="Date-Swap Reconciler API",
    description=(
        "Detects stored dates whose day and month were transposed, using each "
        "record's creation timestamp as the source of truth, and repairs them."
    ),
    version=__version__,
    lifespan=lifespan,
)


# ─── Request / Response Schemas ─────────────────────────────────────


class PhaseRequest(BaseModel):
    """Request body shared by all three phases."""

    batch_limit: Optional[int] = Field(
        default=None,
        ge=1,
        description="Most recent N records to scan. Defaults to the configured limit.",
        json_schema_extra={"example": 2000},
    )


class CountResponse(BaseModel):
    stored_date: date
    count: int


class HealthResponse(BaseModel):
    status: str
    version: str
    table: str
    default_batch_limit: int


# ─── Helpers ─────────────────────────────────────────────────────────


def _get_driver() -> ReconciliationDriver:
    if _driver is None:
        raise HTTPException(status_code=503, detail="Reconciler not initialised")
    return _driver


def _limit(request: PhaseRequest | None) -> int:
    if request is not None and request.batch_limit is not None:
        return request.batch_limit
    return _settings.batch_limit if _settings is not None else Settings().batch_limit


def _source_error(exc: SourceUnavailable) -> HTTPException:
    return HTTPException(
        status_code=502,
        detail={"code": exc.code, "message": str(exc), "details": exc.details},
    )


_ERROR_RESPONSES = {
    502: {"description": "Record store unavailable; phase aborted"},
    503: {"description": "Reconciler not yet initialised"},
}


# ─── Endpoints ───────────────────────────────────────────────────────


@app.post("/analyze", summary="Count matches and swaps", tags=["Reconciliation"], responses=_ERROR_RESPONSES)
def analyze(request: Optional[PhaseRequest] = None) -> AnalyzeReport:
    """Classify the most recent records without writing anything.

    Returns counts plus a small sample of detected swaps with their evidence.
    """
    driver = _get_driver()
    try:
        return driver.analyze(_limit(request))
    except SourceUnavailable as exc:
        raise _source_error(exc) from exc


@app.post("/fix", summary="Correct detected swaps", tags=["Reconciliation"], responses=_ERROR_RESPONSES)
def fix(request: Optional[PhaseRequest] = None) -> FixReport:
    """Write the corrected date into every swapped record, one at a time.

    A failed write is reported in `failures` and does not stop the batch.
    """
    driver = _get_driver()
    try:
        return driver.fix(_limit(request))
    except SourceUnavailable as exc:
        raise _source_error(exc) from exc


@app.post("/verify", summary="Report remaining swaps", tags=["Reconciliation"], responses=_ERROR_RESPONSES)
def verify(request: Optional[PhaseRequest] = None) -> VerifyReport:
    """Re-scan and list every record that still classifies as swapped."""
    driver = _get_driver()
    try:
        return driver.verify(_limit(request))
    except SourceUnavailable as exc:
        raise _source_error(exc) from exc


@app.get("/count", summary="Records stored on one date", tags=["Diagnostics"], responses=_ERROR_RESPONSES)
def count(on_date: date = Query(..., alias="date", description="YYYY-MM-DD")) -> CountResponse:
    driver = _get_driver()
    try:
        return CountResponse(stored_date=on_date, count=driver.count_on_date(on_date))
    except SourceUnavailable as exc:
        raise _source_error(exc) from exc


@app.get("/health", summary="Health check", tags=["System"], responses={503: _ERROR_RESPONSES[503]})
def health_check() -> HealthResponse:
    """Returns service status and configuration info."""
    _get_driver()
    settings = _settings or Settings()
    return HealthResponse(
        status="healthy",
        version=__version__,
        table=settings.table,
        default_batch_limit=settings.batch_limit,
    )
