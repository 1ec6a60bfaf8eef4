"""
Pydantic models for records, classifications and phase reports.

Records come in from the store; classifications are computed fresh on every
pass and never persisted; reports are what each phase hands back to the
operator (CLI, API, or calling code).
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field


# ─── Verdict ─────────────────────────────────────────────────────────


class Verdict(str, Enum):
    """Outcome of comparing a stored date against its trusted timestamp."""

    SWAPPED = "SWAPPED"  # Clean day/month transposition — correctable
    MATCH = "MATCH"  # Day and month agree
    UNRELATED = "UNRELATED"  # Disagree for some other reason, or data missing


# ─── Record ──────────────────────────────────────────────────────────


RECORD_FIELDS: tuple[str, ...] = ("id", "code", "stored_date", "trusted_timestamp")


class Record(BaseModel):
    """One row of the store, reduced to the fields reconciliation needs.

    Dates are Optional because rows may be incomplete or carry values the
    parsers refused; such records classify as UNRELATED.
    """

    id: Union[int, str]
    code: str = ""
    stored_date: Optional[date] = None
    trusted_timestamp: Optional[datetime] = None


# ─── Classification ──────────────────────────────────────────────────


class Classification(BaseModel):
    """Per-record detector output."""

    verdict: Verdict
    corrected_date: Optional[date] = None  # Only set when verdict is SWAPPED
    reason: str = ""


# ─── Report Items ────────────────────────────────────────────────────


class SwapSample(BaseModel):
    """Evidence for one detected swap, shown to a human reviewer."""

    code: str
    stored_date: date
    trusted_date: date
    corrected_date: date
    reason: str


class FixedRecord(BaseModel):
    code: str
    old_date: date
    new_date: date


class FixFailure(BaseModel):
    id: Union[int, str]
    code: str
    error: str


class RemainingSwap(BaseModel):
    code: str
    stored_date: date
    trusted_month_day: str  # "M/D" as read from the trusted timestamp


# ─── Phase Reports ───────────────────────────────────────────────────


class AnalyzeReport(BaseModel):
    """Read-only scan result: counts plus a small sample for review."""

    records_scanned: int = 0
    match_count: int = 0
    swap_count: int = 0
    unrelated_count: int = 0
    incomplete_count: int = 0  # Missing or unparseable dates
    samples: list[SwapSample] = Field(default_factory=list)


class FixReport(BaseModel):
    """Result of applying corrections to every detected swap."""

    records_scanned: int = 0
    fix_count: int = 0
    fail_count: int = 0
    skipped_count: int = 0  # Record changed since fetch; nothing written
    fixed_records: list[FixedRecord] = Field(default_factory=list)
    failures: list[FixFailure] = Field(default_factory=list)


class VerifyReport(BaseModel):
    """Post-condition check: zero remaining swaps means the fix held."""

    records_scanned: int = 0
    remaining_swap_count: int = 0
    remaining: list[RemainingSwap] = Field(default_factory=list)

    @property
    def clean(self) -> bool:
        return self.remaining_swap_count == 0
