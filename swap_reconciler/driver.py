"""
Reconciliation driver — the three phases over one shared detector.

Flow (every phase):
  ┌──────────────┐
  │ fetch_recent │   ← bounded, most-recent-first
  └──────┬───────┘
         │
  ┌──────▼───────┐
  │   classify   │   ← the same rule for analyze, fix and verify
  └──────┬───────┘
         │
    ┌────┴─────┬───────────────┐
    │          │               │
 analyze      fix            verify
 (counts,   (write each     (list what is
  sample)    swap, one       still swapped)
             at a time)

Design principles:
  - No state between invocations. Every phase re-derives truth from the
    store and can be re-run after a partial failure.
  - A read failure aborts the phase (nothing to classify).
  - A write failure is isolated to its record; the batch continues.
  - Writes are conditional on the date that was read, so a concurrent edit
    is skipped rather than overwritten.
"""

from __future__ import annotations

import logging
from datetime import date, tzinfo
from typing import Iterator

from .detector import classify_record, trusted_date, trusted_month_day
from .exceptions import SourceUnavailable
from .models import (
    AnalyzeReport,
    Classification,
    FixedRecord,
    FixFailure,
    FixReport,
    Record,
    RemainingSwap,
    SwapSample,
    Verdict,
    VerifyReport,
)
from .source import RecordSource

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_SIZE = 5


class ReconciliationDriver:
    """Runs analyze / fix / verify against an injected RecordSource.

    Usage:
        with InMemoryRecordSource(records) as source:
            driver = ReconciliationDriver(source)
            driver.analyze(2000)     # read-only report
            driver.fix(2000)         # apply corrections
            driver.verify(2000)      # assert nothing is left
    """

    def __init__(
        self,
        source: RecordSource,
        *,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        tz: tzinfo | None = None,
    ):
        if sample_size < 0:
            raise ValueError("sample_size must not be negative")
        self.source = source
        self.sample_size = sample_size
        self.tz = tz

    # ─── Analyze ────────────────────────────────────────────────────

    def analyze(self, batch_limit: int) -> AnalyzeReport:
        """Classify the most recent `batch_limit` records without writing anything."""
        logger.info("Analyze: scanning up to %d record(s)...", batch_limit)
        records = self._fetch(batch_limit)
        report = AnalyzeReport(records_scanned=len(records))

        for record, result in self._classified(records):
            if result.verdict == Verdict.MATCH:
                report.match_count += 1
            elif result.verdict == Verdict.SWAPPED:
                report.swap_count += 1
                if len(report.samples) < self.sample_size:
                    report.samples.append(self._sample(record, result))
            elif _is_incomplete(record):
                report.incomplete_count += 1
            else:
                report.unrelated_count += 1

        logger.info(
            "Analyze complete: %d scanned, %d match, %d swapped",
            report.records_scanned,
            report.match_count,
            report.swap_count,
        )
        return report

    # ─── Fix ────────────────────────────────────────────────────────

    def fix(self, batch_limit: int) -> FixReport:
        """Correct every swapped record in the batch, one synchronous write at a time."""
        logger.info("Fix: scanning up to %d record(s)...", batch_limit)
        records = self._fetch(batch_limit)
        report = FixReport(records_scanned=len(records))

        for record, result in self._classified(records):
            if result.verdict != Verdict.SWAPPED:
                continue
            # Type narrowing — SWAPPED implies both dates were present
            assert record.stored_date is not None
            assert result.corrected_date is not None

            try:
                written = self.source.update_stored_date(
                    record.id, result.corrected_date, expected=record.stored_date
                )
            except SourceUnavailable as exc:
                report.fail_count += 1
                report.failures.append(
                    FixFailure(id=record.id, code=record.code, error=str(exc))
                )
                logger.error("Failed to update %s (id=%s): %s", record.code, record.id, exc)
                continue

            if not written:
                report.skipped_count += 1
                logger.warning(
                    "Skipped %s (id=%s): stored date changed since it was read",
                    record.code,
                    record.id,
                )
                continue

            report.fix_count += 1
            report.fixed_records.append(
                FixedRecord(
                    code=record.code,
                    old_date=record.stored_date,
                    new_date=result.corrected_date,
                )
            )
            logger.info(
                "Fixed %s: %s -> %s (%s)",
                record.code,
                record.stored_date,
                result.corrected_date,
                result.reason,
            )

        logger.info(
            "Fix complete: %d scanned, %d fixed, %d failed, %d skipped",
            report.records_scanned,
            report.fix_count,
            report.fail_count,
            report.skipped_count,
        )
        return report

    # ─── Verify ─────────────────────────────────────────────────────

    def verify(self, batch_limit: int) -> VerifyReport:
        """Re-scan and report any record that still classifies as swapped."""
        logger.info("Verify: scanning up to %d record(s)...", batch_limit)
        records = self._fetch(batch_limit)
        report = VerifyReport(records_scanned=len(records))

        for record, result in self._classified(records):
            if result.verdict != Verdict.SWAPPED:
                continue
            assert record.stored_date is not None
            assert record.trusted_timestamp is not None

            month, day = trusted_month_day(record.trusted_timestamp, self.tz)
            report.remaining_swap_count += 1
            report.remaining.append(
                RemainingSwap(
                    code=record.code,
                    stored_date=record.stored_date,
                    trusted_month_day=f"{month}/{day}",
                )
            )
            logger.warning(
                "Still swapped: %s stored %s (trusted month/day %d/%d)",
                record.code,
                record.stored_date,
                month,
                day,
            )

        if report.clean:
            logger.info("Verify complete: no swapped dates in %d record(s)", report.records_scanned)
        else:
            logger.warning(
                "Verify complete: %d record(s) still swapped", report.remaining_swap_count
            )
        return report

    # ─── Diagnostics ────────────────────────────────────────────────

    def count_on_date(self, value: date) -> int:
        """Count records whose stored date is exactly `value`."""
        return self.source.count_matching("stored_date", value)

    # ─── Helpers ────────────────────────────────────────────────────

    def _fetch(self, batch_limit: int) -> list[Record]:
        if isinstance(batch_limit, bool) or not isinstance(batch_limit, int) or batch_limit < 1:
            raise ValueError(f"batch_limit must be a positive integer, got {batch_limit!r}")
        return self.source.fetch_recent(batch_limit)

    def _classified(self, records: list[Record]) -> Iterator[tuple[Record, Classification]]:
        for record in records:
            yield record, classify_record(record, self.tz)

    def _sample(self, record: Record, result: Classification) -> SwapSample:
        assert record.stored_date is not None
        assert record.trusted_timestamp is not None
        assert result.corrected_date is not None
        return SwapSample(
            code=record.code,
            stored_date=record.stored_date,
            trusted_date=trusted_date(record.trusted_timestamp, self.tz),
            corrected_date=result.corrected_date,
            reason=result.reason,
        )


def _is_incomplete(record: Record) -> bool:
    return record.stored_date is None or record.trusted_timestamp is None
