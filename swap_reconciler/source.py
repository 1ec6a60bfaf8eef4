"""
Record Source — the engine's only view of the store.

The driver never talks to a database client directly. It is handed a
RecordSource, constructed and closed by the caller, and uses three
operations: a recency-ordered bounded read, a single-record conditional
date write, and an exact-match count for diagnostics.
"""

from __future__ import annotations

import abc
from datetime import date, datetime, timezone
from typing import Any, Iterable, Union

from .models import RECORD_FIELDS, Record

RecordId = Union[int, str]


class RecordSource(abc.ABC):
    """Abstract store adapter consumed by the reconciliation driver."""

    @abc.abstractmethod
    def fetch_recent(
        self, limit: int, fields: tuple[str, ...] = RECORD_FIELDS
    ) -> list[Record]:
        """Return up to `limit` records, most recently created first.

        Ties on the trusted timestamp are broken by id (descending) so one
        call is always consistent. Records with no timestamp come last.

        Raises:
            SourceUnavailable: the store could not be read.
        """

    @abc.abstractmethod
    def update_stored_date(
        self, record_id: RecordId, new_date: date, *, expected: date | None = None
    ) -> bool:
        """Write `new_date` into one record's stored date, nothing else.

        When `expected` is given, the write only happens if the stored date
        still equals it.

        Returns:
            True if a row was written, False if the condition did not hold.

        Raises:
            SourceUnavailable: the store could not be written.
        """

    @abc.abstractmethod
    def count_matching(self, field: str, value: Any) -> int:
        """Count records whose `field` equals `value` exactly."""

    def close(self) -> None:
        """Release underlying resources. Safe to call more than once."""

    def __enter__(self) -> "RecordSource":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


# ─── In-Memory Adapter ───────────────────────────────────────────────


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _id_key(record_id: RecordId) -> tuple:
    # int ids compare numerically, never as text
    return (isinstance(record_id, str), record_id)


def _recency_key(record: Record) -> tuple:
    ts = record.trusted_timestamp
    if ts is None:
        return (0, _EPOCH, _id_key(record.id))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return (1, ts, _id_key(record.id))


class InMemoryRecordSource(RecordSource):
    """List-backed source with the same ordering and write contract as a real store.

    Usage:
        source = InMemoryRecordSource([Record(id=1, code="A", ...)])
        driver = ReconciliationDriver(source)
    """

    def __init__(self, records: Iterable[Record] = ()):
        self._records: dict[RecordId, Record] = {}
        for record in records:
            self._records[record.id] = record.model_copy()

    def fetch_recent(
        self, limit: int, fields: tuple[str, ...] = RECORD_FIELDS
    ) -> list[Record]:
        ordered = sorted(self._records.values(), key=_recency_key, reverse=True)
        return [r.model_copy() for r in ordered[:limit]]

    def update_stored_date(
        self, record_id: RecordId, new_date: date, *, expected: date | None = None
    ) -> bool:
        record = self._records.get(record_id)
        if record is None:
            return False
        if expected is not None and record.stored_date != expected:
            return False
        self._records[record_id] = record.model_copy(update={"stored_date": new_date})
        return True

    def count_matching(self, field: str, value: Any) -> int:
        return sum(1 for r in self._records.values() if getattr(r, field) == value)

    def get(self, record_id: RecordId) -> Record | None:
        return self._records.get(record_id)

    def __len__(self) -> int:
        return len(self._records)


# ─── Sample Data ─────────────────────────────────────────────────────


def sample_records() -> list[Record]:
    """A small demo table: two swapped dates, two matches, one unrelated, one incomplete."""
    utc = timezone.utc
    return [
        Record(id=6, code="DH-0006", stored_date=date(2026, 2, 5), trusted_timestamp=datetime(2026, 5, 2, 10, 30, tzinfo=utc)),
        Record(id=5, code="DH-0005", stored_date=date(2026, 5, 1), trusted_timestamp=datetime(2026, 5, 1, 9, 15, tzinfo=utc)),
        Record(id=4, code="DH-0004", stored_date=date(2026, 4, 2), trusted_timestamp=datetime(2026, 2, 4, 16, 0, tzinfo=utc)),
        Record(id=3, code="DH-0003", stored_date=date(2026, 3, 4), trusted_timestamp=datetime(2026, 1, 9, 8, 45, tzinfo=utc)),
        Record(id=2, code="DH-0002", stored_date=date(2026, 1, 1), trusted_timestamp=datetime(2026, 1, 1, 0, 5, tzinfo=utc)),
        Record(id=1, code="DH-0001", stored_date=None, trusted_timestamp=datetime(2025, 12, 30, 11, 0, tzinfo=utc)),
    ]
