"""
Conversion of raw store rows into Records.

Philosophy: It's better to read nothing than to read wrong data.
Only the store's canonical YYYY-MM-DD form is accepted for the stored date;
slash-separated or otherwise localized values are NOT reinterpreted. They
become None and the record classifies as UNRELATED.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from pydantic import TypeAdapter, ValidationError

from .exceptions import MalformedRecord
from .models import Record

logger = logging.getLogger(__name__)

_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:$|[T ])")
_ISO_TIMESTAMP = re.compile(r"^\d{4}-\d{1,2}-\d{1,2}(?:$|[T ]\d)")
_TIMESTAMP = TypeAdapter(datetime)


@dataclass(frozen=True)
class ColumnMap:
    """Maps Record fields onto the store's column names."""

    id: str = "id"
    code: str = "order_code"
    stored_date: str = "order_date"
    trusted_timestamp: str = "created_at"

    def column(self, field_name: str) -> str:
        try:
            return getattr(self, field_name)
        except AttributeError:
            raise KeyError(f"Unknown record field '{field_name}'") from None

    def columns(self, fields: tuple[str, ...] | list[str]) -> list[str]:
        return [self.column(f) for f in fields]


# ─── Field Parsers ───────────────────────────────────────────────────


def parse_stored_date(value: Any) -> date:
    """Parse a stored date: a date, or a 'YYYY-MM-DD' string (time part ignored).

    Raises:
        MalformedRecord: the value is not an ISO calendar date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise MalformedRecord(
            f"Stored date has unsupported type {type(value).__name__}",
            details={"value": repr(value)},
        )

    match = _ISO_DATE.match(value.strip())
    if not match:
        raise MalformedRecord(
            f"Stored date '{value}' is not in YYYY-MM-DD form",
            details={"value": value},
        )
    year, month, day = (int(g) for g in match.groups())
    try:
        return date(year, month, day)
    except ValueError as exc:
        raise MalformedRecord(
            f"Stored date '{value}' is not a calendar date: {exc}",
            details={"value": value},
        ) from exc


def parse_trusted_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp (with or without offset, 'Z' accepted).

    Raises:
        MalformedRecord: the value is not a timestamp.
    """
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise MalformedRecord(
            f"Trusted timestamp has unsupported type {type(value).__name__}",
            details={"value": repr(value)},
        )
    value = value.strip()
    if not _ISO_TIMESTAMP.match(value):
        raise MalformedRecord(
            f"Trusted timestamp '{value}' is not in ISO-8601 form",
            details={"value": value},
        )
    try:
        return _TIMESTAMP.validate_python(value)
    except ValidationError as exc:
        raise MalformedRecord(
            f"Trusted timestamp '{value}' could not be parsed",
            details={"value": value, "errors": exc.error_count()},
        ) from exc


# ─── Row Conversion ──────────────────────────────────────────────────


def record_from_row(row: dict[str, Any], columns: ColumnMap | None = None) -> Record:
    """Build a Record from a raw row.

    Unparseable dates are logged and left as None rather than raised, so a
    single bad row never halts a scan.

    Raises:
        MalformedRecord: the row has no id, so it could never be updated.
    """
    columns = columns or ColumnMap()
    record_id = row.get(columns.id)
    if record_id is None:
        raise MalformedRecord(
            f"Row has no '{columns.id}' value", details={"row": repr(row)}
        )
    code = row.get(columns.code)

    stored = row.get(columns.stored_date)
    stored_date: date | None = None
    if stored is not None:
        try:
            stored_date = parse_stored_date(stored)
        except MalformedRecord as exc:
            logger.debug("Record %s: %s", record_id, exc)

    created = row.get(columns.trusted_timestamp)
    trusted_timestamp: datetime | None = None
    if created is not None:
        try:
            trusted_timestamp = parse_trusted_timestamp(created)
        except MalformedRecord as exc:
            logger.debug("Record %s: %s", record_id, exc)

    return Record(
        id=record_id,
        code="" if code is None else str(code),
        stored_date=stored_date,
        trusted_timestamp=trusted_timestamp,
    )
