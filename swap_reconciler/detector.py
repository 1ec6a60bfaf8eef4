"""
Swap detector — the one rule every phase shares.

Pure code, no I/O. Given a stored date (untrusted for day/month ordering)
and a trusted timestamp (system-assigned, immune to transposition), decide
whether the stored date is a clean day/month swap of the timestamp's
calendar day.

Rule:
  - Stored day == trusted month AND stored month == trusted day
    AND stored day != stored month          → SWAPPED (exchange day/month)
  - Stored day/month == trusted day/month   → MATCH
  - Anything else (including missing data)  → UNRELATED

The year of the trusted timestamp is never compared and a correction never
changes the stored year.
"""

from __future__ import annotations

from datetime import date, datetime, tzinfo

from .models import Classification, Record, Verdict


def classify(
    stored_date: date | None,
    trusted_timestamp: datetime | None,
    tz: tzinfo | None = None,
) -> Classification:
    """Classify one stored date against its trusted timestamp.

    Args:
        stored_date: The business date as entered or imported.
        trusted_timestamp: The machine-assigned creation time.
        tz: Zone in which to read the timestamp's month/day. Only applied to
            timezone-aware timestamps; naive ones are read as-is.

    Returns:
        Classification with a corrected date when the verdict is SWAPPED.
    """
    if stored_date is None or trusted_timestamp is None:
        return Classification(verdict=Verdict.UNRELATED)

    year, month, day = stored_date.year, stored_date.month, stored_date.day
    t_month, t_day = trusted_month_day(trusted_timestamp, tz)

    # Day == month would swap onto itself, so it is never reported as a swap
    if day == t_month and month == t_day and day != month:
        return Classification(
            verdict=Verdict.SWAPPED,
            corrected_date=date(year, day, month),
            reason=(
                f"Day {day} matches Month {t_month}, "
                f"Month {month} matches Day {t_day}"
            ),
        )

    if day == t_day and month == t_month:
        return Classification(verdict=Verdict.MATCH)

    return Classification(verdict=Verdict.UNRELATED)


def classify_record(record: Record, tz: tzinfo | None = None) -> Classification:
    """Run `classify` over a Record's stored date and trusted timestamp."""
    return classify(record.stored_date, record.trusted_timestamp, tz)


def trusted_month_day(timestamp: datetime, tz: tzinfo | None = None) -> tuple[int, int]:
    """Return (month, day) of the timestamp, read in `tz` when it is aware."""
    if tz is not None and timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(tz)
    return timestamp.month, timestamp.day


def trusted_date(timestamp: datetime, tz: tzinfo | None = None) -> date:
    """Calendar date of the timestamp, read in `tz` when it is aware."""
    if tz is not None and timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(tz)
    return timestamp.date()
