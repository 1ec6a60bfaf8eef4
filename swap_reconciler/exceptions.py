"""
Custom exception hierarchy for date-swap reconciliation.

Each exception type maps to a specific category of failure, so the driver
can tell a phase-aborting outage apart from per-record data noise.
"""

from __future__ import annotations


class ReconciliationError(Exception):
    """Base exception for all reconciliation failures."""

    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code = code
        self.details = details or {}
        super().__init__(message)


class SourceUnavailable(ReconciliationError):
    """The record store could not be read from or written to."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("SOURCE_UNAVAILABLE", message, details)


class MalformedRecord(ReconciliationError):
    """A stored date or trusted timestamp could not be parsed."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("MALFORMED_RECORD", message, details)


class ConfigurationError(ReconciliationError):
    """Settings are missing or invalid."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("CONFIGURATION_ERROR", message, details)
