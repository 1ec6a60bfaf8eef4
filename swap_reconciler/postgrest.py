"""
PostgREST (Supabase REST) record source built on httpx.

Design:
  - One httpx.Client per source, owned by the caller (use as a context manager)
  - Reads are paged, so a server-side row cap never silently shrinks the window
  - Writes PATCH a single row filtered by id, and by the previously read date
    when an expected value is given (conditional write)
  - Every transport, auth or HTTP error surfaces as SourceUnavailable
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any

import httpx

from .config import Settings
from .exceptions import MalformedRecord, SourceUnavailable
from .models import RECORD_FIELDS, Record
from .parsing import ColumnMap, record_from_row
from .source import RecordId, RecordSource

logger = logging.getLogger(__name__)

MAX_ERROR_DETAIL_CHARS = 300
_CONTENT_RANGE = re.compile(r"^(?:\d+-\d+|\*)/(\d+)$")


def _filter_value(value: Any) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


class PostgrestRecordSource(RecordSource):
    """Record source for a table exposed through PostgREST.

    Usage:
        with PostgrestRecordSource(url, key, table="orders") as source:
            report = ReconciliationDriver(source).analyze(2000)
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        table: str = "orders",
        columns: ColumnMap | None = None,
        page_size: int = 1000,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        if page_size < 1:
            raise ValueError("page_size must be a positive integer")
        self.table = table
        self.columns = columns or ColumnMap()
        self.page_size = page_size
        self._client: httpx.Client | None = httpx.Client(
            base_url=f"{base_url.rstrip('/')}/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.BaseTransport | None = None
    ) -> "PostgrestRecordSource":
        """Build a source from Settings (store URL and key must be set)."""
        settings.require_store()
        return cls(
            settings.store_url or "",
            settings.store_key or "",
            table=settings.table,
            columns=settings.column_map(),
            page_size=settings.page_size,
            timeout=settings.timeout_sec,
            transport=transport,
        )

    # ─── RecordSource ───────────────────────────────────────────────

    def fetch_recent(
        self, limit: int, fields: tuple[str, ...] = RECORD_FIELDS
    ) -> list[Record]:
        wanted = list(dict.fromkeys(("id",) + tuple(fields)))
        select = ",".join(self.columns.columns(wanted))
        order = (
            f"{self.columns.trusted_timestamp}.desc.nullslast,"
            f"{self.columns.id}.desc"
        )

        records: list[Record] = []
        offset = 0
        while offset < limit:
            page_limit = min(self.page_size, limit - offset)
            response = self._request(
                "GET",
                params={
                    "select": select,
                    "order": order,
                    "limit": str(page_limit),
                    "offset": str(offset),
                },
            )
            rows = self._json_rows(response)
            for row in rows:
                try:
                    records.append(record_from_row(row, self.columns))
                except MalformedRecord as exc:
                    logger.warning("Skipping row from %s: %s", self.table, exc)
            offset += len(rows)
            if len(rows) < page_limit:
                break

        logger.debug("Fetched %d record(s) from %s", len(records), self.table)
        return records

    def update_stored_date(
        self, record_id: RecordId, new_date: date, *, expected: date | None = None
    ) -> bool:
        params = {self.columns.id: f"eq.{_filter_value(record_id)}"}
        if expected is not None:
            params[self.columns.stored_date] = f"eq.{expected.isoformat()}"
        response = self._request(
            "PATCH",
            params=params,
            json={self.columns.stored_date: new_date.isoformat()},
            headers={"Prefer": "return=representation"},
        )
        return len(self._json_rows(response)) > 0

    def count_matching(self, field: str, value: Any) -> int:
        column = self.columns.column(field)
        response = self._request(
            "HEAD",
            params={"select": self.columns.id, column: f"eq.{_filter_value(value)}"},
            headers={"Prefer": "count=exact"},
        )
        content_range = response.headers.get("content-range", "")
        match = _CONTENT_RANGE.match(content_range.strip())
        if not match:
            raise SourceUnavailable(
                f"Count response for {self.table} has no usable Content-Range",
                details={"content_range": content_range},
            )
        return int(match.group(1))

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    # ─── HTTP Helpers ───────────────────────────────────────────────

    def _request(
        self,
        method: str,
        *,
        params: dict[str, str],
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        if self._client is None:
            raise SourceUnavailable(f"Source for {self.table} is closed")
        try:
            response = self._client.request(
                method, f"/{self.table}", params=params, json=json, headers=headers
            )
        except httpx.HTTPError as exc:
            raise SourceUnavailable(
                f"{method} {self.table} failed: {type(exc).__name__}: {exc}",
                details={"method": method, "table": self.table},
            ) from exc

        if response.status_code >= 400:
            raise SourceUnavailable(
                f"{method} {self.table} returned HTTP {response.status_code}",
                details={
                    "method": method,
                    "table": self.table,
                    "status_code": response.status_code,
                    "body": response.text[:MAX_ERROR_DETAIL_CHARS],
                },
            )
        return response

    def _json_rows(self, response: httpx.Response) -> list[dict[str, Any]]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceUnavailable(
                f"Response from {self.table} is not JSON",
                details={"body": response.text[:MAX_ERROR_DETAIL_CHARS]},
            ) from exc
        if not isinstance(payload, list):
            raise SourceUnavailable(
                f"Expected a list of rows from {self.table}, got {type(payload).__name__}",
            )
        return payload
