"""
FastAPI endpoint tests for the Date-Swap Reconciler API.

Uses FastAPI TestClient — no real server, no real store. Each test gets a
fresh in-memory source so fixes never leak between tests.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

import api
import pytest
from api import app
from fastapi.testclient import TestClient

from swap_reconciler.config import Settings
from swap_reconciler.driver import ReconciliationDriver
from swap_reconciler.exceptions import SourceUnavailable
from swap_reconciler.models import Record
from swap_reconciler.source import InMemoryRecordSource

client = TestClient(app)

UTC = timezone.utc

RECORDS = [
    Record(id=3, code="DH-3", stored_date=date(2026, 2, 5), trusted_timestamp=datetime(2026, 5, 2, 10, tzinfo=UTC)),
    Record(id=2, code="DH-2", stored_date=date(2026, 5, 1), trusted_timestamp=datetime(2026, 5, 1, 10, tzinfo=UTC)),
    Record(id=1, code="DH-1", stored_date=date(2026, 3, 4), trusted_timestamp=datetime(2026, 4, 3, 10, tzinfo=UTC)),
]


class UnreachableSource(InMemoryRecordSource):
    def fetch_recent(self, limit, fields=()):
        raise SourceUnavailable("connection refused", details={"status_code": 503})

    def count_matching(self, field, value):
        raise SourceUnavailable("connection refused")


@pytest.fixture(autouse=True)
def _in_memory_driver():
    """Install a driver over a fresh in-memory store (bypasses lifespan)."""
    api._settings = Settings(batch_limit=100)
    api._driver = ReconciliationDriver(InMemoryRecordSource(RECORDS))
    yield
    api._driver = None
    api._settings = None


class TestHealthEndpoint:
    def test_health_returns_200(self) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200

    def test_health_response_shape(self) -> None:
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"
        assert data["table"] == "orders"
        assert data["default_batch_limit"] == 100

    def test_uninitialised_returns_503(self) -> None:
        api._driver = None
        assert client.get("/health").status_code == 503


class TestAnalyzeEndpoint:
    def test_counts_and_sample(self) -> None:
        resp = client.post("/analyze", json={"batch_limit": 10})
        assert resp.status_code == 200
        data = resp.json()
        assert data["records_scanned"] == 3
        assert data["swap_count"] == 2
        assert data["match_count"] == 1
        assert data["samples"][0]["code"] == "DH-3"
        assert data["samples"][0]["corrected_date"] == "2026-05-02"

    def test_body_is_optional(self) -> None:
        resp = client.post("/analyze")
        assert resp.status_code == 200
        assert resp.json()["records_scanned"] == 3

    def test_batch_limit_is_respected(self) -> None:
        data = client.post("/analyze", json={"batch_limit": 1}).json()
        assert data["records_scanned"] == 1


class TestFixAndVerify:
    def test_fix_then_verify_is_clean(self) -> None:
        before = client.post("/verify", json={}).json()
        assert before["remaining_swap_count"] == 2

        fixed = client.post("/fix", json={"batch_limit": 10}).json()
        assert fixed["fix_count"] == 2
        assert fixed["fail_count"] == 0
        assert {r["new_date"] for r in fixed["fixed_records"]} == {"2026-05-02", "2026-04-03"}

        after = client.post("/verify", json={"batch_limit": 10}).json()
        assert after["remaining_swap_count"] == 0
        assert after["remaining"] == []

    def test_second_fix_is_a_no_op(self) -> None:
        client.post("/fix")
        assert client.post("/fix").json()["fix_count"] == 0

    def test_verify_lists_trusted_month_day(self) -> None:
        data = client.post("/verify").json()
        assert data["remaining"][0]["trusted_month_day"] == "5/2"


class TestCountEndpoint:
    def test_count_on_date(self) -> None:
        resp = client.get("/count", params={"date": "2026-02-05"})
        assert resp.status_code == 200
        assert resp.json() == {"stored_date": "2026-02-05", "count": 1}

    def test_bad_date_returns_422(self) -> None:
        assert client.get("/count", params={"date": "05/02/2026"}).status_code == 422


class TestRequestValidation:
    def test_zero_batch_limit_returns_422(self) -> None:
        assert client.post("/analyze", json={"batch_limit": 0}).status_code == 422

    def test_non_integer_batch_limit_returns_422(self) -> None:
        assert client.post("/fix", json={"batch_limit": "all"}).status_code == 422


class TestLifespan:
    """These enter the real application lifespan instead of the fixture's driver."""

    def test_missing_store_starts_uninitialised(self) -> None:
        with TestClient(app) as started:
            assert api._driver is None
            assert started.get("/health").status_code == 503
            assert started.post("/analyze").status_code == 503
            assert started.get("/count", params={"date": "2026-02-05"}).status_code == 503

    def test_invalid_setting_starts_uninitialised(self, monkeypatch) -> None:
        monkeypatch.setenv("SWAP_SAMPLE_MODE", "true")
        monkeypatch.setenv("SWAP_TIMEZONE", "Mars/Olympus_Mons")
        with TestClient(app) as started:
            assert started.get("/health").status_code == 503

    def test_sample_mode_serves_demo_table(self, monkeypatch) -> None:
        monkeypatch.setenv("SWAP_SAMPLE_MODE", "true")
        with TestClient(app) as started:
            health = started.get("/health")
            assert health.status_code == 200
            assert health.json()["default_batch_limit"] == 2000

            analyzed = started.post("/analyze").json()
            assert analyzed["records_scanned"] == 6
            assert analyzed["swap_count"] == 2
            assert analyzed["match_count"] == 2
            assert analyzed["unrelated_count"] == 1
            assert analyzed["incomplete_count"] == 1
            assert analyzed["samples"][0]["code"] == "DH-0006"

            fixed = started.post("/fix").json()
            assert fixed["fix_count"] == 2
            assert started.post("/verify").json()["remaining_swap_count"] == 0
        assert api._driver is None


class TestSourceFailures:
    def test_read_failure_returns_502(self) -> None:
        api._driver = ReconciliationDriver(UnreachableSource())
        resp = client.post("/analyze")
        assert resp.status_code == 502
        detail = resp.json()["detail"]
        assert detail["code"] == "SOURCE_UNAVAILABLE"
        assert detail["details"]["status_code"] == 503

    def test_count_failure_returns_502(self) -> None:
        api._driver = ReconciliationDriver(UnreachableSource())
        assert client.get("/count", params={"date": "2026-02-05"}).status_code == 502
