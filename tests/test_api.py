from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

import main
from main import app, get_aggregator, get_db
from rollups import MonthlySpendAggregator
from scheduler import SchedulerManager
from schemas import TransactionIn


@pytest.fixture
def aggregator(session_factory):
    agg = MonthlySpendAggregator(session_factory, max_query_months=24)
    app.dependency_overrides[get_aggregator] = lambda: agg
    yield agg
    app.dependency_overrides.clear()


client = TestClient(app)


def test_health_reports_database_reachable() -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


class UnreachableSession:
    def execute(self, statement):
        raise OperationalError(str(statement), {}, Exception("database is locked"))


def test_health_reports_unreachable_database() -> None:
    def broken_db():
        yield UnreachableSession()

    app.dependency_overrides[get_db] = broken_db
    try:
        r = client.get("/health")
    finally:
        app.dependency_overrides.clear()

    assert r.status_code == 503
    assert r.json() == {"status": "unreachable"}


def test_spend_before_refresh_is_unavailable(aggregator, demo_ledger) -> None:
    r = client.get("/spend", params={"user_id": str(demo_ledger.user.id), "start": "2025-10"})
    assert r.status_code == 503
    body = r.json()
    assert body["available"] is False
    assert body["buckets"] == []
    assert body["last_refreshed_at"] is None


def test_refresh_then_query_month(aggregator, demo_ledger) -> None:
    r = client.post("/admin/refresh-spend")
    assert r.status_code == 200
    assert r.json()["bucket_count"] == 4
    assert r.json()["source_rows"] == 4

    r = client.get("/spend", params={"user_id": str(demo_ledger.user.id), "start": "2025-10"})
    assert r.status_code == 200
    body = r.json()
    assert body["available"] is True
    assert body["start"] == body["end"] == "2025-10-01"
    spend = {item["category_name"]: Decimal(item["spend"]) for item in body["buckets"]}
    assert spend == {
        "Rent": Decimal("1800.00"),
        "Groceries": Decimal("125.47"),
        "Dining": Decimal("48.90"),
        "Transport": Decimal("23.15"),
    }


def test_spend_category_filter(aggregator, demo_ledger) -> None:
    aggregator.refresh()
    rent_id = demo_ledger.categories["Rent"].id

    r = client.get(
        "/spend",
        params={
            "user_id": str(demo_ledger.user.id),
            "start": "2025-09",
            "end": "2025-11",
            "category_id": [rent_id],
        },
    )

    assert r.status_code == 200
    assert [item["category_id"] for item in r.json()["buckets"]] == [rent_id]


@pytest.mark.parametrize(
    "params",
    [
        {"user_id": "nope", "start": "2025-10"},
        {"user_id": "00000000-0000-0000-0000-000000000001", "start": "2025-13"},
        {"user_id": "00000000-0000-0000-0000-000000000001", "start": "2025-10", "end": "2025-01"},
        {"user_id": "00000000-0000-0000-0000-000000000001", "start": "2020-01", "end": "2025-01"},
        {"user_id": "00000000-0000-0000-0000-000000000001", "start": "2025-10", "category_id": 0},
    ],
)
def test_spend_rejects_invalid_parameters(aggregator, params) -> None:
    r = client.get("/spend", params=params)
    assert r.status_code == 400


def test_status_exposes_last_refreshed_at(aggregator, demo_ledger) -> None:
    r = client.get("/spend/status")
    assert r.status_code == 200
    assert r.json()["available"] is False
    assert r.json()["stale"] is True

    snapshot = aggregator.refresh()
    body = client.get("/spend/status").json()
    assert body["available"] is True
    assert body["version"] == snapshot.version
    assert body["last_refreshed_at"] is not None
    assert body["bucket_count"] == 4


def test_refresh_failure_returns_503(aggregator, demo_ledger, monkeypatch) -> None:
    def broken_scan(session):
        raise RuntimeError("cannot read ledger")

    monkeypatch.setattr(aggregator, "_scan_ledger", broken_scan)

    r = client.post("/admin/refresh-spend")
    assert r.status_code == 503
    assert aggregator.snapshot is None


def test_ledger_writes_mark_snapshot_stale(
    aggregator, session_factory, demo_ledger, monkeypatch
) -> None:
    monkeypatch.setattr(main, "scheduler_manager", SchedulerManager(aggregator))
    aggregator.refresh()
    assert aggregator.status().stale is False

    with session_factory() as session:
        main.transaction_service(session, demo_ledger.user.id).create(
            TransactionIn(
                date=date(2025, 10, 30),
                amount=Decimal("-12.00"),
                category_id=demo_ledger.categories["Dining"].id,
            )
        )
    status = aggregator.status()
    assert status.stale is True
    assert status.invalidated_at > status.last_refreshed_at

    aggregator.refresh()
    with session_factory() as session:
        main.category_service(session).delete(demo_ledger.categories["Transport"].id)
    assert aggregator.status().stale is True
