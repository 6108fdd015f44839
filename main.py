import logging
import uuid
from datetime import timedelta
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings
from database import SessionLocal
from periods import local_today, resolve_month_range
from rollups import MonthlySpendAggregator, RefreshFailed
from scheduler import SchedulerManager
from schemas import (
    RefreshOut,
    SnapshotStatusOut,
    SpendBucketOut,
    SpendReportOut,
)
from services import CategoryService, TransactionService


logger = logging.getLogger(__name__)

app = FastAPI(title="Ledger Rollups")


def build_aggregator() -> MonthlySpendAggregator:
    settings = get_settings()
    return MonthlySpendAggregator(
        SessionLocal,
        exclude_transfers=settings.exclude_transfers,
        max_query_months=settings.max_query_months,
        stale_after=timedelta(seconds=settings.stale_after_secs),
    )


aggregator = build_aggregator()
scheduler_manager = SchedulerManager(aggregator)


def get_aggregator() -> MonthlySpendAggregator:
    return aggregator


def transaction_service(session, user_id: uuid.UUID) -> TransactionService:
    """Transaction writes that schedule a spend refresh once committed."""
    return TransactionService(
        session, user_id, on_change=lambda: scheduler_manager.request_refresh()
    )


def category_service(session) -> CategoryService:
    return CategoryService(
        session,
        on_change=lambda: scheduler_manager.request_refresh("category_write"),
    )


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.get("/health")
def health(db=Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("health: database unreachable")
        return JSONResponse(status_code=503, content={"status": "unreachable"})
    return {"status": "ok"}


@app.get("/spend", response_model=SpendReportOut)
def spend(
    user_id: str,
    start: Optional[str] = None,
    end: Optional[str] = None,
    category_id: Optional[list[int]] = Query(default=None),
    agg: MonthlySpendAggregator = Depends(get_aggregator),
):
    try:
        user_uuid = uuid.UUID(user_id)
        months = resolve_month_range(
            start,
            end,
            today=local_today(get_settings().timezone),
            max_months=agg.max_query_months,
        )
        report = agg.query(user_uuid, months, category_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    body = SpendReportOut(
        available=report.available,
        user_id=report.user_id,
        start=report.months.start,
        end=report.months.end,
        snapshot_version=report.snapshot_version,
        last_refreshed_at=report.last_refreshed_at,
        buckets=[SpendBucketOut.model_validate(bucket) for bucket in report.buckets],
    )
    if not report.available:
        return JSONResponse(status_code=503, content=body.model_dump(mode="json"))
    return body


@app.get("/spend/status", response_model=SnapshotStatusOut)
def spend_status(agg: MonthlySpendAggregator = Depends(get_aggregator)):
    return SnapshotStatusOut.model_validate(agg.status())


@app.post("/admin/refresh-spend", response_model=RefreshOut)
def admin_refresh_spend(agg: MonthlySpendAggregator = Depends(get_aggregator)):
    try:
        snapshot = agg.refresh()
    except RefreshFailed as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return RefreshOut(
        version=snapshot.version,
        last_refreshed_at=snapshot.refreshed_at,
        bucket_count=len(snapshot),
        source_rows=snapshot.source_rows,
    )


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
