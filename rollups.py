from __future__ import annotations

import logging
import threading
import time
import uuid
from bisect import bisect_left, bisect_right
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Iterable, Optional

from sqlalchemy import delete, insert, select
from sqlalchemy.orm import Session

from models import Category, MonthlySpend, SpendSnapshotRecord, Transaction, utcnow
from periods import MonthRange, month_floor


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class RefreshFailed(RuntimeError):
    pass


class SpendQueryError(ValueError):
    pass


@dataclass(frozen=True)
class SpendBucket:
    user_id: uuid.UUID
    month: date
    category_id: int
    category_name: Optional[str]
    currency: str
    spend: Decimal

    @property
    def key(self) -> tuple[uuid.UUID, date, int, str]:
        return (self.user_id, self.month, self.category_id, self.currency)


class SpendSnapshot:
    """A fully built, immutable generation of the monthly spend rollup.

    Buckets are indexed per user by month so a lookup only touches the
    months it returns.
    """

    def __init__(
        self,
        version: int,
        refreshed_at: datetime,
        buckets: Iterable[SpendBucket],
        source_rows: int = 0,
    ) -> None:
        self.version = version
        self.refreshed_at = refreshed_at
        self.source_rows = source_rows
        self.buckets: tuple[SpendBucket, ...] = tuple(
            sorted(buckets, key=lambda bucket: bucket.key)
        )

        grouped: dict[uuid.UUID, dict[date, list[SpendBucket]]] = defaultdict(
            lambda: defaultdict(list)
        )
        for bucket in self.buckets:
            grouped[bucket.user_id][bucket.month].append(bucket)
        self._by_user = {
            user_id: {month: tuple(items) for month, items in months.items()}
            for user_id, months in grouped.items()
        }
        self._months = {
            user_id: sorted(months) for user_id, months in self._by_user.items()
        }

    def __len__(self) -> int:
        return len(self.buckets)

    def lookup(
        self,
        user_id: uuid.UUID,
        months: MonthRange,
        category_ids: Optional[frozenset[int]] = None,
    ) -> tuple[SpendBucket, ...]:
        user_months = self._months.get(user_id)
        if not user_months:
            return ()
        lo = bisect_left(user_months, months.start)
        hi = bisect_right(user_months, months.end)
        by_month = self._by_user[user_id]
        found: list[SpendBucket] = []
        for month in user_months[lo:hi]:
            for bucket in by_month[month]:
                if category_ids is None or bucket.category_id in category_ids:
                    found.append(bucket)
        return tuple(found)


@dataclass(frozen=True)
class SpendReport:
    available: bool
    user_id: uuid.UUID
    months: MonthRange
    snapshot_version: Optional[int] = None
    last_refreshed_at: Optional[datetime] = None
    buckets: tuple[SpendBucket, ...] = ()

    def totals(self) -> dict[tuple[int, str], Decimal]:
        """Spend per (category_id, currency) summed over the requested months."""
        totals: dict[tuple[int, str], Decimal] = defaultdict(Decimal)
        for bucket in self.buckets:
            totals[(bucket.category_id, bucket.currency)] += bucket.spend
        return dict(totals)


@dataclass(frozen=True)
class SnapshotStatus:
    available: bool
    version: Optional[int]
    last_refreshed_at: Optional[datetime]
    invalidated_at: Optional[datetime]
    bucket_count: int
    stale: bool


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MonthlySpendAggregator:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        exclude_transfers: bool = False,
        max_query_months: Optional[int] = None,
        stale_after: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self.exclude_transfers = exclude_transfers
        self.max_query_months = max_query_months
        self.stale_after = stale_after
        self._clock = clock
        self._snapshot: Optional[SpendSnapshot] = None
        self._invalidated_at: Optional[datetime] = None
        # At most one build at a time; later callers queue behind it.
        self._build_lock = threading.Lock()

    @property
    def snapshot(self) -> Optional[SpendSnapshot]:
        return self._snapshot

    @property
    def last_refreshed_at(self) -> Optional[datetime]:
        snapshot = self._snapshot
        return snapshot.refreshed_at if snapshot else None

    def refresh(self) -> SpendSnapshot:
        with self._build_lock:
            started = time.monotonic()
            refreshed_at = self._clock()
            try:
                with self._session_factory() as session:
                    buckets, source_rows = self._scan_ledger(session)
                with self._session_factory() as session, session.begin():
                    version = self._persist(session, buckets, refreshed_at, source_rows)
            except Exception as exc:
                logger.exception(
                    f"spend_refresh_failed: kept_version={self._current_version()}"
                )
                raise RefreshFailed(
                    "Monthly spend refresh failed; the previous snapshot is still published"
                ) from exc

            snapshot = SpendSnapshot(version, refreshed_at, buckets, source_rows)
            self._snapshot = snapshot

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"spend_refresh: version={snapshot.version} buckets={len(snapshot)} "
            f"source_rows={source_rows} elapsed_ms={elapsed_ms}"
        )
        return snapshot

    def load_published(self) -> Optional[SpendSnapshot]:
        with self._build_lock:
            with self._session_factory() as session:
                record = session.scalar(
                    select(SpendSnapshotRecord)
                    .order_by(SpendSnapshotRecord.id.desc())
                    .limit(1)
                )
                if record is None:
                    logger.info("spend_load: no published snapshot")
                    return None
                rows = session.scalars(
                    select(MonthlySpend).where(MonthlySpend.snapshot_id == record.id)
                ).all()
                buckets = [
                    SpendBucket(
                        user_id=row.user_id,
                        month=row.month,
                        category_id=row.category_id,
                        category_name=row.category_name,
                        currency=row.currency,
                        spend=row.spend.quantize(CENT),
                    )
                    for row in rows
                ]
                snapshot = SpendSnapshot(
                    record.id,
                    _as_utc(record.refreshed_at),
                    buckets,
                    record.source_rows,
                )
            self._snapshot = snapshot

        logger.info(
            f"spend_load: version={snapshot.version} buckets={len(snapshot)}"
        )
        return snapshot

    def query(
        self,
        user_id: uuid.UUID,
        months: MonthRange,
        category_ids: Optional[Iterable[int]] = None,
    ) -> SpendReport:
        user_id = self._validate_user(user_id)
        self._validate_months(months)
        filter_ids = self._validate_categories(category_ids)

        snapshot = self._snapshot
        if snapshot is None:
            return SpendReport(available=False, user_id=user_id, months=months)
        return SpendReport(
            available=True,
            user_id=user_id,
            months=months,
            snapshot_version=snapshot.version,
            last_refreshed_at=snapshot.refreshed_at,
            buckets=snapshot.lookup(user_id, months, filter_ids),
        )

    def invalidate(self) -> None:
        self._invalidated_at = self._clock()

    def status(self, now: Optional[datetime] = None) -> SnapshotStatus:
        snapshot = self._snapshot
        invalidated_at = self._invalidated_at
        if snapshot is None:
            return SnapshotStatus(
                available=False,
                version=None,
                last_refreshed_at=None,
                invalidated_at=invalidated_at,
                bucket_count=0,
                stale=True,
            )

        stale = invalidated_at is not None and invalidated_at > snapshot.refreshed_at
        if not stale and self.stale_after is not None:
            now = now or self._clock()
            stale = now - snapshot.refreshed_at > self.stale_after
        return SnapshotStatus(
            available=True,
            version=snapshot.version,
            last_refreshed_at=snapshot.refreshed_at,
            invalidated_at=invalidated_at,
            bucket_count=len(snapshot),
            stale=stale,
        )

    def _current_version(self) -> Optional[int]:
        snapshot = self._snapshot
        return snapshot.version if snapshot else None

    def _scan_ledger(self, session: Session) -> tuple[list[SpendBucket], int]:
        # One statement, so the rollup reflects a single point in time.
        stmt = (
            select(
                Transaction.user_id,
                Transaction.date,
                Transaction.category_id,
                Category.name.label("category_name"),
                Transaction.currency,
                Transaction.amount,
            )
            .join(Category, Transaction.category_id == Category.id)
            .where(Transaction.amount < 0)
            .execution_options(yield_per=1000)
        )
        if self.exclude_transfers:
            stmt = stmt.where(Transaction.is_transfer.is_(False))

        totals: dict[tuple[uuid.UUID, date, int, str], Decimal] = defaultdict(Decimal)
        names: dict[int, Optional[str]] = {}
        source_rows = 0
        for row in session.execute(stmt):
            key = (
                row.user_id,
                month_floor(row.date),
                row.category_id,
                row.currency.upper(),
            )
            totals[key] -= row.amount
            names[row.category_id] = row.category_name
            source_rows += 1

        buckets = [
            SpendBucket(
                user_id=user_id,
                month=month,
                category_id=category_id,
                category_name=names[category_id],
                currency=currency,
                spend=total.quantize(CENT),
            )
            for (user_id, month, category_id, currency), total in totals.items()
        ]
        return buckets, source_rows

    def _persist(
        self,
        session: Session,
        buckets: list[SpendBucket],
        refreshed_at: datetime,
        source_rows: int,
    ) -> int:
        record = SpendSnapshotRecord(
            refreshed_at=refreshed_at,
            bucket_count=len(buckets),
            source_rows=source_rows,
        )
        session.add(record)
        session.flush()

        if buckets:
            session.execute(
                insert(MonthlySpend),
                [
                    {
                        "snapshot_id": record.id,
                        "user_id": bucket.user_id,
                        "month": bucket.month,
                        "category_id": bucket.category_id,
                        "category_name": bucket.category_name,
                        "currency": bucket.currency,
                        "spend": bucket.spend,
                    }
                    for bucket in buckets
                ],
            )

        session.execute(delete(MonthlySpend).where(MonthlySpend.snapshot_id != record.id))
        session.execute(
            delete(SpendSnapshotRecord).where(SpendSnapshotRecord.id != record.id)
        )
        return record.id

    @staticmethod
    def _validate_user(user_id: uuid.UUID) -> uuid.UUID:
        if isinstance(user_id, uuid.UUID):
            return user_id
        try:
            return uuid.UUID(str(user_id))
        except ValueError as exc:
            raise SpendQueryError("user_id must be a UUID") from exc

    def _validate_months(self, months: MonthRange) -> None:
        if not isinstance(months, MonthRange):
            raise SpendQueryError("months must be a MonthRange")
        if self.max_query_months is not None and months.month_count > self.max_query_months:
            raise SpendQueryError(
                f"Month range may span at most {self.max_query_months} months"
            )

    @staticmethod
    def _validate_categories(
        category_ids: Optional[Iterable[int]],
    ) -> Optional[frozenset[int]]:
        if category_ids is None:
            return None
        try:
            ids = frozenset(category_ids)
        except TypeError as exc:
            raise SpendQueryError(
                "Category filter must be a collection of integers"
            ) from exc
        if not ids:
            raise SpendQueryError("Category filter must not be empty")
        for category_id in ids:
            if isinstance(category_id, bool) or not isinstance(category_id, int):
                raise SpendQueryError("Category ids must be integers")
            if category_id <= 0:
                raise SpendQueryError("Category ids must be positive")
        return ids
