import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler

from rollups import RefreshFailed, SpendSnapshot
from scheduler import REFRESH_NOW_JOB_ID, SchedulerManager


class FakeAggregator:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.refreshes = 0
        self.invalidations = 0

    def refresh(self) -> SpendSnapshot:
        self.refreshes += 1
        if self.fail:
            raise RefreshFailed("ledger unavailable")
        return SpendSnapshot(self.refreshes, datetime.now(timezone.utc), [])

    def invalidate(self) -> None:
        self.invalidations += 1

    def load_published(self) -> None:
        return None


def test_run_job_refreshes_aggregator(caplog) -> None:
    aggregator = FakeAggregator()
    manager = SchedulerManager(aggregator)

    with caplog.at_level(logging.INFO, logger="scheduler"):
        assert manager._run_job("test") is True

    assert aggregator.refreshes == 1
    assert "scheduler_run: source=test version=1" in caplog.text


def test_failed_run_is_logged_and_survives(caplog) -> None:
    aggregator = FakeAggregator(fail=True)
    manager = SchedulerManager(aggregator)

    with caplog.at_level(logging.WARNING, logger="scheduler"):
        assert manager._run_job("interval") is False

    assert "refresh_failed=true" in caplog.text


def test_request_refresh_without_running_scheduler_only_invalidates() -> None:
    aggregator = FakeAggregator()
    manager = SchedulerManager(aggregator)

    manager.request_refresh()

    assert aggregator.invalidations == 1
    assert aggregator.refreshes == 0
    assert manager.scheduler.get_jobs() == []


def test_pending_refresh_requests_coalesce() -> None:
    aggregator = FakeAggregator()
    scheduler = BackgroundScheduler(timezone="UTC")
    manager = SchedulerManager(aggregator, scheduler=scheduler)
    scheduler.start(paused=True)
    try:
        manager.request_refresh("write-1")
        manager.request_refresh("write-2")
        manager.request_refresh("write-3")

        pending = [job for job in scheduler.get_jobs() if job.id == REFRESH_NOW_JOB_ID]
        assert len(pending) == 1
        assert pending[0].args == ("write-3",)
        assert aggregator.invalidations == 3
    finally:
        manager.stop()
