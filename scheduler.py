import logging
from datetime import timedelta
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from rollups import MonthlySpendAggregator, RefreshFailed


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

REFRESH_NOW_JOB_ID = "spend_refresh_now"


class SchedulerManager:
    def __init__(
        self,
        aggregator: MonthlySpendAggregator,
        scheduler: Optional[BackgroundScheduler] = None,
    ) -> None:
        settings = get_settings()
        self.aggregator = aggregator
        self.interval = timedelta(seconds=settings.refresh_interval_secs)
        self.scheduler = scheduler or BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual") -> bool:
        logger.info(f"scheduler_run: source={source}")
        try:
            snapshot = self.aggregator.refresh()
        except RefreshFailed:
            # The previous snapshot stays published; the next tick retries.
            logger.warning(f"scheduler_run: source={source} refresh_failed=true")
            return False
        logger.info(
            f"scheduler_run: source={source} version={snapshot.version} "
            f"buckets={len(snapshot)}"
        )
        return True

    def request_refresh(self, source: str = "ledger_write") -> None:
        """Schedule an immediate refresh; pending requests collapse into one."""
        self.aggregator.invalidate()
        if not self.scheduler.running:
            logger.info(f"scheduler_request: source={source} deferred=true")
            return
        self.scheduler.add_job(
            self._run_job,
            args=[source],
            id=REFRESH_NOW_JOB_ID,
            replace_existing=True,
            max_instances=2,
            misfire_grace_time=60,
        )

    def start(self) -> None:
        self.aggregator.load_published()
        self._run_job("startup")

        trigger = IntervalTrigger(seconds=int(self.interval.total_seconds()))
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["interval"],
            id="spend_refresh_interval",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info(
            f"Scheduler started with spend refresh every {self.interval.total_seconds():.0f}s"
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
