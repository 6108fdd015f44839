import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        refresh_interval_secs: int,
        stale_after_secs: int,
        max_query_months: int,
        exclude_transfers: bool,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.refresh_interval_secs = refresh_interval_secs
        self.stale_after_secs = stale_after_secs
        self.max_query_months = max_query_months
        self.exclude_transfers = exclude_transfers


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("LEDGER_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "ledger.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("LEDGER_TIMEZONE", "UTC")
    refresh_interval_secs = int(os.getenv("LEDGER_REFRESH_INTERVAL_SECS", "300"))
    stale_after_secs = int(os.getenv("LEDGER_STALE_AFTER_SECS", "900"))
    max_query_months = int(os.getenv("LEDGER_MAX_QUERY_MONTHS", "120"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        refresh_interval_secs=refresh_interval_secs,
        stale_after_secs=stale_after_secs,
        max_query_months=max_query_months,
        exclude_transfers=_env_flag("LEDGER_EXCLUDE_TRANSFERS"),
    )
