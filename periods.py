from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterator, Optional
from zoneinfo import ZoneInfo


def month_floor(value: date) -> date:
    return value.replace(day=1)


def add_months(value: date, count: int) -> date:
    total = value.year * 12 + (value.month - 1) + count
    return date(total // 12, total % 12 + 1, 1)


def parse_month(value: str) -> date:
    try:
        parsed = datetime.strptime(value.strip(), "%Y-%m")
    except ValueError as exc:
        raise ValueError("Month must be in YYYY-MM format") from exc
    return date(parsed.year, parsed.month, 1)


@dataclass(frozen=True)
class MonthRange:
    """Inclusive range of calendar months, both ends first-of-month."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start.day != 1 or self.end.day != 1:
            raise ValueError("Month range bounds must be the first day of a month")
        if self.start > self.end:
            raise ValueError("Start month must not be after end month")

    @classmethod
    def single(cls, month: date) -> "MonthRange":
        first = month_floor(month)
        return cls(first, first)

    @property
    def month_count(self) -> int:
        return (self.end.year - self.start.year) * 12 + (
            self.end.month - self.start.month
        ) + 1

    def __contains__(self, value: date) -> bool:
        return self.start <= month_floor(value) <= self.end

    def months(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current = add_months(current, 1)

    def label(self) -> str:
        if self.start == self.end:
            return self.start.strftime("%Y-%m")
        return f"{self.start:%Y-%m}..{self.end:%Y-%m}"


def resolve_month_range(
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
    max_months: Optional[int] = None,
) -> MonthRange:
    today = today or date.today()
    if not start and not end:
        months = MonthRange.single(today)
    else:
        start_month = parse_month(start) if start else None
        end_month = parse_month(end) if end else None
        months = MonthRange(start_month or end_month, end_month or start_month)
    if max_months is not None and months.month_count > max_months:
        raise ValueError(f"Month range may span at most {max_months} months")
    return months


def local_today(timezone_name: str, now: Optional[datetime] = None) -> date:
    """Calendar date in the configured timezone; ``now`` must be tz-aware."""
    tz = ZoneInfo(timezone_name)
    current = now.astimezone(tz) if now else datetime.now(tz)
    return current.date()
