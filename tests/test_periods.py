from datetime import date, datetime, timezone

import pytest

from periods import (
    MonthRange,
    add_months,
    local_today,
    month_floor,
    parse_month,
    resolve_month_range,
)


def test_month_floor_and_add_months_cross_year() -> None:
    assert month_floor(date(2025, 10, 31)) == date(2025, 10, 1)
    assert add_months(date(2025, 12, 1), 1) == date(2026, 1, 1)
    assert add_months(date(2025, 1, 1), -1) == date(2024, 12, 1)


def test_parse_month_rejects_malformed_text() -> None:
    assert parse_month("2025-10") == date(2025, 10, 1)
    with pytest.raises(ValueError):
        parse_month("2025-13")
    with pytest.raises(ValueError):
        parse_month("October")


def test_month_range_validates_bounds() -> None:
    with pytest.raises(ValueError):
        MonthRange(date(2025, 11, 1), date(2025, 10, 1))
    with pytest.raises(ValueError):
        MonthRange(date(2025, 10, 5), date(2025, 10, 1))


def test_month_range_counts_and_iterates() -> None:
    months = MonthRange(date(2024, 11, 1), date(2025, 2, 1))
    assert months.month_count == 4
    assert list(months.months()) == [
        date(2024, 11, 1),
        date(2024, 12, 1),
        date(2025, 1, 1),
        date(2025, 2, 1),
    ]
    assert date(2025, 2, 28) in months
    assert date(2025, 3, 1) not in months
    assert months.label() == "2024-11..2025-02"


def test_resolve_month_range_defaults_and_cap() -> None:
    today = date(2025, 10, 17)
    assert resolve_month_range(None, None, today=today) == MonthRange.single(today)
    assert resolve_month_range("2025-08", None, today=today) == MonthRange(
        date(2025, 8, 1), date(2025, 8, 1)
    )
    assert resolve_month_range("2025-01", "2025-03").month_count == 3
    with pytest.raises(ValueError):
        resolve_month_range("2020-01", "2025-12", max_months=12)


def test_local_today_follows_configured_timezone() -> None:
    late_utc = datetime(2025, 10, 31, 12, 0, tzinfo=timezone.utc)
    assert local_today("UTC", late_utc) == date(2025, 10, 31)
    assert local_today("Pacific/Kiritimati", late_utc) == date(2025, 11, 1)

    early_utc = datetime(2025, 11, 1, 3, 0, tzinfo=timezone.utc)
    assert local_today("America/Los_Angeles", early_utc) == date(2025, 10, 31)
    assert resolve_month_range(
        None, None, today=local_today("America/Los_Angeles", early_utc)
    ) == MonthRange.single(date(2025, 10, 1))
