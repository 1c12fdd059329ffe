from datetime import date, timedelta

import pytest

from cmms.derived import add_months, is_low_stock, is_overdue, pm_next_due, step_date
from cmms.errors import InvalidInput, InvalidSchedule


def test_low_stock_is_inclusive() -> None:
    assert is_low_stock(3, 5) is True
    assert is_low_stock(5, 5) is True
    assert is_low_stock(6, 5) is False


def test_overdue_requires_due_date() -> None:
    today = date(2024, 3, 15)
    for status in ("Open", "In Progress", "On Hold", "Completed", "Canceled"):
        assert is_overdue(None, status, today) is False


def test_overdue_ignores_closed_statuses() -> None:
    today = date(2024, 3, 15)
    yesterday = today - timedelta(days=1)
    assert is_overdue(yesterday, "Open", today) is True
    assert is_overdue(yesterday, "On Hold", today) is True
    assert is_overdue(yesterday, "Completed", today) is False
    assert is_overdue(yesterday, "Canceled", today) is False
    # due today is not yet overdue
    assert is_overdue(today, "Open", today) is False


def test_add_months_clamps_to_month_end() -> None:
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
    assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)


def test_monthly_steps_do_not_drift_after_clamping() -> None:
    start = date(2024, 1, 31)
    assert step_date(start, "Monthly", 1, 1) == date(2024, 2, 29)
    assert step_date(start, "Monthly", 1, 2) == date(2024, 3, 31)


def test_future_start_is_returned_unchanged() -> None:
    start = date(2024, 6, 1)
    assert pm_next_due(start, "Monthly", 3, today=date(2024, 3, 15)) == start
    assert pm_next_due(start, "Daily", 1, today=start) == start


def test_monthly_next_due() -> None:
    assert pm_next_due(date(2024, 1, 1), "Monthly", 1, today=date(2024, 3, 15)) == date(2024, 4, 1)
    assert pm_next_due(date(2024, 1, 1), "Monthly", 1, today=date(2024, 3, 1)) == date(2024, 3, 1)


def test_weekly_next_due() -> None:
    start = date(2024, 1, 1)
    result = pm_next_due(start, "Weekly", 2, today=date(2024, 2, 1))
    assert result == date(2024, 2, 12)
    assert (result - start).days % 14 == 0
    assert result - timedelta(days=14) < date(2024, 2, 1)


def test_daily_next_due() -> None:
    assert pm_next_due(date(2024, 1, 1), "Daily", 3, today=date(2024, 1, 8)) == date(2024, 1, 10)


@pytest.mark.parametrize("frequency, interval", [("Monthly", 0), ("Weekly", -2), ("Yearly", 1)])
def test_invalid_schedule(frequency: str, interval: int) -> None:
    with pytest.raises(InvalidSchedule):
        pm_next_due(date(2024, 1, 1), frequency, interval, today=date(2024, 3, 1))


def test_invalid_schedule_is_invalid_input() -> None:
    with pytest.raises(InvalidInput):
        step_date(date(2024, 1, 1), "Hourly", 1, 1)
