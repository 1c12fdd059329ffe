"""Read-time derived state. Nothing computed here is ever persisted."""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Optional

from cmms.errors import InvalidSchedule
from cmms.lifecycle import CLOSED_WORK_ORDER_STATUSES, Frequency


def is_low_stock(qty: int, minimum: int) -> bool:
    return (qty or 0) <= (minimum or 0)


def is_overdue(due_date: Optional[date], status: str, today: Optional[date] = None) -> bool:
    if due_date is None:
        return False
    today = today or date.today()
    return due_date < today and status not in CLOSED_WORK_ORDER_STATUSES


def add_months(value: date, months: int) -> date:
    """Calendar-month arithmetic; the day is clamped to the end of the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _validate_schedule(frequency: str, interval: int) -> Frequency:
    if interval is None or interval < 1:
        raise InvalidSchedule(f"interval must be >= 1, got {interval}")
    try:
        return Frequency(frequency)
    except ValueError as exc:
        raise InvalidSchedule(f"unknown frequency: {frequency}") from exc


def step_date(start_date: date, frequency: str, interval: int, steps: int) -> date:
    """``start_date`` advanced by ``steps`` whole schedule steps.

    Monthly steps are always counted from ``start_date`` so that a day
    clamped in a short month (Jan 31 -> Feb 29) does not stick afterwards.
    """
    freq = _validate_schedule(frequency, interval)
    if freq is Frequency.DAILY:
        return start_date + timedelta(days=interval * steps)
    if freq is Frequency.WEEKLY:
        return start_date + timedelta(weeks=interval * steps)
    return add_months(start_date, interval * steps)


def pm_next_due(start_date: date, frequency: str, interval: int, today: Optional[date] = None) -> date:
    """First scheduled date on or after ``today``.

    Walks forward one step at a time from ``start_date`` until the candidate
    is no longer before ``today``. A start date in the future is returned as is.
    """
    _validate_schedule(frequency, interval)
    today = today or date.today()
    steps = 0
    candidate = start_date
    while candidate < today:
        steps += 1
        candidate = step_date(start_date, frequency, interval, steps)
    return candidate
