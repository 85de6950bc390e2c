from __future__ import annotations

import calendar
from datetime import date, timedelta
from decimal import Decimal

from leave_ledger.models.base import HALF_DAY


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def count_working_days(start_date: date, end_date: date, holidays: set[date]) -> int:
    """Count weekdays between start_date and end_date inclusive, excluding holidays."""
    total = 0
    current = start_date
    one_day = timedelta(days=1)

    while current <= end_date:
        if not is_weekend(current) and current not in holidays:
            total += 1
        current += one_day

    return total


def requested_days(start_date: date, end_date: date, holidays: set[date], *, is_half_day: bool = False) -> Decimal:
    """Working days a request consumes; a half-day request takes 0.5 off the total."""
    days = Decimal(count_working_days(start_date, end_date, holidays))
    if is_half_day and days > 0:
        days -= HALF_DAY
    return days


def add_months(day: date, months: int) -> date:
    """Shift ``day`` by whole months, clamping to the end of shorter months."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of a month."""
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def intervals_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Inclusive date-range intersection."""
    return start_a <= end_b and end_a >= start_b
