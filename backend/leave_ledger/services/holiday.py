from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Protocol, runtime_checkable

from pydantic import BaseModel


class HolidayInfo(BaseModel):
    """A declared holiday from the holiday calendar."""

    holiday_date: date
    name: str
    region: str | None = None
    location: str | None = None  # None means the holiday applies everywhere


@runtime_checkable
class HolidayCalendar(Protocol):
    """Read-only interface to the holiday calendar."""

    async def list_holidays(self, location: str | None, start: date, end: date) -> list[HolidayInfo]:
        """Holidays observed at ``location`` between ``start`` and ``end`` inclusive."""
        ...


class InMemoryHolidayCalendar:
    """In-memory implementation for development and tests."""

    def __init__(self) -> None:
        self._holidays: dict[str | None, list[HolidayInfo]] = defaultdict(list)

    def seed(self, holiday: HolidayInfo) -> None:
        """Seed a holiday for testing."""
        self._holidays[holiday.location].append(holiday)

    def clear(self) -> None:
        self._holidays.clear()

    async def list_holidays(self, location: str | None, start: date, end: date) -> list[HolidayInfo]:
        candidates = list(self._holidays.get(None, []))
        if location is not None:
            candidates.extend(self._holidays.get(location, []))
        return sorted((h for h in candidates if start <= h.holiday_date <= end), key=lambda h: h.holiday_date)


async def holiday_dates(calendar: HolidayCalendar, location: str | None, start: date, end: date) -> set[date]:
    """Return the set of holiday dates at ``location`` in range."""
    return {h.holiday_date for h in await calendar.list_holidays(location, start, end)}
