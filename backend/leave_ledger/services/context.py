from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from leave_ledger.config import Settings
    from leave_ledger.services.employee import EmployeeDirectory
    from leave_ledger.services.holiday import HolidayCalendar
    from leave_ledger.services.notification import NotificationSink


@dataclass
class EngineContext:
    """Collaborators every service function needs, passed explicitly."""

    directory: EmployeeDirectory
    calendar: HolidayCalendar
    notifications: NotificationSink
    settings: Settings
    clock: Callable[[], date] = field(default=date.today)

    def today(self) -> date:
        return self.clock()
