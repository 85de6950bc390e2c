"""Tests for the daily job scheduler."""

from __future__ import annotations

from datetime import date
from typing import Any

from leave_ledger.worker import run_daily_jobs


class _RecordingEngine:
    """Stands in for LeaveEngine and records which jobs ran."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.failing = failing or set()

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.failing:
            raise RuntimeError(f"{name} exploded")

    async def run_year_end_carry_forward(self, from_year: int, to_year: int) -> None:
        self._record("carry_forward", from_year, to_year)

    async def run_monthly_accrual(self, year: int, month: int) -> None:
        self._record("monthly", year, month)

    async def run_annual_pto_allocation(self, year: int) -> None:
        self._record("annual", year)

    async def run_carry_forward_expiry(self, as_of: date) -> None:
        self._record("carry_forward_expiry", as_of)

    async def run_comp_off_expiry(self, as_of: date) -> None:
        self._record("comp_off_expiry", as_of)

    async def send_expiry_reminders(self, as_of: date) -> None:
        self._record("reminders", as_of)

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.calls]


class TestRunDailyJobs:
    async def test_ordinary_day(self) -> None:
        """Mid-month days run only the daily jobs."""
        engine = _RecordingEngine()
        await run_daily_jobs(engine, date(2024, 6, 12))  # type: ignore[arg-type]
        assert engine.names == ["annual", "carry_forward_expiry", "comp_off_expiry", "reminders"]

    async def test_first_of_month_runs_accrual(self) -> None:
        engine = _RecordingEngine()
        await run_daily_jobs(engine, date(2024, 7, 1))  # type: ignore[arg-type]
        assert engine.names[0] == "monthly"
        assert engine.calls[0] == ("monthly", (2024, 7))

    async def test_new_year_closes_previous_year_first(self) -> None:
        """Jan 1 closes the old year before January accrues."""
        engine = _RecordingEngine()
        await run_daily_jobs(engine, date(2025, 1, 1))  # type: ignore[arg-type]
        assert engine.names[:2] == ["carry_forward", "monthly"]
        assert engine.calls[0] == ("carry_forward", (2024, 2025))

    async def test_failing_job_does_not_stop_the_rest(self, caplog) -> None:
        engine = _RecordingEngine(failing={"annual"})
        await run_daily_jobs(engine, date(2024, 6, 12))  # type: ignore[arg-type]
        assert engine.names == ["annual", "carry_forward_expiry", "comp_off_expiry", "reminders"]
        assert "Annual PTO allocation failed" in caplog.text
