# ruff: noqa: TC003
"""LeaveEngine: the library surface over the ledger, workflow and batch jobs.

Every write runs as one transactional unit through ``run_in_transaction``.
Notifications collected during a unit are sent only after it commits.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import TYPE_CHECKING, TypeVar

from leave_ledger.config import Settings, get_settings
from leave_ledger.db import run_in_transaction
from leave_ledger.services import accrual, balance, carry_forward, comp_off, workflow
from leave_ledger.services.context import EngineContext
from leave_ledger.services.notification import Notification, dispatch

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from leave_ledger.models.enums import LeaveType, Verdict
    from leave_ledger.schemas.auth import AuthContext
    from leave_ledger.schemas.balance import (
        BalanceResponse,
        CreateAdjustmentRequest,
        LedgerEntryResponse,
        LedgerListResponse,
    )
    from leave_ledger.schemas.comp_off import LogWorkPayload, WorkLogResponse
    from leave_ledger.schemas.request import (
        DecisionResponse,
        RequestResponse,
        SubmitRequestPayload,
        SubmitResponse,
    )
    from leave_ledger.schemas.validation import ValidationResult
    from leave_ledger.services.employee import EmployeeDirectory
    from leave_ledger.services.holiday import HolidayCalendar
    from leave_ledger.services.notification import NotificationSink

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LeaveEngine:
    """Entry point for every leave operation.

    Built from a session factory and its collaborators; holds no other
    state, so several engines (one per test, say) can coexist.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        directory: EmployeeDirectory,
        calendar: HolidayCalendar,
        notifications: NotificationSink,
        *,
        clock: Callable[[], date] = date.today,
        settings: Settings | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.ctx = EngineContext(
            directory=directory,
            calendar=calendar,
            notifications=notifications,
            settings=settings or get_settings(),
            clock=clock,
        )

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    async def _write(self, operation: Callable[[AsyncSession, list[Notification]], Awaitable[T]]) -> T:
        """Run ``operation`` in one retried transaction, then send what it queued."""
        outbox: list[Notification] = []

        async def unit(session: AsyncSession) -> T:
            outbox.clear()
            return await operation(session, outbox)

        result = await run_in_transaction(
            self.session_factory,
            unit,
            attempts=self.ctx.settings.conflict_retry_attempts,
            backoff_seconds=self.ctx.settings.conflict_retry_backoff_seconds,
        )
        await dispatch(self.ctx.notifications, outbox)
        return result

    async def _read(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self.session_factory() as session:
            return await operation(session)

    # -----------------------------------------------------------------------
    # Requests and approvals
    # -----------------------------------------------------------------------

    async def submit_request(self, payload: SubmitRequestPayload) -> SubmitResponse:
        return await self._write(lambda s, out: workflow.submit_request(s, self.ctx, payload, out))

    async def validate_request(self, payload: SubmitRequestPayload) -> ValidationResult:
        """Dry-run validation; nothing is written."""
        return await self._read(lambda s: workflow.preview_request(s, self.ctx, payload))

    async def decide(
        self,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        level: int,
        verdict: Verdict,
        comments: str | None = None,
    ) -> DecisionResponse:
        return await self._write(
            lambda s, out: workflow.decide(s, self.ctx, request_id, approver_id, level, verdict, comments, out)
        )

    async def cancel_request(self, request_id: uuid.UUID, actor_id: uuid.UUID) -> RequestResponse:
        return await self._write(lambda s, out: workflow.cancel_request(s, self.ctx, request_id, actor_id, out))

    async def get_request(self, request_id: uuid.UUID) -> RequestResponse:
        return await self._read(lambda s: workflow.get_request(s, request_id))

    # -----------------------------------------------------------------------
    # Balances
    # -----------------------------------------------------------------------

    async def get_balance(self, employee_id: uuid.UUID, leave_type: LeaveType, year: int) -> BalanceResponse:
        return await self._read(lambda s: balance.get_employee_balance(s, self.ctx, employee_id, leave_type, year))

    async def get_ledger(self, employee_id: uuid.UUID, leave_type: LeaveType, year: int) -> LedgerListResponse:
        return await self._read(lambda s: balance.get_employee_ledger(s, employee_id, leave_type, year))

    async def adjust_balance(self, auth: AuthContext, payload: CreateAdjustmentRequest) -> LedgerEntryResponse:
        return await self._write(lambda s, _out: balance.create_adjustment(s, self.ctx, auth, payload))

    # -----------------------------------------------------------------------
    # Comp-off
    # -----------------------------------------------------------------------

    async def log_comp_off_work(self, payload: LogWorkPayload) -> WorkLogResponse:
        return await self._write(lambda s, out: comp_off.log_work(s, self.ctx, payload, out))

    async def verify_comp_off_work(
        self,
        work_log_id: uuid.UUID,
        verifier_id: uuid.UUID,
        *,
        approve: bool,
        comments: str | None = None,
    ) -> WorkLogResponse:
        return await self._write(
            lambda s, out: comp_off.verify_work(
                s, self.ctx, work_log_id, verifier_id, approve=approve, comments=comments, outbox=out
            )
        )

    # -----------------------------------------------------------------------
    # Scheduled jobs
    # -----------------------------------------------------------------------

    async def run_monthly_accrual(self, year: int, month: int) -> accrual.MonthlyAccrualRunResult:
        return await accrual.run_monthly_accrual(self.session_factory, self.ctx, year, month)

    async def run_annual_pto_allocation(self, year: int) -> accrual.AnnualAccrualRunResult:
        return await accrual.run_annual_pto_allocation(self.session_factory, self.ctx, year)

    async def run_year_end_carry_forward(self, from_year: int, to_year: int) -> carry_forward.CarryForwardRunResult:
        return await carry_forward.run_year_end_carry_forward(self.session_factory, self.ctx, from_year, to_year)

    async def run_carry_forward_expiry(self, as_of: date | None = None) -> carry_forward.ExpiryRunResult:
        return await carry_forward.run_carry_forward_expiry(self.session_factory, self.ctx, as_of or self.ctx.today())

    async def run_comp_off_expiry(self, as_of: date | None = None) -> carry_forward.ExpiryRunResult:
        return await carry_forward.run_comp_off_expiry(self.session_factory, self.ctx, as_of or self.ctx.today())

    async def send_expiry_reminders(
        self,
        as_of: date | None = None,
        horizon_days: int | None = None,
    ) -> carry_forward.ReminderRunResult:
        return await carry_forward.send_expiry_reminders(
            self.session_factory, self.ctx, as_of or self.ctx.today(), horizon_days
        )
