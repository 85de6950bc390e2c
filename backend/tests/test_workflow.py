"""Tests for the request workflow: submit, multi-level decisions, cancellation,
balance invariants, rollback on failure, and notifications.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import func, select
from sqlmodel import col

from leave_ledger.engine import LeaveEngine
from leave_ledger.exceptions import (
    AlreadyDecided,
    Conflict,
    InvalidTransition,
    NotFound,
    Overlap,
    Unauthorized,
    ValidationFailed,
)
from leave_ledger.models.audit import AuditLog
from leave_ledger.models.enums import (
    ApprovalStatus,
    AuditAction,
    LeaveType,
    LedgerEntryType,
    NotificationKind,
    RequestStatus,
    Role,
    Verdict,
)
from leave_ledger.models.request import EmployeeRequestGuard, LeaveRequest
from leave_ledger.schemas.auth import AuthContext
from leave_ledger.schemas.balance import CreateAdjustmentRequest
from leave_ledger.schemas.request import SubmitRequestPayload
from leave_ledger.schemas.validation import IssueCode
from leave_ledger.services.audit import list_employee_audit_trail
from leave_ledger.services.notification import Notification

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from conftest import FixedClock, Org
    from leave_ledger.config import Settings
    from leave_ledger.services.employee import InMemoryEmployeeDirectory
    from leave_ledger.services.holiday import InMemoryHolidayCalendar
    from leave_ledger.services.notification import InMemoryNotificationSink

    Grant = Callable[..., Awaitable[None]]


def _earned_leave(employee_id: uuid.UUID, start: date, end: date) -> SubmitRequestPayload:
    return SubmitRequestPayload(
        employee_id=employee_id,
        leave_type=LeaveType.EARNED_LEAVE,
        start_date=start,
        end_date=end,
        reason="Family trip",
    )


async def _available(leave_engine: LeaveEngine, employee_id: uuid.UUID) -> Decimal:
    balance = await leave_engine.get_balance(employee_id, LeaveType.EARNED_LEAVE, 2024)
    return balance.available


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


class TestSubmit:
    """Tests for LeaveEngine.submit_request."""

    async def test_creates_pending_request_with_chain(
        self,
        leave_engine: LeaveEngine,
        org: Org,
        grant: Grant,
        sink: InMemoryNotificationSink,
    ) -> None:
        await grant(org.employee.id, LeaveType.EARNED_LEAVE, 10)
        result = await leave_engine.submit_request(
            _earned_leave(org.employee.id, date(2024, 6, 10), date(2024, 6, 11))
        )

        assert result.status == RequestStatus.PENDING
        assert result.total_days == Decimal(2)
        assert [step.approver_id for step in result.approval_chain] == [org.manager.id]

        request = await leave_engine.get_request(result.request_id)
        assert request.status == RequestStatus.PENDING
        assert request.year == 2024
        assert [a.status for a in request.approvals] == [ApprovalStatus.PENDING]

        # Submission reserves, it does not debit.
        assert await _available(leave_engine, org.employee.id) == Decimal(10)

        needed = sink.of_kind(NotificationKind.APPROVAL_NEEDED)
        assert [n.recipient_id for n in needed] == [org.manager.id]

    async def test_invalid_request_writes_nothing(
        self,
        leave_engine: LeaveEngine,
        org: Org,
        db_session: AsyncSession,
        sink: InMemoryNotificationSink,
    ) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            await leave_engine.submit_request(_earned_leave(org.employee.id, date(2024, 6, 10), date(2024, 6, 11)))

        assert exc_info.value.status_code == 422
        assert any(issue.code == IssueCode.INSUFFICIENT_BALANCE for issue in exc_info.value.errors)

        requests = await db_session.execute(select(func.count()).select_from(LeaveRequest))
        guards = await db_session.execute(select(func.count()).select_from(EmployeeRequestGuard))
        assert requests.scalar_one() == 0
        assert guards.scalar_one() == 0
        assert sink.sent == []

    async def test_unknown_employee(self, leave_engine: LeaveEngine) -> None:
        with pytest.raises(NotFound):
            await leave_engine.submit_request(_earned_leave(uuid.uuid4(), date(2024, 6, 10), date(2024, 6, 11)))

    async def test_submit_is_audited(
        self,
        leave_engine: LeaveEngine,
        org: Org,
        grant: Grant,
        db_session: AsyncSession,
    ) -> None:
        await grant(org.employee.id, LeaveType.EARNED_LEAVE, 10)
        result = await leave_engine.submit_request(
            _earned_leave(org.employee.id, date(2024, 6, 10), date(2024, 6, 11))
        )

        audits = await db_session.execute(select(AuditLog).where(col(AuditLog.entity_id) == result.request_id))
        entries = list(audits.scalars().all())
        assert [e.action for e in entries] == [AuditAction.SUBMIT.value]
        assert entries[0].actor_id == org.employee.id

    async def test_overlap_with_approved_request(self, leave_engine: LeaveEngine, org: Org, grant: Grant) -> None:
        """A request intersecting only an approved one is reported as Overlap."""
        await grant(org.employee.id, LeaveType.EARNED_LEAVE, 20)
        first = await leave_engine.submit_request(
            _earned_leave(org.employee.id, date(2024, 6, 10), date(2024, 6, 14))
        )
        await leave_engine.decide(first.request_id, org.manager.id, 1, Verdict.APPROVED)

        with pytest.raises(Overlap) as exc_info:
            await leave_engine.submit_request(_earned_leave(org.employee.id, date(2024, 6, 12), date(2024, 6, 16)))

        assert exc_info.value.status_code == 409
        assert [issue.code for issue in exc_info.value.errors] == [IssueCode.OVERLAP]

    async def test_concurrent_submissions_respect_reservations(
        self, leave_engine: LeaveEngine, org: Org, grant: Grant
    ) -> None:
        """Two 3-day requests against 5 days: the second sees the first as pending."""
        await grant(org.employee.id, LeaveType.EARNED_LEAVE, 5)

        results = await asyncio.gather(
            leave_engine.submit_request(_earned_leave(org.employee.id, date(2024, 6, 10), date(2024, 6, 12))),
            leave_engine.submit_request(_earned_leave(org.employee.id, date(2024, 6, 17), date(2024, 6, 19))),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, BaseException)]
        assert len(failures) == 1
        assert isinstance(failures[0], ValidationFailed)
        assert any(issue.code == IssueCode.INSUFFICIENT_BALANCE for issue in failures[0].errors)

    async def test_auto_approval_when_enabled(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        directory: InMemoryEmployeeDirectory,
        calendar: InMemoryHolidayCalendar,
        sink: InMemoryNotificationSink,
        clock: FixedClock,
        settings: Settings,
        org: Org,
        grant: Grant,
    ) -> None:
        auto_engine = LeaveEngine(
            session_factory,
            directory,
            calendar,
            sink,
            clock=clock,
            settings=settings.model_copy(update={"auto_approve_eligible_requests": True}),
        )
        await grant(org.employee.id, LeaveType.CASUAL_LEAVE, 3)

        result = await auto_engine.submit_request(
            SubmitRequestPayload(
                employee_id=org.employee.id,
                leave_type=LeaveType.CASUAL_LEAVE,
                start_date=date(2024, 6, 10),
                end_date=date(2024, 6, 10),
            )
        )

        assert result.status == RequestStatus.APPROVED
        balance = await auto_engine.get_balance(org.employee.id, LeaveType.CASUAL_LEAVE, 2024)
        assert balance.available == Decimal(2)
        assert balance.used == Decimal(1)
        assert [n.recipient_id for n in sink.of_kind(NotificationKind.REQUEST_DECIDED)] == [org.employee.id]


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


class TestDecide:
    """Tests for LeaveEngine.decide."""

    async def _two_level_request(self, leave_engine: LeaveEngine, org: Org, grant: Grant) -> uuid.UUID:
        """A 12-day request: manager then HR admin."""
        await grant(org.employee.id, LeaveType.EARNED_LEAVE, 20)
        result = await leave_engine.submit_request(
            _earned_leave(org.employee.id, date(2024, 6, 10), date(2024, 6, 25))
        )
        assert result.total_days == Decimal(12)
        assert [step.approver_role for step in result.approval_chain] == [Role.MANAGER, Role.HR_ADMIN]
        return result.request_id

    async def test_single_level_approval_debits(
        self,
        leave_engine: LeaveEngine,
        org: Org,
        grant: Grant,
        sink: InMemoryNotificationSink,
    ) -> None:
        await grant(org.employee.id, LeaveType.EARNED_LEAVE, 10)
        submitted = await leave_engine.submit_request(
            _earned_leave(org.employee.id, date(2024, 6, 10), date(2024, 6, 11))
        )

        decision = await leave_engine.decide(submitted.request_id, org.manager.id, 1, Verdict.APPROVED, "Enjoy")

        assert decision.request_status == RequestStatus.APPROVED
        assert decision.next_level is None
        balance = await leave_engine.get_balance(org.employee.id, LeaveType.EARNED_LEAVE, 2024)
        assert balance.available == Decimal(8)
        assert balance.used == Decimal(2)

        request = await leave_engine.get_request(submitted.request_id)
        assert request.status == RequestStatus.APPROVED
        assert request.decided_at is not None
        assert request.approvals[0].comments == "Enjoy"

        decided = sink.of_kind(NotificationKind.REQUEST_DECIDED)
        assert [n.recipient_id for n in decided] == [org.employee.id]

    async def test_decision_lands_in_employee_audit_trail(
        self, leave_engine: LeaveEngine, org: Org, grant: Grant, db_session: AsyncSession
    ) -> None:
        """The approver is the actor, the requester is the subject, and comments become the note."""
        await grant(org.employee.id, LeaveType.EARNED_LEAVE, 10)
        submitted = await leave_engine.submit_request(
            _earned_leave(org.employee.id, date(2024, 6, 10), date(2024, 6, 11))
        )
        await leave_engine.decide(submitted.request_id, org.manager.id, 1, Verdict.APPROVED, "Enjoy")

        trail = await list_employee_audit_trail(db_session, org.employee.id)
        assert [row.action for row in trail] == [AuditAction.SUBMIT.value, AuditAction.APPROVE.value]
        assert trail[0].actor_id == org.employee.id
        assert trail[1].actor_id == org.manager.id
        assert trail[1].note == "Enjoy"

    async def test_levels_decided_in_order(
        self,
        leave_engine: LeaveEngine,
        org: Org,
        grant: Grant,
        sink: InMemoryNotificationSink,
    ) -> None:
        request_id = await self._two_level_request(leave_engine, org, grant)

        first = await leave_engine.decide(request_id, org.manager.id, 1, Verdict.APPROVED)
        assert first.request_status == RequestStatus.PENDING
        assert first.next_level == 2
        assert await _available(leave_engine, org.employee.id) == Decimal(20)

        needed = sink.of_kind(NotificationKind.APPROVAL_NEEDED)
        assert [n.recipient_id for n in needed] == [org.manager.id, org.hr_admin.id]

        second = await leave_engine.decide(request_id, org.hr_admin.id, 2, Verdict.APPROVED)
        assert second.request_status == RequestStatus.APPROVED
        assert await _available(leave_engine, org.employee.id) == Decimal(8)

    async def test_later_level_cannot_go_first(self, leave_engine: LeaveEngine, org: Org, grant: Grant) -> None:
        request_id = await self._two_level_request(leave_engine, org, grant)
        with pytest.raises(InvalidTransition):
            await leave_engine.decide(request_id, org.hr_admin.id, 2, Verdict.APPROVED)

    async def test_later_level_can_reject_while_earlier_pending(
        self, leave_engine: LeaveEngine, org: Org, grant: Grant
    ) -> None:
        """HR can turn a request down before the manager has acted on it."""
        request_id = await self._two_level_request(leave_engine, org, grant)

        decision = await leave_engine.decide(request_id, org.hr_admin.id, 2, Verdict.REJECTED, "Blackout period")

        assert decision.request_status == RequestStatus.REJECTED
        request = await leave_engine.get_request(request_id)
        assert [a.status for a in request.approvals] == [ApprovalStatus.PENDING, ApprovalStatus.REJECTED]
        assert await _available(leave_engine, org.employee.id) == Decimal(20)

        with pytest.raises(InvalidTransition):
            await leave_engine.decide(request_id, org.manager.id, 1, Verdict.APPROVED)

    async def test_concurrent_decisions_on_one_level(
        self, leave_engine: LeaveEngine, org: Org, grant: Grant
    ) -> None:
        """Two racing approvals of the same level: one lands, the other is told it was already decided."""
        await grant(org.employee.id, LeaveType.EARNED_LEAVE, 10)
        submitted = await leave_engine.submit_request(
            _earned_leave(org.employee.id, date(2024, 6, 10), date(2024, 6, 11))
        )

        results = await asyncio.gather(
            leave_engine.decide(submitted.request_id, org.manager.id, 1, Verdict.APPROVED),
            leave_engine.decide(submitted.request_id, org.manager.id, 1, Verdict.APPROVED),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, BaseException)]
        assert len(failures) == 1
        assert isinstance(failures[0], AlreadyDecided)
        balance = await leave_engine.get_balance(org.employee.id, LeaveType.EARNED_LEAVE, 2024)
        assert balance.used == Decimal(2)
        assert balance.available == Decimal(8)

    async def test_wrong_approver(self, leave_engine: LeaveEngine, org: Org, grant: Grant) -> None:
        request_id = await self._two_level_request(leave_engine, org, grant)
        with pytest.raises(Unauthorized):
            await leave_engine.decide(request_id, org.colleague.id, 1, Verdict.APPROVED)

    async def test_level_decided_only_once(self, leave_engine: LeaveEngine, org: Org, grant: Grant) -> None:
        request_id = await self._two_level_request(leave_engine, org, grant)
        await leave_engine.decide(request_id, org.manager.id, 1, Verdict.APPROVED)
        with pytest.raises(AlreadyDecided):
            await leave_engine.decide(request_id, org.manager.id, 1, Verdict.REJECTED)

    async def test_missing_level(self, leave_engine: LeaveEngine, org: Org, grant: Grant) -> None:
        request_id = await self._two_level_request(leave_engine, org, grant)
        with pytest.raises(NotFound):
            await leave_engine.decide(request_id, org.it_admin.id, 3, Verdict.APPROVED)

    async def test_unknown_request(self, leave_engine: LeaveEngine, org: Org) -> None:
        with pytest.raises(NotFound):
            await leave_engine.decide(uuid.uuid4(), org.manager.id, 1, Verdict.APPROVED)

    async def test_rejection_ends_request(
        self,
        leave_engine: LeaveEngine,
        org: Org,
        grant: Grant,
        sink: InMemoryNotificationSink,
    ) -> None:
        request_id = await self._two_level_request(leave_engine, org, grant)

        decision = await leave_engine.decide(request_id, org.manager.id, 1, Verdict.REJECTED, "Release week")

        assert decision.request_status == RequestStatus.REJECTED
        assert await _available(leave_engine, org.employee.id) == Decimal(20)
        request = await leave_engine.get_request(request_id)
        assert [a.status for a in request.approvals] == [ApprovalStatus.REJECTED, ApprovalStatus.PENDING]
        assert sink.of_kind(NotificationKind.REQUEST_DECIDED)[0].payload["status"] == "REJECTED"

        with pytest.raises(InvalidTransition):
            await leave_engine.decide(request_id, org.hr_admin.id, 2, Verdict.APPROVED)

    async def test_rejected_request_frees_reservation(
        self, leave_engine: LeaveEngine, org: Org, grant: Grant
    ) -> None:
        request_id = await self._two_level_request(leave_engine, org, grant)
        await leave_engine.decide(request_id, org.manager.id, 1, Verdict.REJECTED)

        again = await leave_engine.submit_request(
            _earned_leave(org.employee.id, date(2024, 6, 10), date(2024, 6, 25))
        )
        assert again.status == RequestStatus.PENDING

    async def test_balance_drained_before_final_approval(
        self,
        leave_engine: LeaveEngine,
        org: Org,
        grant: Grant,
        db_session: AsyncSession,
    ) -> None:
        await grant(org.employee.id, LeaveType.EARNED_LEAVE, 5)
        submitted = await leave_engine.submit_request(
            _earned_leave(org.employee.id, date(2024, 6, 10), date(2024, 6, 12))
        )
        await leave_engine.adjust_balance(
            AuthContext(user_id=org.hr_admin.id, role=Role.HR_ADMIN),
            CreateAdjustmentRequest(
                employee_id=org.employee.id,
                leave_type=LeaveType.EARNED_LEAVE,
                year=2024,
                amount=Decimal(-4),
                reason="Correction",
            ),
        )

        with pytest.raises(Conflict):
            await leave_engine.decide(submitted.request_id, org.manager.id, 1, Verdict.APPROVED)

        request = await leave_engine.get_request(submitted.request_id)
        assert request.status == RequestStatus.PENDING
        assert request.approvals[0].status == ApprovalStatus.PENDING
        assert await _available(leave_engine, org.employee.id) == Decimal(1)

        approvals = await db_session.execute(
            select(func.count()).select_from(AuditLog).where(col(AuditLog.action) == AuditAction.APPROVE.value)
        )
        assert approvals.scalar_one() == 0

    async def test_leave_without_pay_never_touches_ledger(self, leave_engine: LeaveEngine, org: Org) -> None:
        submitted = await leave_engine.submit_request(
            SubmitRequestPayload(
                employee_id=org.employee.id,
                leave_type=LeaveType.LEAVE_WITHOUT_PAY,
                start_date=date(2024, 6, 10),
                end_date=date(2024, 6, 14),
            )
        )
        await leave_engine.decide(submitted.request_id, org.manager.id, 1, Verdict.APPROVED)
        final = await leave_engine.decide(submitted.request_id, org.hr_admin.id, 2, Verdict.APPROVED)

        assert final.request_status == RequestStatus.APPROVED
        ledger = await leave_engine.get_ledger(org.employee.id, LeaveType.LEAVE_WITHOUT_PAY, 2024)
        assert ledger.total == 0


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancel:
    """Tests for LeaveEngine.cancel_request."""

    async def _approved_request(self, leave_engine: LeaveEngine, org: Org, grant: Grant) -> uuid.UUID:
        await grant(org.employee.id, LeaveType.EARNED_LEAVE, 10)
        submitted = await leave_engine.submit_request(
            _earned_leave(org.employee.id, date(2024, 6, 10), date(2024, 6, 11))
        )
        await leave_engine.decide(submitted.request_id, org.manager.id, 1, Verdict.APPROVED)
        return submitted.request_id

    async def test_cancel_reverses_debit(self, leave_engine: LeaveEngine, org: Org, grant: Grant) -> None:
        request_id = await self._approved_request(leave_engine, org, grant)
        assert await _available(leave_engine, org.employee.id) == Decimal(8)

        cancelled = await leave_engine.cancel_request(request_id, org.employee.id)

        assert cancelled.status == RequestStatus.CANCELLED
        assert cancelled.cancelled_at is not None
        balance = await leave_engine.get_balance(org.employee.id, LeaveType.EARNED_LEAVE, 2024)
        assert balance.available == Decimal(10)
        assert balance.used == Decimal(0)

        ledger = await leave_engine.get_ledger(org.employee.id, LeaveType.EARNED_LEAVE, 2024)
        assert [e.entry_type for e in ledger.items] == [
            LedgerEntryType.ADJUSTMENT,
            LedgerEntryType.USAGE,
            LedgerEntryType.REVERSAL,
        ]
        assert [e.amount for e in ledger.items] == [Decimal(10), Decimal(-2), Decimal(2)]

    async def test_hr_admin_can_cancel(self, leave_engine: LeaveEngine, org: Org, grant: Grant) -> None:
        request_id = await self._approved_request(leave_engine, org, grant)
        cancelled = await leave_engine.cancel_request(request_id, org.hr_admin.id)
        assert cancelled.status == RequestStatus.CANCELLED

    async def test_others_cannot_cancel(self, leave_engine: LeaveEngine, org: Org, grant: Grant) -> None:
        request_id = await self._approved_request(leave_engine, org, grant)
        with pytest.raises(Unauthorized):
            await leave_engine.cancel_request(request_id, org.colleague.id)

    async def test_cannot_cancel_twice(self, leave_engine: LeaveEngine, org: Org, grant: Grant) -> None:
        request_id = await self._approved_request(leave_engine, org, grant)
        await leave_engine.cancel_request(request_id, org.employee.id)
        with pytest.raises(InvalidTransition):
            await leave_engine.cancel_request(request_id, org.employee.id)
        assert await _available(leave_engine, org.employee.id) == Decimal(10)

    async def test_pending_request_cannot_be_cancelled(
        self, leave_engine: LeaveEngine, org: Org, grant: Grant
    ) -> None:
        await grant(org.employee.id, LeaveType.EARNED_LEAVE, 10)
        submitted = await leave_engine.submit_request(
            _earned_leave(org.employee.id, date(2024, 6, 10), date(2024, 6, 11))
        )
        with pytest.raises(InvalidTransition):
            await leave_engine.cancel_request(submitted.request_id, org.employee.id)

    async def test_started_leave_cannot_be_cancelled(
        self, leave_engine: LeaveEngine, org: Org, grant: Grant, clock: FixedClock
    ) -> None:
        request_id = await self._approved_request(leave_engine, org, grant)
        clock.today = date(2024, 6, 10)
        with pytest.raises(InvalidTransition):
            await leave_engine.cancel_request(request_id, org.employee.id)
        assert await _available(leave_engine, org.employee.id) == Decimal(8)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class _BrokenSink:
    async def send(self, notification: Notification) -> None:
        raise RuntimeError("smtp down")


class TestNotifications:
    """Delivery happens after commit and never affects ledger state."""

    async def test_failing_sink_does_not_roll_back(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        directory: InMemoryEmployeeDirectory,
        calendar: InMemoryHolidayCalendar,
        clock: FixedClock,
        settings: Settings,
        org: Org,
        grant: Grant,
    ) -> None:
        engine = LeaveEngine(session_factory, directory, calendar, _BrokenSink(), clock=clock, settings=settings)
        await grant(org.employee.id, LeaveType.EARNED_LEAVE, 10)

        submitted = await engine.submit_request(_earned_leave(org.employee.id, date(2024, 6, 10), date(2024, 6, 11)))
        decision = await engine.decide(submitted.request_id, org.manager.id, 1, Verdict.APPROVED)

        assert decision.request_status == RequestStatus.APPROVED
        balance = await engine.get_balance(org.employee.id, LeaveType.EARNED_LEAVE, 2024)
        assert balance.available == Decimal(8)
