# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leave_ledger.exceptions import (
    AlreadyDecided,
    ConcurrentUpdate,
    Conflict,
    InsufficientBalance,
    InvalidTransition,
    NotFound,
    Unauthorized,
    validation_failure,
)
from leave_ledger.models.enums import (
    ApprovalStatus,
    AuditAction,
    AuditEntityType,
    LeaveType,
    LedgerSourceType,
    NotificationKind,
    RequestStatus,
    Verdict,
)
from leave_ledger.models.request import Approval, EmployeeRequestGuard, LeaveRequest
from leave_ledger.schemas.auth import ADMIN_ROLES
from leave_ledger.schemas.request import (
    ApprovalResponse,
    DecisionResponse,
    RequestResponse,
    SubmitResponse,
)
from leave_ledger.schemas.validation import ValidationResult
from leave_ledger.services import comp_off, ledger
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log
from leave_ledger.services.notification import Notification
from leave_ledger.services.policy import rule_for
from leave_ledger.services.validator import validate_request

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.request import SubmitRequestPayload
    from leave_ledger.services.context import EngineContext
    from leave_ledger.services.employee import EmployeeInfo

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _build_request_response(request: LeaveRequest, approvals: list[Approval]) -> RequestResponse:
    """Map a request model and its approval rows to the response schema."""
    return RequestResponse(
        id=request.id,
        employee_id=request.employee_id,
        leave_type=LeaveType(request.leave_type),
        start_date=request.start_date,
        end_date=request.end_date,
        is_half_day=request.is_half_day,
        total_days=request.total_days,
        year=request.year,
        reason=request.reason,
        status=RequestStatus(request.status),
        documentation_required=request.documentation_required,
        decided_at=request.decided_at,
        cancelled_at=request.cancelled_at,
        created_at=request.created_at,
        approvals=[
            ApprovalResponse(
                level=a.level,
                approver_id=a.approver_id,
                approver_role=a.approver_role,
                status=ApprovalStatus(a.status),
                comments=a.comments,
                decided_at=a.decided_at,
            )
            for a in approvals
        ],
    )


async def _require_employee(ctx: EngineContext, employee_id: uuid.UUID) -> EmployeeInfo:
    employee = await ctx.directory.get_employee(employee_id)
    if employee is None:
        raise NotFound("Employee not found")
    return employee


async def _get_request_or_404(session: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
    """Fetch a request by ID with fresh column values. Raises NotFound if missing."""
    result = await session.execute(
        select(LeaveRequest)
        .where(col(LeaveRequest.id) == request_id)
        .execution_options(populate_existing=True)
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFound("Request not found")
    return request


async def _get_approvals(session: AsyncSession, request_id: uuid.UUID) -> list[Approval]:
    result = await session.execute(
        select(Approval)
        .where(col(Approval.leave_request_id) == request_id)
        .order_by(col(Approval.level))
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _lock_employee(session: AsyncSession, employee_id: uuid.UUID) -> None:
    """Bump the employee's guard row, creating it on first use.

    Concurrent submissions for the same employee queue behind this write, so
    the validation that follows sees every earlier committed submission.
    """
    result = await session.execute(
        update(EmployeeRequestGuard)
        .where(col(EmployeeRequestGuard.employee_id) == employee_id)
        .values(version=col(EmployeeRequestGuard.version) + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:  # type: ignore[attr-defined]
        return
    try:
        await session.execute(insert(EmployeeRequestGuard).values(id=uuid.uuid4(), employee_id=employee_id, version=1))
    except IntegrityError as exc:
        raise ConcurrentUpdate(f"Request guard for employee {employee_id} created concurrently") from exc


async def _transition_request(
    session: AsyncSession,
    request_id: uuid.UUID,
    from_status: RequestStatus,
    to_status: RequestStatus,
    **values: Any,
) -> None:
    """Move a request between states, failing if another writer moved it first."""
    result = await session.execute(
        update(LeaveRequest)
        .where(col(LeaveRequest.id) == request_id, col(LeaveRequest.status) == from_status.value)
        .values(status=to_status.value, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:  # type: ignore[attr-defined]
        raise ConcurrentUpdate(f"Request {request_id} is no longer {from_status.value}")


async def _finalize_approval(session: AsyncSession, request: LeaveRequest, now: datetime) -> None:
    """Mark the request APPROVED and take the days from the ledger, in the caller's transaction.

    Comp-off is debited grant by grant, each draw against the ledger year its
    grant was credited to. A failed debit is reported as Conflict; the
    caller's transaction rolls back and the request stays PENDING.
    """
    leave_type = LeaveType(request.leave_type)
    await _transition_request(session, request.id, RequestStatus.PENDING, RequestStatus.APPROVED, decided_at=now)

    if not rule_for(leave_type).ledger_backed:
        return

    dates = {"start_date": request.start_date.isoformat(), "end_date": request.end_date.isoformat()}
    debits: list[tuple[int, Decimal, dict[str, Any]]] = []
    if leave_type == LeaveType.COMPENSATORY_OFF:
        draws, uncovered = await comp_off.consume_grants(session, request.employee_id, request.total_days)
        debits.extend((draw.year, draw.days, {**dates, "grant_id": str(draw.grant_id)}) for draw in draws)
        if uncovered > 0:
            debits.append((request.year, uncovered, dates))
    else:
        debits.append((request.year, request.total_days, dates))

    try:
        for year, amount, metadata in debits:
            await ledger.debit(
                session,
                request.employee_id,
                leave_type,
                year,
                amount,
                source_type=LedgerSourceType.REQUEST,
                source_id=str(request.id),
                metadata=metadata,
            )
    except InsufficientBalance as exc:
        raise Conflict(f"Balance changed before approval could be finalized: {exc.message}") from exc


async def _refund_usage(session: AsyncSession, request: LeaveRequest, actor_id: uuid.UUID) -> None:
    """Reverse every debit an approved request made, year by year and grant by grant.

    Days drawn from a comp-off grant that has since expired are reversed and
    lapsed straight away.
    """
    leave_type = LeaveType(request.leave_type)
    entries = await ledger.get_usage_entries(session, request.employee_id, leave_type, str(request.id))
    for entry in entries:
        days = -entry.amount
        grant_id = (entry.metadata_json or {}).get("grant_id")
        await ledger.reverse(
            session,
            request.employee_id,
            leave_type,
            entry.year,
            days,
            source_type=LedgerSourceType.REQUEST,
            source_id=str(request.id),
            metadata={"cancelled_by": str(actor_id), **({"grant_id": grant_id} if grant_id else {})},
        )
        if grant_id is None:
            continue
        if await comp_off.restore_grant(session, uuid.UUID(grant_id), days):
            await ledger.expire(
                session,
                request.employee_id,
                leave_type,
                entry.year,
                days,
                source_type=LedgerSourceType.COMP_OFF,
                source_id=f"comp-off-expiry:{grant_id}:{request.id}",
                metadata={"grant_id": grant_id, "reason": "refund to expired grant"},
            )


def _decided_notification(request: LeaveRequest, status: RequestStatus) -> Notification:
    return Notification(
        kind=NotificationKind.REQUEST_DECIDED,
        recipient_id=request.employee_id,
        subject=f"Your {request.leave_type} request from {request.start_date.isoformat()} was {status.value.lower()}",
        payload={"request_id": str(request.id), "status": status.value},
    )


def _approval_needed_notification(request: LeaveRequest, approval: Approval | uuid.UUID, level: int) -> Notification:
    approver_id = approval.approver_id if isinstance(approval, Approval) else approval
    return Notification(
        kind=NotificationKind.APPROVAL_NEEDED,
        recipient_id=approver_id,
        subject=f"Leave request awaiting your approval (level {level})",
        payload={"request_id": str(request.id), "level": level, "employee_id": str(request.employee_id)},
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def preview_request(
    session: AsyncSession,
    ctx: EngineContext,
    payload: SubmitRequestPayload,
) -> ValidationResult:
    """Validate without writing anything."""
    employee = await _require_employee(ctx, payload.employee_id)
    return await validate_request(session, ctx, employee, payload)


async def submit_request(
    session: AsyncSession,
    ctx: EngineContext,
    payload: SubmitRequestPayload,
    outbox: list[Notification],
) -> SubmitResponse:
    """Validate and persist a new request with its approval chain.

    Flow:
    1. Serialize on the employee's guard row
    2. Validate against committed state (raises ValidationFailed with every issue)
    3. Insert the request and one approval row per level
    4. Audit log
    5. Optionally auto-approve eligible short leave
    Any failure rolls back the whole unit, guard bump included.
    """
    employee = await _require_employee(ctx, payload.employee_id)

    # 1. Serialize with other submissions for this employee.
    await _lock_employee(session, employee.id)

    # 2. Validate.
    verdict = await validate_request(session, ctx, employee, payload)
    if not verdict.valid:
        raise validation_failure(verdict.errors)

    # 3. Persist request and chain.
    request = LeaveRequest(
        employee_id=employee.id,
        leave_type=payload.leave_type.value,
        start_date=payload.start_date,
        end_date=payload.end_date,
        is_half_day=payload.is_half_day,
        total_days=verdict.total_days,
        year=payload.start_date.year,
        reason=payload.reason,
        status=RequestStatus.PENDING.value,
        documentation_required=verdict.required_documentation,
    )
    session.add(request)
    await session.flush()

    for step in verdict.approval_chain:
        session.add(
            Approval(
                leave_request_id=request.id,
                level=step.level,
                approver_id=step.approver_id,
                approver_role=step.approver_role.value,
            )
        )
    await session.flush()

    # 4. Audit.
    await write_audit_log(
        session,
        actor_id=employee.id,
        entity_type=AuditEntityType.REQUEST,
        entity_id=request.id,
        action=AuditAction.SUBMIT,
        employee_id=employee.id,
        after_json=model_to_audit_dict(request),
    )

    # 5. Auto-approval.
    status = RequestStatus.PENDING
    if ctx.settings.auto_approve_eligible_requests and verdict.auto_approval_eligible:
        now = datetime.now(UTC)
        await session.execute(
            update(Approval)
            .where(col(Approval.leave_request_id) == request.id)
            .values(status=ApprovalStatus.APPROVED.value, comments="Auto-approved", decided_at=now)
            .execution_options(synchronize_session=False)
        )
        await _finalize_approval(session, request, now)
        status = RequestStatus.APPROVED
        outbox.append(_decided_notification(request, status))
        logger.info("Auto-approved request %s for employee %s", request.id, employee.id)
    else:
        first = verdict.approval_chain[0]
        outbox.append(_approval_needed_notification(request, first.approver_id, first.level))

    return SubmitResponse(
        request_id=request.id,
        status=status,
        total_days=verdict.total_days,
        approval_chain=verdict.approval_chain,
        warnings=verdict.warnings,
    )


async def decide(
    session: AsyncSession,
    ctx: EngineContext,
    request_id: uuid.UUID,
    approver_id: uuid.UUID,
    level: int,
    verdict: Verdict,
    comments: str | None,
    outbox: list[Notification],
) -> DecisionResponse:
    """Record one approver's decision on one level.

    Approvals go in level order. Any listed approver may reject while their
    level is pending, which ends the request.
    Approval of the last pending level approves the request and debits the
    ledger in this same transaction.
    """
    request = await _get_request_or_404(session, request_id)
    approvals = await _get_approvals(session, request_id)
    approval = next((a for a in approvals if a.level == level), None)
    if approval is None:
        raise NotFound(f"Request has no approval level {level}")
    if approval.approver_id != approver_id:
        raise Unauthorized(f"Approver is not assigned to level {level} of this request")
    if approval.status != ApprovalStatus.PENDING:
        raise AlreadyDecided()
    if request.status != RequestStatus.PENDING:
        raise InvalidTransition(f"Request is {request.status} and can no longer be decided")

    blocking = [a.level for a in approvals if a.level < level and a.status != ApprovalStatus.APPROVED]
    if verdict == Verdict.APPROVED and blocking:
        raise InvalidTransition(f"Level {blocking[0]} must be approved before level {level}")

    before = model_to_audit_dict(request)
    now = datetime.now(UTC)

    result = await session.execute(
        update(Approval)
        .where(col(Approval.id) == approval.id, col(Approval.status) == ApprovalStatus.PENDING.value)
        .values(status=verdict.value, comments=comments, decided_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:  # type: ignore[attr-defined]
        raise AlreadyDecided()

    if verdict == Verdict.REJECTED:
        await _transition_request(session, request.id, RequestStatus.PENDING, RequestStatus.REJECTED, decided_at=now)
        request_status = RequestStatus.REJECTED
        next_level = None
        audit_action = AuditAction.REJECT
        outbox.append(_decided_notification(request, request_status))
    else:
        undecided = await session.execute(
            select(func.count())
            .select_from(Approval)
            .where(
                col(Approval.leave_request_id) == request.id,
                col(Approval.status) != ApprovalStatus.APPROVED.value,
            )
        )
        if undecided.scalar_one() == 0:
            await _finalize_approval(session, request, now)
            request_status = RequestStatus.APPROVED
            next_level = None
            outbox.append(_decided_notification(request, request_status))
        else:
            request_status = RequestStatus.PENDING
            following = min((a for a in approvals if a.level > level), key=lambda a: a.level)
            next_level = following.level
            outbox.append(_approval_needed_notification(request, following, following.level))
        audit_action = AuditAction.APPROVE

    refreshed = await _get_request_or_404(session, request.id)
    await write_audit_log(
        session,
        actor_id=approver_id,
        entity_type=AuditEntityType.APPROVAL,
        entity_id=approval.id,
        action=audit_action,
        employee_id=request.employee_id,
        note=comments,
        before_json=before,
        after_json={**model_to_audit_dict(refreshed), "level": level, "comments": comments},
    )

    return DecisionResponse(
        request_id=request.id,
        level=level,
        request_status=request_status,
        next_level=next_level,
    )


async def cancel_request(
    session: AsyncSession,
    ctx: EngineContext,
    request_id: uuid.UUID,
    actor_id: uuid.UUID,
    outbox: list[Notification],
) -> RequestResponse:
    """Cancel an approved request that has not started and give the days back."""
    request = await _get_request_or_404(session, request_id)

    if actor_id != request.employee_id:
        actor = await ctx.directory.get_employee(actor_id)
        if actor is None or actor.role not in ADMIN_ROLES:
            raise Unauthorized("Only the requester or HR can cancel a request")

    if request.status != RequestStatus.APPROVED:
        raise InvalidTransition(f"Only approved requests can be cancelled; request is {request.status}")
    if request.start_date <= ctx.today():
        raise InvalidTransition("Leave that has already started cannot be cancelled")

    before = model_to_audit_dict(request)
    now = datetime.now(UTC)
    leave_type = LeaveType(request.leave_type)

    await _transition_request(
        session,
        request.id,
        RequestStatus.APPROVED,
        RequestStatus.CANCELLED,
        cancelled_at=now,
        cancelled_by=actor_id,
    )

    if rule_for(leave_type).ledger_backed:
        await _refund_usage(session, request, actor_id)

    refreshed = await _get_request_or_404(session, request.id)
    await write_audit_log(
        session,
        actor_id=actor_id,
        entity_type=AuditEntityType.REQUEST,
        entity_id=request.id,
        action=AuditAction.CANCEL,
        employee_id=request.employee_id,
        before_json=before,
        after_json=model_to_audit_dict(refreshed),
    )
    outbox.append(_decided_notification(refreshed, RequestStatus.CANCELLED))

    return _build_request_response(refreshed, await _get_approvals(session, request.id))


async def get_request(session: AsyncSession, request_id: uuid.UUID) -> RequestResponse:
    """Fetch a request with its approval levels."""
    request = await _get_request_or_404(session, request_id)
    return _build_request_response(request, await _get_approvals(session, request_id))