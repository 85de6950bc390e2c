# ruff: noqa: TC003
"""Comp-off: earning days for verified weekend/holiday work and tracking their expiry.

Verified work credits the COMPENSATORY_OFF balance and creates a grant that
expires a fixed number of months later. Approved comp-off leave consumes
grants earliest-expiry first; cancellation gives the days back.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leave_ledger.exceptions import AlreadyDecided, ConcurrentUpdate, NotFound, Unauthorized, ValidationFailed
from leave_ledger.models.base import HALF_DAY
from leave_ledger.models.comp_off import CompOffGrant, CompOffWorkLog
from leave_ledger.models.enums import (
    AuditAction,
    AuditEntityType,
    GrantStatus,
    LeaveType,
    LedgerEntryType,
    LedgerSourceType,
    NotificationKind,
    WorkLogStatus,
    WorkLogType,
)
from leave_ledger.schemas.auth import ADMIN_ROLES
from leave_ledger.schemas.comp_off import WorkLogResponse
from leave_ledger.schemas.validation import IssueCode, ValidationIssue
from leave_ledger.services import ledger
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log
from leave_ledger.services.holiday import holiday_dates
from leave_ledger.services.notification import Notification
from leave_ledger.services.policy import (
    COMP_OFF_FULL_DAY_HOURS,
    COMP_OFF_HALF_DAY_HOURS,
    COMP_OFF_MAX_HOURS_PER_DAY,
)
from leave_ledger.services.working_days import add_months, is_weekend

if TYPE_CHECKING:
    from datetime import date

    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.comp_off import LogWorkPayload
    from leave_ledger.services.context import EngineContext

logger = logging.getLogger(__name__)


def compute_comp_off_days(hours: Decimal) -> Decimal:
    """Days earned for one day of extra work.

    A full working day (8 hours, up to the 12-hour cap) earns a day; 5 to 8
    hours earns half a day.
    """
    if hours >= COMP_OFF_FULL_DAY_HOURS:
        return Decimal(1)
    if hours >= COMP_OFF_HALF_DAY_HOURS:
        return HALF_DAY
    return Decimal(0)


def _build_work_log_response(log: CompOffWorkLog, grant: CompOffGrant | None = None) -> WorkLogResponse:
    return WorkLogResponse(
        id=log.id,
        employee_id=log.employee_id,
        work_date=log.work_date,
        hours_worked=log.hours_worked,
        work_type=WorkLogType(log.work_type),
        days_earned=log.days_earned,
        status=WorkLogStatus(log.status),
        verified_by=log.verified_by,
        verified_at=log.verified_at,
        comments=log.comments,
        expires_on=grant.expires_on if grant is not None else None,
    )


async def _get_work_log_or_404(session: AsyncSession, work_log_id: uuid.UUID) -> CompOffWorkLog:
    result = await session.execute(
        select(CompOffWorkLog)
        .where(col(CompOffWorkLog.id) == work_log_id)
        .execution_options(populate_existing=True)
    )
    log = result.scalar_one_or_none()
    if log is None:
        raise NotFound("Work log not found")
    return log


# ---------------------------------------------------------------------------
# Work logs
# ---------------------------------------------------------------------------


async def log_work(
    session: AsyncSession,
    ctx: EngineContext,
    payload: LogWorkPayload,
    outbox: list[Notification],
) -> WorkLogResponse:
    """Record extra work pending manager verification."""
    employee = await ctx.directory.get_employee(payload.employee_id)
    if employee is None:
        raise NotFound("Employee not found")

    today = ctx.today()
    errors: list[ValidationIssue] = []

    if not employee.is_active:
        errors.append(ValidationIssue(code=IssueCode.VALIDATION, message="Inactive employees cannot log work"))
    if payload.hours_worked > COMP_OFF_MAX_HOURS_PER_DAY:
        errors.append(
            ValidationIssue(
                code=IssueCode.VALIDATION,
                message=f"Cannot log more than {COMP_OFF_MAX_HOURS_PER_DAY} hours for one day",
            )
        )
    if payload.work_date > today:
        errors.append(ValidationIssue(code=IssueCode.VALIDATION, message="Work date cannot be in the future"))
    elif (today - payload.work_date).days > ctx.settings.max_past_days:
        errors.append(
            ValidationIssue(
                code=IssueCode.VALIDATION,
                message=f"Work must be logged within {ctx.settings.max_past_days} days",
            )
        )

    if payload.work_type == WorkLogType.WEEKEND and not is_weekend(payload.work_date):
        errors.append(ValidationIssue(code=IssueCode.VALIDATION, message="Weekend work must fall on a Saturday or Sunday"))
    if payload.work_type == WorkLogType.HOLIDAY:
        holidays = await holiday_dates(ctx.calendar, employee.location, payload.work_date, payload.work_date)
        if payload.work_date not in holidays:
            errors.append(
                ValidationIssue(code=IssueCode.VALIDATION, message="Work date is not a declared holiday")
            )

    days_earned = compute_comp_off_days(payload.hours_worked)
    if days_earned <= 0:
        errors.append(
            ValidationIssue(
                code=IssueCode.VALIDATION,
                message=f"At least {COMP_OFF_HALF_DAY_HOURS} hours are required to earn comp-off",
            )
        )

    existing = await session.execute(
        select(col(CompOffWorkLog.id)).where(
            col(CompOffWorkLog.employee_id) == employee.id,
            col(CompOffWorkLog.work_date) == payload.work_date,
        )
    )
    if existing.first() is not None:
        errors.append(ValidationIssue(code=IssueCode.VALIDATION, message="Work has already been logged for this date"))

    if errors:
        raise ValidationFailed(errors)

    log = CompOffWorkLog(
        employee_id=employee.id,
        work_date=payload.work_date,
        hours_worked=payload.hours_worked,
        work_type=payload.work_type.value,
        description=payload.description,
        days_earned=days_earned,
    )
    session.add(log)
    try:
        await session.flush()
    except IntegrityError as exc:
        raise ConcurrentUpdate("Work log for this date created concurrently") from exc

    await write_audit_log(
        session,
        actor_id=employee.id,
        entity_type=AuditEntityType.COMP_OFF,
        entity_id=log.id,
        action=AuditAction.CREATE,
        employee_id=employee.id,
        after_json=model_to_audit_dict(log),
    )

    if employee.manager_id is not None:
        outbox.append(
            Notification(
                kind=NotificationKind.APPROVAL_NEEDED,
                recipient_id=employee.manager_id,
                subject=f"Comp-off work on {payload.work_date.isoformat()} needs verification",
                payload={"work_log_id": str(log.id), "employee_id": str(employee.id)},
            )
        )

    return _build_work_log_response(log)


async def verify_work(
    session: AsyncSession,
    ctx: EngineContext,
    work_log_id: uuid.UUID,
    verifier_id: uuid.UUID,
    *,
    approve: bool,
    comments: str | None,
    outbox: list[Notification],
) -> WorkLogResponse:
    """Verify or reject a work log. Verification credits comp-off and opens a grant."""
    log = await _get_work_log_or_404(session, work_log_id)
    employee = await ctx.directory.get_employee(log.employee_id)
    verifier = await ctx.directory.get_employee(verifier_id)

    is_manager = employee is not None and employee.manager_id == verifier_id
    is_admin = verifier is not None and verifier.role in ADMIN_ROLES
    if verifier_id == log.employee_id or not (is_manager or is_admin):
        raise Unauthorized("Only the employee's manager or HR can verify comp-off work")

    if log.status != WorkLogStatus.PENDING:
        raise AlreadyDecided("Work log has already been verified")

    before = model_to_audit_dict(log)
    now = datetime.now(UTC)
    new_status = WorkLogStatus.VERIFIED if approve else WorkLogStatus.REJECTED
    result = await session.execute(
        update(CompOffWorkLog)
        .where(col(CompOffWorkLog.id) == log.id, col(CompOffWorkLog.status) == WorkLogStatus.PENDING.value)
        .values(status=new_status.value, verified_by=verifier_id, verified_at=now, comments=comments)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:  # type: ignore[attr-defined]
        raise AlreadyDecided("Work log has already been verified")

    grant: CompOffGrant | None = None
    if approve:
        today = ctx.today()
        grant = CompOffGrant(
            work_log_id=log.id,
            employee_id=log.employee_id,
            year=today.year,
            days=log.days_earned,
            granted_on=today,
            expires_on=add_months(today, ctx.settings.comp_off_expiry_months),
        )
        session.add(grant)
        await session.flush()
        await ledger.credit(
            session,
            log.employee_id,
            LeaveType.COMPENSATORY_OFF,
            today.year,
            log.days_earned,
            entry_type=LedgerEntryType.COMP_OFF_GRANT,
            source_type=LedgerSourceType.COMP_OFF,
            source_id=str(grant.id),
            metadata={"work_log_id": str(log.id), "expires_on": grant.expires_on.isoformat()},
        )

    log = await _get_work_log_or_404(session, work_log_id)
    await write_audit_log(
        session,
        actor_id=verifier_id,
        entity_type=AuditEntityType.COMP_OFF,
        entity_id=log.id,
        action=AuditAction.APPROVE if approve else AuditAction.REJECT,
        employee_id=log.employee_id,
        note=comments,
        before_json=before,
        after_json=model_to_audit_dict(log),
    )

    outbox.append(
        Notification(
            kind=NotificationKind.REQUEST_DECIDED,
            recipient_id=log.employee_id,
            subject=f"Comp-off work on {log.work_date.isoformat()} was {new_status.value.lower()}",
            payload={"work_log_id": str(log.id), "days_earned": str(log.days_earned) if approve else "0"},
        )
    )
    return _build_work_log_response(log, grant)


# ---------------------------------------------------------------------------
# Grant bookkeeping for comp-off leave
# ---------------------------------------------------------------------------


def grant_free_days(grant: CompOffGrant) -> Decimal:
    return grant.days - grant.consumed_days - grant.expired_days


@dataclass(frozen=True)
class GrantDraw:
    """Days one approved request took from one grant."""

    grant_id: uuid.UUID
    year: int
    days: Decimal


async def consume_grants(
    session: AsyncSession, employee_id: uuid.UUID, amount: Decimal
) -> tuple[list[GrantDraw], Decimal]:
    """Draw ``amount`` from active grants, earliest expiry first.

    Returns the draws, each against its grant's ledger year, and the amount
    no grant covered.
    """
    result = await session.execute(
        select(CompOffGrant)
        .where(col(CompOffGrant.employee_id) == employee_id, col(CompOffGrant.status) == GrantStatus.ACTIVE.value)
        .order_by(col(CompOffGrant.expires_on), col(CompOffGrant.created_at))
        .with_for_update()
    )
    draws: list[GrantDraw] = []
    remaining = amount
    for grant in result.scalars().all():
        if remaining <= 0:
            break
        take = min(grant_free_days(grant), remaining)
        if take <= 0:
            continue
        grant.consumed_days += take
        remaining -= take
        if grant_free_days(grant) <= 0:
            grant.status = GrantStatus.EXHAUSTED.value
        draws.append(GrantDraw(grant_id=grant.id, year=grant.year, days=take))
    await session.flush()
    if remaining > 0:
        logger.warning("Comp-off debit for employee=%s not covered by grants: %s days", employee_id, remaining)
    return draws, remaining


async def restore_grant(session: AsyncSession, grant_id: uuid.UUID, days: Decimal) -> bool:
    """Give ``days`` back to the grant they were drawn from.

    Returns True when the grant has already expired: the days go straight to
    its expired total and the caller must lapse them from the ledger.
    A grant that is past its date but not yet processed is reactivated and
    left to the next expiry run.
    """
    result = await session.execute(
        select(CompOffGrant)
        .where(col(CompOffGrant.id) == grant_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    grant = result.scalar_one_or_none()
    if grant is None:
        raise NotFound(f"Comp-off grant {grant_id} not found")

    grant.consumed_days -= days
    lapsed = grant.status == GrantStatus.EXPIRED
    if lapsed:
        grant.expired_days += days
    else:
        grant.status = GrantStatus.ACTIVE.value
    await session.flush()
    return lapsed


async def list_expiring_grants(session: AsyncSession, start: date, end: date) -> list[CompOffGrant]:
    """Active grants whose expiry date falls in [start, end]."""
    result = await session.execute(
        select(CompOffGrant)
        .where(
            col(CompOffGrant.status) == GrantStatus.ACTIVE.value,
            col(CompOffGrant.expires_on) >= start,
            col(CompOffGrant.expires_on) <= end,
        )
        .order_by(col(CompOffGrant.expires_on))
    )
    return list(result.scalars().all())
