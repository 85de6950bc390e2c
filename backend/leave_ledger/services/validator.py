"""Request validation.

Every check runs and contributes to one list of issues so the caller can
show them all at once. Only a reversed date range stops validation early,
since nothing after it can be computed.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import and_, or_, select
from sqlmodel import col

from leave_ledger.models.enums import Gender, LeaveType, MaritalStatus, RequestStatus, Role
from leave_ledger.models.request import LeaveRequest
from leave_ledger.schemas.validation import IssueCode, ValidationIssue, ValidationResult
from leave_ledger.services import ledger
from leave_ledger.services.chain import build_approval_chain
from leave_ledger.services.holiday import holiday_dates
from leave_ledger.services.policy import (
    AUTO_APPROVAL_MAX_DAYS,
    PARENTAL_EXCLUSIVE_LEAVE_TYPES,
    PARENTAL_LEAVE_TYPES,
    POOLED_LEAVE_TYPES,
    rule_for,
)
from leave_ledger.services.working_days import requested_days

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.request import SubmitRequestPayload
    from leave_ledger.services.context import EngineContext
    from leave_ledger.services.employee import EmployeeInfo

ACTIVE_STATUSES = (RequestStatus.PENDING.value, RequestStatus.APPROVED.value)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def find_overlapping_requests(
    session: AsyncSession,
    employee_id: uuid.UUID,
    start_date: date,
    end_date: date,
    *,
    statuses: tuple[str, ...] = ACTIVE_STATUSES,
    leave_types: frozenset[LeaveType] | None = None,
    exclude_request_id: uuid.UUID | None = None,
) -> list[LeaveRequest]:
    """Requests whose range intersects [start_date, end_date].

    Intersection is the union of three cases: the new range starts inside an
    existing one, ends inside it, or encloses it.
    """
    query = select(LeaveRequest).where(
        col(LeaveRequest.employee_id) == employee_id,
        col(LeaveRequest.status).in_(statuses),
        or_(
            and_(col(LeaveRequest.start_date) <= start_date, col(LeaveRequest.end_date) >= start_date),
            and_(col(LeaveRequest.start_date) <= end_date, col(LeaveRequest.end_date) >= end_date),
            and_(col(LeaveRequest.start_date) >= start_date, col(LeaveRequest.end_date) <= end_date),
        ),
    )
    if leave_types is not None:
        query = query.where(col(LeaveRequest.leave_type).in_([t.value for t in leave_types]))
    if exclude_request_id is not None:
        query = query.where(col(LeaveRequest.id) != exclude_request_id)

    result = await session.execute(query.order_by(col(LeaveRequest.start_date)))
    return list(result.scalars().all())


async def has_approved_parental_leave(
    session: AsyncSession,
    employee_id: uuid.UUID,
    start_date: date,
    end_date: date,
) -> bool:
    """True when an approved maternity or paternity request touches the range."""
    overlapping = await find_overlapping_requests(
        session,
        employee_id,
        start_date,
        end_date,
        statuses=(RequestStatus.APPROVED.value,),
        leave_types=PARENTAL_LEAVE_TYPES,
    )
    return bool(overlapping)


async def pending_days(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    year: int | None,
    *,
    exclude_request_id: uuid.UUID | None = None,
) -> Decimal:
    """Days reserved by PENDING requests of one type in one ledger year, or in any year when ``year`` is None."""
    query = select(col(LeaveRequest.total_days)).where(
        col(LeaveRequest.employee_id) == employee_id,
        col(LeaveRequest.leave_type) == leave_type.value,
        col(LeaveRequest.status) == RequestStatus.PENDING.value,
    )
    if year is not None:
        query = query.where(col(LeaveRequest.year) == year)
    if exclude_request_id is not None:
        query = query.where(col(LeaveRequest.id) != exclude_request_id)
    result = await session.execute(query)
    return sum(result.scalars().all(), Decimal(0))


async def _count_parental_requests_in_year(session: AsyncSession, employee_id: uuid.UUID, year: int) -> int:
    result = await session.execute(
        select(col(LeaveRequest.id)).where(
            col(LeaveRequest.employee_id) == employee_id,
            col(LeaveRequest.leave_type).in_([t.value for t in PARENTAL_LEAVE_TYPES]),
            col(LeaveRequest.status).in_(ACTIVE_STATUSES),
            col(LeaveRequest.start_date) >= date(year, 1, 1),
            col(LeaveRequest.start_date) <= date(year, 12, 31),
        )
    )
    return len(result.all())


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def _issue(code: IssueCode, message: str) -> ValidationIssue:
    return ValidationIssue(code=code, message=message)


def _check_dates(payload: SubmitRequestPayload, today: date, ctx: EngineContext) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    latest_start = today + timedelta(days=ctx.settings.max_future_days)
    earliest_start = today - timedelta(days=ctx.settings.max_past_days)

    if payload.start_date > latest_start:
        issues.append(
            _issue(
                IssueCode.VALIDATION,
                f"Leave cannot start more than {ctx.settings.max_future_days} days in the future",
            )
        )
    if payload.start_date < earliest_start:
        issues.append(
            _issue(
                IssueCode.VALIDATION,
                f"Leave cannot start more than {ctx.settings.max_past_days} days in the past",
            )
        )
    if payload.is_half_day and payload.start_date != payload.end_date:
        issues.append(_issue(IssueCode.VALIDATION, "A half-day request must start and end on the same day"))
    return issues


def _check_eligibility(employee: EmployeeInfo, leave_type: LeaveType, warnings: list[str]) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    if leave_type == LeaveType.MATERNITY_LEAVE:
        if employee.gender != Gender.FEMALE:
            issues.append(_issue(IssueCode.POLICY_VIOLATION, "Maternity leave is only available to female employees"))
        elif employee.marital_status != MaritalStatus.MARRIED:
            warnings.append("Maternity leave for an unmarried employee may need additional documentation")
    elif leave_type == LeaveType.PATERNITY_LEAVE:
        if employee.gender != Gender.MALE:
            issues.append(_issue(IssueCode.POLICY_VIOLATION, "Paternity leave is only available to male employees"))
        if employee.marital_status != MaritalStatus.MARRIED:
            issues.append(_issue(IssueCode.POLICY_VIOLATION, "Paternity leave is only available to married employees"))
    return issues


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def validate_request(
    session: AsyncSession,
    ctx: EngineContext,
    employee: EmployeeInfo,
    payload: SubmitRequestPayload,
    *,
    exclude_request_id: uuid.UUID | None = None,
) -> ValidationResult:
    """Check a proposed request against dates, balance, eligibility, overlap and policy.

    Produces the approval chain and auto-approval eligibility alongside the
    verdict. Never raises for user-correctable problems.
    """
    errors: list[ValidationIssue] = []
    warnings: list[str] = []
    leave_type = payload.leave_type
    rule = rule_for(leave_type)
    today = ctx.today()

    if not employee.is_active:
        errors.append(_issue(IssueCode.VALIDATION, "Inactive employees cannot request leave"))

    # 1. Date sanity.
    if payload.start_date > payload.end_date:
        errors.append(_issue(IssueCode.VALIDATION, "Start date must be on or before end date"))
        return ValidationResult(valid=False, errors=errors, warnings=warnings)
    errors.extend(_check_dates(payload, today, ctx))

    # 2. Working days.
    holidays = await holiday_dates(ctx.calendar, employee.location, payload.start_date, payload.end_date)
    total_days = requested_days(payload.start_date, payload.end_date, holidays, is_half_day=payload.is_half_day)
    if total_days <= 0:
        errors.append(_issue(IssueCode.VALIDATION, "No working days in the requested range"))

    year = payload.start_date.year

    # 3. Balance, net of pending reservations.
    # Pooled types such as comp-off draw on every ledger year their grants landed in.
    if rule.ledger_backed and total_days > 0:
        if leave_type in POOLED_LEAVE_TYPES:
            available = await ledger.get_pooled_available(session, employee.id, leave_type)
            balance_year = None
        else:
            available = (await ledger.get_balance(session, employee.id, leave_type, year)).available
            balance_year = year
        reserved = await pending_days(
            session, employee.id, leave_type, balance_year, exclude_request_id=exclude_request_id
        )
        usable = available - reserved
        if total_days > usable:
            errors.append(
                _issue(
                    IssueCode.INSUFFICIENT_BALANCE,
                    f"Insufficient {leave_type.value} balance: requested {total_days}, "
                    f"available {available}, pending {reserved}",
                )
            )
        elif total_days > available * Decimal(str(ctx.settings.balance_warning_ratio)):
            warnings.append(
                f"This request uses most of your remaining {leave_type.value} balance ({available} days)"
            )

    # 4. Gender, marital status and once-a-year parental leave.
    errors.extend(_check_eligibility(employee, leave_type, warnings))
    if leave_type in PARENTAL_LEAVE_TYPES and await _count_parental_requests_in_year(session, employee.id, year):
        errors.append(
            _issue(IssueCode.POLICY_VIOLATION, f"Only one maternity or paternity request is allowed per year ({year})")
        )

    # 5. Casual and earned leave cannot overlap approved parental leave.
    if leave_type in PARENTAL_EXCLUSIVE_LEAVE_TYPES and await has_approved_parental_leave(
        session, employee.id, payload.start_date, payload.end_date
    ):
        errors.append(
            _issue(
                IssueCode.POLICY_VIOLATION,
                f"{leave_type.value} cannot overlap an approved maternity or paternity leave",
            )
        )

    # 6. Overlap with the employee's pending or approved requests.
    for existing in await find_overlapping_requests(
        session, employee.id, payload.start_date, payload.end_date, exclude_request_id=exclude_request_id
    ):
        errors.append(
            _issue(
                IssueCode.OVERLAP,
                f"Overlaps {existing.status.lower()} {existing.leave_type} request "
                f"from {existing.start_date.isoformat()} to {existing.end_date.isoformat()}",
            )
        )

    # 7. Per-type limits.
    if total_days > rule.max_consecutive_days:
        errors.append(
            _issue(
                IssueCode.POLICY_VIOLATION,
                f"{leave_type.value} is limited to {rule.max_consecutive_days} consecutive days",
            )
        )
    required_documentation = rule.documentation_after_days is not None and total_days > rule.documentation_after_days

    # 8. Approval chain and auto-approval.
    chain = await build_approval_chain(ctx.directory, employee, leave_type, total_days)
    if not chain:
        errors.append(_issue(IssueCode.VALIDATION, "No approver is available for this request"))

    auto_approval_eligible = (
        not errors
        and rule.auto_approvable
        and total_days <= AUTO_APPROVAL_MAX_DAYS
        and employee.role == Role.EMPLOYEE
        and not required_documentation
    )

    return ValidationResult(
        valid=not errors,
        errors=errors,
        warnings=warnings,
        total_days=total_days,
        required_documentation=required_documentation,
        auto_approval_eligible=auto_approval_eligible,
        approval_chain=chain,
    )
