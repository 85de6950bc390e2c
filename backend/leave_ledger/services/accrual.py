"""Accrual engine: India monthly CL/PL credits and USA annual PTO allocation."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from functools import partial
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leave_ledger.db import run_in_transaction
from leave_ledger.exceptions import ConcurrentUpdate
from leave_ledger.models.accrual import AnnualAccrual, MonthlyAccrual
from leave_ledger.models.enums import (
    AccrualStatus,
    AuditAction,
    AuditEntityType,
    Country,
    LeaveType,
    LedgerEntryType,
    LedgerSourceType,
)
from leave_ledger.services import ledger
from leave_ledger.services.audit import SYSTEM_ACTOR, model_to_audit_dict, write_audit_log
from leave_ledger.services.policy import (
    INDIA_JOINING_DAY_CUTOFF,
    INDIA_MONTHLY_ACCRUAL,
    USA_PTO_SENIOR_DAYS,
    USA_PTO_STANDARD_DAYS,
    is_senior_designation,
)
from leave_ledger.services.validator import has_approved_parental_leave
from leave_ledger.services.working_days import month_bounds

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from leave_ledger.services.context import EngineContext
    from leave_ledger.services.employee import EmployeeInfo

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccrualPeriod:
    """A monthly period (``month`` set) or a whole allocation year (``month`` None)."""

    year: int
    month: int | None = None

    @property
    def bounds(self) -> tuple[date, date]:
        if self.month is None:
            return date(self.year, 1, 1), date(self.year, 12, 31)
        return month_bounds(self.year, self.month)

    @property
    def label(self) -> str:
        return str(self.year) if self.month is None else f"{self.year}-{self.month:02d}"


@dataclass(frozen=True)
class AccrualLine:
    leave_type: LeaveType
    amount: Decimal
    pro_rated: bool
    reason: str


@dataclass
class AccrualComputation:
    """What one employee earns for one period."""

    status: AccrualStatus
    lines: list[AccrualLine] = field(default_factory=list)

    def amount_for(self, leave_type: LeaveType) -> Decimal:
        return sum((line.amount for line in self.lines if line.leave_type == leave_type), Decimal(0))

    @property
    def pro_rated(self) -> bool:
        return any(line.pro_rated for line in self.lines)


@dataclass
class BatchError:
    """One item that failed inside a batch run; the run carries on."""

    employee_id: uuid.UUID | None
    item: str
    message: str


@dataclass
class MonthlyAccrualRunResult:
    """Summary of a monthly accrual run."""

    year: int
    month: int
    processed: int = 0
    created: int = 0
    skipped: int = 0
    suspended: int = 0
    errors: list[BatchError] = field(default_factory=list)


@dataclass
class AnnualAccrualRunResult:
    """Summary of an annual PTO allocation run."""

    year: int
    processed: int = 0
    created: int = 0
    skipped: int = 0
    errors: list[BatchError] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Pure computation helpers (no DB)
# ---------------------------------------------------------------------------


def prorate_annual_days(annual_days: int, joining_month: int) -> Decimal:
    """Annual entitlement scaled to the months remaining from the joining month, half-up to a whole day."""
    months_remaining = 12 - (joining_month - 1)
    exact = Decimal(annual_days) * months_remaining / 12
    return exact.quantize(Decimal(1), rounding=ROUND_HALF_UP)


def _india_monthly(employee: EmployeeInfo, period: AccrualPeriod, leave_suspended: bool) -> AccrualComputation:
    start, end = period.bounds
    if employee.joining_date > end:
        return AccrualComputation(status=AccrualStatus.NOT_ELIGIBLE)
    if leave_suspended:
        return AccrualComputation(status=AccrualStatus.SKIPPED_MATERNITY)

    amount = Decimal(INDIA_MONTHLY_ACCRUAL)
    pro_rated = False
    reason = f"Monthly accrual {period.label}"
    if employee.joining_date >= start and employee.joining_date.day > INDIA_JOINING_DAY_CUTOFF:
        amount = amount / 2
        pro_rated = True
        reason = f"Joining month accrual (joined {employee.joining_date.isoformat()})"

    return AccrualComputation(
        status=AccrualStatus.PROCESSED,
        lines=[
            AccrualLine(LeaveType.CASUAL_LEAVE, amount, pro_rated, reason),
            AccrualLine(LeaveType.EARNED_LEAVE, amount, pro_rated, reason),
        ],
    )


def _usa_annual(employee: EmployeeInfo, period: AccrualPeriod) -> AccrualComputation:
    if employee.joining_date.year > period.year:
        return AccrualComputation(status=AccrualStatus.NOT_ELIGIBLE)

    annual_days = USA_PTO_SENIOR_DAYS if is_senior_designation(employee.designation) else USA_PTO_STANDARD_DAYS
    if employee.joining_date.year == period.year:
        amount = prorate_annual_days(annual_days, employee.joining_date.month)
        line = AccrualLine(
            LeaveType.PTO,
            amount,
            amount != annual_days,
            f"Pro-rated PTO for {period.year} (joined {employee.joining_date.isoformat()})",
        )
    else:
        line = AccrualLine(LeaveType.PTO, Decimal(annual_days), False, f"Annual PTO for {period.year}")
    return AccrualComputation(status=AccrualStatus.PROCESSED, lines=[line])


def compute_accrual(
    employee: EmployeeInfo,
    period: AccrualPeriod,
    *,
    leave_suspended: bool = False,
) -> AccrualComputation:
    """Compute what ``employee`` earns for ``period``.

    India accrues monthly; USA allocates PTO once per year. A monthly period
    for a USA employee, an annual one for an India employee, an inactive
    employee or any other country yields no lines.
    """
    if not employee.is_active:
        return AccrualComputation(status=AccrualStatus.NOT_ELIGIBLE)
    if employee.country == Country.INDIA and period.month is not None:
        return _india_monthly(employee, period, leave_suspended)
    if employee.country == Country.USA and period.month is None:
        return _usa_annual(employee, period)
    return AccrualComputation(status=AccrualStatus.NOT_ELIGIBLE)


# ---------------------------------------------------------------------------
# Per-employee transactional units
# ---------------------------------------------------------------------------


async def _insert_marker(session: AsyncSession, marker: MonthlyAccrual | AnnualAccrual) -> None:
    session.add(marker)
    try:
        await session.flush()
    except IntegrityError as exc:
        raise ConcurrentUpdate(f"Accrual marker for employee {marker.employee_id} inserted concurrently") from exc


async def _accrue_month(
    session: AsyncSession,
    *,
    employee: EmployeeInfo,
    year: int,
    month: int,
) -> AccrualStatus | None:
    """Credit one India employee for one month. Returns None when already processed."""
    period = AccrualPeriod(year=year, month=month)
    existing = await session.execute(
        select(MonthlyAccrual.id).where(
            col(MonthlyAccrual.employee_id) == employee.id,
            col(MonthlyAccrual.year) == year,
            col(MonthlyAccrual.month) == month,
        )
    )
    if existing.first() is not None:
        return None

    start, end = period.bounds
    suspended = await has_approved_parental_leave(session, employee.id, start, end)
    computation = compute_accrual(employee, period, leave_suspended=suspended)
    if computation.status == AccrualStatus.NOT_ELIGIBLE:
        return computation.status

    marker = MonthlyAccrual(
        employee_id=employee.id,
        year=year,
        month=month,
        casual_leave=computation.amount_for(LeaveType.CASUAL_LEAVE),
        privilege_leave=computation.amount_for(LeaveType.EARNED_LEAVE),
        pro_rated=computation.pro_rated,
        status=computation.status.value,
    )
    await _insert_marker(session, marker)

    for line in computation.lines:
        await ledger.credit(
            session,
            employee.id,
            line.leave_type,
            period.year,
            line.amount,
            entry_type=LedgerEntryType.ACCRUAL,
            source_type=LedgerSourceType.SYSTEM,
            source_id=f"accrual:{employee.id}:{period.label}:{line.leave_type.value}",
            metadata={"reason": line.reason, "pro_rated": line.pro_rated},
        )

    await write_audit_log(
        session,
        actor_id=SYSTEM_ACTOR,
        employee_id=employee.id,
        entity_type=AuditEntityType.ACCRUAL,
        entity_id=marker.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(marker),
    )
    return computation.status


async def _allocate_year(
    session: AsyncSession,
    *,
    employee: EmployeeInfo,
    period: AccrualPeriod,
) -> AccrualStatus | None:
    """Allocate one USA employee's PTO for one year. Returns None when already allocated."""
    existing = await session.execute(
        select(AnnualAccrual.id).where(
            col(AnnualAccrual.employee_id) == employee.id,
            col(AnnualAccrual.leave_type) == LeaveType.PTO.value,
            col(AnnualAccrual.year) == period.year,
        )
    )
    if existing.first() is not None:
        return None

    computation = compute_accrual(employee, period)
    if computation.status == AccrualStatus.NOT_ELIGIBLE:
        return computation.status

    amount = computation.amount_for(LeaveType.PTO)
    marker = AnnualAccrual(
        employee_id=employee.id,
        leave_type=LeaveType.PTO.value,
        year=period.year,
        designation=employee.designation,
        amount=amount,
        pro_rated=computation.pro_rated,
        status=computation.status.value,
    )
    await _insert_marker(session, marker)

    if amount > 0:
        line = computation.lines[0]
        await ledger.credit(
            session,
            employee.id,
            LeaveType.PTO,
            period.year,
            amount,
            entry_type=LedgerEntryType.ACCRUAL,
            source_type=LedgerSourceType.SYSTEM,
            source_id=f"allocation:{employee.id}:{period.year}:{LeaveType.PTO.value}",
            metadata={"reason": line.reason, "designation": employee.designation, "pro_rated": line.pro_rated},
        )

    await write_audit_log(
        session,
        actor_id=SYSTEM_ACTOR,
        employee_id=employee.id,
        entity_type=AuditEntityType.ACCRUAL,
        entity_id=marker.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(marker),
    )
    return computation.status


# ---------------------------------------------------------------------------
# Batch orchestration
# ---------------------------------------------------------------------------


async def run_monthly_accrual(
    session_factory: async_sessionmaker[AsyncSession],
    ctx: EngineContext,
    year: int,
    month: int,
) -> MonthlyAccrualRunResult:
    """Credit CL and PL to every India employee for ``year``/``month``.

    Each employee is processed in its own transaction. Re-running for the same
    month is a no-op for employees already processed. A failure for one
    employee is logged and recorded; the run continues.
    """
    result = MonthlyAccrualRunResult(year=year, month=month)

    for employee in await ctx.directory.list_employees():
        if employee.country != Country.INDIA:
            continue
        result.processed += 1
        try:
            status = await run_in_transaction(
                session_factory,
                partial(_accrue_month, employee=employee, year=year, month=month),
                attempts=ctx.settings.conflict_retry_attempts,
                backoff_seconds=ctx.settings.conflict_retry_backoff_seconds,
            )
        except Exception as exc:
            logger.exception("Error processing monthly accrual for employee=%s period=%d-%02d", employee.id, year, month)
            result.errors.append(BatchError(employee.id, f"{year}-{month:02d}", str(exc)))
            continue

        if status == AccrualStatus.PROCESSED:
            result.created += 1
        elif status == AccrualStatus.SKIPPED_MATERNITY:
            result.suspended += 1
        else:
            result.skipped += 1

    logger.info(
        "Monthly accrual %d-%02d: processed=%d created=%d skipped=%d suspended=%d errors=%d",
        year,
        month,
        result.processed,
        result.created,
        result.skipped,
        result.suspended,
        len(result.errors),
    )
    return result


async def run_annual_pto_allocation(
    session_factory: async_sessionmaker[AsyncSession],
    ctx: EngineContext,
    year: int,
) -> AnnualAccrualRunResult:
    """Allocate the year's PTO to every USA employee, pro-rated for joiners."""
    result = AnnualAccrualRunResult(year=year)
    period = AccrualPeriod(year=year)

    for employee in await ctx.directory.list_employees():
        if employee.country != Country.USA:
            continue
        result.processed += 1
        try:
            status = await run_in_transaction(
                session_factory,
                partial(_allocate_year, employee=employee, period=period),
                attempts=ctx.settings.conflict_retry_attempts,
                backoff_seconds=ctx.settings.conflict_retry_backoff_seconds,
            )
        except Exception as exc:
            logger.exception("Error allocating PTO for employee=%s year=%d", employee.id, year)
            result.errors.append(BatchError(employee.id, str(year), str(exc)))
            continue

        if status == AccrualStatus.PROCESSED:
            result.created += 1
        else:
            result.skipped += 1

    logger.info(
        "Annual PTO allocation %d: processed=%d created=%d skipped=%d errors=%d",
        year,
        result.processed,
        result.created,
        result.skipped,
        len(result.errors),
    )
    return result
