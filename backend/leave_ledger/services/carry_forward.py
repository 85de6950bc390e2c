"""Year-end carry-forward and expiry processing.

Carry-forward: runs on Jan 1 to move capped unused balance into the new year.
Expiry: runs daily to lapse unused carried PTO after Q1 and unconsumed comp-off grants.
Reminders: warn employees about balance that is about to expire.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from functools import partial
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leave_ledger.db import run_in_transaction
from leave_ledger.exceptions import AppError, ConcurrentUpdate
from leave_ledger.models.carry_forward import CarryForwardRecord
from leave_ledger.models.comp_off import CompOffGrant
from leave_ledger.models.enums import (
    AuditAction,
    AuditEntityType,
    CarryForwardStatus,
    GrantStatus,
    LeaveType,
    LedgerEntryType,
    LedgerSourceType,
    NotificationKind,
)
from leave_ledger.services import ledger
from leave_ledger.services.accrual import BatchError
from leave_ledger.services.audit import SYSTEM_ACTOR, model_to_audit_dict, write_audit_log
from leave_ledger.services.comp_off import grant_free_days, list_expiring_grants
from leave_ledger.services.notification import Notification, dispatch
from leave_ledger.services.policy import CARRY_FORWARD_LEAVE_TYPES, is_senior_designation
from leave_ledger.services.validator import pending_days

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from leave_ledger.config import Settings
    from leave_ledger.services.context import EngineContext
    from leave_ledger.services.employee import EmployeeInfo

logger = logging.getLogger(__name__)

ZERO = Decimal(0)


@dataclass(frozen=True)
class CarryForwardPlan:
    """How one year-end balance splits into carried and lapsed days."""

    carried: Decimal
    lapsed: Decimal
    expires_on: date | None = None


@dataclass
class CarryForwardRunResult:
    """Summary of a year-end carry-forward run."""

    from_year: int
    to_year: int
    processed: int = 0
    skipped: int = 0
    carried_by_type: dict[str, Decimal] = field(default_factory=dict)
    lapsed_by_type: dict[str, Decimal] = field(default_factory=dict)
    errors: list[BatchError] = field(default_factory=list)


@dataclass
class ExpiryRunResult:
    """Summary of a carry-forward or comp-off expiry run."""

    as_of: date
    processed: int = 0
    expired: int = 0
    expired_days: Decimal = ZERO
    skipped: int = 0
    errors: list[BatchError] = field(default_factory=list)


@dataclass
class ReminderRunResult:
    as_of: date
    sent: int = 0


# ---------------------------------------------------------------------------
# Pure computation helpers (no DB)
# ---------------------------------------------------------------------------


def carry_forward_cap(employee: EmployeeInfo, leave_type: LeaveType, settings: Settings) -> Decimal:
    """Most days of ``leave_type`` the employee may take into the next year."""
    if leave_type == LeaveType.EARNED_LEAVE:
        return Decimal(settings.india_el_carry_forward_cap)
    if leave_type == LeaveType.PTO and not is_senior_designation(employee.designation):
        return Decimal(settings.usa_pto_carry_forward_cap)
    return ZERO


def plan_carry_forward(
    employee: EmployeeInfo,
    leave_type: LeaveType,
    available: Decimal,
    to_year: int,
    settings: Settings,
) -> CarryForwardPlan:
    """Split ``available`` into the capped carried amount and the lapsed rest.

    Carried PTO must be used by the configured Q1 date of ``to_year``.
    """
    available = max(available, ZERO)
    carried = min(available, carry_forward_cap(employee, leave_type, settings))
    expires_on = None
    if leave_type == LeaveType.PTO and carried > 0:
        expires_on = date(to_year, settings.usa_carry_forward_expiry_month, settings.usa_carry_forward_expiry_day)
    return CarryForwardPlan(carried=carried, lapsed=available - carried, expires_on=expires_on)


def _add_total(totals: dict[str, Decimal], leave_type: str, amount: Decimal) -> None:
    totals[leave_type] = totals.get(leave_type, ZERO) + amount


# ---------------------------------------------------------------------------
# Year-end carry-forward
# ---------------------------------------------------------------------------


async def _carry_forward_one(
    session: AsyncSession,
    *,
    ctx: EngineContext,
    employee: EmployeeInfo,
    leave_type: LeaveType,
    from_year: int,
    to_year: int,
) -> CarryForwardRecord | None:
    """Close one balance for the year. Returns None when it was already closed."""
    existing = await session.execute(
        select(CarryForwardRecord.id).where(
            col(CarryForwardRecord.employee_id) == employee.id,
            col(CarryForwardRecord.leave_type) == leave_type.value,
            col(CarryForwardRecord.from_year) == from_year,
            col(CarryForwardRecord.to_year) == to_year,
        )
    )
    if existing.first() is not None:
        return None

    record = CarryForwardRecord(
        employee_id=employee.id,
        leave_type=leave_type.value,
        from_year=from_year,
        to_year=to_year,
    )
    session.add(record)
    try:
        await session.flush()
    except IntegrityError as exc:
        raise ConcurrentUpdate(f"Carry-forward for employee {employee.id} {leave_type.value} closed concurrently") from exc

    row = await ledger.get_balance_for_update(session, employee.id, leave_type, from_year)
    # Days held by pending requests stay in from_year so those requests can still be approved.
    reserved = await pending_days(session, employee.id, leave_type, from_year)
    available = max(ledger.usable_available(row) - reserved, Decimal(0))
    plan = plan_carry_forward(employee, leave_type, available, to_year, ctx.settings)
    source_id = f"carry-forward:{record.id}"

    if plan.carried > 0:
        await ledger.expire(
            session,
            employee.id,
            leave_type,
            from_year,
            plan.carried,
            entry_type=LedgerEntryType.CARRY_FORWARD_OUT,
            source_id=source_id,
            metadata={"to_year": to_year},
        )
        await ledger.credit(
            session,
            employee.id,
            leave_type,
            to_year,
            plan.carried,
            entry_type=LedgerEntryType.CARRY_FORWARD_IN,
            source_type=LedgerSourceType.SYSTEM,
            source_id=source_id,
            metadata={"from_year": from_year, "expires_on": plan.expires_on.isoformat() if plan.expires_on else None},
        )
    if plan.lapsed > 0:
        await ledger.expire(
            session,
            employee.id,
            leave_type,
            from_year,
            plan.lapsed,
            entry_type=LedgerEntryType.EXPIRATION,
            source_id=source_id,
            metadata={"reason": "year-end lapse", "to_year": to_year},
        )

    record.available_at_close = available
    record.carried_days = plan.carried
    record.lapsed_days = plan.lapsed
    record.expires_on = plan.expires_on
    record.status = (CarryForwardStatus.ACTIVE if plan.expires_on else CarryForwardStatus.SETTLED).value
    await session.flush()

    await write_audit_log(
        session,
        actor_id=SYSTEM_ACTOR,
        employee_id=record.employee_id,
        entity_type=AuditEntityType.CARRY_FORWARD,
        entity_id=record.id,
        action=AuditAction.CREATE,
        note=f"carried {plan.carried}, lapsed {plan.lapsed}",
        after_json=model_to_audit_dict(record),
    )
    return record


async def run_year_end_carry_forward(
    session_factory: async_sessionmaker[AsyncSession],
    ctx: EngineContext,
    from_year: int,
    to_year: int,
) -> CarryForwardRunResult:
    """Close ``from_year`` for every employee and leave type that carries forward.

    One transaction per employee and type; re-running is a no-op for
    balances already closed.
    """
    if to_year != from_year + 1:
        raise AppError(f"to_year must be {from_year + 1}, got {to_year}", status_code=400)

    result = CarryForwardRunResult(from_year=from_year, to_year=to_year)

    for employee in await ctx.directory.list_employees():
        for leave_type in CARRY_FORWARD_LEAVE_TYPES.get(employee.country, ()):
            result.processed += 1
            try:
                record = await run_in_transaction(
                    session_factory,
                    partial(
                        _carry_forward_one,
                        ctx=ctx,
                        employee=employee,
                        leave_type=leave_type,
                        from_year=from_year,
                        to_year=to_year,
                    ),
                    attempts=ctx.settings.conflict_retry_attempts,
                    backoff_seconds=ctx.settings.conflict_retry_backoff_seconds,
                )
            except Exception as exc:
                logger.exception(
                    "Error processing carry-forward for employee=%s type=%s year=%d",
                    employee.id,
                    leave_type.value,
                    from_year,
                )
                result.errors.append(BatchError(employee.id, f"{leave_type.value}:{from_year}", str(exc)))
                continue

            if record is None:
                result.skipped += 1
                continue
            _add_total(result.carried_by_type, leave_type.value, record.carried_days)
            _add_total(result.lapsed_by_type, leave_type.value, record.lapsed_days)

    logger.info(
        "Year-end carry-forward %d->%d: processed=%d skipped=%d carried=%s lapsed=%s errors=%d",
        from_year,
        to_year,
        result.processed,
        result.skipped,
        result.carried_by_type,
        result.lapsed_by_type,
        len(result.errors),
    )
    return result


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


async def _expire_carry_forward(session: AsyncSession, *, record_id: uuid.UUID) -> Decimal | None:
    """Lapse whatever carried days are still unused. Returns None if another run got there first."""
    claimed = await session.execute(
        update(CarryForwardRecord)
        .where(
            col(CarryForwardRecord.id) == record_id,
            col(CarryForwardRecord.status) == CarryForwardStatus.ACTIVE.value,
        )
        .values(status=CarryForwardStatus.EXPIRED.value)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount == 0:  # type: ignore[attr-defined]
        return None

    loaded = await session.execute(
        select(CarryForwardRecord)
        .where(col(CarryForwardRecord.id) == record_id)
        .execution_options(populate_existing=True)
    )
    record = loaded.scalar_one()
    leave_type = LeaveType(record.leave_type)

    row = await ledger.get_balance_for_update(session, record.employee_id, leave_type, record.to_year)
    used = row.used if row is not None else ZERO
    amount = min(max(record.carried_days - used, ZERO), ledger.usable_available(row))

    if amount > 0:
        await ledger.expire(
            session,
            record.employee_id,
            leave_type,
            record.to_year,
            amount,
            entry_type=LedgerEntryType.EXPIRATION,
            source_id=f"carry-forward-expiry:{record.id}",
            metadata={"expires_on": record.expires_on.isoformat() if record.expires_on else None},
        )

    record.expired_days = amount
    await session.flush()
    await write_audit_log(
        session,
        actor_id=SYSTEM_ACTOR,
        employee_id=record.employee_id,
        entity_type=AuditEntityType.CARRY_FORWARD,
        entity_id=record.id,
        action=AuditAction.EXPIRE,
        note=f"expired {amount} unused carry-forward",
        after_json=model_to_audit_dict(record),
    )
    return amount


async def _expire_grant(session: AsyncSession, *, grant_id: uuid.UUID) -> Decimal | None:
    """Lapse the unconsumed part of one comp-off grant. Returns None if another run got there first."""
    claimed = await session.execute(
        update(CompOffGrant)
        .where(col(CompOffGrant.id) == grant_id, col(CompOffGrant.status) == GrantStatus.ACTIVE.value)
        .values(status=GrantStatus.EXPIRED.value)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount == 0:  # type: ignore[attr-defined]
        return None

    loaded = await session.execute(
        select(CompOffGrant).where(col(CompOffGrant.id) == grant_id).execution_options(populate_existing=True)
    )
    grant = loaded.scalar_one()

    row = await ledger.get_balance_for_update(session, grant.employee_id, LeaveType.COMPENSATORY_OFF, grant.year)
    amount = min(max(grant_free_days(grant), ZERO), ledger.usable_available(row))
    if amount > 0:
        await ledger.expire(
            session,
            grant.employee_id,
            LeaveType.COMPENSATORY_OFF,
            grant.year,
            amount,
            entry_type=LedgerEntryType.EXPIRATION,
            source_type=LedgerSourceType.COMP_OFF,
            source_id=f"comp-off-expiry:{grant.id}",
            metadata={"work_log_id": str(grant.work_log_id), "expires_on": grant.expires_on.isoformat()},
        )

    grant.expired_days += amount
    await session.flush()
    await write_audit_log(
        session,
        actor_id=SYSTEM_ACTOR,
        employee_id=grant.employee_id,
        entity_type=AuditEntityType.COMP_OFF,
        entity_id=grant.id,
        action=AuditAction.EXPIRE,
        note=f"expired {amount} unconsumed comp-off",
        after_json=model_to_audit_dict(grant),
    )
    return amount


async def _run_expiry(
    session_factory: async_sessionmaker[AsyncSession],
    ctx: EngineContext,
    as_of: date,
    items: list[tuple[uuid.UUID, uuid.UUID]],
    make_operation: Callable[[uuid.UUID], Callable[[AsyncSession], Awaitable[Decimal | None]]],
    label: str,
) -> ExpiryRunResult:
    result = ExpiryRunResult(as_of=as_of)
    for item_id, employee_id in items:
        result.processed += 1
        try:
            amount = await run_in_transaction(
                session_factory,
                make_operation(item_id),
                attempts=ctx.settings.conflict_retry_attempts,
                backoff_seconds=ctx.settings.conflict_retry_backoff_seconds,
            )
        except Exception as exc:
            logger.exception("Error expiring %s item=%s for employee=%s", label, item_id, employee_id)
            result.errors.append(BatchError(employee_id, f"{label}:{item_id}", str(exc)))
            continue

        if amount is None:
            result.skipped += 1
            continue
        result.expired += 1
        result.expired_days += amount

    logger.info(
        "%s expiry as of %s: processed=%d expired=%d days=%s skipped=%d errors=%d",
        label,
        as_of.isoformat(),
        result.processed,
        result.expired,
        result.expired_days,
        result.skipped,
        len(result.errors),
    )
    return result


async def run_carry_forward_expiry(
    session_factory: async_sessionmaker[AsyncSession],
    ctx: EngineContext,
    as_of: date,
) -> ExpiryRunResult:
    """Expire carried days still unused after their expiry date (strictly before ``as_of``)."""
    async with session_factory() as session:
        due = await session.execute(
            select(CarryForwardRecord.id, CarryForwardRecord.employee_id)
            .where(
                col(CarryForwardRecord.status) == CarryForwardStatus.ACTIVE.value,
                col(CarryForwardRecord.expires_on) < as_of,
            )
            .order_by(col(CarryForwardRecord.expires_on))
        )
        items = [(row.id, row.employee_id) for row in due.all()]
    return await _run_expiry(
        session_factory,
        ctx,
        as_of,
        items,
        lambda item_id: partial(_expire_carry_forward, record_id=item_id),
        "carry-forward",
    )


async def run_comp_off_expiry(
    session_factory: async_sessionmaker[AsyncSession],
    ctx: EngineContext,
    as_of: date,
) -> ExpiryRunResult:
    """Expire the unconsumed days of comp-off grants past their expiry date."""
    async with session_factory() as session:
        due = await session.execute(
            select(CompOffGrant.id, CompOffGrant.employee_id)
            .where(
                col(CompOffGrant.status) == GrantStatus.ACTIVE.value,
                col(CompOffGrant.expires_on) < as_of,
            )
            .order_by(col(CompOffGrant.expires_on))
        )
        items = [(row.id, row.employee_id) for row in due.all()]
    return await _run_expiry(
        session_factory,
        ctx,
        as_of,
        items,
        lambda item_id: partial(_expire_grant, grant_id=item_id),
        "comp-off",
    )


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


def _expiring_notification(employee_id: uuid.UUID, leave_type: str, days: Decimal, expires_on: date) -> Notification:
    return Notification(
        kind=NotificationKind.BALANCE_EXPIRING,
        recipient_id=employee_id,
        subject=f"{days} day(s) of {leave_type} expire on {expires_on.isoformat()}",
        payload={"leave_type": leave_type, "days": str(days), "expires_on": expires_on.isoformat()},
    )


async def send_expiry_reminders(
    session_factory: async_sessionmaker[AsyncSession],
    ctx: EngineContext,
    as_of: date,
    horizon_days: int | None = None,
) -> ReminderRunResult:
    """Notify employees about carried PTO and comp-off grants expiring within the horizon."""
    horizon = horizon_days if horizon_days is not None else ctx.settings.expiry_reminder_days
    until = as_of + timedelta(days=horizon)
    outbox: list[Notification] = []

    async with session_factory() as session:
        records = await session.execute(
            select(CarryForwardRecord).where(
                col(CarryForwardRecord.status) == CarryForwardStatus.ACTIVE.value,
                col(CarryForwardRecord.expires_on) >= as_of,
                col(CarryForwardRecord.expires_on) <= until,
            )
        )
        for record in records.scalars().all():
            leave_type = LeaveType(record.leave_type)
            balance = await ledger.get_balance(session, record.employee_id, leave_type, record.to_year)
            remaining = min(max(record.carried_days - balance.used, ZERO), balance.available)
            if remaining > 0 and record.expires_on is not None:
                outbox.append(_expiring_notification(record.employee_id, record.leave_type, remaining, record.expires_on))

        for grant in await list_expiring_grants(session, as_of, until):
            remaining = grant_free_days(grant)
            if remaining > 0:
                outbox.append(
                    _expiring_notification(grant.employee_id, LeaveType.COMPENSATORY_OFF.value, remaining, grant.expires_on)
                )

    await dispatch(ctx.notifications, outbox)
    logger.info("Expiry reminders as of %s: sent=%d", as_of.isoformat(), len(outbox))
    return ReminderRunResult(as_of=as_of, sent=len(outbox))
