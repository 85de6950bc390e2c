"""Balance ledger: the only code allowed to change a LeaveBalance row.

Every write is one conditional UPDATE that does the arithmetic inside the
statement, so concurrent writers serialize on the row and a guard such as
``available >= :amount`` is evaluated against the latest committed value.
Rows are created lazily on first credit. Each write appends a
LeaveLedgerEntry and re-checks ``available = total_entitlement - used``.
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leave_ledger.exceptions import AppError, ConcurrentUpdate, InsufficientBalance, InvalidTransition
from leave_ledger.models.balance import LeaveBalance
from leave_ledger.models.base import is_half_day_multiple
from leave_ledger.models.enums import (
    AuditAction,
    AuditEntityType,
    LeaveType,
    LedgerEntryType,
    LedgerSourceType,
)
from leave_ledger.models.ledger import LeaveLedgerEntry
from leave_ledger.schemas.balance import BalanceResponse
from leave_ledger.services.audit import SYSTEM_ACTOR, to_audit_dict, write_audit_log

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)
anomaly_logger = logging.getLogger("leave_ledger.anomaly")

ZERO = Decimal(0)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _normalize_amount(amount: Decimal | int | str) -> Decimal:
    value = Decimal(amount)
    if value <= 0 or not is_half_day_multiple(value):
        raise AppError(f"Amount must be a positive multiple of 0.5 days, got {value}", status_code=400)
    return value


def _key_filter(employee_id: uuid.UUID, leave_type: LeaveType, year: int) -> tuple[Any, ...]:
    return (
        col(LeaveBalance.employee_id) == employee_id,
        col(LeaveBalance.leave_type) == leave_type.value,
        col(LeaveBalance.year) == year,
    )


async def _conditional_update(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    year: int,
    values: dict[str, Any],
    *guards: Any,
) -> int:
    """Apply ``values`` to the balance row if ``guards`` hold. Returns affected row count."""
    stmt = (
        update(LeaveBalance)
        .where(*_key_filter(employee_id, leave_type, year), *guards)
        .values(version=col(LeaveBalance.version) + 1, **values)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount  # type: ignore[attr-defined]


async def _insert_balance_row(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    year: int,
    amount: Decimal,
    *,
    carry_forward: bool,
) -> None:
    """Create the balance row with its first credit already applied."""
    try:
        await session.execute(
            insert(LeaveBalance).values(
                employee_id=employee_id,
                leave_type=leave_type.value,
                year=year,
                total_entitlement=amount,
                used=ZERO,
                available=amount,
                carry_forward=amount if carry_forward else ZERO,
                version=1,
            )
        )
    except IntegrityError as exc:
        raise ConcurrentUpdate(f"Balance row for {employee_id}/{leave_type.value}/{year} created concurrently") from exc


async def _load_row(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    year: int,
) -> LeaveBalance | None:
    result = await session.execute(
        select(LeaveBalance)
        .where(*_key_filter(employee_id, leave_type, year))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _require_row(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    year: int,
) -> LeaveBalance:
    row = await _load_row(session, employee_id, leave_type, year)
    if row is None:
        raise ConcurrentUpdate(f"Balance row for {employee_id}/{leave_type.value}/{year} vanished during a write")
    return row


def _journal(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    year: int,
    entry_type: LedgerEntryType,
    signed_amount: Decimal,
    source_type: LedgerSourceType,
    source_id: str,
    metadata: dict[str, Any] | None,
) -> LeaveLedgerEntry:
    entry = LeaveLedgerEntry(
        employee_id=employee_id,
        leave_type=leave_type.value,
        year=year,
        entry_type=entry_type.value,
        amount=signed_amount,
        source_type=source_type.value,
        source_id=source_id,
        metadata_json=metadata,
    )
    session.add(entry)
    return entry


def _report_anomaly(row: LeaveBalance, reason: str) -> None:
    anomaly_logger.error(
        "Ledger anomaly for employee=%s type=%s year=%d: %s "
        "(total_entitlement=%s used=%s available=%s version=%d)",
        row.employee_id,
        row.leave_type,
        row.year,
        reason,
        row.total_entitlement,
        row.used,
        row.available,
        row.version,
    )


def _find_inconsistency(row: LeaveBalance) -> str | None:
    if row.available < 0:
        return "negative available balance"
    if row.used < 0:
        return "negative used balance"
    if row.available != row.total_entitlement - row.used:
        return "available does not equal total_entitlement - used"
    return None


async def _reconcile(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    year: int,
) -> LeaveBalance:
    """Re-read the row after a write and repair it if the invariant no longer holds."""
    row = await _require_row(session, employee_id, leave_type, year)

    reason = _find_inconsistency(row)
    if reason is None:
        return row

    _report_anomaly(row, reason)
    before = {
        "total_entitlement": row.total_entitlement,
        "used": row.used,
        "available": row.available,
    }
    repaired = max(row.total_entitlement - row.used, ZERO)
    await _conditional_update(session, employee_id, leave_type, year, {"available": repaired})
    await write_audit_log(
        session,
        actor_id=SYSTEM_ACTOR,
        entity_type=AuditEntityType.BALANCE,
        entity_id=employee_id,
        action=AuditAction.ANOMALY,
        employee_id=employee_id,
        note=reason,
        before_json=to_audit_dict({"leave_type": leave_type.value, "year": year, "reason": reason, **before}),
        after_json=to_audit_dict({"available": repaired}),
    )
    return await _require_row(session, employee_id, leave_type, year)


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------


async def credit(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    year: int,
    amount: Decimal | int | str,
    *,
    entry_type: LedgerEntryType = LedgerEntryType.ACCRUAL,
    source_type: LedgerSourceType = LedgerSourceType.SYSTEM,
    source_id: str,
    metadata: dict[str, Any] | None = None,
) -> LeaveBalance:
    """Increase total entitlement and available by ``amount``.

    ``CARRY_FORWARD_IN`` credits also add to the row's ``carry_forward``.
    Creates the row when it does not exist yet.
    """
    value = _normalize_amount(amount)
    is_carry_forward = entry_type == LedgerEntryType.CARRY_FORWARD_IN

    values: dict[str, Any] = {
        "total_entitlement": col(LeaveBalance.total_entitlement) + value,
        "available": col(LeaveBalance.available) + value,
    }
    if is_carry_forward:
        values["carry_forward"] = col(LeaveBalance.carry_forward) + value

    updated = await _conditional_update(session, employee_id, leave_type, year, values)
    if updated == 0:
        await _insert_balance_row(session, employee_id, leave_type, year, value, carry_forward=is_carry_forward)

    _journal(session, employee_id, leave_type, year, entry_type, value, source_type, source_id, metadata)
    return await _reconcile(session, employee_id, leave_type, year)


async def debit(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    year: int,
    amount: Decimal | int | str,
    *,
    source_type: LedgerSourceType = LedgerSourceType.REQUEST,
    source_id: str,
    metadata: dict[str, Any] | None = None,
) -> LeaveBalance:
    """Move ``amount`` from available to used.

    Raises InsufficientBalance, leaving the row untouched, when less than
    ``amount`` is available at the moment the statement runs. Commits or
    rolls back with the caller's transaction.
    """
    value = _normalize_amount(amount)

    updated = await _conditional_update(
        session,
        employee_id,
        leave_type,
        year,
        {
            "used": col(LeaveBalance.used) + value,
            "available": col(LeaveBalance.available) - value,
        },
        col(LeaveBalance.available) >= value,
    )
    if updated == 0:
        current = await _load_row(session, employee_id, leave_type, year)
        available = current.available if current is not None else ZERO
        raise InsufficientBalance(
            f"Insufficient {leave_type.value} balance for {year}: requested {value}, available {available}"
        )

    _journal(
        session, employee_id, leave_type, year, LedgerEntryType.USAGE, -value, source_type, source_id, metadata
    )
    return await _reconcile(session, employee_id, leave_type, year)


async def reverse(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    year: int,
    amount: Decimal | int | str,
    *,
    source_type: LedgerSourceType = LedgerSourceType.REQUEST,
    source_id: str,
    metadata: dict[str, Any] | None = None,
) -> LeaveBalance:
    """Undo a previous debit of ``amount``."""
    value = _normalize_amount(amount)

    updated = await _conditional_update(
        session,
        employee_id,
        leave_type,
        year,
        {
            "used": col(LeaveBalance.used) - value,
            "available": col(LeaveBalance.available) + value,
        },
        col(LeaveBalance.used) >= value,
    )
    if updated == 0:
        raise InvalidTransition(
            f"Cannot reverse {value} days of {leave_type.value} for {year}: less than that has been used"
        )

    _journal(
        session, employee_id, leave_type, year, LedgerEntryType.REVERSAL, value, source_type, source_id, metadata
    )
    return await _reconcile(session, employee_id, leave_type, year)


async def expire(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    year: int,
    amount: Decimal | int | str,
    *,
    entry_type: LedgerEntryType = LedgerEntryType.EXPIRATION,
    source_type: LedgerSourceType = LedgerSourceType.SYSTEM,
    source_id: str,
    metadata: dict[str, Any] | None = None,
) -> LeaveBalance:
    """Remove ``amount`` of unused entitlement (lapse, carry-out, negative adjustment)."""
    value = _normalize_amount(amount)

    updated = await _conditional_update(
        session,
        employee_id,
        leave_type,
        year,
        {
            "total_entitlement": col(LeaveBalance.total_entitlement) - value,
            "available": col(LeaveBalance.available) - value,
        },
        col(LeaveBalance.available) >= value,
    )
    if updated == 0:
        raise InsufficientBalance(f"Cannot remove {value} days of {leave_type.value} for {year}: not available")

    _journal(session, employee_id, leave_type, year, entry_type, -value, source_type, source_id, metadata)
    return await _reconcile(session, employee_id, leave_type, year)


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------


async def get_balance(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    year: int,
) -> BalanceResponse:
    """Return the balance, or an all-zero balance when no row exists yet.

    Never hands a negative or inconsistent figure to a reader: negative
    available is clamped to zero and the anomaly is logged.
    """
    row = await _load_row(session, employee_id, leave_type, year)
    if row is None:
        return BalanceResponse(
            employee_id=employee_id,
            leave_type=leave_type,
            year=year,
            total_entitlement=ZERO,
            used=ZERO,
            available=ZERO,
            carry_forward=ZERO,
            version=0,
            updated_at=None,
        )

    available = row.available
    reason = _find_inconsistency(row)
    if reason is not None:
        _report_anomaly(row, reason)
        available = max(min(row.available, row.total_entitlement - row.used), ZERO)

    return BalanceResponse(
        employee_id=row.employee_id,
        leave_type=LeaveType(row.leave_type),
        year=row.year,
        total_entitlement=row.total_entitlement,
        used=row.used,
        available=available,
        carry_forward=row.carry_forward,
        version=row.version,
        updated_at=row.updated_at,
    )


async def get_balance_for_update(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    year: int,
) -> LeaveBalance | None:
    """Lock and return the balance row, or None when it does not exist."""
    result = await session.execute(
        select(LeaveBalance)
        .where(*_key_filter(employee_id, leave_type, year))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def usable_available(row: LeaveBalance | None) -> Decimal:
    """Available days a writer may act on: never negative, never above entitlement minus usage."""
    if row is None:
        return ZERO
    return max(min(row.available, row.total_entitlement - row.used), ZERO)


async def get_pooled_available(session: AsyncSession, employee_id: uuid.UUID, leave_type: LeaveType) -> Decimal:
    """Usable days of one leave type summed over every ledger year."""
    result = await session.execute(
        select(LeaveBalance).where(
            col(LeaveBalance.employee_id) == employee_id,
            col(LeaveBalance.leave_type) == leave_type.value,
        )
    )
    return sum((usable_available(row) for row in result.scalars().all()), ZERO)


async def get_usage_entries(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    source_id: str,
) -> list[LeaveLedgerEntry]:
    """USAGE entries one request wrote, one per ledger year or comp-off grant."""
    result = await session.execute(
        select(LeaveLedgerEntry)
        .where(
            col(LeaveLedgerEntry.employee_id) == employee_id,
            col(LeaveLedgerEntry.leave_type) == leave_type.value,
            col(LeaveLedgerEntry.entry_type) == LedgerEntryType.USAGE.value,
            col(LeaveLedgerEntry.source_type) == LedgerSourceType.REQUEST.value,
            col(LeaveLedgerEntry.source_id) == source_id,
        )
        .order_by(col(LeaveLedgerEntry.created_at), col(LeaveLedgerEntry.id))
    )
    return list(result.scalars().all())


async def get_ledger_entries(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    year: int,
) -> list[LeaveLedgerEntry]:
    """Journal entries for one balance, oldest first."""
    result = await session.execute(
        select(LeaveLedgerEntry)
        .where(
            col(LeaveLedgerEntry.employee_id) == employee_id,
            col(LeaveLedgerEntry.leave_type) == leave_type.value,
            col(LeaveLedgerEntry.year) == year,
        )
        .order_by(col(LeaveLedgerEntry.created_at), col(LeaveLedgerEntry.id))
    )
    return list(result.scalars().all())
