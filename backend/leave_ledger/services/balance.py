# ruff: noqa: TC003
"""Balance queries and HR adjustments."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from leave_ledger.exceptions import AppError, NotFound, Unauthorized
from leave_ledger.models.enums import (
    AuditAction,
    AuditEntityType,
    LeaveType,
    LedgerEntryType,
    LedgerSourceType,
)
from leave_ledger.models.ledger import LeaveLedgerEntry
from leave_ledger.schemas.balance import BalanceResponse, LedgerEntryResponse, LedgerListResponse
from leave_ledger.services import ledger
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.auth import AuthContext
    from leave_ledger.schemas.balance import CreateAdjustmentRequest
    from leave_ledger.services.context import EngineContext

logger = logging.getLogger(__name__)


def _build_ledger_entry_response(entry: LeaveLedgerEntry) -> LedgerEntryResponse:
    return LedgerEntryResponse(
        id=entry.id,
        leave_type=LeaveType(entry.leave_type),
        year=entry.year,
        entry_type=LedgerEntryType(entry.entry_type),
        amount=entry.amount,
        source_type=LedgerSourceType(entry.source_type),
        source_id=entry.source_id,
        metadata_json=entry.metadata_json,
        created_at=entry.created_at,
    )


async def get_employee_balance(
    session: AsyncSession,
    ctx: EngineContext,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    year: int,
) -> BalanceResponse:
    if await ctx.directory.get_employee(employee_id) is None:
        raise NotFound("Employee not found")
    return await ledger.get_balance(session, employee_id, leave_type, year)


async def get_employee_ledger(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    year: int,
) -> LedgerListResponse:
    entries = await ledger.get_ledger_entries(session, employee_id, leave_type, year)
    return LedgerListResponse(items=[_build_ledger_entry_response(e) for e in entries], total=len(entries))


async def create_adjustment(
    session: AsyncSession,
    ctx: EngineContext,
    auth: AuthContext,
    payload: CreateAdjustmentRequest,
) -> LedgerEntryResponse:
    """Create an HR balance adjustment.

    Flow:
    1. Only HR and admins may adjust
    2. Positive amounts credit entitlement, negative amounts remove it
       (fails with InsufficientBalance rather than going below zero)
    3. Write audit log
    Used to provision leave types that do not accrue, such as maternity or sick leave.
    """
    # 1. Authorization and input.
    if not auth.is_admin:
        raise Unauthorized("Only HR can adjust balances")
    if await ctx.directory.get_employee(payload.employee_id) is None:
        raise NotFound("Employee not found")
    if payload.amount == 0:
        raise AppError("Adjustment amount must not be zero", status_code=400)

    # 2. Ledger write.
    source_id = str(uuid.uuid4())
    metadata = {"reason": payload.reason, "adjusted_by": str(auth.user_id)}
    if payload.amount > 0:
        await ledger.credit(
            session,
            payload.employee_id,
            payload.leave_type,
            payload.year,
            payload.amount,
            entry_type=LedgerEntryType.ADJUSTMENT,
            source_type=LedgerSourceType.ADMIN,
            source_id=source_id,
            metadata=metadata,
        )
    else:
        await ledger.expire(
            session,
            payload.employee_id,
            payload.leave_type,
            payload.year,
            -payload.amount,
            entry_type=LedgerEntryType.ADJUSTMENT,
            source_type=LedgerSourceType.ADMIN,
            source_id=source_id,
            metadata=metadata,
        )

    result = await session.execute(
        select(LeaveLedgerEntry).where(
            col(LeaveLedgerEntry.source_type) == LedgerSourceType.ADMIN.value,
            col(LeaveLedgerEntry.source_id) == source_id,
        )
    )
    entry = result.scalar_one()

    # 3. Audit.
    await write_audit_log(
        session,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.ADJUSTMENT,
        entity_id=entry.id,
        action=AuditAction.CREATE,
        employee_id=payload.employee_id,
        note=payload.reason,
        after_json=model_to_audit_dict(entry),
    )
    logger.info(
        "Balance adjustment of %s %s for employee=%s year=%d by %s",
        payload.amount,
        payload.leave_type.value,
        payload.employee_id,
        payload.year,
        auth.user_id,
    )
    return _build_ledger_entry_response(entry)
