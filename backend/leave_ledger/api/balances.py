# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from leave_ledger.api.deps import AdminDep, AuthDep, EngineDep, require_self_or_admin
from leave_ledger.models.enums import LeaveType
from leave_ledger.schemas.balance import (
    BalanceResponse,
    CreateAdjustmentRequest,
    LedgerEntryResponse,
    LedgerListResponse,
)

employee_balance_router = APIRouter(
    prefix="/employees/{employee_id}/balances",
    tags=["balances"],
)

adjustment_router = APIRouter(
    prefix="/balances/adjustments",
    tags=["balances"],
)


@employee_balance_router.get("/{leave_type}", response_model=BalanceResponse)
async def get_employee_balance(
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    engine: EngineDep,
    auth: AuthDep,
    year: int | None = Query(default=None, ge=2000, le=2100),
) -> BalanceResponse:
    """Get one balance for an employee. Defaults to the current year."""
    require_self_or_admin(auth, employee_id)
    return await engine.get_balance(employee_id, leave_type, year or engine.ctx.today().year)


@employee_balance_router.get("/{leave_type}/ledger", response_model=LedgerListResponse)
async def get_employee_ledger(
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    engine: EngineDep,
    auth: AuthDep,
    year: int | None = Query(default=None, ge=2000, le=2100),
) -> LedgerListResponse:
    """Get the ledger entries behind one balance, oldest first."""
    require_self_or_admin(auth, employee_id)
    return await engine.get_ledger(employee_id, leave_type, year or engine.ctx.today().year)


@adjustment_router.post("", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def create_adjustment(
    payload: CreateAdjustmentRequest,
    engine: EngineDep,
    auth: AdminDep,
) -> LedgerEntryResponse:
    """Create an HR balance adjustment."""
    return await engine.adjust_balance(auth, payload)
