# ruff: noqa: TC001, TC003
"""Admin triggers for the scheduled jobs the worker runs."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter

from leave_ledger.api.deps import AdminDep, EngineDep
from leave_ledger.schemas.accrual import (
    AnnualAccrualRunResponse,
    AnnualAllocationPayload,
    AsOfPayload,
    BatchErrorResponse,
    CarryForwardRunResponse,
    ExpiryRunResponse,
    MonthlyAccrualPayload,
    MonthlyAccrualRunResponse,
    ReminderRunResponse,
    YearEndPayload,
)

if TYPE_CHECKING:
    from leave_ledger.services.accrual import BatchError
    from leave_ledger.services.carry_forward import ExpiryRunResult

jobs_router = APIRouter(
    prefix="/jobs",
    tags=["jobs"],
)


def _errors(errors: list[BatchError]) -> list[BatchErrorResponse]:
    return [BatchErrorResponse(employee_id=e.employee_id, item=e.item, message=e.message) for e in errors]


def _expiry_response(result: ExpiryRunResult) -> ExpiryRunResponse:
    return ExpiryRunResponse(
        as_of=result.as_of,
        processed=result.processed,
        expired=result.expired,
        expired_days=result.expired_days,
        skipped=result.skipped,
        errors=_errors(result.errors),
    )


@jobs_router.post("/monthly-accrual", response_model=MonthlyAccrualRunResponse)
async def trigger_monthly_accrual(
    payload: MonthlyAccrualPayload,
    engine: EngineDep,
    _auth: AdminDep,
) -> MonthlyAccrualRunResponse:
    """Credit India CL/PL for one month. Safe to re-run."""
    result = await engine.run_monthly_accrual(payload.year, payload.month)
    return MonthlyAccrualRunResponse(
        year=result.year,
        month=result.month,
        processed=result.processed,
        created=result.created,
        skipped=result.skipped,
        suspended=result.suspended,
        errors=_errors(result.errors),
    )


@jobs_router.post("/annual-pto", response_model=AnnualAccrualRunResponse)
async def trigger_annual_pto(
    payload: AnnualAllocationPayload,
    engine: EngineDep,
    _auth: AdminDep,
) -> AnnualAccrualRunResponse:
    """Allocate USA PTO for one year. Safe to re-run."""
    result = await engine.run_annual_pto_allocation(payload.year)
    return AnnualAccrualRunResponse(
        year=result.year,
        processed=result.processed,
        created=result.created,
        skipped=result.skipped,
        errors=_errors(result.errors),
    )


@jobs_router.post("/year-end", response_model=CarryForwardRunResponse)
async def trigger_year_end(
    payload: YearEndPayload,
    engine: EngineDep,
    _auth: AdminDep,
) -> CarryForwardRunResponse:
    """Carry capped balances into the next year and lapse the rest."""
    result = await engine.run_year_end_carry_forward(payload.from_year, payload.to_year)
    return CarryForwardRunResponse(
        from_year=result.from_year,
        to_year=result.to_year,
        processed=result.processed,
        skipped=result.skipped,
        carried_by_type=result.carried_by_type,
        lapsed_by_type=result.lapsed_by_type,
        errors=_errors(result.errors),
    )


@jobs_router.post("/carry-forward-expiry", response_model=ExpiryRunResponse)
async def trigger_carry_forward_expiry(
    payload: AsOfPayload,
    engine: EngineDep,
    _auth: AdminDep,
) -> ExpiryRunResponse:
    """Expire carried days not used by their deadline."""
    result = await engine.run_carry_forward_expiry(payload.as_of)
    return _expiry_response(result)


@jobs_router.post("/comp-off-expiry", response_model=ExpiryRunResponse)
async def trigger_comp_off_expiry(
    payload: AsOfPayload,
    engine: EngineDep,
    _auth: AdminDep,
) -> ExpiryRunResponse:
    """Expire unconsumed comp-off grants."""
    result = await engine.run_comp_off_expiry(payload.as_of)
    return _expiry_response(result)


@jobs_router.post("/expiry-reminders", response_model=ReminderRunResponse)
async def trigger_expiry_reminders(
    payload: AsOfPayload,
    engine: EngineDep,
    _auth: AdminDep,
) -> ReminderRunResponse:
    """Notify employees about balances expiring soon."""
    result = await engine.send_expiry_reminders(payload.as_of, payload.horizon_days)
    return ReminderRunResponse(as_of=result.as_of, sent=result.sent)
