# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, status

from leave_ledger.api.deps import AuthDep, EngineDep, require_self_or_admin
from leave_ledger.schemas.comp_off import LogWorkPayload, VerifyWorkPayload, WorkLogResponse

comp_off_router = APIRouter(
    prefix="/comp-off/work-logs",
    tags=["comp-off"],
)


@comp_off_router.post("", response_model=WorkLogResponse, status_code=status.HTTP_201_CREATED)
async def log_work(
    payload: LogWorkPayload,
    engine: EngineDep,
    auth: AuthDep,
) -> WorkLogResponse:
    """Log weekend, holiday or extended-hours work for later verification."""
    require_self_or_admin(auth, payload.employee_id)
    return await engine.log_comp_off_work(payload)


@comp_off_router.post("/{work_log_id}/verify", response_model=WorkLogResponse)
async def verify_work(
    work_log_id: uuid.UUID,
    payload: VerifyWorkPayload,
    engine: EngineDep,
    auth: AuthDep,
) -> WorkLogResponse:
    """Verify or reject a work log as the employee's manager or HR."""
    return await engine.verify_comp_off_work(
        work_log_id, auth.user_id, approve=payload.approve, comments=payload.comments
    )
