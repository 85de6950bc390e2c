# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, status

from leave_ledger.api.deps import AuthDep, EngineDep, require_self_or_admin
from leave_ledger.exceptions import Unauthorized
from leave_ledger.schemas.request import (
    DecisionPayload,
    DecisionResponse,
    RequestResponse,
    SubmitRequestPayload,
    SubmitResponse,
)
from leave_ledger.schemas.validation import ValidationResult

requests_router = APIRouter(
    prefix="/requests",
    tags=["requests"],
)


@requests_router.post("", response_model=SubmitResponse, status_code=status.HTTP_201_CREATED)
async def submit_request(
    payload: SubmitRequestPayload,
    engine: EngineDep,
    auth: AuthDep,
) -> SubmitResponse:
    """Submit a new leave request."""
    require_self_or_admin(auth, payload.employee_id)
    return await engine.submit_request(payload)


@requests_router.post("/validate", response_model=ValidationResult)
async def validate_request(
    payload: SubmitRequestPayload,
    engine: EngineDep,
    auth: AuthDep,
) -> ValidationResult:
    """Check a request without submitting it. Returns every problem found."""
    require_self_or_admin(auth, payload.employee_id)
    return await engine.validate_request(payload)


@requests_router.get("/{request_id}", response_model=RequestResponse)
async def get_request(
    request_id: uuid.UUID,
    engine: EngineDep,
    auth: AuthDep,
) -> RequestResponse:
    """Get a single leave request with its approval levels."""
    response = await engine.get_request(request_id)
    approvers = {a.approver_id for a in response.approvals}
    if auth.user_id != response.employee_id and auth.user_id not in approvers and not auth.is_admin:
        raise Unauthorized("You cannot view this request")
    return response


@requests_router.post("/{request_id}/decisions", response_model=DecisionResponse)
async def decide_request(
    request_id: uuid.UUID,
    payload: DecisionPayload,
    engine: EngineDep,
    auth: AuthDep,
) -> DecisionResponse:
    """Approve or reject one level of a request as the authenticated approver."""
    return await engine.decide(request_id, auth.user_id, payload.level, payload.verdict, payload.comments)


@requests_router.post("/{request_id}/cancel", response_model=RequestResponse)
async def cancel_request(
    request_id: uuid.UUID,
    engine: EngineDep,
    auth: AuthDep,
) -> RequestResponse:
    """Cancel an approved request before it starts."""
    return await engine.cancel_request(request_id, auth.user_id)
