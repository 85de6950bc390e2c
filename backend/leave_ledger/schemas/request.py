# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from leave_ledger.models.enums import ApprovalStatus, LeaveType, RequestStatus, Verdict
from leave_ledger.schemas.validation import ApprovalStep

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class SubmitRequestPayload(BaseModel):
    """Request body for submitting a new leave request.

    Date ordering is checked by the validator so that it is reported with
    every other problem instead of as a schema error.
    """

    employee_id: uuid.UUID
    leave_type: LeaveType
    start_date: date
    end_date: date
    is_half_day: bool = False
    reason: str | None = Field(default=None, max_length=1000)


class DecisionPayload(BaseModel):
    """Request body for an approver's decision on one level."""

    level: int = Field(ge=1, le=3)
    verdict: Verdict
    comments: str | None = Field(default=None, max_length=1000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class ApprovalResponse(BaseModel):
    """One approval level of a request."""

    level: int
    approver_id: uuid.UUID
    approver_role: str
    status: ApprovalStatus
    comments: str | None
    decided_at: datetime | None


class RequestResponse(BaseModel):
    """Response schema for a single leave request."""

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveType
    start_date: date
    end_date: date
    is_half_day: bool
    total_days: Decimal
    year: int
    reason: str | None
    status: RequestStatus
    documentation_required: bool
    decided_at: datetime | None
    cancelled_at: datetime | None
    created_at: datetime
    approvals: list[ApprovalResponse] = Field(default_factory=list)


class SubmitResponse(BaseModel):
    """Outcome of a successful submission."""

    request_id: uuid.UUID
    status: RequestStatus
    total_days: Decimal
    approval_chain: list[ApprovalStep]
    warnings: list[str] = Field(default_factory=list)


class DecisionResponse(BaseModel):
    """Outcome of a decision on one approval level."""

    request_id: uuid.UUID
    level: int
    request_status: RequestStatus
    next_level: int | None = None
