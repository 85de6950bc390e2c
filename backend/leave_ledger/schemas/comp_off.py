# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from leave_ledger.models.enums import WorkLogStatus, WorkLogType


class LogWorkPayload(BaseModel):
    """Request body for logging weekend, holiday or extended-hours work."""

    employee_id: uuid.UUID
    work_date: date
    hours_worked: Decimal = Field(gt=0, le=24)
    work_type: WorkLogType
    description: str | None = Field(default=None, max_length=1000)


class VerifyWorkPayload(BaseModel):
    """Request body for a manager's verification of a work log."""

    approve: bool
    comments: str | None = Field(default=None, max_length=1000)


class WorkLogResponse(BaseModel):
    """A comp-off work log."""

    id: uuid.UUID
    employee_id: uuid.UUID
    work_date: date
    hours_worked: Decimal
    work_type: WorkLogType
    days_earned: Decimal
    status: WorkLogStatus
    verified_by: uuid.UUID | None
    verified_at: datetime | None
    comments: str | None
    expires_on: date | None = None
