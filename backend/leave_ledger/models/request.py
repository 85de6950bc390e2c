# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import DayAmount, TimestampMixin, UUIDBase
from leave_ledger.models.enums import ApprovalStatus, RequestStatus


class LeaveRequest(UUIDBase, TimestampMixin, table=True):
    """An employee's leave request with its aggregate approval state."""

    __tablename__ = "leave_request"
    __table_args__ = (
        sa.Index("ix_request_employee_status", "employee_id", "status"),
        sa.Index("ix_request_employee_dates", "employee_id", "start_date", "end_date"),
    )

    employee_id: uuid.UUID = Field(index=True)
    leave_type: str = Field(max_length=50)
    start_date: date
    end_date: date
    is_half_day: bool = Field(default=False)
    total_days: Decimal = Field(sa_type=DayAmount)
    year: int
    reason: str | None = None
    status: str = Field(
        default=RequestStatus.PENDING, max_length=50, index=True, sa_column_kwargs={"server_default": "PENDING"}
    )
    documentation_required: bool = Field(default=False)
    decided_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    cancelled_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    cancelled_by: uuid.UUID | None = None


class Approval(UUIDBase, TimestampMixin, table=True):
    """One approval level of a request. Decided exactly once."""

    __tablename__ = "leave_approval"
    __table_args__ = (sa.UniqueConstraint("leave_request_id", "level", name="uq_approval_request_level"),)

    leave_request_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("leave_request.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    level: int
    approver_id: uuid.UUID = Field(index=True)
    approver_role: str = Field(max_length=50)
    status: str = Field(default=ApprovalStatus.PENDING, max_length=50, sa_column_kwargs={"server_default": "PENDING"})
    comments: str | None = None
    decided_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]


class EmployeeRequestGuard(UUIDBase, table=True):
    """Per-employee row bumped at the start of every submission.

    Holding its write lock serializes submissions for one employee, so the
    overlap and reservation checks run against committed state.
    """

    __tablename__ = "employee_request_guard"

    employee_id: uuid.UUID = Field(sa_column=sa.Column(sa.Uuid, nullable=False, unique=True))
    version: int = Field(default=1, sa_column_kwargs={"server_default": "1"})
