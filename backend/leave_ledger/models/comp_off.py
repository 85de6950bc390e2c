# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import DayAmount, TimestampMixin, UUIDBase
from leave_ledger.models.enums import GrantStatus, WorkLogStatus


class CompOffWorkLog(UUIDBase, TimestampMixin, table=True):
    """Extra work an employee claims comp-off for, pending manager verification."""

    __tablename__ = "comp_off_work_log"
    __table_args__ = (sa.UniqueConstraint("employee_id", "work_date", name="uq_comp_off_work_date"),)

    employee_id: uuid.UUID = Field(index=True)
    work_date: date
    hours_worked: Decimal = Field(sa_type=sa.Numeric(4, 2))
    work_type: str = Field(max_length=50)
    description: str | None = None
    days_earned: Decimal = Field(sa_type=DayAmount)
    status: str = Field(default=WorkLogStatus.PENDING, max_length=50, index=True)
    verified_by: uuid.UUID | None = None
    verified_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    comments: str | None = None


class CompOffGrant(UUIDBase, TimestampMixin, table=True):
    """Credited comp-off days from one verified work log, with their own expiry date."""

    __tablename__ = "comp_off_grant"
    __table_args__ = (sa.Index("ix_comp_off_grant_status_expiry", "status", "expires_on"),)

    work_log_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("comp_off_work_log.id"), nullable=False, unique=True),
    )
    employee_id: uuid.UUID = Field(index=True)
    year: int
    days: Decimal = Field(sa_type=DayAmount)
    consumed_days: Decimal = Field(default=Decimal(0), sa_type=DayAmount)
    expired_days: Decimal = Field(default=Decimal(0), sa_type=DayAmount)
    granted_on: date
    expires_on: date
    status: str = Field(default=GrantStatus.ACTIVE, max_length=50)
