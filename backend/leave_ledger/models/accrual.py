# ruff: noqa: TC003
from __future__ import annotations

import uuid
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import DayAmount, TimestampMixin, UUIDBase
from leave_ledger.models.enums import AccrualStatus


class MonthlyAccrual(UUIDBase, TimestampMixin, table=True):
    """What was credited to an India employee for one month; guards against re-accrual."""

    __tablename__ = "monthly_accrual"
    __table_args__ = (sa.UniqueConstraint("employee_id", "year", "month", name="uq_monthly_accrual_period"),)

    employee_id: uuid.UUID = Field(index=True)
    year: int
    month: int
    casual_leave: Decimal = Field(default=Decimal(0), sa_type=DayAmount)
    privilege_leave: Decimal = Field(default=Decimal(0), sa_type=DayAmount)
    pro_rated: bool = Field(default=False)
    status: str = Field(default=AccrualStatus.PROCESSED, max_length=50)


class AnnualAccrual(UUIDBase, TimestampMixin, table=True):
    """Annual PTO allocation for a USA employee; guards against re-allocation."""

    __tablename__ = "annual_accrual"
    __table_args__ = (sa.UniqueConstraint("employee_id", "leave_type", "year", name="uq_annual_accrual_period"),)

    employee_id: uuid.UUID = Field(index=True)
    leave_type: str = Field(max_length=50)
    year: int
    designation: str = Field(max_length=50)
    amount: Decimal = Field(default=Decimal(0), sa_type=DayAmount)
    pro_rated: bool = Field(default=False)
    status: str = Field(default=AccrualStatus.PROCESSED, max_length=50)
