# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import DayAmount, TimestampMixin, UUIDBase
from leave_ledger.models.enums import CarryForwardStatus


class CarryForwardRecord(UUIDBase, TimestampMixin, table=True):
    """Year-end outcome for one employee and leave type.

    Doubles as the idempotency marker for the year-end run and, while
    ``ACTIVE``, for the expiry of the carried amount.
    """

    __tablename__ = "carry_forward_record"
    __table_args__ = (
        sa.UniqueConstraint("employee_id", "leave_type", "from_year", "to_year", name="uq_carry_forward_key"),
        sa.Index("ix_carry_forward_status_expiry", "status", "expires_on"),
    )

    employee_id: uuid.UUID = Field(index=True)
    leave_type: str = Field(max_length=50)
    from_year: int
    to_year: int
    available_at_close: Decimal = Field(default=Decimal(0), sa_type=DayAmount)
    carried_days: Decimal = Field(default=Decimal(0), sa_type=DayAmount)
    lapsed_days: Decimal = Field(default=Decimal(0), sa_type=DayAmount)
    expires_on: date | None = None
    expired_days: Decimal = Field(default=Decimal(0), sa_type=DayAmount)
    status: str = Field(default=CarryForwardStatus.SETTLED, max_length=50)
