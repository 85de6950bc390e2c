# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from leave_ledger.models.base import DayAmount


def _now_utc() -> datetime:
    return datetime.now(UTC)


class LeaveBalance(SQLModel, table=True):
    """Per-employee, per-leave-type, per-year balance row.

    Mutated only through conditional UPDATE statements in the ledger service.
    ``available = total_entitlement - used`` and ``available >= 0`` hold after
    every write.
    """

    __tablename__ = "leave_balance"
    __table_args__ = (sa.PrimaryKeyConstraint("employee_id", "leave_type", "year"),)

    employee_id: uuid.UUID = Field(index=True)
    leave_type: str = Field(max_length=50)
    year: int
    total_entitlement: Decimal = Field(default=Decimal(0), sa_type=DayAmount, sa_column_kwargs={"server_default": "0"})
    used: Decimal = Field(default=Decimal(0), sa_type=DayAmount, sa_column_kwargs={"server_default": "0"})
    available: Decimal = Field(default=Decimal(0), sa_type=DayAmount, sa_column_kwargs={"server_default": "0"})
    carry_forward: Decimal = Field(default=Decimal(0), sa_type=DayAmount, sa_column_kwargs={"server_default": "0"})
    updated_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=_now_utc,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.func.now(), "onupdate": sa.func.now()},
    )
    version: int = Field(default=1, sa_column_kwargs={"server_default": "1"})
