# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import DayAmount, UUIDBase


def _now_utc() -> datetime:
    return datetime.now(UTC)


class LeaveLedgerEntry(UUIDBase, table=True):
    """Append-only journal entry recording every balance-affecting event."""

    __tablename__ = "leave_ledger_entry"
    __table_args__ = (
        sa.Index("ix_ledger_employee_type_year", "employee_id", "leave_type", "year"),
        sa.Index("ix_ledger_source", "source_type", "source_id"),
    )

    employee_id: uuid.UUID = Field(index=True)
    leave_type: str = Field(max_length=50)
    year: int
    entry_type: str = Field(max_length=50)
    amount: Decimal = Field(sa_type=DayAmount)
    source_type: str = Field(max_length=50)
    source_id: str = Field(max_length=255)
    metadata_json: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
    created_at: datetime = Field(
        default_factory=_now_utc,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now()},
    )
