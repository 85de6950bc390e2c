from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import sqlalchemy as sa
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel

HALF_DAY = Decimal("0.5")


def _uuid_factory() -> uuid.UUID:
    """Generate a new UUID v4."""
    return uuid.uuid4()


def _now_utc() -> datetime:
    """Return the current UTC time."""
    return datetime.now(UTC)


def is_half_day_multiple(value: Decimal) -> bool:
    """True when ``value`` is a whole multiple of half a day."""
    return (value * 2) == (value * 2).to_integral_value()


class DayAmount(TypeDecorator[Decimal]):
    """Day quantities stored as integer half-day units.

    All arithmetic inside SQL stays on integers, so conditional updates such
    as ``available = available - :amount`` never suffer float drift.
    """

    impl = sa.Integer
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: sa.Dialect) -> int | None:
        if value is None:
            return None
        amount = Decimal(value)
        if not is_half_day_multiple(amount):
            msg = f"Day amount {amount} is not a multiple of 0.5"
            raise ValueError(msg)
        return int(amount * 2)

    def process_result_value(self, value: Any, dialect: sa.Dialect) -> Decimal | None:
        if value is None:
            return None
        return Decimal(int(value)) / 2

    def coerce_compared_value(self, op: Any, value: Any) -> DayAmount:
        return self


class UUIDBase(SQLModel):
    """Base model with UUID primary key."""

    id: uuid.UUID = Field(
        default_factory=_uuid_factory,
        primary_key=True,
        sa_type=sa.Uuid,
    )


class TimestampMixin(SQLModel):
    """Mixin that adds a created_at timestamp."""

    created_at: datetime = Field(
        default_factory=_now_utc,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now()},
    )
