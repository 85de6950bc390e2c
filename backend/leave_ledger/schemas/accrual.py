# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Self

from pydantic import BaseModel, Field, model_validator


class MonthlyAccrualPayload(BaseModel):
    """Payload for POST /jobs/monthly-accrual."""

    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)


class AnnualAllocationPayload(BaseModel):
    """Payload for POST /jobs/annual-pto."""

    year: int = Field(ge=2000, le=2100)


class YearEndPayload(BaseModel):
    """Payload for POST /jobs/year-end."""

    from_year: int = Field(ge=2000, le=2100)
    to_year: int = Field(ge=2000, le=2101)

    @model_validator(mode="after")
    def _validate_years(self) -> Self:
        if self.to_year != self.from_year + 1:
            msg = "to_year must be from_year + 1"
            raise ValueError(msg)
        return self


class AsOfPayload(BaseModel):
    """Payload for expiry and reminder jobs."""

    as_of: date
    horizon_days: int | None = Field(default=None, ge=1, le=365)


class BatchErrorResponse(BaseModel):
    """One item that failed during a batch run."""

    employee_id: uuid.UUID | None
    item: str
    message: str


class MonthlyAccrualRunResponse(BaseModel):
    """Summary of a monthly accrual run."""

    year: int
    month: int
    processed: int
    created: int
    skipped: int
    suspended: int
    errors: list[BatchErrorResponse]


class AnnualAccrualRunResponse(BaseModel):
    """Summary of an annual PTO allocation run."""

    year: int
    processed: int
    created: int
    skipped: int
    errors: list[BatchErrorResponse]


class CarryForwardRunResponse(BaseModel):
    """Summary of a year-end carry-forward run."""

    from_year: int
    to_year: int
    processed: int
    skipped: int
    carried_by_type: dict[str, Decimal]
    lapsed_by_type: dict[str, Decimal]
    errors: list[BatchErrorResponse]


class ExpiryRunResponse(BaseModel):
    """Summary of an expiry run."""

    as_of: date
    processed: int
    expired: int
    expired_days: Decimal
    skipped: int
    errors: list[BatchErrorResponse]


class ReminderRunResponse(BaseModel):
    """Summary of an expiry reminder run."""

    as_of: date
    sent: int
