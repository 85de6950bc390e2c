# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from leave_ledger.models.enums import LeaveType, LedgerEntryType, LedgerSourceType

# ---------------------------------------------------------------------------
# Balance response schemas
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    """Balance for one employee, leave type and year."""

    employee_id: uuid.UUID
    leave_type: LeaveType
    year: int
    total_entitlement: Decimal
    used: Decimal
    available: Decimal
    carry_forward: Decimal
    version: int
    updated_at: datetime | None


# ---------------------------------------------------------------------------
# Ledger response schemas
# ---------------------------------------------------------------------------


class LedgerEntryResponse(BaseModel):
    """A single ledger entry."""

    id: uuid.UUID
    leave_type: LeaveType
    year: int
    entry_type: LedgerEntryType
    amount: Decimal
    source_type: LedgerSourceType
    source_id: str
    metadata_json: dict[str, Any] | None
    created_at: datetime


class LedgerListResponse(BaseModel):
    """Ledger entries for one balance."""

    items: list[LedgerEntryResponse]
    total: int


# ---------------------------------------------------------------------------
# Adjustment schemas
# ---------------------------------------------------------------------------


class CreateAdjustmentRequest(BaseModel):
    """Request body for an HR balance adjustment."""

    employee_id: uuid.UUID
    leave_type: LeaveType
    year: int = Field(ge=2000, le=2100)
    amount: Decimal = Field(description="Positive to grant, negative to remove. Multiple of 0.5.")
    reason: str = Field(min_length=1, max_length=1000)
