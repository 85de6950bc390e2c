# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import UUIDBase


class AuditLog(UUIDBase, table=True):
    """Append-only trail of who changed which balance, request or work log.

    ``employee_id`` is the employee the change concerns, which differs from
    ``actor_id`` for approvals, HR adjustments and scheduled jobs.
    """

    __tablename__ = "audit_log"
    __table_args__ = (
        sa.Index("ix_audit_entity", "entity_type", "entity_id"),
        sa.Index("ix_audit_employee_created", "employee_id", "created_at"),
    )

    actor_id: uuid.UUID
    employee_id: uuid.UUID | None = Field(default=None)
    entity_type: str = Field(max_length=50)
    entity_id: uuid.UUID
    action: str = Field(max_length=50, index=True)
    note: str | None = Field(default=None, max_length=1000)
    before_json: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
    after_json: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
    )
