from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlmodel import col

from leave_ledger.models.audit import AuditLog

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlmodel import SQLModel

    from leave_ledger.models.enums import AuditAction, AuditEntityType

# Actor recorded for scheduled jobs and ledger repairs.
SYSTEM_ACTOR = uuid.UUID(int=0)


def _json_safe(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def model_to_audit_dict(model: SQLModel) -> dict[str, Any]:
    return to_audit_dict(model.model_dump())


def to_audit_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Decimals, dates and UUIDs become strings so the snapshot fits a JSON column."""
    return {key: _json_safe(value) for key, value in data.items()}


async def write_audit_log(
    session: AsyncSession,
    *,
    actor_id: uuid.UUID,
    entity_type: AuditEntityType,
    entity_id: uuid.UUID,
    action: AuditAction,
    employee_id: uuid.UUID | None = None,
    note: str | None = None,
    before_json: dict[str, Any] | None = None,
    after_json: dict[str, Any] | None = None,
) -> AuditLog:
    """Add an audit row to the caller's transaction; it commits or rolls back with the change."""
    entry = AuditLog(
        actor_id=actor_id,
        employee_id=employee_id,
        entity_type=entity_type.value,
        entity_id=entity_id,
        action=action.value,
        note=note,
        before_json=before_json,
        after_json=after_json,
    )
    session.add(entry)
    return entry


async def list_employee_audit_trail(
    session: AsyncSession,
    employee_id: uuid.UUID,
    *,
    action: AuditAction | None = None,
) -> list[AuditLog]:
    """Audit rows concerning one employee, oldest first."""
    stmt = select(AuditLog).where(col(AuditLog.employee_id) == employee_id)
    if action is not None:
        stmt = stmt.where(col(AuditLog.action) == action.value)
    result = await session.execute(stmt.order_by(col(AuditLog.created_at), col(AuditLog.id)))
    return list(result.scalars().all())
