# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid

from pydantic import BaseModel

from leave_ledger.models.enums import Role

# Roles allowed to run jobs, adjust balances and act on behalf of others.
ADMIN_ROLES = frozenset({Role.HR, Role.HR_ADMIN, Role.ADMIN})


class AuthContext(BaseModel):
    """Dev auth context extracted from request headers."""

    user_id: uuid.UUID
    role: Role = Role.EMPLOYEE

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES
