# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import Depends, Header, Request

from leave_ledger.engine import LeaveEngine
from leave_ledger.exceptions import Unauthorized
from leave_ledger.models.enums import Role
from leave_ledger.schemas.auth import AuthContext


async def get_auth_context(
    x_user_id: uuid.UUID = Header(),
    x_role: Role = Header(default=Role.EMPLOYEE),
) -> AuthContext:
    """Extract dev auth context from request headers."""
    return AuthContext(user_id=x_user_id, role=x_role)


AuthDep = Annotated[AuthContext, Depends(get_auth_context)]


async def require_admin(
    auth: AuthDep,
) -> AuthContext:
    """Require an HR or admin role for the request."""
    if not auth.is_admin:
        raise Unauthorized("HR or admin access required")
    return auth


AdminDep = Annotated[AuthContext, Depends(require_admin)]


def get_leave_engine(request: Request) -> LeaveEngine:
    """The engine built by the app factory."""
    return request.app.state.engine


EngineDep = Annotated[LeaveEngine, Depends(get_leave_engine)]


def require_self_or_admin(auth: AuthContext, employee_id: uuid.UUID) -> None:
    """Employees act for themselves; HR and admins act for anyone."""
    if auth.user_id != employee_id and not auth.is_admin:
        raise Unauthorized("You can only act on your own records")
