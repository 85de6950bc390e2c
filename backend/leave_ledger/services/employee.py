# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date
from typing import Protocol, runtime_checkable

from pydantic import BaseModel

from leave_ledger.models.enums import Country, EmployeeStatus, Gender, MaritalStatus, Role


class EmployeeInfo(BaseModel):
    """Employee metadata from the employee directory."""

    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    country: Country
    designation: str  # e.g. "ASSOCIATE", "AVP", "VP", "CEO"
    joining_date: date
    gender: Gender
    marital_status: MaritalStatus = MaritalStatus.SINGLE
    status: EmployeeStatus = EmployeeStatus.ACTIVE
    manager_id: uuid.UUID | None = None
    role: Role = Role.EMPLOYEE
    location: str | None = None  # holiday calendar key, e.g. "Bengaluru"

    @property
    def is_active(self) -> bool:
        return self.status == EmployeeStatus.ACTIVE


@runtime_checkable
class EmployeeDirectory(Protocol):
    """Read-only interface to the identity/employee directory."""

    async def get_employee(self, employee_id: uuid.UUID) -> EmployeeInfo | None:
        """Fetch employee metadata. Returns None if not found."""
        ...

    async def list_employees(self) -> list[EmployeeInfo]:
        """List every employee known to the directory."""
        ...

    async def find_by_role(self, role: Role) -> list[EmployeeInfo]:
        """List active employees holding ``role``."""
        ...


class InMemoryEmployeeDirectory:
    """In-memory implementation for development and tests."""

    def __init__(self) -> None:
        self._employees: dict[uuid.UUID, EmployeeInfo] = {}

    def seed(self, employee: EmployeeInfo) -> None:
        """Seed an employee for testing."""
        self._employees[employee.id] = employee

    def clear(self) -> None:
        self._employees.clear()

    async def get_employee(self, employee_id: uuid.UUID) -> EmployeeInfo | None:
        """Fetch employee metadata. Returns None if not found."""
        return self._employees.get(employee_id)

    async def list_employees(self) -> list[EmployeeInfo]:
        """List every employee known to the directory."""
        return sorted(self._employees.values(), key=lambda e: (e.joining_date, str(e.id)))

    async def find_by_role(self, role: Role) -> list[EmployeeInfo]:
        """List active employees holding ``role``."""
        return [e for e in await self.list_employees() if e.role == role and e.is_active]
