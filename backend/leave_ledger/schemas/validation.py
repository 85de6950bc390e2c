# ruff: noqa: TC001, TC003
from __future__ import annotations

import enum
import uuid
from decimal import Decimal

from pydantic import BaseModel, Field

from leave_ledger.models.enums import Role


class IssueCode(enum.StrEnum):
    """Category of a validation problem."""

    VALIDATION = "VALIDATION"
    OVERLAP = "OVERLAP"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    POLICY_VIOLATION = "POLICY_VIOLATION"


class ValidationIssue(BaseModel):
    """One problem found while validating a request."""

    code: IssueCode
    message: str


class ApprovalStep(BaseModel):
    """One level of an approval chain."""

    level: int
    approver_id: uuid.UUID
    approver_role: Role


class ValidationResult(BaseModel):
    """Verdict for a proposed leave request."""

    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    total_days: Decimal = Decimal(0)
    required_documentation: bool = False
    auto_approval_eligible: bool = False
    approval_chain: list[ApprovalStep] = Field(default_factory=list)

    def has_error(self, code: IssueCode) -> bool:
        return any(issue.code == code for issue in self.errors)
