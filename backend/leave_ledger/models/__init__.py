from sqlmodel import SQLModel

from leave_ledger.models.accrual import AnnualAccrual, MonthlyAccrual
from leave_ledger.models.audit import AuditLog
from leave_ledger.models.balance import LeaveBalance
from leave_ledger.models.base import DayAmount, TimestampMixin, UUIDBase
from leave_ledger.models.carry_forward import CarryForwardRecord
from leave_ledger.models.comp_off import CompOffGrant, CompOffWorkLog
from leave_ledger.models.enums import (
    AccrualStatus,
    ApprovalStatus,
    AuditAction,
    AuditEntityType,
    CarryForwardStatus,
    Country,
    GrantStatus,
    LeaveType,
    LedgerEntryType,
    LedgerSourceType,
    RequestStatus,
    Role,
    WorkLogStatus,
)
from leave_ledger.models.ledger import LeaveLedgerEntry
from leave_ledger.models.request import Approval, EmployeeRequestGuard, LeaveRequest

__all__ = [
    "AccrualStatus",
    "AnnualAccrual",
    "Approval",
    "ApprovalStatus",
    "AuditAction",
    "AuditEntityType",
    "AuditLog",
    "CarryForwardRecord",
    "CarryForwardStatus",
    "CompOffGrant",
    "CompOffWorkLog",
    "Country",
    "DayAmount",
    "EmployeeRequestGuard",
    "GrantStatus",
    "LeaveBalance",
    "LeaveLedgerEntry",
    "LeaveRequest",
    "LeaveType",
    "LedgerEntryType",
    "LedgerSourceType",
    "MonthlyAccrual",
    "RequestStatus",
    "Role",
    "SQLModel",
    "TimestampMixin",
    "UUIDBase",
    "WorkLogStatus",
]
