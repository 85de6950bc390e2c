from __future__ import annotations

import enum


class LeaveType(enum.StrEnum):
    """Kinds of leave tracked by the ledger."""

    EARNED_LEAVE = "EARNED_LEAVE"
    SICK_LEAVE = "SICK_LEAVE"
    CASUAL_LEAVE = "CASUAL_LEAVE"
    MATERNITY_LEAVE = "MATERNITY_LEAVE"
    PATERNITY_LEAVE = "PATERNITY_LEAVE"
    COMPENSATORY_OFF = "COMPENSATORY_OFF"
    BEREAVEMENT_LEAVE = "BEREAVEMENT_LEAVE"
    MARRIAGE_LEAVE = "MARRIAGE_LEAVE"
    LEAVE_WITHOUT_PAY = "LEAVE_WITHOUT_PAY"
    PTO = "PTO"


class Country(enum.StrEnum):
    """Countries with their own accrual policy."""

    INDIA = "INDIA"
    USA = "USA"


class EmployeeStatus(enum.StrEnum):
    """Employment status from the employee directory."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class Gender(enum.StrEnum):
    """Gender as recorded by HR."""

    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


class MaritalStatus(enum.StrEnum):
    """Marital status as recorded by HR."""

    SINGLE = "SINGLE"
    MARRIED = "MARRIED"
    DIVORCED = "DIVORCED"
    WIDOWED = "WIDOWED"


class Role(enum.StrEnum):
    """System role of a user."""

    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    HR = "HR"
    HR_ADMIN = "HR_ADMIN"
    ADMIN = "ADMIN"
    IT_ADMIN = "IT_ADMIN"
    PAYROLL_OFFICER = "PAYROLL_OFFICER"


class RequestStatus(enum.StrEnum):
    """State machine for leave requests."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class ApprovalStatus(enum.StrEnum):
    """State of a single approval level."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Verdict(enum.StrEnum):
    """Decision an approver can record."""

    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class AccrualStatus(enum.StrEnum):
    """Outcome recorded on an accrual marker."""

    PROCESSED = "PROCESSED"
    SKIPPED_MATERNITY = "SKIPPED_MATERNITY"
    NOT_ELIGIBLE = "NOT_ELIGIBLE"


class CarryForwardStatus(enum.StrEnum):
    """Lifecycle of a year-end carry-forward record."""

    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    SETTLED = "SETTLED"


class WorkLogType(enum.StrEnum):
    """Kind of extra work that earns comp-off."""

    WEEKEND = "WEEKEND"
    HOLIDAY = "HOLIDAY"
    EXTENDED_HOURS = "EXTENDED_HOURS"


class WorkLogStatus(enum.StrEnum):
    """Verification state of a comp-off work log."""

    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class GrantStatus(enum.StrEnum):
    """Lifecycle of a comp-off grant."""

    ACTIVE = "ACTIVE"
    EXHAUSTED = "EXHAUSTED"
    EXPIRED = "EXPIRED"


class LedgerEntryType(enum.StrEnum):
    """Type of ledger entry affecting balance."""

    ACCRUAL = "ACCRUAL"
    USAGE = "USAGE"
    REVERSAL = "REVERSAL"
    ADJUSTMENT = "ADJUSTMENT"
    CARRY_FORWARD_IN = "CARRY_FORWARD_IN"
    CARRY_FORWARD_OUT = "CARRY_FORWARD_OUT"
    EXPIRATION = "EXPIRATION"
    COMP_OFF_GRANT = "COMP_OFF_GRANT"


class LedgerSourceType(enum.StrEnum):
    """Origin of a ledger entry."""

    REQUEST = "REQUEST"
    SYSTEM = "SYSTEM"
    ADMIN = "ADMIN"
    COMP_OFF = "COMP_OFF"


class NotificationKind(enum.StrEnum):
    """Notifications emitted after a committed change."""

    APPROVAL_NEEDED = "APPROVAL_NEEDED"
    REQUEST_DECIDED = "REQUEST_DECIDED"
    BALANCE_EXPIRING = "BALANCE_EXPIRING"


class AuditEntityType(enum.StrEnum):
    """Entity type recorded in the audit log."""

    ACCRUAL = "ACCRUAL"
    REQUEST = "REQUEST"
    APPROVAL = "APPROVAL"
    BALANCE = "BALANCE"
    ADJUSTMENT = "ADJUSTMENT"
    CARRY_FORWARD = "CARRY_FORWARD"
    COMP_OFF = "COMP_OFF"


class AuditAction(enum.StrEnum):
    """Action recorded in the audit log."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    CANCEL = "CANCEL"
    SUBMIT = "SUBMIT"
    EXPIRE = "EXPIRE"
    ANOMALY = "ANOMALY"
