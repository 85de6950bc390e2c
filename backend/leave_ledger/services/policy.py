"""Leave policy constants shared by the validator, accrual and carry-forward code."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from leave_ledger.models.enums import Country, LeaveType


@dataclass(frozen=True)
class LeaveTypeRule:
    """Per-leave-type limits checked at submission."""

    max_consecutive_days: int
    # Documentation is required when the request is longer than this many days.
    documentation_after_days: int | None = None
    auto_approvable: bool = False
    # False for types that never touch the balance ledger.
    ledger_backed: bool = True


LEAVE_TYPE_RULES: dict[LeaveType, LeaveTypeRule] = {
    LeaveType.SICK_LEAVE: LeaveTypeRule(max_consecutive_days=10, documentation_after_days=3),
    LeaveType.CASUAL_LEAVE: LeaveTypeRule(max_consecutive_days=3, auto_approvable=True),
    LeaveType.EARNED_LEAVE: LeaveTypeRule(max_consecutive_days=30),
    LeaveType.MATERNITY_LEAVE: LeaveTypeRule(max_consecutive_days=180, documentation_after_days=0),
    LeaveType.PATERNITY_LEAVE: LeaveTypeRule(max_consecutive_days=15, documentation_after_days=0),
    LeaveType.COMPENSATORY_OFF: LeaveTypeRule(max_consecutive_days=2, auto_approvable=True),
    LeaveType.BEREAVEMENT_LEAVE: LeaveTypeRule(max_consecutive_days=5, documentation_after_days=0),
    LeaveType.MARRIAGE_LEAVE: LeaveTypeRule(max_consecutive_days=7, documentation_after_days=0),
    LeaveType.LEAVE_WITHOUT_PAY: LeaveTypeRule(
        max_consecutive_days=365, documentation_after_days=0, ledger_backed=False
    ),
    LeaveType.PTO: LeaveTypeRule(max_consecutive_days=30),
}

PARENTAL_LEAVE_TYPES = frozenset({LeaveType.MATERNITY_LEAVE, LeaveType.PATERNITY_LEAVE})
HR_REVIEWED_LEAVE_TYPES = frozenset(
    {
        LeaveType.MATERNITY_LEAVE,
        LeaveType.PATERNITY_LEAVE,
        LeaveType.BEREAVEMENT_LEAVE,
        LeaveType.MARRIAGE_LEAVE,
    }
)
# Types that may not overlap an approved parental leave.
PARENTAL_EXCLUSIVE_LEAVE_TYPES = frozenset({LeaveType.CASUAL_LEAVE, LeaveType.EARNED_LEAVE})

AUTO_APPROVAL_MAX_DAYS = Decimal(2)

# India monthly accrual
INDIA_MONTHLY_ACCRUAL = Decimal(1)
INDIA_JOINING_DAY_CUTOFF = 15

# USA annual PTO
SENIOR_DESIGNATIONS = frozenset({"VP", "SVP", "EVP", "CEO", "CTO", "CFO", "COO"})
USA_PTO_SENIOR_DAYS = 20
USA_PTO_STANDARD_DAYS = 15

# Year-end carry-forward, by country
CARRY_FORWARD_LEAVE_TYPES: dict[Country, tuple[LeaveType, ...]] = {
    Country.INDIA: (LeaveType.CASUAL_LEAVE, LeaveType.EARNED_LEAVE),
    Country.USA: (LeaveType.PTO,),
}

# Comp-off earning
COMP_OFF_MAX_HOURS_PER_DAY = Decimal(12)
COMP_OFF_FULL_DAY_HOURS = 8
COMP_OFF_HALF_DAY_HOURS = 5

# Balances usable across ledger years; each grant carries its own expiry date.
POOLED_LEAVE_TYPES = frozenset({LeaveType.COMPENSATORY_OFF})


def is_senior_designation(designation: str) -> bool:
    """VP and above."""
    return designation.strip().upper() in SENIOR_DESIGNATIONS


def rule_for(leave_type: LeaveType) -> LeaveTypeRule:
    return LEAVE_TYPE_RULES[leave_type]
