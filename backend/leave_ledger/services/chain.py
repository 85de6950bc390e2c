"""Approval chain construction.

One primitive builds every chain; leave types differ only in their
ChainRule. The builder follows at most two manager hops (the reporting
manager, and the skip-level manager for comp-off) and never recurses, so a
cyclic manager graph cannot loop it.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from leave_ledger.models.enums import LeaveType, Role
from leave_ledger.schemas.validation import ApprovalStep
from leave_ledger.services.policy import HR_REVIEWED_LEAVE_TYPES

if TYPE_CHECKING:
    import uuid

    from leave_ledger.services.employee import EmployeeDirectory, EmployeeInfo

MAX_CHAIN_DEPTH = 3


@dataclass(frozen=True)
class ChainRule:
    """Which levels a leave type needs beyond the reporting manager."""

    hr_leave_types: frozenset[LeaveType] = frozenset()
    hr_always: bool = False
    hr_after_days: Decimal | None = None
    skip_level_manager: bool = False
    third_level_after_days: Decimal | None = None
    third_level_role: Role = Role.IT_ADMIN


STANDARD_CHAIN = ChainRule(
    hr_leave_types=HR_REVIEWED_LEAVE_TYPES,
    hr_after_days=Decimal(10),
    third_level_after_days=Decimal(30),
)
LWP_CHAIN = ChainRule(hr_always=True, third_level_after_days=Decimal(90))
COMP_OFF_CHAIN = ChainRule(hr_always=True, skip_level_manager=True)


def chain_rule_for(leave_type: LeaveType) -> ChainRule:
    if leave_type == LeaveType.LEAVE_WITHOUT_PAY:
        return LWP_CHAIN
    if leave_type == LeaveType.COMPENSATORY_OFF:
        return COMP_OFF_CHAIN
    return STANDARD_CHAIN


async def _active_manager(directory: EmployeeDirectory, manager_id: uuid.UUID | None) -> EmployeeInfo | None:
    if manager_id is None:
        return None
    manager = await directory.get_employee(manager_id)
    if manager is None or not manager.is_active:
        return None
    return manager


async def _first_with_role(
    directory: EmployeeDirectory,
    role: Role,
    exclude: set[uuid.UUID],
) -> EmployeeInfo | None:
    for candidate in await directory.find_by_role(role):
        if candidate.id not in exclude:
            return candidate
    return None


async def build_approval_chain(
    directory: EmployeeDirectory,
    employee: EmployeeInfo,
    leave_type: LeaveType,
    total_days: Decimal,
) -> list[ApprovalStep]:
    """Build the ordered approver list for a request.

    Levels are numbered from 1 in the order added. An approver appears at
    most once and the requester never approves their own request. When no
    level applies, an HR admin approves alone. Returns an empty list only
    when nobody at all can approve.
    """
    rule = chain_rule_for(leave_type)
    steps: list[ApprovalStep] = []
    seen: set[uuid.UUID] = {employee.id}

    def _add(approver: EmployeeInfo | None, role: Role) -> None:
        if approver is None or approver.id in seen or len(steps) >= MAX_CHAIN_DEPTH:
            return
        seen.add(approver.id)
        steps.append(ApprovalStep(level=len(steps) + 1, approver_id=approver.id, approver_role=role))

    manager = await _active_manager(directory, employee.manager_id)
    _add(manager, Role.MANAGER)

    if rule.skip_level_manager and manager is not None:
        _add(await _active_manager(directory, manager.manager_id), Role.MANAGER)

    needs_hr = (
        rule.hr_always
        or leave_type in rule.hr_leave_types
        or (rule.hr_after_days is not None and total_days > rule.hr_after_days)
    )
    if needs_hr:
        _add(await _first_with_role(directory, Role.HR_ADMIN, seen), Role.HR_ADMIN)

    if rule.third_level_after_days is not None and total_days > rule.third_level_after_days:
        _add(await _first_with_role(directory, rule.third_level_role, seen), rule.third_level_role)

    if not steps:
        _add(await _first_with_role(directory, Role.HR_ADMIN, seen), Role.HR_ADMIN)

    return steps
