"""
Approval chain construction.

The policy declares an ordered list of approver kinds. Each position becomes a
level (1-based) whose number is kept even when the approver for an earlier
position could not be resolved. Manager tiers come from a bounded walk up the
reporting hierarchy; the HR level is the first active HR_ADMIN.
"""
from typing import List, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy.orm import Session

from leave_engine.core.clock import Clock
from leave_engine.core.config import settings
from leave_engine.core.exceptions import ValidationError
from leave_engine.models.approval_record import ApprovalRecord
from leave_engine.models.enums import ApprovalStatus, ApproverKind, LeaveType, Role, parse_enum
from leave_engine.services.base import BaseService
from leave_engine.services.directory import SqlEmployeeDirectory, SqlRoleDirectory
from leave_engine.services.interfaces import EmployeeDirectory, EmployeeSnapshot, RoleDirectory
from leave_engine.services.policy_engine import PolicyRuleEngine, policy_engine

MANAGER_TIERS = {
    ApproverKind.REPORTING_MANAGER: 1,
    ApproverKind.SKIP_LEVEL_MANAGER: 2,
}


class ChainLevel(BaseModel):
    level: int
    kind: ApproverKind
    approver_id: str
    approver_role: str
    status: ApprovalStatus = ApprovalStatus.PENDING


class OmittedLevel(BaseModel):
    level: int
    kind: ApproverKind
    reason: str


class ApprovalChain(BaseModel):
    leave_request_id: Optional[int] = None
    employee_id: str
    leave_type: LeaveType
    levels: List[ChainLevel] = []
    omitted: List[OmittedLevel] = []

    @property
    def warnings(self) -> List[str]:
        return [f"Approval level {o.level} ({o.kind.value}) omitted: {o.reason}" for o in self.omitted]

    @property
    def first_level(self) -> Optional[ChainLevel]:
        return self.levels[0] if self.levels else None

    @property
    def is_complete(self) -> bool:
        return not self.omitted


class ApprovalChainBuilder(BaseService):
    def __init__(
        self,
        db: Session,
        clock: Clock = None,
        policies: PolicyRuleEngine = None,
        directory: EmployeeDirectory = None,
        roles: RoleDirectory = None,
        mode: str = None,
        max_depth: int = None,
    ):
        super().__init__(db, clock)
        self.policies = policies or policy_engine
        self.directory = directory or SqlEmployeeDirectory(db)
        self.roles = roles or SqlRoleDirectory(db)
        self.mode = mode or settings.approval_chain_mode
        self.max_depth = max_depth or settings.max_hierarchy_depth

    def build(self, leave_request_id: Optional[int], employee_id: str, leave_type) -> ApprovalChain:
        leave_type = parse_enum(LeaveType, leave_type, "leave_type")
        employee = self.directory.get(employee_id)
        policy = self.policies.get_policy(employee.region, leave_type, employee.role)

        chain = ApprovalChain(leave_request_id=leave_request_id, employee_id=employee.id, leave_type=leave_type)
        deepest = max((MANAGER_TIERS.get(k, 0) for k in policy.approval_levels), default=0)
        managers = self._walk_managers(employee, deepest)

        for position, kind in enumerate(policy.approval_levels, start=1):
            if kind in MANAGER_TIERS:
                approver, reason = managers[MANAGER_TIERS[kind] - 1]
                approver_role = approver.role.value if approver else None
                approver_id = approver.id if approver else None
            else:
                approver_id = self.roles.find_active_holder(Role.HR_ADMIN, exclude=employee.id)
                approver_role = Role.HR_ADMIN.value
                reason = None if approver_id else "No active HR_ADMIN available"

            if approver_id == employee.id:
                approver_id, reason = None, "Approver would be the requester"

            if approver_id is None:
                chain.omitted.append(OmittedLevel(level=position, kind=kind, reason=reason))
                continue
            chain.levels.append(
                ChainLevel(level=position, kind=kind, approver_id=approver_id, approver_role=approver_role)
            )

        for warning in chain.warnings:
            self.log_warning(warning, employee_id=employee.id, leave_type=leave_type.value)

        if not chain.levels:
            raise ValidationError(
                "No approver could be resolved for this request",
                reasons=[o.reason for o in chain.omitted] or ["Policy declares no approval levels"],
                details={"employee_id": employee.id, "leave_type": leave_type.value},
            )
        if chain.omitted and self.mode == "require_full":
            raise ValidationError(
                "Approval chain is incomplete",
                reasons=chain.warnings,
                details={"employee_id": employee.id, "leave_type": leave_type.value},
            )
        return chain

    def _walk_managers(
        self, employee: EmployeeSnapshot, tiers: int
    ) -> List[Tuple[Optional[EmployeeSnapshot], Optional[str]]]:
        """
        Resolve `tiers` managers above `employee`. Each entry is (manager, None)
        or (None, reason). Once the walk breaks, every higher tier carries the
        same reason. Inactive managers are not approvers but the walk continues
        through them.
        """
        resolved: List[Tuple[Optional[EmployeeSnapshot], Optional[str]]] = []
        seen = {employee.id}
        current = employee
        broken: Optional[str] = None

        for tier in range(1, tiers + 1):
            if broken is None and tier > self.max_depth:
                broken = f"Hierarchy walk exceeded maximum depth {self.max_depth}"
            if broken is None:
                manager_id = current.reporting_manager_id
                if not manager_id:
                    broken = f"No reporting manager configured for {current.id}"
                elif manager_id in seen:
                    broken = f"Reporting cycle detected at {manager_id}"
                else:
                    manager = self.directory.find(manager_id)
                    if manager is None:
                        broken = f"Manager {manager_id} not found in directory"
                    else:
                        seen.add(manager.id)
                        current = manager
                        if manager.is_active:
                            resolved.append((manager, None))
                        else:
                            resolved.append((None, f"Manager {manager.id} is not active"))
                        continue
            resolved.append((None, broken))
        return resolved

    def persist(self, chain: ApprovalChain, leave_request_id: Optional[int] = None) -> List[ApprovalRecord]:
        """Write every level as a PENDING record in one flush. The caller commits."""
        request_id = leave_request_id or chain.leave_request_id
        if request_id is None:
            raise ValidationError("Approval chain has no leave request")
        records = [
            ApprovalRecord(
                leave_request_id=request_id,
                level=level.level,
                approver_id=level.approver_id,
                approver_role=level.approver_role,
                status=ApprovalStatus.PENDING,
            )
            for level in chain.levels
        ]
        self.db.add_all(records)
        self.db.flush()
        chain.leave_request_id = request_id
        return records
