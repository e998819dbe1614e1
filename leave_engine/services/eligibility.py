from datetime import date
from decimal import Decimal
from typing import List, Optional, Union

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel
from sqlalchemy.orm import Session

from leave_engine.core.clock import Clock
from leave_engine.core.exceptions import ValidationError
from leave_engine.models.enums import LeaveStatus, LeaveType, parse_enum
from leave_engine.models.leave_request import LeaveRequest
from leave_engine.services.base import BaseService
from leave_engine.services.directory import SqlEmployeeDirectory
from leave_engine.services.interfaces import EmployeeDirectory, EmployeeSnapshot
from leave_engine.services.policy_engine import PolicyRule, PolicyRuleEngine, policy_engine


class EligibilityResult(BaseModel):
    eligible: bool
    leave_type: LeaveType
    reasons: List[str] = []
    warnings: List[str] = []

    def raise_if_ineligible(self):
        if not self.eligible:
            raise ValidationError(
                self.reasons[0] if self.reasons else "Not eligible for this leave type",
                reasons=self.reasons,
                details={"leave_type": self.leave_type.value},
            )


def service_months(joining_date: date, on: date) -> int:
    if on < joining_date:
        return 0
    delta = relativedelta(on, joining_date)
    return delta.years * 12 + delta.months


class EligibilityValidator(BaseService):
    """
    Read-only gate in front of chain construction.

    Categories are evaluated in order and the first failing category ends the
    check; every reason inside that category is reported.
    """

    def __init__(
        self,
        db: Session,
        clock: Clock = None,
        policies: PolicyRuleEngine = None,
        directory: EmployeeDirectory = None,
    ):
        super().__init__(db, clock)
        self.policies = policies or policy_engine
        self.directory = directory or SqlEmployeeDirectory(db)

    def check(
        self,
        employee: Union[EmployeeSnapshot, str],
        leave_type,
        start_date: date,
        end_date: date,
        total_days: Optional[Decimal] = None,
        exclude_request_id: Optional[int] = None,
    ) -> EligibilityResult:
        leave_type = parse_enum(LeaveType, leave_type, "leave_type")
        if not isinstance(employee, EmployeeSnapshot):
            employee = self.directory.get(employee)
        if end_date < start_date:
            raise ValidationError("End date cannot be before start date")

        result = EligibilityResult(eligible=False, leave_type=leave_type)

        # 1. Status
        if not employee.is_active:
            result.reasons.append(f"Employee {employee.id} is not active")
            return result

        # 2. Region
        policy = self.policies.find_policy(employee.region, leave_type, employee.role)
        if policy is None:
            result.reasons.append(f"{self._label(leave_type)} is not available in region {employee.region.value}")
            return result

        # 3. Personal predicates
        result.reasons.extend(self._predicate_reasons(policy, employee))
        if result.reasons:
            return result

        # 4. One per calendar year
        if policy.eligibility.one_per_calendar_year and self._has_request_in_year(
            employee.id, leave_type, start_date.year, exclude_request_id
        ):
            result.reasons.append(f"{policy.label} already taken/applied for this year")
            return result

        # 5. Blocking leave overlap
        for blocking_type in self._blocking_types(employee, leave_type):
            if self._has_approved_overlap(employee.id, blocking_type, start_date, end_date):
                result.reasons.append(
                    f"Cannot apply for other leaves during {self._label(blocking_type).lower()} period"
                )
        if result.reasons:
            return result

        result.eligible = True
        result.warnings.extend(self._warnings(policy, start_date, end_date, total_days))
        return result

    def _predicate_reasons(self, policy: PolicyRule, employee: EmployeeSnapshot) -> List[str]:
        reasons = []
        rule = policy.eligibility
        if rule.genders and employee.gender not in rule.genders:
            allowed = "/".join(g.value.lower() for g in rule.genders)
            reasons.append(f"{policy.label} is only available for {allowed} employees")
        if rule.marital_statuses and employee.marital_status not in rule.marital_statuses:
            allowed = "/".join(m.value.lower() for m in rule.marital_statuses)
            reasons.append(f"{policy.label} is only available for {allowed} employees")
        if rule.min_service_months:
            months = service_months(employee.joining_date, self.clock.today())
            if months < rule.min_service_months:
                reasons.append(
                    f"{policy.label} requires {rule.min_service_months} months of service (current: {months})"
                )
        return reasons

    def _has_request_in_year(
        self, employee_id: str, leave_type: LeaveType, year: int, exclude_request_id: Optional[int]
    ) -> bool:
        query = self.db.query(LeaveRequest.id).filter(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.leave_type == leave_type,
            LeaveRequest.status.in_([LeaveStatus.APPROVED, LeaveStatus.PENDING]),
            LeaveRequest.start_date >= date(year, 1, 1),
            LeaveRequest.start_date <= date(year, 12, 31),
        )
        if exclude_request_id is not None:
            query = query.filter(LeaveRequest.id != exclude_request_id)
        return query.first() is not None

    def _blocking_types(self, employee: EmployeeSnapshot, requested: LeaveType) -> List[LeaveType]:
        return [
            p.leave_type
            for p in self.policies.policies_for(employee.region)
            if p.blocks_other_leave and p.leave_type != requested
        ]

    def _has_approved_overlap(self, employee_id: str, leave_type: LeaveType, start: date, end: date) -> bool:
        return (
            self.db.query(LeaveRequest.id)
            .filter(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.leave_type == leave_type,
                LeaveRequest.status == LeaveStatus.APPROVED,
                LeaveRequest.start_date <= end,
                LeaveRequest.end_date >= start,
            )
            .first()
            is not None
        )

    def _warnings(self, policy: PolicyRule, start: date, end: date, total_days: Optional[Decimal]) -> List[str]:
        warnings = []
        if policy.advance_notice_days:
            days_until_start = (start - self.clock.today()).days
            if days_until_start < policy.advance_notice_days:
                warnings.append(
                    f"Recommended advance notice: {policy.advance_notice_days} days (Current: {days_until_start} days)"
                )
        doc = policy.documentation
        if doc.required:
            days = total_days if total_days is not None else Decimal((end - start).days + 1)
            if doc.after_days is None or Decimal(days) > doc.after_days:
                warnings.append(f"Documentation required: {doc.description}")
        return warnings

    @staticmethod
    def _label(leave_type: LeaveType) -> str:
        return leave_type.value.replace("_", " ").capitalize()
