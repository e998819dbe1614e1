import calendar
from datetime import date
from decimal import Decimal
from typing import List, Tuple

from leave_engine.database import unit_of_work
from leave_engine.models.accrual import EntitlementGrant, MonthlyAccrual
from leave_engine.models.enums import EntitlementKind, Region
from leave_engine.services.batch import (
    PROCESSED,
    SKIPPED,
    EmployeeResult,
    PeriodProcessor,
    parse_month_key,
    parse_year_key,
)
from leave_engine.services.interfaces import EmployeeSnapshot
from leave_engine.services.policy_engine import PolicyRule

TWO = Decimal("2")


class AccrualProcessor(PeriodProcessor):
    """
    Monthly credit for accruing leave types.

    Employees who joined in an earlier month get the full monthly rate. A joiner
    in the period month gets the full rate when joining on or before the
    policy's threshold day and half the rate after it.
    """
    job_name = "monthly_accrual"

    def parse_period(self, period_key: str) -> Tuple[int, int]:
        return parse_month_key(period_key)

    def employees(self, period) -> List[EmployeeSnapshot]:
        regions = [
            region for region in Region
            if any(p.entitlement.kind == EntitlementKind.MONTHLY_ACCRUAL for p in self.policies.policies_for(region))
        ]
        return [e for region in regions for e in self.directory.list_active(region)]

    def accruing_policies(self, employee: EmployeeSnapshot) -> List[PolicyRule]:
        return [
            p for p in self.policies.policies_for(employee.region, employee.role)
            if p.entitlement.kind == EntitlementKind.MONTHLY_ACCRUAL
        ]

    def accrue_employee(self, employee: EmployeeSnapshot, year: int, month: int) -> EmployeeResult:
        """Single-employee accrual in its own unit of work."""
        with unit_of_work(self.db):
            return self.process_employee(employee, (year, month))

    def process_employee(self, employee: EmployeeSnapshot, period) -> EmployeeResult:
        year, month = period
        policies = self.accruing_policies(employee)
        if not policies:
            return EmployeeResult(employee_id=employee.id, status=SKIPPED, reason="No accruing leave types")

        period_end = date(year, month, calendar.monthrange(year, month)[1])
        if employee.joining_date > period_end:
            return EmployeeResult(employee_id=employee.id, status=SKIPPED, reason="Joined after period")

        existing = (
            self.db.query(MonthlyAccrual)
            .filter(
                MonthlyAccrual.employee_id == employee.id,
                MonthlyAccrual.year == year,
                MonthlyAccrual.month == month,
            )
            .first()
        )
        if existing:
            return EmployeeResult(
                employee_id=employee.id,
                status=SKIPPED,
                reason="Already processed",
                details={"credits": existing.credits, "is_pro_rated": existing.is_pro_rated},
            )

        joined = employee.joining_date
        joined_this_month = joined.year == year and joined.month == month
        credits = {}
        is_pro_rated = False
        for policy in policies:
            rate = policy.entitlement.monthly_rate
            threshold = policy.entitlement.join_day_threshold
            credit = rate
            if joined_this_month and threshold is not None and joined.day > threshold:
                credit = rate / TWO
                is_pro_rated = True
            self.balances.apply_delta(
                employee.id, policy.leave_type, year, available_delta=credit, entitlement_delta=credit
            )
            credits[policy.leave_type.value] = str(credit)

        self.db.add(
            MonthlyAccrual(
                employee_id=employee.id,
                year=year,
                month=month,
                credits=credits,
                is_pro_rated=is_pro_rated,
                joining_date=joined,
            )
        )
        self.db.flush()
        reason = f"Pro-rated: joined on {joined.day}" if is_pro_rated else "Full month credit"
        return EmployeeResult(
            employee_id=employee.id,
            status=PROCESSED,
            reason=reason,
            details={"credits": credits, "is_pro_rated": is_pro_rated},
        )


class AnnualAllocationProcessor(PeriodProcessor):
    """
    Yearly grant of flat-entitlement leave types (sick, parental, PTO,
    bereavement). Joiners in the grant year are pro-rated where the policy says
    so. An EntitlementGrant per (employee, type, year) makes re-runs no-ops.
    """
    job_name = "annual_allocation"

    def parse_period(self, period_key: str) -> int:
        return parse_year_key(period_key)

    def allocate_employee(self, employee: EmployeeSnapshot, year: int) -> EmployeeResult:
        with unit_of_work(self.db):
            return self.process_employee(employee, year)

    def process_employee(self, employee: EmployeeSnapshot, period) -> EmployeeResult:
        year = period
        if employee.joining_date.year > year:
            return EmployeeResult(employee_id=employee.id, status=SKIPPED, reason="Joined after period")

        granted = {}
        for policy in self.policies.policies_for(employee.region, employee.role):
            if policy.entitlement.kind != EntitlementKind.ANNUAL_GRANT:
                continue
            if not self.policies.applies_to(policy, employee):
                continue
            if grant_exists(self.db, employee.id, policy, year):
                continue
            days = self.policies.prorated_annual_days(policy, employee.joining_date, year)
            record_grant(self.db, employee.id, policy, year, days, source="annual_allocation")
            self.balances.apply_delta(employee.id, policy.leave_type, year, available_delta=days, entitlement_delta=days)
            granted[policy.leave_type.value] = str(days)

        if not granted:
            return EmployeeResult(employee_id=employee.id, status=SKIPPED, reason="Already processed")
        return EmployeeResult(employee_id=employee.id, status=PROCESSED, details={"granted": granted})


def grant_exists(db, employee_id: str, policy: PolicyRule, year: int) -> bool:
    return (
        db.query(EntitlementGrant.id)
        .filter(
            EntitlementGrant.employee_id == employee_id,
            EntitlementGrant.leave_type == policy.leave_type,
            EntitlementGrant.year == year,
        )
        .first()
        is not None
    )


def record_grant(db, employee_id: str, policy: PolicyRule, year: int, days: Decimal, source: str):
    db.add(
        EntitlementGrant(
            employee_id=employee_id,
            leave_type=policy.leave_type,
            year=year,
            days=days,
            is_pro_rated=days != policy.annual_days,
            source=source,
        )
    )
