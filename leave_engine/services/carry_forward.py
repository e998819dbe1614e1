from leave_engine.database import unit_of_work
from leave_engine.models.accrual import CarryForwardRecord
from leave_engine.models.enums import EntitlementKind
from leave_engine.services.accrual import grant_exists, record_grant
from leave_engine.services.balance_store import ZERO, to_decimal
from leave_engine.services.batch import PROCESSED, SKIPPED, EmployeeResult, PeriodProcessor, parse_year_key
from leave_engine.services.interfaces import EmployeeSnapshot


class CarryForwardProcessor(PeriodProcessor):
    """
    Year-end roll-over from `year` into `year + 1`.

    Per leave type the carried amount is the unused balance capped by the
    role-resolved policy cap; everything above the cap is forfeited. All leave
    types of one employee move together in a single unit of work.
    """
    job_name = "carry_forward"

    def parse_period(self, period_key: str) -> int:
        return parse_year_key(period_key)

    def close_year(self, employee: EmployeeSnapshot, year: int) -> EmployeeResult:
        with unit_of_work(self.db):
            return self.process_employee(employee, year)

    def process_employee(self, employee: EmployeeSnapshot, period) -> EmployeeResult:
        year = period
        next_year = year + 1
        existing = (
            self.db.query(CarryForwardRecord)
            .filter(CarryForwardRecord.employee_id == employee.id, CarryForwardRecord.from_year == year)
            .first()
        )
        if existing:
            return EmployeeResult(
                employee_id=employee.id, status=SKIPPED, reason="Already processed", details=existing.details
            )

        details = {}
        for policy in self.policies.policies_for(employee.region, employee.role):
            if policy.is_unlimited:
                continue
            previous = self.balances.find(employee.id, policy.leave_type, year)
            unused = max(to_decimal(previous.available), ZERO) if previous else ZERO
            cap = policy.carry_forward_cap
            carried = min(unused, cap) if cap > ZERO else ZERO

            granted = ZERO
            fresh = self.balances.find(employee.id, policy.leave_type, next_year) is None
            if (
                fresh
                and policy.entitlement.kind == EntitlementKind.ANNUAL_GRANT
                and self.policies.applies_to(policy, employee)
                and not grant_exists(self.db, employee.id, policy, next_year)
            ):
                granted = self.policies.prorated_annual_days(policy, employee.joining_date, next_year)
                record_grant(self.db, employee.id, policy, next_year, granted, source="carry_forward")
                self.balances.apply_delta(
                    employee.id, policy.leave_type, next_year, available_delta=granted, entitlement_delta=granted
                )
            self.balances.set_carry_forward(employee.id, policy.leave_type, next_year, carried)

            details[policy.leave_type.value] = {
                "previous_available": str(unused),
                "cap": str(cap),
                "carried": str(carried),
                "forfeited": str(unused - carried),
                "granted": str(granted),
            }

        self.db.add(CarryForwardRecord(employee_id=employee.id, from_year=year, details=details))
        self.db.flush()
        return EmployeeResult(employee_id=employee.id, status=PROCESSED, details={"leave_types": details})
