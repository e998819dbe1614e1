"""
Comp-off: weekend and holiday work converted into leave credit.

A work log is validated on submission, verified by the employee's direct
manager, and only then credited to the COMPENSATORY_OFF balance. Verified
credit expires a fixed number of months after verification.
"""
import calendar
from datetime import date
from decimal import Decimal, ROUND_FLOOR
from typing import List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel
from sqlalchemy.orm import Session

from leave_engine.core.clock import Clock
from leave_engine.core.config import settings
from leave_engine.core.exceptions import (
    AlreadyProcessedError,
    ConflictError,
    NotFoundError,
    PolicyViolationError,
    ValidationError,
)
from leave_engine.database import unit_of_work
from leave_engine.models.comp_off import CompOffWorkLog
from leave_engine.models.enums import LeaveType, Region, WorkLogStatus, WorkType, parse_enum
from leave_engine.services import interfaces as events
from leave_engine.services.balance_store import SqlBalanceStore, ZERO, to_decimal
from leave_engine.services.base import EngineService
from leave_engine.services.batch import PROCESSED, SKIPPED, EmployeeResult, PeriodProcessor, parse_month_key
from leave_engine.services.directory import SqlEmployeeDirectory
from leave_engine.services.holiday_calendar import SqlHolidayCalendar
from leave_engine.services.interfaces import BalanceStore, EmployeeDirectory, EmployeeSnapshot, HolidayCalendar
from leave_engine.services.policy_engine import CompOffRules, PolicyRuleEngine, policy_engine


class CompOffValidation(BaseModel):
    eligible: bool
    comp_off_hours: Decimal = ZERO
    work_type: WorkType = WorkType.INVALID
    errors: List[str] = []


class CompOffDays(BaseModel):
    full_days: int
    half_days: int
    total_days: Decimal
    remaining_hours: Decimal


class WorkLogOutcome(BaseModel):
    log_id: int
    employee_id: str
    status: WorkLogStatus
    work_type: WorkType
    comp_off_hours: Decimal
    comp_off_days: Decimal
    remaining_hours: Decimal = ZERO
    expires_on: Optional[date] = None
    warnings: List[str] = []


def calculate_comp_off_days(hours, rules: CompOffRules = None) -> CompOffDays:
    """
    8 hours make a full day. A remainder of at least 5 hours earns one half
    day; whatever is left is reported but not creditable.
    """
    rules = rules or CompOffRules()
    hours = to_decimal(hours)
    if hours <= ZERO:
        return CompOffDays(full_days=0, half_days=0, total_days=ZERO, remaining_hours=ZERO)
    full_days = int((hours / rules.hours_per_day).to_integral_value(rounding=ROUND_FLOOR))
    remainder = hours - full_days * rules.hours_per_day
    half_days = 0
    if remainder >= rules.hours_per_half_day:
        half_days = 1
        remainder -= rules.hours_per_half_day
    return CompOffDays(
        full_days=full_days,
        half_days=half_days,
        total_days=Decimal(full_days) + Decimal("0.5") * half_days,
        remaining_hours=remainder,
    )


class CompOffConverter(EngineService):
    def __init__(
        self,
        db: Session,
        clock: Clock = None,
        notifier=None,
        audit=None,
        policies: PolicyRuleEngine = None,
        directory: EmployeeDirectory = None,
        balances: BalanceStore = None,
        holidays: HolidayCalendar = None,
    ):
        super().__init__(db, clock, notifier, audit)
        self.policies = policies or policy_engine
        self.directory = directory or SqlEmployeeDirectory(db)
        self.balances = balances or SqlBalanceStore(db)
        self.holidays = holidays or SqlHolidayCalendar(db)

    def validate(self, work_date: date, hours_worked, region) -> CompOffValidation:
        region = parse_enum(Region, region, "region")
        rules = self.policies.comp_off_rules(region)
        hours = to_decimal(hours_worked)
        result = CompOffValidation(eligible=False)

        if hours <= ZERO:
            result.errors.append("Hours worked must be greater than 0")
            return result
        if hours > 24:
            result.errors.append("Hours worked cannot exceed 24 hours per day")
            return result
        today = self.clock.today()
        if work_date > today:
            result.errors.append("Cannot log work for future dates")
            return result
        staleness = settings.comp_off.staleness_days
        if work_date < today - relativedelta(days=staleness):
            result.errors.append(f"Cannot log work older than {staleness} days")
            return result

        if work_date.weekday() >= 5:
            result.work_type, rate, label = WorkType.WEEKEND, rules.weekend_rate, "Weekend"
        elif self.holidays.is_holiday(work_date, region):
            result.work_type, rate, label = WorkType.HOLIDAY, rules.holiday_rate, "Holiday"
        else:
            result.work_type = WorkType.INVALID
            result.errors.append("Comp off is only available for weekend and holiday work")
            return result

        if hours < rules.minimum_hours:
            result.errors.append(
                f"{label} work requires minimum {rules.minimum_hours} hours for comp off eligibility"
            )
            return result
        result.eligible = True
        result.comp_off_hours = hours * rate
        return result

    def calculate_comp_off_days(self, hours, region=Region.INDIA) -> CompOffDays:
        return calculate_comp_off_days(hours, self.policies.comp_off_rules(region))

    def submit_work_log(
        self, employee_id: str, work_date: date, hours_worked, description: Optional[str] = None
    ) -> WorkLogOutcome:
        employee = self.directory.get(employee_id)
        if not employee.is_active:
            raise ValidationError(f"Employee {employee.id} is not active")
        self.policies.get_policy(employee.region, LeaveType.COMPENSATORY_OFF)

        validation = self.validate(work_date, hours_worked, employee.region)
        if not validation.eligible:
            raise ValidationError(
                f"Work log validation failed: {', '.join(validation.errors)}",
                reasons=validation.errors,
                details={"work_type": validation.work_type.value},
            )
        days = self.calculate_comp_off_days(validation.comp_off_hours, employee.region)

        with unit_of_work(self.db):
            duplicate = (
                self.db.query(CompOffWorkLog.id)
                .filter(
                    CompOffWorkLog.employee_id == employee.id,
                    CompOffWorkLog.work_date == work_date,
                    CompOffWorkLog.status != WorkLogStatus.REJECTED,
                )
                .first()
            )
            if duplicate:
                raise ConflictError(
                    f"Work log already exists for {work_date.isoformat()}",
                    details={"work_log_id": duplicate[0]},
                    error_code="DUPLICATE_WORK_LOG",
                )
            log = CompOffWorkLog(
                employee_id=employee.id,
                work_date=work_date,
                hours_worked=to_decimal(hours_worked),
                work_type=validation.work_type,
                work_description=description,
                comp_off_earned=validation.comp_off_hours,
                comp_off_days=days.total_days,
                remaining_hours=days.remaining_hours,
                status=WorkLogStatus.PENDING,
            )
            self.db.add(log)
            self.db.flush()
            log_id = log.id

        outcome = WorkLogOutcome(
            log_id=log_id,
            employee_id=employee.id,
            status=WorkLogStatus.PENDING,
            work_type=validation.work_type,
            comp_off_hours=validation.comp_off_hours,
            comp_off_days=days.total_days,
            remaining_hours=days.remaining_hours,
        )
        if employee.reporting_manager_id:
            self._notify(outcome.warnings, employee.reporting_manager_id, events.COMP_OFF_SUBMITTED, {
                "work_log_id": log_id,
                "employee_id": employee.id,
                "work_date": work_date,
                "comp_off_days": days.total_days,
            })
        else:
            outcome.warnings.append("No reporting manager configured to verify this work log")
        self._audit(outcome.warnings, employee.id, "comp_off.submitted", "comp_off_work_log", log_id,
                    {"work_date": work_date, "hours_worked": hours_worked, "comp_off_days": days.total_days})
        return outcome

    def verify_work_log(
        self, log_id: int, manager_id: str, approve: bool, comments: Optional[str] = None
    ) -> WorkLogOutcome:
        with unit_of_work(self.db):
            log = (
                self.db.query(CompOffWorkLog)
                .filter(CompOffWorkLog.id == log_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
            if log is None:
                raise NotFoundError(f"Work log not found: {log_id}", details={"work_log_id": log_id})
            employee = self.directory.get(log.employee_id)
            if employee.reporting_manager_id != manager_id:
                raise PolicyViolationError(
                    "Manager does not have authority to verify this work log",
                    details={"work_log_id": log_id, "manager_id": manager_id},
                )

            now = self.clock.now()
            status = WorkLogStatus.VERIFIED if approve else WorkLogStatus.REJECTED
            expires_on = self.clock.today() + relativedelta(months=settings.comp_off.expiry_months) if approve else None
            updated = (
                self.db.query(CompOffWorkLog)
                .filter(CompOffWorkLog.id == log_id, CompOffWorkLog.status == WorkLogStatus.PENDING)
                .update(
                    {
                        "status": status,
                        "verified": approve,
                        "verified_by": manager_id,
                        "verified_at": now,
                        "verification_comments": comments,
                        "expires_on": expires_on,
                    },
                    synchronize_session="fetch",
                )
            )
            if updated != 1:
                raise AlreadyProcessedError("Work log already processed", details={"work_log_id": log_id})

            days = to_decimal(log.comp_off_days)
            if approve:
                self.balances.apply_delta(
                    employee.id, LeaveType.COMPENSATORY_OFF, now.year, available_delta=days, entitlement_delta=days
                )
            outcome = WorkLogOutcome(
                log_id=log_id,
                employee_id=employee.id,
                status=status,
                work_type=log.work_type,
                comp_off_hours=to_decimal(log.comp_off_earned),
                comp_off_days=days,
                remaining_hours=to_decimal(log.remaining_hours),
                expires_on=expires_on,
            )

        event = events.COMP_OFF_VERIFIED if approve else events.COMP_OFF_REJECTED
        self._notify(outcome.warnings, employee.id, event, {
            "work_log_id": log_id,
            "comp_off_days": outcome.comp_off_days if approve else ZERO,
            "expires_on": expires_on,
            "comments": comments,
        })
        self._audit(outcome.warnings, manager_id, f"comp_off.{status.value.lower()}", "comp_off_work_log", log_id,
                    {"employee_id": employee.id, "credited_days": outcome.comp_off_days if approve else ZERO})
        return outcome


class CompOffExpiryProcessor(PeriodProcessor):
    """
    Forfeits verified comp-off credit whose expiry date falls on or before the
    end of the period month. The forfeited amount never exceeds what is still
    available in the balance the credit went to.
    """
    job_name = "comp_off_expiry"

    def parse_period(self, period_key: str) -> Tuple[int, int]:
        return parse_month_key(period_key)

    def _cutoff(self, period) -> date:
        year, month = period
        return date(year, month, calendar.monthrange(year, month)[1])

    def _expiring(self, cutoff: date, employee_id: Optional[str] = None):
        query = self.db.query(CompOffWorkLog).filter(
            CompOffWorkLog.status == WorkLogStatus.VERIFIED,
            CompOffWorkLog.expires_on <= cutoff,
        )
        if employee_id is not None:
            query = query.filter(CompOffWorkLog.employee_id == employee_id)
        return query.order_by(CompOffWorkLog.expires_on, CompOffWorkLog.id)

    def employees(self, period) -> List[EmployeeSnapshot]:
        ids = sorted({log.employee_id for log in self._expiring(self._cutoff(period)).all()})
        return [e for e in (self.directory.find(i) for i in ids) if e is not None]

    def process_employee(self, employee: EmployeeSnapshot, period) -> EmployeeResult:
        expired = {}
        for log in self._expiring(self._cutoff(period), employee.id).with_for_update().all():
            year = log.verified_at.year if log.verified_at else log.expires_on.year
            balance = self.balances.get_or_create(employee.id, LeaveType.COMPENSATORY_OFF, year)
            forfeit = min(to_decimal(log.comp_off_days), max(to_decimal(balance.available), ZERO))
            if forfeit > ZERO:
                self.balances.apply_delta(
                    employee.id, LeaveType.COMPENSATORY_OFF, year, available_delta=-forfeit, entitlement_delta=-forfeit
                )
            log.status = WorkLogStatus.EXPIRED
            expired[str(log.id)] = str(forfeit)
        self.db.flush()
        if not expired:
            return EmployeeResult(employee_id=employee.id, status=SKIPPED, reason="Nothing to expire")
        return EmployeeResult(employee_id=employee.id, status=PROCESSED, details={"forfeited": expired})
