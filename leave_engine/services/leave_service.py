from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from leave_engine.core.clock import Clock
from leave_engine.core.exceptions import AlreadyProcessedError, NotFoundError, PolicyViolationError, ValidationError
from leave_engine.database import unit_of_work
from leave_engine.models.enums import LeaveStatus, LeaveType, parse_enum
from leave_engine.models.leave_request import LeaveRequest
from leave_engine.services import interfaces as events
from leave_engine.services.approval_chain import ApprovalChain, ApprovalChainBuilder, ChainLevel
from leave_engine.services.balance_store import SqlBalanceStore, to_decimal
from leave_engine.services.base import EngineService
from leave_engine.services.directory import SqlEmployeeDirectory, SqlRoleDirectory
from leave_engine.services.eligibility import EligibilityResult, EligibilityValidator
from leave_engine.services.holiday_calendar import SqlHolidayCalendar
from leave_engine.services.interfaces import (
    BalanceStore,
    EmployeeDirectory,
    EmployeeSnapshot,
    HolidayCalendar,
    RoleDirectory,
)
from leave_engine.services.policy_engine import PolicyRule, PolicyRuleEngine, policy_engine

HALF_DAY = Decimal("0.5")


class SubmissionOutcome(BaseModel):
    leave_request_id: int
    status: LeaveStatus
    total_days: Decimal
    levels: List[ChainLevel] = []
    warnings: List[str] = []


class LeaveService(EngineService):
    """
    Submission flow: eligibility gate, then the request and its approval
    chain are written in a single unit of work.
    """

    def __init__(
        self,
        db: Session,
        clock: Clock = None,
        notifier=None,
        audit=None,
        policies: PolicyRuleEngine = None,
        directory: EmployeeDirectory = None,
        roles: RoleDirectory = None,
        balances: BalanceStore = None,
        holidays: HolidayCalendar = None,
        chain_mode: str = None,
    ):
        super().__init__(db, clock, notifier, audit)
        self.policies = policies or policy_engine
        self.directory = directory or SqlEmployeeDirectory(db)
        self.balances = balances or SqlBalanceStore(db)
        self.holidays = holidays or SqlHolidayCalendar(db)
        self.validator = EligibilityValidator(db, self.clock, self.policies, self.directory)
        self.chains = ApprovalChainBuilder(
            db, self.clock, self.policies, self.directory, roles or SqlRoleDirectory(db), mode=chain_mode
        )

    def working_days(self, start: date, end: date, region) -> Decimal:
        """Days in the range that are neither weekends nor declared holidays."""
        days = 0
        current = start
        while current <= end:
            if current.weekday() < 5 and not self.holidays.is_holiday(current, region):
                days += 1
            current += timedelta(days=1)
        return Decimal(days)

    def check_eligibility(self, employee_id: str, leave_type, start_date: date, end_date: date,
                          total_days: Optional[Decimal] = None) -> EligibilityResult:
        return self.validator.check(employee_id, leave_type, start_date, end_date, total_days)

    def submit(
        self,
        employee_id: str,
        leave_type,
        start_date: date,
        end_date: date,
        total_days: Optional[Decimal] = None,
        reason: Optional[str] = None,
        draft: bool = False,
    ) -> SubmissionOutcome:
        leave_type = parse_enum(LeaveType, leave_type, "leave_type")
        employee = self.directory.get(employee_id)
        days = self._resolve_days(employee, start_date, end_date, total_days)

        eligibility = self.validator.check(employee, leave_type, start_date, end_date, days)
        eligibility.raise_if_ineligible()
        policy = self.policies.get_policy(employee.region, leave_type, employee.role)

        warnings = list(eligibility.warnings)
        with unit_of_work(self.db):
            self._check_balance(employee, policy, start_date.year, days)
            request = LeaveRequest(
                employee_id=employee.id,
                leave_type=leave_type,
                start_date=start_date,
                end_date=end_date,
                total_days=days,
                reason=reason,
                status=LeaveStatus.DRAFT if draft else LeaveStatus.PENDING,
            )
            self.db.add(request)
            self.db.flush()
            request_id = request.id

            chain = None
            if not draft:
                chain = self.chains.build(request_id, employee.id, leave_type)
                self.chains.persist(chain)

        outcome = SubmissionOutcome(
            leave_request_id=request_id,
            status=LeaveStatus.DRAFT if draft else LeaveStatus.PENDING,
            total_days=days,
            levels=chain.levels if chain else [],
            warnings=warnings,
        )
        self.log_info(f"Leave request {request_id} submitted by {employee.id}", leave_request_id=request_id)
        self._audit(outcome.warnings, employee.id, "leave.submitted", "leave_request", request_id,
                    {"leave_type": leave_type, "start_date": start_date, "end_date": end_date,
                     "total_days": days, "status": outcome.status})
        if chain is not None:
            self._after_chain(outcome, chain, employee.id)
        return outcome

    def submit_draft(self, leave_request_id: int, actor_id: str) -> SubmissionOutcome:
        """Move a DRAFT request into the approval flow."""
        request = self.db.get(LeaveRequest, leave_request_id)
        if request is None:
            raise NotFoundError(f"Leave request not found: {leave_request_id}")
        if request.status != LeaveStatus.DRAFT:
            raise AlreadyProcessedError(f"Leave request is {request.status.value}, not DRAFT")
        if actor_id != request.employee_id:
            raise PolicyViolationError("Only the requester can submit a draft")

        employee = self.directory.get(request.employee_id)
        days = to_decimal(request.total_days)
        eligibility = self.validator.check(
            employee, request.leave_type, request.start_date, request.end_date, days,
            exclude_request_id=request.id,
        )
        eligibility.raise_if_ineligible()
        policy = self.policies.get_policy(employee.region, request.leave_type, employee.role)

        with unit_of_work(self.db):
            self._check_balance(employee, policy, request.start_date.year, days)
            updated = (
                self.db.query(LeaveRequest)
                .filter(LeaveRequest.id == leave_request_id, LeaveRequest.status == LeaveStatus.DRAFT)
                .update({"status": LeaveStatus.PENDING, "updated_at": self.clock.now()}, synchronize_session="fetch")
            )
            if updated != 1:
                raise AlreadyProcessedError("Leave request is no longer a draft")
            chain = self.chains.build(leave_request_id, employee.id, request.leave_type)
            self.chains.persist(chain)

        outcome = SubmissionOutcome(
            leave_request_id=leave_request_id,
            status=LeaveStatus.PENDING,
            total_days=days,
            levels=chain.levels,
            warnings=list(eligibility.warnings),
        )
        self._audit(outcome.warnings, actor_id, "leave.submitted", "leave_request", leave_request_id,
                    {"from_draft": True})
        self._after_chain(outcome, chain, employee.id)
        return outcome

    def _after_chain(self, outcome: SubmissionOutcome, chain: ApprovalChain, employee_id: str):
        outcome.warnings.extend(chain.warnings)
        first = chain.first_level
        self._notify(outcome.warnings, first.approver_id, events.APPROVAL_PENDING, {
            "leave_request_id": outcome.leave_request_id,
            "level": first.level,
            "employee_id": employee_id,
            "leave_type": chain.leave_type,
            "total_days": outcome.total_days,
        })
        self._audit(outcome.warnings, employee_id, "approval_chain.built", "leave_request", outcome.leave_request_id,
                    {"levels": [lv.model_dump() for lv in chain.levels],
                     "omitted": [o.model_dump() for o in chain.omitted]})

    def _resolve_days(self, employee: EmployeeSnapshot, start: date, end: date,
                      total_days: Optional[Decimal]) -> Decimal:
        if end < start:
            raise ValidationError("End date cannot be before start date")
        span = Decimal((end - start).days + 1)
        if total_days is None:
            days = self.working_days(start, end, employee.region)
            if days <= 0:
                raise ValidationError("Requested range contains no working days")
            return days

        days = to_decimal(total_days)
        reasons = []
        if days <= 0:
            reasons.append("Total days must be greater than zero")
        if days > span:
            reasons.append(f"Total days {days} exceed the {span} calendar days requested")
        if days % HALF_DAY != 0:
            reasons.append("Total days must be a multiple of 0.5")
        if reasons:
            raise ValidationError(reasons[0], reasons=reasons)
        return days

    def _check_balance(self, employee: EmployeeSnapshot, policy: PolicyRule, year: int, days: Decimal):
        if policy.is_unlimited or not policy.enforce_balance:
            return
        balance = self.balances.get_or_create(employee.id, policy.leave_type, year)
        if to_decimal(balance.available) < days:
            raise PolicyViolationError(
                f"Insufficient {policy.leave_type.value} balance: available {balance.available}, requested {days}",
                details={"available": str(balance.available), "requested": str(days)},
            )
