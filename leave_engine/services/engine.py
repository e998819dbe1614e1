"""
Leave Governance Engine facade.

Every public operation returns a `Result` instead of raising, so callers
branch on `error.kind` (VALIDATION, NOT_FOUND, CONFLICT, POLICY_VIOLATION,
SYSTEM). Store failures surface as retryable SYSTEM errors.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from leave_engine.core.clock import Clock, SystemClock
from leave_engine.core.exceptions import AppException, EngineSystemError
from leave_engine.core.schemas import Result
from leave_engine.services.accrual import AccrualProcessor, AnnualAllocationProcessor
from leave_engine.services.approval_workflow import ApprovalStateMachine
from leave_engine.services.audit import AuditService
from leave_engine.services.balance_store import SqlBalanceStore
from leave_engine.services.carry_forward import CarryForwardProcessor
from leave_engine.services.comp_off import CompOffConverter, CompOffExpiryProcessor
from leave_engine.services.directory import SqlEmployeeDirectory, SqlRoleDirectory
from leave_engine.services.holiday_calendar import SqlHolidayCalendar
from leave_engine.services.leave_service import LeaveService
from leave_engine.services.notification import StoreNotificationSink
from leave_engine.services.policy_engine import PolicyRuleEngine, policy_engine

logger = logging.getLogger(__name__)


class LeaveGovernanceEngine:
    def __init__(
        self,
        db: Session,
        clock: Clock = None,
        notifier=None,
        audit=None,
        policies: PolicyRuleEngine = None,
        directory=None,
        roles=None,
        balances=None,
        holidays=None,
        rejection_mode: str = None,
        chain_mode: str = None,
        lease_seconds: int = None,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.notifier = notifier or StoreNotificationSink(db, self.clock)
        self.audit = audit or AuditService(db)
        self.policies = policies or policy_engine
        self.directory = directory or SqlEmployeeDirectory(db)
        self.roles = roles or SqlRoleDirectory(db)
        self.balances = balances or SqlBalanceStore(db)
        self.holidays = holidays or SqlHolidayCalendar(db)

        shared = dict(clock=self.clock, notifier=self.notifier, audit=self.audit, policies=self.policies,
                      directory=self.directory, balances=self.balances)
        self.leaves = LeaveService(db, roles=self.roles, holidays=self.holidays, chain_mode=chain_mode, **shared)
        self.approvals = ApprovalStateMachine(db, rejection_mode=rejection_mode, **shared)
        self.comp_off = CompOffConverter(db, holidays=self.holidays, **shared)
        self.accrual = AccrualProcessor(db, lease_seconds=lease_seconds, **shared)
        self.annual_allocation = AnnualAllocationProcessor(db, lease_seconds=lease_seconds, **shared)
        self.carry_forward = CarryForwardProcessor(db, lease_seconds=lease_seconds, **shared)
        self.comp_off_expiry = CompOffExpiryProcessor(db, lease_seconds=lease_seconds, **shared)

    def _call(self, operation: str, fn: Callable[[], Any]) -> Result:
        try:
            data = fn()
        except AppException as e:
            logger.info(f"{operation} rejected: {e.error_code} {e.message}")
            return Result.fail(e)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"{operation} failed on the store: {e}", exc_info=True)
            return Result.fail(EngineSystemError(details={"operation": operation}))
        except Exception as e:
            self.db.rollback()
            logger.exception(f"{operation} failed unexpectedly")
            return Result.fail(EngineSystemError(f"{operation} failed: {e}", details={"operation": operation}))
        return Result.ok(data, warnings=list(getattr(data, "warnings", None) or []))

    # Policy
    def get_policy(self, region, leave_type, role=None) -> Result:
        return self._call("get_policy", lambda: self.policies.get_policy(region, leave_type, role))

    def policy_summary(self, region, role=None) -> Result:
        return self._call("policy_summary", lambda: self.policies.summary(region, role))

    # Requests
    def check_eligibility(self, employee_id: str, leave_type, start_date: date, end_date: date,
                          total_days: Optional[Decimal] = None) -> Result:
        return self._call("check_eligibility", lambda: self.leaves.check_eligibility(
            employee_id, leave_type, start_date, end_date, total_days))

    def submit_leave(self, employee_id: str, leave_type, start_date: date, end_date: date,
                     total_days: Optional[Decimal] = None, reason: Optional[str] = None,
                     draft: bool = False) -> Result:
        return self._call("submit_leave", lambda: self.leaves.submit(
            employee_id, leave_type, start_date, end_date, total_days, reason, draft))

    def submit_draft(self, leave_request_id: int, actor_id: str) -> Result:
        return self._call("submit_draft", lambda: self.leaves.submit_draft(leave_request_id, actor_id))

    def process_decision(self, leave_request_id: int, approver_id: str, action,
                         comments: Optional[str] = None) -> Result:
        return self._call("process_decision", lambda: self.approvals.process_decision(
            leave_request_id, approver_id, action, comments))

    def cancel_leave(self, leave_request_id: int, actor_id: str) -> Result:
        return self._call("cancel_leave", lambda: self.approvals.cancel(leave_request_id, actor_id))

    def request_status(self, leave_request_id: int) -> Result:
        return self._call("request_status", lambda: self.approvals.status(leave_request_id))

    def pending_approvals(self, approver_id: str) -> Result:
        return self._call("pending_approvals", lambda: self.approvals.pending_for(approver_id))

    # Comp-off
    def validate_comp_off(self, work_date: date, hours_worked, region) -> Result:
        return self._call("validate_comp_off", lambda: self.comp_off.validate(work_date, hours_worked, region))

    def calculate_comp_off_days(self, hours, region="INDIA") -> Result:
        return self._call("calculate_comp_off_days", lambda: self.comp_off.calculate_comp_off_days(hours, region))

    def submit_work_log(self, employee_id: str, work_date: date, hours_worked,
                        description: Optional[str] = None) -> Result:
        return self._call("submit_work_log", lambda: self.comp_off.submit_work_log(
            employee_id, work_date, hours_worked, description))

    def verify_work_log(self, log_id: int, manager_id: str, approve: bool,
                        comments: Optional[str] = None) -> Result:
        return self._call("verify_work_log", lambda: self.comp_off.verify_work_log(
            log_id, manager_id, approve, comments))

    # Batch periods
    def run_accrual(self, period_key: str) -> Result:
        return self._call("run_accrual", lambda: self.accrual.run_period(period_key))

    def run_annual_allocation(self, period_key: str) -> Result:
        return self._call("run_annual_allocation", lambda: self.annual_allocation.run_period(period_key))

    def run_carry_forward(self, period_key: str) -> Result:
        return self._call("run_carry_forward", lambda: self.carry_forward.run_period(period_key))

    def run_comp_off_expiry(self, period_key: str) -> Result:
        return self._call("run_comp_off_expiry", lambda: self.comp_off_expiry.run_period(period_key))

    def flush_notifications(self) -> Result:
        return self._call("flush_notifications", self.notifier.flush_retries)
