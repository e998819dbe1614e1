"""
Per-level approval decisions and the terminal transitions of a leave request.

Only this module moves a request out of PENDING. Every transition is a
conditional UPDATE on the expected current status, executed inside one unit of
work together with the balance debit, so two concurrent final approvals cannot
both succeed.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from leave_engine.core.clock import Clock
from leave_engine.core.config import settings
from leave_engine.core.exceptions import (
    AlreadyProcessedError,
    ConflictError,
    NotFoundError,
    PolicyViolationError,
)
from leave_engine.database import unit_of_work
from leave_engine.models.approval_record import ApprovalRecord
from leave_engine.models.enums import ApprovalStatus, DecisionAction, LeaveStatus, LeaveType, Role, parse_enum
from leave_engine.models.leave_request import LeaveRequest
from leave_engine.services import interfaces as events
from leave_engine.services.balance_store import SqlBalanceStore, to_decimal
from leave_engine.services.base import EngineService
from leave_engine.services.directory import SqlEmployeeDirectory
from leave_engine.services.interfaces import BalanceStore, EmployeeDirectory
from leave_engine.services.policy_engine import PolicyRuleEngine, policy_engine


class DecisionOutcome(BaseModel):
    leave_request_id: int
    level: int
    decision: ApprovalStatus
    completed: bool
    status: LeaveStatus
    next_level: Optional[int] = None
    next_approver_id: Optional[str] = None
    warnings: List[str] = []


class LevelView(BaseModel):
    level: int
    approver_id: str
    approver_role: Optional[str] = None
    status: ApprovalStatus
    comments: Optional[str] = None
    decided_at: Optional[datetime] = None


class RequestStatusView(BaseModel):
    leave_request_id: int
    employee_id: str
    leave_type: LeaveType
    start_date: date
    end_date: date
    total_days: Decimal
    status: LeaveStatus
    current_level: Optional[int] = None
    levels: List[LevelView] = []


class PendingApproval(BaseModel):
    leave_request_id: int
    level: int
    employee_id: str
    leave_type: LeaveType
    start_date: date
    end_date: date
    total_days: Decimal


class CancelOutcome(BaseModel):
    leave_request_id: int
    previous_status: LeaveStatus
    status: LeaveStatus
    restored_days: Decimal = Decimal("0")
    warnings: List[str] = []


class ApprovalStateMachine(EngineService):
    def __init__(
        self,
        db: Session,
        clock: Clock = None,
        notifier=None,
        audit=None,
        policies: PolicyRuleEngine = None,
        directory: EmployeeDirectory = None,
        balances: BalanceStore = None,
        rejection_mode: str = None,
    ):
        super().__init__(db, clock, notifier, audit)
        self.policies = policies or policy_engine
        self.directory = directory or SqlEmployeeDirectory(db)
        self.balances = balances or SqlBalanceStore(db)
        self.rejection_mode = rejection_mode or settings.rejection_mode

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------
    def process_decision(
        self, leave_request_id: int, approver_id: str, action, comments: Optional[str] = None
    ) -> DecisionOutcome:
        action = parse_enum(DecisionAction, action, "action")

        with unit_of_work(self.db):
            request = self._lock_request(leave_request_id)
            record = (
                self.db.query(ApprovalRecord)
                .filter(
                    ApprovalRecord.leave_request_id == leave_request_id,
                    ApprovalRecord.approver_id == approver_id,
                    ApprovalRecord.status == ApprovalStatus.PENDING,
                )
                .order_by(ApprovalRecord.level)
                .with_for_update()
                .first()
            )
            if record is None or request.status != LeaveStatus.PENDING:
                raise AlreadyProcessedError(
                    details={"leave_request_id": leave_request_id, "approver_id": approver_id}
                )

            earlier = self._first_pending(leave_request_id, below=record.level)
            if earlier is not None:
                raise ConflictError(
                    f"Level {earlier.level} must be decided before level {record.level}",
                    details={"leave_request_id": leave_request_id, "pending_level": earlier.level},
                    error_code="OUT_OF_ORDER",
                )

            decided_at = self.clock.now()
            decision = ApprovalStatus.APPROVED if action == DecisionAction.APPROVE else ApprovalStatus.REJECTED
            updated = (
                self.db.query(ApprovalRecord)
                .filter(ApprovalRecord.id == record.id, ApprovalRecord.status == ApprovalStatus.PENDING)
                .update(
                    {"status": decision, "comments": comments, "decided_at": decided_at},
                    synchronize_session="fetch",
                )
            )
            if updated != 1:
                raise AlreadyProcessedError(details={"leave_request_id": leave_request_id, "level": record.level})

            level = record.level
            employee_id = request.employee_id
            leave_type = request.leave_type
            total_days = to_decimal(request.total_days)

            if decision == ApprovalStatus.REJECTED:
                self._transition(request, LeaveStatus.PENDING, LeaveStatus.REJECTED)
                if self.rejection_mode == "skip_remaining":
                    self._skip_pending(leave_request_id, decided_at)
                outcome = DecisionOutcome(
                    leave_request_id=leave_request_id,
                    level=level,
                    decision=decision,
                    completed=True,
                    status=LeaveStatus.REJECTED,
                )
            else:
                following = self._first_pending(leave_request_id)
                if following is not None:
                    outcome = DecisionOutcome(
                        leave_request_id=leave_request_id,
                        level=level,
                        decision=decision,
                        completed=False,
                        status=LeaveStatus.PENDING,
                        next_level=following.level,
                        next_approver_id=following.approver_id,
                    )
                else:
                    self._transition(request, LeaveStatus.PENDING, LeaveStatus.APPROVED)
                    self._debit(request)
                    outcome = DecisionOutcome(
                        leave_request_id=leave_request_id,
                        level=level,
                        decision=decision,
                        completed=True,
                        status=LeaveStatus.APPROVED,
                    )

        self.log_info(
            f"Leave request {leave_request_id} level {level} {decision.value} by {approver_id}",
            leave_request_id=leave_request_id,
        )
        self._after_decision(outcome, approver_id, employee_id, leave_type, total_days, comments)
        return outcome

    def _after_decision(self, outcome: DecisionOutcome, approver_id, employee_id, leave_type, total_days, comments):
        warnings = outcome.warnings
        payload = {
            "leave_request_id": outcome.leave_request_id,
            "leave_type": leave_type.value,
            "total_days": str(total_days),
            "level": outcome.level,
        }
        if outcome.status == LeaveStatus.REJECTED:
            self._notify(warnings, employee_id, events.LEAVE_REJECTED, {**payload, "comments": comments})
        elif outcome.status == LeaveStatus.APPROVED:
            self._notify(warnings, employee_id, events.LEAVE_APPROVED, payload)
        else:
            self._notify(warnings, outcome.next_approver_id, events.APPROVAL_PENDING,
                         {**payload, "level": outcome.next_level, "employee_id": employee_id})
            self._notify(warnings, employee_id, events.LEAVE_PROGRESS, payload)

        self._audit(
            warnings,
            approver_id,
            f"approval.{outcome.decision.value.lower()}",
            "leave_request",
            outcome.leave_request_id,
            {"level": outcome.level, "comments": comments, "request_status": outcome.status},
        )
        if outcome.status == LeaveStatus.APPROVED:
            self._audit(
                warnings,
                approver_id,
                "balance.debited",
                "leave_balance",
                f"{employee_id}:{leave_type.value}",
                {"leave_request_id": outcome.leave_request_id, "days": total_days},
            )

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------
    def cancel(self, leave_request_id: int, actor_id: str) -> CancelOutcome:
        with unit_of_work(self.db):
            request = self._lock_request(leave_request_id)
            if actor_id != request.employee_id:
                actor = self.directory.find(actor_id)
                if actor is None or actor.role != Role.HR_ADMIN:
                    raise PolicyViolationError(
                        "Only the requester or HR can cancel a leave request",
                        details={"leave_request_id": leave_request_id, "actor_id": actor_id},
                    )

            previous = request.status
            restored = Decimal("0")
            if previous in (LeaveStatus.PENDING, LeaveStatus.DRAFT):
                self._transition(request, previous, LeaveStatus.CANCELLED)
                if self.rejection_mode == "skip_remaining":
                    self._skip_pending(leave_request_id, self.clock.now())
            elif previous == LeaveStatus.APPROVED:
                if request.start_date <= self.clock.today():
                    raise PolicyViolationError(
                        "Cannot cancel a leave that has already started",
                        details={"leave_request_id": leave_request_id, "start_date": request.start_date.isoformat()},
                    )
                self._transition(request, previous, LeaveStatus.CANCELLED)
                restored = self._restore(request)
            else:
                raise ConflictError(
                    f"Leave request is already {previous.value}",
                    details={"leave_request_id": leave_request_id},
                )
            employee_id = request.employee_id

        outcome = CancelOutcome(
            leave_request_id=leave_request_id,
            previous_status=previous,
            status=LeaveStatus.CANCELLED,
            restored_days=restored,
        )
        self._notify(outcome.warnings, employee_id, events.LEAVE_CANCELLED,
                     {"leave_request_id": leave_request_id, "cancelled_by": actor_id})
        self._audit(outcome.warnings, actor_id, "leave.cancelled", "leave_request", leave_request_id,
                    {"previous_status": previous, "restored_days": restored})
        return outcome

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def status(self, leave_request_id: int) -> RequestStatusView:
        request = self.db.get(LeaveRequest, leave_request_id)
        if request is None:
            raise NotFoundError(f"Leave request not found: {leave_request_id}")
        levels = [LevelView.model_validate(r, from_attributes=True) for r in request.approvals]
        current = next((lv.level for lv in levels if lv.status == ApprovalStatus.PENDING), None)
        return RequestStatusView(
            leave_request_id=request.id,
            employee_id=request.employee_id,
            leave_type=request.leave_type,
            start_date=request.start_date,
            end_date=request.end_date,
            total_days=to_decimal(request.total_days),
            status=request.status,
            current_level=current if request.status == LeaveStatus.PENDING else None,
            levels=levels,
        )

    def pending_for(self, approver_id: str) -> List[PendingApproval]:
        """Requests where `approver_id` holds the lowest PENDING level."""
        rows = (
            self.db.query(ApprovalRecord, LeaveRequest)
            .join(LeaveRequest, LeaveRequest.id == ApprovalRecord.leave_request_id)
            .filter(
                ApprovalRecord.approver_id == approver_id,
                ApprovalRecord.status == ApprovalStatus.PENDING,
                LeaveRequest.status == LeaveStatus.PENDING,
            )
            .order_by(LeaveRequest.id, ApprovalRecord.level)
            .all()
        )
        pending = []
        for record, request in rows:
            current = self._first_pending(request.id)
            if current is None or current.id != record.id:
                continue
            pending.append(
                PendingApproval(
                    leave_request_id=request.id,
                    level=record.level,
                    employee_id=request.employee_id,
                    leave_type=request.leave_type,
                    start_date=request.start_date,
                    end_date=request.end_date,
                    total_days=to_decimal(request.total_days),
                )
            )
        return pending

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _lock_request(self, leave_request_id: int) -> LeaveRequest:
        request = (
            self.db.query(LeaveRequest)
            .filter(LeaveRequest.id == leave_request_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if request is None:
            raise NotFoundError(
                f"Leave request not found: {leave_request_id}", details={"leave_request_id": leave_request_id}
            )
        return request

    def _first_pending(self, leave_request_id: int, below: Optional[int] = None) -> Optional[ApprovalRecord]:
        query = self.db.query(ApprovalRecord).filter(
            ApprovalRecord.leave_request_id == leave_request_id,
            ApprovalRecord.status == ApprovalStatus.PENDING,
        )
        if below is not None:
            query = query.filter(ApprovalRecord.level < below)
        return query.order_by(ApprovalRecord.level).first()

    def _transition(self, request: LeaveRequest, expected: LeaveStatus, target: LeaveStatus):
        updated = (
            self.db.query(LeaveRequest)
            .filter(LeaveRequest.id == request.id, LeaveRequest.status == expected)
            .update({"status": target, "updated_at": self.clock.now()}, synchronize_session="fetch")
        )
        if updated != 1:
            raise AlreadyProcessedError(
                "Leave request is no longer in the expected state",
                details={"leave_request_id": request.id, "expected": expected.value},
            )

    def _skip_pending(self, leave_request_id: int, decided_at: datetime):
        self.db.query(ApprovalRecord).filter(
            ApprovalRecord.leave_request_id == leave_request_id,
            ApprovalRecord.status == ApprovalStatus.PENDING,
        ).update({"status": ApprovalStatus.SKIPPED, "decided_at": decided_at}, synchronize_session="fetch")

    def _policy_for(self, request: LeaveRequest):
        employee = self.directory.get(request.employee_id)
        return self.policies.get_policy(employee.region, request.leave_type, employee.role)

    def _debit(self, request: LeaveRequest):
        policy = self._policy_for(request)
        if policy.is_unlimited:
            return
        days = to_decimal(request.total_days)
        year = request.start_date.year
        balance = self.balances.get_or_create(request.employee_id, request.leave_type, year)
        if policy.enforce_balance and to_decimal(balance.available) < days:
            raise PolicyViolationError(
                f"Insufficient {request.leave_type.value} balance: available {balance.available}, requested {days}",
                details={
                    "leave_request_id": request.id,
                    "available": str(balance.available),
                    "requested": str(days),
                },
            )
        self.balances.apply_delta(
            request.employee_id, request.leave_type, year, used_delta=days, available_delta=-days
        )

    def _restore(self, request: LeaveRequest) -> Decimal:
        policy = self._policy_for(request)
        if policy.is_unlimited:
            return Decimal("0")
        days = to_decimal(request.total_days)
        self.balances.apply_delta(
            request.employee_id, request.leave_type, request.start_date.year, used_delta=-days, available_delta=days
        )
        return days
