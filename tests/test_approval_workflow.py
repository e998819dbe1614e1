import pytest
from datetime import date
from decimal import Decimal

from leave_engine.core.schemas import ErrorKind
from leave_engine.models.approval_record import ApprovalRecord
from leave_engine.models.enums import ApprovalStatus, LeaveStatus, LeaveType
from leave_engine.models.leave_balance import LeaveBalance
from leave_engine.models.leave_request import LeaveRequest
from leave_engine.services.engine import LeaveGovernanceEngine
from tests.factories import RecordingNotifier, set_balance

MONDAY = date(2025, 3, 24)


def _balance(db, employee_id, leave_type, year=2025):
    db.expire_all()
    return (
        db.query(LeaveBalance)
        .filter(LeaveBalance.employee_id == employee_id, LeaveBalance.leave_type == leave_type,
                LeaveBalance.year == year)
        .first()
    )


def _submit(engine, leave_type=LeaveType.COMPENSATORY_OFF, employee_id="priya", start=MONDAY, end=MONDAY):
    result = engine.submit_leave(employee_id, leave_type, start, end)
    assert result.success, result.error
    return result.data.leave_request_id


@pytest.fixture
def comp_off_request(db_session, engine, org):
    set_balance(db_session, "priya", LeaveType.COMPENSATORY_OFF, 2025, "2")
    return _submit(engine)


def test_submission_builds_three_level_chain(engine, comp_off_request, notifier):
    status = engine.request_status(comp_off_request).data
    assert status.status == LeaveStatus.PENDING
    assert status.current_level == 1
    assert [(lv.level, lv.approver_id, lv.status) for lv in status.levels] == [
        (1, "manager", ApprovalStatus.PENDING),
        (2, "director", ApprovalStatus.PENDING),
        (3, "hr-admin", ApprovalStatus.PENDING),
    ]
    assert notifier.events_for("manager") == ["APPROVAL_PENDING"]


def test_approve_then_reject_leaves_later_level_pending(engine, comp_off_request):
    first = engine.process_decision(comp_off_request, "manager", "APPROVE")
    assert first.success
    assert first.data.completed is False
    assert first.data.next_level == 2
    assert first.data.next_approver_id == "director"

    second = engine.process_decision(comp_off_request, "director", "REJECT", "Project deadline")
    assert second.success
    assert second.data.status == LeaveStatus.REJECTED

    status = engine.request_status(comp_off_request).data
    assert status.status == LeaveStatus.REJECTED
    assert status.current_level is None
    assert [lv.status for lv in status.levels] == [
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
        ApprovalStatus.PENDING,
    ]
    assert status.levels[1].comments == "Project deadline"


def test_skip_remaining_mode_marks_later_levels(db_session, clock, notifier, org):
    set_balance(db_session, "priya", LeaveType.COMPENSATORY_OFF, 2025, "2")
    engine = LeaveGovernanceEngine(db_session, clock=clock, notifier=notifier, rejection_mode="skip_remaining")
    request_id = _submit(engine)

    engine.process_decision(request_id, "manager", "APPROVE")
    engine.process_decision(request_id, "director", "REJECT")

    levels = engine.request_status(request_id).data.levels
    assert [lv.status for lv in levels] == [
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
        ApprovalStatus.SKIPPED,
    ]


def test_full_approval_debits_balance(db_session, engine, comp_off_request, notifier):
    for approver in ("manager", "director", "hr-admin"):
        result = engine.process_decision(comp_off_request, approver, "APPROVE")
        assert result.success

    assert result.data.status == LeaveStatus.APPROVED
    assert result.data.completed is True
    balance = _balance(db_session, "priya", LeaveType.COMPENSATORY_OFF)
    assert balance.used == Decimal("1")
    assert balance.available == Decimal("1")
    assert balance.is_consistent()
    assert "LEAVE_APPROVED" in notifier.events_for("priya")


def test_decisions_must_follow_level_order(engine, comp_off_request):
    result = engine.process_decision(comp_off_request, "director", "APPROVE")
    assert result.success is False
    assert result.error.kind == ErrorKind.CONFLICT
    assert result.error.code == "OUT_OF_ORDER"


def test_unrelated_approver_is_rejected(engine, comp_off_request):
    result = engine.process_decision(comp_off_request, "ravi", "APPROVE")
    assert result.error.kind == ErrorKind.CONFLICT
    assert result.error.code == "ALREADY_PROCESSED"


def test_second_decision_on_same_level_is_rejected(engine, comp_off_request):
    assert engine.process_decision(comp_off_request, "manager", "APPROVE").success
    again = engine.process_decision(comp_off_request, "manager", "REJECT")
    assert again.error.code == "ALREADY_PROCESSED"


def test_no_decisions_after_rejection(engine, comp_off_request):
    engine.process_decision(comp_off_request, "manager", "REJECT")
    result = engine.process_decision(comp_off_request, "director", "APPROVE")
    assert result.error.code == "ALREADY_PROCESSED"


def test_unknown_action_is_validation_error(engine, comp_off_request):
    result = engine.process_decision(comp_off_request, "manager", "MAYBE")
    assert result.error.kind == ErrorKind.VALIDATION


def test_unknown_request_is_not_found(engine, org):
    assert engine.process_decision(999, "manager", "APPROVE").error.kind == ErrorKind.NOT_FOUND
    assert engine.request_status(999).error.kind == ErrorKind.NOT_FOUND


def test_failed_final_approval_leaves_no_partial_state(db_session, engine, org):
    balance = set_balance(db_session, "priya", LeaveType.CASUAL_LEAVE, 2025, "1")
    request_id = _submit(engine, LeaveType.CASUAL_LEAVE)
    assert engine.process_decision(request_id, "manager", "APPROVE").success

    # Balance spent elsewhere before HR decides.
    balance.used = Decimal("1")
    balance.available = Decimal("0")
    db_session.commit()

    result = engine.process_decision(request_id, "hr-admin", "APPROVE")
    assert result.error.kind == ErrorKind.POLICY_VIOLATION

    db_session.expire_all()
    assert db_session.get(LeaveRequest, request_id).status == LeaveStatus.PENDING
    hr_record = (
        db_session.query(ApprovalRecord)
        .filter(ApprovalRecord.leave_request_id == request_id, ApprovalRecord.level == 2)
        .one()
    )
    assert hr_record.status == ApprovalStatus.PENDING

    # The same call succeeds once the balance is restored.
    balance = _balance(db_session, "priya", LeaveType.CASUAL_LEAVE)
    balance.total_entitlement = Decimal("2")
    balance.available = Decimal("1")
    db_session.commit()
    retry = engine.process_decision(request_id, "hr-admin", "APPROVE")
    assert retry.success
    assert retry.data.status == LeaveStatus.APPROVED


def test_submission_with_insufficient_balance_writes_nothing(db_session, engine, org):
    set_balance(db_session, "priya", LeaveType.CASUAL_LEAVE, 2025, "0.5")
    result = engine.submit_leave("priya", LeaveType.CASUAL_LEAVE, MONDAY, MONDAY)
    assert result.error.kind == ErrorKind.POLICY_VIOLATION
    assert db_session.query(LeaveRequest).count() == 0
    assert db_session.query(ApprovalRecord).count() == 0


def test_unlimited_leave_is_not_debited(db_session, engine, org):
    request_id = _submit(engine, LeaveType.LEAVE_WITHOUT_PAY, start=date(2025, 3, 31), end=date(2025, 4, 1))
    engine.process_decision(request_id, "manager", "APPROVE")
    result = engine.process_decision(request_id, "hr-admin", "APPROVE")
    assert result.data.status == LeaveStatus.APPROVED
    assert _balance(db_session, "priya", LeaveType.LEAVE_WITHOUT_PAY) is None


def test_pending_approvals_only_show_current_level(engine, comp_off_request):
    assert [p.leave_request_id for p in engine.pending_approvals("manager").data] == [comp_off_request]
    assert engine.pending_approvals("director").data == []

    engine.process_decision(comp_off_request, "manager", "APPROVE")
    assert engine.pending_approvals("manager").data == []
    assert [p.level for p in engine.pending_approvals("director").data] == [2]


def test_requester_cancels_pending_request(engine, comp_off_request):
    result = engine.cancel_leave(comp_off_request, "priya")
    assert result.success
    assert result.data.previous_status == LeaveStatus.PENDING
    assert engine.request_status(comp_off_request).data.status == LeaveStatus.CANCELLED
    assert engine.pending_approvals("manager").data == []


def test_cancel_approved_leave_restores_balance(db_session, engine, comp_off_request):
    for approver in ("manager", "director", "hr-admin"):
        engine.process_decision(comp_off_request, approver, "APPROVE")

    result = engine.cancel_leave(comp_off_request, "hr-admin")
    assert result.success
    assert result.data.restored_days == Decimal("1")
    balance = _balance(db_session, "priya", LeaveType.COMPENSATORY_OFF)
    assert balance.used == Decimal("0")
    assert balance.available == Decimal("2")


def test_started_leave_cannot_be_cancelled(engine, clock, comp_off_request):
    for approver in ("manager", "director", "hr-admin"):
        engine.process_decision(comp_off_request, approver, "APPROVE")
    clock.advance(days=5)

    result = engine.cancel_leave(comp_off_request, "priya")
    assert result.error.kind == ErrorKind.POLICY_VIOLATION


def test_only_requester_or_hr_can_cancel(engine, comp_off_request):
    result = engine.cancel_leave(comp_off_request, "ravi")
    assert result.error.kind == ErrorKind.POLICY_VIOLATION


def test_rejected_request_cannot_be_cancelled(engine, comp_off_request):
    engine.process_decision(comp_off_request, "manager", "REJECT")
    result = engine.cancel_leave(comp_off_request, "priya")
    assert result.error.kind == ErrorKind.CONFLICT


def test_decisions_are_audited(engine, comp_off_request):
    engine.process_decision(comp_off_request, "manager", "APPROVE")
    actions = [entry.action for entry in engine.audit.trail("leave_request", comp_off_request)]
    assert actions == ["leave.submitted", "approval_chain.built", "approval.approved"]


def test_notification_failure_is_a_warning(db_session, clock, org):
    set_balance(db_session, "priya", LeaveType.COMPENSATORY_OFF, 2025, "2")
    engine = LeaveGovernanceEngine(db_session, clock=clock, notifier=RecordingNotifier(fail=True))
    result = engine.submit_leave("priya", LeaveType.COMPENSATORY_OFF, MONDAY, MONDAY)
    assert result.success
    assert "Notification APPROVAL_PENDING to manager was not delivered; queued for retry" in result.warnings
