import pytest
from datetime import date
from decimal import Decimal

from leave_engine.core.schemas import ErrorKind
from leave_engine.models.comp_off import CompOffWorkLog
from leave_engine.models.enums import LeaveType, Region, WorkLogStatus, WorkType
from leave_engine.models.holiday import Holiday
from leave_engine.models.leave_balance import LeaveBalance
from leave_engine.services.comp_off import CompOffConverter, calculate_comp_off_days

SATURDAY = date(2025, 3, 15)
SUNDAY = date(2025, 3, 16)
MONDAY = date(2025, 3, 17)
TUESDAY = date(2025, 3, 18)


@pytest.fixture
def converter(db_session, clock, notifier, org):
    return CompOffConverter(db_session, clock, notifier=notifier)


def _comp_off_balance(db, employee_id="priya", year=2025):
    db.expire_all()
    return (
        db.query(LeaveBalance)
        .filter(LeaveBalance.employee_id == employee_id, LeaveBalance.leave_type == LeaveType.COMPENSATORY_OFF,
                LeaveBalance.year == year)
        .first()
    )


def test_six_hours_on_saturday(converter):
    validation = converter.validate(SATURDAY, Decimal("6"), Region.INDIA)
    assert validation.eligible is True
    assert validation.work_type == WorkType.WEEKEND
    assert validation.comp_off_hours == Decimal("6")

    days = converter.calculate_comp_off_days(validation.comp_off_hours)
    assert days.full_days == 0
    assert days.half_days == 1
    assert days.total_days == Decimal("0.5")
    assert days.remaining_hours == Decimal("1")


@pytest.mark.parametrize("hours, full, half, total, remaining", [
    ("4", 0, 0, "0", "4"),
    ("8", 1, 0, "1", "0"),
    ("13", 1, 1, "1.5", "0"),
    ("20", 2, 0, "2", "4"),
    ("0", 0, 0, "0", "0"),
])
def test_hours_to_days(hours, full, half, total, remaining):
    days = calculate_comp_off_days(Decimal(hours))
    assert days.full_days == full
    assert days.half_days == half
    assert days.total_days == Decimal(total)
    assert days.remaining_hours == Decimal(remaining)


def test_weekend_minimum_hours(converter):
    validation = converter.validate(SUNDAY, Decimal("4.5"), Region.INDIA)
    assert validation.eligible is False
    assert validation.errors == ["Weekend work requires minimum 5 hours for comp off eligibility"]


def test_weekday_work_is_not_eligible(converter):
    validation = converter.validate(TUESDAY, Decimal("10"), Region.INDIA)
    assert validation.eligible is False
    assert validation.work_type == WorkType.INVALID
    assert validation.errors == ["Comp off is only available for weekend and holiday work"]


def test_regional_holiday(db_session, converter):
    db_session.add(Holiday(date=MONDAY, name="Holi", region=Region.INDIA))
    db_session.commit()
    assert converter.validate(MONDAY, Decimal("6"), Region.INDIA).work_type == WorkType.HOLIDAY
    assert converter.validate(MONDAY, Decimal("6"), Region.USA).eligible is False


def test_company_wide_holiday(db_session, converter):
    db_session.add(Holiday(date=MONDAY, name="Founders Day", region=None))
    db_session.commit()
    assert converter.validate(MONDAY, Decimal("6"), Region.USA).work_type == WorkType.HOLIDAY


@pytest.mark.parametrize("work_date, hours, message", [
    (SATURDAY, "0", "Hours worked must be greater than 0"),
    (SATURDAY, "25", "Hours worked cannot exceed 24 hours per day"),
    (date(2025, 3, 22), "6", "Cannot log work for future dates"),
    (date(2025, 2, 15), "6", "Cannot log work older than 30 days"),
])
def test_invalid_work_logs(converter, work_date, hours, message):
    validation = converter.validate(work_date, Decimal(hours), Region.INDIA)
    assert validation.eligible is False
    assert validation.errors == [message]


def test_submit_notifies_manager(engine, notifier, org):
    result = engine.submit_work_log("priya", SATURDAY, Decimal("6"), "Release weekend")
    assert result.success
    assert result.data.status == WorkLogStatus.PENDING
    assert result.data.comp_off_days == Decimal("0.5")
    assert notifier.events_for("manager") == ["COMP_OFF_SUBMITTED"]


def test_duplicate_work_log_is_a_conflict(engine, org):
    engine.submit_work_log("priya", SATURDAY, Decimal("6"))
    again = engine.submit_work_log("priya", SATURDAY, Decimal("7"))
    assert again.error.kind == ErrorKind.CONFLICT
    assert again.error.code == "DUPLICATE_WORK_LOG"


def test_invalid_submission_lists_reasons(engine, org):
    result = engine.submit_work_log("priya", TUESDAY, Decimal("6"))
    assert result.error.kind == ErrorKind.VALIDATION
    assert result.error.message.startswith("Work log validation failed")
    assert result.error.reasons == ["Comp off is only available for weekend and holiday work"]


def test_manager_verification_credits_balance(db_session, engine, notifier, org):
    log_id = engine.submit_work_log("priya", SATURDAY, Decimal("6")).data.log_id

    result = engine.verify_work_log(log_id, "manager", True, "Thanks")
    assert result.success
    assert result.data.status == WorkLogStatus.VERIFIED
    assert result.data.expires_on == date(2025, 6, 19)

    balance = _comp_off_balance(db_session)
    assert balance.available == Decimal("0.5")
    assert balance.total_entitlement == Decimal("0.5")
    assert "COMP_OFF_VERIFIED" in notifier.events_for("priya")


def test_only_direct_manager_can_verify(engine, org):
    log_id = engine.submit_work_log("priya", SATURDAY, Decimal("6")).data.log_id
    result = engine.verify_work_log(log_id, "director", True)
    assert result.error.kind == ErrorKind.POLICY_VIOLATION
    assert result.error.message == "Manager does not have authority to verify this work log"


def test_work_log_is_verified_once(db_session, engine, org):
    log_id = engine.submit_work_log("priya", SATURDAY, Decimal("6")).data.log_id
    engine.verify_work_log(log_id, "manager", True)
    again = engine.verify_work_log(log_id, "manager", True)
    assert again.error.code == "ALREADY_PROCESSED"
    assert _comp_off_balance(db_session).available == Decimal("0.5")


def test_rejected_work_log_earns_nothing_and_can_be_resubmitted(db_session, engine, org):
    log_id = engine.submit_work_log("priya", SATURDAY, Decimal("6")).data.log_id
    result = engine.verify_work_log(log_id, "manager", False, "Not approved overtime")
    assert result.data.status == WorkLogStatus.REJECTED
    assert _comp_off_balance(db_session) is None
    assert engine.submit_work_log("priya", SATURDAY, Decimal("6")).success


def test_unknown_work_log(engine, org):
    assert engine.verify_work_log(404, "manager", True).error.kind == ErrorKind.NOT_FOUND


def test_expiry_forfeits_unused_credit(db_session, engine, org):
    log_id = engine.submit_work_log("priya", SATURDAY, Decimal("9")).data.log_id
    engine.verify_work_log(log_id, "manager", True)

    early = engine.run_comp_off_expiry("2025-05").data
    assert early.processed == 0
    assert _comp_off_balance(db_session).available == Decimal("1")

    summary = engine.run_comp_off_expiry("2025-06").data
    assert summary.processed == 1
    balance = _comp_off_balance(db_session)
    assert balance.available == Decimal("0")
    assert balance.is_consistent()
    assert db_session.get(CompOffWorkLog, log_id).status == WorkLogStatus.EXPIRED


def test_expiry_never_takes_more_than_available(db_session, engine, org):
    log_id = engine.submit_work_log("priya", SATURDAY, Decimal("9")).data.log_id
    engine.verify_work_log(log_id, "manager", True)

    balance = _comp_off_balance(db_session)
    balance.used = Decimal("1")
    balance.available = Decimal("0")
    db_session.commit()

    summary = engine.run_comp_off_expiry("2025-06").data
    assert Decimal(summary.results[0].details["forfeited"][str(log_id)]) == Decimal("0")
    balance = _comp_off_balance(db_session)
    assert balance.available == Decimal("0")
    assert balance.used == Decimal("1")
