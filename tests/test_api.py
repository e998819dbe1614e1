import pytest
from datetime import date, timedelta
from fastapi import status

from leave_engine.models.enums import LeaveType
from leave_engine.models.notification import Notification
from leave_engine.services.notification import RetryQueue, StoreNotificationSink
from tests.factories import set_balance


def _next_monday(weeks_ahead=2):
    today = date.today()
    return today + timedelta(days=7 - today.weekday()) + timedelta(weeks=weeks_ahead)


def _last_saturday():
    today = date.today()
    return today - timedelta(days=(today.weekday() - 5) % 7)


def _submit_lwp(client, employee_id="priya"):
    start = _next_monday()
    return client.post("/api/leave/requests", json={
        "employee_id": employee_id,
        "leave_type": "LEAVE_WITHOUT_PAY",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=1)).isoformat(),
        "reason": "Family event",
    })


def test_submit_leave_request(client):
    response = _submit_lwp(client)
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["success"] is True
    assert body["data"]["status"] == "PENDING"
    assert body["data"]["total_days"] == "2"
    assert [level["approver_id"] for level in body["data"]["levels"]] == ["manager", "hr-admin"]


def test_full_approval_over_http(client):
    request_id = _submit_lwp(client).json()["data"]["leave_request_id"]

    pending = client.get("/api/leave/approvals/pending/manager").json()["data"]
    assert [p["leave_request_id"] for p in pending] == [request_id]

    first = client.post(f"/api/leave/requests/{request_id}/decision",
                        json={"approver_id": "manager", "action": "APPROVE"})
    assert first.json()["data"]["next_approver_id"] == "hr-admin"

    final = client.post(f"/api/leave/requests/{request_id}/decision",
                        json={"approver_id": "hr-admin", "action": "APPROVE", "comments": "Enjoy"})
    assert final.status_code == 200
    assert final.json()["data"]["status"] == "APPROVED"

    view = client.get(f"/api/leave/requests/{request_id}").json()["data"]
    assert view["status"] == "APPROVED"
    assert [level["status"] for level in view["levels"]] == ["APPROVED", "APPROVED"]


def test_wrong_approver_is_a_conflict(client):
    request_id = _submit_lwp(client).json()["data"]["leave_request_id"]
    response = client.post(f"/api/leave/requests/{request_id}/decision",
                           json={"approver_id": "ravi", "action": "APPROVE"})
    assert response.status_code == status.HTTP_409_CONFLICT
    error = response.json()["errors"][0]
    assert error["code"] == "ALREADY_PROCESSED"
    assert error["kind"] == "CONFLICT"


def test_cancel_over_http(client):
    request_id = _submit_lwp(client).json()["data"]["leave_request_id"]
    response = client.post(f"/api/leave/requests/{request_id}/cancel", json={"actor_id": "priya"})
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "CANCELLED"


def test_draft_then_submit(client):
    start = _next_monday()
    draft = client.post("/api/leave/requests", json={
        "employee_id": "priya",
        "leave_type": "LEAVE_WITHOUT_PAY",
        "start_date": start.isoformat(),
        "end_date": start.isoformat(),
        "draft": True,
    }).json()["data"]
    assert draft["status"] == "DRAFT"
    assert draft["levels"] == []
    assert client.get("/api/leave/approvals/pending/manager").json()["data"] == []

    submitted = client.post(f"/api/leave/requests/{draft['leave_request_id']}/submit", json={"actor_id": "priya"})
    assert submitted.json()["data"]["status"] == "PENDING"
    assert len(client.get("/api/leave/approvals/pending/manager").json()["data"]) == 1


def test_ineligible_submission_returns_reasons(client):
    start = _next_monday(weeks_ahead=8)
    response = client.post("/api/leave/requests", json={
        "employee_id": "anita",
        "leave_type": "MATERNITY_LEAVE",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=30)).isoformat(),
    })
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    error = response.json()["errors"][0]
    assert error["kind"] == "VALIDATION"
    assert error["reasons"] == ["Maternity leave is only available for married employees"]


def test_insufficient_balance_is_a_policy_violation(client, db_session):
    start = _next_monday()
    set_balance(db_session, "priya", LeaveType.CASUAL_LEAVE, start.year, "0")
    response = client.post("/api/leave/requests", json={
        "employee_id": "priya",
        "leave_type": "CASUAL_LEAVE",
        "start_date": start.isoformat(),
        "end_date": start.isoformat(),
    })
    assert response.status_code == 422
    assert response.json()["errors"][0]["kind"] == "POLICY_VIOLATION"


def test_unknown_employee_is_404(client):
    response = _submit_lwp(client, employee_id="nobody")
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["success"] is False


def test_unknown_leave_type_fails_request_validation(client):
    response = client.post("/api/leave/requests", json={
        "employee_id": "priya",
        "leave_type": "SABBATICAL",
        "start_date": "2025-03-24",
        "end_date": "2025-03-24",
    })
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["errors"][0]["field"] == "leave_type"


def test_eligibility_endpoint(client):
    start = _next_monday(weeks_ahead=8)
    response = client.post("/api/leave/eligibility", json={
        "employee_id": "anita",
        "leave_type": "MATERNITY_LEAVE",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=30)).isoformat(),
    })
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["eligible"] is False
    assert data["reasons"] == ["Maternity leave is only available for married employees"]


def test_policy_summary_for_role(client):
    response = client.get("/api/leave/policies/USA", params={"role": "VP"})
    assert response.status_code == 200
    types = {entry["leave_type"]: entry for entry in response.json()["data"]["leave_types"]}
    assert types["PTO"]["annual_days"] == "20"


def test_comp_off_calculation(client):
    data = client.get("/api/comp-off/calculate", params={"hours": 6}).json()["data"]
    assert data["half_days"] == 1
    assert data["total_days"] == "0.5"
    assert data["remaining_hours"] == "1"


def test_comp_off_work_log_flow(client):
    saturday = _last_saturday()
    validation = client.post("/api/comp-off/validate", json={
        "work_date": saturday.isoformat(), "hours_worked": "6", "region": "INDIA",
    }).json()["data"]
    assert validation["eligible"] is True

    log = client.post("/api/comp-off/work-logs", json={
        "employee_id": "priya", "work_date": saturday.isoformat(), "hours_worked": "6",
    }).json()["data"]
    assert log["status"] == "PENDING"

    verified = client.post(f"/api/comp-off/work-logs/{log['log_id']}/verify",
                           json={"manager_id": "manager", "approve": True})
    assert verified.status_code == 200
    assert verified.json()["data"]["status"] == "VERIFIED"


def test_batch_period_runs_once(client):
    first = client.post("/api/batch/accrual/2025-03")
    assert first.status_code == 200
    assert first.json()["data"]["status"] == "COMPLETED"

    second = client.post("/api/batch/accrual/2025-03")
    assert second.status_code == status.HTTP_409_CONFLICT
    assert second.json()["errors"][0]["code"] == "DUPLICATE_PERIOD"


def test_batch_rejects_bad_period_key(client):
    assert client.post("/api/batch/carry-forward/last-year").status_code == 422


def test_flush_notifications(client):
    response = client.post("/api/batch/notifications/flush")
    assert response.status_code == 200
    assert response.json()["data"] == 0


def test_undelivered_notification_survives_until_a_later_flush(client, db_session, clock, monkeypatch):
    client.app.state.notification_queue = RetryQueue(clock=clock, backoff_seconds=30)
    deliver = StoreNotificationSink._write
    outage = {"remaining": 1}

    def write_during_outage(self, user_id, event_type, payload):
        if user_id == "manager" and outage["remaining"]:
            outage["remaining"] -= 1
            raise RuntimeError("mail relay down")
        return deliver(self, user_id, event_type, payload)

    monkeypatch.setattr(StoreNotificationSink, "_write", write_during_outage)

    body = _submit_lwp(client).json()
    assert "Notification APPROVAL_PENDING to manager was not delivered; queued for retry" in body["warnings"]
    assert client.post("/api/batch/notifications/flush").json()["data"] == 0

    clock.advance(seconds=30)
    assert client.post("/api/batch/notifications/flush").json()["data"] == 1

    db_session.expire_all()
    stored = db_session.query(Notification).filter(Notification.user_id == "manager").all()
    assert [n.event_type for n in stored] == ["APPROVAL_PENDING"]


def test_engine_failures_use_the_error_envelope(client):
    response = client.get("/api/leave/requests/9999")
    assert response.status_code == status.HTTP_404_NOT_FOUND
    body = response.json()
    assert body["success"] is False
    [error] = body["errors"]
    assert error["msg"]
    assert (error["code"], error["kind"], error["reasons"], error["retryable"]) == ("NOT_FOUND", "NOT_FOUND", [], False)
