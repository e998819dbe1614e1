from typing import Optional

from fastapi import APIRouter, Depends

from leave_engine.models.enums import Region, Role
from leave_engine.routers.deps import get_engine, respond
from leave_engine.schemas.leave import (
    CancelRequest,
    DecisionRequest,
    DraftSubmitRequest,
    EligibilityRequest,
    LeaveRequestCreate,
)
from leave_engine.services.engine import LeaveGovernanceEngine

router = APIRouter(prefix="/leave", tags=["leave"])


@router.post("/requests")
def submit_leave_request(payload: LeaveRequestCreate, engine: LeaveGovernanceEngine = Depends(get_engine)):
    return respond(engine.submit_leave(
        payload.employee_id,
        payload.leave_type,
        payload.start_date,
        payload.end_date,
        total_days=payload.total_days,
        reason=payload.reason,
        draft=payload.draft,
    ))


@router.post("/requests/{request_id}/submit")
def submit_draft(request_id: int, payload: DraftSubmitRequest, engine: LeaveGovernanceEngine = Depends(get_engine)):
    return respond(engine.submit_draft(request_id, payload.actor_id))


@router.get("/requests/{request_id}")
def get_leave_request(request_id: int, engine: LeaveGovernanceEngine = Depends(get_engine)):
    return respond(engine.request_status(request_id))


@router.post("/requests/{request_id}/decision")
def decide_leave_request(request_id: int, payload: DecisionRequest, engine: LeaveGovernanceEngine = Depends(get_engine)):
    return respond(engine.process_decision(request_id, payload.approver_id, payload.action, payload.comments))


@router.post("/requests/{request_id}/cancel")
def cancel_leave_request(request_id: int, payload: CancelRequest, engine: LeaveGovernanceEngine = Depends(get_engine)):
    return respond(engine.cancel_leave(request_id, payload.actor_id))


@router.get("/approvals/pending/{approver_id}")
def pending_approvals(approver_id: str, engine: LeaveGovernanceEngine = Depends(get_engine)):
    return respond(engine.pending_approvals(approver_id))


@router.post("/eligibility")
def check_eligibility(payload: EligibilityRequest, engine: LeaveGovernanceEngine = Depends(get_engine)):
    return respond(engine.check_eligibility(
        payload.employee_id, payload.leave_type, payload.start_date, payload.end_date, payload.total_days
    ))


@router.get("/policies/{region}")
def policy_summary(region: Region, role: Optional[Role] = None, engine: LeaveGovernanceEngine = Depends(get_engine)):
    return respond(engine.policy_summary(region, role))
