from decimal import Decimal

from fastapi import APIRouter, Depends, Query

from leave_engine.models.enums import Region
from leave_engine.routers.deps import get_engine, respond
from leave_engine.schemas.leave import WorkLogCreate, WorkLogValidateRequest, WorkLogVerifyRequest
from leave_engine.services.engine import LeaveGovernanceEngine

router = APIRouter(prefix="/comp-off", tags=["comp-off"])


@router.post("/validate")
def validate_work(payload: WorkLogValidateRequest, engine: LeaveGovernanceEngine = Depends(get_engine)):
    return respond(engine.validate_comp_off(payload.work_date, payload.hours_worked, payload.region))


@router.get("/calculate")
def calculate_days(
    hours: Decimal = Query(..., gt=0, le=24),
    region: Region = Region.INDIA,
    engine: LeaveGovernanceEngine = Depends(get_engine),
):
    return respond(engine.calculate_comp_off_days(hours, region))


@router.post("/work-logs")
def submit_work_log(payload: WorkLogCreate, engine: LeaveGovernanceEngine = Depends(get_engine)):
    return respond(engine.submit_work_log(
        payload.employee_id, payload.work_date, payload.hours_worked, payload.description
    ))


@router.post("/work-logs/{log_id}/verify")
def verify_work_log(log_id: int, payload: WorkLogVerifyRequest, engine: LeaveGovernanceEngine = Depends(get_engine)):
    return respond(engine.verify_work_log(log_id, payload.manager_id, payload.approve, payload.comments))
