from fastapi import APIRouter, Depends

from leave_engine.routers.deps import get_engine, respond
from leave_engine.services.engine import LeaveGovernanceEngine

# Trigger surface for the external scheduler. Each call processes one period.
router = APIRouter(prefix="/batch", tags=["batch"])


@router.post("/accrual/{period_key}")
def run_accrual(period_key: str, engine: LeaveGovernanceEngine = Depends(get_engine)):
    return respond(engine.run_accrual(period_key))


@router.post("/annual-allocation/{period_key}")
def run_annual_allocation(period_key: str, engine: LeaveGovernanceEngine = Depends(get_engine)):
    return respond(engine.run_annual_allocation(period_key))


@router.post("/carry-forward/{period_key}")
def run_carry_forward(period_key: str, engine: LeaveGovernanceEngine = Depends(get_engine)):
    return respond(engine.run_carry_forward(period_key))


@router.post("/comp-off-expiry/{period_key}")
def run_comp_off_expiry(period_key: str, engine: LeaveGovernanceEngine = Depends(get_engine)):
    return respond(engine.run_comp_off_expiry(period_key))


@router.post("/notifications/flush")
def flush_notifications(engine: LeaveGovernanceEngine = Depends(get_engine)):
    return respond(engine.flush_notifications())
