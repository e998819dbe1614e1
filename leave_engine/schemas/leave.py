from pydantic import BaseModel, Field
from datetime import date
from decimal import Decimal
from typing import Optional

from leave_engine.models.enums import DecisionAction, LeaveType, Region


class LeaveRequestCreate(BaseModel):
    employee_id: str
    leave_type: LeaveType
    start_date: date
    end_date: date
    total_days: Optional[Decimal] = None  # counted from working days when omitted
    reason: Optional[str] = None
    draft: bool = False


class DraftSubmitRequest(BaseModel):
    actor_id: str


class DecisionRequest(BaseModel):
    approver_id: str
    action: DecisionAction
    comments: Optional[str] = None


class CancelRequest(BaseModel):
    actor_id: str


class EligibilityRequest(BaseModel):
    employee_id: str
    leave_type: LeaveType
    start_date: date
    end_date: date
    total_days: Optional[Decimal] = None


class WorkLogValidateRequest(BaseModel):
    work_date: date
    hours_worked: Decimal
    region: Region = Region.INDIA


class WorkLogCreate(BaseModel):
    employee_id: str
    work_date: date
    hours_worked: Decimal
    description: Optional[str] = Field(default=None, max_length=2000)


class WorkLogVerifyRequest(BaseModel):
    manager_id: str
    approve: bool
    comments: Optional[str] = None
