"""
Narrow collaborator contracts consumed by the governance services.

The default implementations are store-backed (see directory.py,
balance_store.py, notification.py, audit.py, holiday_calendar.py); a host
application may hand in its own objects as long as they satisfy these
protocols.
"""
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict

from leave_engine.models.enums import (
    EmployeeStatus,
    Gender,
    LeaveType,
    MaritalStatus,
    Region,
    Role,
)
from leave_engine.models.leave_balance import LeaveBalance


class EmployeeSnapshot(BaseModel):
    """Read-only view of a directory row, detached from the session."""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    name: Optional[str] = None
    region: Region
    role: Role
    reporting_manager_id: Optional[str] = None
    gender: Optional[Gender] = None
    marital_status: Optional[MaritalStatus] = None
    joining_date: date
    status: EmployeeStatus

    @property
    def is_active(self) -> bool:
        return self.status == EmployeeStatus.ACTIVE


# Notification event types
APPROVAL_PENDING = "APPROVAL_PENDING"
LEAVE_APPROVED = "LEAVE_APPROVED"
LEAVE_REJECTED = "LEAVE_REJECTED"
LEAVE_CANCELLED = "LEAVE_CANCELLED"
LEAVE_PROGRESS = "LEAVE_PROGRESS"
COMP_OFF_SUBMITTED = "COMP_OFF_SUBMITTED"
COMP_OFF_VERIFIED = "COMP_OFF_VERIFIED"
COMP_OFF_REJECTED = "COMP_OFF_REJECTED"


class EmployeeDirectory(Protocol):
    def get(self, employee_id: str) -> EmployeeSnapshot: ...

    def find(self, employee_id: str) -> Optional[EmployeeSnapshot]: ...

    def list_active(self, region: Optional[Region] = None) -> List[EmployeeSnapshot]: ...


class RoleDirectory(Protocol):
    def find_active_holder(self, role: Role, exclude: Optional[str] = None) -> Optional[str]: ...


class BalanceStore(Protocol):
    def find(self, employee_id: str, leave_type: LeaveType, year: int) -> Optional[LeaveBalance]: ...

    def get_or_create(self, employee_id: str, leave_type: LeaveType, year: int) -> LeaveBalance: ...

    def apply_delta(
        self,
        employee_id: str,
        leave_type: LeaveType,
        year: int,
        used_delta: Decimal = Decimal("0"),
        available_delta: Decimal = Decimal("0"),
        entitlement_delta: Decimal = Decimal("0"),
    ) -> LeaveBalance: ...

    def set_carry_forward(self, employee_id: str, leave_type: LeaveType, year: int, amount: Decimal) -> LeaveBalance: ...


class NotificationSink(Protocol):
    def notify(self, user_id: str, event_type: str, payload: Dict[str, Any]) -> bool: ...


class HolidayCalendar(Protocol):
    def is_holiday(self, day: date, region: Region) -> bool: ...


class AuditSink(Protocol):
    def record(
        self,
        actor: str,
        action: str,
        entity_type: str,
        entity_id: Optional[Any],
        details: Optional[Dict[str, Any]] = None,
    ) -> bool: ...
