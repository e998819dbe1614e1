# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    employee, holiday, leave_request, approval_record, leave_balance,
    accrual, batch_run, comp_off, notification, audit_log
)

# Explicit class exports for cleaner imports
from .employee import Employee
from .holiday import Holiday
from .leave_request import LeaveRequest
from .approval_record import ApprovalRecord
from .leave_balance import LeaveBalance
from .accrual import MonthlyAccrual, EntitlementGrant, CarryForwardRecord
from .batch_run import BatchRun
from .comp_off import CompOffWorkLog
from .notification import Notification
from .audit_log import AuditLog

__all__ = [
    "Employee",
    "Holiday",
    "LeaveRequest",
    "ApprovalRecord",
    "LeaveBalance",
    "MonthlyAccrual",
    "EntitlementGrant",
    "CarryForwardRecord",
    "BatchRun",
    "CompOffWorkLog",
    "Notification",
    "AuditLog",
]
