"""
Closed value sets shared by the models and the governance services.

Every column that used to carry a free-form string (region, role, leave type,
statuses) is one of these enums, so an unknown value fails at the boundary
instead of falling through a policy lookup.
"""
import enum

from leave_engine.core.exceptions import ValidationError


class Region(str, enum.Enum):
    INDIA = "INDIA"
    USA = "USA"


class Role(str, enum.Enum):
    """
    Employee roles.

    AVP and above are the US seniority bands that drive PTO overrides;
    VP, SVP and EVP are the senior bands with no carry-forward.
    """
    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    HR_ADMIN = "HR_ADMIN"
    AVP = "AVP"
    VP = "VP"
    SVP = "SVP"
    EVP = "EVP"


SENIOR_ROLES = frozenset({Role.VP, Role.SVP, Role.EVP})


class Gender(str, enum.Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


class MaritalStatus(str, enum.Enum):
    SINGLE = "SINGLE"
    MARRIED = "MARRIED"
    DIVORCED = "DIVORCED"
    WIDOWED = "WIDOWED"


class EmployeeStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class LeaveType(str, enum.Enum):
    CASUAL_LEAVE = "CASUAL_LEAVE"
    PRIVILEGE_LEAVE = "PRIVILEGE_LEAVE"
    SICK_LEAVE = "SICK_LEAVE"
    MATERNITY_LEAVE = "MATERNITY_LEAVE"
    PATERNITY_LEAVE = "PATERNITY_LEAVE"
    COMPENSATORY_OFF = "COMPENSATORY_OFF"
    LEAVE_WITHOUT_PAY = "LEAVE_WITHOUT_PAY"
    PTO = "PTO"
    BEREAVEMENT_LEAVE = "BEREAVEMENT_LEAVE"


class LeaveStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class ApprovalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SKIPPED = "SKIPPED"  # only written when REJECTION_MODE=skip_remaining


class DecisionAction(str, enum.Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"


class ApproverKind(str, enum.Enum):
    REPORTING_MANAGER = "REPORTING_MANAGER"
    SKIP_LEVEL_MANAGER = "SKIP_LEVEL_MANAGER"
    HR_ADMIN = "HR_ADMIN"


class EntitlementKind(str, enum.Enum):
    MONTHLY_ACCRUAL = "MONTHLY_ACCRUAL"
    ANNUAL_GRANT = "ANNUAL_GRANT"
    EARNED = "EARNED"
    UNLIMITED = "UNLIMITED"


class WorkType(str, enum.Enum):
    WEEKEND = "WEEKEND"
    HOLIDAY = "HOLIDAY"
    EXTENDED_HOURS = "EXTENDED_HOURS"
    INVALID = "INVALID"


class WorkLogStatus(str, enum.Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class BatchRunStatus(str, enum.Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


def parse_enum(enum_cls, value, field: str = None):
    """Coerce a raw value into `enum_cls` or raise ValidationError naming the field."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        label = field or enum_cls.__name__
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"Unknown {label}: {value!r}",
            reasons=[f"{label} must be one of {allowed}"],
            details={"field": label, "value": str(value)},
        )
