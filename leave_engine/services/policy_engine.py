"""
Regional leave policies.

One immutable table per region, keyed by leave type. Lookups resolve a role
override first, then the regional default, and fail with NotFoundError when the
leave type is not offered in that region. Nothing here touches the database.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from leave_engine.core.exceptions import NotFoundError
from leave_engine.models.enums import (
    ApproverKind,
    EntitlementKind,
    Gender,
    LeaveType,
    MaritalStatus,
    Region,
    Role,
    SENIOR_ROLES,
    parse_enum,
)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Entitlement(_Frozen):
    kind: EntitlementKind
    monthly_rate: Decimal = Decimal("0")
    annual_days: Decimal = Decimal("0")
    # Joining on or before this day of the month earns the full monthly rate.
    join_day_threshold: Optional[int] = None
    prorate_annual: bool = False


class EligibilityRule(_Frozen):
    genders: Tuple[Gender, ...] = ()
    marital_statuses: Tuple[MaritalStatus, ...] = ()
    min_service_months: int = 0
    one_per_calendar_year: bool = False


class Documentation(_Frozen):
    required: bool = False
    after_days: Optional[Decimal] = None
    description: Optional[str] = None


class RoleOverride(_Frozen):
    annual_days: Optional[Decimal] = None
    carry_forward_cap: Optional[Decimal] = None


class PolicyRule(_Frozen):
    region: Region
    leave_type: LeaveType
    description: str
    entitlement: Entitlement
    eligibility: EligibilityRule = EligibilityRule()
    carry_forward_cap: Decimal = Decimal("0")
    approval_levels: Tuple[ApproverKind, ...] = (ApproverKind.REPORTING_MANAGER, ApproverKind.HR_ADMIN)
    blocks_other_leave: bool = False
    documentation: Documentation = Documentation()
    advance_notice_days: int = 0
    enforce_balance: bool = True
    role_overrides: Dict[Role, RoleOverride] = {}
    # Role the rule was resolved for, None for the regional default.
    resolved_role: Optional[Role] = None

    @property
    def label(self) -> str:
        return self.leave_type.value.replace("_", " ").capitalize()

    @property
    def annual_days(self) -> Decimal:
        return self.entitlement.annual_days

    @property
    def is_unlimited(self) -> bool:
        return self.entitlement.kind == EntitlementKind.UNLIMITED

    def for_role(self, role: Optional[Role]) -> "PolicyRule":
        override = self.role_overrides.get(role) if role is not None else None
        if override is None:
            return self
        update: Dict[str, Any] = {"resolved_role": role}
        if override.carry_forward_cap is not None:
            update["carry_forward_cap"] = override.carry_forward_cap
        if override.annual_days is not None:
            update["entitlement"] = self.entitlement.model_copy(update={"annual_days": override.annual_days})
        return self.model_copy(update=update)


class CompOffRules(_Frozen):
    minimum_hours: Decimal = Decimal("5")
    weekend_rate: Decimal = Decimal("1.0")
    holiday_rate: Decimal = Decimal("1.0")
    hours_per_day: Decimal = Decimal("8")
    hours_per_half_day: Decimal = Decimal("5")


def _d(value) -> Decimal:
    return Decimal(str(value))


RM_HR = (ApproverKind.REPORTING_MANAGER, ApproverKind.HR_ADMIN)
RM_SKIP_HR = (ApproverKind.REPORTING_MANAGER, ApproverKind.SKIP_LEVEL_MANAGER, ApproverKind.HR_ADMIN)

MONTHLY_CREDIT = Entitlement(
    kind=EntitlementKind.MONTHLY_ACCRUAL,
    monthly_rate=_d("1.0"),
    annual_days=_d("12"),
    join_day_threshold=15,
)

LWP_RULE = dict(
    leave_type=LeaveType.LEAVE_WITHOUT_PAY,
    description="Leave without pay, unlimited duration once the service requirement is met",
    entitlement=Entitlement(kind=EntitlementKind.UNLIMITED),
    eligibility=EligibilityRule(min_service_months=3),
    approval_levels=RM_HR,
    advance_notice_days=7,
    enforce_balance=False,
)

COMP_OFF_RULE = dict(
    leave_type=LeaveType.COMPENSATORY_OFF,
    description="Compensatory off earned for verified weekend or holiday work",
    entitlement=Entitlement(kind=EntitlementKind.EARNED),
    approval_levels=RM_SKIP_HR,
    advance_notice_days=1,
)

INDIA_POLICIES: Dict[LeaveType, PolicyRule] = {
    p.leave_type: p
    for p in (
        PolicyRule(
            region=Region.INDIA,
            leave_type=LeaveType.CASUAL_LEAVE,
            description="12 days casual leave per year (1 per month)",
            entitlement=MONTHLY_CREDIT,
            carry_forward_cap=_d("0"),
            advance_notice_days=1,
        ),
        PolicyRule(
            region=Region.INDIA,
            leave_type=LeaveType.PRIVILEGE_LEAVE,
            description="12 days privilege leave per year (1 per month)",
            entitlement=MONTHLY_CREDIT,
            carry_forward_cap=_d("30"),
            advance_notice_days=1,
        ),
        PolicyRule(
            region=Region.INDIA,
            leave_type=LeaveType.SICK_LEAVE,
            description="12 days sick leave per year",
            entitlement=Entitlement(kind=EntitlementKind.ANNUAL_GRANT, annual_days=_d("12")),
            documentation=Documentation(
                required=True, after_days=_d("2"), description="Medical certificate required for more than 2 days"
            ),
        ),
        PolicyRule(
            region=Region.INDIA,
            leave_type=LeaveType.MATERNITY_LEAVE,
            description="180 days maternity leave for married female employees",
            entitlement=Entitlement(kind=EntitlementKind.ANNUAL_GRANT, annual_days=_d("180")),
            eligibility=EligibilityRule(
                genders=(Gender.FEMALE,),
                marital_statuses=(MaritalStatus.MARRIED,),
                one_per_calendar_year=True,
            ),
            blocks_other_leave=True,
            documentation=Documentation(required=True, description="Medical certificate from a registered practitioner"),
            advance_notice_days=30,
        ),
        PolicyRule(
            region=Region.INDIA,
            leave_type=LeaveType.PATERNITY_LEAVE,
            description="5 days paternity leave for married male employees",
            entitlement=Entitlement(kind=EntitlementKind.ANNUAL_GRANT, annual_days=_d("5")),
            eligibility=EligibilityRule(
                genders=(Gender.MALE,),
                marital_statuses=(MaritalStatus.MARRIED,),
                one_per_calendar_year=True,
            ),
            advance_notice_days=7,
        ),
        PolicyRule(region=Region.INDIA, **COMP_OFF_RULE),
        PolicyRule(region=Region.INDIA, **LWP_RULE),
    )
}

PTO_OVERRIDES = {
    Role.MANAGER: RoleOverride(annual_days=_d("15"), carry_forward_cap=_d("5")),
    Role.AVP: RoleOverride(annual_days=_d("15"), carry_forward_cap=_d("5")),
    # Senior leadership gets more days but carries nothing over.
    **{role: RoleOverride(annual_days=_d("20"), carry_forward_cap=_d("0")) for role in SENIOR_ROLES},
}

USA_POLICIES: Dict[LeaveType, PolicyRule] = {
    p.leave_type: p
    for p in (
        PolicyRule(
            region=Region.USA,
            leave_type=LeaveType.PTO,
            description="Paid Time Off based on role (12-20 days)",
            entitlement=Entitlement(kind=EntitlementKind.ANNUAL_GRANT, annual_days=_d("12"), prorate_annual=True),
            carry_forward_cap=_d("3"),
            advance_notice_days=3,
            role_overrides=PTO_OVERRIDES,
        ),
        PolicyRule(
            region=Region.USA,
            leave_type=LeaveType.BEREAVEMENT_LEAVE,
            description="5 days bereavement leave",
            entitlement=Entitlement(kind=EntitlementKind.ANNUAL_GRANT, annual_days=_d("5")),
        ),
        PolicyRule(region=Region.USA, **COMP_OFF_RULE),
        PolicyRule(region=Region.USA, **LWP_RULE),
    )
}

POLICY_TABLES: Dict[Region, Dict[LeaveType, PolicyRule]] = {
    Region.INDIA: INDIA_POLICIES,
    Region.USA: USA_POLICIES,
}

COMP_OFF_RULES: Dict[Region, CompOffRules] = {
    Region.INDIA: CompOffRules(),
    Region.USA: CompOffRules(),
}

_missing = [r.value for r in Region if r not in POLICY_TABLES or r not in COMP_OFF_RULES]
if _missing:
    raise RuntimeError(f"No leave policy table for region(s): {', '.join(_missing)}")


def round_to_half(value: Decimal) -> Decimal:
    """Round to the nearest 0.5 day."""
    return (value * 2).quantize(Decimal("1"), rounding=ROUND_HALF_UP) / 2


class PolicyRuleEngine:
    """Side-effect-free policy lookups. Safe to share between threads."""

    def __init__(self, tables: Dict[Region, Dict[LeaveType, PolicyRule]] = None):
        self.tables = tables or POLICY_TABLES

    def get_policy(self, region, leave_type, role=None) -> PolicyRule:
        region = parse_enum(Region, region, "region")
        leave_type = parse_enum(LeaveType, leave_type, "leave_type")
        role = parse_enum(Role, role, "role") if role is not None else None

        rule = self.tables[region].get(leave_type)
        if rule is None:
            raise NotFoundError(
                f"{leave_type.value} is not defined for region {region.value}",
                details={"region": region.value, "leave_type": leave_type.value},
            )
        return rule.for_role(role)

    def find_policy(self, region, leave_type, role=None) -> Optional[PolicyRule]:
        try:
            return self.get_policy(region, leave_type, role)
        except NotFoundError:
            return None

    def leave_types_for(self, region) -> List[LeaveType]:
        region = parse_enum(Region, region, "region")
        return list(self.tables[region].keys())

    def policies_for(self, region, role=None) -> List[PolicyRule]:
        region = parse_enum(Region, region, "region")
        return [self.get_policy(region, t, role) for t in self.tables[region]]

    def comp_off_rules(self, region) -> CompOffRules:
        return COMP_OFF_RULES[parse_enum(Region, region, "region")]

    def applies_to(self, policy: PolicyRule, employee) -> bool:
        """Gender and marital predicates only; used to decide who receives a grant."""
        rule = policy.eligibility
        if rule.genders and employee.gender not in rule.genders:
            return False
        if rule.marital_statuses and employee.marital_status not in rule.marital_statuses:
            return False
        return True

    def prorated_annual_days(self, policy: PolicyRule, joining_date, year: int) -> Decimal:
        """
        Annual grant for `year`. Joiners in that year get the share of the
        remaining months (joining month included), rounded to the nearest 0.5.
        """
        annual = policy.annual_days
        if not policy.entitlement.prorate_annual or joining_date.year != year:
            return annual
        remaining_months = 12 - joining_date.month + 1
        return round_to_half(annual * remaining_months / 12)

    def summary(self, region, role=None) -> Dict[str, Any]:
        region = parse_enum(Region, region, "region")
        return {
            "region": region.value,
            "role": role.value if isinstance(role, Role) else role,
            "leave_types": [
                {
                    "leave_type": p.leave_type.value,
                    "description": p.description,
                    "entitlement": p.entitlement.kind.value,
                    "annual_days": str(p.annual_days),
                    "carry_forward_cap": str(p.carry_forward_cap),
                    "approval_levels": [k.value for k in p.approval_levels],
                    "blocks_other_leave": p.blocks_other_leave,
                    "advance_notice_days": p.advance_notice_days,
                }
                for p in self.policies_for(region, role)
            ],
            "comp_off": self.comp_off_rules(region).model_dump(mode="json"),
        }


policy_engine = PolicyRuleEngine()
