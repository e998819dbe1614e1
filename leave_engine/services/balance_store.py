"""
Row-level access to leave balances.

Every write re-reads the row under lock and checks
`available == total_entitlement + carry_forward - used` before returning.
Nothing here commits; callers own the transaction.
"""
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from leave_engine.core.exceptions import EngineSystemError
from leave_engine.models.enums import LeaveType
from leave_engine.models.leave_balance import LeaveBalance

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class SqlBalanceStore:
    def __init__(self, db: Session):
        self.db = db

    def _locked(self, employee_id: str, leave_type: LeaveType, year: int) -> Optional[LeaveBalance]:
        return (
            self.db.query(LeaveBalance)
            .filter(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type == leave_type,
                LeaveBalance.year == year,
            )
            .with_for_update()
            .populate_existing()
            .first()
        )

    def find(self, employee_id: str, leave_type: LeaveType, year: int) -> Optional[LeaveBalance]:
        return self._locked(employee_id, leave_type, year)

    def get_or_create(self, employee_id: str, leave_type: LeaveType, year: int) -> LeaveBalance:
        balance = self._locked(employee_id, leave_type, year)
        if balance:
            return balance

        balance = LeaveBalance(
            employee_id=employee_id,
            leave_type=leave_type,
            year=year,
            total_entitlement=ZERO,
            used=ZERO,
            available=ZERO,
            carry_forward=ZERO,
        )
        # A concurrent insert surfaces as IntegrityError on flush and aborts the caller's unit of work.
        self.db.add(balance)
        self.db.flush()
        return balance

    def apply_delta(
        self,
        employee_id: str,
        leave_type: LeaveType,
        year: int,
        used_delta: Decimal = ZERO,
        available_delta: Decimal = ZERO,
        entitlement_delta: Decimal = ZERO,
    ) -> LeaveBalance:
        balance = self.get_or_create(employee_id, leave_type, year)
        balance.used = to_decimal(balance.used) + to_decimal(used_delta)
        balance.available = to_decimal(balance.available) + to_decimal(available_delta)
        balance.total_entitlement = to_decimal(balance.total_entitlement) + to_decimal(entitlement_delta)
        self._check(balance)
        self.db.flush()
        return balance

    def set_carry_forward(self, employee_id: str, leave_type: LeaveType, year: int, amount: Decimal) -> LeaveBalance:
        """Replace the carried-in amount and recompute `available` from the other columns."""
        balance = self.get_or_create(employee_id, leave_type, year)
        balance.carry_forward = to_decimal(amount)
        balance.available = (
            to_decimal(balance.total_entitlement) + to_decimal(balance.carry_forward) - to_decimal(balance.used)
        )
        self._check(balance)
        self.db.flush()
        return balance

    def _check(self, balance: LeaveBalance):
        if not balance.is_consistent():
            logger.error(f"Balance invariant broken: {balance!r}")
            raise EngineSystemError(
                "Leave balance invariant violated",
                details={
                    "employee_id": balance.employee_id,
                    "leave_type": balance.leave_type.value,
                    "year": balance.year,
                },
            )
