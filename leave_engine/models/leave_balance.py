from decimal import Decimal
from sqlalchemy import Column, Integer, String, Numeric, Enum, UniqueConstraint
from leave_engine.database import Base
from leave_engine.models.enums import LeaveType


class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type", "year", name="uq_balance_employee_type_year"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, index=True, nullable=False)
    leave_type = Column(Enum(LeaveType), index=True, nullable=False)
    year = Column(Integer, nullable=False)
    total_entitlement = Column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    used = Column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    available = Column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    carry_forward = Column(Numeric(10, 2), default=Decimal("0"), nullable=False)

    def is_consistent(self) -> bool:
        """available == total_entitlement + carry_forward - used"""
        return Decimal(self.available) == Decimal(self.total_entitlement) + Decimal(self.carry_forward) - Decimal(self.used)

    def __repr__(self):
        return (
            f"<LeaveBalance {self.employee_id} {self.leave_type.value} {self.year}: "
            f"total={self.total_entitlement} cf={self.carry_forward} used={self.used} available={self.available}>"
        )
