"""
Per-employee idempotency records for the balance batches.
A row here means the matching credit or roll-over was committed; re-runs skip it.
"""
from sqlalchemy import Column, Integer, String, Date, Boolean, Numeric, Enum, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func
from leave_engine.database import Base
from leave_engine.models.enums import LeaveType


class MonthlyAccrual(Base):
    __tablename__ = "monthly_accruals"
    __table_args__ = (
        UniqueConstraint("employee_id", "year", "month", name="uq_accrual_employee_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, index=True, nullable=False)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    credits = Column(JSON, nullable=False, default=dict)  # {leave_type: "1.00"}
    is_pro_rated = Column(Boolean, default=False, nullable=False)
    joining_date = Column(Date, nullable=True)
    processed_at = Column(DateTime(timezone=True), server_default=func.now())


class EntitlementGrant(Base):
    __tablename__ = "entitlement_grants"
    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type", "year", name="uq_grant_employee_type_year"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, index=True, nullable=False)
    leave_type = Column(Enum(LeaveType), nullable=False)
    year = Column(Integer, nullable=False)
    days = Column(Numeric(10, 2), nullable=False)
    is_pro_rated = Column(Boolean, default=False, nullable=False)
    source = Column(String, nullable=False)  # annual_allocation | carry_forward
    granted_at = Column(DateTime(timezone=True), server_default=func.now())


class CarryForwardRecord(Base):
    __tablename__ = "carry_forward_records"
    __table_args__ = (
        UniqueConstraint("employee_id", "from_year", name="uq_carry_forward_employee_year"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, index=True, nullable=False)
    from_year = Column(Integer, nullable=False)
    # {leave_type: {"carried": "5.00", "forfeited": "3.00", "cap": "5.00"}}
    details = Column(JSON, nullable=False, default=dict)
    processed_at = Column(DateTime(timezone=True), server_default=func.now())
