from decimal import Decimal
from sqlalchemy import Column, Integer, String, Date, Boolean, Numeric, Enum, DateTime, Text
from sqlalchemy.sql import func
from leave_engine.database import Base
from leave_engine.models.enums import WorkLogStatus, WorkType


class CompOffWorkLog(Base):
    __tablename__ = "comp_off_work_logs"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, index=True, nullable=False)
    work_date = Column(Date, nullable=False, index=True)
    hours_worked = Column(Numeric(10, 2), nullable=False)
    work_type = Column(Enum(WorkType), nullable=False)
    work_description = Column(Text, nullable=True)

    comp_off_earned = Column(Numeric(10, 2), default=Decimal("0"), nullable=False)  # hours
    comp_off_days = Column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    remaining_hours = Column(Numeric(10, 2), default=Decimal("0"), nullable=False)  # not creditable

    verified = Column(Boolean, default=False, nullable=False)
    verified_by = Column(String, nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    verification_comments = Column(Text, nullable=True)
    expires_on = Column(Date, nullable=True)
    status = Column(Enum(WorkLogStatus), default=WorkLogStatus.PENDING, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
