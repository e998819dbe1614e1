from sqlalchemy import Column, Integer, String, Date, Numeric, Enum, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from leave_engine.database import Base
from leave_engine.models.enums import LeaveStatus, LeaveType


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, index=True, nullable=False)
    leave_type = Column(Enum(LeaveType), index=True, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_days = Column(Numeric(10, 2), nullable=False)
    reason = Column(String, nullable=True)
    # Only the approval workflow moves a request out of PENDING.
    status = Column(Enum(LeaveStatus), default=LeaveStatus.PENDING, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    approvals = relationship(
        "ApprovalRecord",
        back_populates="leave_request",
        order_by="ApprovalRecord.level",
        cascade="all, delete-orphan",
    )
