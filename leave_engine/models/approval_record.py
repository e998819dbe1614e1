from sqlalchemy import Column, Integer, String, Enum, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from leave_engine.database import Base
from leave_engine.models.enums import ApprovalStatus


class ApprovalRecord(Base):
    """One level of a request's approval chain. PENDING moves to a decision exactly once."""
    __tablename__ = "approval_records"
    __table_args__ = (
        UniqueConstraint("leave_request_id", "level", name="uq_approval_request_level"),
    )

    id = Column(Integer, primary_key=True, index=True)
    leave_request_id = Column(Integer, ForeignKey("leave_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    level = Column(Integer, nullable=False)
    approver_id = Column(String, nullable=False, index=True)
    approver_role = Column(String, nullable=True)
    status = Column(Enum(ApprovalStatus), default=ApprovalStatus.PENDING, nullable=False, index=True)
    comments = Column(Text, nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    leave_request = relationship("LeaveRequest", back_populates="approvals")
