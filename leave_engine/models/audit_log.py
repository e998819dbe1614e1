from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from leave_engine.database import Base


class AuditLog(Base):
    """Append-only trace of every engine state change."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor = Column(String, nullable=False, index=True)
    action = Column(String, nullable=False, index=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=True, index=True)
    details = Column(JSON, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), index=True)
