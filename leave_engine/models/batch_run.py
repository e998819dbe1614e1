from sqlalchemy import Column, Integer, String, Enum, DateTime, JSON, Text, UniqueConstraint
from leave_engine.database import Base
from leave_engine.models.enums import BatchRunStatus


class BatchRun(Base):
    """Single-flight guard for one (job, period). The unique key rejects a second concurrent trigger."""
    __tablename__ = "batch_runs"
    __table_args__ = (
        UniqueConstraint("job_name", "period_key", name="uq_batch_job_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    job_name = Column(String, nullable=False, index=True)
    period_key = Column(String, nullable=False)
    status = Column(Enum(BatchRunStatus), default=BatchRunStatus.RUNNING, nullable=False)
    attempts = Column(Integer, default=1, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    summary = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
