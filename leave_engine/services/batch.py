"""
Period-keyed batch execution.

`run_period(period_key)` is the scheduler-facing entry point for every batch
job. A BatchRun row per (job, period) is the single-flight guard: a completed
period is rejected, a running one is rejected until its lease expires, and a
failed one is retried. Each employee is processed in its own unit of work and
guarded by a per-employee record, so a retry only touches what is left.
"""
import re
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from leave_engine.core.clock import Clock, as_utc
from leave_engine.core.config import settings
from leave_engine.core.exceptions import ConflictError, ValidationError
from leave_engine.core.logging import correlation_id_var
from leave_engine.database import unit_of_work
from leave_engine.models.batch_run import BatchRun
from leave_engine.models.enums import BatchRunStatus
from leave_engine.services.base import BaseService, EngineService
from leave_engine.services.directory import SqlEmployeeDirectory
from leave_engine.services.interfaces import BalanceStore, EmployeeDirectory, EmployeeSnapshot
from leave_engine.services.balance_store import SqlBalanceStore
from leave_engine.services.policy_engine import PolicyRuleEngine, policy_engine

MONTH_KEY = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")
YEAR_KEY = re.compile(r"^(\d{4})$")

PROCESSED = "processed"
SKIPPED = "skipped"
FAILED = "failed"


def parse_month_key(period_key: str):
    match = MONTH_KEY.match(period_key or "")
    if not match:
        raise ValidationError(f"Invalid period key {period_key!r}, expected YYYY-MM")
    return int(match.group(1)), int(match.group(2))


def parse_year_key(period_key: str) -> int:
    match = YEAR_KEY.match(period_key or "")
    if not match:
        raise ValidationError(f"Invalid period key {period_key!r}, expected YYYY")
    return int(match.group(1))


class EmployeeResult(BaseModel):
    employee_id: str
    status: str
    reason: Optional[str] = None
    details: Dict[str, Any] = {}


class BatchSummary(BaseModel):
    job_name: str
    period_key: str
    run_id: int
    status: BatchRunStatus
    attempts: int
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    results: List[EmployeeResult] = []
    warnings: List[str] = []

    def counts(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": [r.model_dump() for r in self.results if r.status == FAILED],
        }


class BatchGuard(BaseService):
    """Owns the BatchRun rows. Every transition commits immediately."""

    def __init__(self, db: Session, clock: Clock = None, lease_seconds: int = None):
        super().__init__(db, clock)
        self.lease = timedelta(seconds=lease_seconds or settings.batch_lease_seconds)

    def acquire(self, job_name: str, period_key: str) -> BatchRun:
        now = self.clock.now()
        run = (
            self.db.query(BatchRun)
            .filter(BatchRun.job_name == job_name, BatchRun.period_key == period_key)
            .with_for_update()
            .populate_existing()
            .first()
        )
        details = {"job_name": job_name, "period_key": period_key}

        if run is None:
            run = BatchRun(
                job_name=job_name,
                period_key=period_key,
                status=BatchRunStatus.RUNNING,
                attempts=1,
                started_at=now,
            )
            self.db.add(run)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                raise ConflictError(f"{job_name} for {period_key} is already running", details, "RUN_IN_PROGRESS")
            return run

        if run.status == BatchRunStatus.COMPLETED:
            self.db.rollback()
            raise ConflictError(f"{job_name} for {period_key} was already processed", details, "DUPLICATE_PERIOD")
        if run.status == BatchRunStatus.RUNNING and as_utc(run.started_at) + self.lease > now:
            self.db.rollback()
            raise ConflictError(f"{job_name} for {period_key} is already running", details, "RUN_IN_PROGRESS")

        if run.status == BatchRunStatus.RUNNING:
            self.log_warning(f"Taking over stale {job_name} run for {period_key}", run_id=run.id)
        updated = (
            self.db.query(BatchRun)
            .filter(BatchRun.id == run.id, BatchRun.status == run.status, BatchRun.attempts == run.attempts)
            .update(
                {
                    "status": BatchRunStatus.RUNNING,
                    "attempts": run.attempts + 1,
                    "started_at": now,
                    "finished_at": None,
                    "error": None,
                },
                synchronize_session="fetch",
            )
        )
        if updated != 1:
            self.db.rollback()
            raise ConflictError(f"{job_name} for {period_key} is already running", details, "RUN_IN_PROGRESS")
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return run

    def release(self, run_id: int, status: BatchRunStatus, summary: Dict[str, Any], error: Optional[str] = None):
        run = self.db.get(BatchRun, run_id)
        run.status = status
        run.finished_at = self.clock.now()
        run.summary = summary
        run.error = error
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise


class PeriodProcessor(EngineService):
    """
    Base for batch jobs. Subclasses name the job, parse their period key,
    choose the employees and implement `process_employee`, which runs inside
    the employee's unit of work and returns an EmployeeResult.
    """
    job_name: str = "batch"

    def __init__(
        self,
        db: Session,
        clock: Clock = None,
        notifier=None,
        audit=None,
        policies: PolicyRuleEngine = None,
        directory: EmployeeDirectory = None,
        balances: BalanceStore = None,
        lease_seconds: int = None,
    ):
        super().__init__(db, clock, notifier, audit)
        self.policies = policies or policy_engine
        self.directory = directory or SqlEmployeeDirectory(db)
        self.balances = balances or SqlBalanceStore(db)
        self.guard = BatchGuard(db, self.clock, lease_seconds)

    def parse_period(self, period_key: str):
        raise NotImplementedError

    def employees(self, period) -> Iterable[EmployeeSnapshot]:
        return self.directory.list_active()

    def process_employee(self, employee: EmployeeSnapshot, period) -> EmployeeResult:
        raise NotImplementedError

    def run_period(self, period_key: str) -> BatchSummary:
        period = self.parse_period(period_key)
        run = self.guard.acquire(self.job_name, period_key)
        run_id, attempts = run.id, run.attempts
        summary = BatchSummary(
            job_name=self.job_name,
            period_key=period_key,
            run_id=run_id,
            status=BatchRunStatus.RUNNING,
            attempts=attempts,
        )
        token = correlation_id_var.set(f"{self.job_name}:{period_key}:{attempts}")
        try:
            self.log_info(f"Starting {self.job_name} for {period_key} (attempt {attempts})")
            try:
                for employee in self.employees(period):
                    summary.results.append(self._run_one(employee, period, summary))
            except Exception as e:
                self.db.rollback()
                self.log_error(f"{self.job_name} for {period_key} aborted: {e}")
                self.guard.release(run_id, BatchRunStatus.FAILED, summary.counts(), error=str(e))
                raise

            summary.status = BatchRunStatus.FAILED if summary.failed else BatchRunStatus.COMPLETED
            error = f"{summary.failed} employee(s) failed" if summary.failed else None
            self.guard.release(run_id, summary.status, summary.counts(), error=error)
            self.log_info(
                f"Finished {self.job_name} for {period_key}: {summary.processed} processed, "
                f"{summary.skipped} skipped, {summary.failed} failed"
            )
        finally:
            correlation_id_var.reset(token)
        return summary

    def _run_one(self, employee: EmployeeSnapshot, period, summary: BatchSummary) -> EmployeeResult:
        try:
            with unit_of_work(self.db):
                result = self.process_employee(employee, period)
        except Exception as e:
            # Rolled back by the unit of work; the run is marked FAILED and retried later.
            self.log_error(f"{self.job_name} failed for employee {employee.id}: {e}", employee_id=employee.id)
            summary.failed += 1
            return EmployeeResult(employee_id=employee.id, status=FAILED, reason=str(e))

        if result.status == PROCESSED:
            summary.processed += 1
            self._audit(summary.warnings, "system", f"batch.{self.job_name}", "employee", employee.id,
                        {"period_key": summary.period_key, **result.details})
        else:
            summary.skipped += 1
        return result
