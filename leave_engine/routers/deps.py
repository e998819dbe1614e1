from fastapi import Depends, Request
from sqlalchemy.orm import Session

from leave_engine.core.schemas import Result
from leave_engine.database import get_db
from leave_engine.services.engine import LeaveGovernanceEngine
from leave_engine.services.notification import RetryQueue, StoreNotificationSink


def get_notification_queue(request: Request) -> RetryQueue:
    """Retry queue owned by the running app; created in the lifespan."""
    return request.app.state.notification_queue


def get_engine(
    db: Session = Depends(get_db),
    queue: RetryQueue = Depends(get_notification_queue),
) -> LeaveGovernanceEngine:
    notifier = StoreNotificationSink(db, clock=queue.clock, queue=queue)
    return LeaveGovernanceEngine(db, notifier=notifier)


def respond(result: Result):
    """Successful results go out as-is; failures are raised for the app-wide AppException handler."""
    if not result.success:
        raise result.error.to_exception()
    return result.to_dict()
