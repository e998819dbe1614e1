from collections import deque
from datetime import datetime, timedelta
from typing import Any, Deque, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session
from tenacity import RetryCallState, wait_exponential

from leave_engine.core.clock import Clock, SystemClock
from leave_engine.core.config import settings
from leave_engine.models.notification import Notification
from leave_engine.services.audit import sanitize
from leave_engine.services.base import BaseService


class PendingNotification(BaseModel):
    user_id: str
    event_type: str
    payload: Dict[str, Any] = {}
    attempts: int = 1
    next_attempt_at: datetime


class RetryQueue:
    """
    Bounded FIFO of notifications whose first delivery failed.
    When full, the oldest entry is dropped to make room. Attempt n waits
    backoff_seconds * 2**(n-1), capped at max_backoff_seconds.
    """

    def __init__(
        self,
        clock: Clock = None,
        limit: int = None,
        backoff_seconds: int = None,
        max_attempts: int = None,
        max_backoff_seconds: int = None,
    ):
        self.clock = clock or SystemClock()
        self.limit = limit or settings.notifications.retry_limit
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.notifications.retry_backoff_seconds
        self.max_attempts = max_attempts or settings.notifications.max_attempts
        self.max_backoff_seconds = max_backoff_seconds or settings.notifications.retry_backoff_max_seconds
        self._wait = wait_exponential(multiplier=self.backoff_seconds, max=self.max_backoff_seconds)
        self._items: Deque[PendingNotification] = deque(maxlen=self.limit)
        self.dropped = 0

    def __len__(self):
        return len(self._items)

    def push(self, user_id: str, event_type: str, payload: Dict[str, Any], attempts: int = 1) -> bool:
        """Schedule another attempt. Returns False once the entry has used up its attempts."""
        if attempts >= self.max_attempts:
            self.dropped += 1
            return False
        if len(self._items) == self.limit:
            self.dropped += 1
        delay = self.backoff_for(attempts)
        self._items.append(
            PendingNotification(
                user_id=user_id,
                event_type=event_type,
                payload=payload,
                attempts=attempts,
                next_attempt_at=self.clock.now() + delay,
            )
        )
        return True

    def backoff_for(self, attempts: int) -> timedelta:
        state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})
        state.attempt_number = attempts
        return timedelta(seconds=self._wait(state))

    def pop_due(self) -> List[PendingNotification]:
        now = self.clock.now()
        due = [item for item in self._items if item.next_attempt_at <= now]
        if due:
            self._items = deque((item for item in self._items if item.next_attempt_at > now), maxlen=self.limit)
        return due


class StoreNotificationSink(BaseService):
    """
    Writes notifications to the `notifications` table in their own commit.
    Delivery failures are queued for retry and never propagate to the caller.
    """

    def __init__(self, db: Session, clock: Clock = None, queue: Optional[RetryQueue] = None):
        super().__init__(db, clock)
        self.queue = queue or RetryQueue(clock=self.clock)

    def notify(self, user_id: str, event_type: str, payload: Dict[str, Any]) -> bool:
        try:
            self._write(user_id, event_type, payload)
            return True
        except Exception as e:
            self.log_warning(f"Notification to {user_id} failed, queued for retry: {e}", event_type=event_type)
            self.queue.push(user_id, event_type, payload)
            return False

    def flush_retries(self) -> int:
        """Re-attempt every due entry. Returns how many were delivered."""
        delivered = 0
        for item in self.queue.pop_due():
            try:
                self._write(item.user_id, item.event_type, item.payload)
                delivered += 1
            except Exception as e:
                if not self.queue.push(item.user_id, item.event_type, item.payload, attempts=item.attempts + 1):
                    self.log_error(
                        f"Dropping notification to {item.user_id} after {item.attempts + 1} attempts: {e}",
                        event_type=item.event_type,
                    )
        return delivered

    def _write(self, user_id: str, event_type: str, payload: Dict[str, Any]):
        notification = Notification(user_id=user_id, event_type=event_type, payload=sanitize(payload or {}))
        self.db.add(notification)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def unread_for(self, user_id: str) -> List[Notification]:
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
            .order_by(Notification.id)
            .all()
        )
