import logging
from sqlalchemy.orm import Session

from leave_engine.core.clock import Clock, SystemClock


class BaseService:
    """
    Shared plumbing for the governance services: the caller's session,
    an injectable clock and a per-class logger.
    """

    def __init__(self, db: Session, clock: Clock = None):
        self.db = db
        self.clock = clock or SystemClock()
        self._logger = logging.getLogger(f"leave_engine.services.{self.__class__.__name__}")

    def log_info(self, message: str, **extra):
        self._logger.info(message, extra=extra or None)

    def log_warning(self, message: str, **extra):
        self._logger.warning(message, extra=extra or None)

    def log_error(self, message: str, **extra):
        self._logger.error(message, extra=extra or None)


class EngineService(BaseService):
    """
    Base for services that change leave state. Notifications and audit
    entries are emitted after the primary commit; their failures come back
    as warnings instead of exceptions.
    """

    def __init__(self, db: Session, clock: Clock = None, notifier=None, audit=None):
        super().__init__(db, clock)
        # Imported here: both sinks build on BaseService.
        from leave_engine.services.audit import AuditService
        from leave_engine.services.notification import StoreNotificationSink

        self.notifier = notifier or StoreNotificationSink(db, self.clock)
        self.audit = audit or AuditService(db)

    def _notify(self, warnings: list, user_id: str, event_type: str, payload: dict):
        if not user_id:
            return
        try:
            delivered = self.notifier.notify(user_id, event_type, payload)
        except Exception as e:
            self.log_warning(f"Notification sink raised for {user_id}: {e}")
            delivered = False
        if delivered is False:
            warnings.append(f"Notification {event_type} to {user_id} was not delivered; queued for retry")

    def _audit(self, warnings: list, actor: str, action: str, entity_type: str, entity_id, details: dict = None):
        if not self.audit.record(actor, action, entity_type, entity_id, details):
            warnings.append(f"Audit entry for {action} on {entity_type} {entity_id} could not be written")
