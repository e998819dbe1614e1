from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional
from datetime import date, datetime

from leave_engine.models.audit_log import AuditLog
from leave_engine.services.base import BaseService


def sanitize(obj):
    """Make details JSON-safe: pydantic models, enums, decimals and dates."""
    if hasattr(obj, "model_dump"):
        return sanitize(obj.model_dump())
    if isinstance(obj, dict):
        return {str(k.value if isinstance(k, Enum) else k): sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [sanitize(i) for i in obj]
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    return obj


class AuditService(BaseService):
    def record(
        self,
        actor: str,
        action: str,
        entity_type: str,
        entity_id: Optional[Any],
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Append an audit entry in its own commit.
        Called after the primary operation committed; a failure here is logged
        and reported back as False so the caller can surface a warning.
        """
        try:
            entry = AuditLog(
                actor=actor or "system",
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id) if entity_id is not None else None,
                details=sanitize(details or {}),
            )
            self.db.add(entry)
            self.db.commit()
            return True
        except Exception as e:
            self.db.rollback()
            self.log_warning(f"Audit write failed for {action} on {entity_type}:{entity_id}: {e}")
            return False

    def trail(self, entity_type: str, entity_id: Any):
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == str(entity_id))
            .order_by(AuditLog.id)
            .all()
        )
