from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pld_scheduler.services.base import BaseService
from pld_scheduler.models.audit_log import AuditLog


def _sanitize(obj: Any) -> Any:
    """Make states JSON-safe (enums, dates, nested Pydantic models)."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(i) for i in obj]
    return obj


class AuditService(BaseService):
    def log_action(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[int],
        member_id: Optional[int],
        member_role: Optional[str] = None,
        details: Optional[dict] = None,
        before_state: Optional[dict] = None,
        after_state: Optional[dict] = None
    ):
        """
        Create an audit log entry. Strictly append-only.
        Not committed here: the entry rides in the same transaction as the action it records,
        so a rolled-back transition leaves no trace of having succeeded.
        """
        db_log = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            member_id=member_id,
            member_role=member_role,
            details=_sanitize(details or {}),
            before_state=_sanitize(before_state),
            after_state=_sanitize(after_state)
        )
        self.db.add(db_log)
        return db_log

    def history(self, entity_type: str, entity_id: int):
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.id.asc())
            .all()
        )

    # Static wrapper for module-level helpers that only hold a session
    @staticmethod
    def log(db, *args, **kwargs):
        service = AuditService(db)
        return service.log_action(*args, **kwargs)
