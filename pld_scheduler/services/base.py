import logging
from contextlib import contextmanager
from typing import Optional
from sqlalchemy.orm import Session

from pld_scheduler.core.logging import leave_log_context
from pld_scheduler.database import backing_store_errors


class BaseService:
    """Shared plumbing for services that work against a database session."""

    def __init__(self, db: Session, actor_id: Optional[int] = None):
        self.db = db
        self.actor_id = actor_id
        self._logger = logging.getLogger(self.__class__.__module__)

    def log_info(self, message: str, request=None):
        self._logger.info(message, extra=leave_log_context(request) if request is not None else None)

    def log_warning(self, message: str, request=None):
        self._logger.warning(message, extra=leave_log_context(request) if request is not None else None)

    @contextmanager
    def transaction(self):
        """
        One unit of work: commit on success, roll back on any failure so that
        a rejected or failed operation leaves no partial state behind.
        """
        try:
            with backing_store_errors():
                yield
                self.db.commit()
        except Exception:
            self.db.rollback()
            raise
