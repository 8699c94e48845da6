import logging
from datetime import date, datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger
from contextvars import ContextVar

from pld_scheduler.core.config import settings

# Context variable to store request_id for the current task/request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Fields a scheduling log line may carry through `extra=`
LEAVE_FIELDS = ("leave_request_id", "member_id", "division", "request_date", "leave_type", "leave_status")

_configured = False


def leave_log_context(request) -> Dict[str, Any]:
    """Structured fields describing a leave request, for a logger's `extra=`."""
    return {
        "leave_request_id": request.id,
        "member_id": request.member_id,
        "division": request.division,
        "request_date": request.request_date,
        "leave_type": request.leave_type,
        "leave_status": request.status,
    }


class SchedulerJsonFormatter(jsonlogger.JsonFormatter):
    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super(SchedulerJsonFormatter, self).add_fields(log_record, record, message_dict)

        # HTTP correlation id; leave requests are logged as leave_request_id
        req_id = request_id_var.get()
        if req_id:
            log_record["request_id"] = req_id

        for field in LEAVE_FIELDS:
            value = log_record.get(field)
            if value is None:
                log_record.pop(field, None)
            elif isinstance(value, (date, datetime)):
                log_record[field] = value.strftime("%Y-%m-%d")

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        if log_record.get("level"):
            log_record["level"] = log_record["level"].upper()
        else:
            log_record["level"] = record.levelname


def setup_logging():
    global _configured
    if _configured:
        return

    logger = logging.getLogger()
    log_handler = logging.StreamHandler()
    log_handler.setFormatter(SchedulerJsonFormatter("%(timestamp) %(level) %(name) %(message)"))
    logger.addHandler(log_handler)
    logger.setLevel(settings.log_level.upper())

    # Suppress verbose logs from some libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    _configured = True
