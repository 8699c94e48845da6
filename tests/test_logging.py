import json
import logging
from datetime import date, datetime

from pld_scheduler.core.logging import SchedulerJsonFormatter, request_id_var
from pld_scheduler.models.leave_request import LeaveType
from pld_scheduler.services.allotments import set_max_allotment
from pld_scheduler.services.leave_requests import LeaveRequestService

NOW = datetime(2025, 1, 15, 9, 0)
DAY = date(2025, 2, 10)


def _format(**extra):
    record = logging.LogRecord("pld_scheduler.test", logging.INFO, __file__, 1, "hello", None, None)
    record.__dict__.update(extra)
    return json.loads(SchedulerJsonFormatter("%(timestamp) %(level) %(name) %(message)").format(record))


def test_formatter_renders_leave_fields():
    line = _format(leave_request_id=7, division="D1", request_date=DAY, leave_status=None)

    assert line["message"] == "hello"
    assert line["level"] == "INFO"
    assert line["timestamp"]
    assert line["leave_request_id"] == 7
    assert line["division"] == "D1"
    assert line["request_date"] == "2025-02-10"
    assert "leave_status" not in line
    assert "request_id" not in line


def test_formatter_includes_http_request_id():
    token = request_id_var.set("req-123")
    try:
        line = _format()
    finally:
        request_id_var.reset(token)
    assert line["request_id"] == "req-123"


def test_lifecycle_logs_carry_leave_context(db_session, member, caplog):
    set_max_allotment(db_session, "D1", DAY, 3, now=NOW)
    service = LeaveRequestService(db_session, clock=lambda: NOW)

    with caplog.at_level(logging.INFO, logger="pld_scheduler.services.leave_requests"):
        leave = service.submit_request(member.id, DAY, LeaveType.PLD)

    [record] = [r for r in caplog.records if getattr(r, "leave_request_id", None) == leave.id]
    assert record.member_id == member.id
    assert record.division == "D1"
    assert record.request_date == DAY
    assert record.leave_status == "pending"
