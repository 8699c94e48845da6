from datetime import date, datetime

from pld_scheduler.models.leave_request import LeaveStatus, LeaveType
from pld_scheduler.schemas.leave import LeaveRequestRecord
from pld_scheduler.services.time_stats import TimeStatsService, compute_stats, remaining_days

REQUESTED_AT = datetime(2025, 1, 2, 8, 0)


def _record(request_id, leave_type, status, paid_in_lieu=False):
    return LeaveRequestRecord(
        id=request_id,
        member_id=1,
        division="D1",
        request_date=date(2025, 2, request_id),
        leave_type=leave_type,
        status=status,
        requested_at=REQUESTED_AT,
        paid_in_lieu=paid_in_lieu,
    )


def test_stats_fold_every_status():
    requests = [
        _record(1, LeaveType.PLD, LeaveStatus.PENDING),
        _record(2, LeaveType.PLD, LeaveStatus.CANCELLATION_PENDING),
        _record(3, LeaveType.PLD, LeaveStatus.APPROVED, paid_in_lieu=True),
        _record(4, LeaveType.PLD, LeaveStatus.APPROVED),
        _record(5, LeaveType.PLD, LeaveStatus.DENIED),
        _record(6, LeaveType.PLD, LeaveStatus.CANCELLED),
        _record(7, LeaveType.SDV, LeaveStatus.WAITLISTED),
    ]
    stats = compute_stats({LeaveType.PLD: 8, LeaveType.SDV: 2}, requests)

    assert stats.total.pld == 8
    assert stats.requested.pld == 2
    assert stats.approved.pld == 2
    assert stats.paid_in_lieu.pld == 1
    assert stats.available.pld == 4
    assert stats.waitlisted.sdv == 1
    assert stats.available.sdv == 1
    assert remaining_days(stats, LeaveType.SDV) == 1


def test_available_never_goes_negative():
    requests = [_record(i, LeaveType.SDV, LeaveStatus.APPROVED) for i in range(1, 4)]
    stats = compute_stats({LeaveType.PLD: 0, LeaveType.SDV: 1}, requests)
    assert stats.available.sdv == 0
    assert stats.approved.sdv == 3


def test_no_requests_means_full_entitlement_available():
    stats = compute_stats({LeaveType.PLD: 13, LeaveType.SDV: 0}, [])
    assert stats.available.pld == 13
    assert stats.available.sdv == 0
    assert stats.requested.pld == 0


def test_service_reads_member_and_requests(db_session, make_member):
    member = make_member(company_hire_date=date(2021, 6, 1), sdv_entitlement=3)
    stats = TimeStatsService(db_session).compute_stats(member.id, date(2025, 6, 1))
    assert stats.total.pld == 8
    assert stats.total.sdv == 3
    assert stats.available.sdv == 3
