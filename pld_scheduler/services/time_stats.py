from datetime import date
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from pld_scheduler.core.exceptions import NotFoundError
from pld_scheduler.database import backing_store_errors
from pld_scheduler.models.leave_request import LeaveRequest, LeaveStatus, LeaveType
from pld_scheduler.models.member import Member
from pld_scheduler.schemas.leave import LeaveRequestRecord, TimeStats
from pld_scheduler.services.base import BaseService
from pld_scheduler.services.entitlement import entitlements_for

# A cancellation awaiting an administrator still holds the day, so it keeps counting as requested
REQUESTED_STATUSES = (LeaveStatus.PENDING, LeaveStatus.CANCELLATION_PENDING)


def compute_stats(entitlements: Dict[LeaveType, int], requests: Iterable[LeaveRequestRecord]) -> TimeStats:
    """
    Pure fold over a member's full request set. Always recomputed from scratch,
    so the numbers can never drift away from the rows they describe.
    """
    counts = {
        leave_type: {"requested": 0, "waitlisted": 0, "approved": 0, "paid_in_lieu": 0}
        for leave_type in LeaveType
    }

    for request in requests:
        bucket = counts[request.leave_type]
        if request.status in REQUESTED_STATUSES:
            bucket["requested"] += 1
        elif request.status == LeaveStatus.WAITLISTED:
            bucket["waitlisted"] += 1
        elif request.status == LeaveStatus.APPROVED:
            bucket["approved"] += 1
            if request.paid_in_lieu:
                bucket["paid_in_lieu"] += 1

    stats = {name: {} for name in ("total", "available", "requested", "waitlisted", "approved", "paid_in_lieu")}
    for leave_type, bucket in counts.items():
        key = leave_type.value.lower()
        total = entitlements.get(leave_type, 0)
        stats["total"][key] = total
        stats["requested"][key] = bucket["requested"]
        stats["waitlisted"][key] = bucket["waitlisted"]
        stats["approved"][key] = bucket["approved"]
        stats["paid_in_lieu"][key] = bucket["paid_in_lieu"]
        stats["available"][key] = max(0, total - bucket["approved"] - bucket["requested"] - bucket["waitlisted"])

    return TimeStats.model_validate(stats)


def remaining_days(stats: TimeStats, leave_type: LeaveType) -> int:
    return getattr(stats.available, leave_type.value.lower())


class TimeStatsService(BaseService):
    """Loads a member's entitlement inputs and request history, then folds them."""

    def load_member(self, member_id: int) -> Member:
        with backing_store_errors():
            member = self.db.query(Member).filter(Member.id == member_id).first()
        if member is None:
            raise NotFoundError("Member", member_id)
        return member

    def load_requests(self, member_id: int) -> List[LeaveRequestRecord]:
        self.db.flush()
        with backing_store_errors():
            rows = (
                self.db.query(LeaveRequest)
                .filter(LeaveRequest.member_id == member_id)
                .order_by(LeaveRequest.request_date.desc(), LeaveRequest.id.desc())
                .all()
            )
        return [LeaveRequestRecord.model_validate(row) for row in rows]

    def compute_stats(self, member_id: int, today: Optional[date] = None) -> TimeStats:
        member = self.load_member(member_id)
        return compute_stats(entitlements_for(member, today), self.load_requests(member_id))
