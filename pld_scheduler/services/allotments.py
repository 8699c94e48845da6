"""
Slot occupancy for a division's calendar.

Allotment rows carry the administrator-set capacity; how many slots are taken is always
derived from leave_requests and written back by recount_allotment() inside the same
transaction as the change that moved it.
"""
import logging
from datetime import date, datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from pld_scheduler.core.config import settings
from pld_scheduler.database import backing_store_errors
from pld_scheduler.models.allotment import Allotment
from pld_scheduler.models.leave_request import LeaveRequest, LeaveStatus, SLOT_HOLDING_STATUSES
from pld_scheduler.schemas.calendar import Availability, DayAllotment
from pld_scheduler.services.audit import AuditService
from pld_scheduler.services.dates import DateLike, month_bounds, to_date, to_key
from pld_scheduler.services.eligibility import is_restricted

logger = logging.getLogger(__name__)


def availability(
    max_allotment: int,
    current_requests: int,
    value: DateLike,
    now: Optional[DateLike] = None
) -> Availability:
    if is_restricted(value, now):
        return Availability.RESTRICTED
    if current_requests >= max_allotment:
        return Availability.FULL
    if current_requests >= max_allotment * settings.scheduling.limited_threshold:
        return Availability.LIMITED
    return Availability.AVAILABLE


def to_day_allotment(
    day: DateLike,
    max_allotment: int,
    current_requests: int,
    now: Optional[DateLike] = None
) -> DayAllotment:
    return DayAllotment(
        date=to_key(day),
        max_allotment=max_allotment,
        current_requests=current_requests,
        availability=availability(max_allotment, current_requests, day, now),
    )


def get_allotment(db: Session, division: str, day: DateLike, for_update: bool = False) -> Optional[Allotment]:
    query = db.query(Allotment).filter(Allotment.division == division, Allotment.date == to_date(day))
    if for_update:
        query = query.with_for_update()
    return query.first()


def count_slot_holders(db: Session, division: str, day: DateLike, statuses=SLOT_HOLDING_STATUSES) -> int:
    db.flush()
    return (
        db.query(func.count(LeaveRequest.id))
        .filter(
            LeaveRequest.division == division,
            LeaveRequest.request_date == to_date(day),
            LeaveRequest.status.in_(statuses),
        )
        .scalar()
    ) or 0


def recount_allotment(db: Session, division: str, day: DateLike) -> int:
    """Write the derived occupancy back onto the allotment row (if the date is configured)."""
    count = count_slot_holders(db, division, day)
    allotment = get_allotment(db, division, day)
    if allotment is not None and allotment.current_requests != count:
        allotment.current_requests = count
    return count


def waitlist_for(db: Session, division: str, day: DateLike) -> List[LeaveRequest]:
    """Waitlisted requests for a date, strictly FIFO by arrival."""
    db.flush()
    return (
        db.query(LeaveRequest)
        .filter(
            LeaveRequest.division == division,
            LeaveRequest.request_date == to_date(day),
            LeaveRequest.status == LeaveStatus.WAITLISTED.value,
        )
        .order_by(LeaveRequest.requested_at.asc(), LeaveRequest.id.asc())
        .all()
    )


def renumber_waitlist(db: Session, division: str, day: DateLike) -> None:
    for position, request in enumerate(waitlist_for(db, division, day), start=1):
        if request.waitlist_position != position:
            request.waitlist_position = position


def promote_waitlist(
    db: Session,
    division: str,
    day: DateLike,
    actor_id: Optional[int] = None
) -> List[LeaveRequest]:
    """
    Moves waitlisted requests into pending while the date has free capacity.
    Runs inside the caller's transaction; the caller commits.
    """
    allotment = get_allotment(db, division, day, for_update=True)
    capacity = allotment.max_allotment if allotment else 0
    occupied = count_slot_holders(db, division, day)

    promoted = []
    for request in waitlist_for(db, division, day):
        if occupied >= capacity:
            break
        before = {"status": request.status, "waitlist_position": request.waitlist_position}
        request.status = LeaveStatus.PENDING.value
        request.waitlist_position = None
        occupied += 1
        promoted.append(request)
        AuditService.log(
            db,
            action="promote_waitlisted_request",
            entity_type="leave_request",
            entity_id=request.id,
            member_id=actor_id,
            details={"division": division, "date": to_key(day)},
            before_state=before,
            after_state={"status": request.status, "waitlist_position": None},
        )
        logger.info(f"Promoted waitlisted request {request.id} to pending for {division} {to_key(day)}")

    renumber_waitlist(db, division, day)
    recount_allotment(db, division, day)
    return promoted


def fetch_month_allotments(
    db: Session,
    division: str,
    month: DateLike,
    now: Optional[DateLike] = None
) -> Dict[str, DayAllotment]:
    """
    Every configured date in the month, keyed by YYYY-MM-DD.
    Dates without an allotment row are left out; consumers treat them as zero capacity.
    """
    start, end = month_bounds(month)
    with backing_store_errors():
        rows = (
            db.query(Allotment)
            .filter(
                Allotment.division == division,
                Allotment.date >= start.date(),
                Allotment.date <= end.date(),
            )
            .order_by(Allotment.date.asc())
            .all()
        )
    return {
        to_key(row.date): to_day_allotment(row.date, row.max_allotment, row.current_requests or 0, now)
        for row in rows
    }


def fetch_day_allotment(
    db: Session,
    division: str,
    day: DateLike,
    now: Optional[DateLike] = None,
    configured_only: bool = False
) -> Optional[DayAllotment]:
    """
    One date's allotment. An unconfigured date reads as zero capacity, or as None
    with `configured_only` so callers can keep it out of a month mapping.
    """
    with backing_store_errors():
        row = get_allotment(db, division, day)
        if row is None:
            if configured_only:
                return None
            return to_day_allotment(day, 0, count_slot_holders(db, division, day), now)
    return to_day_allotment(row.date, row.max_allotment, row.current_requests or 0, now)


def set_max_allotment(
    db: Session,
    division: str,
    day: DateLike,
    max_allotment: int,
    actor_id: Optional[int] = None,
    now: Optional[DateLike] = None
) -> DayAllotment:
    """Administrator capacity change; newly opened slots go to the waitlist in FIFO order."""
    if max_allotment < 0:
        raise ValueError("max_allotment must be >= 0")

    try:
        with backing_store_errors():
            allotment = get_allotment(db, division, day, for_update=True)
            before = {"max_allotment": allotment.max_allotment if allotment else None}
            if allotment is None:
                allotment = Allotment(division=division, date=to_date(day), max_allotment=max_allotment)
                db.add(allotment)
            else:
                allotment.max_allotment = max_allotment
            db.flush()

            promoted = promote_waitlist(db, division, day, actor_id)
            AuditService.log(
                db,
                action="set_max_allotment",
                entity_type="allotment",
                entity_id=allotment.id,
                member_id=actor_id,
                details={"division": division, "date": to_key(day), "promoted": [r.id for r in promoted]},
                before_state=before,
                after_state={"max_allotment": max_allotment},
            )
            db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Allotment for {division} {to_key(day)} set to {max_allotment}")
    db.refresh(allotment)
    return to_day_allotment(allotment.date, allotment.max_allotment, allotment.current_requests or 0, now)


class SqlAllotmentSource:
    """
    Blocking allotment reads for the async AllotmentStore.
    Each call opens its own session so it can run on a worker thread.
    """

    def __init__(self, session_factory: Callable[[], Session], now: Optional[Callable[[], datetime]] = None):
        self._session_factory = session_factory
        self._now = now

    def load_month(self, division: str, month: date) -> Dict[str, DayAllotment]:
        db = self._session_factory()
        try:
            return fetch_month_allotments(db, division, month, self._now() if self._now else None)
        finally:
            db.close()

    def load_date(self, division: str, day: date) -> Optional[DayAllotment]:
        db = self._session_factory()
        try:
            return fetch_day_allotment(
                db, division, day, self._now() if self._now else None, configured_only=True
            )
        finally:
            db.close()
