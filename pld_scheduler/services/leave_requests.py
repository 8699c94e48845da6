"""
Leave request lifecycle.

    pending              -> approved | denied | waitlisted | cancelled
    approved             -> cancellation_pending | cancelled
    cancellation_pending -> cancelled            (administrator confirms)
    waitlisted           -> pending (promotion) | cancelled
    denied, cancelled    terminal

Each transition is one read-modify-write committed as a single transaction. Slot counts,
waitlist positions and promotions are settled inside that same transaction, and the
backing store (row locks plus the active-request unique index) has the final word on races.
"""
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pld_scheduler.core.exceptions import (
    DuplicateRequestError,
    IneligibleDateError,
    InvalidTransitionError,
    NoEntitlementError,
    NotCancellableError,
    NotFoundError,
    SlotFullError,
    UnauthorizedError,
    ValidationFailedError,
)
from pld_scheduler.database import backing_store_errors
from pld_scheduler.models.leave_request import LeaveRequest, LeaveStatus, LeaveType
from pld_scheduler.models.member import Member
from pld_scheduler.services.allotments import (
    count_slot_holders,
    get_allotment,
    promote_waitlist,
    recount_allotment,
    waitlist_for,
)
from pld_scheduler.services.audit import AuditService
from pld_scheduler.services.base import BaseService
from pld_scheduler.services.dates import DateLike, to_date, to_key
from pld_scheduler.services.eligibility import compute_eligibility
from pld_scheduler.services.entitlement import entitlements_for
from pld_scheduler.services.inflight import InFlightGuard
from pld_scheduler.services.time_stats import TimeStatsService, compute_stats, remaining_days

# Approved days count against capacity when re-validating an approval
APPROVED_HOLDER_STATUSES = (LeaveStatus.APPROVED.value, LeaveStatus.CANCELLATION_PENDING.value)

DENIAL_REASONS = [
    "No unscheduled days left to schedule for this request",
    "Date already filled",
    "Request conflicts with existing schedule",
    "Request submitted too late",
    "Other",
]


def _snapshot(request: LeaveRequest) -> dict:
    return {
        "status": request.status,
        "waitlist_position": request.waitlist_position,
        "paid_in_lieu": request.paid_in_lieu,
        "denial_reason": request.denial_reason,
    }


class LeaveRequestService(BaseService):
    """Domain service for submitting and moving PLD/SDV requests through their lifecycle."""

    def __init__(
        self,
        db: Session,
        guard: Optional[InFlightGuard] = None,
        clock: Optional[Callable[[], datetime]] = None,
        actor_id: Optional[int] = None
    ):
        super().__init__(db, actor_id)
        self.guard = guard or InFlightGuard()
        self._clock = clock or datetime.now
        self._audit = AuditService(db, actor_id)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get_request(self, request_id: int, for_update: bool = False) -> LeaveRequest:
        with backing_store_errors():
            query = self.db.query(LeaveRequest).filter(LeaveRequest.id == request_id)
            if for_update:
                query = query.with_for_update()
            request = query.first()
        if request is None:
            raise NotFoundError("Leave request", request_id)
        return request

    def list_member_requests(self, member_id: int) -> List[LeaveRequest]:
        with backing_store_errors():
            return (
                self.db.query(LeaveRequest)
                .filter(LeaveRequest.member_id == member_id)
                .order_by(LeaveRequest.request_date.desc(), LeaveRequest.id.desc())
                .all()
            )

    def list_admin_queue(self, division: Optional[str] = None) -> List[Tuple[LeaveRequest, Member]]:
        """Requests awaiting an administrator: new requests and cancellations, closest date first."""
        with backing_store_errors():
            query = (
                self.db.query(LeaveRequest, Member)
                .join(Member, LeaveRequest.member_id == Member.id)
                .filter(LeaveRequest.status.in_([
                    LeaveStatus.PENDING.value,
                    LeaveStatus.CANCELLATION_PENDING.value,
                ]))
            )
            if division:
                query = query.filter(LeaveRequest.division == division)
            return query.order_by(LeaveRequest.request_date.asc(), LeaveRequest.requested_at.asc()).all()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    def check_submission(self, member_id: int, request_date: DateLike, leave_type) -> Member:
        """
        Raises the same error a submit would, without writing anything.
        Callers use it to fail fast; submit_request runs it again against fresh state.
        """
        leave_type = LeaveType(leave_type)
        day = to_date(request_date)
        key = to_key(day)

        stats_service = TimeStatsService(self.db)
        member = stats_service.load_member(member_id)

        eligibility = compute_eligibility(day, now=self._clock())
        if not eligibility.eligible:
            raise IneligibleDateError(
                key,
                too_early=eligibility.too_early,
                too_late=eligibility.too_late,
                window_start=eligibility.window_start,
                window_end=eligibility.window_end,
            )

        with backing_store_errors():
            existing = (
                self.db.query(LeaveRequest.id)
                .filter(
                    LeaveRequest.member_id == member_id,
                    LeaveRequest.request_date == day,
                    LeaveRequest.status != LeaveStatus.CANCELLED.value,
                )
                .first()
            )
        if existing is not None:
            raise DuplicateRequestError(key)

        stats = compute_stats(entitlements_for(member, self._clock().date()), stats_service.load_requests(member_id))
        if remaining_days(stats, leave_type) <= 0:
            raise NoEntitlementError(leave_type.value)

        return member

    def submit_request(
        self,
        member_id: int,
        request_date: DateLike,
        leave_type,
        division: Optional[str] = None
    ) -> LeaveRequest:
        leave_type = LeaveType(leave_type)
        day = to_date(request_date)
        key = to_key(day)

        with self.guard.hold(("submit", member_id, key)):
            try:
                with self.transaction():
                    member = self.check_submission(member_id, day, leave_type)
                    division = division or member.division
                    if not division:
                        raise ValidationFailedError("A division is required to request leave", field="division")

                    allotment = get_allotment(self.db, division, day, for_update=True)
                    capacity = allotment.max_allotment if allotment else 0
                    occupied = count_slot_holders(self.db, division, day)

                    request = LeaveRequest(
                        member_id=member_id,
                        division=division,
                        request_date=day,
                        leave_type=leave_type.value,
                        requested_at=datetime.now(timezone.utc),
                        paid_in_lieu=False,
                    )
                    if occupied >= capacity:
                        request.status = LeaveStatus.WAITLISTED.value
                        request.waitlist_position = len(waitlist_for(self.db, division, day)) + 1
                    else:
                        request.status = LeaveStatus.PENDING.value

                    self.db.add(request)
                    self.db.flush()
                    recount_allotment(self.db, division, day)
                    self._audit.log_action(
                        action="submit_leave_request",
                        entity_type="leave_request",
                        entity_id=request.id,
                        member_id=member_id,
                        details={"division": division, "date": key, "leave_type": leave_type.value},
                        after_state=_snapshot(request),
                    )
            except IntegrityError as e:
                # Lost a race against a concurrent submit for the same member and day
                self.log_warning(f"Duplicate submit rejected by backing store for member {member_id} on {key}")
                raise DuplicateRequestError(key) from e

        self.db.refresh(request)
        self.log_info(
            f"Member {member_id} submitted {leave_type.value} for {division} {key}: {request.status}"
            + (f" (waitlist #{request.waitlist_position})" if request.waitlist_position else ""),
            request,
        )
        return request

    # ------------------------------------------------------------------
    # Member actions
    # ------------------------------------------------------------------
    def cancel_request(self, request_id: int, by_member_id: int) -> LeaveRequest:
        with self.guard.hold(request_id):
            with self.transaction():
                request = self.get_request(request_id, for_update=True)
                if request.member_id != by_member_id:
                    raise UnauthorizedError("You can only cancel your own requests.")

                before = _snapshot(request)
                status = request.status
                if status in (LeaveStatus.PENDING.value, LeaveStatus.WAITLISTED.value):
                    request.status = LeaveStatus.CANCELLED.value
                    request.waitlist_position = None
                    request.cancelled_at = datetime.now(timezone.utc)
                    request.cancelled_by = by_member_id
                    # Frees the slot (or queue position) and fills it from the waitlist in this transaction
                    promote_waitlist(self.db, request.division, request.request_date, by_member_id)
                    action = "cancel_leave_request"
                elif status == LeaveStatus.APPROVED.value:
                    # The slot stays held until an administrator confirms the cancellation
                    request.status = LeaveStatus.CANCELLATION_PENDING.value
                    request.responded_at = None
                    action = "request_leave_cancellation"
                else:
                    raise NotCancellableError(status)

                self._audit.log_action(
                    action=action,
                    entity_type="leave_request",
                    entity_id=request.id,
                    member_id=by_member_id,
                    before_state=before,
                    after_state=_snapshot(request),
                )

        self.db.refresh(request)
        self.log_info(f"Request {request_id} cancelled by member {by_member_id}: {status} -> {request.status}", request)
        return request

    def request_paid_in_lieu(self, request_id: int, by_member_id: Optional[int] = None) -> LeaveRequest:
        with self.guard.hold(request_id):
            with self.transaction():
                request = self.get_request(request_id, for_update=True)
                if by_member_id is not None and request.member_id != by_member_id:
                    raise UnauthorizedError("You can only change your own requests.")
                if request.status != LeaveStatus.APPROVED.value:
                    raise InvalidTransitionError("request payment in lieu for", request.status)
                if request.paid_in_lieu:
                    return request

                before = _snapshot(request)
                request.paid_in_lieu = True
                self._audit.log_action(
                    action="request_paid_in_lieu",
                    entity_type="leave_request",
                    entity_id=request.id,
                    member_id=by_member_id,
                    before_state=before,
                    after_state=_snapshot(request),
                )

        self.db.refresh(request)
        self.log_info(f"Request {request_id} marked paid in lieu", request)
        return request

    # ------------------------------------------------------------------
    # Administrator actions
    # ------------------------------------------------------------------
    def approve_request(self, request_id: int, actor_id: Optional[int] = None) -> LeaveRequest:
        actor_id = actor_id or self.actor_id
        with self.guard.hold(request_id):
            with self.transaction():
                request = self.get_request(request_id, for_update=True)
                if request.status != LeaveStatus.PENDING.value:
                    raise InvalidTransitionError("approve", request.status)

                # Re-validate capacity against the store; the client's view may be stale
                allotment = get_allotment(self.db, request.division, request.request_date, for_update=True)
                capacity = allotment.max_allotment if allotment else 0
                approved = count_slot_holders(
                    self.db, request.division, request.request_date, statuses=APPROVED_HOLDER_STATUSES
                )
                if approved >= capacity:
                    self.log_warning(
                        f"Approval of request {request_id} rejected: {approved}/{capacity} slots already approved",
                        request,
                    )
                    raise SlotFullError(to_key(request.request_date))

                before = _snapshot(request)
                request.status = LeaveStatus.APPROVED.value
                request.responded_at = datetime.now(timezone.utc)
                recount_allotment(self.db, request.division, request.request_date)
                self._audit.log_action(
                    action="approve_leave_request",
                    entity_type="leave_request",
                    entity_id=request.id,
                    member_id=actor_id,
                    before_state=before,
                    after_state=_snapshot(request),
                )

        self.db.refresh(request)
        self.log_info(f"Request {request_id} approved by {actor_id}", request)
        return request

    def deny_request(self, request_id: int, reason: Optional[str], actor_id: Optional[int] = None) -> LeaveRequest:
        actor_id = actor_id or self.actor_id
        if reason is None or not reason.strip():
            raise ValidationFailedError("A reason is required to deny a request.", field="reason")

        with self.guard.hold(request_id):
            with self.transaction():
                request = self.get_request(request_id, for_update=True)
                if request.status != LeaveStatus.PENDING.value:
                    raise InvalidTransitionError("deny", request.status)

                before = _snapshot(request)
                request.status = LeaveStatus.DENIED.value
                request.denial_reason = reason.strip()
                request.responded_at = datetime.now(timezone.utc)
                promote_waitlist(self.db, request.division, request.request_date, actor_id)
                self._audit.log_action(
                    action="deny_leave_request",
                    entity_type="leave_request",
                    entity_id=request.id,
                    member_id=actor_id,
                    details={"reason": request.denial_reason},
                    before_state=before,
                    after_state=_snapshot(request),
                )

        self.db.refresh(request)
        self.log_info(f"Request {request_id} denied by {actor_id}", request)
        return request

    def confirm_cancellation(self, request_id: int, actor_id: Optional[int] = None) -> LeaveRequest:
        actor_id = actor_id or self.actor_id
        with self.guard.hold(request_id):
            with self.transaction():
                request = self.get_request(request_id, for_update=True)
                if request.status != LeaveStatus.CANCELLATION_PENDING.value:
                    raise InvalidTransitionError("confirm cancellation of", request.status)

                before = _snapshot(request)
                now = datetime.now(timezone.utc)
                request.status = LeaveStatus.CANCELLED.value
                request.cancelled_at = now
                request.cancelled_by = actor_id
                request.responded_at = now
                promote_waitlist(self.db, request.division, request.request_date, actor_id)
                self._audit.log_action(
                    action="confirm_leave_cancellation",
                    entity_type="leave_request",
                    entity_id=request.id,
                    member_id=actor_id,
                    before_state=before,
                    after_state=_snapshot(request),
                )

        self.db.refresh(request)
        self.log_info(f"Cancellation of request {request_id} confirmed by {actor_id}", request)
        return request
