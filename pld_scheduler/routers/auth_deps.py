"""
Request-scoped dependencies: who is calling, and what they may do.
Identity is asserted upstream; this service only trusts the member id header.
"""
import logging

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from pld_scheduler.core.config import settings
from pld_scheduler.core.exceptions import AuthenticationError
from pld_scheduler.database import backing_store_errors, get_db
from pld_scheduler.models.member import Member
from pld_scheduler.services.inflight import InFlightGuard
from pld_scheduler.services.leave_requests import LeaveRequestService
from pld_scheduler.services.permissions import ensure_can_review

logger = logging.getLogger(__name__)


def get_current_member(request: Request, db: Session = Depends(get_db)) -> Member:
    raw_id = request.headers.get(settings.member_id_header)
    if not raw_id:
        logger.warning("Authentication failed: missing member id header")
        raise AuthenticationError()

    try:
        member_id = int(raw_id)
    except ValueError:
        logger.warning(f"Authentication failed: malformed member id {raw_id!r}")
        raise AuthenticationError("Malformed member id")

    with backing_store_errors():
        member = db.query(Member).filter(Member.id == member_id).first()
    if member is None:
        logger.warning(f"Authentication failed: member {member_id} not found")
        raise AuthenticationError("Member not found")
    if member.status != "ACTIVE":
        logger.warning(f"Authentication failed: member {member_id} is {member.status}")
        raise AuthenticationError("Member is inactive")
    return member


def require_reviewer(current_member: Member = Depends(get_current_member)) -> Member:
    """Any administrator who can approve, deny or confirm cancellations."""
    ensure_can_review(current_member)
    return current_member


def get_inflight_guard(request: Request) -> InFlightGuard:
    return request.app.state.inflight_guard


def get_leave_service(
    db: Session = Depends(get_db),
    guard: InFlightGuard = Depends(get_inflight_guard),
    current_member: Member = Depends(get_current_member)
) -> LeaveRequestService:
    return LeaveRequestService(db, guard=guard, actor_id=current_member.id)
