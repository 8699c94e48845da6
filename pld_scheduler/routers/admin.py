import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pld_scheduler.core.exceptions import NotFoundError
from pld_scheduler.database import backing_store_errors, get_db
from pld_scheduler.models.member import Member
from pld_scheduler.routers.auth_deps import get_leave_service, require_reviewer
from pld_scheduler.routers.calendar import parse_date_param
from pld_scheduler.schemas.calendar import AllotmentUpdate, DayAllotment
from pld_scheduler.schemas.leave import (
    AdminQueueItem,
    LeaveActionResponse,
    LeaveDenialRequest,
    LeaveRequestRecord,
    MemberEntitlementResponse,
    SdvEntitlementUpdate,
)
from pld_scheduler.services.allotments import set_max_allotment
from pld_scheduler.services.audit import AuditService
from pld_scheduler.services.entitlement import clamp_sdv_entitlement, pld_entitlement
from pld_scheduler.services.leave_requests import DENIAL_REASONS, LeaveRequestService
from pld_scheduler.services.permissions import ensure_can_manage_division, ensure_can_review, has_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _action_response(leave) -> LeaveActionResponse:
    return LeaveActionResponse(success=True, request=LeaveRequestRecord.model_validate(leave))


# --- Request review ---

@router.get("/requests", response_model=List[AdminQueueItem])
def list_pending_requests(
    division: Optional[str] = None,
    current_member: Member = Depends(require_reviewer),
    service: LeaveRequestService = Depends(get_leave_service)
):
    """Pending requests and pending cancellations, closest date first."""
    if division is None and has_role(current_member).is_division_admin:
        division = current_member.division
    ensure_can_review(current_member, division)

    items = []
    for leave, member in service.list_admin_queue(division):
        item = AdminQueueItem.model_validate(leave)
        item.pin_number = member.pin_number
        item.first_name = member.first_name or ""
        item.last_name = member.last_name or ""
        items.append(item)
    return items


@router.post("/requests/{request_id}/approve", response_model=LeaveActionResponse)
def approve_request(
    request_id: int,
    current_member: Member = Depends(require_reviewer),
    service: LeaveRequestService = Depends(get_leave_service)
):
    ensure_can_review(current_member, service.get_request(request_id).division)
    return _action_response(service.approve_request(request_id, actor_id=current_member.id))


@router.post("/requests/{request_id}/deny", response_model=LeaveActionResponse)
def deny_request(
    request_id: int,
    denial: LeaveDenialRequest,
    current_member: Member = Depends(require_reviewer),
    service: LeaveRequestService = Depends(get_leave_service)
):
    ensure_can_review(current_member, service.get_request(request_id).division)
    return _action_response(service.deny_request(request_id, denial.reason, actor_id=current_member.id))


@router.post("/requests/{request_id}/confirm-cancellation", response_model=LeaveActionResponse)
def confirm_cancellation(
    request_id: int,
    current_member: Member = Depends(require_reviewer),
    service: LeaveRequestService = Depends(get_leave_service)
):
    ensure_can_review(current_member, service.get_request(request_id).division)
    return _action_response(service.confirm_cancellation(request_id, actor_id=current_member.id))


@router.get("/denial-reasons", response_model=List[str])
def list_denial_reasons(current_member: Member = Depends(require_reviewer)):
    return DENIAL_REASONS


# --- Division settings ---

@router.put("/allotments/{division}/{day}", response_model=DayAllotment)
def update_allotment(
    division: str,
    day: str,
    update: AllotmentUpdate,
    db: Session = Depends(get_db),
    current_member: Member = Depends(require_reviewer)
):
    ensure_can_manage_division(current_member, division)
    return set_max_allotment(db, division, parse_date_param(day, "date"), update.max_allotment, actor_id=current_member.id)


@router.put("/members/{member_id}/sdv-entitlement", response_model=MemberEntitlementResponse)
def update_sdv_entitlement(
    member_id: int,
    update: SdvEntitlementUpdate,
    db: Session = Depends(get_db),
    current_member: Member = Depends(require_reviewer)
):
    with backing_store_errors():
        member = db.query(Member).filter(Member.id == member_id).first()
    if member is None:
        raise NotFoundError("Member", member_id)
    ensure_can_manage_division(current_member, member.division)

    before = {"sdv_entitlement": member.sdv_entitlement}
    member.sdv_entitlement = clamp_sdv_entitlement(update.sdv_entitlement)
    try:
        with backing_store_errors():
            AuditService.log(
                db,
                action="update_sdv_entitlement",
                entity_type="member",
                entity_id=member.id,
                member_id=current_member.id,
                member_role=current_member.role.value,
                before_state=before,
                after_state={"sdv_entitlement": member.sdv_entitlement},
            )
            db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(member)
    logger.info(f"SDV entitlement for member {member.id} set to {member.sdv_entitlement} by {current_member.id}")

    return MemberEntitlementResponse(
        member_id=member.id,
        division=member.division,
        sdv_entitlement=member.sdv_entitlement,
        pld_entitlement=pld_entitlement(member.company_hire_date, member.pld_override),
    )
