import logging
from typing import List

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from pld_scheduler.core.config import settings
from pld_scheduler.core.limiter import limiter
from pld_scheduler.database import get_db
from pld_scheduler.models.member import Member
from pld_scheduler.routers.auth_deps import get_current_member, get_leave_service
from pld_scheduler.schemas.leave import LeaveActionResponse, LeaveRequestCreate, LeaveRequestRecord, TimeStats
from pld_scheduler.services.leave_requests import LeaveRequestService
from pld_scheduler.services.time_stats import TimeStatsService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["requests"])


@router.post("/requests", response_model=LeaveActionResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.submit_rate_limit)
def submit_request(
    request: Request,
    payload: LeaveRequestCreate,
    current_member: Member = Depends(get_current_member),
    service: LeaveRequestService = Depends(get_leave_service)
):
    """
    Submit a PLD or SDV request for one day.
    Lands as `pending` while the day has a free slot, otherwise `waitlisted` with a queue position.
    """
    leave = service.submit_request(
        member_id=current_member.id,
        request_date=payload.request_date,
        leave_type=payload.leave_type,
        division=payload.division,
    )
    return LeaveActionResponse(success=True, request=LeaveRequestRecord.model_validate(leave))


@router.post("/requests/check")
def check_request(
    payload: LeaveRequestCreate,
    current_member: Member = Depends(get_current_member),
    service: LeaveRequestService = Depends(get_leave_service)
):
    # Raises the same error a submit would; nothing is written
    service.check_submission(current_member.id, payload.request_date, payload.leave_type)
    return {"success": True}


@router.get("/requests/mine", response_model=List[LeaveRequestRecord])
def list_my_requests(
    current_member: Member = Depends(get_current_member),
    service: LeaveRequestService = Depends(get_leave_service)
):
    return [LeaveRequestRecord.model_validate(r) for r in service.list_member_requests(current_member.id)]


@router.post("/requests/{request_id}/cancel", response_model=LeaveActionResponse)
def cancel_request(
    request_id: int,
    current_member: Member = Depends(get_current_member),
    service: LeaveRequestService = Depends(get_leave_service)
):
    leave = service.cancel_request(request_id, by_member_id=current_member.id)
    return LeaveActionResponse(success=True, request=LeaveRequestRecord.model_validate(leave))


@router.post("/requests/{request_id}/paid-in-lieu", response_model=LeaveActionResponse)
def request_paid_in_lieu(
    request_id: int,
    current_member: Member = Depends(get_current_member),
    service: LeaveRequestService = Depends(get_leave_service)
):
    leave = service.request_paid_in_lieu(request_id, by_member_id=current_member.id)
    return LeaveActionResponse(success=True, request=LeaveRequestRecord.model_validate(leave))


@router.get("/my-time/stats", response_model=TimeStats)
def get_my_time_stats(
    db: Session = Depends(get_db),
    current_member: Member = Depends(get_current_member)
):
    return TimeStatsService(db).compute_stats(current_member.id)
