from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional

from pld_scheduler.models.leave_request import LeaveStatus, LeaveType
from pld_scheduler.schemas.common import WireDate


class LeaveRequestCreate(BaseModel):
    request_date: WireDate
    leave_type: LeaveType
    division: Optional[str] = None  # Defaults to the member's own division


class LeaveRequestRecord(BaseModel):
    """Typed view of a leave_requests row; raw rows never leave the service layer."""
    id: int
    member_id: int
    division: str
    request_date: WireDate
    leave_type: LeaveType
    status: LeaveStatus
    requested_at: datetime
    responded_at: Optional[datetime] = None
    waitlist_position: Optional[int] = None
    paid_in_lieu: bool = False
    denial_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LeaveActionResponse(BaseModel):
    success: bool
    request: LeaveRequestRecord


class LeaveDenialRequest(BaseModel):
    # Blank reasons are rejected by the service so library callers get the same check
    reason: Optional[str] = None


class AdminQueueItem(LeaveRequestRecord):
    pin_number: Optional[str] = None
    first_name: str = ""
    last_name: str = ""


class TypeCounts(BaseModel):
    pld: int = 0
    sdv: int = 0


class TimeStats(BaseModel):
    total: TypeCounts = Field(default_factory=TypeCounts)
    available: TypeCounts = Field(default_factory=TypeCounts)
    requested: TypeCounts = Field(default_factory=TypeCounts)
    waitlisted: TypeCounts = Field(default_factory=TypeCounts)
    approved: TypeCounts = Field(default_factory=TypeCounts)
    paid_in_lieu: TypeCounts = Field(default_factory=TypeCounts)


class SdvEntitlementUpdate(BaseModel):
    sdv_entitlement: int


class MemberEntitlementResponse(BaseModel):
    member_id: int
    division: Optional[str] = None
    sdv_entitlement: int
    pld_entitlement: int


# Resolve forward references for Pydantic V2
LeaveRequestRecord.model_rebuild()
AdminQueueItem.model_rebuild()
TimeStats.model_rebuild()
