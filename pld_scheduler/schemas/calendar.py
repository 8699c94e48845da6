import enum
from pydantic import BaseModel, Field

from pld_scheduler.schemas.common import WireDate


class Availability(str, enum.Enum):
    AVAILABLE = "available"
    LIMITED = "limited"
    FULL = "full"
    RESTRICTED = "restricted"


class DayAllotment(BaseModel):
    date: str  # YYYY-MM-DD key
    max_allotment: int
    current_requests: int
    availability: Availability


class EligibilityResponse(BaseModel):
    date: WireDate
    eligible: bool
    too_early: bool
    too_late: bool
    window_start: WireDate
    window_end: WireDate


class AllotmentUpdate(BaseModel):
    max_allotment: int = Field(ge=0)
