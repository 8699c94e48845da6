import logging
from datetime import date
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pld_scheduler.core.exceptions import BackingStoreUnavailableError, ValidationFailedError
from pld_scheduler.database import get_db
from pld_scheduler.models.member import Member
from pld_scheduler.routers.auth_deps import get_current_member
from pld_scheduler.schemas.calendar import DayAllotment, EligibilityResponse
from pld_scheduler.services.allotments import fetch_day_allotment, fetch_month_allotments
from pld_scheduler.services.dates import from_key
from pld_scheduler.services.eligibility import compute_eligibility
from pld_scheduler.services.retry import RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar", tags=["calendar"])


def parse_date_param(value: str, field: str) -> date:
    try:
        return from_key(value).date()
    except ValueError:
        raise ValidationFailedError(f"Invalid {field} '{value}'; expected YYYY-MM-DD", field=field)


def _parse_month(value: Optional[str]) -> date:
    if not value:
        return date.today().replace(day=1)
    # Accept either "YYYY-MM" or any day inside the month
    key = f"{value}-01" if len(value) == 7 else value
    return parse_date_param(key, "month").replace(day=1)


def _read(db: Session, operation):
    """Runs an idempotent read under the read retry policy."""
    def attempt():
        try:
            return operation()
        except BackingStoreUnavailableError:
            db.rollback()
            raise
    return run_with_retry(attempt, RetryPolicy.for_reads()).unwrap()


@router.get("/eligibility", response_model=EligibilityResponse)
def get_eligibility(date_key: str = Query(..., alias="date", description="YYYY-MM-DD")):
    day = parse_date_param(date_key, "date")
    result = compute_eligibility(day)
    return EligibilityResponse(
        date=day,
        eligible=result.eligible,
        too_early=result.too_early,
        too_late=result.too_late,
        window_start=result.min_date.date(),
        window_end=result.max_date.date(),
    )


@router.get("/allotments", response_model=Dict[str, DayAllotment])
def get_month_allotments(
    division: Optional[str] = None,
    month: Optional[str] = Query(None, description="YYYY-MM"),
    db: Session = Depends(get_db),
    current_member: Member = Depends(get_current_member)
):
    division = division or current_member.division
    if not division:
        raise ValidationFailedError("A division is required", field="division")
    first_day = _parse_month(month)
    return _read(db, lambda: fetch_month_allotments(db, division, first_day))


@router.get("/allotments/{division}/{day}", response_model=DayAllotment)
def get_day_allotment(
    division: str,
    day: str,
    db: Session = Depends(get_db),
    current_member: Member = Depends(get_current_member)
):
    target = parse_date_param(day, "date")
    return _read(db, lambda: fetch_day_allotment(db, division, target))
