"""
Leave entitlement rules.

PLD days follow a seniority schedule unless an administrator has set an override.
SDV days are assigned per member by division/union administrators and are read as-is.
"""
from datetime import date, datetime
from typing import Dict, Optional

from pld_scheduler.core.config import settings
from pld_scheduler.models.leave_request import LeaveType

# (minimum whole years of service, PLD days), highest tier first
PLD_SENIORITY_TIERS = (
    (10, 13),
    (6, 11),
    (3, 8),
    (1, 5),
)


def years_of_service(hire_date: date, today: Optional[date] = None) -> int:
    """Whole calendar years between the hire date and today."""
    today = today or date.today()
    if isinstance(hire_date, datetime):
        hire_date = hire_date.date()
    if isinstance(today, datetime):
        today = today.date()
    years = today.year - hire_date.year
    if (today.month, today.day) < (hire_date.month, hire_date.day):
        years -= 1
    return max(years, 0)


def pld_entitlement(hire_date: Optional[date], override: Optional[int], today: Optional[date] = None) -> int:
    if override is not None and override >= 0:
        return override
    if not hire_date:
        return 0

    years = years_of_service(hire_date, today)
    for min_years, days in PLD_SENIORITY_TIERS:
        if years >= min_years:
            return days
    return 0


def sdv_entitlement(member) -> int:
    return getattr(member, "sdv_entitlement", None) or 0


def clamp_sdv_entitlement(value: int) -> int:
    """Admin editor input is clamped, not rejected."""
    return min(max(int(value), 0), settings.scheduling.max_sdv_entitlement)


def entitlements_for(member, today: Optional[date] = None) -> Dict[LeaveType, int]:
    return {
        LeaveType.PLD: pld_entitlement(member.company_hire_date, member.pld_override, today),
        LeaveType.SDV: sdv_entitlement(member),
    }
