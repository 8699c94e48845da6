from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pld_scheduler.core.config import settings
from pld_scheduler.services.dates import DateLike, add_days, add_months, normalize, to_key


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    too_early: bool
    too_late: bool
    min_date: datetime
    max_date: datetime

    @property
    def window_start(self) -> str:
        return to_key(self.min_date)

    @property
    def window_end(self) -> str:
        return to_key(self.max_date)


def earliest_requestable(now: Optional[DateLike] = None) -> datetime:
    """First date that clears the minimum lead time (calendar days, not hours)."""
    return add_days(now or datetime.now(), settings.scheduling.min_lead_days)


def latest_requestable(now: Optional[DateLike] = None) -> datetime:
    return add_months(now or datetime.now(), settings.scheduling.max_horizon_months)


def compute_eligibility(value: DateLike, now: Optional[DateLike] = None) -> EligibilityResult:
    """
    Decides whether a date may currently be requested.
    Only mutating operations are gated by this; reads of any date are always allowed.
    """
    target = normalize(value)
    reference = now or datetime.now()
    min_date = earliest_requestable(reference)
    max_date = latest_requestable(reference)

    too_early = target < min_date
    too_late = not too_early and target > max_date
    return EligibilityResult(
        eligible=not too_early and not too_late,
        too_early=too_early,
        too_late=too_late,
        min_date=min_date,
        max_date=max_date,
    )


def is_restricted(value: DateLike, now: Optional[DateLike] = None) -> bool:
    """True when the date falls inside the minimum lead time."""
    return normalize(value) < earliest_requestable(now)
