"""
Calendar date normalization.

Every date the scheduler compares, stores or formats goes through normalize() first,
which pins the time of day to local noon. A date that sits at noon can't be pushed onto
a neighbouring day by a timezone or DST shift, so keys stay stable across the boundary.
"""
import calendar
from datetime import date, datetime, time, timedelta
from typing import Tuple, Union

DateLike = Union[date, datetime, str]

KEY_FORMAT = "%Y-%m-%d"
NOON = time(12, 0, 0, 0)


def normalize(value: DateLike) -> datetime:
    """Return a naive datetime on the same calendar day as `value`, at 12:00."""
    if isinstance(value, str):
        value = _parse(value)
    if isinstance(value, datetime):
        # Aware datetimes keep their own wall-clock day; no zone conversion
        return datetime.combine(value.date(), NOON)
    if isinstance(value, date):
        return datetime.combine(value, NOON)
    raise TypeError(f"Cannot normalize {type(value).__name__} to a calendar date")


def to_key(value: DateLike) -> str:
    """Render the YYYY-MM-DD wire key."""
    return normalize(value).strftime(KEY_FORMAT)


def from_key(key: str) -> datetime:
    """Parse a YYYY-MM-DD key back into a normalized datetime."""
    try:
        parsed = datetime.strptime(key, KEY_FORMAT)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid date key {key!r}; expected YYYY-MM-DD") from e
    return normalize(parsed)


def to_date(value: DateLike) -> date:
    return normalize(value).date()


def add_days(value: DateLike, days: int) -> datetime:
    return normalize(value) + timedelta(days=days)


def add_months(value: DateLike, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    base = normalize(value)
    month_index = base.month - 1 + months
    year = base.year + month_index // 12
    month = month_index % 12 + 1
    day = min(base.day, calendar.monthrange(year, month)[1])
    return datetime.combine(date(year, month, day), NOON)


def month_bounds(value: DateLike) -> Tuple[datetime, datetime]:
    base = normalize(value)
    last_day = calendar.monthrange(base.year, base.month)[1]
    return (
        datetime.combine(date(base.year, base.month, 1), NOON),
        datetime.combine(date(base.year, base.month, last_day), NOON),
    )


def _parse(value: str) -> datetime:
    text = value.strip()
    if len(text) == 10:
        return datetime.strptime(text, KEY_FORMAT)
    # Full ISO timestamps ("2025-03-09T00:30:00-06:00"); the wall-clock day is kept
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"Invalid date string {value!r}") from e
