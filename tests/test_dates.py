import pytest
from datetime import date, datetime, timedelta, timezone

from pld_scheduler.services.dates import (
    add_days,
    add_months,
    from_key,
    month_bounds,
    normalize,
    to_date,
    to_key,
)


def test_normalize_pins_time_to_noon():
    result = normalize(datetime(2025, 3, 9, 0, 30))
    assert result == datetime(2025, 3, 9, 12, 0, 0)
    assert result.tzinfo is None


def test_normalize_is_idempotent():
    once = normalize("2025-06-01")
    assert normalize(once) == once


@pytest.mark.parametrize("key", ["2025-03-09", "2025-11-02", "2024-02-29", "2025-12-31", "2026-01-01"])
def test_key_round_trip_across_dst_and_year_boundaries(key):
    assert to_key(from_key(key)) == key


def test_aware_datetime_keeps_its_wall_clock_day():
    # 23:30 in UTC-6 is already the next day in UTC; the member's own day is what counts
    late_evening = datetime(2025, 11, 1, 23, 30, tzinfo=timezone(timedelta(hours=-6)))
    assert to_key(late_evening) == "2025-11-01"
    assert to_key("2025-11-01T23:30:00-06:00") == "2025-11-01"
    assert to_key("2025-11-02T00:15:00Z") == "2025-11-02"


def test_from_key_rejects_malformed_keys():
    with pytest.raises(ValueError):
        from_key("2025-13-01")
    with pytest.raises(ValueError):
        from_key("03/09/2025")
    with pytest.raises(ValueError):
        from_key("")


def test_add_months_clamps_to_month_end():
    assert to_key(add_months("2025-08-31", 6)) == "2026-02-28"
    assert to_key(add_months("2024-08-31", 6)) == "2025-02-28"
    assert to_key(add_months("2023-08-31", 6)) == "2024-02-29"


def test_add_days_crosses_dst_change():
    assert to_key(add_days("2025-03-08", 1)) == "2025-03-09"
    assert to_key(add_days("2025-03-09", 1)) == "2025-03-10"


def test_month_bounds():
    start, end = month_bounds("2024-02-14")
    assert to_key(start) == "2024-02-01"
    assert to_key(end) == "2024-02-29"
    assert start.hour == 12 and end.hour == 12


def test_to_date_accepts_all_inputs():
    expected = date(2025, 4, 1)
    assert to_date("2025-04-01") == expected
    assert to_date(datetime(2025, 4, 1, 23, 59)) == expected
    assert to_date(expected) == expected
