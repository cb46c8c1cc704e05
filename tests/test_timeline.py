from datetime import date, datetime

import pytest

from builders import make_project
from core.models import Pause
from core.timeline import (
    compute_today_number,
    date_from_day_offset,
    format_date,
    is_actively_paused,
    parse_date,
)


def test_parse_date_accepts_strings_dates_and_datetimes():
    assert parse_date("2024-03-01") == date(2024, 3, 1)
    assert parse_date("2024-03-01T23:30:00Z") == date(2024, 3, 1)
    assert parse_date(datetime(2024, 3, 1, 18, 0)) == date(2024, 3, 1)
    assert parse_date(date(2024, 3, 1)) == date(2024, 3, 1)


def test_parse_date_rejects_garbage():
    with pytest.raises(ValueError):
        parse_date("next tuesday")


def test_today_number_can_be_negative_or_past_horizon():
    assert compute_today_number("2024-01-01", "2024-01-08") == 7
    assert compute_today_number("2024-01-10", "2024-01-08") == -2
    assert compute_today_number("2024-01-01", "2024-12-31") == 365


def test_offset_round_trip_across_month_and_year():
    start = date(2023, 12, 20)
    target = date(2024, 2, 29)

    offset = compute_today_number(start, target)

    assert date_from_day_offset(start, offset) == target
    assert format_date(date_from_day_offset("2024-01-31", 1)) == "2024-02-01"


def test_pause_window():
    open_ended = make_project(pause=Pause(is_paused=True))
    bounded = make_project(pause=Pause(is_paused=True, pause_until=date(2024, 1, 10)))

    assert is_actively_paused(open_ended, "2030-01-01")
    assert is_actively_paused(bounded, "2024-01-10")
    assert not is_actively_paused(bounded, "2024-01-11")
    assert not is_actively_paused(make_project(), "2024-01-01")
