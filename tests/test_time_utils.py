"""
Tests for clock and duration helpers.
"""
import datetime as dt

import pytest

from itinerary_engine.domain.errors import InvalidTimeFormat
from itinerary_engine.domain.time_utils import (
    add_minutes,
    format_clock,
    intervals_overlap,
    minutes_between,
    minutes_to_time,
    parse_clock,
    parse_duration_minutes,
    parse_duration_strict,
    resolve_start_time,
    time_to_minutes,
)


@pytest.mark.parametrize("raw,expected", [
    ("90", 90),
    (90, 90),
    (45.0, 45),
    ("2h", 120),
    ("2h15", 135),
    ("1.5h", 90),
    ("1 hr 20 mins", 80),
    ("1.5 hours", 90),
    ("2 hours 30 minutes", 150),
    ("45 min", 45),
    ("90 minutes", 90),
    ("1h30m", 90),
    ("3 hrs", 180),
    ("about 40", 40),
])
def test_parse_duration_strict_formats(raw, expected):
    assert parse_duration_strict(raw) == expected


@pytest.mark.parametrize("raw", ["abc", "", "a while", True, float("nan")])
def test_parse_duration_strict_rejects_garbage(raw):
    with pytest.raises(InvalidTimeFormat):
        parse_duration_strict(raw)


def test_parse_duration_minutes_defaults_to_an_hour():
    assert parse_duration_minutes("a while") == 60
    assert parse_duration_minutes(None) == 60
    assert parse_duration_minutes("abc", default=30) == 30
    assert parse_duration_minutes("2h") == 120


def test_invalid_time_format_is_a_value_error():
    with pytest.raises(ValueError):
        parse_clock("25:00")


@pytest.mark.parametrize("raw,expected", [
    ("09:00", dt.time(9, 0)),
    ("9:30", dt.time(9, 30)),
    (" 23:59 ", dt.time(23, 59)),
    (dt.time(7, 15), dt.time(7, 15)),
])
def test_parse_clock(raw, expected):
    assert parse_clock(raw) == expected


@pytest.mark.parametrize("raw", ["24:00", "12:5", "noon", "12.30", None])
def test_parse_clock_is_strict(raw):
    with pytest.raises(InvalidTimeFormat):
        parse_clock(raw)


def test_resolve_start_time_falls_back_to_nine():
    assert resolve_start_time(None) == dt.time(9, 0)
    assert resolve_start_time("bogus") == dt.time(9, 0)
    assert resolve_start_time("10:15") == dt.time(10, 15)
    assert resolve_start_time("bogus", default="08:00") == dt.time(8, 0)


def test_minute_conversions():
    assert time_to_minutes(dt.time(10, 30)) == 630
    assert minutes_to_time(630) == dt.time(10, 30)
    # Wraps past midnight
    assert minutes_to_time(25 * 60) == dt.time(1, 0)
    assert add_minutes(dt.time(23, 30), 45) == dt.time(0, 15)
    assert format_clock(dt.time(8, 5)) == "08:05"
    assert format_clock(None) == ""


def test_intervals_overlap():
    lunch = (720, 840)
    assert intervals_overlap(700, 730, *lunch)
    assert intervals_overlap(830, 900, *lunch)
    assert intervals_overlap(600, 900, *lunch)
    assert not intervals_overlap(600, 700, *lunch)
    assert not intervals_overlap(850, 900, *lunch)


def test_minutes_between_floors():
    start = dt.datetime(2024, 6, 15, 10, 0)
    assert minutes_between(start, start + dt.timedelta(minutes=5, seconds=59)) == 5
    assert minutes_between(start, start - dt.timedelta(seconds=30)) == -1
