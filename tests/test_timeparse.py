import pytest

from chartbuddies.services.timeparse import ClockTime, MIDNIGHT, format_time_display, parse_time, to_minutes


@pytest.mark.parametrize("text,expected", [
    ("14:30", "2:30 PM"),
    ("09:00", "9:00 AM"),
    ("21:00:00", "9:00 PM"),
    ("00:15", "12:15 AM"),
    ("12:00", "12:00 PM"),
    ("2:30 PM", "2:30 PM"),
    ("2:30 pm", "2:30 PM"),
    ("12:05 AM", "12:05 AM"),
    ("2", "2:00 AM"),
    ("21:00:00+00", "9:00 PM"),
    ("08:45-05:00", "8:45 AM"),
    ("at 7 30 pm", "7:30 PM"),
    ("9 30pm", "9:30 PM"),
    ("9 30 am", "9:30 AM"),
])
def test_format_time_display(text, expected):
    assert format_time_display(text) == expected


def test_display_output_parses_back_to_itself():
    once = format_time_display("17:05")
    assert format_time_display(once) == once


@pytest.mark.parametrize("text", [None, "", "   ", "soon", "25:00", "9:75"])
def test_unreadable_input_falls_back_to_midnight(text):
    assert parse_time(text) == MIDNIGHT
    assert format_time_display(text) == "12:00 AM"


def test_to_minutes_orders_across_noon():
    assert to_minutes("9:00 AM") == 9 * 60
    assert to_minutes("21:00") == 21 * 60
    assert to_minutes("12:30 AM") == 30
    assert to_minutes("12:30 PM") == 12 * 60 + 30


def test_to_minutes_is_none_for_blank_or_garbage():
    assert to_minutes(None) is None
    assert to_minutes("") is None
    assert to_minutes("after lunch") is None


def test_clock_time_display():
    assert ClockTime(7, 5, "PM").display() == "7:05 PM"
    assert ClockTime(7, 5, "PM").minutes_since_midnight == 19 * 60 + 5
