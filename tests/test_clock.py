"""Tests for clock parsing and formatting."""

import pytest

from supsched.domain.clock import (
    format_clock,
    format_clock_24,
    format_hours,
    format_window,
    parse_clock,
    parse_window_string,
)
from supsched.domain.models import TimeBlock


class TestParseClock:
    """Tests for parse_clock."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("9", 540),
            ("9:30", 570),
            ("17:00", 1020),
            ("9am", 540),
            ("9 AM", 540),
            ("12:15 pm", 735),
            ("12am", 0),
            ("1pm", 780),
        ],
    )
    def test_valid_clock_strings(self, raw, expected):
        assert parse_clock(raw) == expected

    @pytest.mark.parametrize(
        "raw", ["", "noon", "9:3", "abc", None, "25:99", "9:75", "24:30", "13pm", "0am"]
    )
    def test_invalid_clock_strings(self, raw):
        assert parse_clock(raw) is None


class TestParseWindowString:
    """Tests for parse_window_string."""

    def test_mixed_formats(self):
        blocks = parse_window_string("9-11:30, 1pm-3pm")

        assert blocks == [TimeBlock(540, 690), TimeBlock(780, 900)]

    def test_bad_parts_skipped(self):
        blocks = parse_window_string("11-9, junk, 14-15")

        assert blocks == [TimeBlock(840, 900)]

    def test_empty_string(self):
        assert parse_window_string("") == []


class TestFormatting:
    """Tests for display formatting."""

    def test_format_clock(self):
        assert format_clock(545) == "9:05 am"
        assert format_clock(0) == "12:00 am"
        assert format_clock(720) == "12:00 pm"
        assert format_clock(780) == "1:00 pm"

    def test_format_clock_24(self):
        assert format_clock_24(545) == "09:05"

    def test_format_hours(self):
        assert format_hours(90) == "1.50h"
        assert format_hours(0) == "0.00h"

    def test_format_window(self):
        assert format_window(TimeBlock(540, 600)) == "9:00 am-10:00 am"
