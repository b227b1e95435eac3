"""Parsing and formatting of clock times and window strings."""

import re
from typing import Optional

from supsched.domain.models import MINUTES_PER_DAY, TimeBlock

_CLOCK_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?$")
_RANGE_RE = re.compile(r"(.+?)-(.+)")


def parse_clock(raw: str) -> Optional[int]:
    """Parse a clock string into minutes since midnight.

    Accepts ``"9"``, ``"9:30"``, ``"17:00"``, ``"9am"`` and ``"12:15 pm"``.
    With an am/pm marker, 12 maps to hour 0 before the pm offset is added.

    Returns:
        Minutes since midnight, or None if the string is not a clock time
        or falls past the end of the day.
    """
    s = re.sub(r"\s+", "", (raw or "").lower())
    marker = re.search(r"am|pm", s)
    digits = re.sub(r"am|pm", "", s)
    match = _CLOCK_RE.match(digits)
    if not match:
        return None

    hours = int(match.group(1))
    minutes = int(match.group(2)) if match.group(2) else 0
    if minutes >= 60:
        return None
    if marker:
        if not 1 <= hours <= 12:
            return None
        if hours == 12:
            hours = 0
        if marker.group(0) == "pm":
            hours += 12
    total = hours * 60 + minutes
    return total if total <= MINUTES_PER_DAY else None


def parse_window_string(text: str) -> list[TimeBlock]:
    """Parse a comma-separated list of ranges like ``"9-11:30, 1pm-3pm"``.

    Parts that do not parse, or whose end is not after their start, are
    skipped.
    """
    blocks = []
    for part in (p.strip() for p in (text or "").split(",")):
        if not part:
            continue
        match = _RANGE_RE.match(part)
        if not match:
            continue
        start = parse_clock(match.group(1).strip())
        end = parse_clock(match.group(2).strip())
        if start is not None and end is not None and end > start:
            blocks.append(TimeBlock(start, end))
    return blocks


def format_clock(minutes: int) -> str:
    """Format minutes as a 12-hour clock, e.g. ``"9:05 am"``."""
    hours, mins = divmod(minutes, 60)
    hour12 = ((hours + 11) % 12) + 1
    suffix = "am" if hours < 12 else "pm"
    return f"{hour12}:{mins:02d} {suffix}"


def format_clock_24(minutes: int) -> str:
    """Format minutes as a 24-hour clock, e.g. ``"09:05"``."""
    hours, mins = divmod(minutes, 60)
    return f"{hours:02d}:{mins:02d}"


def format_hours(minutes: int) -> str:
    """Format a minute count as decimal hours, e.g. ``"1.50h"``."""
    return f"{minutes / 60:.2f}h"


def format_window(block: TimeBlock) -> str:
    """Format a block as ``"9:00 am-11:00 am"``."""
    return f"{format_clock(block.start)}-{format_clock(block.end)}"
