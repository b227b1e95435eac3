"""Domain models and time arithmetic for scheduling."""

from supsched.domain.clock import (
    format_clock,
    format_clock_24,
    format_hours,
    format_window,
    parse_clock,
    parse_window_string,
)
from supsched.domain.intervals import (
    covered_minutes,
    intersect,
    normalize,
    snap_to_grid,
    snapped,
    subtract,
    total_minutes,
)
from supsched.domain.models import (
    Client,
    DayKey,
    LockSet,
    RunParameters,
    ScheduledBlock,
    ScheduleInputError,
    ScheduleRequest,
    Supervisor,
    TimeBlock,
    group_by_week,
    load_request,
    sort_blocks,
    week_start,
)

__all__ = [
    # Models
    "Client",
    "DayKey",
    "LockSet",
    "RunParameters",
    "ScheduledBlock",
    "ScheduleInputError",
    "ScheduleRequest",
    "Supervisor",
    "TimeBlock",
    "group_by_week",
    "load_request",
    "sort_blocks",
    "week_start",
    # Intervals
    "covered_minutes",
    "intersect",
    "normalize",
    "snap_to_grid",
    "snapped",
    "subtract",
    "total_minutes",
    # Clock
    "format_clock",
    "format_clock_24",
    "format_hours",
    "format_window",
    "parse_clock",
    "parse_window_string",
]
