"""Supervisor capacity for a concrete date.

A date's capacity starts from the supervisor's weekday availability, is
zeroed on closed days, and loses one-off exclusions and locked blocks. The
allocator, both post-passes and the validator all measure free time against
this same base.
"""

from datetime import date
from typing import Iterable, Optional

from supsched.domain.intervals import subtract
from supsched.domain.models import (
    DayKey,
    RunParameters,
    ScheduledBlock,
    ScheduleRequest,
    TimeBlock,
)


def is_closed(request: ScheduleRequest, d: date, params: Optional[RunParameters] = None) -> bool:
    """Check if the supervisor is closed for the whole date."""
    if d in request.supervisor.unavailable_days:
        return True
    return params is not None and d in params.closed_days


def exclusions_on(
    request: ScheduleRequest, d: date, params: Optional[RunParameters] = None
) -> list[TimeBlock]:
    """One-off excluded blocks for a date, supervisor's own and the run's."""
    blocks = list(request.supervisor.one_off_unavail.get(d, []))
    if params is not None:
        blocks.extend(params.one_off_exclusions.get(d, []))
    return blocks


def base_availability(
    request: ScheduleRequest,
    d: date,
    params: Optional[RunParameters] = None,
    include_locks: bool = True,
) -> list[TimeBlock]:
    """Supervisor time on a date before any placements are made.

    Args:
        request: The schedule request.
        d: Concrete date.
        params: Run parameters carrying closures, exclusions and locks.
        include_locks: Whether locked blocks count as consumed time.

    Returns:
        Sorted, non-overlapping free blocks.
    """
    if is_closed(request, d, params):
        return []

    avail = request.supervisor.availability_on(DayKey.from_date(d))
    excluded = exclusions_on(request, d, params)
    if excluded:
        avail = subtract(avail, excluded)
    if include_locks and params is not None:
        locked = [b.span for b in params.locked_on(d)]
        if locked:
            avail = subtract(avail, locked)
    return avail


def free_time(
    request: ScheduleRequest,
    d: date,
    blocks: Iterable[ScheduledBlock],
    params: Optional[RunParameters] = None,
    ignore: Iterable[ScheduledBlock] = (),
) -> list[TimeBlock]:
    """Base availability minus every block on the date except ``ignore``."""
    skipped = {b.key for b in ignore}
    used = [b.span for b in blocks if b.date == d and b.key not in skipped]
    avail = base_availability(request, d, params)
    if used:
        avail = subtract(avail, used)
    return avail
