"""Merges sub-hour fragments belonging to the same client and date."""

import logging
from datetime import date
from typing import Optional

from supsched.domain.intervals import covered_minutes
from supsched.domain.models import (
    RunParameters,
    ScheduledBlock,
    ScheduleRequest,
    TimeBlock,
    sort_blocks,
)
from supsched.scheduling.capacity import free_time

logger = logging.getLogger(__name__)

SHORT_SESSION_MINUTES = 60
MAX_PASSES = 2


class Consolidator:
    """Post-pass that repairs fragmentation left by the allocator.

    For every (client, date) group holding two or more short blocks, the two
    shortest are replaced by one block of their combined length: collapsed
    at their earliest start when the span between them is free enough, or
    else placed in the first free window that can hold it. Locked blocks are
    never moved.
    """

    def consolidate(
        self,
        request: ScheduleRequest,
        blocks: list[ScheduledBlock],
        grid: Optional[int] = None,
        params: Optional[RunParameters] = None,
    ) -> list[ScheduledBlock]:
        """Merge short fragments, then fuse abutting same-client blocks.

        Args:
            request: The schedule request.
            blocks: Blocks to consolidate; the list is not modified.
            grid: Rounding grid, defaults to the supervisor's.
            params: Run parameters for closures, exclusions and locks.

        Returns:
            New list sorted by date, then start.
        """
        grid = grid or request.grid
        locked = {b.key for b in params.locked_blocks} if params else set()
        schedule = list(blocks)
        merges = 0

        for _ in range(MAX_PASSES):
            changed = False

            groups: dict[tuple[str, date], list[ScheduledBlock]] = {}
            for b in schedule:
                groups.setdefault((b.client_id, b.date), []).append(b)

            for group in groups.values():
                shorts = [
                    b
                    for b in sorted(group, key=lambda x: x.start)
                    if b.minutes < SHORT_SESSION_MINUTES and b.key not in locked
                ]
                if len(shorts) < 2:
                    continue

                first, second = sorted(shorts, key=lambda x: x.minutes)[:2]
                merged = self._merge_pair(request, schedule, first, second, grid, params)
                if merged is None:
                    continue

                schedule.remove(first)
                schedule.remove(second)
                schedule.append(merged)
                merges += 1
                changed = True

            if not changed:
                break

        if merges:
            logger.debug("Consolidated %d short-session pairs", merges)
        return self._fuse_abutting(schedule, locked)

    def _merge_pair(
        self,
        request: ScheduleRequest,
        schedule: list[ScheduledBlock],
        first: ScheduledBlock,
        second: ScheduledBlock,
        grid: int,
        params: Optional[RunParameters],
    ) -> Optional[ScheduledBlock]:
        """Find a home for the combined length of two blocks."""
        d = first.date
        combined = first.minutes + second.minutes
        free = free_time(request, d, schedule, params, ignore=[first, second])

        min_start = min(first.start, second.start)
        max_end = max(first.end, second.end)
        span_free = covered_minutes(TimeBlock(min_start, max_end), free)

        if span_free >= combined and max_end - min_start <= combined + grid:
            start = (min_start // grid) * grid
            candidate = TimeBlock(start, start + combined)
            if covered_minutes(candidate, free) >= combined:
                return ScheduledBlock(d, first.client_id, candidate.start, candidate.end)

        for window in free:
            start = -(-window.start // grid) * grid
            if window.end - start >= combined:
                return ScheduledBlock(d, first.client_id, start, start + combined)
        return None

    def _fuse_abutting(
        self, schedule: list[ScheduledBlock], locked: set[tuple]
    ) -> list[ScheduledBlock]:
        """Fuse consecutive same-client blocks where one ends as the next starts."""
        out: list[ScheduledBlock] = []
        for b in sort_blocks(schedule):
            last = out[-1] if out else None
            if (
                last is not None
                and last.date == b.date
                and last.client_id == b.client_id
                and last.end == b.start
                and last.key not in locked
                and b.key not in locked
            ):
                out[-1] = last.with_end(b.end)
            else:
                out.append(b)
        return out
