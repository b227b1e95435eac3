"""Optional clean-up pass: fuse near-adjacent fragments, stretch short blocks."""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from supsched.domain.intervals import covered_minutes, subtract
from supsched.domain.models import (
    MIN_GRID,
    RunParameters,
    ScheduledBlock,
    ScheduleRequest,
    TimeBlock,
    sort_blocks,
)
from supsched.scheduling.capacity import base_availability, free_time
from supsched.scheduling.targets import TargetResolver

logger = logging.getLogger(__name__)

# Rounds of merge+stretch before giving up on reaching a fixed point.
ROUND_GUARD = 50


@dataclass
class PolishOptions:
    """Options for the polisher.

    Attributes:
        grid: Rounding grid; None uses the supervisor's.
        min_block: Blocks shorter than this are stretched when possible.
    """

    grid: Optional[int] = None
    min_block: int = 45


class Polisher:
    """Fuses near-adjacent fragments and stretches short blocks rightward.

    Pass A fuses consecutive same-client blocks on a date whose gap is at
    most one grid unit of free time. Pass B extends each block shorter than
    ``min_block`` into the free time right after it, without reaching past
    the next block. Neither pass takes a client past its resolved target,
    and locked blocks in the run count toward that total. Both passes repeat
    until neither changes anything, so polishing an already polished
    schedule is a no-op. Locked blocks are never altered.

    Example:
        >>> polisher = Polisher(PolishOptions(min_block=60))
        >>> tidy = polisher.polish(request, blocks, locked_blocks=locks)
    """

    def __init__(
        self,
        options: Optional[PolishOptions] = None,
        target_resolver: Optional[TargetResolver] = None,
    ):
        self.options = options or PolishOptions()
        self.target_resolver = target_resolver or TargetResolver()

    def polish(
        self,
        request: ScheduleRequest,
        blocks: Iterable[ScheduledBlock],
        locked_blocks: Iterable[ScheduledBlock] = (),
        params: Optional[RunParameters] = None,
    ) -> list[ScheduledBlock]:
        """Polish a schedule.

        Args:
            request: The schedule request.
            blocks: Blocks to polish; not modified.
            locked_blocks: Blocks that must stay exactly as they are.
            params: Run closures, one-off exclusions and target overrides.

        Returns:
            New list sorted by date, then start.
        """
        grid = max(MIN_GRID, self.options.grid or request.grid)
        blocks = list(blocks)
        locked_blocks = list(locked_blocks)
        locked = {b.key for b in locked_blocks}
        run = RunParameters(
            locked_blocks=locked_blocks,
            closed_days=params.closed_days if params else set(),
            one_off_exclusions=params.one_off_exclusions if params else {},
            target_overrides=params.target_overrides if params else {},
        )
        headroom = self._headroom(request, blocks, run)

        by_date: dict[date, list[ScheduledBlock]] = defaultdict(list)
        for b in blocks:
            by_date[b.date].append(b)

        merges = stretches = 0
        for _ in range(ROUND_GUARD):
            changed = False
            for d in sorted(by_date):
                day_blocks = sorted(by_date[d], key=lambda b: (b.start, b.client_id))
                day_blocks, merged = self._merge_pass(
                    request, d, day_blocks, locked, grid, run, headroom
                )
                day_blocks, stretched = self._stretch_pass(
                    request, d, day_blocks, locked, grid, run, headroom
                )
                by_date[d] = day_blocks
                merges += merged
                stretches += stretched
                changed = changed or bool(merged or stretched)
            if not changed:
                break

        logger.debug("Polish: %d merges, %d stretches", merges, stretches)
        return sort_blocks(b for day_blocks in by_date.values() for b in day_blocks)

    def _headroom(
        self,
        request: ScheduleRequest,
        blocks: list[ScheduledBlock],
        run: RunParameters,
    ) -> dict[str, int]:
        """Minutes each client may still gain before reaching its target."""
        targets = self.target_resolver.resolve(request, run.target_overrides)
        counted = {b.key: b for b in blocks}
        for lock in run.locked_blocks:
            if request.start_date <= lock.date <= request.end_date:
                counted.setdefault(lock.key, lock)

        scheduled: Counter = Counter()
        for b in counted.values():
            scheduled[b.client_id] += b.minutes
        return {
            client_id: targets.get(client_id, 0) - scheduled[client_id]
            for client_id in set(targets) | set(scheduled)
        }

    def _merge_pass(
        self,
        request: ScheduleRequest,
        d: date,
        day_blocks: list[ScheduledBlock],
        locked: set[tuple],
        grid: int,
        run: RunParameters,
        headroom: dict[str, int],
    ) -> tuple[list[ScheduledBlock], int]:
        """Pass A: fuse consecutive same-client blocks separated by <= grid."""
        base = base_availability(request, d, run)
        merged: list[ScheduledBlock] = []
        count = 0
        i = 0
        while i < len(day_blocks):
            cur = day_blocks[i]
            i += 1
            while i < len(day_blocks) and self._can_fuse(
                cur, day_blocks[i], locked, grid, base, headroom
            ):
                nxt = day_blocks[i]
                fused = cur.with_end(max(cur.end, nxt.end))
                headroom[cur.client_id] = (
                    headroom.get(cur.client_id, 0) - (fused.minutes - cur.minutes - nxt.minutes)
                )
                cur = fused
                count += 1
                i += 1
            merged.append(cur)
        return merged, count

    @staticmethod
    def _can_fuse(
        cur: ScheduledBlock,
        nxt: ScheduledBlock,
        locked: set[tuple],
        grid: int,
        base: list[TimeBlock],
        headroom: dict[str, int],
    ) -> bool:
        if cur.client_id != nxt.client_id:
            return False
        if cur.key in locked or nxt.key in locked:
            return False
        gap = nxt.start - cur.end
        if gap > grid:
            return False
        if gap <= 0:
            return True
        if headroom.get(cur.client_id, 0) < gap:
            return False
        # The gap has no other block in it; it must also be supervisor time.
        return covered_minutes(TimeBlock(cur.end, nxt.start), base) == gap

    def _stretch_pass(
        self,
        request: ScheduleRequest,
        d: date,
        day_blocks: list[ScheduledBlock],
        locked: set[tuple],
        grid: int,
        run: RunParameters,
        headroom: dict[str, int],
    ) -> tuple[list[ScheduledBlock], int]:
        """Pass B: extend short unlocked blocks into free time on their right."""
        if not day_blocks:
            return day_blocks, 0

        free = free_time(request, d, day_blocks, run)
        out = list(day_blocks)
        count = 0
        for idx, b in enumerate(out):
            if b.key in locked or b.minutes >= self.options.min_block:
                continue

            needed = min(self.options.min_block - b.minutes, headroom.get(b.client_id, 0))
            extend_by = 0
            for f in free:
                if f.start <= b.end < f.end:
                    extend_by = min(needed, f.end - b.end)
                    break

            extend_by = (extend_by // grid) * grid
            if extend_by < grid:
                continue

            new_end = b.end + extend_by
            nxt = out[idx + 1] if idx + 1 < len(out) else None
            if nxt is not None and new_end > nxt.start:
                continue

            out[idx] = b.with_end(new_end)
            headroom[b.client_id] = headroom.get(b.client_id, 0) - extend_by
            free = subtract(free, [TimeBlock(b.end, new_end)])
            count += 1
        return out, count
