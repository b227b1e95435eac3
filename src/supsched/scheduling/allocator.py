"""Greedy day-by-day allocator for supervision blocks.

This module implements the placement heuristic:
1. Visit dates round-robin across weekdays so no weekday is exhausted first
2. Rank candidate clients per date with a fairness/priority score
3. Place the top-ranked client's block, re-rank, repeat until stalled
4. Fill leftover time with a relaxed pass
5. Consolidate fragmented short sessions
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from supsched.domain.intervals import intersect, snapped, subtract
from supsched.domain.models import (
    Client,
    DayKey,
    RunParameters,
    ScheduledBlock,
    ScheduleRequest,
    TimeBlock,
    date_range,
    week_start,
)
from supsched.scheduling.capacity import base_availability
from supsched.scheduling.consolidator import Consolidator
from supsched.scheduling.targets import TargetResolver

logger = logging.getLogger(__name__)

ONE_HOUR = 60
PRIMARY_SCAN_GUARD = 80
FALLBACK_SCAN_GUARD = 200


@dataclass
class AllocationOptions:
    """Options for an allocation run.

    Attributes:
        bias_longer: Favor placements of at least an hour over fragmenting
            capacity into shorter sessions.
    """

    bias_longer: bool = False


class LinearCongruentialRandom:
    """Portable 32-bit LCG used for reproducible tie-breaking.

    The same seed always yields the same sequence on every platform; a zero
    seed is treated as 1.
    """

    MULTIPLIER = 1664525
    INCREMENT = 1013904223
    MASK = 0xFFFFFFFF

    def __init__(self, seed: int = 1):
        self.state = (seed or 1) & self.MASK

    def next_unit(self) -> float:
        """Next value in [0, 1]."""
        self.state = (self.MULTIPLIER * self.state + self.INCREMENT) & self.MASK
        return self.state / self.MASK


@dataclass
class AllocationContext:
    """Mutable state for one allocation run.

    Created fresh per run and discarded once the output is produced.

    Attributes:
        remaining: Client ID to minutes still owed.
        week_counts: (client ID, week Monday) to sessions placed.
        day_counts: (client ID, date) to sessions placed.
        weekday_load: Sessions placed per weekday across all clients.
        client_weekday_load: (client ID, weekday) to sessions placed.
        last_placed: Client ID to the date of its latest placement.
        placed: Blocks placed so far, in placement order.
    """

    remaining: dict[str, int]
    week_counts: dict[tuple[str, date], int] = field(default_factory=dict)
    day_counts: dict[tuple[str, date], int] = field(default_factory=dict)
    weekday_load: dict[DayKey, int] = field(default_factory=dict)
    client_weekday_load: dict[tuple[str, DayKey], int] = field(default_factory=dict)
    last_placed: dict[str, date] = field(default_factory=dict)
    placed: list[ScheduledBlock] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        request: ScheduleRequest,
        targets: dict[str, int],
        params: RunParameters,
    ) -> "AllocationContext":
        """Build the starting state, charging locked blocks to their clients."""
        context = cls(remaining=dict(targets))
        for block in params.locked_blocks:
            if not request.start_date <= block.date <= request.end_date:
                continue
            if block.client_id in context.remaining:
                context.remaining[block.client_id] = max(
                    0, context.remaining[block.client_id] - block.minutes
                )
            context._count(block.client_id, block.date)
        return context

    def need(self, client_id: str) -> int:
        return max(0, self.remaining.get(client_id, 0))

    def within_caps(self, client: Client, d: date) -> bool:
        """Check the client's weekly and daily session caps."""
        if client.max_sessions_per_week is not None:
            used = self.week_counts.get((client.id, week_start(d)), 0)
            if used >= client.max_sessions_per_week:
                return False
        if client.max_sessions_per_day is not None:
            used = self.day_counts.get((client.id, d), 0)
            if used >= client.max_sessions_per_day:
                return False
        return True

    def _abutting_index(self, client_id: str, d: date, start: int) -> Optional[int]:
        for idx, existing in enumerate(self.placed):
            if existing.date == d and existing.client_id == client_id and existing.end == start:
                return idx
        return None

    def _count(self, client_id: str, d: date) -> None:
        week_key = (client_id, week_start(d))
        self.week_counts[week_key] = self.week_counts.get(week_key, 0) + 1
        self.day_counts[(client_id, d)] = self.day_counts.get((client_id, d), 0) + 1

    def record(self, client_id: str, d: date, span: TimeBlock, extend: bool = True) -> None:
        """Record a placement and update every counter.

        With ``extend``, a block for the same client and date that ends
        exactly where this one starts is lengthened instead of adding a new
        block.
        """
        idx = self._abutting_index(client_id, d, span.start) if extend else None
        if idx is not None:
            self.placed[idx] = self.placed[idx].with_end(span.end)
        else:
            self.placed.append(ScheduledBlock(d, client_id, span.start, span.end))

        self.remaining[client_id] = max(0, self.need(client_id) - span.minutes)
        day = DayKey.from_date(d)
        self.weekday_load[day] = self.weekday_load.get(day, 0) + 1
        load_key = (client_id, day)
        self.client_weekday_load[load_key] = self.client_weekday_load.get(load_key, 0) + 1
        self.last_placed[client_id] = d
        self._count(client_id, d)


@dataclass
class CandidateScore:
    """Priority of a client for the current date.

    Ordering, each a tie-break on the previous: preferred-day membership,
    hour-block opportunity (bias-longer mode only), scarcity boost, global
    weekday load, the client's own weekday load, back-to-back penalty,
    remaining need, seeded jitter.
    """

    client: Client
    slot_priority: int
    sixty_boost: int
    scarcity_boost: float
    global_load: int
    client_load: int
    b2b_penalty: int
    need: int
    jitter: float

    def sort_key(self) -> tuple:
        return (
            -self.slot_priority,
            -self.sixty_boost,
            -self.scarcity_boost,
            self.global_load,
            self.client_load,
            self.b2b_penalty,
            -self.need,
            self.jitter,
        )


@dataclass
class AllocationResult:
    """Outcome of an allocation run.

    Attributes:
        blocks: Consolidated output blocks (locked blocks excluded).
        targets: Resolved target minutes per client.
        remaining: Minutes still owed per client after placement.
    """

    blocks: list[ScheduledBlock]
    targets: dict[str, int]
    remaining: dict[str, int]


def interleave_dates(dates: list[date]) -> list[date]:
    """Order dates round-robin across weekdays, Monday first.

    A three-week range is visited as first Monday, first Tuesday, ...,
    first Sunday, second Monday, and so on.
    """
    by_day: dict[DayKey, list[date]] = {day: [] for day in DayKey.ordered()}
    for d in dates:
        by_day[DayKey.from_date(d)].append(d)

    longest = max((len(v) for v in by_day.values()), default=0)
    ordered = []
    for i in range(longest):
        for day in DayKey.ordered():
            if i < len(by_day[day]):
                ordered.append(by_day[day][i])
    return ordered


def client_has_future_window(client: Client, d: date, end_date: date) -> bool:
    """Check if the client has any window on a date after ``d`` in the run."""
    for later in date_range(d + timedelta(days=1), end_date):
        if client.has_window_on(DayKey.from_date(later)):
            return True
    return False


def feasible_windows(
    client: Client, day: DayKey, free: list[TimeBlock], grid: int
) -> list[TimeBlock]:
    """Client windows intersected with free time, grid-snapped, by start."""
    return snapped(intersect(client.windows_on(day), free), grid)


class GreedyAllocator:
    """Greedy heuristic allocator.

    The allocator follows this approach:
    1. Resolve per-client target minutes
    2. Walk the interleaved date list
    3. For each date, repeatedly place the best-ranked feasible client
    4. Fill leftover time with a relaxed first-fit pass
    5. Consolidate short fragments

    Example:
        >>> allocator = GreedyAllocator(AllocationOptions(bias_longer=True))
        >>> blocks = allocator.allocate(request, seed=42)
    """

    def __init__(
        self,
        options: Optional[AllocationOptions] = None,
        target_resolver: Optional[TargetResolver] = None,
        consolidator: Optional[Consolidator] = None,
    ):
        self.options = options or AllocationOptions()
        self.target_resolver = target_resolver or TargetResolver()
        self.consolidator = consolidator or Consolidator()

    def allocate(
        self,
        request: ScheduleRequest,
        seed: int = 1,
        params: Optional[RunParameters] = None,
    ) -> list[ScheduledBlock]:
        """Place blocks for the whole request.

        Args:
            request: Immutable schedule request.
            seed: Seed for the tie-breaking jitter.
            params: Locked blocks, target overrides and run exclusions.

        Returns:
            Newly placed blocks, consolidated and sorted by date and start.
        """
        return self.run(request, seed, params).blocks

    def run(
        self,
        request: ScheduleRequest,
        seed: int = 1,
        params: Optional[RunParameters] = None,
    ) -> AllocationResult:
        """Place blocks and report targets and remaining need."""
        params = params or RunParameters()
        grid = request.grid
        targets = self.target_resolver.resolve(request, params.target_overrides)
        context = AllocationContext.create(request, targets, params)
        rng = LinearCongruentialRandom(seed)

        for d in interleave_dates(request.schedule_dates):
            self._allocate_date(request, d, context, rng, grid, params)

        blocks = self.consolidator.consolidate(request, context.placed, grid, params)
        logger.info(
            "Allocated %d blocks (%d min) for %d clients, %d min unplaced",
            len(blocks),
            sum(b.minutes for b in blocks),
            len(request.clients),
            sum(context.remaining.values()),
        )
        return AllocationResult(
            blocks=blocks,
            targets=targets,
            remaining=dict(context.remaining),
        )

    def _allocate_date(
        self,
        request: ScheduleRequest,
        d: date,
        context: AllocationContext,
        rng: LinearCongruentialRandom,
        grid: int,
        params: RunParameters,
    ) -> None:
        """Run the primary scan and the fallback fill for one date."""
        day = DayKey.from_date(d)
        free = base_availability(request, d, params)
        if not free:
            return

        candidates = [
            c for c in request.clients if context.need(c.id) > 0 and c.has_window_on(day)
        ]
        if not candidates:
            return

        guard = 0
        while free and guard < PRIMARY_SCAN_GUARD:
            guard += 1
            placed = False
            for score in self._rank(candidates, d, free, context, rng, grid):
                span = self._choose_block(request, score.client, d, free, context, grid)
                if span is None:
                    continue
                context.record(score.client.id, d, span)
                free = subtract(free, [span])
                placed = True
                break
            if not placed:
                break

        if free:
            self._fill(request, d, free, context, grid)

        if logger.isEnabledFor(logging.DEBUG):
            today = {}
            for b in context.placed:
                if b.date == d:
                    today[b.client_id] = today.get(b.client_id, 0) + b.minutes
            logger.debug(
                "%s (%s): %s",
                d.isoformat(),
                day.value,
                " | ".join(
                    f"{c.id}: today={today.get(c.id, 0)} rem={context.need(c.id)}"
                    for c in request.clients
                ),
            )

    def _rank(
        self,
        candidates: list[Client],
        d: date,
        free: list[TimeBlock],
        context: AllocationContext,
        rng: LinearCongruentialRandom,
        grid: int,
    ) -> list[CandidateScore]:
        """Score every candidate and return them best first."""
        day = DayKey.from_date(d)
        yesterday = d - timedelta(days=1)
        scores = []
        for client in candidates:
            need = context.need(client.id)

            sixty_boost = 0
            if self.options.bias_longer:
                feasible = feasible_windows(client, day, free, grid)
                longest = max((b.minutes for b in feasible), default=0)
                if longest >= ONE_HOUR and need >= ONE_HOUR:
                    sixty_boost = 1

            scores.append(
                CandidateScore(
                    client=client,
                    slot_priority=1 if client.prefers_day(day) else 0,
                    sixty_boost=sixty_boost,
                    scarcity_boost=1 + 1 / (len(client.window_days) or 1),
                    global_load=context.weekday_load.get(day, 0),
                    client_load=context.client_weekday_load.get((client.id, day), 0),
                    b2b_penalty=1 if context.last_placed.get(client.id) == yesterday else 0,
                    need=need,
                    jitter=rng.next_unit(),
                )
            )
        scores.sort(key=lambda s: s.sort_key())
        return scores

    def _choose_block(
        self,
        request: ScheduleRequest,
        client: Client,
        d: date,
        free: list[TimeBlock],
        context: AllocationContext,
        grid: int,
    ) -> Optional[TimeBlock]:
        """Pick the block to place for a client today, or None to skip."""
        need = context.need(client.id)
        if need <= 0 or not context.within_caps(client, d):
            return None

        feasible = feasible_windows(client, DayKey.from_date(d), free, grid)
        if not feasible:
            return None

        min_len = client.effective_min_session
        by_size = sorted(feasible, key=lambda b: -b.minutes)
        window = next((b for b in by_size if b.minutes >= min_len), by_size[0])
        size = window.minutes

        take = min(need, size)
        if self.options.bias_longer and take < ONE_HOUR:
            if size >= ONE_HOUR and need >= ONE_HOUR:
                take = ONE_HOUR

        if client.prefer_no_sub_hour and take < ONE_HOUR:
            if need >= ONE_HOUR and client_has_future_window(client, d, request.end_date):
                return None

        if need >= min_len and size >= min_len:
            take = min(max(min_len, take), size)
        elif need >= min_len:
            # No window reaches a full session today.
            if client_has_future_window(client, d, request.end_date):
                return None
            take = (size // grid) * grid
            if take < grid:
                return None
        else:
            take = min(need, size)

        take = (take // grid) * grid
        if take < grid:
            return None
        return TimeBlock(window.start, window.start + take)

    def _fill(
        self,
        request: ScheduleRequest,
        d: date,
        free: list[TimeBlock],
        context: AllocationContext,
        grid: int,
    ) -> list[TimeBlock]:
        """Relaxed first-fit pass over leftover time.

        Clients are taken in request order with no ranking and no deferral.
        The minimum-session bump and the no-sub-hour bump still apply, the
        latter without checking for a future window.
        """
        day = DayKey.from_date(d)
        candidates = [
            c for c in request.clients if context.need(c.id) > 0 and c.has_window_on(day)
        ]

        guard = 0
        while free and guard < FALLBACK_SCAN_GUARD:
            guard += 1
            placed_any = False
            for client in candidates:
                if not free:
                    break
                need = context.need(client.id)
                if need <= 0 or not context.within_caps(client, d):
                    continue

                feasible = feasible_windows(client, day, free, grid)
                if not feasible:
                    continue
                window = feasible[0]
                size = window.minutes
                min_len = client.effective_min_session

                take = min(need, size)
                if take < min_len:
                    if size < min_len:
                        continue
                    take = min_len

                if client.prefer_no_sub_hour and take < ONE_HOUR:
                    if size < ONE_HOUR:
                        continue
                    take = ONE_HOUR

                take = (take // grid) * grid
                if take < grid:
                    continue

                span = TimeBlock(window.start, window.start + take)
                context.record(client.id, d, span, extend=False)
                free = subtract(free, [span])
                placed_any = True

            if not placed_any:
                break
        return free
