"""Main scheduler interface.

This module provides the high-level Scheduler class that orchestrates target
resolution, allocation, consolidation and optional polishing, plus the
``allocate`` and ``polish`` entry points used by collaborators that only
need one step.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from supsched.domain.models import (
    DayKey,
    RunParameters,
    ScheduledBlock,
    ScheduleRequest,
    TimeBlock,
)
from supsched.scheduling.allocator import AllocationOptions, GreedyAllocator
from supsched.scheduling.consolidator import Consolidator
from supsched.scheduling.polisher import PolishOptions, Polisher
from supsched.scheduling.targets import TargetResolver


@dataclass
class UtilizationRow:
    """Target versus scheduled minutes for one client."""

    client_id: str
    target_minutes: int
    scheduled_minutes: int

    @property
    def remaining_minutes(self) -> int:
        return max(0, self.target_minutes - self.scheduled_minutes)


class Scheduler:
    """High-level scheduler for generating supervision schedules.

    Example:
        >>> scheduler = Scheduler(polish=True)
        >>> request = ScheduleRequest(
        ...     start_date=date(2024, 1, 15),
        ...     end_date=date(2024, 2, 4),
        ...     clients=[client1, client2, ...],
        ...     supervisor=supervisor,
        ... )
        >>> blocks = scheduler.generate_schedule(request, seed=7)
    """

    def __init__(
        self,
        options: Optional[AllocationOptions] = None,
        polish_options: Optional[PolishOptions] = None,
        polish: bool = False,
    ):
        """Initialize scheduler.

        Args:
            options: Allocation options (bias toward longer sessions).
            polish_options: Grid and minimum block for the polisher.
            polish: Whether to run the polisher after allocation.
        """
        self.options = options or AllocationOptions()
        self.polish_enabled = polish

        self.target_resolver = TargetResolver()
        self.consolidator = Consolidator()
        self.allocator = GreedyAllocator(
            options=self.options,
            target_resolver=self.target_resolver,
            consolidator=self.consolidator,
        )
        self.polisher = Polisher(polish_options, target_resolver=self.target_resolver)

    def generate_schedule(
        self,
        request: ScheduleRequest,
        seed: int = 1,
        params: Optional[RunParameters] = None,
    ) -> list[ScheduledBlock]:
        """Generate the block list for a request.

        Args:
            request: Schedule request with clients and supervisor.
            seed: Shuffle seed; the same seed reproduces the same output.
            params: Locks, target overrides and run exclusions.

        Returns:
            Newly placed blocks, sorted by date and start. Locked blocks are
            not included.
        """
        params = params or RunParameters()
        blocks = self.allocator.allocate(request, seed, params)
        if self.polish_enabled:
            blocks = self.polisher.polish(request, blocks, params.locked_blocks, params)
        return blocks

    def generate_schedule_with_stats(
        self,
        request: ScheduleRequest,
        seed: int = 1,
        params: Optional[RunParameters] = None,
    ) -> tuple[list[ScheduledBlock], dict]:
        """Generate schedule and return statistics.

        Returns:
            Tuple of (blocks, stats_dict).
        """
        params = params or RunParameters()
        blocks = self.generate_schedule(request, seed, params)
        stats = self._calculate_stats(request, blocks, params)
        return blocks, stats

    def utilization(
        self,
        request: ScheduleRequest,
        blocks: Iterable[ScheduledBlock],
        params: Optional[RunParameters] = None,
    ) -> list[UtilizationRow]:
        """Per-client target, scheduled and remaining minutes.

        Locked blocks inside the run's date range count as scheduled time.
        """
        params = params or RunParameters()
        targets = self.target_resolver.resolve(request, params.target_overrides)

        counted: dict[tuple, ScheduledBlock] = {}
        for b in list(blocks) + params.locked_blocks:
            if request.start_date <= b.date <= request.end_date:
                counted[b.key] = b

        scheduled = Counter()
        for b in counted.values():
            scheduled[b.client_id] += b.minutes

        return [
            UtilizationRow(
                client_id=c.id,
                target_minutes=targets[c.id],
                scheduled_minutes=scheduled[c.id],
            )
            for c in request.clients
        ]

    def _calculate_stats(
        self,
        request: ScheduleRequest,
        blocks: list[ScheduledBlock],
        params: RunParameters,
    ) -> dict:
        """Calculate schedule statistics."""
        rows = self.utilization(request, blocks, params)

        minutes_per_client = Counter()
        sessions_per_client = Counter()
        sessions_per_weekday = Counter()
        dates_used: set[date] = set()
        for b in blocks:
            minutes_per_client[b.client_id] += b.minutes
            sessions_per_client[b.client_id] += 1
            sessions_per_weekday[DayKey.from_date(b.date).value] += 1
            dates_used.add(b.date)

        total_target = sum(r.target_minutes for r in rows)
        total_scheduled = sum(r.scheduled_minutes for r in rows)

        return {
            "total_clients": len(request.clients),
            "total_blocks": len(blocks),
            "total_minutes": sum(b.minutes for b in blocks),
            "locked_blocks": len(params.locked_blocks),
            "days_in_range": len(request.schedule_dates),
            "days_used": len(dates_used),
            "total_target_minutes": total_target,
            "total_remaining_minutes": sum(r.remaining_minutes for r in rows),
            "fill_rate": (total_scheduled / total_target * 100.0) if total_target else 100.0,
            "minutes_per_client": dict(minutes_per_client),
            "sessions_per_client": dict(sessions_per_client),
            "sessions_per_weekday": dict(sessions_per_weekday),
            "utilization": rows,
        }


def allocate(
    request: ScheduleRequest,
    seed: int = 1,
    locked_blocks: Iterable[ScheduledBlock] = (),
    target_overrides: Optional[dict[str, int]] = None,
    closed_days: Iterable[date] = (),
    one_off_exclusions: Optional[dict[date, list[TimeBlock]]] = None,
    options: Optional[AllocationOptions] = None,
) -> list[ScheduledBlock]:
    """Run the allocator (with consolidation) for one request.

    Args:
        request: Immutable schedule request.
        seed: Shuffle seed.
        locked_blocks: Blocks to preserve and treat as consumed time.
        target_overrides: Client ID to target minutes.
        closed_days: Dates closed for this run.
        one_off_exclusions: Date to blocks excluded for this run.
        options: Allocation options.

    Returns:
        Newly placed blocks, sorted by date and start.
    """
    params = RunParameters(
        locked_blocks=list(locked_blocks),
        target_overrides=dict(target_overrides or {}),
        closed_days=set(closed_days),
        one_off_exclusions=dict(one_off_exclusions or {}),
    )
    return GreedyAllocator(options).allocate(request, seed, params)


def polish(
    request: ScheduleRequest,
    blocks: Iterable[ScheduledBlock],
    locked_blocks: Iterable[ScheduledBlock] = (),
    options: Optional[PolishOptions] = None,
    closed_days: Iterable[date] = (),
    one_off_exclusions: Optional[dict[date, list[TimeBlock]]] = None,
    target_overrides: Optional[dict[str, int]] = None,
) -> list[ScheduledBlock]:
    """Polish an allocated schedule. Idempotent on polished input."""
    params = RunParameters(
        target_overrides=dict(target_overrides or {}),
        closed_days=set(closed_days),
        one_off_exclusions=dict(one_off_exclusions or {}),
    )
    return Polisher(options).polish(request, blocks, locked_blocks, params)
