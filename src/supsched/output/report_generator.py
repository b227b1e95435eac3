"""Text report output for schedule review.

This module creates a plain-text roster to review:
- Per-client target, scheduled and remaining hours
- Week-by-week session listing, with locked sessions marked
- Distribution of sessions across weekdays
"""

from collections import Counter
from pathlib import Path
from typing import Iterable, Optional, Union

from supsched.domain.clock import format_clock, format_hours
from supsched.domain.models import (
    DayKey,
    RunParameters,
    ScheduledBlock,
    ScheduleRequest,
    group_by_week,
)
from supsched.scheduling.scheduler import Scheduler


class ReportGenerator:
    """Generates a text roster for a schedule.

    Locked blocks inside the run's date range are listed alongside the newly
    placed ones and tagged ``[locked]``.
    """

    def __init__(self, scheduler: Optional[Scheduler] = None):
        self.scheduler = scheduler or Scheduler()

    def generate(
        self,
        request: ScheduleRequest,
        blocks: Iterable[ScheduledBlock],
        output_path: Union[str, Path],
        params: Optional[RunParameters] = None,
    ) -> str:
        """Generate the report and save to file.

        Args:
            request: The schedule request.
            blocks: Placed blocks.
            output_path: Path to save the text file.
            params: Run parameters (locks, target overrides).

        Returns:
            The generated text content.
        """
        content = self._generate_content(request, list(blocks), params or RunParameters())
        Path(output_path).write_text(content)
        return content

    def generate_to_string(
        self,
        request: ScheduleRequest,
        blocks: Iterable[ScheduledBlock],
        params: Optional[RunParameters] = None,
    ) -> str:
        """Generate the report and return it as a string."""
        return self._generate_content(request, list(blocks), params or RunParameters())

    def _generate_content(
        self,
        request: ScheduleRequest,
        blocks: list[ScheduledBlock],
        params: RunParameters,
    ) -> str:
        lines = []

        lines.append("=" * 80)
        lines.append(
            f"SUPERVISION SCHEDULE - {request.start_date.isoformat()} to {request.end_date.isoformat()}"
        )
        lines.append("=" * 80)
        lines.append("")
        lines.append(f"Clients: {len(request.clients)}")
        lines.append(f"Grid: {request.grid} minutes")
        lines.append(f"Sessions placed: {len(blocks)}")
        lines.append(f"Locked sessions: {len(params.locked_blocks)}")
        lines.append("")

        # Utilization
        lines.append("-" * 80)
        lines.append("UTILIZATION")
        lines.append("-" * 80)
        lines.append(f"{'Client':<20} {'Target':>10} {'Scheduled':>10} {'Remaining':>10}")
        for row in self.scheduler.utilization(request, blocks, params):
            lines.append(
                f"{row.client_id[:20]:<20} "
                f"{format_hours(row.target_minutes):>10} "
                f"{format_hours(row.scheduled_minutes):>10} "
                f"{format_hours(row.remaining_minutes):>10}"
            )
        lines.append("")

        # Sessions by week
        locked = {b.key for b in params.locked_blocks}
        in_range = [
            b
            for b in params.locked_blocks
            if request.start_date <= b.date <= request.end_date
        ]
        listed = {b.key: b for b in list(blocks) + in_range}

        for week, week_blocks in group_by_week(listed.values()).items():
            lines.append("-" * 80)
            lines.append(f"WEEK OF {week.isoformat()}")
            lines.append("-" * 80)
            total = 0
            for b in week_blocks:
                marker = " [locked]" if b.key in locked else ""
                lines.append(
                    f"{b.day.value.title():<4} {b.date.isoformat()}  "
                    f"{format_clock(b.start):>8}-{format_clock(b.end):<8}  "
                    f"{b.client_id[:20]:<20} {format_hours(b.minutes):>6}{marker}"
                )
                total += b.minutes
            lines.append(f"Week total: {format_hours(total)}")
            lines.append("")

        # Weekday histogram
        lines.append("-" * 80)
        lines.append("SESSIONS BY WEEKDAY")
        lines.append("-" * 80)
        counts = Counter(b.day for b in blocks)
        for day in DayKey.ordered():
            count = counts.get(day, 0)
            bar = "#" * count if count else "."
            lines.append(f"{day.value.title()}: {bar} ({count})")
        lines.append("")

        return "\n".join(lines)
