"""PDF generation for schedule output.

This module creates printable PDF rosters showing:
- One timeline page per week, a row per weekday
- Sessions colored by client, locked sessions outlined
- A utilization summary page
"""

from datetime import timedelta
from io import BytesIO
from pathlib import Path
from typing import Iterable, Optional, Union

from supsched.domain.clock import format_clock_24, format_hours
from supsched.domain.models import (
    MINUTES_PER_DAY,
    DayKey,
    RunParameters,
    ScheduledBlock,
    ScheduleRequest,
    group_by_week,
)
from supsched.scheduling.scheduler import Scheduler

# Client palette (RGB tuples, 0-1 scale), cycled in request order
PALETTE = [
    (0.4, 0.7, 0.4),  # Green
    (0.4, 0.4, 0.8),  # Blue
    (0.8, 0.6, 0.2),  # Orange
    (0.7, 0.4, 0.7),  # Purple
    (0.3, 0.7, 0.8),  # Teal
    (0.8, 0.4, 0.4),  # Red
    (0.6, 0.6, 0.3),  # Olive
]
AVAILABLE = (0.95, 0.95, 0.95)


def _canvas_module():
    try:
        from reportlab.lib.pagesizes import landscape, letter
        from reportlab.pdfgen import canvas
    except ImportError:
        raise ImportError(
            "reportlab is required for PDF generation. "
            "Install with: pip install reportlab"
        )
    return canvas, landscape(letter)


class PDFGenerator:
    """Generates printable PDF rosters.

    Example:
        >>> generator = PDFGenerator()
        >>> generator.generate(request, blocks, "roster.pdf", params)
    """

    def __init__(
        self,
        page_width: float = 792,  # Letter landscape width (11")
        page_height: float = 612,  # Letter landscape height (8.5")
        margin: float = 36,  # 0.5 inch margins
        scheduler: Optional[Scheduler] = None,
    ):
        self.page_width = page_width
        self.page_height = page_height
        self.margin = margin
        self.scheduler = scheduler or Scheduler()

    def generate(
        self,
        request: ScheduleRequest,
        blocks: Iterable[ScheduledBlock],
        output_path: Union[str, Path],
        params: Optional[RunParameters] = None,
        include_summary: bool = True,
    ) -> None:
        """Generate the PDF roster and save to file.

        Args:
            request: The schedule request.
            blocks: Placed blocks.
            output_path: Path to save the PDF.
            params: Run parameters (locks, target overrides).
            include_summary: Whether to include the utilization page.
        """
        canvas, pagesize = _canvas_module()
        c = canvas.Canvas(str(output_path), pagesize=pagesize)
        self._draw(c, request, list(blocks), params or RunParameters(), include_summary)
        c.save()

    def generate_to_buffer(
        self,
        request: ScheduleRequest,
        blocks: Iterable[ScheduledBlock],
        params: Optional[RunParameters] = None,
        include_summary: bool = True,
    ) -> BytesIO:
        """Generate the PDF roster and return it as a bytes buffer."""
        canvas, pagesize = _canvas_module()
        buffer = BytesIO()
        c = canvas.Canvas(buffer, pagesize=pagesize)
        self._draw(c, request, list(blocks), params or RunParameters(), include_summary)
        c.save()
        buffer.seek(0)
        return buffer

    def _draw(
        self,
        c,
        request: ScheduleRequest,
        blocks: list[ScheduledBlock],
        params: RunParameters,
        include_summary: bool,
    ) -> None:
        colors = {
            client.id: PALETTE[i % len(PALETTE)] for i, client in enumerate(request.clients)
        }
        locked = {b.key for b in params.locked_blocks}
        in_range = [
            b for b in params.locked_blocks if request.start_date <= b.date <= request.end_date
        ]
        listed = {b.key: b for b in blocks + in_range}

        day_start, day_end = self._visible_hours(request, listed.values())
        weeks = group_by_week(listed.values())
        for week, week_blocks in weeks.items():
            self._draw_week_page(c, request, week, week_blocks, locked, colors, day_start, day_end)

        if include_summary or not weeks:
            self._draw_summary_page(c, request, blocks, params, colors)

    def _visible_hours(self, request: ScheduleRequest, blocks) -> tuple[int, int]:
        """Whole-hour span covering supervisor availability and all blocks."""
        starts, ends = [], []
        for day in DayKey.ordered():
            for b in request.supervisor.availability_on(day):
                starts.append(b.start)
                ends.append(b.end)
        for b in blocks:
            starts.append(b.start)
            ends.append(b.end)
        if not starts:
            return 8 * 60, 18 * 60
        start = (min(starts) // 60) * 60
        end = min(MINUTES_PER_DAY, -(-max(ends) // 60) * 60)
        return start, max(end, start + 60)

    def _draw_week_page(
        self,
        c,
        request: ScheduleRequest,
        week,
        week_blocks: list[ScheduledBlock],
        locked: set[tuple],
        colors: dict[str, tuple],
        day_start: int,
        day_end: int,
    ) -> None:
        """Draw one week as seven weekday rows on a shared time axis."""
        c.setFont("Helvetica-Bold", 16)
        c.drawString(
            self.margin,
            self.page_height - self.margin - 20,
            f"Supervision Roster - Week of {week.strftime('%B %d, %Y')}",
        )
        c.setFont("Helvetica", 10)
        week_minutes = sum(b.minutes for b in week_blocks)
        c.drawString(
            self.margin,
            self.page_height - self.margin - 35,
            f"Sessions: {len(week_blocks)}    Hours: {format_hours(week_minutes)}",
        )

        timeline_left = self.margin + 90
        timeline_width = self.page_width - self.margin - 20 - timeline_left
        axis_y = self.page_height - self.margin - 70
        per_minute = timeline_width / (day_end - day_start)

        c.setFont("Helvetica", 8)
        c.setStrokeColorRGB(0.7, 0.7, 0.7)
        for minute in range(day_start, day_end + 1, 60):
            x = timeline_left + (minute - day_start) * per_minute
            c.line(x, axis_y, x, axis_y - 5)
            c.drawCentredString(x, axis_y + 5, format_clock_24(minute))

        row_height = 56
        y = axis_y - 10
        for offset, day in enumerate(DayKey.ordered()):
            d = week + timedelta(days=offset)
            y -= row_height
            height = row_height - 8

            c.setFillColorRGB(0, 0, 0)
            c.setFont("Helvetica-Bold", 9)
            c.drawString(self.margin, y + height / 2 + 2, day.value.title())
            c.setFont("Helvetica", 7)
            c.drawString(self.margin, y + height / 2 - 8, d.isoformat())

            in_run = request.start_date <= d <= request.end_date
            if in_run and d not in request.supervisor.unavailable_days:
                c.setFillColorRGB(*AVAILABLE)
                for avail in request.supervisor.availability_on(day):
                    bx = timeline_left + (max(avail.start, day_start) - day_start) * per_minute
                    bw = (min(avail.end, day_end) - max(avail.start, day_start)) * per_minute
                    if bw > 0:
                        c.rect(bx, y, bw, height, fill=1, stroke=0)

            for b in week_blocks:
                if b.date != d:
                    continue
                bx = timeline_left + (b.start - day_start) * per_minute
                bw = b.minutes * per_minute
                c.setFillColorRGB(*colors.get(b.client_id, (0.5, 0.5, 0.5)))
                c.rect(bx, y, bw, height, fill=1, stroke=0)

                if b.key in locked:
                    c.setStrokeColorRGB(0, 0, 0)
                    c.setLineWidth(1.5)
                    c.rect(bx, y, bw, height, fill=0, stroke=1)

                c.setFillColorRGB(0, 0, 0)
                c.setFont("Helvetica-Bold", 7)
                c.drawCentredString(bx + bw / 2, y + height / 2, b.client_id[:10])
                c.setFont("Helvetica", 6)
                c.drawCentredString(
                    bx + bw / 2,
                    y + height / 2 - 9,
                    f"{format_clock_24(b.start)}-{format_clock_24(b.end)}",
                )

        self._draw_legend(c, colors, self.margin, self.margin + 10)
        c.showPage()

    def _draw_legend(self, c, colors: dict[str, tuple], x: float, y: float) -> None:
        """Draw client color legend."""
        c.setFillColorRGB(0, 0, 0)
        c.setFont("Helvetica-Bold", 8)
        c.drawString(x, y, "Legend:")

        c.setFont("Helvetica", 7)
        current_x = x + 45
        for client_id, color in colors.items():
            if current_x > self.page_width - self.margin - 70:
                break
            c.setFillColorRGB(*color)
            c.rect(current_x, y - 2, 12, 10, fill=1, stroke=1)
            c.setFillColorRGB(0, 0, 0)
            c.drawString(current_x + 15, y, client_id[:10])
            current_x += 70

    def _draw_summary_page(
        self,
        c,
        request: ScheduleRequest,
        blocks: list[ScheduledBlock],
        params: RunParameters,
        colors: dict[str, tuple],
    ) -> None:
        """Draw utilization summary with a bar per client."""
        c.setFont("Helvetica-Bold", 16)
        c.drawString(
            self.margin,
            self.page_height - self.margin - 20,
            f"Utilization - {request.start_date.isoformat()} to {request.end_date.isoformat()}",
        )

        rows = self.scheduler.utilization(request, blocks, params)
        widest = max((max(r.target_minutes, r.scheduled_minutes) for r in rows), default=0) or 1
        bar_left = self.margin + 260
        bar_width = self.page_width - self.margin - bar_left

        y = self.page_height - self.margin - 60
        c.setFont("Helvetica-Bold", 10)
        c.drawString(self.margin, y, "Client")
        c.drawString(self.margin + 110, y, "Target")
        c.drawString(self.margin + 160, y, "Scheduled")
        c.drawString(self.margin + 215, y, "Remaining")
        y -= 18

        for row in rows:
            if y < self.margin + 20:
                c.showPage()
                y = self.page_height - self.margin - 20
            c.setFillColorRGB(0, 0, 0)
            c.setFont("Helvetica", 9)
            c.drawString(self.margin, y, row.client_id[:18])
            c.drawString(self.margin + 110, y, format_hours(row.target_minutes))
            c.drawString(self.margin + 160, y, format_hours(row.scheduled_minutes))
            c.drawString(self.margin + 215, y, format_hours(row.remaining_minutes))

            c.setStrokeColorRGB(0.3, 0.3, 0.3)
            c.setLineWidth(0.5)
            c.rect(bar_left, y - 2, bar_width * row.target_minutes / widest, 10, fill=0, stroke=1)
            c.setFillColorRGB(*colors.get(row.client_id, (0.5, 0.5, 0.5)))
            c.rect(
                bar_left, y - 2, bar_width * row.scheduled_minutes / widest, 10, fill=1, stroke=0
            )
            y -= 16

        c.showPage()
