"""Command-line interface for the supervision scheduler."""

import argparse
import json
import logging
import sys
from datetime import date, timedelta
from pathlib import Path
from typing import Optional

from supsched.domain.clock import format_hours
from supsched.domain.models import (
    Client,
    DayKey,
    RunParameters,
    ScheduledBlock,
    ScheduleInputError,
    ScheduleRequest,
    Supervisor,
    TimeBlock,
    load_request,
    week_start,
)
from supsched.output.pdf_generator import PDFGenerator
from supsched.output.report_generator import ReportGenerator
from supsched.scheduling.allocator import AllocationOptions
from supsched.scheduling.polisher import PolishOptions
from supsched.scheduling.scheduler import Scheduler
from supsched.validation.validator import ScheduleValidator

logger = logging.getLogger(__name__)

WEEKDAYS = [DayKey.MON, DayKey.TUE, DayKey.WED, DayKey.THU, DayKey.FRI]


def create_sample_supervisor() -> Supervisor:
    """Weekday supervisor, 8 am to 5 pm with a lunch hour."""
    hours = [TimeBlock(8 * 60, 12 * 60), TimeBlock(13 * 60, 17 * 60)]
    return Supervisor(
        daily_avail={day: list(hours) for day in WEEKDAYS},
        rounding_minutes=15,
    )


def create_sample_clients(count: int = 8) -> list[Client]:
    """Create sample clients for testing.

    Args:
        count: Number of clients to create.
    """
    clients = []

    for i in range(count):
        # Vary attendance patterns
        if i % 4 == 0:
            # Mornings, every weekday
            windows = {day: [TimeBlock(8 * 60, 12 * 60)] for day in WEEKDAYS}
        elif i % 4 == 1:
            # Afternoons, Mon/Wed/Fri
            windows = {
                day: [TimeBlock(13 * 60, 17 * 60)]
                for day in (DayKey.MON, DayKey.WED, DayKey.FRI)
            }
        elif i % 4 == 2:
            # Full days, Tue/Thu
            windows = {
                day: [TimeBlock(8 * 60, 17 * 60)] for day in (DayKey.TUE, DayKey.THU)
            }
        else:
            # Split sessions, every weekday
            windows = {
                day: [TimeBlock(9 * 60, 11 * 60), TimeBlock(14 * 60, 16 * 60)]
                for day in WEEKDAYS
            }

        preferred = []
        if i % 3 == 0:
            preferred = [[DayKey.MON, DayKey.WED]]

        clients.append(
            Client(
                id=f"C{i + 1:03d}",
                sup_percent=[5, 10, 15, 20][i % 4],
                min_session_mins=[60, 45, 30, 60][i % 4],
                max_sessions_per_week=3 if i % 5 == 0 else None,
                max_sessions_per_day=1 if i % 2 == 0 else None,
                prefer_no_sub_hour=i % 6 == 1,
                preferred_day_slots=preferred,
                windows=windows,
            )
        )

    return clients


def create_scheduler(
    polish: bool = False, bias_longer: bool = False, min_block: Optional[int] = None
) -> Scheduler:
    polish_options = PolishOptions() if min_block is None else PolishOptions(min_block=min_block)
    return Scheduler(
        options=AllocationOptions(bias_longer=bias_longer),
        polish_options=polish_options,
        polish=polish,
    )


def print_summary(
    request: ScheduleRequest,
    blocks: list[ScheduledBlock],
    stats: dict,
    params: RunParameters,
) -> None:
    """Print run statistics and validation results."""
    print(f"\nSchedule generated for {request.start_date} to {request.end_date}")
    print(f"  Sessions: {stats['total_blocks']} across {stats['days_used']}/"
          f"{stats['days_in_range']} days")
    print(f"  Total hours: {format_hours(stats['total_minutes'])}")
    print(f"  Locked sessions: {stats['locked_blocks']}")
    print(f"  Fill rate: {stats['fill_rate']:.1f}%")

    print("\n  Utilization:")
    for row in stats["utilization"]:
        print(f"    {row.client_id:<12} target={format_hours(row.target_minutes):>7} "
              f"scheduled={format_hours(row.scheduled_minutes):>7} "
              f"remaining={format_hours(row.remaining_minutes):>7}")

    validator = ScheduleValidator()
    result = validator.validate(request, blocks, params)

    if result.is_valid:
        print("\n  Validation: PASSED")
    else:
        print(f"\n  Validation: FAILED ({len(result.errors)} errors)")
        for error in result.errors[:5]:
            print(f"    - {error}")
        if len(result.errors) > 5:
            print(f"    ... and {len(result.errors) - 5} more errors")
    for warning in result.warnings[:5]:
        print(f"    ! {warning}")


def write_outputs(
    request: ScheduleRequest,
    blocks: list[ScheduledBlock],
    params: RunParameters,
    scheduler: Scheduler,
    output_path: Optional[str] = None,
    report_path: Optional[str] = None,
    json_path: Optional[str] = None,
) -> None:
    """Write whichever output files were requested."""
    if json_path:
        rows = scheduler.utilization(request, blocks, params)
        payload = {
            "blocks": [b.to_dict() for b in blocks],
            "utilization": [
                {
                    "client_id": r.client_id,
                    "target_minutes": r.target_minutes,
                    "scheduled_minutes": r.scheduled_minutes,
                    "remaining_minutes": r.remaining_minutes,
                }
                for r in rows
            ],
        }
        Path(json_path).write_text(json.dumps(payload, indent=2))
        print(f"\nJSON written: {json_path}")

    if report_path:
        ReportGenerator(scheduler).generate(request, blocks, report_path, params)
        print(f"\nReport written: {report_path}")

    if output_path:
        print(f"\nGenerating PDF: {output_path}")
        PDFGenerator(scheduler=scheduler).generate(request, blocks, output_path, params)
        print("  PDF created successfully!")


def run_demo(
    client_count: int = 8,
    weeks: int = 2,
    seed: int = 1,
    polish: bool = False,
    bias_longer: bool = False,
    output_path: Optional[str] = None,
    report_path: Optional[str] = None,
) -> None:
    """Run a demo schedule generation."""
    print(f"Generating demo schedule for {client_count} clients over {weeks} weeks...")

    start = week_start(date.today())
    request = ScheduleRequest(
        start_date=start,
        end_date=start + timedelta(days=7 * weeks - 1),
        clients=create_sample_clients(client_count),
        supervisor=create_sample_supervisor(),
    )
    params = RunParameters()

    scheduler = create_scheduler(polish, bias_longer)
    blocks, stats = scheduler.generate_schedule_with_stats(request, seed, params)

    print_summary(request, blocks, stats, params)
    write_outputs(request, blocks, params, scheduler, output_path, report_path)


def run_file(
    input_path: str,
    seed: int = 1,
    polish: bool = False,
    bias_longer: bool = False,
    min_block: Optional[int] = None,
    json_path: Optional[str] = None,
    output_path: Optional[str] = None,
    report_path: Optional[str] = None,
) -> None:
    """Schedule a request loaded from a JSON document."""
    request, params = load_request(input_path)
    logger.info(
        "Loaded %d clients, %s to %s, %d locked blocks",
        len(request.clients),
        request.start_date,
        request.end_date,
        len(params.locked_blocks),
    )

    scheduler = create_scheduler(polish, bias_longer, min_block)
    blocks, stats = scheduler.generate_schedule_with_stats(request, seed, params)

    print_summary(request, blocks, stats, params)
    write_outputs(request, blocks, params, scheduler, output_path, report_path, json_path)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="supsched - Supervision Session Scheduler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s demo                          Run demo with 8 clients over 2 weeks
  %(prog)s demo --clients 20 --polish    Larger demo with polishing
  %(prog)s demo --report roster.txt      Write a text roster

  %(prog)s run request.json              Schedule a request file
  %(prog)s run request.json --json out.json --output roster.pdf
        """,
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    def add_run_options(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            "--seed", "-s",
            type=int,
            default=1,
            help="Tie-breaking seed (default: 1)",
        )
        sub.add_argument(
            "--polish",
            action="store_true",
            help="Fuse near-adjacent fragments and stretch short sessions",
        )
        sub.add_argument(
            "--bias-longer",
            action="store_true",
            help="Prefer placements of at least an hour",
        )
        sub.add_argument(
            "--output", "-o",
            type=str,
            help="Output PDF file path",
        )
        sub.add_argument(
            "--report", "-r",
            type=str,
            help="Output text report path",
        )

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Run demo schedule generation")
    demo_parser.add_argument(
        "--clients", "-c",
        type=int,
        default=8,
        help="Number of clients to generate (default: 8)",
    )
    demo_parser.add_argument(
        "--weeks", "-w",
        type=int,
        default=2,
        help="Number of weeks to schedule (default: 2)",
    )
    add_run_options(demo_parser)

    # Run command
    run_parser = subparsers.add_parser("run", help="Schedule a request from a JSON file")
    run_parser.add_argument("input", type=str, help="Request JSON file")
    run_parser.add_argument(
        "--min-block",
        type=int,
        help="Polisher minimum block length in minutes (default: 45)",
    )
    run_parser.add_argument(
        "--json", "-j",
        type=str,
        help="Output JSON file path for placed blocks",
    )
    add_run_options(run_parser)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "demo":
            run_demo(
                args.clients,
                args.weeks,
                args.seed,
                args.polish,
                args.bias_longer,
                args.output,
                args.report,
            )
            return 0
        elif args.command == "run":
            run_file(
                args.input,
                args.seed,
                args.polish,
                args.bias_longer,
                args.min_block,
                args.json,
                args.output,
                args.report,
            )
            return 0
        else:
            parser.print_help()
            return 1
    except (ScheduleInputError, ValueError, TypeError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
