"""Validation module for verifying schedule correctness.

This module provides a single source of truth for all schedule constraints.
Every generated schedule should pass validation before being handed to
rendering or persistence.
"""

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable, Optional

from supsched.domain.intervals import covered_minutes
from supsched.domain.models import (
    MINUTES_PER_DAY,
    DayKey,
    RunParameters,
    ScheduledBlock,
    ScheduleRequest,
    week_start,
)
from supsched.scheduling.capacity import base_availability
from supsched.scheduling.targets import TargetResolver


class ValidationErrorType(Enum):
    """Types of validation errors."""

    UNKNOWN_CLIENT = "unknown_client"
    INVALID_BLOCK = "invalid_block"
    OFF_GRID = "off_grid"
    OUTSIDE_DATE_RANGE = "outside_date_range"
    OUTSIDE_AVAILABILITY = "outside_availability"
    OUTSIDE_CLIENT_WINDOW = "outside_client_window"
    OVERLAPS_LOCKED = "overlaps_locked"
    CLIENT_OVERLAP = "client_overlap"
    SUPERVISOR_DOUBLE_BOOKED = "supervisor_double_booked"
    WEEKLY_CAP_EXCEEDED = "weekly_cap_exceeded"
    DAILY_CAP_EXCEEDED = "daily_cap_exceeded"


@dataclass
class ValidationError:
    """A single validation error."""

    error_type: ValidationErrorType
    message: str
    client_id: Optional[str] = None
    block_date: Optional[date] = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"[{self.error_type.value}]"]
        if self.client_id:
            parts.append(f"Client {self.client_id}:")
        parts.append(self.message)
        if self.block_date is not None:
            parts.append(f"({self.block_date.isoformat()})")
        return " ".join(parts)


@dataclass
class ValidationResult:
    """Result of validating a schedule."""

    is_valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_error(self, error: ValidationError) -> None:
        """Add an error and mark as invalid."""
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, warning: str) -> None:
        """Add a warning (doesn't affect validity)."""
        self.warnings.append(warning)

    def errors_of(self, error_type: ValidationErrorType) -> list[ValidationError]:
        return [e for e in self.errors if e.error_type == error_type]


class ScheduleValidator:
    """Validates schedules against all constraints.

    This is the single source of truth for constraint checking.

    Example:
        >>> validator = ScheduleValidator()
        >>> result = validator.validate(request, blocks, params)
        >>> if not result.is_valid:
        ...     for error in result.errors:
        ...         print(error)
    """

    def __init__(
        self,
        grid: Optional[int] = None,
        check_client_windows: bool = False,
        target_resolver: Optional[TargetResolver] = None,
    ):
        """Initialize validator.

        Args:
            grid: Grid to check lengths against; defaults to the supervisor's.
            check_client_windows: Also require blocks to sit inside the
                client's authorized windows. Off by default because polishing
                may stretch into supervisor time outside them.
            target_resolver: Resolver used for over-delivery warnings.
        """
        self.grid = grid
        self.check_client_windows = check_client_windows
        self.target_resolver = target_resolver or TargetResolver()

    def validate(
        self,
        request: ScheduleRequest,
        blocks: Iterable[ScheduledBlock],
        params: Optional[RunParameters] = None,
        targets: Optional[dict[str, int]] = None,
    ) -> ValidationResult:
        """Validate a complete schedule.

        Args:
            request: Original request with constraints.
            blocks: Placed blocks. Locked blocks may be included or not.
            params: Run parameters (locks, overrides, exclusions).
            targets: Resolved targets; resolved from the request if omitted.

        Returns:
            ValidationResult with is_valid flag and any errors.
        """
        params = params or RunParameters()
        blocks = list(blocks)
        result = ValidationResult(is_valid=True)
        locked = {b.key for b in params.locked_blocks}
        clients = {c.id: c for c in request.clients}

        for block in blocks:
            client = clients.get(block.client_id)
            if client is None:
                result.add_error(
                    ValidationError(
                        error_type=ValidationErrorType.UNKNOWN_CLIENT,
                        message=f"Unknown client ID: {block.client_id}",
                        client_id=block.client_id,
                        block_date=block.date,
                    )
                )
                continue
            if block.key in locked:
                continue
            self._validate_block(block, request, params, result)

        self._validate_overlaps(blocks, result)
        self._validate_caps(blocks, request, params, result)
        self._check_targets(blocks, request, params, targets, result)
        return result

    def _validate_block(
        self,
        block: ScheduledBlock,
        request: ScheduleRequest,
        params: RunParameters,
        result: ValidationResult,
    ) -> None:
        """Validate a single placed block."""
        grid = self.grid or request.grid

        if not 0 <= block.start < block.end <= MINUTES_PER_DAY:
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.INVALID_BLOCK,
                    message=f"Invalid span {block.start}-{block.end}",
                    client_id=block.client_id,
                    block_date=block.date,
                )
            )
            return

        if block.minutes % grid != 0:
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.OFF_GRID,
                    message=f"Length {block.minutes} is not a multiple of {grid}",
                    client_id=block.client_id,
                    block_date=block.date,
                )
            )

        if not request.start_date <= block.date <= request.end_date:
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.OUTSIDE_DATE_RANGE,
                    message="Block falls outside the requested date range",
                    client_id=block.client_id,
                    block_date=block.date,
                )
            )

        for lock in params.locked_on(block.date):
            if block.span.overlaps(lock.span):
                result.add_error(
                    ValidationError(
                        error_type=ValidationErrorType.OVERLAPS_LOCKED,
                        message=f"Overlaps locked block {lock.start}-{lock.end}",
                        client_id=block.client_id,
                        block_date=block.date,
                        details={"locked": lock.to_dict()},
                    )
                )

        avail = base_availability(request, block.date, params, include_locks=False)
        if covered_minutes(block.span, avail) < block.minutes:
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.OUTSIDE_AVAILABILITY,
                    message=f"Block {block.start}-{block.end} is outside supervisor availability",
                    client_id=block.client_id,
                    block_date=block.date,
                )
            )

        if self.check_client_windows:
            client = request.get_client(block.client_id)
            windows = client.windows_on(DayKey.from_date(block.date)) if client else []
            if covered_minutes(block.span, windows) < block.minutes:
                result.add_error(
                    ValidationError(
                        error_type=ValidationErrorType.OUTSIDE_CLIENT_WINDOW,
                        message=f"Block {block.start}-{block.end} is outside the client's windows",
                        client_id=block.client_id,
                        block_date=block.date,
                    )
                )

    def _validate_overlaps(self, blocks: list[ScheduledBlock], result: ValidationResult) -> None:
        """No two blocks on a date may share supervisor time."""
        by_date: dict[date, list[ScheduledBlock]] = defaultdict(list)
        for b in blocks:
            by_date[b.date].append(b)

        for d, day_blocks in by_date.items():
            day_blocks.sort(key=lambda b: (b.start, b.end))
            for i, a in enumerate(day_blocks):
                for b in day_blocks[i + 1:]:
                    if b.start >= a.end:
                        break
                    same_client = a.client_id == b.client_id
                    result.add_error(
                        ValidationError(
                            error_type=(
                                ValidationErrorType.CLIENT_OVERLAP
                                if same_client
                                else ValidationErrorType.SUPERVISOR_DOUBLE_BOOKED
                            ),
                            message=(
                                f"{a.client_id} {a.start}-{a.end} overlaps "
                                f"{b.client_id} {b.start}-{b.end}"
                            ),
                            client_id=a.client_id,
                            block_date=d,
                        )
                    )

    def _validate_caps(
        self,
        blocks: list[ScheduledBlock],
        request: ScheduleRequest,
        params: RunParameters,
        result: ValidationResult,
    ) -> None:
        """Weekly and daily session caps, counting locked blocks in the run too."""
        counted = {b.key: b for b in blocks}
        for lock in params.locked_blocks:
            if request.start_date <= lock.date <= request.end_date:
                counted.setdefault(lock.key, lock)

        per_week = Counter((b.client_id, week_start(b.date)) for b in counted.values())
        per_day = Counter((b.client_id, b.date) for b in counted.values())

        for client in request.clients:
            if client.max_sessions_per_week is not None:
                for (client_id, wk), count in sorted(per_week.items(), key=lambda kv: kv[0][1]):
                    if client_id == client.id and count > client.max_sessions_per_week:
                        result.add_error(
                            ValidationError(
                                error_type=ValidationErrorType.WEEKLY_CAP_EXCEEDED,
                                message=(
                                    f"{count} sessions in week of {wk.isoformat()} "
                                    f"(max {client.max_sessions_per_week})"
                                ),
                                client_id=client.id,
                                block_date=wk,
                            )
                        )
            if client.max_sessions_per_day is not None:
                for (client_id, d), count in sorted(per_day.items(), key=lambda kv: kv[0][1]):
                    if client_id == client.id and count > client.max_sessions_per_day:
                        result.add_error(
                            ValidationError(
                                error_type=ValidationErrorType.DAILY_CAP_EXCEEDED,
                                message=f"{count} sessions (max {client.max_sessions_per_day})",
                                client_id=client.id,
                                block_date=d,
                            )
                        )

    def _check_targets(
        self,
        blocks: list[ScheduledBlock],
        request: ScheduleRequest,
        params: RunParameters,
        targets: Optional[dict[str, int]],
        result: ValidationResult,
    ) -> None:
        """Warn about clients scheduled beyond their resolved target."""
        if targets is None:
            targets = self.target_resolver.resolve(request, params.target_overrides)
        counted = {b.key: b for b in blocks}
        for lock in params.locked_blocks:
            if request.start_date <= lock.date <= request.end_date:
                counted.setdefault(lock.key, lock)

        scheduled = Counter()
        for b in counted.values():
            scheduled[b.client_id] += b.minutes

        for client_id, minutes in sorted(scheduled.items()):
            target = targets.get(client_id)
            if target is not None and minutes > target:
                result.add_warning(
                    f"Client {client_id}: scheduled {minutes} min exceeds target {target} min"
                )
