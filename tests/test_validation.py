"""Tests for schedule validation."""

from datetime import date

import pytest

from supsched.domain.models import (
    Client,
    DayKey,
    RunParameters,
    ScheduledBlock,
    ScheduleRequest,
    Supervisor,
    TimeBlock,
)
from supsched.validation.validator import (
    ScheduleValidator,
    ValidationErrorType,
)

MONDAY = date(2024, 1, 15)
TUESDAY = date(2024, 1, 16)


def block(client_id: str, start: int, end: int, d: date = MONDAY) -> ScheduledBlock:
    return ScheduledBlock(d, client_id, start, end)


class TestScheduleValidator:
    """Tests for ScheduleValidator."""

    @pytest.fixture
    def validator(self):
        """Create a validator with default settings."""
        return ScheduleValidator()

    @pytest.fixture
    def schedule_request(self):
        """Two clients, supervisor free Mon/Tue 9:00-12:00."""
        return ScheduleRequest(
            start_date=MONDAY,
            end_date=TUESDAY,
            clients=[
                Client(
                    id="c1",
                    max_sessions_per_day=1,
                    windows={DayKey.MON: [TimeBlock(540, 660)]},
                ),
                Client(
                    id="c2",
                    max_sessions_per_week=1,
                    windows={
                        DayKey.MON: [TimeBlock(600, 720)],
                        DayKey.TUE: [TimeBlock(600, 720)],
                    },
                ),
            ],
            supervisor=Supervisor(
                daily_avail={
                    DayKey.MON: [TimeBlock(540, 720)],
                    DayKey.TUE: [TimeBlock(540, 720)],
                },
                rounding_minutes=15,
            ),
        )

    def test_valid_schedule(self, validator, schedule_request):
        blocks = [block("c1", 540, 600), block("c2", 600, 660)]

        result = validator.validate(schedule_request, blocks)

        assert result.is_valid
        assert result.errors == []

    def test_empty_schedule_valid(self, validator, schedule_request):
        assert validator.validate(schedule_request, []).is_valid

    def test_unknown_client(self, validator, schedule_request):
        result = validator.validate(schedule_request, [block("ghost", 540, 600)])

        assert not result.is_valid
        assert result.errors_of(ValidationErrorType.UNKNOWN_CLIENT)

    def test_invalid_block(self, validator, schedule_request):
        result = validator.validate(schedule_request, [block("c1", 600, 600)])

        assert result.errors_of(ValidationErrorType.INVALID_BLOCK)

    def test_off_grid_length(self, validator, schedule_request):
        result = validator.validate(schedule_request, [block("c1", 540, 590)])

        assert [e.error_type for e in result.errors] == [ValidationErrorType.OFF_GRID]

    def test_outside_date_range(self, validator, schedule_request):
        result = validator.validate(
            schedule_request, [block("c1", 540, 600, d=date(2024, 1, 22))]
        )

        assert result.errors_of(ValidationErrorType.OUTSIDE_DATE_RANGE)

    def test_outside_availability(self, validator, schedule_request):
        result = validator.validate(schedule_request, [block("c1", 480, 540)])

        assert result.errors_of(ValidationErrorType.OUTSIDE_AVAILABILITY)

    def test_closed_day_is_outside_availability(self, validator, schedule_request):
        params = RunParameters(closed_days={MONDAY})

        result = validator.validate(schedule_request, [block("c1", 540, 600)], params)

        assert result.errors_of(ValidationErrorType.OUTSIDE_AVAILABILITY)

    def test_supervisor_double_booked(self, validator, schedule_request):
        blocks = [block("c1", 540, 630), block("c2", 600, 660)]

        result = validator.validate(schedule_request, blocks)

        assert result.errors_of(ValidationErrorType.SUPERVISOR_DOUBLE_BOOKED)

    def test_client_overlap(self, validator, schedule_request):
        blocks = [block("c2", 600, 660), block("c2", 630, 690)]

        result = validator.validate(schedule_request, blocks)

        assert result.errors_of(ValidationErrorType.CLIENT_OVERLAP)

    def test_overlaps_locked(self, validator, schedule_request):
        locked = block("c2", 600, 660)
        params = RunParameters(locked_blocks=[locked])

        result = validator.validate(schedule_request, [block("c1", 540, 615)], params)

        assert result.errors_of(ValidationErrorType.OVERLAPS_LOCKED)

    def test_locked_blocks_themselves_accepted(self, validator, schedule_request):
        locked = block("c1", 540, 600)
        params = RunParameters(locked_blocks=[locked])

        result = validator.validate(schedule_request, [locked], params)

        assert result.is_valid

    def test_daily_cap_exceeded(self, validator, schedule_request):
        blocks = [block("c1", 540, 570), block("c1", 600, 630)]

        result = validator.validate(schedule_request, blocks)

        assert result.errors_of(ValidationErrorType.DAILY_CAP_EXCEEDED)

    def test_weekly_cap_counts_locked_blocks(self, validator, schedule_request):
        params = RunParameters(locked_blocks=[block("c2", 600, 660)])

        result = validator.validate(schedule_request, [block("c2", 600, 660, d=TUESDAY)], params)

        assert result.errors_of(ValidationErrorType.WEEKLY_CAP_EXCEEDED)

    def test_locked_block_outside_run_not_counted(self, validator, schedule_request):
        wednesday = date(2024, 1, 17)
        params = RunParameters(locked_blocks=[block("c2", 600, 660, d=wednesday)])

        result = validator.validate(schedule_request, [block("c2", 600, 660, d=TUESDAY)], params)

        assert not result.errors_of(ValidationErrorType.WEEKLY_CAP_EXCEEDED)

    def test_client_windows_checked_only_on_request(self, schedule_request):
        blocks = [block("c1", 660, 720)]

        assert ScheduleValidator().validate(schedule_request, blocks).is_valid

        strict = ScheduleValidator(check_client_windows=True)
        result = strict.validate(schedule_request, blocks)
        assert result.errors_of(ValidationErrorType.OUTSIDE_CLIENT_WINDOW)

    def test_custom_grid(self, schedule_request):
        result = ScheduleValidator(grid=30).validate(schedule_request, [block("c1", 540, 585)])

        assert result.errors_of(ValidationErrorType.OFF_GRID)

    def test_over_target_is_warning(self, validator, schedule_request):
        params = RunParameters(target_overrides={"c1": 30})

        result = validator.validate(schedule_request, [block("c1", 540, 600)], params)

        assert result.is_valid
        assert any("c1" in w for w in result.warnings)

    def test_explicit_targets(self, validator, schedule_request):
        result = validator.validate(
            schedule_request, [block("c1", 540, 600)], targets={"c1": 120}
        )

        assert result.warnings == []

    def test_error_string(self, validator, schedule_request):
        result = validator.validate(schedule_request, [block("ghost", 540, 600)])

        text = str(result.errors[0])
        assert "unknown_client" in text
        assert "2024-01-15" in text
