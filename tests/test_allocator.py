"""Tests for the greedy allocator."""

from datetime import date

import pytest

from supsched.cli import create_sample_clients, create_sample_supervisor
from supsched.domain.models import (
    Client,
    DayKey,
    RunParameters,
    ScheduledBlock,
    ScheduleRequest,
    Supervisor,
    TimeBlock,
    week_start,
)
from supsched.scheduling.allocator import (
    AllocationContext,
    AllocationOptions,
    GreedyAllocator,
    LinearCongruentialRandom,
    client_has_future_window,
    interleave_dates,
)
from supsched.scheduling.scheduler import Scheduler, allocate
from supsched.validation.validator import ScheduleValidator

MONDAY = date(2024, 1, 15)
TUESDAY = date(2024, 1, 16)
SUNDAY = date(2024, 1, 21)
NEXT_MONDAY = date(2024, 1, 22)


def make_supervisor(days=(DayKey.MON,), start: int = 540, end: int = 720) -> Supervisor:
    return Supervisor(
        daily_avail={day: [TimeBlock(start, end)] for day in days},
        rounding_minutes=15,
    )


def make_request(clients, end_date: date = MONDAY, supervisor=None) -> ScheduleRequest:
    return ScheduleRequest(
        start_date=MONDAY,
        end_date=end_date,
        clients=list(clients),
        supervisor=supervisor or make_supervisor(),
    )


def monday_client(client_id: str = "c1", **kwargs) -> Client:
    """Client attending Mondays 9:00-11:00."""
    kwargs.setdefault("windows", {DayKey.MON: [TimeBlock(540, 660)]})
    kwargs.setdefault("min_session_mins", 60)
    return Client(id=client_id, **kwargs)


class TestScenarios:
    """Acceptance scenarios for a single supervisor."""

    @pytest.fixture
    def allocator(self):
        """Create an allocator with default options."""
        return GreedyAllocator()

    def test_single_client_fills_window(self, allocator):
        client = monday_client(sup_percent=100)
        request = make_request([client])

        result = allocator.run(request, seed=1)

        assert result.targets == {"c1": 120}
        assert result.blocks == [ScheduledBlock(MONDAY, "c1", 540, 660)]
        assert result.remaining == {"c1": 0}

    def test_daily_cap_limits_each_monday(self, allocator):
        client = monday_client(max_sessions_per_day=1)
        request = make_request([client], end_date=NEXT_MONDAY)

        result = allocator.run(request, params=RunParameters(target_overrides={"c1": 180}))

        per_day = {}
        for b in result.blocks:
            per_day[b.date] = per_day.get(b.date, 0) + 1
        assert all(count <= 1 for count in per_day.values())
        assert sum(b.minutes for b in result.blocks) <= 180

    def test_daily_cap_leaves_target_unmet(self, allocator):
        client = monday_client(max_sessions_per_day=1)
        request = make_request([client], end_date=NEXT_MONDAY)

        result = allocator.run(request, params=RunParameters(target_overrides={"c1": 300}))

        assert result.blocks == [
            ScheduledBlock(MONDAY, "c1", 540, 660),
            ScheduledBlock(NEXT_MONDAY, "c1", 540, 660),
        ]
        assert result.remaining["c1"] == 60

    def test_shared_window_defers_instead_of_double_booking(self, allocator):
        clients = [monday_client("c1"), monday_client("c2")]
        request = make_request(clients)
        params = RunParameters(target_overrides={"c1": 120, "c2": 120})

        blocks = allocator.allocate(request, seed=3, params=params)

        assert len(blocks) == 1
        assert blocks[0].client_id in {"c1", "c2"}
        assert blocks[0].span == TimeBlock(540, 660)
        assert ScheduleValidator().validate(request, blocks, params).is_valid


class TestDateOrdering:
    """Tests for weekday interleaving."""

    def test_interleaves_weekdays_monday_first(self):
        # Wednesday 2024-01-17 through Tuesday 2024-01-30
        dates = [date(2024, 1, d) for d in range(17, 31)]

        ordered = interleave_dates(dates)

        assert [d.day for d in ordered] == [
            22, 23, 17, 18, 19, 20, 21, 29, 30, 24, 25, 26, 27, 28,
        ]

    def test_empty(self):
        assert interleave_dates([]) == []


class TestLinearCongruentialRandom:
    """Tests for the portable seeded generator."""

    def test_known_first_state(self):
        rng = LinearCongruentialRandom(1)
        rng.next_unit()

        assert rng.state == 1015568748

    def test_zero_seed_behaves_like_one(self):
        a = LinearCongruentialRandom(0)
        b = LinearCongruentialRandom(1)

        assert [a.next_unit() for _ in range(5)] == [b.next_unit() for _ in range(5)]

    def test_values_in_unit_interval(self):
        rng = LinearCongruentialRandom(42)

        assert all(0.0 <= rng.next_unit() <= 1.0 for _ in range(100))


class TestRunParameters:
    """Tests for locks, closures and exclusions."""

    def test_locked_block_consumes_time_and_target(self):
        client = monday_client()
        request = make_request([client])
        lock = ScheduledBlock(MONDAY, "c1", 540, 600)

        blocks = allocate(request, locked_blocks=[lock], target_overrides={"c1": 120})

        assert blocks == [ScheduledBlock(MONDAY, "c1", 600, 660)]
        assert lock not in blocks

    def test_locked_block_counts_toward_daily_cap(self):
        client = monday_client(max_sessions_per_day=1)
        request = make_request([client])
        lock = ScheduledBlock(MONDAY, "c1", 540, 600)

        blocks = allocate(request, locked_blocks=[lock], target_overrides={"c1": 120})

        assert blocks == []

    def test_closed_day(self):
        request = make_request([monday_client(sup_percent=100)])

        assert allocate(request, closed_days=[MONDAY]) == []

    def test_supervisor_unavailable_day(self):
        supervisor = make_supervisor()
        supervisor.unavailable_days.add(MONDAY)
        request = make_request([monday_client(sup_percent=100)], supervisor=supervisor)

        assert allocate(request) == []

    def test_one_off_exclusion(self):
        request = make_request([monday_client()])

        blocks = allocate(
            request,
            target_overrides={"c1": 120},
            one_off_exclusions={MONDAY: [TimeBlock(540, 600)]},
        )

        assert blocks == [ScheduledBlock(MONDAY, "c1", 600, 660)]


class TestCaps:
    """Tests for session caps."""

    def test_daily_cap_with_split_windows(self):
        client = monday_client(
            max_sessions_per_day=1,
            windows={DayKey.MON: [TimeBlock(540, 600), TimeBlock(660, 720)]},
        )
        request = make_request([client])

        blocks = allocate(request, target_overrides={"c1": 120})

        assert blocks == [ScheduledBlock(MONDAY, "c1", 540, 600)]

    def test_weekly_cap(self):
        weekdays = [DayKey.MON, DayKey.TUE, DayKey.WED, DayKey.THU, DayKey.FRI]
        client = Client(
            id="c1",
            max_sessions_per_week=2,
            windows={day: [TimeBlock(540, 660)] for day in weekdays},
        )
        request = make_request(
            [client], end_date=SUNDAY, supervisor=make_supervisor(weekdays)
        )

        blocks = allocate(request, target_overrides={"c1": 600})

        assert [b.date for b in blocks] == [MONDAY, TUESDAY]
        assert all(b.minutes == 120 for b in blocks)


class TestSubHourPreference:
    """Tests for prefer_no_sub_hour handling."""

    def _request(self, prefer: bool) -> ScheduleRequest:
        client = Client(
            id="c1",
            min_session_mins=30,
            prefer_no_sub_hour=prefer,
            windows={
                DayKey.MON: [TimeBlock(540, 585)],
                DayKey.TUE: [TimeBlock(540, 660)],
            },
        )
        return make_request(
            [client],
            end_date=TUESDAY,
            supervisor=make_supervisor((DayKey.MON, DayKey.TUE)),
        )

    def test_short_slot_deferred_to_later_window(self):
        blocks = allocate(self._request(prefer=True), target_overrides={"c1": 60})

        assert blocks == [ScheduledBlock(TUESDAY, "c1", 540, 600)]

    def test_short_slot_used_without_preference(self):
        blocks = allocate(self._request(prefer=False), target_overrides={"c1": 60})

        assert blocks == [
            ScheduledBlock(MONDAY, "c1", 540, 585),
            ScheduledBlock(TUESDAY, "c1", 540, 555),
        ]

    def test_no_deferral_on_last_window(self):
        client = Client(
            id="c1",
            min_session_mins=30,
            prefer_no_sub_hour=True,
            windows={DayKey.MON: [TimeBlock(540, 585)]},
        )
        request = make_request([client])

        blocks = allocate(request, target_overrides={"c1": 120})

        assert blocks == [ScheduledBlock(MONDAY, "c1", 540, 585)]

    def test_fallback_bumps_to_an_hour_without_lookahead(self):
        """The relaxed pass rounds up to 60 even when a later window exists,
        while the primary pass would place only what is owed."""
        client = Client(
            id="c1",
            min_session_mins=15,
            prefer_no_sub_hour=True,
            windows={DayKey.MON: [TimeBlock(540, 660)]},
        )
        request = make_request([client], end_date=NEXT_MONDAY)
        allocator = GreedyAllocator()
        free = [TimeBlock(540, 720)]

        assert client_has_future_window(client, MONDAY, NEXT_MONDAY)

        primary = allocator._choose_block(
            request, client, MONDAY, free, AllocationContext(remaining={"c1": 30}), 15
        )
        assert primary == TimeBlock(540, 570)

        context = AllocationContext(remaining={"c1": 30})
        allocator._fill(request, MONDAY, free, context, 15)
        assert context.placed == [ScheduledBlock(MONDAY, "c1", 540, 600)]
        assert context.need("c1") == 0


class TestBiasLonger:
    """Tests for the bias-longer ranking boost."""

    def _rank(self, bias_longer: bool) -> list[str]:
        short = Client(id="short", min_session_mins=15, windows={DayKey.MON: [TimeBlock(540, 660)]})
        long = Client(
            id="long",
            windows={
                DayKey.MON: [TimeBlock(540, 660)],
                DayKey.TUE: [TimeBlock(540, 660)],
            },
        )
        allocator = GreedyAllocator(AllocationOptions(bias_longer=bias_longer))
        context = AllocationContext(remaining={"short": 30, "long": 120})
        scores = allocator._rank(
            [short, long],
            MONDAY,
            [TimeBlock(540, 720)],
            context,
            LinearCongruentialRandom(1),
            15,
        )
        return [s.client.id for s in scores]

    def test_scarcer_client_first_by_default(self):
        assert self._rank(bias_longer=False) == ["short", "long"]

    def test_hour_opportunity_first_when_biased(self):
        assert self._rank(bias_longer=True) == ["long", "short"]


class TestSampleRoster:
    """Properties over a realistic multi-week roster."""

    @pytest.fixture
    def request_(self):
        """Two weeks of the ten-client sample roster."""
        return ScheduleRequest(
            start_date=MONDAY,
            end_date=date(2024, 1, 28),
            clients=create_sample_clients(10),
            supervisor=create_sample_supervisor(),
        )

    @pytest.mark.parametrize("seed", [1, 7, 12345])
    def test_schedule_is_valid(self, request_, seed):
        blocks = GreedyAllocator().allocate(request_, seed=seed)

        result = ScheduleValidator().validate(request_, blocks)

        assert result.is_valid, [str(e) for e in result.errors]
        assert blocks

    def test_blocks_on_grid(self, request_):
        grid = request_.grid
        for b in GreedyAllocator().allocate(request_, seed=5):
            assert b.start % grid == 0
            assert b.end % grid == 0

    def test_same_seed_same_output(self, request_):
        first = GreedyAllocator().allocate(request_, seed=99)
        second = GreedyAllocator().allocate(request_, seed=99)

        assert first == second

    def test_bias_longer_is_valid(self, request_):
        allocator = GreedyAllocator(AllocationOptions(bias_longer=True))
        blocks = allocator.allocate(request_, seed=3)

        assert ScheduleValidator().validate(request_, blocks).is_valid

    def test_weekly_caps_respected(self, request_):
        blocks = GreedyAllocator().allocate(request_, seed=2)

        for client in request_.clients:
            if client.max_sessions_per_week is None:
                continue
            counts = {}
            for b in blocks:
                if b.client_id == client.id:
                    wk = week_start(b.date)
                    counts[wk] = counts.get(wk, 0) + 1
            assert all(c <= client.max_sessions_per_week for c in counts.values())

    @pytest.mark.parametrize("bias_longer,polish", [(False, False), (True, False), (False, True)])
    def test_run_parameters_honored(self, request_, bias_longer, polish):
        closed = date(2024, 1, 19)
        excluded = {date(2024, 1, 23): [TimeBlock(600, 720)]}
        locks = [
            ScheduledBlock(MONDAY, "C001", 480, 540),
            ScheduledBlock(date(2024, 1, 17), "C004", 540, 600),
            ScheduledBlock(date(2024, 1, 17), "C002", 780, 840),
        ]
        params = RunParameters(
            locked_blocks=locks,
            closed_days={closed},
            one_off_exclusions=excluded,
        )
        scheduler = Scheduler(options=AllocationOptions(bias_longer=bias_longer), polish=polish)

        blocks = scheduler.generate_schedule(request_, seed=8, params=params)

        result = ScheduleValidator().validate(request_, blocks, params)
        assert result.is_valid, [str(e) for e in result.errors]
        assert blocks
        assert not set(locks) & set(blocks)
        assert all(b.date != closed for b in blocks)
        for b in blocks:
            for hole in excluded.get(b.date, []):
                assert not b.span.overlaps(hole)
        for b in blocks:
            assert b.start % request_.grid == 0
            assert b.end % request_.grid == 0
