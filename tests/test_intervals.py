"""Tests for interval arithmetic."""

from supsched.domain.intervals import (
    covered_minutes,
    intersect,
    normalize,
    snap_to_grid,
    snapped,
    subtract,
    total_minutes,
)
from supsched.domain.models import TimeBlock


class TestIntersect:
    """Tests for pairwise intersection."""

    def test_overlapping_pairs(self):
        a = [TimeBlock(540, 660)]
        b = [TimeBlock(600, 720), TimeBlock(480, 555)]

        assert intersect(a, b) == [TimeBlock(600, 660), TimeBlock(540, 555)]

    def test_touching_blocks_do_not_intersect(self):
        assert intersect([TimeBlock(540, 600)], [TimeBlock(600, 660)]) == []

    def test_empty_inputs(self):
        assert intersect([], [TimeBlock(0, 60)]) == []
        assert intersect([TimeBlock(0, 60)], []) == []


class TestSubtract:
    """Tests for sequential subtraction."""

    def test_split_in_middle(self):
        result = subtract([TimeBlock(540, 720)], [TimeBlock(600, 615)])

        assert result == [TimeBlock(540, 600), TimeBlock(615, 720)]

    def test_unsorted_overlapping_minus(self):
        base = [TimeBlock(480, 720)]
        minus = [TimeBlock(600, 660), TimeBlock(500, 620), TimeBlock(700, 800)]

        assert subtract(base, minus) == [TimeBlock(480, 500), TimeBlock(660, 700)]

    def test_result_is_sorted(self):
        base = [TimeBlock(780, 900), TimeBlock(540, 660)]

        assert subtract(base, []) == [TimeBlock(540, 660), TimeBlock(780, 900)]

    def test_inputs_not_modified(self):
        base = [TimeBlock(540, 720)]
        subtract(base, [TimeBlock(540, 600)])

        assert base == [TimeBlock(540, 720)]


class TestGridSnapping:
    """Tests for grid snapping."""

    def test_start_rounds_up_end_rounds_down(self):
        assert snap_to_grid(TimeBlock(545, 700), 15) == TimeBlock(555, 690)

    def test_aligned_block_unchanged(self):
        assert snap_to_grid(TimeBlock(540, 600), 15) == TimeBlock(540, 600)

    def test_collapse_returns_empty_sentinel(self):
        result = snap_to_grid(TimeBlock(541, 554), 15)

        assert result == TimeBlock.empty()
        assert result.is_empty

    def test_snapped_filters_and_sorts(self):
        blocks = [TimeBlock(700, 760), TimeBlock(541, 554), TimeBlock(530, 600)]

        assert snapped(blocks, 15) == [TimeBlock(540, 600), TimeBlock(705, 750)]


class TestMeasures:
    """Tests for minute totals and normalization."""

    def test_total_minutes_ignores_inverted(self):
        assert total_minutes([TimeBlock(0, 60), TimeBlock(100, 90)]) == 60

    def test_covered_minutes(self):
        free = [TimeBlock(540, 570), TimeBlock(585, 720)]

        assert covered_minutes(TimeBlock(540, 615), free) == 60

    def test_normalize_drops_empty_and_sorts(self):
        blocks = [TimeBlock(600, 660), TimeBlock(500, 500), TimeBlock(540, 560)]

        assert normalize(blocks) == [TimeBlock(540, 560), TimeBlock(600, 660)]
