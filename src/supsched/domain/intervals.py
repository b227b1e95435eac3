"""Interval arithmetic over minute-granularity time blocks.

Every function here is pure: inputs are never modified and new lists are
returned. Blocks are ``TimeBlock`` values measured in minutes since midnight.
"""

from typing import Iterable

from supsched.domain.models import TimeBlock


def normalize(blocks: Iterable[TimeBlock]) -> list[TimeBlock]:
    """Coerce to integer minutes, drop empty or inverted blocks and sort."""
    out = []
    for block in blocks:
        start, end = int(block.start), int(block.end)
        if end > start:
            out.append(TimeBlock(start, end))
    out.sort(key=lambda b: b.start)
    return out


def intersect(a: Iterable[TimeBlock], b: Iterable[TimeBlock]) -> list[TimeBlock]:
    """Pairwise overlap of two block sets.

    Emits ``(max(x.start, y.start), min(x.end, y.end))`` for every pair with a
    positive-length overlap. The result is in pair order, not sorted.
    """
    b = list(b)
    out = []
    for x in a:
        for y in b:
            start = max(x.start, y.start)
            end = min(x.end, y.end)
            if end > start:
                out.append(TimeBlock(start, end))
    return out


def subtract(base: Iterable[TimeBlock], minus: Iterable[TimeBlock]) -> list[TimeBlock]:
    """Remove every block in ``minus`` from ``base``.

    Each subtraction applies to the remainder left by the previous one, so
    ``minus`` does not need to be merged or sorted first. The result is
    sorted by start.
    """
    slots = list(base)
    for m in minus:
        remainder = []
        for s in slots:
            if m.end <= s.start or m.start >= s.end:
                remainder.append(s)
                continue
            if m.start > s.start:
                remainder.append(TimeBlock(s.start, m.start))
            if m.end < s.end:
                remainder.append(TimeBlock(m.end, s.end))
        slots = remainder
    slots.sort(key=lambda b: b.start)
    return slots


def snap_to_grid(block: TimeBlock, grid: int) -> TimeBlock:
    """Shrink a block inward to grid boundaries.

    The start rounds up and the end rounds down. Returns the ``(0, 0)``
    sentinel when rounding collapses the block; callers filter it out.
    """
    start = -(-block.start // grid) * grid
    end = (block.end // grid) * grid
    if end > start:
        return TimeBlock(start, end)
    return TimeBlock.empty()


def snapped(blocks: Iterable[TimeBlock], grid: int) -> list[TimeBlock]:
    """Snap each block to the grid, drop collapsed ones, sort by start."""
    out = [snap_to_grid(b, grid) for b in blocks]
    out = [b for b in out if not b.is_empty]
    out.sort(key=lambda b: b.start)
    return out


def total_minutes(blocks: Iterable[TimeBlock]) -> int:
    """Sum of block lengths, ignoring non-positive ones."""
    return sum(max(0, b.end - b.start) for b in blocks)


def covered_minutes(span: TimeBlock, free: Iterable[TimeBlock]) -> int:
    """Minutes of ``span`` covered by the ``free`` blocks."""
    return total_minutes(intersect([span], free))
