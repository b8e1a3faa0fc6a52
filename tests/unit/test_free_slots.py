"""
Unit tests for free-slot computation.
"""

from datetime import datetime, timedelta, timezone

import pytest

from calsync.schemas.calendar_events import TimeSlot
from calsync.services.availability.free_slots import chunk_interval, compute_free_slots


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, 10, hour, minute, tzinfo=timezone.utc)


def slot(start: datetime, end: datetime) -> TimeSlot:
    return TimeSlot(start=start, end=end)


class TestChunkInterval:

    def test_exact_fit(self):
        slots = chunk_interval(at(9), at(10), 30)
        assert [(s.start, s.end) for s in slots] == [(at(9), at(9, 30)), (at(9, 30), at(10))]

    def test_short_remainder_is_dropped(self):
        slots = chunk_interval(at(9), at(10, 10), 30)
        assert len(slots) == 2
        assert slots[-1].end == at(10)


class TestComputeFreeSlots:

    def test_busy_blocks_are_subtracted(self):
        busy = [slot(at(10), at(10, 30)), slot(at(11), at(12, 30))]

        free = compute_free_slots(at(9), at(12), busy, 30)

        assert [s.start for s in free] == [at(9), at(9, 30), at(10, 30)]

    def test_overlapping_busy_blocks_merge(self):
        busy = [slot(at(9), at(9, 45)), slot(at(9, 30), at(10))]

        free = compute_free_slots(at(9), at(11), busy, 30)

        assert [s.start for s in free] == [at(10), at(10, 30)]

    def test_busy_outside_window_is_ignored(self):
        busy = [slot(at(7), at(8)), slot(at(13), at(14))]

        free = compute_free_slots(at(9), at(10), busy, 30)

        assert len(free) == 2

    def test_unsorted_busy_input(self):
        busy = [slot(at(11), at(11, 30)), slot(at(9), at(9, 30))]

        free = compute_free_slots(at(9), at(12), busy, 30)

        assert [s.start for s in free] == [at(9, 30), at(10), at(10, 30), at(11, 30)]

    def test_fully_booked_day(self):
        assert compute_free_slots(at(9), at(17), [slot(at(8), at(18))], 30) == []

    def test_empty_window(self):
        assert compute_free_slots(at(12), at(12), [], 30) == []
        assert compute_free_slots(at(12), at(9), [], 30) == []

    def test_non_positive_duration_raises(self):
        with pytest.raises(ValueError):
            compute_free_slots(at(9), at(12), [], 0)

    def test_free_slots_never_overlap_busy_time(self):
        busy = [slot(at(9, 10), at(9, 50)), slot(at(12, 5), at(13)), slot(at(15), at(15, 20))]

        free = compute_free_slots(at(9), at(17), busy, 15)

        for candidate in free:
            assert candidate.duration_minutes == 15
            assert at(9) <= candidate.start and candidate.end <= at(17)
            assert not any(b.overlaps(candidate.start, candidate.end) for b in busy)
        for first, second in zip(free, free[1:]):
            assert first.end <= second.start

    def test_morning_with_one_meeting(self):
        free = compute_free_slots(at(9), at(12), [slot(at(10), at(10, 30))], 30)

        assert [(s.start, s.end) for s in free] == [
            (at(9), at(9, 30)),
            (at(9, 30), at(10)),
            (at(10, 30), at(11)),
            (at(11), at(11, 30)),
            (at(11, 30), at(12)),
        ]

    def test_every_free_stretch_is_covered_up_to_a_short_remainder(self):
        busy = [slot(at(9, 10), at(9, 50)), slot(at(12, 5), at(13)), slot(at(15), at(15, 20))]
        gaps = [(at(9), at(9, 10)), (at(9, 50), at(12, 5)), (at(13), at(15)), (at(15, 20), at(17))]

        free = compute_free_slots(at(9), at(17), busy, 15)

        for gap_start, gap_end in gaps:
            inside = [s for s in free if gap_start <= s.start and s.end <= gap_end]
            uncovered = (gap_end - gap_start) - timedelta(minutes=15 * len(inside))
            assert timedelta(0) <= uncovered < timedelta(minutes=15)
        assert len(free) == 0 + 9 + 8 + 6
