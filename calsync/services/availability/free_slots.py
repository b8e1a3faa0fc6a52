# calsync/services/availability/free_slots.py
from datetime import datetime, timedelta
from typing import Iterable, List

from calsync.schemas.calendar_events import TimeSlot


def chunk_interval(start: datetime, end: datetime, slot_duration_minutes: int) -> List[TimeSlot]:
    """Split [start, end) into back-to-back slots; a short remainder is dropped."""
    step = timedelta(minutes=slot_duration_minutes)
    slots = []
    cursor = start
    while cursor + step <= end:
        slots.append(TimeSlot(start=cursor, end=cursor + step))
        cursor += step
    return slots


def compute_free_slots(
        work_start: datetime,
        work_end: datetime,
        busy: Iterable[TimeSlot],
        slot_duration_minutes: int
) -> List[TimeSlot]:
    """Subtract busy intervals from the working window and chunk what remains.

    Busy intervals outside the window are ignored and partial overlaps are
    clipped to it.
    """
    if slot_duration_minutes <= 0:
        raise ValueError("slot_duration_minutes must be positive")
    if work_end <= work_start:
        return []

    window = TimeSlot(start=work_start, end=work_end)
    work_start, work_end = window.start, window.end

    free_intervals = []
    cursor = work_start
    for interval in sorted(busy, key=lambda s: (s.start, s.end)):
        if not interval.overlaps(work_start, work_end):
            continue
        gap_end = min(interval.start, work_end)
        if gap_end > cursor:
            free_intervals.append((cursor, gap_end))
        cursor = max(cursor, interval.end)
        if cursor >= work_end:
            break

    if work_end > cursor:
        free_intervals.append((cursor, work_end))

    slots = []
    for start, end in free_intervals:
        slots.extend(chunk_interval(start, end, slot_duration_minutes))
    return slots
