"""Interval arithmetic for the week grid: free slots and column layout.

All intervals are half-open ``[start, end)``. Two intervals that merely touch
(one ends exactly when the other starts) do not overlap.
"""

from __future__ import annotations

import datetime
import heapq
import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

_CLOCK_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


@dataclass(frozen=True, order=True)
class Slot:
    """Half-open time interval."""

    start: datetime.datetime
    end: datetime.datetime

    @property
    def duration(self) -> datetime.timedelta:
        return self.end - self.start

    def overlaps(self, other: Slot) -> bool:
        return self.start < other.end and other.start < self.end


def merge_intervals(intervals: Iterable[Slot]) -> list[Slot]:
    """Merge overlapping or adjacent intervals into disjoint, sorted runs.

    Empty or inverted intervals are dropped.
    """
    ordered = sorted(slot for slot in intervals if slot.end > slot.start)
    merged: list[Slot] = []
    for slot in ordered:
        if merged and slot.start <= merged[-1].end:
            if slot.end > merged[-1].end:
                merged[-1] = Slot(merged[-1].start, slot.end)
            continue
        merged.append(slot)
    return merged


def free_slots(
    busy: Iterable[Slot], day_start: datetime.datetime, day_end: datetime.datetime
) -> list[Slot]:
    """Return the gaps in [day_start, day_end) not covered by any busy interval.

    Busy intervals outside the window are ignored and partially overlapping
    ones are clipped. The result is ordered, disjoint, and contains no
    zero-length slots; together with the merged busy runs it partitions the
    window exactly.

    Args:
        busy: Busy intervals, in any order, possibly overlapping
        day_start: Window start
        day_end: Window end

    Returns:
        Free intervals in ascending order
    """
    if day_end <= day_start:
        return []

    clipped = []
    for slot in busy:
        if slot.end <= day_start or slot.start >= day_end:
            continue
        clipped.append(Slot(max(slot.start, day_start), min(slot.end, day_end)))

    free: list[Slot] = []
    cursor = day_start
    for run in merge_intervals(clipped):
        if run.start > cursor:
            free.append(Slot(cursor, run.start))
        cursor = max(cursor, run.end)
    if cursor < day_end:
        free.append(Slot(cursor, day_end))
    return free


def busy_within(
    busy: Iterable[Slot], day_start: datetime.datetime, day_end: datetime.datetime
) -> list[Slot]:
    """Return merged busy runs clipped to the window."""
    clipped = [
        Slot(max(slot.start, day_start), min(slot.end, day_end))
        for slot in busy
        if slot.end > day_start and slot.start < day_end
    ]
    return merge_intervals(clipped)


def assign_columns(intervals: Sequence[tuple[Any, Any]]) -> tuple[int, list[int]]:
    """Assign each interval a column so that overlapping intervals never share one.

    Greedy interval-graph coloring: intervals are visited by (start, end),
    columns of intervals that ended at or before the current start are
    released, and the smallest free column is reused before a new one is
    opened. This uses exactly as many columns as the largest set of
    mutually overlapping intervals.

    Args:
        intervals: (start, end) pairs of any mutually comparable type

    Returns:
        Tuple of (column count, column per interval in input order)
    """
    order = sorted(range(len(intervals)), key=lambda i: (intervals[i][0], intervals[i][1], i))

    columns = [0] * len(intervals)
    active: list[tuple[Any, int]] = []  # (end, column)
    released: list[int] = []
    column_count = 0

    for index in order:
        start, end = intervals[index]
        while active and active[0][0] <= start:
            _, column = heapq.heappop(active)
            heapq.heappush(released, column)

        if released:
            column = heapq.heappop(released)
        else:
            column = column_count
            column_count += 1

        columns[index] = column
        heapq.heappush(active, (end, column))

    return column_count, columns


def parse_clock(text: str) -> datetime.time:
    """Parse an HH:MM wall-clock string.

    Raises:
        ConfigError: If the text is not a valid 24-hour clock time
    """
    match = _CLOCK_RE.match(text or "")
    if not match:
        raise ConfigError(f"Invalid clock time {text!r}; expected HH:MM")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ConfigError(f"Invalid clock time {text!r}; expected HH:MM")
    return datetime.time(hour, minute)


def day_bounds(
    day: datetime.date, start_clock: str, end_clock: str, zone: datetime.tzinfo
) -> Slot:
    """Return the [start, end) window of a workday in zone.

    Raises:
        ConfigError: If either clock is malformed or end is not after start
    """
    start_time = parse_clock(start_clock)
    end_time = parse_clock(end_clock)
    if end_time <= start_time:
        raise ConfigError(f"Workday end {end_clock!r} must be after start {start_clock!r}")
    return Slot(
        datetime.datetime.combine(day, start_time, tzinfo=zone),
        datetime.datetime.combine(day, end_time, tzinfo=zone),
    )
