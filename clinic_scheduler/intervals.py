"""Half-open interval math shared by the drag selector and rescheduling."""
from __future__ import annotations

from bisect import bisect_left
from typing import Iterable, Sequence

from .models import ExistingAppointment, TimeInterval


def ticks_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    # [10,12) and [12,14) touch but do not overlap
    return a_start < b_end and b_start < a_end


def overlaps(a: TimeInterval, b: TimeInterval) -> bool:
    """True when both intervals fall on the same date and share at least one tick."""
    if a.date != b.date:
        return False
    return ticks_overlap(a.start_tick, a.end_tick, b.start_tick, b.end_tick)


def find_conflicts(
    candidate: TimeInterval,
    existing: Iterable[ExistingAppointment],
    exclude_id: str | None = None,
) -> list[ExistingAppointment]:
    """Linear scan returning every appointment the candidate collides with."""
    return [
        appt
        for appt in existing
        if appt.id != exclude_id and overlaps(candidate, appt.interval)
    ]


class ConflictIndex:
    """Sorted view of one day's appointments for O(log n + k) conflict lookups.

    Returns the same conflicts as :func:`find_conflicts`. Ends are tracked as a
    running maximum so the backward scan stays correct even when the input
    itself contains overlapping records.
    """

    def __init__(self, appointments: Iterable[ExistingAppointment]):
        self._by_date: dict = {}
        for appt in appointments:
            self._by_date.setdefault(appt.date, []).append(appt)
        self._starts: dict = {}
        self._max_ends: dict = {}
        for day, appts in self._by_date.items():
            appts.sort(key=lambda a: (a.interval.start_tick, a.interval.end_tick))
            self._starts[day] = [a.interval.start_tick for a in appts]
            running, max_ends = 0, []
            for a in appts:
                running = max(running, a.interval.end_tick)
                max_ends.append(running)
            self._max_ends[day] = max_ends

    def conflicts(self, candidate: TimeInterval, exclude_id: str | None = None) -> list[ExistingAppointment]:
        appts: Sequence[ExistingAppointment] = self._by_date.get(candidate.date, [])
        if not appts:
            return []
        starts = self._starts[candidate.date]
        max_ends = self._max_ends[candidate.date]
        # everything at or after this index starts at/after the candidate end
        i = bisect_left(starts, candidate.end_tick) - 1
        found = []
        while i >= 0 and max_ends[i] > candidate.start_tick:
            appt = appts[i]
            if appt.id != exclude_id and appt.interval.end_tick > candidate.start_tick:
                found.append(appt)
            i -= 1
        found.reverse()
        return found
