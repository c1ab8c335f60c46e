"""Pure geometry over a TimeGrid: pixels <-> ticks <-> wall-clock time.

Nothing here raises for out-of-range input; values are clamped to the grid.
"""
from __future__ import annotations

import datetime as dt
import math

from .models import TimeGrid, TimeInterval

DEFAULT_MIN_HEIGHT_PERCENT = 4.0
DEFAULT_MAX_HEIGHT_PERCENT = 20.0


def _clamp(value, low, high):
    return max(low, min(high, value))


class SlotGrid:
    def __init__(
        self,
        grid: TimeGrid,
        min_height_percent: float = DEFAULT_MIN_HEIGHT_PERCENT,
        max_height_percent: float = DEFAULT_MAX_HEIGHT_PERCENT,
    ):
        self.grid = grid
        self.min_height_percent = min_height_percent
        self.max_height_percent = max_height_percent

    @property
    def total_ticks(self) -> int:
        return self.grid.total_ticks

    def tick_from_position(self, pixel_offset: float, total_height: float) -> int:
        """Map a vertical pixel offset inside the grid container to a tick index."""
        if not math.isfinite(total_height) or total_height <= 0:
            return 0
        position = pixel_offset * self.total_ticks / total_height
        if math.isnan(position):
            return 0
        if math.isinf(position):
            return self.total_ticks - 1 if position > 0 else 0
        return _clamp(math.floor(position), 0, self.total_ticks - 1)

    def time_for_tick(self, tick: int) -> dt.time:
        # tick == total_ticks is the end of the day, used for interval ends
        tick = _clamp(tick, 0, self.total_ticks)
        minutes = self.grid.start_minutes + tick * self.grid.tick_minutes
        return dt.time(minutes // 60, minutes % 60)

    def time_label_for_tick(self, tick: int, clock: str = "24h") -> str:
        t = self.time_for_tick(tick)
        if clock == "12h":
            hour12 = t.hour - 12 if t.hour > 12 else 12 if t.hour == 0 else t.hour
            suffix = "PM" if t.hour >= 12 else "AM"
            return f"{hour12}:{t.minute:02d} {suffix}"
        return f"{t.hour:02d}:{t.minute:02d}"

    def labels(self, clock: str = "24h") -> list[tuple[int, str]]:
        return [(tick, self.time_label_for_tick(tick, clock)) for tick in range(self.total_ticks)]

    def row_height_percent(self, duration_minutes: float) -> float:
        """Block height as a share of the day, kept inside the configured clamp."""
        percent = duration_minutes / self.grid.total_minutes * 100
        return _clamp(percent, self.min_height_percent, self.max_height_percent)

    def top_percent(self, tick: int) -> float:
        return _clamp(tick * self.grid.tick_minutes / self.grid.total_minutes * 100, 0.0, 100.0)

    def _offset_minutes(self, t: dt.time) -> int:
        return t.hour * 60 + t.minute - self.grid.start_minutes

    def tick_floor(self, t: dt.time) -> int:
        return _clamp(self._offset_minutes(t) // self.grid.tick_minutes, 0, self.total_ticks)

    def tick_ceil(self, t: dt.time) -> int:
        # seconds count toward the next tick
        offset = self._offset_minutes(t) + (1 if t.second or t.microsecond else 0)
        return _clamp(-(-offset // self.grid.tick_minutes), 0, self.total_ticks)

    def interval_for_times(self, date: dt.date, start: dt.time, end: dt.time) -> TimeInterval | None:
        """Snap a wall-clock range outward onto the grid.

        Returns None when nothing of the range is visible on the grid.
        """
        start_tick, end_tick = self.tick_floor(start), self.tick_ceil(end)
        if end_tick <= start_tick:
            return None
        return TimeInterval(date=date, start_tick=start_tick, end_tick=end_tick)

    def interval_times(self, interval: TimeInterval) -> tuple[dt.time, dt.time]:
        return self.time_for_tick(interval.start_tick), self.time_for_tick(interval.end_tick)

    def duration_minutes(self, interval: TimeInterval) -> int:
        return interval.ticks * self.grid.tick_minutes
