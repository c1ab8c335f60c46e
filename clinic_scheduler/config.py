"""Scheduler settings read from the environment (and a local .env file).

Settings are injected where needed through ``get_settings``; the cached copy is
only re-read after ``refresh_settings()``.
"""
from __future__ import annotations

import datetime as dt
import os
from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel

from .grid import DEFAULT_MAX_HEIGHT_PERCENT, DEFAULT_MIN_HEIGHT_PERCENT, SlotGrid
from .models import TimeGrid


class SchedulerSettings(BaseModel):
    day_start: dt.time = dt.time(8, 0)
    day_end: dt.time = dt.time(18, 0)
    tick_minutes: int = 15
    min_height_percent: float = DEFAULT_MIN_HEIGHT_PERCENT
    max_height_percent: float = DEFAULT_MAX_HEIGHT_PERCENT
    elapsed_floor_seconds: float = 1.0
    clock_format: Literal["24h", "12h"] = "24h"
    log_level: str = "INFO"
    gesture_ttl_seconds: float = 120.0

    @classmethod
    def from_env(cls) -> "SchedulerSettings":
        load_dotenv()
        env = {
            "day_start": os.getenv("SCHEDULER_DAY_START"),
            "day_end": os.getenv("SCHEDULER_DAY_END"),
            "tick_minutes": os.getenv("SCHEDULER_TICK_MINUTES"),
            "min_height_percent": os.getenv("SCHEDULER_MIN_HEIGHT_PERCENT"),
            "max_height_percent": os.getenv("SCHEDULER_MAX_HEIGHT_PERCENT"),
            "elapsed_floor_seconds": os.getenv("SCHEDULER_ELAPSED_FLOOR_SECONDS"),
            "clock_format": os.getenv("SCHEDULER_CLOCK_FORMAT"),
            "log_level": os.getenv("SCHEDULER_LOG_LEVEL"),
            "gesture_ttl_seconds": os.getenv("SCHEDULER_GESTURE_TTL_SECONDS"),
        }
        return cls(**{k: v for k, v in env.items() if v})

    @property
    def elapsed_floor(self) -> dt.timedelta:
        return dt.timedelta(seconds=self.elapsed_floor_seconds)

    def time_grid(self) -> TimeGrid:
        """Raises GridConfigError for malformed working hours."""
        return TimeGrid(start_of_day=self.day_start, end_of_day=self.day_end, tick_minutes=self.tick_minutes)

    def slot_grid(self) -> SlotGrid:
        return SlotGrid(self.time_grid(), self.min_height_percent, self.max_height_percent)


@lru_cache(maxsize=1)
def get_settings() -> SchedulerSettings:
    return SchedulerSettings.from_env()


def refresh_settings() -> SchedulerSettings:
    get_settings.cache_clear()
    return get_settings()
