import datetime as dt

import pytest

from conftest import DAY
from clinic_scheduler.errors import GridConfigError
from clinic_scheduler.grid import SlotGrid
from clinic_scheduler.models import TimeGrid, TimeInterval


def test_default_grid_has_forty_ticks():
    grid = TimeGrid()
    assert grid.total_minutes == 600
    assert grid.total_ticks == 40


@pytest.mark.parametrize(
    "kwargs",
    [
        {"start_of_day": dt.time(18, 0), "end_of_day": dt.time(8, 0)},
        {"start_of_day": dt.time(9, 0), "end_of_day": dt.time(9, 0)},
        {"start_of_day": dt.time(8, 0), "end_of_day": dt.time(9, 10), "tick_minutes": 15},
        {"tick_minutes": 0},
    ],
)
def test_malformed_grid_fails_fast(kwargs):
    with pytest.raises(GridConfigError):
        TimeGrid(**kwargs)


def test_tick_from_position_clamps(slot_grid):
    assert slot_grid.tick_from_position(0, 400) == 0
    assert slot_grid.tick_from_position(35, 400) == 3
    assert slot_grid.tick_from_position(-50, 400) == 0
    assert slot_grid.tick_from_position(10_000, 400) == 39
    assert slot_grid.tick_from_position(400, 400) == 39
    assert slot_grid.tick_from_position(10, 0) == 0


def test_tick_from_position_non_finite(slot_grid):
    assert slot_grid.tick_from_position(float("inf"), 400) == 39
    assert slot_grid.tick_from_position(float("-inf"), 400) == 0
    assert slot_grid.tick_from_position(float("nan"), 400) == 0
    assert slot_grid.tick_from_position(35, float("inf")) == 0
    assert slot_grid.tick_from_position(35, float("nan")) == 0


def test_tick_from_position_is_pure(slot_grid):
    first = slot_grid.tick_from_position(123.4, 480)
    assert slot_grid.tick_from_position(123.4, 480) == first


def test_labels_24h_and_12h(slot_grid):
    assert slot_grid.time_label_for_tick(0) == "08:00"
    assert slot_grid.time_label_for_tick(5) == "09:15"
    assert slot_grid.time_label_for_tick(40) == "18:00"
    assert slot_grid.time_label_for_tick(99) == "18:00"
    assert slot_grid.time_label_for_tick(5, clock="12h") == "9:15 AM"
    assert slot_grid.time_label_for_tick(16, clock="12h") == "12:00 PM"
    assert slot_grid.time_label_for_tick(22, clock="12h") == "1:30 PM"


def test_midnight_label_in_12h():
    grid = SlotGrid(TimeGrid(start_of_day=dt.time(0, 0), end_of_day=dt.time(6, 0), tick_minutes=30))
    assert grid.time_label_for_tick(0, clock="12h") == "12:00 AM"
    assert grid.time_label_for_tick(1, clock="12h") == "12:30 AM"


def test_labels_cover_every_tick(slot_grid):
    labels = slot_grid.labels()
    assert len(labels) == 40
    assert labels[-1] == (39, "17:45")


def test_row_height_is_clamped(slot_grid):
    assert slot_grid.row_height_percent(60) == pytest.approx(10.0)
    assert slot_grid.row_height_percent(5) == 4.0
    assert slot_grid.row_height_percent(300) == 20.0


def test_row_height_clamp_is_configurable():
    grid = SlotGrid(TimeGrid(), min_height_percent=1.0, max_height_percent=50.0)
    assert grid.row_height_percent(6) == pytest.approx(1.0)
    assert grid.row_height_percent(240) == pytest.approx(40.0)


def test_top_percent(slot_grid):
    assert slot_grid.top_percent(0) == 0.0
    assert slot_grid.top_percent(20) == pytest.approx(50.0)
    assert slot_grid.top_percent(60) == 100.0


def test_interval_for_times_snaps_outward(slot_grid):
    interval = slot_grid.interval_for_times(DAY, dt.time(13, 10), dt.time(13, 50))
    assert (interval.start_tick, interval.end_tick) == (20, 24)
    exact = slot_grid.interval_for_times(DAY, dt.time(9, 0), dt.time(9, 30))
    assert (exact.start_tick, exact.end_tick) == (4, 6)


def test_interval_for_times_outside_hours(slot_grid):
    assert slot_grid.interval_for_times(DAY, dt.time(19, 0), dt.time(19, 30)) is None
    assert slot_grid.interval_for_times(DAY, dt.time(6, 0), dt.time(7, 0)) is None
    clipped = slot_grid.interval_for_times(DAY, dt.time(7, 30), dt.time(8, 30))
    assert (clipped.start_tick, clipped.end_tick) == (0, 2)


def test_interval_times_round_trip(slot_grid):
    interval = TimeInterval(date=DAY, start_tick=4, end_tick=11)
    assert slot_grid.interval_times(interval) == (dt.time(9, 0), dt.time(10, 45))
    assert slot_grid.duration_minutes(interval) == 105
