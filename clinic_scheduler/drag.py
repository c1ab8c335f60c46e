"""Drag-to-select over a day grid.

A DragSelector owns one gesture at a time::

    idle --pointer_down--> dragging --pointer_move--> dragging
    dragging --pointer_up (valid)--> committed --> idle
    dragging --pointer_up (conflict) / pointer_leave / cancel--> cancelled --> idle

The appointment snapshot is fetched from ``appointments_for`` on every
validation, so a move made after the caller refreshed its data sees the new
bookings. ``appointments_for`` may return a plain iterable or a ConflictIndex.
"""
from __future__ import annotations

import datetime as dt
from typing import Callable, Iterable, Union

from .grid import SlotGrid
from .intervals import ConflictIndex, find_conflicts
from .logging_config import get_logger
from .models import (
    CancelledState,
    CommittedState,
    DraggingState,
    DragSelection,
    ExistingAppointment,
    IdleState,
    TimeInterval,
)

logger = get_logger(__name__)

Snapshot = Union[Iterable[ExistingAppointment], ConflictIndex]

CONFLICT_MESSAGE = "This time slot conflicts with an existing appointment ({times}). Please select a different time."
OUT_OF_HOURS_MESSAGE = "This time slot runs past the end of working hours. Please select a different time."


def conflicts_in(snapshot: Snapshot, candidate: TimeInterval, exclude_id: str | None = None) -> list[ExistingAppointment]:
    if isinstance(snapshot, ConflictIndex):
        return snapshot.conflicts(candidate, exclude_id=exclude_id)
    return find_conflicts(candidate, snapshot, exclude_id=exclude_id)


def conflict_message(slot_grid: SlotGrid, conflicts: list[ExistingAppointment]) -> str | None:
    """Readable reason for the first conflict, or None when there is none."""
    if not conflicts:
        return None
    first = min(conflicts, key=lambda a: a.interval.start_tick)
    times = "{}-{}".format(
        slot_grid.time_label_for_tick(first.interval.start_tick),
        slot_grid.time_label_for_tick(first.interval.end_tick),
    )
    return CONFLICT_MESSAGE.format(times=times)


def check_candidate(
    slot_grid: SlotGrid,
    candidate: TimeInterval,
    snapshot: Snapshot,
    exclude_id: str | None = None,
) -> str | None:
    """Return why ``candidate`` cannot be booked, or None if it can."""
    if candidate.end_tick > slot_grid.total_ticks:
        return OUT_OF_HOURS_MESSAGE
    return conflict_message(slot_grid, conflicts_in(snapshot, candidate, exclude_id))


def reschedule_candidate(
    slot_grid: SlotGrid,
    appointment: ExistingAppointment,
    new_date: dt.date,
    new_start_tick: int,
    snapshot: Snapshot,
) -> tuple[TimeInterval, str | None]:
    """Move ``appointment`` to a new start keeping its length.

    The appointment itself is ignored during conflict detection.
    """
    candidate = TimeInterval(
        date=new_date,
        start_tick=new_start_tick,
        end_tick=new_start_tick + appointment.interval.ticks,
    )
    return candidate, check_candidate(slot_grid, candidate, snapshot, exclude_id=appointment.id)


class DragSelector:
    def __init__(
        self,
        slot_grid: SlotGrid,
        appointments_for: Callable[[dt.date], Snapshot],
        on_commit: Callable[[TimeInterval], None],
    ):
        self.slot_grid = slot_grid
        self._appointments_for = appointments_for
        self._on_commit = on_commit
        self._selection: DragSelection | None = None
        self.last_outcome: CommittedState | CancelledState | None = None

    @property
    def state(self) -> IdleState | DraggingState:
        if self._selection is None:
            return IdleState()
        return DraggingState(selection=self._selection.model_copy())

    @property
    def selection(self) -> DragSelection | None:
        return self._selection

    @property
    def is_dragging(self) -> bool:
        return self._selection is not None

    # tick-level events ------------------------------------------------------

    def begin(self, date: dt.date, tick: int):
        if self._selection is not None:
            return self.state
        tick = max(0, min(self.slot_grid.total_ticks - 1, tick))
        self._selection = DragSelection(anchor_tick=tick, current_tick=tick, date=date)
        self._validate()
        return self.state

    def extend(self, date: dt.date, tick: int):
        if self._selection is None:
            return self.state
        # selections never span two days
        if date != self._selection.date:
            return self.state
        self._selection.current_tick = max(0, min(self.slot_grid.total_ticks - 1, tick))
        self._validate()
        return self.state

    # pointer events ---------------------------------------------------------

    def pointer_down(self, date: dt.date, pixel_offset: float, total_height: float):
        return self.begin(date, self.slot_grid.tick_from_position(pixel_offset, total_height))

    def pointer_move(self, date: dt.date, pixel_offset: float, total_height: float):
        return self.extend(date, self.slot_grid.tick_from_position(pixel_offset, total_height))

    def pointer_up(self):
        """Finish the gesture; commits only a candidate that validated clean."""
        selection = self._selection
        if selection is None:
            return IdleState()
        self._selection = None
        candidate = selection.candidate
        if not selection.is_valid or candidate.ticks < 1:
            return self._cancelled(selection.conflict_reason)
        self.last_outcome = CommittedState(interval=candidate)
        logger.debug(
            "slot committed",
            date=candidate.date.isoformat(),
            start_tick=candidate.start_tick,
            end_tick=candidate.end_tick,
        )
        self._on_commit(candidate)
        return self.last_outcome

    def pointer_leave(self):
        return self.cancel("Selection cancelled: pointer left the calendar.")

    def cancel(self, reason: str | None = None):
        if self._selection is None:
            return IdleState()
        self._selection = None
        return self._cancelled(reason)

    def is_tick_selected(self, date: dt.date, tick: int) -> bool:
        if self._selection is None or self._selection.date != date:
            return False
        candidate = self._selection.candidate
        return candidate.start_tick <= tick < candidate.end_tick

    def _cancelled(self, reason: str | None) -> CancelledState:
        self.last_outcome = CancelledState(reason=reason)
        logger.debug("selection cancelled", reason=reason)
        return self.last_outcome

    def _validate(self):
        selection = self._selection
        snapshot = self._appointments_for(selection.date)
        reason = conflict_message(self.slot_grid, conflicts_in(snapshot, selection.candidate))
        if reason and selection.is_valid:
            logger.debug("selection conflict", date=selection.date.isoformat(), reason=reason)
        selection.is_valid = reason is None
        selection.conflict_reason = reason
