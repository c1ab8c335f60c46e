from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import GridConfigError


class TimeGrid(BaseModel):
    """A scheduling day cut into fixed-size ticks."""

    model_config = ConfigDict(frozen=True)

    start_of_day: dt.time = dt.time(8, 0)
    end_of_day: dt.time = dt.time(18, 0)
    tick_minutes: int = 15

    @model_validator(mode="after")
    def _check_bounds(self) -> "TimeGrid":
        if self.tick_minutes <= 0:
            raise GridConfigError(f"tick_minutes must be positive, got {self.tick_minutes}")
        if self.end_minutes <= self.start_minutes:
            raise GridConfigError(
                f"end_of_day {self.end_of_day:%H:%M} must be after start_of_day {self.start_of_day:%H:%M}"
            )
        if self.total_minutes % self.tick_minutes:
            raise GridConfigError(
                f"{self.total_minutes} minute day is not a multiple of {self.tick_minutes} minute ticks"
            )
        return self

    @property
    def start_minutes(self) -> int:
        return self.start_of_day.hour * 60 + self.start_of_day.minute

    @property
    def end_minutes(self) -> int:
        return self.end_of_day.hour * 60 + self.end_of_day.minute

    @property
    def total_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    @property
    def total_ticks(self) -> int:
        return self.total_minutes // self.tick_minutes


class TimeInterval(BaseModel):
    """Half-open ``[start_tick, end_tick)`` range on one day of a grid."""

    model_config = ConfigDict(frozen=True)

    date: dt.date
    start_tick: int = Field(ge=0)
    end_tick: int

    @model_validator(mode="after")
    def _check_order(self) -> "TimeInterval":
        if self.end_tick <= self.start_tick:
            raise ValueError("end_tick must be greater than start_tick")
        return self

    @property
    def ticks(self) -> int:
        return self.end_tick - self.start_tick


class AppointmentStatus(str, Enum):
    BOOKED = "Booked"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    NO_SHOW = "No Show"

    @classmethod
    def _missing_(cls, value):
        # backend still emits IN_PROGRESS on some records
        if isinstance(value, str):
            key = value.strip().upper().replace(" ", "_")
            for member in cls:
                if member.name == key:
                    return member
        return None


class ExistingAppointment(BaseModel):
    """A booked interval owned by the appointment service; read-only here."""

    model_config = ConfigDict(frozen=True)

    id: str
    date: dt.date
    interval: TimeInterval
    status: AppointmentStatus = AppointmentStatus.BOOKED

    @model_validator(mode="after")
    def _check_date(self) -> "ExistingAppointment":
        if self.interval.date != self.date:
            raise ValueError("interval date does not match appointment date")
        return self


class AppointmentInstance(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    patient_id: str
    interval: TimeInterval
    status: AppointmentStatus = AppointmentStatus.BOOKED
    actual_start: dt.datetime | None = None
    actual_end: dt.datetime | None = None


# Drag gesture state ---------------------------------------------------------

class DragSelection(BaseModel):
    """Transient selection owned by one gesture."""

    anchor_tick: int
    current_tick: int
    date: dt.date
    is_valid: bool = True
    conflict_reason: str | None = None

    @property
    def candidate(self) -> TimeInterval:
        return TimeInterval(
            date=self.date,
            start_tick=min(self.anchor_tick, self.current_tick),
            end_tick=max(self.anchor_tick, self.current_tick) + 1,
        )


class IdleState(BaseModel):
    type: Literal["idle"] = "idle"


class DraggingState(BaseModel):
    type: Literal["dragging"] = "dragging"
    selection: DragSelection


class CommittedState(BaseModel):
    type: Literal["committed"] = "committed"
    interval: TimeInterval


class CancelledState(BaseModel):
    type: Literal["cancelled"] = "cancelled"
    reason: str | None = None


DragState = Annotated[
    Union[IdleState, DraggingState, CommittedState, CancelledState],
    Field(discriminator="type"),
]


# HTTP surface ---------------------------------------------------------------

class GridLabel(BaseModel):
    tick: int
    label: str


class GridResponse(BaseModel):
    tick_minutes: int
    total_ticks: int
    labels: list[GridLabel]


class AppointmentBlock(BaseModel):
    """Positioned block for the day view."""
    id: str
    status: AppointmentStatus
    start_tick: int
    end_tick: int
    start_time: str
    end_time: str
    top_percent: float
    height_percent: float


class PointerEvent(BaseModel):
    date: dt.date
    offset: float = Field(allow_inf_nan=False)  # pixels from the top of the grid container
    height: float = Field(allow_inf_nan=False)  # container height in pixels


class Slot(BaseModel):
    date: dt.date
    start_tick: int
    end_tick: int
    start_time: str  # HH:MM
    end_time: str


class GestureResponse(BaseModel):
    gesture_id: str
    state: DragState
    slot: Slot | None = None


class BookRequest(BaseModel):
    patient_id: str
    date: dt.date
    start_tick: int = Field(ge=0)
    end_tick: int
    appointment_type_name: str = "Consultation"
    title: str
    notes: str | None = None


class RescheduleRequest(BaseModel):
    date: dt.date
    start_tick: int = Field(ge=0)


class AppointmentView(BaseModel):
    appointment: AppointmentInstance
    editable: bool
    elapsed: str | None = None  # HH:MM:SS


# Appointment service payloads -----------------------------------------------

class AppointmentCreate(BaseModel):
    patient_id: str
    date: str  # ISO-8601 dateTime
    start_time: str  # HH:MM:SS.ffffff
    end_time: str
    appointment_type_name: str
    status: AppointmentStatus = AppointmentStatus.BOOKED
    title: str
    notes: str | None = None


class AppointmentUpdate(BaseModel):
    date: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    status: AppointmentStatus | None = None
    title: str | None = None
    notes: str | None = None
