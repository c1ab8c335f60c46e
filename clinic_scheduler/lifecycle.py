"""Appointment status state machine.

Booked -> In Progress -> Completed, with Booked -> Cancelled and
Booked / In Progress -> No Show. Completed, Cancelled and No Show are terminal.

Transitions never mutate their input and never raise for a disallowed move;
they return ``Ok(new_appointment)`` or ``Err(InvalidTransition)``. The new
appointment is provisional until the appointment service confirms it.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, Union

from .errors import InvalidTransition
from .models import AppointmentInstance, AppointmentStatus

T = TypeVar("T")

ELAPSED_FLOOR = dt.timedelta(seconds=1)

TRANSITIONS: dict[str, tuple[frozenset, AppointmentStatus]] = {
    "start": (frozenset({AppointmentStatus.BOOKED}), AppointmentStatus.IN_PROGRESS),
    "complete": (frozenset({AppointmentStatus.IN_PROGRESS}), AppointmentStatus.COMPLETED),
    "cancel": (frozenset({AppointmentStatus.BOOKED}), AppointmentStatus.CANCELLED),
    "mark_no_show": (
        frozenset({AppointmentStatus.BOOKED, AppointmentStatus.IN_PROGRESS}),
        AppointmentStatus.NO_SHOW,
    ),
}

TERMINAL = frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW})


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    ok = True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    error: InvalidTransition
    ok = False

    def unwrap(self):
        raise self.error


Result = Union[Ok[AppointmentInstance], Err]


def _transition(appointment: AppointmentInstance, action: str, **changes) -> Result:
    if appointment is None:
        raise TypeError(f"{action}() needs an appointment, got None")
    allowed_from, target = TRANSITIONS[action]
    if appointment.status not in allowed_from:
        return Err(InvalidTransition(appointment.status, action))
    return Ok(appointment.model_copy(update={"status": target, **changes}))


def _now(now: Callable[[], dt.datetime] | None) -> dt.datetime:
    return (now or dt.datetime.now)()


def start(appointment: AppointmentInstance, now: Callable[[], dt.datetime] | None = None) -> Result:
    return _transition(appointment, "start", actual_start=_now(now))


def complete(appointment: AppointmentInstance, now: Callable[[], dt.datetime] | None = None) -> Result:
    return _transition(appointment, "complete", actual_end=_now(now))


def cancel(appointment: AppointmentInstance) -> Result:
    return _transition(appointment, "cancel")


def mark_no_show(appointment: AppointmentInstance) -> Result:
    return _transition(appointment, "mark_no_show")


def allowed_actions(status: AppointmentStatus) -> list[str]:
    """Actions the UI may offer for an appointment in ``status``."""
    return [action for action, (allowed_from, _) in TRANSITIONS.items() if status in allowed_from]


def is_editable(status: AppointmentStatus) -> bool:
    """Consultation fields (diagnosis, vitals, ...) may only change mid-visit."""
    return status == AppointmentStatus.IN_PROGRESS


def elapsed(
    appointment: AppointmentInstance,
    now: dt.datetime,
    floor: dt.timedelta = ELAPSED_FLOOR,
) -> dt.timedelta | None:
    """Visit duration so far, never below ``floor``.

    Uses ``actual_end`` once the visit is completed. None when the visit never
    started.
    """
    if appointment.actual_start is None:
        return None
    if appointment.status == AppointmentStatus.COMPLETED and appointment.actual_end is not None:
        end = appointment.actual_end
    elif appointment.status in (AppointmentStatus.IN_PROGRESS, AppointmentStatus.COMPLETED):
        end = now
    else:
        return None
    return max(floor, end - appointment.actual_start)


def format_elapsed(delta: dt.timedelta | None) -> str:
    if delta is None:
        return "00:00:00"
    total = int(delta.total_seconds())
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
