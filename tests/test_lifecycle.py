import datetime as dt

import pytest

from conftest import DAY
from clinic_scheduler import lifecycle
from clinic_scheduler.errors import InvalidTransition
from clinic_scheduler.lifecycle import Err, Ok
from clinic_scheduler.models import AppointmentInstance, AppointmentStatus, TimeInterval

T0 = dt.datetime(2025, 8, 15, 9, 2, 0)


def appointment(status=AppointmentStatus.BOOKED, **kwargs):
    return AppointmentInstance(
        id="appt-1",
        patient_id="p-1",
        interval=TimeInterval(date=DAY, start_tick=4, end_tick=6),
        status=status,
        **kwargs,
    )


def test_start_from_booked_sets_actual_start():
    result = lifecycle.start(appointment(), now=lambda: T0)
    assert isinstance(result, Ok)
    assert result.value.status == AppointmentStatus.IN_PROGRESS
    assert result.value.actual_start == T0


def test_second_start_is_rejected_and_state_kept():
    started = lifecycle.start(appointment(), now=lambda: T0).unwrap()
    result = lifecycle.start(started, now=lambda: T0 + dt.timedelta(minutes=5))

    assert isinstance(result, Err)
    assert result.error.from_status == AppointmentStatus.IN_PROGRESS
    assert result.error.attempted == "start"
    assert started.status == AppointmentStatus.IN_PROGRESS
    assert started.actual_start == T0


def test_err_unwrap_raises_invalid_transition():
    with pytest.raises(InvalidTransition, match="In Progress"):
        lifecycle.start(appointment(AppointmentStatus.IN_PROGRESS)).unwrap()


def test_complete_only_from_in_progress():
    done = lifecycle.complete(appointment(AppointmentStatus.IN_PROGRESS, actual_start=T0), now=lambda: T0 + dt.timedelta(minutes=20))
    assert done.unwrap().status == AppointmentStatus.COMPLETED
    assert done.unwrap().actual_end == T0 + dt.timedelta(minutes=20)

    assert isinstance(lifecycle.complete(appointment()), Err)


def test_cancel_and_no_show():
    assert lifecycle.cancel(appointment()).unwrap().status == AppointmentStatus.CANCELLED
    assert isinstance(lifecycle.cancel(appointment(AppointmentStatus.IN_PROGRESS)), Err)
    assert lifecycle.mark_no_show(appointment()).unwrap().status == AppointmentStatus.NO_SHOW
    assert lifecycle.mark_no_show(appointment(AppointmentStatus.IN_PROGRESS)).ok


@pytest.mark.parametrize("status", [AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW])
def test_terminal_states_allow_nothing(status):
    assert lifecycle.allowed_actions(status) == []
    for action in (lifecycle.start, lifecycle.complete, lifecycle.cancel, lifecycle.mark_no_show):
        assert isinstance(action(appointment(status)), Err)


def test_allowed_actions_from_booked():
    assert lifecycle.allowed_actions(AppointmentStatus.BOOKED) == ["start", "cancel", "mark_no_show"]


def test_missing_appointment_is_a_programmer_error():
    with pytest.raises(TypeError):
        lifecycle.start(None)


def test_only_in_progress_is_editable():
    assert lifecycle.is_editable(AppointmentStatus.IN_PROGRESS)
    assert not any(lifecycle.is_editable(s) for s in AppointmentStatus if s != AppointmentStatus.IN_PROGRESS)


def test_elapsed_never_below_one_second():
    started = appointment(AppointmentStatus.IN_PROGRESS, actual_start=T0)
    assert lifecycle.elapsed(started, T0) == dt.timedelta(seconds=1)
    assert lifecycle.elapsed(started, T0 - dt.timedelta(seconds=30)) == dt.timedelta(seconds=1)
    assert lifecycle.elapsed(started, T0 + dt.timedelta(minutes=3)) == dt.timedelta(minutes=3)


def test_elapsed_floor_is_configurable():
    started = appointment(AppointmentStatus.IN_PROGRESS, actual_start=T0)
    assert lifecycle.elapsed(started, T0, floor=dt.timedelta(0)) == dt.timedelta(0)


def test_elapsed_after_completion_uses_actual_end():
    done = appointment(AppointmentStatus.COMPLETED, actual_start=T0, actual_end=T0 + dt.timedelta(minutes=25))
    assert lifecycle.elapsed(done, T0 + dt.timedelta(hours=5)) == dt.timedelta(minutes=25)


def test_elapsed_before_start():
    assert lifecycle.elapsed(appointment(), T0) is None


def test_format_elapsed():
    assert lifecycle.format_elapsed(dt.timedelta(hours=1, minutes=2, seconds=3)) == "01:02:03"
    assert lifecycle.format_elapsed(None) == "00:00:00"


def test_legacy_status_spelling():
    assert AppointmentStatus("IN_PROGRESS") is AppointmentStatus.IN_PROGRESS
    assert AppointmentStatus("no show") is AppointmentStatus.NO_SHOW
    assert AppointmentStatus("Booked") is AppointmentStatus.BOOKED
