"""Caller-side orchestration: validate locally, persist remotely, roll back on failure."""
from __future__ import annotations

import datetime as dt
from typing import Awaitable, Callable

from . import client, lifecycle
from .drag import check_candidate, reschedule_candidate
from .errors import InvalidTransition, PersistenceFailure, SlotUnavailable
from .grid import SlotGrid
from .logging_config import get_logger
from .models import (
    AppointmentBlock,
    AppointmentCreate,
    AppointmentInstance,
    AppointmentStatus,
    AppointmentUpdate,
    BookRequest,
    ExistingAppointment,
    RescheduleRequest,
    TimeInterval,
)

logger = get_logger(__name__)


async def _persist_status(appt_id: str, provisional: AppointmentInstance, grid: SlotGrid) -> AppointmentInstance:
    return await client.update_appointment(appt_id, AppointmentUpdate(status=provisional.status), grid)


async def _persist_start(appt_id: str, provisional: AppointmentInstance, grid: SlotGrid) -> AppointmentInstance:
    return await client.start_appointment(appt_id, grid)


async def _persist_end(appt_id: str, provisional: AppointmentInstance, grid: SlotGrid) -> AppointmentInstance:
    return await client.end_appointment(appt_id, grid)


ACTIONS: dict[str, tuple[Callable, Callable[..., Awaitable[AppointmentInstance]]]] = {
    "start": (lifecycle.start, _persist_start),
    "complete": (lifecycle.complete, _persist_end),
    "cancel": (lifecycle.cancel, _persist_status),
    "mark_no_show": (lifecycle.mark_no_show, _persist_status),
}


class AppointmentBoard:
    """Local view of appointments whose state changes are mirrored to the service.

    A transition is applied provisionally, then persisted. If the service
    refuses, the previous record is restored and the failure re-raised so the
    caller can retry.
    """

    def __init__(self, grid: SlotGrid):
        self.grid = grid
        self._items: dict[str, AppointmentInstance] = {}

    def get(self, appt_id: str) -> AppointmentInstance | None:
        return self._items.get(appt_id)

    def put(self, appointment: AppointmentInstance) -> None:
        self._items[appointment.id] = appointment

    async def load(self, appt_id: str) -> AppointmentInstance:
        appointment = await client.fetch_appointment(appt_id, self.grid)
        self.put(appointment)
        return appointment

    async def transition(self, appt_id: str, action: str) -> AppointmentInstance:
        transition, persist = ACTIONS[action]
        current = self.get(appt_id) or await self.load(appt_id)
        provisional = transition(current).unwrap()
        self.put(provisional)
        try:
            confirmed = await persist(appt_id, provisional, self.grid)
        except PersistenceFailure as exc:
            self.put(current)
            logger.warning(
                "transition rolled back",
                appointment_id=appt_id,
                action=action,
                status=current.status.value,
                error=str(exc),
            )
            raise
        self.put(confirmed)
        logger.info("transition persisted", appointment_id=appt_id, action=action, status=confirmed.status.value)
        return confirmed


def _wire_times(grid: SlotGrid, interval: TimeInterval) -> tuple[str, str, str]:
    start, end = grid.interval_times(interval)
    date_iso = dt.datetime.combine(interval.date, start).isoformat()
    return date_iso, client.format_time(start), client.format_time(end)


async def book_slot(req: BookRequest, grid: SlotGrid) -> AppointmentInstance:
    """Re-check the slot against a fresh day snapshot, then create the appointment."""
    candidate = TimeInterval(date=req.date, start_tick=req.start_tick, end_tick=req.end_tick)
    snapshot = await client.list_day_appointments(req.date, grid)
    reason = check_candidate(grid, candidate, snapshot)
    if reason:
        raise SlotUnavailable(reason)
    date_iso, start_time, end_time = _wire_times(grid, candidate)
    payload = AppointmentCreate(
        patient_id=req.patient_id,
        date=date_iso,
        start_time=start_time,
        end_time=end_time,
        appointment_type_name=req.appointment_type_name,
        title=req.title,
        notes=req.notes,
    )
    created = await client.create_appointment(payload, grid)
    logger.info("appointment booked", appointment_id=created.id, date=req.date.isoformat())
    return created


async def reschedule(appt_id: str, req: RescheduleRequest, grid: SlotGrid) -> AppointmentInstance:
    """Move a booked appointment to a new start, keeping its length."""
    current = await client.fetch_appointment(appt_id, grid)
    if current.status != AppointmentStatus.BOOKED:
        raise InvalidTransition(current.status, "reschedule")
    moving = ExistingAppointment(
        id=current.id, date=current.interval.date, interval=current.interval, status=current.status
    )
    snapshot = await client.list_day_appointments(req.date, grid)
    candidate, reason = reschedule_candidate(grid, moving, req.date, req.start_tick, snapshot)
    if reason:
        raise SlotUnavailable(reason)
    date_iso, start_time, end_time = _wire_times(grid, candidate)
    update = AppointmentUpdate(date=date_iso, start_time=start_time, end_time=end_time)
    return await client.update_appointment(appt_id, update, grid)


def layout_blocks(appointments: list[ExistingAppointment], grid: SlotGrid, clock: str = "24h") -> list[AppointmentBlock]:
    blocks = []
    for appt in sorted(appointments, key=lambda a: a.interval.start_tick):
        interval = appt.interval
        blocks.append(
            AppointmentBlock(
                id=appt.id,
                status=appt.status,
                start_tick=interval.start_tick,
                end_tick=interval.end_tick,
                start_time=grid.time_label_for_tick(interval.start_tick, clock),
                end_time=grid.time_label_for_tick(interval.end_tick, clock),
                top_percent=grid.top_percent(interval.start_tick),
                height_percent=grid.row_height_percent(grid.duration_minutes(interval)),
            )
        )
    return blocks
