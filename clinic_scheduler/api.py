import datetime as dt
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Literal

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from . import client, lifecycle
from .config import SchedulerSettings, get_settings
from .drag import DragSelector
from .errors import GridConfigError, InvalidTransition, PersistenceFailure, SlotUnavailable
from .intervals import ConflictIndex
from .logging_config import get_logger, setup_structured_logging
from .models import (
    AppointmentBlock,
    AppointmentInstance,
    AppointmentView,
    BookRequest,
    CommittedState,
    GestureResponse,
    GridLabel,
    GridResponse,
    PointerEvent,
    RescheduleRequest,
    Slot,
    TimeInterval,
)
from .workflow import AppointmentBoard, book_slot, layout_blocks, reschedule

API_KEY = os.getenv("SCHEDULER_API_KEY", "")
# HTTPBearer scheme so Swagger-UI can attach the Authorization header globally
auth_scheme = HTTPBearer(auto_error=False)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_structured_logging(get_settings().log_level)
    yield


app = FastAPI(title="Clinic Scheduler", lifespan=lifespan)


def verify_api_key(credentials: HTTPAuthorizationCredentials = Depends(auth_scheme)):
    """Validate Bearer token provided via Authorization header"""
    if credentials is None or credentials.scheme.lower() != "bearer" or credentials.credentials != API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    return JSONResponse(status_code=409, content={"detail": exc.message})


@app.exception_handler(SlotUnavailable)
async def slot_unavailable_handler(request: Request, exc: SlotUnavailable):
    return JSONResponse(status_code=409, content={"detail": exc.reason})


@app.exception_handler(PersistenceFailure)
async def persistence_failure_handler(request: Request, exc: PersistenceFailure):
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(GridConfigError)
async def grid_config_handler(request: Request, exc: GridConfigError):
    logger.error("invalid working hours", error=str(exc))
    return JSONResponse(status_code=500, content={"detail": str(exc)})


def _slot(settings: SchedulerSettings, interval: TimeInterval) -> Slot:
    grid = settings.slot_grid()
    return Slot(
        date=interval.date,
        start_tick=interval.start_tick,
        end_tick=interval.end_tick,
        start_time=grid.time_label_for_tick(interval.start_tick, settings.clock_format),
        end_time=grid.time_label_for_tick(interval.end_tick, settings.clock_format),
    )


def _view(settings: SchedulerSettings, appointment: AppointmentInstance) -> AppointmentView:
    now = dt.datetime.now(appointment.actual_start.tzinfo if appointment.actual_start else None)
    spent = lifecycle.elapsed(appointment, now, floor=settings.elapsed_floor)
    return AppointmentView(
        appointment=appointment,
        editable=lifecycle.is_editable(appointment.status),
        elapsed=lifecycle.format_elapsed(spent) if spent is not None else None,
    )


# Grid and day view ---------------------------------------------------------

@app.get("/grid", dependencies=[Depends(verify_api_key)], response_model=GridResponse)
async def grid_labels(
    clock: Literal["24h", "12h"] | None = Query(None, description="Label format; defaults to the configured one"),
    settings: SchedulerSettings = Depends(get_settings),
):
    grid = settings.slot_grid()
    labels = grid.labels(clock or settings.clock_format)
    return GridResponse(
        tick_minutes=grid.grid.tick_minutes,
        total_ticks=grid.total_ticks,
        labels=[GridLabel(tick=t, label=label) for t, label in labels],
    )


@app.get("/days/{day}/layout", dependencies=[Depends(verify_api_key)], response_model=list[AppointmentBlock])
async def day_layout(day: dt.date, settings: SchedulerSettings = Depends(get_settings)):
    """Positioned appointment blocks for the day view."""
    grid = settings.slot_grid()
    appointments = await client.list_day_appointments(day, grid)
    return layout_blocks(appointments, grid, settings.clock_format)


# Drag gestures -------------------------------------------------------------

# gestures whose client went away without release or leave are dropped after
# settings.gesture_ttl_seconds of silence
_clock = time.monotonic


class _Gesture:
    def __init__(self, selector: DragSelector):
        self.selector = selector
        self.committed: TimeInterval | None = None
        self.last_seen = _clock()

    def expired(self, ttl: float) -> bool:
        return _clock() - self.last_seen > ttl


_GESTURES: dict[str, _Gesture] = {}


def _evict_stale(ttl: float) -> None:
    stale = [gid for gid, gesture in _GESTURES.items() if gesture.expired(ttl)]
    for gid in stale:
        del _GESTURES[gid]
    if stale:
        logger.debug("evicted abandoned gestures", count=len(stale))


def _take(gesture_id: str, ttl: float, pop: bool = False) -> _Gesture:
    gesture = _GESTURES.pop(gesture_id, None) if pop else _GESTURES.get(gesture_id)
    if gesture is not None and gesture.expired(ttl):
        _GESTURES.pop(gesture_id, None)
        gesture = None
    if gesture is None:
        raise HTTPException(status_code=404, detail="No active gesture")
    gesture.last_seen = _clock()
    return gesture


@app.post("/gestures", dependencies=[Depends(verify_api_key)], response_model=GestureResponse, status_code=201)
async def pointer_down(event: PointerEvent, settings: SchedulerSettings = Depends(get_settings)):
    """Start a selection.

    Over HTTP the day's bookings are snapshotted once here and held for the
    whole gesture; moves do not refetch them.
    """
    _evict_stale(settings.gesture_ttl_seconds)
    grid = settings.slot_grid()
    index = ConflictIndex(await client.list_day_appointments(event.date, grid))

    def commit(interval: TimeInterval) -> None:
        gesture.committed = interval

    gesture = _Gesture(DragSelector(grid, lambda day: index, commit))
    state = gesture.selector.pointer_down(event.date, event.offset, event.height)
    gesture_id = uuid.uuid4().hex
    _GESTURES[gesture_id] = gesture
    return GestureResponse(gesture_id=gesture_id, state=state)


@app.post("/gestures/{gesture_id}/move", dependencies=[Depends(verify_api_key)], response_model=GestureResponse)
async def pointer_move(gesture_id: str, event: PointerEvent, settings: SchedulerSettings = Depends(get_settings)):
    gesture = _take(gesture_id, settings.gesture_ttl_seconds)
    state = gesture.selector.pointer_move(event.date, event.offset, event.height)
    return GestureResponse(gesture_id=gesture_id, state=state)


@app.post("/gestures/{gesture_id}/release", dependencies=[Depends(verify_api_key)], response_model=GestureResponse)
async def pointer_up(gesture_id: str, settings: SchedulerSettings = Depends(get_settings)):
    gesture = _take(gesture_id, settings.gesture_ttl_seconds, pop=True)
    outcome = gesture.selector.pointer_up()
    slot = None
    if isinstance(outcome, CommittedState) and gesture.committed is not None:
        slot = _slot(settings, gesture.committed)
    return GestureResponse(gesture_id=gesture_id, state=outcome, slot=slot)


@app.delete("/gestures/{gesture_id}", dependencies=[Depends(verify_api_key)], response_model=GestureResponse)
async def pointer_leave(gesture_id: str, settings: SchedulerSettings = Depends(get_settings)):
    gesture = _take(gesture_id, settings.gesture_ttl_seconds, pop=True)
    return GestureResponse(gesture_id=gesture_id, state=gesture.selector.pointer_leave())


# Appointments --------------------------------------------------------------

@app.post("/appointments", dependencies=[Depends(verify_api_key)], response_model=AppointmentView, status_code=201)
async def book(req: BookRequest, settings: SchedulerSettings = Depends(get_settings)):
    if req.end_tick <= req.start_tick:
        raise HTTPException(status_code=422, detail="end_tick must be greater than start_tick")
    created = await book_slot(req, settings.slot_grid())
    return _view(settings, created)


@app.get("/appointments/{appt_id}", dependencies=[Depends(verify_api_key)], response_model=AppointmentView)
async def get_appointment(appt_id: str, settings: SchedulerSettings = Depends(get_settings)):
    appointment = await client.fetch_appointment(appt_id, settings.slot_grid())
    return _view(settings, appointment)


async def _run(appt_id: str, action: str, settings: SchedulerSettings) -> AppointmentView:
    board = AppointmentBoard(settings.slot_grid())
    await board.load(appt_id)
    return _view(settings, await board.transition(appt_id, action))


@app.post("/appointments/{appt_id}/start", dependencies=[Depends(verify_api_key)], response_model=AppointmentView)
async def start_visit(appt_id: str, settings: SchedulerSettings = Depends(get_settings)):
    return await _run(appt_id, "start", settings)


@app.post("/appointments/{appt_id}/complete", dependencies=[Depends(verify_api_key)], response_model=AppointmentView)
async def complete_visit(appt_id: str, settings: SchedulerSettings = Depends(get_settings)):
    return await _run(appt_id, "complete", settings)


@app.post("/appointments/{appt_id}/cancel", dependencies=[Depends(verify_api_key)], response_model=AppointmentView)
async def cancel_visit(appt_id: str, settings: SchedulerSettings = Depends(get_settings)):
    return await _run(appt_id, "cancel", settings)


@app.post("/appointments/{appt_id}/no-show", dependencies=[Depends(verify_api_key)], response_model=AppointmentView)
async def no_show(appt_id: str, settings: SchedulerSettings = Depends(get_settings)):
    return await _run(appt_id, "mark_no_show", settings)


@app.put("/appointments/{appt_id}/reschedule", dependencies=[Depends(verify_api_key)], response_model=AppointmentView)
async def reschedule_visit(appt_id: str, req: RescheduleRequest, settings: SchedulerSettings = Depends(get_settings)):
    """Drop an appointment onto a new start tick, keeping its length."""
    moved = await reschedule(appt_id, req, settings.slot_grid())
    return _view(settings, moved)
