"""Async client for the clinic appointment service.
Assumes password login at /api/v1/auth/login returning a bearer token.
"""
from __future__ import annotations
import datetime as dt
import os
import time
import httpx
from dotenv import load_dotenv
from .errors import PersistenceFailure
from .grid import SlotGrid
from .logging_config import get_logger
from .models import (
    AppointmentCreate,
    AppointmentInstance,
    AppointmentStatus,
    AppointmentUpdate,
    ExistingAppointment,
    TimeInterval,
)

load_dotenv()

logger = get_logger(__name__)

_BASE_URL = os.getenv("SCHEDULER_BACKEND_URL", "http://localhost:8000")
_LOGIN_URL = os.getenv("SCHEDULER_BACKEND_LOGIN_URL", f"{_BASE_URL}/api/v1/auth/login")
_USERNAME = os.getenv("SCHEDULER_BACKEND_USERNAME")
_PASSWORD = os.getenv("SCHEDULER_BACKEND_PASSWORD")
_APPOINTMENTS = f"{_BASE_URL}/api/v1/appointments"

_TOKEN_CACHE: dict[str, float | str] = {"token": None, "exp": 0.0}

async def _get_token() -> str:
    """Log in and cache the bearer token until shortly before it expires."""
    now = time.time()
    if _TOKEN_CACHE["token"] and now < _TOKEN_CACHE["exp"]:
        return _TOKEN_CACHE["token"]  # type: ignore

    async with httpx.AsyncClient(http2=True, timeout=15) as client:
        resp = await client.post(
            _LOGIN_URL,
            data={"username": _USERNAME, "password": _PASSWORD},
        )
        resp.raise_for_status()
        data = resp.json()
        token = data["access_token"]
        _TOKEN_CACHE.update(token=token, exp=now + data.get("expires_in", 3600) - 300)
        return token

def _detail(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("detail"):
        return str(data["detail"])
    return f"HTTP error! status: {resp.status_code}"

async def _send(method: str, url: str, **kwargs) -> httpx.Response:
    """Authenticated request; any failure surfaces as PersistenceFailure."""
    try:
        headers = {"Authorization": f"Bearer {await _get_token()}", "Accept": "application/json"}
        async with httpx.AsyncClient(http2=True, timeout=15) as client:
            resp = await client.request(method, url, headers=headers, **kwargs)
            resp.raise_for_status()
            return resp
    except httpx.HTTPStatusError as exc:
        logger.error("appointment service rejected request", method=method, url=url, status=exc.response.status_code)
        raise PersistenceFailure(_detail(exc.response), exc.response.status_code) from exc
    except httpx.TransportError as exc:
        logger.error("appointment service unreachable", method=method, url=url, error=str(exc))
        raise PersistenceFailure(f"Appointment service unreachable: {exc}") from exc

def _parse_time(value: str) -> dt.time:
    return dt.time.fromisoformat(value)

def _parse_date(value: str) -> dt.date:
    return dt.date.fromisoformat(value[:10])

def _parse_datetime(value: str | None) -> dt.datetime | None:
    return dt.datetime.fromisoformat(value) if value else None

def format_time(t: dt.time) -> str:
    """Time in the service's wire format, HH:MM:SS.ffffff."""
    return t.strftime("%H:%M:%S.%f")

def _status(payload: dict) -> AppointmentStatus:
    raw = payload.get("status") or AppointmentStatus.BOOKED
    try:
        return AppointmentStatus(raw)
    except ValueError as exc:
        logger.error("unknown appointment status", appointment_id=payload.get("id"), status=raw)
        raise PersistenceFailure(f"Appointment {payload.get('id')} has unknown status {raw!r}") from exc

def _interval(payload: dict, grid: SlotGrid) -> TimeInterval | None:
    return grid.interval_for_times(
        _parse_date(payload["date"]),
        _parse_time(payload["start_time"]),
        _parse_time(payload["end_time"]),
    )

def to_existing(payload: dict, grid: SlotGrid) -> ExistingAppointment | None:
    """Map a service record onto the grid; None when it falls outside working hours."""
    interval = _interval(payload, grid)
    if interval is None:
        return None
    return ExistingAppointment(
        id=str(payload["id"]),
        date=interval.date,
        interval=interval,
        status=_status(payload),
    )

def to_instance(payload: dict, grid: SlotGrid) -> AppointmentInstance:
    interval = _interval(payload, grid)
    if interval is None:
        raise PersistenceFailure(f"Appointment {payload.get('id')} lies outside working hours")
    return AppointmentInstance(
        id=str(payload["id"]),
        patient_id=str(payload.get("patient_id", "")),
        interval=interval,
        status=_status(payload),
        actual_start=_parse_datetime(payload.get("actual_start_time")),
        actual_end=_parse_datetime(payload.get("actual_end_time")),
    )

async def list_day_appointments(day: dt.date, grid: SlotGrid) -> list[ExistingAppointment]:
    """Return every appointment on ``day`` that is visible on the grid."""
    resp = await _send("GET", _APPOINTMENTS, params={"start_date": day.isoformat(), "days": 1})
    records = [to_existing(p, grid) for p in resp.json()]
    return [r for r in records if r is not None and r.date == day]

async def fetch_appointment(appt_id: str, grid: SlotGrid) -> AppointmentInstance:
    resp = await _send("GET", f"{_APPOINTMENTS}/{appt_id}")
    return to_instance(resp.json(), grid)

async def create_appointment(payload: AppointmentCreate, grid: SlotGrid) -> AppointmentInstance:
    resp = await _send("POST", _APPOINTMENTS, json=payload.model_dump(mode="json"))
    return to_instance(resp.json(), grid)

async def update_appointment(appt_id: str, update: AppointmentUpdate, grid: SlotGrid) -> AppointmentInstance:
    resp = await _send("PUT", f"{_APPOINTMENTS}/{appt_id}", json=update.model_dump(mode="json", exclude_none=True))
    return to_instance(resp.json(), grid)

async def start_appointment(appt_id: str, grid: SlotGrid) -> AppointmentInstance:
    """Mark the visit started; the service stamps actual_start_time."""
    resp = await _send("PATCH", f"{_APPOINTMENTS}/{appt_id}/start")
    return to_instance(resp.json(), grid)

async def end_appointment(appt_id: str, grid: SlotGrid) -> AppointmentInstance:
    resp = await _send("PATCH", f"{_APPOINTMENTS}/{appt_id}/end")
    return to_instance(resp.json(), grid)
