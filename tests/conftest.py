import datetime as dt
import json
import pathlib

import pytest
import respx

from clinic_scheduler import client as cl
from clinic_scheduler.grid import SlotGrid
from clinic_scheduler.models import ExistingAppointment, TimeGrid, TimeInterval

# inject dummy credentials so the login form has something to send
cl._USERNAME = "frontdesk"
cl._PASSWORD = "dummy"

FIX = pathlib.Path(__file__).parent / "fixtures"
TOKEN_RESP = {"access_token": "fake", "token_type": "bearer", "expires_in": 3600}
BASE = "http://localhost:8000"
DAY = dt.date(2025, 8, 15)


def booked(appt_id, start_tick, end_tick, day=DAY):
    return ExistingAppointment(
        id=appt_id,
        date=day,
        interval=TimeInterval(date=day, start_tick=start_tick, end_tick=end_tick),
    )


@pytest.fixture
def slot_grid():
    # 08:00-18:00 in 15 minute ticks, 40 ticks
    return SlotGrid(TimeGrid())


@pytest.fixture
def day_bundle():
    return json.loads((FIX / "appointments_day.json").read_text())


@pytest.fixture(autouse=True)
def reset_token_cache():
    cl._TOKEN_CACHE.update(token=None, exp=0)
    yield


@pytest.fixture
def backend():
    """respx router for the appointment service with login already mocked."""
    with respx.mock(base_url=BASE, assert_all_called=False) as m:
        m.post("/api/v1/auth/login").respond(200, json=TOKEN_RESP)
        yield m
