import itertools
from datetime import datetime, timedelta
from typing import Dict, List

import pytest
from fastapi.testclient import TestClient

from roomhub.cache import AvailabilityCache
from roomhub.config import Settings
from roomhub.main import app, get_service
from roomhub.models import ReservationRecord
from roomhub.service import AvailabilityService

DAY = "2026-03-10"


def at(hhmm: str, day: str = DAY) -> datetime:
    """UTC instant on the test day, e.g. ``at("09:30")``."""
    return datetime.fromisoformat(f"{day}T{hhmm}:00+00:00")


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeCalendarSource:
    """In-memory calendar standing in for Google Calendar."""

    def __init__(self) -> None:
        self.events: Dict[str, List[ReservationRecord]] = {}
        self.list_calls: List[str] = []
        self.inserted: List[dict] = []
        self.deleted: List[tuple] = []
        self.failing_calendars = set()
        self.fail_writes = False
        self._ids = itertools.count(1)

    def add(self, calendar_id: str, start: datetime, end: datetime, label: str = "Booked") -> str:
        event_id = f"evt-{next(self._ids)}"
        self.events.setdefault(calendar_id, []).append(
            ReservationRecord(start=start, end=end, label=label, event_id=event_id)
        )
        return event_id

    def list_reservations(self, calendar_id, time_min, time_max):
        self.list_calls.append(calendar_id)
        if calendar_id in self.failing_calendars:
            raise RuntimeError(f"calendar {calendar_id} unavailable")
        return [r for r in self.events.get(calendar_id, []) if r.start < time_max and r.end > time_min]

    def insert_reservation(self, calendar_id, start, end, summary, time_zone):
        if self.fail_writes:
            raise RuntimeError("insert rejected")
        event_id = self.add(calendar_id, start, end, summary)
        self.inserted.append(
            {"calendar_id": calendar_id, "start": start, "end": end, "summary": summary, "time_zone": time_zone}
        )
        return event_id

    def delete_reservation(self, calendar_id, event_id):
        if self.fail_writes:
            raise RuntimeError("delete rejected")
        self.deleted.append((calendar_id, event_id))
        self.events[calendar_id] = [r for r in self.events.get(calendar_id, []) if r.event_id != event_id]


@pytest.fixture
def config() -> Settings:
    return Settings(
        TALKING_CALENDAR_ID="talking-cal",
        BOARD_CALENDAR_ID="board-cal",
        TIMEZONE="UTC",
        BOOKING_WINDOW_START="09:00",
        BOOKING_WINDOW_END="18:00",
        _env_file=None,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(at("10:00"))


@pytest.fixture
def source() -> FakeCalendarSource:
    return FakeCalendarSource()


@pytest.fixture
def service(config, source, clock) -> AvailabilityService:
    return AvailabilityService(config, source=source, clock=clock, cache=AvailabilityCache(60, clock))


@pytest.fixture
def client(service):
    app.dependency_overrides[get_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
