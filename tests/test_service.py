import asyncio
import time

import pytest
from conftest import DAY, at

from roomhub.availability import FETCH_ERROR
from roomhub.cache import CACHE_TTL_SECONDS
from roomhub.config import Settings
from roomhub.models import BookingRequest, RemoveRequest
from roomhub.service import (
    AvailabilityService,
    BookingConflictError,
    CalendarWriteError,
    ConfigurationError,
    InvalidRequestError,
)


def run(coro):
    return asyncio.run(coro)


def book(room="talking", start="10:00", minutes=30, business="Baker"):
    return BookingRequest(room=room, start=at(start), durationMins=minutes, business=business)


class TestGetAvailability:
    def test_cache_ttl_is_not_configurable(self, source, monkeypatch):
        monkeypatch.setenv("CACHE_TTL_SECONDS", "5")
        settings = Settings(_env_file=None)
        assert not hasattr(settings, "cache_ttl_seconds")
        assert AvailabilityService(settings, source=source).cache.ttl_seconds == CACHE_TTL_SECONDS == 60

    def test_defaults_to_today(self, service):
        result = run(service.get_availability())
        assert result.date == DAY
        assert set(result.rooms) == {"talking", "board"}

    def test_computes_snapshot_per_room(self, service, source):
        source.add("talking-cal", at("09:30"), at("10:00"), "[Baker]")
        source.add("talking-cal", at("09:45"), at("10:30"), "[Hunch]")
        source.add("board-cal", at("08:00"), at("09:15"))

        result = run(service.get_availability(DAY))
        talking = result.rooms["talking"]
        assert talking.freeNow is False
        assert talking.nextAvailable == "2026-03-10T10:30:00Z"
        assert [(b.start, b.end, b.title) for b in talking.busyBlocks] == [
            ("2026-03-10T09:30:00Z", "2026-03-10T10:30:00Z", "[Baker]")
        ]
        board = result.rooms["board"]
        assert board.freeNow is True
        assert board.busyBlocks[0].start == "2026-03-10T09:00:00Z"

    def test_cached_within_ttl_then_refetched(self, service, source, clock):
        first = run(service.get_availability(DAY))
        clock.advance(30)
        second = run(service.get_availability(DAY))
        assert second is first
        assert source.list_calls.count("talking-cal") == 1

        clock.advance(31)
        run(service.get_availability(DAY))
        assert source.list_calls.count("talking-cal") == 2

    def test_failing_room_does_not_affect_the_other(self, service, source):
        source.add("talking-cal", at("11:00"), at("12:00"))
        source.failing_calendars.add("board-cal")

        result = run(service.get_availability(DAY))
        assert result.rooms["board"].error == FETCH_ERROR
        assert result.rooms["board"].busyBlocks == []
        assert result.rooms["board"].freeNow is False
        assert result.rooms["talking"].error is None
        assert len(result.rooms["talking"].busyBlocks) == 1

    def test_slow_room_is_reported_as_failed(self, config, source, clock):
        config.fetch_timeout_seconds = 0.05

        class SlowSource(type(source)):
            def list_reservations(self, calendar_id, time_min, time_max):
                if calendar_id == "board-cal":
                    time.sleep(0.5)
                return super().list_reservations(calendar_id, time_min, time_max)

        service = AvailabilityService(config, source=SlowSource(), clock=clock)
        result = run(service.get_availability(DAY))
        assert result.rooms["board"].error == FETCH_ERROR
        assert result.rooms["talking"].error is None

    def test_invalid_date_rejected(self, service, source):
        with pytest.raises(InvalidRequestError):
            run(service.get_availability("10/03/2026"))
        assert source.list_calls == []

    def test_missing_calendar_id_fails_whole_request(self, config, source, clock):
        config.board_calendar_id = ""
        service = AvailabilityService(config, source=source, clock=clock)
        with pytest.raises(ConfigurationError):
            run(service.get_availability(DAY))
        assert source.list_calls == []

    def test_slots_label_each_block_once(self, service, source):
        source.add("board-cal", at("13:00"), at("14:10"), "[Navigate] offsite")
        slots = run(service.get_slots(DAY))
        assert slots["slotMinutes"] == 30
        assert len(slots["slots"]) == 18
        spans = slots["rooms"]["board"]["spans"]
        assert spans == [{"blockIndex": 0, "slot": 8, "span": 3, "label": "[Navigate] offsite", "business": "Navigate"}]
        assert [c["busy"] for c in slots["rooms"]["board"]["cells"][8:12]] == [True, True, True, False]


class TestCreateBooking:
    def test_creates_event_and_invalidates_date(self, service, source):
        before = run(service.get_availability(DAY))
        assert before.rooms["talking"].busyBlocks == []

        result = run(service.create_booking(book(start="11:00", minutes=60)))
        assert result["success"] is True
        assert result["start"] == "2026-03-10T11:00:00Z"
        assert result["end"] == "2026-03-10T12:00:00Z"
        assert source.inserted[0]["summary"] == "[Baker]"
        assert source.inserted[0]["time_zone"] == "UTC"

        after = run(service.get_availability(DAY))
        assert after is not before
        assert after.rooms["talking"].busyBlocks[0].start == "2026-03-10T11:00:00Z"

    def test_conflict_rejected_without_write(self, service, source):
        source.add("talking-cal", at("09:30"), at("10:00"))
        source.add("talking-cal", at("10:30"), at("11:00"))
        cached = run(service.get_availability(DAY))

        with pytest.raises(BookingConflictError) as excinfo:
            run(service.create_booking(book(start="09:00", minutes=120)))
        assert excinfo.value.block.start == at("09:30")
        assert excinfo.value.message == "room is booked from 9:30"
        assert source.inserted == []
        assert service.cache.get(DAY) is cached

    def test_whole_day_booking_starts_at_open(self, service, source):
        result = run(service.create_booking(book(start="14:30", minutes=9 * 60)))
        assert result["start"] == "2026-03-10T09:00:00Z"
        assert source.inserted[0]["start"] == at("09:00")
        assert source.inserted[0]["end"] == at("18:00")

    def test_failed_write_keeps_cache(self, service, source):
        cached = run(service.get_availability(DAY))
        source.fail_writes = True
        with pytest.raises(CalendarWriteError):
            run(service.create_booking(book()))
        assert service.cache.get(DAY) is cached

    def test_unknown_room_rejected_before_remote_calls(self, service, source):
        with pytest.raises(InvalidRequestError):
            run(service.create_booking(book(room="attic")))
        assert source.list_calls == []
        assert source.inserted == []

    def test_concurrent_identical_bookings_write_once(self, service, source, monkeypatch):
        list_reservations = source.list_reservations

        def slow_list(*args):
            # Leave room for the other booking to run its read in between.
            time.sleep(0.05)
            return list_reservations(*args)

        monkeypatch.setattr(source, "list_reservations", slow_list)
        request = book(start="11:00", minutes=60)

        async def both():
            return await asyncio.gather(
                service.create_booking(request), service.create_booking(request), return_exceptions=True
            )

        results = run(both())
        assert sum(isinstance(r, dict) for r in results) == 1
        assert sum(isinstance(r, BookingConflictError) for r in results) == 1
        assert len(source.inserted) == 1

    def test_bookings_for_different_rooms_both_succeed(self, service, source):
        async def both():
            return await asyncio.gather(
                service.create_booking(book(room="talking", start="11:00")),
                service.create_booking(book(room="board", start="11:00")),
            )

        results = run(both())
        assert [r["success"] for r in results] == [True, True]
        assert {i["calendar_id"] for i in source.inserted} == {"talking-cal", "board-cal"}


class TestRemoveBooking:
    def test_remove_with_start_invalidates_that_date(self, service, source):
        event_id = source.add("board-cal", at("09:00"), at("10:00"))
        run(service.get_availability(DAY))
        other = run(service.get_availability("2026-03-11"))

        run(service.remove_booking(RemoveRequest(room="board", eventId=event_id, start=at("09:00"))))
        assert source.deleted == [("board-cal", event_id)]
        assert service.cache.get(DAY) is None
        assert service.cache.get("2026-03-11") is other

    def test_remove_without_start_clears_everything(self, service, source):
        run(service.get_availability(DAY))
        run(service.get_availability("2026-03-11"))
        run(service.remove_booking(RemoveRequest(room="board", eventId="evt-9")))
        assert len(service.cache) == 0

    def test_failed_delete_keeps_cache(self, service, source):
        cached = run(service.get_availability(DAY))
        source.fail_writes = True
        with pytest.raises(CalendarWriteError):
            run(service.remove_booking(RemoveRequest(room="board", eventId="evt-1")))
        assert service.cache.get(DAY) is cached
