"""Availability service: runs the computation pipeline behind the cache.

For one date the pipeline is: fetch each room's events for the booking
window, clamp them to the window, merge them into busy blocks and derive
the room's "free now" status. Rooms are fetched concurrently and a failure
in one room only degrades that room's snapshot.

Bookings and removals write to the calendar first and invalidate the
affected date only once the write has succeeded.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .availability import booking_window, build_snapshot, failed_snapshot
from .cache import AvailabilityCache
from .config import Settings, settings as default_settings
from .conflicts import conflict_message, effective_start, find_conflict
from .google_client import CalendarSource, GoogleCalendarSource
from .intervals import merge_blocks, normalize_blocks
from .models import (
    AvailabilityResponse,
    BookingRequest,
    BookingWindow,
    BusyBlock,
    RemoveRequest,
    RoomAvailability,
)
from .slots import SlotGrid, blocks_from_snapshot
from .timeutils import iso_z, local_date, utcnow

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Credentials or required settings are missing or malformed."""


class InvalidRequestError(ValueError):
    """A request was rejected before any remote call was made."""


class CalendarReadError(Exception):
    pass


class CalendarWriteError(Exception):
    pass


class BookingConflictError(Exception):
    def __init__(self, block: BusyBlock, message: str) -> None:
        super().__init__(message)
        self.block = block
        self.message = message


class AvailabilityService:
    """Owns the availability cache and the calendar source for the process."""

    def __init__(
        self,
        config: Settings = default_settings,
        source: Optional[CalendarSource] = None,
        clock: Callable[[], datetime] = utcnow,
        cache: Optional[AvailabilityCache] = None,
    ) -> None:
        self.config = config
        self.source = source if source is not None else GoogleCalendarSource(config)
        self.clock = clock
        self.cache = cache if cache is not None else AvailabilityCache(clock=clock)
        self._room_locks: Dict[str, asyncio.Lock] = {}

    # -- configuration -----------------------------------------------------

    def check_configuration(self) -> None:
        """Fail the whole request when settings cannot possibly work.

        Raises:
            ConfigurationError: on a missing calendar ID, an unknown
                timezone or unusable credentials.
        """
        missing = [room for room, cal_id in self.config.room_calendars.items() if not cal_id]
        if missing:
            raise ConfigurationError(f"calendar ID not configured for: {', '.join(missing)}")
        try:
            ZoneInfo(self.config.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigurationError(f"unknown timezone {self.config.timezone!r}") from exc
        if isinstance(self.source, GoogleCalendarSource):
            try:
                self.source.credentials
            except ValueError as exc:
                raise ConfigurationError(str(exc)) from exc

    def calendar_id(self, room: str) -> str:
        try:
            return self.config.room_calendars[room]
        except KeyError:
            raise InvalidRequestError(f"unknown room {room!r}") from None

    def room_lock(self, room: str) -> asyncio.Lock:
        """Lock serialising check-then-write bookings for one room."""
        return self._room_locks.setdefault(room, asyncio.Lock())

    def today(self) -> str:
        return local_date(self.clock(), self.config.timezone)

    def window_for(self, date_str: str) -> BookingWindow:
        try:
            return booking_window(
                date_str,
                self.config.timezone,
                self.config.booking_window_start,
                self.config.booking_window_end,
            )
        except ValueError as exc:
            raise InvalidRequestError(f"invalid date {date_str!r}: {exc}") from exc

    # -- pipeline ----------------------------------------------------------

    async def fetch_blocks(self, room: str, window: BookingWindow) -> List[BusyBlock]:
        """Fetch, clamp and merge one room's events for ``window``."""
        records = await asyncio.wait_for(
            asyncio.to_thread(self.source.list_reservations, self.calendar_id(room), window.start, window.end),
            timeout=self.config.fetch_timeout_seconds,
        )
        return merge_blocks(normalize_blocks(records, window))

    async def room_snapshot(self, room: str, window: BookingWindow) -> RoomAvailability:
        try:
            blocks = await self.fetch_blocks(room, window)
        except Exception as exc:
            logger.exception("Calendar error for room %s on %s: %s", room, window.date, exc)
            return failed_snapshot()
        return build_snapshot(blocks, window, self.clock())

    async def get_availability(self, date_str: Optional[str] = None) -> AvailabilityResponse:
        """Return every room's snapshot for ``date_str`` (default: today)."""
        self.check_configuration()
        window = self.window_for(date_str or self.today())

        cached = self.cache.get(window.date)
        if cached is not None:
            logger.debug("Availability cache hit for %s", window.date)
            return cached
        logger.debug("Availability cache miss for %s", window.date)

        rooms = list(self.config.room_calendars)
        with self.cache.recompute(window.date) as stamp:
            snapshots = await asyncio.gather(*(self.room_snapshot(room, window) for room in rooms))
            response = AvailabilityResponse(date=window.date, rooms=dict(zip(rooms, snapshots)))
            self.cache.set(window.date, response, stamp)
        return response

    async def get_slots(self, date_str: Optional[str] = None) -> Dict[str, Any]:
        """Slot-grid view of the (possibly cached) availability for a date."""
        availability = await self.get_availability(date_str)
        window = self.window_for(availability.date)
        grid = SlotGrid(window)
        rooms: Dict[str, Any] = {}
        for room, snapshot in availability.rooms.items():
            blocks = blocks_from_snapshot(snapshot)
            rooms[room] = {
                "cells": [c.model_dump() for c in grid.cells(blocks)],
                "spans": [s.model_dump() for s in grid.label_spans(blocks, self.config.business_names)],
                "error": snapshot.error,
            }
        return {
            "date": availability.date,
            "slotMinutes": int(grid.width.total_seconds() // 60),
            "slots": [{"index": i, "start": iso_z(grid.slot_start(i))} for i in range(grid.count)],
            "rooms": rooms,
        }

    # -- mutations ---------------------------------------------------------

    async def create_booking(self, request: BookingRequest) -> Dict[str, Any]:
        """Check the booking against fresh calendar data, then write it.

        Raises:
            InvalidRequestError: unknown room.
            BookingConflictError: the slot overlaps an existing block.
            CalendarReadError: the conflict check could not read the calendar.
            CalendarWriteError: the calendar rejected the insert.
        """
        self.check_configuration()
        calendar_id = self.calendar_id(request.room)
        tz = self.config.timezone
        window = self.window_for(local_date(request.start, tz))
        start = effective_start(request.start, request.durationMins, window)
        end = start + timedelta(minutes=request.durationMins)

        # Held from the conflict read through the invalidation so two bookings
        # for the same room cannot both pass the check.
        async with self.room_lock(request.room):
            try:
                blocks = await self.fetch_blocks(request.room, window)
            except Exception as exc:
                logger.exception("Conflict check failed for room %s: %s", request.room, exc)
                raise CalendarReadError("Could not load calendar data") from exc

            conflict = find_conflict(request.start, request.durationMins, blocks, window)
            if conflict is not None:
                raise BookingConflictError(conflict, conflict_message(conflict, tz))

            try:
                event_id = await asyncio.to_thread(
                    self.source.insert_reservation, calendar_id, start, end, f"[{request.business}]", tz
                )
            except Exception as exc:
                logger.exception("Book error for room %s: %s", request.room, exc)
                raise CalendarWriteError("Failed to create booking") from exc

            self.cache.invalidate(local_date(start, tz))
        return {"success": True, "eventId": event_id, "start": iso_z(start), "end": iso_z(end)}

    async def remove_booking(self, request: RemoveRequest) -> Dict[str, Any]:
        """Delete an event, then invalidate its date (or everything if unknown)."""
        self.check_configuration()
        calendar_id = self.calendar_id(request.room)
        try:
            await asyncio.to_thread(self.source.delete_reservation, calendar_id, request.eventId)
        except Exception as exc:
            logger.exception("Remove error for room %s: %s", request.room, exc)
            raise CalendarWriteError("Failed to remove booking") from exc

        if request.start is not None:
            self.cache.invalidate(local_date(request.start, self.config.timezone))
        else:
            self.cache.invalidate_all()
        return {"success": True}
