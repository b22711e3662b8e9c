"""Booking window construction and "free now" evaluation."""

from __future__ import annotations

import bisect
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from .models import BookingWindow, BusyBlock, BusyBlockOut, RoomAvailability
from .timeutils import iso_z, parse_date, parse_time_of_day

FETCH_ERROR = "Could not load calendar data"


def booking_window(date_str: str, tz_name: str, open_at: str, close_at: str) -> BookingWindow:
    """Build the booking window of ``date_str`` in the operating timezone.

    Raises:
        ValueError: if the date or either time of day is malformed, or if
            the window would be empty.
    """
    day = parse_date(date_str)
    tz = ZoneInfo(tz_name)
    start = datetime.combine(day, parse_time_of_day(open_at), tzinfo=tz)
    end = datetime.combine(day, parse_time_of_day(close_at), tzinfo=tz)
    if start >= end:
        raise ValueError(f"booking window {open_at}-{close_at} is empty")
    return BookingWindow(
        date=day.isoformat(),
        start=start.astimezone(timezone.utc),
        end=end.astimezone(timezone.utc),
    )


def evaluate_availability(
    blocks: Sequence[BusyBlock], window: BookingWindow, now: datetime
) -> Tuple[bool, Optional[datetime]]:
    """Return ``(free_now, next_available)`` for ``now``.

    The status only has meaning for the window's own day during opening
    hours; outside of that the room is reported as not free with no next
    available instant. ``blocks`` must be merged (sorted and disjoint), so
    at most one block can contain ``now``.
    """
    if not window.contains(now):
        return False, None
    starts = [b.start for b in blocks]
    idx = bisect.bisect_right(starts, now) - 1
    if idx >= 0 and now < blocks[idx].end:
        return False, blocks[idx].end
    return True, None


def build_snapshot(blocks: List[BusyBlock], window: BookingWindow, now: datetime) -> RoomAvailability:
    """Assemble the API snapshot for one room from its merged blocks."""
    free_now, next_available = evaluate_availability(blocks, window, now)
    return RoomAvailability(
        busyBlocks=[
            BusyBlockOut(start=iso_z(b.start), end=iso_z(b.end), title=b.label, mergedCount=b.merged_count)
            for b in blocks
        ],
        freeNow=free_now,
        nextAvailable=iso_z(next_available) if next_available else None,
    )


def failed_snapshot() -> RoomAvailability:
    """Snapshot reported for a room whose calendar could not be read."""
    return RoomAvailability(busyBlocks=[], freeNow=False, nextAvailable=None, error=FETCH_ERROR)
