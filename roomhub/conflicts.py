"""Conflict checks for proposed reservations."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Sequence

from .models import BookingWindow, BusyBlock
from .timeutils import format_clock


def effective_start(start: datetime, duration_minutes: int, window: BookingWindow) -> datetime:
    """Start instant actually booked for a request.

    A request lasting exactly the whole window ("book the entire day") is
    always moved to the window start, whichever slot it was made from.
    """
    if timedelta(minutes=duration_minutes) == window.length:
        return window.start
    return start


def find_conflict(
    start: datetime, duration_minutes: int, blocks: Sequence[BusyBlock], window: BookingWindow
) -> Optional[BusyBlock]:
    """Return the earliest busy block overlapping the proposed booking, if any.

    ``blocks`` are merged and ascending, so the first hit is the
    earliest-starting conflicting block.
    """
    begin = effective_start(start, duration_minutes, window)
    end = begin + timedelta(minutes=duration_minutes)
    for block in blocks:
        if block.start < end and block.end > begin:
            return block
    return None


def conflict_message(block: BusyBlock, tz_name: str) -> str:
    return f"room is booked from {format_clock(block.start, tz_name)}"
