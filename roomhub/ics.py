"""Calendar hand-off for a proposed booking: an iCalendar file or a Google
Calendar "add event" link."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

ROOM_NAMES = {"talking": "Talking Room", "board": "Board Room"}

GCAL_TEMPLATE_URL = "https://calendar.google.com/calendar/render"


def _ics_stamp(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def build_ics(
    room: str,
    start: datetime,
    duration_minutes: int,
    business: str,
    calendar_id: str = "",
    now: Optional[datetime] = None,
) -> str:
    """Return a single-event VCALENDAR document with CRLF line endings.

    ``now`` is written as DTSTAMP; it defaults to the current UTC time.
    """
    end = start + timedelta(minutes=duration_minutes)
    room_name = ROOM_NAMES.get(room, room)
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//RoomHub//EN",
        "BEGIN:VEVENT",
        f"UID:{_ics_stamp(start)}-{room}@roomhub",
        f"DTSTAMP:{_ics_stamp(now or datetime.now(timezone.utc))}",
        f"DTSTART:{_ics_stamp(start)}",
        f"DTEND:{_ics_stamp(end)}",
        f"SUMMARY:[{business}] {room_name}",
        f"LOCATION:{room_name}",
    ]
    if calendar_id:
        lines.append(f"ATTENDEE;CUTYPE=RESOURCE:mailto:{calendar_id}")
    lines += ["END:VEVENT", "END:VCALENDAR"]
    return "\r\n".join(lines) + "\r\n"


def build_gcal_url(calendar_id: str, start: datetime, duration_minutes: int, business: str) -> str:
    """Return a Google Calendar template link that pre-fills the booking.

    The room calendar is added as a guest so the event lands on it once the
    user saves it.
    """
    end = start + timedelta(minutes=duration_minutes)
    params = {
        "action": "TEMPLATE",
        "text": f"[{business}]",
        "dates": f"{_ics_stamp(start)}/{_ics_stamp(end)}",
        "add": calendar_id,
        "details": "Booked via RoomHub",
    }
    return f"{GCAL_TEMPLATE_URL}?{urlencode(params)}"
