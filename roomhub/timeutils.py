"""Timestamp helpers shared by the engine and the Google client."""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Return the current time in UTC."""
    return datetime.now(timezone.utc)


def iso_z(dt: datetime) -> str:
    """Return an RFC3339 timestamp in UTC with a Z suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def parse_rfc3339(s: str) -> datetime:
    """Parse RFC3339 timestamps returned by Google into timezone-aware datetimes."""
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return datetime.fromisoformat(s).astimezone(timezone.utc)


def parse_time_of_day(value: str) -> time:
    """Parse an ``HH:MM`` string."""
    hours, _, minutes = value.strip().partition(":")
    return time(int(hours), int(minutes or 0))


def parse_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` calendar day, raising ValueError otherwise."""
    return date.fromisoformat(value.strip())


def local_date(instant: datetime, tz_name: str) -> str:
    """Calendar day (``YYYY-MM-DD``) of ``instant`` in the operating timezone."""
    return instant.astimezone(ZoneInfo(tz_name)).date().isoformat()


def format_clock(instant: datetime, tz_name: str) -> str:
    """Short local clock time such as ``9:30`` or ``14:00``."""
    local = instant.astimezone(ZoneInfo(tz_name))
    return f"{local.hour}:{local.minute:02d}"
