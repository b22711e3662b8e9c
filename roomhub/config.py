"""Application configuration settings.

This module defines the ``Settings`` class using ``pydantic-settings`` to
load configuration from environment variables (and, optionally, a ``.env``
file). It centralises all runtime configuration for the service: Google
API credentials, the room to calendar mapping, the operating timezone and
the daily booking window.
"""

import os
from typing import Dict, List

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Configuration values loaded from environment variables.

    Environment variable names map to fields by alias. Every field has a
    default so the module imports cleanly; credentials and calendar IDs are
    checked when a request actually needs them (see
    ``AvailabilityService.check_configuration``).
    """

    # Google authentication
    google_service_account_json: str = Field(
        default="",
        alias="GOOGLE_SERVICE_ACCOUNT_JSON",
        description="Service account key as inline JSON, a file path or base64 encoded JSON.",
    )
    google_impersonate_user: str = Field(
        default="",
        alias="GOOGLE_IMPERSONATE_USER",
        description="Optional Workspace user to impersonate via domain-wide delegation.",
    )

    # Rooms
    talking_calendar_id: str = Field(default="", alias="TALKING_CALENDAR_ID")
    board_calendar_id: str = Field(default="", alias="BOARD_CALENDAR_ID")

    # Booking window
    timezone: str = Field(
        default="Pacific/Auckland",
        alias="TIMEZONE",
        description="IANA timezone all dates and windows are anchored to.",
    )
    booking_window_start: str = Field(default="09:00", alias="BOOKING_WINDOW_START")
    booking_window_end: str = Field(default="18:00", alias="BOOKING_WINDOW_END")

    # Remote calls. The availability cache TTL is fixed (see ``cache.CACHE_TTL_SECONDS``).
    fetch_timeout_seconds: float = Field(
        default=10.0,
        alias="FETCH_TIMEOUT_SECONDS",
        description="Upper bound for one room's calendar fetch before it is reported as failed.",
    )

    businesses: str = Field(
        default="Baker,Clarity,Hunch,Navigate",
        alias="BUSINESSES",
        description="Comma separated business names recognised in booking labels.",
    )

    enable_cors: str = Field(default="", alias="ENABLE_CORS")

    class Config:
        extra = "ignore"
        env_file = os.getenv("ROOMHUB_ENV", ".env")

    @property
    def room_calendars(self) -> Dict[str, str]:
        """Room identity to Google calendar ID."""
        return {"talking": self.talking_calendar_id, "board": self.board_calendar_id}

    @property
    def business_names(self) -> List[str]:
        return [b.strip() for b in self.businesses.split(",") if b.strip()]


# Instantiate settings at module import time. This allows other modules to
# import ``settings`` directly without repeatedly reading environment variables.
settings = Settings()
