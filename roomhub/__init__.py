# Package initializer for the room booking backend.

"""
The `roomhub` package contains the availability engine and HTTP API for the
two-room booking service backed by Google Calendar.

Modules:

- ``config``: application settings loaded from environment variables.
- ``models``: Pydantic models for engine values and API responses.
- ``intervals``: clamping and merging of reservation intervals.
- ``availability``: booking windows and "free now" evaluation.
- ``slots``: the 30 minute slot grid used by the booking UI.
- ``conflicts``: conflict checks for new bookings.
- ``cache``: the in-memory TTL cache of computed availability.
- ``ics``: iCalendar export of a proposed booking.
- ``google_client``: helpers for interacting with the Calendar API.
- ``service``: the pipeline tying the above together.
- ``main``: the FastAPI application definition.

"""
