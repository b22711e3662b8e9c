"""Main application entry point for the room booking service.

This module defines the FastAPI application, configures logging and maps
the availability service's errors onto HTTP responses. The service object
(which owns the in-memory availability cache) is created once per process
and handed to the endpoints through a dependency, so tests can swap in a
fake calendar and a controllable clock.

Endpoints:
  - ``/api/availability``: busy blocks and free-now status per room.
  - ``/api/slots``: the same data laid out on the 30 minute slot grid.
  - ``/api/book``: create a reservation after a conflict check.
  - ``/api/remove``: delete a reservation.
  - ``/api/booking.ics``: iCalendar file for a proposed reservation.
  - ``/api/booking/gcal-url``: Google Calendar link for a proposed reservation.
  - ``/healthz``: simple health check endpoint.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from .config import settings
from .ics import build_gcal_url, build_ics
from .models import BookingRequest, RemoveRequest
from .service import (
    AvailabilityService,
    BookingConflictError,
    CalendarReadError,
    CalendarWriteError,
    ConfigurationError,
    InvalidRequestError,
)
from .timeutils import iso_z, utcnow

logger = logging.getLogger("roomhub")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

app = FastAPI(title="RoomHub Booking Service")

# CORS configuration: disabled by default because the booking UI and API are
# served from the same origin. Set ENABLE_CORS=yes to expose the API to other hosts.
if settings.enable_cors.lower() in {"1", "true", "yes"}:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

_service: Optional[AvailabilityService] = None


def get_service() -> AvailabilityService:
    """Return the process-wide availability service, creating it on first use."""
    global _service
    if _service is None:
        _service = AvailabilityService(settings)
    return _service


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ConfigurationError):
        logger.error("Configuration error: %s", exc)
        return HTTPException(status_code=500, detail="Server configuration error")
    if isinstance(exc, InvalidRequestError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, BookingConflictError):
        return HTTPException(
            status_code=409,
            detail={
                "error": exc.message,
                "conflict": {"start": iso_z(exc.block.start), "end": iso_z(exc.block.end), "title": exc.block.label},
            },
        )
    return HTTPException(status_code=502, detail=str(exc))


@app.get("/api/availability")
async def api_availability(
    date: Optional[str] = None, service: AvailabilityService = Depends(get_service)
) -> Dict[str, Any]:
    """Return one availability snapshot per room for ``date`` (default today)."""
    try:
        availability = await service.get_availability(date)
    except (ConfigurationError, InvalidRequestError) as exc:
        raise _http_error(exc)
    return availability.to_payload()


@app.get("/api/slots")
async def api_slots(date: Optional[str] = None, service: AvailabilityService = Depends(get_service)) -> Dict[str, Any]:
    """Return the slot grid for ``date`` with each busy block labelled once."""
    try:
        return await service.get_slots(date)
    except (ConfigurationError, InvalidRequestError) as exc:
        raise _http_error(exc)


@app.post("/api/book")
async def api_book(request: BookingRequest, service: AvailabilityService = Depends(get_service)) -> Dict[str, Any]:
    try:
        return await service.create_booking(request)
    except (
        ConfigurationError,
        InvalidRequestError,
        BookingConflictError,
        CalendarReadError,
        CalendarWriteError,
    ) as exc:
        raise _http_error(exc)


@app.post("/api/remove")
async def api_remove(request: RemoveRequest, service: AvailabilityService = Depends(get_service)) -> Dict[str, Any]:
    try:
        return await service.remove_booking(request)
    except (ConfigurationError, InvalidRequestError, CalendarWriteError) as exc:
        raise _http_error(exc)


@app.get("/api/booking.ics")
def api_booking_ics(
    room: str,
    start: datetime,
    durationMins: int = Query(..., gt=0),
    business: str = Query(..., min_length=1),
    service: AvailabilityService = Depends(get_service),
) -> Response:
    """Return an iCalendar file so a booking can be added to a personal calendar."""
    try:
        calendar_id = service.calendar_id(room)
    except InvalidRequestError as exc:
        raise _http_error(exc)
    if start.tzinfo is None:
        start = start.replace(tzinfo=ZoneInfo(service.config.timezone))
    content = build_ics(room, start, durationMins, business, calendar_id, now=service.clock())
    filename = f"roomhub-{room}-{start.astimezone(ZoneInfo(service.config.timezone)).date().isoformat()}.ics"
    return Response(
        content=content,
        media_type="text/calendar",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/booking/gcal-url")
def api_booking_gcal_url(
    room: str,
    start: datetime,
    durationMins: int = Query(120, gt=0),
    business: str = Query(..., min_length=1),
    service: AvailabilityService = Depends(get_service),
) -> Dict[str, str]:
    """Return a link that opens Google Calendar with the booking pre-filled."""
    try:
        calendar_id = service.calendar_id(room)
    except InvalidRequestError as exc:
        raise _http_error(exc)
    if start.tzinfo is None:
        start = start.replace(tzinfo=ZoneInfo(service.config.timezone))
    return {"url": build_gcal_url(calendar_id, start, durationMins, business)}


@app.get("/healthz")
def healthz() -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    return {"ok": True, "time": iso_z(utcnow())}
