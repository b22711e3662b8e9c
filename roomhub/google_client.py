"""Google Calendar client utilities for the room booking service.

This module provides helpers to load service account credentials and to
list, insert and delete events on the room calendars. Reads are retried
with exponential back-off on transient errors; writes are attempted once
so a failed booking is never silently duplicated.

The functions here are synchronous. ``AvailabilityService`` runs them in
worker threads so the two room calendars can be fetched concurrently.
httplib2 connections are not thread-safe, so every API call executes on
its own ``AuthorizedHttp`` transport; only the credentials and the
discovery-built resource object are shared.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import threading
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple

import google_auth_httplib2
import httplib2
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .config import Settings, settings as default_settings
from .models import ReservationRecord
from .timeutils import iso_z, parse_rfc3339

logger = logging.getLogger(__name__)

# Read and write access to events is all the service needs; it never
# touches calendar settings or ACLs.
SCOPES: Tuple[str, ...] = ("https://www.googleapis.com/auth/calendar.events",)

TRANSIENT_STATUSES = (429, 500, 502, 503, 504)


class CalendarSource(Protocol):
    """Read/write calendar data source used by the availability service."""

    def list_reservations(self, calendar_id: str, time_min: datetime, time_max: datetime) -> List[ReservationRecord]:
        ...

    def insert_reservation(
        self, calendar_id: str, start: datetime, end: datetime, summary: str, time_zone: str
    ) -> str:
        ...

    def delete_reservation(self, calendar_id: str, event_id: str) -> None:
        ...


def _load_sa_info(raw: str) -> dict:
    """Load the service account credentials from inline JSON, a path or base64.

    The ``GOOGLE_SERVICE_ACCOUNT_JSON`` setting may contain a JSON string,
    a filesystem path pointing to the JSON key, or the key encoded as
    base64. This helper hides that and returns a dictionary suitable for
    constructing credentials.

    Raises:
        ValueError: if the value is empty or cannot be decoded.
    """
    raw = raw.strip()
    if not raw:
        raise ValueError("GOOGLE_SERVICE_ACCOUNT_JSON is not set")
    # Detect inline JSON by looking for a brace at the start.
    if raw.startswith("{"):
        return json.loads(raw)
    if os.path.exists(raw):
        with open(raw, "r", encoding="utf-8") as fh:
            return json.load(fh)
    try:
        return json.loads(base64.b64decode(raw, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError("GOOGLE_SERVICE_ACCOUNT_JSON is neither JSON, a file path nor base64 JSON") from exc


def get_credentials(config: Settings) -> service_account.Credentials:
    """Return service account credentials, delegated if a subject is configured."""
    sa_info = _load_sa_info(config.google_service_account_json)
    creds = service_account.Credentials.from_service_account_info(sa_info, scopes=SCOPES)
    if config.google_impersonate_user:
        creds = creds.with_subject(config.google_impersonate_user)
    return creds


def get_calendar_service(creds: service_account.Credentials):
    """Build and return a Calendar service client."""
    return build("calendar", "v3", credentials=creds, cache_discovery=False)


def _execute_with_retry(
    request, what: str, *, http=None, max_retries: int = 3, backoff_seconds: float = 1.0
) -> Dict[str, Any]:
    attempt = 0
    while True:
        try:
            return request.execute(http=http)
        except HttpError as exc:
            attempt += 1
            # Retry on 5xx or rate-limit errors.
            status = getattr(exc.resp, "status", None)
            if attempt <= max_retries and status in TRANSIENT_STATUSES:
                delay = backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "%s transient error (status=%s), retrying in %.1fs (attempt %s/%s)",
                    what,
                    status,
                    delay,
                    attempt,
                    max_retries,
                )
                time.sleep(delay)
                continue
            logger.error("%s failed after %s attempts: %s", what, attempt, exc)
            raise


def event_to_record(event: Dict[str, Any]) -> Optional[ReservationRecord]:
    """Convert a Calendar API event into a record.

    All-day events (``date`` rather than ``dateTime``) carry no instants and
    are skipped, as are cancelled occurrences.
    """
    if event.get("status") == "cancelled":
        return None
    start = (event.get("start") or {}).get("dateTime")
    end = (event.get("end") or {}).get("dateTime")
    if not start or not end:
        return None
    return ReservationRecord(
        start=parse_rfc3339(start),
        end=parse_rfc3339(end),
        label=event.get("summary") or "Booked",
        event_id=event.get("id"),
    )


class GoogleCalendarSource:
    """``CalendarSource`` backed by the Google Calendar v3 API."""

    def __init__(self, config: Settings = default_settings) -> None:
        self.config = config
        self._credentials = None
        self._service = None
        self._init_lock = threading.Lock()

    @property
    def credentials(self) -> service_account.Credentials:
        """Credentials loaded from settings on first use.

        Raises:
            ValueError: if the service account key is missing or malformed.
        """
        with self._init_lock:
            if self._credentials is None:
                self._credentials = get_credentials(self.config)
            return self._credentials

    @property
    def service(self):
        creds = self.credentials
        with self._init_lock:
            if self._service is None:
                self._service = get_calendar_service(creds)
            return self._service

    def _new_http(self) -> google_auth_httplib2.AuthorizedHttp:
        # One transport per call; httplib2.Http must not be shared between threads.
        return google_auth_httplib2.AuthorizedHttp(self.credentials, http=httplib2.Http())

    def list_reservations(self, calendar_id: str, time_min: datetime, time_max: datetime) -> List[ReservationRecord]:
        """Return the concrete events of ``calendar_id`` overlapping ``[time_min, time_max)``.

        Recurring events are expanded by the API (``singleEvents``), so every
        record is a single occurrence.

        Raises:
            HttpError: if the Google API request fails after retries.
        """
        events = self.service.events()
        request = events.list(
            calendarId=calendar_id,
            timeMin=iso_z(time_min),
            timeMax=iso_z(time_max),
            singleEvents=True,
            orderBy="startTime",
        )
        http = self._new_http()
        records: List[ReservationRecord] = []
        while request is not None:
            response = _execute_with_retry(request, f"Events list for {calendar_id}", http=http)
            for event in response.get("items", []):
                record = event_to_record(event)
                if record is not None:
                    records.append(record)
            request = events.list_next(previous_request=request, previous_response=response)
        return records

    def insert_reservation(
        self, calendar_id: str, start: datetime, end: datetime, summary: str, time_zone: str
    ) -> str:
        """Create an event and return its ID."""
        body = {
            "summary": summary,
            "start": {"dateTime": iso_z(start), "timeZone": time_zone},
            "end": {"dateTime": iso_z(end), "timeZone": time_zone},
        }
        created = self.service.events().insert(calendarId=calendar_id, body=body).execute(http=self._new_http())
        logger.info("Created event %s on %s", created.get("id"), calendar_id)
        return created.get("id", "")

    def delete_reservation(self, calendar_id: str, event_id: str) -> None:
        self.service.events().delete(calendarId=calendar_id, eventId=event_id).execute(http=self._new_http())
        logger.info("Deleted event %s from %s", event_id, calendar_id)
