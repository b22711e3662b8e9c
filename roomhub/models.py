"""Pydantic data models.

The first group describes the engine's internal values (reservation records,
the booking window and merged busy blocks); they are frozen so a computed
snapshot can be shared between concurrent requests. The second group defines
the JSON shapes of the API. Both are separate from the Google API data
structures to decouple our internal representation from external dependencies.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


class ReservationRecord(BaseModel):
    """A single concrete calendar event as returned by the data source."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    label: str = "Booked"
    event_id: Optional[str] = None


class BookingWindow(BaseModel):
    """The open-to-close range of one calendar day in the operating timezone."""

    model_config = ConfigDict(frozen=True)

    date: str
    start: datetime
    end: datetime

    @property
    def length(self) -> timedelta:
        return self.end - self.start

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end


class BusyBlock(BaseModel):
    """A merged interval during which a room is reserved.

    ``label`` is the label of the earliest-starting record folded into the
    block; ``merged_count`` is how many records were folded in.
    """

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    label: str = "Booked"
    merged_count: int = 1


class BusyBlockOut(BaseModel):
    """Busy block as exposed by the API."""

    start: str
    end: str
    title: str
    mergedCount: int = 1


class RoomAvailability(BaseModel):
    """Computed availability of one room for one date."""

    model_config = ConfigDict(frozen=True)

    busyBlocks: List[BusyBlockOut] = []
    freeNow: bool = False
    nextAvailable: Optional[str] = None
    error: Optional[str] = None


class AvailabilityResponse(BaseModel):
    """One snapshot per configured room plus the echoed date."""

    model_config = ConfigDict(frozen=True)

    date: str
    rooms: Dict[str, RoomAvailability]

    def to_payload(self) -> Dict[str, object]:
        payload: Dict[str, object] = {f"{room}Room": snap.model_dump() for room, snap in self.rooms.items()}
        payload["date"] = self.date
        return payload


class BookingRequest(BaseModel):
    room: str = Field(..., min_length=1)
    start: AwareDatetime
    durationMins: int = Field(..., gt=0)
    business: str = Field(..., min_length=1)


class RemoveRequest(BaseModel):
    room: str = Field(..., min_length=1)
    eventId: str = Field(..., min_length=1)
    start: Optional[AwareDatetime] = None


class SlotCell(BaseModel):
    index: int
    start: str
    end: str
    busy: bool
    blockIndex: Optional[int] = None


class SlotSpan(BaseModel):
    """Where a busy block's label goes on the grid: its anchor slot and height."""

    blockIndex: int
    slot: int
    span: int
    label: str
    business: str
