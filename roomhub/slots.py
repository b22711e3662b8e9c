"""Quantization of the booking window into fixed presentation slots."""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from .models import BookingWindow, BusyBlock, RoomAvailability, SlotCell, SlotSpan
from .timeutils import iso_z, parse_rfc3339

SLOT_MINUTES = 30
DEFAULT_BUSINESS = "Booked"


def extract_business(label: str, businesses: Iterable[str]) -> str:
    """Return the first known business named in ``label`` (case-insensitive)."""
    lowered = label.lower()
    for name in businesses:
        if name.lower() in lowered:
            return name
    return DEFAULT_BUSINESS


def blocks_from_snapshot(snapshot: RoomAvailability) -> List[BusyBlock]:
    """Rebuild merged busy blocks from a (possibly cached) API snapshot."""
    return [
        BusyBlock(start=parse_rfc3339(b.start), end=parse_rfc3339(b.end), label=b.title, merged_count=b.mergedCount)
        for b in snapshot.busyBlocks
    ]


class SlotGrid:
    """Fixed-width slots covering ``[window.start, window.end)``.

    Slot ``i`` spans ``[window.start + i*width, window.start + (i+1)*width)``.
    If the window length is not a multiple of the width, the last slot is
    cut short at ``window.end``.
    """

    def __init__(self, window: BookingWindow, slot_minutes: int = SLOT_MINUTES) -> None:
        self.window = window
        self.width = timedelta(minutes=slot_minutes)
        self.count = math.ceil(window.length / self.width)

    def slot_start(self, i: int) -> datetime:
        return self.window.start + i * self.width

    def slot_end(self, i: int) -> datetime:
        return min(self.window.start + (i + 1) * self.width, self.window.end)

    def slot_index(self, instant: datetime) -> Optional[int]:
        """Index of the slot containing ``instant``, or None outside the window."""
        if not self.window.contains(instant):
            return None
        return (instant - self.window.start) // self.width

    def overlaps(self, block: BusyBlock, i: int) -> bool:
        return block.start < self.slot_end(i) and block.end > self.slot_start(i)

    def overlapping_slots(self, block: BusyBlock) -> List[int]:
        return [i for i in range(self.count) if self.overlaps(block, i)]

    def block_at(self, i: int, blocks: Sequence[BusyBlock]) -> Optional[int]:
        """Position in ``blocks`` of the first block overlapping slot ``i``."""
        for j, block in enumerate(blocks):
            if self.overlaps(block, i):
                return j
        return None

    def cells(self, blocks: Sequence[BusyBlock]) -> List[SlotCell]:
        out: List[SlotCell] = []
        for i in range(self.count):
            j = self.block_at(i, blocks)
            out.append(
                SlotCell(
                    index=i,
                    start=iso_z(self.slot_start(i)),
                    end=iso_z(self.slot_end(i)),
                    busy=j is not None,
                    blockIndex=j,
                )
            )
        return out

    def label_spans(self, blocks: Sequence[BusyBlock], businesses: Iterable[str] = ()) -> List[SlotSpan]:
        """Place each block's label exactly once.

        The anchor is the slot holding the block's effective start (the
        block start, clamped to the window) and the span is the number of
        slots needed to reach the block end, never running past the last
        slot. Blocks already labelled are tracked by their position in
        ``blocks``, not by their start value.
        """
        businesses = list(businesses)
        seen = set()
        spans: List[SlotSpan] = []
        for i in range(self.count):
            for j, block in enumerate(blocks):
                if j in seen or not self.overlaps(block, i):
                    continue
                seen.add(j)
                effective = max(block.start, self.window.start)
                anchor = self.slot_index(effective)
                span = max(1, math.ceil((block.end - effective) / self.width))
                spans.append(
                    SlotSpan(
                        blockIndex=j,
                        slot=anchor,
                        span=min(span, self.count - anchor),
                        label=block.label,
                        business=extract_business(block.label, businesses),
                    )
                )
        return spans
