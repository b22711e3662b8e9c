"""Clamping and merging of reservation intervals.

Raw records are first clipped to the day's booking window, then merged into
a minimal set of disjoint busy blocks.
"""

from __future__ import annotations

from typing import Iterable, List

from .models import BookingWindow, BusyBlock, ReservationRecord


def normalize_blocks(records: Iterable[ReservationRecord], window: BookingWindow) -> List[BusyBlock]:
    """Clip ``records`` to ``window`` and drop the ones left with no length.

    Records entirely outside the window, or with ``start >= end`` to begin
    with, are discarded. Labels are preserved; order follows the input.
    """
    clipped: List[BusyBlock] = []
    for record in records:
        start = max(record.start, window.start)
        end = min(record.end, window.end)
        if start >= end:
            continue
        clipped.append(BusyBlock(start=start, end=end, label=record.label))
    return clipped


def merge_blocks(intervals: Iterable[BusyBlock]) -> List[BusyBlock]:
    """Merge intervals into ascending, pairwise-disjoint busy blocks.

    Two intervals overlap if the next start is <= the current end, so blocks
    that merely touch are merged too. The merged block keeps the label of
    the earliest-starting interval (ties keep input order, the sort is
    stable) and counts how many intervals it absorbed.

    Merging an already merged list returns it unchanged.

    Example:
        09:00-09:30, 09:15-10:00, 11:00-11:30 -> 09:00-10:00, 11:00-11:30
    """
    items = sorted(intervals, key=lambda b: b.start)
    if not items:
        return []

    merged: List[BusyBlock] = []
    current = items[0]
    for nxt in items[1:]:
        if nxt.start <= current.end:
            current = current.model_copy(
                update={
                    "end": max(current.end, nxt.end),
                    "merged_count": current.merged_count + nxt.merged_count,
                }
            )
        else:
            merged.append(current)
            current = nxt
    merged.append(current)
    return merged
