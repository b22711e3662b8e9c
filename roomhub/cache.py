"""In-memory availability cache.

Snapshots are keyed by calendar date (``YYYY-MM-DD`` in the operating
timezone) and expire after a fixed TTL. Mutations invalidate the affected
date explicitly so the next read recomputes instead of serving a snapshot
taken before the write.

Reads and writes are not serialised across requests: two concurrent misses
for the same date may both recompute and both store, the later one winning.
Each entry is replaced as a whole under a lock, so a partially written
snapshot is never observable.

To stop a recompute that started before an invalidation from storing its
stale result afterwards, a recompute runs inside ``recompute(date)``, which
yields a stamp from a single monotonic counter. Invalidations bump the
counter and, while a recompute of that date is pending, remember the value;
``set`` drops writes whose stamp predates it. Those marks are discarded as
soon as the last pending recompute of the date finishes, and expired
entries are pruned on every ``set``, so bookkeeping stays bounded by the
number of live entries and in-flight recomputes.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterator, Optional

from .models import AvailabilityResponse
from .timeutils import utcnow

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 60


@dataclass(frozen=True)
class CacheEntry:
    snapshot: AvailabilityResponse
    created_at: datetime


class AvailabilityCache:
    """Per-date TTL cache owned by the availability service.

    ``ttl_seconds`` is fixed at 60 in production; tests pass a clock instead
    of changing it.
    """

    def __init__(self, ttl_seconds: int = CACHE_TTL_SECONDS, clock: Callable[[], datetime] = utcnow) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, CacheEntry] = {}
        self._version = 0
        self._cleared_at = 0
        self._pending: Dict[str, int] = {}
        self._invalidated_at: Dict[str, int] = {}

    def _fresh(self, entry: CacheEntry, now: datetime) -> bool:
        return (now - entry.created_at).total_seconds() < self.ttl_seconds

    def get(self, date: str) -> Optional[AvailabilityResponse]:
        """Return the snapshot for ``date`` if one exists and is younger than the TTL."""
        with self._lock:
            entry = self._entries.get(date)
            if entry is None:
                return None
            if not self._fresh(entry, self._clock()):
                del self._entries[date]
                return None
            return entry.snapshot

    @contextmanager
    def recompute(self, date: str) -> Iterator[int]:
        """Mark a recompute of ``date`` as pending and yield its stamp for ``set``."""
        with self._lock:
            stamp = self._version
            self._pending[date] = self._pending.get(date, 0) + 1
        try:
            yield stamp
        finally:
            with self._lock:
                remaining = self._pending[date] - 1
                if remaining:
                    self._pending[date] = remaining
                else:
                    del self._pending[date]
                    self._invalidated_at.pop(date, None)

    def set(self, date: str, snapshot: AvailabilityResponse, stamp: Optional[int] = None) -> bool:
        """Store ``snapshot`` for ``date``, replacing any prior entry.

        Returns False (and stores nothing) when ``stamp`` predates an
        invalidation of ``date`` or of the whole cache.
        """
        with self._lock:
            if stamp is not None and (self._invalidated_at.get(date, 0) > stamp or self._cleared_at > stamp):
                logger.info("Dropping stale availability snapshot for %s", date)
                return False
            now = self._clock()
            for key in [k for k, e in self._entries.items() if not self._fresh(e, now)]:
                del self._entries[key]
            self._entries[date] = CacheEntry(snapshot=snapshot, created_at=now)
            return True

    def invalidate(self, date: str) -> None:
        with self._lock:
            self._entries.pop(date, None)
            self._version += 1
            if date in self._pending:
                self._invalidated_at[date] = self._version
        logger.info("Invalidated availability cache for %s", date)

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()
            self._version += 1
            self._cleared_at = self._version
        logger.info("Invalidated entire availability cache")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
