"""
Query Cache
===========
Single-slot cache for the open-pools listing.

- get(now) serves the whole entry or nothing
- put() replaces the slot wholesale
- invalidate() empties it
"""

from dataclasses import dataclass
from threading import RLock
from typing import Optional, Tuple

from .models import PoolEntry


DEFAULT_TTL_SECONDS = 30.0


@dataclass(frozen=True)
class CacheEntry:
    """A sorted result set and the time it was captured."""
    records: Tuple[PoolEntry, ...]
    captured_at: float

    def __len__(self) -> int:
        return len(self.records)


class QueryCache:
    """
    Holds the most recent bulk result with a time-to-live.

    Accesses are serialized so a concurrent get/put never sees a torn slot.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self._entry: Optional[CacheEntry] = None
        self._lock = RLock()

    def get(self, now: float) -> Optional[CacheEntry]:
        """Return the entry if now - captured_at < ttl, else None."""
        with self._lock:
            entry = self._entry
            if entry is None:
                return None
            if now - entry.captured_at < self.ttl_seconds:
                return entry
            return None

    def put(self, entry: CacheEntry):
        with self._lock:
            self._entry = entry

    def invalidate(self):
        with self._lock:
            self._entry = None

    def age(self, now: float) -> Optional[float]:
        """Seconds since the stored entry was captured (stale or not)."""
        with self._lock:
            if self._entry is None:
                return None
            return now - self._entry.captured_at

    @property
    def is_empty(self) -> bool:
        with self._lock:
            return self._entry is None
