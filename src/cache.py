"""
Bounded in-memory cache with per-entry expiry.

Eviction is FIFO by insertion: reads never reorder entries, and when the
cache grows past its capacity the oldest inserted key goes first.
Overwriting a key refreshes its payload and expiry but not its position. Expired
entries are not swept; they read as misses but keep their slot until they
are overwritten, evicted or cleared.
"""

import time
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    payload: V
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


class TTLCache(Generic[K, V]):
    def __init__(
        self,
        capacity: int,
        default_ttl: float,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.default_ttl = default_ttl
        self.name = name
        self._clock = clock
        # dicts keep insertion order, which is the eviction order
        self._entries: Dict[K, CacheEntry[V]] = {}

    def get(self, key: K) -> Optional[V]:
        """Return the payload for key, or None if absent or expired."""
        entry = self._entries.get(key)
        if entry is None or not entry.is_valid(self._clock()):
            return None
        return entry.payload

    def put(self, key: K, payload: V, ttl: Optional[float] = None) -> None:
        """Insert or replace key, then evict oldest entries past capacity."""
        ttl = self.default_ttl if ttl is None else ttl
        entry = CacheEntry(payload=payload, expires_at=self._clock() + ttl)

        # An overwritten key keeps its original place in the eviction order
        self._entries[key] = entry

        while len(self._entries) > self.capacity:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug(f"{self.name}: evicted {oldest}")

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> List[K]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
