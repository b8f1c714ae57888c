"""
In-Memory Storage Implementation

Bounded in-process store with per-entry TTL and insertion-order eviction.
Always available, and the fallback for every call the distributed backend
cannot serve.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from herdguard.core.error_handling import CacheConfigurationError
from herdguard.storage.base import Backend

logger = logging.getLogger(__name__)

LOCK_VALUE = "1"


@dataclass
class CacheEntry:
    """Internal cache entry with value and expiration."""
    key: str
    value: str
    expire_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        """Check if entry has expired."""
        if self.expire_at is None:
            return False
        return now >= self.expire_at


class MemoryStorage(Backend):
    """
    In-process storage with a hard cap on item count.

    Features:
    - Lazy expiry: expired entries are dropped when read
    - Insertion-order eviction: when ``max_items`` is exceeded the oldest
      inserted keys go first; overwriting a key keeps its original position
    - Thread-safe via lock (no awaits inside critical sections)

    Locks taken through ``try_acquire`` exclude other callers in this
    process only. Separate processes each own a separate MemoryStorage and
    cannot exclude one another. Lock entries count toward ``max_items`` and
    can be evicted under memory pressure.
    """

    def __init__(self, max_items: int = 1000, clock: Callable[[], float] = time.monotonic):
        """
        Initialize empty in-memory storage.

        Args:
            max_items: Maximum number of entries kept (default: 1000)
            clock: Monotonic time source, injectable for tests
        """
        if max_items < 1:
            raise CacheConfigurationError(
                f"max_items must be at least 1, got {max_items}",
                context={"max_items": max_items},
            )

        self._max_items = max_items
        self._clock = clock
        # dict keeps insertion order and overwrites keep the original slot
        self._data: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._evictions = 0

    @property
    def max_items(self) -> int:
        return self._max_items

    @property
    def evictions(self) -> int:
        """Number of entries dropped to respect ``max_items``."""
        return self._evictions

    def size(self) -> int:
        """Current entry count, including expired entries not yet read."""
        with self._lock:
            return len(self._data)

    def _expire_at(self, ttl: Optional[float]) -> Optional[float]:
        if ttl is None or ttl <= 0:
            return None
        return self._clock() + ttl

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for ``key`` or drop it if expired. Caller holds the lock."""
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._data[key]
            logger.debug(f"Memory key expired: {key}")
            return None
        return entry

    def _evict_if_needed(self) -> None:
        """Drop oldest-inserted entries until within bounds. Caller holds the lock."""
        while len(self._data) > self._max_items:
            oldest = next(iter(self._data))
            del self._data[oldest]
            self._evictions += 1
            logger.debug(f"Memory store evicted key: {oldest}")

    async def get(self, key: str) -> Optional[str]:
        """Retrieve value, returning None if missing or expired."""
        with self._lock:
            entry = self._live_entry(key)
            return entry.value if entry is not None else None

    async def set(self, key: str, value: str, ttl: Optional[float] = None) -> bool:
        """Store value, then evict oldest entries beyond ``max_items``."""
        entry = CacheEntry(key=key, value=value, expire_at=self._expire_at(ttl))
        with self._lock:
            self._data[key] = entry
            self._evict_if_needed()
        return True

    async def delete(self, key: str) -> int:
        """Delete key if it exists."""
        with self._lock:
            if self._data.pop(key, None) is not None:
                return 1
            return 0

    async def try_acquire(self, lock_key: str, ttl: float) -> bool:
        """Existence check plus insert, atomic within this process."""
        with self._lock:
            if self._live_entry(lock_key) is not None:
                return False
            self._data[lock_key] = CacheEntry(
                key=lock_key, value=LOCK_VALUE, expire_at=self._expire_at(ttl)
            )
            self._evict_if_needed()
            return True

    async def release(self, lock_key: str) -> None:
        with self._lock:
            self._data.pop(lock_key, None)

    async def scan_delete(self, prefix: str, batch_size: int = 1000) -> int:
        """Delete every entry whose key starts with ``prefix``."""
        with self._lock:
            matching: List[str] = [k for k in self._data if k.startswith(prefix)]
            for key in matching:
                del self._data[key]

        if matching:
            logger.debug(f"Memory store removed {len(matching)} keys under {prefix!r}")
        return len(matching)

    async def purge_expired(self) -> int:
        """
        Remove all expired entries.

        Reads already drop expired entries; call this periodically to reclaim
        space held by keys nobody reads any more.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        with self._lock:
            expired = [k for k, entry in self._data.items() if entry.is_expired(now)]
            for key in expired:
                del self._data[key]

        if expired:
            logger.debug(f"Memory store purge: {len(expired)} expired entries removed")
        return len(expired)
