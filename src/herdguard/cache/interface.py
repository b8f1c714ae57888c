"""
Cache Diagnostics Types

Read-only snapshots returned by ``CacheService.info()`` and
``CacheService.stats()``.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict


@dataclass(frozen=True)
class CacheInfo:
    """Diagnostic snapshot of a cache facade.

    Attributes:
        namespace: Key prefix owned by the facade
        distributed_configured: Whether a distributed backend was configured
        distributed_healthy: Whether it answered its last connection attempt
        memory_items: Current in-process entry count
        default_ttl: TTL applied when callers omit one, in seconds
    """
    namespace: str
    distributed_configured: bool
    distributed_healthy: bool
    memory_items: int
    default_ttl: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CacheStats:
    """Statistics for cache performance monitoring.

    Attributes:
        hits: Lookups answered from cache
        misses: Lookups that found nothing usable
        evictions: In-process entries dropped to respect the size limit
        size: Current in-process entry count
        fallbacks: Operations served from memory after a distributed failure
        lock_wait_timeouts: Waiters that computed a value without the lock
        fetches: Fetcher invocations made by ``with_cache``
    """
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0
    fallbacks: int = 0
    lock_wait_timeouts: int = 0
    fetches: int = 0

    def hit_rate(self) -> float:
        """Calculate cache hit rate.

        Returns:
            Hit rate as float between 0.0 and 1.0
        """
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict:
        """Convert stats to dictionary for serialization."""
        data = asdict(self)
        data["hit_rate"] = self.hit_rate()
        return data
