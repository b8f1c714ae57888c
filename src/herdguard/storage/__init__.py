"""
Storage backends for the cache facade.

- MemoryStorage: bounded in-process store, always available
- RedisAdapter: optional distributed store built on redis.asyncio
"""

from herdguard.storage.base import Backend
from herdguard.storage.memory import CacheEntry, MemoryStorage
from herdguard.storage.redis_adapter import RedisAdapter

__all__ = [
    "Backend",
    "CacheEntry",
    "MemoryStorage",
    "RedisAdapter",
]
