"""
Cache Facade for HerdGuard

Provides the stampede-safe cache used by request handlers:
- CacheService: namespaced read-through cache over Redis or memory
- cached / cache_invalidate: decorators for coroutine functions
- build_key: deterministic keys from request parameters

Example usage:
    from herdguard.cache import CacheService, build_key

    cache = CacheService(namespace="catalog", redis_url=os.environ.get("REDIS_URL"))

    operators = await cache.with_cache(
        build_key("train_operators", "v1"), load_operators, ttl=3600
    )
"""

from herdguard.cache.interface import CacheInfo, CacheStats
from herdguard.cache.service import CacheService
from herdguard.cache.keys import build_key
from herdguard.cache.decorators import cached, cache_invalidate
from herdguard.cache.config import CacheConfig, get_cache_config, create_cache_service

__all__ = [
    # Facade
    "CacheService",
    "CacheInfo",
    "CacheStats",
    # Keys
    "build_key",
    # Decorators
    "cached",
    "cache_invalidate",
    # Configuration
    "CacheConfig",
    "get_cache_config",
    "create_cache_service",
]
