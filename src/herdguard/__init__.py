"""
HerdGuard: stampede-safe caching for async services.

A namespaced cache facade over Redis with a bounded in-process fallback,
and a read-through helper that lets one caller compute a missing value
while concurrent callers wait for it.
"""

from herdguard.cache import (
    CacheConfig,
    CacheInfo,
    CacheService,
    CacheStats,
    build_key,
    cache_invalidate,
    cached,
    create_cache_service,
    get_cache_config,
)
from herdguard.core.error_handling import (
    BackendUnavailableError,
    CacheConfigurationError,
    HerdGuardException,
)

__version__ = "1.0.0"

__all__ = [
    "CacheService",
    "CacheInfo",
    "CacheStats",
    "CacheConfig",
    "get_cache_config",
    "create_cache_service",
    "build_key",
    "cached",
    "cache_invalidate",
    "HerdGuardException",
    "CacheConfigurationError",
    "BackendUnavailableError",
]
