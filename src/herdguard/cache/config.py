"""
Cache Configuration

Environment-based configuration for the caching layer.
Provides a factory to build a ``CacheService`` from it.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from herdguard.cache.service import (
    CacheService,
    DEFAULT_LOCK_TTL,
    DEFAULT_MEMORY_MAX_ITEMS,
    DEFAULT_NAMESPACE,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_REDIS_TIMEOUT,
    DEFAULT_SCAN_BATCH_SIZE,
    DEFAULT_TTL,
    DEFAULT_WAIT_MS,
)
from herdguard.core.error_handling import CacheConfigurationError
from herdguard.core.secrets import get_secret, mask_url

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _env(name: str, default: T, parse: Callable[[str], T]) -> T:
    raw = get_secret(name)
    if raw is None:
        return default
    try:
        return parse(raw.strip())
    except ValueError as e:
        raise CacheConfigurationError(
            f"Invalid value for {name}: {raw!r}", context={"variable": name}
        ) from e


@dataclass
class CacheConfig:
    """Cache configuration.

    Environment Variables:
        CACHE_NAMESPACE: Key prefix (default: herdguard)
        CACHE_DEFAULT_TTL: Default TTL in seconds (default: 300)
        CACHE_MEMORY_MAX_ITEMS: In-process store size limit (default: 1000)
        CACHE_REDIS_URL / REDIS_URL: Redis URL; unset keeps the cache in memory
        CACHE_LOCK_TTL: Stampede lock lifetime in seconds (default: 10)
        CACHE_WAIT_MS: How long waiters poll for a value (default: 3000)
        CACHE_POLL_INTERVAL_MS: Delay between polls (default: 100)
        CACHE_SCAN_BATCH_SIZE: SCAN COUNT for namespace flushes (default: 1000)
        CACHE_REDIS_TIMEOUT: Per-operation Redis timeout in seconds (default: 2)
        CACHE_RECONNECT_INTERVAL: Seconds between Redis reconnects (default: 0)
    """
    namespace: str = DEFAULT_NAMESPACE
    default_ttl: float = DEFAULT_TTL
    memory_max_items: int = DEFAULT_MEMORY_MAX_ITEMS
    redis_url: Optional[str] = None
    lock_ttl: float = DEFAULT_LOCK_TTL
    wait_ms: float = DEFAULT_WAIT_MS
    poll_interval_ms: float = DEFAULT_POLL_INTERVAL_MS
    scan_batch_size: int = DEFAULT_SCAN_BATCH_SIZE
    redis_timeout: float = DEFAULT_REDIS_TIMEOUT
    reconnect_interval: float = 0.0

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Read settings from the environment (and .env files)."""
        return cls(
            namespace=_env("CACHE_NAMESPACE", DEFAULT_NAMESPACE, str),
            default_ttl=_env("CACHE_DEFAULT_TTL", DEFAULT_TTL, float),
            memory_max_items=_env("CACHE_MEMORY_MAX_ITEMS", DEFAULT_MEMORY_MAX_ITEMS, int),
            redis_url=get_secret("CACHE_REDIS_URL") or get_secret("REDIS_URL"),
            lock_ttl=_env("CACHE_LOCK_TTL", DEFAULT_LOCK_TTL, float),
            wait_ms=_env("CACHE_WAIT_MS", DEFAULT_WAIT_MS, float),
            poll_interval_ms=_env("CACHE_POLL_INTERVAL_MS", DEFAULT_POLL_INTERVAL_MS, float),
            scan_batch_size=_env("CACHE_SCAN_BATCH_SIZE", DEFAULT_SCAN_BATCH_SIZE, int),
            redis_timeout=_env("CACHE_REDIS_TIMEOUT", DEFAULT_REDIS_TIMEOUT, float),
            reconnect_interval=_env("CACHE_RECONNECT_INTERVAL", 0.0, float),
        )

    def __repr__(self) -> str:
        return (
            f"CacheConfig(namespace={self.namespace!r}, default_ttl={self.default_ttl}, "
            f"memory_max_items={self.memory_max_items}, redis_url={mask_url(self.redis_url)!r})"
        )


def get_cache_config() -> CacheConfig:
    """Get cache configuration from environment.

    Returns:
        CacheConfig instance with current settings
    """
    return CacheConfig.from_env()


def create_cache_service(config: Optional[CacheConfig] = None) -> CacheService:
    """Create a cache facade from configuration.

    Args:
        config: Optional CacheConfig. Uses get_cache_config() if None.

    Returns:
        A new, unconnected CacheService

    Raises:
        CacheConfigurationError: If the configuration is invalid
    """
    if config is None:
        config = get_cache_config()

    service = CacheService(
        namespace=config.namespace,
        default_ttl=config.default_ttl,
        memory_max_items=config.memory_max_items,
        redis_url=config.redis_url,
        lock_ttl=config.lock_ttl,
        wait_ms=config.wait_ms,
        poll_interval_ms=config.poll_interval_ms,
        scan_batch_size=config.scan_batch_size,
        redis_timeout=config.redis_timeout,
        reconnect_interval=config.reconnect_interval,
    )

    if config.redis_url:
        logger.info(f"Created cache service with Redis backend: {mask_url(config.redis_url)}")
    else:
        logger.info(f"Created memory-only cache service: maxsize={config.memory_max_items}")
    return service
