"""
Cache Decorators

Function-level caching decorators for coroutine functions. Results go
through ``CacheService.with_cache``, so decorated functions get the same
stampede protection as explicit calls.
"""

import functools
import inspect
import logging
from typing import Any, Callable, Optional

from herdguard.cache.service import CacheService

logger = logging.getLogger(__name__)


def cached(
    cache: CacheService,
    key_fn: Optional[Callable[..., str]] = None,
    ttl: Optional[float] = None,
    prefix: str = "fn",
    **with_cache_options: Any,
):
    """Decorator to cache coroutine results.

    Args:
        cache: CacheService instance to use
        key_fn: Callable to generate cache key from function args.
                Signature: key_fn(*args, **kwargs) -> str
                If None, uses repr of args.
        ttl: TTL in seconds for cached result. None uses cache default.
        prefix: Key prefix for this function (default: "fn")
        **with_cache_options: lock_ttl, wait_ms or poll_interval_ms overrides

    Example:
        @cached(cache, key_fn=lambda lat, lng, radius: build_key("cabs:nearby", lat, lng, radius), ttl=30)
        async def nearby_vehicles(lat: float, lng: float, radius: float) -> dict:
            return await cab_service.find_nearby(lat, lng, radius)
    """
    def decorator(func: Callable) -> Callable:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"@cached requires an async function, got {func.__name__}")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            cache_key = _generate_key(prefix, func, key_fn, args, kwargs)
            return await cache.with_cache(
                cache_key,
                lambda: func(*args, **kwargs),
                ttl=ttl,
                **with_cache_options,
            )

        return wrapper

    return decorator


def cache_invalidate(
    cache: CacheService,
    key_fn: Optional[Callable[..., str]] = None,
    prefix: str = "fn",
    target: Optional[Callable] = None,
):
    """Decorator to invalidate a cache entry after a write succeeds.

    Args:
        cache: CacheService instance to use
        key_fn: Callable to generate the cache key to invalidate
        prefix: Key prefix (default: "fn")
        target: The cached function whose entry is dropped; defaults to the
                decorated function itself

    Example:
        @cache_invalidate(cache, key_fn=lambda user_id, data: f"user:{user_id}", target=get_user)
        async def update_user(user_id: str, data: dict) -> bool:
            await db.update_user(user_id, data)
            return True
    """
    def decorator(func: Callable) -> Callable:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"@cache_invalidate requires an async function, got {func.__name__}")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            result = await func(*args, **kwargs)

            cache_key = _generate_key(prefix, target or func, key_fn, args, kwargs)
            if await cache.delete(cache_key):
                logger.debug(f"Cache invalidated for {func.__name__}: {cache_key}")

            return result

        return wrapper

    return decorator


# -----------------------------------------------------------------------------
# Helper Functions
# -----------------------------------------------------------------------------

def _generate_key(
    prefix: str,
    func: Callable,
    key_fn: Optional[Callable],
    args: tuple,
    kwargs: dict
) -> str:
    """Generate cache key from function and arguments."""
    if key_fn is not None:
        try:
            custom_key = key_fn(*args, **kwargs)
            return f"{prefix}:{func.__name__}:{custom_key}"
        except Exception as e:
            logger.warning(f"key_fn error, using default key: {e}")

    # Default: use repr of args
    args_key = ":".join(repr(a) for a in args)
    kwargs_key = ":".join(f"{k}={repr(v)}" for k, v in sorted(kwargs.items()))

    if kwargs_key:
        return f"{prefix}:{func.__name__}:{args_key}:{kwargs_key}"
    return f"{prefix}:{func.__name__}:{args_key}"
