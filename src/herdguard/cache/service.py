"""
Stampede-Safe Cache Facade

``CacheService`` is what request handlers talk to. It namespaces keys,
applies the default TTL, serializes values as JSON and picks a backend per
call: Redis while it is healthy, the bounded in-process store otherwise.
Callers never see availability errors; the cache is an accelerator and a
miss only costs a fetch.

Example usage:
    cache = CacheService(namespace="catalog", redis_url="redis://cache:6379/0")
    await cache.connect()

    hotels = await cache.with_cache(
        build_key("nearby_hotels", lat, lng, radius, limit, stars),
        lambda: hotel_repo.nearby(lat, lng, radius, limit, stars),
        ttl=600,
    )
"""

import asyncio
import inspect
import json
import time
from typing import Any, Awaitable, Callable, Optional, Tuple, Union

from herdguard.cache.interface import CacheInfo, CacheStats
from herdguard.core.error_handling import BackendUnavailableError, CacheConfigurationError
from herdguard.core.metrics import (
    CACHE_BACKEND_FALLBACKS_TOTAL,
    CACHE_FETCH_LATENCY,
    CACHE_FLUSHED_KEYS_TOTAL,
    CACHE_LOCK_WAIT_TIMEOUTS_TOTAL,
    CACHE_REQUESTS_TOTAL,
)
from herdguard.logging_config import get_logger, log_backend_fallback, log_lock_wait_timeout
from herdguard.storage.base import Backend
from herdguard.storage.memory import MemoryStorage
from herdguard.storage.redis_adapter import RedisAdapter

logger = get_logger(__name__)

DEFAULT_NAMESPACE = "herdguard"
DEFAULT_TTL = 300
DEFAULT_MEMORY_MAX_ITEMS = 1000
DEFAULT_LOCK_TTL = 10
DEFAULT_WAIT_MS = 3000
DEFAULT_POLL_INTERVAL_MS = 100
DEFAULT_SCAN_BATCH_SIZE = 1000
DEFAULT_REDIS_TIMEOUT = 2.0

# Distinguishes "nothing cached" from a cached JSON null.
_MISSING = object()

Fetcher = Callable[[], Union[Any, Awaitable[Any]]]


class CacheService:
    """Namespaced read-through cache with stampede protection.

    Every logical key ``k`` is stored as ``"<namespace>:k"``; the lock used by
    ``with_cache`` lives at ``"<namespace>:lock:k"``. A facade never touches
    keys outside its namespace, so several services can share one Redis.

    Stampede protection is best-effort, not strict mutual exclusion:

    - With Redis, the lock is a ``SET NX PX`` that expires after ``lock_ttl``.
      A fetch slower than the lock TTL lets a second caller in.
    - Without Redis, the lock lives in this process's memory store and only
      excludes callers in this process.
    - A waiter that does not see a value within ``wait_ms`` runs the fetcher
      itself, trading a duplicate computation for bounded latency. If the
      original holder finishes later it overwrites the entry; the last write
      wins.

    Callers only need fewer duplicate fetches, never exactly-once.

    The in-process store belongs to this instance. Construct one facade per
    logical cache and pass it to the code that needs it.
    """

    def __init__(
        self,
        namespace: str = DEFAULT_NAMESPACE,
        default_ttl: float = DEFAULT_TTL,
        memory_max_items: int = DEFAULT_MEMORY_MAX_ITEMS,
        redis_url: Optional[str] = None,
        *,
        lock_ttl: float = DEFAULT_LOCK_TTL,
        wait_ms: float = DEFAULT_WAIT_MS,
        poll_interval_ms: float = DEFAULT_POLL_INTERVAL_MS,
        scan_batch_size: int = DEFAULT_SCAN_BATCH_SIZE,
        redis_timeout: float = DEFAULT_REDIS_TIMEOUT,
        reconnect_interval: float = 0.0,
        distributed: Optional[Backend] = None,
    ):
        """Initialize the facade.

        Args:
            namespace: Key prefix isolating this cache (no ':' allowed)
            default_ttl: TTL in seconds when callers omit one
            memory_max_items: Eviction threshold of the in-process store
            redis_url: Optional Redis URL; None keeps everything in memory
            lock_ttl: Default lifetime of ``with_cache`` locks, in seconds
            wait_ms: Default time a waiter polls before fetching itself
            poll_interval_ms: Default delay between polls
            scan_batch_size: SCAN COUNT used by ``flush_namespace``
            redis_timeout: Per-operation Redis timeout, in seconds
            reconnect_interval: Minimum seconds between Redis reconnects
            distributed: Pre-built backend used instead of ``redis_url``

        Raises:
            CacheConfigurationError: On invalid options or a malformed URL
        """
        if not namespace or ":" in namespace:
            raise CacheConfigurationError(
                f"Namespace must be non-empty and must not contain ':', got {namespace!r}",
                context={"namespace": namespace},
            )
        if redis_url and distributed is not None:
            raise CacheConfigurationError("Pass either redis_url or distributed, not both")
        if lock_ttl <= 0:
            raise CacheConfigurationError(f"lock_ttl must be positive, got {lock_ttl}")
        if wait_ms < 0:
            raise CacheConfigurationError(f"wait_ms must not be negative, got {wait_ms}")
        if poll_interval_ms <= 0:
            raise CacheConfigurationError(
                f"poll_interval_ms must be positive, got {poll_interval_ms}"
            )
        if scan_batch_size < 1:
            raise CacheConfigurationError(
                f"scan_batch_size must be at least 1, got {scan_batch_size}"
            )

        self._namespace = namespace
        self._default_ttl = default_ttl
        self._lock_ttl = lock_ttl
        self._wait_ms = wait_ms
        self._poll_interval_ms = poll_interval_ms
        self._scan_batch_size = scan_batch_size

        self._memory = MemoryStorage(max_items=memory_max_items)
        if distributed is None and redis_url:
            distributed = RedisAdapter(
                redis_url,
                timeout=redis_timeout,
                reconnect_interval=reconnect_interval,
            )
        self._distributed = distributed

        # Statistics
        self._hits = 0
        self._misses = 0
        self._fallbacks = 0
        self._lock_wait_timeouts = 0
        self._fetches = 0

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    def __repr__(self) -> str:
        return (
            f"CacheService(namespace={self._namespace!r}, "
            f"distributed={type(self._distributed).__name__ if self._distributed else None})"
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> bool:
        """Connect the distributed backend now instead of on first use.

        Returns:
            True if the distributed backend is usable. An unreachable backend
            is not an error; calls are served from memory until it returns.
        """
        if self._distributed is None:
            return False
        return await self._distributed.connect()

    async def close(self) -> None:
        """Release the distributed backend connection."""
        if self._distributed is not None:
            await self._distributed.close()

    async def __aenter__(self) -> "CacheService":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Backend selection
    # -------------------------------------------------------------------------

    def _k(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def _lock_key(self, key: str) -> str:
        return self._k(f"lock:{key}")

    def _record_fallback(self, operation: str) -> None:
        self._fallbacks += 1
        CACHE_BACKEND_FALLBACKS_TOTAL.labels(
            namespace=self._namespace, operation=operation
        ).inc()

    async def _select(self, operation: str, *args) -> Tuple[Backend, Any]:
        """Run ``operation`` on Redis when healthy, otherwise on memory.

        Returns the backend that served the call along with its result.
        """
        distributed = self._distributed
        if distributed is not None:
            if await distributed.ensure_connected():
                try:
                    return distributed, await getattr(distributed, operation)(*args)
                except BackendUnavailableError as e:
                    log_backend_fallback(logger, self._namespace, operation, e)
                    self._record_fallback(operation)
            else:
                self._record_fallback(operation)
        return self._memory, await getattr(self._memory, operation)(*args)

    async def _dispatch(self, operation: str, *args) -> Any:
        _, result = await self._select(operation, *args)
        return result

    # -------------------------------------------------------------------------
    # Basic operations
    # -------------------------------------------------------------------------

    def _decode(self, key: str, payload: str) -> Any:
        try:
            return json.loads(payload)
        except (TypeError, ValueError) as e:
            logger.debug(
                "cache_payload_invalid",
                namespace=self._namespace,
                key=key,
                error_message=str(e),
            )
            return _MISSING

    async def _read(self, key: str) -> Any:
        payload = await self._dispatch("get", self._k(key))
        if payload is None:
            return _MISSING
        return self._decode(key, payload)

    def _record_lookup(self, hit: bool) -> None:
        if hit:
            self._hits += 1
        else:
            self._misses += 1
        CACHE_REQUESTS_TOTAL.labels(
            namespace=self._namespace, result="hit" if hit else "miss"
        ).inc()

    async def get(self, key: str) -> Any:
        """Return the cached value for ``key`` or None.

        Corrupted payloads count as a miss.
        """
        value = await self._read(key)
        self._record_lookup(value is not _MISSING)
        return None if value is _MISSING else value

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """Store ``value`` as JSON under ``key``.

        Args:
            key: Logical cache key
            value: JSON-serializable value
            ttl: Seconds to live; None applies ``default_ttl``, <= 0 never expires

        Returns:
            True if stored, False if the value could not be serialized
        """
        effective_ttl = self._default_ttl if ttl is None else ttl
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error(
                "cache_value_unserializable",
                namespace=self._namespace,
                key=key,
                value_type=type(value).__name__,
                error_message=str(e),
            )
            return False
        return await self._dispatch("set", self._k(key), payload, effective_ttl)

    async def delete(self, key: str) -> bool:
        """Remove ``key`` from every store. Returns True if something was deleted.

        The in-process store is always cleared too, so a value written there
        during an earlier outage cannot resurface during the next one.
        """
        backend, removed = await self._select("delete", self._k(key))
        if backend is not self._memory:
            removed += await self._memory.delete(self._k(key))
        return removed > 0

    # -------------------------------------------------------------------------
    # Read-through with stampede protection
    # -------------------------------------------------------------------------

    async def with_cache(
        self,
        key: str,
        fetcher: Fetcher,
        *,
        ttl: Optional[float] = None,
        lock_ttl: Optional[float] = None,
        wait_ms: Optional[float] = None,
        poll_interval_ms: Optional[float] = None,
    ) -> Any:
        """Return the cached value for ``key``, computing it at most once per
        lock window.

        1. A hit returns immediately, no locking.
        2. On a miss the caller tries to take the key's lock. The holder runs
           ``fetcher``, stores the result and always releases the lock, also
           when ``fetcher`` raises (the error is re-raised).
        3. Everyone else polls every ``poll_interval_ms`` for up to
           ``wait_ms`` and returns the value once it shows up.
        4. A waiter that times out runs ``fetcher`` itself and stores the
           result without taking the lock.

        Args:
            key: Logical cache key
            fetcher: Zero-argument callable, sync or async, producing the value
            ttl: TTL for the stored value (default: ``default_ttl``)
            lock_ttl: Lock lifetime in seconds
            wait_ms: Maximum time to wait for another caller's result
            poll_interval_ms: Delay between polls while waiting

        Raises:
            CacheConfigurationError: If ``lock_ttl`` is not positive
            Whatever ``fetcher`` raises. Backend and locking problems are
            never raised.
        """
        if lock_ttl is not None and lock_ttl <= 0:
            raise CacheConfigurationError(f"lock_ttl must be positive, got {lock_ttl}")

        cached = await self._read(key)
        self._record_lookup(cached is not _MISSING)
        if cached is not _MISSING:
            return cached

        lock_key = self._lock_key(key)
        lock_ttl = self._lock_ttl if lock_ttl is None else lock_ttl
        wait_ms = self._wait_ms if wait_ms is None else wait_ms
        poll_interval_ms = self._poll_interval_ms if poll_interval_ms is None else poll_interval_ms

        lock_backend, acquired = await self._select("try_acquire", lock_key, lock_ttl)
        if acquired:
            try:
                return await self._fetch_and_store(key, fetcher, ttl)
            finally:
                await self._release(lock_backend, lock_key)

        started = time.perf_counter()
        value = await self._wait_for_value(key, wait_ms, poll_interval_ms)
        if value is not _MISSING:
            return value

        self._lock_wait_timeouts += 1
        CACHE_LOCK_WAIT_TIMEOUTS_TOTAL.labels(namespace=self._namespace).inc()
        log_lock_wait_timeout(
            logger, self._namespace, key, (time.perf_counter() - started) * 1000
        )
        return await self._fetch_and_store(key, fetcher, ttl)

    async def _release(self, backend: Backend, lock_key: str) -> None:
        """Release ``lock_key`` on the backend that granted it.

        If that backend is unavailable the lock expires after its TTL.
        """
        try:
            await backend.release(lock_key)
        except BackendUnavailableError as e:
            logger.warning(
                "cache_lock_release_failed",
                namespace=self._namespace,
                lock_key=lock_key,
                error_type=type(e).__name__,
                error_message=str(e),
            )

    async def _wait_for_value(self, key: str, wait_ms: float, poll_interval_ms: float) -> Any:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_ms / 1000
        interval = max(poll_interval_ms, 1) / 1000

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return _MISSING
            await asyncio.sleep(min(interval, remaining))
            value = await self._read(key)
            if value is not _MISSING:
                return value

    async def _fetch_and_store(self, key: str, fetcher: Fetcher, ttl: Optional[float]) -> Any:
        self._fetches += 1
        started = time.perf_counter()
        try:
            result = fetcher()
            if inspect.isawaitable(result):
                result = await result
        finally:
            CACHE_FETCH_LATENCY.labels(namespace=self._namespace).observe(
                time.perf_counter() - started
            )

        await self.set(key, result, ttl)
        return result

    # -------------------------------------------------------------------------
    # Maintenance and diagnostics
    # -------------------------------------------------------------------------

    async def flush_namespace(self) -> int:
        """Delete every key under this facade's namespace.

        Redis is cleared with SCAN in batches of ``scan_batch_size``; the
        in-process store is cleared directly. Other namespaces are untouched.

        Returns:
            Number of keys removed across both stores
        """
        prefix = f"{self._namespace}:"
        removed = 0

        distributed = self._distributed
        if distributed is not None and await distributed.ensure_connected():
            try:
                removed += await distributed.scan_delete(prefix, self._scan_batch_size)
            except BackendUnavailableError as e:
                log_backend_fallback(logger, self._namespace, "scan_delete", e)
                self._record_fallback("scan_delete")

        removed += await self._memory.scan_delete(prefix, self._scan_batch_size)

        CACHE_FLUSHED_KEYS_TOTAL.labels(namespace=self._namespace).inc(removed)
        logger.info("cache_namespace_flushed", namespace=self._namespace, removed=removed)
        return removed

    def info(self) -> CacheInfo:
        """Read-only snapshot of backend configuration and health."""
        distributed = self._distributed
        return CacheInfo(
            namespace=self._namespace,
            distributed_configured=distributed is not None,
            distributed_healthy=bool(distributed is not None and distributed.healthy),
            memory_items=self._memory.size(),
            default_ttl=self._default_ttl,
        )

    def stats(self) -> CacheStats:
        """Get cache statistics.

        Returns:
            CacheStats with lookup, fallback and fetch counters
        """
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            evictions=self._memory.evictions,
            size=self._memory.size(),
            fallbacks=self._fallbacks,
            lock_wait_timeouts=self._lock_wait_timeouts,
            fetches=self._fetches,
        )
