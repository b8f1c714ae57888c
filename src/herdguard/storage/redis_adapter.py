"""
Redis adapter implementing the Backend interface.

Wraps redis.asyncio with lazy connection, per-operation timeouts and health
tracking. Any availability fault marks the adapter unhealthy and surfaces as
BackendUnavailableError so the cache facade can serve the call from memory.
This adapter contains no caching policy, only storage concerns.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlsplit

import redis.asyncio as aioredis
from redis.exceptions import DataError, ReadOnlyError, RedisError, ResponseError

from herdguard.core.error_handling import BackendUnavailableError, CacheConfigurationError
from herdguard.core.metrics import DISTRIBUTED_BACKEND_UP
from herdguard.core.secrets import mask_url
from herdguard.storage.base import Backend

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES = ("redis", "rediss", "unix")

LOCK_VALUE = "1"

# Connection refused, timeouts, protocol faults and server-side errors.
# DataError (bad argument types) is a programming error and propagates.
# A ResponseError other than READONLY is a per-command rejection (WRONGTYPE
# on one key) and leaves the connection healthy.
AVAILABILITY_ERRORS = (RedisError, OSError, asyncio.TimeoutError)

_GLOB_SPECIAL = "\\*?[]"


def escape_glob(text: str) -> str:
    """Escape Redis MATCH metacharacters so ``text`` is matched literally."""
    return "".join("\\" + ch if ch in _GLOB_SPECIAL else ch for ch in text)


def validate_redis_url(redis_url: str) -> None:
    """
    Reject URLs redis-py could never connect with.

    Raises:
        CacheConfigurationError: On an empty, unparseable or unsupported URL
    """
    if not isinstance(redis_url, str) or not redis_url.strip():
        raise CacheConfigurationError("Redis URL must be a non-empty string")

    context = {"url": mask_url(redis_url)}
    try:
        parts = urlsplit(redis_url)
        _ = parts.port  # raises ValueError on a non-numeric or out-of-range port
    except ValueError as e:
        raise CacheConfigurationError(f"Malformed Redis URL: {e}", context=context) from e

    if parts.scheme not in SUPPORTED_SCHEMES:
        raise CacheConfigurationError(
            f"Unsupported Redis URL scheme {parts.scheme!r}, "
            f"expected one of {', '.join(SUPPORTED_SCHEMES)}",
            context=context,
        )

    if parts.scheme == "unix":
        if not parts.path:
            raise CacheConfigurationError("unix:// Redis URL needs a socket path", context=context)
        return

    if not parts.hostname:
        raise CacheConfigurationError("Redis URL is missing a host", context=context)

    db = parts.path.strip("/")
    if db and not db.isdigit():
        raise CacheConfigurationError(
            f"Redis database must be a number, got {db!r}", context=context
        )


def _ttl_to_ms(ttl: float) -> int:
    return max(1, int(round(ttl * 1000)))


class RedisAdapter(Backend):
    """
    Redis-backed storage implementation.

    Connects lazily on first use and remembers whether the last attempt
    succeeded (``healthy``). After a failure the next call tries again,
    unless ``reconnect_interval`` asks for a pause between attempts.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        timeout: float = 2.0,
        max_retries: int = 1,
        retry_delay: float = 0.1,
        reconnect_interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize Redis adapter.

        Args:
            redis_url: Redis connection URL, validated immediately
            timeout: Per-operation timeout in seconds
            max_retries: Attempts per operation before giving up
            retry_delay: Delay between attempts in seconds
            reconnect_interval: Minimum seconds between reconnect attempts
            clock: Monotonic time source, injectable for tests

        Raises:
            CacheConfigurationError: If the URL is malformed
        """
        validate_redis_url(redis_url)

        self.redis_url = redis_url
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.reconnect_interval = reconnect_interval
        self._clock = clock

        self._client: Optional[aioredis.Redis] = None
        self._healthy = False
        self._connect_lock = asyncio.Lock()
        self._attempts = 0
        self._last_attempt: Optional[float] = None

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "RedisAdapter":
        """
        Create adapter from configuration dictionary.

        Args:
            config: Configuration dict with keys like redis_url, timeout, etc.

        Returns:
            Configured RedisAdapter instance
        """
        return cls(
            redis_url=config.get("redis_url", "redis://localhost:6379"),
            timeout=config.get("timeout", 2.0),
            max_retries=config.get("max_retries", 1),
            retry_delay=config.get("retry_delay", 0.1),
            reconnect_interval=config.get("reconnect_interval", 0.0),
        )

    @property
    def healthy(self) -> bool:
        return self._healthy

    def _set_health(self, healthy: bool) -> None:
        self._healthy = healthy
        DISTRIBUTED_BACKEND_UP.labels(backend="redis").set(1 if healthy else 0)

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> bool:
        """
        Establish connection to Redis.

        Concurrent callers share a single attempt: whoever waited on the lock
        while another attempt ran gets that attempt's outcome.

        Returns:
            True if connected, False if Redis is unreachable
        """
        seen = self._attempts
        async with self._connect_lock:
            if self._attempts != seen:
                return self._healthy
            if self._healthy and self._client is not None:
                return True
            self._attempts += 1
            return await self._open()

    async def _open(self) -> bool:
        self._last_attempt = self._clock()
        await self._drop_client()

        try:
            client = aioredis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=self.timeout,
                socket_timeout=self.timeout,
            )
        except ValueError as e:
            raise CacheConfigurationError(
                f"Invalid Redis configuration: {e}",
                context={"url": mask_url(self.redis_url)},
            ) from e

        try:
            await asyncio.wait_for(client.ping(), timeout=self.timeout)
        except AVAILABILITY_ERRORS as e:
            logger.warning(
                f"Redis connect failed, using memory fallback: {mask_url(self.redis_url)} ({e!r})"
            )
            self._set_health(False)
            await self._close_client(client)
            return False

        self._client = client
        self._set_health(True)
        logger.info(f"Connected to Redis: {mask_url(self.redis_url)}")
        return True

    async def ensure_connected(self) -> bool:
        """Connect lazily; honours ``reconnect_interval`` after a failure."""
        if self._healthy and self._client is not None:
            return True

        if (
            self._last_attempt is not None
            and self.reconnect_interval > 0
            and self._clock() - self._last_attempt < self.reconnect_interval
        ):
            return False

        return await self.connect()

    async def close(self) -> None:
        """Close Redis connection."""
        had_client = self._client is not None
        await self._drop_client()
        self._set_health(False)
        if had_client:
            logger.info("Redis connection closed")

    async def _drop_client(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await self._close_client(client)

    @staticmethod
    async def _close_client(client: aioredis.Redis) -> None:
        try:
            await client.aclose()
        except AVAILABILITY_ERRORS as e:
            logger.debug(f"Error closing Redis connection: {e!r}")

    async def health_check(self) -> bool:
        """
        Check if Redis connection is healthy.

        Returns:
            True if a PING succeeds, False otherwise
        """
        if not await self.ensure_connected():
            return False
        try:
            await self._execute("ping", "ping")
            return True
        except BackendUnavailableError:
            return False

    # -------------------------------------------------------------------------
    # Operation plumbing
    # -------------------------------------------------------------------------

    async def _execute(self, operation: str, method: str, *args, **kwargs):
        """
        Run one client call under the timeout, retrying up to ``max_retries``.

        Raises:
            BackendUnavailableError: If the client is missing, every attempt failed,
                or Redis rejected the command
            DataError: On invalid arguments
        """
        if self._client is None or not self._healthy:
            raise BackendUnavailableError(operation, "not connected")

        last_error: Optional[BaseException] = None
        for attempt in range(self.max_retries):
            client = self._client
            if client is None:
                break
            try:
                return await asyncio.wait_for(
                    getattr(client, method)(*args, **kwargs),
                    timeout=self.timeout,
                )
            except DataError:
                raise
            except ResponseError as e:
                if not isinstance(e, ReadOnlyError):
                    logger.warning(f"Redis rejected {operation}: {e!r}")
                    raise BackendUnavailableError(operation, repr(e)) from e
                last_error = e
                logger.warning(f"Redis {operation} hit a read-only replica: {e!r}")
                break
            except AVAILABILITY_ERRORS as e:
                last_error = e
                logger.warning(
                    f"Redis {operation} failed (attempt {attempt + 1}/{self.max_retries}): {e!r}"
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_delay)

        self._set_health(False)
        await self._drop_client()
        logger.warning(f"Redis marked unhealthy after {operation} failure")
        raise BackendUnavailableError(operation, repr(last_error)) from last_error

    # -------------------------------------------------------------------------
    # Backend operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        return await self._execute("get", "get", key)

    async def set(self, key: str, value: str, ttl: Optional[float] = None) -> bool:
        if ttl is not None and ttl > 0:
            result = await self._execute("set", "set", key, value, px=_ttl_to_ms(ttl))
        else:
            result = await self._execute("set", "set", key, value)
        logger.debug(f"Set key {key}" + (f" with TTL {ttl}s" if ttl and ttl > 0 else ""))
        return bool(result)

    async def delete(self, key: str) -> int:
        return int(await self._execute("delete", "delete", key))

    async def try_acquire(self, lock_key: str, ttl: float) -> bool:
        """SET NX PX: the lock always expires, even for a non-positive ttl."""
        result = await self._execute(
            "try_acquire", "set", lock_key, LOCK_VALUE, nx=True, px=_ttl_to_ms(ttl)
        )
        return bool(result)

    async def release(self, lock_key: str) -> None:
        await self._execute("release", "delete", lock_key)

    async def scan_delete(self, prefix: str, batch_size: int = 1000) -> int:
        """
        Delete keys under ``prefix`` using non-blocking SCAN.

        Each batch is deleted as soon as it is returned, so at most one
        batch of keys is held in memory.
        """
        pattern = escape_glob(prefix) + "*"
        cursor = 0
        removed = 0

        while True:
            cursor, keys = await self._execute(
                "scan_delete", "scan", cursor=cursor, match=pattern, count=batch_size
            )
            if keys:
                removed += int(await self._execute("scan_delete", "delete", *keys))
            if int(cursor) == 0:
                break

        logger.debug(f"Deleted {removed} keys matching {pattern}")
        return removed
