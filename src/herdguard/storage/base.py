"""
Backend Interface for HerdGuard Storage

Provides the abstract base class both cache backends implement. Values are
already-serialized strings; encoding and decoding live in the cache facade.
"""

from abc import ABC, abstractmethod
from typing import Optional


class Backend(ABC):
    """
    Abstract key-value backend used by the cache facade.

    Implementations include:
    - MemoryStorage: bounded in-process store, always available
    - RedisAdapter: optional distributed store

    ``try_acquire`` is the only operation that must be atomic across
    concurrent callers.
    """

    @property
    def healthy(self) -> bool:
        """Whether the backend answered its last connection attempt."""
        return True

    async def connect(self) -> bool:
        """Open the backend. Returns True when usable."""
        return True

    async def ensure_connected(self) -> bool:
        """Connect if needed and report whether the backend is usable now."""
        return self.healthy

    async def close(self) -> None:
        """Release backend resources."""
        return None

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Retrieve value by key.

        Args:
            key: Storage key

        Returns:
            Stored value or None if absent or expired
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[float] = None) -> bool:
        """
        Store value with optional TTL.

        Args:
            key: Storage key
            value: Serialized value
            ttl: Time to live in seconds (None or <= 0 = no expiry)

        Returns:
            True if stored
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> int:
        """
        Delete key from storage.

        Returns:
            Number of keys removed (0 or 1)
        """
        pass

    @abstractmethod
    async def try_acquire(self, lock_key: str, ttl: float) -> bool:
        """
        Create ``lock_key`` only if it does not exist, expiring after ``ttl``.

        Returns:
            True if this caller now holds the lock
        """
        pass

    @abstractmethod
    async def release(self, lock_key: str) -> None:
        """Remove ``lock_key``. Releasing a missing lock is not an error."""
        pass

    @abstractmethod
    async def scan_delete(self, prefix: str, batch_size: int = 1000) -> int:
        """
        Delete every key starting with ``prefix`` in bounded batches.

        Returns:
            Number of keys removed
        """
        pass
