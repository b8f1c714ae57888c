"""
Tests for MemoryStorage.

Tests cover:
- Basic get/set/delete
- TTL expiration with an injected clock
- Insertion-order eviction
- Process-local locks
- Prefix deletion and purging
"""

import pytest

from herdguard.core.error_handling import CacheConfigurationError
from herdguard.storage.memory import CacheEntry, MemoryStorage


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage(clock):
    return MemoryStorage(max_items=10, clock=clock)


# ============================================================================
# BASIC OPERATIONS TESTS
# ============================================================================


@pytest.mark.asyncio
async def test_set_and_get(storage):
    assert await storage.set("ns:a", '{"x": 1}') is True
    assert await storage.get("ns:a") == '{"x": 1}'


@pytest.mark.asyncio
async def test_get_missing_key(storage):
    assert await storage.get("ns:missing") is None


@pytest.mark.asyncio
async def test_delete_reports_count(storage):
    await storage.set("ns:a", "1")

    assert await storage.delete("ns:a") == 1
    assert await storage.delete("ns:a") == 0
    assert await storage.get("ns:a") is None


def test_rejects_non_positive_max_items():
    with pytest.raises(CacheConfigurationError):
        MemoryStorage(max_items=0)


def test_entry_without_expiry_never_expires():
    entry = CacheEntry(key="k", value="v")
    assert entry.is_expired(10 ** 9) is False


# ============================================================================
# TTL TESTS
# ============================================================================


@pytest.mark.asyncio
async def test_entry_expires_after_ttl(storage, clock):
    await storage.set("ns:a", "1", ttl=5)

    clock.advance(4.9)
    assert await storage.get("ns:a") == "1"

    clock.advance(0.1)
    assert await storage.get("ns:a") is None
    assert storage.size() == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("ttl", [None, 0, -1])
async def test_non_positive_ttl_never_expires(storage, clock, ttl):
    await storage.set("ns:a", "1", ttl=ttl)

    clock.advance(10 ** 6)
    assert await storage.get("ns:a") == "1"


@pytest.mark.asyncio
async def test_purge_expired(storage, clock):
    await storage.set("ns:short", "1", ttl=1)
    await storage.set("ns:long", "1", ttl=100)
    await storage.set("ns:forever", "1")

    clock.advance(2)
    assert await storage.purge_expired() == 1
    assert storage.size() == 2


# ============================================================================
# EVICTION TESTS
# ============================================================================


@pytest.mark.asyncio
async def test_evicts_oldest_inserted_key(clock):
    storage = MemoryStorage(max_items=3, clock=clock)

    for i in range(4):
        await storage.set(f"ns:k{i}", str(i))

    assert storage.size() == 3
    assert storage.evictions == 1
    assert await storage.get("ns:k0") is None
    assert await storage.get("ns:k3") == "3"


@pytest.mark.asyncio
async def test_overwrite_keeps_insertion_position(clock):
    storage = MemoryStorage(max_items=2, clock=clock)

    await storage.set("ns:a", "1")
    await storage.set("ns:b", "1")
    await storage.set("ns:a", "2")
    await storage.set("ns:c", "1")

    # "a" was inserted first, overwriting did not refresh it
    assert await storage.get("ns:a") is None
    assert await storage.get("ns:b") == "1"
    assert await storage.get("ns:c") == "1"


@pytest.mark.asyncio
async def test_reads_do_not_refresh_position(clock):
    storage = MemoryStorage(max_items=2, clock=clock)

    await storage.set("ns:a", "1")
    await storage.set("ns:b", "1")
    await storage.get("ns:a")
    await storage.set("ns:c", "1")

    assert await storage.get("ns:a") is None


# ============================================================================
# LOCK TESTS
# ============================================================================


@pytest.mark.asyncio
async def test_try_acquire_is_exclusive(storage):
    assert await storage.try_acquire("ns:lock:a", 10) is True
    assert await storage.try_acquire("ns:lock:a", 10) is False


@pytest.mark.asyncio
async def test_release_allows_reacquire(storage):
    await storage.try_acquire("ns:lock:a", 10)
    await storage.release("ns:lock:a")

    assert await storage.try_acquire("ns:lock:a", 10) is True


@pytest.mark.asyncio
async def test_release_of_unheld_lock_is_noop(storage):
    await storage.release("ns:lock:nobody")


@pytest.mark.asyncio
async def test_lock_expires(storage, clock):
    await storage.try_acquire("ns:lock:a", 2)

    clock.advance(2)
    assert await storage.try_acquire("ns:lock:a", 2) is True


# ============================================================================
# PREFIX DELETION TESTS
# ============================================================================


@pytest.mark.asyncio
async def test_scan_delete_only_matches_prefix(storage):
    await storage.set("a:1", "1")
    await storage.set("a:2", "1")
    await storage.set("a:lock:3", "1")
    await storage.set("ab:1", "1")
    await storage.set("b:1", "1")

    assert await storage.scan_delete("a:") == 3
    assert await storage.get("ab:1") == "1"
    assert await storage.get("b:1") == "1"


@pytest.mark.asyncio
async def test_scan_delete_empty(storage):
    assert await storage.scan_delete("nothing:") == 0


@pytest.mark.asyncio
async def test_backend_defaults(storage):
    assert storage.healthy is True
    assert await storage.connect() is True
    assert await storage.ensure_connected() is True
    await storage.close()
