"""Pytest configuration and fixtures for the HerdGuard test suite."""
import re
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Ensure the package is importable without an editable install
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


# ============================================================================
# REDIS TEST DOUBLE
# ============================================================================

def _glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """Translate the subset of Redis MATCH syntax the adapter emits."""
    out = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if ch == "*":
            out.append(".*")
        elif ch == "?":
            out.append(".")
        else:
            out.append(re.escape(ch))
        i += 1
    return re.compile("".join(out), re.DOTALL)


class FakeRedis:
    """In-process stand-in for a redis.asyncio client with decode_responses=True.

    Set ``fail_with`` to an exception instance to make every command raise it.
    """

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.expires: Dict[str, float] = {}
        self.fail_with: Optional[BaseException] = None
        self.closed = False
        self.calls: List[str] = []
        self.scan_calls: List[dict] = []
        self._scan_snapshot: List[str] = []

    def _check(self, command: str) -> None:
        self.calls.append(command)
        if self.fail_with is not None:
            raise self.fail_with

    def _live(self, key: str) -> bool:
        expire_at = self.expires.get(key)
        if expire_at is not None and time.monotonic() >= expire_at:
            self.data.pop(key, None)
            self.expires.pop(key, None)
        return key in self.data

    async def ping(self):
        self._check("ping")
        return True

    async def get(self, key):
        self._check("get")
        return self.data.get(key) if self._live(key) else None

    async def set(self, key, value, nx=False, px=None, ex=None):
        self._check("set")
        if nx and self._live(key):
            return None
        self.data[key] = value
        self.expires.pop(key, None)
        if px is not None:
            self.expires[key] = time.monotonic() + px / 1000
        elif ex is not None:
            self.expires[key] = time.monotonic() + ex
        return True

    async def delete(self, *keys):
        self._check("delete")
        removed = 0
        for key in keys:
            if self._live(key):
                del self.data[key]
                self.expires.pop(key, None)
                removed += 1
        return removed

    async def scan(self, cursor=0, match=None, count=None):
        self._check("scan")
        self.scan_calls.append({"cursor": cursor, "match": match, "count": count})
        if cursor == 0:
            self._scan_snapshot = sorted(self.data)
        keys = self._scan_snapshot
        regex = _glob_to_regex(match) if match else None
        page = keys[cursor:cursor + (count or 10)]
        next_cursor = cursor + len(page)
        if next_cursor >= len(keys):
            next_cursor = 0
        return next_cursor, [
            k for k in page if self._live(k) and (regex is None or regex.fullmatch(k))
        ]

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def patch_redis(monkeypatch, fake_redis):
    """Route ``aioredis.from_url`` to ``fake_redis`` and record the URLs used."""
    urls = []

    def from_url(url, **kwargs):
        urls.append(url)
        return fake_redis

    monkeypatch.setattr("herdguard.storage.redis_adapter.aioredis.from_url", from_url)
    return urls


# ============================================================================
# ENVIRONMENT ISOLATION
# ============================================================================

@pytest.fixture(autouse=True)
def no_env_files(monkeypatch):
    """Keep developer .env files out of the tests."""
    monkeypatch.setattr("herdguard.core.secrets._env_loaded", True)

