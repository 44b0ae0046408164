"""Cache store adapters — implement the CacheStore port."""

from __future__ import annotations

import time
from collections.abc import Callable

from cachetools import TLRUCache
from redis.asyncio import Redis


def _expires_at(_key: str, value: tuple[str, float], now: float) -> float:
    return now + value[1]


class MemoryCacheStore:
    """Bounded in-process store; each entry expires after its own TTL."""

    def __init__(
        self,
        max_entries: int = 100,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache: TLRUCache[str, tuple[str, float]] = TLRUCache(
            maxsize=max_entries, ttu=_expires_at, timer=timer
        )

    async def get(self, key: str) -> str | None:
        entry = self._cache.get(key)
        return entry[0] if entry is not None else None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._cache[key] = (value, float(ttl_seconds))

    async def close(self) -> None:
        self._cache.clear()


class RedisCacheStore:
    """Store backed by Redis ``SET ... EX``; expiry is handled server-side."""

    def __init__(self, client: Redis) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> RedisCacheStore:
        return cls(Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> str | None:
        return await self._redis.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.set(key, value, ex=ttl_seconds)

    async def close(self) -> None:
        await self._redis.aclose()
