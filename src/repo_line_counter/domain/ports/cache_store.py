"""Port: key-value cache store — defined by the domain, implemented by infrastructure."""

from __future__ import annotations

from typing import Protocol


class CacheStore(Protocol):
    """Abstract contract for a TTL-honouring, last-write-wins string store."""

    async def get(self, key: str) -> str | None:
        """Return the stored value, or ``None`` when absent or expired."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store *value* under *key* for *ttl_seconds*."""
        ...

    async def close(self) -> None:
        """Release any underlying connections."""
        ...
