"""Result cache facade — memoize analysis outcomes per source location."""

from __future__ import annotations

import logging
from typing import Annotated

from pydantic import Field, TypeAdapter, ValidationError

from repo_line_counter.domain.entities import AnalysisFailure, AnalysisOutcome, AnalysisSuccess
from repo_line_counter.domain.ports.cache_store import CacheStore
from repo_line_counter.domain.value_objects import SourceLocation

logger = logging.getLogger(__name__)

_OUTCOME_ADAPTER: TypeAdapter[AnalysisOutcome] = TypeAdapter(
    Annotated[AnalysisSuccess | AnalysisFailure, Field(discriminator="kind")]
)


def cache_key(location: SourceLocation) -> str:
    return f"repo:{location.url}"


class ResultCache:
    """Typed facade over a :class:`CacheStore`.

    A TTL of zero disables caching entirely: lookups miss and writes are
    dropped without ever touching the store.
    """

    def __init__(self, store: CacheStore, ttl_seconds: int) -> None:
        self._store = store
        self._ttl = ttl_seconds

    @property
    def enabled(self) -> bool:
        return self._ttl > 0

    async def get(self, location: SourceLocation) -> AnalysisOutcome | None:
        if not self.enabled:
            return None
        raw = await self._store.get(cache_key(location))
        if raw is None:
            return None
        try:
            return _OUTCOME_ADAPTER.validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable cache entry for %s", location)
            return None

    async def set(self, location: SourceLocation, outcome: AnalysisOutcome) -> None:
        if not self.enabled:
            return
        payload = _OUTCOME_ADAPTER.dump_json(outcome).decode("utf-8")
        await self._store.set(cache_key(location), payload, self._ttl)
