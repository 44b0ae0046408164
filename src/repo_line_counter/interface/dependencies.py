"""FastAPI dependency injection wiring.

Shared resources live in an :class:`AppResources` built by the application
lifespan and stored on ``app.state``; nothing here is a module-level global.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from fastapi import Depends, Request

from repo_line_counter.domain.exceptions import RateLimitExceededError
from repo_line_counter.domain.ports.cache_store import CacheStore
from repo_line_counter.infrastructure.cache_stores import MemoryCacheStore, RedisCacheStore
from repo_line_counter.infrastructure.config import Settings
from repo_line_counter.infrastructure.git_http_transport import GitSmartHttpTransport
from repo_line_counter.services.analyze_repo import AnalyzeRepoUseCase
from repo_line_counter.services.concurrency_gate import ConcurrencyGate
from repo_line_counter.services.rate_limiter import FixedWindowRateLimiter
from repo_line_counter.services.repository_acquirer import RepositoryAcquirer
from repo_line_counter.services.result_cache import ResultCache
from repo_line_counter.services.tree_walker import TreeWalker

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AppResources:
    """Process-wide collaborators with an explicit lifetime."""

    settings: Settings
    http_client: httpx.AsyncClient
    gate: ConcurrencyGate
    cache_store: CacheStore
    rate_limiter: FixedWindowRateLimiter

    async def aclose(self) -> None:
        await self.http_client.aclose()
        await self.cache_store.close()


def build_cache_store(settings: Settings) -> CacheStore:
    if settings.redis_url:
        logger.info("Using Redis cache")
        return RedisCacheStore.from_url(settings.redis_url)
    logger.info("Using memory cache")
    return MemoryCacheStore(max_entries=settings.cache_max_entries)


async def startup(settings: Settings) -> AppResources:
    """Initialise shared resources — called from the lifespan context manager."""
    return AppResources(
        settings=settings,
        http_client=httpx.AsyncClient(timeout=httpx.Timeout(30.0)),
        gate=ConcurrencyGate(
            settings.fs_concurrency,
            retry_attempts=settings.fs_retry_attempts,
            retry_base_delay=settings.fs_retry_base_delay,
        ),
        cache_store=build_cache_store(settings),
        rate_limiter=FixedWindowRateLimiter(
            limit=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
        ),
    )


async def shutdown(resources: AppResources) -> None:
    """Release shared resources."""
    await resources.aclose()


def get_resources(request: Request) -> AppResources:
    resources: AppResources | None = getattr(request.app.state, "resources", None)
    assert resources is not None, "startup() was not called"
    return resources


def build_use_case(resources: AppResources) -> AnalyzeRepoUseCase:
    """Wire the use case from shared resources and settings."""
    settings = resources.settings
    transport = GitSmartHttpTransport(
        resources.http_client,
        resources.gate,
        max_file_size_bytes=settings.max_file_size_bytes,
        max_checkout_bytes=settings.max_repo_size_bytes,
    )
    acquirer = RepositoryAcquirer(
        transport,
        resources.gate,
        allowed_hosts=settings.allowed_hosts,
        max_repo_size_bytes=settings.max_repo_size_bytes,
        fetch_timeout_seconds=settings.fetch_timeout_seconds,
    )
    walker = TreeWalker(resources.gate, max_file_size_bytes=settings.max_file_size_bytes)
    cache = ResultCache(resources.cache_store, settings.cache_ttl_seconds)
    return AnalyzeRepoUseCase(acquirer=acquirer, walker=walker, cache=cache)


def get_use_case(resources: AppResources = Depends(get_resources)) -> AnalyzeRepoUseCase:
    return build_use_case(resources)


def client_identity(request: Request) -> str:
    """First ``X-Forwarded-For`` hop, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",", maxsplit=1)[0].strip()
    if first:
        return first
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"


def enforce_rate_limit(
    request: Request,
    resources: AppResources = Depends(get_resources),
) -> None:
    if not resources.rate_limiter.hit(client_identity(request)):
        raise RateLimitExceededError("Too many requests. Please try again later.")
