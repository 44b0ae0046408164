"""Shared fixtures and fakes for the test-suite."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from pathlib import Path

import pytest

from repo_line_counter.domain.ports.repo_transport import StreamHook
from repo_line_counter.domain.value_objects import SourceLocation
from repo_line_counter.infrastructure.cache_stores import MemoryCacheStore
from repo_line_counter.infrastructure.config import Settings
from repo_line_counter.services.analyze_repo import AnalyzeRepoUseCase
from repo_line_counter.services.concurrency_gate import ConcurrencyGate
from repo_line_counter.services.repository_acquirer import RepositoryAcquirer
from repo_line_counter.services.result_cache import ResultCache
from repo_line_counter.services.tree_walker import TreeWalker

DEFAULT_HOSTS = ("github.com", "gitlab.com", "bitbucket.org")


async def _chunks(parts: Iterable[bytes]) -> AsyncIterator[bytes]:
    for part in parts:
        yield part


class FakeTransport:
    """RepoTransport stand-in: streams canned chunks, then writes canned files."""

    def __init__(
        self,
        files: dict[str, str | bytes] | None = None,
        chunks: Iterable[bytes] = (b"x" * 10,),
        error: Exception | None = None,
    ) -> None:
        self.files = files or {}
        self.chunks = list(chunks)
        self.error = error
        self.calls: list[SourceLocation] = []
        self.destinations: list[Path] = []

    async def shallow_clone(
        self, location: SourceLocation, dest: Path, *, stream_hook: StreamHook
    ) -> None:
        self.calls.append(location)
        self.destinations.append(dest)
        async for _ in stream_hook(_chunks(self.chunks)):
            pass
        if self.error is not None:
            raise self.error
        for rel, content in self.files.items():
            target = dest / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                target.write_bytes(content)
            else:
                target.write_text(content, encoding="utf-8", newline="")


class SpyCacheStore(MemoryCacheStore):
    """Memory store that records every access."""

    def __init__(self) -> None:
        super().__init__()
        self.gets: list[str] = []
        self.sets: list[str] = []

    async def get(self, key: str) -> str | None:
        self.gets.append(key)
        return await super().get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self.sets.append(key)
        await super().set(key, value, ttl_seconds)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        allowed_domains=",".join(DEFAULT_HOSTS),
        max_file_size_bytes=1024 * 1024,
        max_repo_size_bytes=100 * 1024 * 1024,
        cache_ttl_seconds=3600,
        fs_concurrency=8,
        fs_retry_attempts=3,
        fs_retry_base_delay=0.0,
        fetch_timeout_seconds=5.0,
        rate_limit_requests=10,
        rate_limit_window_seconds=60.0,
        redis_url=None,
    )


@pytest.fixture
def gate() -> ConcurrencyGate:
    return ConcurrencyGate(8, retry_attempts=3, retry_base_delay=0.0)


@pytest.fixture
def cache_store() -> SpyCacheStore:
    return SpyCacheStore()


def make_use_case(
    transport: FakeTransport,
    store: SpyCacheStore,
    *,
    ttl_seconds: int = 3600,
    max_repo_size_bytes: int = 100 * 1024 * 1024,
    max_file_size_bytes: int = 1024 * 1024,
    scratch_root: Path | None = None,
) -> AnalyzeRepoUseCase:
    gate = ConcurrencyGate(4, retry_attempts=2, retry_base_delay=0.0)
    acquirer = RepositoryAcquirer(
        transport,
        gate,
        allowed_hosts=DEFAULT_HOSTS,
        max_repo_size_bytes=max_repo_size_bytes,
        fetch_timeout_seconds=5.0,
        scratch_root=scratch_root,
    )
    walker = TreeWalker(gate, max_file_size_bytes=max_file_size_bytes)
    return AnalyzeRepoUseCase(acquirer, walker, ResultCache(store, ttl_seconds))
