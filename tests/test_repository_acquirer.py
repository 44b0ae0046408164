"""Tests for scratch-directory lifetime and fetch error handling."""

from __future__ import annotations

import asyncio
import errno
from pathlib import Path

import pytest

from repo_line_counter.domain.exceptions import (
    InvalidRepositoryUrlError,
    RepositoryFetchError,
    RepositoryNotFoundError,
    RepositoryTooLargeError,
)
from repo_line_counter.domain.value_objects import SourceLocation
from repo_line_counter.services import repository_acquirer
from repo_line_counter.services.concurrency_gate import ConcurrencyGate
from repo_line_counter.services.repository_acquirer import RepositoryAcquirer

from conftest import DEFAULT_HOSTS, FakeTransport

URL = "https://github.com/octocat/Hello-World"


def _acquirer(transport, scratch: Path, **kwargs) -> RepositoryAcquirer:
    kwargs.setdefault("max_repo_size_bytes", 1024)
    gate = ConcurrencyGate(4, retry_attempts=3, retry_base_delay=0.0)
    return RepositoryAcquirer(
        transport, gate, allowed_hosts=DEFAULT_HOSTS, scratch_root=scratch, **kwargs
    )


class _SlowTransport:
    async def shallow_clone(self, location, dest, *, stream_hook):
        await asyncio.sleep(10)


class TestRepositoryAcquirer:
    def test_validate_delegates_to_location(self, tmp_path):
        acquirer = _acquirer(FakeTransport(), tmp_path)
        assert isinstance(acquirer.validate(URL), SourceLocation)
        with pytest.raises(InvalidRepositoryUrlError):
            acquirer.validate("https://evil.example.com/x")

    async def test_yields_populated_workspace_and_cleans_up(self, tmp_path):
        transport = FakeTransport(files={"src/main.py": "print(1)\n"})
        acquirer = _acquirer(transport, tmp_path)
        location = acquirer.validate(URL)

        async with acquirer.acquire(location) as workspace:
            assert workspace.root.parent == tmp_path
            assert workspace.root.name.startswith("git-line-counter-")
            assert (workspace.root / "src" / "main.py").read_text() == "print(1)\n"

        assert not workspace.root.exists()
        assert list(tmp_path.iterdir()) == []
        assert transport.calls == [location]

    async def test_distinct_workspace_per_acquisition(self, tmp_path):
        transport = FakeTransport()
        acquirer = _acquirer(transport, tmp_path)
        location = acquirer.validate(URL)

        async def use() -> Path:
            async with acquirer.acquire(location) as workspace:
                await asyncio.sleep(0.01)
                return workspace.root

        first, second = await asyncio.gather(use(), use())
        assert first != second
        assert list(tmp_path.iterdir()) == []

    async def test_cleans_up_when_caller_raises(self, tmp_path):
        acquirer = _acquirer(FakeTransport(), tmp_path)

        with pytest.raises(RuntimeError):
            async with acquirer.acquire(acquirer.validate(URL)):
                raise RuntimeError("walker blew up")

        assert list(tmp_path.iterdir()) == []

    async def test_transfer_over_ceiling_is_too_large(self, tmp_path):
        transport = FakeTransport(chunks=[b"x" * 600, b"y" * 600])
        acquirer = _acquirer(transport, tmp_path, max_repo_size_bytes=1000)

        with pytest.raises(RepositoryTooLargeError, match="Repository too large"):
            async with acquirer.acquire(acquirer.validate(URL)):
                pytest.fail("workspace must not be yielded")

        assert list(tmp_path.iterdir()) == []

    async def test_domain_errors_pass_through(self, tmp_path):
        transport = FakeTransport(error=RepositoryNotFoundError("Repository not found."))
        acquirer = _acquirer(transport, tmp_path)

        with pytest.raises(RepositoryNotFoundError):
            async with acquirer.acquire(acquirer.validate(URL)):
                pass

        assert list(tmp_path.iterdir()) == []

    async def test_unexpected_errors_become_fetch_errors(self, tmp_path):
        transport = FakeTransport(error=ConnectionResetError("peer reset"))
        acquirer = _acquirer(transport, tmp_path)

        with pytest.raises(RepositoryFetchError, match="peer reset") as info:
            async with acquirer.acquire(acquirer.validate(URL)):
                pass

        assert isinstance(info.value.__cause__, ConnectionResetError)
        assert list(tmp_path.iterdir()) == []

    async def test_timeout_becomes_fetch_error(self, tmp_path):
        acquirer = _acquirer(_SlowTransport(), tmp_path, fetch_timeout_seconds=0.05)

        with pytest.raises(RepositoryFetchError, match="timed out"):
            async with acquirer.acquire(acquirer.validate(URL)):
                pass

        assert list(tmp_path.iterdir()) == []


class TestScratchCleanup:
    async def test_removal_retries_descriptor_exhaustion(self, tmp_path, monkeypatch):
        real_remove = repository_acquirer._remove_tree
        calls = 0

        def flaky_remove(path: Path) -> None:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise OSError(errno.EMFILE, "Too many open files")
            real_remove(path)

        monkeypatch.setattr(repository_acquirer, "_remove_tree", flaky_remove)
        acquirer = _acquirer(FakeTransport(files={"a.py": "x"}), tmp_path)

        async with acquirer.acquire(acquirer.validate(URL)):
            pass

        assert calls == 2
        assert list(tmp_path.iterdir()) == []

    async def test_removal_retried_when_tree_changes_underneath(self, tmp_path, monkeypatch):
        """A late write from a cancelled worker makes the first removal fail."""
        real_remove = repository_acquirer._remove_tree
        calls = 0

        def racing_remove(path: Path) -> None:
            nonlocal calls
            calls += 1
            if calls == 1:
                (path / "late.py").write_text("x")
                raise OSError(errno.ENOTEMPTY, "Directory not empty")
            real_remove(path)

        monkeypatch.setattr(repository_acquirer, "_remove_tree", racing_remove)
        monkeypatch.setattr(repository_acquirer, "_CLEANUP_RETRY_DELAY", 0.0)
        acquirer = _acquirer(FakeTransport(), tmp_path)

        async with acquirer.acquire(acquirer.validate(URL)):
            pass

        assert calls == 2
        assert list(tmp_path.iterdir()) == []

    async def test_scratch_creation_retries_descriptor_exhaustion(self, tmp_path, monkeypatch):
        real_make = repository_acquirer._make_scratch_dir
        calls = 0

        def flaky_make(parent):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise OSError(errno.ENFILE, "File table overflow")
            return real_make(parent)

        monkeypatch.setattr(repository_acquirer, "_make_scratch_dir", flaky_make)
        acquirer = _acquirer(FakeTransport(), tmp_path)

        async with acquirer.acquire(acquirer.validate(URL)) as workspace:
            assert workspace.root.exists()

        assert calls == 2
        assert list(tmp_path.iterdir()) == []

    async def test_persistent_failure_does_not_mask_result(self, tmp_path, monkeypatch):
        def stuck(path: Path) -> None:
            raise PermissionError(errno.EACCES, "Permission denied")

        monkeypatch.setattr(repository_acquirer, "_remove_tree", stuck)
        monkeypatch.setattr(repository_acquirer, "_CLEANUP_RETRY_DELAY", 0.0)
        acquirer = _acquirer(FakeTransport(), tmp_path)

        async with acquirer.acquire(acquirer.validate(URL)) as workspace:
            root = workspace.root

        assert root.exists()
