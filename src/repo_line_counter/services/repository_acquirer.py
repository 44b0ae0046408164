"""Repository acquirer — validate a location and fetch it into scratch space.

The scratch directory is owned by exactly one request and removed on every
exit path: success, size-limit aborts, timeouts, transport failures and
errors raised by the caller while the workspace is in use.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from pathlib import Path

from repo_line_counter.domain.entities import ScratchWorkspace
from repo_line_counter.domain.exceptions import (
    LineCounterError,
    RepositoryFetchError,
    ResourceExhaustedError,
)
from repo_line_counter.domain.ports.repo_transport import RepoTransport
from repo_line_counter.domain.value_objects import SourceLocation
from repo_line_counter.services.concurrency_gate import ConcurrencyGate
from repo_line_counter.services.transfer_guard import TransferGuard

logger = logging.getLogger(__name__)

_SCRATCH_PREFIX = "git-line-counter-"
_CLEANUP_ATTEMPTS = 3
_CLEANUP_RETRY_DELAY = 0.1


def _make_scratch_dir(parent: Path | None) -> str:
    return tempfile.mkdtemp(prefix=_SCRATCH_PREFIX, dir=parent)


def _remove_tree(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        if path.exists():
            raise


class RepositoryAcquirer:
    """Validates source locations and performs guarded shallow clones.

    Parameters
    ----------
    transport:
        Adapter that performs the actual clone.
    gate:
        Shared filesystem gate; scratch creation and removal go through its
        exhaustion retry.
    allowed_hosts:
        Hostnames a location may point at.
    max_repo_size_bytes:
        Transfer ceiling handed to a fresh :class:`TransferGuard` per fetch.
    fetch_timeout_seconds:
        Wall-clock bound on one fetch.
    scratch_root:
        Parent for scratch directories (system temp dir by default).
    """

    def __init__(
        self,
        transport: RepoTransport,
        gate: ConcurrencyGate,
        *,
        allowed_hosts: Iterable[str],
        max_repo_size_bytes: int,
        fetch_timeout_seconds: float = 120.0,
        scratch_root: Path | None = None,
    ) -> None:
        self._transport = transport
        self._gate = gate
        self._allowed_hosts = tuple(allowed_hosts)
        self._max_repo_size = max_repo_size_bytes
        self._timeout = fetch_timeout_seconds
        self._scratch_root = scratch_root

    def validate(self, raw_url: str | None) -> SourceLocation:
        """Parse *raw_url* and check it against the scheme and host allow-lists."""
        return SourceLocation.from_string(raw_url, self._allowed_hosts)

    @asynccontextmanager
    async def acquire(self, location: SourceLocation) -> AsyncIterator[ScratchWorkspace]:
        """Fetch *location* and yield the populated workspace, then remove it."""
        root = Path(await self._gate.run_blocking(_make_scratch_dir, self._scratch_root))
        logger.info("Cloning %s into %s", location, root)
        try:
            await self._fetch(location, root)
            yield ScratchWorkspace(root=root)
        finally:
            await self._cleanup(root)

    async def _fetch(self, location: SourceLocation, root: Path) -> None:
        guard = TransferGuard(self._max_repo_size)
        try:
            async with asyncio.timeout(self._timeout):
                await self._transport.shallow_clone(
                    location, root, stream_hook=guard.watch
                )
        except TimeoutError as exc:
            raise RepositoryFetchError(
                f"Fetching {location} timed out after {self._timeout:g}s"
            ) from exc
        except LineCounterError:
            raise
        except Exception as exc:
            logger.exception("Unexpected failure while cloning %s", location)
            raise RepositoryFetchError(f"Failed to fetch repository: {exc}") from exc
        logger.info("Fetched %s (%d bytes transferred)", location, guard.received)

    async def _cleanup(self, root: Path) -> None:
        """Remove *root*, retrying while a cancelled worker thread may still write into it."""
        for attempt in range(1, _CLEANUP_ATTEMPTS + 1):
            try:
                await self._gate.run_blocking(_remove_tree, root)
                return
            except OSError as exc:
                if attempt == _CLEANUP_ATTEMPTS:
                    logger.exception("Failed to clean up scratch directory %s", root)
                    return
                logger.debug("Retrying removal of %s: %s", root, exc)
                await asyncio.sleep(_CLEANUP_RETRY_DELAY * attempt)
            except ResourceExhaustedError:
                logger.exception("Failed to clean up scratch directory %s", root)
                return
