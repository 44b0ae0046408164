"""Transfer guard — enforce a cumulative byte ceiling on a repository fetch."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from repo_line_counter.domain.exceptions import RepositoryTooLargeError

logger = logging.getLogger(__name__)


def too_large_message(max_bytes: int) -> str:
    """User-facing message naming the configured limit in MB."""
    return f"Repository too large. Limit is {max_bytes / 1024 / 1024:.2f}MB"


class TransferGuard:
    """Byte counter for one fetch, shared by every stream it watches.

    The chunk that pushes the running total past *max_bytes* is never
    yielded and the source iterator is closed before the error is raised.
    Once tripped, the guard refuses every further stream.
    """

    def __init__(self, max_bytes: int) -> None:
        if max_bytes < 0:
            raise ValueError(f"max_bytes must be non-negative, got {max_bytes}")
        self._max_bytes = max_bytes
        self._received = 0
        self._tripped = False

    @property
    def received(self) -> int:
        """Bytes accepted or rejected so far."""
        return self._received

    @property
    def tripped(self) -> bool:
        return self._tripped

    async def watch(self, stream: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        """Yield chunks from *stream* until the ceiling is crossed."""
        try:
            if self._tripped:
                raise RepositoryTooLargeError(too_large_message(self._max_bytes))
            async for chunk in stream:
                self._received += len(chunk)
                if self._received > self._max_bytes:
                    self._tripped = True
                    logger.warning(
                        "Transfer aborted at %d bytes (limit %d)",
                        self._received, self._max_bytes,
                    )
                    raise RepositoryTooLargeError(too_large_message(self._max_bytes))
                yield chunk
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
