"""Port: repository transport — defined by the domain, implemented by infrastructure."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Protocol

from repo_line_counter.domain.value_objects import SourceLocation

StreamHook = Callable[[AsyncIterator[bytes]], AsyncIterator[bytes]]


class RepoTransport(Protocol):
    """Abstract contract for materialising a shallow clone on disk."""

    async def shallow_clone(
        self, location: SourceLocation, dest: Path, *, stream_hook: StreamHook
    ) -> None:
        """Clone the default branch at depth 1 into *dest*.

        Every inbound byte stream must be passed through *stream_hook*.  When
        the hook raises, the transport must close the underlying transfer and
        let the exception propagate unchanged.
        """
        ...
