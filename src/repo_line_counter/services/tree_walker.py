"""Tree walker / aggregator — count lines per language in a checked-out tree.

Traversal is a producer/consumer pipeline: :meth:`TreeWalker.iter_files`
lists directories one at a time from an explicit stack, and a fixed pool of
workers drains a bounded queue of files.  Each filesystem call is admitted
through the shared :class:`ConcurrencyGate` individually, so admissions never
nest and recursion depth is irrelevant.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from collections.abc import AsyncIterator
from pathlib import Path

from repo_line_counter.domain.entities import LanguageTally
from repo_line_counter.services.concurrency_gate import ConcurrencyGate
from repo_line_counter.services.extension_classifier import classify

logger = logging.getLogger(__name__)

VCS_DIR = ".git"

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")


def count_lines(text: str) -> int:
    """Number of separators (``\\r\\n``, ``\\r`` or ``\\n``) plus one.

    An empty string therefore counts as one line.
    """
    return len(_LINE_BREAK_RE.findall(text)) + 1


def _list_dir(path: Path) -> list[tuple[Path, bool]]:
    """Return ``(child, is_dir)`` for regular files and real directories."""
    children: list[tuple[Path, bool]] = []
    with os.scandir(path) as it:
        for entry in it:
            if entry.is_symlink():
                continue
            if entry.is_dir(follow_symlinks=False):
                if entry.name != VCS_DIR:
                    children.append((Path(entry.path), True))
            elif entry.is_file(follow_symlinks=False):
                children.append((Path(entry.path), False))
    return children


def _file_size(path: Path) -> int:
    return path.stat().st_size


def _read_text(path: Path) -> str:
    # newline="" keeps \r and \r\n intact for count_lines.
    with open(path, encoding="utf-8", newline="") as fh:
        return fh.read()


class TreeWalker:
    """Walk a repository tree and accumulate a :class:`LanguageTally`.

    Parameters
    ----------
    gate:
        Shared filesystem concurrency gate.
    max_file_size_bytes:
        Files strictly larger than this are skipped.
    workers:
        Size of the consumer pool (defaults to the gate limit).
    """

    def __init__(
        self,
        gate: ConcurrencyGate,
        *,
        max_file_size_bytes: int,
        workers: int | None = None,
    ) -> None:
        self._gate = gate
        self._max_file_size = max_file_size_bytes
        self._workers = workers or gate.limit

    async def walk(self, root: Path) -> LanguageTally:
        """Count every classified, readable file under *root*."""
        tally = LanguageTally()
        queue: asyncio.Queue[Path | None] = asyncio.Queue(maxsize=self._workers * 2)

        try:
            async with asyncio.TaskGroup() as tg:
                for _ in range(self._workers):
                    tg.create_task(self._consume(queue, tally))
                async for path in self.iter_files(root):
                    await queue.put(path)
                for _ in range(self._workers):
                    await queue.put(None)
        except BaseExceptionGroup as group:
            # Surface the first failure (e.g. ResourceExhaustedError) unwrapped.
            raise group.exceptions[0]

        logger.info(
            "Counted %d lines across %d languages under %s",
            tally.total_lines, len(tally.stats), root,
        )
        return tally

    async def iter_files(self, root: Path) -> AsyncIterator[Path]:
        """Yield regular files under *root*, skipping ``.git`` and symlinks."""
        pending = [root]
        while pending:
            directory = pending.pop()
            try:
                children = await self._gate.run_blocking(_list_dir, directory)
            except OSError:
                logger.debug("Cannot list %s, skipping", directory, exc_info=True)
                continue
            for child, is_dir in children:
                if is_dir:
                    pending.append(child)
                else:
                    yield child

    async def _consume(self, queue: asyncio.Queue[Path | None], tally: LanguageTally) -> None:
        while True:
            path = await queue.get()
            if path is None:
                return
            lines = await self.count_file(path)
            if lines is not None:
                language, count = lines
                tally.add(language, count)

    async def count_file(self, path: Path) -> tuple[str, int] | None:
        """Return ``(language, lines)`` for *path*, or ``None`` when skipped."""
        definition = classify(path.name)
        if definition is None:
            return None

        try:
            size = await self._gate.run_blocking(_file_size, path)
        except OSError:
            logger.debug("Cannot stat %s, skipping", path, exc_info=True)
            return None
        if size > self._max_file_size:
            logger.debug("Skipping large file %s (%d bytes)", path, size)
            return None

        try:
            text = await self._gate.run_blocking(_read_text, path)
        except UnicodeDecodeError:
            logger.debug("Skipping non-UTF-8 file %s", path)
            return None
        except OSError as exc:
            logger.debug("Skipping unreadable file %s: %s", path, exc)
            return None

        return definition.name, count_lines(text)
