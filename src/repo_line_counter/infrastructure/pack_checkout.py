"""Write a commit's tree from a dulwich object store into a directory.

Only regular files and directories are materialised.  Symlinks and
submodule entries are skipped, as are entry names that could escape the
destination.  Blobs above the per-file ceiling are left out (the walker
would skip them anyway) and the total written is capped so a small,
highly compressed pack cannot expand without bound on disk.
"""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path

from dulwich.object_store import BaseObjectStore
from dulwich.objects import S_ISGITLINK, Blob, Commit, ShaFile, Tree

from repo_line_counter.domain.exceptions import RepositoryFetchError, RepositoryTooLargeError
from repo_line_counter.services.concurrency_gate import ConcurrencyGate
from repo_line_counter.services.transfer_guard import too_large_message

logger = logging.getLogger(__name__)

_UNSAFE_NAMES = frozenset({"", ".", "..", ".git"})


@dataclass(slots=True)
class CheckoutStats:
    files_written: int = 0
    bytes_written: int = 0
    entries_skipped: int = 0


def is_safe_entry_name(name: str) -> bool:
    """Return *True* when *name* is a single, harmless path component."""
    if name.lower() in _UNSAFE_NAMES:
        return False
    return not any(ch in name for ch in ("/", "\\", "\x00"))


def _load_object(store: BaseObjectStore, sha: bytes) -> ShaFile:
    try:
        return store[sha]
    except KeyError as exc:
        raise RepositoryFetchError(
            f"Fetched pack is missing object {sha.decode('ascii', 'replace')}"
        ) from exc


def _write_file(path: Path, data: bytes) -> None:
    path.write_bytes(data)


def _make_dir(path: Path) -> None:
    path.mkdir(exist_ok=True)


async def checkout_tree(
    store: BaseObjectStore,
    commit_sha: bytes,
    dest: Path,
    *,
    gate: ConcurrencyGate,
    max_file_size_bytes: int,
    max_total_bytes: int,
) -> CheckoutStats:
    """Materialise the tree of *commit_sha* under *dest*.

    Objects are read one at a time (pack files are not safe to share across
    threads); every filesystem call goes through *gate*.
    """
    stats = CheckoutStats()

    commit = await gate.run_blocking(_load_object, store, commit_sha)
    if not isinstance(commit, Commit):
        raise RepositoryFetchError("Default branch does not point at a commit")

    pending: list[tuple[bytes, Path]] = [(commit.tree, dest)]
    while pending:
        tree_sha, directory = pending.pop()
        tree = await gate.run_blocking(_load_object, store, tree_sha)
        if not isinstance(tree, Tree):
            raise RepositoryFetchError(
                f"Object {tree_sha.decode('ascii', 'replace')} is not a tree"
            )

        for entry in tree.iteritems():
            name = os.fsdecode(entry.path)
            if not is_safe_entry_name(name):
                logger.warning("Skipping unsafe tree entry %r", name)
                stats.entries_skipped += 1
                continue

            target = directory / name

            if stat.S_ISDIR(entry.mode):
                await gate.run_blocking(_make_dir, target)
                pending.append((entry.sha, target))
                continue

            if stat.S_ISLNK(entry.mode) or S_ISGITLINK(entry.mode):
                logger.debug("Skipping non-regular entry %s (mode %o)", target, entry.mode)
                stats.entries_skipped += 1
                continue

            blob = await gate.run_blocking(_load_object, store, entry.sha)
            if not isinstance(blob, Blob):
                stats.entries_skipped += 1
                continue

            data = blob.as_raw_string()
            if len(data) > max_file_size_bytes:
                logger.debug("Not writing large blob %s (%d bytes)", target, len(data))
                stats.entries_skipped += 1
                continue

            if stats.bytes_written + len(data) > max_total_bytes:
                raise RepositoryTooLargeError(too_large_message(max_total_bytes))

            await gate.run_blocking(_write_file, target, data)
            stats.files_written += 1
            stats.bytes_written += len(data)

    return stats
