"""Bounded concurrency gate for filesystem work.

A fresh clone can hold tens of thousands of files; issuing a stat/read for
each one at once exhausts file descriptors.  Every filesystem call in the
pipeline goes through one :class:`ConcurrencyGate`, and descriptor
exhaustion that still slips through is retried with exponential backoff.
"""

from __future__ import annotations

import asyncio
import errno
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from repo_line_counter.domain.exceptions import ResourceExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_EXHAUSTION_ERRNOS = frozenset({errno.EMFILE, errno.ENFILE})


def is_exhaustion_error(exc: BaseException) -> bool:
    """Return *True* for "too many open files" style failures."""
    return isinstance(exc, OSError) and exc.errno in _EXHAUSTION_ERRNOS


async def retry_on_exhaustion(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 5,
    base_delay: float = 0.05,
) -> T:
    """Await ``fn()``, retrying descriptor exhaustion with exponential backoff.

    Any other exception propagates immediately.  After the final attempt a
    :class:`ResourceExhaustedError` is raised, chained to the last ``OSError``.
    """
    for attempt in range(attempts):
        try:
            return await fn()
        except OSError as exc:
            if not is_exhaustion_error(exc):
                raise
            if attempt == attempts - 1:
                raise ResourceExhaustedError(
                    f"File descriptors exhausted after {attempts} attempts: {exc}"
                ) from exc
            delay = base_delay * (2**attempt)
            logger.debug(
                "Descriptor exhaustion (%s); retry %d/%d in %.3fs",
                exc, attempt + 1, attempts - 1, delay,
            )
            await asyncio.sleep(delay)
    raise ResourceExhaustedError("retry_on_exhaustion called with attempts < 1")


class ConcurrencyGate:
    """Admit at most *limit* units of async work at a time.

    Waiters are released in FIFO order and a slot is always returned, whether
    the admitted work succeeds, fails or is cancelled.  Admitted work must not
    call :meth:`admit` on the same gate: callers structure traversal as a
    producer/consumer pipeline instead of nesting admissions.

    Parameters
    ----------
    limit:
        Maximum number of concurrently admitted units.
    retry_attempts / retry_base_delay:
        Backoff policy applied by :meth:`run_blocking`.
    """

    def __init__(
        self,
        limit: int = 50,
        *,
        retry_attempts: int = 5,
        retry_base_delay: float = 0.05,
    ) -> None:
        if limit < 1:
            raise ValueError(f"concurrency limit must be positive, got {limit}")
        self._limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._active = 0
        self._retry_attempts = retry_attempts
        self._retry_base_delay = retry_base_delay

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def active(self) -> int:
        """Number of units currently holding a slot."""
        return self._active

    async def admit(self, fn: Callable[..., Awaitable[T]], *args: Any) -> T:
        """Run ``fn(*args)`` once a slot is free and return its result."""
        async with self._semaphore:
            self._active += 1
            try:
                return await fn(*args)
            finally:
                self._active -= 1

    async def run_blocking(self, fn: Callable[..., T], *args: Any) -> T:
        """Run a blocking call in a worker thread under the gate.

        Descriptor exhaustion is retried; the slot is given back between
        attempts so the backoff does not starve other waiters.
        """
        return await retry_on_exhaustion(
            lambda: self.admit(asyncio.to_thread, fn, *args),
            attempts=self._retry_attempts,
            base_delay=self._retry_base_delay,
        )
