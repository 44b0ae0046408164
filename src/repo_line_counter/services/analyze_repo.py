"""Analyze-repository use case — the main orchestration pipeline.

This is the single entry point for the business logic.  It depends on the
acquirer (which owns the transport port), the tree walker and the result
cache.  The interface layer injects concrete adapters at runtime.
"""

from __future__ import annotations

import logging

from repo_line_counter.domain.entities import AnalysisFailure, AnalysisSuccess
from repo_line_counter.domain.exceptions import RepositoryTooLargeError
from repo_line_counter.services.repository_acquirer import RepositoryAcquirer
from repo_line_counter.services.result_cache import ResultCache
from repo_line_counter.services.tree_walker import TreeWalker

logger = logging.getLogger(__name__)


class AnalyzeRepoUseCase:
    """Orchestrates validate → cache → acquire → walk → cache.

    Parameters
    ----------
    acquirer:
        Validates locations and produces scratch workspaces.
    walker:
        Counts lines in an acquired tree.
    cache:
        Memoizes successes and too-large failures per location.
    """

    def __init__(
        self,
        acquirer: RepositoryAcquirer,
        walker: TreeWalker,
        cache: ResultCache,
    ) -> None:
        self._acquirer = acquirer
        self._walker = walker
        self._cache = cache

    async def execute(self, raw_url: str | None) -> AnalysisSuccess:
        """Run the full pipeline and return per-language line counts.

        Raises
        ------
        InvalidRepositoryUrlError
            Before any cache or network access.
        RepositoryTooLargeError
            Freshly, or replayed from a cached failure.
        RepositoryFetchError
            Transient fetch problems; never cached.
        """
        location = self._acquirer.validate(raw_url)

        cached = await self._cache.get(location)
        if isinstance(cached, AnalysisSuccess):
            logger.info("Cache hit for %s", location)
            return cached
        if isinstance(cached, AnalysisFailure):
            logger.info("Cache hit (failure) for %s", location)
            raise RepositoryTooLargeError(cached.message)

        try:
            async with self._acquirer.acquire(location) as workspace:
                tally = await self._walker.walk(workspace.root)
        except RepositoryTooLargeError as exc:
            await self._cache.set(location, AnalysisFailure(message=str(exc)))
            raise

        result = AnalysisSuccess.from_tally(tally)
        await self._cache.set(location, result)
        logger.info(
            "Analysed %s: %d lines in %d languages",
            location, result.total_lines, len(result.stats),
        )
        return result
