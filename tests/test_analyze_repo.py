"""Tests for the analyze use case: validation, caching and the pipeline."""

from __future__ import annotations

import pytest

from repo_line_counter.domain.entities import AnalysisSuccess
from repo_line_counter.domain.exceptions import (
    InvalidRepositoryUrlError,
    RepositoryFetchError,
    RepositoryTooLargeError,
)

from conftest import FakeTransport, make_use_case

URL = "https://github.com/octocat/Hello-World"

FILES = {
    "src/app.py": "import sys\nprint(sys.argv)\n",
    "src/util.py": "x = 1",
    "README.md": "# Title\n\nBody",
    "package.json": "{}",
    "logo.png": b"\x89PNG\r\n\x1a\n",
    ".git/HEAD": "ref: refs/heads/main\n",
}


class TestAnalyzeRepoUseCase:
    async def test_counts_lines(self, cache_store, tmp_path):
        use_case = make_use_case(FakeTransport(files=FILES), cache_store, scratch_root=tmp_path)

        result = await use_case.execute(URL)

        assert result.stats == {"Python": 4, "Markdown": 3, "JSON": 1}
        assert result.total_lines == 8
        assert list(tmp_path.iterdir()) == []

    async def test_second_call_is_served_from_cache(self, cache_store, tmp_path):
        transport = FakeTransport(files=FILES)
        use_case = make_use_case(transport, cache_store, scratch_root=tmp_path)

        first = await use_case.execute(URL)
        second = await use_case.execute(URL)

        assert first == second
        assert len(transport.calls) == 1

    async def test_distinct_urls_are_cached_separately(self, cache_store, tmp_path):
        transport = FakeTransport(files=FILES)
        use_case = make_use_case(transport, cache_store, scratch_root=tmp_path)

        await use_case.execute(URL)
        await use_case.execute(URL + "/")

        assert len(transport.calls) == 2

    @pytest.mark.parametrize("raw", [None, "", "https://evil.example.com/a/b", "ftp://github.com/a/b"])
    async def test_invalid_input_touches_nothing(self, cache_store, raw):
        transport = FakeTransport(files=FILES)
        use_case = make_use_case(transport, cache_store)

        with pytest.raises(InvalidRepositoryUrlError):
            await use_case.execute(raw)

        assert transport.calls == []
        assert cache_store.gets == []
        assert cache_store.sets == []

    async def test_too_large_is_cached(self, cache_store, tmp_path):
        transport = FakeTransport(chunks=[b"x" * 800, b"y" * 800])
        use_case = make_use_case(
            transport, cache_store, max_repo_size_bytes=1000, scratch_root=tmp_path
        )

        with pytest.raises(RepositoryTooLargeError) as first:
            await use_case.execute(URL)
        with pytest.raises(RepositoryTooLargeError) as second:
            await use_case.execute(URL)

        assert str(first.value) == str(second.value)
        assert len(transport.calls) == 1
        assert list(tmp_path.iterdir()) == []

    async def test_fetch_errors_are_not_cached(self, cache_store, tmp_path):
        transport = FakeTransport(error=RepositoryFetchError("Git host returned HTTP 503"))
        use_case = make_use_case(transport, cache_store, scratch_root=tmp_path)

        for _ in range(2):
            with pytest.raises(RepositoryFetchError):
                await use_case.execute(URL)

        assert len(transport.calls) == 2
        assert cache_store.sets == []

    async def test_zero_ttl_disables_caching(self, cache_store, tmp_path):
        transport = FakeTransport(files=FILES)
        use_case = make_use_case(transport, cache_store, ttl_seconds=0, scratch_root=tmp_path)

        await use_case.execute(URL)
        await use_case.execute(URL)

        assert len(transport.calls) == 2
        assert cache_store.gets == []

    async def test_oversized_files_are_skipped(self, cache_store, tmp_path):
        files = {"big.py": "x\n" * 100, "small.py": "y"}
        use_case = make_use_case(
            FakeTransport(files=files), cache_store, max_file_size_bytes=50, scratch_root=tmp_path
        )

        result = await use_case.execute(URL)

        assert result == AnalysisSuccess(stats={"Python": 1}, total_lines=1)
