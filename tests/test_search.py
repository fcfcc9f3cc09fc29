"""Filename search across mounts."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from conftest import OTHER_BUCKET, put

from cloudmount.fs.exceptions import BadRequestError, ForbiddenError
from cloudmount.fs.permissions import CallerIdentity

if TYPE_CHECKING:
    from conftest import FakeClock, Gateway


@pytest.fixture
def corpus(gateway: Gateway) -> Gateway:
    for key in ("reports/", "reports/report", "report.pdf", "q1-report.pdf", "notes.txt"):
        put(gateway.s3, key)
    put(gateway.s3, "report-2024.pdf", bucket=OTHER_BUCKET)
    return gateway


class TestSearch:
    async def test_ranked_across_mounts(self, corpus: Gateway, admin: CallerIdentity):
        found = await corpus.vfs.search("report", admin)
        assert [info.path for info in found.results] == [
            "/docs/reports/report",
            "/archive/report-2024.pdf",
            "/docs/report.pdf",
            "/docs/q1-report.pdf",
        ]
        assert all(not info.is_directory for info in found.results)
        assert found.total == 4
        assert found.mounts_searched == 2
        assert not found.has_more

    async def test_case_insensitive(self, corpus: Gateway, admin: CallerIdentity):
        found = await corpus.vfs.search("  NOTES  ", admin)
        assert [info.name for info in found.results] == ["notes.txt"]
        assert found.query == "NOTES"

    @pytest.mark.parametrize("query", ["", "   ", "r", " r "])
    async def test_short_query_rejected(
        self, corpus: Gateway, admin: CallerIdentity, query: str
    ):
        with pytest.raises(BadRequestError):
            await corpus.vfs.search(query, admin)

    @pytest.mark.parametrize(
        ("limit", "offset"),
        [
            pytest.param(0, 0, id="zero-limit"),
            pytest.param(201, 0, id="limit-too-large"),
            pytest.param(10, -1, id="negative-offset"),
        ],
    )
    async def test_bad_paging_rejected(
        self, corpus: Gateway, admin: CallerIdentity, limit: int, offset: int
    ):
        with pytest.raises(BadRequestError):
            await corpus.vfs.search("report", admin, limit=limit, offset=offset)

    async def test_limited_to_path(self, corpus: Gateway, admin: CallerIdentity):
        found = await corpus.vfs.search("report", admin, path="/archive")
        assert [info.path for info in found.results] == ["/archive/report-2024.pdf"]
        assert found.mounts_searched == 1

        found = await corpus.vfs.search("report", admin, path="/docs/reports/")
        assert [info.path for info in found.results] == ["/docs/reports/report"]

    async def test_max_results(self, corpus: Gateway, admin: CallerIdentity):
        found = await corpus.vfs.search("report", admin, max_results=2)
        assert found.total == 2
        assert len(found.results) == 2

    async def test_scoped_caller(self, corpus: Gateway):
        caller = CallerIdentity.scoped("key-1", "/docs/reports")
        found = await corpus.vfs.search("report", caller)
        assert [info.path for info in found.results] == ["/docs/reports/report"]

    async def test_scoped_caller_outside_prefix(self, corpus: Gateway):
        caller = CallerIdentity.scoped("key-1", "/docs/reports")
        with pytest.raises(ForbiddenError):
            await corpus.vfs.search("report", caller, path="/archive")

    async def test_failing_mount_is_skipped(self, corpus: Gateway, admin: CallerIdentity):
        corpus.s3.delete_object(Bucket=OTHER_BUCKET, Key="report-2024.pdf")
        corpus.s3.delete_bucket(Bucket=OTHER_BUCKET)

        found = await corpus.vfs.search("report", admin)
        assert [info.path for info in found.results] == [
            "/docs/reports/report",
            "/docs/report.pdf",
            "/docs/q1-report.pdf",
        ]


# =========================================================================
# Paging
# =========================================================================


class TestSearchPaging:
    async def test_pages(self, corpus: Gateway, admin: CallerIdentity):
        first = await corpus.vfs.search("report", admin, limit=3)
        assert [info.name for info in first.results] == ["report", "report-2024.pdf", "report.pdf"]
        assert first.total == 4
        assert first.has_more

        second = await corpus.vfs.search("report", admin, limit=3, offset=3)
        assert [info.name for info in second.results] == ["q1-report.pdf"]
        assert second.offset == 3
        assert not second.has_more

    async def test_offset_past_end(self, corpus: Gateway, admin: CallerIdentity):
        found = await corpus.vfs.search("report", admin, offset=10)
        assert found.results == []
        assert found.total == 4
        assert not found.has_more


# =========================================================================
# Caching
# =========================================================================


class TestSearchCache:
    async def test_repeat_is_served_from_cache(self, corpus: Gateway, admin: CallerIdentity):
        first = await corpus.vfs.search("report", admin)
        put(corpus.s3, "report-late.pdf")
        again = await corpus.vfs.search("REPORT", admin)

        assert not first.cached
        assert again.cached
        assert again.total == first.total

    async def test_pages_share_one_entry(self, corpus: Gateway, admin: CallerIdentity):
        await corpus.vfs.search("report", admin, limit=2)
        second = await corpus.vfs.search("report", admin, limit=2, offset=2)

        assert second.cached
        assert [info.name for info in second.results] == ["report.pdf", "q1-report.pdf"]
        assert len(corpus.caches.search) == 1

    async def test_isolated_per_caller(self, corpus: Gateway, admin: CallerIdentity):
        await corpus.vfs.search("report", admin)
        other = await corpus.vfs.search("report", CallerIdentity.admin("admin-2"))
        assert not other.cached

    async def test_mutation_clears_cache(self, corpus: Gateway, admin: CallerIdentity):
        await corpus.vfs.search("report", admin)
        await corpus.vfs.upload_file("/docs/report-late.pdf", b"x", admin)

        found = await corpus.vfs.search("report", admin)
        assert not found.cached
        assert found.total == 5

    async def test_other_mount_keeps_path_limited_entry(
        self, corpus: Gateway, admin: CallerIdentity
    ):
        await corpus.vfs.search("report", admin, path="/archive")
        await corpus.vfs.upload_file("/docs/report-late.pdf", b"x", admin)

        found = await corpus.vfs.search("report", admin, path="/archive")
        assert found.cached

    async def test_expires(self, corpus: Gateway, admin: CallerIdentity, clock: FakeClock):
        await corpus.vfs.search("report", admin)
        clock.advance(301)
        found = await corpus.vfs.search("report", admin)
        assert not found.cached

    async def test_empty_results_not_cached(self, corpus: Gateway, admin: CallerIdentity):
        await corpus.vfs.search("nothing-matches", admin)
        assert len(corpus.caches.search) == 0

    async def test_caller_mutation_does_not_leak(self, corpus: Gateway, admin: CallerIdentity):
        first = await corpus.vfs.search("report", admin)
        first.results[0].name = "tampered"

        again = await corpus.vfs.search("report", admin)
        assert again.results[0].name == "report"
