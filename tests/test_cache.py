"""Tests for the TTL, directory-listing, presigned-URL and search caches."""

from __future__ import annotations

from conftest import FakeClock

from cloudmount.fs.cache import (
    CUSTOM_HOST_TTL,
    DEFAULT_SEARCH_TTL,
    DirectoryCache,
    GatewayCaches,
    PresignedUrlCache,
    SearchCache,
    TTLCache,
)
from cloudmount.fs.types import FileInfo, ListResult, SearchResult

SCOPE = ("admin", "admin-1")
SEARCH_SCOPE = ("admin", "admin-1", "/")


def _listing(path: str = "/", *, sized: bool = True) -> ListResult:
    return ListResult(
        path=path,
        items=[
            FileInfo(path=f"{path}sub/", name="sub", is_directory=True, size=0 if sized else None),
            FileInfo(path=f"{path}a.txt", name="a.txt", is_directory=False, size=4),
        ],
    )


def _found() -> SearchResult:
    return SearchResult(
        query="report",
        results=[FileInfo(path="/docs/report.pdf", name="report.pdf", is_directory=False)],
        total=1,
    )


# ---------------------------------------------------------------------------
# TTLCache
# ---------------------------------------------------------------------------


class TestTTLCache:
    def test_hit_within_ttl(self):
        clock = FakeClock()
        cache: TTLCache[str, int] = TTLCache(clock=clock)
        cache.set_entry("k", 1, ttl=10)
        clock.advance(9)
        assert cache.get_entry("k") == 1

    def test_miss_after_expiry(self):
        clock = FakeClock()
        cache: TTLCache[str, int] = TTLCache(clock=clock)
        cache.set_entry("k", 1, ttl=10)
        clock.advance(11)
        assert cache.get_entry("k") is None
        assert cache.stats()["expired"] == 1
        assert len(cache) == 0

    def test_prunes_least_recently_used(self):
        clock = FakeClock()
        cache: TTLCache[str, int] = TTLCache(max_items=5, prune_percentage=20, clock=clock)
        for i in range(5):
            cache.set_entry(f"k{i}", i, ttl=100)
            clock.advance(1)
        cache.get_entry("k0")
        cache.set_entry("k5", 5, ttl=100)

        assert len(cache) == 4
        assert "k0" in cache
        assert "k1" not in cache
        assert "k2" not in cache

    def test_prune_prefers_expired(self):
        clock = FakeClock()
        cache: TTLCache[str, int] = TTLCache(max_items=3, prune_percentage=20, clock=clock)
        cache.set_entry("old", 0, ttl=1)
        cache.set_entry("a", 1, ttl=100)
        cache.set_entry("b", 2, ttl=100)
        clock.advance(5)
        cache.set_entry("c", 3, ttl=100)

        assert "old" not in cache
        assert all(k in cache for k in ("a", "b", "c"))

    def test_stats(self):
        cache: TTLCache[str, int] = TTLCache(clock=FakeClock())
        cache.set_entry("k", 1)
        cache.get_entry("k")
        cache.get_entry("missing")
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["size"] == 1
        assert stats["hit_rate"] == 0.5


# ---------------------------------------------------------------------------
# DirectoryCache
# ---------------------------------------------------------------------------


class TestDirectoryCache:
    def test_round_trip_normalizes_sub_path(self):
        cache = DirectoryCache(clock=FakeClock())
        listing = _listing()
        cache.set("m1", "/reports", listing, ttl=60)
        assert cache.get("m1", "/reports/") == listing

    def test_hits_are_copies(self):
        cache = DirectoryCache(clock=FakeClock())
        listing = _listing()
        cache.set("m1", "/", listing, ttl=60)
        listing.items.clear()

        hit = cache.get("m1", "/")
        assert hit is not None
        hit.items[0].name = "renamed"
        hit.items.pop()

        again = cache.get("m1", "/")
        assert again is not None
        assert [item.name for item in again.items] == ["sub", "a.txt"]

    def test_zero_ttl_is_not_stored(self):
        cache = DirectoryCache(clock=FakeClock())
        cache.set("m1", "/", _listing(), ttl=0)
        assert cache.get("m1", "/") is None

    def test_expires(self):
        clock = FakeClock()
        cache = DirectoryCache(clock=clock)
        cache.set("m1", "/", _listing(), ttl=60)
        clock.advance(61)
        assert cache.get("m1", "/") is None

    def test_listing_without_directory_sizes_is_a_miss(self):
        cache = DirectoryCache(clock=FakeClock())
        cache.set("m1", "/", _listing(sized=False), ttl=60)
        assert cache.get("m1", "/") is None
        assert len(cache) == 0
        assert cache.stats()["hits"] == 0

    def test_invalidate_mount(self):
        cache = DirectoryCache(clock=FakeClock())
        cache.set("m1", "/", _listing(), ttl=60)
        cache.set("m1", "/a/", _listing("/a/"), ttl=60)
        cache.set("m2", "/", _listing(), ttl=60)

        assert cache.invalidate_mount("m1") == 2
        assert cache.get("m1", "/") is None
        assert cache.get("m2", "/") is not None

    def test_invalidate_path_and_ancestors(self):
        cache = DirectoryCache(clock=FakeClock())
        for sub in ("/", "/a/", "/a/b/", "/c/"):
            cache.set("m1", sub, _listing(sub), ttl=60)

        assert cache.invalidate_path_and_ancestors("m1", "/a/b/") == 3
        assert cache.get("m1", "/c/") is not None


# ---------------------------------------------------------------------------
# PresignedUrlCache
# ---------------------------------------------------------------------------


class TestPresignedUrlCache:
    def test_isolated_per_caller(self):
        cache = PresignedUrlCache(clock=FakeClock())
        cache.set("acct", "a.txt", False, SCOPE, "https://signed", expires_in=3600)
        cached = cache.get("acct", "a.txt", False, SCOPE)
        assert cached is not None
        assert cached.url == "https://signed"
        assert cache.get("acct", "a.txt", False, ("scoped", "key-1")) is None
        assert cache.get("acct", "a.txt", True, SCOPE) is None

    def test_entry_never_outlives_url(self):
        clock = FakeClock()
        cache = PresignedUrlCache(clock=clock)
        cache.set("acct", "a.txt", False, SCOPE, "https://signed", expires_in=100)
        clock.advance(89)
        assert cache.get("acct", "a.txt", False, SCOPE) is not None
        clock.advance(2)
        assert cache.get("acct", "a.txt", False, SCOPE) is None

    def test_hit_reports_remaining_lifetime(self):
        clock = FakeClock()
        cache = PresignedUrlCache(clock=clock)
        cache.set("acct", "a.txt", False, SCOPE, "https://signed", expires_in=3600)
        clock.advance(600)

        cached = cache.get("acct", "a.txt", False, SCOPE)
        assert cached is not None
        assert cached.expires_in == 3000

    def test_direct_links_use_custom_host_ttl(self):
        clock = FakeClock()
        cache = PresignedUrlCache(clock=clock)
        cache.set(
            "acct", "a.txt", False, SCOPE, "https://cdn/a.txt", expires_in=10, is_direct=True
        )
        clock.advance(CUSTOM_HOST_TTL - 1)
        cached = cache.get("acct", "a.txt", False, SCOPE)
        assert cached is not None
        assert cached.url == "https://cdn/a.txt"
        assert cached.is_direct

    def test_invalidate_config_and_caller(self):
        cache = PresignedUrlCache(clock=FakeClock())
        cache.set("acct", "a.txt", False, SCOPE, "u1", expires_in=3600)
        cache.set("acct", "b.txt", False, ("scoped", "k"), "u2", expires_in=3600)
        cache.set("other", "a.txt", False, SCOPE, "u3", expires_in=3600)

        assert cache.invalidate_caller("scoped", "k") == 1
        assert cache.invalidate_config("acct") == 1
        cached = cache.get("other", "a.txt", False, SCOPE)
        assert cached is not None
        assert cached.url == "u3"


class TestGatewayCaches:
    def test_with_clock_shares_clock(self):
        clock = FakeClock()
        caches = GatewayCaches.with_clock(clock)
        caches.directory.set("m1", "/", _listing(), ttl=10)
        clock.advance(11)
        assert caches.directory.get("m1", "/") is None

    def test_invalidate_mount_clears_listings(self):
        caches = GatewayCaches.with_clock(FakeClock())
        caches.directory.set("m1", "/", _listing(), ttl=10)
        assert caches.invalidate_mount("m1") == 1

    def test_invalidate_mount_clears_searches(self):
        caches = GatewayCaches.with_clock(FakeClock())
        caches.search.set("report", None, 1000, SEARCH_SCOPE, _found())
        caches.search.set("report", "/a", 1000, SEARCH_SCOPE, _found(), mount_id="m1")
        caches.search.set("report", "/b", 1000, SEARCH_SCOPE, _found(), mount_id="m2")

        assert caches.invalidate_mount("m1") == 2
        assert caches.search.get("report", "/b", 1000, SEARCH_SCOPE) is not None


# ---------------------------------------------------------------------------
# SearchCache
# ---------------------------------------------------------------------------


class TestSearchCache:
    def test_query_is_case_insensitive(self):
        cache = SearchCache(clock=FakeClock())
        cache.set("Report", None, 1000, SEARCH_SCOPE, _found())
        assert cache.get(" report ", None, 1000, SEARCH_SCOPE) is not None

    def test_keyed_by_path_limit_and_caller(self):
        cache = SearchCache(clock=FakeClock())
        cache.set("report", None, 1000, SEARCH_SCOPE, _found())

        assert cache.get("report", "/docs", 1000, SEARCH_SCOPE) is None
        assert cache.get("report", None, 10, SEARCH_SCOPE) is None
        assert cache.get("report", None, 1000, ("scoped", "key-1", "/docs/")) is None

    def test_expires_after_default_ttl(self):
        clock = FakeClock()
        cache = SearchCache(clock=clock)
        cache.set("report", None, 1000, SEARCH_SCOPE, _found())
        clock.advance(DEFAULT_SEARCH_TTL + 1)
        assert cache.get("report", None, 1000, SEARCH_SCOPE) is None

    def test_hits_are_copies(self):
        cache = SearchCache(clock=FakeClock())
        cache.set("report", None, 1000, SEARCH_SCOPE, _found())

        hit = cache.get("report", None, 1000, SEARCH_SCOPE)
        assert hit is not None
        hit.results.clear()

        again = cache.get("report", None, 1000, SEARCH_SCOPE)
        assert again is not None
        assert [info.name for info in again.results] == ["report.pdf"]
