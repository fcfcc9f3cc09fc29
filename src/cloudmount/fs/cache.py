"""Process-local TTL caches for directory listings, presigned URLs and searches.

Every cache takes an injected clock so expiry is testable, and both are
plain objects handed to drivers at construction. Nothing here is global.
"""

from __future__ import annotations

import logging
import math
import time
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from .utils import normalize_path

if TYPE_CHECKING:
    from collections.abc import Callable

    from .types import FileInfo, ListResult, SearchResult

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")

DEFAULT_MAX_ITEMS = 500
DEFAULT_PRUNE_PERCENTAGE = 20
DEFAULT_DIRECTORY_TTL = 300
DEFAULT_URL_TTL = 3600
DEFAULT_URL_MAX_ITEMS = 1000
DEFAULT_SEARCH_TTL = 300
CUSTOM_HOST_TTL = 7 * 86400
"""Lifetime of cached custom-domain preview links, which never expire."""

URL_EXPIRY_SAFETY = 0.9
"""Fraction of a signed URL's lifetime it may stay cached."""


@dataclass
class CacheStats:
    """Counters kept by every cache."""

    hits: int = 0
    misses: int = 0
    expired: int = 0
    invalidations: int = 0
    pruned: int = 0


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float
    last_accessed: float
    tags: dict[str, Any] = field(default_factory=dict)


class TTLCache(Generic[K, V]):
    """Bounded TTL cache with least-recently-used pruning.

    When the cache grows past ``max_items`` it drops ``prune_percentage``
    of its entries: the expired ones if there are enough of them,
    otherwise the least recently used.
    """

    def __init__(
        self,
        *,
        name: str = "TTLCache",
        max_items: int = DEFAULT_MAX_ITEMS,
        prune_percentage: int = DEFAULT_PRUNE_PERCENTAGE,
        default_ttl: float = DEFAULT_DIRECTORY_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.max_items = max_items
        self.prune_percentage = prune_percentage
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: OrderedDict[K, _Entry[V]] = OrderedDict()
        self._stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[call-overload]
        return entry is not None and self._clock() <= entry.expires_at

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    def get_entry(self, key: K) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            self._stats.misses += 1
            return None

        now = self._clock()
        if now > entry.expires_at:
            del self._entries[key]
            self._stats.expired += 1
            self._stats.misses += 1
            return None

        entry.last_accessed = now
        self._entries.move_to_end(key)
        self._stats.hits += 1
        return entry.value

    def set_entry(self, key: K, value: V, ttl: float | None = None, **tags: Any) -> None:
        now = self._clock()
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = _Entry(value, now + ttl, now, tags)
        self._entries.move_to_end(key)
        if len(self._entries) > self.max_items:
            self.prune()

    def invalidate_entry(self, key: K) -> bool:
        if self._entries.pop(key, None) is None:
            return False
        self._stats.invalidations += 1
        return True

    def invalidate_where(self, predicate: Callable[[K, dict[str, Any]], bool]) -> int:
        """Drop every entry whose ``(key, tags)`` satisfies ``predicate``."""
        doomed = [k for k, e in self._entries.items() if predicate(k, e.tags)]
        for key in doomed:
            del self._entries[key]
        self._stats.invalidations += len(doomed)
        return len(doomed)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        self._stats.invalidations += count
        return count

    def prune(self) -> int:
        now = self._clock()
        quota = math.ceil(len(self._entries) * self.prune_percentage / 100)
        expired = [k for k, e in self._entries.items() if now > e.expires_at]

        if len(expired) >= quota:
            doomed = expired
        else:
            by_age = sorted(self._entries.items(), key=lambda kv: kv[1].last_accessed)
            doomed = [k for k, _ in by_age[:quota]]

        for key in doomed:
            del self._entries[key]
        self._stats.pruned += len(doomed)
        if doomed:
            logger.debug("%s pruned %d entries", self.name, len(doomed))
        return len(doomed)

    def stats(self) -> dict[str, Any]:
        lookups = self._stats.hits + self._stats.misses
        return {
            "name": self.name,
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "expired": self._stats.expired,
            "invalidations": self._stats.invalidations,
            "pruned": self._stats.pruned,
            "size": len(self._entries),
            "hit_rate": self._stats.hits / lookups if lookups else 0.0,
        }


# =============================================================================
# Directory listings
# =============================================================================


def _copy_items(items: list[FileInfo]) -> list[FileInfo]:
    return [replace(item) for item in items]


def _copy_listing(listing: ListResult) -> ListResult:
    """A listing that shares no mutable state with ``listing``."""
    return replace(listing, items=_copy_items(listing.items))


class DirectoryCache(TTLCache[tuple[str, str], "ListResult"]):
    """Listing cache keyed by ``(mount_id, sub_path)``.

    Listings are copied in and out, so callers may mutate what they get.
    A cached listing whose directory entries lack sizes predates the
    current listing shape and is treated as a miss.
    """

    def __init__(
        self,
        *,
        max_items: int = DEFAULT_MAX_ITEMS,
        prune_percentage: int = DEFAULT_PRUNE_PERCENTAGE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(
            name="DirectoryCache",
            max_items=max_items,
            prune_percentage=prune_percentage,
            default_ttl=DEFAULT_DIRECTORY_TTL,
            clock=clock,
        )

    @staticmethod
    def _key(mount_id: str, sub_path: str) -> tuple[str, str]:
        return mount_id, normalize_path(sub_path, is_directory=True)

    def get(self, mount_id: str, sub_path: str) -> ListResult | None:
        key = self._key(mount_id, sub_path)
        listing = self.get_entry(key)
        if listing is None:
            return None
        if not listing.has_directory_sizes:
            logger.debug("Discarding stale-shaped listing for %s:%s", mount_id, sub_path)
            self._entries.pop(key, None)
            self._stats.hits -= 1
            self._stats.misses += 1
            return None
        return _copy_listing(listing)

    def set(self, mount_id: str, sub_path: str, listing: ListResult, ttl: float) -> None:
        if ttl <= 0:
            return
        self.set_entry(
            self._key(mount_id, sub_path), _copy_listing(listing), ttl, mount_id=mount_id
        )

    def invalidate(self, mount_id: str, sub_path: str) -> bool:
        return self.invalidate_entry(self._key(mount_id, sub_path))

    def invalidate_path_and_ancestors(self, mount_id: str, sub_path: str) -> int:
        """Drop the listing for ``sub_path`` and for every directory above it."""
        current = normalize_path(sub_path, is_directory=True)
        count = 0
        while True:
            if self.invalidate(mount_id, current):
                count += 1
            if current == "/":
                break
            current = current.rstrip("/").rsplit("/", 1)[0] + "/"
        return count

    def invalidate_mount(self, mount_id: str) -> int:
        count = self.invalidate_where(lambda key, _tags: key[0] == mount_id)
        if count:
            logger.debug("Invalidated %d cached listings for mount %s", count, mount_id)
        return count


# =============================================================================
# Presigned URLs
# =============================================================================


UrlKey = tuple[str, str, bool, str, str]


@dataclass(frozen=True)
class CachedUrl:
    """A cached URL and the lifetime it was signed with."""

    url: str
    expires_in: int
    """Seconds left before the URL stops working, as of the lookup."""

    is_direct: bool = False
    signed_at: float = 0.0


class PresignedUrlCache(TTLCache[UrlKey, CachedUrl]):
    """Signed-URL cache isolated per caller.

    Keyed by ``(config_id, object_key, force_download, caller_type,
    caller_id)``. Entries never outlive the URL they hold, and a hit
    reports how long the cached URL remains valid.
    """

    def __init__(
        self,
        *,
        max_items: int = DEFAULT_URL_MAX_ITEMS,
        prune_percentage: int = DEFAULT_PRUNE_PERCENTAGE,
        custom_host_ttl: float = CUSTOM_HOST_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(
            name="PresignedUrlCache",
            max_items=max_items,
            prune_percentage=prune_percentage,
            default_ttl=DEFAULT_URL_TTL,
            clock=clock,
        )
        self.custom_host_ttl = custom_host_ttl

    def get(
        self,
        config_id: str,
        object_key: str,
        force_download: bool,
        scope: tuple[str, str],
    ) -> CachedUrl | None:
        cached = self.get_entry((config_id, object_key, force_download, *scope))
        if cached is None or cached.is_direct:
            return cached
        elapsed = self._clock() - cached.signed_at
        return replace(cached, expires_in=max(0, math.floor(cached.expires_in - elapsed)))

    def set(
        self,
        config_id: str,
        object_key: str,
        force_download: bool,
        scope: tuple[str, str],
        url: str,
        *,
        expires_in: int,
        is_direct: bool = False,
    ) -> None:
        ttl = self.custom_host_ttl if is_direct else math.floor(expires_in * URL_EXPIRY_SAFETY)
        if ttl <= 0:
            return
        caller_type, caller_id = scope
        self.set_entry(
            (config_id, object_key, force_download, caller_type, caller_id),
            CachedUrl(url, expires_in, is_direct, self._clock()),
            ttl,
            config_id=config_id,
            caller_type=caller_type,
            caller_id=caller_id,
        )

    def invalidate_config(self, config_id: str) -> int:
        return self.invalidate_where(lambda _key, tags: tags.get("config_id") == config_id)

    def invalidate_caller(self, caller_type: str, caller_id: str) -> int:
        return self.invalidate_where(
            lambda _key, tags: tags.get("caller_type") == caller_type
            and tags.get("caller_id") == caller_id
        )


# =============================================================================
# Search results
# =============================================================================


SearchKey = tuple[str, str, int, str, str, str]


class SearchCache(TTLCache[SearchKey, "SearchResult"]):
    """Ranked search results per query, search path and caller.

    Keyed by ``(query, path, max_results, caller_type, caller_id,
    allowed_path_prefix)``; the query is matched case-insensitively. An
    entry stores every ranked match, so pages of one search share it.
    Searches across all mounts are dropped whenever any mount changes;
    path-limited searches only when their own mount does.
    """

    def __init__(
        self,
        *,
        max_items: int = DEFAULT_MAX_ITEMS,
        prune_percentage: int = DEFAULT_PRUNE_PERCENTAGE,
        default_ttl: float = DEFAULT_SEARCH_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(
            name="SearchCache",
            max_items=max_items,
            prune_percentage=prune_percentage,
            default_ttl=default_ttl,
            clock=clock,
        )

    @staticmethod
    def _key(
        query: str, path: str | None, max_results: int, scope: tuple[str, str, str]
    ) -> SearchKey:
        return (query.strip().lower(), path or "", max_results, *scope)

    def get(
        self, query: str, path: str | None, max_results: int, scope: tuple[str, str, str]
    ) -> SearchResult | None:
        cached = self.get_entry(self._key(query, path, max_results, scope))
        if cached is None:
            return None
        return replace(cached, results=_copy_items(cached.results))

    def set(
        self,
        query: str,
        path: str | None,
        max_results: int,
        scope: tuple[str, str, str],
        result: SearchResult,
        *,
        mount_id: str | None = None,
    ) -> None:
        """Store ``result``; ``mount_id`` names the single mount a path-limited search hit."""
        self.set_entry(
            self._key(query, path, max_results, scope),
            replace(result, results=_copy_items(result.results)),
            mount_id=mount_id,
        )

    def invalidate_mount(self, mount_id: str) -> int:
        count = self.invalidate_where(
            lambda _key, tags: tags.get("mount_id") in (None, mount_id)
        )
        if count:
            logger.debug("Invalidated %d cached searches for mount %s", count, mount_id)
        return count


@dataclass
class GatewayCaches:
    """The cache services shared by every driver of one gateway."""

    directory: DirectoryCache = field(default_factory=DirectoryCache)
    urls: PresignedUrlCache = field(default_factory=PresignedUrlCache)
    search: SearchCache = field(default_factory=SearchCache)

    @classmethod
    def with_clock(cls, clock: Callable[[], float]) -> GatewayCaches:
        return cls(
            DirectoryCache(clock=clock),
            PresignedUrlCache(clock=clock),
            SearchCache(clock=clock),
        )

    def invalidate_mount(self, mount_id: str) -> int:
        """Drop a mount's listings and every search that may include it."""
        return self.directory.invalidate_mount(mount_id) + self.search.invalidate_mount(mount_id)
