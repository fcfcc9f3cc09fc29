"""Listing pages and bounded per-page concurrency.

Continuation tokens make pages strictly sequential; the items inside one
page can be processed concurrently up to an explicit limit.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Iterable

    from .client import AsyncS3Client

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_PAGE_SIZE = 1000
DEFAULT_PAGE_CONCURRENCY = 16


@dataclass
class ListingPage:
    """One ``ListObjectsV2`` response."""

    objects: list[dict[str, Any]] = field(default_factory=list)
    """``Contents`` entries (Key, Size, LastModified, ETag)."""

    prefixes: list[str] = field(default_factory=list)
    """``CommonPrefixes`` when a delimiter was used."""

    next_token: str | None = None


async def iter_pages(
    s3: AsyncS3Client,
    prefix: str,
    *,
    delimiter: str | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> AsyncIterator[ListingPage]:
    """Yield every listing page under ``prefix``, following continuation tokens."""
    token: str | None = None
    while True:
        params: dict[str, Any] = {"Prefix": prefix, "MaxKeys": page_size}
        if delimiter:
            params["Delimiter"] = delimiter
        if token:
            params["ContinuationToken"] = token

        response = await s3.list_objects_v2(**params)
        token = response.get("NextContinuationToken") if response.get("IsTruncated") else None
        yield ListingPage(
            objects=list(response.get("Contents", [])),
            prefixes=[p["Prefix"] for p in response.get("CommonPrefixes", [])],
            next_token=token,
        )
        if token is None:
            return


async def map_bounded(
    func: Callable[[T], Awaitable[R]],
    items: Iterable[T],
    limit: int = DEFAULT_PAGE_CONCURRENCY,
) -> list[R | BaseException]:
    """Run ``func`` over ``items`` with at most ``limit`` in flight.

    Results come back in input order; failures are returned in place
    rather than raised so one bad item does not cancel its siblings.
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def _run(item: T) -> R:
        async with semaphore:
            return await func(item)

    return await asyncio.gather(*(_run(item) for item in items), return_exceptions=True)
