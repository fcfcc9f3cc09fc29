"""Directory markers and prefix-based directory helpers.

Directories are not first-class objects. A directory exists when its
zero-byte marker exists, or implicitly when any object shares its key as
a prefix.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from botocore.exceptions import ClientError

from cloudmount.fs.utils import DIRECTORY_CONTENT_TYPE

from .errors import is_not_found
from .keys import parent_key
from .paging import DEFAULT_PAGE_SIZE, iter_pages

if TYPE_CHECKING:
    from .client import AsyncS3Client

logger = logging.getLogger(__name__)

MODIFIED_METADATA_KEY = "last-modified"
CREATED_METADATA_KEY = "created"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def directory_key(key: str) -> str:
    """``key`` with a trailing slash. The empty bucket-root key stays empty."""
    return key if not key or key.endswith("/") else key + "/"


async def object_exists(s3: AsyncS3Client, key: str) -> bool:
    """True when ``key`` exists as an object. Other errors propagate."""
    try:
        await s3.head_object(key)
    except ClientError as e:
        if is_not_found(e):
            return False
        raise
    return True


async def directory_exists(s3: AsyncS3Client, key: str, prefix: str = "") -> bool:
    """Marker first, then a one-key listing under the prefix.

    The account prefix itself is the mount root and always exists.
    """
    key = directory_key(key)
    if key == prefix or await object_exists(s3, key):
        return True
    response = await s3.list_objects_v2(Prefix=key, MaxKeys=1)
    return bool(response.get("Contents"))


async def create_marker(s3: AsyncS3Client, key: str) -> None:
    """Write the zero-byte marker for directory ``key``."""
    now = _now_iso()
    await s3.put_object(
        directory_key(key),
        b"",
        ContentType=DIRECTORY_CONTENT_TYPE,
        Metadata={MODIFIED_METADATA_KEY: now, CREATED_METADATA_KEY: now},
    )
    logger.debug("Created directory marker %s", key)


async def ensure_parent_marker(s3: AsyncS3Client, key: str, prefix: str = "") -> None:
    """Create the marker of ``key``'s parent directory if the directory is missing.

    Failures are logged; callers carry on without the marker.
    """
    parent = parent_key(key)
    if not parent or parent == prefix:
        return
    try:
        if not await directory_exists(s3, parent, prefix):
            await create_marker(s3, parent)
    except Exception:
        logger.warning("Could not create parent directory marker %s", parent, exc_info=True)


async def touch_parent_directories(
    s3: AsyncS3Client,
    key: str,
    prefix: str = "",
    *,
    skip_missing: bool = False,
) -> None:
    """Refresh the modified time of every directory marker above ``key``.

    Walks upward from the directory containing ``key`` (or ``key`` itself
    when it is a directory) and stops at the account prefix. Missing
    markers are created unless ``skip_missing`` is set, which deletions
    use so that removed directories are not resurrected. Best effort:
    failures are logged, never raised.
    """
    current = key if key.endswith("/") else parent_key(key)
    seen: set[str] = set()

    while current and current != prefix and current not in seen:
        seen.add(current)
        try:
            metadata: dict[str, str] = {}
            try:
                head = await s3.head_object(current)
                metadata = dict(head.get("Metadata") or {})
                exists = True
            except ClientError as e:
                if not is_not_found(e):
                    raise
                exists = False

            if exists or not skip_missing:
                metadata[MODIFIED_METADATA_KEY] = _now_iso()
                await s3.put_object(
                    current, b"", ContentType=DIRECTORY_CONTENT_TYPE, Metadata=metadata
                )
            else:
                logger.debug("Skipping missing directory marker %s", current)
        except Exception:
            logger.warning("Failed to touch directory marker %s", current, exc_info=True)

        current = parent_key(current)


async def marker_modified(s3: AsyncS3Client, key: str) -> datetime:
    """Modified time of a directory's marker, or now when it has none."""
    if not key:
        return datetime.now(UTC)
    try:
        head = await s3.head_object(directory_key(key))
    except ClientError as e:
        if is_not_found(e):
            return datetime.now(UTC)
        raise
    return head.get("LastModified") or datetime.now(UTC)


async def prefix_size(s3: AsyncS3Client, key: str, page_size: int = DEFAULT_PAGE_SIZE) -> int:
    """Total size in bytes of every object under ``key``."""
    total = 0
    async for page in iter_pages(s3, directory_key(key), page_size=page_size):
        total += sum(int(obj.get("Size", 0)) for obj in page.objects)
    return total
