"""Filename search over full, recursive listings."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from cloudmount.fs.types import FileInfo
from cloudmount.fs.utils import match_rank

from .context import S3Operations, strip_etag
from .errors import handle_fs_errors
from .keys import key_name
from .paging import iter_pages

if TYPE_CHECKING:
    from cloudmount.models.mounts import Mount

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 1000


class S3SearchOperations(S3Operations):
    """Case-insensitive filename search."""

    async def search(
        self,
        query: str,
        mount: Mount,
        *,
        sub_path: str = "/",
        max_results: int = DEFAULT_MAX_RESULTS,
    ) -> list[FileInfo]:
        """Find files under ``sub_path`` whose names contain ``query``.

        Walks every page under the prefix; directory markers are skipped.
        Results are ranked exact, then prefix, then substring, then by name,
        and truncated to ``max_results``.
        """
        query = query.strip()
        if not query:
            return []

        prefix = self.key_for(sub_path, is_directory=True)
        ranked: list[tuple[int, str, FileInfo]] = []

        async with handle_fs_errors("search", path=mount.mount_path, provider=self.ctx.provider):
            async for page in iter_pages(self.s3, prefix, page_size=self.settings.page_size):
                for obj in page.objects:
                    key = obj["Key"]
                    if key.endswith("/"):
                        continue
                    name = key_name(key)
                    rank = match_rank(name, query)
                    if rank is None:
                        continue
                    ranked.append(
                        (
                            rank,
                            name.lower(),
                            FileInfo(
                                path=self.virtual_path(mount, key),
                                name=name,
                                is_directory=False,
                                size=int(obj.get("Size", 0)),
                                modified=obj.get("LastModified") or datetime.now(UTC),
                                etag=strip_etag(obj.get("ETag")),
                                key=key,
                                mount_id=mount.id,
                                storage_type=mount.storage_type,
                            ),
                        )
                    )

        ranked.sort(key=lambda entry: (entry[0], entry[1]))
        logger.debug("Search %r in %s matched %d objects", query, mount.mount_path, len(ranked))
        return [info for _, _, info in ranked[:max_results]]
