"""Directory listing and creation."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from cloudmount.fs.exceptions import ConflictError, PathNotFoundError
from cloudmount.fs.types import FileInfo, ListResult, MkdirResult

from .context import S3Operations, strip_etag
from .directories import (
    create_marker,
    marker_modified,
    object_exists,
    prefix_size,
)
from .errors import handle_fs_errors
from .keys import key_name, parent_key
from .paging import iter_pages, map_bounded

if TYPE_CHECKING:
    from cloudmount.fs.mounts import ResolvedPath
    from cloudmount.fs.permissions import CallerIdentity

logger = logging.getLogger(__name__)


def sort_entries(items: list[FileInfo]) -> list[FileInfo]:
    """Directories first, then files, each group by name."""
    return sorted(items, key=lambda item: (not item.is_directory, item.name))


class S3DirectoryOperations(S3Operations):
    """list_directory and create_directory."""

    async def _enrich(self, entry: FileInfo) -> None:
        try:
            entry.modified = await marker_modified(self.s3, entry.key or "")
            entry.size = await prefix_size(self.s3, entry.key or "", self.settings.page_size)
        except Exception:
            logger.warning("Failed to read directory details for %s", entry.path, exc_info=True)
            if entry.modified is None:
                entry.modified = datetime.now(UTC)
            if entry.size is None:
                entry.size = 0

    async def list_directory(
        self, target: ResolvedPath, *, caller: CallerIdentity | None = None
    ) -> ListResult:
        """List one level of a directory.

        Served from the directory cache when the mount enables it. Each
        subdirectory is enriched with its marker's modified time and its
        recursive size; both fall back to now and 0.
        """
        mount = target.mount
        if mount.cache_ttl > 0:
            cached = self.ctx.caches.directory.get(mount.id, target.sub_path)
            if cached is not None:
                logger.debug("Directory cache hit: %s:%s", mount.id, target.sub_path)
                return cached

        dir_path = target.path.rstrip("/") + "/"
        prefix = self.key_for(target.sub_path, is_directory=True)
        directories: list[FileInfo] = []
        files: list[FileInfo] = []

        async with handle_fs_errors("list_directory", path=target.path, provider=self.ctx.provider):
            async for page in iter_pages(
                self.s3, prefix, delimiter="/", page_size=self.settings.page_size
            ):
                for common in page.prefixes:
                    name = common[len(prefix):].rstrip("/")
                    if not name:
                        continue
                    directories.append(
                        FileInfo(
                            path=f"{dir_path}{name}/",
                            name=name,
                            is_directory=True,
                            key=common,
                            mount_id=mount.id,
                            storage_type=mount.storage_type,
                        )
                    )
                for obj in page.objects:
                    key = obj["Key"]
                    relative = key[len(prefix):]
                    if not relative or "/" in relative:
                        continue
                    files.append(
                        FileInfo(
                            path=dir_path + relative,
                            name=relative,
                            is_directory=False,
                            size=int(obj.get("Size", 0)),
                            modified=obj.get("LastModified") or datetime.now(UTC),
                            etag=strip_etag(obj.get("ETag")),
                            key=key,
                            mount_id=mount.id,
                            storage_type=mount.storage_type,
                        )
                    )

            if not directories and not files and target.sub_path != "/":
                if not await self.dir_exists(prefix):
                    raise PathNotFoundError(f"Directory not found: {target.path}")

        await map_bounded(self._enrich, directories, self.settings.enrichment_concurrency)

        result = ListResult(
            path=dir_path,
            items=sort_entries(directories + files),
            mount_id=mount.id,
            storage_type=mount.storage_type,
        )
        if mount.cache_ttl > 0:
            self.ctx.caches.directory.set(mount.id, target.sub_path, result, mount.cache_ttl)
        return result

    async def create_directory(self, target: ResolvedPath) -> MkdirResult:
        """Create a directory marker.

        Raises:
            ConflictError: the parent directory is missing or the directory exists.
        """
        key = self.key_for(target.sub_path, is_directory=True)
        path = target.path.rstrip("/") + "/"

        async with handle_fs_errors("create_directory", path=path, provider=self.ctx.provider):
            if key == self.ctx.prefix:
                raise ConflictError(f"Directory already exists: {path}")

            parent = parent_key(key)
            if parent and parent != self.ctx.prefix and not await self.dir_exists(parent):
                raise ConflictError(f"Parent directory does not exist: {path}")

            if await object_exists(self.s3, key):
                raise ConflictError(f"Directory already exists: {path}")

            await create_marker(self.s3, key)

        await self.touch_parents(key)
        self.invalidate(target.mount.id)
        logger.info("Created directory %s", path)
        return MkdirResult(success=True, message=f"Created directory {key_name(key)}", path=path)
