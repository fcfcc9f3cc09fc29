"""Remove, copy and rename, including collision avoidance and cross-account copies.

Same-account copies move bytes server-side with ``CopyObject``. Copies
between accounts never route bytes through the gateway: the source driver
signs a download URL, the target driver picks a free key and signs an
upload URL, and the caller performs the transfer.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from cloudmount.fs.exceptions import (
    BadRequestError,
    CapabilityNotSupportedError,
    ConflictError,
    PathNotFoundError,
    StorageError,
)
from cloudmount.fs.types import (
    CopyResult,
    CopyStats,
    CrossAccountCopy,
    DeleteResult,
    ItemStatus,
    RenameResult,
    TransferItem,
)
from cloudmount.fs.utils import (
    guess_mime_type,
    numbered_name,
    parent_path,
    parse_file_name,
    strip_numbered_suffix,
)

from .context import S3Operations
from .directories import (
    create_marker,
    directory_key,
    object_exists,
)
from .errors import handle_fs_errors
from .keys import key_name, parent_key
from .paging import iter_pages, map_bounded

if TYPE_CHECKING:
    from cloudmount.fs.mounts import ResolvedPath

logger = logging.getLogger(__name__)


def _as_directory(target: ResolvedPath) -> ResolvedPath:
    if target.is_directory:
        return target
    return replace(target, path=target.path + "/", sub_path=target.sub_path.rstrip("/") + "/")


def _sibling_path(path: str, name: str, is_directory: bool) -> str:
    """``path`` with its last component replaced by ``name``."""
    return parent_path(path) + name + ("/" if is_directory else "")


class S3BatchOperations(S3Operations):
    """remove_item, copy_item, rename_item and their recursive helpers."""

    # ------------------------------------------------------------------
    # Collision avoidance
    # ------------------------------------------------------------------

    async def free_file_key(self, key: str) -> tuple[str, str | None]:
        """First free key for a file copy and its new name, or ``(key, None)``.

        Tries ``base(1)ext``, ``base(2)ext``, ... in the same directory.
        """
        if not await object_exists(self.s3, key):
            return key, None
        directory = parent_key(key)
        base, ext = parse_file_name(key_name(key), self.settings.max_suffix_strips)
        counter = 1
        while True:
            name = numbered_name(base, counter, ext)
            if not await object_exists(self.s3, directory + name):
                return directory + name, name
            counter += 1

    async def free_directory_key(self, key: str, *, force: bool = False) -> tuple[str, str | None]:
        """Directory counterpart of :meth:`free_file_key`.

        ``force`` renames even when ``key`` is free, which self-copies need.
        """
        key = directory_key(key)
        if not force and not await self.dir_exists(key):
            return key, None
        directory = parent_key(key)
        base = strip_numbered_suffix(key_name(key), self.settings.max_suffix_strips)
        counter = 1
        while True:
            name = numbered_name(base, counter)
            candidate = f"{directory}{name}/"
            if not await self.dir_exists(candidate):
                return candidate, name
            counter += 1

    # ------------------------------------------------------------------
    # Recursive helpers
    # ------------------------------------------------------------------

    async def delete_recursive(self, prefix: str) -> int:
        """Delete every object under ``prefix`` and its registry rows.

        Pages run one after another; the objects of one page are deleted
        concurrently.
        """
        deleted = 0
        failed = 0

        async def _delete(key: str) -> None:
            await self.s3.delete_object(key)
            await self.delete_record(key)

        async for page in iter_pages(self.s3, prefix, page_size=self.settings.page_size):
            keys = [obj["Key"] for obj in page.objects]
            results = await map_bounded(_delete, keys, self.settings.page_concurrency)
            for key, outcome in zip(keys, results, strict=True):
                if isinstance(outcome, BaseException):
                    logger.warning("Failed to delete %s: %s", key, outcome)
                    failed += 1
                else:
                    deleted += 1

        if failed:
            raise StorageError(
                f"Failed to delete {failed} of {deleted + failed} objects under {prefix}",
                operation="delete_recursive",
                path=prefix,
                provider=self.ctx.provider,
            )
        logger.info("Deleted %d objects under %s", deleted, prefix)
        return deleted

    async def copy_recursive(
        self, source_prefix: str, target_prefix: str, *, skip_existing: bool = False
    ) -> CopyStats:
        """Server-side copy of every object under ``source_prefix``."""
        stats = CopyStats()

        async def _copy(source_key: str) -> ItemStatus:
            target_key = target_prefix + source_key[len(source_prefix):]
            if skip_existing and await object_exists(self.s3, target_key):
                return ItemStatus.SKIPPED
            await self.s3.copy_object(source_key, target_key)
            return ItemStatus.SUCCESS

        async for page in iter_pages(self.s3, source_prefix, page_size=self.settings.page_size):
            keys = [obj["Key"] for obj in page.objects]
            for key, outcome in zip(
                keys,
                await map_bounded(_copy, keys, self.settings.page_concurrency),
                strict=True,
            ):
                if isinstance(outcome, BaseException):
                    logger.warning("Failed to copy %s: %s", key, outcome)
                    stats.failed += 1
                elif outcome == ItemStatus.SKIPPED:
                    stats.skipped += 1
                else:
                    stats.success += 1
        return stats

    # ------------------------------------------------------------------
    # Remove
    # ------------------------------------------------------------------

    async def remove_item(self, target: ResolvedPath) -> DeleteResult:
        """Delete a file, or a directory with everything beneath it."""
        if target.sub_path == "/":
            raise BadRequestError(f"Cannot remove the mount root: {target.path}")

        async with handle_fs_errors("remove_item", path=target.path, provider=self.ctx.provider):
            if target.is_directory:
                key = self.key_for(target.sub_path, is_directory=True)
                if not await self.dir_exists(key):
                    raise PathNotFoundError(f"Directory not found: {target.path}")
                total = await self.delete_recursive(key)
            else:
                key = self.key_for(target.sub_path)
                if not await object_exists(self.s3, key):
                    raise PathNotFoundError(f"File not found: {target.path}")
                await self.s3.delete_object(key)
                await self.delete_record(key)
                total = 1

        await self.touch_parents(parent_key(key), skip_missing=True)
        self.invalidate(target.mount.id)
        return DeleteResult(
            success=True,
            message=f"Deleted {target.path}",
            path=target.path,
            is_directory=target.is_directory,
            total_deleted=total,
        )

    # ------------------------------------------------------------------
    # Copy
    # ------------------------------------------------------------------

    async def copy_item(
        self, source: ResolvedPath, target: ResolvedPath
    ) -> CopyResult | CrossAccountCopy:
        """Copy a file or directory, renaming the target on collision.

        Raises:
            BadRequestError: a file is copied onto a directory path.
            PathNotFoundError: the source does not exist.
        """
        if source.is_directory:
            target = _as_directory(target)
            if target.sub_path == "/":
                raise BadRequestError(f"Cannot copy onto the mount root: {target.path}")
        elif target.is_directory:
            raise BadRequestError("A file cannot be copied onto a directory path")

        if source.storage_config_id != target.storage_config_id:
            return await self.plan_cross_account_copy(source, target)

        async with handle_fs_errors("copy_item", path=source.path, provider=self.ctx.provider):
            if source.is_directory:
                result = await self._copy_directory(source, target)
            else:
                result = await self._copy_file(source, target)

        self.invalidate(target.mount.id)
        return result

    async def _copy_file(self, source: ResolvedPath, target: ResolvedPath) -> CopyResult:
        source_key = self.key_for(source.sub_path)
        if not await object_exists(self.s3, source_key):
            raise PathNotFoundError(f"Source not found: {source.path}")

        final_key, new_name = await self.free_file_key(self.key_for(target.sub_path))
        final_path = _sibling_path(target.path, new_name, False) if new_name else target.path

        parent = parent_key(final_key)
        if parent and parent != self.ctx.prefix and not await self.dir_exists(parent):
            await create_marker(self.s3, parent)

        await self.s3.copy_object(source_key, final_key)
        await self.touch_parents(final_key)
        logger.info("Copied %s to %s", source.path, final_path)
        return CopyResult(
            source=source.path,
            target=final_path,
            status=ItemStatus.SUCCESS,
            message=f"Copied as {new_name}" if new_name else "Copied",
            renamed=new_name is not None,
            original_target=target.path,
        )

    async def _copy_directory(self, source: ResolvedPath, target: ResolvedPath) -> CopyResult:
        source_key = self.key_for(source.sub_path, is_directory=True)
        target_key = self.key_for(target.sub_path, is_directory=True)
        if not await self.dir_exists(source_key):
            raise PathNotFoundError(f"Source not found: {source.path}")

        self_copy = source_key == target_key
        if not self_copy and target_key.startswith(source_key):
            raise BadRequestError("Cannot copy a directory into itself")

        final_key, new_name = await self.free_directory_key(target_key, force=self_copy)
        final_path = _sibling_path(target.path, new_name, True) if new_name else target.path

        stats = await self.copy_recursive(source_key, final_key)
        if not await object_exists(self.s3, final_key):
            await create_marker(self.s3, final_key)
        await self.touch_parents(final_key)

        logger.info(
            "Copied %s to %s (%d copied, %d failed)",
            source.path,
            final_path,
            stats.success,
            stats.failed,
        )
        return CopyResult(
            source=source.path,
            target=final_path,
            status=ItemStatus.FAILED if stats.failed else ItemStatus.SUCCESS,
            message=f"Copied as {new_name}" if new_name else "Copied",
            is_directory=True,
            renamed=new_name is not None,
            original_target=target.path,
            stats=stats,
        )

    # ------------------------------------------------------------------
    # Cross-account copy
    # ------------------------------------------------------------------

    async def plan_cross_account_copy(
        self, source: ResolvedPath, target: ResolvedPath
    ) -> CrossAccountCopy:
        """Pick a free key on the target account and sign URL pairs for the transfer."""
        peer = getattr(target.driver, "batch_ops", None)
        if not isinstance(peer, S3BatchOperations):
            raise CapabilityNotSupportedError(
                f"Cross-account copy to {target.mount.storage_type} is not supported"
            )
        expires = self.settings.cross_account_url_expiry

        async with handle_fs_errors(
            "cross_account_copy", path=source.path, provider=self.ctx.provider
        ):
            if source.is_directory:
                source_key = self.key_for(source.sub_path, is_directory=True)
                if not await self.dir_exists(source_key):
                    raise PathNotFoundError(f"Source not found: {source.path}")
                final_key, new_name = await peer.free_directory_key(
                    peer.key_for(target.sub_path, is_directory=True)
                )
                final_path = _sibling_path(target.path, new_name, True) if new_name else target.path
                items = await self._transfer_items(peer, source_key, final_key, expires)
                return CrossAccountCopy(
                    source=source.path,
                    target=final_path,
                    is_directory=True,
                    source_mount_id=source.mount.id,
                    target_mount_id=target.mount.id,
                    source_key=source_key,
                    target_key=final_key,
                    renamed=new_name is not None,
                    original_target=target.path,
                    items=items,
                )

            source_key = self.key_for(source.sub_path)
            if not await object_exists(self.s3, source_key):
                raise PathNotFoundError(f"Source not found: {source.path}")
            final_key, new_name = await peer.free_file_key(peer.key_for(target.sub_path))
            final_path = _sibling_path(target.path, new_name, False) if new_name else target.path
            file_name = key_name(source_key)
            download = self.ctx.presigner.get_url(source_key, expires_in=expires, use_cache=False)
            upload = peer.ctx.presigner.put_url(final_key, expires_in=expires)

        logger.info("Planned cross-account copy %s -> %s", source.path, final_path)
        return CrossAccountCopy(
            source=source.path,
            target=final_path,
            is_directory=False,
            source_mount_id=source.mount.id,
            target_mount_id=target.mount.id,
            source_key=source_key,
            target_key=final_key,
            renamed=new_name is not None,
            original_target=target.path,
            file_name=file_name,
            content_type=guess_mime_type(file_name),
            download_url=download.url,
            upload_url=upload.url,
        )

    async def _transfer_items(
        self, peer: S3BatchOperations, source_prefix: str, target_prefix: str, expires: int
    ) -> list[TransferItem]:
        items: list[TransferItem] = []
        async for page in iter_pages(self.s3, source_prefix, page_size=self.settings.page_size):
            for obj in page.objects:
                source_key = obj["Key"]
                if source_key == source_prefix:
                    continue
                relative = source_key[len(source_prefix):]
                target_key = target_prefix + relative
                relative_dir, _, file_name = relative.rpartition("/")
                items.append(
                    TransferItem(
                        source_key=source_key,
                        target_key=target_key,
                        file_name=file_name,
                        relative_dir=relative_dir,
                        content_type=guess_mime_type(file_name),
                        size=int(obj.get("Size", 0)),
                        download_url=self.ctx.presigner.get_url(
                            source_key, expires_in=expires, use_cache=False
                        ).url,
                        upload_url=peer.ctx.presigner.put_url(target_key, expires_in=expires).url,
                    )
                )
        return items

    async def confirm_cross_account_copy(self, target: ResolvedPath) -> bool:
        """Check that a caller-driven transfer landed, then refresh markers and caches."""
        async with handle_fs_errors(
            "confirm_cross_account_copy", path=target.path, provider=self.ctx.provider
        ):
            if target.is_directory:
                key = self.key_for(target.sub_path, is_directory=True)
                found = await self.dir_exists(key)
            else:
                key = self.key_for(target.sub_path)
                found = await object_exists(self.s3, key)

        if not found:
            logger.warning("Cross-account copy target missing: %s", target.path)
            return False
        await self.touch_parents(key)
        self.invalidate(target.mount.id)
        return True

    # ------------------------------------------------------------------
    # Rename
    # ------------------------------------------------------------------

    async def rename_item(self, source: ResolvedPath, target: ResolvedPath) -> RenameResult:
        """Move within one mount. The target must not exist.

        Raises:
            BadRequestError: file/directory mismatch or different mounts.
            PathNotFoundError: the source does not exist.
            ConflictError: the target already exists.
        """
        if source.sub_path == "/" or target.sub_path == "/":
            raise BadRequestError("Cannot rename a mount root")
        if source.is_directory != target.is_directory:
            raise BadRequestError("Source and target must both be files or both be directories")
        if source.mount.id != target.mount.id:
            raise BadRequestError("Rename must stay within one mount")

        is_dir = source.is_directory
        source_key = self.key_for(source.sub_path, is_directory=is_dir)
        target_key = self.key_for(target.sub_path, is_directory=is_dir)

        async def exists(key: str) -> bool:
            return await self.dir_exists(key) if is_dir else await object_exists(self.s3, key)

        async with handle_fs_errors("rename_item", path=source.path, provider=self.ctx.provider):
            if not await exists(source_key):
                raise PathNotFoundError(f"Source not found: {source.path}")
            if await exists(target_key):
                raise ConflictError(f"Target already exists: {target.path}")

            if is_dir:
                if target_key.startswith(source_key):
                    raise BadRequestError("Cannot move a directory into itself")
                stats = await self.copy_recursive(source_key, target_key)
                if stats.failed:
                    raise StorageError(
                        f"Failed to copy {stats.failed} objects while renaming {source.path}",
                        operation="rename_item",
                        path=source.path,
                        provider=self.ctx.provider,
                    )
                await self.delete_recursive(source_key)
            else:
                await self.s3.copy_object(source_key, target_key, MetadataDirective="COPY")
                await self.s3.delete_object(source_key)
                await self.delete_record(source_key)

        await self.touch_parents(parent_key(source_key), skip_missing=True)
        await self.touch_parents(target_key)
        self.invalidate(source.mount.id)
        logger.info("Renamed %s to %s", source.path, target.path)
        return RenameResult(
            success=True,
            message="Directory renamed" if is_dir else "File renamed",
            source=source.path,
            target=target.path,
            is_directory=is_dir,
        )
