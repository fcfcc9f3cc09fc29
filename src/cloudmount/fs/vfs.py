"""VirtualFileSystem: the single entry point over every mounted storage account.

Each operation resolves its path to a mount and driver, checks that the
driver declares the capability the operation belongs to, and dispatches.
Batch operations live here because their items may span mounts.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .exceptions import (
    BadRequestError,
    CapabilityNotSupportedError,
    CloudMountError,
    MountNotFoundError,
)
from .protocol import Capability
from .types import (
    BatchResult,
    CrossAccountCopy,
    FileInfo,
    ItemOutcome,
    ItemStatus,
    ListResult,
    SearchResult,
)
from .utils import is_within, match_rank, secure_path

if TYPE_CHECKING:
    from cloudmount.models.mounts import Mount

    from .mounts import MountResolver, ResolvedPath
    from .permissions import CallerIdentity
    from .protocol import StorageDriver
    from .types import (
        AbortResult,
        CompletedPart,
        CopyResult,
        DeleteResult,
        DownloadResult,
        DriverStats,
        MkdirResult,
        MultipartCompleteResult,
        MultipartSession,
        PresignedUrl,
        ProxyUrl,
        RenameResult,
        WriteResult,
    )

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_RESULTS = 1000
"""Ranked matches kept per search."""

DEFAULT_SEARCH_LIMIT = 50
MAX_SEARCH_LIMIT = 200
MIN_SEARCH_QUERY_LENGTH = 2


class VirtualFileSystem:
    """Routes virtual-path operations to storage drivers.

    Presents every active mount as one namespace. Capability checks happen
    before any backend call, so an unsupported operation fails with
    :class:`CapabilityNotSupportedError` without touching storage.
    """

    def __init__(self, resolver: MountResolver) -> None:
        self._resolver = resolver

    @property
    def resolver(self) -> MountResolver:
        return self._resolver

    # ------------------------------------------------------------------
    # Dispatch helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require(driver: StorageDriver, capability: Capability, operation: str) -> None:
        if not driver.has_capability(capability):
            raise CapabilityNotSupportedError(
                f"{driver.get_type()} driver does not support {operation}"
            )

    async def _resolve(
        self, path: str, caller: CallerIdentity, capability: Capability, operation: str
    ) -> ResolvedPath:
        target = await self._resolver.resolve(path, caller)
        self._require(target.driver, capability, operation)
        return target

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Clean up every cached driver."""
        await self._resolver.close()

    async def get_stats(self, path: str, caller: CallerIdentity) -> DriverStats:
        target = await self._resolver.resolve(path, caller)
        return await target.driver.get_stats()

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    async def _list_mounts(self, path: str, caller: CallerIdentity) -> ListResult:
        """Mounts directly below ``path`` shown as directories."""
        entries: dict[str, FileInfo] = {}
        for mount in await self._resolver.visible_mounts(caller):
            mount_path = mount.mount_path.rstrip("/")
            if not mount_path or not is_within(mount_path, path) or mount_path == path.rstrip("/"):
                continue
            name = mount_path[len(path.rstrip("/")):].strip("/").split("/", 1)[0]
            if name in entries:
                continue
            entries[name] = FileInfo(
                path=f"{path.rstrip('/')}/{name}/",
                name=name,
                is_directory=True,
                size=0,
                mount_id=mount.id,
                storage_type=mount.storage_type,
                is_mount=True,
            )
        return ListResult(
            path=path,
            items=sorted(entries.values(), key=lambda item: item.name),
            is_root=path == "/",
        )

    async def list_directory(self, path: str, caller: CallerIdentity) -> ListResult:
        """List one level of a directory.

        ``/`` lists the caller's visible mounts. A path above a nested
        mount that no mount owns lists the mounts below it.
        """
        path = secure_path(path, is_directory=True)
        if path == "/":
            return await self._list_mounts(path, caller)

        try:
            target = await self._resolve(path, caller, Capability.READER, "list_directory")
        except MountNotFoundError:
            listing = await self._list_mounts(path, caller)
            if listing.items:
                return listing
            raise
        return await target.driver.list_directory(target, caller=caller)

    async def get_file_info(self, path: str, caller: CallerIdentity) -> FileInfo:
        target = await self._resolve(path, caller, Capability.READER, "get_file_info")
        return await target.driver.get_file_info(target, caller=caller)

    async def download_file(
        self,
        path: str,
        caller: CallerIdentity,
        *,
        byte_range: str | None = None,
        force_download: bool = False,
    ) -> DownloadResult:
        target = await self._resolve(path, caller, Capability.READER, "download_file")
        return await target.driver.download_file(
            target, byte_range=byte_range, force_download=force_download
        )

    async def exists(self, path: str, caller: CallerIdentity) -> bool:
        """True when the path exists. Paths owned by no mount do not exist."""
        if secure_path(path) == "/":
            return True
        try:
            target = await self._resolve(path, caller, Capability.READER, "exists")
        except MountNotFoundError:
            return False
        return await target.driver.exists(target)

    async def search(
        self,
        query: str,
        caller: CallerIdentity,
        *,
        path: str | None = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
        offset: int = 0,
        max_results: int = DEFAULT_SEARCH_RESULTS,
    ) -> SearchResult:
        """Search file names across every visible mount, or the one owning ``path``.

        At most ``max_results`` ranked matches are kept; ``offset`` and
        ``limit`` select the page returned. Matches are cached per caller
        until a searched mount changes. A mount whose search fails is
        logged and skipped.

        Raises:
            BadRequestError: query shorter than two characters, or bad paging.
        """
        query = query.strip()
        if len(query) < MIN_SEARCH_QUERY_LENGTH:
            raise BadRequestError(
                f"Search query must be at least {MIN_SEARCH_QUERY_LENGTH} characters"
            )
        if not 1 <= limit <= MAX_SEARCH_LIMIT:
            raise BadRequestError(f"limit must be between 1 and {MAX_SEARCH_LIMIT}")
        if offset < 0:
            raise BadRequestError("offset must not be negative")

        scopes: list[tuple[Mount, str]] = []
        if path is not None and secure_path(path) != "/":
            path = secure_path(path)
            mount, sub_path = await self._resolver.find_mount(path, caller)
            scopes.append((mount, sub_path))
        else:
            path = None
            scopes.extend((mount, "/") for mount in await self._resolver.visible_mounts(caller))

        cache = self._resolver.caches.search
        cache_scope = caller.cache_scope
        scope = (*cache_scope, caller.allowed_path_prefix) if cache_scope else None

        found = cache.get(query, path, max_results, scope) if scope else None
        if found is not None:
            logger.debug("Search cache hit: %r", query)
            found.cached = True
        else:
            found = await self._search_mounts(query, caller, scopes, max_results)
            if scope and found.total:
                cache.set(
                    query,
                    path,
                    max_results,
                    scope,
                    found,
                    mount_id=scopes[0][0].id if path is not None else None,
                )

        found.results = found.results[offset : offset + limit]
        found.offset = offset
        found.limit = limit
        return found

    async def _search_mounts(
        self,
        query: str,
        caller: CallerIdentity,
        scopes: list[tuple[Mount, str]],
        max_results: int,
    ) -> SearchResult:
        results: list[FileInfo] = []
        for mount, sub_path in scopes:
            try:
                driver = await self._resolver.get_driver(mount)
                self._require(driver, Capability.READER, "search")
                found = await driver.search(
                    query, mount, sub_path=sub_path, max_results=max_results
                )
            except CloudMountError:
                logger.warning("Search failed on mount %s", mount.mount_path, exc_info=True)
                continue
            results.extend(info for info in found if caller.can_access(info.path))

        results.sort(key=lambda info: (match_rank(info.name, query) or 0, info.name.lower()))
        results = results[:max_results]
        return SearchResult(
            query=query, results=results, total=len(results), mounts_searched=len(scopes)
        )

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    async def upload_file(
        self,
        path: str,
        content: bytes,
        caller: CallerIdentity,
        *,
        file_name: str | None = None,
    ) -> WriteResult:
        target = await self._resolve(path, caller, Capability.WRITER, "upload_file")
        return await target.driver.upload_file(
            target, content, file_name=file_name, caller=caller
        )

    async def update_file(
        self, path: str, content: bytes | str, caller: CallerIdentity
    ) -> WriteResult:
        target = await self._resolve(path, caller, Capability.WRITER, "update_file")
        return await target.driver.update_file(target, content)

    async def create_directory(self, path: str, caller: CallerIdentity) -> MkdirResult:
        target = await self._resolve(
            secure_path(path, is_directory=True), caller, Capability.WRITER, "create_directory"
        )
        return await target.driver.create_directory(target)

    async def remove_item(self, path: str, caller: CallerIdentity) -> DeleteResult:
        target = await self._resolve(path, caller, Capability.WRITER, "remove_item")
        return await target.driver.remove_item(target)

    async def rename_item(
        self, source_path: str, target_path: str, caller: CallerIdentity
    ) -> RenameResult:
        source = await self._resolve(source_path, caller, Capability.ATOMIC, "rename_item")
        target = await self._resolver.resolve(target_path, caller)
        return await source.driver.rename_item(source, target)

    async def copy_item(
        self, source_path: str, target_path: str, caller: CallerIdentity
    ) -> CopyResult | CrossAccountCopy:
        """Copy within or across mounts.

        Between accounts the result is a :class:`CrossAccountCopy` whose
        signed URL pairs the caller uses to move the bytes.
        """
        source = await self._resolve(source_path, caller, Capability.ATOMIC, "copy_item")
        if source.is_directory and not target_path.endswith("/"):
            target_path += "/"
        target = await self._resolve(target_path, caller, Capability.WRITER, "copy_item")
        return await source.driver.copy_item(source, target)

    async def confirm_cross_account_copy(self, target_path: str, caller: CallerIdentity) -> bool:
        """Verify a caller-driven transfer landed and refresh the target's caches."""
        target = await self._resolve(
            target_path, caller, Capability.ATOMIC, "confirm_cross_account_copy"
        )
        return await target.driver.confirm_cross_account_copy(target)

    # ------------------------------------------------------------------
    # Batch operations
    # ------------------------------------------------------------------

    async def batch_remove_items(self, paths: list[str], caller: CallerIdentity) -> BatchResult:
        """Remove each path in turn. One failure never stops the batch."""
        result = BatchResult()
        for path in paths:
            try:
                await self.remove_item(path, caller)
            except CloudMountError as e:
                logger.warning("Batch remove failed for %s: %s", path, e.message)
                result.add(ItemOutcome(path=path, status=ItemStatus.FAILED, error=e.message))
                continue
            result.add(ItemOutcome(path=path, status=ItemStatus.SUCCESS))
        logger.info(
            "Batch remove: %d succeeded, %d failed", result.success_count, len(result.failures)
        )
        return result

    async def batch_copy_items(
        self, items: list[tuple[str, str]], caller: CallerIdentity
    ) -> BatchResult:
        """Copy each ``(source, target)`` pair in turn.

        Cross-account pairs produce transfer instructions in
        ``cross_account`` instead of an item outcome.
        """
        result = BatchResult()
        for source_path, target_path in items:
            if not source_path or not target_path:
                result.add(
                    ItemOutcome(
                        path=source_path or "",
                        status=ItemStatus.FAILED,
                        error="Source and target paths are required",
                    )
                )
                continue
            try:
                copied = await self.copy_item(source_path, target_path, caller)
            except CloudMountError as e:
                logger.warning("Batch copy failed for %s: %s", source_path, e.message)
                result.add(
                    ItemOutcome(path=source_path, status=ItemStatus.FAILED, error=e.message)
                )
                continue

            if isinstance(copied, CrossAccountCopy):
                result.cross_account.append(copied)
                continue
            result.details.append(copied)
            result.add(
                ItemOutcome(
                    path=source_path,
                    status=copied.status,
                    error=copied.message if copied.status == ItemStatus.FAILED else None,
                    renamed_to=copied.target if copied.renamed else None,
                )
            )
        logger.info(
            "Batch copy: %d succeeded, %d failed, %d cross-account",
            result.success_count,
            len(result.failures),
            len(result.cross_account),
        )
        return result

    # ------------------------------------------------------------------
    # Presigned URLs
    # ------------------------------------------------------------------

    async def generate_presigned_url(
        self,
        path: str,
        caller: CallerIdentity,
        *,
        operation: str = "get",
        force_download: bool = False,
        expires_in: int | None = None,
    ) -> PresignedUrl:
        target = await self._resolve(
            path, caller, Capability.PRESIGNED, "generate_presigned_url"
        )
        return await target.driver.generate_presigned_url(
            target,
            operation=operation,
            force_download=force_download,
            expires_in=expires_in,
            caller=caller,
            use_cache=caller.cache_scope is not None,
        )

    async def generate_upload_url(
        self,
        path: str,
        caller: CallerIdentity,
        *,
        file_name: str | None = None,
        expires_in: int | None = None,
    ) -> PresignedUrl:
        target = await self._resolve(path, caller, Capability.PRESIGNED, "generate_upload_url")
        return await target.driver.generate_upload_url(
            target, file_name=file_name, expires_in=expires_in
        )

    async def commit_presigned_upload(
        self,
        path: str,
        caller: CallerIdentity,
        *,
        file_size: int | None = None,
        etag: str | None = None,
    ) -> WriteResult:
        target = await self._resolve(
            path, caller, Capability.PRESIGNED, "commit_presigned_upload"
        )
        return await target.driver.commit_presigned_upload(
            target, file_size=file_size, etag=etag, caller=caller
        )

    # ------------------------------------------------------------------
    # Multipart uploads
    # ------------------------------------------------------------------

    async def initialize_multipart_upload(
        self,
        path: str,
        file_name: str,
        file_size: int,
        caller: CallerIdentity,
        *,
        part_size: int | None = None,
        part_count: int | None = None,
    ) -> MultipartSession:
        target = await self._resolve(
            path, caller, Capability.MULTIPART, "initialize_multipart_upload"
        )
        return await target.driver.initialize_multipart_upload(
            target,
            file_name=file_name,
            file_size=file_size,
            part_size=part_size,
            part_count=part_count,
        )

    async def complete_multipart_upload(
        self,
        path: str,
        upload_id: str,
        parts: list[CompletedPart],
        file_name: str,
        caller: CallerIdentity,
        *,
        file_size: int | None = None,
    ) -> MultipartCompleteResult:
        target = await self._resolve(
            path, caller, Capability.MULTIPART, "complete_multipart_upload"
        )
        return await target.driver.complete_multipart_upload(
            target,
            upload_id=upload_id,
            parts=parts,
            file_name=file_name,
            file_size=file_size,
            caller=caller,
        )

    async def abort_multipart_upload(
        self, path: str, upload_id: str, file_name: str, caller: CallerIdentity
    ) -> AbortResult:
        target = await self._resolve(
            path, caller, Capability.MULTIPART, "abort_multipart_upload"
        )
        return await target.driver.abort_multipart_upload(
            target, upload_id=upload_id, file_name=file_name
        )

    async def initialize_backend_multipart_upload(
        self, path: str, caller: CallerIdentity, *, file_size: int | None = None
    ) -> MultipartSession:
        target = await self._resolve(
            path, caller, Capability.MULTIPART, "initialize_backend_multipart_upload"
        )
        return await target.driver.initialize_backend_multipart_upload(
            target, file_size=file_size
        )

    async def upload_backend_part(
        self,
        path: str,
        upload_id: str,
        part_number: int,
        data: bytes,
        caller: CallerIdentity,
    ) -> CompletedPart:
        target = await self._resolve(path, caller, Capability.MULTIPART, "upload_backend_part")
        return await target.driver.upload_backend_part(
            target, upload_id=upload_id, part_number=part_number, data=data
        )

    async def complete_backend_multipart_upload(
        self,
        path: str,
        upload_id: str,
        parts: list[CompletedPart],
        caller: CallerIdentity,
        *,
        file_size: int | None = None,
    ) -> MultipartCompleteResult:
        target = await self._resolve(
            path, caller, Capability.MULTIPART, "complete_backend_multipart_upload"
        )
        return await target.driver.complete_backend_multipart_upload(
            target, upload_id=upload_id, parts=parts, file_size=file_size, caller=caller
        )

    async def abort_backend_multipart_upload(
        self, path: str, upload_id: str, caller: CallerIdentity
    ) -> AbortResult:
        target = await self._resolve(
            path, caller, Capability.MULTIPART, "abort_backend_multipart_upload"
        )
        return await target.driver.abort_backend_multipart_upload(target, upload_id=upload_id)

    # ------------------------------------------------------------------
    # Proxy
    # ------------------------------------------------------------------

    async def generate_proxy_url(
        self, path: str, caller: CallerIdentity, *, download: bool = False
    ) -> ProxyUrl:
        target = await self._resolve(path, caller, Capability.PROXY, "generate_proxy_url")
        return await target.driver.generate_proxy_url(target, download=download)

