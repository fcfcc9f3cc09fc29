"""Single-object reads, in-place updates and download URLs."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from email.utils import format_datetime
from typing import TYPE_CHECKING, Any

from botocore.exceptions import ClientError

from cloudmount.fs.exceptions import BadRequestError, PathNotFoundError
from cloudmount.fs.types import DownloadResult, FileInfo, PresignedUrl, WriteResult
from cloudmount.fs.utils import (
    DEFAULT_CONTENT_TYPE,
    DIRECTORY_CONTENT_TYPE,
    base_name,
    content_disposition,
    guess_mime_type,
)

from .context import S3Operations, strip_etag
from .directories import marker_modified, object_exists
from .errors import handle_fs_errors, is_method_not_allowed, is_not_found
from .keys import key_name

if TYPE_CHECKING:
    from cloudmount.fs.mounts import ResolvedPath
    from cloudmount.fs.permissions import CallerIdentity

logger = logging.getLogger(__name__)

DOWNLOAD_CACHE_CONTROL = "public, max-age=31536000"


class S3FileOperations(S3Operations):
    """get_file_info, download_file, exists, update_file, presigned URLs."""

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def _directory_info(self, target: ResolvedPath, key: str) -> FileInfo:
        path = target.path if target.path.endswith("/") else target.path + "/"
        return FileInfo(
            path=path,
            name=base_name(path) or "/",
            is_directory=True,
            size=0,
            modified=await marker_modified(self.s3, key),
            content_type=DIRECTORY_CONTENT_TYPE,
            key=key,
            mount_id=target.mount.id,
            storage_type=target.mount.storage_type,
        )

    async def _head_or_ranged_get(self, key: str) -> dict[str, Any]:
        """HEAD the object, falling back to a one-byte GET where HEAD is refused."""
        try:
            return await self.s3.head_object(key)
        except ClientError as e:
            if not is_method_not_allowed(e):
                raise
        logger.debug("HEAD not allowed for %s, trying a ranged GET", key)
        response = await self.s3.get_object(key, byte_range="bytes=0-0")
        content_range = response.get("ContentRange") or ""
        if "/" in content_range:
            response["ContentLength"] = int(content_range.rsplit("/", 1)[1])
        return response

    async def get_file_info(
        self, target: ResolvedPath, *, caller: CallerIdentity | None = None
    ) -> FileInfo:
        async with handle_fs_errors("get_file_info", path=target.path, provider=self.ctx.provider):
            if target.sub_path == "/" or target.is_directory:
                key = self.key_for(target.sub_path, is_directory=True)
                if not await self.dir_exists(key):
                    raise PathNotFoundError(f"Directory not found: {target.path}")
                return await self._directory_info(target, key)

            key = self.key_for(target.sub_path)
            try:
                head = await self._head_or_ranged_get(key)
            except ClientError as e:
                if not is_not_found(e):
                    raise
                dir_key = key + "/"
                if await self.dir_exists(dir_key):
                    return await self._directory_info(target, dir_key)
                raise PathNotFoundError(f"File not found: {target.path}") from e

            info = FileInfo(
                path=target.path,
                name=base_name(target.path),
                is_directory=False,
                size=int(head.get("ContentLength") or 0),
                modified=head.get("LastModified") or datetime.now(UTC),
                content_type=head.get("ContentType") or DEFAULT_CONTENT_TYPE,
                etag=strip_etag(head.get("ETag")),
                key=key,
                mount_id=target.mount.id,
                storage_type=target.mount.storage_type,
            )

        if caller is not None:
            use_cache = target.mount.cache_ttl > 0
            try:
                info.preview_url = self.ctx.presigner.get_url(
                    key, caller=caller, use_cache=use_cache
                ).url
                info.download_url = self.ctx.presigner.get_url(
                    key, force_download=True, caller=caller, use_cache=use_cache
                ).url
            except Exception:
                logger.warning("Failed to sign URLs for %s", target.path, exc_info=True)
        return info

    async def exists(self, target: ResolvedPath) -> bool:
        async with handle_fs_errors("exists", path=target.path, provider=self.ctx.provider):
            if target.sub_path == "/" or target.is_directory:
                return await self.dir_exists(self.key_for(target.sub_path, True))
            key = self.key_for(target.sub_path)
            return await object_exists(self.s3, key) or await self.dir_exists(key + "/")

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    async def download_file(
        self,
        target: ResolvedPath,
        *,
        byte_range: str | None = None,
        force_download: bool = False,
    ) -> DownloadResult:
        """Fetch object bytes plus the headers a protocol layer should send.

        A ranged request answers 206 with ``Content-Range``.
        """
        if target.is_directory:
            raise BadRequestError(f"Cannot download a directory: {target.path}")
        key = self.key_for(target.sub_path)
        async with handle_fs_errors("download_file", path=target.path, provider=self.ctx.provider):
            response = await self.s3.get_object(key, byte_range=byte_range)

        name = key_name(key)
        body: bytes = response["Body"]
        headers = {
            "Content-Type": response.get("ContentType") or guess_mime_type(name),
            "Content-Length": str(response.get("ContentLength", len(body))),
            "Content-Disposition": content_disposition(name, force_download),
            "Cache-Control": DOWNLOAD_CACHE_CONTROL,
        }
        if response.get("ETag"):
            headers["ETag"] = response["ETag"]
        if response.get("LastModified"):
            headers["Last-Modified"] = format_datetime(response["LastModified"], usegmt=True)
        if response.get("ContentRange"):
            headers["Content-Range"] = response["ContentRange"]
            headers["Accept-Ranges"] = "bytes"

        status = 206 if response.get("ContentRange") else 200
        return DownloadResult(status=status, headers=headers, body=body)

    async def update_file(self, target: ResolvedPath, content: bytes | str) -> WriteResult:
        """Overwrite (or create) a small object in place."""
        body = content.encode("utf-8") if isinstance(content, str) else content
        limit = self.settings.update_size_limit
        if len(body) > limit:
            raise BadRequestError(f"Content exceeds the {limit // (1024 * 1024)}MB update limit")
        if target.is_directory:
            raise BadRequestError(f"Cannot write content to a directory: {target.path}")

        key = self.key_for(target.sub_path)
        name = key_name(key)
        content_type = guess_mime_type(name)

        async with handle_fs_errors("update_file", path=target.path, provider=self.ctx.provider):
            is_new = not await object_exists(self.s3, key)
            response = await self.s3.put_object(key, body, ContentType=content_type)

        await self.touch_parents(key)
        self.invalidate(target.mount.id)
        return WriteResult(
            success=True,
            message="File created" if is_new else "File updated",
            path=target.path,
            key=key,
            file_name=name,
            size=len(body),
            content_type=content_type,
            etag=strip_etag(response.get("ETag")),
            is_new_file=is_new,
        )

    # ------------------------------------------------------------------
    # Signed URLs
    # ------------------------------------------------------------------

    async def generate_presigned_url(
        self,
        target: ResolvedPath,
        *,
        operation: str = "get",
        force_download: bool = False,
        expires_in: int | None = None,
        caller: CallerIdentity | None = None,
        use_cache: bool = True,
    ) -> PresignedUrl:
        if target.is_directory:
            raise BadRequestError(f"Cannot sign a URL for a directory: {target.path}")
        key = self.key_for(target.sub_path)

        async with handle_fs_errors(
            "generate_presigned_url", path=target.path, provider=self.ctx.provider
        ):
            if operation == "put":
                return self.ctx.presigner.put_url(
                    key, expires_in=expires_in or self.settings.upload_url_expiry
                )
            if operation != "get":
                raise BadRequestError(f"Unsupported presign operation: {operation}")
            return self.ctx.presigner.get_url(
                key,
                expires_in=expires_in,
                force_download=force_download,
                caller=caller,
                use_cache=use_cache and target.mount.cache_ttl > 0,
            )
