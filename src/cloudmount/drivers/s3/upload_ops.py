"""Direct uploads, presigned single-request uploads and front-end multipart uploads."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from botocore.exceptions import ClientError

from cloudmount.fs.exceptions import BadRequestError, PathNotFoundError
from cloudmount.fs.types import (
    AbortResult,
    CompletedPart,
    MultipartCompleteResult,
    MultipartSession,
    PartUrl,
    PresignedUrl,
    WriteResult,
)
from cloudmount.fs.utils import guess_mime_type

from .context import strip_etag
from .errors import handle_fs_errors, is_not_found
from .keys import key_name
from .multipart_ops import MultipartLifecycle

if TYPE_CHECKING:
    from cloudmount.fs.mounts import ResolvedPath
    from cloudmount.fs.permissions import CallerIdentity

logger = logging.getLogger(__name__)


def join_file_name(path: str, file_name: str | None) -> str:
    """Append ``file_name`` to ``path`` unless ``path`` already ends with it.

    Examples:
        join_file_name("/docs/", "a.txt") -> "/docs/a.txt"
        join_file_name("/docs/a.txt", "a.txt") -> "/docs/a.txt"
        join_file_name("/docs", "a.txt") -> "/docs/a.txt"
    """
    if not file_name or path.endswith("/" + file_name):
        return path
    return path.rstrip("/") + "/" + file_name


class S3UploadOperations(MultipartLifecycle):
    """upload_file, presigned upload + commit, front-end multipart."""

    def _file_target(self, target: ResolvedPath, file_name: str | None) -> tuple[str, str]:
        """(virtual path, object key) of the file an upload writes."""
        sub_path = join_file_name(target.sub_path, file_name)
        if sub_path.endswith("/") or sub_path == "/":
            raise BadRequestError(f"A file name is required to upload into {target.path}")
        path = join_file_name(target.path, file_name)
        return path, self.key_for(sub_path)

    # ------------------------------------------------------------------
    # Direct upload
    # ------------------------------------------------------------------

    async def upload_file(
        self,
        target: ResolvedPath,
        content: bytes,
        *,
        file_name: str | None = None,
        caller: CallerIdentity | None = None,
    ) -> WriteResult:
        """Store ``content`` at ``target``, or at ``target/file_name`` for a directory target."""
        path, key = self._file_target(target, file_name)
        name = key_name(key)
        content_type = guess_mime_type(name)

        async with handle_fs_errors("upload_file", path=path, provider=self.ctx.provider):
            response = await self.s3.put_object(key, content, ContentType=content_type)

        etag = strip_etag(response.get("ETag"))
        record = await self.record_file(
            key, file_name=name, size=len(content), content_type=content_type, etag=etag, caller=caller
        )
        await self.touch_parents(key)
        self.invalidate(target.mount.id)
        logger.info("Uploaded %s (%d bytes)", path, len(content))
        return WriteResult(
            success=True,
            message="File uploaded",
            path=path,
            key=key,
            file_name=name,
            size=len(content),
            content_type=content_type,
            etag=etag,
            url=self.ctx.presigner.object_url(key),
            file_id=record.id if record is not None else None,
            slug=record.slug if record is not None else None,
        )

    # ------------------------------------------------------------------
    # Presigned single-request upload
    # ------------------------------------------------------------------

    async def generate_upload_url(
        self,
        target: ResolvedPath,
        *,
        file_name: str | None = None,
        expires_in: int | None = None,
    ) -> PresignedUrl:
        _, key = self._file_target(target, file_name)
        async with handle_fs_errors("generate_upload_url", path=target.path, provider=self.ctx.provider):
            return self.ctx.presigner.put_url(
                key, expires_in=expires_in or self.settings.upload_url_expiry
            )

    async def commit_presigned_upload(
        self,
        target: ResolvedPath,
        *,
        file_size: int | None = None,
        etag: str | None = None,
        caller: CallerIdentity | None = None,
    ) -> WriteResult:
        """Register an object a client uploaded with a signed PUT URL."""
        path, key = self._file_target(target, None)
        async with handle_fs_errors("commit_presigned_upload", path=path, provider=self.ctx.provider):
            try:
                head = await self.s3.head_object(key)
            except ClientError as e:
                if is_not_found(e):
                    raise PathNotFoundError(f"Uploaded object not found: {path}") from e
                raise

        name = key_name(key)
        size = file_size if file_size is not None else int(head.get("ContentLength") or 0)
        etag = etag or strip_etag(head.get("ETag"))
        content_type = guess_mime_type(name)

        await self.touch_parents(key)
        self.invalidate(target.mount.id)
        record = await self.record_file(
            key, file_name=name, size=size, content_type=content_type, etag=etag, caller=caller
        )
        return WriteResult(
            success=True,
            message="Upload committed",
            path=path,
            key=key,
            file_name=name,
            size=size,
            content_type=content_type,
            etag=etag,
            url=self.ctx.presigner.object_url(key),
            file_id=record.id if record is not None else None,
            slug=record.slug if record is not None else None,
        )

    # ------------------------------------------------------------------
    # Front-end multipart
    # ------------------------------------------------------------------

    async def initialize_multipart_upload(
        self,
        target: ResolvedPath,
        *,
        file_name: str,
        file_size: int,
        part_size: int | None = None,
        part_count: int | None = None,
    ) -> MultipartSession:
        """Start an upload and sign one URL per part for the client."""
        path, key = self._file_target(target, file_name)
        part_size = part_size or self.settings.recommended_part_size
        if part_size <= 0:
            raise BadRequestError("part_size must be positive")
        part_count = part_count or max(1, math.ceil(file_size / part_size))
        expires = self.ctx.presigner.expiry()

        async with handle_fs_errors(
            "initialize_multipart_upload", path=path, provider=self.ctx.provider
        ):
            upload_id = await self._create(key)
            part_urls = [
                PartUrl(
                    part_number=n,
                    url=self.ctx.presigner.part_url(
                        key, upload_id=upload_id, part_number=n, expires_in=expires
                    ),
                )
                for n in range(1, part_count + 1)
            ]

        return MultipartSession(
            upload_id=upload_id,
            bucket=self.s3.bucket,
            key=key,
            path=path,
            part_size=part_size,
            part_count=part_count,
            part_urls=part_urls,
            mount_id=target.mount.id,
            storage_type=target.mount.storage_type,
        )

    async def complete_multipart_upload(
        self,
        target: ResolvedPath,
        *,
        upload_id: str,
        parts: list[CompletedPart],
        file_name: str,
        file_size: int | None = None,
        caller: CallerIdentity | None = None,
    ) -> MultipartCompleteResult:
        path, key = self._file_target(target, file_name)
        result = await self._complete(
            target, key, upload_id=upload_id, parts=parts, file_size=file_size, caller=caller
        )
        result.path = path
        return result

    async def abort_multipart_upload(
        self, target: ResolvedPath, *, upload_id: str, file_name: str
    ) -> AbortResult:
        _, key = self._file_target(target, file_name)
        return await self._abort(target, key, upload_id)
