"""Multipart upload lifecycle and the backend (gateway-streamed) variant.

``none -> initiated -> parts-uploading -> completed | aborted``. Completion
is idempotent: a ``NoSuchUpload`` on a retried complete is answered by
checking whether the object already landed. Aborts are retried with
backoff and then verified by listing the upload's parts, which must fail
with ``NoSuchUpload`` once the upload is really gone.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from botocore.exceptions import ClientError

from cloudmount.fs.exceptions import BadRequestError, StorageError
from cloudmount.fs.types import AbortResult, CompletedPart, MultipartCompleteResult, MultipartSession
from cloudmount.fs.utils import guess_mime_type
from cloudmount.retry import retry_async

from .context import S3Operations, strip_etag
from .directories import ensure_parent_marker
from .errors import handle_fs_errors, is_no_such_upload, translate_client_error
from .keys import key_name

if TYPE_CHECKING:
    from cloudmount.fs.mounts import ResolvedPath
    from cloudmount.fs.permissions import CallerIdentity

logger = logging.getLogger(__name__)


class MultipartLifecycle(S3Operations):
    """Create, complete and abort steps shared by both multipart variants."""

    async def _create(self, key: str) -> str:
        await ensure_parent_marker(self.s3, key, self.ctx.prefix)
        response = await self.s3.create_multipart_upload(
            key, ContentType=guess_mime_type(key_name(key))
        )
        logger.info("Started multipart upload %s for %s", response["UploadId"], key)
        return response["UploadId"]

    async def _complete(
        self,
        target: ResolvedPath,
        key: str,
        *,
        upload_id: str,
        parts: list[CompletedPart],
        file_size: int | None,
        caller: CallerIdentity | None,
    ) -> MultipartCompleteResult:
        if not parts:
            raise BadRequestError("At least one completed part is required")
        ordered = sorted(parts, key=lambda p: p.part_number)
        already_completed = False

        async with handle_fs_errors(
            "complete_multipart_upload", path=target.path, provider=self.ctx.provider
        ):
            try:
                response = await self.s3.complete_multipart_upload(
                    key,
                    upload_id=upload_id,
                    parts=[{"PartNumber": p.part_number, "ETag": p.etag} for p in ordered],
                )
            except ClientError as e:
                if not is_no_such_upload(e):
                    raise
                logger.info("Upload %s is gone, checking whether %s already exists", upload_id, key)
                try:
                    response = await self.s3.head_object(key)
                except ClientError:
                    raise translate_client_error(
                        e,
                        operation="complete_multipart_upload",
                        path=target.path,
                        provider=self.ctx.provider,
                    ) from e
                already_completed = True

        etag = strip_etag(response.get("ETag"))
        size = file_size if file_size is not None else response.get("ContentLength")
        content_type = guess_mime_type(key_name(key))
        url = self.ctx.presigner.object_url(key)

        await self.touch_parents(key)
        self.invalidate(target.mount.id)

        file_id = None
        if not already_completed:
            record = await self.record_file(
                key,
                file_name=key_name(key),
                size=int(size or 0),
                content_type=content_type,
                etag=etag,
                caller=caller,
            )
            file_id = record.id if record is not None else None

        return MultipartCompleteResult(
            success=True,
            message="Upload already completed" if already_completed else "Upload completed",
            path=target.path,
            key=key,
            etag=etag,
            location=response.get("Location") or url,
            url=url,
            size=size,
            content_type=content_type,
            file_id=file_id,
            already_completed=already_completed,
        )

    async def _abort_once(self, key: str, upload_id: str) -> bool:
        """Abort call that treats an already-missing upload as done."""
        try:
            await self.s3.abort_multipart_upload(key, upload_id=upload_id)
        except ClientError as e:
            if is_no_such_upload(e):
                return False
            raise
        return True

    async def _abort(self, target: ResolvedPath, key: str, upload_id: str) -> AbortResult:
        try:
            listing = await self.s3.list_parts(key, upload_id=upload_id)
            part_count = len(listing.get("Parts", []))
        except ClientError as e:
            if is_no_such_upload(e):
                return AbortResult(success=True, message="Upload already aborted", verified=True)
            logger.warning("Could not list parts of upload %s: %s", upload_id, e)
            part_count = 0

        try:
            await retry_async(
                lambda: self._abort_once(key, upload_id),
                self.settings.abort_retry,
                operation=f"abort multipart upload {upload_id}",
            )
        except Exception as e:
            logger.warning("Abort retries exhausted for %s, trying once more", upload_id)
            try:
                await self._abort_once(key, upload_id)
            except Exception as final:
                raise StorageError(
                    f"Failed to abort multipart upload {upload_id}: {final}",
                    operation="abort_multipart_upload",
                    path=target.path,
                    provider=self.ctx.provider,
                ) from e
            return AbortResult(success=True, message="Upload aborted on final attempt")

        try:
            await self.s3.list_parts(key, upload_id=upload_id)
        except ClientError as e:
            if is_no_such_upload(e):
                logger.info("Aborted upload %s (%d parts released)", upload_id, part_count)
                return AbortResult(success=True, message="Upload aborted", verified=True)
            logger.warning("Could not verify abort of %s", upload_id, exc_info=True)
            return AbortResult(success=True, message="Upload aborted, cleanup unverified")

        logger.warning("Upload %s still listed after abort, aborting again", upload_id)
        try:
            await self._abort_once(key, upload_id)
        except Exception:
            logger.warning("Final abort of %s failed", upload_id, exc_info=True)
            return AbortResult(success=False, message="Upload still present after abort")
        return AbortResult(success=True, message="Upload aborted after retry")


class S3BackendMultipartOperations(MultipartLifecycle):
    """Multipart uploads whose part bytes flow through the gateway."""

    async def initialize_backend_multipart_upload(
        self, target: ResolvedPath, *, file_size: int | None = None
    ) -> MultipartSession:
        if target.is_directory:
            raise BadRequestError(f"Cannot upload to a directory path: {target.path}")
        key = self.key_for(target.sub_path)
        async with handle_fs_errors(
            "initialize_backend_multipart_upload", path=target.path, provider=self.ctx.provider
        ):
            upload_id = await self._create(key)

        part_size = self.settings.recommended_part_size
        part_count = -(-file_size // part_size) if file_size else None
        return MultipartSession(
            upload_id=upload_id,
            bucket=self.s3.bucket,
            key=key,
            path=target.path,
            part_size=part_size,
            part_count=part_count,
            mount_id=target.mount.id,
            storage_type=target.mount.storage_type,
        )

    async def upload_backend_part(
        self, target: ResolvedPath, *, upload_id: str, part_number: int, data: bytes
    ) -> CompletedPart:
        key = self.key_for(target.sub_path)
        async with handle_fs_errors(
            "upload_backend_part", path=target.path, provider=self.ctx.provider
        ):
            response = await self.s3.upload_part(
                key, upload_id=upload_id, part_number=part_number, body=data
            )
        return CompletedPart(part_number=part_number, etag=response["ETag"])

    async def complete_backend_multipart_upload(
        self,
        target: ResolvedPath,
        *,
        upload_id: str,
        parts: list[CompletedPart],
        file_size: int | None = None,
        caller: CallerIdentity | None = None,
    ) -> MultipartCompleteResult:
        return await self._complete(
            target,
            self.key_for(target.sub_path),
            upload_id=upload_id,
            parts=parts,
            file_size=file_size,
            caller=caller,
        )

    async def abort_backend_multipart_upload(
        self, target: ResolvedPath, *, upload_id: str
    ) -> AbortResult:
        return await self._abort(target, self.key_for(target.sub_path), upload_id)
