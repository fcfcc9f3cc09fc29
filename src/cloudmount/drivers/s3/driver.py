"""S3Driver: one S3-compatible account, split into cohesive operation groups."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cloudmount.fs.base import BaseDriver
from cloudmount.fs.cache import GatewayCaches
from cloudmount.fs.protocol import Capability
from cloudmount.fs.types import DriverStats

from .batch_ops import S3BatchOperations
from .client import AsyncS3Client, create_s3_client, get_profile
from .context import S3Context, S3DriverSettings
from .directory_ops import S3DirectoryOperations
from .file_ops import S3FileOperations
from .keys import account_prefix
from .multipart_ops import S3BackendMultipartOperations
from .presign import Presigner
from .search_ops import S3SearchOperations
from .upload_ops import S3UploadOperations

if TYPE_CHECKING:
    from cloudmount.fs.credentials import Decryptor
    from cloudmount.fs.mounts import ResolvedPath
    from cloudmount.fs.permissions import CallerIdentity
    from cloudmount.fs.store import ConfigStore
    from cloudmount.fs.types import (
        AbortResult,
        CompletedPart,
        CopyResult,
        CrossAccountCopy,
        DeleteResult,
        DownloadResult,
        FileInfo,
        ListResult,
        MkdirResult,
        MultipartCompleteResult,
        MultipartSession,
        PresignedUrl,
        RenameResult,
        WriteResult,
    )
    from cloudmount.models.mounts import Mount, StorageConfig

logger = logging.getLogger(__name__)


class S3Driver(BaseDriver):
    """Driver for AWS S3, Cloudflare R2, Backblaze B2, Aliyun OSS and other S3 APIs.

    The boto3 client is built in :meth:`initialize`, not in the
    constructor, so a driver can be created cheaply and validated before
    any credentials are decrypted.
    """

    storage_type = "S3"
    capabilities = Capability.all()

    def __init__(
        self,
        config: StorageConfig,
        *,
        decryptor: Decryptor,
        secret: str,
        caches: GatewayCaches | None = None,
        store: ConfigStore | None = None,
        settings: S3DriverSettings | None = None,
    ) -> None:
        super().__init__()
        self.config = config
        self._decryptor = decryptor
        self._secret = secret
        self._caches = caches or GatewayCaches()
        self._store = store
        self._settings = settings or S3DriverSettings()
        self._s3: AsyncS3Client | None = None

        self.file_ops: S3FileOperations | None = None
        self.directory_ops: S3DirectoryOperations | None = None
        self.batch_ops: S3BatchOperations | None = None
        self.upload_ops: S3UploadOperations | None = None
        self.backend_multipart_ops: S3BackendMultipartOperations | None = None
        self.search_ops: S3SearchOperations | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        if self._initialized:
            return
        raw = create_s3_client(self.config, self._decryptor, self._secret)
        self._s3 = AsyncS3Client(raw, self.config.bucket_name)
        ctx = S3Context(
            s3=self._s3,
            config=self.config,
            prefix=account_prefix(self.config),
            presigner=Presigner(self._s3, self.config, self._caches.urls),
            caches=self._caches,
            store=self._store,
            settings=self._settings,
        )
        self.file_ops = S3FileOperations(ctx)
        self.directory_ops = S3DirectoryOperations(ctx)
        self.batch_ops = S3BatchOperations(ctx)
        self.upload_ops = S3UploadOperations(ctx)
        self.backend_multipart_ops = S3BackendMultipartOperations(ctx)
        self.search_ops = S3SearchOperations(ctx)
        self._initialized = True
        logger.info(
            "Initialized S3 driver for %s (bucket %s, provider %s)",
            self.config.id,
            self.config.bucket_name,
            self.config.provider_type,
        )

    async def cleanup(self) -> None:
        if self._s3 is not None:
            try:
                self._s3.close()
            except Exception:
                logger.warning("Failed to close S3 client for %s", self.config.id, exc_info=True)
        self._s3 = None
        await super().cleanup()

    async def get_stats(self) -> DriverStats:
        return DriverStats(
            type=self.storage_type,
            provider=self.config.provider_type or "OTHER",
            bucket=self.config.bucket_name,
            endpoint=self.config.endpoint_url,
            region=self.config.region or get_profile(self.config.provider_type).default_region,
            initialized=self._initialized,
        )

    # ------------------------------------------------------------------
    # Reader
    # ------------------------------------------------------------------

    async def list_directory(
        self, target: ResolvedPath, *, caller: CallerIdentity | None = None
    ) -> ListResult:
        self._ensure_initialized()
        assert self.directory_ops is not None
        return await self.directory_ops.list_directory(target, caller=caller)

    async def get_file_info(
        self, target: ResolvedPath, *, caller: CallerIdentity | None = None
    ) -> FileInfo:
        self._ensure_initialized()
        assert self.file_ops is not None
        return await self.file_ops.get_file_info(target, caller=caller)

    async def download_file(
        self,
        target: ResolvedPath,
        *,
        byte_range: str | None = None,
        force_download: bool = False,
    ) -> DownloadResult:
        self._ensure_initialized()
        assert self.file_ops is not None
        return await self.file_ops.download_file(
            target, byte_range=byte_range, force_download=force_download
        )

    async def exists(self, target: ResolvedPath) -> bool:
        self._ensure_initialized()
        assert self.file_ops is not None
        return await self.file_ops.exists(target)

    async def search(
        self, query: str, mount: Mount, *, sub_path: str = "/", max_results: int = 1000
    ) -> list[FileInfo]:
        self._ensure_initialized()
        assert self.search_ops is not None
        return await self.search_ops.search(
            query, mount, sub_path=sub_path, max_results=max_results
        )

    # ------------------------------------------------------------------
    # Writer
    # ------------------------------------------------------------------

    async def upload_file(
        self,
        target: ResolvedPath,
        content: bytes,
        *,
        file_name: str | None = None,
        caller: CallerIdentity | None = None,
    ) -> WriteResult:
        self._ensure_initialized()
        assert self.upload_ops is not None
        return await self.upload_ops.upload_file(
            target, content, file_name=file_name, caller=caller
        )

    async def update_file(self, target: ResolvedPath, content: bytes | str) -> WriteResult:
        self._ensure_initialized()
        assert self.file_ops is not None
        return await self.file_ops.update_file(target, content)

    async def create_directory(self, target: ResolvedPath) -> MkdirResult:
        self._ensure_initialized()
        assert self.directory_ops is not None
        return await self.directory_ops.create_directory(target)

    async def remove_item(self, target: ResolvedPath) -> DeleteResult:
        self._ensure_initialized()
        assert self.batch_ops is not None
        return await self.batch_ops.remove_item(target)

    # ------------------------------------------------------------------
    # Atomic
    # ------------------------------------------------------------------

    async def rename_item(self, source: ResolvedPath, target: ResolvedPath) -> RenameResult:
        self._ensure_initialized()
        assert self.batch_ops is not None
        return await self.batch_ops.rename_item(source, target)

    async def copy_item(
        self, source: ResolvedPath, target: ResolvedPath
    ) -> CopyResult | CrossAccountCopy:
        self._ensure_initialized()
        assert self.batch_ops is not None
        return await self.batch_ops.copy_item(source, target)

    async def confirm_cross_account_copy(self, target: ResolvedPath) -> bool:
        self._ensure_initialized()
        assert self.batch_ops is not None
        return await self.batch_ops.confirm_cross_account_copy(target)

    # ------------------------------------------------------------------
    # Presigned
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
        self._ensure_initialized()
        assert self.file_ops is not None
        return await self.file_ops.generate_presigned_url(
            target,
            operation=operation,
            force_download=force_download,
            expires_in=expires_in,
            caller=caller,
            use_cache=use_cache,
        )

    async def generate_upload_url(
        self,
        target: ResolvedPath,
        *,
        file_name: str | None = None,
        expires_in: int | None = None,
    ) -> PresignedUrl:
        self._ensure_initialized()
        assert self.upload_ops is not None
        return await self.upload_ops.generate_upload_url(
            target, file_name=file_name, expires_in=expires_in
        )

    async def commit_presigned_upload(
        self,
        target: ResolvedPath,
        *,
        file_size: int | None = None,
        etag: str | None = None,
        caller: CallerIdentity | None = None,
    ) -> WriteResult:
        self._ensure_initialized()
        assert self.upload_ops is not None
        return await self.upload_ops.commit_presigned_upload(
            target, file_size=file_size, etag=etag, caller=caller
        )

    # ------------------------------------------------------------------
    # Multipart
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
        self._ensure_initialized()
        assert self.upload_ops is not None
        return await self.upload_ops.initialize_multipart_upload(
            target,
            file_name=file_name,
            file_size=file_size,
            part_size=part_size,
            part_count=part_count,
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
        self._ensure_initialized()
        assert self.upload_ops is not None
        return await self.upload_ops.complete_multipart_upload(
            target,
            upload_id=upload_id,
            parts=parts,
            file_name=file_name,
            file_size=file_size,
            caller=caller,
        )

    async def abort_multipart_upload(
        self, target: ResolvedPath, *, upload_id: str, file_name: str
    ) -> AbortResult:
        self._ensure_initialized()
        assert self.upload_ops is not None
        return await self.upload_ops.abort_multipart_upload(
            target, upload_id=upload_id, file_name=file_name
        )

    async def initialize_backend_multipart_upload(
        self, target: ResolvedPath, *, file_size: int | None = None
    ) -> MultipartSession:
        self._ensure_initialized()
        assert self.backend_multipart_ops is not None
        return await self.backend_multipart_ops.initialize_backend_multipart_upload(
            target, file_size=file_size
        )

    async def upload_backend_part(
        self, target: ResolvedPath, *, upload_id: str, part_number: int, data: bytes
    ) -> CompletedPart:
        self._ensure_initialized()
        assert self.backend_multipart_ops is not None
        return await self.backend_multipart_ops.upload_backend_part(
            target, upload_id=upload_id, part_number=part_number, data=data
        )

    async def complete_backend_multipart_upload(
        self,
        target: ResolvedPath,
        *,
        upload_id: str,
        parts: list[CompletedPart],
        file_size: int | None = None,
        caller: CallerIdentity | None = None,
    ) -> MultipartCompleteResult:
        self._ensure_initialized()
        assert self.backend_multipart_ops is not None
        return await self.backend_multipart_ops.complete_backend_multipart_upload(
            target, upload_id=upload_id, parts=parts, file_size=file_size, caller=caller
        )

    async def abort_backend_multipart_upload(
        self, target: ResolvedPath, *, upload_id: str
    ) -> AbortResult:
        self._ensure_initialized()
        assert self.backend_multipart_ops is not None
        return await self.backend_multipart_ops.abort_backend_multipart_upload(
            target, upload_id=upload_id
        )
