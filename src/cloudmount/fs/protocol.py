"""Capability flags and the StorageDriver protocol.

A driver declares the operation groups it supports as a ``Capability``
bit-set and implements the full ``StorageDriver`` interface. Methods of
unsupported groups raise ``CapabilityNotSupportedError`` instead of being
absent, so the façade can check ``has_capability`` up front and callers
still get a typed error if they skip the check.
"""

from __future__ import annotations

from enum import Flag, auto
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from cloudmount.models.mounts import Mount

    from .mounts import ResolvedPath
    from .permissions import CallerIdentity
    from .types import (
        AbortResult,
        CompletedPart,
        CopyResult,
        CrossAccountCopy,
        DeleteResult,
        DownloadResult,
        DriverStats,
        FileInfo,
        ListResult,
        MkdirResult,
        MultipartCompleteResult,
        MultipartSession,
        PresignedUrl,
        ProxyConfig,
        ProxyUrl,
        RenameResult,
        WriteResult,
    )


class Capability(Flag):
    """Operation groups a driver may support."""

    NONE = 0
    READER = auto()
    WRITER = auto()
    PRESIGNED = auto()
    MULTIPART = auto()
    ATOMIC = auto()
    PROXY = auto()

    @classmethod
    def all(cls) -> Capability:
        return (
            cls.READER | cls.WRITER | cls.PRESIGNED | cls.MULTIPART | cls.ATOMIC | cls.PROXY
        )


@runtime_checkable
class StorageDriver(Protocol):
    """Interface every driver implements in full.

    Path-taking methods receive a :class:`ResolvedPath` (virtual path,
    mount, mount-relative sub-path) produced by the mount resolver.
    """

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None: ...

    def is_initialized(self) -> bool: ...

    def get_type(self) -> str: ...

    def get_capabilities(self) -> Capability: ...

    def has_capability(self, capability: Capability) -> bool: ...

    async def get_stats(self) -> DriverStats: ...

    async def cleanup(self) -> None: ...

    # ------------------------------------------------------------------
    # Reader
    # ------------------------------------------------------------------

    async def list_directory(
        self, target: ResolvedPath, *, caller: CallerIdentity | None = None
    ) -> ListResult: ...

    async def get_file_info(
        self, target: ResolvedPath, *, caller: CallerIdentity | None = None
    ) -> FileInfo: ...

    async def download_file(
        self,
        target: ResolvedPath,
        *,
        byte_range: str | None = None,
        force_download: bool = False,
    ) -> DownloadResult: ...

    async def exists(self, target: ResolvedPath) -> bool: ...

    async def search(
        self, query: str, mount: Mount, *, sub_path: str = "/", max_results: int = 1000
    ) -> list[FileInfo]: ...

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
    ) -> WriteResult: ...

    async def update_file(self, target: ResolvedPath, content: bytes | str) -> WriteResult: ...

    async def create_directory(self, target: ResolvedPath) -> MkdirResult: ...

    async def remove_item(self, target: ResolvedPath) -> DeleteResult: ...

    # ------------------------------------------------------------------
    # Atomic
    # ------------------------------------------------------------------

    async def rename_item(self, source: ResolvedPath, target: ResolvedPath) -> RenameResult: ...

    async def copy_item(
        self, source: ResolvedPath, target: ResolvedPath
    ) -> CopyResult | CrossAccountCopy: ...

    async def confirm_cross_account_copy(self, target: ResolvedPath) -> bool: ...

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
    ) -> PresignedUrl: ...

    async def generate_upload_url(
        self,
        target: ResolvedPath,
        *,
        file_name: str | None = None,
        expires_in: int | None = None,
    ) -> PresignedUrl: ...

    async def commit_presigned_upload(
        self,
        target: ResolvedPath,
        *,
        file_size: int | None = None,
        etag: str | None = None,
        caller: CallerIdentity | None = None,
    ) -> WriteResult: ...

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
    ) -> MultipartSession: ...

    async def complete_multipart_upload(
        self,
        target: ResolvedPath,
        *,
        upload_id: str,
        parts: list[CompletedPart],
        file_name: str,
        file_size: int | None = None,
        caller: CallerIdentity | None = None,
    ) -> MultipartCompleteResult: ...

    async def abort_multipart_upload(
        self, target: ResolvedPath, *, upload_id: str, file_name: str
    ) -> AbortResult: ...

    async def initialize_backend_multipart_upload(
        self, target: ResolvedPath, *, file_size: int | None = None
    ) -> MultipartSession: ...

    async def upload_backend_part(
        self, target: ResolvedPath, *, upload_id: str, part_number: int, data: bytes
    ) -> CompletedPart: ...

    async def complete_backend_multipart_upload(
        self,
        target: ResolvedPath,
        *,
        upload_id: str,
        parts: list[CompletedPart],
        file_size: int | None = None,
        caller: CallerIdentity | None = None,
    ) -> MultipartCompleteResult: ...

    async def abort_backend_multipart_upload(
        self, target: ResolvedPath, *, upload_id: str
    ) -> AbortResult: ...

    # ------------------------------------------------------------------
    # Proxy
    # ------------------------------------------------------------------

    def supports_proxy_mode(self, mount: Mount) -> bool: ...

    def get_proxy_config(self, mount: Mount) -> ProxyConfig: ...

    async def generate_proxy_url(
        self, target: ResolvedPath, *, download: bool = False
    ) -> ProxyUrl: ...
