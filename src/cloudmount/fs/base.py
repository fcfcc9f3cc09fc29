"""BaseDriver: lifecycle plumbing and typed refusals for every driver operation."""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn
from urllib.parse import quote

from cloudmount.models.mounts import DEFAULT_WEBDAV_POLICY

from .exceptions import CapabilityNotSupportedError, ForbiddenError, StorageError
from .protocol import Capability
from .types import DriverStats, ProxyConfig, ProxyUrl

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
        FileInfo,
        ListResult,
        MkdirResult,
        MultipartCompleteResult,
        MultipartSession,
        PresignedUrl,
        RenameResult,
        WriteResult,
    )

PROXY_URL_PREFIX = "/api/p"


class BaseDriver:
    """Base class for storage drivers.

    Subclasses set ``storage_type`` and ``capabilities`` and override the
    operations of the groups they declare. Every operation of a group the
    driver does not declare raises :class:`CapabilityNotSupportedError`.
    """

    storage_type: str = "BASE"
    capabilities: Capability = Capability.NONE

    def __init__(self) -> None:
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        self._initialized = True

    def is_initialized(self) -> bool:
        return self._initialized

    def get_type(self) -> str:
        return self.storage_type

    def get_capabilities(self) -> Capability:
        return self.capabilities

    def has_capability(self, capability: Capability) -> bool:
        return capability in self.capabilities

    async def get_stats(self) -> DriverStats:
        return DriverStats(
            type=self.storage_type,
            provider="",
            bucket="",
            endpoint="",
            region="",
            initialized=self._initialized,
        )

    async def cleanup(self) -> None:
        self._initialized = False

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise StorageError(f"{self.storage_type} driver is not initialized")

    def _unsupported(self, operation: str) -> NoReturn:
        raise CapabilityNotSupportedError(
            f"{self.storage_type} driver does not support {operation}"
        )

    # ------------------------------------------------------------------
    # Reader
    # ------------------------------------------------------------------

    async def list_directory(
        self, target: ResolvedPath, *, caller: CallerIdentity | None = None
    ) -> ListResult:
        self._unsupported("list_directory")

    async def get_file_info(
        self, target: ResolvedPath, *, caller: CallerIdentity | None = None
    ) -> FileInfo:
        self._unsupported("get_file_info")

    async def download_file(
        self,
        target: ResolvedPath,
        *,
        byte_range: str | None = None,
        force_download: bool = False,
    ) -> DownloadResult:
        self._unsupported("download_file")

    async def exists(self, target: ResolvedPath) -> bool:
        self._unsupported("exists")

    async def search(
        self, query: str, mount: Mount, *, sub_path: str = "/", max_results: int = 1000
    ) -> list[FileInfo]:
        self._unsupported("search")

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
        self._unsupported("upload_file")

    async def update_file(self, target: ResolvedPath, content: bytes | str) -> WriteResult:
        self._unsupported("update_file")

    async def create_directory(self, target: ResolvedPath) -> MkdirResult:
        self._unsupported("create_directory")

    async def remove_item(self, target: ResolvedPath) -> DeleteResult:
        self._unsupported("remove_item")

    # ------------------------------------------------------------------
    # Atomic
    # ------------------------------------------------------------------

    async def rename_item(self, source: ResolvedPath, target: ResolvedPath) -> RenameResult:
        self._unsupported("rename_item")

    async def copy_item(
        self, source: ResolvedPath, target: ResolvedPath
    ) -> CopyResult | CrossAccountCopy:
        self._unsupported("copy_item")

    async def confirm_cross_account_copy(self, target: ResolvedPath) -> bool:
        self._unsupported("confirm_cross_account_copy")

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
        self._unsupported("generate_presigned_url")

    async def generate_upload_url(
        self,
        target: ResolvedPath,
        *,
        file_name: str | None = None,
        expires_in: int | None = None,
    ) -> PresignedUrl:
        self._unsupported("generate_upload_url")

    async def commit_presigned_upload(
        self,
        target: ResolvedPath,
        *,
        file_size: int | None = None,
        etag: str | None = None,
        caller: CallerIdentity | None = None,
    ) -> WriteResult:
        self._unsupported("commit_presigned_upload")

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
        self._unsupported("initialize_multipart_upload")

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
        self._unsupported("complete_multipart_upload")

    async def abort_multipart_upload(
        self, target: ResolvedPath, *, upload_id: str, file_name: str
    ) -> AbortResult:
        self._unsupported("abort_multipart_upload")

    async def initialize_backend_multipart_upload(
        self, target: ResolvedPath, *, file_size: int | None = None
    ) -> MultipartSession:
        self._unsupported("initialize_backend_multipart_upload")

    async def upload_backend_part(
        self, target: ResolvedPath, *, upload_id: str, part_number: int, data: bytes
    ) -> CompletedPart:
        self._unsupported("upload_backend_part")

    async def complete_backend_multipart_upload(
        self,
        target: ResolvedPath,
        *,
        upload_id: str,
        parts: list[CompletedPart],
        file_size: int | None = None,
        caller: CallerIdentity | None = None,
    ) -> MultipartCompleteResult:
        self._unsupported("complete_backend_multipart_upload")

    async def abort_backend_multipart_upload(
        self, target: ResolvedPath, *, upload_id: str
    ) -> AbortResult:
        self._unsupported("abort_backend_multipart_upload")

    # ------------------------------------------------------------------
    # Proxy
    # ------------------------------------------------------------------

    def supports_proxy_mode(self, mount: Mount) -> bool:
        return Capability.PROXY in self.capabilities and bool(mount.web_proxy)

    def get_proxy_config(self, mount: Mount) -> ProxyConfig:
        return ProxyConfig(
            enabled=self.supports_proxy_mode(mount),
            webdav_policy=mount.webdav_policy or DEFAULT_WEBDAV_POLICY,
        )

    async def generate_proxy_url(
        self, target: ResolvedPath, *, download: bool = False
    ) -> ProxyUrl:
        if Capability.PROXY not in self.capabilities:
            self._unsupported("generate_proxy_url")
        if not self.supports_proxy_mode(target.mount):
            raise ForbiddenError(f"Proxy access is not enabled for {target.mount.mount_path}")
        url = PROXY_URL_PREFIX + quote(target.path)
        if download:
            url += "?download=true"
        return ProxyUrl(
            url=url,
            policy=target.mount.webdav_policy or DEFAULT_WEBDAV_POLICY,
            download=download,
        )
