"""Filesystem layer: mounts, caller scopes, capabilities, caches and the façade."""

from cloudmount.fs.base import BaseDriver
from cloudmount.fs.cache import (
    DirectoryCache,
    GatewayCaches,
    PresignedUrlCache,
    SearchCache,
    TTLCache,
)
from cloudmount.fs.credentials import Decryptor, PlaintextDecryptor
from cloudmount.fs.exceptions import (
    BadRequestError,
    CapabilityNotSupportedError,
    CloudMountError,
    ConfigValidationError,
    ConflictError,
    ForbiddenError,
    InvalidPathError,
    MountNotFoundError,
    NotFoundError,
    PathNotFoundError,
    StorageError,
)
from cloudmount.fs.mounts import MountResolver, ResolvedPath
from cloudmount.fs.permissions import CallerIdentity, CallerType
from cloudmount.fs.protocol import Capability, StorageDriver
from cloudmount.fs.store import ConfigStore, MountStore
from cloudmount.fs.types import (
    AbortResult,
    BatchResult,
    CompletedPart,
    CopyResult,
    CopyStats,
    CrossAccountCopy,
    DeleteResult,
    DownloadResult,
    DriverStats,
    FileInfo,
    ItemOutcome,
    ItemStatus,
    ListResult,
    MkdirResult,
    MultipartCompleteResult,
    MultipartSession,
    PartUrl,
    PresignedUrl,
    ProxyConfig,
    ProxyUrl,
    RenameResult,
    SearchResult,
    TransferItem,
    WriteResult,
)
from cloudmount.fs.vfs import VirtualFileSystem

__all__ = [
    "AbortResult",
    "BadRequestError",
    "BaseDriver",
    "BatchResult",
    "CallerIdentity",
    "CallerType",
    "Capability",
    "CapabilityNotSupportedError",
    "CloudMountError",
    "CompletedPart",
    "ConfigStore",
    "ConfigValidationError",
    "ConflictError",
    "CopyResult",
    "CopyStats",
    "CrossAccountCopy",
    "Decryptor",
    "DeleteResult",
    "DirectoryCache",
    "DownloadResult",
    "DriverStats",
    "FileInfo",
    "ForbiddenError",
    "GatewayCaches",
    "InvalidPathError",
    "ItemOutcome",
    "ItemStatus",
    "ListResult",
    "MkdirResult",
    "MountNotFoundError",
    "MountResolver",
    "MountStore",
    "MultipartCompleteResult",
    "MultipartSession",
    "NotFoundError",
    "PartUrl",
    "PathNotFoundError",
    "PlaintextDecryptor",
    "PresignedUrl",
    "PresignedUrlCache",
    "ProxyConfig",
    "ProxyUrl",
    "RenameResult",
    "ResolvedPath",
    "SearchCache",
    "SearchResult",
    "StorageDriver",
    "StorageError",
    "TTLCache",
    "TransferItem",
    "VirtualFileSystem",
    "WriteResult",
]
