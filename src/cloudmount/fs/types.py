"""Result types: FileInfo, ListResult, CopyResult, BatchResult, etc."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


@dataclass
class FileInfo:
    """File/directory metadata."""

    path: str
    name: str
    is_directory: bool
    size: int | None = None
    modified: datetime | None = None
    content_type: str | None = None
    etag: str | None = None
    key: str | None = None
    mount_id: str | None = None
    storage_type: str | None = None
    preview_url: str | None = None
    download_url: str | None = None
    is_mount: bool = False


@dataclass
class ListResult:
    """Result of a list directory operation."""

    path: str
    items: list[FileInfo] = field(default_factory=list)
    mount_id: str | None = None
    storage_type: str | None = None
    is_root: bool = False

    @property
    def has_directory_sizes(self) -> bool:
        """True when every directory entry carries a resolved size."""
        return all(item.size is not None for item in self.items if item.is_directory)


@dataclass
class SearchResult:
    """One page of ranked filename matches."""

    query: str
    results: list[FileInfo] = field(default_factory=list)
    """The requested page of matches."""

    total: int = 0
    """Matches across every searched mount, before paging."""

    offset: int = 0
    limit: int = 50
    mounts_searched: int = 0
    cached: bool = False

    @property
    def has_more(self) -> bool:
        return self.offset + self.limit < self.total


@dataclass
class MkdirResult:
    """Result of a create directory operation."""

    success: bool
    message: str
    path: str | None = None


@dataclass
class WriteResult:
    """Result of an upload or in-place update."""

    success: bool
    message: str
    path: str | None = None
    key: str | None = None
    file_name: str | None = None
    size: int = 0
    content_type: str | None = None
    etag: str | None = None
    url: str | None = None
    file_id: str | None = None
    slug: str | None = None
    is_new_file: bool = True


@dataclass
class DownloadResult:
    """Object bytes plus the response headers a protocol layer should send."""

    status: int
    headers: dict[str, str]
    body: bytes


@dataclass
class PresignedUrl:
    """A signed (or direct custom-domain) URL for one object."""

    url: str
    key: str
    operation: str
    expires_in: int
    content_type: str | None = None
    force_download: bool = False
    is_direct: bool = False
    cached: bool = False


class ItemStatus(str, Enum):
    """Per-item outcome of a batch or recursive operation."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class CopyStats:
    """Object counts from a recursive directory copy."""

    success: int = 0
    skipped: int = 0
    failed: int = 0


@dataclass
class CopyResult:
    """Result of a same-account copy."""

    source: str
    target: str
    status: ItemStatus
    message: str
    is_directory: bool = False
    renamed: bool = False
    original_target: str | None = None
    stats: CopyStats | None = None


@dataclass
class TransferItem:
    """One signed URL pair for a cross-account object transfer."""

    source_key: str
    target_key: str
    file_name: str
    relative_dir: str
    content_type: str
    size: int
    download_url: str
    upload_url: str


@dataclass
class CrossAccountCopy:
    """Instructions for a copy the caller must carry out with signed URLs."""

    source: str
    target: str
    is_directory: bool
    source_mount_id: str
    target_mount_id: str
    source_key: str
    target_key: str
    renamed: bool = False
    original_target: str | None = None
    file_name: str | None = None
    content_type: str | None = None
    download_url: str | None = None
    upload_url: str | None = None
    items: list[TransferItem] = field(default_factory=list)


@dataclass
class RenameResult:
    """Result of a rename operation."""

    success: bool
    message: str
    source: str
    target: str
    is_directory: bool = False


@dataclass
class DeleteResult:
    """Result of removing one file or directory tree."""

    success: bool
    message: str
    path: str
    is_directory: bool = False
    total_deleted: int = 0


@dataclass
class ItemOutcome:
    """Outcome of one item in a batch."""

    path: str
    status: ItemStatus
    error: str | None = None
    renamed_to: str | None = None


@dataclass
class BatchResult:
    """Aggregated outcome of a batch remove or copy.

    Failures are reported, never rolled back.
    """

    items: list[ItemOutcome] = field(default_factory=list)
    details: list[CopyResult] = field(default_factory=list)
    cross_account: list[CrossAccountCopy] = field(default_factory=list)

    def add(self, outcome: ItemOutcome) -> None:
        self.items.append(outcome)

    @property
    def success_count(self) -> int:
        return sum(1 for item in self.items if item.status == ItemStatus.SUCCESS)

    @property
    def skipped_count(self) -> int:
        return sum(1 for item in self.items if item.status == ItemStatus.SKIPPED)

    @property
    def failures(self) -> list[ItemOutcome]:
        return [item for item in self.items if item.status == ItemStatus.FAILED]

    @property
    def has_cross_account(self) -> bool:
        return bool(self.cross_account)


@dataclass
class PartUrl:
    """Signed upload URL for one part of a front-end multipart upload."""

    part_number: int
    url: str


@dataclass
class CompletedPart:
    """A finished part: its number and the ETag the backend returned."""

    part_number: int
    etag: str


@dataclass
class MultipartSession:
    """A provider-side multipart upload in progress."""

    upload_id: str
    bucket: str
    key: str
    path: str
    part_size: int
    part_count: int | None = None
    part_urls: list[PartUrl] = field(default_factory=list)
    mount_id: str | None = None
    storage_type: str = "S3"


@dataclass
class MultipartCompleteResult:
    """Result of completing a multipart upload."""

    success: bool
    message: str
    path: str
    key: str
    etag: str | None = None
    location: str | None = None
    url: str | None = None
    size: int | None = None
    content_type: str | None = None
    file_id: str | None = None
    already_completed: bool = False


@dataclass
class AbortResult:
    """Result of aborting a multipart upload."""

    success: bool
    message: str
    verified: bool = False


@dataclass
class ProxyConfig:
    """Whether a mount serves reads through the gateway, and how."""

    enabled: bool
    webdav_policy: str


@dataclass
class ProxyUrl:
    """Gateway URL that streams an object instead of redirecting."""

    url: str
    policy: str
    download: bool = False


@dataclass
class DriverStats:
    """Static description of an initialized driver."""

    type: str
    provider: str
    bucket: str
    endpoint: str
    region: str
    initialized: bool
