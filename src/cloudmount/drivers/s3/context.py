"""Shared state and helpers for the S3 operation groups."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from cloudmount.fs.utils import DEFAULT_MAX_SUFFIX_STRIPS
from cloudmount.models.files import FileRecord
from cloudmount.retry import RetryPolicy

from .directories import directory_exists, touch_parent_directories
from .keys import to_object_key, to_sub_path
from .paging import DEFAULT_PAGE_CONCURRENCY, DEFAULT_PAGE_SIZE

if TYPE_CHECKING:
    from cloudmount.fs.cache import GatewayCaches
    from cloudmount.fs.permissions import CallerIdentity
    from cloudmount.fs.store import ConfigStore
    from cloudmount.models.files import FileRecordBase
    from cloudmount.models.mounts import Mount, StorageConfig

    from .client import AsyncS3Client
    from .presign import Presigner

logger = logging.getLogger(__name__)

MiB = 1024 * 1024


@dataclass(frozen=True)
class S3DriverSettings:
    """Tuning knobs for the S3 driver."""

    page_size: int = DEFAULT_PAGE_SIZE
    """``MaxKeys`` for every listing call."""

    page_concurrency: int = DEFAULT_PAGE_CONCURRENCY
    """Objects of one listing page processed at once during recursive work."""

    enrichment_concurrency: int = 8
    """Directory entries enriched with size and modified time at once."""

    max_suffix_strips: int = DEFAULT_MAX_SUFFIX_STRIPS
    """Trailing ``(n)`` suffixes stripped before numbering a colliding name."""

    update_size_limit: int = 10 * MiB
    """Largest body accepted by ``update_file``."""

    recommended_part_size: int = 5 * MiB

    upload_url_expiry: int = 3600
    """Lifetime of signed upload URLs when the account sets none."""

    cross_account_url_expiry: int = 3600

    abort_retry: RetryPolicy = field(default_factory=RetryPolicy)
    """Retry schedule for multipart aborts."""


@dataclass
class S3Context:
    """Everything an operation group needs from its driver."""

    s3: AsyncS3Client
    config: StorageConfig
    prefix: str
    presigner: Presigner
    caches: GatewayCaches
    store: ConfigStore | None
    settings: S3DriverSettings

    @property
    def provider(self) -> str:
        return self.config.provider_type or "OTHER"


class S3Operations:
    """Base class for one cohesive group of S3 driver operations."""

    def __init__(self, ctx: S3Context) -> None:
        self.ctx = ctx

    @property
    def s3(self) -> AsyncS3Client:
        return self.ctx.s3

    @property
    def settings(self) -> S3DriverSettings:
        return self.ctx.settings

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def key_for(self, sub_path: str, is_directory: bool = False) -> str:
        return to_object_key(sub_path, self.ctx.prefix, is_directory)

    def sub_path_for(self, key: str) -> str:
        return to_sub_path(key, self.ctx.prefix)

    def virtual_path(self, mount: Mount, key: str) -> str:
        """Virtual path of ``key`` under ``mount``."""
        base = mount.mount_path.rstrip("/")
        return base + self.sub_path_for(key)

    async def dir_exists(self, key: str) -> bool:
        return await directory_exists(self.s3, key, self.ctx.prefix)

    # ------------------------------------------------------------------
    # Side effects shared by mutating operations
    # ------------------------------------------------------------------

    def invalidate(self, mount_id: str) -> None:
        count = self.ctx.caches.invalidate_mount(mount_id)
        logger.debug("Cleared %d cached listings for mount %s", count, mount_id)

    async def touch_parents(self, key: str, *, skip_missing: bool = False) -> None:
        await touch_parent_directories(self.s3, key, self.ctx.prefix, skip_missing=skip_missing)

    async def record_file(
        self,
        key: str,
        *,
        file_name: str,
        size: int,
        content_type: str,
        etag: str | None = None,
        caller: CallerIdentity | None = None,
    ) -> FileRecordBase | None:
        """Register an uploaded object. Best effort when no store is wired in."""
        if self.ctx.store is None:
            return None
        record = FileRecord(
            filename=file_name,
            storage_path=key,
            storage_config_id=self.ctx.config.id,
            storage_type="S3",
            url=self.ctx.presigner.object_url(key),
            mimetype=content_type,
            size=size,
            etag=etag,
            created_by=f"{caller.type.value}:{caller.id}" if caller and caller.id else None,
        )
        try:
            return await self.ctx.store.record_file(record)
        except Exception:
            logger.warning("Failed to record file %s", key, exc_info=True)
            return None

    async def delete_record(self, key: str) -> None:
        """Remove registry rows for ``key``, tolerating absence and failure."""
        if self.ctx.store is None:
            return
        try:
            await self.ctx.store.delete_file_records(self.ctx.config.id, key)
        except Exception:
            logger.warning("Failed to delete file record for %s", key, exc_info=True)


def strip_etag(etag: str | None) -> str | None:
    return etag.strip('"') if etag else None
