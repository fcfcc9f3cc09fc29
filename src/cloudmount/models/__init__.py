"""SQLModel database models for cloudmount."""

from cloudmount.models.files import FileRecord, FileRecordBase, generate_slug
from cloudmount.models.mounts import DEFAULT_CACHE_TTL, Mount, StorageConfig

__all__ = [
    "DEFAULT_CACHE_TTL",
    "FileRecord",
    "FileRecordBase",
    "Mount",
    "StorageConfig",
    "generate_slug",
]
