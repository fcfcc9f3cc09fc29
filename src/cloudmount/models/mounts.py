"""Mount point and storage account configuration models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

DEFAULT_CACHE_TTL: int = 300
"""Directory listing cache lifetime (seconds) for new mounts."""

DEFAULT_WEBDAV_POLICY: str = "302_redirect"


class Mount(SQLModel, table=True):
    """A virtual path prefix bound to one storage account."""

    __tablename__ = "cloudmount_mounts"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str = Field(default="")
    mount_path: str = Field(index=True, unique=True)
    storage_type: str = Field(default="S3")
    storage_config_id: str = Field(index=True)
    remark: str | None = Field(default=None)
    is_active: bool = Field(default=True)
    cache_ttl: int = Field(default=DEFAULT_CACHE_TTL)
    sort_order: int = Field(default=0)
    web_proxy: bool = Field(default=False)
    webdav_policy: str = Field(default=DEFAULT_WEBDAV_POLICY)
    created_by: str | None = Field(default=None)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )
    last_used: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),
    )


class StorageConfig(SQLModel, table=True):
    """Credentials and addressing for one S3-compatible account.

    ``access_key_id`` and ``secret_access_key`` are stored encrypted and
    decrypted on demand when a driver builds its client.
    """

    __tablename__ = "cloudmount_storage_configs"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str = Field(default="")
    provider_type: str = Field(default="OTHER")
    endpoint_url: str = Field(default="")
    bucket_name: str = Field(default="")
    region: str | None = Field(default=None)
    access_key_id: str = Field(default="")
    secret_access_key: str = Field(default="")
    path_style: bool = Field(default=False)
    root_prefix: str = Field(default="")
    default_folder: str = Field(default="")
    custom_host: str | None = Field(default=None)
    signature_expires_in: int = Field(default=3600)
    total_storage_bytes: int | None = Field(default=None)
    is_public: bool = Field(default=False)
    created_by: str | None = Field(default=None)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )
    last_used: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),
    )
