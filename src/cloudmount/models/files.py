"""File registry model.

Provides ``FileRecordBase`` as a non-table base class. Subclass with
``table=True`` and a custom ``__tablename__`` to keep the registry in a
different table.
"""

from __future__ import annotations

import secrets
import time
import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def generate_slug() -> str:
    """Return a unique, URL-safe slug for a registered file."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(6)}"


class FileRecordBase(SQLModel):
    """Base fields for a registered object. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    filename: str = Field(default="")
    storage_path: str = Field(index=True)
    storage_config_id: str = Field(index=True)
    storage_type: str = Field(default="S3")
    url: str | None = Field(default=None)
    mimetype: str = Field(default="application/octet-stream")
    size: int = Field(default=0)
    slug: str = Field(default_factory=generate_slug, unique=True)
    etag: str | None = Field(default=None)
    created_by: str | None = Field(default=None)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )


class FileRecord(FileRecordBase, table=True):
    """Default file registry table: ``cloudmount_files``."""

    __tablename__ = "cloudmount_files"
