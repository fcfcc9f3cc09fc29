"""MountStore: persistence for mounts, storage configs and the file registry.

Receives an async session factory at construction and opens one
session per call, committing on success and rolling back on error.
The factory must be built with ``expire_on_commit=False`` so returned
rows stay readable after their session closes.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sqlalchemy import delete
from sqlmodel import select

from cloudmount.models.files import FileRecord, FileRecordBase
from cloudmount.models.mounts import Mount, StorageConfig

from .utils import normalize_path

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


@runtime_checkable
class ConfigStore(Protocol):
    """What the mount resolver and drivers need from persistence."""

    async def list_mounts(self, include_inactive: bool = False) -> list[Mount]: ...

    async def get_storage_config(self, config_id: str) -> StorageConfig | None: ...

    async def touch_mount(self, mount_id: str) -> None: ...

    async def record_file(self, record: FileRecordBase) -> FileRecordBase: ...

    async def delete_file_records(self, storage_config_id: str, storage_path: str) -> int: ...


class MountStore:
    """SQLModel-backed :class:`ConfigStore`.

    Constructor receives the concrete file-registry model so callers can
    use a custom subclass with a different table name.
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncSession],
        file_model: type[FileRecordBase] = FileRecord,
    ) -> None:
        self._session_factory = session_factory
        self._file_model = file_model

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession]:
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # ------------------------------------------------------------------
    # Mounts
    # ------------------------------------------------------------------

    async def add_mount(self, mount: Mount) -> Mount:
        mount.mount_path = normalize_path(mount.mount_path).rstrip("/") or "/"
        async with self._session() as session:
            session.add(mount)
        return mount

    async def get_mount(self, mount_id: str) -> Mount | None:
        async with self._session() as session:
            return await session.get(Mount, mount_id)

    async def list_mounts(self, include_inactive: bool = False) -> list[Mount]:
        """List mounts ordered by ``sort_order`` then ``mount_path``."""
        query = select(Mount)
        if not include_inactive:
            query = query.where(Mount.is_active == True)  # noqa: E712
        query = query.order_by(Mount.sort_order, Mount.mount_path)
        async with self._session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def set_mount_active(self, mount_id: str, is_active: bool) -> None:
        async with self._session() as session:
            mount = await session.get(Mount, mount_id)
            if mount is not None:
                mount.is_active = is_active
                mount.updated_at = datetime.now(UTC)

    async def touch_mount(self, mount_id: str) -> None:
        """Record mount usage. Failures are logged, never raised."""
        try:
            async with self._session() as session:
                mount = await session.get(Mount, mount_id)
                if mount is not None:
                    mount.last_used = datetime.now(UTC)
        except Exception:
            logger.warning("Failed to update last_used for mount %s", mount_id, exc_info=True)

    # ------------------------------------------------------------------
    # Storage configs
    # ------------------------------------------------------------------

    async def add_storage_config(self, config: StorageConfig) -> StorageConfig:
        async with self._session() as session:
            session.add(config)
        return config

    async def get_storage_config(self, config_id: str) -> StorageConfig | None:
        async with self._session() as session:
            return await session.get(StorageConfig, config_id)

    # ------------------------------------------------------------------
    # File registry
    # ------------------------------------------------------------------

    async def record_file(self, record: FileRecordBase) -> FileRecordBase:
        async with self._session() as session:
            session.add(record)
        return record

    async def find_file(self, storage_config_id: str, storage_path: str) -> FileRecordBase | None:
        model = self._file_model
        async with self._session() as session:
            result = await session.execute(
                select(model).where(
                    model.storage_config_id == storage_config_id,
                    model.storage_path == storage_path,
                )
            )
            return result.scalars().first()

    async def delete_file_records(self, storage_config_id: str, storage_path: str) -> int:
        """Delete registry rows for an object key. Returns the number removed."""
        model = self._file_model
        async with self._session() as session:
            result = await session.execute(
                delete(model).where(
                    model.storage_config_id == storage_config_id,
                    model.storage_path == storage_path,
                )
            )
            return result.rowcount or 0
