"""MountResolver and ResolvedPath."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .exceptions import ForbiddenError, MountNotFoundError, NotFoundError
from .utils import is_directory_path, secure_path

if TYPE_CHECKING:
    from collections.abc import Callable

    from cloudmount.drivers.factory import DriverFactory
    from cloudmount.models.mounts import Mount

    from .cache import GatewayCaches
    from .permissions import CallerIdentity
    from .protocol import StorageDriver
    from .store import ConfigStore

logger = logging.getLogger(__name__)

DRIVER_IDLE_TIMEOUT = 30 * 60
"""Seconds an unused driver stays cached."""

DRIVER_SWEEP_INTERVAL = 10 * 60
"""Minimum seconds between sweeps for idle drivers."""


@dataclass
class ResolvedPath:
    """A virtual path bound to its mount and a ready driver."""

    path: str
    """Full virtual path, normalized. Directory form keeps its trailing slash."""

    mount: Mount
    """The mount owning ``path``."""

    sub_path: str
    """``path`` with the mount prefix stripped, always starting with ``/``."""

    driver: StorageDriver
    """Initialized driver for the mount's storage account."""

    @property
    def mount_path(self) -> str:
        return self.mount.mount_path

    @property
    def is_directory(self) -> bool:
        return self.sub_path == "/" or is_directory_path(self.path)

    @property
    def storage_config_id(self) -> str:
        return self.mount.storage_config_id


@dataclass
class _CachedDriver:
    driver: StorageDriver
    storage_type: str
    config_id: str
    last_accessed: float
    mount_ids: set[str] = field(default_factory=set)


def mount_matches(mount_path: str, path: str) -> bool:
    """True when ``path`` is the mount itself or lies beneath it."""
    mount_path = mount_path.rstrip("/")
    if not mount_path:
        return True
    return path == mount_path or path == mount_path + "/" or path.startswith(mount_path + "/")


class MountResolver:
    """Resolves virtual paths to mounts and caches one driver per account.

    The longest matching ``mount_path`` wins; equal lengths fall back to
    ``sort_order``. Drivers are keyed by ``(storage_type,
    storage_config_id)`` so mounts sharing an account share a client.
    """

    def __init__(
        self,
        store: ConfigStore,
        factory: DriverFactory,
        *,
        driver_idle_timeout: float = DRIVER_IDLE_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._factory = factory
        self._driver_idle_timeout = driver_idle_timeout
        self._clock = clock
        self._drivers: dict[str, _CachedDriver] = {}
        self._lock = asyncio.Lock()
        self._last_sweep = clock()

    @property
    def store(self) -> ConfigStore:
        return self._store

    @property
    def caches(self) -> GatewayCaches:
        """Caches shared by every driver this resolver builds."""
        return self._factory.caches

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def visible_mounts(self, caller: CallerIdentity) -> list[Mount]:
        """Active mounts the caller may see, in display order."""
        mounts = await self._store.list_mounts()
        if caller.is_proxy:
            mounts = [m for m in mounts if m.web_proxy]
        visible = [m for m in mounts if caller.can_see_mount(m.mount_path)]
        return sorted(visible, key=lambda m: (m.sort_order, m.mount_path))

    async def find_mount(self, path: str, caller: CallerIdentity) -> tuple[Mount, str]:
        """Return the owning mount and the mount-relative sub-path for ``path``."""
        return await self._match(secure_path(path), caller)

    async def _match(self, path: str, caller: CallerIdentity) -> tuple[Mount, str]:
        if path == "/":
            raise ForbiddenError("Cannot operate on the root directory")

        mounts = await self._store.list_mounts()
        if caller.is_proxy:
            mounts = [m for m in mounts if m.web_proxy]

        candidates = [m for m in mounts if mount_matches(m.mount_path, path)]
        if not candidates:
            raise MountNotFoundError(f"No mount found for path: {path}")

        candidates.sort(key=lambda m: (-len(m.mount_path.rstrip("/")), m.sort_order))
        mount = candidates[0]

        if not caller.can_access(path):
            raise ForbiddenError(f"Path is outside the caller's scope: {path}")

        sub_path = path[len(mount.mount_path.rstrip("/")):]
        if not sub_path.startswith("/"):
            sub_path = "/" + sub_path
        return mount, sub_path

    async def resolve(self, path: str, caller: CallerIdentity) -> ResolvedPath:
        """Resolve ``path`` for ``caller`` into a :class:`ResolvedPath`.

        Raises:
            InvalidPathError: the path fails security checks.
            ForbiddenError: root path, or outside the caller's scope.
            MountNotFoundError: no active mount owns the path.
        """
        normalized = secure_path(path)
        mount, sub_path = await self._match(normalized, caller)
        driver = await self.get_driver(mount)
        await self._store.touch_mount(mount.id)
        return ResolvedPath(path=normalized, mount=mount, sub_path=sub_path, driver=driver)

    # ------------------------------------------------------------------
    # Driver cache
    # ------------------------------------------------------------------

    @staticmethod
    def _cache_key(storage_type: str, config_id: str) -> str:
        return f"{storage_type}:{config_id}"

    async def get_driver(self, mount: Mount) -> StorageDriver:
        """Return the cached driver for the mount's account, creating it on first use."""
        await self._sweep_idle()
        key = self._cache_key(mount.storage_type, mount.storage_config_id)

        async with self._lock:
            cached = self._drivers.get(key)
            if cached is not None and cached.driver.is_initialized():
                cached.last_accessed = self._clock()
                cached.mount_ids.add(mount.id)
                logger.debug("Driver cache hit: %s", key)
                return cached.driver

            config = await self._store.get_storage_config(mount.storage_config_id)
            if config is None:
                raise NotFoundError(f"Storage config not found: {mount.storage_config_id}")

            driver = await self._factory.create_driver(mount.storage_type, config)
            self._drivers[key] = _CachedDriver(
                driver=driver,
                storage_type=mount.storage_type,
                config_id=mount.storage_config_id,
                last_accessed=self._clock(),
                mount_ids={mount.id},
            )
            logger.info("Created %s driver for storage config %s", mount.storage_type, config.id)
            return driver

    async def _sweep_idle(self) -> None:
        now = self._clock()
        if now - self._last_sweep < DRIVER_SWEEP_INTERVAL:
            return
        self._last_sweep = now
        expired = [
            key
            for key, cached in self._drivers.items()
            if now - cached.last_accessed > self._driver_idle_timeout
        ]
        for key in expired:
            await self._evict(key)
        if expired:
            logger.info("Evicted %d idle drivers", len(expired))

    async def _evict(self, key: str) -> None:
        cached = self._drivers.pop(key, None)
        if cached is None:
            return
        try:
            await cached.driver.cleanup()
        except Exception:
            logger.warning("Driver cleanup failed for %s", key, exc_info=True)

    async def clear_mount_cache(self, mount_id: str) -> int:
        """Drop every cached driver that served ``mount_id``."""
        keys = [k for k, c in self._drivers.items() if mount_id in c.mount_ids]
        for key in keys:
            await self._evict(key)
        return len(keys)

    async def clear_config_cache(self, storage_type: str, config_id: str) -> bool:
        key = self._cache_key(storage_type, config_id)
        found = key in self._drivers
        await self._evict(key)
        return found

    def get_cache_stats(self) -> dict[str, Any]:
        by_type: dict[str, int] = {}
        for cached in self._drivers.values():
            by_type[cached.storage_type] = by_type.get(cached.storage_type, 0) + 1
        accessed = [c.last_accessed for c in self._drivers.values()]
        return {
            "total_cached": len(self._drivers),
            "by_storage_type": by_type,
            "oldest_access": min(accessed) if accessed else None,
            "newest_access": max(accessed) if accessed else None,
        }

    async def close(self) -> None:
        """Clean up every cached driver."""
        for key in list(self._drivers):
            await self._evict(key)
