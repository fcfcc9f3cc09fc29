"""Tests for capability declarations, façade gating and virtual mount listings."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from conftest import make_config

from cloudmount.fs.base import BaseDriver
from cloudmount.fs.exceptions import (
    CapabilityNotSupportedError,
    CloudMountError,
    ForbiddenError,
    MountNotFoundError,
    StorageError,
)
from cloudmount.fs.mounts import MountResolver, ResolvedPath
from cloudmount.fs.permissions import CallerIdentity
from cloudmount.fs.protocol import Capability, StorageDriver
from cloudmount.fs.types import FileInfo, ListResult
from cloudmount.fs.vfs import VirtualFileSystem
from cloudmount.models.mounts import Mount

if TYPE_CHECKING:
    from cloudmount.fs.store import MountStore
    from cloudmount.models.mounts import StorageConfig


# =========================================================================
# ReadOnlyDriver: declares READER only
# =========================================================================


class ReadOnlyDriver(BaseDriver):
    """Lists one fixed file and refuses everything else."""

    storage_type = "READONLY"
    capabilities = Capability.READER

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[str] = []

    async def list_directory(self, target, *, caller=None):
        self.calls.append("list_directory")
        return ListResult(
            path=target.path,
            items=[FileInfo(path=target.path + "a.txt", name="a.txt", is_directory=False)],
            mount_id=target.mount.id,
        )

    async def exists(self, target):
        self.calls.append("exists")
        return target.sub_path == "/a.txt"


class ProxyDriver(ReadOnlyDriver):
    storage_type = "PROXYING"
    capabilities = Capability.READER | Capability.PROXY


class _Factory:
    async def create_driver(self, storage_type: str, config: StorageConfig) -> BaseDriver:
        driver = ProxyDriver() if storage_type == "PROXYING" else ReadOnlyDriver()
        await driver.initialize()
        return driver


ADMIN = CallerIdentity.admin("admin-1")


@pytest.fixture
async def vfs(store: MountStore) -> VirtualFileSystem:
    await store.add_storage_config(make_config("acct-1"))
    await store.add_mount(
        Mount(mount_path="/ro", storage_config_id="acct-1", storage_type="READONLY")
    )
    await store.add_mount(
        Mount(
            mount_path="/shared/public",
            storage_config_id="acct-1",
            storage_type="PROXYING",
            web_proxy=True,
            webdav_policy="native_proxy",
        )
    )
    await store.add_mount(
        Mount(
            mount_path="/shared/private",
            storage_config_id="acct-1",
            storage_type="PROXYING",
            sort_order=1,
        )
    )
    return VirtualFileSystem(MountResolver(store, _Factory()))  # type: ignore[arg-type]


# =========================================================================
# Declarations
# =========================================================================


class TestCapabilityFlags:
    def test_all_covers_every_group(self):
        full = Capability.all()
        for flag in (
            Capability.READER,
            Capability.WRITER,
            Capability.PRESIGNED,
            Capability.MULTIPART,
            Capability.ATOMIC,
            Capability.PROXY,
        ):
            assert flag in full

    def test_base_driver_declares_nothing(self):
        driver = BaseDriver()
        assert driver.get_capabilities() == Capability.NONE
        assert not driver.has_capability(Capability.READER)

    def test_read_only_driver_is_a_storage_driver(self):
        assert isinstance(ReadOnlyDriver(), StorageDriver)

    async def test_undeclared_operation_raises_typed_error(self):
        driver = ReadOnlyDriver()
        await driver.initialize()
        target = ResolvedPath(
            path="/ro/a.txt",
            mount=Mount(mount_path="/ro", storage_config_id="acct-1"),
            sub_path="/a.txt",
            driver=driver,
        )
        with pytest.raises(CapabilityNotSupportedError) as exc_info:
            await driver.upload_file(target, b"x")
        assert exc_info.value.status == 501

    async def test_stats_and_lifecycle(self):
        driver = ReadOnlyDriver()
        assert not driver.is_initialized()
        with pytest.raises(StorageError):
            driver._ensure_initialized()

        await driver.initialize()
        stats = await driver.get_stats()
        assert stats.type == "READONLY"
        assert stats.initialized is True

        await driver.cleanup()
        assert not driver.is_initialized()


# =========================================================================
# Façade gating
# =========================================================================


class TestFacadeGating:
    async def test_supported_operation_dispatches(self, vfs: VirtualFileSystem):
        listing = await vfs.list_directory("/ro", ADMIN)
        assert [item.name for item in listing.items] == ["a.txt"]
        assert listing.path == "/ro/"

    @pytest.mark.parametrize(
        ("operation", "args"),
        [
            pytest.param("upload_file", ("/ro/b.txt", b"x"), id="writer"),
            pytest.param("create_directory", ("/ro/new",), id="mkdir"),
            pytest.param("rename_item", ("/ro/a.txt", "/ro/b.txt"), id="atomic"),
            pytest.param("copy_item", ("/ro/a.txt", "/ro/b.txt"), id="copy"),
            pytest.param("generate_presigned_url", ("/ro/a.txt",), id="presigned"),
            pytest.param(
                "initialize_multipart_upload", ("/ro/", "big.bin", 10), id="multipart"
            ),
            pytest.param("generate_proxy_url", ("/ro/a.txt",), id="proxy"),
        ],
    )
    async def test_unsupported_operation_fails_before_driver(
        self, vfs: VirtualFileSystem, operation: str, args: tuple
    ):
        with pytest.raises(CapabilityNotSupportedError):
            await getattr(vfs, operation)(*args, ADMIN)

    async def test_errors_share_a_base(self, vfs: VirtualFileSystem):
        with pytest.raises(CloudMountError):
            await vfs.remove_item("/ro/a.txt", ADMIN)

    async def test_exists(self, vfs: VirtualFileSystem):
        assert await vfs.exists("/", ADMIN)
        assert await vfs.exists("/ro/a.txt", ADMIN)
        assert not await vfs.exists("/ro/zzz.txt", ADMIN)
        assert not await vfs.exists("/nowhere/a.txt", ADMIN)

    async def test_batch_remove_reports_each_failure(self, vfs: VirtualFileSystem):
        result = await vfs.batch_remove_items(["/ro/a.txt", "/nowhere/b.txt"], ADMIN)
        assert result.success_count == 0
        assert [f.path for f in result.failures] == ["/ro/a.txt", "/nowhere/b.txt"]

    async def test_batch_copy_requires_both_paths(self, vfs: VirtualFileSystem):
        result = await vfs.batch_copy_items([("", "/ro/b.txt")], ADMIN)
        assert len(result.failures) == 1
        assert result.failures[0].error == "Source and target paths are required"


# =========================================================================
# Virtual mount listings
# =========================================================================


class TestMountListing:
    async def test_root_lists_mounts(self, vfs: VirtualFileSystem):
        listing = await vfs.list_directory("/", ADMIN)
        assert listing.is_root
        assert [item.name for item in listing.items] == ["ro", "shared"]
        assert all(item.is_mount and item.is_directory for item in listing.items)
        assert all(item.size == 0 for item in listing.items)

    async def test_path_above_nested_mounts(self, vfs: VirtualFileSystem):
        listing = await vfs.list_directory("/shared", ADMIN)
        assert [item.path for item in listing.items] == [
            "/shared/private/",
            "/shared/public/",
        ]
        assert not listing.is_root

    async def test_unknown_path_without_nested_mounts(self, vfs: VirtualFileSystem):
        with pytest.raises(MountNotFoundError):
            await vfs.list_directory("/nowhere", ADMIN)

    async def test_scoped_caller_sees_only_its_mounts(self, vfs: VirtualFileSystem):
        caller = CallerIdentity.scoped("key-1", "/shared/public")
        listing = await vfs.list_directory("/", caller)
        assert [item.name for item in listing.items] == ["shared"]


# =========================================================================
# Proxy
# =========================================================================


class TestProxy:
    async def test_proxy_url(self, vfs: VirtualFileSystem):
        proxy = await vfs.generate_proxy_url("/shared/public/my file.txt", ADMIN)
        assert proxy.url == "/api/p/shared/public/my%20file.txt"
        assert proxy.policy == "native_proxy"
        assert proxy.download is False

    async def test_proxy_download_flag(self, vfs: VirtualFileSystem):
        proxy = await vfs.generate_proxy_url("/shared/public/a.txt", ADMIN, download=True)
        assert proxy.url.endswith("?download=true")

    async def test_proxy_disabled_on_mount(self, vfs: VirtualFileSystem):
        with pytest.raises(ForbiddenError):
            await vfs.generate_proxy_url("/shared/private/a.txt", ADMIN)

    async def test_proxy_config(self):
        driver = ProxyDriver()
        mount = Mount(mount_path="/p", storage_config_id="c", web_proxy=True)
        config = driver.get_proxy_config(mount)
        assert config.enabled is True
        assert config.webdav_policy == "302_redirect"
