"""Shared fixtures for cloudmount tests."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import boto3
import pytest
from moto import mock_aws
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from cloudmount.drivers.factory import DriverFactory
from cloudmount.drivers.s3.context import S3DriverSettings
from cloudmount.fs.cache import GatewayCaches
from cloudmount.fs.credentials import PlaintextDecryptor
from cloudmount.fs.mounts import MountResolver
from cloudmount.fs.permissions import CallerIdentity
from cloudmount.fs.store import MountStore
from cloudmount.fs.vfs import VirtualFileSystem
from cloudmount.models.mounts import Mount, StorageConfig
from cloudmount.retry import RetryPolicy

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

    from sqlalchemy.ext.asyncio import AsyncEngine

ENDPOINT = "https://s3.amazonaws.com"
REGION = "us-east-1"
BUCKET = "cloudmount-primary"
OTHER_BUCKET = "cloudmount-secondary"


class FakeClock:
    """Monotonic clock whose time only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_config(config_id: str = "acct-1", **overrides: Any) -> StorageConfig:
    """A valid AWS storage config pointing at the moto endpoint."""
    fields: dict[str, Any] = {
        "id": config_id,
        "name": f"Account {config_id}",
        "provider_type": "AWS",
        "endpoint_url": ENDPOINT,
        "bucket_name": BUCKET,
        "region": REGION,
        "access_key_id": "testing",
        "secret_access_key": "testing",
    }
    fields.update(overrides)
    return StorageConfig(**fields)


# =========================================================================
# Persistence
# =========================================================================


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine with all tables created."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def store(async_engine: AsyncEngine) -> MountStore:
    factory = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)
    return MountStore(factory)


# =========================================================================
# Caches
# =========================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def caches(clock: FakeClock) -> GatewayCaches:
    return GatewayCaches.with_clock(clock)


# =========================================================================
# S3 (moto)
# =========================================================================


@pytest.fixture
def aws_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Fake credentials so nothing can reach a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)


@pytest.fixture
def s3(aws_credentials: None) -> Iterator[Any]:
    """A boto3 client on a mocked S3 with both test buckets created."""
    with mock_aws():
        client = boto3.client("s3", region_name=REGION)
        client.create_bucket(Bucket=BUCKET)
        client.create_bucket(Bucket=OTHER_BUCKET)
        yield client


@pytest.fixture
def settings() -> S3DriverSettings:
    """Driver settings with instant abort retries."""
    return S3DriverSettings(abort_retry=RetryPolicy(initial_delay=0.0, max_delay=0.0))


# =========================================================================
# Gateway
# =========================================================================


@dataclass
class Gateway:
    vfs: VirtualFileSystem
    resolver: MountResolver
    store: MountStore
    caches: GatewayCaches
    s3: Any
    docs: Mount
    archive: Mount


GatewayFactory = Callable[..., Awaitable[Gateway]]


@pytest.fixture
async def make_gateway(
    s3: Any, store: MountStore, caches: GatewayCaches, settings: S3DriverSettings
) -> AsyncIterator[GatewayFactory]:
    """Build a façade with ``/docs`` on one account and ``/archive`` on another.

    ``docs_config`` overrides fields of the ``/docs`` account, ``settings``
    replaces the driver settings. Call once per test.
    """
    built: list[VirtualFileSystem] = []

    async def _build(
        *,
        docs_config: dict[str, Any] | None = None,
        settings: S3DriverSettings = settings,
    ) -> Gateway:
        await store.add_storage_config(make_config("acct-1", **(docs_config or {})))
        await store.add_storage_config(make_config("acct-2", bucket_name=OTHER_BUCKET))
        docs = await store.add_mount(
            Mount(name="Docs", mount_path="/docs", storage_config_id="acct-1", cache_ttl=300)
        )
        archive = await store.add_mount(
            Mount(name="Archive", mount_path="/archive", storage_config_id="acct-2", sort_order=1)
        )

        factory = DriverFactory(
            PlaintextDecryptor(), "secret", caches=caches, store=store, settings=settings
        )
        resolver = MountResolver(store, factory)
        vfs = VirtualFileSystem(resolver)
        built.append(vfs)
        return Gateway(
            vfs=vfs,
            resolver=resolver,
            store=store,
            caches=caches,
            s3=s3,
            docs=docs,
            archive=archive,
        )

    yield _build
    for vfs in built:
        await vfs.close()


@pytest.fixture
async def gateway(make_gateway: GatewayFactory) -> Gateway:
    """The default façade: no key prefix, one listing page."""
    return await make_gateway()

@pytest.fixture
def admin() -> CallerIdentity:
    return CallerIdentity.admin("admin-1")


def put(s3: Any, key: str, body: bytes = b"data", bucket: str = BUCKET) -> None:
    s3.put_object(Bucket=bucket, Key=key, Body=body)


def keys(s3: Any, bucket: str = BUCKET, prefix: str = "") -> list[str]:
    response = s3.list_objects_v2(Bucket=bucket, Prefix=prefix)
    return sorted(obj["Key"] for obj in response.get("Contents", []))
