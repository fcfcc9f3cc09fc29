"""cloudmount: one virtual filesystem over many S3-compatible storage accounts."""

__version__ = "0.1.0"

from cloudmount.drivers import DriverFactory, S3Driver, S3DriverSettings
from cloudmount.fs import (
    CallerIdentity,
    Capability,
    CloudMountError,
    GatewayCaches,
    MountResolver,
    MountStore,
    PlaintextDecryptor,
    VirtualFileSystem,
)
from cloudmount.models import FileRecord, Mount, StorageConfig
from cloudmount.retry import RetryPolicy

__all__ = [
    "CallerIdentity",
    "Capability",
    "CloudMountError",
    "DriverFactory",
    "FileRecord",
    "GatewayCaches",
    "Mount",
    "MountResolver",
    "MountStore",
    "PlaintextDecryptor",
    "RetryPolicy",
    "S3Driver",
    "S3DriverSettings",
    "StorageConfig",
    "VirtualFileSystem",
    "__version__",
]
