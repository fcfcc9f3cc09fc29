"""DriverFactory: validates storage configs and builds initialized drivers."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from cloudmount.fs.cache import GatewayCaches
from cloudmount.fs.exceptions import CapabilityNotSupportedError, ConfigValidationError

from .s3.context import S3DriverSettings
from .s3.driver import S3Driver

if TYPE_CHECKING:
    from cloudmount.fs.credentials import Decryptor
    from cloudmount.fs.protocol import StorageDriver
    from cloudmount.fs.store import ConfigStore
    from cloudmount.models.mounts import StorageConfig

logger = logging.getLogger(__name__)

_BUCKET_NAME = re.compile(r"^[a-z0-9.-]+$")

REQUIRED_S3_FIELDS = (
    "id",
    "name",
    "provider_type",
    "endpoint_url",
    "bucket_name",
    "access_key_id",
    "secret_access_key",
)


def validate_s3_config(config: StorageConfig) -> list[str]:
    """Every problem with an S3 config. An empty list means it is usable."""
    errors = [
        f"Missing required field: {name}"
        for name in REQUIRED_S3_FIELDS
        if not getattr(config, name, None)
    ]
    if config.endpoint_url:
        parsed = urlparse(config.endpoint_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append(f"Invalid endpoint_url: {config.endpoint_url}")
    if config.bucket_name and not _BUCKET_NAME.match(config.bucket_name):
        errors.append(
            "Invalid bucket_name: only lowercase letters, digits, dots and hyphens are allowed"
        )
    return errors


class DriverFactory:
    """Creates drivers by storage type.

    Every driver built by one factory shares the same caches, store and
    credential decryptor.
    """

    def __init__(
        self,
        decryptor: Decryptor,
        secret: str,
        *,
        caches: GatewayCaches | None = None,
        store: ConfigStore | None = None,
        settings: S3DriverSettings | None = None,
    ) -> None:
        self._decryptor = decryptor
        self._secret = secret
        self.caches = caches or GatewayCaches()
        self._store = store
        self._settings = settings or S3DriverSettings()
        self._registry: dict[str, type[Any]] = {S3Driver.storage_type: S3Driver}
        self._validators = {S3Driver.storage_type: validate_s3_config}

    def register_driver(
        self, storage_type: str, driver_cls: type[Any], validator: Any = None
    ) -> None:
        """Add (or replace) the driver class used for ``storage_type``."""
        self._registry[storage_type] = driver_cls
        if validator is not None:
            self._validators[storage_type] = validator

    def supported_types(self) -> list[str]:
        return sorted(self._registry)

    def is_supported(self, storage_type: str) -> bool:
        return storage_type in self._registry

    def validate_config(self, storage_type: str, config: StorageConfig) -> None:
        """Raise :class:`ConfigValidationError` listing every problem at once."""
        if not self.is_supported(storage_type):
            raise CapabilityNotSupportedError(f"Unsupported storage type: {storage_type}")
        validator = self._validators.get(storage_type)
        errors = validator(config) if validator is not None else []
        if errors:
            raise ConfigValidationError(errors)

    async def create_driver(self, storage_type: str, config: StorageConfig) -> StorageDriver:
        """Validate ``config``, build the driver and initialize it.

        Raises:
            CapabilityNotSupportedError: no driver is registered for the type.
            ConfigValidationError: the config is incomplete or malformed.
        """
        self.validate_config(storage_type, config)
        driver_cls = self._registry[storage_type]
        driver = driver_cls(
            config,
            decryptor=self._decryptor,
            secret=self._secret,
            caches=self.caches,
            store=self._store,
            settings=self._settings,
        )
        await driver.initialize()
        logger.info("Created %s driver for %s", storage_type, config.id)
        return driver
