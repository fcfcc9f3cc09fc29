"""Storage drivers and the factory that builds them."""

from cloudmount.drivers.factory import DriverFactory, validate_s3_config
from cloudmount.drivers.s3 import S3Driver, S3DriverSettings

__all__ = ["DriverFactory", "S3Driver", "S3DriverSettings", "validate_s3_config"]
