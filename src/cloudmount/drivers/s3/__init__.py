"""S3-compatible storage driver."""

from cloudmount.drivers.s3.client import PROVIDER_PROFILES, ProviderProfile, get_profile
from cloudmount.drivers.s3.context import S3DriverSettings
from cloudmount.drivers.s3.driver import S3Driver

__all__ = ["PROVIDER_PROFILES", "ProviderProfile", "S3Driver", "S3DriverSettings", "get_profile"]
