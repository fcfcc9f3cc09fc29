"""Per-provider client options and an async wrapper over the boto3 S3 client.

Provider quirks live in ``PROVIDER_PROFILES`` and are resolved once when a
driver builds its client. Every call on :class:`AsyncS3Client` runs the
blocking boto3 call in a worker thread and fills in the bucket name.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import boto3
from botocore.config import Config

if TYPE_CHECKING:
    from cloudmount.fs.credentials import Decryptor
    from cloudmount.models.mounts import StorageConfig

logger = logging.getLogger(__name__)

USER_AGENT_EXTRA = "cloudmount"


@dataclass(frozen=True)
class ProviderProfile:
    """Client options for one provider type."""

    timeout: int = 30
    """Connect and read timeout in seconds."""

    max_retries: int = 3
    """Attempts made by botocore's standard retry mode."""

    checksum_when_required: bool = False
    """Only send and validate checksums when the operation demands it."""

    signature_version: str = "s3v4"

    default_region: str = "auto"
    """Region used when the storage config leaves it blank."""


PROVIDER_PROFILES: dict[str, ProviderProfile] = {
    "AWS": ProviderProfile(default_region="us-east-1"),
    "R2": ProviderProfile(checksum_when_required=True),
    "B2": ProviderProfile(timeout=60, max_retries=4, checksum_when_required=True),
    "ALIYUN_OSS": ProviderProfile(),
    "OTHER": ProviderProfile(),
}


def get_profile(provider_type: str | None) -> ProviderProfile:
    """Return the profile for ``provider_type``, falling back to ``OTHER``."""
    return PROVIDER_PROFILES.get((provider_type or "OTHER").upper(), PROVIDER_PROFILES["OTHER"])


def build_client_config(profile: ProviderProfile, *, path_style: bool = False) -> Config:
    """Translate a provider profile into a botocore ``Config``."""
    options: dict[str, Any] = {
        "signature_version": profile.signature_version,
        "connect_timeout": profile.timeout,
        "read_timeout": profile.timeout,
        "retries": {"max_attempts": profile.max_retries, "mode": "standard"},
        "s3": {"addressing_style": "path" if path_style else "auto"},
        "user_agent_extra": USER_AGENT_EXTRA,
    }
    if profile.checksum_when_required:
        options["request_checksum_calculation"] = "when_required"
        options["response_checksum_validation"] = "when_required"
    return Config(**options)


def create_s3_client(config: StorageConfig, decryptor: Decryptor, secret: str) -> Any:
    """Build a boto3 S3 client for a storage config, decrypting its credentials."""
    profile = get_profile(config.provider_type)
    session = boto3.session.Session()
    return session.client(
        "s3",
        endpoint_url=config.endpoint_url or None,
        region_name=config.region or profile.default_region,
        aws_access_key_id=decryptor.decrypt(config.access_key_id, secret),
        aws_secret_access_key=decryptor.decrypt(config.secret_access_key, secret),
        config=build_client_config(profile, path_style=config.path_style),
    )


class AsyncS3Client:
    """Bucket-bound async facade over a synchronous boto3 S3 client."""

    def __init__(self, client: Any, bucket: str) -> None:
        self._client = client
        self.bucket = bucket

    @property
    def raw(self) -> Any:
        """The underlying boto3 client."""
        return self._client

    async def _call(self, method: str, **params: Any) -> dict[str, Any]:
        func = getattr(self._client, method)
        return await asyncio.to_thread(func, Bucket=self.bucket, **params)

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    async def head_object(self, key: str) -> dict[str, Any]:
        return await self._call("head_object", Key=key)

    async def get_object(self, key: str, *, byte_range: str | None = None) -> dict[str, Any]:
        """Fetch an object, reading its body inside the worker thread.

        The returned mapping carries the body bytes under ``Body``.
        """
        params: dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if byte_range:
            params["Range"] = byte_range

        def _get() -> dict[str, Any]:
            response = self._client.get_object(**params)
            body = response["Body"]
            try:
                response["Body"] = body.read()
            finally:
                body.close()
            return response

        return await asyncio.to_thread(_get)

    async def put_object(self, key: str, body: bytes = b"", **params: Any) -> dict[str, Any]:
        return await self._call("put_object", Key=key, Body=body, **params)

    async def copy_object(self, source_key: str, target_key: str, **params: Any) -> dict[str, Any]:
        return await self._call(
            "copy_object",
            Key=target_key,
            CopySource={"Bucket": self.bucket, "Key": source_key},
            **params,
        )

    async def delete_object(self, key: str) -> dict[str, Any]:
        return await self._call("delete_object", Key=key)

    async def list_objects_v2(self, **params: Any) -> dict[str, Any]:
        return await self._call("list_objects_v2", **params)

    # ------------------------------------------------------------------
    # Multipart
    # ------------------------------------------------------------------

    async def create_multipart_upload(self, key: str, **params: Any) -> dict[str, Any]:
        return await self._call("create_multipart_upload", Key=key, **params)

    async def upload_part(
        self, key: str, *, upload_id: str, part_number: int, body: bytes
    ) -> dict[str, Any]:
        return await self._call(
            "upload_part", Key=key, UploadId=upload_id, PartNumber=part_number, Body=body
        )

    async def complete_multipart_upload(
        self, key: str, *, upload_id: str, parts: list[dict[str, Any]]
    ) -> dict[str, Any]:
        return await self._call(
            "complete_multipart_upload",
            Key=key,
            UploadId=upload_id,
            MultipartUpload={"Parts": parts},
        )

    async def abort_multipart_upload(self, key: str, *, upload_id: str) -> dict[str, Any]:
        return await self._call("abort_multipart_upload", Key=key, UploadId=upload_id)

    async def list_parts(self, key: str, *, upload_id: str) -> dict[str, Any]:
        return await self._call("list_parts", Key=key, UploadId=upload_id)

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def presign(self, client_method: str, params: dict[str, Any], expires_in: int) -> str:
        """Sign a request locally. No network call is made."""
        return self._client.generate_presigned_url(
            ClientMethod=client_method,
            Params={"Bucket": self.bucket, **params},
            ExpiresIn=expires_in,
        )

    def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            close()
