"""Signed and custom-domain URLs for one storage account."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import quote, urlsplit, urlunsplit

from cloudmount.fs.types import PresignedUrl
from cloudmount.fs.utils import content_disposition, guess_mime_type

from .keys import key_name

if TYPE_CHECKING:
    from cloudmount.fs.cache import PresignedUrlCache
    from cloudmount.fs.permissions import CallerIdentity
    from cloudmount.models.mounts import StorageConfig

    from .client import AsyncS3Client

logger = logging.getLogger(__name__)

DEFAULT_URL_EXPIRY = 3600

# Providers that reject response-content-type overrides on signed GETs.
_NO_RESPONSE_CONTENT_TYPE = frozenset({"ALIYUN_OSS"})


class Presigner:
    """Builds download, upload and part URLs, caching downloads per caller."""

    def __init__(
        self,
        s3: AsyncS3Client,
        config: StorageConfig,
        url_cache: PresignedUrlCache | None = None,
    ) -> None:
        self._s3 = s3
        self._config = config
        self._url_cache = url_cache

    def expiry(self, expires_in: int | None = None) -> int:
        return int(expires_in or self._config.signature_expires_in or DEFAULT_URL_EXPIRY)

    # ------------------------------------------------------------------
    # URL shapes
    # ------------------------------------------------------------------

    def custom_host_url(self, key: str) -> str:
        host = (self._config.custom_host or "").rstrip("/")
        path = quote(key.lstrip("/"))
        if self._config.path_style:
            return f"{host}/{self._config.bucket_name}/{path}"
        return f"{host}/{path}"

    def object_url(self, key: str) -> str:
        """Unsigned URL of an object, as recorded in the file registry."""
        if self._config.custom_host:
            return self.custom_host_url(key)
        endpoint = (self._config.endpoint_url or "").rstrip("/")
        bucket = self._config.bucket_name
        if self._config.path_style or not endpoint:
            return f"{endpoint}/{bucket}/{quote(key)}"
        parts = urlsplit(endpoint)
        return urlunsplit((parts.scheme, f"{bucket}.{parts.netloc}", "/" + quote(key), "", ""))

    def _signed_get(self, key: str, expires_in: int, force_download: bool) -> str:
        file_name = key_name(key)
        params = {
            "Key": key,
            "ResponseContentDisposition": content_disposition(file_name, force_download),
        }
        if (self._config.provider_type or "").upper() not in _NO_RESPONSE_CONTENT_TYPE:
            params["ResponseContentType"] = guess_mime_type(file_name)
        return self._s3.presign("get_object", params, expires_in)

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    def get_url(
        self,
        key: str,
        *,
        expires_in: int | None = None,
        force_download: bool = False,
        caller: CallerIdentity | None = None,
        use_cache: bool = True,
    ) -> PresignedUrl:
        """Download or preview URL for ``key``.

        With a custom host, previews are direct unsigned links and forced
        downloads are signed URLs re-pointed at the custom host. Results
        are cached only for callers with an identity.
        """
        expires = self.expiry(expires_in)
        content_type = guess_mime_type(key_name(key))
        scope = caller.cache_scope if caller is not None else None
        cache = self._url_cache if use_cache and scope is not None else None

        if cache is not None:
            cached = cache.get(self._config.id, key, force_download, scope)
            if cached is not None:
                logger.debug("Presigned URL cache hit: %s", key)
                return PresignedUrl(
                    url=cached.url,
                    key=key,
                    operation="get",
                    expires_in=cached.expires_in,
                    content_type=content_type,
                    force_download=force_download,
                    is_direct=cached.is_direct,
                    cached=True,
                )

        is_direct = False
        if self._config.custom_host and not force_download:
            url = self.custom_host_url(key)
            is_direct = True
        else:
            url = self._signed_get(key, expires, force_download)
            if self._config.custom_host:
                signed = urlsplit(url)
                host = urlsplit(self.custom_host_url(key))
                url = urlunsplit((host.scheme, host.netloc, host.path, signed.query, ""))

        if cache is not None:
            cache.set(
                self._config.id,
                key,
                force_download,
                scope,
                url,
                expires_in=expires,
                is_direct=is_direct,
            )

        return PresignedUrl(
            url=url,
            key=key,
            operation="get",
            expires_in=expires,
            content_type=content_type,
            force_download=force_download,
            is_direct=is_direct,
        )

    def put_url(self, key: str, *, expires_in: int | None = None) -> PresignedUrl:
        """Signed upload URL; the content type is derived from the key's name."""
        expires = self.expiry(expires_in)
        content_type = guess_mime_type(key_name(key))
        url = self._s3.presign(
            "put_object", {"Key": key, "ContentType": content_type}, expires
        )
        return PresignedUrl(
            url=url, key=key, operation="put", expires_in=expires, content_type=content_type
        )

    def part_url(self, key: str, *, upload_id: str, part_number: int, expires_in: int) -> str:
        return self._s3.presign(
            "upload_part",
            {"Key": key, "UploadId": upload_id, "PartNumber": part_number},
            expires_in,
        )
