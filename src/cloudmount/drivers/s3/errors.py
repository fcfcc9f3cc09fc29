"""Translation of botocore errors into the cloudmount taxonomy."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from botocore.exceptions import ClientError

from cloudmount.fs.exceptions import (
    CloudMountError,
    ForbiddenError,
    PathNotFoundError,
    StorageError,
)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound", "NoSuchBucket"})
FORBIDDEN_CODES = frozenset(
    {"403", "AccessDenied", "Forbidden", "InvalidAccessKeyId", "SignatureDoesNotMatch"}
)
NO_SUCH_UPLOAD = "NoSuchUpload"


def error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def status_code(error: ClientError) -> int | None:
    return error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


def is_not_found(error: BaseException) -> bool:
    return isinstance(error, ClientError) and (
        error_code(error) in NOT_FOUND_CODES or status_code(error) == 404
    )


def is_no_such_upload(error: BaseException) -> bool:
    if not isinstance(error, ClientError):
        return False
    return error_code(error) == NO_SUCH_UPLOAD or (
        "multipart upload does not exist" in str(error).lower()
    )


def is_method_not_allowed(error: BaseException) -> bool:
    return isinstance(error, ClientError) and (
        status_code(error) == 405 or error_code(error) in ("405", "MethodNotAllowed")
    )


def translate_client_error(
    error: ClientError,
    *,
    operation: str,
    path: str | None = None,
    provider: str | None = None,
) -> CloudMountError:
    """Map a botocore ``ClientError`` onto the cloudmount taxonomy."""
    code = error_code(error)
    target = path or "object"
    if is_not_found(error):
        return PathNotFoundError(f"{operation}: {target} not found")
    if code in FORBIDDEN_CODES or status_code(error) == 403:
        return ForbiddenError(f"{operation}: access denied to {target}")
    return StorageError(
        f"{operation} failed for {target}: {code or error}",
        operation=operation,
        path=path,
        provider=provider,
    )


@asynccontextmanager
async def handle_fs_errors(
    operation: str, *, path: str | None = None, provider: str | None = None
) -> AsyncGenerator[None]:
    """Normalize anything raised in the block to a ``CloudMountError``."""
    try:
        yield
    except CloudMountError:
        raise
    except ClientError as e:
        logger.error("%s failed for %s: %s", operation, path, e)
        raise translate_client_error(
            e, operation=operation, path=path, provider=provider
        ) from e
    except Exception as e:
        logger.error("%s failed for %s: %s", operation, path, e)
        raise StorageError(
            f"{operation} failed for {path or 'object'}: {e}",
            operation=operation,
            path=path,
            provider=provider,
        ) from e
