"""Custom exception hierarchy for the cloudmount filesystem layer.

Every error raised above the driver boundary is a ``CloudMountError``.
``status`` carries the HTTP-like code protocol layers map onto their own
responses.
"""

from __future__ import annotations


class CloudMountError(Exception):
    """Base exception for all cloudmount filesystem errors."""

    status: int = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(CloudMountError):
    """Raised when a mount, file or directory does not exist."""

    status = 404


class MountNotFoundError(NotFoundError):
    """Raised when no mount matches the given virtual path."""


class PathNotFoundError(NotFoundError):
    """Raised when a file or directory path does not exist."""


class ForbiddenError(CloudMountError):
    """Raised when a path lies outside the caller's granted scope."""

    status = 403


class ConflictError(CloudMountError):
    """Raised when the target of a create or rename already exists."""

    status = 409


class CapabilityNotSupportedError(CloudMountError):
    """Raised when a driver doesn't support a requested capability."""

    status = 501


class BadRequestError(CloudMountError):
    """Raised on malformed input (paths, mismatched operand types)."""

    status = 400


class InvalidPathError(BadRequestError):
    """Raised when a path fails the security checks."""


class ConfigValidationError(BadRequestError):
    """Raised when a storage configuration is missing or has invalid fields."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("Invalid storage configuration: " + "; ".join(errors))
        self.errors = list(errors)


class StorageError(CloudMountError):
    """Raised on unexpected storage backend failures."""

    status = 500

    def __init__(
        self,
        message: str = "",
        *,
        operation: str | None = None,
        path: str | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.path = path
        self.provider = provider
