"""Caller identity and path-scope checks."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .utils import is_within, normalize_path


class CallerType(str, Enum):
    """Kind of caller issuing a filesystem request."""

    ADMIN = "admin"
    SCOPED = "scoped"
    PROXY = "proxy"


@dataclass(frozen=True)
class CallerIdentity:
    """Who is calling, and which part of the namespace they may touch."""

    type: CallerType
    """Caller kind. Admins see every mount."""

    id: str | None = None
    """Stable caller id. ``None`` for anonymous proxy access."""

    allowed_path_prefix: str = "/"
    """Virtual path prefix granted to scoped callers."""

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "allowed_path_prefix", normalize_path(self.allowed_path_prefix)
        )

    @classmethod
    def admin(cls, admin_id: str) -> CallerIdentity:
        return cls(CallerType.ADMIN, admin_id)

    @classmethod
    def scoped(cls, caller_id: str, allowed_path_prefix: str = "/") -> CallerIdentity:
        return cls(CallerType.SCOPED, caller_id, allowed_path_prefix)

    @classmethod
    def proxy(cls) -> CallerIdentity:
        return cls(CallerType.PROXY)

    @property
    def is_admin(self) -> bool:
        return self.type == CallerType.ADMIN

    @property
    def is_proxy(self) -> bool:
        return self.type == CallerType.PROXY

    @property
    def cache_scope(self) -> tuple[str, str] | None:
        """``(type, id)`` used to isolate cached URLs, or None when anonymous."""
        if self.id is None:
            return None
        return self.type.value, self.id

    def can_access(self, path: str) -> bool:
        """True when ``path`` lies inside the caller's granted prefix."""
        if self.type != CallerType.SCOPED:
            return True
        return is_within(path, self.allowed_path_prefix)

    def can_see_mount(self, mount_path: str) -> bool:
        """True when the mount overlaps the caller's granted prefix."""
        if self.type != CallerType.SCOPED:
            return True
        return is_within(mount_path, self.allowed_path_prefix) or is_within(
            self.allowed_path_prefix, mount_path
        )
