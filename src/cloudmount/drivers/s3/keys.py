"""Mapping between mount-relative sub-paths and object keys."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cloudmount.models.mounts import StorageConfig

_REPEATED_SLASHES = re.compile(r"/+")


def normalize_prefix(prefix: str | None) -> str:
    """Normalize a key prefix: no leading slash, single slashes, trailing slash.

    Examples:
        normalize_prefix("/tenant//a") -> "tenant/a/"
        normalize_prefix("") -> ""
    """
    prefix = _REPEATED_SLASHES.sub("/", (prefix or "").strip()).strip("/")
    return prefix + "/" if prefix else ""


def account_prefix(config: StorageConfig) -> str:
    """Key prefix shared by every object of the account.

    ``root_prefix`` followed by ``default_folder``, both optional.
    """
    return normalize_prefix(config.root_prefix) + normalize_prefix(config.default_folder)


def to_object_key(sub_path: str, prefix: str = "", is_directory: bool = False) -> str:
    """Map a mount-relative sub-path to an object key.

    Directory keys end with ``/``; the mount root maps to ``prefix`` itself.

    Examples:
        to_object_key("/reports/q1.pdf", "acct/") -> "acct/reports/q1.pdf"
        to_object_key("/reports", "acct/", is_directory=True) -> "acct/reports/"
        to_object_key("/", "") -> ""
    """
    relative = _REPEATED_SLASHES.sub("/", sub_path or "").lstrip("/")
    if is_directory and relative and not relative.endswith("/"):
        relative += "/"
    return prefix + relative


def to_sub_path(key: str, prefix: str = "") -> str:
    """Inverse of :func:`to_object_key`: strip ``prefix`` and add a leading slash."""
    if prefix and key.startswith(prefix):
        key = key[len(prefix):]
    return "/" + key


def parent_key(key: str) -> str:
    """Directory key containing ``key``, or ``""`` at the bucket root.

    Examples:
        parent_key("a/b/c.txt") -> "a/b/"
        parent_key("a/b/") -> "a/"
        parent_key("c.txt") -> ""
    """
    stripped = key.rstrip("/")
    index = stripped.rfind("/")
    return stripped[: index + 1] if index >= 0 else ""


def key_name(key: str) -> str:
    """Last component of ``key``, ignoring a trailing slash."""
    return key.rstrip("/").rsplit("/", 1)[-1]
