"""Path utilities, name parsing, MIME detection."""

from __future__ import annotations

import mimetypes
import re
from urllib.parse import quote, unquote

from .exceptions import InvalidPathError

# =============================================================================
# Constants
# =============================================================================

DIRECTORY_CONTENT_TYPE = "application/x-directory"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

MAX_PATH_LENGTH = 4096
MAX_NAME_LENGTH = 255

DEFAULT_MAX_SUFFIX_STRIPS = 10
"""Upper bound on ``(n)`` suffixes stripped from a name before numbering it."""

_DANGEROUS_CHARS = re.compile(r'[<>:"|?*\\\x00-\x1f\x7f]')
_REPEATED_SLASHES = re.compile(r"/+")
_NUMBERED_SUFFIX = re.compile(r"^(.+)\((\d+)\)$")
_DISPOSITION_SAFE = "!~*'()"


# =============================================================================
# Path Utilities
# =============================================================================


def normalize_path(path: str, is_directory: bool = False) -> str:
    """Normalize a virtual path.

    - Ensures leading /
    - Collapses repeated slashes
    - Keeps a trailing slash, adding one when ``is_directory`` is set

    Examples:
        normalize_path("docs/a.txt") -> "/docs/a.txt"
        normalize_path("/docs//reports/") -> "/docs/reports/"
        normalize_path("/docs", is_directory=True) -> "/docs/"
        normalize_path("") -> "/"
    """
    path = (path or "").strip()
    if not path.startswith("/"):
        path = "/" + path
    path = _REPEATED_SLASHES.sub("/", path)
    if is_directory and not path.endswith("/"):
        path += "/"
    return path


def validate_path(path: str) -> tuple[bool, str]:
    """Validate a raw virtual path for security and compatibility issues.

    Returns:
        (is_valid, error_message) - error_message is empty if valid
    """
    if not path:
        return False, "Path must not be empty"

    if "%2f" in path.lower():
        return False, "Path contains an encoded slash (%2F)"

    decoded = unquote(path)
    if len(decoded) > MAX_PATH_LENGTH:
        return False, f"Path too long (max {MAX_PATH_LENGTH} characters)"

    match = _DANGEROUS_CHARS.search(decoded)
    if match:
        return False, f"Path contains illegal character: 0x{ord(match.group()):02x}"

    for segment in decoded.split("/"):
        if segment == "..":
            return False, "Path contains a parent directory reference (..)"
        if len(segment) > MAX_NAME_LENGTH:
            return False, f"Path segment too long (max {MAX_NAME_LENGTH} characters)"

    return True, ""


def secure_path(path: str, is_directory: bool = False) -> str:
    """Validate, percent-decode and normalize a virtual path.

    Drops ``.`` segments. Raises :class:`InvalidPathError` on anything
    :func:`validate_path` rejects.
    """
    ok, error = validate_path(path)
    if not ok:
        raise InvalidPathError(f"{error}: {path!r}")

    decoded = unquote(path)
    trailing = decoded.endswith("/")
    segments = [s for s in decoded.split("/") if s not in ("", ".")]
    cleaned = "/" + "/".join(segments)
    if (trailing or is_directory) and cleaned != "/":
        cleaned += "/"
    return cleaned


def is_directory_path(path: str) -> bool:
    """True when the path is in directory form (trailing slash)."""
    return path.endswith("/")


def split_path(path: str) -> tuple[str, str]:
    """Split path into (parent_dir, name), ignoring a trailing slash.

    The parent is returned in directory form.

    Examples:
        split_path("/docs/a.txt") -> ("/docs/", "a.txt")
        split_path("/docs/reports/") -> ("/docs/", "reports")
        split_path("/") -> ("/", "")
    """
    stripped = normalize_path(path).rstrip("/")
    if not stripped:
        return "/", ""
    parent, _, name = stripped.rpartition("/")
    return (parent + "/") if parent else "/", name


def parent_path(path: str) -> str:
    """Return the parent directory of ``path`` in directory form."""
    return split_path(path)[0]


def base_name(path: str) -> str:
    """Return the last path component, ignoring a trailing slash."""
    return split_path(path)[1]


def is_within(path: str, prefix: str) -> bool:
    """True when ``path`` equals ``prefix`` or lies beneath it."""
    path = normalize_path(path).rstrip("/") or "/"
    prefix = normalize_path(prefix).rstrip("/") or "/"
    if prefix == "/":
        return True
    return path == prefix or path.startswith(prefix + "/")


# =============================================================================
# Name Parsing
# =============================================================================


def strip_numbered_suffix(name: str, max_strips: int = DEFAULT_MAX_SUFFIX_STRIPS) -> str:
    """Remove up to ``max_strips`` trailing ``(n)`` suffixes from ``name``.

    Examples:
        strip_numbered_suffix("report(2)") -> "report"
        strip_numbered_suffix("a(1)(2)") -> "a"
    """
    for _ in range(max_strips):
        match = _NUMBERED_SUFFIX.match(name)
        if match is None:
            break
        name = match.group(1)
    return name


def parse_file_name(
    name: str, max_suffix_strips: int = DEFAULT_MAX_SUFFIX_STRIPS
) -> tuple[str, str]:
    """Split a file name into (base, extension) with ``(n)`` suffixes removed.

    A leading dot is treated as the extension (``.env`` -> ``("", ".env")``).

    Examples:
        parse_file_name("a.txt") -> ("a", ".txt")
        parse_file_name("a(2).txt") -> ("a", ".txt")
        parse_file_name("archive") -> ("archive", "")
    """
    dot = name.rfind(".")
    if dot > 0:
        base, ext = name[:dot], name[dot:]
    elif dot == 0:
        base, ext = "", name
    else:
        base, ext = name, ""

    base = strip_numbered_suffix(base, max_suffix_strips)
    if not base and not ext:
        base = "unnamed"
    return base, ext


def numbered_name(base: str, counter: int, ext: str = "") -> str:
    """Return ``base(counter)ext``."""
    return f"{base}({counter}){ext}"


def match_rank(name: str, query: str) -> int | None:
    """0 for an exact match, 1 for a prefix, 2 for a substring, None otherwise.

    Both arguments are compared case-insensitively.
    """
    name = name.lower()
    query = query.lower()
    if name == query:
        return 0
    if name.startswith(query):
        return 1
    if query in name:
        return 2
    return None


# =============================================================================
# Content Type Detection
# =============================================================================


def guess_mime_type(filename: str) -> str:
    """Guess the MIME type of a file from its name alone."""
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type or DEFAULT_CONTENT_TYPE


def content_disposition(filename: str, force_download: bool = False) -> str:
    """Build an inline or attachment ``Content-Disposition`` header value."""
    kind = "attachment" if force_download else "inline"
    return f'{kind}; filename="{quote(filename, safe=_DISPOSITION_SAFE)}"'
