"""Entry-name sanitization.

Names stored in a manifest are untrusted input: an archive can be crafted
by anyone. Every name read from container data passes through
:func:`sanitize_archive_filename` before it is used to look up, extract or
write anything.
"""

import re
from pathlib import Path
from urllib.parse import unquote

from .constants import MAX_FILENAME_LENGTH, SAFE_FILENAME_PATTERN
from .errors import FilenameSecurityError

_SAFE_FILENAME_RE = re.compile(SAFE_FILENAME_PATTERN)


def _has_dot_dot(name: str) -> bool:
    # Any ".." run is refused, not only whole path segments
    return ".." in name


def sanitize_archive_filename(filename: str) -> str:
    """Validate and normalize an entry name taken from archive data.

    Backslashes are normalized to forward slashes and a leading ``./`` is
    dropped; anything else that is not already safe is rejected rather
    than repaired.

    Args:
        filename: Raw entry name (e.g. a DataEntry ``file_name``)

    Returns:
        The normalized name, safe to use as a container key or a path
        relative to an extraction root

    Raises:
        FilenameSecurityError: If the name is empty, contains a null byte,
            a ``..`` sequence anywhere (literal, percent-encoded or
            double-encoded, so ``model..glb`` is refused too),
            is absolute, longer than 255 characters, hidden, or uses
            characters outside ``[A-Za-z0-9_-./]``
    """
    if not isinstance(filename, str) or not filename:
        raise FilenameSecurityError(str(filename), "Filename is empty or not a string")

    if "\x00" in filename:
        raise FilenameSecurityError(filename, "Filename contains null bytes")

    # One decode pass, then a second one to catch %252e%252e style input
    once = unquote(filename)
    twice = unquote(once)
    if "\x00" in once or "\x00" in twice:
        raise FilenameSecurityError(filename, "Filename contains encoded null bytes")
    if any(_has_dot_dot(candidate) for candidate in (filename, once, twice)):
        raise FilenameSecurityError(filename, "Path traversal attempt detected")

    sanitized = filename.replace("\\", "/")
    while sanitized.startswith("./"):
        sanitized = sanitized[2:]

    if sanitized.startswith("/"):
        raise FilenameSecurityError(filename, "Absolute paths are not allowed")

    if not sanitized:
        raise FilenameSecurityError(filename, "Filename is empty after sanitization")

    if len(sanitized) > MAX_FILENAME_LENGTH:
        raise FilenameSecurityError(
            filename, f"Filename exceeds maximum length ({MAX_FILENAME_LENGTH} characters)"
        )

    if sanitized.startswith("."):
        raise FilenameSecurityError(filename, "Hidden files are not allowed")

    if sanitized.endswith("/"):
        raise FilenameSecurityError(filename, "Filename refers to a directory")

    if not _SAFE_FILENAME_RE.match(sanitized):
        raise FilenameSecurityError(filename, "Filename contains invalid characters")

    return sanitized


def is_safe_filename(filename: str) -> bool:
    """Return True when ``filename`` passes :func:`sanitize_archive_filename`."""
    try:
        sanitize_archive_filename(filename)
    except FilenameSecurityError:
        return False
    return True


def validate_path_safety(path: Path, base_dir: Path) -> None:
    """Validate that a path stays within the base directory.

    Used as a second line of defence when extracted assets are written to
    disk: even a sanitized name must not resolve (through symlinks in the
    destination tree) outside the extraction root.

    Args:
        path: Path to validate
        base_dir: Base directory that path must be within

    Raises:
        FilenameSecurityError: If path escapes the base directory
    """
    resolved_path = path.resolve()
    resolved_base = base_dir.resolve()

    if not resolved_path.is_relative_to(resolved_base):
        raise FilenameSecurityError(str(path), f"Path escapes base directory {base_dir}")
