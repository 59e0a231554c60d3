"""Exception taxonomy for archive reading and writing.

Structural failures (bad container, missing or malformed manifest, missing
Minimal fields) are raised and abort the operation. Per-asset failures
(unsafe filename, missing file) are raised from the single asset call that
hit them and leave the rest of the session usable. Integrity mismatches are
never raised; they are reported and surfaced as a warning.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .profiles import ValidationReport


class ArchiveError(Exception):
    """Base class for all archive errors."""


class ContainerFormatError(ArchiveError):
    """The byte container is not a readable ZIP archive."""


class ManifestMissingError(ArchiveError):
    """No manifest.json at the container root."""


class ManifestParseError(ArchiveError):
    """manifest.json is not valid JSON (or not a JSON object)."""


class ManifestValidationError(ArchiveError):
    """The manifest fails the Minimal conformance bar.

    Attributes:
        report: The ValidationReport describing every missing field
    """

    def __init__(self, message: str, report: ValidationReport | None = None):
        super().__init__(message)
        self.report = report


class UnsupportedVersionError(ArchiveError):
    """The manifest declares a format version this reader refuses to load."""

    def __init__(self, version: str | None):
        super().__init__(f"Unsupported format version: {version!r}")
        self.version = version


class FilenameSecurityError(ArchiveError, ValueError):
    """An entry name failed sanitization (traversal, null byte, charset...)."""

    def __init__(self, filename: str, reason: str):
        super().__init__(f"Unsafe filename {filename[:64]!r}: {reason}")
        self.filename = filename
        self.reason = reason


class AssetNotFoundError(ArchiveError, LookupError):
    """A requested data entry or container file does not exist."""


class OperationCancelledError(ArchiveError):
    """A long-running hash or pack operation observed its cancel signal."""


class BuilderStateError(ArchiveError):
    """An operation was attempted in a builder state that does not allow it."""


class IntegrityMismatchWarning(UserWarning):
    """Recorded digests do not match the container contents."""
