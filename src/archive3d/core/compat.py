"""Version compatibility policy.

Format versions are ``MAJOR.MINOR`` strings. Readers load any version of
their own major line: older or equal minors fully, newer minors on a
best-effort basis (unknown fields are preserved, never interpreted). A
different major line, or a version string that cannot be parsed, puts the
reader in degraded mode: every field is treated as optional and nothing the
manifest lacks is fatal. A reader may instead refuse such archives, but
refusing is an explicit error, never a crash.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from .constants import FORMAT_VERSION
from ..logging import get_logger

logger = get_logger(__name__)

_VERSION_RE = re.compile(r"^\s*(\d+)(?:\.(\d+))?(?:\.(\d+))?\s*$")


class VersionStatus(str, Enum):
    """How a reader should treat a manifest's declared format version."""

    SUPPORTED = "supported"
    NEWER_MINOR = "newer_minor"
    UNSUPPORTED_MAJOR = "unsupported_major"
    UNPARSEABLE = "unparseable"
    MISSING = "missing"


@dataclass(frozen=True)
class VersionCheck:
    """Result of comparing a declared version against the reader's version."""

    declared: str | None
    supported: str
    status: VersionStatus

    @property
    def degraded(self) -> bool:
        """True when all fields must be treated as optional."""
        return self.status in (VersionStatus.UNSUPPORTED_MAJOR, VersionStatus.UNPARSEABLE)

    @property
    def best_effort(self) -> bool:
        return self.status is VersionStatus.NEWER_MINOR


def parse_version(version: str) -> tuple[int, int] | None:
    """Parse ``"1.2"`` (or ``"1"``, ``"1.2.3"``) into ``(major, minor)``."""
    match = _VERSION_RE.match(version)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2) or 0)


def check_version(declared: object, supported: str = FORMAT_VERSION) -> VersionCheck:
    """Classify a declared format version.

    Args:
        declared: Value of the manifest's ``format_version`` (any JSON value)
        supported: Version implemented by this reader

    Returns:
        VersionCheck describing how to proceed
    """
    if declared is None:
        return VersionCheck(None, supported, VersionStatus.MISSING)

    if not isinstance(declared, str):
        logger.warning("format_version is not a string: %r", declared)
        return VersionCheck(str(declared), supported, VersionStatus.UNPARSEABLE)

    parsed = parse_version(declared)
    ours = parse_version(supported)
    if parsed is None or ours is None:
        logger.warning("Unparseable format_version %r, loading in degraded mode", declared)
        return VersionCheck(declared, supported, VersionStatus.UNPARSEABLE)

    if parsed[0] != ours[0]:
        logger.warning(
            "Manifest format_version %s is outside major line %d, loading in degraded mode",
            declared,
            ours[0],
        )
        return VersionCheck(declared, supported, VersionStatus.UNSUPPORTED_MAJOR)

    if parsed[1] > ours[1]:
        logger.warning(
            "Manifest format_version %s is newer than %s; unknown fields are preserved "
            "but not interpreted",
            declared,
            supported,
        )
        return VersionCheck(declared, supported, VersionStatus.NEWER_MINOR)

    return VersionCheck(declared, supported, VersionStatus.SUPPORTED)
