"""Archive reader: opens a container, parses its manifest, serves assets.

Structural problems (not a ZIP, no root manifest.json, malformed JSON,
missing Minimal fields) fail :meth:`ArchiveReader.open`. Everything after
that is per asset: an unsafe or missing file name fails only the call that
asked for it. Integrity checks are on demand and advisory.

Example:
    >>> async with ArchiveReader() as reader:
    ...     await reader.open("temple.a3d")
    ...     key, entry = reader.primary_entry("mesh")
    ...     glb = await reader.extract_asset(key)
"""

from __future__ import annotations

import asyncio
import os
import warnings
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

from .container.codec import ContainerHandle, EntryDescriptor, open_container
from .core.compat import VersionCheck, check_version
from .core.constants import MANIFEST_NAME
from .core.errors import (
    ArchiveError,
    AssetNotFoundError,
    FilenameSecurityError,
    IntegrityMismatchWarning,
    ManifestMissingError,
    ManifestValidationError,
    UnsupportedVersionError,
)
from .core.integrity import MismatchReport, verify
from .core.manifest import Annotation, DataEntry, Manifest, Transform, entry_type, parse_manifest
from .core.profiles import ConformanceLevel, ValidationReport, validate_manifest
from .core.sanitizer import is_safe_filename, sanitize_archive_filename, validate_path_safety
from .logging import get_logger

logger = get_logger(__name__)


class ReaderState(str, Enum):
    UNOPENED = "unopened"
    CONTAINER_OPEN = "container_open"
    MANIFEST_PARSED = "manifest_parsed"
    ASSETS_ACCESSIBLE = "assets_accessible"
    DISPOSED = "disposed"


@dataclass
class ExtractionResult:
    """Outcome of :meth:`ArchiveReader.extract_all`.

    Attributes:
        written: Files written to disk
        failures: Entry key -> reason for every entry that was skipped
    """

    written: list[Path] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


class ArchiveReader:
    """Read-only session over one archive.

    Args:
        refuse_unsupported_versions: Raise UnsupportedVersionError for a
            different major version or an unparseable one, instead of
            loading in degraded mode
    """

    def __init__(self, *, refuse_unsupported_versions: bool = False):
        self.refuse_unsupported_versions = refuse_unsupported_versions
        self._state = ReaderState.UNOPENED
        self._handle: ContainerHandle | None = None
        self._manifest: Manifest | None = None
        self._version_check: VersionCheck | None = None
        self._report: ValidationReport | None = None
        self._cache: dict[str, bytes] = {}

    @property
    def state(self) -> ReaderState:
        return self._state

    def _require_open(self) -> tuple[ContainerHandle, Manifest]:
        if self._state is ReaderState.DISPOSED:
            raise ArchiveError("Reader has been disposed")
        if self._handle is None or self._manifest is None:
            raise ArchiveError("No archive open")
        return self._handle, self._manifest

    async def open(self, source: bytes | str | os.PathLike) -> Manifest:
        """Open an archive from bytes or a file path and parse its manifest.

        Returns:
            Copy of the parsed manifest

        Raises:
            ContainerFormatError: If the data is not a readable ZIP
            ManifestMissingError: If there is no manifest.json at the root
            ManifestParseError: If manifest.json is not a JSON object
            UnsupportedVersionError: If the version is unsupported and the
                reader was told to refuse such archives
            ManifestValidationError: If Minimal fields are missing and the
                version policy did not degrade
        """
        if self._state is not ReaderState.UNOPENED:
            raise ArchiveError(f"Reader cannot open an archive in state {self._state.value}")

        if isinstance(source, (str, os.PathLike)):
            data = await asyncio.to_thread(Path(source).read_bytes)
        else:
            data = bytes(source)

        handle = await asyncio.to_thread(open_container, data)
        self._handle = handle
        self._state = ReaderState.CONTAINER_OPEN
        try:
            if not handle.has_entry(MANIFEST_NAME):
                raise ManifestMissingError("Invalid archive: manifest.json not found at root")
            raw = await asyncio.to_thread(handle.read_entry, MANIFEST_NAME)
            manifest = parse_manifest(raw)
            self._state = ReaderState.MANIFEST_PARSED

            declared = manifest.format_version
            if declared is None:
                declared = manifest.extensions.get("format_version")
            version_check = check_version(declared)
            if version_check.degraded and self.refuse_unsupported_versions:
                raise UnsupportedVersionError(version_check.declared)

            report = validate_manifest(
                manifest, ConformanceLevel.MINIMAL, degraded=version_check.degraded
            )
            if not report.minimal_ok:
                raise ManifestValidationError(
                    f"Manifest is not usable: {report.summary()}", report
                )
        except BaseException:
            self.dispose()
            raise

        if report.degraded and report.missing_required:
            logger.warning("Degraded manifest is missing: %s", ", ".join(report.errors))
        for message in report.structural_errors:
            logger.debug("Manifest structure: %s", message)

        self._manifest = manifest
        self._version_check = version_check
        self._report = report
        self._state = ReaderState.ASSETS_ACCESSIBLE
        logger.info(
            "Opened archive: %d entries, format %s",
            len(manifest.entries),
            version_check.declared,
        )
        return manifest.copy()

    # -- manifest views ------------------------------------------------------

    @property
    def manifest(self) -> Manifest:
        """Copy of the parsed manifest; the reader's own copy is never edited."""
        return self._require_open()[1].copy()

    @property
    def version_check(self) -> VersionCheck | None:
        return self._version_check

    @property
    def validation_report(self) -> ValidationReport | None:
        """Minimal-level report computed by :meth:`open`."""
        return self._report

    @property
    def degraded(self) -> bool:
        return self._version_check is not None and self._version_check.degraded

    @property
    def annotations(self) -> list[Annotation]:
        manifest = self._require_open()[1]
        return [Annotation.from_dict(a.to_dict()) for a in manifest.annotations or []]

    def find_entries(self, prefix: str) -> list[tuple[str, DataEntry]]:
        """Entries whose key starts with ``prefix``, sorted by type and index."""
        manifest = self._require_open()[1]
        return [(key, entry) for key, entry in manifest.iter_entries() if key.startswith(prefix)]

    def primary_entry(self, type_prefix: str) -> tuple[str, DataEntry] | None:
        """First full-resolution (non-proxy) entry of a type, if any."""
        manifest = self._require_open()[1]
        for key, entry in manifest.iter_entries(type_prefix):
            if not entry.is_proxy:
                return key, entry
        return None

    def proxy_entry(self, type_prefix: str) -> tuple[str, DataEntry] | None:
        manifest = self._require_open()[1]
        for key, entry in manifest.iter_entries(type_prefix):
            if entry.is_proxy:
                return key, entry
        return None

    def entry_transform(self, key: str) -> Transform:
        """Transform of an entry with defaults applied."""
        return self._get_entry(key).effective_transform

    def _get_entry(self, key: str) -> DataEntry:
        manifest = self._require_open()[1]
        entry = manifest.entries.get(key)
        if entry is None:
            raise AssetNotFoundError(f"Unknown data entry: {key}")
        return entry

    def list_entries(self) -> list[EntryDescriptor]:
        """Container files, read from the central directory only."""
        return self._require_open()[0].list_entries()

    def validate(self, level: ConformanceLevel = ConformanceLevel.MINIMAL) -> ValidationReport:
        """Validate the manifest at any level; never raises for gaps."""
        manifest = self._require_open()[1]
        return validate_manifest(manifest, level, degraded=self.degraded)

    def content_summary(self) -> dict[str, Any]:
        """Counts and flags describing what the archive holds."""
        handle, manifest = self._require_open()
        types = Counter(
            entry_type(key) for key, entry in manifest.iter_entries() if not entry.is_proxy
        )
        return {
            "format_version": self._version_check.declared if self._version_check else None,
            "version_status": self._version_check.status.value if self._version_check else None,
            "title": manifest.get("project.title"),
            "entry_types": dict(sorted(types.items())),
            "proxies": sum(1 for entry in manifest.entries.values() if entry.is_proxy),
            "annotations": len(manifest.annotations or []),
            "files": len(handle.names),
            "has_integrity": manifest.integrity is not None,
            "unsafe_names": sorted(
                entry.file_name
                for entry in manifest.entries.values()
                if entry.file_name and not is_safe_filename(entry.file_name)
            ),
        }

    # -- asset access --------------------------------------------------------

    async def extract_asset(self, key: str) -> bytes:
        """Return the decompressed bytes of one data entry.

        Raises:
            AssetNotFoundError: If the key or its file does not exist
            FilenameSecurityError: If the entry's file_name is unsafe
            ContainerFormatError: If the entry payload is corrupt
        """
        if key in self._cache:
            self._require_open()
            return self._cache[key]
        entry = self._get_entry(key)
        if not entry.file_name:
            raise AssetNotFoundError(f"Data entry {key} has no file_name")
        data = await self.extract_file(entry.file_name)
        self._cache[key] = data
        return data

    async def extract_file(self, name: str) -> bytes:
        """Return any container file by name, after sanitization."""
        handle = self._require_open()[0]
        try:
            safe_name = sanitize_archive_filename(name)
        except FilenameSecurityError as e:
            logger.warning("Rejected entry name: %s", e)
            raise
        return await asyncio.to_thread(handle.read_entry, safe_name)

    def is_cached(self, key: str) -> bool:
        return key in self._cache

    async def pre_extract(self, keys: Iterable[str] | None = None) -> dict[str, ArchiveError]:
        """Warm the cache; returns key -> error for entries that failed."""
        manifest = self._require_open()[1]
        failures: dict[str, ArchiveError] = {}
        for key in keys if keys is not None else [k for k, _ in manifest.iter_entries()]:
            try:
                await self.extract_asset(key)
            except ArchiveError as e:
                failures[key] = e
        return failures

    def release_cache(self) -> None:
        self._cache.clear()

    async def extract_all(self, dest_dir: str | os.PathLike) -> ExtractionResult:
        """Write every data entry file, plus the manifest, below ``dest_dir``.

        Per-entry failures are collected in the result, not raised.
        """
        handle, manifest = self._require_open()
        dest = Path(dest_dir)
        result = ExtractionResult()

        targets: list[tuple[str, str]] = [(MANIFEST_NAME, MANIFEST_NAME)]
        targets += [(key, entry.file_name or "") for key, entry in manifest.iter_entries()]

        for key, name in targets:
            try:
                safe_name = sanitize_archive_filename(name)
                target = dest / safe_name
                validate_path_safety(target, dest)
                data = await asyncio.to_thread(handle.read_entry, safe_name)
                await asyncio.to_thread(_write_file, target, data)
            except (ArchiveError, OSError) as e:
                logger.warning("Skipping %s during extraction: %s", key, e)
                result.failures[key] = str(e)
                continue
            result.written.append(target)

        logger.info("Extracted %d files to %s", len(result.written), dest)
        return result

    async def verify(self, cancel_event: asyncio.Event | None = None) -> MismatchReport:
        """Check the container against the manifest's integrity section.

        Emits IntegrityMismatchWarning when digests do not match; never
        raises for a mismatch.
        """
        handle, manifest = self._require_open()
        report = await verify(handle, manifest, cancel_event)
        if report.has_integrity and not report.ok:
            warnings.warn(report.describe(), IntegrityMismatchWarning, stacklevel=2)
        return report

    # -- lifecycle -----------------------------------------------------------

    def dispose(self) -> None:
        """Release the container and cache. Safe to call more than once."""
        if self._handle is not None:
            self._handle.close()
            self._handle = None
        self._cache.clear()
        self._manifest = None
        self._state = ReaderState.DISPOSED

    def __enter__(self) -> ArchiveReader:
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()

    async def __aenter__(self) -> ArchiveReader:
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.dispose()


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


async def open_archive(
    source: bytes | str | os.PathLike, *, refuse_unsupported_versions: bool = False
) -> ArchiveReader:
    """Create a reader and open ``source`` with it."""
    reader = ArchiveReader(refuse_unsupported_versions=refuse_unsupported_versions)
    await reader.open(source)
    return reader
