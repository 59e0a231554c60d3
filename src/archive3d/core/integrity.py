"""Content hashing and integrity verification.

Each asset is hashed with SHA-256 over its decompressed bytes. The
aggregate ``manifest_hash`` is SHA-256 over the per-asset hex digests,
sorted ascending and concatenated without a separator. Sorting the digest
*values* makes the aggregate independent of path names and of the order in
which concurrent hashing finished.

Verification is advisory. It returns a :class:`MismatchReport` and never
raises for a mismatch, so a partially corrupted archive stays inspectable.
"""

from __future__ import annotations

import asyncio
import hashlib
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Mapping

from .constants import HASH_ALGORITHM, HASH_CONCURRENCY
from .errors import AssetNotFoundError, ContainerFormatError, FilenameSecurityError
from .manifest import IntegritySection, Manifest
from .sanitizer import sanitize_archive_filename
from .tasks import ProgressCallback, raise_if_cancelled
from ..logging import get_logger

if TYPE_CHECKING:
    from ..container.codec import ContainerHandle

logger = get_logger(__name__)


def hash_asset(data: bytes) -> str:
    """Return SHA-256 hex digest for raw asset bytes."""
    return hashlib.sha256(data).hexdigest()


def compute_manifest_hash(asset_digests: Mapping[str, str]) -> str:
    """Return the aggregate digest of a path -> digest map.

    The result depends only on the set of digest values, never on the map's
    insertion order.
    """
    joined = "".join(sorted(asset_digests.values()))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


async def hash_assets(
    assets: Mapping[str, bytes],
    progress_callback: ProgressCallback | None = None,
    cancel_event: asyncio.Event | None = None,
    max_concurrency: int = HASH_CONCURRENCY,
) -> dict[str, str]:
    """Hash every asset concurrently in worker threads.

    Args:
        assets: Container path -> raw bytes
        progress_callback: Receives 0..100 as bytes are hashed
        cancel_event: Checked before each asset starts
        max_concurrency: Upper bound on simultaneous digest workers

    Returns:
        Container path -> hex digest, ordered by path

    Raises:
        OperationCancelledError: If ``cancel_event`` is set; outstanding
            workers are cancelled and no partial result is returned
    """
    semaphore = asyncio.Semaphore(max(1, max_concurrency))
    total = sum(max(len(data), 1) for data in assets.values()) or 1
    processed = 0

    async def _hash_one(path: str, data: bytes) -> tuple[str, str]:
        nonlocal processed
        async with semaphore:
            raise_if_cancelled(cancel_event, "Hashing")
            digest = await asyncio.to_thread(hash_asset, data)
        processed += max(len(data), 1)
        if progress_callback:
            progress_callback(round(100 * processed / total), f"Hashing: {path}")
        logger.debug("Hash complete for %s", path)
        return path, digest

    tasks = [asyncio.ensure_future(_hash_one(path, data)) for path, data in assets.items()]
    try:
        results = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return dict(sorted(results))


def build_integrity_section(asset_digests: Mapping[str, str]) -> IntegritySection:
    """Wrap collected digests into an IntegritySection."""
    ordered = dict(sorted(asset_digests.items()))
    return IntegritySection(
        algorithm=HASH_ALGORITHM,
        manifest_hash=compute_manifest_hash(ordered),
        assets=ordered,
    )


@dataclass(frozen=True)
class AssetMismatch:
    """One asset whose content does not match its recorded digest.

    Attributes:
        path: Container path of the asset
        expected: Digest recorded in the manifest
        actual: Digest of the container bytes (None if unreadable/missing)
        reason: ``"digest"``, ``"missing"``, ``"unreadable"`` or ``"unsafe"``
            (name rejected by the sanitizer, never read)
    """

    path: str
    expected: str | None
    actual: str | None
    reason: str


@dataclass
class MismatchReport:
    """Outcome of verifying an archive against its IntegritySection.

    Attributes:
        has_integrity: False when the manifest carries no IntegritySection;
            nothing else in the report is meaningful then
        mismatches: Assets whose bytes do not match the recorded digest
        aggregate_expected: ``manifest_hash`` recorded in the manifest
        aggregate_actual: Aggregate recomputed from the container bytes
        declared_consistent: Whether the recorded per-asset digests
            themselves hash to the recorded ``manifest_hash``
        unhashed: Data-entry files that have no recorded digest
        algorithm_supported: False when the manifest names another algorithm
    """

    has_integrity: bool = True
    mismatches: list[AssetMismatch] = field(default_factory=list)
    aggregate_expected: str | None = None
    aggregate_actual: str | None = None
    declared_consistent: bool = True
    unhashed: list[str] = field(default_factory=list)
    algorithm_supported: bool = True
    checked: int = 0

    @property
    def aggregate_ok(self) -> bool:
        return self.aggregate_expected is not None and self.aggregate_expected == self.aggregate_actual

    @property
    def mismatched_paths(self) -> list[str]:
        return [m.path for m in self.mismatches]

    @property
    def ok(self) -> bool:
        """True when integrity data exists and everything matches."""
        return (
            self.has_integrity
            and self.algorithm_supported
            and not self.mismatches
            and self.aggregate_ok
            and self.declared_consistent
        )

    def describe(self) -> str:
        """Human-readable summary naming every failing path."""
        if not self.has_integrity:
            return "Archive has no integrity section"
        if self.ok:
            return f"All {self.checked} asset digests match"
        lines = []
        if not self.algorithm_supported:
            lines.append("unsupported hash algorithm")
        for mismatch in self.mismatches:
            lines.append(f"{mismatch.path}: {mismatch.reason}")
        if not self.aggregate_ok:
            lines.append("manifest_hash does not match asset contents")
        if not self.declared_consistent:
            lines.append("recorded asset digests do not match manifest_hash")
        return "; ".join(lines)


def _read_digest(handle: ContainerHandle, path: str) -> tuple[str | None, str | None]:
    """Return ``(digest, failure_reason)`` for one container entry."""
    try:
        return hash_asset(handle.read_entry(path)), None
    except AssetNotFoundError:
        return None, "missing"
    except ContainerFormatError as e:
        logger.warning("Could not read %s for verification: %s", path, e)
        return None, "unreadable"


async def verify(
    handle: ContainerHandle,
    manifest: Manifest,
    cancel_event: asyncio.Event | None = None,
) -> MismatchReport:
    """Recompute every recorded digest from the container and compare.

    Never mutates ``manifest`` and never raises for mismatches.

    Args:
        handle: Open container
        manifest: Manifest whose IntegritySection is checked
        cancel_event: Checked between assets

    Returns:
        MismatchReport naming every diverging path
    """
    integrity = manifest.integrity
    if integrity is None or not isinstance(integrity.assets, dict):
        logger.info("Archive has no integrity section; nothing to verify")
        return MismatchReport(has_integrity=False)

    report = MismatchReport(aggregate_expected=integrity.manifest_hash)
    if integrity.algorithm != HASH_ALGORITHM:
        report.algorithm_supported = False
        logger.warning("Unsupported integrity algorithm: %r", integrity.algorithm)

    recorded: dict[str, str] = {
        path: digest for path, digest in integrity.assets.items() if isinstance(digest, str)
    }
    actual: dict[str, str] = {}

    for path in sorted(integrity.assets):
        raise_if_cancelled(cancel_event, "Verification")
        expected = recorded.get(path)
        report.checked += 1
        try:
            safe_path = sanitize_archive_filename(path)
        except FilenameSecurityError as e:
            logger.warning("Refusing to verify unsafe entry name: %s", e)
            report.mismatches.append(AssetMismatch(path, expected, None, "unsafe"))
            continue
        digest, failure = await asyncio.to_thread(_read_digest, handle, safe_path)
        if failure is not None:
            report.mismatches.append(AssetMismatch(path, expected, None, failure))
            continue
        actual[path] = digest
        if digest != expected:
            report.mismatches.append(AssetMismatch(path, expected, digest, "digest"))

    report.aggregate_actual = compute_manifest_hash(actual)
    report.declared_consistent = compute_manifest_hash(recorded) == integrity.manifest_hash

    hashed = set(integrity.assets)
    report.unhashed = sorted(
        entry.file_name
        for entry in manifest.entries.values()
        if entry.file_name and entry.file_name not in hashed
    )

    for mismatch in report.mismatches:
        logger.warning("Integrity mismatch for %s (%s)", mismatch.path, mismatch.reason)
    return report
