"""Archive builder: stages assets and metadata, then packs a container.

The builder owns a mutable manifest draft. Every mutation goes through a
builder method; the draft is frozen into an independent Manifest value when
packing. A packed builder is closed for edits; start a new session with
:meth:`ArchiveBuilder.from_manifest` or :meth:`ArchiveBuilder.from_reader`.

Example:
    >>> builder = ArchiveBuilder()
    >>> builder.set_project(title="Temple Facade")
    >>> builder.add_asset("mesh", glb_bytes, file_name="facade.glb")
    'mesh_0'
    >>> data = await builder.pack()
"""

from __future__ import annotations

import asyncio
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any, Mapping

from .container.codec import CompressionHint, ContainerVariant, create_writer
from .core.constants import (
    DEFAULT_EXTENSIONS,
    DEFAULT_PRODUCER,
    FALLBACK_EXTENSION,
    FORMAT_VERSION,
    HASH_CONCURRENCY,
    LIBRARY_VERSION,
    MANIFEST_NAME,
    METADATA_SCHEMA_VERSION,
    PRONOM_REGISTRY,
    PROXY_SUFFIX,
    QUALITY_STAT_KEYS,
    README_NAME,
)
from .core.errors import (
    AssetNotFoundError,
    BuilderStateError,
    ContainerFormatError,
    FilenameSecurityError,
    ManifestValidationError,
    OperationCancelledError,
)
from .core.integrity import build_integrity_section, hash_assets
from .core.manifest import (
    SECTION_TYPES,
    Annotation,
    DataEntry,
    IntegritySection,
    Manifest,
    Record,
    Transform,
    entry_index,
    serialize_manifest,
)
from .core.profiles import ConformanceLevel, ValidationReport, validate_manifest
from .core.sanitizer import sanitize_archive_filename
from .core.tasks import ProgressCallback, scale_progress
from .logging import get_logger
from .readme import generate_readme

if TYPE_CHECKING:
    from .reader import ArchiveReader

logger = get_logger(__name__)

_TYPE_PREFIX_RE = re.compile(r"^[A-Za-z0-9]+$")
_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9_.\-]+")


class BuilderState(str, Enum):
    EMPTY = "empty"
    ACCUMULATING = "accumulating"
    VALIDATED = "validated"
    HASHED = "hashed"
    PACKED = "packed"


@dataclass
class StagedAsset:
    """Bytes waiting to be written at ``path``."""

    path: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _extension_from(file_name: str | None, fallback: str) -> str:
    if file_name:
        suffix = PurePosixPath(file_name.replace("\\", "/")).suffix.lstrip(".").lower()
        suffix = _UNSAFE_CHARS_RE.sub("", suffix)
        if suffix:
            return suffix
    return fallback


def _coerce_transform(transform: Transform | Mapping[str, Any] | None) -> Transform:
    if transform is None:
        return Transform.identity()
    if isinstance(transform, Transform):
        return transform.resolved()
    if isinstance(transform, Mapping):
        return Transform.from_dict(dict(transform)).resolved()
    raise TypeError(f"transform must be a Transform or mapping, got {type(transform).__name__}")


def _safe_source_name(file_name: str) -> str:
    """Reduce an arbitrary user file name to the archive charset."""
    base = PurePosixPath(file_name.replace("\\", "/")).name
    base = _UNSAFE_CHARS_RE.sub("_", base)
    base = re.sub(r"\.{2,}", ".", base).lstrip(".")
    return base or "source"


class ArchiveBuilder:
    """Accumulates assets and metadata and packs them into a container.

    Attributes:
        variant: Container flavour (``a3d`` stores, ``a3z`` deflates)
        max_concurrency: Upper bound on parallel hashing workers
    """

    def __init__(
        self,
        *,
        producer: str = DEFAULT_PRODUCER,
        producer_version: str = LIBRARY_VERSION,
        variant: ContainerVariant = ContainerVariant.A3D,
        max_concurrency: int = HASH_CONCURRENCY,
    ):
        self.variant = ContainerVariant(variant)
        self.max_concurrency = max_concurrency
        self._draft = Manifest(
            format_version=FORMAT_VERSION,
            metadata_schema_version=METADATA_SCHEMA_VERSION,
            metadata_profile=ConformanceLevel.MINIMAL.name.lower(),
            producer=producer,
            producer_version=producer_version,
            data_entries={},
            annotations=[],
        )
        self._assets: dict[str, StagedAsset] = {}
        self._state = BuilderState.EMPTY
        self._hashes_current = False
        self._packed: Manifest | None = None

    # -- state ---------------------------------------------------------------

    @property
    def state(self) -> BuilderState:
        return self._state

    @property
    def manifest(self) -> Manifest:
        """Snapshot of the current draft (edits to it do not reach the builder)."""
        return self._draft.copy()

    @property
    def packed_manifest(self) -> Manifest | None:
        """The manifest written by the last successful :meth:`pack`."""
        return self._packed.copy() if self._packed is not None else None

    @property
    def asset_paths(self) -> list[str]:
        return sorted(self._assets)

    def get_asset(self, path: str) -> bytes:
        try:
            return self._assets[path].data
        except KeyError:
            raise AssetNotFoundError(f"No staged asset at {path}") from None

    def entry(self, key: str) -> DataEntry:
        """Return a copy of one data entry."""
        try:
            return DataEntry.from_dict(self._draft.entries[key].to_dict())
        except KeyError:
            raise AssetNotFoundError(f"Unknown data entry: {key}") from None

    def _ensure_editable(self) -> None:
        if self._state is BuilderState.PACKED:
            raise BuilderStateError(
                "Archive already packed; start a new builder with ArchiveBuilder.from_manifest()"
            )

    def _metadata_changed(self) -> None:
        """Metadata edits keep digests valid but require re-validation."""
        self._ensure_editable()
        if self._state is not BuilderState.EMPTY or self._assets:
            self._state = BuilderState.ACCUMULATING

    def _assets_changed(self) -> None:
        if self._draft.integrity is not None:
            logger.debug("Asset set changed, discarding integrity section")
        self._draft.integrity = None
        self._hashes_current = False
        self._state = BuilderState.ACCUMULATING

    def _discard_progress(self) -> None:
        self._draft.integrity = None
        self._hashes_current = False
        self._state = BuilderState.ACCUMULATING
        logger.debug("Builder reverted to accumulating")

    # -- assets --------------------------------------------------------------

    def _next_index(self, type_prefix: str) -> int:
        indices = [
            entry_index(key)
            for key in self._draft.entries
            if re.fullmatch(rf"{re.escape(type_prefix)}_\d+", key)
        ]
        return max(indices) + 1 if indices else 0

    def _stage(self, key: str, path: str, data: bytes, entry: DataEntry) -> str:
        path = sanitize_archive_filename(path)
        if path in self._assets or path in (MANIFEST_NAME, README_NAME):
            raise ValueError(f"Container path already in use: {path}")
        entry.file_name = path
        if self._draft.data_entries is None:
            self._draft.data_entries = {}
        self._draft.data_entries[key] = entry
        self._assets[path] = StagedAsset(path, bytes(data))
        self._assets_changed()
        logger.debug("Staged %s as %s (%d bytes)", key, path, len(data))
        return key

    def add_asset(
        self,
        type_prefix: str,
        data: bytes,
        transform: Transform | Mapping[str, Any] | None = None,
        metadata: Mapping[str, Any] | None = None,
        *,
        file_name: str | None = None,
    ) -> str:
        """Stage an asset under the next free ``<type>_<index>`` key.

        Args:
            type_prefix: Entry type (``mesh``, ``scene``, ``pointcloud``...)
            data: Raw asset bytes
            transform: Alignment transform; missing components default
                to identity
            metadata: Extra DataEntry fields (``created_by``, ``role``...);
                unknown keys are kept as extensions
            file_name: Original file name, used for the extension and
                recorded as ``original_name``

        Returns:
            The new entry key, e.g. ``"mesh_0"``

        Raises:
            ValueError: If ``type_prefix`` is not alphanumeric
        """
        self._ensure_editable()
        if not isinstance(type_prefix, str) or not _TYPE_PREFIX_RE.match(type_prefix):
            raise ValueError(f"Invalid asset type: {type_prefix!r}")

        key = f"{type_prefix}_{self._next_index(type_prefix)}"
        ext = _extension_from(file_name, DEFAULT_EXTENSIONS.get(type_prefix, FALLBACK_EXTENSION))
        entry = DataEntry(transform=_coerce_transform(transform))
        if metadata:
            entry.update(**{k: v for k, v in metadata.items() if k != "file_name"})
        if file_name:
            entry.original_name = file_name
        return self._stage(key, f"assets/{key}.{ext}", data, entry)

    def add_thumbnail(self, data: bytes, file_name: str = "preview.jpg") -> str:
        """Stage a preview image at the container root."""
        self._ensure_editable()
        index = self._next_index("thumbnail")
        ext = _extension_from(file_name, DEFAULT_EXTENSIONS["thumbnail"])
        path = f"preview.{ext}" if index == 0 else f"preview_{index}.{ext}"
        entry = DataEntry(created_by=self._draft.producer)
        return self._stage(f"thumbnail_{index}", path, data, entry)

    def add_screenshot(self, data: bytes, file_name: str) -> str:
        """Stage a viewer screenshot at ``screenshots/screenshot_<n>.<ext>``."""
        self._ensure_editable()
        key = f"screenshot_{self._next_index('screenshot')}"
        ext = _extension_from(file_name, FALLBACK_EXTENSION)
        entry = DataEntry(created_by=self._draft.producer, original_name=file_name)
        return self._stage(key, f"screenshots/{key}.{ext}", data, entry)

    def add_image(self, data: bytes, archive_path: str) -> str:
        """Stage an image referenced from descriptions or annotations.

        ``archive_path`` is used as given (after sanitization); markup
        references such as ``asset:images/wall.jpg`` resolve against it.

        Raises:
            FilenameSecurityError: If ``archive_path`` is unsafe
            ValueError: If the path is already in use
        """
        self._ensure_editable()
        key = f"image_{self._next_index('image')}"
        entry = DataEntry(created_by=self._draft.producer, original_name=archive_path)
        return self._stage(key, archive_path, data, entry)

    def add_proxy(
        self,
        derived_from: str,
        data: bytes,
        *,
        file_name: str | None = None,
        transform: Transform | Mapping[str, Any] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> str:
        """Stage a lower-detail stand-in for an existing entry.

        The proxy gets key ``<derived_from>_proxy`` and inherits the
        parent's transform unless one is given.

        Raises:
            AssetNotFoundError: If ``derived_from`` is not a data entry
            ValueError: If that entry already has a proxy
        """
        self._ensure_editable()
        parent = self._draft.entries.get(derived_from)
        if parent is None:
            raise AssetNotFoundError(f"Unknown data entry: {derived_from}")
        key = f"{derived_from}{PROXY_SUFFIX}"
        if key in self._draft.entries:
            raise ValueError(f"{derived_from} already has a proxy")

        ext = _extension_from(file_name, parent.extension or FALLBACK_EXTENSION)
        entry = DataEntry(
            role="derived",
            lod="proxy",
            derived_from=derived_from,
            transform=_coerce_transform(transform if transform is not None else parent.transform),
        )
        if metadata:
            entry.update(**{k: v for k, v in metadata.items() if k != "file_name"})
        if file_name:
            entry.original_name = file_name
        return self._stage(key, f"assets/{key}.{ext}", data, entry)

    def add_source_file(self, data: bytes, file_name: str, category: str | None = None) -> str:
        """Archive an original source file under ``sources/``.

        Source files are preserved for provenance and never rendered. Name
        collisions get a numeric suffix.
        """
        self._ensure_editable()
        safe = _safe_source_name(file_name)
        path = f"sources/{safe}"
        if path in self._assets:
            stem, dot, ext = safe.rpartition(".")
            if not dot:
                stem, ext = safe, ""
            counter = 1
            while path in self._assets:
                path = f"sources/{stem}_{counter}" + (f".{ext}" if ext else "")
                counter += 1
            logger.warning("Source file name collision for %s, stored as %s", file_name, path)

        key = f"source_{self._next_index('source')}"
        entry = DataEntry(role="source", original_name=file_name, created_by="user upload")
        entry.update(size_bytes=len(data))
        if category:
            entry.update(source_category=category)
        return self._stage(key, path, data, entry)

    def replace_asset(self, key: str, data: bytes) -> None:
        """Swap the bytes of an existing entry, keeping its metadata."""
        self._ensure_editable()
        entry = self._draft.entries.get(key)
        if entry is None or entry.file_name not in self._assets:
            raise AssetNotFoundError(f"Unknown data entry: {key}")
        self._assets[entry.file_name] = StagedAsset(entry.file_name, bytes(data))
        self._assets_changed()

    def remove_entry(self, key: str) -> None:
        """Drop an entry and its staged bytes."""
        self._ensure_editable()
        entry = (self._draft.data_entries or {}).pop(key, None)
        if entry is None:
            raise AssetNotFoundError(f"Unknown data entry: {key}")
        if entry.file_name:
            self._assets.pop(entry.file_name, None)
        self._assets_changed()

    def update_entry(self, key: str, **fields: Any) -> None:
        """Set DataEntry fields by JSON key.

        ``file_name`` is owned by the builder and cannot be changed here.

        Raises:
            AssetNotFoundError: If ``key`` is not a data entry
            ValueError: If ``file_name`` is passed
            TypeError: If a known field gets a value of the wrong type
        """
        self._ensure_editable()
        entry = self._draft.entries.get(key)
        if entry is None:
            raise AssetNotFoundError(f"Unknown data entry: {key}")
        if "file_name" in fields:
            raise ValueError("file_name is assigned by the builder")
        entry.update(**fields)
        self._metadata_changed()

    # -- sections ------------------------------------------------------------

    def set_section(self, name: str, **fields: Any) -> Record:
        """Merge fields into a metadata section, creating it if needed."""
        self._ensure_editable()
        if name not in SECTION_TYPES:
            raise KeyError(f"Unknown manifest section: {name}")
        section = self._draft.section(name)
        section.update(**fields)
        self._metadata_changed()
        return section

    def set_project(self, **fields: Any) -> None:
        self.set_section("project", **fields)

    def set_relationships(self, **fields: Any) -> None:
        self.set_section("relationships", **fields)

    def set_provenance(self, **fields: Any) -> None:
        self.set_section("provenance", **fields)

    def set_quality_metrics(self, **fields: Any) -> None:
        self.set_section("quality_metrics", **fields)

    def set_archival_record(self, **fields: Any) -> None:
        self.set_section("archival_record", **fields)

    def set_material_standard(self, **fields: Any) -> None:
        self.set_section("material_standard", **fields)

    def set_preservation(self, **fields: Any) -> None:
        self.set_section("preservation", **fields)

    def set_viewer_settings(self, **fields: Any) -> None:
        self.set_section("viewer_settings", **fields)

    def set_metadata_profile(self, level: ConformanceLevel | str) -> None:
        """Record the conformance level the producer is aiming for."""
        if isinstance(level, str):
            level = ConformanceLevel.from_name(level)
        self._ensure_editable()
        self._draft.metadata_profile = level.name.lower()
        self._metadata_changed()

    def add_annotation(self, annotation: Annotation | Mapping[str, Any]) -> str:
        """Append an annotation and return its id.

        A missing id is generated.

        Raises:
            ValueError: If the title is empty or the id is already used
        """
        self._ensure_editable()
        if isinstance(annotation, Mapping):
            annotation = Annotation.from_dict(dict(annotation))
        if not annotation.title or not annotation.title.strip():
            raise ValueError("Annotation title is required")
        if not annotation.id:
            annotation.id = f"anno_{uuid.uuid4().hex[:12]}"
        annotations = self._draft.annotations if self._draft.annotations is not None else []
        if any(existing.id == annotation.id for existing in annotations):
            raise ValueError(f"Duplicate annotation id: {annotation.id}")
        annotations.append(annotation)
        self._draft.annotations = annotations
        self._metadata_changed()
        return annotation.id

    def set_annotations(self, annotations: list[Annotation | Mapping[str, Any]]) -> None:
        """Replace every annotation."""
        self._ensure_editable()
        previous = self._draft.annotations
        self._draft.annotations = []
        try:
            for annotation in annotations:
                self.add_annotation(annotation)
        except ValueError:
            self._draft.annotations = previous
            raise

    def add_version_history(self, version: str, description: str, date: str | None = None) -> None:
        self._ensure_editable()
        history = self._draft.version_history if self._draft.version_history is not None else []
        history.append({"version": version, "date": date or _utc_now(), "description": description})
        self._draft.version_history = history
        self._metadata_changed()

    def set_extension(self, key: str, value: Any) -> None:
        """Set a top-level manifest key this library does not interpret.

        Raises:
            ValueError: If ``key`` names a recognised manifest field
        """
        self._ensure_editable()
        if any(f.name == key for f in Manifest._known_fields()):
            raise ValueError(f"{key} is a recognised manifest field")
        self._draft.extensions[key] = value
        self._metadata_changed()

    def set_quality_stats(self, **stats: Any) -> None:
        """Record capture statistics (splat count, polygons, texture maps...).

        Stats are merged into the ``_meta.quality`` extension; ``None``
        values are skipped.

        Raises:
            ValueError: If a stat name is not one of QUALITY_STAT_KEYS
        """
        self._ensure_editable()
        unknown = sorted(set(stats) - set(QUALITY_STAT_KEYS))
        if unknown:
            raise ValueError(f"Unknown quality stats: {', '.join(unknown)}")
        meta = self._draft.extensions.get("_meta")
        if not isinstance(meta, dict):
            meta = self._draft.extensions["_meta"] = {}
        quality = meta.setdefault("quality", {})
        quality.update({name: value for name, value in stats.items() if value is not None})
        self._metadata_changed()

    @property
    def quality_stats(self) -> dict[str, Any]:
        meta = self._draft.extensions.get("_meta")
        if not isinstance(meta, dict) or not isinstance(meta.get("quality"), dict):
            return {}
        return dict(meta["quality"])

    def preserve_creation_date(self, created_at: str) -> None:
        """Keep an earlier ``created_at`` when re-exporting an archive."""
        self._ensure_editable()
        self._draft.created_at = created_at

    # -- validation / hashing / packing --------------------------------------

    def validate(self, level: ConformanceLevel = ConformanceLevel.MINIMAL) -> ValidationReport:
        """Validate the draft, including that every entry has staged bytes."""
        report = validate_manifest(self._draft, level, available_files=self._assets.keys())
        if report.minimal_ok and self._state is BuilderState.ACCUMULATING:
            self._state = BuilderState.VALIDATED
        for issue in report.missing_required:
            logger.debug("Validation: %s", issue)
        return report

    async def compute_hashes(
        self,
        progress_callback: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> IntegritySection:
        """Hash every staged asset and attach an IntegritySection.

        Raises:
            OperationCancelledError: If ``cancel_event`` is set; the builder
                reverts to accumulating
        """
        self._ensure_editable()
        try:
            digests = await hash_assets(
                {path: asset.data for path, asset in self._assets.items()},
                progress_callback,
                cancel_event,
                self.max_concurrency,
            )
        except (OperationCancelledError, asyncio.CancelledError):
            self._discard_progress()
            raise
        self._draft.integrity = build_integrity_section(digests)
        self._hashes_current = True
        self._state = BuilderState.HASHED
        logger.debug("Hashed %d assets", len(digests))
        return IntegritySection.from_dict(self._draft.integrity.to_dict())

    def _fill_format_registry(self, manifest: Manifest) -> None:
        preservation = manifest.preservation
        if preservation is not None and preservation.format_registry:
            return
        present = sorted({entry.extension for entry in manifest.entries.values()})
        registry = {ext: PRONOM_REGISTRY[ext] for ext in present if PRONOM_REGISTRY.get(ext)}
        if registry:
            manifest.section("preservation").update(format_registry=registry)

    def freeze(self) -> Manifest:
        """Return an independent copy of the draft."""
        return self._draft.copy()

    async def pack(
        self,
        progress_callback: ProgressCallback | None = None,
        *,
        include_hashes: bool = True,
        include_readme: bool = True,
        cancel_event: asyncio.Event | None = None,
    ) -> bytes:
        """Validate, hash and write the container.

        Args:
            progress_callback: Receives 0..100; hashing reports 0..20 and
                writing 20..100
            include_hashes: Write an IntegritySection (stale hashes are
                always recomputed)
            include_readme: Write README.txt next to the manifest
            cancel_event: Cooperative cancel signal

        Returns:
            Archive bytes

        Raises:
            ManifestValidationError: If Minimal validation fails
            OperationCancelledError: If cancelled; the builder reverts to
                accumulating and keeps no integrity section
        """
        self._ensure_editable()
        report = self.validate()
        if not report.minimal_ok:
            raise ManifestValidationError(f"Cannot pack archive: {report.summary()}", report)

        try:
            if include_hashes:
                if not self._hashes_current:
                    await self.compute_hashes(scale_progress(progress_callback, 0, 20), cancel_event)
                elif progress_callback:
                    progress_callback(20, "Hashes up to date")
                write_progress = scale_progress(progress_callback, 20, 100)
            else:
                self._draft.integrity = None
                self._hashes_current = False
                write_progress = progress_callback

            frozen = self._draft.copy()
            now = _utc_now()
            if not frozen.created_at:
                frozen.created_at = now
            frozen.last_modified = now
            self._fill_format_registry(frozen)

            writer = create_writer(self.variant)
            writer.add_entry(
                MANIFEST_NAME, serialize_manifest(frozen).encode("utf-8"), CompressionHint.DEFLATE
            )
            if include_readme:
                sizes = {path: asset.size for path, asset in self._assets.items()}
                writer.add_entry(
                    README_NAME,
                    generate_readme(frozen, sizes).encode("utf-8"),
                    CompressionHint.DEFLATE,
                )
            for path, asset in self._assets.items():
                writer.add_entry(path, asset.data, CompressionHint.AUTO)

            data = await writer.finalize(write_progress, cancel_event)
        except (OperationCancelledError, asyncio.CancelledError):
            logger.info("Packing cancelled")
            self._discard_progress()
            raise

        self._draft.created_at = frozen.created_at
        self._draft.last_modified = frozen.last_modified
        self._packed = frozen
        self._state = BuilderState.PACKED
        logger.info(
            "Packed %d assets into %s container (%d bytes)",
            len(self._assets),
            self.variant.value,
            len(data),
        )
        return data

    # -- seeding -------------------------------------------------------------

    @classmethod
    def from_manifest(
        cls,
        manifest: Manifest,
        assets: Mapping[str, bytes],
        **kwargs: Any,
    ) -> ArchiveBuilder:
        """Start a new session from an existing manifest and its files.

        The manifest is deep-copied. Its integrity section is dropped and
        recomputed on the next pack. ``created_at`` is kept.

        Args:
            manifest: Manifest to seed the draft from
            assets: Container path -> bytes for every file to carry over
            **kwargs: Passed to the constructor

        Raises:
            FilenameSecurityError: If an asset path is unsafe
        """
        builder = cls(**kwargs)
        draft = manifest.copy()
        draft.producer = builder._draft.producer
        draft.producer_version = builder._draft.producer_version
        draft.format_version = FORMAT_VERSION
        draft.integrity = None
        if draft.data_entries is None:
            draft.data_entries = {}
        builder._draft = draft
        for path, data in assets.items():
            safe = sanitize_archive_filename(path)
            builder._assets[safe] = StagedAsset(safe, bytes(data))
        builder._state = BuilderState.ACCUMULATING
        return builder

    @classmethod
    async def from_reader(cls, reader: ArchiveReader, **kwargs: Any) -> ArchiveBuilder:
        """Start a new session holding everything an open reader exposes.

        Entries whose file cannot be extracted are kept in the manifest
        without bytes; :meth:`validate` reports them as missing.
        """
        manifest = reader.manifest
        assets: dict[str, bytes] = {}
        for key, entry in manifest.iter_entries():
            if not entry.file_name:
                continue
            try:
                assets[sanitize_archive_filename(entry.file_name)] = await reader.extract_asset(key)
            except (FilenameSecurityError, AssetNotFoundError, ContainerFormatError) as e:
                logger.warning("Not carrying over %s: %s", key, e)
        return cls.from_manifest(manifest, assets, **kwargs)
