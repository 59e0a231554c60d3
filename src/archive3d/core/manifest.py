"""Typed, extensible in-memory manifest model.

Every object in the manifest (the root, each metadata section, each data
entry, annotation, transform and the integrity block) is a :class:`Record`:
a dataclass whose recognised keys are typed attributes and whose
``extensions`` map holds everything else. Unknown keys and recognised keys
carrying a value of the wrong JSON type both land in ``extensions`` and are
written back unchanged, so parse -> serialize never loses a field.

Example:
    >>> manifest = parse_manifest(text)
    >>> manifest.project.title
    'Temple Facade'
    >>> manifest.extensions["_vendor_hint"]
    {'tool': 'scanner-x'}
    >>> serialize_manifest(manifest)  # vendor hint is still there
"""

from __future__ import annotations

import copy
import json
import re
from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Iterator

from .constants import PROXY_SUFFIX
from .errors import ManifestParseError

ExtensionMap = dict[str, Any]

_UNMATCHED = object()

_SCALAR_CHECKS = {
    "str": lambda v: isinstance(v, str),
    "bool": lambda v: isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "list": lambda v: isinstance(v, list),
    "dict": lambda v: isinstance(v, dict),
}

_ENTRY_KEY_RE = re.compile(r"^(?P<type>[A-Za-z0-9]+)_(?P<index>\d+)(?P<suffix>_[A-Za-z0-9_]+)?$")


def _json(kind: str, record: type[Record] | None = None) -> Any:
    """Declare a recognised manifest key of the given JSON kind."""
    return field(default=None, metadata={"kind": kind, "record": record})


def _decode(spec, value: Any) -> Any:
    kind = spec.metadata["kind"]
    record = spec.metadata["record"]
    if kind in _SCALAR_CHECKS:
        return value if _SCALAR_CHECKS[kind](value) else _UNMATCHED
    if kind == "record":
        return record.from_dict(value) if isinstance(value, dict) else _UNMATCHED
    if kind == "record_map":
        if not isinstance(value, dict) or not all(isinstance(v, dict) for v in value.values()):
            return _UNMATCHED
        return {key: record.from_dict(item) for key, item in value.items()}
    if kind == "record_list":
        if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
            return _UNMATCHED
        return [record.from_dict(item) for item in value]
    raise ValueError(f"Unknown field kind: {kind}")


def _encode(spec, value: Any) -> Any:
    kind = spec.metadata["kind"]
    if kind == "record":
        return value.to_dict()
    if kind == "record_map":
        return {key: item.to_dict() for key, item in value.items()}
    if kind == "record_list":
        return [item.to_dict() for item in value]
    return value


@dataclass
class Record:
    """Base for every manifest object.

    Attributes:
        extensions: Keys not recognised by this schema version, kept verbatim
    """

    extensions: ExtensionMap = field(default_factory=dict)

    @classmethod
    def _known_fields(cls) -> list:
        return [f for f in fields(cls) if "kind" in f.metadata]

    @classmethod
    def from_dict(cls, data: dict[str, Any]):
        """Build a record from a decoded JSON object."""
        known = {f.name: f for f in cls._known_fields()}
        values: dict[str, Any] = {}
        extensions: ExtensionMap = {}
        for key, value in data.items():
            spec = known.get(key)
            decoded = _decode(spec, value) if spec is not None else _UNMATCHED
            if decoded is _UNMATCHED:
                extensions[key] = value
            else:
                values[key] = decoded
        return cls(extensions=extensions, **values)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON object for this record, extensions included."""
        out: dict[str, Any] = {}
        for spec in self._known_fields():
            value = getattr(self, spec.name)
            if value is not None:
                out[spec.name] = _encode(spec, value)
        for key, value in self.extensions.items():
            out.setdefault(key, value)
        return out

    def update(self, **values: Any) -> None:
        """Set fields by JSON key.

        Recognised keys are type-checked and replace any same-named value
        held in ``extensions``; unknown keys go to ``extensions``. Passing
        None clears a recognised field.

        Raises:
            TypeError: If a recognised key gets a value of the wrong kind
        """
        known = {f.name: f for f in self._known_fields()}
        for key, value in values.items():
            spec = known.get(key)
            if spec is None:
                self.extensions[key] = value
                continue
            if value is not None and not isinstance(value, Record):
                decoded = _decode(spec, value)
                if decoded is _UNMATCHED:
                    raise TypeError(
                        f"{type(self).__name__}.{key} expects {spec.metadata['kind']}, "
                        f"got {type(value).__name__}"
                    )
                value = decoded
            setattr(self, key, value)
            self.extensions.pop(key, None)

    def get(self, dotted: str) -> Any:
        """Look up a value by dotted path (``"rights.copyright_status"``).

        Nested plain dicts are traversed as well as nested records. Returns
        None when any step is missing.
        """
        current: Any = self
        for part in dotted.split("."):
            if isinstance(current, Record):
                if any(f.name == part for f in current._known_fields()):
                    current = getattr(current, part)
                else:
                    current = current.extensions.get(part)
            elif isinstance(current, dict):
                current = current.get(part)
            else:
                return None
            if current is None:
                return None
        return current

    def is_empty(self) -> bool:
        return not self.to_dict()


@dataclass
class Transform(Record):
    """Position / Euler rotation / uniform scale of one asset."""

    position: list | None = _json("list")
    rotation: list | None = _json("list")
    scale: float | None = _json("number")

    DEFAULT_POSITION: ClassVar[tuple[float, float, float]] = (0, 0, 0)
    DEFAULT_ROTATION: ClassVar[tuple[float, float, float]] = (0, 0, 0)
    DEFAULT_SCALE: ClassVar[float] = 1

    @classmethod
    def identity(cls) -> Transform:
        return cls(
            position=list(cls.DEFAULT_POSITION),
            rotation=list(cls.DEFAULT_ROTATION),
            scale=cls.DEFAULT_SCALE,
        )

    def resolved(self) -> Transform:
        """Return a copy with defaults filled in for absent components."""
        return Transform(
            position=list(self.position) if self.position is not None else list(self.DEFAULT_POSITION),
            rotation=list(self.rotation) if self.rotation is not None else list(self.DEFAULT_ROTATION),
            scale=self.scale if self.scale is not None else self.DEFAULT_SCALE,
            extensions=copy.deepcopy(self.extensions),
        )


@dataclass
class DataEntry(Record):
    """Manifest record for one asset inside the container."""

    file_name: str | None = _json("str")
    created_by: str | None = _json("str")
    created_by_version: str | None = _json("str")
    source_notes: str | None = _json("str")
    role: str | None = _json("str")
    lod: str | None = _json("str")
    derived_from: str | None = _json("str")
    original_name: str | None = _json("str")
    transform: Transform | None = _json("record", Transform)

    @property
    def effective_transform(self) -> Transform:
        """Transform with defaults applied (identity when absent)."""
        if self.transform is None:
            return Transform.identity()
        return self.transform.resolved()

    @property
    def is_proxy(self) -> bool:
        return self.lod == "proxy"

    @property
    def extension(self) -> str:
        """Lower-case file extension of ``file_name`` (empty if none)."""
        name = self.file_name or ""
        tail = name.rsplit("/", 1)[-1]
        return tail.rsplit(".", 1)[-1].lower() if "." in tail else ""


@dataclass
class Annotation(Record):
    """Labeled 3D location, independent of any data entry."""

    id: str | None = _json("str")
    title: str | None = _json("str")
    body: str | None = _json("str")
    position: dict | None = _json("dict")
    camera_position: dict | None = _json("dict")
    camera_target: dict | None = _json("dict")


@dataclass
class IntegritySection(Record):
    """Digest algorithm, per-asset digests and the aggregate digest."""

    algorithm: str | None = _json("str")
    manifest_hash: str | None = _json("str")
    assets: dict | None = _json("dict")


@dataclass
class Project(Record):
    title: str | None = _json("str")
    id: str | None = _json("str")
    license: str | None = _json("str")
    description: str | None = _json("str")
    tags: list | None = _json("list")


@dataclass
class Relationships(Record):
    part_of: str | None = _json("str")
    derived_from: str | None = _json("str")
    replaces: str | None = _json("str")
    related_objects: list | None = _json("list")


@dataclass
class Provenance(Record):
    capture_date: str | None = _json("str")
    capture_device: str | None = _json("str")
    device_serial: str | None = _json("str")
    operator: str | None = _json("str")
    operator_orcid: str | None = _json("str")
    location: str | None = _json("str")
    convention_hints: list | None = _json("list")
    processing_software: list | None = _json("list")
    processing_notes: str | None = _json("str")


@dataclass
class QualityMetrics(Record):
    tier: str | None = _json("str")
    accuracy_grade: str | None = _json("str")
    scale_verification: str | None = _json("str")
    capture_resolution: dict | None = _json("dict")
    alignment_error: dict | None = _json("dict")
    data_quality: dict | None = _json("dict")


@dataclass
class ArchivalRecord(Record):
    standard: str | None = _json("str")
    title: str | None = _json("str")
    alternate_titles: list | None = _json("list")
    provenance: str | None = _json("str")
    ids: dict | None = _json("dict")
    creation: dict | None = _json("dict")
    physical_description: dict | None = _json("dict")
    rights: dict | None = _json("dict")
    context: dict | None = _json("dict")
    coverage: dict | None = _json("dict")


@dataclass
class MaterialStandard(Record):
    workflow: str | None = _json("str")
    occlusion_packed: bool | None = _json("bool")
    color_space: str | None = _json("str")
    normal_space: str | None = _json("str")


@dataclass
class Preservation(Record):
    format_registry: dict | None = _json("dict")
    significant_properties: list | None = _json("list")
    rendering_requirements: str | None = _json("str")
    rendering_notes: str | None = _json("str")


@dataclass
class ViewerSettings(Record):
    single_sided: bool | None = _json("bool")
    background_color: str | None = _json("str")
    display_mode: str | None = _json("str")
    camera_position: dict | None = _json("dict")
    camera_target: dict | None = _json("dict")
    auto_rotate: bool | None = _json("bool")
    annotations_visible: bool | None = _json("bool")


SECTION_TYPES: dict[str, type[Record]] = {
    "project": Project,
    "relationships": Relationships,
    "provenance": Provenance,
    "quality_metrics": QualityMetrics,
    "archival_record": ArchivalRecord,
    "material_standard": MaterialStandard,
    "preservation": Preservation,
    "viewer_settings": ViewerSettings,
}


@dataclass
class Manifest(Record):
    """Root metadata document of an archive.

    Sections are None until present in the parsed input or set by a
    builder; use :meth:`section` to get-or-create one.
    """

    format_version: str | None = _json("str")
    metadata_schema_version: str | None = _json("str")
    metadata_profile: str | None = _json("str")
    producer: str | None = _json("str")
    producer_version: str | None = _json("str")
    created_at: str | None = _json("str")
    last_modified: str | None = _json("str")
    project: Project | None = _json("record", Project)
    relationships: Relationships | None = _json("record", Relationships)
    provenance: Provenance | None = _json("record", Provenance)
    quality_metrics: QualityMetrics | None = _json("record", QualityMetrics)
    archival_record: ArchivalRecord | None = _json("record", ArchivalRecord)
    material_standard: MaterialStandard | None = _json("record", MaterialStandard)
    preservation: Preservation | None = _json("record", Preservation)
    viewer_settings: ViewerSettings | None = _json("record", ViewerSettings)
    data_entries: dict[str, DataEntry] | None = _json("record_map", DataEntry)
    annotations: list[Annotation] | None = _json("record_list", Annotation)
    version_history: list | None = _json("list")
    integrity: IntegritySection | None = _json("record", IntegritySection)

    def section(self, name: str) -> Record:
        """Return the named metadata section, creating it if absent."""
        if name not in SECTION_TYPES:
            raise KeyError(f"Unknown manifest section: {name}")
        current = getattr(self, name)
        if current is None:
            current = SECTION_TYPES[name]()
            setattr(self, name, current)
            self.extensions.pop(name, None)
        return current

    @property
    def entries(self) -> dict[str, DataEntry]:
        """Data entries (empty dict when the manifest has none)."""
        return self.data_entries or {}

    def iter_entries(self, type_prefix: str | None = None) -> Iterator[tuple[str, DataEntry]]:
        """Yield ``(key, entry)`` pairs sorted by key, optionally filtered by type."""
        for key in sorted(self.entries, key=entry_sort_key):
            if type_prefix is None or entry_type(key) == type_prefix:
                yield key, self.entries[key]

    def copy(self) -> Manifest:
        """Return an independent deep copy."""
        return copy.deepcopy(self)


def entry_type(key: str) -> str:
    """Return the type prefix of an entry key.

    ``mesh_0`` -> ``mesh``, ``scene_1_proxy`` -> ``scene``. Keys that do
    not follow the ``<type>_<index>`` convention are opaque: their type is
    whatever precedes the first underscore.
    """
    match = _ENTRY_KEY_RE.match(key)
    if match:
        return match.group("type")
    return key.split("_", 1)[0]


def entry_index(key: str) -> int | None:
    """Return the numeric index of a ``<type>_<index>`` key, or None."""
    match = _ENTRY_KEY_RE.match(key)
    return int(match.group("index")) if match else None


def is_proxy_key(key: str) -> bool:
    return key.endswith(PROXY_SUFFIX)


def entry_sort_key(key: str) -> tuple:
    """Sort keys by type, then numeric index, then the raw key."""
    index = entry_index(key)
    return (entry_type(key), index if index is not None else -1, key)


def parse_manifest(text: str | bytes) -> Manifest:
    """Parse manifest JSON into a :class:`Manifest`.

    Only malformed JSON fails. Unknown or wrongly typed fields are kept in
    the extension maps.

    Args:
        text: manifest.json content (str, or UTF-8 bytes)

    Returns:
        Parsed manifest

    Raises:
        ManifestParseError: If the text is not JSON or not a JSON object
    """
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ManifestParseError(f"manifest.json is not valid UTF-8: {e}") from e
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ManifestParseError(f"manifest.json is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ManifestParseError("manifest.json must contain a JSON object")
    return Manifest.from_dict(data)


def serialize_manifest(manifest: Manifest) -> str:
    """Serialize a manifest to indented JSON text."""
    return json.dumps(manifest.to_dict(), indent=2, ensure_ascii=False)
