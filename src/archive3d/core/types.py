"""Type definitions for the raw manifest JSON.

These TypedDicts mirror the JSON schema in schemas/manifest.schema.json.
They describe what sits on disk; the typed in-memory model lives in
:mod:`archive3d.core.manifest`. Every object may carry additional keys,
which readers must preserve.
"""

from typing import Any, TypedDict


class Vector3(TypedDict):
    """Point or direction as an object (annotations, viewer settings)."""

    x: float
    y: float
    z: float


class TransformDict(TypedDict, total=False):
    """Placement of an asset in the shared coordinate space."""

    position: list[float]  # [x, y, z]
    rotation: list[float]  # Euler angles [x, y, z]
    scale: float  # Uniform scale


class DataEntryDict(TypedDict, total=False):
    """One asset stored in the container."""

    file_name: str  # Path relative to the container root
    created_by: str  # Producing tool
    created_by_version: str
    source_notes: str  # Free-text provenance note
    role: str
    lod: str  # "proxy" for display proxies
    derived_from: str  # Entry key this proxy was derived from
    original_name: str  # File name before it was renamed on pack
    transform: TransformDict


class AnnotationDict(TypedDict, total=False):
    """Labeled 3D location."""

    id: str
    title: str
    body: str
    position: Vector3
    camera_position: Vector3
    camera_target: Vector3


class IntegrityDict(TypedDict):
    """Per-asset digests plus the aggregate digest."""

    algorithm: str  # Always "SHA-256"
    manifest_hash: str
    assets: dict[str, str]  # container path -> hex digest


class VersionHistoryDict(TypedDict):
    """One entry of the manifest's edit history."""

    version: str
    date: str
    description: str


class ManifestDict(TypedDict, total=False):
    """Complete manifest document (manifest.json)."""

    format_version: str
    metadata_schema_version: str
    metadata_profile: str
    producer: str
    producer_version: str
    created_at: str  # ISO-8601 UTC
    last_modified: str
    project: dict[str, Any]
    relationships: dict[str, Any]
    provenance: dict[str, Any]
    quality_metrics: dict[str, Any]
    archival_record: dict[str, Any]
    material_standard: dict[str, Any]
    preservation: dict[str, Any]
    viewer_settings: dict[str, Any]
    data_entries: dict[str, DataEntryDict]
    annotations: list[AnnotationDict]
    version_history: list[VersionHistoryDict]
    integrity: IntegrityDict
