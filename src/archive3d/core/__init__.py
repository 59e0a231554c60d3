"""Core building blocks shared by the reader and the builder.

This package contains the manifest model, conformance validation, version
policy, filename sanitization and integrity hashing. None of it touches the
ZIP container directly.
"""

from .compat import VersionCheck, VersionStatus, check_version
from .errors import (
    ArchiveError,
    AssetNotFoundError,
    BuilderStateError,
    ContainerFormatError,
    FilenameSecurityError,
    IntegrityMismatchWarning,
    ManifestMissingError,
    ManifestParseError,
    ManifestValidationError,
    OperationCancelledError,
    UnsupportedVersionError,
)
from .integrity import (
    AssetMismatch,
    MismatchReport,
    build_integrity_section,
    compute_manifest_hash,
    hash_asset,
    hash_assets,
)
from .manifest import (
    Annotation,
    DataEntry,
    IntegritySection,
    Manifest,
    Transform,
    parse_manifest,
    serialize_manifest,
)
from .profiles import ConformanceLevel, ValidationReport, validate_manifest
from .sanitizer import is_safe_filename, sanitize_archive_filename, validate_path_safety
from .validator import validate_manifest_with_error_details

__all__ = [
    "Annotation",
    "ArchiveError",
    "AssetMismatch",
    "AssetNotFoundError",
    "BuilderStateError",
    "ConformanceLevel",
    "ContainerFormatError",
    "DataEntry",
    "FilenameSecurityError",
    "IntegrityMismatchWarning",
    "IntegritySection",
    "Manifest",
    "ManifestMissingError",
    "ManifestParseError",
    "ManifestValidationError",
    "MismatchReport",
    "OperationCancelledError",
    "Transform",
    "UnsupportedVersionError",
    "ValidationReport",
    "VersionCheck",
    "VersionStatus",
    "build_integrity_section",
    "check_version",
    "compute_manifest_hash",
    "hash_asset",
    "hash_assets",
    "is_safe_filename",
    "parse_manifest",
    "sanitize_archive_filename",
    "serialize_manifest",
    "validate_manifest",
    "validate_manifest_with_error_details",
    "validate_path_safety",
]
