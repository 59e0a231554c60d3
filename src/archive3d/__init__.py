"""archive3d - archival container for 3D assets.

This package reads and writes ``.a3d`` / ``.a3z`` archives: ZIP files
holding 3D assets next to a ``manifest.json`` that records provenance,
alignment transforms, annotations and SHA-256 integrity digests.
"""

# Reading and writing
from .builder import ArchiveBuilder, BuilderState
from .reader import ArchiveReader, ExtractionResult, ReaderState, open_archive

# Container codec
from .container import CompressionHint, ContainerVariant

# Core utilities
from .core import (
    Annotation,
    ArchiveError,
    AssetNotFoundError,
    BuilderStateError,
    ConformanceLevel,
    ContainerFormatError,
    DataEntry,
    FilenameSecurityError,
    IntegrityMismatchWarning,
    Manifest,
    ManifestMissingError,
    ManifestParseError,
    ManifestValidationError,
    MismatchReport,
    OperationCancelledError,
    Transform,
    UnsupportedVersionError,
    ValidationReport,
    check_version,
    parse_manifest,
    sanitize_archive_filename,
    serialize_manifest,
    validate_manifest,
    validate_manifest_with_error_details,
)
from .core.constants import LIBRARY_VERSION
from .logging import configure_logging

__version__ = LIBRARY_VERSION

__all__ = [
    # Primary library interface
    "ArchiveBuilder",
    "ArchiveReader",
    "BuilderState",
    "ReaderState",
    "ExtractionResult",
    "open_archive",
    "CompressionHint",
    "ContainerVariant",
    # Manifest model and validation
    "Annotation",
    "DataEntry",
    "Manifest",
    "Transform",
    "ConformanceLevel",
    "ValidationReport",
    "MismatchReport",
    "check_version",
    "parse_manifest",
    "serialize_manifest",
    "validate_manifest",
    "validate_manifest_with_error_details",
    "sanitize_archive_filename",
    # Errors
    "ArchiveError",
    "AssetNotFoundError",
    "BuilderStateError",
    "ContainerFormatError",
    "FilenameSecurityError",
    "IntegrityMismatchWarning",
    "ManifestMissingError",
    "ManifestParseError",
    "ManifestValidationError",
    "OperationCancelledError",
    "UnsupportedVersionError",
    # Logging
    "configure_logging",
]
