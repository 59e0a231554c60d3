"""Conformance levels and manifest completeness validation.

Three cumulative levels describe how complete a manifest is:

- Minimal: the archive is usable at all (version, producer, title, content)
- Documented: provenance and quality are recorded
- Preservation: archival, rights and format-registry metadata are present

Validation returns a :class:`ValidationReport` instead of raising. Only a
Minimal failure makes a manifest unusable; callers decide what to do with
the rest.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Iterable

from .constants import SUPPORTING_TYPES
from .manifest import Manifest, entry_type
from .validator import collect_structural_errors


class ConformanceLevel(IntEnum):
    """Named completeness bars, ordered from least to most demanding."""

    MINIMAL = 0
    DOCUMENTED = 1
    PRESERVATION = 2

    @classmethod
    def from_name(cls, name: str) -> ConformanceLevel:
        """Parse a level name (``"minimal"``, ``"Documented"``...)."""
        try:
            return cls[name.strip().upper()]
        except KeyError:
            valid = ", ".join(level.name.lower() for level in cls)
            raise ValueError(f"Unknown conformance level: {name!r}. Valid levels: {valid}") from None


@dataclass(frozen=True)
class FieldIssue:
    """One missing or unusable field."""

    path: str
    level: ConformanceLevel
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


# (level, dotted path, required)
FIELD_RULES: tuple[tuple[ConformanceLevel, str, bool], ...] = (
    (ConformanceLevel.MINIMAL, "format_version", True),
    (ConformanceLevel.MINIMAL, "producer", True),
    (ConformanceLevel.MINIMAL, "project.title", True),
    (ConformanceLevel.MINIMAL, "project.description", False),
    (ConformanceLevel.MINIMAL, "project.license", False),
    (ConformanceLevel.MINIMAL, "created_at", False),
    (ConformanceLevel.DOCUMENTED, "provenance.capture_date", True),
    (ConformanceLevel.DOCUMENTED, "provenance.capture_device", True),
    (ConformanceLevel.DOCUMENTED, "provenance.operator", True),
    (ConformanceLevel.DOCUMENTED, "quality_metrics.tier", True),
    (ConformanceLevel.DOCUMENTED, "quality_metrics.accuracy_grade", True),
    (ConformanceLevel.DOCUMENTED, "provenance.location", False),
    (ConformanceLevel.DOCUMENTED, "provenance.processing_software", False),
    (ConformanceLevel.DOCUMENTED, "quality_metrics.capture_resolution.value", False),
    (ConformanceLevel.PRESERVATION, "archival_record.title", True),
    (ConformanceLevel.PRESERVATION, "archival_record.rights.copyright_status", True),
    (ConformanceLevel.PRESERVATION, "preservation.format_registry", True),
    (ConformanceLevel.PRESERVATION, "archival_record.creation.creator", False),
    (ConformanceLevel.PRESERVATION, "archival_record.coverage.spatial.location_name", False),
    (ConformanceLevel.PRESERVATION, "preservation.significant_properties", False),
    (ConformanceLevel.PRESERVATION, "preservation.rendering_requirements", False),
    (ConformanceLevel.PRESERVATION, "material_standard.workflow", False),
    (ConformanceLevel.PRESERVATION, "integrity", False),
)


@dataclass
class ValidationReport:
    """Outcome of validating a manifest at a conformance level.

    Attributes:
        level: Level that was checked (lower levels are included)
        missing_required: Required fields that are absent or empty
        missing_recommended: Recommended fields that are absent or empty
        structural_errors: JSON Schema violations (advisory)
        degraded: True when the manifest's version put the reader in
            degraded mode; nothing is fatal then
    """

    level: ConformanceLevel
    missing_required: list[FieldIssue] = field(default_factory=list)
    missing_recommended: list[FieldIssue] = field(default_factory=list)
    structural_errors: list[str] = field(default_factory=list)
    degraded: bool = False

    @property
    def minimal_failures(self) -> list[FieldIssue]:
        return [i for i in self.missing_required if i.level is ConformanceLevel.MINIMAL]

    @property
    def minimal_ok(self) -> bool:
        """True when the manifest is usable (always True in degraded mode)."""
        return self.degraded or not self.minimal_failures

    @property
    def ok(self) -> bool:
        """True when every required field of the checked level is present."""
        return not self.missing_required

    @property
    def errors(self) -> list[str]:
        return [str(issue) for issue in self.missing_required]

    @property
    def warnings(self) -> list[str]:
        return [str(issue) for issue in self.missing_recommended] + self.structural_errors

    def summary(self) -> str:
        """One-line description suitable for an exception message."""
        if self.ok and not self.structural_errors:
            return f"Manifest meets {self.level.name.lower()} conformance"
        parts = []
        if self.missing_required:
            parts.append("missing required: " + ", ".join(i.path for i in self.missing_required))
        if self.missing_recommended:
            parts.append(
                "missing recommended: " + ", ".join(i.path for i in self.missing_recommended)
            )
        if self.structural_errors:
            parts.append(f"{len(self.structural_errors)} structural error(s)")
        return "; ".join(parts)


def _is_filled(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, dict)):
        return bool(value)
    return True


def _content_keys(manifest: Manifest) -> list[str]:
    return [
        key
        for key, entry in manifest.entries.items()
        if entry_type(key) not in SUPPORTING_TYPES and entry.file_name
    ]


def validate_manifest(
    manifest: Manifest,
    level: ConformanceLevel = ConformanceLevel.MINIMAL,
    *,
    available_files: Iterable[str] | None = None,
    degraded: bool = False,
) -> ValidationReport:
    """Check a manifest against a conformance level.

    Args:
        manifest: Manifest to check
        level: Conformance level (lower levels are always included)
        available_files: Container paths that exist. When given, every
            DataEntry file_name must be among them (Minimal requirement);
            readers omit this so missing files surface lazily
        degraded: Mark the report as degraded (version policy)

    Returns:
        ValidationReport; never raises for missing fields
    """
    report = ValidationReport(level=level, degraded=degraded)

    for rule_level, path, required in FIELD_RULES:
        if rule_level > level:
            continue
        if _is_filled(manifest.get(path)):
            continue
        target = report.missing_required if required else report.missing_recommended
        kind = "required" if required else "recommended"
        target.append(FieldIssue(path, rule_level, f"{kind} at {rule_level.name.lower()} level"))

    content_keys = _content_keys(manifest)
    if not content_keys:
        report.missing_required.append(
            FieldIssue(
                "data_entries",
                ConformanceLevel.MINIMAL,
                "archive must contain at least one content asset "
                "(thumbnails, screenshots, images and sources do not count)",
            )
        )

    if available_files is not None:
        present = set(available_files)
        for key, entry in sorted(manifest.entries.items()):
            if entry.file_name not in present:
                report.missing_required.append(
                    FieldIssue(
                        f"data_entries.{key}.file_name",
                        ConformanceLevel.MINIMAL,
                        f"missing file: {entry.file_name}",
                    )
                )

    if level >= ConformanceLevel.DOCUMENTED:
        for key in sorted(content_keys):
            if not _is_filled(manifest.entries[key].created_by):
                report.missing_recommended.append(
                    FieldIssue(
                        f"data_entries.{key}.created_by",
                        ConformanceLevel.DOCUMENTED,
                        "recommended at documented level",
                    )
                )

    report.structural_errors = collect_structural_errors(manifest.to_dict())
    return report
