"""Plain-text README written next to manifest.json.

The README makes an archive self-explanatory to someone who finds it
decades later without this library: what the files are, which open formats
they use, and how to get at them with ordinary tools.
"""

from __future__ import annotations

import re
from typing import Mapping

from .core.constants import FORMAT_VERSION, MANIFEST_NAME, README_NAME
from .core.manifest import Manifest, entry_type

LINE_WIDTH = 68

FORMAT_LABELS = {
    "ply": "Gaussian splat data (PLY format)",
    "splat": "Gaussian splat data",
    "ksplat": "Gaussian splat data",
    "spz": "Gaussian splat data (Spark compressed)",
    "sog": "Gaussian splat data (SOG format)",
    "glb": "3D mesh (glTF Binary format)",
    "gltf": "3D mesh (glTF format)",
    "obj": "3D mesh (Wavefront OBJ format)",
    "stl": "3D mesh (STL format)",
    "e57": "Point cloud (ASTM E57 format)",
    "jpg": "Image",
    "jpeg": "Image",
    "png": "Image",
    "webp": "Image",
}

TYPE_LABELS = {
    "thumbnail": "Thumbnail preview",
    "image": "Embedded image",
    "screenshot": "Screenshot",
    "source": "Source file (archived, not rendered)",
}

FORMAT_GUIDES: tuple[tuple[frozenset[str], tuple[str, ...]], ...] = (
    (
        frozenset({"glb", "gltf"}),
        (
            "glTF / GLB (Graphics Language Transmission Format)",
            "  An open standard by the Khronos Group for 3D models.",
            "  Contains geometry, materials, and textures. GLB is the",
            "  binary-packed variant. Specification: https://www.khronos.org/gltf/",
        ),
    ),
    (
        frozenset({"obj"}),
        (
            "OBJ (Wavefront OBJ)",
            "  A plain-text 3D geometry format with vertices, faces and",
            "  normals. Readable by virtually all 3D software.",
        ),
    ),
    (
        frozenset({"e57"}),
        (
            "E57 (ASTM E2807 standard)",
            "  A standardized format for 3D point cloud data from laser",
            "  scanners and other 3D imaging systems.",
        ),
    ),
    (
        frozenset({"ply", "splat", "ksplat", "spz", "sog"}),
        (
            "PLY / splat formats (Gaussian Splatting)",
            "  Scenes stored as collections of 3D Gaussian primitives.",
            "  These are derived visualization products, not primary",
            "  measurement data; meshes and point clouds in this archive",
            "  preserve the underlying geometry.",
        ),
    ),
)


def _format_size(size: int) -> str:
    if size >= 1024 * 1024:
        return f" ({size / (1024 * 1024):.1f} MB)"
    if size >= 1024:
        return f" ({size / 1024:.0f} KB)"
    return ""


def _plain(text: str) -> str:
    # Drop embedded image references and collapse whitespace
    text = re.sub(r"!\[.*?\]\(asset:[^)]+\)", "", text)
    return " ".join(text.split())


def generate_readme(manifest: Manifest, sizes: Mapping[str, int] | None = None) -> str:
    """Render the README text for a manifest.

    Args:
        manifest: Manifest being packed
        sizes: Optional container path -> byte size, shown next to files

    Returns:
        README content
    """
    sizes = sizes or {}
    sep = "=" * LINE_WIDTH
    subsep = "-" * LINE_WIDTH
    lines = [
        sep,
        "ARCHIVE-3D CONTAINER",
        sep,
        "",
        "This file is a self-contained archive of 3D data. It is a standard",
        "ZIP file; any ZIP utility on any operating system can extract it.",
        "",
    ]

    project = manifest.project
    provenance = manifest.provenance
    if project is not None and (project.title or project.description):
        lines += ["PROJECT", subsep]
        if project.title:
            lines.append(f"Title:       {project.title}")
        if project.description and _plain(project.description):
            lines.append(f"Description: {_plain(project.description)}")
        if project.license:
            lines.append(f"License:     {project.license}")
        creator = manifest.get("archival_record.creation.creator")
        if isinstance(creator, str) and creator:
            lines.append(f"Creator:     {creator}")
        elif provenance is not None and provenance.operator:
            lines.append(f"Operator:    {provenance.operator}")
        if provenance is not None:
            if provenance.capture_date:
                lines.append(f"Captured:    {provenance.capture_date}")
            if provenance.location:
                lines.append(f"Location:    {provenance.location}")
            if provenance.capture_device:
                lines.append(f"Device:      {provenance.capture_device}")
        lines.append("")

    lines += ["CONTENTS", subsep, f"{MANIFEST_NAME:<24} Structured metadata (JSON format)"]
    present_exts: set[str] = set()
    for key, entry in manifest.iter_entries():
        name = entry.file_name or ""
        ext = entry.extension
        present_exts.add(ext)
        label = TYPE_LABELS.get(entry_type(key)) or FORMAT_LABELS.get(ext, "Data file")
        role = f" [{entry.role}]" if entry.role else ""
        size = _format_size(sizes.get(name, 0))
        lines.append(f"{name + size:<24} {label}{role}")
    lines.append(f"{README_NAME:<24} This file")
    lines.append("")

    if manifest.annotations:
        lines.append(f"This archive contains {len(manifest.annotations)} spatial annotation(s)")
        lines.append(f"stored in {MANIFEST_NAME}.")
        lines.append("")

    lines += ["TECHNOLOGY GUIDE", subsep]
    for extensions, guide in FORMAT_GUIDES:
        if present_exts & extensions:
            lines.extend("  " + line for line in guide)
            lines.append("")
    lines += [
        "  JSON (JavaScript Object Notation)",
        f"    {MANIFEST_NAME} holds all metadata, annotations and alignment",
        "    transforms. Specification: RFC 8259 / ECMA-404",
        "",
        "HOW TO USE THIS ARCHIVE",
        subsep,
        "1. Extract the ZIP file with any standard tool.",
        f"2. Open {MANIFEST_NAME} in a text editor to read the metadata.",
        "3. Open the 3D data files in appropriate software.",
        "4. Each data entry's transform records the position, rotation",
        "   and scale that register the assets relative to each other.",
        "5. integrity.assets lists a SHA-256 digest per file; hash the",
        "   extracted files to check them.",
        "",
        "ABOUT THIS FORMAT",
        subsep,
        f"Format:    archive-3d v{manifest.format_version or FORMAT_VERSION}",
    ]
    if manifest.created_at:
        lines.append(f"Created:   {manifest.created_at}")
    if manifest.last_modified and manifest.last_modified != manifest.created_at:
        lines.append(f"Modified:  {manifest.last_modified}")
    producer = manifest.producer or "unknown"
    if manifest.producer_version:
        producer += f" v{manifest.producer_version}"
    lines.append(f"Producer:  {producer}")
    lines.append("")
    return "\n".join(lines)
