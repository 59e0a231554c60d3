"""JSON Schema validation for manifest structure.

This module loads the shipped JSON Schema and checks the *shape* of a
manifest (types, vector lengths, digest format). Which fields must be
present is decided per conformance level in :mod:`archive3d.core.profiles`.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

import jsonschema
from jsonschema import Draft202012Validator, ValidationError

from .types import ManifestDict

# archive3d/core/validator.py -> archive3d/schemas/
SCHEMA_PATH = Path(__file__).parent.parent / "schemas" / "manifest.schema.json"


@lru_cache(maxsize=1)
def load_schema() -> dict[str, Any]:
    """Load the JSON schema from the package data.

    Returns:
        Dictionary containing the JSON Schema.

    Raises:
        FileNotFoundError: If schema file doesn't exist
        json.JSONDecodeError: If schema is invalid JSON
    """
    if not SCHEMA_PATH.exists():
        raise FileNotFoundError(f"Schema file not found: {SCHEMA_PATH}")

    with SCHEMA_PATH.open("r", encoding="utf-8") as f:
        return json.load(f)  # type: ignore[no-any-return]


@lru_cache(maxsize=1)
def _validator() -> Draft202012Validator:
    schema = load_schema()
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def format_error(error: ValidationError) -> str:
    """Render a schema error as ``path: message``."""
    error_path = ".".join(str(p) for p in error.absolute_path) if error.absolute_path else "root"
    return f"{error_path}: {error.message}"


def validate_manifest_structure(manifest: ManifestDict | dict[str, Any]) -> None:
    """Validate a raw manifest dictionary against the JSON Schema.

    Args:
        manifest: The manifest dictionary to validate

    Raises:
        ValidationError: If the manifest doesn't conform to the schema
    """
    jsonschema.validate(
        instance=manifest, schema=load_schema(), cls=Draft202012Validator
    )


def collect_structural_errors(manifest: ManifestDict | dict[str, Any]) -> list[str]:
    """Return every schema violation, sorted by location.

    Unlike :func:`validate_manifest_structure` this never raises: structure
    problems are advisory and end up in a ValidationReport.
    """
    errors = sorted(_validator().iter_errors(manifest), key=lambda e: list(map(str, e.absolute_path)))
    return [format_error(e) for e in errors]


def validate_manifest_with_error_details(
    manifest: ManifestDict | dict[str, Any],
) -> tuple[bool, str | None]:
    """Validate a manifest and return detailed error information.

    This is a convenience wrapper that catches validation errors and
    returns user-friendly error messages.

    Args:
        manifest: The manifest dictionary to validate

    Returns:
        Tuple of (is_valid, error_message). error_message is None if valid.
    """
    try:
        validate_manifest_structure(manifest)
        return True, None
    except ValidationError as e:
        error_msg = f"Validation error at {format_error(e)}"

        if e.instance:
            error_msg += f"\nInvalid value: {e.instance}"

        return False, error_msg
    except (FileNotFoundError, json.JSONDecodeError) as e:
        return False, f"Schema error: {e}"
