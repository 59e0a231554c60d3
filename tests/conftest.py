"""Shared fixtures for archive3d tests."""

import io
import json
import zipfile
from typing import Any, Callable

import pytest

from archive3d import ArchiveBuilder

# Exactly 12 bytes of fixed asset content
MESH_PAYLOAD = b"glTF-payload"


@pytest.fixture
def payload() -> bytes:
    return MESH_PAYLOAD


@pytest.fixture
def manifest_dict() -> dict[str, Any]:
    """Smallest manifest that meets Minimal conformance."""
    return {
        "format_version": "1.0",
        "producer": "test-suite",
        "project": {"title": "Test"},
        "data_entries": {
            "mesh_0": {"file_name": "assets/mesh_0.glb"},
        },
    }


@pytest.fixture
def make_container() -> Callable[..., bytes]:
    """Return a helper that zips ``name -> bytes | str | dict`` into archive bytes.

    Dict values are written as JSON.
    """

    def _make(files: dict[str, Any], compression: int = zipfile.ZIP_DEFLATED) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression) as archive:
            for name, data in files.items():
                if isinstance(data, dict):
                    data = json.dumps(data)
                archive.writestr(name, data)
        return buffer.getvalue()

    return _make


@pytest.fixture
def builder(payload: bytes) -> ArchiveBuilder:
    """Builder holding one mesh and a project title."""
    b = ArchiveBuilder(producer="test-suite")
    b.set_project(title="Test")
    b.add_asset("mesh", payload)
    return b


@pytest.fixture
def read_member() -> Callable[[bytes, str], bytes]:
    """Return a helper reading one member out of archive bytes."""

    def _read(data: bytes, name: str) -> bytes:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            return archive.read(name)

    return _read
