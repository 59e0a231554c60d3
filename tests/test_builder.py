"""Tests for ArchiveBuilder."""

import asyncio
import hashlib
import json
from typing import Callable

import pytest

from archive3d import ArchiveBuilder, ArchiveReader, BuilderState, ContainerVariant
from archive3d.container.codec import open_container
from archive3d.core.errors import (
    AssetNotFoundError,
    BuilderStateError,
    FilenameSecurityError,
    ManifestValidationError,
    OperationCancelledError,
)
from archive3d.core.manifest import Transform, parse_manifest
from archive3d.core.profiles import ConformanceLevel


def _packed_manifest(data: bytes, read_member: Callable[[bytes, str], bytes]) -> dict:
    return json.loads(read_member(data, "manifest.json"))


class TestAddAsset:
    """Test asset staging and key assignment."""

    def test_keys_and_paths(self, payload: bytes) -> None:
        """Test zero-based per-type indices and canonical paths."""
        builder = ArchiveBuilder()
        assert builder.add_asset("mesh", payload) == "mesh_0"
        assert builder.add_asset("mesh", payload) == "mesh_1"
        assert builder.add_asset("scene", payload) == "scene_0"
        assert builder.entry("mesh_1").file_name == "assets/mesh_1.glb"
        assert builder.entry("scene_0").file_name == "assets/scene_0.ply"
        assert builder.asset_paths == ["assets/mesh_0.glb", "assets/mesh_1.glb", "assets/scene_0.ply"]

    def test_default_extensions(self, payload: bytes) -> None:
        """Test per-type default extensions when no file name is given."""
        builder = ArchiveBuilder()
        builder.add_asset("pointcloud", payload)
        builder.add_asset("audio", payload)
        assert builder.entry("pointcloud_0").file_name == "assets/pointcloud_0.e57"
        assert builder.entry("audio_0").file_name == "assets/audio_0.bin"

    def test_extension_from_file_name(self, payload: bytes) -> None:
        """Test that the caller's file name decides the extension."""
        builder = ArchiveBuilder()
        key = builder.add_asset("mesh", payload, file_name="C:\\scans\\Temple Facade.OBJ")
        entry = builder.entry(key)
        assert entry.file_name == "assets/mesh_0.obj"
        assert entry.original_name == "C:\\scans\\Temple Facade.OBJ"

    def test_index_ignores_proxy_keys(self, payload: bytes) -> None:
        """Test that only <type>_<n> keys count towards the next index."""
        builder = ArchiveBuilder()
        builder.add_asset("mesh", payload)
        builder.add_proxy("mesh_0", payload)
        assert builder.add_asset("mesh", payload) == "mesh_1"

    @pytest.mark.parametrize("prefix", ["", "mesh-lod", "mesh_0", "../x"])
    def test_rejects_bad_type_prefix(self, payload: bytes, prefix: str) -> None:
        """Test that non-alphanumeric type prefixes are refused."""
        with pytest.raises(ValueError, match="Invalid asset type"):
            ArchiveBuilder().add_asset(prefix, payload)

    def test_transform_defaults(self, payload: bytes) -> None:
        """Test identity and partial transforms."""
        builder = ArchiveBuilder()
        builder.add_asset("mesh", payload)
        builder.add_asset("mesh", payload, transform={"position": [1, 2, 3]})
        builder.add_asset("mesh", payload, transform=Transform(scale=2))
        assert builder.entry("mesh_0").transform.to_dict() == {
            "position": [0, 0, 0],
            "rotation": [0, 0, 0],
            "scale": 1,
        }
        assert builder.entry("mesh_1").transform.rotation == [0, 0, 0]
        assert builder.entry("mesh_1").transform.position == [1, 2, 3]
        assert builder.entry("mesh_2").transform.scale == 2

    def test_metadata_fields_and_extensions(self, payload: bytes) -> None:
        """Test that metadata fills known fields and keeps unknown ones."""
        builder = ArchiveBuilder()
        builder.add_asset(
            "mesh",
            payload,
            metadata={"created_by": "RealityCapture", "role": "primary", "_decimation": 0.5},
        )
        entry = builder.entry("mesh_0")
        assert entry.created_by == "RealityCapture"
        assert entry.role == "primary"
        assert entry.extensions == {"_decimation": 0.5}

    def test_thumbnail_and_proxy(self, payload: bytes) -> None:
        """Test thumbnail paths and proxy keys, roles and transforms."""
        builder = ArchiveBuilder()
        builder.add_asset("scene", payload)
        assert builder.add_thumbnail(b"jpeg") == "thumbnail_0"
        assert builder.entry("thumbnail_0").file_name == "preview.jpg"

        key = builder.add_proxy("scene_0", b"small", file_name="scene_lod.spz")
        proxy = builder.entry(key)
        assert key == "scene_0_proxy"
        assert proxy.file_name == "assets/scene_0_proxy.spz"
        assert proxy.lod == "proxy"
        assert proxy.role == "derived"
        assert proxy.derived_from == "scene_0"

    def test_proxy_requires_parent(self, payload: bytes) -> None:
        """Test that a proxy needs an existing parent entry."""
        builder = ArchiveBuilder()
        with pytest.raises(AssetNotFoundError):
            builder.add_proxy("mesh_0", payload)
        builder.add_asset("mesh", payload)
        builder.add_proxy("mesh_0", payload)
        with pytest.raises(ValueError, match="already has a proxy"):
            builder.add_proxy("mesh_0", payload)

    def test_source_file_names(self) -> None:
        """Test charset reduction and collision suffixes for source files."""
        builder = ArchiveBuilder()
        first = builder.add_source_file(b"a", "scan notes.txt", category="notes")
        second = builder.add_source_file(b"b", "scan notes.txt")
        assert builder.entry(first).file_name == "sources/scan_notes.txt"
        assert builder.entry(second).file_name == "sources/scan_notes_1.txt"
        assert builder.entry(first).role == "source"
        assert builder.entry(first).extensions["source_category"] == "notes"

    def test_source_file_dot_runs_collapsed(self) -> None:
        """Test that repeated dots in a source name do not make it unsafe."""
        builder = ArchiveBuilder()
        key = builder.add_source_file(b"a", "..scan..notes.txt")
        assert builder.entry(key).file_name == "sources/scan.notes.txt"

    def test_screenshots(self, payload: bytes) -> None:
        """Test screenshot keys and paths below screenshots/."""
        builder = ArchiveBuilder(producer="test-suite")
        first = builder.add_screenshot(payload, "Screen Shot.PNG")
        second = builder.add_screenshot(payload, "view.jpg")
        assert (first, second) == ("screenshot_0", "screenshot_1")
        assert builder.entry(first).file_name == "screenshots/screenshot_0.png"
        assert builder.entry(second).file_name == "screenshots/screenshot_1.jpg"
        assert builder.entry(first).created_by == "test-suite"
        assert builder.entry(first).original_name == "Screen Shot.PNG"

    def test_images_keep_caller_path(self, payload: bytes) -> None:
        """Test that embedded images are stored at the given path."""
        builder = ArchiveBuilder()
        key = builder.add_image(payload, "images/custom/photo.jpg")
        assert key == "image_0"
        assert builder.entry(key).file_name == "images/custom/photo.jpg"
        assert builder.get_asset("images/custom/photo.jpg") == payload
        assert builder.add_image(payload, "./images/wall.jpg") == "image_1"
        assert builder.entry("image_1").file_name == "images/wall.jpg"

    @pytest.mark.parametrize("path", ["../escape.jpg", "/etc/photo.jpg", "images/my photo.jpg"])
    def test_image_path_must_be_safe(self, payload: bytes, path: str) -> None:
        """Test that unsafe image paths are refused and nothing is staged."""
        builder = ArchiveBuilder()
        with pytest.raises(FilenameSecurityError):
            builder.add_image(payload, path)
        assert builder.asset_paths == []
        assert builder.freeze().entries == {}

    def test_image_path_collision(self, payload: bytes) -> None:
        """Test that an image cannot overwrite another staged file."""
        builder = ArchiveBuilder()
        builder.add_asset("mesh", payload)
        with pytest.raises(ValueError, match="already in use"):
            builder.add_image(payload, "assets/mesh_0.glb")

    def test_update_entry(self, builder: ArchiveBuilder) -> None:
        """Test field updates and the file_name guard."""
        builder.update_entry("mesh_0", created_by="Metashape", source_notes="Decimated")
        assert builder.entry("mesh_0").created_by == "Metashape"
        with pytest.raises(ValueError, match="file_name"):
            builder.update_entry("mesh_0", file_name="assets/other.glb")
        with pytest.raises(TypeError):
            builder.update_entry("mesh_0", created_by=3)
        with pytest.raises(AssetNotFoundError):
            builder.update_entry("mesh_9", created_by="x")


class TestMetadata:
    """Test section setters, annotations and extensions."""

    def test_section_setters_merge(self, builder: ArchiveBuilder) -> None:
        """Test that repeated section setters merge fields."""
        builder.set_project(description="Survey of the west facade")
        builder.set_provenance(operator="Survey Team", capture_device="Leica RTC360")
        builder.set_provenance(capture_date="2024-05-01")
        manifest = builder.freeze()
        assert manifest.project.title == "Test"
        assert manifest.project.description == "Survey of the west facade"
        assert manifest.provenance.operator == "Survey Team"
        assert manifest.provenance.capture_date == "2024-05-01"

    def test_annotations(self, builder: ArchiveBuilder) -> None:
        """Test annotation ids, titles and duplicates."""
        anno_id = builder.add_annotation({"title": "Door", "position": {"x": 1, "y": 0, "z": 2}})
        assert anno_id
        builder.add_annotation({"id": "a2", "title": "Window"})
        with pytest.raises(ValueError, match="Duplicate"):
            builder.add_annotation({"id": "a2", "title": "Again"})
        with pytest.raises(ValueError, match="title"):
            builder.add_annotation({"id": "a3", "title": ""})
        assert [a.title for a in builder.freeze().annotations] == ["Door", "Window"]

    def test_set_annotations_is_atomic(self, builder: ArchiveBuilder) -> None:
        """Test that a rejected annotation list leaves the old one in place."""
        builder.add_annotation({"id": "a1", "title": "Door"})
        with pytest.raises(ValueError):
            builder.set_annotations([{"id": "b1", "title": "One"}, {"id": "b1", "title": "Two"}])
        assert [a.id for a in builder.freeze().annotations] == ["a1"]

    def test_extensions(self, builder: ArchiveBuilder) -> None:
        """Test top-level extension keys."""
        builder.set_extension("_vendor_hint", {"tool": "scanner-x"})
        assert builder.freeze().extensions == {"_vendor_hint": {"tool": "scanner-x"}}
        with pytest.raises(ValueError, match="recognised"):
            builder.set_extension("producer", "me")

    def test_quality_stats(self, builder: ArchiveBuilder) -> None:
        """Test that capture statistics merge into the _meta.quality extension."""
        builder.set_extension("_meta", {"source": "scanner-x"})
        builder.set_quality_stats(splat_count=120000, mesh_polygons=5000)
        builder.set_quality_stats(mesh_vertices=2600, texture_maps=["albedo", "normal"], splat_count=None)
        assert builder.quality_stats == {
            "splat_count": 120000,
            "mesh_polygons": 5000,
            "mesh_vertices": 2600,
            "texture_maps": ["albedo", "normal"],
        }
        meta = builder.freeze().extensions["_meta"]
        assert meta["source"] == "scanner-x"
        assert meta["quality"]["mesh_polygons"] == 5000

    def test_quality_stats_rejects_unknown_names(self, builder: ArchiveBuilder) -> None:
        """Test that only known statistic names are accepted."""
        with pytest.raises(ValueError, match="polygon_count"):
            builder.set_quality_stats(polygon_count=10)
        assert builder.quality_stats == {}

    def test_freeze_is_independent(self, builder: ArchiveBuilder) -> None:
        """Test that a frozen manifest does not follow later edits."""
        frozen = builder.freeze()
        frozen.project.title = "Changed"
        assert builder.freeze().project.title == "Test"


class TestValidate:
    """Test builder validation."""

    def test_valid_builder(self, builder: ArchiveBuilder) -> None:
        """Test that a titled builder with one mesh passes Minimal."""
        report = builder.validate()
        assert report.minimal_ok
        assert builder.state is BuilderState.VALIDATED

    def test_missing_title(self, payload: bytes) -> None:
        """Test that a missing project title fails Minimal."""
        builder = ArchiveBuilder()
        builder.add_asset("mesh", payload)
        report = builder.validate()
        assert "project.title" in [i.path for i in report.minimal_failures]
        assert builder.state is BuilderState.ACCUMULATING

    def test_missing_asset_bytes(self, payload: bytes) -> None:
        """Test that an entry without staged bytes fails validation."""
        manifest = parse_manifest(
            json.dumps(
                {
                    "format_version": "1.0",
                    "producer": "x",
                    "project": {"title": "Test"},
                    "data_entries": {"mesh_0": {"file_name": "assets/mesh_0.glb"}},
                }
            )
        )
        builder = ArchiveBuilder.from_manifest(manifest, {})
        report = builder.validate()
        assert "data_entries.mesh_0.file_name" in [i.path for i in report.minimal_failures]

    def test_documented_level(self, builder: ArchiveBuilder) -> None:
        """Test that Documented asks for provenance fields."""
        report = builder.validate(ConformanceLevel.DOCUMENTED)
        assert report.minimal_ok
        assert not report.ok

    @pytest.mark.parametrize("stage", ["source", "screenshot", "image"])
    def test_supporting_files_alone_fail(self, stage: str) -> None:
        """Test that sources, screenshots and images are not content assets."""
        builder = ArchiveBuilder()
        builder.set_project(title="Test")
        if stage == "source":
            builder.add_source_file(b"notes", "notes.txt")
        elif stage == "screenshot":
            builder.add_screenshot(b"png", "view.png")
        else:
            builder.add_image(b"jpeg", "images/wall.jpg")
        report = builder.validate()
        assert not report.minimal_ok
        assert [i.path for i in report.minimal_failures] == ["data_entries"]
        assert builder.state is BuilderState.ACCUMULATING

    def test_unknown_type_counts_as_content(self, payload: bytes) -> None:
        """Test that an unrecognised type prefix satisfies the content rule."""
        builder = ArchiveBuilder()
        builder.set_project(title="Test")
        builder.add_asset("splat", payload)
        assert builder.validate().minimal_ok


class TestPack:
    """Test packing archives."""

    @pytest.mark.asyncio
    async def test_single_mesh_archive(
        self, builder: ArchiveBuilder, payload: bytes, read_member: Callable[[bytes, str], bytes]
    ) -> None:
        """Test the manifest and digests of a one-mesh archive."""
        data = await builder.pack()
        manifest = _packed_manifest(data, read_member)
        digest = hashlib.sha256(payload).hexdigest()

        assert manifest["data_entries"]["mesh_0"]["file_name"] == "assets/mesh_0.glb"
        assert manifest["integrity"]["algorithm"] == "SHA-256"
        assert manifest["integrity"]["assets"]["assets/mesh_0.glb"] == digest
        assert manifest["integrity"]["manifest_hash"] == hashlib.sha256(digest.encode()).hexdigest()
        assert read_member(data, "assets/mesh_0.glb") == payload
        assert builder.state is BuilderState.PACKED

    @pytest.mark.asyncio
    async def test_pack_fills_timestamps_and_registry(
        self, builder: ArchiveBuilder, read_member: Callable[[bytes, str], bytes]
    ) -> None:
        """Test that packing fills timestamps and the PRONOM registry."""
        data = await builder.pack()
        manifest = _packed_manifest(data, read_member)
        assert manifest["created_at"].endswith("Z")
        assert manifest["last_modified"] == manifest["created_at"]
        assert manifest["preservation"]["format_registry"] == {"glb": "fmt/861"}
        assert manifest["producer"] == "test-suite"
        assert manifest["format_version"] == "1.0"

    @pytest.mark.asyncio
    async def test_preserved_creation_date(
        self, builder: ArchiveBuilder, read_member: Callable[[bytes, str], bytes]
    ) -> None:
        """Test that an earlier created_at survives packing."""
        builder.preserve_creation_date("2020-01-01T00:00:00.000Z")
        manifest = _packed_manifest(await builder.pack(), read_member)
        assert manifest["created_at"] == "2020-01-01T00:00:00.000Z"
        assert manifest["last_modified"] != manifest["created_at"]

    @pytest.mark.asyncio
    async def test_without_hashes_or_readme(
        self, builder: ArchiveBuilder, read_member: Callable[[bytes, str], bytes]
    ) -> None:
        """Test packing without integrity section or README."""
        data = await builder.pack(include_hashes=False, include_readme=False)
        assert "integrity" not in _packed_manifest(data, read_member)
        with open_container(data) as handle:
            assert not handle.has_entry("README.txt")

    @pytest.mark.asyncio
    async def test_readme_written(
        self, builder: ArchiveBuilder, read_member: Callable[[bytes, str], bytes]
    ) -> None:
        """Test that the README lists project and contents."""
        readme = read_member(await builder.pack(), "README.txt").decode("utf-8")
        assert "PROJECT" in readme
        assert "Test" in readme
        assert "assets/mesh_0.glb" in readme

    @pytest.mark.asyncio
    async def test_compression_per_variant(self, payload: bytes) -> None:
        """Test that a3z deflates ply but stores glb; manifest is always deflated."""
        builder = ArchiveBuilder(variant=ContainerVariant.A3Z)
        builder.set_project(title="Test")
        builder.add_asset("scene", b"ply\n" * 500)
        builder.add_asset("mesh", payload)
        with open_container(await builder.pack()) as handle:
            assert not handle.get_entry("assets/scene_0.ply").is_stored
            assert handle.get_entry("assets/mesh_0.glb").is_stored
            assert not handle.get_entry("manifest.json").is_stored

        builder = ArchiveBuilder(variant=ContainerVariant.A3D)
        builder.set_project(title="Test")
        builder.add_asset("scene", b"ply\n" * 500)
        with open_container(await builder.pack()) as handle:
            assert handle.get_entry("assets/scene_0.ply").is_stored
            assert not handle.get_entry("manifest.json").is_stored

    @pytest.mark.asyncio
    async def test_refuses_thumbnail_only(self) -> None:
        """Test the minimum-asset rule at pack time."""
        builder = ArchiveBuilder()
        builder.set_project(title="Test")
        builder.add_thumbnail(b"jpeg")
        with pytest.raises(ManifestValidationError) as exc_info:
            await builder.pack()
        assert [i.path for i in exc_info.value.report.minimal_failures] == ["data_entries"]

    @pytest.mark.asyncio
    async def test_refuses_source_only_archive(self) -> None:
        """Test that an archive holding only a source file is never written."""
        builder = ArchiveBuilder()
        builder.set_project(title="Test")
        builder.add_source_file(b"notes", "notes.txt")
        with pytest.raises(ManifestValidationError, match="data_entries"):
            await builder.pack()
        assert builder.state is not BuilderState.PACKED

    @pytest.mark.asyncio
    async def test_refuses_without_title(self, payload: bytes) -> None:
        """Test that packing refuses a manifest failing Minimal."""
        builder = ArchiveBuilder()
        builder.add_asset("mesh", payload)
        with pytest.raises(ManifestValidationError, match="project.title"):
            await builder.pack()

    @pytest.mark.asyncio
    async def test_progress_ranges(self, builder: ArchiveBuilder) -> None:
        """Test that hashing reports 0..20 and writing 20..100."""
        events: list[tuple[int, str]] = []
        await builder.pack(lambda percent, stage: events.append((percent, stage)))
        percents = [p for p, _ in events]
        assert percents == sorted(percents)
        assert percents[-1] == 100
        assert all(p <= 20 for p, stage in events if stage.startswith("Hashing"))
        assert all(p >= 20 for p, stage in events if stage.startswith("Compressing"))

    @pytest.mark.asyncio
    async def test_packed_builder_is_closed(self, builder: ArchiveBuilder, payload: bytes) -> None:
        """Test that a packed builder refuses further edits."""
        await builder.pack()
        with pytest.raises(BuilderStateError):
            builder.add_asset("mesh", payload)
        with pytest.raises(BuilderStateError):
            builder.set_project(title="Other")
        assert builder.packed_manifest is not None

    @pytest.mark.asyncio
    async def test_identical_content_identical_integrity(self, payload: bytes) -> None:
        """Test that digests do not depend on staging order."""
        first = ArchiveBuilder()
        first.add_asset("mesh", payload)
        first.add_asset("scene", b"scene")
        second = ArchiveBuilder()
        second.add_asset("scene", b"scene")
        second.add_asset("mesh", payload)
        a = await first.compute_hashes()
        b = await second.compute_hashes()
        assert a.to_dict() == b.to_dict()


class TestHashInvalidation:
    """Test that stale hashes are never packed."""

    @pytest.mark.asyncio
    async def test_adding_asset_drops_integrity(
        self, builder: ArchiveBuilder, read_member: Callable[[bytes, str], bytes]
    ) -> None:
        """Test that adding an asset after hashing drops the digests."""
        await builder.compute_hashes()
        assert builder.state is BuilderState.HASHED
        assert builder.freeze().integrity is not None

        builder.add_asset("scene", b"late addition")
        assert builder.state is BuilderState.ACCUMULATING
        assert builder.freeze().integrity is None

        manifest = _packed_manifest(await builder.pack(), read_member)
        assert set(manifest["integrity"]["assets"]) == {"assets/mesh_0.glb", "assets/scene_0.ply"}

    @pytest.mark.asyncio
    async def test_replacing_asset_drops_integrity(
        self, builder: ArchiveBuilder, read_member: Callable[[bytes, str], bytes]
    ) -> None:
        """Test that replacing asset bytes drops the digests."""
        await builder.compute_hashes()
        builder.replace_asset("mesh_0", b"new mesh bytes")
        assert builder.freeze().integrity is None
        manifest = _packed_manifest(await builder.pack(), read_member)
        expected = hashlib.sha256(b"new mesh bytes").hexdigest()
        assert manifest["integrity"]["assets"]["assets/mesh_0.glb"] == expected

    @pytest.mark.asyncio
    async def test_metadata_edit_keeps_digests(self, builder: ArchiveBuilder) -> None:
        """Test that metadata edits keep valid digests."""
        integrity = await builder.compute_hashes()
        builder.set_project(description="Edited")
        assert builder.state is BuilderState.ACCUMULATING
        assert builder.freeze().integrity.to_dict() == integrity.to_dict()


class TestCancellation:
    """Test cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_before_hashing(self, builder: ArchiveBuilder) -> None:
        """Test cancelling before hashing starts."""
        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(OperationCancelledError):
            await builder.pack(cancel_event=cancel)
        assert builder.state is BuilderState.ACCUMULATING
        assert builder.freeze().integrity is None

    @pytest.mark.asyncio
    async def test_cancel_while_writing(self, builder: ArchiveBuilder) -> None:
        """Test that cancelling after hashing still discards the hashes."""
        cancel = asyncio.Event()

        def on_progress(percent: int, stage: str) -> None:
            if percent > 20:
                cancel.set()

        with pytest.raises(OperationCancelledError, match="Packing"):
            await builder.pack(on_progress, cancel_event=cancel)
        assert builder.state is BuilderState.ACCUMULATING
        assert builder.freeze().integrity is None

        cancel.clear()
        assert await builder.pack()

    @pytest.mark.asyncio
    async def test_task_cancellation(self, builder: ArchiveBuilder) -> None:
        """Test that cancelling the asyncio task also reverts the builder."""
        task = asyncio.ensure_future(builder.pack())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert builder.state is BuilderState.ACCUMULATING
        assert builder.freeze().integrity is None


class TestSeeding:
    """Test starting a builder from an existing archive."""

    @pytest.mark.asyncio
    async def test_from_manifest_keeps_created_at(
        self, builder: ArchiveBuilder, read_member: Callable[[bytes, str], bytes]
    ) -> None:
        """Test that seeding from a manifest keeps created_at."""
        first = await builder.pack()
        manifest = builder.packed_manifest
        seeded = ArchiveBuilder.from_manifest(
            manifest, {"assets/mesh_0.glb": read_member(first, "assets/mesh_0.glb")}
        )
        assert seeded.freeze().integrity is None
        seeded.set_project(description="Second edition")
        second = _packed_manifest(await seeded.pack(), read_member)
        assert second["created_at"] == manifest.created_at
        assert second["integrity"]["assets"] == manifest.integrity.assets

    @pytest.mark.asyncio
    async def test_from_reader(self, builder: ArchiveBuilder, payload: bytes) -> None:
        """Test seeding a builder from an open reader."""
        builder.set_extension("_vendor_hint", {"tool": "scanner-x"})
        data = await builder.pack()
        async with ArchiveReader() as reader:
            await reader.open(data)
            seeded = await ArchiveBuilder.from_reader(reader)

        seeded.add_annotation({"id": "a1", "title": "Door"})
        seeded.add_asset("scene", b"scene")
        async with ArchiveReader() as reader:
            await reader.open(await seeded.pack())
            manifest = reader.manifest
            assert await reader.extract_asset("mesh_0") == payload
            assert (await reader.verify()).ok
        assert manifest.extensions["_vendor_hint"] == {"tool": "scanner-x"}
        assert [a.id for a in manifest.annotations] == ["a1"]
        assert set(manifest.entries) == {"mesh_0", "scene_0"}
