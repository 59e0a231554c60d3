"""Format constants shared by the reader, builder and codec.

Everything here is part of the on-disk contract. Changing a value changes
what gets written into archives, so bump FORMAT_VERSION accordingly.
"""

# Version of the container layout written by this library
FORMAT_VERSION = "1.0"
METADATA_SCHEMA_VERSION = "1.0"

DEFAULT_PRODUCER = "archive3d"
LIBRARY_VERSION = "0.1.0"

# Manifest must sit at the container root
MANIFEST_NAME = "manifest.json"
README_NAME = "README.txt"

HASH_ALGORITHM = "SHA-256"

# Sanitizer limits
MAX_FILENAME_LENGTH = 255
SAFE_FILENAME_PATTERN = r"^[A-Za-z0-9_\-./]+$"

# Two-byte ZIP local file header magic ("PK")
ZIP_MAGIC = b"PK"

# Deflate level used for compressible entries and for the manifest/README
DEFLATE_LEVEL = 6

# Formats whose payload is already compressed; deflating them wastes time
ALREADY_COMPRESSED_EXTENSIONS = frozenset(
    {"glb", "spz", "sog", "jpg", "jpeg", "png", "webp", "e57"}
)

# Extension used by add_asset() when the caller gives no file name
DEFAULT_EXTENSIONS = {
    "scene": "ply",
    "mesh": "glb",
    "pointcloud": "e57",
    "thumbnail": "jpg",
}
FALLBACK_EXTENSION = "bin"

# Type prefixes that never satisfy the "at least one content asset" rule.
# Unknown prefixes still count as content.
SUPPORTING_TYPES = frozenset({"thumbnail", "screenshot", "image", "source"})

PROXY_SUFFIX = "_proxy"

# Capture statistics accepted by ArchiveBuilder.set_quality_stats(),
# stored under the "_meta.quality" extension
QUALITY_STAT_KEYS = (
    "splat_count",
    "mesh_polygons",
    "mesh_vertices",
    "splat_file_size",
    "mesh_file_size",
    "pointcloud_points",
    "pointcloud_file_size",
    "texture_count",
    "texture_max_resolution",
    "texture_maps",
)

# PRONOM format registry: extension -> PUID (empty when unregistered)
PRONOM_REGISTRY = {
    "glb": "fmt/861",
    "gltf": "fmt/860",
    "obj": "fmt/935",
    "ply": "fmt/831",
    "e57": "fmt/643",
    "stl": "fmt/865",
    "splat": "",
    "ksplat": "",
    "spz": "",
}

# Upper bound on concurrent digest workers
HASH_CONCURRENCY = 4
