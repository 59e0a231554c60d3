"""ZIP container access.

Archives are plain ZIP files. Reading goes through the central directory
only: listing entries never decompresses a payload, and each entry is
inflated on demand. Writing chooses STORE or DEFLATE per entry.

Example:
    >>> handle = open_container(data)
    >>> [e.name for e in handle.list_entries()]
    ['manifest.json', 'README.txt', 'assets/mesh_0.glb']
    >>> handle.read_entry("assets/mesh_0.glb")
"""

from __future__ import annotations

import asyncio
import io
import time
import zipfile
import zlib
from dataclasses import dataclass
from enum import Enum

from ..core.constants import ALREADY_COMPRESSED_EXTENSIONS, DEFLATE_LEVEL, ZIP_MAGIC
from ..core.errors import AssetNotFoundError, ContainerFormatError
from ..core.sanitizer import sanitize_archive_filename
from ..core.tasks import ProgressCallback, raise_if_cancelled
from ..logging import get_logger

logger = get_logger(__name__)


class ContainerVariant(str, Enum):
    """The two archive flavours; they differ only in default compression.

    ``a3d`` stores entries uncompressed by default (fast random access),
    ``a3z`` deflates compressible entries.
    """

    A3D = "a3d"
    A3Z = "a3z"

    @property
    def deflate_by_default(self) -> bool:
        return self is ContainerVariant.A3Z


class CompressionHint(str, Enum):
    """Per-entry compression request passed to ContainerWriter.add_entry."""

    AUTO = "auto"
    STORE = "store"
    DEFLATE = "deflate"


@dataclass(frozen=True)
class EntryDescriptor:
    """Central directory information for one container entry."""

    name: str
    size: int
    compressed_size: int
    compress_type: int

    @property
    def is_stored(self) -> bool:
        return self.compress_type == zipfile.ZIP_STORED


class ContainerHandle:
    """Open, read-only view of a ZIP container held in memory."""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)
        try:
            self._zip: zipfile.ZipFile | None = zipfile.ZipFile(self._buffer)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, ValueError) as e:
            raise ContainerFormatError(f"Invalid archive: {e}") from e
        self._entries = {
            info.filename: EntryDescriptor(
                name=info.filename,
                size=info.file_size,
                compressed_size=info.compress_size,
                compress_type=info.compress_type,
            )
            for info in self._zip.infolist()
            if not info.is_dir()
        }
        logger.debug("Archive indexed: %d files", len(self._entries))

    @property
    def closed(self) -> bool:
        return self._zip is None

    @property
    def names(self) -> list[str]:
        return list(self._entries)

    def list_entries(self) -> list[EntryDescriptor]:
        """Return every file entry without decompressing anything."""
        return list(self._entries.values())

    def has_entry(self, name: str) -> bool:
        return name in self._entries

    def get_entry(self, name: str) -> EntryDescriptor:
        try:
            return self._entries[name]
        except KeyError:
            raise AssetNotFoundError(f"File not found in archive: {name}") from None

    def read_entry(self, name: str) -> bytes:
        """Decompress and return one entry.

        Raises:
            AssetNotFoundError: If the entry does not exist
            ContainerFormatError: If the entry payload is corrupt or uses an
                unsupported compression method
        """
        if self._zip is None:
            raise ContainerFormatError("Container is closed")
        self.get_entry(name)
        try:
            return self._zip.read(name)
        except (zipfile.BadZipFile, zlib.error, EOFError) as e:
            raise ContainerFormatError(f"Corrupt entry {name}: {e}") from e
        except (NotImplementedError, RuntimeError) as e:
            raise ContainerFormatError(f"Unsupported entry {name}: {e}") from e

    def close(self) -> None:
        """Release the archive buffer. Safe to call more than once."""
        if self._zip is not None:
            self._zip.close()
            self._zip = None
        self._buffer.close()

    def __enter__(self) -> ContainerHandle:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def open_container(data: bytes) -> ContainerHandle:
    """Validate the ZIP magic bytes and index the container.

    Args:
        data: Complete archive bytes

    Returns:
        ContainerHandle for lazy entry access

    Raises:
        ContainerFormatError: If the magic bytes or central directory are bad
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise ContainerFormatError(f"Expected bytes, got {type(data).__name__}")
    data = bytes(data)
    if data[: len(ZIP_MAGIC)] != ZIP_MAGIC:
        raise ContainerFormatError("Invalid archive: Not a valid ZIP file")
    return ContainerHandle(data)


@dataclass
class _PendingEntry:
    name: str
    data: bytes
    compress_type: int
    compresslevel: int | None


class ContainerWriter:
    """Accumulates entries and produces ZIP bytes.

    Attributes:
        variant: Archive flavour deciding the default compression
        date_time: Timestamp recorded for every entry
    """

    def __init__(
        self,
        variant: ContainerVariant = ContainerVariant.A3D,
        date_time: tuple[int, int, int, int, int, int] | None = None,
    ):
        self.variant = ContainerVariant(variant)
        self.date_time = date_time or time.localtime()[:6]
        self._entries: dict[str, _PendingEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def resolve_compression(self, name: str, hint: CompressionHint) -> tuple[int, int | None]:
        """Pick ``(compress_type, compresslevel)`` for an entry."""
        hint = CompressionHint(hint)
        if hint is CompressionHint.STORE:
            return zipfile.ZIP_STORED, None
        if hint is CompressionHint.DEFLATE:
            return zipfile.ZIP_DEFLATED, DEFLATE_LEVEL

        ext = name.rsplit(".", 1)[-1].lower() if "." in name else ""
        if ext in ALREADY_COMPRESSED_EXTENSIONS or not self.variant.deflate_by_default:
            return zipfile.ZIP_STORED, None
        return zipfile.ZIP_DEFLATED, DEFLATE_LEVEL

    def add_entry(
        self, name: str, data: bytes, hint: CompressionHint = CompressionHint.AUTO
    ) -> None:
        """Queue one entry.

        Raises:
            FilenameSecurityError: If the name is unsafe
            ValueError: If an entry with that name was already added
        """
        safe_name = sanitize_archive_filename(name)
        if safe_name in self._entries:
            raise ValueError(f"Duplicate container entry: {safe_name}")
        compress_type, level = self.resolve_compression(safe_name, hint)
        self._entries[safe_name] = _PendingEntry(safe_name, bytes(data), compress_type, level)

    def _write_one(self, archive: zipfile.ZipFile, entry: _PendingEntry) -> None:
        info = zipfile.ZipInfo(entry.name, date_time=self.date_time)
        info.external_attr = 0o644 << 16
        info.compress_type = entry.compress_type
        archive.writestr(
            info, entry.data, compress_type=entry.compress_type, compresslevel=entry.compresslevel
        )

    async def finalize(
        self,
        progress_callback: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> bytes:
        """Write every queued entry and return the archive bytes.

        Entries are written in the order they were added. Progress is
        reported in 0..100, weighted by entry size, after each entry.

        Raises:
            OperationCancelledError: If ``cancel_event`` is set between entries
        """
        total = sum(max(len(e.data), 1) for e in self._entries.values()) or 1
        done = 0
        buffer = io.BytesIO()

        if progress_callback:
            progress_callback(0, "Preparing archive...")

        with zipfile.ZipFile(buffer, "w", allowZip64=True) as archive:
            for entry in self._entries.values():
                raise_if_cancelled(cancel_event, "Packing")
                logger.debug(
                    "Writing %s (%d bytes, %s)",
                    entry.name,
                    len(entry.data),
                    "stored" if entry.compress_type == zipfile.ZIP_STORED else "deflated",
                )
                await asyncio.to_thread(self._write_one, archive, entry)
                done += max(len(entry.data), 1)
                if progress_callback:
                    progress_callback(round(100 * done / total), f"Compressing: {entry.name}")

        if progress_callback:
            progress_callback(100, "Complete")
        return buffer.getvalue()


def create_writer(
    variant: ContainerVariant = ContainerVariant.A3D,
    date_time: tuple[int, int, int, int, int, int] | None = None,
) -> ContainerWriter:
    """Return a new ContainerWriter for the given variant."""
    return ContainerWriter(variant, date_time=date_time)
