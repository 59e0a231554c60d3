"""ZIP container encoding and decoding."""

from .codec import (
    CompressionHint,
    ContainerHandle,
    ContainerVariant,
    ContainerWriter,
    EntryDescriptor,
    create_writer,
    open_container,
)

__all__ = [
    "CompressionHint",
    "ContainerHandle",
    "ContainerVariant",
    "ContainerWriter",
    "EntryDescriptor",
    "create_writer",
    "open_container",
]
