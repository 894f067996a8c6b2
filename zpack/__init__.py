"""
zpack: sector-aligned zlib archives with a fixed-capacity file table.

An archive is two files:

- a header table of exactly 8192 fixed 40-byte descriptors (name, opaque tag,
  offset, span, compressed size, size, presence flag); the first slot whose
  presence flag is 0 ends the table;
- a data blob holding each entry's zlib stream, padded with zeros to the next
  2048-byte sector.

Reading parses the table once and inflates entries on demand, each from its
own bounded byte window. Writing streams entries into the blob and writes the
table when the writer is finished or closed. :class:`Archive` is the eager
model on top of both: every entry with its bytes in memory.
"""

__version__ = "0.1"

from .errors import (
    ArchiveStateError,
    CapacityExceeded,
    CodecError,
    FormatError,
    UseAfterDispose,
    ZPackError,
)
from .archive import Archive, ArchiveEntry
from .reader import ArchiveReader, EntryHandle
from .records import EntryDescriptor
from .writer import ArchiveWriter

__all__ = [
    "constants",
    "codec",
    "sectorstream",
    "records",
    "reader",
    "writer",
    "blob",
    "archive",
    "Archive",
    "ArchiveEntry",
    "ArchiveReader",
    "ArchiveWriter",
    "EntryHandle",
    "EntryDescriptor",
    "ZPackError",
    "FormatError",
    "CapacityExceeded",
    "CodecError",
    "ArchiveStateError",
    "UseAfterDispose",
]
