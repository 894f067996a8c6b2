from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Tuple

from .streamutil import Source, open_input, read_up_to
from .codec import Codec
from .constants import DESCRIPTOR_SIZE, FILE_ENTRY_COUNT
from .errors import CodecError, FormatError, UseAfterDispose, ZPackError
from .records import EntryDescriptor, unpack_slot
from .sectorstream import SectorStream


def read_table(f: BinaryIO) -> List[EntryDescriptor]:
    """
    Reads the fixed-capacity header table from the current position of ``f``.

    Slots are decoded in order until the first terminator; slots after it are
    never read. A header that ends inside the table before a terminator shows
    up, or that carries a present slot beyond the table's capacity, is
    rejected with FormatError.
    """
    descriptors: List[EntryDescriptor] = []
    for slot in range(FILE_ENTRY_COUNT):
        raw = read_up_to(f, DESCRIPTOR_SIZE)
        if len(raw) != DESCRIPTOR_SIZE:
            raise FormatError(f"Header ends inside slot {slot} before a terminator")
        desc = unpack_slot(raw)
        if desc is None:
            return descriptors
        _validate_descriptor(desc, slot)
        descriptors.append(desc)
    # Every slot is in use; anything present past the table is an overflow
    raw = read_up_to(f, DESCRIPTOR_SIZE)
    if len(raw) == DESCRIPTOR_SIZE and unpack_slot(raw) is not None:
        raise FormatError(f"Header holds more than {FILE_ENTRY_COUNT} entries")
    return descriptors


def _validate_descriptor(desc: EntryDescriptor, slot: int) -> None:
    if desc.offset < 0:
        raise FormatError(f"Slot {slot} ({desc.name!r}) has a negative offset")
    if desc.span < 0 or desc.compressed_size < 0 or desc.uncompressed_size < 0:
        raise FormatError(f"Slot {slot} ({desc.name!r}) has a negative size field")


class EntryHandle:
    """One entry of an open archive; decompresses on demand, never caches."""

    def __init__(self, reader: "ArchiveReader", index: int, descriptor: EntryDescriptor):
        self._reader = reader
        self.index = index
        self.descriptor = descriptor

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def name_bytes(self) -> bytes:
        """The name exactly as stored, for names that are not valid UTF-8."""
        return self.descriptor.name_bytes

    @property
    def tag(self) -> int:
        return self.descriptor.tag

    @property
    def offset(self) -> int:
        return self.descriptor.offset

    @property
    def span(self) -> int:
        return self.descriptor.span

    @property
    def compressed_size(self) -> int:
        return self.descriptor.compressed_size

    @property
    def uncompressed_size(self) -> int:
        return self.descriptor.uncompressed_size

    @property
    def size(self) -> int:
        return self.descriptor.uncompressed_size

    @property
    def presence(self) -> int:
        return self.descriptor.presence

    def read_all(self) -> bytes:
        return self._reader._read_entry(self.descriptor)

    def read_into(self, sink: BinaryIO) -> int:
        return self._reader._read_entry_into(self.descriptor, sink)

    def __repr__(self) -> str:
        return (
            f"EntryHandle(index={self.index}, name={self.name!r}, tag={self.tag}, "
            f"offset={self.offset}, size={self.uncompressed_size})"
        )


class ArchiveReader:
    """Indexed reader over a header table and its sector-aligned data blob.

    The table is parsed once, in :meth:`open`; entries are decompressed lazily,
    each read seeking to its own recorded offset.
    """

    def __init__(self, data: SectorStream, descriptors: List[EntryDescriptor], codec: Optional[Codec] = None):
        self._data: Optional[SectorStream] = data
        self.codec = codec or Codec()
        self._entries: Tuple[EntryHandle, ...] = tuple(
            EntryHandle(self, i, d) for i, d in enumerate(descriptors)
        )

    @classmethod
    def open(cls, header: Source, data: Source, *, leave_open: bool = False, codec: Optional[Codec] = None) -> "ArchiveReader":
        header_fh, header_owned = open_input(header, leave_open)
        try:
            data_fh, data_owned = open_input(data, leave_open)
        except OSError:
            if header_owned:
                header_fh.close()
            raise
        try:
            descriptors = read_table(header_fh)
        except (ZPackError, OSError, ValueError):
            # Release what we own on failure to avoid leaks
            if data_owned:
                data_fh.close()
            raise
        finally:
            if header_owned:
                header_fh.close()
        return cls(SectorStream(data_fh, leave_open=not data_owned), descriptors, codec=codec)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __iter__(self) -> Iterator[EntryHandle]:
        return iter(self.entries())

    def __len__(self) -> int:
        return len(self.entries())

    @property
    def is_disposed(self) -> bool:
        return self._data is None

    def close(self):
        if self._data is not None:
            data, self._data = self._data, None
            data.close()

    def entries(self) -> Tuple[EntryHandle, ...]:
        self._check_open()
        return self._entries

    def find(self, name: str) -> List[EntryHandle]:
        """All entries called ``name`` in table order (names need not be unique)."""
        return [e for e in self.entries() if e.name == name]

    def extract(self, entry: EntryHandle, out_path: str) -> int:
        """Inflate ``entry`` to ``out_path``.

        The payload is streamed to a temporary file next to ``out_path`` and
        moved into place only once it checks out, so a corrupt entry never
        leaves a partial file behind.
        """
        self._check_open()
        out_dir = os.path.dirname(out_path) or "."
        os.makedirs(out_dir, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".zpack-", suffix=".part", dir=out_dir)
        os.close(fd)
        tmp_path = Path(tmp_name)
        try:
            with open(tmp_path, "wb") as wf:
                written = entry.read_into(wf)
            os.replace(tmp_path, out_path)
        except (ZPackError, OSError, ValueError):
            tmp_path.unlink(missing_ok=True)
            raise
        return written

    # internals
    def _check_open(self) -> SectorStream:
        if self._data is None:
            raise UseAfterDispose("Archive reader has been closed")
        return self._data

    def _read_entry(self, desc: EntryDescriptor) -> bytes:
        data = self._check_open()
        if desc.compressed_size == 0:
            if desc.uncompressed_size:
                raise CodecError(f"Entry {desc.name!r} declares data but has an empty window")
            return b""
        data.position = desc.offset
        return self.codec.decompress_exact(data.base, desc.offset, desc.compressed_size, desc.uncompressed_size)

    def _read_entry_into(self, desc: EntryDescriptor, sink: BinaryIO) -> int:
        data = self._check_open()
        if desc.compressed_size == 0:
            if desc.uncompressed_size:
                raise CodecError(f"Entry {desc.name!r} declares data but has an empty window")
            return 0
        data.position = desc.offset
        return self.codec.decompress_into(
            data.base, desc.offset, desc.compressed_size, sink, expected_size=desc.uncompressed_size
        )
