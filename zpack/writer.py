from __future__ import annotations

from typing import BinaryIO, List, Optional, Union

from .codec import Codec
from .constants import (
    DEFAULT_TAG,
    FILE_ENTRY_COUNT,
    PRESENCE_NORMAL,
    SECTOR_SIZE,
)
from .errors import ArchiveStateError, CapacityExceeded, UseAfterDispose
from .pathutil import default_entry_name
from .records import TERMINATOR_SLOT, EntryDescriptor, check_tag, split_name
from .sectorstream import SectorStream
from .streamutil import open_output


STATE_OPEN = "open"
STATE_WRITING = "writing"
STATE_FINISHED = "finished"
STATE_DISPOSED = "disposed"


class ArchiveWriter:
    """Streaming writer: entries go straight to the data blob, the table is
    written once on :meth:`finish`.

    Lifecycle is ``open -> writing -> finished -> disposed``. Closing a writer
    that was never finished finishes it first, so a closed writer always
    leaves a complete header table behind.
    """

    def __init__(
        self,
        header: BinaryIO,
        data: BinaryIO,
        *,
        level: Optional[int] = None,
        own_header: bool = False,
        own_data: bool = False,
        sector_size: int = SECTOR_SIZE,
    ):
        self._header = header
        self._own_header = own_header
        self._data = SectorStream(data, sector_size=sector_size, leave_open=not own_data)
        self.codec = Codec(level)
        self.entries: List[EntryDescriptor] = []
        self.state = STATE_OPEN
        # Entry offsets must start on a sector boundary
        self._data.pad_to_sector_boundary()

    @classmethod
    def create(cls, header, data, *, level: Optional[int] = None, leave_open: bool = False) -> "ArchiveWriter":
        header_fh, own_header = open_output(header, leave_open)
        try:
            data_fh, own_data = open_output(data, leave_open)
        except OSError:
            if own_header:
                header_fh.close()
            raise
        return cls(header_fh, data_fh, level=level, own_header=own_header, own_data=own_data)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def data_position(self) -> int:
        return self._data.position

    @property
    def is_finished(self) -> bool:
        return self.state in (STATE_FINISHED, STATE_DISPOSED)

    def write_entry(
        self,
        name: Union[str, bytes],
        tag: int,
        source: Union[bytes, bytearray, memoryview, BinaryIO],
    ) -> EntryDescriptor:
        """Compress ``source`` (bytes or a binary stream) into the data blob.

        ``name`` may be given as raw bytes to store a name that is not UTF-8.
        If anything fails after the payload started landing in the blob
        (source error, codec error, a size that overflows the descriptor), the
        blob is cut back to where the entry began and nothing is recorded.
        """
        self._check_writable()
        name, raw_name = split_name(name)
        tag = check_tag(tag)
        offset = self._data.position
        try:
            if isinstance(source, (bytes, bytearray, memoryview)):
                compressed = self.codec.compress(source, self._data.base)
                size = memoryview(source).nbytes
            else:
                compressed, size = self.codec.compress_stream(source, self._data.base)
            # Land on the next sector so the following entry starts aligned
            self._data.pad_to_sector_boundary()
            desc = EntryDescriptor(
                name=name,
                tag=tag,
                offset=offset,
                span=self._data.position - offset,
                compressed_size=compressed,
                uncompressed_size=size,
                presence=PRESENCE_NORMAL,
                raw_name=raw_name,
            )
            desc.pack()
        except Exception:
            # Drop the partial payload so the next entry starts at ``offset``
            self._data.position = offset
            self._data.base.truncate(offset)
            raise
        return self._record(desc)

    def write_file(self, fs_path: str, name: Optional[Union[str, bytes]] = None, tag: int = DEFAULT_TAG) -> EntryDescriptor:
        """Stream a filesystem file into the archive."""
        if name is None:
            name = default_entry_name(fs_path)
        self._check_writable()
        with open(fs_path, "rb") as rf:
            return self.write_entry(name, tag, rf)

    def write_dummy(self, name: Union[str, bytes], tag: int = DEFAULT_TAG) -> EntryDescriptor:
        """Record a present entry that carries no payload and consumes no sectors."""
        self._check_writable()
        name, raw_name = split_name(name)
        desc = EntryDescriptor(
            name=name,
            tag=check_tag(tag),
            offset=self._data.position,
            span=0,
            compressed_size=0,
            uncompressed_size=0,
            presence=PRESENCE_NORMAL,
            raw_name=raw_name,
        )
        return self._record(desc)

    def finish(self):
        """
        Writes the header table.

        Every recorded descriptor is written in insertion order, followed by
        zero-filled terminator slots up to the table's capacity, so the header
        is always ``FILE_ENTRY_COUNT * DESCRIPTOR_SIZE`` bytes. Calling it again
        once finished does nothing.
        """
        if self.state == STATE_DISPOSED:
            raise UseAfterDispose("Archive writer has been closed")
        if self.state == STATE_FINISHED:
            return
        for desc in self.entries:
            self._header.write(desc.pack())
        empty = FILE_ENTRY_COUNT - len(self.entries)
        if empty:
            self._header.write(TERMINATOR_SLOT * empty)
        self._header.flush()
        self._data.flush()
        self.state = STATE_FINISHED

    def close(self):
        if self.state == STATE_DISPOSED:
            return
        try:
            if self.state != STATE_FINISHED:
                self.finish()
        finally:
            self.state = STATE_DISPOSED
            try:
                self._data.close()
            finally:
                if self._own_header:
                    self._header.close()

    # internals
    def _check_writable(self):
        if self.state == STATE_DISPOSED:
            raise UseAfterDispose("Archive writer has been closed")
        if self.state == STATE_FINISHED:
            raise ArchiveStateError("Archive already finished; no further entries may be added")
        if len(self.entries) >= FILE_ENTRY_COUNT:
            raise CapacityExceeded(f"Cannot add more than {FILE_ENTRY_COUNT} entries")

    def _record(self, desc: EntryDescriptor) -> EntryDescriptor:
        desc.pack()  # fail at the call site if a field overflows the record
        self.entries.append(desc)
        self.state = STATE_WRITING
        return desc
