from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Union

from .constants import DEFAULT_TAG, FILE_ENTRY_COUNT
from .errors import CapacityExceeded
from .reader import ArchiveReader
from .records import EntryDescriptor, check_tag, split_name
from .streamutil import Source
from .writer import ArchiveWriter


@dataclass
class ArchiveEntry:
    """One entry held in memory. ``data=None`` is a dummy (no payload, no sectors)."""

    name: str
    tag: int = DEFAULT_TAG
    data: Optional[bytes] = None
    raw_name: Optional[bytes] = field(default=None, repr=False)

    @property
    def is_dummy(self) -> bool:
        return self.data is None

    @property
    def size(self) -> int:
        return 0 if self.data is None else len(self.data)

    @property
    def stored_name(self) -> Union[str, bytes]:
        return self.raw_name if self.raw_name is not None else self.name


class Archive:
    """
    Eager archive model: every entry with its bytes held in memory.

    :meth:`read` inflates the whole archive up front through
    :class:`ArchiveReader`; :meth:`write` streams the entries, in list order,
    through :class:`ArchiveWriter`. Both sides produce and accept exactly the
    bytes the lazy reader and writer do, so the two models can be mixed.
    """

    def __init__(self, entries: Optional[List[ArchiveEntry]] = None):
        self.entries: List[ArchiveEntry] = list(entries or [])
        if len(self.entries) > FILE_ENTRY_COUNT:
            raise CapacityExceeded(f"Cannot hold more than {FILE_ENTRY_COUNT} entries")

    def __iter__(self) -> Iterator[ArchiveEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def add(self, name: Union[str, bytes], data: Optional[bytes] = None, tag: int = DEFAULT_TAG) -> ArchiveEntry:
        """Append an entry; pass ``data=None`` for a dummy."""
        if len(self.entries) >= FILE_ENTRY_COUNT:
            raise CapacityExceeded(f"Cannot add more than {FILE_ENTRY_COUNT} entries")
        display, raw_name = split_name(name)
        entry = ArchiveEntry(
            name=display,
            tag=check_tag(tag),
            data=None if data is None else bytes(data),
            raw_name=raw_name,
        )
        self.entries.append(entry)
        return entry

    def find(self, name: str) -> List[ArchiveEntry]:
        return [e for e in self.entries if e.name == name]

    @classmethod
    def read(cls, header: Source, data: Source, *, leave_open: bool = False) -> "Archive":
        """Load every entry of an archive into memory."""
        archive = cls()
        with ArchiveReader.open(header, data, leave_open=leave_open) as r:
            for handle in r:
                desc = handle.descriptor
                payload = None if desc.compressed_size == 0 and desc.uncompressed_size == 0 else handle.read_all()
                archive.entries.append(
                    ArchiveEntry(name=desc.name, tag=desc.tag, data=payload, raw_name=desc.raw_name)
                )
        return archive

    def write(
        self,
        header,
        data,
        *,
        level: Optional[int] = None,
        leave_open: bool = False,
    ) -> List[EntryDescriptor]:
        """Write the archive; returns the descriptors in table order."""
        with ArchiveWriter.create(header, data, level=level, leave_open=leave_open) as w:
            for entry in self.entries:
                if entry.data is None:
                    w.write_dummy(entry.stored_name, entry.tag)
                else:
                    w.write_entry(entry.stored_name, entry.tag, entry.data)
            w.finish()
            return list(w.entries)
