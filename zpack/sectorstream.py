from __future__ import annotations

from typing import BinaryIO, Optional

from .constants import SECTOR_SIZE


def sector_align(value: int, sector_size: int = SECTOR_SIZE) -> int:
    """Round ``value`` up to the next multiple of ``sector_size``."""
    rem = value % sector_size
    return value if rem == 0 else value + (sector_size - rem)


class SectorStream:
    """Seekable byte stream with absolute positioning and sector padding."""

    def __init__(self, base: BinaryIO, sector_size: int = SECTOR_SIZE, leave_open: bool = False):
        if sector_size <= 0:
            raise ValueError("sector_size must be positive")
        self.base = base
        self.sector_size = sector_size
        self.leave_open = leave_open

    @property
    def position(self) -> int:
        return self.base.tell()

    @position.setter
    def position(self, value: int) -> None:
        if value < 0:
            raise ValueError("negative stream position")
        self.base.seek(value)

    @property
    def closed(self) -> bool:
        return bool(getattr(self.base, "closed", False))

    def padding_needed(self) -> int:
        rem = self.position % self.sector_size
        return 0 if rem == 0 else self.sector_size - rem

    def pad_to_sector_boundary(self) -> int:
        """Write zero bytes up to the next sector boundary; return how many."""
        pad = self.padding_needed()
        if pad:
            self.base.write(b"\x00" * pad)
        return pad

    def read(self, n: Optional[int] = -1) -> bytes:
        return self.base.read(n)

    def write(self, data) -> int:
        self.base.write(data)
        return len(data)

    def flush(self) -> None:
        self.base.flush()

    def close(self) -> None:
        if self.leave_open:
            if not self.closed:
                self.base.flush()
            return
        self.base.close()
