from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

from .constants import (
    DESCRIPTOR_SIZE,
    INT32_MAX,
    NAME_SIZE,
    PRESENCE_NORMAL,
    PRESENCE_TERMINATOR,
    TAG_MAX,
    TAG_MIN,
)


# Descriptor record (fixed 40 bytes, little endian)
#  - name[18]            zero padded utf-8
#  - tag i16             opaque, preserved verbatim
#  - offset i32          absolute byte offset into the data blob
#  - span i32            bytes occupied in the blob including padding
#  - compressed_size i32
#  - uncompressed_size i32
#  - presence i32        0 = terminator
_DESCRIPTOR_STRUCT = struct.Struct("<18sh5i")
assert _DESCRIPTOR_STRUCT.size == DESCRIPTOR_SIZE

TERMINATOR_SLOT = b"\x00" * DESCRIPTOR_SIZE


def encode_name(name: Union[str, bytes], size: int = NAME_SIZE) -> bytes:
    """Return the on-disk bytes of an entry name.

    ``bytes`` are taken verbatim so names written by other tools in a legacy
    code page (Shift-JIS and friends) survive a rewrite unchanged.
    """
    if isinstance(name, (bytes, bytearray)):
        raw = bytes(name)
        if b"\x00" in raw:
            raise ValueError("Entry name may not contain NUL")
    else:
        if "\x00" in name:
            raise ValueError("Entry name may not contain NUL")
        raw = name.encode("utf-8")
    if len(raw) > size:
        raise ValueError(f"Entry name {name!r} exceeds {size} bytes")
    return raw


def decode_name(raw: bytes) -> str:
    """Display form of a stored name; undecodable bytes become U+FFFD."""
    return raw.split(b"\x00", 1)[0].decode("utf-8", errors="replace")


def name_is_text(raw: bytes) -> bool:
    try:
        raw.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


def split_name(name: Union[str, bytes]) -> Tuple[str, Optional[bytes]]:
    """Validate ``name`` and return ``(display name, raw bytes or None)``."""
    raw = encode_name(name)
    if isinstance(name, (bytes, bytearray)):
        return decode_name(raw), raw
    return name, None


def check_tag(tag: int) -> int:
    tag = int(tag)
    if tag < TAG_MIN or tag > TAG_MAX:
        raise ValueError(f"tag {tag} does not fit in a signed 16-bit field")
    return tag


@dataclass(frozen=True)
class EntryDescriptor:
    name: str
    tag: int
    offset: int = 0
    span: int = 0
    compressed_size: int = 0
    uncompressed_size: int = 0
    presence: int = PRESENCE_NORMAL
    # Stored name bytes when they differ from ``name.encode("utf-8")``
    raw_name: Optional[bytes] = field(default=None, compare=False, repr=False)

    @property
    def is_terminator(self) -> bool:
        return self.presence == PRESENCE_TERMINATOR

    @property
    def name_bytes(self) -> bytes:
        if self.raw_name is not None:
            return encode_name(self.raw_name)
        return encode_name(self.name)

    def pack(self) -> bytes:
        for field_name in ("offset", "span", "compressed_size", "uncompressed_size"):
            value = getattr(self, field_name)
            if value < 0 or value > INT32_MAX:
                raise ValueError(f"{field_name}={value} does not fit in the descriptor")
        return _DESCRIPTOR_STRUCT.pack(
            self.name_bytes,
            check_tag(self.tag),
            self.offset,
            self.span,
            self.compressed_size,
            self.uncompressed_size,
            self.presence,
        )

    @classmethod
    def unpack(cls, raw: bytes) -> "EntryDescriptor":
        if len(raw) != DESCRIPTOR_SIZE:
            raise ValueError("descriptor record must be 40 bytes")
        name, tag, offset, span, csize, usize, presence = _DESCRIPTOR_STRUCT.unpack(raw)
        stored = name.split(b"\x00", 1)[0]
        return cls(
            name=decode_name(stored),
            tag=tag,
            offset=offset,
            span=span,
            compressed_size=csize,
            uncompressed_size=usize,
            presence=presence,
            raw_name=None if name_is_text(stored) else stored,
        )


def unpack_slot(raw: bytes) -> Optional[EntryDescriptor]:
    """Decode one header slot; None marks the terminator."""
    desc = EntryDescriptor.unpack(raw)
    if desc.is_terminator:
        return None
    return desc
