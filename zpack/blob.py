"""Single-blob containers: one zlib stream per file, no table.

``GST`` files are a bare zlib stream. ``FOZ`` files carry a 32-byte header
(16-byte name plus four opaque 32-bit values) in front of the stream.
"""

from __future__ import annotations

import os
import struct
from dataclasses import dataclass
from typing import BinaryIO, Optional, Tuple

from .codec import Codec
from .constants import FOZ_DEFAULT_VALUES, FOZ_HEADER_SIZE, FOZ_NAME_SIZE
from .errors import FormatError
from .pathutil import safe_file_name
from .records import decode_name, encode_name
from .streamutil import read_up_to


_FOZ_HEADER_STRUCT = struct.Struct("<16s4i")
assert _FOZ_HEADER_STRUCT.size == FOZ_HEADER_SIZE


def read_gst(f: BinaryIO) -> bytes:
    return Codec().decompress_unbounded(f)


def write_gst(data: bytes, f: BinaryIO, level: Optional[int] = None) -> int:
    return Codec(level).compress(data, f)


def gst_decompress_file(path: str, out_path: str) -> int:
    with open(path, "rb") as rf, open(out_path, "wb") as wf:
        return Codec().decompress_stream(rf, wf)


def gst_compress_file(path: str, out_path: str, level: Optional[int] = None) -> int:
    with open(path, "rb") as rf, open(out_path, "wb") as wf:
        written, _consumed = Codec(level).compress_stream(rf, wf)
    return written


@dataclass
class BlobFile:
    name: str
    values: Tuple[int, int, int, int] = FOZ_DEFAULT_VALUES
    data: bytes = b""

    def pack_header(self) -> bytes:
        if len(self.values) != 4:
            raise ValueError("FOZ header carries exactly four values")
        return _FOZ_HEADER_STRUCT.pack(encode_name(self.name, FOZ_NAME_SIZE), *self.values)


def _read_foz_header(f: BinaryIO) -> Tuple[str, Tuple[int, int, int, int]]:
    raw = read_up_to(f, FOZ_HEADER_SIZE)
    if len(raw) != FOZ_HEADER_SIZE:
        raise FormatError("FOZ header too short")
    name, *values = _FOZ_HEADER_STRUCT.unpack(raw)
    return decode_name(name), tuple(values)  # type: ignore[return-value]


def read_foz(f: BinaryIO) -> BlobFile:
    name, values = _read_foz_header(f)
    return BlobFile(name=name, values=values, data=Codec().decompress_unbounded(f))


def write_foz(blob: BlobFile, f: BinaryIO, level: Optional[int] = None) -> int:
    header = blob.pack_header()
    f.write(header)
    return len(header) + Codec(level).compress(blob.data, f)


def foz_extract(path: str, out_dir: str) -> str:
    """Stream the payload of a FOZ file to ``out_dir`` under its stored name."""
    with open(path, "rb") as rf:
        name, _values = _read_foz_header(rf)
        out_path = os.path.join(out_dir, safe_file_name(name))
        os.makedirs(out_dir or ".", exist_ok=True)
        with open(out_path, "wb") as wf:
            Codec().decompress_stream(rf, wf)
    return out_path
