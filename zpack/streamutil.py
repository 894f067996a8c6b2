from __future__ import annotations

import io
import os
from typing import BinaryIO, Tuple, Union


Source = Union[str, "os.PathLike[str]", bytes, bytearray, memoryview, BinaryIO]


def open_input(src: Source, leave_open: bool = False) -> Tuple[BinaryIO, bool]:
    """Resolve a path, a byte buffer or a binary stream to ``(stream, owned)``.

    Paths and buffers are always owned by the caller of this helper; a stream
    is owned unless ``leave_open`` is set.
    """
    if isinstance(src, (str, os.PathLike)):
        return open(src, "rb"), True
    if isinstance(src, (bytes, bytearray, memoryview)):
        return io.BytesIO(bytes(src)), True
    return src, not leave_open


def open_output(dst, leave_open: bool = False) -> Tuple[BinaryIO, bool]:
    if isinstance(dst, (str, os.PathLike)):
        return open(dst, "wb"), True
    return dst, not leave_open


def read_up_to(f: BinaryIO, n: int) -> bytes:
    """Read ``n`` bytes, returning fewer only at end of stream."""
    buf = f.read(n)
    if buf is None:
        buf = b""
    while len(buf) < n:
        more = f.read(n - len(buf))
        if not more:
            break
        buf += more
    return buf
