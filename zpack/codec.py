from __future__ import annotations

import zlib
from typing import BinaryIO, Callable, Optional, Tuple, Union

from .constants import DEFAULT_LEVEL, STREAM_BUFFER_SIZE
from .errors import CodecError


BytesLike = Union[bytes, bytearray, memoryview]


class WindowView:
    """Read-only view over ``[start, start + length)`` of a seekable stream.

    Every read re-seeks the base stream, so the view never depends on where a
    previous reader left the shared position, and it never hands out a byte
    past the end of the window no matter how much the caller asks for.
    """

    def __init__(self, base: BinaryIO, start: int, length: int):
        if start < 0:
            raise ValueError("window start must be non-negative")
        if length < 0:
            raise ValueError("window length must be non-negative")
        self.base = base
        self.start = start
        self.length = length
        self._pos = 0

    @property
    def remaining(self) -> int:
        return max(0, self.length - self._pos)

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._pos

    def seek(self, pos: int, whence: int = 0) -> int:
        if whence == 1:
            pos += self._pos
        elif whence == 2:
            pos += self.length
        elif whence != 0:
            raise ValueError(f"invalid whence: {whence}")
        if pos < 0:
            raise ValueError("negative seek position")
        self._pos = pos
        return self._pos

    def read(self, n: Optional[int] = -1) -> bytes:
        remaining = self.remaining
        if remaining == 0:
            return b""
        if n is None or n < 0 or n > remaining:
            n = remaining
        self.base.seek(self.start + self._pos)
        chunk = self.base.read(n)
        self._pos += len(chunk)
        return chunk


class Codec:
    """Deflate codec over byte windows.

    ``raw=False`` produces zlib framing (header + adler32 footer), which is what
    archive payloads use; ``raw=True`` is bare deflate and is only used when a
    caller asks for it explicitly.
    """

    def __init__(self, level: Optional[int] = None, raw: bool = False, buffer_size: int = STREAM_BUFFER_SIZE):
        level = DEFAULT_LEVEL if level is None else level
        if level < -1 or level > 9:
            raise ValueError(f"compression level out of range: {level}")
        if buffer_size <= 0:
            raise ValueError("buffer_size must be positive")
        self.level = level
        self.raw = raw
        self.buffer_size = buffer_size

    def _wbits(self) -> int:
        return -zlib.MAX_WBITS if self.raw else zlib.MAX_WBITS

    def _compressor(self):
        return zlib.compressobj(self.level, zlib.DEFLATED, self._wbits())

    def _decompressor(self):
        return zlib.decompressobj(self._wbits())

    # compression

    def compress(self, data: BytesLike, dest: BinaryIO) -> int:
        """Write one complete compressed block to ``dest``; return bytes written."""
        c = self._compressor()
        written = 0
        for block in (c.compress(data), c.flush()):
            if block:
                dest.write(block)
                written += len(block)
        return written

    def compress_stream(self, src: BinaryIO, dest: BinaryIO) -> Tuple[int, int]:
        """Compress ``src`` until EOF through a fixed buffer.

        Returns ``(compressed_bytes_written, uncompressed_bytes_read)``.
        """
        c = self._compressor()
        written = 0
        consumed = 0
        while True:
            raw = src.read(self.buffer_size)
            if not raw:
                break
            consumed += len(raw)
            block = c.compress(raw)
            if block:
                dest.write(block)
                written += len(block)
        tail = c.flush()
        if tail:
            dest.write(tail)
            written += len(tail)
        return written, consumed

    # decompression

    def _pump(self, reader, emit: Callable[[bytes], object], limit: Optional[int] = None) -> Tuple[int, bool]:
        d = self._decompressor()
        produced = 0
        pending = b""
        try:
            while not d.eof:
                budget = self.buffer_size
                if limit is not None:
                    budget = min(budget, limit - produced)
                    if budget <= 0:
                        break
                data = pending or reader.read(self.buffer_size)
                out = d.decompress(data, budget)
                pending = d.unconsumed_tail
                if out:
                    produced += len(out)
                    emit(out)
                elif not data:
                    break
        except zlib.error as exc:
            raise CodecError(f"inflate failed: {exc}") from exc
        return produced, d.eof

    def decompress_exact(self, source: BinaryIO, start: int, length: int, expected_size: int) -> bytes:
        """Inflate exactly ``expected_size`` bytes from the window ``[start, start + length)``.

        Raises CodecError when the window yields fewer bytes than declared.
        """
        if expected_size < 0:
            raise ValueError("expected_size must be non-negative")
        view = WindowView(source, start, length)
        buf = bytearray()
        produced, _eof = self._pump(view, buf.extend, limit=expected_size)
        if produced != expected_size:
            raise CodecError(
                f"window at {start} (+{length}) inflated to {produced} bytes, expected {expected_size}"
            )
        return bytes(buf)

    def decompress_into(
        self,
        source: BinaryIO,
        start: int,
        length: int,
        sink: BinaryIO,
        expected_size: Optional[int] = None,
    ) -> int:
        """Stream the inflated window to ``sink``; return the number of bytes written.

        With ``expected_size`` set, inflation stops one byte past the declared
        size and ``sink`` never receives more than ``expected_size`` bytes.
        """
        view = WindowView(source, start, length)
        if expected_size is None:
            produced, eof = self._pump(view, sink.write)
        else:
            if expected_size < 0:
                raise ValueError("expected_size must be non-negative")
            # One byte of slack separates "exactly as declared" from "too long"
            produced, eof = self._pump(view, _capped_writer(sink, expected_size), limit=expected_size + 1)
            if produced > expected_size:
                raise CodecError(
                    f"window at {start} (+{length}) inflates past its declared {expected_size} bytes"
                )
        if not eof:
            raise CodecError(f"window at {start} (+{length}) ends before the compressed stream does")
        if expected_size is not None and produced != expected_size:
            raise CodecError(
                f"window at {start} (+{length}) inflated to {produced} bytes, expected {expected_size}"
            )
        return produced

    def decompress_unbounded(self, source: BinaryIO) -> bytes:
        """Inflate from the current position of ``source`` until the stream ends."""
        buf = bytearray()
        self.decompress_stream(source, buf)
        return bytes(buf)

    def decompress_stream(self, source: BinaryIO, sink) -> int:
        emit = sink.extend if isinstance(sink, bytearray) else sink.write
        produced, eof = self._pump(source, emit)
        if not eof:
            raise CodecError("input ended before the compressed stream did")
        return produced


def _capped_writer(sink: BinaryIO, cap: int) -> Callable[[bytes], None]:
    written = 0

    def emit(chunk: bytes) -> None:
        nonlocal written
        room = cap - written
        if room <= 0:
            return
        if len(chunk) > room:
            chunk = chunk[:room]
        sink.write(chunk)
        written += len(chunk)

    return emit
