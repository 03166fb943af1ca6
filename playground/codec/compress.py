"""gzip codec for session snapshots.

Text goes in as UTF-8 and comes out as a gzip member; decoding consumes the
whole stream and refuses anything that is not exactly one complete member.
"""

from __future__ import annotations

import codecs
import zlib
from typing import AsyncIterable, Iterable, Iterator, Union

from playground.core.errors import CompressionError

# 16 + MAX_WBITS selects the gzip container for both directions.
GZIP_WBITS = 16 + zlib.MAX_WBITS
CHUNK_SIZE = 64 * 1024

Chunk = Union[str, bytes]


def _as_bytes(chunk: Chunk) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return bytes(chunk)


def _split(text: str, size: int = CHUNK_SIZE) -> Iterator[str]:
    for i in range(0, len(text), size):
        yield text[i : i + size]


def iter_compress(chunks: Iterable[Chunk]) -> Iterator[bytes]:
    """Compress a stream of text/bytes chunks, yielding compressed chunks as they are produced."""
    try:
        c = zlib.compressobj(level=9, wbits=GZIP_WBITS)
        for chunk in chunks:
            out = c.compress(_as_bytes(chunk))
            if out:
                yield out
        tail = c.flush()
    except (zlib.error, UnicodeEncodeError) as e:
        raise CompressionError(f"failed to compress string: {e}") from e
    if tail:
        yield tail


def compress(text: str) -> bytes:
    return b"".join(iter_compress(_split(text)))


class _Decoder:
    """Incremental gunzip + UTF-8 decode with strict end-of-stream checks."""

    def __init__(self) -> None:
        self._inflate = zlib.decompressobj(wbits=GZIP_WBITS)
        self._text = codecs.getincrementaldecoder("utf-8")()
        self._parts: list[str] = []

    def feed(self, chunk: bytes) -> None:
        if not chunk:
            return
        if self._inflate.eof:
            raise CompressionError("trailing data after end of compressed stream")
        try:
            data = self._inflate.decompress(chunk)
            self._parts.append(self._text.decode(data))
        except zlib.error as e:
            raise CompressionError(f"failed to decompress: {e}") from e
        except UnicodeDecodeError as e:
            raise CompressionError(f"decompressed data is not UTF-8: {e}") from e
        if self._inflate.unused_data:
            raise CompressionError("trailing data after end of compressed stream")

    def finish(self) -> str:
        try:
            self._parts.append(self._text.decode(self._inflate.flush(), final=True))
        except zlib.error as e:
            raise CompressionError(f"failed to decompress: {e}") from e
        except UnicodeDecodeError as e:
            raise CompressionError(f"decompressed data is not UTF-8: {e}") from e
        if not self._inflate.eof:
            raise CompressionError("compressed stream is truncated")
        return "".join(self._parts)


def decompress(stream: Union[bytes, Iterable[bytes]]) -> str:
    if isinstance(stream, (bytes, bytearray, memoryview)):
        stream = [bytes(stream)]
    d = _Decoder()
    for chunk in stream:
        d.feed(chunk)
    return d.finish()


async def adecompress(stream: AsyncIterable[bytes]) -> str:
    d = _Decoder()
    async for chunk in stream:
        d.feed(chunk)
    return d.finish()
