"""
zipshrink Codecs

Deflate in and out, plus CRC-32.

- inflate(): raw deflate decode with a hard output limit
- ZopfliDeflater: high-effort encoder (zopfli), the default
- ZlibDeflater: zlib level 9, much faster, usually a little larger
"""

from __future__ import annotations

import zlib
from abc import ABC, abstractmethod

import zopfli.zlib

from zipshrink.errors import InflateError
from zipshrink.records import Limits

ZLIB_HEADER_SIZE = 2
ZLIB_TRAILER_SIZE = 4


def crc32(data: bytes) -> int:
    return zlib.crc32(data) & 0xFFFFFFFF


def inflate(data: bytes, limit: int) -> bytes:
    """Decode a raw deflate stream, producing at most ``limit + 1`` bytes.

    One byte past the limit is allowed through so the caller can tell an
    oversized member from an exact one.
    """
    decoder = zlib.decompressobj(-zlib.MAX_WBITS)
    try:
        out = decoder.decompress(data, limit + 1)
    except zlib.error as e:
        raise InflateError(f"Inflate failed: {e}") from e
    if len(out) > limit:
        return out
    if not decoder.eof:
        raise InflateError("Deflate stream ended before its final block")
    return out


class Deflater(ABC):
    """Produces a raw deflate stream (no zlib or gzip wrapper)."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def deflate(self, data: bytes) -> bytes:
        ...

    def __repr__(self) -> str:
        return f"<Deflater:{self.name}>"


class ZopfliDeflater(Deflater):

    def __init__(self, iterations: int = Limits.DEFAULT_ITERATIONS) -> None:
        self.iterations = iterations

    @property
    def name(self) -> str:
        return "zopfli"

    def deflate(self, data: bytes) -> bytes:
        # zopfli.zlib yields a zlib stream: 2-byte header, deflate body, Adler-32
        wrapped = zopfli.zlib.compress(bytes(data), numiterations=self.iterations)
        return wrapped[ZLIB_HEADER_SIZE:-ZLIB_TRAILER_SIZE]


class ZlibDeflater(Deflater):

    def __init__(self, level: int = 9) -> None:
        self.level = level

    @property
    def name(self) -> str:
        return "zlib"

    def deflate(self, data: bytes) -> bytes:
        compressor = zlib.compressobj(self.level, zlib.DEFLATED, -zlib.MAX_WBITS, 9)
        return compressor.compress(data) + compressor.flush()


ENCODERS = ("zopfli", "zlib")


def make_deflater(encoder: str, iterations: int = Limits.DEFAULT_ITERATIONS) -> Deflater:
    if encoder == "zopfli":
        return ZopfliDeflater(iterations)
    if encoder == "zlib":
        return ZlibDeflater()
    raise ValueError(f"Unknown encoder '{encoder}'. Available: {list(ENCODERS)}")
