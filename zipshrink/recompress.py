"""
zipshrink Recompression Engine

Per-entry payload handling, called by the Compactor once the local header
has been relocated:

- stored: hand the payload to the shrinker in place, recompute crc32
- deflated: inflate → shrink → re-deflate → keep the smallest of
  (stored, new deflate, original deflate)
- anything else (other methods, encrypted, fast mode): copy verbatim

Every decision is written to both the relocated local header and the
central-directory entry so the two never disagree.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from zipshrink.codecs import Deflater, crc32, inflate
from zipshrink.errors import InflateError
from zipshrink.records import (
    METHOD_DEFLATED,
    METHOD_STORED,
    CentralDirectoryEntry,
    LocalFileHeaderView,
)
from zipshrink.result import DiagnosticKind, EntryAction, EntryOutcome, ZipShrinkResult

if TYPE_CHECKING:
    from zipshrink.shrinker import Shrinker


def update_entry(
    entry: CentralDirectoryEntry,
    header: LocalFileHeaderView,
    *,
    method: Optional[int] = None,
    crc: Optional[int] = None,
    compressed_size: Optional[int] = None,
    uncompressed_size: Optional[int] = None,
) -> None:
    """Set the given fields on the directory entry and the local header together."""
    if method is not None:
        entry.compression_method = header.compression_method = method
    if crc is not None:
        entry.crc32 = header.crc32 = crc
    if compressed_size is not None:
        entry.compressed_size = header.compressed_size = compressed_size
    if uncompressed_size is not None:
        entry.uncompressed_size = header.uncompressed_size = uncompressed_size


class Recompressor:
    """Moves one payload from ``read_pos`` to ``write_pos``, shrinking it if it can.

    ``write_pos`` is never after ``read_pos``, and whatever is written is never
    longer than the original payload, so nothing not yet read is clobbered.
    """

    def __init__(
        self,
        buf: bytearray,
        shrinker: Shrinker,
        depth: int,
        result: ZipShrinkResult,
    ) -> None:
        self.buf = buf
        self.shrinker = shrinker
        self.depth = depth
        self.result = result

    @property
    def fast(self) -> bool:
        return self.shrinker.options.fast

    @property
    def deflater(self) -> Deflater:
        return self.shrinker.deflater

    def process(
        self,
        entry: CentralDirectoryEntry,
        header: LocalFileHeaderView,
        read_pos: int,
        write_pos: int,
        name: str,
    ) -> EntryOutcome:
        method = header.compression_method
        if header.is_encrypted or self.fast or method not in (METHOD_STORED, METHOD_DEFLATED):
            return self._copy(header, read_pos, write_pos, name)
        if method == METHOD_STORED:
            return self._shrink_stored(entry, header, read_pos, write_pos, name)
        return self._recompress(entry, header, read_pos, write_pos, name)

    def _copy(
        self,
        header: LocalFileHeaderView,
        read_pos: int,
        write_pos: int,
        name: str,
    ) -> EntryOutcome:
        size = header.compressed_size
        if read_pos != write_pos:
            self.buf[write_pos:write_pos + size] = self.buf[read_pos:read_pos + size]
        return EntryOutcome(name, EntryAction.KEPT, size, size, header.compression_method)

    def _shrink_stored(
        self,
        entry: CentralDirectoryEntry,
        header: LocalFileHeaderView,
        read_pos: int,
        write_pos: int,
        name: str,
    ) -> EntryOutcome:
        size = header.compressed_size
        if not size:
            return EntryOutcome(name, EntryAction.KEPT, 0, 0, METHOD_STORED)

        new_size = self.shrinker.shrink(
            self.buf, read_pos, size,
            size_shrunk=read_pos - write_pos,
            name=name,
            depth=self.depth + 1,
        )
        update_entry(
            entry, header,
            crc=crc32(self.buf[write_pos:write_pos + new_size]),
            compressed_size=new_size,
            uncompressed_size=new_size,
        )
        action = EntryAction.SHRUNK if new_size < size else EntryAction.KEPT
        return EntryOutcome(name, action, size, new_size, METHOD_STORED)

    def _recompress(
        self,
        entry: CentralDirectoryEntry,
        header: LocalFileHeaderView,
        read_pos: int,
        write_pos: int,
        name: str,
    ) -> EntryOutcome:
        orig_size = header.compressed_size

        # Switch from deflate to store for an empty file
        if header.uncompressed_size == 0:
            update_entry(entry, header, method=METHOD_STORED, compressed_size=0)
            return EntryOutcome(name, EntryAction.EMPTY, orig_size, 0, METHOD_STORED)

        original = bytes(self.buf[read_pos:read_pos + orig_size])
        expected_size = header.uncompressed_size
        try:
            raw = inflate(original, expected_size)
        except InflateError as e:
            return self._fall_back(header, write_pos, original, name, str(e))
        if len(raw) != expected_size or crc32(raw) != header.crc32:
            return self._fall_back(header, write_pos, original, name, "CRC32 or size mismatch")

        scratch = bytearray(raw)
        new_uncomp_size = self.shrinker.shrink(scratch, 0, len(scratch), name=name, depth=self.depth + 1)
        shrunk = bytes(scratch[:new_uncomp_size])
        recompressed = self.deflater.deflate(shrunk)
        new_comp_size = len(recompressed)

        if new_uncomp_size <= new_comp_size and new_uncomp_size <= orig_size:
            update_entry(
                entry, header,
                method=METHOD_STORED,
                crc=crc32(shrunk),
                compressed_size=new_uncomp_size,
                uncompressed_size=new_uncomp_size,
            )
            self.buf[write_pos:write_pos + new_uncomp_size] = shrunk
            return EntryOutcome(name, EntryAction.STORED, orig_size, new_uncomp_size, METHOD_STORED)

        if new_comp_size < orig_size:
            update_entry(
                entry, header,
                crc=crc32(shrunk),
                compressed_size=new_comp_size,
                uncompressed_size=new_uncomp_size,
            )
            self.buf[write_pos:write_pos + new_comp_size] = recompressed
            return EntryOutcome(name, EntryAction.RECOMPRESSED, orig_size, new_comp_size, METHOD_DEFLATED)

        # Recompression was not beneficial
        self.buf[write_pos:write_pos + orig_size] = original
        return EntryOutcome(name, EntryAction.KEPT, orig_size, orig_size, METHOD_DEFLATED)

    def _fall_back(
        self,
        header: LocalFileHeaderView,
        write_pos: int,
        original: bytes,
        name: str,
        reason: str,
    ) -> EntryOutcome:
        self.result.warn(
            DiagnosticKind.DECOMPRESSION_FAILURE,
            f"{reason} in {name!r}, copied unchanged",
            write_pos,
        )
        self.buf[write_pos:write_pos + len(original)] = original
        return EntryOutcome(name, EntryAction.KEPT, len(original), len(original), METHOD_DEFLATED)
