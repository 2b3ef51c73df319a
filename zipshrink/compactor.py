"""
zipshrink Compactor

The forward pass. Entries are visited in ascending order of their original
local-header offset; each header is normalized (extra field stripped, data
descriptor resolved) and moved down to the write cursor, then its payload is
handed to the Recompressor.

Invariant: write cursor <= read cursor for every entry. Headers only shrink
and payloads never grow, so a single bytearray is enough; slice assignment
copies its source first, which gives memmove semantics for the overlap.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

from zipshrink.records import (
    FLAG_DATA_DESCRIPTOR,
    METHOD_STORED,
    CentralDirectoryEntry,
    LocalFileHeaderView,
)
from zipshrink.recompress import Recompressor, update_entry
from zipshrink.result import DiagnosticKind, EntryAction, EntryOutcome, ZipShrinkResult


@dataclass
class CompactionResult:
    write_pos: int
    write_base: int
    survivors: list[CentralDirectoryEntry] = field(default_factory=list)
    # Outcome of each survivor, same order
    outcomes: list[EntryOutcome] = field(default_factory=list)
    truncated: bool = False


class Compactor:
    """Relocates local headers and payloads of buf[start:start+size].

    Output starts at ``start - size_shrunk``.
    """

    def __init__(
        self,
        buf: bytearray,
        start: int,
        size: int,
        size_shrunk: int,
        recompressor: Recompressor,
        result: ZipShrinkResult,
        report: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.buf = buf
        self.start = start
        self.end = start + size
        self.out_start = start - size_shrunk
        self.recompressor = recompressor
        self.result = result
        self.report = report

    def _drop(self, entry: CentralDirectoryEntry, kind: DiagnosticKind, message: str) -> None:
        self.result.warn(kind, message, entry.local_header_offset)
        self.result.entries.append(EntryOutcome(
            entry.name, EntryAction.DROPPED, entry.compressed_size, 0, entry.compression_method,
        ))

    def _abandon(self, entries: list[CentralDirectoryEntry]) -> None:
        for entry in entries:
            self.result.entries.append(EntryOutcome(
                entry.name, EntryAction.DROPPED, entry.compressed_size, 0, entry.compression_method,
            ))

    def run(
        self,
        entries: list[CentralDirectoryEntry],
        zip_offset: int,
        base_offset: int,
    ) -> CompactionResult:
        buf = self.buf
        if self.out_start != self.start:
            buf[self.out_start:self.out_start + zip_offset] = buf[self.start:self.start + zip_offset]

        write_base = self.out_start + base_offset
        compaction = CompactionResult(write_pos=self.out_start + zip_offset, write_base=write_base)

        for index, entry in enumerate(entries):
            write_pos = compaction.write_pos
            read_pos = self.start + base_offset + entry.local_header_offset

            if not LocalFileHeaderView.is_present(buf, read_pos, self.end):
                self._drop(
                    entry, DiagnosticKind.INVALID_LOCAL_HEADER,
                    f"Invalid local header offset for {entry.name!r}, entry dropped",
                )
                continue
            # Also catches records sharing one local header: only the first is written
            if write_pos > read_pos:
                self._drop(
                    entry, DiagnosticKind.OVERLAPPING_ENTRY,
                    f"{entry.name!r} overlaps a previous entry, entry dropped",
                )
                continue

            source = LocalFileHeaderView(buf, read_pos)
            if source.filename_len != entry.filename_len:
                self.result.warn(
                    DiagnosticKind.FILENAME_LENGTH_MISMATCH,
                    f"Filename length mismatch between local file header and "
                    f"central directory for {entry.name!r}",
                    entry.local_header_offset,
                )

            header_size = source.size
            if read_pos + header_size > self.end:
                self.result.warn(
                    DiagnosticKind.TRUNCATED_PAYLOAD, "Reached EOF in local header",
                    entry.local_header_offset,
                )
                compaction.truncated = True
                self._abandon(entries[index:])
                break

            had_descriptor = source.has_data_descriptor
            comp_size = entry.compressed_size if had_descriptor else source.compressed_size
            payload_pos = read_pos + header_size + source.extra_field_len
            if payload_pos + comp_size > self.end:
                self.result.warn(
                    DiagnosticKind.TRUNCATED_PAYLOAD, f"Compressed size too large for {entry.name!r}",
                    entry.local_header_offset,
                )
                compaction.truncated = True
                self._abandon(entries[index:])
                break

            # move header, then strip the extra field
            buf[write_pos:write_pos + header_size] = buf[read_pos:read_pos + header_size]
            header = LocalFileHeaderView(buf, write_pos)
            header.extra_field_len = 0
            entry.local_header_offset = write_pos - write_base

            if had_descriptor:
                # Sizes and crc follow the payload; the directory has the real values
                header.flag &= ~FLAG_DATA_DESCRIPTOR
                entry.flag &= ~FLAG_DATA_DESCRIPTOR
                update_entry(
                    entry, header,
                    crc=entry.crc32,
                    compressed_size=entry.compressed_size,
                    uncompressed_size=entry.uncompressed_size,
                )

            name = header.name
            is_placeholder = (
                comp_size == 0
                and header.compression_method == METHOD_STORED
                and not had_descriptor
            )
            if self.report is not None and not is_placeholder:
                self.report(name)

            outcome = self.recompressor.process(
                entry, header, payload_pos, write_pos + header_size, name,
            )
            self.result.entries.append(outcome)
            compaction.survivors.append(entry)
            compaction.outcomes.append(outcome)
            compaction.write_pos = write_pos + header_size + outcome.new_size

        return compaction
