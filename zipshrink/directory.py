"""
zipshrink Central Directory

DirectoryParser reads the central directory into CentralDirectoryEntry
records, repairing what it can (base offset of self-extracting archives)
and tolerating what it can't (truncated or partially garbled directories).

DirectoryRebuilder writes a fresh directory and EOCD after the compacted
payloads.
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field, replace
from typing import Optional

from kaitaistruct import KaitaiStream

from zipshrink.locator import ArchiveLayout
from zipshrink.records import (
    CENTRAL_DIR_SIGNATURE,
    FLAG_DATA_DESCRIPTOR,
    CentralDirectoryEntry,
    EndOfCentralDirectory,
    Limits,
)
from zipshrink.result import DiagnosticKind, EntryAction, EntryOutcome, ZipShrinkResult


@dataclass
class ParsedDirectory:
    entries: list[CentralDirectoryEntry] = field(default_factory=list)
    # Constant added to every stored offset; non-zero when offsets are
    # relative to the first local header instead of the region start
    base_offset: int = 0

    def __len__(self) -> int:
        return len(self.entries)


class DirectoryParser:
    """Reads central-directory records from buf[start:start+size]."""

    def __init__(self, buf: bytearray, start: int, size: int) -> None:
        self.buf = buf
        self.start = start
        self.size = size

    def _magic_at(self, pos: int) -> bytes:
        at = self.start + pos
        return bytes(self.buf[at:at + 4])

    def parse(self, layout: ArchiveLayout, result: ZipShrinkResult) -> ParsedDirectory:
        """Collect up to ``num_records`` entries, sorted by local-header offset.

        Problems are recorded on ``result`` as PARTIAL_DIRECTORY diagnostics;
        parsing stops at the first one and keeps what it has.
        """
        parsed = ParsedDirectory()
        stream_origin = layout.cd_offset
        stream = KaitaiStream(io.BytesIO(bytes(
            self.buf[self.start + stream_origin:self.start + self.size]
        )))

        pos = layout.cd_offset
        cd_end = layout.cd_end
        for i in range(layout.eocd.num_records):
            if pos + Limits.CD_ENTRY_SIZE > cd_end:
                result.warn(
                    DiagnosticKind.PARTIAL_DIRECTORY,
                    f"Central directory header {i} passed end, all remaining headers ignored",
                    pos,
                )
                break
            if self._magic_at(pos) != CENTRAL_DIR_SIGNATURE:
                # Offsets might be relative to the first local header
                zip_offset = layout.zip_offset
                if (
                    i == 0
                    and zip_offset
                    and cd_end + zip_offset <= self.size
                    and self._magic_at(pos + zip_offset) == CENTRAL_DIR_SIGNATURE
                ):
                    parsed.base_offset = zip_offset
                    pos += zip_offset
                    cd_end += zip_offset
                else:
                    result.warn(
                        DiagnosticKind.PARTIAL_DIRECTORY,
                        "Central directory header magic mismatch",
                        pos,
                    )
                    break

            stream.seek(pos - stream_origin)
            try:
                entry = CentralDirectoryEntry.read(stream)
            except EOFError:
                result.warn(
                    DiagnosticKind.PARTIAL_DIRECTORY,
                    f"Central directory header {i} truncated",
                    pos,
                )
                break
            pos += entry.record_size
            parsed.entries.append(entry)

        if pos != cd_end:
            result.warn(
                DiagnosticKind.PARTIAL_DIRECTORY,
                f"Central directory size mismatch ({pos - layout.cd_offset - parsed.base_offset} "
                f"parsed vs {layout.eocd.cd_size} declared)",
            )

        # list.sort is stable: ties keep directory order
        parsed.entries.sort(key=lambda e: e.local_header_offset)
        result.base_offset = parsed.base_offset
        return parsed


class DirectoryRebuilder:
    """Writes a central directory and EOCD for the compacted entries.

    ``write_base`` is the absolute position that stored offsets are relative
    to; ``limit`` is the absolute position the output must not pass.
    """

    def __init__(self, buf: bytearray, write_base: int, limit: int) -> None:
        self.buf = buf
        self.write_base = write_base
        self.limit = limit

    @staticmethod
    def directory_size(entries: list[CentralDirectoryEntry]) -> int:
        return sum(Limits.CD_ENTRY_SIZE + e.filename_len for e in entries)

    def _fit(
        self,
        write_pos: int,
        entries: list[CentralDirectoryEntry],
        result: ZipShrinkResult,
        outcomes: Optional[list[EntryOutcome]] = None,
    ) -> int:
        """Drop trailing entries until directory and EOCD fit under the limit.

        Dropping an entry also releases its relocated header and payload, so
        the directory moves back to where that entry started. ``outcomes``
        runs parallel to ``entries``; names can repeat, so they are matched
        by position.
        """
        while entries and (
            write_pos + self.directory_size(entries) + Limits.EOCD_SIZE > self.limit
        ):
            dropped = entries.pop()
            write_pos = self.write_base + dropped.local_header_offset
            result.warn(
                DiagnosticKind.DIRECTORY_OVERFLOW,
                f"Rebuilt directory does not fit, dropped {dropped.name!r}",
                dropped.local_header_offset,
            )
            if outcomes:
                outcome = outcomes.pop()
                outcome.action = EntryAction.DROPPED
                outcome.new_size = 0
        return write_pos

    def write(
        self,
        write_pos: int,
        entries: list[CentralDirectoryEntry],
        eocd: EndOfCentralDirectory,
        result: ZipShrinkResult,
        outcomes: Optional[list[EntryOutcome]] = None,
    ) -> int:
        """Write directory then EOCD at ``write_pos``; return the end position."""
        buf = self.buf
        write_pos = self._fit(write_pos, entries, result, outcomes)
        cd_offset = write_pos - self.write_base

        for entry in entries:
            entry.flag &= ~FLAG_DATA_DESCRIPTOR
            entry.extra_field_len = 0
            entry.comment_len = 0

            record = entry.pack()
            buf[write_pos:write_pos + len(record)] = record
            write_pos += len(record)

            # The old directory may already be overwritten; the relocated
            # local header still carries the name.
            name_at = self.write_base + entry.local_header_offset + Limits.LOCAL_HEADER_SIZE
            buf[write_pos:write_pos + entry.filename_len] = buf[name_at:name_at + entry.filename_len]
            write_pos += entry.filename_len

        new_eocd = replace(
            eocd,
            num_records=len(entries),
            num_records_total=len(entries),
            cd_size=write_pos - self.write_base - cd_offset,
            cd_offset=cd_offset,
            comment_len=0,
        )
        record = new_eocd.pack()
        buf[write_pos:write_pos + len(record)] = record
        return write_pos + len(record)
