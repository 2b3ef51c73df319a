"""
zipshrink Locator

Finds the End of Central Directory record and the central directory's byte
range. ZIP readers seek from the END of the file, so the EOCD is searched
backward, bounded by the largest comment the format allows.
"""

from __future__ import annotations

from dataclasses import dataclass

from zipshrink.errors import NotAZipError, UnsupportedArchiveError
from zipshrink.records import (
    EOCD_SIGNATURE,
    LOCAL_FILE_SIGNATURE,
    EndOfCentralDirectory,
    Limits,
)


@dataclass(frozen=True)
class ArchiveLayout:
    """Where things are, as offsets relative to the start of the region."""
    eocd: EndOfCentralDirectory
    eocd_offset: int
    cd_offset: int
    cd_end: int
    # Bytes before the first local header (SFX stub, junk); kept verbatim
    zip_offset: int


def find_eocd(buf: bytearray, start: int, end: int) -> int:
    """Absolute position of the last EOCD signature in the search window, or -1."""
    search_start = max(start, end - Limits.MAX_COMMENT_LEN - Limits.EOCD_SIZE)
    return buf.rfind(EOCD_SIGNATURE, search_start, end)


def locate(buf: bytearray, start: int, size: int) -> ArchiveLayout:
    """Locate and validate the EOCD of the archive in buf[start:start+size].

    Raises:
        NotAZipError: no EOCD, or the EOCD runs past the end of the region
        UnsupportedArchiveError: split/spanned archive, or a central
            directory that extends past the EOCD
    """
    end = start + size
    pos = find_eocd(buf, start, end)
    if pos < 0:
        raise NotAZipError("EOCD not found")
    if pos + Limits.EOCD_SIZE > end:
        raise NotAZipError("EOF inside EOCD", offset=pos - start)

    eocd = EndOfCentralDirectory.from_bytes(bytes(buf[pos:pos + Limits.EOCD_SIZE]))
    if eocd.is_split:
        raise UnsupportedArchiveError(
            "Neither split nor spanned archives are supported", offset=pos - start,
        )

    cd_end = eocd.cd_offset + eocd.cd_size
    if start + cd_end > pos:
        raise UnsupportedArchiveError("Central directory too large", offset=eocd.cd_offset)

    first_header = buf.find(LOCAL_FILE_SIGNATURE, start, start + eocd.cd_offset)
    zip_offset = first_header - start if first_header >= 0 else eocd.cd_offset

    return ArchiveLayout(
        eocd=eocd,
        eocd_offset=pos - start,
        cd_offset=eocd.cd_offset,
        cd_end=cd_end,
        zip_offset=zip_offset,
    )
