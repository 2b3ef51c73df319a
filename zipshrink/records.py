"""
zipshrink ZIP Records

Fixed-layout ZIP structures and their (de)serialization:

- EndOfCentralDirectory: the trailer that says where the directory lives
- CentralDirectoryEntry: one authoritative record per archive member
- LocalFileHeaderView: a live view onto a local header inside the buffer

Reads go through KaitaiStream so that a short record raises EOFError instead
of silently unpacking garbage. Writes use struct.pack / struct.pack_into.
"""

from __future__ import annotations

import io
import struct
from dataclasses import dataclass

from kaitaistruct import KaitaiStream


LOCAL_FILE_SIGNATURE = b"PK\x03\x04"
CENTRAL_DIR_SIGNATURE = b"PK\x01\x02"
EOCD_SIGNATURE = b"PK\x05\x06"

METHOD_STORED = 0
METHOD_DEFLATED = 8

FLAG_ENCRYPTED = 0x0001
FLAG_DATA_DESCRIPTOR = 0x0008
FLAG_UTF8 = 0x0800


class Limits:
    """Sizes and bounds from the ZIP application note."""
    EOCD_SIZE: int = 22
    CD_ENTRY_SIZE: int = 46
    LOCAL_HEADER_SIZE: int = 30
    MAX_COMMENT_LEN: int = 65535
    DEFAULT_MAX_DEPTH: int = 10                # Nested archive recursion cap
    DEFAULT_ITERATIONS: int = 15               # Zopfli iterations per block


_EOCD_STRUCT = struct.Struct("<4sHHHHIIH")
_CD_STRUCT = struct.Struct("<4sHHHHHHIIIHHHHHII")


def decode_name(raw: bytes, flag: int) -> str:
    """Decode a member name: UTF-8 when flagged, CP437 otherwise."""
    if flag & FLAG_UTF8:
        return raw.decode("utf-8", errors="replace")
    return raw.decode("cp437")


# ============================================================================
# End of Central Directory
# ============================================================================

@dataclass
class EndOfCentralDirectory:
    disk_num: int
    disk_cd_start: int
    num_records: int
    num_records_total: int
    cd_size: int
    cd_offset: int
    comment_len: int

    @classmethod
    def from_bytes(cls, raw: bytes) -> EndOfCentralDirectory:
        stream = KaitaiStream(io.BytesIO(raw))
        magic = stream.read_bytes(4)
        if magic != EOCD_SIGNATURE:
            raise ValueError(f"Bad EOCD signature {magic.hex()}")
        return cls(
            disk_num=stream.read_u2le(),
            disk_cd_start=stream.read_u2le(),
            num_records=stream.read_u2le(),
            num_records_total=stream.read_u2le(),
            cd_size=stream.read_u4le(),
            cd_offset=stream.read_u4le(),
            comment_len=stream.read_u2le(),
        )

    @property
    def is_split(self) -> bool:
        """Split or spanned archives spread records over several disks."""
        return (
            self.disk_num != 0
            or self.disk_cd_start != 0
            or self.num_records != self.num_records_total
        )

    def pack(self) -> bytes:
        return _EOCD_STRUCT.pack(
            EOCD_SIGNATURE,
            self.disk_num,
            self.disk_cd_start,
            self.num_records,
            self.num_records_total,
            self.cd_size,
            self.cd_offset,
            self.comment_len,
        )


# ============================================================================
# Central Directory Entry
# ============================================================================

@dataclass
class CentralDirectoryEntry:
    """One central-directory record plus the name bytes that follow it.

    The engine keeps exactly one of these per member and updates it in place
    as the member is relocated and recompressed. It is the source of truth
    for crc32 and sizes when the local header defers them to a data
    descriptor.
    """
    version_made_by: int
    version_needed: int
    flag: int
    compression_method: int
    last_mod_time: int
    last_mod_date: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    filename_len: int
    extra_field_len: int
    comment_len: int
    disk_file_start: int
    internal_attributes: int
    external_attributes: int
    local_header_offset: int
    filename: bytes = b""

    @classmethod
    def read(cls, stream: KaitaiStream) -> CentralDirectoryEntry:
        """Read one record (fixed part and name) at the stream position.

        The caller has already checked the signature. The stream is left at
        the start of the extra field.
        """
        stream.read_bytes(4)
        entry = cls(
            version_made_by=stream.read_u2le(),
            version_needed=stream.read_u2le(),
            flag=stream.read_u2le(),
            compression_method=stream.read_u2le(),
            last_mod_time=stream.read_u2le(),
            last_mod_date=stream.read_u2le(),
            crc32=stream.read_u4le(),
            compressed_size=stream.read_u4le(),
            uncompressed_size=stream.read_u4le(),
            filename_len=stream.read_u2le(),
            extra_field_len=stream.read_u2le(),
            comment_len=stream.read_u2le(),
            disk_file_start=stream.read_u2le(),
            internal_attributes=stream.read_u2le(),
            external_attributes=stream.read_u4le(),
            local_header_offset=stream.read_u4le(),
        )
        entry.filename = stream.read_bytes(entry.filename_len)
        return entry

    @property
    def record_size(self) -> int:
        """Bytes this record occupied in the directory it was read from."""
        return (
            Limits.CD_ENTRY_SIZE
            + self.filename_len
            + self.extra_field_len
            + self.comment_len
        )

    @property
    def name(self) -> str:
        return decode_name(self.filename, self.flag)

    @property
    def is_encrypted(self) -> bool:
        return bool(self.flag & FLAG_ENCRYPTED)

    def pack(self) -> bytes:
        """Serialize the fixed 46-byte part (the name is written separately)."""
        return _CD_STRUCT.pack(
            CENTRAL_DIR_SIGNATURE,
            self.version_made_by,
            self.version_needed,
            self.flag,
            self.compression_method,
            self.last_mod_time,
            self.last_mod_date,
            self.crc32,
            self.compressed_size,
            self.uncompressed_size,
            self.filename_len,
            self.extra_field_len,
            self.comment_len,
            self.disk_file_start,
            self.internal_attributes,
            self.external_attributes,
            self.local_header_offset,
        )

    def __repr__(self) -> str:
        return (
            f"<CDEntry {self.name!r} method={self.compression_method} "
            f"{self.compressed_size}/{self.uncompressed_size}B "
            f"@{self.local_header_offset:#x}>"
        )


# ============================================================================
# Local File Header (live view)
# ============================================================================

def _u16(offset: int, doc: str) -> property:
    def getter(self: LocalFileHeaderView) -> int:
        return struct.unpack_from("<H", self.buf, self.pos + offset)[0]

    def setter(self: LocalFileHeaderView, value: int) -> None:
        struct.pack_into("<H", self.buf, self.pos + offset, value)

    return property(getter, setter, doc=doc)


def _u32(offset: int, doc: str) -> property:
    def getter(self: LocalFileHeaderView) -> int:
        return struct.unpack_from("<I", self.buf, self.pos + offset)[0]

    def setter(self: LocalFileHeaderView, value: int) -> None:
        struct.pack_into("<I", self.buf, self.pos + offset, value)

    return property(getter, setter, doc=doc)


class LocalFileHeaderView:
    """A local file header as it sits in the buffer at ``pos``.

    Field reads and writes go straight to the underlying bytearray, so
    patching a relocated header is just attribute assignment.
    """

    version_needed = _u16(4, "Version needed to extract")
    flag = _u16(6, "General purpose bit flag")
    compression_method = _u16(8, "Compression method")
    last_mod_time = _u16(10, "DOS time")
    last_mod_date = _u16(12, "DOS date")
    crc32 = _u32(14, "CRC-32 of the uncompressed data")
    compressed_size = _u32(18, "Compressed size")
    uncompressed_size = _u32(22, "Uncompressed size")
    filename_len = _u16(26, "File name length")
    extra_field_len = _u16(28, "Extra field length")

    def __init__(self, buf: bytearray, pos: int) -> None:
        self.buf = buf
        self.pos = pos

    @classmethod
    def is_present(cls, buf: bytearray, pos: int, end: int) -> bool:
        """Signature matches and the fixed part lies before ``end``."""
        if pos + Limits.LOCAL_HEADER_SIZE > end:
            return False
        return buf[pos:pos + 4] == LOCAL_FILE_SIGNATURE

    @property
    def size(self) -> int:
        """Header size without the extra field."""
        return Limits.LOCAL_HEADER_SIZE + self.filename_len

    @property
    def filename(self) -> bytes:
        start = self.pos + Limits.LOCAL_HEADER_SIZE
        return bytes(self.buf[start:start + self.filename_len])

    @property
    def name(self) -> str:
        return decode_name(self.filename, self.flag)

    @property
    def is_encrypted(self) -> bool:
        return bool(self.flag & FLAG_ENCRYPTED)

    @property
    def has_data_descriptor(self) -> bool:
        return bool(self.flag & FLAG_DATA_DESCRIPTOR)

    def __repr__(self) -> str:
        return (
            f"<LocalHeader @{self.pos:#x} method={self.compression_method} "
            f"{self.compressed_size}/{self.uncompressed_size}B>"
        )
