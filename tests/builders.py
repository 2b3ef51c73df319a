"""
Archive builders for the zipshrink test suite.

Hand-assembled ZIPs, so tests can produce exactly the oddities real
archives carry: extra fields, comments, data descriptors, SFX prefixes,
offsets relative to the first local header, bogus directory records.
"""

import struct
import zlib
from dataclasses import dataclass
from typing import Optional


@dataclass
class Member:
    name: str
    data: bytes = b""
    method: int = 8
    level: int = 6
    flag: int = 0
    extra: bytes = b""
    comment: bytes = b""
    descriptor: bool = False
    # Overrides for building broken archives
    raw: Optional[bytes] = None               # payload bytes as written
    crc: Optional[int] = None
    cd_compressed_size: Optional[int] = None
    local_name: Optional[str] = None
    offset: Optional[int] = None
    cd_only: bool = False                      # directory record without local header


def deflate_raw(data: bytes, level: int = 6) -> bytes:
    compressor = zlib.compressobj(level, zlib.DEFLATED, -15)
    return compressor.compress(data) + compressor.flush()


def extra_field(size: int = 24) -> bytes:
    """An unknown-tag extra field block of ``size`` bytes (header included)."""
    return struct.pack("<HH", 0xCAFE, size - 4) + b"\xAA" * (size - 4)


def build_zip(
    members: list,
    prefix: bytes = b"",
    relative: bool = False,
    comment: bytes = b"",
    disk_num: int = 0,
    declared: Optional[int] = None,
) -> bytes:
    """Assemble a ZIP archive.

    Args:
        members: Member definitions, written in order
        prefix: Bytes before the first local header (e.g. an SFX stub)
        relative: Store offsets relative to the first local header instead
                  of the start of the file
        comment: Archive comment
        disk_num: EOCD disk number (non-zero makes a "split" archive)
        declared: Record count written to the EOCD (default: actual count)
    """
    base = 0 if relative else len(prefix)
    body = bytearray()
    records = []

    for m in members:
        if m.raw is not None:
            payload = m.raw
        elif m.method == 8:
            payload = deflate_raw(m.data, m.level)
        else:
            payload = m.data
        crc = m.crc if m.crc is not None else zlib.crc32(m.data)
        flag = m.flag | (0x08 if m.descriptor else 0)
        name = m.name.encode()
        offset = m.offset if m.offset is not None else base + len(body)

        if not m.cd_only:
            local_name = (m.local_name or m.name).encode()
            if m.descriptor:
                l_crc, l_csize, l_usize = 0, 0, 0
            else:
                l_crc, l_csize, l_usize = crc, len(payload), len(m.data)
            body += struct.pack(
                "<IHHHHHIIIHH",
                0x04034B50, 20, flag, m.method, 0, 0x21,
                l_crc, l_csize, l_usize, len(local_name), len(m.extra),
            )
            body += local_name + m.extra + payload
            if m.descriptor:
                body += struct.pack("<IIII", 0x08074B50, crc, len(payload), len(m.data))

        csize = m.cd_compressed_size if m.cd_compressed_size is not None else len(payload)
        records.append(struct.pack(
            "<IHHHHHHIIIHHHHHII",
            0x02014B50, 20, 20, flag, m.method, 0, 0x21,
            crc, csize, len(m.data),
            len(name), len(m.extra), len(m.comment),
            0, 0, 0, offset,
        ) + name + m.extra + m.comment)

    cd = b"".join(records)
    count = len(records) if declared is None else declared
    eocd = struct.pack(
        "<IHHHHIIH",
        0x06054B50, disk_num, 0, count, count,
        len(cd), base + len(body), len(comment),
    ) + comment
    return prefix + bytes(body) + cd + eocd


TEXT = (
    b"The quick brown fox jumps over the lazy dog. "
    b"Pack my box with five dozen liquor jugs. "
) * 40

# No repeated 3-byte strings, so deflate cannot shrink it
NOISE = bytes((i * 197 + 13) % 251 for i in range(240))
