"""
zipshrink Records Test Suite

1. EOCD parsing and serialization
2. Central directory entries read through KaitaiStream
3. Local file header view patches the buffer in place
"""

import io
import os
import struct
import sys

import pytest
from kaitaistruct import KaitaiStream

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from zipshrink.records import (
    CentralDirectoryEntry,
    EndOfCentralDirectory,
    LocalFileHeaderView,
    Limits,
    decode_name,
)

from builders import Member, build_zip, extra_field


# --- 1. EOCD ---

def test_eocd_from_bytes_reads_all_fields():
    raw = struct.pack("<IHHHHIIH", 0x06054B50, 0, 0, 3, 3, 150, 1000, 7)
    eocd = EndOfCentralDirectory.from_bytes(raw)
    assert eocd.num_records == 3
    assert eocd.num_records_total == 3
    assert eocd.cd_size == 150
    assert eocd.cd_offset == 1000
    assert eocd.comment_len == 7
    assert not eocd.is_split
    assert eocd.pack() == raw


def test_eocd_split_detection():
    base = dict(disk_num=0, disk_cd_start=0, num_records=1, num_records_total=1,
                cd_size=0, cd_offset=0, comment_len=0)
    assert not EndOfCentralDirectory(**base).is_split
    assert EndOfCentralDirectory(**{**base, "disk_num": 1}).is_split
    assert EndOfCentralDirectory(**{**base, "disk_cd_start": 2}).is_split
    assert EndOfCentralDirectory(**{**base, "num_records": 0}).is_split


def test_eocd_bad_signature_rejected():
    with pytest.raises(ValueError):
        EndOfCentralDirectory.from_bytes(b"PK\x01\x02" + b"\x00" * 18)


# --- 2. Central directory entry ---

def test_central_directory_entry_read():
    data = build_zip([Member("docs/readme.txt", b"hello", method=0, extra=extra_field(12),
                             comment=b"note")])
    cd_offset = data.index(b"PK\x01\x02")
    stream = KaitaiStream(io.BytesIO(data[cd_offset:]))
    entry = CentralDirectoryEntry.read(stream)

    assert entry.name == "docs/readme.txt"
    assert entry.filename == b"docs/readme.txt"
    assert entry.compression_method == 0
    assert entry.compressed_size == entry.uncompressed_size == 5
    assert entry.extra_field_len == 12
    assert entry.comment_len == 4
    assert entry.local_header_offset == 0
    assert entry.record_size == Limits.CD_ENTRY_SIZE + 15 + 12 + 4
    assert entry.pack() == data[cd_offset:cd_offset + Limits.CD_ENTRY_SIZE]


def test_central_directory_entry_truncated_raises_eof():
    data = build_zip([Member("a.txt", b"x", method=0)])
    cd_offset = data.index(b"PK\x01\x02")
    stream = KaitaiStream(io.BytesIO(data[cd_offset:cd_offset + 30]))
    with pytest.raises(EOFError):
        CentralDirectoryEntry.read(stream)


def test_decode_name_utf8_flag():
    assert decode_name("naïve.txt".encode("utf-8"), 0x0800) == "naïve.txt"
    assert decode_name(b"\x82.txt", 0) == "é.txt"


# --- 3. Local file header view ---

def test_local_header_view_reads_and_patches():
    buf = bytearray(b"\x00" * 4 + build_zip([Member("f.bin", b"abc", method=0, extra=extra_field(8))]))
    view = LocalFileHeaderView(buf, 4)

    assert LocalFileHeaderView.is_present(buf, 4, len(buf))
    assert not LocalFileHeaderView.is_present(buf, 0, len(buf))
    assert not LocalFileHeaderView.is_present(buf, 4, 20)
    assert view.filename == b"f.bin"
    assert view.size == Limits.LOCAL_HEADER_SIZE + 5
    assert view.extra_field_len == 8
    assert view.compressed_size == 3

    view.extra_field_len = 0
    view.crc32 = 0xDEADBEEF
    assert struct.unpack_from("<H", buf, 4 + 28)[0] == 0
    assert struct.unpack_from("<I", buf, 4 + 14)[0] == 0xDEADBEEF
    assert not view.has_data_descriptor
    assert not view.is_encrypted
