"""
zipshrink Locator and Directory Test Suite

1. EOCD search window and validation
2. Prefix (zip_offset) detection
3. Directory parsing: sorting, base offset, partial directories
4. Directory rebuilding under a size limit
"""

import os
import struct
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from zipshrink.directory import DirectoryParser, DirectoryRebuilder
from zipshrink.errors import NotAZipError, UnsupportedArchiveError
from zipshrink.locator import locate
from zipshrink.records import CentralDirectoryEntry, EndOfCentralDirectory, Limits
from zipshrink.result import DiagnosticKind, EntryAction, EntryOutcome, ZipShrinkResult

from builders import TEXT, Member, build_zip


def _result(data: bytes) -> ZipShrinkResult:
    return ZipShrinkResult(name="t.zip", depth=1, original_size=len(data))


def _parse(data: bytes):
    buf = bytearray(data)
    result = _result(data)
    layout = locate(buf, 0, len(buf))
    return layout, DirectoryParser(buf, 0, len(buf)).parse(layout, result), result


# --- 1. EOCD ---

def test_locate_plain_archive():
    data = build_zip([Member("a.txt", TEXT), Member("b.txt", b"bee", method=0)])
    layout = locate(bytearray(data), 0, len(data))
    assert layout.eocd_offset == len(data) - Limits.EOCD_SIZE
    assert layout.eocd.num_records_total == 2
    assert layout.cd_end == layout.cd_offset + layout.eocd.cd_size
    assert layout.zip_offset == 0


def test_locate_with_archive_comment():
    comment = b"c" * 1000
    data = build_zip([Member("a.txt", b"x", method=0)], comment=comment)
    layout = locate(bytearray(data), 0, len(data))
    assert layout.eocd_offset == len(data) - Limits.EOCD_SIZE - len(comment)


def test_locate_no_eocd():
    buf = bytearray(b"PK\x03\x04 not really a zip")
    with pytest.raises(NotAZipError):
        locate(buf, 0, len(buf))


def test_locate_eocd_outside_search_window():
    data = build_zip([Member("a.txt", b"x", method=0)])
    # More trailing bytes than the largest possible comment
    padded = bytearray(data + b"\x00" * (Limits.MAX_COMMENT_LEN + 10))
    with pytest.raises(NotAZipError):
        locate(padded, 0, len(padded))


def test_locate_truncated_eocd():
    data = build_zip([Member("a.txt", b"x", method=0)])
    with pytest.raises(NotAZipError):
        locate(bytearray(data[:-4]), 0, len(data) - 4)


def test_locate_rejects_split_archive():
    data = build_zip([Member("a.txt", b"x", method=0)], disk_num=1)
    with pytest.raises(UnsupportedArchiveError):
        locate(bytearray(data), 0, len(data))


def test_locate_rejects_oversized_directory():
    data = bytearray(build_zip([Member("a.txt", b"x", method=0)]))
    eocd_at = len(data) - Limits.EOCD_SIZE
    struct.pack_into("<I", data, eocd_at + 12, 10_000)  # cd_size
    with pytest.raises(UnsupportedArchiveError):
        locate(data, 0, len(data))


def test_locate_inside_larger_buffer():
    data = build_zip([Member("a.txt", TEXT)])
    buf = bytearray(b"\xee" * 50 + data + b"PK\x05\x06" + b"\x00" * 40)
    layout = locate(buf, 50, len(data))
    assert layout.eocd_offset == len(data) - Limits.EOCD_SIZE


# --- 2. Prefix ---

def test_zip_offset_of_prefixed_archive():
    stub = b"MZ" + b"\x90" * 126
    data = build_zip([Member("a.txt", TEXT)], prefix=stub)
    layout = locate(bytearray(data), 0, len(data))
    assert layout.zip_offset == len(stub)


# --- 3. Directory parsing ---

def test_parser_sorts_by_local_header_offset():
    data = bytearray(build_zip([Member("first", b"1" * 10, method=0), Member("second", b"2" * 10, method=0)]))
    # Swap the two directory records so the directory is out of physical order
    cd_start = data.index(b"PK\x01\x02")
    rec_len = Limits.CD_ENTRY_SIZE + 5
    first = bytes(data[cd_start:cd_start + rec_len])
    second = bytes(data[cd_start + rec_len:cd_start + rec_len + rec_len + 1])
    data[cd_start:cd_start + 2 * rec_len + 1] = second + first

    layout, directory, result = _parse(bytes(data))
    assert [e.name for e in directory.entries] == ["first", "second"]
    assert not result.diagnostics


def test_parser_detects_base_offset():
    stub = b"MZ" + b"\x90" * 200
    data = build_zip([Member("a.txt", TEXT), Member("b.txt", TEXT[:500])], prefix=stub, relative=True)
    layout, directory, result = _parse(data)
    assert directory.base_offset == len(stub)
    assert result.base_offset == len(stub)
    assert len(directory) == 2
    assert not result.diagnostics


def test_parser_absolute_offsets_with_prefix_have_no_base():
    stub = b"MZ" + b"\x90" * 200
    data = build_zip([Member("a.txt", TEXT)], prefix=stub)
    _, directory, _ = _parse(data)
    assert directory.base_offset == 0
    assert directory.entries[0].local_header_offset == len(stub)


def test_parser_declared_count_exceeds_directory():
    data = build_zip([Member("a", b"a", method=0), Member("b", b"b", method=0)], declared=3)
    _, directory, result = _parse(data)
    assert len(directory) == 2
    assert [d.kind for d in result.diagnostics] == [DiagnosticKind.PARTIAL_DIRECTORY]


def test_parser_stops_at_magic_mismatch():
    data = bytearray(build_zip([Member("a", b"a", method=0), Member("b", b"b", method=0)]))
    second = data.index(b"PK\x01\x02", data.index(b"PK\x01\x02") + 4)
    data[second:second + 4] = b"JUNK"
    _, directory, result = _parse(bytes(data))
    assert [e.name for e in directory.entries] == ["a"]
    kinds = {d.kind for d in result.diagnostics}
    assert kinds == {DiagnosticKind.PARTIAL_DIRECTORY}
    # one for the mismatch, one for the size mismatch
    assert len(result.diagnostics) == 2


# --- 4. Rebuilding ---

def _entry(name: bytes, offset: int) -> CentralDirectoryEntry:
    return CentralDirectoryEntry(
        version_made_by=20, version_needed=20, flag=0x08, compression_method=0,
        last_mod_time=0, last_mod_date=0x21, crc32=0, compressed_size=0,
        uncompressed_size=0, filename_len=len(name), extra_field_len=9,
        comment_len=3, disk_file_start=0, internal_attributes=0,
        external_attributes=0, local_header_offset=offset, filename=name,
    )


def test_rebuilder_writes_directory_and_eocd():
    buf = bytearray(300)
    buf[30:35] = b"alpha"
    buf[70:74] = b"beta"
    entries = [_entry(b"alpha", 0), _entry(b"beta", 40)]
    eocd = EndOfCentralDirectory(0, 0, 5, 5, 999, 999, 12)
    result = ZipShrinkResult(name="", depth=1, original_size=300)

    end = DirectoryRebuilder(buf, 0, 300).write(80, entries, eocd, result)

    assert end == 80 + (46 + 5) + (46 + 4) + 22
    assert bytes(buf[80 + 46:80 + 51]) == b"alpha"
    new_eocd = EndOfCentralDirectory.from_bytes(bytes(buf[end - 22:end]))
    assert new_eocd.num_records == new_eocd.num_records_total == 2
    assert new_eocd.cd_offset == 80
    assert new_eocd.cd_size == end - 22 - 80
    assert new_eocd.comment_len == 0
    assert all(e.flag == 0 and e.extra_field_len == 0 and e.comment_len == 0 for e in entries)


def test_rebuilder_drops_entries_that_do_not_fit():
    buf = bytearray(300)
    entries = [_entry(b"alpha", 0), _entry(b"beta", 40)]
    eocd = EndOfCentralDirectory(0, 0, 2, 2, 0, 0, 0)
    result = ZipShrinkResult(name="", depth=1, original_size=200)
    result.entries = [
        EntryOutcome("alpha", EntryAction.KEPT, 5, 5),
        EntryOutcome("beta", EntryAction.KEPT, 5, 5),
    ]

    end = DirectoryRebuilder(buf, 0, 180).write(80, entries, eocd, result, list(result.entries))

    # beta released, directory starts where beta's header was
    assert [e.name for e in entries] == ["alpha"]
    assert end == 40 + 46 + 5 + 22
    assert result.entries[1].action is EntryAction.DROPPED
    assert result.diagnostics[0].kind is DiagnosticKind.DIRECTORY_OVERFLOW


def test_rebuilder_overflow_marks_the_dropped_duplicate():
    buf = bytearray(300)
    entries = [_entry(b"same", 0), _entry(b"same", 40)]
    eocd = EndOfCentralDirectory(0, 0, 2, 2, 0, 0, 0)
    result = ZipShrinkResult(name="", depth=1, original_size=200)
    first = EntryOutcome("same", EntryAction.KEPT, 5, 5)
    second = EntryOutcome("same", EntryAction.KEPT, 5, 5)
    result.entries = [first, second]

    end = DirectoryRebuilder(buf, 0, 180).write(80, entries, eocd, result, [first, second])

    assert len(entries) == 1
    assert end == 40 + 46 + 4 + 22
    assert first.action is EntryAction.KEPT
    assert second.action is EntryAction.DROPPED
    assert second.new_size == 0
