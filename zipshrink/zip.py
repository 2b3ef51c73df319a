"""
zipshrink ZIP Format

Rewrites a ZIP archive in place. ZIP is the format this package exists for:
1. ZIP readers seek from the END of the file (End of Central Directory)
2. so a ZIP can sit behind any prefix (self-extracting stubs, junk)
3. and every member is itself a buffer that may shrink further

Pipeline: locate → parse directory → compact entries → rebuild directory.
"""

from __future__ import annotations

import os
from typing import Optional

from zipshrink.compactor import Compactor
from zipshrink.directory import DirectoryParser, DirectoryRebuilder, ParsedDirectory
from zipshrink.errors import ZipShrinkError
from zipshrink.format import Format
from zipshrink.locator import ArchiveLayout, find_eocd, locate
from zipshrink.records import EOCD_SIGNATURE, LOCAL_FILE_SIGNATURE
from zipshrink.recompress import Recompressor
from zipshrink.result import ShrinkStatus, ZipShrinkResult


# Extensions of formats that are ZIP containers underneath
ZIP_EXTENSIONS = frozenset({
    "zip", "jar", "apk", "xpi", "epub", "docx", "xlsx", "pptx",
    "odt", "ods", "odp", "war", "ear", "aar", "whl", "ipa", "nupkg",
})


class ZipFormat(Format):

    @property
    def label(self) -> str:
        return "ZIP"

    @classmethod
    def matches(cls, buf: bytearray, offset: int, size: int, name: str = "") -> bool:
        head = bytes(buf[offset:offset + 4])
        if head in (LOCAL_FILE_SIGNATURE, EOCD_SIGNATURE):
            return True
        # Named like a ZIP container but with a prefix (e.g. an SFX stub)
        ext = os.path.splitext(name)[1].lstrip(".").lower()
        return ext in ZIP_EXTENSIONS and find_eocd(buf, offset, offset + size) >= 0

    def shrink(self, size_shrunk: int = 0) -> int:
        return self.run(size_shrunk).size

    def run(self, size_shrunk: int = 0) -> ZipShrinkResult:
        """Rewrite the archive and describe what happened.

        No exception escapes: an input that is not a usable archive is moved
        unchanged and reported through ``status``.
        """
        if self.shrinker is None:
            from zipshrink.shrinker import Shrinker
            self.shrinker = Shrinker()

        result = ZipShrinkResult(name=self.name, depth=self.depth, original_size=self.size)
        try:
            layout = locate(self.buf, self.offset, self.size)
        except ZipShrinkError as e:
            result.status = e.status
            result.warn(e.kind, str(e), e.offset)
            result.size = self.move(size_shrunk)
            self.shrinker.record(result)
            return result

        result.zip_offset = layout.zip_offset
        directory = DirectoryParser(self.buf, self.offset, self.size).parse(layout, result)
        result.size = self._rewrite(layout, directory, size_shrunk, result)
        self.shrinker.record(result)
        return result

    def _rewrite(
        self,
        layout: ArchiveLayout,
        directory: ParsedDirectory,
        size_shrunk: int,
        result: ZipShrinkResult,
    ) -> int:
        shrinker = self.shrinker
        out_start = self.offset - size_shrunk

        report = None
        if self.depth <= shrinker.options.max_depth:
            def report(entry_name: str) -> None:
                shrinker.report(entry_name, self.depth)

        recompressor = Recompressor(self.buf, shrinker, self.depth, result)
        compaction = Compactor(
            self.buf, self.offset, self.size, size_shrunk, recompressor, result, report,
        ).run(directory.entries, layout.zip_offset, directory.base_offset)
        if compaction.truncated:
            result.status = ShrinkStatus.PARTIAL

        end = DirectoryRebuilder(
            self.buf, compaction.write_base, out_start + self.size,
        ).write(
            compaction.write_pos, compaction.survivors, layout.eocd, result, compaction.outcomes,
        )
        return end - out_start


def inspect_archive(data: bytes, name: str = "") -> tuple[Optional[ArchiveLayout], ParsedDirectory, ZipShrinkResult]:
    """Parse an archive's directory without modifying anything.

    Returns (layout, directory, result); layout is None when the data is not
    a usable archive, in which case ``result.status`` says why.
    """
    buf = bytearray(data)
    result = ZipShrinkResult(name=name, depth=1, original_size=len(buf), size=len(buf))
    try:
        layout = locate(buf, 0, len(buf))
    except ZipShrinkError as e:
        result.status = e.status
        result.warn(e.kind, str(e), e.offset)
        return None, ParsedDirectory(), result
    result.zip_offset = layout.zip_offset
    directory = DirectoryParser(buf, 0, len(buf)).parse(layout, result)
    return layout, directory, result
