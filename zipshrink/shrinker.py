"""
zipshrink Shrinker

The dispatcher. Registry of known Formats; given a region of a buffer it
picks the first Format that claims it and asks it to shrink. Formats call
back into the Shrinker for every nested payload, one level deeper each time.

Usage:
    shrinker = Shrinker(ShrinkOptions(max_depth=4))
    smaller = shrinker.shrink_bytes(Path("bundle.jar").read_bytes(), name="bundle.jar")
    print(shrinker.top_result)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from zipshrink.codecs import ENCODERS, Deflater, make_deflater
from zipshrink.format import Format, RawFormat
from zipshrink.records import Limits
from zipshrink.result import ZipShrinkResult
from zipshrink.zip import ZipFormat


@dataclass
class ShrinkOptions:
    """Recursion and compression controls."""
    # Regions nested deeper than this are moved, not shrunk
    max_depth: int = Limits.DEFAULT_MAX_DEPTH
    # Skip recompression and nested shrinking entirely
    fast: bool = False
    iterations: int = Limits.DEFAULT_ITERATIONS
    encoder: str = "zopfli"

    def __post_init__(self) -> None:
        if self.max_depth < 0:
            raise ValueError(f"max_depth must be >= 0, got {self.max_depth}")
        if self.iterations < 1:
            raise ValueError(f"iterations must be >= 1, got {self.iterations}")
        if self.encoder not in ENCODERS:
            raise ValueError(f"Unknown encoder '{self.encoder}'. Available: {list(ENCODERS)}")


class Shrinker:
    """Dispatches buffer regions to the Format that can shrink them."""

    def __init__(
        self,
        options: Optional[ShrinkOptions] = None,
        on_entry: Optional[Callable[[str, int], None]] = None,
        deflater: Optional[Deflater] = None,
    ) -> None:
        self.options = options or ShrinkOptions()
        self.on_entry = on_entry
        self.deflater = deflater or make_deflater(self.options.encoder, self.options.iterations)
        self.results: list[ZipShrinkResult] = []
        self._formats: list[type[Format]] = []
        self.register(ZipFormat)

    def register(self, fmt: type[Format]) -> None:
        """Register a Format; earlier registrations are tried first."""
        if fmt not in self._formats:
            self._formats.append(fmt)

    @property
    def formats(self) -> list[str]:
        return [f.__name__ for f in self._formats]

    def detect(self, buf: bytearray, offset: int, size: int, name: str = "") -> type[Format]:
        for fmt in self._formats:
            if fmt.matches(buf, offset, size, name):
                return fmt
        return RawFormat

    def shrink(
        self,
        buf: bytearray,
        offset: int,
        size: int,
        size_shrunk: int = 0,
        name: str = "",
        depth: int = 1,
    ) -> int:
        """Shrink buf[offset:offset+size], writing at ``offset - size_shrunk``.

        Returns the new size, never more than ``size``.
        """
        if depth > self.options.max_depth:
            fmt: type[Format] = RawFormat
        else:
            fmt = self.detect(buf, offset, size, name)
        return fmt(buf, offset, size, shrinker=self, depth=depth, name=name).shrink(size_shrunk)

    def shrink_bytes(self, data: bytes, name: str = "") -> bytes:
        """Convenience wrapper: shrink a whole byte string, return the result."""
        self.results.clear()
        buf = bytearray(data)
        new_size = self.shrink(buf, 0, len(buf), name=name)
        return bytes(buf[:new_size])

    def report(self, name: str, depth: int) -> None:
        if self.on_entry is not None:
            self.on_entry(name, depth)

    def record(self, result: ZipShrinkResult) -> None:
        self.results.append(result)

    @property
    def top_result(self) -> Optional[ZipShrinkResult]:
        """Result of the outermost archive of the last run, if it was one."""
        for result in reversed(self.results):
            if result.depth == 1:
                return result
        return None

    def __repr__(self) -> str:
        return f"<Shrinker: {len(self._formats)} formats, {self.deflater!r}, depth≤{self.options.max_depth}>"
