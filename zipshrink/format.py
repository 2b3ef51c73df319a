"""
zipshrink Format System

A Format is a region of a shared bytearray that knows how to rewrite itself
into an equal-or-smaller layout. This module defines the base Format class
and the trivial RawFormat.

Key concepts:
- Region: buf[offset:offset+size] holds the input bytes
- size_shrunk: how far below ``offset`` the output must start. A parent
  that has already shrunk everything before this region asks for the result
  to be written lower in the buffer, closing the gap as it goes.
- depth: nesting level of this region (the top-level file is depth 1)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from zipshrink.shrinker import Shrinker


class Format(ABC):
    """Base class for all shrinkable formats.

    Subclasses implement:
        - label: Human-readable format identifier
        - matches(): Whether a region looks like this format
        - shrink(): Rewrite the region, return the new size

    Usage:
        fmt = ZipFormat(buf, 0, len(buf), shrinker)
        new_size = fmt.shrink()
        data = bytes(buf[:new_size])
    """

    def __init__(
        self,
        buf: bytearray,
        offset: int,
        size: int,
        shrinker: Optional[Shrinker] = None,
        depth: int = 1,
        name: str = "",
    ) -> None:
        self.buf = buf
        self.offset = offset
        self.size = size
        self.shrinker = shrinker
        self.depth = depth
        self.name = name

    @property
    @abstractmethod
    def label(self) -> str:
        """Unique identifier for this format (e.g., 'ZIP', 'Raw')."""
        ...

    @classmethod
    def matches(cls, buf: bytearray, offset: int, size: int, name: str = "") -> bool:
        """Whether buf[offset:offset+size] should be handled by this format."""
        return False

    @abstractmethod
    def shrink(self, size_shrunk: int = 0) -> int:
        """Rewrite the region at ``offset - size_shrunk`` and return its new size.

        Must not read past ``offset + size`` and must return a size no larger
        than ``size``.
        """
        ...

    def move(self, size_shrunk: int = 0) -> int:
        """Pass-through: relocate the bytes unchanged."""
        if size_shrunk:
            dst = self.offset - size_shrunk
            self.buf[dst:dst + self.size] = self.buf[self.offset:self.offset + self.size]
        return self.size

    def __repr__(self) -> str:
        return f"<Format:{self.label} {self.name or '<bytes>'} {self.size}B depth={self.depth}>"


class RawFormat(Format):
    """Bytes with no known structure. Every region matches; nothing shrinks."""

    @property
    def label(self) -> str:
        return "Raw"

    @classmethod
    def matches(cls, buf: bytearray, offset: int, size: int, name: str = "") -> bool:
        return True

    def shrink(self, size_shrunk: int = 0) -> int:
        return self.move(size_shrunk)
