"""
zipshrink - In-place ZIP archive recompressor
Rewrites ZIP containers into an equal-or-smaller layout, recursively.

Locator → Directory Parser → Compactor (+ Recompression Engine) → Directory Rebuilder
"""

__version__ = "0.4.0"

from typing import Optional

from zipshrink.format import Format, RawFormat
from zipshrink.zip import ZipFormat, inspect_archive
from zipshrink.shrinker import Shrinker, ShrinkOptions
from zipshrink.codecs import Deflater, ZopfliDeflater, ZlibDeflater
from zipshrink.result import (
    ZipShrinkResult,
    ShrinkStatus,
    Diagnostic,
    DiagnosticKind,
    EntryAction,
    EntryOutcome,
)
from zipshrink.errors import (
    ZipShrinkError,
    NotAZipError,
    UnsupportedArchiveError,
    InflateError,
)


def shrink_zip(data: bytes, options: Optional[ShrinkOptions] = None, name: str = "") -> bytes:
    """Shrink a whole file held in memory and return the rewritten bytes."""
    return Shrinker(options).shrink_bytes(data, name=name)


__all__ = [
    "Format",
    "RawFormat",
    "ZipFormat",
    "inspect_archive",
    "Shrinker",
    "ShrinkOptions",
    "Deflater",
    "ZopfliDeflater",
    "ZlibDeflater",
    "ZipShrinkResult",
    "ShrinkStatus",
    "Diagnostic",
    "DiagnosticKind",
    "EntryAction",
    "EntryOutcome",
    "ZipShrinkError",
    "NotAZipError",
    "UnsupportedArchiveError",
    "InflateError",
    "shrink_zip",
]
