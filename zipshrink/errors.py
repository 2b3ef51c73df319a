"""
zipshrink Errors

Raised inside a pass and converted to a ShrinkStatus at the ZipFormat
boundary; callers of the public API see results, not these.
"""

from __future__ import annotations

from typing import Optional

from zipshrink.result import DiagnosticKind, ShrinkStatus


class ZipShrinkError(Exception):
    """Base class for zipshrink errors."""
    status = ShrinkStatus.UNSUPPORTED
    kind = DiagnosticKind.UNSUPPORTED_ARCHIVE

    def __init__(self, message: str, offset: Optional[int] = None):
        super().__init__(message)
        self.offset = offset


class NotAZipError(ZipShrinkError):
    """No End of Central Directory record could be used."""
    status = ShrinkStatus.NOT_A_ZIP
    kind = DiagnosticKind.NOT_A_ZIP


class UnsupportedArchiveError(ZipShrinkError):
    """Split/spanned archive or a directory that runs past the EOCD."""


class InflateError(ZipShrinkError):
    """A deflate stream could not be fully decoded."""
    kind = DiagnosticKind.DECOMPRESSION_FAILURE
