"""
zipshrink Results

What a shrink pass reports back. The engine never raises out of a pass;
everything that went wrong is recorded here as a status plus diagnostics,
and everything that was done is recorded as per-entry outcomes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ShrinkStatus(Enum):
    OK = "ok"
    PARTIAL = "partial"            # Stopped early, entries so far were kept
    NOT_A_ZIP = "not_a_zip"        # No usable EOCD, bytes passed through
    UNSUPPORTED = "unsupported"    # Split/spanned or corrupt directory bounds


class DiagnosticKind(Enum):
    PARTIAL_DIRECTORY = "partial_directory"
    INVALID_LOCAL_HEADER = "invalid_local_header"
    OVERLAPPING_ENTRY = "overlapping_entry"
    TRUNCATED_PAYLOAD = "truncated_payload"
    DECOMPRESSION_FAILURE = "decompression_failure"
    FILENAME_LENGTH_MISMATCH = "filename_length_mismatch"
    DIRECTORY_OVERFLOW = "directory_overflow"
    NOT_A_ZIP = "not_a_zip"
    UNSUPPORTED_ARCHIVE = "unsupported_archive"


class EntryAction(Enum):
    KEPT = "kept"                  # Payload copied verbatim
    SHRUNK = "shrunk"              # Stored payload rewritten by a nested pass
    RECOMPRESSED = "recompressed"  # New deflate stream replaced the old one
    STORED = "stored"              # Deflate dropped, payload now stored
    EMPTY = "empty"                # Zero-length deflate member made stored
    DROPPED = "dropped"            # Not written to the output at all


@dataclass(frozen=True)
class Diagnostic:
    kind: DiagnosticKind
    message: str
    offset: Optional[int] = None

    def __str__(self) -> str:
        where = f" at {self.offset:#x}" if self.offset is not None else ""
        return f"{self.message}{where}"


@dataclass
class EntryOutcome:
    """How one archive member was handled."""
    name: str
    action: EntryAction
    original_size: int
    new_size: int
    method: int = 0

    @property
    def saved(self) -> int:
        return self.original_size - self.new_size

    def __repr__(self) -> str:
        return (
            f"<Entry {self.name!r} {self.action.value} "
            f"{self.original_size}→{self.new_size}B>"
        )


@dataclass
class ZipShrinkResult:
    """The output of one archive pass."""
    name: str
    depth: int
    original_size: int
    size: int = 0
    status: ShrinkStatus = ShrinkStatus.OK
    zip_offset: int = 0
    base_offset: int = 0
    entries: list[EntryOutcome] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """The archive was rewritten (possibly partially)."""
        return self.status in (ShrinkStatus.OK, ShrinkStatus.PARTIAL)

    @property
    def saved(self) -> int:
        return self.original_size - self.size

    @property
    def ratio(self) -> float:
        if self.original_size == 0:
            return 1.0
        return self.size / self.original_size

    @property
    def written(self) -> list[EntryOutcome]:
        """Entries that made it into the rebuilt directory."""
        return [e for e in self.entries if e.action is not EntryAction.DROPPED]

    def warn(self, kind: DiagnosticKind, message: str, offset: Optional[int] = None) -> None:
        self.diagnostics.append(Diagnostic(kind, message, offset))

    def __repr__(self) -> str:
        return (
            f"<ZipShrinkResult: {self.status.value} {self.name or '<bytes>'} "
            f"{self.original_size}→{self.size}B entries={len(self.written)} "
            f"diagnostics={len(self.diagnostics)}>"
        )
