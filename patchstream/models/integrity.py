"""
Integrity models: file kinds, per-file status and scan/heal results.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class FileKind(str, Enum):
    """Structural family of a file, derived from its extension."""

    MARKUP = "markup"
    STYLE = "style"
    SCRIPT = "script"
    OTHER = "other"


_EXTENSION_KINDS = {
    ".html": FileKind.MARKUP,
    ".htm": FileKind.MARKUP,
    ".css": FileKind.STYLE,
    ".js": FileKind.SCRIPT,
    ".mjs": FileKind.SCRIPT,
    ".cjs": FileKind.SCRIPT,
    ".jsx": FileKind.SCRIPT,
    ".ts": FileKind.SCRIPT,
    ".tsx": FileKind.SCRIPT,
}


def file_kind_for_path(path: str) -> FileKind:
    name = (path or "").rsplit("/", 1)[-1].lower()
    dot = name.rfind(".")
    if dot <= 0:
        return FileKind.OTHER
    return _EXTENSION_KINDS.get(name[dot:], FileKind.OTHER)


class FileIntegrityStatus(str, Enum):
    """
    Per-file stream status.

    PARTIAL: the stream was interrupted or the scan failed and no safe repair exists.
    COMPROMISED: a deterministic repair changed the content; kept as best-effort.
    """

    READY = "ready"
    WRITING = "writing"
    PARTIAL = "partial"
    COMPROMISED = "compromised"


class ScanResult(BaseModel):
    ok: bool
    reason: Optional[str] = None

    @classmethod
    def passed(cls) -> "ScanResult":
        return cls(ok=True)

    @classmethod
    def failed(cls, reason: str) -> "ScanResult":
        return cls(ok=False, reason=reason)


class HealResult(BaseModel):
    """Outcome of a deterministic repair attempt."""

    content: str
    repaired: bool = False
    ok: bool = True
    reason: Optional[str] = None
