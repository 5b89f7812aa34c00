"""
In-memory project file tree that canonical mutation events are applied to.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from ..models.events import AnyEvent, FileChunk, FileDelete, FileEnd, FileMove, FileStart, SearchReplaceEdit, WriteMode
from ..models.integrity import FileIntegrityStatus

logger = logging.getLogger(__name__)


@dataclass
class _OpenFile:
    mode: WriteMode
    base: str
    existed: bool = True
    append: bool = False
    parts: List[str] = field(default_factory=list)

    def visible(self) -> str:
        streamed = "".join(self.parts)
        return self.base + streamed if self.append else streamed


def apply_search_replace(base: str, edits: List[SearchReplaceEdit]) -> Tuple[str, List[str]]:
    """
    Apply edits in order, first occurrence only.

    Falls back to a whitespace-trimmed search when the exact text is absent.
    Returns the new content and the search texts that matched nothing.
    """
    content = base
    failed: List[str] = []
    for edit in edits:
        if edit.search in content:
            content = content.replace(edit.search, edit.replace, 1)
            continue
        trimmed = edit.search.strip()
        if trimmed and trimmed in content:
            content = content.replace(trimmed, edit.replace.strip(), 1)
            continue
        failed.append(edit.search)
    return content, failed


RESTART_PROBE_CHARS = 160
MIN_RESTART_CHARS = 80
MIN_OVERLAP_CHARS = 40
MAX_OVERLAP_CHARS = 2000


def stabilize_resume_content(base: str, continuation: str) -> str:
    """
    Join a resumed continuation onto the content streamed before the cut.

    A continuation that starts over from the top of the file replaces the
    base. Otherwise the longest suffix of the base (40 to 2000 chars) that
    the continuation repeats at its start is dropped once.
    """
    if not base:
        return continuation
    if not continuation:
        return base

    probe = min(RESTART_PROBE_CHARS, len(base), len(continuation))
    if probe >= MIN_RESTART_CHARS and continuation[:probe] == base[:probe]:
        logger.info("Resumed stream restarted the file; keeping the new copy")
        return continuation

    longest = min(len(base), len(continuation), MAX_OVERLAP_CHARS)
    for overlap in range(longest, MIN_OVERLAP_CHARS - 1, -1):
        if base.endswith(continuation[:overlap]):
            logger.info(f"Dropped {overlap} repeated chars from resumed stream")
            return base + continuation[overlap:]
    return base + continuation


class ProjectState:
    """
    Path -> content map plus per-file integrity status.

    Create-mode files are visible while they stream. Edit-mode files keep
    their previous content until the ``End`` decides between a full
    replacement and a search/replace patch against that content.

    ``stream_base`` keeps the raw streamed text of files the healer rewrote,
    so a resumed stream continues from what the generator actually wrote.
    """

    def __init__(self, files: Optional[Mapping[str, str]] = None):
        self.files: Dict[str, str] = dict(files or {})
        self.statuses: Dict[str, FileIntegrityStatus] = {path: FileIntegrityStatus.READY for path in self.files}
        self.stream_base: Dict[str, str] = {}
        self._open: Dict[str, _OpenFile] = {}

    def snapshot(self) -> Dict[str, str]:
        return dict(self.files)

    def set_content(self, path: str, content: str) -> None:
        self.files[path] = content

    def apply(self, event: AnyEvent) -> Optional[str]:
        """
        Apply one canonical event.

        Returns the file's content after an ``End``, or None when the ``End``
        wrote nothing (an edit of a missing file where no edit applied).
        """
        if isinstance(event, FileStart):
            existed = event.path in self.files
            base = self.files.get(event.path, "")
            unhealed = self.stream_base.pop(event.path, None)
            if event.append and unhealed is not None:
                base = unhealed
            open_file = _OpenFile(mode=event.mode, base=base, existed=existed, append=event.append)
            self._open[event.path] = open_file
            if event.mode == WriteMode.CREATE:
                self.files[event.path] = open_file.visible()
            return None

        if isinstance(event, FileChunk):
            open_file = self._open.get(event.path)
            if open_file is None:
                # Chunk without a Start (lost mapping): stream into the file as-is.
                open_file = _OpenFile(
                    mode=WriteMode.CREATE,
                    base="",
                    existed=event.path in self.files,
                    parts=[self.files.get(event.path, "")],
                )
                self._open[event.path] = open_file
            open_file.parts.append(event.text)
            if open_file.mode == WriteMode.CREATE:
                self.files[event.path] = open_file.visible()
            return None

        if isinstance(event, FileEnd):
            open_file = self._open.pop(event.path, None)
            if open_file is None:
                return self.files.get(event.path)
            streamed = "".join(open_file.parts)
            if event.edits:
                content, failed = apply_search_replace(open_file.base, event.edits)
                for search in failed:
                    logger.warning(f"Search block not found in {event.path}: {search[:60]!r}")
                if not open_file.existed and len(failed) == len(event.edits):
                    logger.warning(f"No edit applied to missing file {event.path}; nothing written")
                    return None
            elif open_file.append:
                content = stabilize_resume_content(open_file.base, streamed)
            elif open_file.mode == WriteMode.EDIT and not streamed.strip():
                if not open_file.existed:
                    return None
                content = open_file.base
            else:
                content = streamed
            self.files[event.path] = content
            return content

        if isinstance(event, FileDelete):
            self._open.pop(event.path, None)
            self.files.pop(event.path, None)
            self.statuses.pop(event.path, None)
            self.stream_base.pop(event.path, None)
            return None

        if isinstance(event, FileMove):
            if event.from_path in self._open:
                self._open[event.to_path] = self._open.pop(event.from_path)
            if event.from_path in self.files:
                self.files[event.to_path] = self.files.pop(event.from_path)
            if event.from_path in self.stream_base:
                self.stream_base[event.to_path] = self.stream_base.pop(event.from_path)
            status = self.statuses.pop(event.from_path, None)
            if status is not None:
                self.statuses[event.to_path] = status
            return None

        raise TypeError(f"Unsupported event type: {type(event).__name__}")
