"""
Single-pass tokenizer for the bracket-marker generation protocol.

    [[START_FILE: path | mode: edit | reason: ...]]
    ...file content...
    [[END_FILE]]

    [[EDIT_NODE: path]]
    [[SEARCH]]
    old text
    [[REPLACE]]
    new text
    [[END_EDIT]]
    [[END_FILE]]

    [[DELETE_FILE: path | reason: ...]]
    [[MOVE_FILE: from -> to | reason: ...]]

Text is consumed once: the decoder keeps only the unconsumed tail (a possible
marker still being received, or a trailing newline whose fate depends on the
next marker). Anything in ``[[...]]`` that is not a known marker is content.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import List, Optional, Tuple

from ..models.events import (
    AnyEvent,
    FileChunk,
    FileDelete,
    FileEnd,
    FileMove,
    FileStart,
    SearchReplaceEdit,
    WriteMode,
)
from .path_rules import strip_trailing_marker_fragment

logger = logging.getLogger(__name__)

MAX_MARKER_LEN = 512

# Markers that carry a ``NAME: payload`` body, with the mode they default to.
OPEN_MARKERS = {
    "START_FILE": WriteMode.CREATE,
    "PATCH_FILE": WriteMode.CREATE,
    "EDIT_FILE": WriteMode.EDIT,
    "EDIT_NODE": WriteMode.EDIT,
}
PAYLOAD_MARKERS = tuple(OPEN_MARKERS) + ("DELETE_FILE", "MOVE_FILE")
BARE_MARKERS = ("END_FILE", "SEARCH", "REPLACE", "END_EDIT", "PARTIAL_FILE_CLOSED")

_MODE_RE = re.compile(r"^mode\s*[:=]\s*(create|edit)\s*$", re.IGNORECASE)
_REASON_RE = re.compile(r"^reason\s*[:=]\s*", re.IGNORECASE)


class LineCursor:
    """Counts the lines of content streamed for one file."""

    def __init__(self):
        self.newlines = 0
        self.dangling = False

    def advance(self, text: str) -> None:
        if not text:
            return
        self.newlines += text.count("\n")
        self.dangling = not text.endswith("\n")

    @property
    def line(self) -> int:
        return self.newlines + (1 if self.dangling else 0)


def parse_open_payload(payload: str, fallback: WriteMode) -> Tuple[str, WriteMode, Optional[str]]:
    parts = [p.strip() for p in payload.split("|") if p.strip()]
    if not parts:
        return "", fallback, None
    mode = fallback
    reason = None
    for part in parts[1:]:
        mode_match = _MODE_RE.match(part)
        if mode_match:
            mode = WriteMode(mode_match.group(1).lower())
            continue
        if _REASON_RE.match(part):
            reason = _REASON_RE.sub("", part).strip() or None
    return parts[0], mode, reason


def _trailing_reason(rest: List[str]) -> Optional[str]:
    joined = " | ".join(p.strip() for p in rest if p.strip())
    if not joined:
        return None
    return _REASON_RE.sub("", joined).strip() or None


def parse_delete_payload(payload: str) -> Tuple[str, Optional[str]]:
    parts = [p.strip() for p in payload.split("|") if p.strip()]
    if not parts:
        return "", None
    return parts[0], _trailing_reason(parts[1:])


def parse_move_payload(payload: str) -> Tuple[str, str, Optional[str]]:
    route, *rest = payload.split("|")
    arrow = route.find("->")
    if arrow == -1:
        return "", "", None
    return route[:arrow].strip(), route[arrow + 2:].strip(), _trailing_reason(rest)


def _could_become_marker(body: str) -> bool:
    """True while an unterminated ``[[body`` may still turn into a known marker."""
    if ":" in body:
        return body.split(":", 1)[0] in PAYLOAD_MARKERS
    candidate = body[:-1] if body.endswith("]") else body
    if body.endswith("]") and candidate in BARE_MARKERS:
        return True
    return any(name.startswith(body) for name in PAYLOAD_MARKERS + BARE_MARKERS)


class _Block(str, Enum):
    BODY = "body"
    SEARCH = "search"
    REPLACE = "replace"


class MarkerStreamDecoder:
    """
    Explicit state machine: idle, or writing one file (optionally inside a
    search/replace sub-block). State is never reset between chunks.
    """

    def __init__(self):
        self._buf = ""
        self._events: List[AnyEvent] = []

        self._path: Optional[str] = None
        self._mode = WriteMode.CREATE
        self._reason: Optional[str] = None
        self._cursor = LineCursor()
        self._skip_leading_newline = False

        self._block = _Block.BODY
        self._search: List[str] = []
        self._replace: List[str] = []
        self._edits: List[SearchReplaceEdit] = []

    @property
    def writing_path(self) -> Optional[str]:
        return self._path

    def feed(self, chunk: str) -> List[AnyEvent]:
        if chunk:
            self._buf += chunk
            self._drain()
        return self._take()

    def finish(self) -> List[AnyEvent]:
        rest, self._buf = self._buf, ""
        if self._path is not None:
            rest = strip_trailing_marker_fragment(rest)
            if self._block is _Block.BODY:
                self._text(rest)
            elif self._search or self._replace:
                logger.warning(f"Dropping unterminated search/replace block in {self._path}")
            logger.warning(f"Marker stream ended while writing {self._path}")
            self._close(partial=True)
        return self._take()

    def _take(self) -> List[AnyEvent]:
        events, self._events = self._events, []
        return events

    def _drain(self) -> None:
        buf = self._buf
        pos = 0
        while True:
            idx = buf.find("[[", pos)
            if idx == -1:
                end = self._hold_back(buf, pos, len(buf))
                self._text(buf[pos:end])
                pos = end
                break

            body_start = idx + 2
            close = buf.find("]]", body_start, body_start + MAX_MARKER_LEN + 2)
            body = buf[body_start:close] if close != -1 else buf[body_start:body_start + MAX_MARKER_LEN + 1]

            if body.startswith("[") or "\n" in body or "[[" in body or len(body) > MAX_MARKER_LEN:
                self._text(buf[pos:idx + 1])
                pos = idx + 1
                continue

            if close == -1:
                if _could_become_marker(body):
                    end = self._hold_back(buf, pos, idx)
                    self._text(buf[pos:end])
                    pos = end
                    break
                self._text(buf[pos:idx + 1])
                pos = idx + 1
                continue

            name, sep, payload = body.partition(":")
            known = (sep and name in PAYLOAD_MARKERS) or (not sep and body in BARE_MARKERS)
            if not known:
                self._text(buf[pos:idx + 1])
                pos = idx + 1
                continue

            self._text(self._strip_one_newline(buf[pos:idx], name))
            pos = close + 2
            self._marker(name, payload.strip())
        self._buf = buf[pos:]

    def _hold_back(self, buf: str, start: int, end: int) -> int:
        """Keep a trailing ``[`` and the newline before it for the next chunk."""
        if end > start and buf[end - 1] == "[":
            end -= 1
        if self._path is not None and end > start and buf[end - 1] == "\n":
            end -= 1
        return end

    def _strip_one_newline(self, segment: str, marker: str) -> str:
        if marker in ("END_FILE", "SEARCH", "REPLACE", "END_EDIT") or marker in PAYLOAD_MARKERS:
            if segment.endswith("\n"):
                return segment[:-1]
        return segment

    def _text(self, text: str) -> None:
        if not text or self._path is None:
            return
        if self._skip_leading_newline:
            self._skip_leading_newline = False
            if text.startswith("\n"):
                text = text[1:]
                if not text:
                    return
        if self._block is _Block.SEARCH:
            self._search.append(text)
        elif self._block is _Block.REPLACE:
            self._replace.append(text)
        else:
            self._cursor.advance(text)
            self._events.append(FileChunk(path=self._path, text=text))

    def _marker(self, name: str, payload: str) -> None:
        if name in OPEN_MARKERS:
            if self._path is not None:
                self._close(partial=False)
            path, mode, reason = parse_open_payload(payload, OPEN_MARKERS[name])
            if path:
                self._open(path, mode, reason)
            return

        if name == "DELETE_FILE":
            if self._path is not None:
                self._close(partial=False)
            path, reason = parse_delete_payload(payload)
            if path:
                self._events.append(FileDelete(path=path, reason=reason))
            return

        if name == "MOVE_FILE":
            if self._path is not None:
                self._close(partial=False)
            from_path, to_path, reason = parse_move_payload(payload)
            if from_path and to_path:
                self._events.append(FileMove(from_path=from_path, to_path=to_path, reason=reason))
            return

        if self._path is None:
            return

        if name == "END_FILE":
            self._close(partial=False)
        elif name == "SEARCH":
            self._block = _Block.SEARCH
            self._search, self._replace = [], []
            self._skip_leading_newline = True
        elif name == "REPLACE" and self._block is _Block.SEARCH:
            self._block = _Block.REPLACE
            self._skip_leading_newline = True
        elif name == "END_EDIT" and self._block is not _Block.BODY:
            search = "".join(self._search)
            if search:
                self._edits.append(SearchReplaceEdit(search=search, replace="".join(self._replace)))
            self._block = _Block.BODY
            self._search, self._replace = [], []
            self._skip_leading_newline = True
        # PARTIAL_FILE_CLOSED carries no content; drop it.

    def _open(self, path: str, mode: WriteMode, reason: Optional[str]) -> None:
        self._path = path
        self._mode = mode
        self._reason = reason
        self._cursor = LineCursor()
        self._skip_leading_newline = True
        self._block = _Block.BODY
        self._edits = []
        self._events.append(FileStart(raw_path=path, path=path, mode=mode, reason=reason))

    def _close(self, partial: bool) -> None:
        self._events.append(
            FileEnd(
                path=self._path,
                mode=self._mode,
                partial=partial,
                cursor_line=self._cursor.line,
                edits=list(self._edits),
            )
        )
        self._path = None
        self._reason = None
        self._edits = []
        self._block = _Block.BODY
        self._search, self._replace = [], []
        self._skip_leading_newline = False
