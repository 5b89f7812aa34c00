"""
Incremental decoder for the JSON-shaped generation payload.

The payload is ``{"project_files": [{"name": ..., "content": ...}, ...]}``,
possibly wrapped in prose, arbitrarily large and arriving in arbitrary
slices. The decoder is a pushdown automaton over object/array frames; it
never buffers the whole payload and never waits for a closing quote before
forwarding file content.

Emission is per decoded character, so the event sequence is identical for
every way of splitting the same payload into chunks.
"""

from __future__ import annotations

import logging
import string
from typing import List, Optional, Sequence

from ..models.events import AnyEvent, FileChunk, FileEnd, FileStart, WriteMode
from .marker_stream_decoder import LineCursor

logger = logging.getLogger(__name__)

_SIMPLE_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "/": "/",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "b": "\b",
    "f": "\f",
}

_REPLACEMENT = "\ufffd"


class JsonStringDecoder:
    """Streaming JSON string-escape decoder; state survives between writes."""

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self._escaping = False
        self._unicode: Optional[str] = None
        self._high_surrogate: Optional[int] = None

    @property
    def pending(self) -> bool:
        return self._escaping or self._unicode is not None or self._high_surrogate is not None

    def write(self, text: str) -> str:
        out: List[str] = []
        for ch in text:
            if self._unicode is not None:
                self._unicode += ch
                if len(self._unicode) == 4:
                    self._finish_unicode(out)
                continue

            if self._escaping:
                self._escaping = False
                if ch == "u":
                    self._unicode = ""
                else:
                    self._emit(out, _SIMPLE_ESCAPES.get(ch, ch))
                continue

            if ch == "\\":
                self._escaping = True
                continue

            self._emit(out, ch)
        return "".join(out)

    def flush(self) -> str:
        """Release anything held back at the end of a string."""
        out: List[str] = []
        if self._unicode is not None:
            self._emit(out, "\\u" + self._unicode)
        elif self._escaping:
            self._emit(out, "\\")
        if self._high_surrogate is not None:
            out.append(_REPLACEMENT)
        self.reset()
        return "".join(out)

    def _finish_unicode(self, out: List[str]) -> None:
        digits = self._unicode or ""
        self._unicode = None
        if not all(c in string.hexdigits for c in digits):
            self._emit(out, "\\u" + digits)
            return
        code = int(digits, 16)

        if 0xDC00 <= code <= 0xDFFF and self._high_surrogate is not None:
            high = self._high_surrogate
            self._high_surrogate = None
            out.append(chr(0x10000 + ((high - 0xD800) << 10) + (code - 0xDC00)))
            return
        if 0xD800 <= code <= 0xDBFF:
            if self._high_surrogate is not None:
                out.append(_REPLACEMENT)
            self._high_surrogate = code
            return
        if 0xDC00 <= code <= 0xDFFF:
            self._emit(out, _REPLACEMENT)
            return
        self._emit(out, chr(code))

    def _emit(self, out: List[str], text: str) -> None:
        if self._high_surrogate is not None:
            out.append(_REPLACEMENT)
            self._high_surrogate = None
        out.append(text)


def decode_json_string(raw: str) -> str:
    decoder = JsonStringDecoder()
    return decoder.write(raw) + decoder.flush()


class JsonStreamDecoder:
    """
    Pushdown automaton that turns ``project_files`` entries into file events.

    ``feed()`` returns the events produced by one chunk; ``finish()`` closes a
    file left open by a truncated stream with ``End(partial=True)``.
    """

    def __init__(
        self,
        files_key: str = "project_files",
        path_keys: Sequence[str] = ("name", "path"),
        content_key: str = "content",
    ):
        self.files_key = files_key
        self.path_keys = tuple(path_keys)
        self.content_key = content_key

        self._stack: List[str] = []
        self._expecting_key = False
        self._expecting_value = False
        self._current_key: Optional[str] = None

        self._in_string = False
        self._string_escape = False
        self._string_raw: List[str] = []
        self._string_is_key = False

        self._files_depth = -1
        self._file_path: Optional[str] = None
        self._file_open = False
        self._streaming_content = False
        self._orphan_content: Optional[List[str]] = None
        self._capturing_orphan = False
        self._content_decoder = JsonStringDecoder()
        self._cursor = LineCursor()

        self._events: List[AnyEvent] = []

    @property
    def in_file_list(self) -> bool:
        return self._files_depth >= 0

    @property
    def writing_path(self) -> Optional[str]:
        return self._file_path if self._file_open else None

    def feed(self, chunk: str) -> List[AnyEvent]:
        for ch in chunk:
            self._push_char(ch)
        return self._drain()

    def finish(self) -> List[AnyEvent]:
        if self._file_open and self._file_path:
            if self._streaming_content:
                self._emit_chunk(self._content_decoder.flush())
            logger.warning(f"JSON stream ended while writing {self._file_path}")
            self._emit_end(partial=True)
        self._reset_file()
        return self._drain()

    def _drain(self) -> List[AnyEvent]:
        events, self._events = self._events, []
        return events

    def _at_file_object(self) -> bool:
        return (
            self.in_file_list
            and len(self._stack) == self._files_depth + 1
            and self._stack[-1] == "object"
        )

    def _reset_file(self) -> None:
        self._file_path = None
        self._file_open = False
        self._streaming_content = False
        self._orphan_content = None
        self._capturing_orphan = False
        self._content_decoder.reset()

    def _push_char(self, ch: str) -> None:
        if self._in_string:
            self._string_char(ch)
            return

        if ch in " \n\r\t":
            return

        if ch == "{":
            self._stack.append("object")
            self._expecting_key = True
            self._current_key = None
            if self._at_file_object():
                self._reset_file()
            return

        if ch == "}":
            closing_file = self._at_file_object()
            if self._stack and self._stack[-1] == "object":
                self._stack.pop()
            self._expecting_key = False
            self._expecting_value = False
            self._current_key = None
            if closing_file:
                self._close_file_object()
            self._leave_file_list_if_done()
            return

        if ch == "[":
            opened_by = self._current_key if self._stack and self._stack[-1] == "object" else None
            self._stack.append("array")
            self._expecting_value = True
            if not self.in_file_list and opened_by == self.files_key:
                self._files_depth = len(self._stack)
            return

        if ch == "]":
            if self._stack and self._stack[-1] == "array":
                self._stack.pop()
            self._expecting_value = False
            self._leave_file_list_if_done()
            return

        if ch == ":":
            self._expecting_value = True
            return

        if ch == ",":
            top = self._stack[-1] if self._stack else None
            if top == "object":
                self._expecting_key = True
                self._current_key = None
            elif top == "array":
                self._expecting_value = True
            return

        if ch == '"':
            top = self._stack[-1] if self._stack else None
            self._string_is_key = top == "object" and self._expecting_key
            self._in_string = True
            self._string_escape = False
            self._string_raw = []
            if (
                not self._string_is_key
                and self._expecting_value
                and self._current_key == self.content_key
                and self._at_file_object()
            ):
                self._content_decoder.reset()
                if self._file_open and self._file_path:
                    self._streaming_content = True
                else:
                    self._capturing_orphan = True
                    self._orphan_content = []
            return

        # Bare literal (number, true/false/null): the pending value is consumed.
        self._expecting_value = False

    def _string_char(self, ch: str) -> None:
        if ch == '"' and not self._string_escape:
            self._string_end()
            return

        self._string_escape = ch == "\\" and not self._string_escape
        self._string_raw.append(ch)

        if self._streaming_content and self._file_path:
            self._emit_chunk(self._content_decoder.write(ch))
        elif self._capturing_orphan and self._orphan_content is not None:
            self._orphan_content.append(self._content_decoder.write(ch))

    def _string_end(self) -> None:
        raw = "".join(self._string_raw)
        is_key = self._string_is_key
        self._in_string = False
        self._string_escape = False
        self._string_raw = []
        self._string_is_key = False

        if self._streaming_content and self._file_path:
            self._emit_chunk(self._content_decoder.flush())
            self._emit_end()
            self._streaming_content = False
            self._file_open = False
            self._expecting_value = False
            return

        if self._capturing_orphan and self._orphan_content is not None:
            self._orphan_content.append(self._content_decoder.flush())
            self._capturing_orphan = False
            self._expecting_value = False
            return

        if is_key:
            self._current_key = decode_json_string(raw)
            self._expecting_key = False
            self._expecting_value = False
            return

        if self._current_key in self.path_keys and self._at_file_object() and self._file_path is None:
            path = decode_json_string(raw).strip()
            if path:
                self._open_file(path)
        self._expecting_value = False

    def _open_file(self, path: str) -> None:
        self._file_path = path
        self._file_open = True
        self._cursor = LineCursor()
        self._events.append(FileStart(raw_path=path, path=path, mode=WriteMode.CREATE))
        if self._orphan_content is not None:
            # Content arrived before the name: replay it now.
            text = "".join(self._orphan_content)
            self._orphan_content = None
            self._emit_chunk(text)
            self._emit_end()
            self._file_open = False

    def _close_file_object(self) -> None:
        if self._file_open and self._file_path:
            self._emit_end()
        elif self._orphan_content is not None:
            logger.debug("Dropping file entry with content but no name")
        self._reset_file()

    def _emit_chunk(self, text: str) -> None:
        if text and self._file_path:
            self._cursor.advance(text)
            self._events.append(FileChunk(path=self._file_path, text=text))

    def _emit_end(self, partial: bool = False) -> None:
        self._events.append(
            FileEnd(path=self._file_path, mode=WriteMode.CREATE, partial=partial, cursor_line=self._cursor.line)
        )

    def _leave_file_list_if_done(self) -> None:
        if self.in_file_list and len(self._stack) < self._files_depth:
            self._files_depth = -1
            self._reset_file()
