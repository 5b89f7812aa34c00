"""
Tests for the incremental JSON payload decoder.

The decoder must produce the same event sequence however the payload is
sliced, and must forward file content before the closing quote arrives.
"""

from __future__ import annotations

from typing import List

import pytest

from patchstream.models.events import FileChunk, FileEnd, FileStart, coalesce_chunks
from patchstream.services.json_stream_decoder import JsonStreamDecoder, JsonStringDecoder, decode_json_string

PAYLOAD = (
    'Here is your project:\n{"project_files": ['
    '{"name": "index.html", "content": "<h1>Hi \\"there\\"</h1>\\n"},'
    '{"path": "style.css", "meta": {"content": "ignored"}, "content": "body{color:red}\\u00e9"},'
    '{"content": "console.log(1);", "name": "script.js"}'
    "]}"
)


def decode(chunks: List[str]):
    decoder = JsonStreamDecoder()
    events = []
    for chunk in chunks:
        events.extend(decoder.feed(chunk))
    events.extend(decoder.finish())
    return events


def split_every(text: str, size: int) -> List[str]:
    return [text[i:i + size] for i in range(0, len(text), size)]


def files_from(events):
    files = {}
    for event in events:
        if isinstance(event, FileStart):
            files[event.path] = ""
        elif isinstance(event, FileChunk):
            files[event.path] += event.text
    return files


class TestStringDecoder:
    def test_simple_escapes(self):
        assert decode_json_string('a\\nb\\t\\"c\\"\\\\') == 'a\nb\t"c"\\'

    def test_unicode_escape_split_across_writes(self):
        decoder = JsonStringDecoder()
        out = decoder.write("caf\\u00") + decoder.write("e9!")
        assert out == "café!"
        assert decoder.pending is False

    def test_surrogate_pair(self):
        assert decode_json_string("\\ud83d\\ude00") == "\U0001F600"

    def test_lone_surrogate_becomes_replacement(self):
        assert decode_json_string("\\ud83dx") == "\ufffdx"

    def test_invalid_hex_kept_literally(self):
        assert decode_json_string("\\uZZZZ") == "\\uZZZZ"


class TestJsonStreamDecoder:
    def test_decodes_all_files(self):
        files = files_from(decode([PAYLOAD]))
        assert files == {
            "index.html": '<h1>Hi "there"</h1>\n',
            "style.css": "body{color:red}é",
            "script.js": "console.log(1);",
        }

    def test_event_order_per_file(self):
        events = decode([PAYLOAD])
        kinds = [(type(e).__name__, e.path) for e in coalesce_chunks(events)]
        assert kinds == [
            ("FileStart", "index.html"),
            ("FileChunk", "index.html"),
            ("FileEnd", "index.html"),
            ("FileStart", "style.css"),
            ("FileChunk", "style.css"),
            ("FileEnd", "style.css"),
            ("FileStart", "script.js"),
            ("FileChunk", "script.js"),
            ("FileEnd", "script.js"),
        ]
        assert all(not e.partial for e in events if isinstance(e, FileEnd))

    def test_content_is_forwarded_before_string_closes(self):
        decoder = JsonStreamDecoder()
        events = decoder.feed('{"project_files":[{"name":"a.js","content":"let a')
        assert isinstance(events[0], FileStart)
        assert "".join(e.text for e in events if isinstance(e, FileChunk)) == "let a"
        assert decoder.writing_path == "a.js"
        assert decoder.in_file_list

    @pytest.mark.parametrize("size", [1, 2, 3, 7])
    def test_split_invariance(self, size):
        assert decode(split_every(PAYLOAD, size)) == decode([PAYLOAD])

    def test_every_single_split_point(self):
        whole = decode([PAYLOAD])
        for i in range(1, len(PAYLOAD)):
            assert decode([PAYLOAD[:i], PAYLOAD[i:]]) == whole, f"split at {i}"

    def test_truncated_stream_ends_partial(self):
        events = decode(['{"project_files":[{"name":"a.css","content":"body{color:red'])
        end = events[-1]
        assert isinstance(end, FileEnd)
        assert end.path == "a.css"
        assert end.partial is True
        assert files_from(events) == {"a.css": "body{color:red"}

    def test_truncated_inside_escape_keeps_text(self):
        events = decode(['{"project_files":[{"name":"a.txt","content":"ab\\u00'])
        assert files_from(events) == {"a.txt": "ab\\u00"}
        assert events[-1].partial is True

    def test_no_file_list_means_no_events(self):
        assert decode(['{"other": [{"name": "a", "content": "b"}]}']) == []

    def test_file_without_content_is_closed(self):
        events = decode(['{"project_files":[{"name":"empty.txt"}]}'])
        assert [type(e) for e in events] == [FileStart, FileEnd]
        assert events[1].partial is False

    def test_end_carries_cursor_line(self):
        events = decode(['{"project_files":[{"name":"a.css","content":"a{}\\nb{}"}]}'])
        ends = [e for e in events if isinstance(e, FileEnd)]
        assert [(e.path, e.cursor_line) for e in ends] == [("a.css", 2)]

    def test_truncated_end_carries_cursor_line(self):
        events = decode(['{"project_files":[{"name":"game.js","content":"one();\\ntwo();\\nthr'])
        assert events[-1].partial is True
        assert events[-1].cursor_line == 3

    def test_cursor_line_counts_replayed_content(self):
        events = decode(['{"project_files":[{"content":"x\\ny\\n","name":"late.txt"}]}'])
        assert events[-1].cursor_line == 2

    def test_cursor_restarts_per_file(self):
        events = decode(
            ['{"project_files":[{"name":"a.txt","content":"1\\n2\\n3"},{"name":"b.txt","content":"only"}]}']
        )
        assert [e.cursor_line for e in events if isinstance(e, FileEnd)] == [3, 1]
