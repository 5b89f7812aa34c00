"""
Tests for the structural integrity scanner.

The scanner is the gate between "stream finished" and "file ready": it must
catch truncation (open brackets, strings, comments, tags) without tripping on
brackets that live inside strings or comments.
"""

from __future__ import annotations

import pytest

from patchstream.models.integrity import FileKind
from patchstream.services.integrity_scanner import IntegrityScanner, dangling_html_tags


@pytest.fixture
def scanner() -> IntegrityScanner:
    return IntegrityScanner()


class TestScriptScan:
    def test_balanced_script_passes(self, scanner):
        code = "function add(a, b) {\n  return [a, b].reduce((x, y) => x + y, 0);\n}\n"
        assert scanner.scan(code, FileKind.SCRIPT).ok

    def test_brackets_inside_strings_and_comments_are_ignored(self, scanner):
        code = (
            "const open = '{(';\n"
            'const close = ")}";\n'
            "const tpl = `${'['}`;\n"
            "// stray } in a comment\n"
            "/* and ) here */\n"
        )
        assert scanner.scan(code, FileKind.SCRIPT).ok

    def test_truncated_block_is_unbalanced(self, scanner):
        result = scanner.scan("function f() {\n  if (x) {\n    go();\n", FileKind.SCRIPT)
        assert not result.ok
        assert result.reason == "Unbalanced brackets/parentheses/braces"

    def test_unexpected_closer(self, scanner):
        result = scanner.scan("go());", FileKind.SCRIPT)
        assert not result.ok
        assert result.reason == "Unexpected closing token sequence"

    def test_unterminated_string(self, scanner):
        result = scanner.scan("const msg = 'hello", FileKind.SCRIPT)
        assert not result.ok
        assert result.reason == "Unterminated string/template/comment"

    def test_unterminated_block_comment(self, scanner):
        result = scanner.scan("const a = 1;\n/* cut off", FileKind.SCRIPT)
        assert not result.ok
        assert result.reason == "Unterminated string/template/comment"

    def test_empty_content_passes(self, scanner):
        assert scanner.scan("   \n", FileKind.SCRIPT).ok


class TestStyleScan:
    def test_balanced_stylesheet_passes(self, scanner):
        css = "body { color: red; }\n@media (max-width: 600px) { .a { display: none; } }\n"
        assert scanner.scan(css, FileKind.STYLE).ok

    def test_missing_closing_brace(self, scanner):
        result = scanner.scan("body{color:red", FileKind.STYLE)
        assert not result.ok
        assert result.reason == "Unbalanced CSS braces"

    def test_unexpected_closing_brace(self, scanner):
        result = scanner.scan("a { }\n}", FileKind.STYLE)
        assert not result.ok
        assert result.reason == "Unexpected closing brace"

    def test_braces_in_css_strings_are_ignored(self, scanner):
        assert scanner.scan('a::after { content: "}"; }', FileKind.STYLE).ok

    def test_double_slash_is_not_a_css_comment(self, scanner):
        # url(//cdn...) must not swallow the rest of the line
        assert scanner.scan("a { background: url(//cdn.example.com/x.png); }", FileKind.STYLE).ok

    def test_unterminated_css_comment(self, scanner):
        result = scanner.scan("a { color: red; } /* note", FileKind.STYLE)
        assert not result.ok
        assert result.reason == "Unterminated CSS string/comment"


class TestMarkupScan:
    def test_complete_document_passes(self, scanner):
        html = (
            "<!DOCTYPE html>\n<html><head><meta charset='utf-8'><title>x</title></head>"
            "<body><main><img src='a.png'><br/></main></body></html>"
        )
        assert scanner.scan(html, FileKind.MARKUP).ok

    def test_truncated_document_reports_dangling_tags(self, scanner):
        result = scanner.scan("<html><body><div class='hero'>", FileKind.MARKUP)
        assert not result.ok
        assert result.reason == "HTML structure incomplete: 3 unclosed tag(s) (html, body, div)"

    def test_script_bodies_are_not_parsed_as_tags(self, scanner):
        html = "<html><body><script>if (a < b) { document.write('<div>'); }</script></body></html>"
        assert scanner.scan(html, FileKind.MARKUP).ok

    def test_dangling_tags_outermost_first(self):
        assert dangling_html_tags("<html><body><section><p>text") == ["html", "body", "section", "p"]

    def test_closer_closes_inner_unclosed_elements(self):
        assert dangling_html_tags("<ul><li>one<li>two</ul>") == []


class TestScanFileAndProbe:
    def test_other_kind_always_passes(self, scanner):
        assert scanner.scan_file("notes.md", "{{{ unbalanced").ok

    def test_probe_runs_for_plain_js(self):
        calls = []

        def probe(text):
            calls.append(text)
            return "SyntaxError: unexpected token"

        result = IntegrityScanner(syntax_probe=probe).scan_file("script.js", "let a = 1;")
        assert calls == ["let a = 1;"]
        assert not result.ok
        assert result.reason == "SyntaxError: unexpected token"

    def test_probe_skipped_for_module_syntax(self):
        calls = []
        scanner = IntegrityScanner(syntax_probe=lambda text: calls.append(text) or "boom")
        assert scanner.scan_file("script.js", "import x from './x.js';\nx();\n").ok
        assert calls == []

    def test_probe_skipped_for_typescript(self):
        calls = []
        scanner = IntegrityScanner(syntax_probe=lambda text: calls.append(text) or "boom")
        assert scanner.scan_file("src/app.ts", "let a: number = 1;").ok
        assert calls == []

    def test_crashing_probe_is_treated_as_pass(self, caplog):
        def probe(text):
            raise RuntimeError("sandbox unavailable")

        assert IntegrityScanner(syntax_probe=probe).scan_file("script.js", "let a = 1;").ok
        assert "Syntax probe crashed" in caplog.text
