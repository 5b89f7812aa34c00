"""
Tests for deterministic self-heal.

Key properties:
- healthy content is returned untouched (repaired=False)
- healing twice equals healing once
- style/script repairs are only kept when the re-scan passes
- markup always ends up with exactly one footer marker
"""

from __future__ import annotations

import pytest

from patchstream.models.integrity import FileKind
from patchstream.services.integrity_scanner import IntegrityScanner
from patchstream.services.self_healer import (
    DEFAULT_FOOTER_MARKER,
    SelfHealer,
    close_dangling_tags,
    ensure_footer_marker,
    repair_comment_keyword_glue,
    repair_script_brackets,
    repair_style_braces,
)


@pytest.fixture
def healer() -> SelfHealer:
    return SelfHealer()


class TestStyleHeal:
    def test_truncated_rule_gets_closing_brace(self, healer):
        result = healer.heal("body{color:red", FileKind.STYLE)
        assert result.repaired is True
        assert result.ok is True
        assert result.content == "body{color:red\n}\n"

    def test_stray_closer_is_dropped(self):
        assert repair_style_braces("a{}\n}") == "a{}\n"

    def test_healthy_stylesheet_untouched(self, healer):
        css = "a { color: blue; }\n"
        result = healer.heal(css, FileKind.STYLE)
        assert result.repaired is False
        assert result.content == css

    def test_unterminated_comment_is_not_repaired(self, healer):
        css = "a { color: red; } /* note"
        result = healer.heal(css, FileKind.STYLE)
        assert result.repaired is False
        assert result.ok is False
        assert result.content == css
        assert result.reason == "Unterminated CSS string/comment"


class TestScriptHeal:
    def test_open_brackets_closed_in_reverse_order(self):
        assert repair_script_brackets("run([1, {a: 2") == "run([1, {a: 2}])"

    def test_truncated_function_healed(self, healer):
        result = healer.heal("function f() {\n  go(1", FileKind.SCRIPT)
        assert result.repaired is True
        assert result.ok is True
        assert result.content == "function f() {\n  go(1)}"

    def test_comment_keyword_glue_is_split(self):
        source = "// setup;const x = 1;\nx();"
        assert repair_comment_keyword_glue(source) == "// setup;\nconst x = 1;\nx();"

    def test_comment_keyword_glue_leaves_prose_alone(self):
        source = "// the const below is fine\nconst y = 2;"
        assert repair_comment_keyword_glue(source) == source

    def test_glue_repair_lets_code_count_again(self, healer):
        # The glued "{" sits inside the line comment until the line is split.
        source = "// init;function start() {\n  run();\n}"
        result = healer.heal(source, FileKind.SCRIPT)
        assert result.repaired is True
        assert result.ok is True
        assert result.content.startswith("// init;\nfunction start() {")

    def test_unterminated_string_not_made_worse(self, healer):
        source = "const a = 'oops"
        result = healer.heal(source, FileKind.SCRIPT)
        assert result.repaired is False
        assert result.ok is False
        assert result.content == source

    def test_heal_file_skips_probe_for_module_files(self):
        calls = []
        scanner = IntegrityScanner(syntax_probe=lambda text: calls.append(text) or "bad")
        healer = SelfHealer(scanner=scanner)
        result = healer.heal_file("src/main.tsx", "export const App = () => (1")
        assert result.repaired is True
        assert result.ok is True
        assert calls == []


class TestMarkupHeal:
    def test_dangling_tags_closed_innermost_first(self):
        assert close_dangling_tags("<html><body><div>") == "<html><body><div>\n</div></body></html>\n"

    def test_footer_inserted_before_body_close(self):
        html = "<html><body><p>x</p></body></html>"
        assert ensure_footer_marker(html, "<footer></footer>") == (
            "<html><body><p>x</p><footer></footer>\n</body></html>"
        )

    def test_footer_appended_without_closers(self):
        assert ensure_footer_marker("<p>x</p>", "<hr data-x>") == "<p>x</p>\n<hr data-x>\n"

    def test_duplicate_footers_collapse_to_one(self):
        marker = "<footer></footer>"
        html = f"<body>{marker}<p>x</p>{marker}</body>"
        healed = ensure_footer_marker(html, marker)
        assert healed.count(marker) == 1
        assert healed == f"<body>{marker}<p>x</p></body>"

    def test_truncated_page_is_closed_and_marked(self, healer):
        result = healer.heal("<html><body><main>Hello", FileKind.MARKUP)
        assert result.repaired is True
        assert result.ok is True
        assert result.content.count(DEFAULT_FOOTER_MARKER) == 1
        assert result.content.rstrip().endswith("</body></html>")

    def test_empty_markup_untouched(self, healer):
        result = healer.heal("", FileKind.MARKUP)
        assert result.repaired is False
        assert result.content == ""

    def test_custom_footer_marker(self):
        healer = SelfHealer(footer_marker="<!-- built -->")
        result = healer.heal("<html><body></body></html>", FileKind.MARKUP)
        assert "<!-- built -->" in result.content
        assert DEFAULT_FOOTER_MARKER not in result.content


class TestIdempotence:
    @pytest.mark.parametrize(
        "kind, content",
        [
            (FileKind.STYLE, "body{color:red"),
            (FileKind.SCRIPT, "function f() {\n  go(1"),
            (FileKind.MARKUP, "<html><body><main>Hello"),
            (FileKind.OTHER, "anything {"),
        ],
    )
    def test_healing_twice_equals_healing_once(self, healer, kind, content):
        once = healer.heal(content, kind)
        twice = healer.heal(once.content, kind)
        assert twice.content == once.content
        assert twice.repaired is False

    @pytest.mark.parametrize(
        "kind, content",
        [
            (FileKind.STYLE, "a { color: red; }\n"),
            (FileKind.SCRIPT, "const a = [1, 2];\n"),
            (FileKind.MARKUP, f"<html><body><p>x</p>{DEFAULT_FOOTER_MARKER}\n</body></html>"),
        ],
    )
    def test_healthy_content_is_returned_identical(self, healer, kind, content):
        result = healer.heal(content, kind)
        assert result.repaired is False
        assert result.content == content
