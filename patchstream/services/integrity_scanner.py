"""
Integrity scanner (lightweight structural checks, no AST).

Why this exists
---------------
A generation stream can stop anywhere: inside a string, halfway through a
rule block, between an opening tag and its closer. Before a file is declared
ready we run a single linear pass that tracks bracket depth and
string/comment state and reports the first structural inconsistency.

This is not a parser. It only answers "does every opener have a closer and
is every string/comment terminated". The optional ``syntax_probe`` hook lets
a caller plug a real executability check behind the bracket pass; it is
advisory and never installed by default.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterator, List, Optional, Tuple

from ..models.integrity import FileKind, ScanResult, file_kind_for_path

logger = logging.getLogger(__name__)

# content -> error message, or None when the content is executable
SyntaxProbe = Callable[[str], Optional[str]]

OPENERS = {"{": "}", "(": ")", "[": "]"}
CLOSERS = {"}": "{", ")": "(", "]": "["}

VOID_HTML_TAGS = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "param",
        "source",
        "track",
        "wbr",
    }
)

HTML_TAG_RE = re.compile(r"</?([a-zA-Z][\w:-]*)\b[^>]*>")
_MODULE_SYNTAX_RE = re.compile(r"^\s*(import|export)\s", re.MULTILINE)
_PLAIN_SCRIPT_EXTENSIONS = (".js", ".cjs")


class CodeLexer:
    """
    Character-level string/comment state machine shared by scanner and healer.

    ``tokens()`` yields ``(text, structural)`` pairs; ``structural`` is True only
    for a bracket character that sits outside every string and comment. The
    state survives between ``tokens()`` calls.
    """

    def __init__(self, kind: FileKind):
        self.kind = kind
        self._line_comments = kind == FileKind.SCRIPT
        self._quotes = "'\"`" if kind == FileKind.SCRIPT else "'\""
        self._brackets = "{}()[]" if kind == FileKind.SCRIPT else "{}"
        self.quote: Optional[str] = None
        self.in_line_comment = False
        self.in_block_comment = False
        self.escaped = False

    @property
    def unterminated(self) -> bool:
        return self.quote is not None or self.in_block_comment

    def tokens(self, text: str) -> Iterator[Tuple[str, bool]]:
        i = 0
        n = len(text)
        while i < n:
            ch = text[i]
            nxt = text[i + 1] if i + 1 < n else ""

            if self.in_line_comment:
                if ch == "\n":
                    self.in_line_comment = False
                yield ch, False
                i += 1
                continue

            if self.in_block_comment:
                if ch == "*" and nxt == "/":
                    self.in_block_comment = False
                    yield "*/", False
                    i += 2
                else:
                    yield ch, False
                    i += 1
                continue

            if self.quote is not None:
                if self.escaped:
                    self.escaped = False
                elif ch == "\\":
                    self.escaped = True
                elif ch == self.quote:
                    self.quote = None
                yield ch, False
                i += 1
                continue

            if ch == "/" and nxt == "/" and self._line_comments:
                self.in_line_comment = True
                yield "//", False
                i += 2
                continue

            if ch == "/" and nxt == "*":
                self.in_block_comment = True
                yield "/*", False
                i += 2
                continue

            if ch in self._quotes:
                self.quote = ch
                yield ch, False
                i += 1
                continue

            yield ch, ch in self._brackets
            i += 1


def dangling_html_tags(html: str) -> List[str]:
    """Open element names still waiting for a closer, outermost first."""
    normalized = re.sub(r"<!--[\s\S]*?-->", "", html or "")
    normalized = re.sub(r"<!DOCTYPE[^>]*>", "", normalized, flags=re.IGNORECASE)
    normalized = re.sub(
        r"<script\b[^>]*>[\s\S]*?</script>", "<script></script>", normalized, flags=re.IGNORECASE
    )
    normalized = re.sub(
        r"<style\b[^>]*>[\s\S]*?</style>", "<style></style>", normalized, flags=re.IGNORECASE
    )

    stack: List[str] = []
    for match in HTML_TAG_RE.finditer(normalized):
        full = match.group(0)
        name = match.group(1).lower()
        if full.startswith("</"):
            if name in stack:
                # Implicitly closes anything opened after the matching element.
                idx = len(stack) - 1 - stack[::-1].index(name)
                del stack[idx:]
            continue
        if name in VOID_HTML_TAGS or re.search(r"/\s*>$", full):
            continue
        stack.append(name)
    return stack


class IntegrityScanner:
    """Stateless-per-call structural scanner for markup, style and script files."""

    def __init__(self, syntax_probe: Optional[SyntaxProbe] = None):
        self._syntax_probe = syntax_probe

    def scan(self, content: str, kind: FileKind, plain_script: Optional[bool] = None) -> ScanResult:
        """
        Scan ``content`` as ``kind``.

        ``plain_script`` controls the optional executability probe for script
        content; when None it is inferred (no top-level import/export lines).
        """
        text = content or ""
        if not text.strip():
            return ScanResult.passed()

        if kind == FileKind.SCRIPT:
            return self._scan_script(text, plain_script)
        if kind == FileKind.STYLE:
            return self._scan_style(text)
        if kind == FileKind.MARKUP:
            return self._scan_markup(text)
        return ScanResult.passed()

    def scan_file(self, path: str, content: str) -> ScanResult:
        kind = file_kind_for_path(path)
        plain: Optional[bool] = None
        if kind == FileKind.SCRIPT and not path.lower().endswith(_PLAIN_SCRIPT_EXTENSIONS):
            plain = False
        return self.scan(content, kind, plain_script=plain)

    def _scan_script(self, text: str, plain_script: Optional[bool]) -> ScanResult:
        lexer = CodeLexer(FileKind.SCRIPT)
        depth = {"{": 0, "(": 0, "[": 0}
        for token, structural in lexer.tokens(text):
            if not structural:
                continue
            if token in OPENERS:
                depth[token] += 1
                continue
            opener = CLOSERS[token]
            if depth[opener] == 0:
                return ScanResult.failed("Unexpected closing token sequence")
            depth[opener] -= 1

        if lexer.unterminated:
            return ScanResult.failed("Unterminated string/template/comment")
        if any(depth.values()):
            return ScanResult.failed("Unbalanced brackets/parentheses/braces")

        if plain_script is None:
            plain_script = not _MODULE_SYNTAX_RE.search(text)
        if plain_script and self._syntax_probe is not None:
            return self._run_probe(text)
        return ScanResult.passed()

    def _scan_style(self, text: str) -> ScanResult:
        lexer = CodeLexer(FileKind.STYLE)
        depth = 0
        for token, structural in lexer.tokens(text):
            if not structural:
                continue
            if token == "{":
                depth += 1
            elif depth == 0:
                return ScanResult.failed("Unexpected closing brace")
            else:
                depth -= 1

        if lexer.unterminated:
            return ScanResult.failed("Unterminated CSS string/comment")
        if depth:
            return ScanResult.failed("Unbalanced CSS braces")
        return ScanResult.passed()

    def _scan_markup(self, text: str) -> ScanResult:
        dangling = dangling_html_tags(text)
        if dangling:
            tail = ", ".join(dangling[-3:])
            return ScanResult.failed(f"HTML structure incomplete: {len(dangling)} unclosed tag(s) ({tail})")
        return ScanResult.passed()

    def _run_probe(self, text: str) -> ScanResult:
        try:
            error = self._syntax_probe(text)
        except Exception as e:
            logger.warning(f"Syntax probe crashed, treating as advisory pass: {e}")
            return ScanResult.passed()
        if error:
            return ScanResult.failed(error)
        return ScanResult.passed()
