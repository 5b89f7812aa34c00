"""
Deterministic self-healer.

Design intent
-------------
Repairs are conservative and offline:
- style: drop over-closing braces, append closers for unmatched openers
- script: split comment/keyword glue lines, rebalance brackets with a stack
- markup: close dangling tags, keep exactly one footer marker

For style and script the repaired text is only returned when the integrity
scanner accepts it; otherwise the caller gets the original content back.
Markup healing is always applied. A file that already scans clean (and, for
markup, already carries its footer once) is returned untouched.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from ..models.integrity import FileKind, HealResult, file_kind_for_path
from .integrity_scanner import OPENERS, CLOSERS, CodeLexer, IntegrityScanner, dangling_html_tags

logger = logging.getLogger(__name__)

DEFAULT_FOOTER_MARKER = '<footer data-generated-by="patchstream"></footer>'

_GLUE_KEYWORD_RE = re.compile(r"\b(const|let|var|function|class)\b")


def repair_comment_keyword_glue(source: str) -> str:
    """
    Split ``//...;const x`` style lines where chunk concatenation glued code
    onto the end of a line comment.
    """
    lines = source.split("\n")
    repaired: List[str] = []
    changed = False
    for line in lines:
        if not line.lstrip().startswith("//"):
            repaired.append(line)
            continue
        match = _GLUE_KEYWORD_RE.search(line)
        if not match or match.start() <= 0 or line[match.start() - 1].isspace():
            repaired.append(line)
            continue
        changed = True
        repaired.append(line[: match.start()])
        repaired.append(line[match.start():])
    return "\n".join(repaired) if changed else source


def repair_script_brackets(source: str) -> str:
    """Drop mismatched closers and append the closers still owed at end of input."""
    if not source.strip():
        return source

    lexer = CodeLexer(FileKind.SCRIPT)
    stack: List[str] = []
    out: List[str] = []
    changed = False
    for token, structural in lexer.tokens(source):
        if not structural:
            out.append(token)
            continue
        if token in OPENERS:
            stack.append(token)
            out.append(token)
            continue
        if not stack or stack[-1] != CLOSERS[token]:
            changed = True
            continue
        stack.pop()
        out.append(token)

    if stack:
        changed = True
        out.extend(OPENERS[opener] for opener in reversed(stack))
    return "".join(out) if changed else source


def repair_style_braces(source: str) -> str:
    if not source.strip():
        return source

    lexer = CodeLexer(FileKind.STYLE)
    depth = 0
    out: List[str] = []
    changed = False
    for token, structural in lexer.tokens(source):
        if not structural:
            out.append(token)
        elif token == "{":
            depth += 1
            out.append(token)
        elif depth <= 0:
            changed = True
        else:
            depth -= 1
            out.append(token)

    if depth > 0:
        changed = True
        out.append("\n" + "}\n" * depth)
    return "".join(out) if changed else source


def close_dangling_tags(html: str) -> str:
    dangling = dangling_html_tags(html)
    if not dangling:
        return html
    closers = "".join(f"</{name}>" for name in reversed(dangling))
    return f"{html}\n{closers}\n"


def ensure_footer_marker(html: str, marker: str) -> str:
    """Leave exactly one ``marker``: before the last </body>, else </html>, else at the end."""
    count = html.count(marker)
    if count == 1:
        return html
    if count > 1:
        first = html.index(marker) + len(marker)
        return html[:first] + html[first:].replace(marker, "")

    lowered = html.lower()
    for closer in ("</body>", "</html>"):
        idx = lowered.rfind(closer)
        if idx != -1:
            return f"{html[:idx]}{marker}\n{html[idx:]}"
    separator = "" if not html or html.endswith("\n") else "\n"
    return f"{html}{separator}{marker}\n"


class SelfHealer:
    """Format-specific structural repair confirmed by the integrity scanner."""

    def __init__(
        self,
        scanner: Optional[IntegrityScanner] = None,
        footer_marker: Optional[str] = DEFAULT_FOOTER_MARKER,
    ):
        self.scanner = scanner or IntegrityScanner()
        self.footer_marker = footer_marker

    def heal(self, content: str, kind: FileKind, plain_script: Optional[bool] = None) -> HealResult:
        current = content or ""
        if kind == FileKind.STYLE:
            return self._heal_style(current)
        if kind == FileKind.SCRIPT:
            return self._heal_script(current, plain_script)
        if kind == FileKind.MARKUP:
            return self._heal_markup(current)
        return HealResult(content=current, repaired=False, ok=True)

    def heal_file(self, path: str, content: str) -> HealResult:
        kind = file_kind_for_path(path)
        plain: Optional[bool] = None
        if kind == FileKind.SCRIPT and not path.lower().endswith((".js", ".cjs")):
            plain = False
        result = self.heal(content, kind, plain_script=plain)
        if result.repaired:
            logger.info(f"🩹 Self-heal repaired {path}")
        return result

    def _heal_style(self, current: str) -> HealResult:
        before = self.scanner.scan(current, FileKind.STYLE)
        if before.ok:
            return HealResult(content=current, repaired=False, ok=True)

        candidate = repair_style_braces(current)
        if candidate != current:
            after = self.scanner.scan(candidate, FileKind.STYLE)
            if after.ok:
                return HealResult(content=candidate, repaired=True, ok=True)
            logger.debug(f"Style repair did not converge: {after.reason}")
        return HealResult(content=current, repaired=False, ok=False, reason=before.reason)

    def _heal_script(self, current: str, plain_script: Optional[bool]) -> HealResult:
        before = self.scanner.scan(current, FileKind.SCRIPT, plain_script=plain_script)
        if before.ok:
            return HealResult(content=current, repaired=False, ok=True)

        candidate = repair_script_brackets(repair_comment_keyword_glue(current))
        if candidate != current:
            after = self.scanner.scan(candidate, FileKind.SCRIPT, plain_script=plain_script)
            if after.ok:
                return HealResult(content=candidate, repaired=True, ok=True)
            logger.debug(f"Script repair did not converge: {after.reason}")
            return HealResult(content=current, repaired=False, ok=False, reason=after.reason or before.reason)
        return HealResult(content=current, repaired=False, ok=False, reason=before.reason)

    def _heal_markup(self, current: str) -> HealResult:
        if not current.strip():
            return HealResult(content=current, repaired=False, ok=True)

        healed = close_dangling_tags(current)
        if self.footer_marker:
            healed = ensure_footer_marker(healed, self.footer_marker)
        after = self.scanner.scan(healed, FileKind.MARKUP)
        return HealResult(content=healed, repaired=healed != current, ok=after.ok, reason=after.reason)
