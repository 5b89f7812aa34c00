"""
Path and marker-text helpers shared by the decoders and the mutation engine.
"""

from __future__ import annotations

import re

# Opening markers whose dangling tail must never survive into file content.
MARKER_PREFIXES = (
    "[[PATCH_FILE:",
    "[[START_FILE:",
    "[[EDIT_FILE:",
    "[[EDIT_NODE:",
    "[[DELETE_FILE:",
    "[[MOVE_FILE:",
    "[[END_FILE]]",
)

_QUOTES_RE = re.compile(r"^['\"`]+|['\"`]+$")
_SCHEME_RE = re.compile(r"^[a-z]+:", re.IGNORECASE)
_BAD_SEGMENT_RE = re.compile(r'[\x00-\x1f<>:"|?*]')
_DANGLING_RE = re.compile(r"\[\[[A-Z_:\- |./>]*$")


def sanitize_operation_path(raw_path: str) -> str:
    """
    Normalise a path emitted by the generator into a relative project path.

    Returns an empty string for anything that is not a safe relative path:
    URL schemes, home-relative paths, traversal above the root and segments
    with control or reserved characters.
    """
    value = (raw_path or "").strip()
    if not value:
        return ""

    value = _QUOTES_RE.sub("", value)
    value = value.replace("\\", "/")
    value = re.sub(r"^\./+", "", value)
    value = re.sub(r"^/+", "", value)
    value = re.sub(r"/+", "/", value).strip()

    if not value or _SCHEME_RE.match(value) or value.startswith("~"):
        return ""

    normalized = []
    for segment in value.split("/"):
        if not segment or segment == ".":
            continue
        if segment == "..":
            if not normalized:
                return ""
            normalized.pop()
            continue
        if _BAD_SEGMENT_RE.search(segment):
            return ""
        normalized.append(segment)
    return "/".join(normalized)


def basename(path: str) -> str:
    return (path or "").rstrip("/").rsplit("/", 1)[-1]


def dirname(path: str) -> str:
    head, sep, _ = (path or "").rstrip("/").rpartition("/")
    return head if sep else ""


def join_path(directory: str, name: str) -> str:
    return f"{directory}/{name}" if directory else name


def top_directory(path: str) -> str:
    head, sep, _ = (path or "").partition("/")
    return head if sep else ""


def share_scope(a: str, b: str) -> bool:
    """
    True when two paths can hold the same singleton: either sits at the
    project root or both live under the same top-level directory.
    """
    top_a, top_b = top_directory(a), top_directory(b)
    return not top_a or not top_b or top_a == top_b


def strip_trailing_marker_fragment(content: str) -> str:
    """Cut a truncated opening marker left at the very end of file content."""
    text = content or ""
    if not text:
        return ""

    cut_at = -1
    for prefix in MARKER_PREFIXES:
        idx = text.rfind(prefix)
        if idx == -1:
            continue
        close_idx = text.find("]]", idx)
        if close_idx == -1 or close_idx + 2 >= len(text):
            cut_at = max(cut_at, idx)

    dangling = _DANGLING_RE.search(text)
    if dangling:
        cut_at = max(cut_at, dangling.start())

    return text[:cut_at] if cut_at >= 0 else text
