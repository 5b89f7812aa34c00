"""
Engine policy: the filename lists and keywords the mutation engine enforces.

These are configuration, not structure. Defaults cover the usual static-site
singletons and JavaScript tooling manifests. Only stylesheet names are
rewritten; script entry points such as ``main.js`` and ``app.js`` are
duplicate-sensitive but keep their names. ``Config.get_engine_policy()``
layers overrides from config.json on top.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


DEFAULT_DUPLICATE_SENSITIVE = [
    "index.html",
    "style.css",
    "styles.css",
    "script.js",
    "main.js",
    "app.js",
    "index.css",
    "package.json",
]

# alias basename -> canonical basename
DEFAULT_FORBIDDEN_ALIASES = {
    "styles.css": "style.css",
    "main.css": "style.css",
    "app.css": "style.css",
}

DEFAULT_SENSITIVE_PATH_PATTERNS = [
    r"(^|/)package\.json$",
    r"(^|/)package-lock\.json$",
    r"(^|/)yarn\.lock$",
    r"(^|/)pnpm-lock\.yaml$",
    r"(^|/)vite\.config\.(js|ts)$",
    r"(^|/)next\.config\.(js|mjs|ts)$",
    r"(^|/)tsconfig\.json$",
]

DEFAULT_SAFETY_KEYWORDS = [
    "import",
    "imports",
    "link",
    "links",
    "route",
    "routing",
    "rewrite",
    "refactor",
    "safe",
    "cleanup",
    "unused",
    "orphan",
]

DEFAULT_SENSITIVE_OVERRIDE_KEYWORDS = [
    "safe",
    "safely",
    "safety",
    "security",
    "vuln",
    "vulnerability",
    "cve",
    "exploit",
    "credential",
    "secret",
    "compromise",
    "leak",
]


def _keyword_regex(words: List[str]) -> "re.Pattern[str]":
    alternatives = "|".join(re.escape(w) for w in words if w)
    if not alternatives:
        return re.compile(r"(?!x)x")
    return re.compile(rf"\b({alternatives})\b", re.IGNORECASE)


class EnginePolicy(BaseModel):
    """Injected policy for one mutation engine instance."""

    duplicate_sensitive: List[str] = Field(default_factory=lambda: list(DEFAULT_DUPLICATE_SENSITIVE))
    forbidden_aliases: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_FORBIDDEN_ALIASES))
    sensitive_path_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_SENSITIVE_PATH_PATTERNS))
    safety_keywords: List[str] = Field(default_factory=lambda: list(DEFAULT_SAFETY_KEYWORDS))
    sensitive_override_keywords: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SENSITIVE_OVERRIDE_KEYWORDS)
    )
    footer_marker: Optional[str] = None

    def is_duplicate_sensitive(self, basename: str) -> bool:
        lowered = basename.lower()
        return any(lowered == name.lower() for name in self.duplicate_sensitive)

    def canonical_for_alias(self, basename: str) -> Optional[str]:
        lowered = basename.lower()
        for alias, canonical in self.forbidden_aliases.items():
            if alias.lower() == lowered:
                return canonical
        return None

    def purpose_group(self, basename: str) -> List[str]:
        """Lower-cased basenames that serve the same purpose as ``basename``."""
        lowered = basename.lower()
        canonical = (self.canonical_for_alias(lowered) or lowered).lower()
        group = {canonical}
        for alias, target in self.forbidden_aliases.items():
            if target.lower() == canonical:
                group.add(alias.lower())
        return sorted(group)

    def is_sensitive_path(self, path: str) -> bool:
        return any(re.search(p, path, re.IGNORECASE) for p in self.sensitive_path_patterns)

    def has_safety_reason(self, reason: Optional[str]) -> bool:
        return bool(reason) and bool(_keyword_regex(self.safety_keywords).search(reason))

    def has_sensitive_override(self, reason: Optional[str]) -> bool:
        return bool(reason) and bool(_keyword_regex(self.sensitive_override_keywords).search(reason))
