"""
Built-in constraint rules.

Every rule is a pure function of the file set. Identifiers are stable
(``KIND:path`` or ``KIND:detail``) because the auto-fix loop compares
signatures built from them across rounds.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Mapping, Optional, Tuple

from ...models.integrity import FileKind, file_kind_for_path
from ...models.validation import IssueCategory, ProjectMode
from ..path_rules import MARKER_PREFIXES, basename, dirname
from . import BaseConstraintRule, RuleContext
from .yaml_loader import FeatureCatalog

logger = logging.getLogger(__name__)

STATIC_ENTRY_FILE = "index.html"
BACKEND_SEGMENTS = ("backend", "server", "api", "database")

_REFERENCE_RE = re.compile(r"""\b(?:href|src)\s*=\s*["']([^"']+)["']""", re.IGNORECASE)
_EXTERNAL_PREFIXES = ("http:", "https:", "//", "data:", "mailto:", "tel:", "javascript:", "#")
_TEMPLATE_MARKERS = ("{{", "${", "{%", "<%")
_PLACEHOLDER_RE = re.compile(r"\b(TODO|FIXME|lorem ipsum|placeholder content|coming soon)\b", re.IGNORECASE)
_MARKUP_SIGNATURE_RE = re.compile(r"^\s*(<!doctype\s+html|<html\b)", re.IGNORECASE)
_COMPONENT_DIRS = ("components", "pages")
_COMPONENT_EXTENSIONS = (".jsx", ".tsx")
_HOOK_DIR = "hooks"
_PASCAL_CASE_RE = re.compile(r"^[A-Z][A-Za-z0-9]*$")
_HOOK_NAME_RE = re.compile(r"^use[A-Z0-9][A-Za-z0-9]*$")


def flatten_project_files(files: Mapping[str, str]) -> str:
    return "\n".join(f"{path}\n{content or ''}" for path, content in files.items())


def _stem(path: str) -> str:
    name = basename(path)
    return name.split(".", 1)[0] if "." in name else name


def _is_external(target: str) -> bool:
    lowered = target.strip().lower()
    if not lowered:
        return True
    if lowered.startswith(_EXTERNAL_PREFIXES):
        return True
    return any(marker in target for marker in _TEMPLATE_MARKERS)


def resolve_reference(source_path: str, target: str) -> Optional[str]:
    """
    Resolve a markup href/src against its source file.

    Returns None for external or unresolvable targets (traversal above root).
    """
    if _is_external(target):
        return None
    clean = re.split(r"[?#]", target.strip(), maxsplit=1)[0]
    if not clean:
        return None
    if clean.startswith("/"):
        parts: List[str] = []
        clean = clean.lstrip("/")
    else:
        base = dirname(source_path)
        parts = base.split("/") if base else []
    for segment in clean.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not parts:
                return None
            parts.pop()
            continue
        parts.append(segment)
    return "/".join(parts) or None


def collect_markup_references(files: Mapping[str, str]) -> List[Tuple[str, str]]:
    """(source, resolved target) pairs for every local href/src in markup files."""
    references: List[Tuple[str, str]] = []
    for path, content in files.items():
        if file_kind_for_path(path) != FileKind.MARKUP:
            continue
        for match in _REFERENCE_RE.finditer(content or ""):
            resolved = resolve_reference(path, match.group(1))
            if resolved is not None:
                references.append((path, resolved))
    return references


def reference_coverage(files: Mapping[str, str]) -> int:
    """Percentage of local markup references that resolve to an existing file."""
    references = collect_markup_references(files)
    if not references:
        return 100
    resolved = sum(1 for _, target in references if target in files)
    return round(100 * resolved / len(references))


class MissingFeatureRule(BaseConstraintRule):
    """A selected feature is missing when none of its catalog patterns match the project corpus."""

    name = "missing_feature"
    category = IssueCategory.MISSING
    description = "Selected generation features must leave a trace in the project"

    def __init__(self, catalog: FeatureCatalog):
        self.catalog = catalog

    def check(self, context: RuleContext) -> List[str]:
        corpus = flatten_project_files(context.files)
        missing = []
        for feature_id in context.constraints.selected_features:
            satisfied = self.catalog.is_satisfied(feature_id, corpus)
            if satisfied is None:
                logger.debug(f"Feature {feature_id} has nothing to verify, skipping")
                continue
            if not satisfied:
                missing.append(feature_id)
        return missing


class EntryPointRule(BaseConstraintRule):
    name = "entry_point"
    category = IssueCategory.CRITICAL
    description = "A frontend-only project needs a root index.html"

    def check(self, context: RuleContext) -> List[str]:
        if not context.files:
            return ["EMPTY_PROJECT"]
        if context.constraints.project_mode != ProjectMode.FRONTEND_ONLY:
            return []
        has_entry = any(basename(path) == STATIC_ENTRY_FILE for path in context.files)
        return [] if has_entry else [f"MISSING_ENTRY:{STATIC_ENTRY_FILE}"]


class BackendInFrontendOnlyRule(BaseConstraintRule):
    name = "backend_in_frontend_only"
    category = IssueCategory.CRITICAL
    description = "Frontend-only projects must not ship server code"

    def check(self, context: RuleContext) -> List[str]:
        if context.constraints.project_mode != ProjectMode.FRONTEND_ONLY:
            return []
        violations = []
        for path in sorted(context.files):
            segments = path.lower().split("/")[:-1]
            if any(segment in BACKEND_SEGMENTS for segment in segments):
                violations.append(f"FORBIDDEN_BACKEND_PATH:{path}")
        return violations


class HiddenSyntaxRule(BaseConstraintRule):
    """
    Problems a preview would not show immediately: integrity failures,
    content of the wrong kind for its extension and protocol markers that
    leaked into file content.
    """

    name = "hidden_syntax"
    category = IssueCategory.HIDDEN
    description = "Every file must pass its integrity scan and hold content of its own kind"

    def check(self, context: RuleContext) -> List[str]:
        issues = []
        for path in sorted(context.files):
            content = context.files[path] or ""
            if any(prefix in content for prefix in MARKER_PREFIXES):
                issues.append(f"MARKER_LEAK:{path}")
            kind = file_kind_for_path(path)
            if kind in (FileKind.STYLE, FileKind.SCRIPT) and _MARKUP_SIGNATURE_RE.match(content):
                issues.append(f"FILE_TYPE_MISMATCH:{path}")
                continue
            if not context.scanner.scan_file(path, content).ok:
                issues.append(f"SYNTAX:{path}")
        return issues


class RoutingReachabilityRule(BaseConstraintRule):
    name = "routing_reachability"
    category = IssueCategory.ROUTING
    description = "Local href/src references in markup must resolve to project files"

    def check(self, context: RuleContext) -> List[str]:
        broken: List[str] = []
        for source, target in collect_markup_references(context.files):
            if target in context.files:
                continue
            identifier = f"BROKEN_REFERENCE:{source}->{target}"
            if identifier not in broken:
                broken.append(identifier)
        return broken


class NamingConventionRule(BaseConstraintRule):
    name = "naming_convention"
    category = IssueCategory.NAMING
    description = "Paths without spaces, PascalCase components, use-prefixed hooks"

    def check(self, context: RuleContext) -> List[str]:
        violations = []
        for path in sorted(context.files):
            if " " in path:
                violations.append(f"SPACE_IN_PATH:{path}")
                continue
            segments = path.split("/")
            stem = _stem(path)
            if path.endswith(_COMPONENT_EXTENSIONS) and any(d in segments[:-1] for d in _COMPONENT_DIRS):
                if stem != "index" and not _PASCAL_CASE_RE.match(stem):
                    violations.append(f"COMPONENT_NOT_PASCAL_CASE:{path}")
            elif _HOOK_DIR in segments[:-1] and file_kind_for_path(path) == FileKind.SCRIPT:
                if stem != "index" and not _HOOK_NAME_RE.match(stem):
                    violations.append(f"HOOK_NOT_USE_PREFIXED:{path}")
        return violations


class PlaceholderQualityRule(BaseConstraintRule):
    name = "placeholder_quality"
    category = IssueCategory.QUALITY
    description = "Generated source files must not be empty or placeholder stubs"

    def check(self, context: RuleContext) -> List[str]:
        violations = []
        for path in sorted(context.files):
            if file_kind_for_path(path) == FileKind.OTHER:
                continue
            content = context.files[path] or ""
            if not content.strip():
                violations.append(f"EMPTY_FILE:{path}")
            elif _PLACEHOLDER_RE.search(content):
                violations.append(f"PLACEHOLDER_CONTENT:{path}")
        return violations


class DuplicatePurposeRule(BaseConstraintRule):
    """Two files of one purpose group in the same directory (style.css next to styles.css)."""

    name = "duplicate_purpose"
    category = IssueCategory.QUALITY
    description = "Only one file per shared-purpose group in a directory"

    def check(self, context: RuleContext) -> List[str]:
        groups: Dict[Tuple[str, Tuple[str, ...]], List[str]] = {}
        for path in sorted(context.files):
            group = context.policy.purpose_group(basename(path))
            if len(group) < 2:
                continue
            groups.setdefault((dirname(path), tuple(group)), []).append(path)

        violations = []
        for paths in groups.values():
            if len(paths) > 1:
                violations.append(f"DUPLICATE_PURPOSE:{','.join(paths)}")
        return violations


class CustomFeatureTagRule(BaseConstraintRule):
    """Free-form feature tags cannot be verified mechanically; surface them as advisories."""

    name = "custom_feature_tag"
    category = IssueCategory.ADVISORY
    description = "Custom feature tags are reported for manual review"

    def check(self, context: RuleContext) -> List[str]:
        corpus = flatten_project_files(context.files).lower()
        advisories = []
        for tag in context.constraints.custom_feature_tags:
            cleaned = tag.strip()
            if cleaned and cleaned.lower() not in corpus:
                advisories.append(f"CUSTOM_FEATURE_UNVERIFIED:{cleaned}")
        return advisories


def default_rules(catalog: FeatureCatalog) -> List[BaseConstraintRule]:
    return [
        MissingFeatureRule(catalog),
        EntryPointRule(),
        BackendInFrontendOnlyRule(),
        HiddenSyntaxRule(),
        RoutingReachabilityRule(),
        NamingConventionRule(),
        PlaceholderQualityRule(),
        DuplicatePurposeRule(),
        CustomFeatureTagRule(),
    ]
