"""
Prompt text handed to the upstream generator.

The repair prompt repeats the marker protocol instructions of the initial
generation so that the response can be decoded by the same stream decoder.
"""

from __future__ import annotations

import re
from typing import List, Optional, Sequence

from ..models.validation import GenerationConstraints, ProjectMode, RepairRequest
from .validators.yaml_loader import FeatureCatalog

_SVG_TAG_RE = re.compile(r"\bsvg\b", re.IGNORECASE)

MARKER_PROTOCOL_INSTRUCTIONS = """File-Marker protocol:
[[START_FILE: path/to/file.ext]]
<full file contents>
[[END_FILE]]

Edit protocol (preferred for fixes):
[[EDIT_NODE: path/to/file.ext]]
[[SEARCH]]
<exact text to find>
[[REPLACE]]
<replacement text>
[[END_EDIT]]
[[END_FILE]]

File operations:
[[DELETE_FILE: path/to/file.ext | reason: why]]
[[MOVE_FILE: old/path.ext -> new/path.ext | reason: why]]

Rules:
- Each file MUST start with [[START_FILE: ...]] or [[EDIT_NODE: ...]] on its own line.
- Each file MUST end with [[END_FILE]] on its own line.
- Include complete file contents (no placeholders).
- When modifying an existing file, use [[EDIT_NODE: ...]] instead of [[START_FILE: ...]].
- Never repeat a file unless explicitly asked to continue that SAME file from a given line."""

SVG_POLICY_LINE = (
    "- SVG policy: keep icons as valid inline <svg> elements or .svg files under assets/icons "
    "(always set viewBox, never leave malformed path data)."
)


def build_organization_policy_block(project_mode: ProjectMode) -> str:
    if project_mode == ProjectMode.FULL_STACK:
        mode_structure = (
            "- Keep clear separation: frontend/* for UI, backend/* for APIs/services, shared/* only if required."
        )
    else:
        mode_structure = "- Keep everything frontend-only and never create backend/, server/, api/, database/ folders."
    return "\n".join(
        [
            "[AI ORGANIZATION POLICY]",
            "- Output complete files only, never placeholders or TODO stubs as final content.",
            "- Prefer editing existing files over creating duplicate files with the same purpose.",
            "- Keep file naming consistent: components in PascalCase, hooks as useX, utilities in camelCase file names.",
            "- Keep one responsibility per file and split large features into smaller modules when needed.",
            "- Keep import paths valid and consistent after every change.",
            mode_structure,
        ]
    )


def build_anti_duplication_block() -> str:
    return "\n".join(
        [
            "[ANTI-DUPLICATION POLICY]",
            "- Before creating any file, check if a file with the same path or basename already exists.",
            "- If a file at the same path exists, use EDIT_NODE protocol to modify it, never START_FILE.",
            "- Never create a new file if an existing file already serves the same purpose.",
            "- ONE CSS file, ONE JS file, ONE HTML entry point for simple static sites.",
        ]
    )


def build_frontend_delivery_block() -> str:
    return "\n".join(
        [
            "[FRONTEND DELIVERY POLICY]",
            "- Deliver a complete, production-ready frontend experience (not a skeleton).",
            "- Keep HTML/JS/CSS valid and connected (no broken selectors, missing handlers, or dangling imports).",
            "- Ensure JavaScript is syntax-safe and runs without runtime errors in simple preview.",
        ]
    )


def _feature_line(feature_id: str, catalog: Optional[FeatureCatalog]) -> str:
    feature = catalog.get(feature_id) if catalog is not None else None
    if feature is None or not feature.prompt_rule:
        return f"- {feature_id}"
    return f"- {feature_id}: {feature.prompt_rule}"


def build_generation_constraints_block(
    constraints: GenerationConstraints, catalog: Optional[FeatureCatalog] = None
) -> str:
    if constraints.project_mode == ProjectMode.FULL_STACK:
        mode_line = "Project Mode: FULL_STACK (frontend + backend allowed)."
    else:
        mode_line = "Project Mode: FRONTEND_ONLY (backend/server files are forbidden)."

    feature_lines = [_feature_line(feature_id, catalog) for feature_id in constraints.selected_features]
    feature_lines += [f"- custom: {tag.strip()}" for tag in constraints.custom_feature_tags if tag.strip()]

    wants_svg = "support-svg-icons" in constraints.selected_features or any(
        _SVG_TAG_RE.search(tag) for tag in constraints.custom_feature_tags
    )

    lines = [
        "[GENERATION CONSTRAINTS]",
        mode_line,
        f"Quality Gate: {constraints.quality_gate_mode.value.upper()}",
        "Selected Features:",
        "\n".join(feature_lines) if feature_lines else "- none",
        "",
        "[HARD ENFORCEMENT RULES]",
        "- Respect project mode strictly.",
        "- Respect all selected feature constraints strictly.",
        "- If an output misses constraints, revise it immediately in the same response.",
    ]
    if wants_svg:
        lines.append(SVG_POLICY_LINE)
    lines += ["", build_organization_policy_block(constraints.project_mode), "", build_anti_duplication_block()]
    if constraints.project_mode == ProjectMode.FRONTEND_ONLY:
        lines += ["", build_frontend_delivery_block()]
    return "\n".join(lines)


def build_repair_prompt(
    issues: Sequence[str],
    constraints: GenerationConstraints,
    focus: str,
    attempt: int,
    max_attempts: int,
    recently_healed_files: Sequence[str] = (),
    catalog: Optional[FeatureCatalog] = None,
) -> str:
    issue_list = "\n".join(f"- {issue}" for issue in issues) or "- none"
    healed = ", ".join(recently_healed_files) if recently_healed_files else "none"
    return "\n".join(
        [
            "AUTO-FIX: apply missing constraints in the current project.",
            f"Focus: {focus} (attempt {attempt}/{max_attempts})",
            f"Files already repaired deterministically this round: {healed}",
            "",
            "[MISSING CONSTRAINTS]",
            issue_list,
            "",
            build_generation_constraints_block(constraints, catalog),
            "",
            MARKER_PROTOCOL_INSTRUCTIONS,
            "",
            "Output only valid file markers and full code changes to satisfy missing constraints.",
        ]
    )


def build_repair_request(
    issues: Sequence[str],
    constraints: GenerationConstraints,
    focus: str,
    attempt: int,
    max_attempts: int,
    recently_healed_files: Sequence[str] = (),
    catalog: Optional[FeatureCatalog] = None,
) -> RepairRequest:
    healed: List[str] = list(recently_healed_files)
    return RepairRequest(
        focus=focus,
        issues=list(issues),
        attempt=attempt,
        max_attempts=max_attempts,
        recently_healed_files=healed,
        prompt=build_repair_prompt(issues, constraints, focus, attempt, max_attempts, healed, catalog),
    )


def build_resume_prompt(path: str, cursor_line: int) -> str:
    """Ask the generator to continue a cut-off file right after the last streamed line."""
    return "\n".join(
        [
            f"RESUME: the file {path} was cut off after line {cursor_line}.",
            f"Output [[START_FILE: {path}]] then continue EXACTLY from line {cursor_line + 1} "
            "(do not repeat earlier lines) then [[END_FILE]].",
            "",
            MARKER_PROTOCOL_INSTRUCTIONS,
        ]
    )
