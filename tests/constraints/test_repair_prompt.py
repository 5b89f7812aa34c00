"""
Tests for issue batching and repair prompt construction.
"""

from __future__ import annotations

from patchstream.config import DEFAULT_FEATURES_DIR
from patchstream.models.validation import GenerationConstraints, ProjectMode, ValidationReport
from patchstream.services.issue_batching import (
    CRITICAL_STRUCTURE,
    HIDDEN_SYNTAX,
    QUALITY_HARDENING,
    ROUTING_INTEGRITY,
    IssueBatch,
    build_issue_batches,
)
from patchstream.services.repair_prompt_builder import (
    MARKER_PROTOCOL_INSTRUCTIONS,
    SVG_POLICY_LINE,
    build_generation_constraints_block,
    build_repair_prompt,
    build_repair_request,
    build_resume_prompt,
)
from patchstream.services.validators.yaml_loader import FeatureCatalog

REPORT = ValidationReport(
    hidden_issues=["SYNTAX:script.js"],
    missing_features=["dark-mode-toggle"],
    critical_violations=["MISSING_ENTRY:index.html"],
    routing_violations=["BROKEN_REFERENCE:index.html->about.html"],
    quality_violations=["EMPTY_FILE:a.js"],
    naming_violations=["SPACE_IN_PATH:my page.html"],
    ready_for_finalize=False,
    should_auto_fix=True,
)


class TestIssueBatching:
    def test_batches_in_repair_order(self):
        assert build_issue_batches(REPORT) == [
            IssueBatch(HIDDEN_SYNTAX, ("hidden:SYNTAX:script.js",)),
            IssueBatch(CRITICAL_STRUCTURE, ("missing:dark-mode-toggle", "critical:MISSING_ENTRY:index.html")),
            IssueBatch(ROUTING_INTEGRITY, ("routing:BROKEN_REFERENCE:index.html->about.html",)),
            IssueBatch(QUALITY_HARDENING, ("quality:EMPTY_FILE:a.js", "naming:SPACE_IN_PATH:my page.html")),
        ]

    def test_quality_batch_optional(self):
        labels = [batch.label for batch in build_issue_batches(REPORT, include_quality=False)]
        assert labels == [HIDDEN_SYNTAX, CRITICAL_STRUCTURE, ROUTING_INTEGRITY]

    def test_empty_batches_dropped(self):
        report = ValidationReport(routing_violations=["BROKEN_REFERENCE:a.html->b.html"])
        assert [b.label for b in build_issue_batches(report)] == [ROUTING_INTEGRITY]
        assert build_issue_batches(ValidationReport()) == []

    def test_duplicates_collapse(self):
        report = ValidationReport(hidden_issues=["SYNTAX:a.js", "SYNTAX:a.js"])
        assert build_issue_batches(report)[0].issues == ("hidden:SYNTAX:a.js",)


class TestRepairPrompt:
    def test_prompt_layout(self):
        prompt = build_repair_prompt(
            ["missing:dark-mode-toggle"],
            GenerationConstraints(selected_features=["dark-mode-toggle"]),
            focus=CRITICAL_STRUCTURE,
            attempt=2,
            max_attempts=3,
            recently_healed_files=["style.css"],
            catalog=FeatureCatalog(str(DEFAULT_FEATURES_DIR)),
        )
        lines = prompt.splitlines()
        assert lines[0] == "AUTO-FIX: apply missing constraints in the current project."
        assert lines[1] == "Focus: critical-structure (attempt 2/3)"
        assert lines[2] == "Files already repaired deterministically this round: style.css"
        assert "[MISSING CONSTRAINTS]\n- missing:dark-mode-toggle" in prompt
        assert "- dark-mode-toggle: Provide a user-visible dark/light mode toggle" in prompt
        assert MARKER_PROTOCOL_INSTRUCTIONS in prompt
        assert lines[-1] == "Output only valid file markers and full code changes to satisfy missing constraints."

    def test_constraints_block_modes(self):
        frontend = build_generation_constraints_block(GenerationConstraints())
        assert "Project Mode: FRONTEND_ONLY" in frontend
        assert "Quality Gate: MEDIUM" in frontend
        assert "Selected Features:\n- none" in frontend
        assert "[FRONTEND DELIVERY POLICY]" in frontend

        full_stack = build_generation_constraints_block(
            GenerationConstraints(project_mode=ProjectMode.FULL_STACK, custom_feature_tags=["pricing table"])
        )
        assert "Project Mode: FULL_STACK" in full_stack
        assert "- custom: pricing table" in full_stack
        assert "[FRONTEND DELIVERY POLICY]" not in full_stack

    def test_svg_policy_line(self):
        assert SVG_POLICY_LINE in build_generation_constraints_block(
            GenerationConstraints(selected_features=["support-svg-icons"])
        )
        assert SVG_POLICY_LINE in build_generation_constraints_block(
            GenerationConstraints(custom_feature_tags=["animated SVG logo"])
        )
        assert SVG_POLICY_LINE not in build_generation_constraints_block(GenerationConstraints())

    def test_repair_request_carries_prompt(self):
        request = build_repair_request(
            ["hidden:SYNTAX:a.js"], GenerationConstraints(), focus=HIDDEN_SYNTAX, attempt=1, max_attempts=3
        )
        assert request.focus == HIDDEN_SYNTAX
        assert request.issues == ["hidden:SYNTAX:a.js"]
        assert request.recently_healed_files == []
        assert "Files already repaired deterministically this round: none" in request.prompt

    def test_resume_prompt(self):
        prompt = build_resume_prompt("app.js", 42)
        assert "cut off after line 42" in prompt
        assert "continue EXACTLY from line 43" in prompt
        assert "[[START_FILE: app.js]]" in prompt
