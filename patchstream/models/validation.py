"""
Constraint validation models.

A ValidationReport is derived fresh from a full file set on every validation
call. Nothing here is persisted or mutated in place by the validator's callers.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ProjectMode(str, Enum):
    FRONTEND_ONLY = "FRONTEND_ONLY"
    FULL_STACK = "FULL_STACK"


class QualityGateMode(str, Enum):
    """
    How hard quality and naming findings are enforced.

    STRICT: they trigger auto-fix rounds.
    MEDIUM: they block finalize but do not trigger re-generation.
    LIGHT: they are reported as advisory only.
    """

    STRICT = "strict"
    MEDIUM = "medium"
    LIGHT = "light"


class GenerationConstraints(BaseModel):
    """User-selected constraints a generated project must satisfy."""

    project_mode: ProjectMode = ProjectMode.FRONTEND_ONLY
    selected_features: List[str] = Field(default_factory=list)
    custom_feature_tags: List[str] = Field(default_factory=list)
    quality_gate_mode: QualityGateMode = QualityGateMode.MEDIUM

    class Config:
        json_schema_extra = {
            "example": {
                "project_mode": "FRONTEND_ONLY",
                "selected_features": ["responsive-mobile-first", "a11y-landmarks"],
                "custom_feature_tags": ["pricing table"],
                "quality_gate_mode": "medium",
            }
        }


class IssueCategory(str, Enum):
    """Where a constraint finding is reported in the ValidationReport."""

    MISSING = "missing"
    CRITICAL = "critical"
    HIDDEN = "hidden"
    ROUTING = "routing"
    QUALITY = "quality"
    NAMING = "naming"
    ADVISORY = "advisory"


class FeatureDefinition(BaseModel):
    """One selectable generation feature from the YAML feature catalog."""

    id: str
    category: str = "ui"
    prompt_rule: str = ""
    patterns: List[str] = Field(default_factory=list)


class ValidationReport(BaseModel):
    """Classified outcome of validating a complete file set."""

    missing_features: List[str] = Field(default_factory=list)
    critical_violations: List[str] = Field(default_factory=list)
    routing_violations: List[str] = Field(default_factory=list)
    naming_violations: List[str] = Field(default_factory=list)
    hidden_issues: List[str] = Field(default_factory=list)
    quality_violations: List[str] = Field(default_factory=list)
    advisory_violations: List[str] = Field(default_factory=list)

    retrieval_coverage_score: int = Field(default=100, ge=0, le=100)
    ready_for_finalize: bool = True
    should_auto_fix: bool = False

    def issues_by_prefix(self) -> Dict[str, List[str]]:
        return {
            "hidden": list(self.hidden_issues),
            "missing": list(self.missing_features),
            "critical": list(self.critical_violations),
            "routing": list(self.routing_violations),
            "quality": list(self.quality_violations),
            "naming": list(self.naming_violations),
        }

    def issue_identifiers(self) -> List[str]:
        """All outstanding violations as ``prefix:identifier`` strings."""
        identifiers: List[str] = []
        for prefix, items in self.issues_by_prefix().items():
            identifiers.extend(f"{prefix}:{item}" for item in items)
        return identifiers

    def issue_signature(self) -> str:
        """Stable, sorted, de-duplicated join of every outstanding identifier."""
        return "|".join(sorted(set(self.issue_identifiers())))

    def summary(self) -> str:
        if self.ready_for_finalize:
            return "all constraints satisfied"
        parts = [
            f"{prefix}={len(items)}" for prefix, items in self.issues_by_prefix().items() if items
        ]
        parts.append(f"coverage={self.retrieval_coverage_score}%")
        return ", ".join(parts)


class AutoFixRoundState(BaseModel):
    round: int = 0
    issue_signature: str = ""


class AutoFixOutcome(BaseModel):
    """What the auto-fix loop hands back to its caller."""

    report: ValidationReport
    rounds: int = 0
    stalled: bool = False
    round_state: AutoFixRoundState = Field(default_factory=AutoFixRoundState)
    healed_files: List[str] = Field(default_factory=list)
    last_batch: Optional[str] = None


class RepairRequest(BaseModel):
    """One targeted re-generation request for a single issue batch."""

    focus: str
    issues: List[str] = Field(default_factory=list)
    attempt: int = 1
    max_attempts: int = 3
    recently_healed_files: List[str] = Field(default_factory=list)
    prompt: str = ""
