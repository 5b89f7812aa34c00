"""
Partition outstanding violations into ordered repair batches.

Order: hidden-syntax -> critical-structure (missing + critical) ->
routing-integrity -> quality-hardening (quality + naming). An identifier
appears in at most one batch; empty batches are dropped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Set, Tuple

from ..models.validation import ValidationReport

HIDDEN_SYNTAX = "hidden-syntax"
CRITICAL_STRUCTURE = "critical-structure"
ROUTING_INTEGRITY = "routing-integrity"
QUALITY_HARDENING = "quality-hardening"


@dataclass(frozen=True)
class IssueBatch:
    label: str
    issues: Tuple[str, ...]


def build_issue_batches(report: ValidationReport, include_quality: bool = True) -> List[IssueBatch]:
    """
    Args:
        report: the current validation report
        include_quality: whether quality/naming findings get their own batch
    """
    grouped = report.issues_by_prefix()

    def tagged(prefix: str) -> List[str]:
        return [f"{prefix}:{item}" for item in grouped[prefix]]

    candidates = [
        (HIDDEN_SYNTAX, tagged("hidden")),
        (CRITICAL_STRUCTURE, tagged("missing") + tagged("critical")),
        (ROUTING_INTEGRITY, tagged("routing")),
    ]
    if include_quality:
        candidates.append((QUALITY_HARDENING, tagged("quality") + tagged("naming")))

    seen: Set[str] = set()
    batches: List[IssueBatch] = []
    for label, issues in candidates:
        unique = []
        for issue in issues:
            key = issue.strip()
            if not key or key in seen:
                continue
            seen.add(key)
            unique.append(key)
        if unique:
            batches.append(IssueBatch(label=label, issues=tuple(unique)))
    return batches
