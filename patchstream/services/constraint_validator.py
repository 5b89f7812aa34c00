"""
Constraint validator: full file set -> ValidationReport.

Stateless per call. Rules are independent and composable; this service only
runs them and classifies their findings according to the quality gate mode:

- missing / critical / hidden / routing: always block finalize and request auto-fix
- quality / naming: block finalize; request auto-fix only in ``strict`` mode;
  moved to advisories in ``light`` mode
- advisory: informational, never block
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional

from ..models.policy import EnginePolicy
from ..models.validation import GenerationConstraints, IssueCategory, QualityGateMode, ValidationReport
from .integrity_scanner import IntegrityScanner
from .validators import BaseConstraintRule, ConstraintRuleSet, RuleContext
from .validators.builtin_rules import default_rules, reference_coverage
from .validators.yaml_loader import FeatureCatalog

logger = logging.getLogger(__name__)

_AUTO_FIX_CATEGORIES = (
    IssueCategory.MISSING,
    IssueCategory.CRITICAL,
    IssueCategory.HIDDEN,
    IssueCategory.ROUTING,
)


class ConstraintValidator:
    def __init__(
        self,
        rules: Optional[List[BaseConstraintRule]] = None,
        catalog: Optional[FeatureCatalog] = None,
        scanner: Optional[IntegrityScanner] = None,
        policy: Optional[EnginePolicy] = None,
    ):
        self.catalog = catalog if catalog is not None else FeatureCatalog()
        self.scanner = scanner or IntegrityScanner()
        self.policy = policy or EnginePolicy()
        self.rules = ConstraintRuleSet(rules if rules is not None else default_rules(self.catalog))

    def validate(self, files: Mapping[str, str], constraints: GenerationConstraints) -> ValidationReport:
        context = RuleContext(
            files=dict(files),
            constraints=constraints,
            scanner=self.scanner,
            policy=self.policy,
        )

        found: Dict[IssueCategory, List[str]] = {category: [] for category in IssueCategory}
        for rule in self.rules:
            for identifier in rule.check(context):
                if identifier not in found[rule.category]:
                    found[rule.category].append(identifier)

        gate = constraints.quality_gate_mode
        if gate == QualityGateMode.LIGHT:
            found[IssueCategory.ADVISORY].extend(
                found.pop(IssueCategory.QUALITY) + found.pop(IssueCategory.NAMING)
            )
            found[IssueCategory.QUALITY] = []
            found[IssueCategory.NAMING] = []

        triggers = [found[category] for category in _AUTO_FIX_CATEGORIES]
        if gate == QualityGateMode.STRICT:
            triggers += [found[IssueCategory.QUALITY], found[IssueCategory.NAMING]]
        should_auto_fix = any(triggers)

        blocking = [found[category] for category in IssueCategory if category != IssueCategory.ADVISORY]
        report = ValidationReport(
            missing_features=found[IssueCategory.MISSING],
            critical_violations=found[IssueCategory.CRITICAL],
            hidden_issues=found[IssueCategory.HIDDEN],
            routing_violations=found[IssueCategory.ROUTING],
            quality_violations=found[IssueCategory.QUALITY],
            naming_violations=found[IssueCategory.NAMING],
            advisory_violations=found[IssueCategory.ADVISORY],
            retrieval_coverage_score=reference_coverage(context.files),
            ready_for_finalize=not any(blocking),
            should_auto_fix=should_auto_fix,
        )
        logger.debug(f"Validated {len(context.files)} file(s): {report.summary()}")
        return report
