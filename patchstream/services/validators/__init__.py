"""
Constraint rule framework for patchstream.

Provides the base class and an instance-level rule set for pluggable
project constraint rules. Each rule inspects the complete file set and
reports identifiers for one ValidationReport category:
- missing: selected generation features with no trace in the project
- critical / hidden / routing: structural problems that trigger auto-fix
- quality / naming: enforced according to the quality gate mode
- advisory: informational only

Selectable features are defined declaratively by YAML files in
data/features/ (see default.yaml); ``yaml_loader.FeatureCatalog`` loads them.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, List, Mapping, Optional

from ...models.policy import EnginePolicy
from ...models.validation import GenerationConstraints, IssueCategory
from ..integrity_scanner import IntegrityScanner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleContext:
    """Everything a rule may look at. Rules never mutate it."""

    files: Mapping[str, str]
    constraints: GenerationConstraints
    scanner: IntegrityScanner
    policy: EnginePolicy


class BaseConstraintRule(ABC):
    """
    Base class for all constraint rules.

    Subclasses implement check() and return the identifiers of every
    violation they find (empty list when the project passes).
    """

    name: str = "base_rule"
    category: IssueCategory = IssueCategory.QUALITY
    description: str = "Base rule (override in subclass)"

    @abstractmethod
    def check(self, context: RuleContext) -> List[str]:
        """
        Run this rule over the whole project.

        Args:
            context: files (path -> content), constraints, scanner and policy

        Returns:
            Violation identifiers, e.g. ``SYNTAX:script.js``
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, category={self.category.value})>"


class ConstraintRuleSet:
    """
    Ordered collection of rules owned by one validator.

    Unlike a process-wide registry, each validator gets its own set, so
    tests and concurrent projects never see each other's custom rules.
    """

    def __init__(self, rules: Optional[List[BaseConstraintRule]] = None):
        self._rules: List[BaseConstraintRule] = []
        for rule in rules or []:
            self.register(rule)

    def register(self, rule: BaseConstraintRule) -> BaseConstraintRule:
        if not isinstance(rule, BaseConstraintRule):
            raise TypeError(f"{rule!r} must inherit from BaseConstraintRule")
        self._rules.append(rule)
        logger.debug(f"Registered constraint rule: {rule.name} ({rule.category.value})")
        return rule

    def by_category(self, category: IssueCategory) -> List[BaseConstraintRule]:
        return [rule for rule in self._rules if rule.category == category]

    def clear(self) -> None:
        self._rules.clear()

    def __iter__(self) -> Iterator[BaseConstraintRule]:
        return iter(list(self._rules))

    def __len__(self) -> int:
        return len(self._rules)
