"""
YAML feature catalog loader.

Loads the selectable generation features from data/features/*.yaml. Each
feature carries the prompt rule handed to the generator and a list of
case-insensitive regex patterns; a selected feature is satisfied when any
pattern matches the flattened project corpus.

    version: "1.0"
    features:
      - id: dark-mode-toggle
        category: ux
        prompt_rule: Provide a user-visible dark/light mode toggle ...
        patterns: ['dark', 'theme', 'localstorage']
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from ...config import config
from ...models.validation import FeatureDefinition

logger = logging.getLogger(__name__)


class FeatureCatalog:
    """Feature definitions keyed by id, with their compiled patterns."""

    def __init__(self, features_dir: Optional[str] = None):
        """
        Args:
            features_dir: Directory containing .yaml feature files (defaults to config.get_features_dir())
        """
        if features_dir is None:
            features_dir = config.get_features_dir()
        self.features_dir = Path(features_dir)
        self.features: Dict[str, FeatureDefinition] = {}
        self._patterns: Dict[str, List[re.Pattern]] = {}
        self._load_all()

    def _load_all(self) -> None:
        if not self.features_dir.exists():
            logger.warning(f"Features directory does not exist: {self.features_dir}")
            return

        yaml_files = sorted(self.features_dir.glob("*.yaml"))
        if not yaml_files:
            logger.warning(f"No .yaml files found in {self.features_dir}")
            return

        for yaml_file in yaml_files:
            try:
                with open(yaml_file, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                logger.error(f"Failed to parse {yaml_file.name}: {e}")
                continue
            except OSError as e:
                logger.error(f"Error reading {yaml_file.name}: {e}")
                continue

            entries = data.get("features") if isinstance(data, dict) else None
            if not isinstance(entries, list):
                logger.warning(f"No 'features' list found in {yaml_file.name}")
                continue

            for entry in entries:
                self._add_entry(entry, yaml_file.name)
            logger.info(f"Loaded {len(entries)} feature(s) from {yaml_file.name}")

    def _add_entry(self, entry, source: str) -> None:
        if not isinstance(entry, dict) or not entry.get("id"):
            logger.warning(f"Skipping feature without id in {source}")
            return
        feature = FeatureDefinition(
            id=str(entry["id"]),
            category=str(entry.get("category", "ui")),
            prompt_rule=str(entry.get("prompt_rule", "")).strip(),
            patterns=[str(p) for p in entry.get("patterns") or []],
        )
        compiled = []
        for pattern in feature.patterns:
            try:
                compiled.append(re.compile(pattern, re.IGNORECASE))
            except re.error as e:
                logger.error(f"Invalid pattern {pattern!r} for feature {feature.id} in {source}: {e}")
        self.features[feature.id] = feature
        self._patterns[feature.id] = compiled

    def add(self, feature: FeatureDefinition) -> None:
        self._add_entry(feature.model_dump(), "<runtime>")

    def get(self, feature_id: str) -> Optional[FeatureDefinition]:
        return self.features.get(feature_id)

    def __contains__(self, feature_id: str) -> bool:
        return feature_id in self.features

    def __len__(self) -> int:
        return len(self.features)

    def is_satisfied(self, feature_id: str, corpus: str) -> Optional[bool]:
        """
        True/False for a checkable feature, None when the feature is unknown
        or declares no patterns (nothing to verify).
        """
        patterns = self._patterns.get(feature_id)
        if not patterns:
            return None
        return any(p.search(corpus) for p in patterns)
