"""
Tests for the YAML feature catalog.
"""

from __future__ import annotations

import logging

from patchstream.config import DEFAULT_FEATURES_DIR
from patchstream.models.validation import FeatureDefinition
from patchstream.services.validators.yaml_loader import FeatureCatalog


def test_default_catalog_loads_all_features():
    catalog = FeatureCatalog(str(DEFAULT_FEATURES_DIR))
    assert len(catalog) == 12
    assert "dark-mode-toggle" in catalog
    assert catalog.get("seo-meta-og").prompt_rule


def test_patterns_match_case_insensitively():
    catalog = FeatureCatalog(str(DEFAULT_FEATURES_DIR))
    assert catalog.is_satisfied("dark-mode-toggle", "localStorage.setItem('THEME', 'dark')") is True
    assert catalog.is_satisfied("dark-mode-toggle", "body{}") is False
    assert catalog.is_satisfied("rtl-support", '<html dir="rtl">') is True
    assert catalog.is_satisfied("unknown-feature", "anything") is None


def test_feature_without_patterns_is_not_checkable(tmp_path):
    (tmp_path / "features.yaml").write_text(
        "features:\n  - id: vibes\n    prompt_rule: Make it feel nice.\n", encoding="utf-8"
    )
    catalog = FeatureCatalog(str(tmp_path))
    assert catalog.get("vibes").prompt_rule == "Make it feel nice."
    assert catalog.is_satisfied("vibes", "") is None


def test_invalid_yaml_is_logged_and_skipped(tmp_path, caplog):
    (tmp_path / "a_broken.yaml").write_text("features: [unclosed", encoding="utf-8")
    (tmp_path / "b_good.yaml").write_text(
        "features:\n  - id: hero\n    patterns: ['hero']\n", encoding="utf-8"
    )
    with caplog.at_level(logging.ERROR):
        catalog = FeatureCatalog(str(tmp_path))
    assert "Failed to parse a_broken.yaml" in caplog.text
    assert len(catalog) == 1
    assert catalog.is_satisfied("hero", "<section class='hero'>") is True


def test_invalid_pattern_is_dropped(tmp_path, caplog):
    (tmp_path / "features.yaml").write_text(
        "features:\n  - id: mixed\n    patterns: ['([', 'ok']\n", encoding="utf-8"
    )
    with caplog.at_level(logging.ERROR):
        catalog = FeatureCatalog(str(tmp_path))
    assert "Invalid pattern" in caplog.text
    assert catalog.is_satisfied("mixed", "ok") is True


def test_file_without_feature_list(tmp_path, caplog):
    (tmp_path / "other.yaml").write_text("version: '1.0'\n", encoding="utf-8")
    with caplog.at_level(logging.WARNING):
        catalog = FeatureCatalog(str(tmp_path))
    assert len(catalog) == 0
    assert "No 'features' list found in other.yaml" in caplog.text


def test_missing_directory_gives_empty_catalog(tmp_path):
    assert len(FeatureCatalog(str(tmp_path / "nope"))) == 0


def test_runtime_add():
    catalog = FeatureCatalog(str(DEFAULT_FEATURES_DIR))
    catalog.add(FeatureDefinition(id="pricing-table", patterns=["pricing"]))
    assert catalog.is_satisfied("pricing-table", "<div class='Pricing'>") is True
