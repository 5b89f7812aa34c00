"""
Tests for configuration priority: ENV > config.json > defaults.
"""

from __future__ import annotations

import json

import pytest

from patchstream.config import DEFAULT_FEATURES_DIR, Config
from patchstream.models.policy import DEFAULT_FORBIDDEN_ALIASES


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("PATCHSTREAM_FEATURES_DIR", "PATCHSTREAM_MAX_AUTOFIX_ROUNDS", "PATCHSTREAM_FOOTER_MARKER"):
        monkeypatch.delenv(name, raising=False)


def write_config(tmp_path, data) -> Config:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return Config(config_file=path)


def test_defaults_without_config_file(tmp_path):
    cfg = Config(config_file=tmp_path / "missing.json")
    assert cfg.get_features_dir() == str(DEFAULT_FEATURES_DIR)
    assert cfg.get_max_autofix_rounds() == 3
    assert cfg.get_footer_marker() is None
    assert cfg.get_engine_policy().forbidden_aliases == DEFAULT_FORBIDDEN_ALIASES


def test_config_file_values(tmp_path):
    cfg = write_config(
        tmp_path,
        {
            "paths": {"features_dir": "/srv/features"},
            "autofix": {"max_rounds": 5},
            "policy": {"footer_marker": "<!-- done -->", "duplicate_sensitive": ["main.py"]},
        },
    )
    assert cfg.get_features_dir() == "/srv/features"
    assert cfg.get_max_autofix_rounds() == 5
    policy = cfg.get_engine_policy()
    assert policy.footer_marker == "<!-- done -->"
    assert policy.duplicate_sensitive == ["main.py"]


def test_environment_wins(tmp_path, monkeypatch):
    cfg = write_config(tmp_path, {"paths": {"features_dir": "/srv/features"}, "autofix": {"max_rounds": 5}})
    monkeypatch.setenv("PATCHSTREAM_FEATURES_DIR", "/env/features")
    monkeypatch.setenv("PATCHSTREAM_MAX_AUTOFIX_ROUNDS", "7")
    monkeypatch.setenv("PATCHSTREAM_FOOTER_MARKER", "<hr data-env>")
    assert cfg.get_features_dir() == "/env/features"
    assert cfg.get_max_autofix_rounds() == 7
    assert cfg.get_engine_policy().footer_marker == "<hr data-env>"


@pytest.mark.parametrize("raw, expected", [("0", 1), ("-4", 1), ("many", 3)])
def test_round_budget_is_sane(monkeypatch, tmp_path, raw, expected):
    monkeypatch.setenv("PATCHSTREAM_MAX_AUTOFIX_ROUNDS", raw)
    assert Config(config_file=tmp_path / "missing.json").get_max_autofix_rounds() == expected


def test_broken_config_file_falls_back(tmp_path, caplog):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    cfg = Config(config_file=path)
    assert "Failed to load config" in caplog.text
    assert cfg.get_max_autofix_rounds() == 3


def test_invalid_policy_override_uses_defaults(tmp_path, caplog):
    cfg = write_config(tmp_path, {"policy": {"duplicate_sensitive": "index.html"}})
    policy = cfg.get_engine_policy()
    assert "Invalid policy configuration" in caplog.text
    assert "style.css" in policy.duplicate_sensitive


def test_set_max_autofix_rounds_persists(tmp_path):
    cfg = write_config(tmp_path, {})
    cfg.set_max_autofix_rounds(4)
    assert Config(config_file=tmp_path / "config.json").get_max_autofix_rounds() == 4
