"""
Configuration management for patchstream.

Configuration priority (highest to lowest):
1. Environment variables (for Docker/container deployments)
2. config.json file at the repository root (for local development)
3. Built-in defaults

Engine classes never read this module. It only feeds the HTTP layer and
callers that want the configured ``EnginePolicy``.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .models.policy import EnginePolicy

logger = logging.getLogger(__name__)

# Config file path at project root
CONFIG_FILE = Path(__file__).parent.parent / "config.json"

DEFAULT_FEATURES_DIR = Path(__file__).parent / "data" / "features"
DEFAULT_MAX_AUTOFIX_ROUNDS = 3


class Config:
    """
    Project-level configuration manager.

    Priority: ENV > config.json > defaults

    Environment variables:
      - PATCHSTREAM_FEATURES_DIR: directory holding feature catalog .yaml files
      - PATCHSTREAM_MAX_AUTOFIX_ROUNDS: round budget of the auto-fix loop
      - PATCHSTREAM_FOOTER_MARKER: marker kept exactly once in every markup file
    """

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file) if config_file is not None else CONFIG_FILE
        self.data = self.load()

    def load(self) -> Dict[str, Any]:
        """Load configuration from file."""
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    return json.load(f)
            except (OSError, ValueError) as e:
                logger.error(f"Failed to load config: {e}")
                return self._default_config()
        return self._default_config()

    def save(self) -> None:
        """Save configuration to file."""
        try:
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(self.data, f, indent=2)
            logger.info(f"Configuration saved to {self.config_file}")
        except OSError as e:
            logger.error(f"Failed to save config: {e}")

    def _default_config(self) -> Dict[str, Any]:
        return {
            "paths": {},
            "autofix": {"max_rounds": DEFAULT_MAX_AUTOFIX_ROUNDS},
            "policy": {},
        }

    def get_features_dir(self) -> str:
        """Get feature catalog directory (ENV > config.json > default)."""
        env_path = os.getenv("PATCHSTREAM_FEATURES_DIR")
        if env_path:
            return env_path

        config_path = self.data.get("paths", {}).get("features_dir")
        if config_path:
            return config_path

        return str(DEFAULT_FEATURES_DIR)

    def get_max_autofix_rounds(self) -> int:
        """Get auto-fix round budget (ENV > config.json > default). Never below 1."""
        raw = os.getenv("PATCHSTREAM_MAX_AUTOFIX_ROUNDS")
        if raw is None:
            raw = self.data.get("autofix", {}).get("max_rounds", DEFAULT_MAX_AUTOFIX_ROUNDS)
        try:
            rounds = int(raw)
        except (TypeError, ValueError):
            logger.warning(f"Invalid max_rounds value {raw!r}, using {DEFAULT_MAX_AUTOFIX_ROUNDS}")
            return DEFAULT_MAX_AUTOFIX_ROUNDS
        return max(1, rounds)

    def get_footer_marker(self) -> Optional[str]:
        """Get the markup footer marker, or None for the built-in one."""
        env_marker = os.getenv("PATCHSTREAM_FOOTER_MARKER")
        if env_marker:
            return env_marker
        return self.data.get("policy", {}).get("footer_marker")

    def get_engine_policy(self) -> EnginePolicy:
        """
        Build the EnginePolicy from config.json ``policy`` overrides.

        Invalid overrides are logged and the built-in defaults are used.
        """
        overrides = dict(self.data.get("policy", {}) or {})
        footer = self.get_footer_marker()
        if footer is not None:
            overrides["footer_marker"] = footer
        try:
            return EnginePolicy(**overrides)
        except ValidationError as e:
            logger.error(f"Invalid policy configuration, using defaults: {e}")
            return EnginePolicy(footer_marker=footer)

    def set_max_autofix_rounds(self, rounds: int) -> None:
        self.data.setdefault("autofix", {})["max_rounds"] = int(rounds)
        self.save()


# Global config instance
config = Config()
