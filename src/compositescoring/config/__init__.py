"""Configuration management utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from .scoring import (
    DEFAULT_BANDS,
    DEFAULT_DISQUALIFYING_FLAGS,
    DEFAULT_DISQUALIFYING_PREFIXES,
    DEFAULT_WEIGHTS,
    FlagRules,
    ScoringConfig,
    ScoringConfigSource,
    StaticScoringConfigSource,
    YamlScoringConfigSource,
    build_scoring_config,
    sanitize_bands,
    sanitize_weights,
)


class ConfigManager:
    """Simple YAML-backed settings loader."""

    def __init__(self, base_path: str | Path):
        self._base_path = Path(base_path)

    def load(self, name: str) -> Any:
        """Load a YAML document by name without file extension."""
        path = self._base_path / f"{name}.yaml"
        if not path.exists():
            path = self._base_path / f"{name}.yml"
        with path.open("r", encoding="utf-8") as handle:
            return yaml.safe_load(handle) or {}


__all__ = [
    "ConfigManager",
    "DEFAULT_BANDS",
    "DEFAULT_DISQUALIFYING_FLAGS",
    "DEFAULT_DISQUALIFYING_PREFIXES",
    "DEFAULT_WEIGHTS",
    "FlagRules",
    "ScoringConfig",
    "ScoringConfigSource",
    "StaticScoringConfigSource",
    "YamlScoringConfigSource",
    "build_scoring_config",
    "sanitize_bands",
    "sanitize_weights",
]
