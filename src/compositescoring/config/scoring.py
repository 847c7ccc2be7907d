"""Scoring weights, grade bands and flag rules."""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Protocol, runtime_checkable

import structlog
import yaml

from ..errors import ScoringConfigError
from ..schemas.component import COMPONENT_KEYS

DEFAULT_WEIGHTS: Mapping[str, float] = MappingProxyType(
    {
        "psymetrics": 40.0,
        "autoproctor": 20.0,
        "physical": 20.0,
        "skills": 20.0,
        "medical": 0.0,
    }
)

DEFAULT_BANDS: Mapping[str, float] = MappingProxyType(
    {
        "A": 85.0,
        "B": 70.0,
        "C": 55.0,
        "D": 0.0,
    }
)

GRADES: tuple[str, ...] = ("A", "B", "C", "D")

DEFAULT_DISQUALIFYING_FLAGS: frozenset[str] = frozenset(
    {
        "candidness_flagged",
        "candidness_invalid",
        "not_cleared",
        "integrity_severe",
    }
)

# Medical checklist risks arrive as ``risk_<slug>``.
DEFAULT_DISQUALIFYING_PREFIXES: tuple[str, ...] = ("risk_",)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FlagRules:
    """Which flags disqualify an applicant and which park them on hold."""

    disqualifying_flags: frozenset[str] = DEFAULT_DISQUALIFYING_FLAGS
    disqualifying_prefixes: tuple[str, ...] = DEFAULT_DISQUALIFYING_PREFIXES
    hold_flags: frozenset[str] = frozenset()

    def is_disqualifying(self, flag: str) -> bool:
        if flag in self.disqualifying_flags:
            return True
        return any(flag.startswith(prefix) for prefix in self.disqualifying_prefixes)

    def is_hold(self, flag: str) -> bool:
        return flag in self.hold_flags

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "FlagRules":
        if not data:
            return cls()
        if not isinstance(data, Mapping):
            raise ScoringConfigError("rules must be a mapping")
        defaults = cls()
        return cls(
            disqualifying_flags=frozenset(
                _string_list(data, "disqualifying_flags", defaults.disqualifying_flags)
            ),
            disqualifying_prefixes=tuple(
                _string_list(data, "disqualifying_prefixes", defaults.disqualifying_prefixes)
            ),
            hold_flags=frozenset(_string_list(data, "hold_flags", defaults.hold_flags)),
        )

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "disqualifying_flags": sorted(self.disqualifying_flags),
            "disqualifying_prefixes": list(self.disqualifying_prefixes),
            "hold_flags": sorted(self.hold_flags),
        }


@dataclass(frozen=True)
class ScoringConfig:
    """Immutable snapshot of the scoring configuration used by one recompute."""

    weights: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    bands: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_BANDS))
    rules: FlagRules = field(default_factory=FlagRules)

    def __post_init__(self) -> None:
        for key, weight in self.weights.items():
            if not math.isfinite(weight) or weight < 0:
                raise ScoringConfigError(f"Invalid weight for {key!r}: {weight}")
        _check_bands(self.bands)
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))
        object.__setattr__(self, "bands", MappingProxyType(dict(self.bands)))

    @classmethod
    def default(cls) -> "ScoringConfig":
        return cls()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "ScoringConfig":
        """Build a sanitized config, raising ScoringConfigError on bad input."""
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ScoringConfigError("scoring config must be a mapping")
        return cls(
            weights=sanitize_weights(data.get("weights")),
            bands=sanitize_bands(data.get("bands")),
            rules=FlagRules.from_mapping(data.get("rules")),
        )

    def as_tuple(self) -> tuple[dict[str, float], dict[str, float]]:
        """Return copies of the weights and bands."""
        return dict(self.weights), dict(self.bands)

    def with_changes(
        self,
        *,
        weights: Mapping[str, Any] | None = None,
        bands: Mapping[str, Any] | None = None,
        rules: Mapping[str, Any] | None = None,
    ) -> "ScoringConfig":
        merged_weights = dict(self.weights)
        if weights is not None:
            if not isinstance(weights, Mapping):
                raise ScoringConfigError("weights must be a mapping")
            merged_weights.update(weights)
        merged_bands = dict(self.bands)
        if bands is not None:
            if not isinstance(bands, Mapping):
                raise ScoringConfigError("bands must be a mapping")
            merged_bands.update(bands)
        return ScoringConfig(
            weights=sanitize_weights(merged_weights),
            bands=sanitize_bands(merged_bands),
            rules=FlagRules.from_mapping(rules) if rules is not None else self.rules,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "weights": dict(self.weights),
            "bands": dict(self.bands),
            "rules": self.rules.to_dict(),
        }


def sanitize_weights(raw: Mapping[str, Any] | None) -> dict[str, float]:
    """Keep known components only, clamp to >= 0, default missing keys."""
    if raw is None:
        return dict(DEFAULT_WEIGHTS)
    if not isinstance(raw, Mapping):
        raise ScoringConfigError("weights must be a mapping")
    weights: dict[str, float] = {}
    for key in COMPONENT_KEYS:
        if key not in raw:
            weights[key] = DEFAULT_WEIGHTS[key]
            continue
        value = _as_float(raw[key], f"weights.{key}")
        weights[key] = max(0.0, value)
    return weights


def sanitize_bands(raw: Mapping[str, Any] | None) -> dict[str, float]:
    """Merge over the default bands and require A >= B >= C >= D."""
    if raw is None:
        return dict(DEFAULT_BANDS)
    if not isinstance(raw, Mapping):
        raise ScoringConfigError("bands must be a mapping")
    bands = dict(DEFAULT_BANDS)
    for grade in GRADES:
        if grade in raw:
            bands[grade] = _as_float(raw[grade], f"bands.{grade}")
    _check_bands(bands)
    return bands


def _check_bands(bands: Mapping[str, float]) -> None:
    if set(bands) != set(GRADES):
        raise ScoringConfigError(f"bands must define exactly {list(GRADES)}: {dict(bands)}")
    thresholds = [bands[grade] for grade in GRADES]
    if not all(math.isfinite(value) for value in thresholds):
        raise ScoringConfigError(f"bands must be finite: {dict(bands)}")
    if any(upper < lower for upper, lower in zip(thresholds, thresholds[1:])):
        raise ScoringConfigError(f"bands must descend from A to D: {dict(bands)}")


def build_scoring_config(data: Mapping[str, Any] | None, *, source: str = "settings") -> ScoringConfig:
    """Like ScoringConfig.from_mapping but falls back to defaults on bad input."""
    try:
        return ScoringConfig.from_mapping(data)
    except ScoringConfigError as exc:
        logger.warning("config.fallback", source=source, error=str(exc))
        return ScoringConfig.default()


@runtime_checkable
class ScoringConfigSource(Protocol):
    """Where the current scoring configuration is read from and saved to."""

    def load(self) -> ScoringConfig:
        """Return the current configuration; never raises."""

    def save(self, config: ScoringConfig) -> None:
        """Persist a new configuration for subsequent loads."""


class StaticScoringConfigSource:
    """In-memory configuration holder."""

    def __init__(self, config: ScoringConfig | None = None):
        self._config = config or ScoringConfig.default()
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any] | None) -> "StaticScoringConfigSource":
        return cls(build_scoring_config(settings))

    def load(self) -> ScoringConfig:
        with self._lock:
            return self._config

    def save(self, config: ScoringConfig) -> None:
        with self._lock:
            self._config = config


class YamlScoringConfigSource:
    """YAML-file backed configuration, re-read on every load."""

    def __init__(self, path: str | Path, *, fallback: ScoringConfig | None = None):
        self._path = Path(path)
        self._fallback = fallback or ScoringConfig.default()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> ScoringConfig:
        if not self._path.exists():
            return self._fallback
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle)
            return ScoringConfig.from_mapping(data)
        except (OSError, yaml.YAMLError, ScoringConfigError) as exc:
            logger.warning("config.fallback", source=str(self._path), error=str(exc))
            return self._fallback

    def save(self, config: ScoringConfig) -> None:
        payload = yaml.safe_dump(config.to_dict(), sort_keys=True, allow_unicode=True)
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            staging = self._path.with_suffix(self._path.suffix + ".tmp")
            staging.write_text(payload, encoding="utf-8")
            staging.replace(self._path)


def _as_float(value: Any, label: str) -> float:
    if isinstance(value, bool):
        raise ScoringConfigError(f"{label} must be numeric, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ScoringConfigError(f"{label} must be numeric, got {value!r}") from exc
    if not math.isfinite(number):
        raise ScoringConfigError(f"{label} must be finite, got {value!r}")
    return number


def _string_list(data: Mapping[str, Any], key: str, default: Any) -> list[str]:
    if data.get(key) is None:
        return list(default)
    value = data[key]
    if not isinstance(value, (list, tuple, set, frozenset)) or not all(isinstance(item, str) for item in value):
        raise ScoringConfigError(f"rules.{key} must be a list of strings")
    return [item.strip() for item in value if item.strip()]
