"""Normalizers for internally administered evaluations."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping

from ..errors import ComponentValidationError
from ..schemas import ComponentUpdate, clamp_score

PHYSICAL_CRITERIA: tuple[str, ...] = (
    "phys_strength",
    "phys_endurance",
    "phys_flexibility",
    "phys_posture",
    "phys_safety",
    "phys_hygiene",
)

SKILLS_CRITERIA: tuple[str, ...] = (
    "knife_skills",
    "line_speed",
    "food_safety",
    "station_cleanliness",
    "teamwork",
    "communication",
)

_INTEGRITY_LEVELS = ("minor", "severe")
_SLUG_PATTERN = re.compile(r"[^a-z0-9_]")


@dataclass
class RubricConfig:
    """Rubric criteria and the point total that maps to 100."""

    criteria: tuple[str, ...] = ()
    max_points: float = 20.0


@dataclass
class MedicalConfig:
    """Score thresholds for medical clearance."""

    cleared_min: float = 80.0
    restrictions_min: float = 40.0


class RubricNormalizer:
    """Sum rubric criteria and scale the total onto 0-100."""

    component = ""
    default_criteria: tuple[str, ...] = ()

    def __init__(self, *, config: RubricConfig | None = None) -> None:
        self._config = config or RubricConfig(criteria=self.default_criteria)
        if not self._config.criteria:
            self._config.criteria = self.default_criteria

    def normalize(self, fields: Mapping[str, Any]) -> ComponentUpdate:
        raw = sum(_as_number(fields.get(name)) for name in self._config.criteria)
        if not math.isfinite(raw):
            raise ComponentValidationError(f"{self.component} rubric total is not finite")
        max_points = self._config.max_points
        norm = clamp_score(round_half_up(raw / max_points * 100)) if max_points > 0 else 0.0

        flags: list[str] = []
        integrity = str(fields.get("integrity_flag") or "").strip().lower()
        if integrity in _INTEGRITY_LEVELS:
            flags.append(f"integrity_{integrity}")

        return ComponentUpdate(raw=raw, norm=norm, flags=flags, meta=_entry_meta(fields))


class PhysicalNormalizer(RubricNormalizer):
    component = "physical"
    default_criteria = PHYSICAL_CRITERIA


class SkillsNormalizer(RubricNormalizer):
    component = "skills"
    default_criteria = SKILLS_CRITERIA


class MedicalNormalizer:
    """Band a medical score, or a clearance decision, into norm and flags.

    A numeric ``medical_raw`` wins over the ``clearance`` choice. Checklist
    answers in ``risks`` become ``risk_<slug>`` flags.
    """

    component = "medical"

    def __init__(self, *, config: MedicalConfig | None = None) -> None:
        self._config = config or MedicalConfig()

    def normalize(self, fields: Mapping[str, Any]) -> ComponentUpdate:
        cleared_min = clamp_score(self._config.cleared_min)
        restrictions_min = min(cleared_min, clamp_score(self._config.restrictions_min))

        flags: list[str] = []
        raw: float | None = None
        medical_raw = fields.get("medical_raw")
        if is_number(medical_raw):
            raw = float(medical_raw)
            norm = clamp_score(round_half_up(raw))
            if norm >= cleared_min:
                pass
            elif norm >= restrictions_min:
                flags.append("restrictions")
            else:
                flags.append("not_cleared")
        else:
            clearance = str(fields.get("clearance") or "").strip().lower()
            if clearance == "cleared":
                norm = 100.0
            elif clearance == "cleared_restrictions":
                norm = 70.0
                flags.append("restrictions")
            else:
                norm = 0.0
                flags.append("not_cleared")

        flags.extend(risk_flags(list_field(fields, "risks")))
        return ComponentUpdate(raw=raw, norm=norm, flags=flags, meta=_entry_meta(fields))


def risk_flags(values: Iterable[Any] | str) -> list[str]:
    if isinstance(values, str):
        values = [values]
    flags = []
    for value in values:
        text = str(value).strip().lower()
        if text:
            flags.append("risk_" + _SLUG_PATTERN.sub("_", text))
    return flags


def list_field(fields: Mapping[str, Any], name: str) -> list[Any]:
    """Return a list-valued field; a bare string counts as one item."""
    value = fields.get(name)
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return list(value)
    raise ComponentValidationError(
        f"{name} must be a list of strings, got {type(value).__name__}"
    )


def round_half_up(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_number(value: Any) -> bool:
    if isinstance(value, bool) or value is None:
        return False
    try:
        number = float(value) if isinstance(value, (int, float)) else float(str(value).strip())
    except (ValueError, OverflowError):
        return False
    return math.isfinite(number)


def _as_number(value: Any) -> float:
    return float(value) if is_number(value) else 0.0


def _entry_meta(fields: Mapping[str, Any]) -> dict[str, Any]:
    entry_id = fields.get("entry_id")
    if entry_id is None:
        return {}
    return {"entry_id": int(float(entry_id)) if is_number(entry_id) else entry_id}
