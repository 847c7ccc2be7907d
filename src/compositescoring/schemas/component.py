"""Component update schemas."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..errors import UnknownComponentError

COMPONENT_KEYS: tuple[str, ...] = (
    "psymetrics",
    "autoproctor",
    "physical",
    "skills",
    "medical",
)


def normalize_component_key(key: Any) -> str:
    """Return the canonical component key or raise UnknownComponentError."""
    if not isinstance(key, str):
        raise UnknownComponentError(key)
    canonical = key.strip().lower()
    if canonical not in COMPONENT_KEYS:
        raise UnknownComponentError(key)
    return canonical


def clamp_score(value: float) -> float:
    return min(100.0, max(0.0, float(value)))


class ComponentUpdate(BaseModel):
    """Normalized result reported by one assessment source."""

    raw: float | None = None
    norm: float | None = None
    flags: list[str] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    @field_validator("raw")
    @classmethod
    def _finite_raw(cls, value: float | None) -> float | None:
        if value is not None and not math.isfinite(value):
            raise ValueError("raw must be a finite number")
        return value

    @field_validator("norm")
    @classmethod
    def _clamped_norm(cls, value: float | None) -> float | None:
        if value is None:
            return None
        if not math.isfinite(value):
            raise ValueError("norm must be a finite number")
        return clamp_score(value)

    @field_validator("flags")
    @classmethod
    def _unique_flags(cls, value: list[str]) -> list[str]:
        seen: list[str] = []
        for flag in value:
            cleaned = flag.strip()
            if cleaned and cleaned not in seen:
                seen.append(cleaned)
        return seen


class ComponentRecord(ComponentUpdate):
    """Stored component value, stamped by the engine at write time."""

    updated_at: datetime

    @classmethod
    def from_update(cls, update: ComponentUpdate, *, updated_at: datetime) -> "ComponentRecord":
        return cls(
            raw=update.raw,
            norm=update.norm,
            flags=list(update.flags),
            meta=dict(update.meta),
            updated_at=updated_at,
        )
