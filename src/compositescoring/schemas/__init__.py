"""Pydantic schema definitions for component updates and composite snapshots."""

from __future__ import annotations

from .component import (
    COMPONENT_KEYS,
    ComponentRecord,
    ComponentUpdate,
    clamp_score,
    normalize_component_key,
)
from .composite import CompositeResult, Grade, StatusFlag

__all__ = [
    "COMPONENT_KEYS",
    "ComponentRecord",
    "ComponentUpdate",
    "CompositeResult",
    "Grade",
    "StatusFlag",
    "clamp_score",
    "normalize_component_key",
]
