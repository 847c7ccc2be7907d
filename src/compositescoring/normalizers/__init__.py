"""Normalizers turning extracted assessment values into component updates."""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Protocol, runtime_checkable

from ..errors import ComponentValidationError, UnknownComponentError
from ..schemas import ComponentUpdate, normalize_component_key
from .internal import (
    MedicalConfig,
    MedicalNormalizer,
    PhysicalNormalizer,
    RubricConfig,
    SkillsNormalizer,
)
from .providers import AutoproctorNormalizer, PsymetricsNormalizer


@runtime_checkable
class ComponentNormalizer(Protocol):
    """Normalizer contract.

    Implementations receive field values already extracted by the caller
    (form entry, webhook body, sync job row) and return the update for
    their component.
    """

    component: str

    def normalize(self, fields: Mapping[str, Any]) -> ComponentUpdate:
        """Return the normalized update for the given field values."""


class NormalizerRegistry:
    """Registry mapping component keys to normalizers."""

    def __init__(self, normalizers: Iterable[ComponentNormalizer]):
        self._normalizers = {item.component: item for item in normalizers}

    def get(self, component: str) -> ComponentNormalizer:
        key = normalize_component_key(component)
        try:
            return self._normalizers[key]
        except KeyError as exc:
            raise UnknownComponentError(component) from exc

    def normalize(self, component: str, fields: Mapping[str, Any]) -> ComponentUpdate:
        """Normalize ``fields`` for ``component``; bad values raise ComponentValidationError."""
        normalizer = self.get(component)
        if not isinstance(fields, Mapping):
            raise ComponentValidationError("fields must be a mapping")
        try:
            return normalizer.normalize(fields)
        except ComponentValidationError:
            raise
        except (TypeError, ValueError, ArithmeticError) as exc:
            raise ComponentValidationError(
                f"Cannot normalize {normalizer.component} fields", [str(exc)]
            ) from exc

    def components(self) -> List[str]:
        return list(self._normalizers.keys())


def default_registry() -> NormalizerRegistry:
    """Return a registry with every built-in normalizer."""
    return NormalizerRegistry(
        normalizers=[
            PsymetricsNormalizer(),
            AutoproctorNormalizer(),
            PhysicalNormalizer(),
            SkillsNormalizer(),
            MedicalNormalizer(),
        ]
    )


__all__ = [
    "AutoproctorNormalizer",
    "ComponentNormalizer",
    "MedicalConfig",
    "MedicalNormalizer",
    "NormalizerRegistry",
    "PhysicalNormalizer",
    "PsymetricsNormalizer",
    "RubricConfig",
    "SkillsNormalizer",
    "default_registry",
]
