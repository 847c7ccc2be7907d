"""Composite recompute engine."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Mapping

from ..config import FlagRules, ScoringConfig
from ..schemas import ComponentRecord, CompositeResult, StatusFlag

FORMULA_VERSION = "v2"


class RecomputeEngine:
    """Computes the weighted composite, grade and status for one applicant.

    The computation is pure: the same components and config always produce
    the same result, and nothing here performs I/O. ``computed_at`` is passed
    in by the caller for that reason.

    Weights are renormalized over the components that have a score, so an
    applicant with three of five assessments done is scored on those three.
    Flags are evaluated on every call; disqualification is never carried
    over from an earlier snapshot.
    """

    formula_version = FORMULA_VERSION

    def compute(
        self,
        components: Mapping[str, ComponentRecord],
        config: ScoringConfig,
        *,
        applicant_id: int,
        computed_at: datetime,
    ) -> CompositeResult:
        weights = dict(config.weights)
        bands = dict(config.bands)

        flag_status = self._flag_status(components.values(), config.rules)
        present = sorted(
            key
            for key in weights
            if key in components and components[key].norm is not None
        )
        missing = sorted(
            key for key, weight in weights.items() if weight > 0 and key not in present
        )

        composite = self._weighted_composite(components, weights, present)
        if composite is None:
            score = 0.0
            grade = self._lowest_grade(bands)
        else:
            score = composite
            grade = grade_for(composite, bands)

        status: StatusFlag
        if flag_status is not None:
            status = flag_status
        elif composite is None:
            status = "pending"
        elif missing:
            status = "provisional"
        else:
            status = "final"

        return CompositeResult(
            applicant_id=applicant_id,
            components={
                key: record.model_copy(deep=True) for key, record in components.items()
            },
            weights=weights,
            bands=bands,
            composite=score,
            grade=grade,
            status_flag=status,
            formula_version=self.formula_version,
            computed_at=computed_at,
            present=present,
            missing=missing,
        )

    @staticmethod
    def _flag_status(
        records: Iterable[ComponentRecord],
        rules: FlagRules,
    ) -> StatusFlag | None:
        on_hold = False
        for record in records:
            for flag in record.flags:
                if rules.is_disqualifying(flag):
                    return "disqualified"
                if rules.is_hold(flag):
                    on_hold = True
        return "hold" if on_hold else None

    @staticmethod
    def _weighted_composite(
        components: Mapping[str, ComponentRecord],
        weights: Mapping[str, float],
        present: list[str],
    ) -> float | None:
        total_weight = sum(weights[key] for key in present)
        if total_weight <= 0:
            return None
        weighted = sum(weights[key] * float(components[key].norm) for key in present)
        composite = min(100.0, max(0.0, weighted / total_weight))
        return round(composite, 2)

    @staticmethod
    def _lowest_grade(bands: Mapping[str, float]) -> str:
        return _ordered_bands(bands)[-1][0]


def grade_for(score: float, bands: Mapping[str, float]) -> str:
    """Return the first grade whose threshold is at or below the score."""
    ordered = _ordered_bands(bands)
    for grade, threshold in ordered:
        if score >= threshold:
            return grade
    return ordered[-1][0]


def _ordered_bands(bands: Mapping[str, float]) -> list[tuple[str, float]]:
    # Equal thresholds resolve to the better letter.
    return sorted(bands.items(), key=lambda item: (-item[1], item[0]))
