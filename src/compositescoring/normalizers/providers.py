"""Normalizers for externally scored assessments."""

from __future__ import annotations

from typing import Any, Mapping

from ..schemas import ComponentUpdate, clamp_score
from .internal import is_number, list_field

_CANDIDNESS_FLAGS = {
    "flagged": "candidness_flagged",
    "invalid": "candidness_invalid",
}


class AutoproctorNormalizer:
    """Integrity score from the proctoring session plus its violations."""

    component = "autoproctor"

    def normalize(self, fields: Mapping[str, Any]) -> ComponentUpdate:
        score = fields.get("integrity_score")
        raw = float(score) if is_number(score) else None
        norm = clamp_score(raw if raw is not None else 0.0)

        flags = [str(item) for item in list_field(fields, "violations") if str(item).strip()]

        meta: dict[str, Any] = {}
        if fields.get("session_id"):
            meta["session_id"] = str(fields["session_id"])
        return ComponentUpdate(raw=raw, norm=norm, flags=flags, meta=meta)


class PsymetricsNormalizer:
    """Overall psychometric score and candidness verdict.

    A missing score leaves ``norm`` empty so the component stays pending.
    """

    component = "psymetrics"

    def normalize(self, fields: Mapping[str, Any]) -> ComponentUpdate:
        score = fields.get("overall_score")
        raw = float(score) if is_number(score) else None
        norm = clamp_score(raw) if raw is not None else None

        candidness = str(fields.get("candidness") or "").strip().lower()
        flags = [_CANDIDNESS_FLAGS[candidness]] if candidness in _CANDIDNESS_FLAGS else []

        meta: dict[str, Any] = {}
        if candidness:
            meta["candidness"] = candidness
        if fields.get("external_id"):
            meta["external_id"] = str(fields["external_id"])
        return ComponentUpdate(raw=raw, norm=norm, flags=flags, meta=meta)
