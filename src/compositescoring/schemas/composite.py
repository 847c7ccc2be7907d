"""Composite snapshot schema."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .component import ComponentRecord

StatusFlag = Literal["pending", "hold", "provisional", "disqualified", "final"]
Grade = Literal["A", "B", "C", "D"]


class CompositeResult(BaseModel):
    """Current-state composite snapshot for one applicant."""

    applicant_id: int
    components: dict[str, ComponentRecord] = Field(default_factory=dict)
    weights: dict[str, float] = Field(default_factory=dict)
    bands: dict[str, float] = Field(default_factory=dict)
    composite: float = Field(ge=0.0, le=100.0, default=0.0)
    grade: Grade = "D"
    status_flag: StatusFlag = "pending"
    formula_version: str
    computed_at: datetime
    present: list[str] = Field(default_factory=list)
    missing: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @property
    def is_eligible(self) -> bool:
        """Only a final, non-disqualified snapshot grants eligibility."""
        return self.status_flag == "final"

    def scoring_view(self) -> dict:
        """Fields that depend on inputs only, without timestamps."""
        return {
            "applicant_id": self.applicant_id,
            "components": {
                key: record.model_dump(exclude={"updated_at"})
                for key, record in self.components.items()
            },
            "weights": dict(self.weights),
            "bands": dict(self.bands),
            "composite": self.composite,
            "grade": self.grade,
            "status_flag": self.status_flag,
            "formula_version": self.formula_version,
            "present": list(self.present),
            "missing": list(self.missing),
        }
