from __future__ import annotations

import pendulum
import pytest
from pydantic import ValidationError

from compositescoring.errors import UnknownComponentError
from compositescoring.schemas import (
    ComponentRecord,
    ComponentUpdate,
    CompositeResult,
    normalize_component_key,
)


def test_component_update_defaults():
    update = ComponentUpdate()

    assert update.raw is None
    assert update.norm is None
    assert update.flags == []
    assert update.meta == {}


@pytest.mark.parametrize(("norm", "expected"), [(-12, 0.0), (100.4, 100.0), (64.25, 64.25)])
def test_norm_is_clamped(norm, expected):
    assert ComponentUpdate(norm=norm).norm == expected


def test_non_finite_values_are_rejected():
    with pytest.raises(ValidationError):
        ComponentUpdate(norm=float("inf"))
    with pytest.raises(ValidationError):
        ComponentUpdate(raw=float("nan"))


def test_flags_are_trimmed_and_deduplicated():
    update = ComponentUpdate(flags=[" restrictions", "", "risk_asthma", "restrictions"])

    assert update.flags == ["restrictions", "risk_asthma"]


def test_unknown_fields_are_rejected():
    with pytest.raises(ValidationError):
        ComponentUpdate.model_validate({"norm": 50, "score": 50})


def test_record_from_update_copies_values():
    update = ComponentUpdate(raw=17, norm=85, flags=["integrity_minor"], meta={"entry_id": 3})
    stamp = pendulum.datetime(2025, 1, 5, tz="UTC")

    stored = ComponentRecord.from_update(update, updated_at=stamp)
    update.flags.append("later")

    assert stored.flags == ["integrity_minor"]
    assert stored.updated_at == stamp
    assert stored.meta == {"entry_id": 3}


@pytest.mark.parametrize("key", ["medical", "  Skills", "AUTOPROCTOR"])
def test_component_keys_are_canonicalized(key):
    assert normalize_component_key(key) == key.strip().lower()


@pytest.mark.parametrize("key", ["typing", "", None, 3])
def test_unknown_component_keys(key):
    with pytest.raises(UnknownComponentError) as excinfo:
        normalize_component_key(key)
    assert excinfo.value.key == key


def test_scoring_view_ignores_timestamps():
    def build(minute: int) -> CompositeResult:
        stamp = pendulum.datetime(2025, 1, 5, 10, minute, tz="UTC")
        return CompositeResult(
            applicant_id=1,
            components={"skills": ComponentRecord(norm=60, updated_at=stamp)},
            weights={"skills": 20.0},
            bands={"A": 85.0, "B": 70.0, "C": 55.0, "D": 0.0},
            composite=60.0,
            grade="C",
            status_flag="provisional",
            formula_version="v2",
            computed_at=stamp,
            present=["skills"],
            missing=["psymetrics"],
        )

    first, second = build(0), build(5)

    assert first != second
    assert first.scoring_view() == second.scoring_view()
    assert first.is_eligible is False


def test_composite_result_rejects_out_of_range_values():
    with pytest.raises(ValidationError):
        CompositeResult(
            applicant_id=1,
            composite=101,
            formula_version="v2",
            computed_at=pendulum.datetime(2025, 1, 5, tz="UTC"),
        )
    with pytest.raises(ValidationError):
        CompositeResult(
            applicant_id=1,
            status_flag="eligible",
            formula_version="v2",
            computed_at=pendulum.datetime(2025, 1, 5, tz="UTC"),
        )
