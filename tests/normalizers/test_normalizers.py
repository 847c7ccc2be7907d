from __future__ import annotations

import pytest

from compositescoring.errors import ComponentValidationError, UnknownComponentError
from compositescoring.normalizers import (
    AutoproctorNormalizer,
    MedicalConfig,
    MedicalNormalizer,
    PhysicalNormalizer,
    PsymetricsNormalizer,
    RubricConfig,
    SkillsNormalizer,
    default_registry,
)
from compositescoring.normalizers.internal import is_number, risk_flags, round_half_up


def test_physical_rubric_sums_criteria_and_scales():
    update = PhysicalNormalizer().normalize(
        {
            "phys_strength": 4,
            "phys_endurance": "3",
            "phys_flexibility": 3,
            "phys_posture": 2,
            "phys_safety": 3,
            "phys_hygiene": None,
            "entry_id": "1042",
        }
    )

    assert update.raw == 15.0
    assert update.norm == 75.0
    assert update.flags == []
    assert update.meta == {"entry_id": 1042}


def test_skills_rubric_ignores_non_numeric_and_flags_integrity():
    update = SkillsNormalizer().normalize(
        {"knife_skills": 13, "line_speed": "fast", "integrity_flag": "Severe"}
    )

    assert update.raw == 13.0
    assert update.norm == 65.0
    assert update.flags == ["integrity_severe"]


def test_rubric_config_overrides_criteria_and_scale():
    normalizer = SkillsNormalizer(config=RubricConfig(criteria=("knife_skills",), max_points=5))

    update = normalizer.normalize({"knife_skills": 6, "teamwork": 5})

    assert update.raw == 6.0
    assert update.norm == 100.0


def test_integrity_minor_is_not_a_disqualifier_flag():
    update = PhysicalNormalizer().normalize({"integrity_flag": "minor"})

    assert update.flags == ["integrity_minor"]
    assert update.norm == 0.0


@pytest.mark.parametrize(
    ("medical_raw", "norm", "flags"),
    [
        (92, 92.0, []),
        ("80", 80.0, []),
        (65.5, 66.0, ["restrictions"]),
        (12, 12.0, ["not_cleared"]),
    ],
)
def test_medical_score_is_banded(medical_raw, norm, flags):
    update = MedicalNormalizer().normalize({"medical_raw": medical_raw})

    assert update.norm == norm
    assert update.flags == flags


@pytest.mark.parametrize(
    ("clearance", "norm", "flags"),
    [
        ("cleared", 100.0, []),
        ("Cleared_Restrictions", 70.0, ["restrictions"]),
        ("not_cleared", 0.0, ["not_cleared"]),
        (None, 0.0, ["not_cleared"]),
    ],
)
def test_medical_clearance_without_score(clearance, norm, flags):
    update = MedicalNormalizer().normalize({"clearance": clearance})

    assert update.raw is None
    assert update.norm == norm
    assert update.flags == flags


def test_medical_risks_become_prefixed_flags():
    update = MedicalNormalizer().normalize(
        {"clearance": "cleared", "risks": ["Back Injury", "", "heart-condition"]}
    )

    assert update.flags == ["risk_back_injury", "risk_heart_condition"]


def test_medical_thresholds_are_configurable():
    normalizer = MedicalNormalizer(config=MedicalConfig(cleared_min=60, restrictions_min=30))

    assert normalizer.normalize({"medical_raw": 65}).flags == []
    assert normalizer.normalize({"medical_raw": 45}).flags == ["restrictions"]


def test_autoproctor_integrity_and_violations():
    update = AutoproctorNormalizer().normalize(
        {"integrity_score": 104, "violations": ["tab_switch", " ", "tab_switch"], "session_id": 77}
    )

    assert update.raw == 104.0
    assert update.norm == 100.0
    assert update.flags == ["tab_switch"]
    assert update.meta == {"session_id": "77"}


def test_autoproctor_missing_score_counts_as_zero():
    update = AutoproctorNormalizer().normalize({})

    assert update.raw is None
    assert update.norm == 0.0


def test_psymetrics_candidness_flags():
    update = PsymetricsNormalizer().normalize(
        {"overall_score": "81.5", "candidness": "Invalid", "external_id": "ps-9"}
    )

    assert update.norm == 81.5
    assert update.flags == ["candidness_invalid"]
    assert update.meta == {"candidness": "invalid", "external_id": "ps-9"}


def test_psymetrics_without_score_stays_unscored():
    update = PsymetricsNormalizer().normalize({"candidness": "ok"})

    assert update.norm is None
    assert update.flags == []


def test_registry_resolves_every_component():
    registry = default_registry()

    assert sorted(registry.components()) == ["autoproctor", "medical", "physical", "psymetrics", "skills"]
    assert isinstance(registry.get("MEDICAL"), MedicalNormalizer)
    with pytest.raises(UnknownComponentError):
        registry.get("typing")


def test_helpers():
    assert round_half_up(2.5) == 3.0
    assert round_half_up(84.45) == 84.0
    assert risk_flags(["Asthma", "  "]) == ["risk_asthma"]


def test_single_string_risk_is_one_flag():
    update = MedicalNormalizer().normalize({"clearance": "cleared", "risks": "Heart Condition"})

    assert update.flags == ["risk_heart_condition"]
    assert risk_flags("Heart") == ["risk_heart"]


@pytest.mark.parametrize(
    "component, fields",
    [
        ("medical", {"clearance": "cleared", "risks": 3}),
        ("autoproctor", {"integrity_score": 90, "violations": 3}),
        ("autoproctor", {"integrity_score": 90, "violations": {"tab_switch": 2}}),
    ],
)
def test_non_list_flag_fields_are_rejected(component, fields):
    registry = default_registry()

    with pytest.raises(ComponentValidationError):
        registry.normalize(component, fields)


def test_registry_rejects_non_mapping_fields():
    with pytest.raises(ComponentValidationError):
        default_registry().normalize("skills", ["skill_knife", 5])


def test_oversized_integer_is_not_a_score():
    assert is_number(10**400) is False
    assert PsymetricsNormalizer().normalize({"overall_score": 10**400}).norm is None
    assert AutoproctorNormalizer().normalize({"integrity_score": 10**400}).norm == 0.0
