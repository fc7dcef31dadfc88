import pytest

from fitplan.core.exceptions import InputValidationError
from fitplan.planner.validation import has_medical_condition, parse_profile

BASE = {
    "heightCm": 180,
    "weightKg": 78,
    "age": 32,
    "sex": "male",
    "goal": "build_muscle",
    "activity": "medium",
    "language": "fa",
}


def test_accepts_valid_payload_and_coerces_numeric_strings():
    profile = parse_profile({**BASE, "heightCm": "180", "weightKg": " 78.5 ", "age": "32"})
    assert profile.height_cm == 180
    assert profile.weight_kg == 78.5
    assert profile.age == 32
    assert profile.medical_condition is None
    assert profile.practice_place is None


def test_language_defaults_to_fa():
    payload = {k: v for k, v in BASE.items() if k != "language"}
    assert parse_profile(payload).language == "fa"


def test_blank_medical_condition_is_absent():
    profile = parse_profile({**BASE, "medicalCondition": "   \n\t"})
    assert profile.medical_condition is None


def test_medical_condition_text_is_kept_trimmed():
    profile = parse_profile({**BASE, "medicalCondition": "  diabetes "})
    assert profile.medical_condition == "diabetes"
    assert has_medical_condition(profile.medical_condition)


@pytest.mark.parametrize(
    "field, value, label",
    [
        ("heightCm", 110, "height must be between 120 and 230"),
        ("heightCm", 231, "height must be between 120 and 230"),
        ("weightKg", 29.9, "weight must be between 30 and 250"),
        ("weightKg", "251", "weight must be between 30 and 250"),
        ("age", 11, "age must be between 12 and 80"),
        ("age", 81, "age must be between 12 and 80"),
    ],
)
def test_out_of_range_values_name_the_field(field, value, label):
    with pytest.raises(InputValidationError) as exc_info:
        parse_profile({**BASE, field: value})
    assert exc_info.value.field == field
    assert label in exc_info.value.message
    assert field in exc_info.value.message


def test_age_must_be_an_integer():
    with pytest.raises(InputValidationError) as exc_info:
        parse_profile({**BASE, "age": 20.5})
    assert exc_info.value.field == "age"
    assert "integer" in exc_info.value.message


def test_non_numeric_string_is_rejected():
    with pytest.raises(InputValidationError) as exc_info:
        parse_profile({**BASE, "heightCm": "tall"})
    assert exc_info.value.field == "heightCm"


def test_unknown_enum_reports_first_field():
    with pytest.raises(InputValidationError) as exc_info:
        parse_profile({**BASE, "sex": "other", "goal": "gain_weight", "activity": "extreme"})
    assert exc_info.value.field == "sex"


@pytest.mark.parametrize("field", ["practicePlace", "language"])
def test_optional_enums_are_still_checked(field):
    with pytest.raises(InputValidationError) as exc_info:
        parse_profile({**BASE, field: "park"})
    assert exc_info.value.field == field


def test_missing_field_is_rejected():
    payload = {k: v for k, v in BASE.items() if k != "goal"}
    with pytest.raises(InputValidationError) as exc_info:
        parse_profile(payload)
    assert exc_info.value.field == "goal"


def test_non_object_body_is_rejected():
    with pytest.raises(InputValidationError):
        parse_profile(["not", "an", "object"])


@pytest.mark.parametrize("text, expected", [(None, False), ("", False), ("  \n ", False), ("Asthma", True)])
def test_has_medical_condition(text, expected):
    assert has_medical_condition(text) is expected


@pytest.mark.parametrize("field, label", [("heightCm", "height"), ("weightKg", "weight"), ("age", "age")])
def test_huge_integers_are_rejected_as_non_finite(field, label):
    with pytest.raises(InputValidationError) as exc_info:
        parse_profile({**BASE, field: 10**400})
    assert exc_info.value.field == field
    assert f"{label} must be a finite number" in exc_info.value.message


def test_language_is_case_insensitive():
    assert parse_profile({**BASE, "language": " EN "}).language == "en"
