from __future__ import annotations

import math
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

WEEKDAYS: Tuple[str, ...] = ("sat", "sun", "mon", "tue", "wed", "thu", "fri")
LANGUAGES: Tuple[str, ...] = ("fa", "en", "ar", "tr", "zh", "es", "fr", "de")
DEFAULT_LANGUAGE = "fa"

Weekday = Literal["sat", "sun", "mon", "tue", "wed", "thu", "fri"]
Sex = Literal["male", "female"]
Goal = Literal["build_muscle", "lose_weight", "get_fit", "maintain_weight"]
Activity = Literal["low", "medium", "high"]
PracticePlace = Literal["home", "gym", "both"]
Language = Literal["fa", "en", "ar", "tr", "zh", "es", "fr", "de"]

# field -> (label used in messages, lower bound, upper bound)
PROFILE_BOUNDS: Dict[str, Tuple[str, int, int]] = {
    "height_cm": ("height", 120, 230),
    "weight_kg": ("weight", 30, 250),
    "age": ("age", 12, 80),
}


# ----------------------------
# Request side
# ----------------------------

def _as_number(value: Any, label: str) -> float:
    if isinstance(value, bool):
        raise PydanticCustomError("number_type", "{label} must be a number", {"label": label})
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            number = math.inf
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            raise PydanticCustomError("number_parsing", "{label} must be a number", {"label": label})
    else:
        raise PydanticCustomError("number_type", "{label} must be a number", {"label": label})
    if not math.isfinite(number):
        raise PydanticCustomError("number_finite", "{label} must be a finite number", {"label": label})
    return number


def _check_bounds(number: float, field_name: str) -> None:
    label, lo, hi = PROFILE_BOUNDS[field_name]
    if not lo <= number <= hi:
        raise PydanticCustomError(
            "out_of_range",
            "{label} must be between {lo} and {hi}",
            {"label": label, "lo": lo, "hi": hi},
        )


class Profile(BaseModel):
    """Validated user input. Field names on the wire are camelCase."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    height_cm: float
    weight_kg: float
    age: int
    sex: Sex
    goal: Goal
    activity: Activity
    medical_condition: Optional[str] = None
    practice_place: Optional[PracticePlace] = None
    language: Language = DEFAULT_LANGUAGE

    @field_validator("height_cm", "weight_kg", mode="before")
    @classmethod
    def _coerce_measure(cls, value: Any, info: ValidationInfo) -> float:
        number = _as_number(value, PROFILE_BOUNDS[info.field_name][0])
        _check_bounds(number, info.field_name)
        return number

    @field_validator("age", mode="before")
    @classmethod
    def _coerce_age(cls, value: Any) -> int:
        number = _as_number(value, "age")
        if not number.is_integer():
            raise PydanticCustomError("int_type", "age must be an integer", {})
        _check_bounds(number, "age")
        return int(number)

    @field_validator("medical_condition", mode="before")
    @classmethod
    def _blank_is_absent(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("language", mode="before")
    @classmethod
    def _default_language(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_LANGUAGE
        if isinstance(value, str):
            return value.strip().lower()
        return value


class MacroSplit(BaseModel):
    model_config = ConfigDict(frozen=True)

    protein: int
    fat: int
    carbs: int

    @property
    def total(self) -> int:
        return self.protein + self.fat + self.carbs


class ComputedNumbers(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    bmi: float
    bmr: int
    tdee: int
    daily_calories: int
    macro_distribution_percent: MacroSplit


# ----------------------------
# Model output side
# ----------------------------

class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


NonEmptyStr = Annotated[str, Field(min_length=1)]


class DietItem(StrictModel):
    when: NonEmptyStr
    what: str = Field(min_length=1, max_length=120)
    why: str = Field(min_length=1, max_length=80)


# Exactly three meals per day; the prompt asks for three and nothing else.
DietDay = Annotated[List[DietItem], Field(min_length=3, max_length=3)]


class DietWeek(StrictModel):
    sat: DietDay
    sun: DietDay
    mon: DietDay
    tue: DietDay
    wed: DietDay
    thu: DietDay
    fri: DietDay


class ExerciseSession(StrictModel):
    day: Weekday
    when: NonEmptyStr
    goal: NonEmptyStr
    what: NonEmptyStr
    duration_minutes: float = Field(gt=0)
    intensity_or_rest: NonEmptyStr


class WeeklyPlan(StrictModel):
    diet: DietWeek
    exercise: List[ExerciseSession] = Field(min_length=1, max_length=7)


class Guidance(StrictModel):
    diet_rules: List[NonEmptyStr] = Field(min_length=2, max_length=6)
    exercise_rules: List[NonEmptyStr] = Field(min_length=2, max_length=6)


# ----------------------------
# Prompt payloads
# ----------------------------

class UserPayload(BaseModel):
    """Prompt context shared by both model calls. Never carries medical text."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    height_cm: float
    weight_kg: float
    age: int
    sex: Sex
    goal: Goal
    activity: Activity
    practice_place: Optional[PracticePlace] = None
    language: Language = DEFAULT_LANGUAGE
    computed_numbers: ComputedNumbers

    @classmethod
    def build(cls, profile: Profile, numbers: ComputedNumbers) -> "UserPayload":
        return cls(
            height_cm=profile.height_cm,
            weight_kg=profile.weight_kg,
            age=profile.age,
            sex=profile.sex,
            goal=profile.goal,
            activity=profile.activity,
            practice_place=profile.practice_place,
            language=profile.language,
            computed_numbers=numbers,
        )

    def with_guidance(self, guidance: Guidance) -> "PlanPayload":
        return PlanPayload(**dict(self), guidance=guidance)

    def to_prompt_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class PlanPayload(UserPayload):
    guidance: Guidance


# ----------------------------
# Outcome
# ----------------------------

class SuccessOutcome(StrictModel):
    status: Literal["success"] = "success"
    plans: WeeklyPlan
    guidance: Optional[Guidance] = None


class RejectedOutcome(StrictModel):
    status: Literal["rejected"] = "rejected"
    reason: NonEmptyStr


class ErrorOutcome(StrictModel):
    status: Literal["error"] = "error"
    reason: NonEmptyStr


Outcome = Annotated[
    Union[SuccessOutcome, RejectedOutcome, ErrorOutcome],
    Field(discriminator="status"),
]

OUTCOME_ADAPTER: TypeAdapter = TypeAdapter(Outcome)


# ----------------------------
# JSON-schema constraints for the model
# ----------------------------

def inline_refs(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Resolve every local ``$ref`` so the schema is one self-contained tree."""
    defs = schema.get("$defs", {})

    def resolve(node: Any) -> Any:
        if isinstance(node, dict):
            ref = node.get("$ref")
            if isinstance(ref, str) and ref.startswith("#/$defs/"):
                target = resolve(defs[ref.rsplit("/", 1)[-1]])
                siblings = {k: resolve(v) for k, v in node.items() if k != "$ref"}
                return {**target, **siblings}
            return {k: resolve(v) for k, v in node.items() if k != "$defs"}
        if isinstance(node, list):
            return [resolve(item) for item in node]
        return node

    return resolve(schema)


GUIDANCE_JSON_SCHEMA: Dict[str, Any] = {
    "name": "diet_exercise_guidance",
    "strict": True,
    "schema": inline_refs(Guidance.model_json_schema()),
}

PLAN_JSON_SCHEMA: Dict[str, Any] = {
    "name": "diet_exercise_plan_only",
    "strict": True,
    "schema": inline_refs(WeeklyPlan.model_json_schema()),
}
