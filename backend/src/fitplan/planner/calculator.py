from __future__ import annotations

import math
from typing import Dict

from .schemas import ComputedNumbers, MacroSplit, Profile

ACTIVITY_FACTORS: Dict[str, float] = {
    "low": 1.2,
    "medium": 1.55,
    "high": 1.725,
}

GOAL_CALORIE_FACTORS: Dict[str, float] = {
    "lose_weight": 0.85,
    "build_muscle": 1.10,
    "get_fit": 0.95,
    "maintain_weight": 1.00,
}

# Fixed per goal, not derived from calories. Each triple sums to 100.
MACRO_SPLITS: Dict[str, MacroSplit] = {
    "build_muscle": MacroSplit(protein=30, fat=25, carbs=45),
    "lose_weight": MacroSplit(protein=35, fat=30, carbs=35),
    "get_fit": MacroSplit(protein=30, fat=30, carbs=40),
    "maintain_weight": MacroSplit(protein=25, fat=30, carbs=45),
}


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round halves away from zero for positive values (2712.5 -> 2713).

    The built-in ``round`` rounds halves to even, which would move targets
    such as TDEE by one kcal depending on parity.
    """
    power = 10 ** ndigits
    return math.floor(value * power + 0.5) / power


def calc_bmi(weight_kg: float, height_cm: float) -> float:
    height_m = height_cm / 100.0
    return weight_kg / (height_m * height_m)


def calc_bmr(sex: str, weight_kg: float, height_cm: float, age: int) -> float:
    """Mifflin-St Jeor resting energy expenditure in kcal/day."""
    base = 10 * weight_kg + 6.25 * height_cm - 5 * age
    return base + 5 if sex == "male" else base - 161


def compute_numbers(profile: Profile) -> ComputedNumbers:
    bmi = round_half_up(calc_bmi(profile.weight_kg, profile.height_cm), 1)
    bmr = int(round_half_up(calc_bmr(profile.sex, profile.weight_kg, profile.height_cm, profile.age)))
    tdee = int(round_half_up(bmr * ACTIVITY_FACTORS[profile.activity]))
    daily_calories = int(round_half_up(tdee * GOAL_CALORIE_FACTORS[profile.goal]))
    return ComputedNumbers(
        bmi=bmi,
        bmr=bmr,
        tdee=tdee,
        daily_calories=daily_calories,
        macro_distribution_percent=MACRO_SPLITS[profile.goal],
    )
