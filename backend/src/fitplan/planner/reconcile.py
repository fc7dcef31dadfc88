"""Tolerant normalization of model output ahead of strict validation.

The model is asked for a fixed JSON shape but routinely returns variants:
a chat-completion envelope around a JSON string, the plan wrapped in an
extra key, a flat list of meals instead of a per-day map, alternative field
names, weekday names spelled out. Each variant is detected by a structural
check and handled explicitly. Malformed individual items are dropped here and
counted; the strict validator decides whether what remains is a usable plan.

Nothing in this module raises on bad input.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from fitplan.utils.llm import loads_model_json

from .schemas import WEEKDAYS

logger = logging.getLogger("fitplan.reconcile")

ITEMS_PER_DAY = 3

PLAN_WRAPPER_KEYS: Tuple[str, ...] = ("weeklyPlan", "weekly_plan", "plans", "plan", "response")
GUIDANCE_WRAPPER_KEYS: Tuple[str, ...] = ("guidance", "response")

DAY_ALIASES: Dict[str, str] = {
    "sat": "sat", "saturday": "sat",
    "sun": "sun", "sunday": "sun",
    "mon": "mon", "monday": "mon",
    "tue": "tue", "tues": "tue", "tuesday": "tue",
    "wed": "wed", "wednesday": "wed",
    "thu": "thu", "thur": "thu", "thurs": "thu", "thursday": "thu",
    "fri": "fri", "friday": "fri",
}

DIET_FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "when": ("when", "meal"),
    "what": ("what",),
    "why": ("why",),
}

EXERCISE_TEXT_FIELDS: Tuple[str, ...] = ("when", "goal", "what", "intensity_or_rest")


class PayloadShape(str, Enum):
    CHAT_COMPLETION = "chat_completion"
    RAW = "raw"


class PlanShape(str, Enum):
    NOT_AN_OBJECT = "not_an_object"
    WRAPPED = "wrapped"
    FLAT_LIST = "flat_list"
    DAY_MAP = "day_map"
    NO_DIET = "no_diet"


@dataclass(frozen=True)
class Reconciliation:
    value: Any
    payload_shape: PayloadShape
    plan_shape: PlanShape
    dropped_diet_items: int = 0
    dropped_exercise_items: int = 0


# ----------------------------
# Envelope
# ----------------------------

def classify_payload(raw: Any) -> PayloadShape:
    if isinstance(raw, dict) and isinstance(raw.get("choices"), list):
        return PayloadShape.CHAT_COMPLETION
    return PayloadShape.RAW


def _first_choice(raw: Mapping[str, Any]) -> Mapping[str, Any]:
    choices = raw.get("choices") or []
    first = choices[0] if choices else None
    return first if isinstance(first, dict) else {}


def extract_model_payload(raw: Any) -> Any:
    """Pull the JSON value out of a chat-completion envelope.

    Unparseable string content is returned unchanged so that validation
    reports it instead of it disappearing here.
    """
    if classify_payload(raw) is PayloadShape.RAW:
        return raw
    message = _first_choice(raw).get("message")
    content = message.get("content") if isinstance(message, dict) else None
    if isinstance(content, str):
        try:
            return loads_model_json(content)
        except json.JSONDecodeError as exc:
            logger.error(
                "Failed to parse model content as JSON",
                extra={"error": str(exc), "snippet": content[:2000]},
            )
            return content
    return raw if content is None else content


def finish_reason(raw: Any) -> Optional[str]:
    if classify_payload(raw) is PayloadShape.RAW:
        return None
    reason = _first_choice(raw).get("finish_reason")
    return reason if isinstance(reason, str) else None


def is_truncated_by_tokens(raw: Any) -> bool:
    return finish_reason(raw) == "length"


def token_usage(raw: Any) -> Optional[Tuple[int, int]]:
    """(prompt_tokens, completion_tokens) when the envelope reports them."""
    usage = raw.get("usage") if isinstance(raw, dict) else None
    if not isinstance(usage, dict):
        return None
    prompt, completion = usage.get("prompt_tokens"), usage.get("completion_tokens")
    if isinstance(prompt, int) and isinstance(completion, int):
        return prompt, completion
    return None


# ----------------------------
# Items
# ----------------------------

def normalize_day(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return DAY_ALIASES.get(value.strip().lower())


def _text(item: Mapping[str, Any], keys: Tuple[str, ...]) -> Optional[str]:
    for key in keys:
        value = item.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _duration(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return int(number) if number.is_integer() else number


def normalize_diet_item(item: Any) -> Optional[Dict[str, str]]:
    if not isinstance(item, dict):
        return None
    fields = {name: _text(item, aliases) for name, aliases in DIET_FIELD_ALIASES.items()}
    if any(value is None for value in fields.values()):
        return None
    return fields  # type: ignore[return-value]


def normalize_exercise_item(item: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(item, dict):
        return None
    day = normalize_day(item.get("day"))
    duration = _duration(item.get("duration_minutes"))
    texts = {name: _text(item, (name,)) for name in EXERCISE_TEXT_FIELDS}
    if day is None or duration is None or any(value is None for value in texts.values()):
        return None
    return {
        "day": day,
        "when": texts["when"],
        "goal": texts["goal"],
        "what": texts["what"],
        "duration_minutes": duration,
        "intensity_or_rest": texts["intensity_or_rest"],
    }


def _normalize_diet_list(items: List[Any]) -> Tuple[List[Dict[str, str]], int]:
    kept = [normalized for normalized in map(normalize_diet_item, items) if normalized is not None]
    return kept, len(items) - len(kept)


def spread_diet_across_week(items: List[Any]) -> Tuple[Dict[str, List[Dict[str, str]]], int]:
    """Lossy fallback: the first three valid meals become every day's meals."""
    kept, dropped = _normalize_diet_list(items)
    first = kept[:ITEMS_PER_DAY]
    return {day: [dict(item) for item in first] for day in WEEKDAYS}, dropped


def normalize_diet_map(value: Mapping[str, Any]) -> Tuple[Dict[str, List[Dict[str, str]]], int]:
    per_day: Dict[str, List[Dict[str, str]]] = {}
    dropped = 0
    for key, items in value.items():
        day = normalize_day(key)
        if day is None or day in per_day or not isinstance(items, list):
            continue
        kept, day_dropped = _normalize_diet_list(items)
        per_day[day] = kept[:ITEMS_PER_DAY]
        dropped += day_dropped
    return {day: per_day[day] for day in WEEKDAYS if day in per_day}, dropped


def normalize_exercise_list(value: Any) -> Tuple[Optional[List[Dict[str, Any]]], int]:
    if not isinstance(value, list):
        return None, 0
    kept = [normalized for normalized in map(normalize_exercise_item, value) if normalized is not None]
    return kept, len(value) - len(kept)


# ----------------------------
# Plan
# ----------------------------

def _wrapper_key(value: Mapping[str, Any], keys: Tuple[str, ...], own_keys: Tuple[str, ...]) -> Optional[str]:
    if any(key in value for key in own_keys):
        return None
    for key in keys:
        if isinstance(value.get(key), dict):
            return key
    return None


def classify_plan(value: Any) -> PlanShape:
    if not isinstance(value, dict):
        return PlanShape.NOT_AN_OBJECT
    if _wrapper_key(value, PLAN_WRAPPER_KEYS, ("diet", "exercise")) is not None:
        return PlanShape.WRAPPED
    diet = value.get("diet")
    if isinstance(diet, list):
        return PlanShape.FLAT_LIST
    if isinstance(diet, dict):
        return PlanShape.DAY_MAP
    return PlanShape.NO_DIET


def _plan_from(value: Dict[str, Any], diet: Any, dropped_diet: int, shape: PlanShape,
               payload_shape: PayloadShape) -> Reconciliation:
    exercise, dropped_exercise = normalize_exercise_list(value.get("exercise"))
    return Reconciliation(
        value={"diet": diet, "exercise": exercise},
        payload_shape=payload_shape,
        plan_shape=shape,
        dropped_diet_items=dropped_diet,
        dropped_exercise_items=dropped_exercise,
    )


def _reconcile_not_object(value: Any, payload_shape: PayloadShape) -> Reconciliation:
    return Reconciliation(value=value, payload_shape=payload_shape, plan_shape=PlanShape.NOT_AN_OBJECT)


def _reconcile_flat_list(value: Dict[str, Any], payload_shape: PayloadShape) -> Reconciliation:
    diet, dropped = spread_diet_across_week(value["diet"])
    return _plan_from(value, diet, dropped, PlanShape.FLAT_LIST, payload_shape)


def _reconcile_day_map(value: Dict[str, Any], payload_shape: PayloadShape) -> Reconciliation:
    diet, dropped = normalize_diet_map(value["diet"])
    return _plan_from(value, diet, dropped, PlanShape.DAY_MAP, payload_shape)


def _reconcile_no_diet(value: Dict[str, Any], payload_shape: PayloadShape) -> Reconciliation:
    return _plan_from(value, None, 0, PlanShape.NO_DIET, payload_shape)


def _reconcile_wrapped(value: Dict[str, Any], payload_shape: PayloadShape) -> Reconciliation:
    inner = value[_wrapper_key(value, PLAN_WRAPPER_KEYS, ("diet", "exercise"))]
    shape = classify_plan(inner)
    if shape is PlanShape.WRAPPED:
        # one level of wrapping is unwrapped; deeper nesting is not a plan
        return _reconcile_no_diet(inner, payload_shape)
    return _PLAN_HANDLERS[shape](inner, payload_shape)


_PLAN_HANDLERS: Dict[PlanShape, Callable[[Any, PayloadShape], Reconciliation]] = {
    PlanShape.NOT_AN_OBJECT: _reconcile_not_object,
    PlanShape.WRAPPED: _reconcile_wrapped,
    PlanShape.FLAT_LIST: _reconcile_flat_list,
    PlanShape.DAY_MAP: _reconcile_day_map,
    PlanShape.NO_DIET: _reconcile_no_diet,
}


def reconcile_plan(raw: Any) -> Reconciliation:
    payload_shape = classify_payload(raw)
    value = extract_model_payload(raw)
    return _PLAN_HANDLERS[classify_plan(value)](value, payload_shape)


# ----------------------------
# Guidance
# ----------------------------

def _rules(value: Any) -> Any:
    if not isinstance(value, list):
        return value
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def reconcile_guidance(raw: Any) -> Any:
    value = extract_model_payload(raw)
    if not isinstance(value, dict):
        return value
    key = _wrapper_key(value, GUIDANCE_WRAPPER_KEYS, ("diet_rules", "exercise_rules"))
    if key is not None:
        value = value[key]
    return {name: _rules(value.get(name)) for name in ("diet_rules", "exercise_rules")}
