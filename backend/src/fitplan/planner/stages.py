from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional

from pydantic import ValidationError

from fitplan.core.context import RequestContext
from fitplan.core.exceptions import GatewayTimeoutError, TransportError

from .gateway import InferenceGateway, Message
from .prompts import guidance_prompt, plan_prompt
from .reconcile import is_truncated_by_tokens, reconcile_guidance, reconcile_plan, token_usage
from .schemas import GUIDANCE_JSON_SCHEMA, PLAN_JSON_SCHEMA, Guidance, PlanPayload, UserPayload, WeeklyPlan
from .validation import format_validation_issue

GUIDANCE_TRUNCATED_REASON = "Guidance response was truncated (token limit hit). Please retry."
PLAN_TRUNCATED_REASON = "Plan response was truncated (token limit hit). Please retry."


def _messages(system_prompt: str, payload: UserPayload) -> List[Message]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": payload.to_prompt_json()},
    ]


def _record_usage(ctx: RequestContext, phase: str, raw: Any) -> None:
    usage = token_usage(raw)
    if usage is not None:
        ctx.metrics.track_tokens(phase, *usage)


# ----------------------------
# Guidance
# ----------------------------

@dataclass(frozen=True)
class GuidanceResult:
    guidance: Optional[Guidance] = None
    reason: Optional[str] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.guidance is not None


async def generate_guidance(
    gateway: InferenceGateway,
    payload: UserPayload,
    ctx: RequestContext,
    *,
    max_tokens: int,
    timeout_s: float,
    retries: int = 2,
) -> GuidanceResult:
    """Ask for the guidance rules, trying at most ``retries`` times in total.

    Schema failures and gateway failures are retried. A completion cut off by
    the token limit is not: another attempt with the same budget would be cut
    off again.
    """
    messages = _messages(guidance_prompt(payload.language), payload)
    last_reason = ""

    for attempt in range(1, retries + 1):
        if attempt > 1:
            ctx.metrics.track_model_retry("guidance")
        try:
            raw = await gateway.invoke(
                messages,
                GUIDANCE_JSON_SCHEMA,
                max_tokens=max_tokens,
                timeout_s=timeout_s,
                temperature=0.0,
            )
        except (GatewayTimeoutError, TransportError) as exc:
            last_reason = exc.message
            error_type = "timeout" if isinstance(exc, GatewayTimeoutError) else "transport"
            ctx.metrics.track_model_error("guidance", error_type)
            ctx.logger.error("Guidance generation error", extra={"attempt": attempt, "error": last_reason})
            continue

        _record_usage(ctx, "guidance", raw)
        if is_truncated_by_tokens(raw):
            ctx.metrics.track_model_error("guidance", "truncated")
            ctx.logger.warning("Guidance truncated by token limit", extra={"attempt": attempt})
            return GuidanceResult(reason=GUIDANCE_TRUNCATED_REASON, attempts=attempt)

        try:
            guidance = Guidance.model_validate(reconcile_guidance(raw))
        except ValidationError as exc:
            last_reason = format_validation_issue(exc)
            ctx.metrics.track_model_error("guidance", "schema")
            ctx.logger.warning(
                "Guidance parse failed",
                extra={"attempt": attempt, "issues": exc.error_count(), "formatted": last_reason},
            )
            continue

        return GuidanceResult(guidance=guidance, attempts=attempt)

    return GuidanceResult(
        reason=f"Guidance generation failed after retries: {last_reason or 'unknown error'}",
        attempts=retries,
    )


# ----------------------------
# Plan
# ----------------------------

class PlanStatus(str, Enum):
    OK = "ok"
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    TRUNCATED = "truncated"
    SHAPE_MISMATCH = "shape_mismatch"


@dataclass(frozen=True)
class PlanResult:
    status: PlanStatus
    plan: Optional[WeeklyPlan] = None
    reason: Optional[str] = None


async def generate_plan(
    gateway: InferenceGateway,
    payload: PlanPayload,
    ctx: RequestContext,
    *,
    max_tokens: int,
    timeout_s: float,
) -> PlanResult:
    """Single attempt at the full weekly plan, temperature fixed at 0."""
    messages = _messages(plan_prompt(payload.language), payload)
    try:
        raw = await gateway.invoke(
            messages,
            PLAN_JSON_SCHEMA,
            max_tokens=max_tokens,
            timeout_s=timeout_s,
            temperature=0.0,
        )
    except GatewayTimeoutError as exc:
        ctx.metrics.track_model_error("plan", "timeout")
        return PlanResult(PlanStatus.TIMEOUT, reason=f"Plan generation timed out after {exc.timeout_s:g}s. Please retry.")
    except TransportError as exc:
        ctx.metrics.track_model_error("plan", "transport")
        return PlanResult(PlanStatus.TRANSPORT, reason=f"Plan generation failed: {exc.message}")

    _record_usage(ctx, "plan", raw)
    if is_truncated_by_tokens(raw):
        ctx.metrics.track_model_error("plan", "truncated")
        ctx.logger.warning("Plan truncated by token limit")
        return PlanResult(PlanStatus.TRUNCATED, reason=PLAN_TRUNCATED_REASON)

    reconciled = reconcile_plan(raw)
    ctx.metrics.track_dropped_items("diet", reconciled.dropped_diet_items)
    ctx.metrics.track_dropped_items("exercise", reconciled.dropped_exercise_items)
    if reconciled.dropped_diet_items or reconciled.dropped_exercise_items:
        ctx.logger.info(
            "Dropped malformed plan items",
            extra={
                "shape": reconciled.plan_shape.value,
                "dropped_diet_items": reconciled.dropped_diet_items,
                "dropped_exercise_items": reconciled.dropped_exercise_items,
            },
        )

    try:
        plan = WeeklyPlan.model_validate(reconciled.value)
    except ValidationError as exc:
        reason = format_validation_issue(exc)
        ctx.metrics.track_model_error("plan", "schema")
        ctx.logger.warning("Plan parse failed", extra={"shape": reconciled.plan_shape.value, "formatted": reason})
        return PlanResult(PlanStatus.SHAPE_MISMATCH, reason=f"Model output did not match the plan schema. {reason}")

    return PlanResult(PlanStatus.OK, plan=plan)
