"""Request pipeline: validate, gate, compute, guidance, plan, assemble.

Every path ends in exactly one Outcome and an HTTP status. Nothing raised
inside the pipeline escapes ``PlanOrchestrator.run``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from fitplan.core.config import Settings
from fitplan.core.context import RequestContext
from fitplan.core.exceptions import InputValidationError

from .calculator import compute_numbers
from .gateway import InferenceGateway
from .prompts import medical_condition_message
from .schemas import (
    OUTCOME_ADAPTER,
    ErrorOutcome,
    Guidance,
    RejectedOutcome,
    SuccessOutcome,
    UserPayload,
    WeeklyPlan,
)
from .stages import PlanStatus, generate_guidance, generate_plan
from .validation import format_validation_issue, has_medical_condition, parse_profile

OutcomeModel = Union[SuccessOutcome, RejectedOutcome, ErrorOutcome]


class Stage(str, Enum):
    RECEIVING_INPUT = "receiving_input"
    VALIDATING = "validating"
    CHECKING_MEDICAL_GATE = "checking_medical_gate"
    COMPUTING_NUMBERS = "computing_numbers"
    REQUESTING_GUIDANCE = "requesting_guidance"
    REQUESTING_PLAN = "requesting_plan"
    ASSEMBLING_OUTPUT = "assembling_output"
    DONE = "done"


class FailureKind(str, Enum):
    INPUT_VALIDATION = "input_validation"
    MEDICAL_GATE = "medical_gate"
    GUIDANCE_FAILURE = "guidance_failure"
    PLAN_TIMEOUT = "plan_timeout"
    PLAN_TRUNCATION = "plan_truncation"
    PLAN_SHAPE_MISMATCH = "plan_shape_mismatch"
    OUTPUT_ASSEMBLY = "output_assembly_invariant_violation"
    UNKNOWN_TRANSPORT = "unknown_transport"


FAILURE_STATUS: Dict[FailureKind, int] = {
    FailureKind.INPUT_VALIDATION: 400,
    FailureKind.MEDICAL_GATE: 200,
    FailureKind.GUIDANCE_FAILURE: 502,
    FailureKind.PLAN_TIMEOUT: 504,
    FailureKind.PLAN_TRUNCATION: 502,
    FailureKind.PLAN_SHAPE_MISMATCH: 200,
    FailureKind.OUTPUT_ASSEMBLY: 200,
    FailureKind.UNKNOWN_TRANSPORT: 502,
}

PLAN_FAILURE_KINDS: Dict[PlanStatus, FailureKind] = {
    PlanStatus.TIMEOUT: FailureKind.PLAN_TIMEOUT,
    PlanStatus.TRANSPORT: FailureKind.UNKNOWN_TRANSPORT,
    PlanStatus.TRUNCATED: FailureKind.PLAN_TRUNCATION,
    PlanStatus.SHAPE_MISMATCH: FailureKind.PLAN_SHAPE_MISMATCH,
}

# Client-caused or not-worth-a-5xx failures are "rejected"; upstream trouble is "error".
REJECTED_KINDS = frozenset(
    {
        FailureKind.INPUT_VALIDATION,
        FailureKind.MEDICAL_GATE,
        FailureKind.PLAN_SHAPE_MISMATCH,
        FailureKind.OUTPUT_ASSEMBLY,
    }
)


@dataclass(frozen=True)
class PipelineResult:
    outcome: OutcomeModel
    http_status: int
    failure: Optional[FailureKind] = None

    def body(self) -> Dict[str, Any]:
        return self.outcome.model_dump(mode="json", exclude_none=True)


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


class PlanOrchestrator:
    def __init__(self, gateway: InferenceGateway, settings: Settings):
        self.gateway = gateway
        self.settings = settings

    def _fail(self, ctx: RequestContext, stage: Stage, kind: FailureKind, reason: str) -> PipelineResult:
        outcome: OutcomeModel
        if kind in REJECTED_KINDS:
            outcome = RejectedOutcome(reason=reason)
        else:
            outcome = ErrorOutcome(reason=reason)
        ctx.logger.info(
            "Pipeline finished early",
            extra={"stage": stage.value, "failure": kind.value, "status": outcome.status},
        )
        ctx.metrics.track_request_status(outcome.status, kind.value)
        return PipelineResult(outcome=outcome, http_status=FAILURE_STATUS[kind], failure=kind)

    def rejected_input(self, ctx: RequestContext, reason: str) -> PipelineResult:
        """Rejection for bodies that never reach the pipeline (e.g. unparseable JSON)."""
        return self._fail(ctx, Stage.RECEIVING_INPUT, FailureKind.INPUT_VALIDATION, reason)

    async def run(self, raw: Any, ctx: RequestContext) -> PipelineResult:
        started = time.perf_counter()
        try:
            return await self._run(raw, ctx)
        except Exception as exc:
            ctx.logger.exception("Unhandled error in plan pipeline", extra={"error": str(exc)})
            return self._fail(ctx, Stage.DONE, FailureKind.UNKNOWN_TRANSPORT, f"Unexpected error: {exc}")
        finally:
            ctx.metrics.track_duration("total", _elapsed_ms(started))

    async def _run(self, raw: Any, ctx: RequestContext) -> PipelineResult:
        try:
            profile = parse_profile(raw)
        except InputValidationError as exc:
            return self._fail(ctx, Stage.VALIDATING, FailureKind.INPUT_VALIDATION, exc.message)

        ctx.metrics.track_language(profile.language)
        ctx.metrics.track_goal(profile.goal)
        ctx.metrics.track_activity_level(profile.activity)
        ctx.metrics.track_demographics(profile.sex, profile.age)

        if has_medical_condition(profile.medical_condition):
            return self._fail(
                ctx,
                Stage.CHECKING_MEDICAL_GATE,
                FailureKind.MEDICAL_GATE,
                medical_condition_message(profile.language),
            )

        numbers = compute_numbers(profile)
        payload = UserPayload.build(profile, numbers)
        ctx.logger.info(
            "Computed targets",
            extra={"stage": Stage.COMPUTING_NUMBERS.value, "numbers": numbers.model_dump(by_alias=True)},
        )

        phase_started = time.perf_counter()
        guidance_result = await generate_guidance(
            self.gateway,
            payload,
            ctx,
            max_tokens=self.settings.guidance_max_tokens,
            timeout_s=self.settings.guidance_timeout_s,
            retries=self.settings.guidance_retries,
        )
        ctx.metrics.track_duration("guidance", _elapsed_ms(phase_started))
        if guidance_result.guidance is None:
            return self._fail(
                ctx,
                Stage.REQUESTING_GUIDANCE,
                FailureKind.GUIDANCE_FAILURE,
                guidance_result.reason or "Guidance generation failed.",
            )

        phase_started = time.perf_counter()
        plan_result = await generate_plan(
            self.gateway,
            payload.with_guidance(guidance_result.guidance),
            ctx,
            max_tokens=self.settings.plan_max_tokens,
            timeout_s=self.settings.plan_timeout_s,
        )
        ctx.metrics.track_duration("plan", _elapsed_ms(phase_started))
        if plan_result.status is not PlanStatus.OK or plan_result.plan is None:
            return self._fail(
                ctx,
                Stage.REQUESTING_PLAN,
                PLAN_FAILURE_KINDS.get(plan_result.status, FailureKind.UNKNOWN_TRANSPORT),
                plan_result.reason or "Plan generation failed.",
            )

        return self._assemble(ctx, plan_result.plan, guidance_result.guidance)

    def _assemble(self, ctx: RequestContext, plan: WeeklyPlan, guidance: Optional[Guidance]) -> PipelineResult:
        candidate: Dict[str, Any] = {"status": "success", "plans": plan.model_dump(mode="json")}
        if guidance is not None:
            candidate["guidance"] = guidance.model_dump(mode="json")
        try:
            outcome = OUTCOME_ADAPTER.validate_python(candidate)
        except ValidationError as exc:
            ctx.logger.error("Assembled outcome failed validation", extra={"formatted": format_validation_issue(exc)})
            return self._fail(
                ctx,
                Stage.ASSEMBLING_OUTPUT,
                FailureKind.OUTPUT_ASSEMBLY,
                f"Output assembly failed. {format_validation_issue(exc)}",
            )

        ctx.logger.info("Plan generated", extra={"stage": Stage.DONE.value, "sessions": len(plan.exercise)})
        ctx.metrics.track_request_status(outcome.status)
        return PipelineResult(outcome=outcome, http_status=200)
