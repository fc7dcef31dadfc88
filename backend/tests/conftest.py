import asyncio
import copy
import json
from typing import Any, AsyncIterator, Dict, List

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from fitplan.core.config import Settings
from fitplan.core.context import RequestContext
from fitplan.core.metrics import MetricsTracker
from fitplan.main import create_app
from fitplan.planner import InferenceGateway, PlanOrchestrator

SAMPLE_DIET_DAY: List[Dict[str, str]] = [
    {"when": "07:30-08:00", "what": "Oatmeal with low-fat milk", "why": "Morning energy"},
    {"when": "13:00-13:30", "what": "Brown rice and chicken breast", "why": "Protein and carbs"},
    {"when": "20:00-20:30", "what": "Salad and yogurt", "why": "Fiber and recovery"},
]

SAMPLE_PLANS: Dict[str, Any] = {
    "diet": {day: SAMPLE_DIET_DAY for day in ("sat", "sun", "mon", "tue", "wed", "thu", "fri")},
    "exercise": [
        {
            "day": "sat",
            "goal": "General strength",
            "when": "morning",
            "what": "Brisk walk",
            "duration_minutes": 30,
            "intensity_or_rest": "low",
        },
        {
            "day": "mon",
            "goal": "Upper body",
            "when": "evening",
            "what": "Push-ups, dumbbell rows, overhead press",
            "duration_minutes": 45,
            "intensity_or_rest": "moderate",
        },
    ],
}

SAMPLE_GUIDANCE: Dict[str, List[str]] = {
    "diet_rules": ["Avoid added sugar", "Drink enough water"],
    "exercise_rules": ["Warm up before training", "Cool down afterwards"],
}

VALID_PAYLOAD: Dict[str, Any] = {
    "heightCm": 180,
    "weightKg": 78,
    "age": 32,
    "sex": "male",
    "goal": "build_muscle",
    "activity": "medium",
}


def chat_completion(content: Any, finish_reason: str = "stop", usage: Dict[str, int] = None) -> Dict[str, Any]:
    body = content if isinstance(content, str) else json.dumps(content)
    envelope: Dict[str, Any] = {
        "choices": [{"message": {"role": "assistant", "content": body}, "finish_reason": finish_reason}],
    }
    if usage is not None:
        envelope["usage"] = usage
    return envelope


class FakeTransport:
    """Replays scripted responses; an Exception instance is raised instead."""

    def __init__(self, *responses: Any, delay: float = 0.0):
        self.responses = list(responses)
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    async def run(self, model_id: str, inputs: Dict[str, Any]) -> Any:
        self.calls.append({"model_id": model_id, "inputs": inputs})
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.responses:
            raise AssertionError("FakeTransport ran out of scripted responses")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return copy.deepcopy(response)


class RecordingMetrics:
    def __init__(self):
        self.samples: List[tuple] = []

    def counter(self, name, value=1, tags=None):
        self.samples.append(("counter", name, value, dict(tags or {})))

    def gauge(self, name, value, tags=None):
        self.samples.append(("gauge", name, value, dict(tags or {})))

    def histogram(self, name, value, tags=None):
        self.samples.append(("histogram", name, value, dict(tags or {})))

    def names(self) -> List[str]:
        return [sample[1] for sample in self.samples]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        guidance_timeout_s=0.5,
        plan_timeout_s=0.5,
        inference_budget_s=2.0,
        metrics_enabled=True,
    )


@pytest.fixture
def recording_metrics() -> RecordingMetrics:
    return RecordingMetrics()


@pytest.fixture
def ctx(recording_metrics) -> RequestContext:
    return RequestContext.create(request_id="test-request", metrics=MetricsTracker(recording_metrics, enabled=True))


@pytest.fixture
def make_orchestrator(settings):
    def _make(*responses: Any, delay: float = 0.0):
        transport = FakeTransport(*responses, delay=delay)
        return PlanOrchestrator(InferenceGateway(transport, settings.ai_model_id), settings), transport

    return _make


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def test_app(settings, transport) -> FastAPI:
    return create_app(settings=settings, transport=transport)


@pytest.fixture
async def client(test_app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
