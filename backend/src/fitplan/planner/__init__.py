from __future__ import annotations

from .gateway import InferenceGateway, InferenceTransport, WorkersAITransport
from .orchestrator import FailureKind, PipelineResult, PlanOrchestrator

__all__ = [
    "FailureKind",
    "InferenceGateway",
    "InferenceTransport",
    "PipelineResult",
    "PlanOrchestrator",
    "WorkersAITransport",
]
