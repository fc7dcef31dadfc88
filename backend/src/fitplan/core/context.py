from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional
from uuid import uuid4

from .logs import ContextLogger, bind_logger
from .metrics import MetricsTracker


def new_request_id() -> str:
    return str(uuid4())


@dataclass(frozen=True)
class RequestContext:
    """Per-request observability handles, passed explicitly down the pipeline."""

    request_id: str
    logger: ContextLogger
    metrics: MetricsTracker = field(default_factory=MetricsTracker)

    @classmethod
    def create(
        cls,
        request_id: Optional[str] = None,
        metrics: Optional[MetricsTracker] = None,
        logger_name: str = "fitplan.planner",
    ) -> "RequestContext":
        rid = request_id or new_request_id()
        return cls(
            request_id=rid,
            logger=bind_logger(logger_name, request_id=rid),
            metrics=metrics or MetricsTracker(),
        )
