"""Metrics sinks and the request-facing tracker.

Backends are selected through settings: ``noop`` (default) or ``log``, which
writes every sample to the ``fitplan.metrics`` logger. The tracker is the only
thing the pipeline talks to; it never lets a sink failure reach the caller.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol

logger = logging.getLogger("fitplan.metrics")

Tags = Dict[str, str]


class Metrics(Protocol):
    def counter(self, name: str, value: float = 1, tags: Optional[Tags] = None) -> None: ...

    def gauge(self, name: str, value: float, tags: Optional[Tags] = None) -> None: ...

    def histogram(self, name: str, value: float, tags: Optional[Tags] = None) -> None: ...


class NoopMetrics:
    def counter(self, name: str, value: float = 1, tags: Optional[Tags] = None) -> None:
        return None

    def gauge(self, name: str, value: float, tags: Optional[Tags] = None) -> None:
        return None

    def histogram(self, name: str, value: float, tags: Optional[Tags] = None) -> None:
        return None


class LoggingMetrics:
    def __init__(self, sink: Optional[logging.Logger] = None):
        self.sink = sink or logger

    def _write(self, kind: str, name: str, value: float, tags: Optional[Tags]) -> None:
        self.sink.info(
            "metric",
            extra={"metric": name, "kind": kind, "value": value, "tags": dict(tags or {})},
        )

    def counter(self, name: str, value: float = 1, tags: Optional[Tags] = None) -> None:
        self._write("counter", name, value, tags)

    def gauge(self, name: str, value: float, tags: Optional[Tags] = None) -> None:
        self._write("gauge", name, value, tags)

    def histogram(self, name: str, value: float, tags: Optional[Tags] = None) -> None:
        self._write("histogram", name, value, tags)


def create_metrics(backend: str) -> Metrics:
    if backend == "log":
        return LoggingMetrics()
    return NoopMetrics()


def _age_group(age: int) -> str:
    if age < 18:
        return "under_18"
    if age < 25:
        return "18-24"
    if age < 40:
        return "25-39"
    if age < 60:
        return "40-59"
    return "60+"


class MetricsTracker:
    """Named pipeline metrics on top of a raw sink.

    Every call is fire-and-forget: disabled trackers do nothing and sink
    errors are logged at debug level and dropped.
    """

    def __init__(self, metrics: Optional[Metrics] = None, enabled: bool = False):
        self.metrics: Metrics = metrics or NoopMetrics()
        self.enabled = enabled

    def _emit(self, kind: str, name: str, value: float, tags: Optional[Tags] = None) -> None:
        if not self.enabled:
            return
        try:
            getattr(self.metrics, kind)(name, value, tags)
        except Exception as exc:
            logger.debug("metrics sink failed for %s: %s", name, exc)

    # --- requests ---

    def track_request_status(self, status: str, reason: Optional[str] = None) -> None:
        tags = {"status": status}
        if reason:
            tags["reason"] = reason
        self._emit("counter", "requests_total", 1, tags)

    def track_language(self, language: str) -> None:
        self._emit("counter", "language_total", 1, {"language": language})

    # --- profile ---

    def track_goal(self, goal: str) -> None:
        self._emit("counter", "goals_total", 1, {"goal": goal})

    def track_activity_level(self, level: str) -> None:
        self._emit("counter", "activity_levels_total", 1, {"level": level})

    def track_demographics(self, sex: str, age: int) -> None:
        self._emit("counter", "demographics_total", 1, {"sex": sex, "age_group": _age_group(age)})

    # --- performance ---

    def track_duration(self, phase: str, duration_ms: float) -> None:
        self._emit("histogram", f"{phase}_duration_ms", duration_ms)

    # --- model ---

    def track_tokens(self, phase: str, prompt_tokens: int, completion_tokens: int) -> None:
        self._emit("histogram", f"prompt_tokens_{phase}", prompt_tokens)
        self._emit("histogram", f"completion_tokens_{phase}", completion_tokens)
        self._emit("gauge", f"total_tokens_{phase}", prompt_tokens + completion_tokens)

    def track_model_retry(self, phase: str) -> None:
        self._emit("counter", "model_retries_total", 1, {"phase": phase})

    def track_model_error(self, phase: str, error_type: str) -> None:
        self._emit("counter", "model_errors_total", 1, {"phase": phase, "error_type": error_type})

    def track_dropped_items(self, kind: str, count: int) -> None:
        if count:
            self._emit("counter", "reconcile_dropped_items_total", count, {"kind": kind})
