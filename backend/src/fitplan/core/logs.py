"""Logging setup.

Records always go to stderr through ``StructuredFormatter``. With the ``loki``
backend they are also pushed to a Grafana Loki endpoint from a background
thread (``QueueHandler`` -> ``QueueListener`` -> ``LokiHandler``), so a slow
or unreachable Loki never holds up a request.
"""

from __future__ import annotations

import json
import logging
import queue
import time
from logging.handlers import QueueHandler, QueueListener
from typing import Any, Dict, Mapping, MutableMapping, Optional, Tuple

import httpx

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}

LOKI_LEVELS: Dict[int, str] = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "error",
}

_loki_listener: Optional[QueueListener] = None
_loki_queue_handler: Optional[QueueHandler] = None


def record_payload(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class StructuredFormatter(logging.Formatter):
    """Appends the record's key/value payload as compact JSON."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        payload = record_payload(record)
        if payload:
            line = f"{line} {json.dumps(payload, ensure_ascii=False, default=str, sort_keys=True)}"
        return line


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that merges call-site ``extra`` with the bound context."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra: Dict[str, Any] = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


def loki_auth_header(api_key: Optional[str]) -> Dict[str, str]:
    """``user:password`` style keys are sent as Basic, anything else as Bearer."""
    if not api_key:
        return {}
    scheme = "Basic" if ":" in api_key else "Bearer"
    return {"Authorization": f"{scheme} {api_key}"}


class LokiHandler(logging.Handler):
    """Pushes each record as one line to the Loki HTTP push API."""

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        labels: Optional[Mapping[str, str]] = None,
        client: Optional[httpx.Client] = None,
        timeout_s: float = 5.0,
    ):
        super().__init__()
        self.endpoint = endpoint
        self.headers = {"Content-Type": "application/json", **loki_auth_header(api_key)}
        self.labels = dict(labels or {"app": "fitplan"})
        self.client = client or httpx.Client(timeout=timeout_s)

    def build_payload(self, record: logging.LogRecord) -> Dict[str, Any]:
        entry: Dict[str, Any] = {
            "level": LOKI_LEVELS.get(record.levelno, record.levelname.lower()),
            "logger": record.name,
            "message": record.getMessage(),
        }
        data = record_payload(record)
        if data:
            entry["data"] = data
        timestamp_ns = int(record.created * 1_000_000_000) if record.created else time.time_ns()
        line = json.dumps(entry, ensure_ascii=False, default=str)
        return {"streams": [{"stream": self.labels, "values": [[str(timestamp_ns), line]]}]}

    def emit(self, record: logging.LogRecord) -> None:
        try:
            response = self.client.post(self.endpoint, json=self.build_payload(record), headers=self.headers)
            response.raise_for_status()
        except httpx.HTTPError:
            self.handleError(record)

    def close(self) -> None:
        try:
            self.client.close()
        finally:
            super().close()


def _stop_loki() -> None:
    global _loki_listener, _loki_queue_handler
    if _loki_listener is not None:
        _loki_listener.stop()
        for handler in _loki_listener.handlers:
            handler.close()
        _loki_listener = None
    if _loki_queue_handler is not None:
        logging.getLogger().removeHandler(_loki_queue_handler)
        _loki_queue_handler = None


def configure_logging(
    level: str = "INFO",
    fmt: Optional[str] = None,
    backend: str = "console",
    loki_endpoint: Optional[str] = None,
    loki_api_key: Optional[str] = None,
    loki_handler: Optional[logging.Handler] = None,
) -> None:
    global _loki_listener, _loki_queue_handler
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(StructuredFormatter(fmt))
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    _stop_loki()
    if backend != "loki":
        return
    target = loki_handler or LokiHandler(loki_endpoint or "", api_key=loki_api_key)
    records: "queue.Queue[logging.LogRecord]" = queue.Queue(-1)
    _loki_queue_handler = QueueHandler(records)
    _loki_listener = QueueListener(records, target, respect_handler_level=True)
    root.addHandler(_loki_queue_handler)
    _loki_listener.start()


def shutdown_logging() -> None:
    """Flush and stop the Loki listener, if one is running."""
    _stop_loki()


def bind_logger(name: str, **context: Any) -> ContextLogger:
    return ContextLogger(logging.getLogger(name), context)
