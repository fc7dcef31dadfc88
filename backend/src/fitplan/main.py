from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from starlette.requests import Request

from fitplan.core.config import Settings, get_settings
from fitplan.core.context import new_request_id
from fitplan.core.logs import configure_logging, shutdown_logging
from fitplan.core.metrics import Metrics, MetricsTracker, create_metrics
from fitplan.planner import InferenceGateway, InferenceTransport, PlanOrchestrator, WorkersAITransport
from fitplan.routers import plans

logger = logging.getLogger("fitplan.main")

CORS_HEADERS = {
    "Access-Control-Allow-Headers": "*",
    "Access-Control-Allow-Methods": "*",
    "Access-Control-Allow-Origin": "*",
}


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[InferenceTransport] = None,
    metrics: Optional[Metrics] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(
        settings.log_level,
        settings.log_format,
        backend=settings.log_backend,
        loki_endpoint=settings.grafana_endpoint,
        loki_api_key=settings.grafana_api_key,
    )

    if transport is None:
        transport = WorkersAITransport(
            account_id=settings.ai_account_id,
            api_token=settings.ai_api_token,
            base_url=settings.ai_base_url,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting %s %s (model %s)", settings.app_name, settings.app_version, settings.ai_model_id)
        try:
            yield
        finally:
            aclose = getattr(transport, "aclose", None)
            if aclose is not None:
                await aclose()
            logger.info("Shutting down %s", settings.app_name)
            shutdown_logging()

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url=settings.docs_url,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.docs_url else None,
        lifespan=lifespan,
    )
    application.state.settings = settings
    application.state.orchestrator = PlanOrchestrator(InferenceGateway(transport, settings.ai_model_id), settings)
    application.state.metrics = MetricsTracker(
        metrics or create_metrics(settings.metrics_backend),
        enabled=settings.metrics_enabled,
    )

    @application.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or new_request_id()
        request.state.request_id = request_id
        started = time.perf_counter()
        logger.info(
            "Request started",
            extra={"request_id": request_id, "method": request.method, "path": request.url.path},
        )
        response = await call_next(request)
        process_time = time.perf_counter() - started
        logger.info(
            "Request completed",
            extra={
                "request_id": request_id,
                "status_code": response.status_code,
                "process_time": f"{process_time:.4f}s",
            },
        )
        response.headers.update(CORS_HEADERS)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{process_time:.4f}"
        if response.headers.get("content-type", "").startswith("application/json"):
            response.headers["content-type"] = "application/json; charset=utf-8"
        return response

    application.include_router(plans.router)
    return application


app = create_app()
