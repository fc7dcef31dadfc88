from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from fitplan.core.context import RequestContext
from fitplan.planner import PlanOrchestrator

router = APIRouter(tags=["plans"])

ALLOWED_METHODS = "POST, OPTIONS"


def get_orchestrator(request: Request) -> PlanOrchestrator:
    return request.app.state.orchestrator


def get_request_context(request: Request) -> RequestContext:
    return RequestContext.create(
        request_id=getattr(request.state, "request_id", None),
        metrics=request.app.state.metrics,
    )


@router.post("/")
async def create_plan(
    request: Request,
    orchestrator: PlanOrchestrator = Depends(get_orchestrator),
    ctx: RequestContext = Depends(get_request_context),
):
    body = await request.body()
    try:
        raw = json.loads(body)
    except ValueError as exc:
        result = orchestrator.rejected_input(ctx, f"Request body must be valid JSON: {exc}")
    else:
        result = await orchestrator.run(raw, ctx)
    return JSONResponse(status_code=result.http_status, content=result.body())


@router.options("/{path:path}", include_in_schema=False)
async def preflight(path: str):
    return Response(status_code=200)


@router.api_route(
    "/{path:path}",
    methods=["GET", "HEAD", "PUT", "PATCH", "DELETE", "TRACE", "CONNECT"],
    include_in_schema=False,
)
async def method_not_allowed(path: str):
    return Response(status_code=405, headers={"Allow": ALLOWED_METHODS})
