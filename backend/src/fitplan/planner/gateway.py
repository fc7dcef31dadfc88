from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from fitplan.core.exceptions import GatewayTimeoutError, TransportError

logger = logging.getLogger("fitplan.gateway")

Message = Dict[str, str]


class InferenceTransport(Protocol):
    async def run(self, model_id: str, inputs: Dict[str, Any]) -> Any: ...


class WorkersAITransport:
    """Calls a hosted model through the Workers AI REST API.

    ``POST {base_url}/accounts/{account_id}/ai/run/{model_id}`` and unwrap the
    ``{"success", "result", "errors"}`` envelope.
    """

    def __init__(
        self,
        account_id: str,
        api_token: str,
        base_url: str = "https://api.cloudflare.com/client/v4",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.account_id = account_id
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            # Per-call deadlines are enforced by the gateway, not here.
            self._client = httpx.AsyncClient(timeout=None)
        return self._client

    def url_for(self, model_id: str) -> str:
        return f"{self.base_url}/accounts/{self.account_id}/ai/run/{model_id.lstrip('/')}"

    async def run(self, model_id: str, inputs: Dict[str, Any]) -> Any:
        response = await self.client.post(
            self.url_for(model_id),
            json=inputs,
            headers={"Authorization": f"Bearer {self.api_token}"},
        )
        response.raise_for_status()
        body = response.json()
        if not isinstance(body, dict) or "result" not in body:
            return body
        if body.get("success") is False:
            errors = body.get("errors") or []
            first = errors[0] if errors else {}
            message = first.get("message") if isinstance(first, dict) else str(first)
            raise RuntimeError(f"Workers AI call failed: {message or 'unknown error'}")
        return body["result"]

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class InferenceGateway:
    """One remote inference call raced against a timer.

    No retries here; callers decide. A call that loses the race is cancelled
    on a best-effort basis and whatever it returns later is never seen.
    """

    def __init__(self, transport: InferenceTransport, model_id: str):
        self.transport = transport
        self.model_id = model_id

    async def invoke(
        self,
        messages: List[Message],
        schema: Dict[str, Any],
        *,
        max_tokens: int,
        timeout_s: float,
        temperature: float = 0.0,
    ) -> Any:
        inputs = {
            "messages": messages,
            "response_format": {"type": "json_schema", "json_schema": schema},
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        try:
            return await asyncio.wait_for(self.transport.run(self.model_id, inputs), timeout=timeout_s)
        except asyncio.TimeoutError as exc:
            logger.warning("Inference call timed out", extra={"model": self.model_id, "timeout_s": timeout_s})
            raise GatewayTimeoutError(timeout_s) from exc
        except Exception as exc:
            logger.warning(
                "Inference call failed",
                extra={"model": self.model_id, "error": f"{exc.__class__.__name__}: {exc}"},
            )
            raise TransportError(exc) from exc
