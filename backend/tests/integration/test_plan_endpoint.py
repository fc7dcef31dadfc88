import asyncio

from conftest import SAMPLE_GUIDANCE, SAMPLE_PLANS, VALID_PAYLOAD, chat_completion
from fitplan.planner.schemas import WEEKDAYS


async def test_preflight_returns_empty_200_with_cors_headers(client):
    response = await client.options("/")

    assert response.status_code == 200
    assert response.content == b""
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.headers["access-control-allow-methods"] == "*"
    assert response.headers["access-control-allow-headers"] == "*"


async def test_other_methods_are_not_allowed(client):
    for method in ("GET", "PUT", "DELETE", "TRACE"):
        response = await client.request(method, "/")
        assert response.status_code == 405
        assert response.headers["allow"] == "POST, OPTIONS"
        assert response.headers["access-control-allow-origin"] == "*"


async def test_malformed_json_is_rejected(client, transport):
    response = await client.post("/", content=b"{not json", headers={"content-type": "application/json"})

    assert response.status_code == 400
    body = response.json()
    assert body["status"] == "rejected"
    assert body["reason"].startswith("Request body must be valid JSON")
    assert transport.calls == []


async def test_invalid_field_is_rejected(client):
    response = await client.post("/", json=dict(VALID_PAYLOAD, age=10))

    assert response.status_code == 400
    assert response.json() == {"status": "rejected", "reason": 'Field "age": age must be between 12 and 80'}
    assert response.headers["content-type"] == "application/json; charset=utf-8"


async def test_medical_condition_is_rejected_without_model_calls(client, transport):
    response = await client.post("/", json=dict(VALID_PAYLOAD, medicalCondition="heart disease", language="en"))

    assert response.status_code == 200
    assert response.json()["status"] == "rejected"
    assert transport.calls == []


async def test_successful_plan(client, transport):
    transport.responses = [chat_completion(SAMPLE_GUIDANCE), chat_completion(SAMPLE_PLANS)]

    response = await client.post("/", json=VALID_PAYLOAD)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert sorted(body["plans"]["diet"]) == sorted(WEEKDAYS)
    assert all(len(meals) == 3 for meals in body["plans"]["diet"].values())
    assert body["plans"]["exercise"][1]["duration_minutes"] == 45
    assert body["guidance"] == SAMPLE_GUIDANCE
    assert response.headers["access-control-allow-origin"] == "*"


async def test_plan_timeout_returns_504(client, transport, settings):
    transport.responses = [chat_completion(SAMPLE_GUIDANCE), chat_completion(SAMPLE_PLANS)]
    original = transport.run

    async def slow_plan_call(model_id, inputs):
        if inputs["max_tokens"] == settings.plan_max_tokens:
            await asyncio.sleep(settings.plan_timeout_s * 2)
        return await original(model_id, inputs)

    transport.run = slow_plan_call

    response = await client.post("/", json=VALID_PAYLOAD)

    assert response.status_code == 504
    assert response.json()["status"] == "error"


async def test_upstream_failure_returns_502(client, transport):
    transport.responses = [ConnectionError("down"), ConnectionError("down")]

    response = await client.post("/", json=VALID_PAYLOAD)

    assert response.status_code == 502
    body = response.json()
    assert body["status"] == "error"
    assert "Guidance generation failed after retries" in body["reason"]


async def test_request_id_is_echoed(client, transport):
    response = await client.post("/", json=dict(VALID_PAYLOAD, heightCm="abc"), headers={"X-Request-ID": "req-42"})

    assert response.status_code == 400
    assert response.headers["x-request-id"] == "req-42"
    assert "x-process-time" in response.headers
