"""End-to-end admission scenarios through the FastAPI app."""

from __future__ import annotations

from unittest.mock import Mock

import pytest
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from todo_service.adapters.rate_limit.base import AbstractCounterStore, CounterRecord, CounterResult
from todo_service.adapters.rate_limit.in_memory import InMemoryCounterStore
from todo_service.core.app_factory import create_app
from todo_service.core.errors import StoreUnavailableError
from todo_service.pipeline.keys import forwarded_for_key
from todo_service.pipeline.orchestrator import Pipeline
from todo_service.pipeline.rate_limit import RateLimitPolicy, RateLimitStage
from todo_service.pipeline.routes import RouteScope

CLIENT = {"X-Forwarded-For": "1.2.3.4"}


class DownStore(AbstractCounterStore):
    window_ms = 60_000

    async def increment(self, key: str) -> CounterResult:
        raise StoreUnavailableError(
            code="counter_store_unavailable",
            message="Rate limit backend is unavailable",
            details={"backend": "test"},
        )

    async def decrement(self, key: str) -> None:
        return None

    async def reset(self, key: str) -> None:
        return None

    async def get(self, key: str) -> CounterRecord | None:
        return None


def build_app(stage: RateLimitStage) -> FastAPI:
    app = create_app(pipeline=Pipeline([stage.as_stage()]))

    @app.get("/api/v1/flaky")
    def flaky() -> JSONResponse:
        return JSONResponse({"error": "boom"}, status_code=500)

    @app.get("/api/v1/crash")
    def crash() -> dict:
        raise RuntimeError("handler crashed")

    return app


@pytest.fixture
def limited(clock: Mock):
    store = InMemoryCounterStore(window_ms=60_000, clock=clock)
    policy = RateLimitPolicy(window_ms=60_000, max_requests=3, key_generator=forwarded_for_key)
    stage = RateLimitStage(policy, store)
    return TestClient(build_app(stage)), store


def test_quota_counts_down_then_rejects(limited) -> None:
    client, _ = limited

    responses = [client.get("/api/v1/todos", headers=CLIENT) for _ in range(3)]
    rejected = client.get("/api/v1/todos", headers=CLIENT)

    assert [r.status_code for r in responses] == [200, 200, 200]
    assert [r.headers["RateLimit-Remaining"] for r in responses] == ["2", "1", "0"]
    assert all(r.headers["RateLimit-Limit"] == "3" for r in responses)

    assert rejected.status_code == 429
    assert 0 < int(rejected.headers["Retry-After"]) <= 60
    assert rejected.headers["RateLimit-Remaining"] == "0"
    body = rejected.json()
    assert body["error"] == "Too Many Requests"
    assert body["message"] == "Too many requests, please try again later"
    assert body["retryAfter"] == int(rejected.headers["Retry-After"])


def test_rejection_keeps_request_id(limited) -> None:
    client, _ = limited
    for _ in range(3):
        client.get("/api/v1/todos", headers=CLIENT)

    rejected = client.get("/api/v1/todos", headers={**CLIENT, "X-Request-ID": "req-429"})

    assert rejected.status_code == 429
    assert rejected.headers["X-Request-ID"] == "req-429"


def test_new_window_admits_as_fresh(limited, clock: Mock) -> None:
    client, _ = limited
    for _ in range(3):
        client.get("/api/v1/todos", headers=CLIENT)

    clock.return_value = 1061.0
    response = client.get("/api/v1/todos", headers=CLIENT)

    assert response.status_code == 200
    assert response.headers["RateLimit-Remaining"] == "2"


def test_other_clients_are_unaffected(limited) -> None:
    client, _ = limited
    for _ in range(4):
        client.get("/api/v1/todos", headers=CLIENT)

    response = client.get("/api/v1/todos", headers={"X-Forwarded-For": "5.6.7.8"})

    assert response.status_code == 200
    assert response.headers["RateLimit-Remaining"] == "2"


def test_admitted_count_never_exceeds_max(limited) -> None:
    client, _ = limited

    statuses = [client.get("/api/v1/todos", headers=CLIENT).status_code for _ in range(10)]

    assert statuses.count(200) == 3
    assert statuses.count(429) == 7


def test_failures_do_not_consume_quota_with_skip_failed(clock: Mock) -> None:
    store = InMemoryCounterStore(window_ms=60_000, clock=clock)
    policy = RateLimitPolicy(
        window_ms=60_000,
        max_requests=5,
        skip_failed_requests=True,
        key_generator=forwarded_for_key,
    )
    client = TestClient(build_app(RateLimitStage(policy, store)))

    statuses = [client.get("/api/v1/flaky", headers=CLIENT).status_code for _ in range(5)]
    sixth = client.get("/api/v1/todos", headers=CLIENT)

    assert statuses == [500] * 5
    assert sixth.status_code == 200
    assert sixth.headers["RateLimit-Remaining"] == "4"


@pytest.mark.asyncio
async def test_crashing_handler_is_given_back_with_skip_failed(clock: Mock) -> None:
    store = InMemoryCounterStore(window_ms=60_000, clock=clock)
    policy = RateLimitPolicy(
        window_ms=60_000,
        max_requests=5,
        skip_failed_requests=True,
        key_generator=forwarded_for_key,
    )
    client = TestClient(build_app(RateLimitStage(policy, store)), raise_server_exceptions=False)

    response = client.get("/api/v1/crash", headers=CLIENT)

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "internal_server_error"
    assert "Traceback" not in response.text
    record = await store.get("default:1.2.3.4")
    assert record is not None
    assert record.count == 0


@pytest.mark.asyncio
async def test_out_of_scope_route_bypasses_stage(clock: Mock) -> None:
    store = InMemoryCounterStore(window_ms=60_000, clock=clock)
    policy = RateLimitPolicy(
        window_ms=60_000,
        max_requests=1,
        key_generator=forwarded_for_key,
        scope=RouteScope(only_routes=("/api/v1/todos",)),
    )
    client = TestClient(build_app(RateLimitStage(policy, store)))

    responses = [client.get("/health", headers=CLIENT) for _ in range(5)]

    assert all(r.status_code == 200 for r in responses)
    assert all("RateLimit-Limit" not in r.headers for r in responses)
    assert await store.get("default:1.2.3.4") is None
    assert client.get("/api/v1/todos", headers=CLIENT).headers["RateLimit-Remaining"] == "0"


def test_route_templates_scope_parameterized_paths(clock: Mock) -> None:
    store = InMemoryCounterStore(window_ms=60_000, clock=clock)
    policy = RateLimitPolicy(
        window_ms=60_000,
        max_requests=1,
        key_generator=forwarded_for_key,
        scope=RouteScope(only_routes=("/api/v1/todos/{todo_id}",)),
    )
    client = TestClient(build_app(RateLimitStage(policy, store)))

    first = client.get("/api/v1/todos/999991", headers=CLIENT)
    second = client.get("/api/v1/todos/999992", headers=CLIENT)
    listing = client.get("/api/v1/todos", headers=CLIENT)

    assert first.status_code == 404
    assert first.headers["RateLimit-Remaining"] == "0"
    assert second.status_code == 429
    assert listing.status_code == 200
    assert "RateLimit-Limit" not in listing.headers


def test_store_failure_is_a_503_by_default() -> None:
    client = TestClient(build_app(RateLimitStage(RateLimitPolicy(window_ms=60_000), DownStore())))

    response = client.get("/api/v1/todos")

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "counter_store_unavailable"


def test_store_failure_admits_when_fail_open() -> None:
    policy = RateLimitPolicy(window_ms=60_000, fail_open=True)
    client = TestClient(build_app(RateLimitStage(policy, DownStore())))

    response = client.get("/api/v1/todos")

    assert response.status_code == 200
    assert "RateLimit-Limit" not in response.headers
