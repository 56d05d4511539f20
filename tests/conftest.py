"""Pytest configuration and fixtures shared across all test modules.

Environment defaults must be set before any import that loads settings.
"""

import os

os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Callable
from unittest.mock import Mock

import pytest
from starlette.requests import Request

from todo_service.adapters.rate_limit.in_memory import InMemoryCounterStore
from todo_service.pipeline.orchestrator import RequestContext


def build_request(
    path: str = "/api/v1/todos",
    *,
    method: str = "GET",
    client: str = "1.2.3.4",
    headers: dict[str, str] | None = None,
) -> Request:
    """Build a bare Starlette request for stage-level tests."""
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request(
        {
            "type": "http",
            "method": method,
            "path": path,
            "raw_path": path.encode(),
            "root_path": "",
            "scheme": "http",
            "query_string": b"",
            "headers": raw_headers,
            "client": (client, 50000),
            "server": ("testserver", 80),
        }
    )


@pytest.fixture
def make_context() -> Callable[..., RequestContext]:
    """Factory for request contexts whose route is the raw path."""

    def _make(path: str = "/api/v1/todos", **kwargs) -> RequestContext:
        request = build_request(path, **kwargs)
        return RequestContext(request=request, route=path)

    return _make


@pytest.fixture
def clock() -> Mock:
    """Controllable clock returning UNIX seconds."""
    return Mock(return_value=1000.0)


@pytest.fixture
def store(clock: Mock) -> InMemoryCounterStore:
    """One-minute window store driven by the test clock."""
    return InMemoryCounterStore(window_ms=60_000, clock=clock)
