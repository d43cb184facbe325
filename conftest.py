# Ensure tests import modules from this service directory first, so
# `import search_proxy.*` works without installing the package.
import os
import sys

import httpx
import pytest
from fastapi.testclient import TestClient

SERVICE_ROOT = os.path.dirname(__file__)
if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)

from search_proxy.proxy.client import create_http_client, get_http_client  # noqa: E402
from search_proxy.rate_limit import SlidingWindowRateLimiter  # noqa: E402


class UpstreamRecorder:
    """httpx.MockTransport handler standing in for every origin; records each call."""

    def __init__(self):
        self.calls = []
        self.handler = lambda request: httpx.Response(
            200, headers={"content-type": "text/plain"}, content=b"ok"
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        return self.handler(request)


@pytest.fixture
def upstream():
    return UpstreamRecorder()


@pytest.fixture
def upstream_client(upstream):
    return create_http_client(transport=httpx.MockTransport(upstream))


@pytest.fixture
def rate_limiter():
    return SlidingWindowRateLimiter(max_requests=1000, window_ms=60_000)


@pytest.fixture
def test_client(upstream_client, rate_limiter):
    """TestClient for the app with upstream I/O routed to the recorder."""
    from search_proxy.server import app

    app.state.rate_limiter = rate_limiter
    app.dependency_overrides[get_http_client] = lambda: upstream_client
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()
