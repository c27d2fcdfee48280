"""
Test configuration.

Pytest fixtures for the modelrelay backend. Upstream HTTP (the LLM provider,
search engines, Open-Meteo) is served by an ``httpx.MockTransport`` so no
test touches the network.
"""

import json
from typing import Callable, Dict, List, Optional
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi.testclient import TestClient

from modelrelay.agent.failover import FailoverEngine
from modelrelay.core.config import Settings
from modelrelay.core.llm_transport import LLMTransport
from modelrelay.core.rate_limit import InMemoryRateLimitStore

TEST_API_KEY = "sk-or-v1-test-key"


# ============== Upstream response builders ==============

def completion_response(content: str) -> httpx.Response:
    """Non-streaming chat completion."""
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def sse_response(*fragments: str, done: bool = True) -> httpx.Response:
    """Streaming chat completion, one SSE line per fragment."""
    lines = [
        f"data: {json.dumps({'choices': [{'delta': {'content': fragment}}]})}\n\n"
        for fragment in fragments
    ]
    if done:
        lines.append("data: [DONE]\n\n")
    return httpx.Response(
        200,
        content="".join(lines).encode("utf-8"),
        headers={"content-type": "text/event-stream"},
    )


def error_response(status_code: int, message: str = "upstream error") -> httpx.Response:
    return httpx.Response(status_code, json={"error": {"message": message, "code": status_code}})


class ScriptedUpstream:
    """MockTransport handler with per-model scripted completions.

    Each chat-completions request pops the next scripted item for the
    requested model. Items are ``httpx.Response`` objects, exceptions to
    raise, or callables taking the request. Other hosts are answered by
    handlers registered with ``route``.
    """

    def __init__(self):
        self.scripts: Dict[str, List] = {}
        self.calls: List[dict] = []
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.web_requests: List[httpx.Request] = []

    def script(self, model: str, *items) -> "ScriptedUpstream":
        self.scripts.setdefault(model, []).extend(items)
        return self

    def route(self, host: str, handler: Callable[[httpx.Request], httpx.Response]) -> "ScriptedUpstream":
        self.routes[host] = handler
        return self

    @property
    def models_called(self) -> List[str]:
        return [call["model"] for call in self.calls]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/chat/completions"):
            payload = json.loads(request.content)
            self.calls.append(payload)
            queue = self.scripts.get(payload["model"])
            if not queue:
                return error_response(500, f"unscripted call to {payload['model']}")
            item = queue.pop(0)
            if isinstance(item, Exception):
                raise item
            if isinstance(item, httpx.Response):
                return item
            return item(request)

        self.web_requests.append(request)
        handler = self.routes.get(request.url.host)
        if handler is None:
            return httpx.Response(404, json={})
        return handler(request)


# ============== Fixtures ==============

@pytest.fixture
def settings() -> Settings:
    """Settings with a real-looking key and no waiting between attempts."""
    return Settings(
        _env_file=None,
        openrouter_api_key=TEST_API_KEY,
        stream_timeout_seconds=5.0,
        request_timeout_seconds=5.0,
        retry_base_delay=0.0,
        retry_cap_delay=0.0,
        service_busy_delay=0.0,
        failover_delay=0.0,
        search_provider_timeout=2.0,
        weather_timeout_seconds=2.0,
        cors_origins=["*"],
        debug=True,
    )


@pytest.fixture
def unconfigured_settings() -> Settings:
    return Settings(_env_file=None, openrouter_api_key="your-api-key-here")


@pytest.fixture
def upstream() -> ScriptedUpstream:
    return ScriptedUpstream()


@pytest.fixture
def http_client(upstream) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream))


@pytest.fixture
def transport(settings, http_client) -> LLMTransport:
    return LLMTransport(settings, http_client)


@pytest.fixture
def sleep() -> AsyncMock:
    """Stand-in for asyncio.sleep that records requested delays."""
    return AsyncMock()


@pytest.fixture
def engine(transport, settings, sleep) -> FailoverEngine:
    return FailoverEngine(transport, settings, sleep=sleep)


@pytest.fixture
def app(settings, http_client):
    """Create a test FastAPI application wired to the mock upstream."""
    from modelrelay.main import create_app

    return create_app(settings=settings, http_client=http_client, rate_limit_store=InMemoryRateLimitStore())


@pytest.fixture
def client(app):
    """Create a synchronous test client (runs the app lifespan)."""
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


def make_client(settings: Settings, upstream: Optional[ScriptedUpstream] = None, **overrides) -> TestClient:
    """Build an app from settings overrides; use as a context manager."""
    from modelrelay.main import create_app

    custom = settings.model_copy(update=overrides)
    http = httpx.AsyncClient(transport=httpx.MockTransport(upstream or ScriptedUpstream()))
    return TestClient(create_app(settings=custom, http_client=http), raise_server_exceptions=False)
