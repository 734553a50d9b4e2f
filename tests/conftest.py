"""Pytest configuration and fixtures for MCP Bridge tests."""

import json

import httpx
import pytest

from mcp_bridge.sessions import InMemorySessionStore
from mcp_bridge.settings import Settings

UPSTREAM_URL = "http://upstream.test/mcp"
SESSION_HEADER = "mcp-session-id"


class FakeUpstream:
    """Records requests and answers them like a JSON-RPC MCP webhook."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.tokens = iter(f"session-{i}" for i in range(1, 100))
        self.handler = None

    @property
    def methods(self) -> list[str]:
        return [json.loads(r.content)["method"] for r in self.requests]

    def payload(self, index: int) -> dict:
        return json.loads(self.requests[index].content)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.handler is not None:
            return self.handler(request)
        body = json.loads(request.content)
        if body["method"] == "initialize":
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": body["id"], "result": {"serverInfo": {"name": "n8n"}}},
                headers={SESSION_HEADER: next(self.tokens)},
            )
        return httpx.Response(
            200, json={"jsonrpc": "2.0", "id": body["id"], "result": {"tools": []}}
        )


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def config():
    """Settings pointing at the fake upstream."""
    return Settings(upstream_url=UPSTREAM_URL, _env_file=None)


@pytest.fixture
def sessions():
    return InMemorySessionStore()


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def transport(upstream):
    return httpx.MockTransport(upstream)
