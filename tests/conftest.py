"""Pytest configuration and shared fixtures for GSCNav tests."""

import json
from typing import Any

import httpx
import pytest

from gscnav_mcp.clients.cache import MemoryCacheStore
from gscnav_mcp.clients.gsc.auth import StaticTokenProvider
from gscnav_mcp.clients.gsc.client import GSCService
from gscnav_mcp.core.config import GSCConfig
from gscnav_mcp.services.user_settings import InMemoryUserSettings


class FakeSearchConsole:
    """In-process stand-in for the searchAnalytics/query endpoint.

    Rows are registered per dimension tuple; every request is recorded.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.rows_by_dimensions: dict[tuple[str, ...], Any] = {}
        self.failing_dimensions: set[tuple[str, ...]] = set()
        self.status_code = 200
        self.error_body: Any = None

    def set_rows(self, dimensions: list[str], rows: Any) -> None:
        self.rows_by_dimensions[tuple(dimensions)] = rows

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = json.loads(request.content)
        dimensions = tuple(body["dimensions"])

        if self.status_code != 200:
            return httpx.Response(self.status_code, json=self.error_body)
        if dimensions in self.failing_dimensions:
            return httpx.Response(500, json={"error": {"message": "Backend Error"}})

        rows = self.rows_by_dimensions.get(dimensions)
        if rows is None:
            return httpx.Response(200, json={})
        return httpx.Response(200, json={"rows": rows})

    @property
    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def fake_gsc():
    """Fake Search Console endpoint."""
    return FakeSearchConsole()


@pytest.fixture
def user_settings():
    """Settings with a single 'acme' branded rule."""
    return InMemoryUserSettings(
        branded_rules=[{"id": "1", "type": "contains", "value": "acme"}],
        category_patterns={
            "tofu": ["^what", "^how"],
            "mofu": ["best", "vs"],
            "bofu": ["buy", "price"],
        },
        default_property="sc-domain:example.com",
    )


@pytest.fixture
def memory_cache():
    """Empty in-memory cache store."""
    return MemoryCacheStore(default_ttl=3600)


@pytest.fixture
def gsc_service(fake_gsc, user_settings, memory_cache):
    """GSCService wired to the fake endpoint with a fast request queue."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_gsc.handler))
    return GSCService(
        StaticTokenProvider("test-token"),
        memory_cache,
        user_settings,
        config=GSCConfig(rate_limit=100),
        http_client=http_client,
    )
