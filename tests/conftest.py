"""Shared fixtures for the Pica MCP server tests."""

from urllib.parse import urlparse

import httpx
import pytest

from pica_mcp.client import PicaClient
from pica_mcp.config import Settings

BASE_URL = "https://api.test.picaos.com"
TEST_SECRET = "sk_test_secret"


def make_settings(**overrides) -> Settings:
    values = {"secret": TEST_SECRET, "base_url": BASE_URL}
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def client(settings):
    return PicaClient(settings)


@pytest.fixture
def httpx_mock(monkeypatch):
    """Mock httpx for testing without making real API calls."""
    class MockTransport(httpx.MockTransport):
        def __init__(self):
            self.responses = []
            self.requests = []
            super().__init__(self._handler)

        def _handler(self, request):
            self.requests.append(request)
            for response_config in self.responses:
                if self._matches(request, response_config):
                    if response_config["text"] is not None:
                        return httpx.Response(
                            status_code=response_config["status_code"],
                            text=response_config["text"],
                        )
                    return httpx.Response(
                        status_code=response_config["status_code"],
                        json=response_config["json"],
                    )
            raise Exception(f"No mock configured for {request.method} {request.url}")

        def _matches(self, request, config):
            if config["method"] and config["method"] != request.method:
                return False

            expected = urlparse(config["url"])
            actual = urlparse(str(request.url))
            if (expected.scheme, expected.netloc, expected.path) != (actual.scheme, actual.netloc, actual.path):
                return False

            for key, value in (config["params"] or {}).items():
                if request.url.params.get(key) != str(value):
                    return False
            return True

        def add_response(self, url, json=None, status_code=200, method=None, params=None, text=None):
            self.responses.append({
                "url": url,
                "json": json,
                "status_code": status_code,
                "method": method,
                "params": params,
                "text": text,
            })

        def requests_to(self, path):
            return [r for r in self.requests if r.url.path == path]

    mock = MockTransport()

    original_init = httpx.AsyncClient.__init__

    def patched_init(self, *args, **kwargs):
        kwargs['transport'] = mock
        original_init(self, *args, **kwargs)

    monkeypatch.setattr(httpx.AsyncClient, "__init__", patched_init)

    return mock


@pytest.fixture
def pica_api(httpx_mock):
    """httpx_mock with empty connection and connector listings registered."""
    httpx_mock.add_response(f"{BASE_URL}/v1/vault/connections", json={"rows": [], "total": 0})
    httpx_mock.add_response(f"{BASE_URL}/v1/available-connectors", json={"rows": [], "total": 0})
    return httpx_mock
