import json

import httpx
import pytest
from fastapi.testclient import TestClient

from config import GatewayConfig
from server import create_app

SEARCH_BODY = {
    "data": [{"type": "gif", "id": "abc123", "title": "Cat Typing GIF", "rating": "g", "is_sticker": 0}],
    "pagination": {"total_count": 1540, "count": 1, "offset": 0},
    "meta": {"status": 200, "msg": "OK", "response_id": "r-1"},
}


class FakeUpstream:
    """Stands in for Giphy: records every outbound request and answers with a canned response, or raises."""

    def __init__(self):
        self.requests = []
        self.responses = []
        self.status_code = 200
        self.headers = [("Content-Type", "application/json")]
        self.body = json.dumps(SEARCH_BODY).encode()
        self.error = None

    def __call__(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        response = httpx.Response(self.status_code, headers=self.headers, content=self.body)
        self.responses.append(response)
        return response

    @property
    def last(self):
        return self.requests[-1]


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def config():
    return GatewayConfig(default_api_key="ABC")


@pytest.fixture
def make_client(upstream):
    """Factory for TestClients over the gateway app, with the fake upstream as transport."""
    opened = []

    def _make(config, search_sink=None):
        client = TestClient(create_app(config, transport=httpx.MockTransport(upstream), search_sink=search_sink))
        client.__enter__()
        opened.append(client)
        return client

    yield _make
    for client in opened:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client, config):
    return make_client(config)


@pytest.fixture
def search_body():
    return SEARCH_BODY
