from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from d1dump.client import D1Client
from d1dump.config import AppConfig

ACCOUNT_ID = "acc-123"
DATABASE_ID = "0b1c2d3e-uuid"
API_BASE_URL = "https://api.test/client/v4"

class ScriptedServer:
    """MockTransport handler that replays canned responses in order."""

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        reply = self.responses.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json=reply)

    @property
    def bodies(self) -> List[Dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]

class FakeTransport:
    """In-process stand-in for the export endpoint, returning bare results."""

    def __init__(self, results: List[Dict[str, Any]]):
        self.results = list(results)
        self.calls: List[Dict[str, Any]] = []

    def request_export(self, database_id: str, body: Dict[str, Any]) -> Any:
        self.calls.append({"database_id": database_id, "body": dict(body)})
        if not self.results:
            raise AssertionError("Export endpoint polled after a terminal status")
        return self.results.pop(0)["result"]

@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig.model_validate(
        {
            "server": {"account_id": ACCOUNT_ID, "api_token": "secret-token"},
            "databases": [
                {"binding": "DB", "database_name": "prod", "database_id": DATABASE_ID},
            ],
        }
    )

@pytest.fixture
def make_client(app_config):
    opened: List[httpx.Client] = []

    def factory(
        handler: Callable[[httpx.Request], httpx.Response],
        download_handler: Optional[Callable[[httpx.Request], httpx.Response]] = None,
        config: Optional[AppConfig] = None,
    ) -> D1Client:
        api = httpx.Client(base_url=API_BASE_URL, transport=httpx.MockTransport(handler))
        opened.append(api)
        download = None
        if download_handler is not None:
            download = httpx.Client(transport=httpx.MockTransport(download_handler))
            opened.append(download)
        return D1Client(config or app_config, client=api, download_client=download)

    yield factory
    for http in opened:
        http.close()
