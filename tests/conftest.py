"""Shared fixtures: an ILEusion service wired to an in-process fake server."""

import json

import httpx
import pytest

from ileusion import IleusionService, ServiceConfig

SERVICE_URL = "https://ibmi.example.com:8080"


class FakeServer:
    """Records incoming requests and answers with queued replies."""

    def __init__(self):
        self.requests = []
        self.replies = []

    def reply(self, body="", status=200):
        """Queue a reply. ``body`` may be text, a JSON-able object or an exception."""
        self.replies.append((status, body))
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.replies:
            return httpx.Response(200, text="")
        status, body = self.replies.pop(0)
        if isinstance(body, Exception):
            raise body
        if not isinstance(body, str):
            body = json.dumps(body)
        return httpx.Response(status, text=body)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    @property
    def last_body(self):
        return json.loads(self.last_request.content.decode("utf-8"))


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def config():
    return ServiceConfig(service_url=SERVICE_URL, user="QUSER", password="secret")


@pytest.fixture
def service(server, config):
    svc = IleusionService(config, transport=httpx.MockTransport(server.handler))
    yield svc
    svc.close()


CUSTOMERS = [
    {"CUSNUM": 938472, "LSTNAM": "Henning", "CITY": "Dallas", "BALDUE": 37.0, "CDTDUE": None},
    {"CUSNUM": 839283, "LSTNAM": "Jones", "CITY": "Clay", "BALDUE": 100.5, "CDTDUE": 0.0},
    {"CUSNUM": 392859, "LSTNAM": "Vine", "CITY": "Broton", "BALDUE": 439.0, "CDTDUE": 0.0},
]


@pytest.fixture
def customers():
    return [dict(row) for row in CUSTOMERS]
