"""
Shared fixtures for the networks test suite.

HTTP never leaves the process: each adapter gets a real ``requests.Session``
with ``StubTransport`` mounted, so auth injectors and response hooks run
exactly as in production while responses come from a queue.
"""

import json

import pytest
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from networks.services.adapters import ADAPTERS
from networks.services.factory import AdapterFactory
from networks.services.webhooks import WebhookDispatcher
from networks.types import NetworkConfig, NetworkSettings, NetworkType

CREDENTIALS = {
    NetworkType.SHAREASALE: {"affiliateId": "1234", "token": "tok", "secretKey": "shh"},
    NetworkType.CJ: {"developerId": "dev-1", "websiteId": "web-9", "personalAccessToken": "pat"},
    NetworkType.IMPACT: {"accountSid": "IRsid", "authToken": "auth", "partnerId": "p-77"},
    NetworkType.RAKUTEN: {"publisherId": "pub-5", "apiKey": "rk"},
}


def build_response(status=200, json_body=None, content=None, headers=None, url=""):
    response = requests.Response()
    response.status_code = status
    response.headers = CaseInsensitiveDict(headers or {})
    if json_body is not None:
        response._content = json.dumps(json_body).encode()
        response.headers.setdefault("Content-Type", "application/json")
    elif isinstance(content, str):
        response._content = content.encode()
    else:
        response._content = content or b""
    response.encoding = "utf-8"
    response.url = url
    return response


class StubTransport(BaseAdapter):
    """Transport adapter that replays queued responses and records requests."""

    def __init__(self):
        super().__init__()
        self.queue = []
        self.requests = []

    def add(self, status=200, json_body=None, content=None, headers=None):
        self.queue.append(dict(status=status, json_body=json_body, content=content, headers=headers))
        return self

    def fail(self, exc):
        self.queue.append(exc)
        return self

    def send(self, request, **kwargs):
        self.requests.append(request)
        if not self.queue:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        item = self.queue.pop(0)
        if isinstance(item, Exception):
            raise item
        response = build_response(url=request.url, **item)
        response.request = request
        return response

    def close(self):
        pass

    @property
    def last(self):
        return self.requests[-1]


class FakeClock:
    """Monotonic clock advanced only by ``sleep``."""

    def __init__(self, start=1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds):
        self.now += seconds


def make_config(network_type, tenant_id="tenant-a", credentials=None, **settings):
    network_type = NetworkType(network_type)
    return NetworkConfig(
        tenant_id=tenant_id,
        network_type=network_type,
        credentials=dict(CREDENTIALS[network_type] if credentials is None else credentials),
        settings=NetworkSettings(**settings),
    )


@pytest.fixture
def config_for():
    return make_config


@pytest.fixture
def transport():
    return StubTransport()


@pytest.fixture
def session(transport):
    s = requests.Session()
    s.mount("https://", transport)
    s.mount("http://", transport)
    return s


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def adapter_kwargs(session, clock):
    return {"session": session, "sleep": clock.sleep, "clock": clock}


@pytest.fixture
def make_adapter(adapter_kwargs):
    def _make(network_type, config=None, **settings):
        config = config or make_config(network_type, **settings)
        return ADAPTERS[NetworkType(network_type)](config, **adapter_kwargs)
    return _make


@pytest.fixture
def factory(adapter_kwargs):
    return AdapterFactory(**adapter_kwargs)


@pytest.fixture
def dispatcher(factory):
    return WebhookDispatcher(factory=factory)


@pytest.fixture
def received():
    """Collect every signal sent during the test."""
    from networks import signals

    events = []
    names = [
        "products_synced", "conversion_received", "conversion_updated", "conversion_cancelled",
        "product_updated", "commissions_synced", "sync_started", "sync_completed", "sync_failed",
        "network_config_added", "network_config_removed", "network_config_error",
    ]
    receivers = []
    for name in names:
        def receiver(sender, _name=name, **kwargs):
            kwargs.pop("signal", None)
            events.append((_name, sender, kwargs))
        getattr(signals, name).connect(receiver, weak=False)
        receivers.append((name, receiver))

    yield events

    for name, receiver in receivers:
        getattr(signals, name).disconnect(receiver)
