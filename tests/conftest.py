"""
Pytest configuration for protector tests
"""
import json

import pytest

from protector.config import Settings
from protector.server import create_app

WEBHOOK_URL = "https://discord.com/api/webhooks/123456789/abcDEF-token_1"


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else (json.dumps(body) if body is not None else "")

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeHttp:
    """Stands in for requests.Session against Discord."""

    def __init__(self, response=None):
        self.response = response or FakeResponse(200, {"id": "999"})
        self.calls = []
        self.headers = {}

    def _call(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    def post(self, url, **kwargs):
        return self._call("POST", url, **kwargs)

    def patch(self, url, **kwargs):
        return self._call("PATCH", url, **kwargs)


class FakeStore:
    def __init__(self):
        self.rows = {}

    def fetch_sealed(self, identifier):
        row = self.rows.get(identifier)
        return row["webhook_enc"] if row else None

    def insert(self, identifier, owner_id, sealed):
        self.rows[identifier] = {"owner_discord_id": owner_id, "webhook_enc": sealed}


class Clock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def settings():
    return Settings(
        encryption_key="test-encryption-key",
        status_shared_secret="shared-secret",
        heartbeat_timeout=15,
        sweep_interval=5,
        sweep_enabled=False,
    )


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def app(settings, store, http, clock):
    return create_app(settings, store=store, http=http, clock=clock)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def protector(app):
    return app.extensions["protector"]


@pytest.fixture
def vault_id(protector):
    """A registered webhook id pointing at WEBHOOK_URL"""
    return protector.relay.register("42", WEBHOOK_URL)
