from unittest.mock import MagicMock

import pytest
import requests

from protector.errors import StoreError, UpstreamError
from protector.store import RecordStore

from conftest import FakeResponse


@pytest.fixture
def session():
    s = MagicMock()
    s.headers = {}
    return s


def test_auth_headers(session):
    RecordStore("https://db.example/", "service-key", session=session)
    assert session.headers == {"apikey": "service-key", "Authorization": "Bearer service-key"}


def test_fetch_sealed(session):
    session.get.return_value = FakeResponse(200, [{"webhook_enc": "blob"}])
    store = RecordStore("https://db.example", "k", timeout=3, session=session)
    assert store.fetch_sealed("wh_1") == "blob"
    session.get.assert_called_once_with(
        "https://db.example/rest/v1/webhooks",
        params={"id": "eq.wh_1", "select": "webhook_enc"},
        timeout=3,
    )


@pytest.mark.parametrize("response", [
    FakeResponse(200, []),
    FakeResponse(200, {"not": "a list"}),
    FakeResponse(401, {"message": "bad key"}),
    FakeResponse(200, None, text="<html>"),
])
def test_fetch_unknown(session, response):
    session.get.return_value = response
    assert RecordStore("https://db.example", "k", session=session).fetch_sealed("wh_1") is None


def test_fetch_transport_error(session):
    session.get.side_effect = requests.ConnectionError("down")
    with pytest.raises(UpstreamError):
        RecordStore("https://db.example", "k", session=session).fetch_sealed("wh_1")


def test_insert(session):
    session.post.return_value = FakeResponse(201, [{"id": "wh_1"}])
    RecordStore("https://db.example", "k", session=session).insert("wh_1", 42, "blob")
    _, kwargs = session.post.call_args
    assert kwargs["json"] == {"id": "wh_1", "owner_discord_id": "42", "webhook_enc": "blob"}
    assert kwargs["headers"] == {"Prefer": "return=representation"}


def test_insert_error_carries_status(session):
    session.post.return_value = FakeResponse(409, {"message": "duplicate"})
    with pytest.raises(StoreError) as exc:
        RecordStore("https://db.example", "k", session=session).insert("wh_1", "42", "blob")
    assert exc.value.to_dict() == {"error": "Record store error", "status": 409}
