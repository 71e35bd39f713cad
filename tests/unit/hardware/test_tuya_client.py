"""
Tuya cloud client tests with a mocked requests.Session.

The first call to ``session.request`` is always the token request; later
calls are the business requests under test.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from unittest.mock import MagicMock

import pytest
import requests

from app.domain.exceptions import AuthFailure, CommandRejected, DeviceUnreachable
from app.hardware.tuya.client import TOKEN_PATH, TuyaCloudClient, sign_request

BASE_URL = "https://openapi.example.test"


def _response(payload=None, status_code: int = 200, text: str = ""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text or json.dumps(payload)
    if payload is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = payload
    return response


def _token(value: str = "tok-1", expire: int = 7200):
    return _response({"success": True, "result": {"access_token": value, "expire_time": expire}})


OK = {"success": True, "result": True}


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def session():
    return MagicMock()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def client(session, clock):
    return TuyaCloudClient(BASE_URL, "access-id", "secret", timeout=3, session=session, clock=clock)


def test_sign_request_matches_reference_construction():
    body = '{"commands":[{"code":"switch_1","value":true}]}'
    string_to_sign = "POST\n" + hashlib.sha256(body.encode()).hexdigest() + "\n\n/v1.0/devices/x/commands"
    expected = (
        hmac.new(b"secret", ("id" + "tok" + "1700000000000" + string_to_sign).encode(), hashlib.sha256)
        .hexdigest()
        .upper()
    )
    assert sign_request("id", "secret", "1700000000000", "post", "/v1.0/devices/x/commands", body, "tok") == expected


class TestTokenHandling:
    def test_token_request_is_signed_without_token(self, client, session):
        session.request.side_effect = [_token(), _response(OK)]
        client.get("/v1.0/devices/x")

        method, url = session.request.call_args_list[0].args
        headers = session.request.call_args_list[0].kwargs["headers"]
        assert (method, url) == ("GET", BASE_URL + TOKEN_PATH)
        assert "access_token" not in headers
        assert headers["sign"] == sign_request("access-id", "secret", headers["t"], "GET", TOKEN_PATH)

    def test_business_request_carries_token(self, client, session):
        session.request.side_effect = [_token("abc"), _response(OK)]
        client.post("/v1.0/devices/x/commands", {"commands": []})

        call = session.request.call_args_list[1]
        assert call.kwargs["headers"]["access_token"] == "abc"
        assert call.kwargs["data"] == '{"commands":[]}'
        assert call.kwargs["timeout"] == 3

    def test_token_is_cached(self, client, session):
        session.request.side_effect = [_token(), _response(OK), _response(OK)]
        client.get("/a")
        client.get("/b")
        assert session.request.call_count == 3

    def test_token_refreshed_before_expiry(self, client, session, clock):
        session.request.side_effect = [_token("one", expire=120), _response(OK), _token("two"), _response(OK)]
        client.get("/a")
        clock.now += 61
        client.get("/b")
        assert session.request.call_args_list[3].kwargs["headers"]["access_token"] == "two"

    @pytest.mark.parametrize("code", [1010, 1011])
    def test_stale_token_is_refreshed_once(self, client, session, code):
        session.request.side_effect = [
            _token("old"),
            _response({"success": False, "code": code, "msg": "token invalid"}),
            _token("new"),
            _response(OK),
        ]
        assert client.get("/a") == OK
        assert session.request.call_args_list[3].kwargs["headers"]["access_token"] == "new"

    def test_stale_token_twice_is_rejected(self, client, session):
        stale = {"success": False, "code": 1010, "msg": "token invalid"}
        session.request.side_effect = [_token(), _response(stale), _token(), _response(stale)]
        with pytest.raises(CommandRejected):
            client.get("/a")
        assert session.request.call_count == 4

    def test_missing_credentials(self, session):
        client = TuyaCloudClient(BASE_URL, "", "", session=session)
        with pytest.raises(AuthFailure):
            client.get("/a")
        session.request.assert_not_called()

    def test_token_refused(self, client, session):
        session.request.side_effect = [_response({"success": False, "code": 1004, "msg": "sign invalid"})]
        with pytest.raises(AuthFailure) as excinfo:
            client.get("/a")
        assert excinfo.value.detail["code"] == 1004


class TestFailures:
    def test_network_error(self, client, session):
        session.request.side_effect = requests.ConnectionError("boom")
        with pytest.raises(DeviceUnreachable):
            client.get("/a")

    def test_server_error(self, client, session):
        session.request.side_effect = [_token(), _response(OK, status_code=503)]
        with pytest.raises(DeviceUnreachable):
            client.get("/a")

    def test_client_error(self, client, session):
        session.request.side_effect = [_token(), _response(OK, status_code=404)]
        with pytest.raises(CommandRejected):
            client.get("/a")

    def test_non_json_body(self, client, session):
        session.request.side_effect = [_token(), _response(None, text="<html>")]
        with pytest.raises(DeviceUnreachable):
            client.get("/a")

    @pytest.mark.parametrize("payload", [[], "ok", 1])
    def test_body_that_is_not_an_object(self, client, session, payload):
        session.request.side_effect = [_token(), _response(payload)]
        with pytest.raises(DeviceUnreachable) as excinfo:
            client.get("/v1.0/devices/x")
        assert "unexpected" in excinfo.value.message

    def test_null_body(self, client, session):
        response = _response(OK, text="null")
        response.json.return_value = None
        session.request.side_effect = [_token(), response]
        with pytest.raises(DeviceUnreachable):
            client.get("/v1.0/devices/x")

    def test_vendor_rejection(self, client, session):
        session.request.side_effect = [_token(), _response({"success": False, "code": 2008, "msg": "not supported"})]
        with pytest.raises(CommandRejected) as excinfo:
            client.post("/a", {"x": 1})
        assert excinfo.value.detail == {"code": 2008, "msg": "not supported"}
