from __future__ import annotations

import httpx
import pytest

from bunda.core.http import USER_AGENT, get_json


def _respond(status_code, payload, calls):
    def fake_get(url, *, params=None, headers=None, timeout=None):
        calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        return httpx.Response(status_code, json=payload, request=httpx.Request("GET", url))

    return fake_get


def test_get_json_decodes_body_and_sends_user_agent(monkeypatch):
    calls = []
    monkeypatch.setattr("bunda.core.http.httpx.get", _respond(200, {"features": []}, calls))

    body = get_json("https://geo.example/places/x.json", params={"country": "be"}, timeout_seconds=3)

    assert body == {"features": []}
    assert calls == [
        {
            "url": "https://geo.example/places/x.json",
            "params": {"country": "be"},
            "headers": {"User-Agent": USER_AGENT},
            "timeout": 3,
        }
    ]


def test_get_json_raises_on_error_status(monkeypatch):
    monkeypatch.setattr("bunda.core.http.httpx.get", _respond(401, {"message": "Not Authorized"}, []))
    with pytest.raises(httpx.HTTPStatusError):
        get_json("https://geo.example/places/x.json", params={"access_token": "secret"})
