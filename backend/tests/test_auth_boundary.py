# backend/tests/test_auth_boundary.py
from __future__ import annotations

import pytest

from flipops.config import Settings, settings
from flipops.models import User


def test_dev_mode_accepts_forwarded_user(client, make_deal):
    make_deal("a1")
    r = client.get("/api/deals/a1/gates", headers={"X-User-Id": "user_123"})
    assert r.status_code == 200


def test_api_key_mode(client, make_deal, monkeypatch):
    make_deal("a2")
    monkeypatch.setattr(settings, "auth_mode", "api_key")
    monkeypatch.setattr(settings, "flipops_api_key", "s3cret")

    assert client.get("/api/deals/a2/gates").status_code == 401
    assert client.get("/api/deals/a2/gates", headers={"X-API-Key": "wrong"}).status_code == 401
    assert client.get("/api/deals/a2/gates", headers={"X-API-Key": "s3cret"}).status_code == 200


def test_prod_refuses_dev_auth():
    with pytest.raises(ValueError):
        Settings(app_env="prod", auth_mode="dev", flipops_api_key="k", cors_allow_origins=["https://app.example"])


def test_prod_refuses_wildcard_cors():
    with pytest.raises(ValueError):
        Settings(app_env="prod", auth_mode="api_key", flipops_api_key="k", cors_allow_origins=["*"])


def test_auth_failures_use_error_shape(client, monkeypatch):
    monkeypatch.setattr(settings, "auth_mode", "api_key")
    monkeypatch.setattr(settings, "flipops_api_key", "s3cret")

    r = client.get("/api/deals/active")
    assert r.status_code == 401
    assert r.json() == {"error": "Not authenticated"}


def test_forwarded_user_pins_the_tenant(client, db_session, make_deal):
    db_session.add_all([User(id="u1"), User(id="u2")])
    db_session.commit()
    make_deal("mine", user_id="u1")
    make_deal("theirs", user_id="u2")

    r = client.get("/api/deals/active", params={"userId": "u2"}, headers={"X-User-Id": "u1"})
    assert {d["id"] for d in r.json()["deals"]} == {"mine"}

    assert client.get("/api/deals/theirs/gates", headers={"X-User-Id": "u1"}).status_code == 404
    assert client.get("/api/panels/truth", params={"dealId": "theirs"}, headers={"X-User-Id": "u1"}).status_code == 404
    assert client.get("/api/panels/truth", params={"dealId": "mine"}, headers={"X-User-Id": "u1"}).status_code == 200


def test_service_key_may_narrow_by_user(client, db_session, make_deal, monkeypatch):
    monkeypatch.setattr(settings, "auth_mode", "api_key")
    monkeypatch.setattr(settings, "flipops_api_key", "s3cret")
    db_session.add_all([User(id="u1"), User(id="u2")])
    db_session.commit()
    make_deal("k1", user_id="u1")
    make_deal("k2", user_id="u2")

    headers = {"X-API-Key": "s3cret"}
    everyone = client.get("/api/deals/active", headers=headers).json()
    assert {d["id"] for d in everyone["deals"]} == {"k1", "k2"}

    narrowed = client.get("/api/deals/active", params={"userId": "u2"}, headers=headers).json()
    assert {d["id"] for d in narrowed["deals"]} == {"k2"}
