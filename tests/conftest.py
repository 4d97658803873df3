from __future__ import annotations

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import news
import services
from realtime import hub

ADMIN_PHONE = "+917029786817"
ADMIN_KEY = "control-room-key"


@pytest.fixture()
def mongo(monkeypatch):
    db = mongomock.MongoClient().db
    monkeypatch.setattr(database, "db", db)
    return db


@pytest.fixture(autouse=True)
def _reset_state(monkeypatch):
    monkeypatch.setenv("ADMIN_PHONES", ADMIN_PHONE)
    monkeypatch.setenv("ADMIN_ACCESS_KEY", ADMIN_KEY)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("TWILIO_ACCOUNT_SID", raising=False)
    news.clear_cache()
    services.clear_caches()
    hub.channels.clear()
    yield
    hub.channels.clear()


@pytest.fixture()
def client(mongo):
    from main import app

    return TestClient(app)


def _signup(client: TestClient, name: str, phone: str, **extra) -> dict:
    resp = client.post("/api/signup", json=dict(extra, name=name, phone=phone))
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest.fixture()
def admin_headers(client):
    return _signup(client, "Control Room", ADMIN_PHONE, access_key=ADMIN_KEY)


@pytest.fixture()
def user_headers(client):
    return _signup(client, "Riya Sen", "9830012345")
