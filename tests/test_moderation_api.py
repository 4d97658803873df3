from __future__ import annotations

import pytest

import moderation
from tests.conftest import ADMIN_KEY, ADMIN_PHONE

SHELTER = {
    "name": "Salt Lake Stadium",
    "address": "JB Block, Sector III, Salt Lake",
    "coords": {"lat": 22.5691, "lng": 88.4091},
    "capacity": 5000,
    "current": 450,
    "amenities": ["WiFi", "food", "wifi", "medical"],
    "phone": "+913323350000",
}

PERSON = {
    "name": "Anirban Chatterjee",
    "age": 34,
    "gender": "Male",
    "last_location": "Sealdah Station, Platform 9",
    "district": "Kolkata",
    "description": "5'8\", white kurta",
    "contact": "03322145566",
}

RESOURCE = {
    "type": "request",
    "category": "Medical",
    "title": "Insulin Needed Urgently",
    "description": "Supply running out in 24 hours.",
    "location": "North District",
    "contact": "7029786817",
    "urgent": True,
}


def _submit(client, path, payload):
    resp = client.post(path, json=payload)
    assert resp.status_code == 201, resp.text
    assert resp.json()["status_approval"] == "pending"
    return resp.json()["id"]


@pytest.mark.parametrize(
    "path,payload,collection",
    [
        ("/api/shelters", SHELTER, "shelters"),
        ("/api/missing-persons", PERSON, "missing_persons"),
        ("/api/resources", RESOURCE, "resources"),
    ],
)
def test_pending_records_stay_hidden_until_approved(client, admin_headers, path, payload, collection):
    record_id = _submit(client, path, dict(payload, status_approval="approved"))

    assert client.get(path).json() == []
    assert client.get(f"/api/admin/{collection}", headers=admin_headers).json()[0]["id"] == record_id

    approve = client.post(f"/api/admin/{collection}/{record_id}/approve", headers=admin_headers)
    assert approve.status_code == 200
    listed = client.get(path).json()
    assert [r["id"] for r in listed] == [record_id]

    delete = client.delete(f"/api/admin/{collection}/{record_id}", headers=admin_headers)
    assert delete.status_code == 200
    assert client.get(path).json() == []


def test_admin_routes_reject_regular_users(client, user_headers):
    record_id = _submit(client, "/api/shelters", SHELTER)
    assert client.post(f"/api/admin/shelters/{record_id}/approve").status_code == 401
    assert client.post(f"/api/admin/shelters/{record_id}/approve", headers=user_headers).status_code == 403
    assert client.delete(f"/api/admin/shelters/{record_id}", headers=user_headers).status_code == 403
    assert client.get("/api/admin/summary", headers=user_headers).status_code == 403


def test_unknown_collection_and_bad_ids(client, admin_headers):
    assert client.get("/api/admin/users", headers=admin_headers).status_code == 404
    assert client.post("/api/admin/shelters/not-an-id/approve", headers=admin_headers).status_code == 404
    assert client.delete("/api/admin/shelters/64b7f0c2a1b2c3d4e5f60718", headers=admin_headers).status_code == 404


def test_pending_summary_and_search(client, admin_headers):
    _submit(client, "/api/missing-persons", PERSON)
    _submit(client, "/api/missing-persons", dict(PERSON, name="Sumitra Devi", district="Darjeeling"))
    _submit(client, "/api/resources", RESOURCE)

    summary = client.get("/api/admin/summary", headers=admin_headers).json()
    assert summary["pending"] == {"shelters": 0, "missing_persons": 2, "resources": 1}

    found = client.get("/api/admin/missing_persons", params={"q": "darjee"}, headers=admin_headers).json()
    assert [p["name"] for p in found] == ["Sumitra Devi"]


def test_pending_shelter_detail_hidden_from_public(client, admin_headers):
    record_id = _submit(client, "/api/shelters", SHELTER)
    assert client.get(f"/api/shelters/{record_id}").status_code == 404
    assert client.get(f"/api/shelters/{record_id}", headers=admin_headers).status_code == 200


def test_only_phone_on_allow_list_gets_admin_claim(client):
    resp = client.post("/api/signup", json={"name": "Admin", "phone": "7029786817", "access_key": ADMIN_KEY})
    assert resp.json()["is_admin"] is True
    resp = client.post("/api/signup", json={"name": "Someone", "phone": "9000000001"})
    assert resp.json()["is_admin"] is False


def test_country_code_lookalike_is_not_admin(client):
    resp = client.post("/api/signup", json={"name": "Lookalike", "phone": "+17029786817", "access_key": ADMIN_KEY})
    assert resp.status_code == 200
    assert resp.json()["is_admin"] is False
    assert moderation.roles_for_phone("17029786817") == []
    assert moderation.roles_for_phone("+917029786817") == [moderation.ADMIN_ROLE]


def test_admin_number_needs_access_key(client):
    assert client.post("/api/signup", json={"name": "Squatter", "phone": ADMIN_PHONE}).status_code == 403
    assert client.post("/api/signup", json={"name": "Squatter", "phone": ADMIN_PHONE,
                                            "access_key": "guess"}).status_code == 403
    assert client.post("/api/login", json={"phone": ADMIN_PHONE}).status_code == 404


def test_phone_alone_cannot_open_admin_session(client, admin_headers):
    resp = client.post("/api/login", json={"phone": ADMIN_PHONE})
    assert resp.status_code == 401
    assert "token" not in resp.json()
    assert client.post("/api/login", json={"phone": ADMIN_PHONE, "access_key": "guess"}).status_code == 401

    resp = client.post("/api/login", json={"phone": ADMIN_PHONE, "access_key": ADMIN_KEY})
    assert resp.status_code == 200
    assert resp.json()["is_admin"] is True


def test_admin_claim_needs_configured_key(client, monkeypatch):
    monkeypatch.delenv("ADMIN_ACCESS_KEY")
    resp = client.post("/api/signup", json={"name": "Admin", "phone": ADMIN_PHONE, "access_key": ADMIN_KEY})
    assert resp.status_code == 403
