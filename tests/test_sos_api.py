from __future__ import annotations


def test_sos_broadcast_requires_sign_in(client):
    assert client.post("/api/sos", json={"type": "flood"}).status_code == 401


def test_sos_broadcast_notifies_contacts(client, user_headers, admin_headers):
    client.post("/api/profile/contacts", json={"name": "Mom", "phone": "9830011111"}, headers=user_headers)

    resp = client.post("/api/sos", json={"type": "flood", "details": "Water entering ground floor",
                                         "lat": 22.57, "lng": 88.35}, headers=user_headers)
    assert resp.status_code == 201
    body = resp.json()
    assert body["sent"] == [{"to": "9830011111", "sid": "simulated"}]
    assert "Riya Sen needs help" in body["message"]

    active = client.get("/api/sos", headers=admin_headers).json()
    assert len(active) == 1
    assert active[0]["type"] == "flood"
    assert active[0]["location"] == {"lat": 22.57, "lng": 88.35}
    assert active[0]["status"] == "ACTIVE"

    resolved = client.post(f"/api/sos/{body['id']}/resolve", headers=admin_headers)
    assert resolved.json()["status"] == "RESOLVED"
    assert client.get("/api/sos", headers=admin_headers).json() == []
    assert len(client.get("/api/sos", params={"status": "RESOLVED"}, headers=admin_headers).json()) == 1


def test_sos_validation_and_admin_views(client, user_headers):
    assert client.post("/api/sos", json={"type": "alien"}, headers=user_headers).status_code == 422
    assert client.get("/api/sos", headers=user_headers).status_code == 403


def test_health_routes(client):
    assert client.get("/").json() == {"message": "ReliefNet backend is running"}
    assert client.get("/test").json()["database"] == "✅ Connected"
