import logging
import os
import secrets
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import (BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, WebSocket,
                     WebSocketDisconnect)
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, EmailStr, Field, ValidationError
from starlette.concurrency import run_in_threadpool

import database
import moderation
import news
import services
from database import (collection, create_document, get_document, get_documents, serialize,
                      to_object_id, update_document)
from first_aid import get_guide, search_guides
from moderation import MISSING_PERSONS, RESOURCES, SHELTERS
from proximity import (DEFAULT_RADIUS_KM, MAX_RADIUS_KM, NearbyShelters, aggregate_nearby, clamp_radius,
                       map_markers)
from realtime import Subscriber, hub, jsonable, load_snapshot
from schemas import (CONTACT_PHONE_PATTERN, MAX_PHOTO_CHARS, PHONE_PATTERN, EmergencyContact,
                     EmergencyType, FeedResult, MissingPerson, PersonStatus, Resource, SafetyStatus, Shelter,
                     SOSBroadcast, User)

logger = logging.getLogger(__name__)

app = FastAPI(title="ReliefNet API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

SOS_ALERTS = "alerts"

# -------------------- Auth --------------------


def _token_from_header(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def user_for_token(token: Optional[str]) -> Optional[dict]:
    if not token:
        return None
    session = collection("session").find_one({"token": token})
    if not session:
        return None
    return serialize(collection("users").find_one({"_id": to_object_id(session["user_id"])}))


def optional_user(authorization: Optional[str] = Header(None)) -> Optional[dict]:
    return user_for_token(_token_from_header(authorization))


def current_user(user: Optional[dict] = Depends(optional_user)) -> dict:
    if not user:
        raise HTTPException(status_code=401, detail="Sign in required")
    return user


def require_admin(user: dict = Depends(current_user)) -> dict:
    if not moderation.is_admin(user):
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


class LoginRequest(BaseModel):
    phone: str
    email: Optional[EmailStr] = None
    access_key: Optional[str] = None


class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., pattern=PHONE_PATTERN)
    email: Optional[EmailStr] = None
    photo: Optional[str] = Field(None, max_length=MAX_PHOTO_CHARS)
    access_key: Optional[str] = None


class SessionResponse(BaseModel):
    token: str
    user_id: str
    is_admin: bool = False


def _start_session(user_id: str) -> str:
    token = secrets.token_hex(16)
    create_document("session", {"user_id": user_id, "token": token})
    return token


@app.post("/api/signup", response_model=SessionResponse)
def signup(payload: SignupRequest):
    clauses: List[Dict] = [{"phone": payload.phone}]
    if payload.email:
        clauses.append({"email": payload.email})
    if collection("users").find_one({"$or": clauses}):
        raise HTTPException(status_code=400, detail="User with this email or phone already exists")
    roles = moderation.roles_for_phone(payload.phone)
    if roles and not moderation.admin_key_matches(payload.access_key):
        raise HTTPException(status_code=403, detail="Admin access key required for this number")
    user = User(**payload.model_dump(exclude={"access_key"}), roles=roles)
    user_id = create_document("users", user)
    return {"token": _start_session(user_id), "user_id": user_id, "is_admin": moderation.is_admin(user.model_dump())}


@app.post("/api/login", response_model=SessionResponse)
def login(payload: LoginRequest):
    user = collection("users").find_one({"phone": payload.phone})
    if not user:
        raise HTTPException(status_code=404, detail="Account not found. Please create an account.")
    if (user.get("email") or payload.email) and payload.email != user.get("email"):
        raise HTTPException(status_code=401, detail="Phone and email do not match")
    if moderation.is_admin(user) and not moderation.admin_key_matches(payload.access_key):
        raise HTTPException(status_code=401, detail="Admin access key required")
    user_id = str(user["_id"])
    return {"token": _start_session(user_id), "user_id": user_id, "is_admin": moderation.is_admin(user)}


@app.post("/api/logout")
def logout(authorization: Optional[str] = Header(None)):
    token = _token_from_header(authorization)
    if token:
        collection("session").delete_one({"token": token})
    return {"ok": True}

# -------------------- Profile --------------------


class UpdateProfile(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    photo: Optional[str] = Field(None, max_length=MAX_PHOTO_CHARS)


class ContactRequest(BaseModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., pattern=CONTACT_PHONE_PATTERN)
    relation: str = ""


class StatusRequest(BaseModel):
    status: SafetyStatus


@app.get("/api/profile")
def get_profile(user: dict = Depends(current_user)):
    return user


@app.put("/api/profile")
def update_profile(payload: UpdateProfile, user: dict = Depends(current_user)):
    data = {k: v for k, v in payload.model_dump().items() if v is not None}
    if data:
        update_document("users", user["id"], data)
    return {"updated": True}


@app.delete("/api/profile")
def delete_account(user: dict = Depends(current_user)):
    collection("users").delete_one({"_id": to_object_id(user["id"])})
    collection("session").delete_many({"user_id": user["id"]})
    return {"deleted": True}


@app.post("/api/profile/contacts", status_code=201)
def add_contact(payload: ContactRequest, user: dict = Depends(current_user)):
    contact = EmergencyContact(id=uuid.uuid4().hex, **payload.model_dump())
    contacts = list(user.get("contacts") or []) + [contact.model_dump()]
    update_document("users", user["id"], {"contacts": contacts})
    return contact


@app.put("/api/profile/contacts/{contact_id}")
def update_contact(contact_id: str, payload: ContactRequest, user: dict = Depends(current_user)):
    contacts = list(user.get("contacts") or [])
    for i, c in enumerate(contacts):
        if c.get("id") == contact_id:
            contacts[i] = EmergencyContact(id=contact_id, **payload.model_dump()).model_dump()
            update_document("users", user["id"], {"contacts": contacts})
            return contacts[i]
    raise HTTPException(status_code=404, detail="Contact not found")


@app.delete("/api/profile/contacts/{contact_id}")
def remove_contact(contact_id: str, user: dict = Depends(current_user)):
    contacts = list(user.get("contacts") or [])
    remaining = [c for c in contacts if c.get("id") != contact_id]
    if len(remaining) == len(contacts):
        raise HTTPException(status_code=404, detail="Contact not found")
    update_document("users", user["id"], {"contacts": remaining})
    return {"deleted": True}


@app.post("/api/profile/status")
def set_safety_status(payload: StatusRequest, user: dict = Depends(current_user)):
    changed_at = datetime.now(timezone.utc)
    update_document("users", user["id"], {"current_status": payload.status, "last_status_change": changed_at})
    return {"current_status": payload.status, "last_status_change": changed_at}

# -------------------- Shelters --------------------


class OccupancyUpdate(BaseModel):
    current: int = Field(..., ge=0)
    capacity: Optional[int] = Field(None, gt=0)


@app.post("/api/shelters", status_code=201)
def submit_shelter(payload: Shelter, background_tasks: BackgroundTasks):
    shelter_id = moderation.submit(SHELTERS, payload)
    background_tasks.add_task(hub.publish, SHELTERS)
    return {"id": shelter_id, "status_approval": "pending"}


@app.get("/api/shelters")
def list_shelters(q: Optional[str] = None):
    return moderation.list_public(SHELTERS, q)


@app.get("/api/shelters/nearby")
def nearby_shelters(lat: Optional[float] = Query(None, ge=-90, le=90),
                    lng: Optional[float] = Query(None, ge=-180, le=180),
                    radius_km: float = Query(DEFAULT_RADIUS_KM, ge=0, le=MAX_RADIUS_KM)):
    origin = (lat, lng) if lat is not None and lng is not None else None
    effective = clamp_radius(radius_km)
    items = aggregate_nearby(moderation.list_public(SHELTERS), origin, effective)
    if not items and origin is not None:
        return {"items": [], "radius_km": effective, "message": "No shelters found within radius"}
    return {"items": items, "radius_km": effective}


@app.get("/api/shelters/map")
def shelter_markers():
    return map_markers(moderation.list_public(SHELTERS))


@app.get("/api/shelters/{shelter_id}")
def get_shelter(shelter_id: str, user: Optional[dict] = Depends(optional_user)):
    if moderation.is_admin(user):
        return get_document(SHELTERS, shelter_id)
    return get_document(SHELTERS, shelter_id, moderation.PUBLIC_FILTER)


@app.put("/api/shelters/{shelter_id}/occupancy")
def update_shelter_occupancy(shelter_id: str, payload: OccupancyUpdate, background_tasks: BackgroundTasks,
                             admin: dict = Depends(require_admin)):
    shelter = moderation.update_occupancy(shelter_id, payload.current, payload.capacity)
    background_tasks.add_task(hub.publish, SHELTERS)
    return shelter

# -------------------- Missing persons --------------------


class PersonStatusUpdate(BaseModel):
    status: PersonStatus


@app.post("/api/missing-persons", status_code=201)
def report_missing_person(payload: MissingPerson, background_tasks: BackgroundTasks):
    person_id = moderation.submit(MISSING_PERSONS, payload)
    background_tasks.add_task(hub.publish, MISSING_PERSONS)
    return {"id": person_id, "status_approval": "pending"}


@app.get("/api/missing-persons")
def list_missing_persons(q: Optional[str] = None, status: Optional[PersonStatus] = None):
    extra = {"status": status} if status else None
    return moderation.list_public(MISSING_PERSONS, q, extra)


@app.get("/api/missing-persons/{person_id}")
def get_missing_person(person_id: str, user: Optional[dict] = Depends(optional_user)):
    if moderation.is_admin(user):
        return get_document(MISSING_PERSONS, person_id)
    return get_document(MISSING_PERSONS, person_id, moderation.PUBLIC_FILTER)


@app.put("/api/missing-persons/{person_id}/status")
def update_missing_person_status(person_id: str, payload: PersonStatusUpdate, background_tasks: BackgroundTasks,
                                 admin: dict = Depends(require_admin)):
    update_document(MISSING_PERSONS, person_id, {"status": payload.status})
    background_tasks.add_task(hub.publish, MISSING_PERSONS)
    return {"id": person_id, "status": payload.status}

# -------------------- Resources --------------------


@app.post("/api/resources", status_code=201)
def post_resource(payload: Resource, background_tasks: BackgroundTasks):
    payload.status = "available" if payload.type == "offer" else "pending"
    resource_id = moderation.submit(RESOURCES, payload)
    background_tasks.add_task(hub.publish, RESOURCES)
    return {"id": resource_id, "status_approval": "pending"}


@app.get("/api/resources")
def list_resources(type: Optional[str] = Query(None, pattern="^(offer|request)$"),
                   category: Optional[str] = None, q: Optional[str] = None):
    extra = {}
    if type:
        extra["type"] = type
    if category and category != "All":
        extra["category"] = category
    return moderation.list_public(RESOURCES, q, extra, fields=("title", "description"))


@app.post("/api/resources/{resource_id}/match")
def match_resource(resource_id: str, background_tasks: BackgroundTasks, admin: dict = Depends(require_admin)):
    update_document(RESOURCES, resource_id, {"status": "matched"})
    background_tasks.add_task(hub.publish, RESOURCES)
    return {"id": resource_id, "status": "matched"}


@app.post("/api/resources/{resource_id}/reset")
def reset_resource(resource_id: str, background_tasks: BackgroundTasks, admin: dict = Depends(require_admin)):
    resource = get_document(RESOURCES, resource_id)
    status = "available" if resource.get("type") == "offer" else "pending"
    update_document(RESOURCES, resource_id, {"status": status})
    background_tasks.add_task(hub.publish, RESOURCES)
    return {"id": resource_id, "status": status}

# -------------------- Admin --------------------


@app.get("/api/admin/summary")
def admin_summary(admin: dict = Depends(require_admin)):
    return {"pending": moderation.pending_counts()}


@app.get("/api/admin/{collection_name}")
def admin_list(collection_name: str, q: Optional[str] = None, admin: dict = Depends(require_admin)):
    return moderation.list_all(collection_name, q)


@app.post("/api/admin/{collection_name}/{doc_id}/approve")
def admin_approve(collection_name: str, doc_id: str, background_tasks: BackgroundTasks,
                  admin: dict = Depends(require_admin)):
    moderation.approve(collection_name, doc_id)
    background_tasks.add_task(hub.publish, collection_name)
    return {"approved": True}


@app.delete("/api/admin/{collection_name}/{doc_id}")
def admin_delete(collection_name: str, doc_id: str, background_tasks: BackgroundTasks,
                 admin: dict = Depends(require_admin)):
    moderation.remove(collection_name, doc_id)
    background_tasks.add_task(hub.publish, collection_name)
    return {"deleted": True}

# -------------------- Alerts feed --------------------


@app.get("/api/alerts", response_model=FeedResult)
def alerts_feed(city: str = ""):
    return news.fetch_alerts(city)

# -------------------- SOS broadcast --------------------


class SOSRequest(BaseModel):
    type: EmergencyType
    details: str = ""
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)


@app.post("/api/sos", status_code=201)
def broadcast_sos(payload: SOSRequest, background_tasks: BackgroundTasks, user: dict = Depends(current_user)):
    message = services.sos_message(user.get("name", "Anonymous User"), user.get("phone", ""), payload.lat,
                                   payload.lng)
    sent = services.notify_contacts(user.get("contacts") or [], message)
    location = None
    if payload.lat is not None and payload.lng is not None:
        location = {"lat": payload.lat, "lng": payload.lng}
    alert = SOSBroadcast(
        type=payload.type,
        details=payload.details,
        location=location,
        user_id=user["id"],
        user_name=user.get("name") or "Anonymous User",
        notified=sent,
    )
    alert_id = create_document(SOS_ALERTS, alert)
    logger.warning("SOS %s broadcast by user %s (%s)", alert_id, user["id"], payload.type)
    background_tasks.add_task(hub.publish, SOS_ALERTS)
    return {"id": alert_id, "ok": True, "sent": sent, "message": message}


@app.get("/api/sos")
def list_sos(status: str = Query("ACTIVE", pattern="^(ACTIVE|RESOLVED)$"), admin: dict = Depends(require_admin)):
    return get_documents(SOS_ALERTS, {"status": status})


@app.post("/api/sos/{alert_id}/resolve")
def resolve_sos(alert_id: str, background_tasks: BackgroundTasks, admin: dict = Depends(require_admin)):
    update_document(SOS_ALERTS, alert_id, {"status": "RESOLVED"})
    background_tasks.add_task(hub.publish, SOS_ALERTS)
    return {"id": alert_id, "status": "RESOLVED"}

# -------------------- Geocoding, air quality, first aid --------------------


class AskRequest(BaseModel):
    prompt: str = Field(..., min_length=1)


@app.get("/api/geocode")
def geocode(address: str = Query(..., min_length=3)):
    try:
        hit = services.geocode(address)
    except services.UpstreamError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if hit is None:
        raise HTTPException(status_code=404, detail="Address not found")
    return hit


@app.get("/api/geocode/reverse")
def reverse_geocode(lat: float = Query(..., ge=-90, le=90), lng: float = Query(..., ge=-180, le=180)):
    try:
        hit = services.reverse_geocode(lat, lng)
    except services.UpstreamError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if hit is None:
        raise HTTPException(status_code=404, detail="No address at this location")
    return hit


@app.get("/api/air-quality")
def air_quality(lat: float = Query(..., ge=-90, le=90), lng: float = Query(..., ge=-180, le=180)):
    return services.air_quality(lat, lng)


@app.get("/api/first-aid")
def first_aid_guides(q: Optional[str] = None):
    return search_guides(q)


@app.get("/api/first-aid/{guide_id}")
def first_aid_guide(guide_id: str):
    guide = get_guide(guide_id)
    if guide is None:
        raise HTTPException(status_code=404, detail="Guide not found")
    return guide


@app.post("/api/first-aid/ask")
def ask_first_aid(payload: AskRequest):
    return {"reply": services.ask_assistant(payload.prompt)}

# -------------------- Live snapshots --------------------


class NearbyChange(BaseModel):
    lat: Optional[float] = Field(None, ge=-90, le=90, allow_inf_nan=False)
    lng: Optional[float] = Field(None, ge=-180, le=180, allow_inf_nan=False)
    radius_km: Optional[float] = Field(None, ge=0, le=MAX_RADIUS_KM, allow_inf_nan=False)


@app.websocket("/ws/shelters/nearby")
async def ws_nearby_shelters(ws: WebSocket, lat: Optional[float] = None, lng: Optional[float] = None,
                             radius_km: float = DEFAULT_RADIUS_KM):
    """
    Nearby shelters, re-derived on every shelter write and whenever the
    client sends {"lat": .., "lng": ..} and/or {"radius_km": ..}.
    """
    try:
        initial = NearbyChange(lat=lat, lng=lng, radius_km=radius_km)
    except ValidationError:
        await ws.close(code=1008)
        return
    await ws.accept()
    origin = (initial.lat, initial.lng) if initial.lat is not None and initial.lng is not None else None
    sub = Subscriber(ws=ws, nearby=NearbyShelters(origin, initial.radius_km))
    hub.subscribe(SHELTERS, sub)
    try:
        await hub.send(SHELTERS, sub, await run_in_threadpool(load_snapshot, SHELTERS))
        while True:
            data = await ws.receive_text()
            if data == "ping":
                await ws.send_json({"type": "pong"})
                continue
            try:
                change = NearbyChange.model_validate_json(data)
            except ValidationError:
                await ws.send_json({"type": "error", "detail": "Expected lat/lng and/or radius_km"})
                continue
            if change.lat is not None and change.lng is not None:
                sub.nearby.set_origin((change.lat, change.lng))
            if change.radius_km is not None:
                sub.nearby.set_radius(change.radius_km)
            await ws.send_json({"type": "snapshot", "collection": SHELTERS, "items": jsonable(sub.nearby.results)})
    except WebSocketDisconnect:
        pass
    finally:
        hub.unsubscribe(SHELTERS, sub)


@app.websocket("/ws/{collection_name}")
async def ws_collection(ws: WebSocket, collection_name: str, token: Optional[str] = None):
    if collection_name not in moderation.MODERATED_COLLECTIONS + (SOS_ALERTS,):
        await ws.close(code=1008)
        return
    admin = moderation.is_admin(await run_in_threadpool(user_for_token, token))
    if collection_name == SOS_ALERTS and not admin:
        await ws.close(code=1008)
        return
    await ws.accept()
    sub = Subscriber(ws=ws, admin=admin)
    hub.subscribe(collection_name, sub)
    try:
        await hub.send(collection_name, sub, await run_in_threadpool(load_snapshot, collection_name, admin=admin))
        while True:
            data = await ws.receive_text()
            if data == "ping":
                await ws.send_json({"type": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        hub.unsubscribe(collection_name, sub)

# -------------------- Health --------------------


@app.get("/")
def root():
    return {"message": "ReliefNet backend is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available" if database.db is None else "✅ Connected",
    }
    try:
        if database.db is not None:
            response["collections"] = database.db.list_collection_names()
    except Exception as e:
        response["database"] = f"⚠️ {str(e)[:60]}"
    return response


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
