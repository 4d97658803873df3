"""
Database Schemas for ReliefNet

Each Pydantic model maps to a MongoDB collection. Moderated collections
(shelters, missing_persons, resources) carry a `status_approval` field that
gates public visibility.
"""
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

PHONE_PATTERN = r"^\+?\d{10,13}$"
CONTACT_PHONE_PATTERN = r"^\d{10}$"
MAX_PHOTO_CHARS = 500_000

Approval = Literal["pending", "approved"]
ShelterStatus = Literal["open", "limited", "full"]
PersonStatus = Literal["missing", "searching", "found"]
ResourceType = Literal["offer", "request"]
MatchStatus = Literal["available", "pending", "matched"]
Severity = Literal["critical", "warning", "info", "resolved"]
SafetyStatus = Literal["SAFE", "EMERGENCY"]
EmergencyType = Literal["flood", "fire", "earthquake", "medical", "trapped", "other"]

RESOURCE_CATEGORIES = ["Water", "Food", "Medical", "Shelter", "Clothing", "Transportation", "Other"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class Shelter(BaseModel):
    """
    A place offering refuge
    Collection: shelters
    """
    name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    coords: Optional[Coordinates] = None
    capacity: int = Field(..., gt=0, description="Rated capacity")
    current: int = Field(0, ge=0, description="Current occupancy, may exceed capacity")
    status: ShelterStatus = "open"
    amenities: List[str] = Field(default_factory=list, description="wifi, power, food, medical ...")
    status_approval: Approval = "pending"
    phone: str = Field(..., pattern=PHONE_PATTERN)

    @field_validator("amenities")
    @classmethod
    def normalize_amenities(cls, v: List[str]) -> List[str]:
        seen = []
        for tag in v:
            tag = tag.strip().lower()
            if tag and tag not in seen:
                seen.append(tag)
        return seen


class MissingPerson(BaseModel):
    """
    Report of a missing individual
    Collection: missing_persons
    """
    name: str = Field(..., min_length=1)
    age: int = Field(..., gt=0, le=130)
    gender: Optional[str] = None
    last_location: str = ""
    district: str = ""
    description: str = ""
    status: PersonStatus = "missing"
    status_approval: Approval = "pending"
    contact: str = Field(..., pattern=PHONE_PATTERN)
    photo: Optional[str] = Field(None, max_length=MAX_PHOTO_CHARS, description="Cropped base64 raster")
    reported_at: datetime = Field(default_factory=_utcnow)
    last_seen: datetime = Field(default_factory=_utcnow)


class Resource(BaseModel):
    """
    Offer or request for material aid
    Collection: resources
    """
    type: ResourceType = "offer"
    category: str = Field(..., min_length=1, description="One of RESOURCE_CATEGORIES, free text accepted")
    title: str = Field(..., min_length=1)
    description: str = ""
    quantity: str = "Not specified"
    location: str = ""
    contact: str = Field(..., pattern=PHONE_PATTERN)
    posted_by: str = "Community Member"
    status_approval: Approval = "pending"
    status: MatchStatus = "available"
    urgent: bool = False


class EmergencyContact(BaseModel):
    id: str
    name: str = Field(..., min_length=1)
    phone: str = Field(..., pattern=CONTACT_PHONE_PATTERN, description="10 digits")
    relation: str = ""


class User(BaseModel):
    """
    Account-linked profile
    Collection: users
    """
    name: str = Field(..., description="Display name")
    email: Optional[EmailStr] = Field(None, description="Email address")
    phone: str = Field(..., pattern=PHONE_PATTERN, description="Phone number")
    photo: Optional[str] = Field(None, max_length=MAX_PHOTO_CHARS)
    contacts: List[EmergencyContact] = Field(default_factory=list)
    current_status: SafetyStatus = "SAFE"
    last_status_change: Optional[datetime] = None
    roles: List[str] = Field(default_factory=list, description="Role claims, e.g. 'admin'")


class Session(BaseModel):
    """
    Bearer token to user mapping
    Collection: session
    """
    user_id: str
    token: str


class SOSBroadcast(BaseModel):
    """
    Emergency distress signal
    Collection: alerts
    """
    type: EmergencyType
    details: str = ""
    location: Optional[Coordinates] = None
    user_id: str
    user_name: str = "Anonymous User"
    status: Literal["ACTIVE", "RESOLVED"] = "ACTIVE"
    notified: List[dict] = Field(default_factory=list)


class AlertItem(BaseModel):
    """Normalized news item, never persisted."""
    id: str
    type: Severity
    title: str
    message: str
    full_details: str
    time: str
    location: str
    source: str
    affected_area: str


class FeedResult(BaseModel):
    ok: bool
    items: List[AlertItem] = Field(default_factory=list)
    error: Optional[str] = None
