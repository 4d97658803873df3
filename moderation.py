"""
Moderation gate shared by shelters, missing persons and resources.

Public submissions land as "pending"; only an admin can approve or delete
them, and public queries only ever see "approved" records.
"""
import logging
import os
import re
import secrets
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fastapi import HTTPException
from pydantic import BaseModel

from database import (collection, create_document, delete_document, get_document,
                      get_documents, update_document)
from proximity import occupancy_status

logger = logging.getLogger(__name__)

SHELTERS = "shelters"
MISSING_PERSONS = "missing_persons"
RESOURCES = "resources"
MODERATED_COLLECTIONS = (SHELTERS, MISSING_PERSONS, RESOURCES)

PUBLIC_FILTER = {"status_approval": "approved"}
ADMIN_ROLE = "admin"

# Fields matched by the free-text search, per collection
_NAME_FIELDS = ("name", "title")
_PLACE_FIELDS = ("district", "location", "last_location", "address")


def admin_phones() -> List[str]:
    raw = os.getenv("ADMIN_PHONES", "")
    return [p.strip() for p in raw.split(",") if p.strip()]


def _phone_forms(allowed: str) -> Tuple[str, ...]:
    # "+917029786817" also matches its bare national number "7029786817"
    digits = allowed.lstrip("+")
    if allowed.startswith("+") and len(digits) > 10:
        return allowed, digits[-10:]
    return (allowed,)


def is_admin_phone(phone: str) -> bool:
    return any(phone in _phone_forms(allowed) for allowed in admin_phones())


def roles_for_phone(phone: str) -> List[str]:
    """Role claims granted at signup."""
    return [ADMIN_ROLE] if is_admin_phone(phone) else []


def admin_key_matches(key: Optional[str]) -> bool:
    """
    Admin accounts must present ADMIN_ACCESS_KEY at signup and login.
    With no key configured nobody can hold the admin role.
    """
    expected = os.getenv("ADMIN_ACCESS_KEY", "")
    if not expected or not key:
        return False
    return secrets.compare_digest(key.encode(), expected.encode())


def is_admin(user: Optional[Dict[str, Any]]) -> bool:
    if not user:
        return False
    return ADMIN_ROLE in (user.get("roles") or [])


def check_collection(name: str) -> str:
    if name not in MODERATED_COLLECTIONS:
        raise HTTPException(status_code=404, detail=f"Unknown collection '{name}'")
    return name


def search_filter(q: Optional[str], fields: Sequence[str] = _NAME_FIELDS + _PLACE_FIELDS) -> Dict[str, Any]:
    if not q:
        return {}
    pattern = {"$regex": re.escape(q), "$options": "i"}
    return {"$or": [{f: pattern} for f in fields]}


def public_query(extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    query = dict(extra or {})
    query.update(PUBLIC_FILTER)
    return query


def submit(collection_name: str, record: BaseModel) -> str:
    data = record.model_dump()
    data["status_approval"] = "pending"
    if collection_name == SHELTERS:
        data["status"] = occupancy_status(data.get("current", 0), data.get("capacity", 0))
    doc_id = create_document(collection_name, data)
    logger.info("New %s submission %s pending approval", collection_name, doc_id)
    return doc_id


def approve(collection_name: str, doc_id: str) -> None:
    update_document(check_collection(collection_name), doc_id, {"status_approval": "approved"})
    logger.info("Approved %s/%s", collection_name, doc_id)


def remove(collection_name: str, doc_id: str) -> None:
    delete_document(check_collection(collection_name), doc_id)
    logger.info("Deleted %s/%s", collection_name, doc_id)


def update_occupancy(doc_id: str, current: int, capacity: Optional[int] = None) -> Dict[str, Any]:
    shelter = get_document(SHELTERS, doc_id)
    capacity = capacity if capacity is not None else shelter.get("capacity", 0)
    data = {
        "current": current,
        "capacity": capacity,
        "status": occupancy_status(current, capacity),
    }
    update_document(SHELTERS, doc_id, data)
    shelter.update(data)
    return shelter


def list_public(collection_name: str, q: Optional[str] = None,
                extra: Optional[Dict[str, Any]] = None,
                fields: Sequence[str] = _NAME_FIELDS + _PLACE_FIELDS) -> List[Dict[str, Any]]:
    query = dict(extra or {})
    query.update(search_filter(q, fields))
    return get_documents(collection_name, public_query(query))


def list_all(collection_name: str, q: Optional[str] = None) -> List[Dict[str, Any]]:
    return get_documents(check_collection(collection_name), search_filter(q))


def pending_counts() -> Dict[str, int]:
    return {
        name: collection(name).count_documents({"status_approval": "pending"})
        for name in MODERATED_COLLECTIONS
    }
