"""
MongoDB access helpers

The connection is built from DATABASE_URL / DATABASE_NAME. When either is
missing, `db` stays None and routes answer 500 through `collection()`.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import MongoClient

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

db = None
if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]
    logger.info("Connected to MongoDB database %s", DATABASE_NAME)


def collection(name: str):
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db[name]


def to_object_id(doc_id: str) -> ObjectId:
    try:
        return ObjectId(doc_id)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=404, detail="Record not found")


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Render a raw document for the API: `_id` becomes a string `id`."""
    if doc is None:
        return None
    out = dict(doc)
    if "_id" in out:
        out["id"] = str(out.pop("_id"))
    return out


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    payload = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = datetime.now(timezone.utc)
    payload.setdefault("created_at", now)
    payload["updated_at"] = now
    result = collection(collection_name).insert_one(payload)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None) -> List[Dict[str, Any]]:
    cursor = collection(collection_name).find(filter_dict or {}).sort("created_at", -1)
    if limit:
        cursor = cursor.limit(limit)
    return [serialize(d) for d in cursor]


def get_document(collection_name: str, doc_id: str,
                 filter_dict: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    query = {"_id": to_object_id(doc_id)}
    query.update(filter_dict or {})
    doc = collection(collection_name).find_one(query)
    if not doc:
        raise HTTPException(status_code=404, detail="Record not found")
    return serialize(doc)


def update_document(collection_name: str, doc_id: str, data: Dict[str, Any]) -> None:
    data = dict(data)
    data["updated_at"] = datetime.now(timezone.utc)
    res = collection(collection_name).update_one({"_id": to_object_id(doc_id)}, {"$set": data})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Record not found")


def delete_document(collection_name: str, doc_id: str) -> None:
    res = collection(collection_name).delete_one({"_id": to_object_id(doc_id)})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Record not found")
