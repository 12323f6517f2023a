"""
Database helpers

Exposes the shared ``db`` handle plus small helpers used by the API.
``db`` is None when DATABASE_URL / DATABASE_NAME are not configured.
"""
import logging
from datetime import datetime, timezone
from typing import Union

from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

from config import DATABASE_NAME, DATABASE_URL

logger = logging.getLogger(__name__)

db = None
if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def utcnow() -> datetime:
    # Stored as naive UTC, which is what pymongo hands back by default
    return datetime.now(timezone.utc).replace(tzinfo=None)


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now
    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def ensure_indexes():
    if db is None:
        logger.warning("Database not configured, skipping index setup")
        return
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["product"].create_index([("created_at", ASCENDING)])
    db["order"].create_index([("user_id", ASCENDING), ("created_at", ASCENDING)])
    db["cart"].create_index([("user_id", ASCENDING)], unique=True)
    db["wishlist"].create_index([("user_id", ASCENDING)], unique=True)
