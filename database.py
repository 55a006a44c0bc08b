"""
MongoDB access for the Storefront API.

The client is created lazily from DATABASE_URL / DATABASE_NAME. Collections
are named in the plural (users, products, orders, ...).
"""
from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

import config

_client: Optional[MongoClient] = None


def get_database() -> Optional[Database]:
    global _client
    if not (config.DATABASE_URL and config.DATABASE_NAME):
        return None
    if _client is None:
        _client = MongoClient(config.DATABASE_URL, tz_aware=True)
    return _client[config.DATABASE_NAME]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse an id coming from a URL or payload, None when malformed."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def serialize(value: Any) -> Any:
    """Make a Mongo document JSON friendly: _id -> id, ObjectId -> str."""
    if isinstance(value, list):
        return [serialize(v) for v in value]
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            if k == "_id":
                out["id"] = str(v)
            else:
                out[k] = serialize(v)
        return out
    if isinstance(value, ObjectId):
        return str(value)
    return value


def ensure_indexes(db: Database) -> None:
    db["users"].create_index("email", unique=True)
    db["carts"].create_index("user_id", unique=True)
    db["categories"].create_index("name_key", unique=True)
    db["payment_events"].create_index("payment_id", unique=True)
    db["payment_events"].create_index([("state", ASCENDING), ("available_at", ASCENDING)])
    db["products"].create_index([("category_id", ASCENDING), ("price", ASCENDING)])
    db["products"].create_index([("sold_count", DESCENDING)])
    db["orders"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    db["orders"].create_index("payment_id")
    db["reviews"].create_index([("product_id", ASCENDING), ("user_id", ASCENDING)])
