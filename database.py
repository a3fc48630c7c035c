"""
MongoDB access

`db` is a pymongo Database when DATABASE_URL is configured, otherwise None.
Route handlers receive it through the `get_db` dependency so tests can swap
in another database.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient, TEXT
from pymongo.database import Database

import config

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db: Optional[Database] = None

if config.DATABASE_URL:
    client = MongoClient(config.DATABASE_URL)
    db = client[config.DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def oid(id_str: Any) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(str(id_str))
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid ID")


def is_object_id(value: str) -> bool:
    return ObjectId.is_valid(value) and len(value) == 24


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    stamp = now_utc()
    doc.setdefault("created_at", stamp)
    doc.setdefault("updated_at", stamp)
    res = database[collection_name].insert_one(doc)
    return str(res.inserted_id)


def get_documents(database: Database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None, sort: Optional[List] = None) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes(database: Database) -> None:
    database["users"].create_index("email", unique=True)
    database["users"].create_index([("role", ASCENDING), ("created_at", DESCENDING)])
    database["categories"].create_index("name", unique=True)
    database["categories"].create_index("slug", unique=True)
    database["products"].create_index([("name", TEXT), ("description", TEXT), ("tags", TEXT)])
    database["products"].create_index([("category", ASCENDING), ("is_active", ASCENDING)])
    database["products"].create_index([("is_featured", ASCENDING), ("is_active", ASCENDING)])
    database["products"].create_index([("created_at", DESCENDING), ("is_active", ASCENDING)])
    database["carts"].create_index("user_id", unique=True)
    database["orders"].create_index("order_id", unique=True)
    database["orders"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    database["orders"].create_index("razorpay_order_id")
    database["orders"].create_index("items.product_id")
    database["payment_orders"].create_index("razorpay_order_id", unique=True)
    database["reviews"].create_index([("product_id", ASCENDING), ("user_id", ASCENDING)], unique=True)
    database["customer_reviews"].create_index([("is_active", ASCENDING), ("display_order", ASCENDING)])
    database["wishlists"].create_index("user_id", unique=True)
    database["newsletters"].create_index("email", unique=True)
    database["newsletters"].create_index([("status", ASCENDING), ("subscribed_at", DESCENDING)])
    database["contacts"].create_index([("email", ASCENDING), ("created_at", DESCENDING)])
    database["coupons"].create_index("code", unique=True)
    logger.info("MongoDB indexes ensured on %s", database.name)
