"""
MongoDB access helpers.

`db` is created from DATABASE_URL / DATABASE_NAME at import time and stays
None when either is missing. Route handlers get it through `get_db` so tests
can swap in an in-memory database.
"""
import functools
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import Binary, ObjectId
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import get_settings
from errors import PersistenceError

logger = logging.getLogger(__name__)

settings = get_settings()

client: Optional[MongoClient] = None
db: Optional[Database] = None

if settings.database_url and settings.database_name:
    client = MongoClient(settings.database_url)
    db = client[settings.database_name]


def get_db() -> Database:
    if db is None:
        raise PersistenceError("Database not configured")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def oid(obj: Optional[str]) -> Optional[ObjectId]:
    if obj is None:
        return None
    try:
        return ObjectId(obj)
    except Exception:
        return None


def to_str_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    # normalize ObjectId refs to string
    for k, v in list(d.items()):
        if isinstance(v, ObjectId):
            d[k] = str(v)
        elif isinstance(v, (bytes, Binary)):
            d.pop(k)
    return d


def stamp(doc: Dict[str, Any], created: bool = False) -> Dict[str, Any]:
    now = utcnow()
    if created:
        doc.setdefault("createdAt", now)
    doc["updatedAt"] = now
    return doc


def guarded(action: str):
    """Translate driver failures inside a store method into PersistenceError."""

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except PyMongoError as e:
                logger.exception("Database failure while trying to %s", action)
                raise PersistenceError(f"Failed to {action}", detail=str(e)) from e

        return wrapper

    return decorator
