"""
MongoDB access for SafeStay

Each collection holds one document per entity (collection name = lowercase
of the schema class): user, accommodation, report, counterreport, otp.
"""

from datetime import datetime, timezone
from typing import Any, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from errors import InternalError, NotFoundError
from logs import get_logger
from settings import settings

logger = get_logger("database")

_client: Optional[MongoClient] = None
db: Optional[Database] = None

if settings.database_url and settings.database_name:
    # MongoClient connects lazily; nothing is contacted until the first query
    _client = MongoClient(settings.database_url, serverSelectionTimeoutMS=5000)
    db = _client[settings.database_name]


def get_db() -> Database:
    if db is None:
        raise InternalError("Database not configured")
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def create_document(collection_name: str, data: Union[BaseModel, dict], database: Optional[Database] = None) -> str:
    """Insert a document stamped with createdAt/updatedAt and return its id."""
    target = database if database is not None else get_db()
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()
    stamp = now_utc()
    data_dict.setdefault("createdAt", stamp)
    data_dict["updatedAt"] = stamp
    result = target[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None,
                  database: Optional[Database] = None) -> list:
    target = database if database is not None else get_db()
    cursor = target[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_object_id(value: Any, label: str = "Document") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise NotFoundError(f"{label} not found")


def serialize(value: Any) -> Any:
    """Make a stored document JSON friendly (ObjectId -> str, recursively)."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize(v) for v in value]
    return value


def ensure_indexes(database: Database) -> None:
    database["otp"].create_index([("expiresAt", ASCENDING)], expireAfterSeconds=0)
    database["otp"].create_index([("email", ASCENDING), ("type", ASCENDING)])
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["counterreport"].create_index([("originalReport", ASCENDING)], unique=True)
    database["report"].create_index([("accommodationName", ASCENDING)])
    database["report"].create_index([("user", ASCENDING), ("createdAt", ASCENDING)])
    database["accommodation"].create_index([("owner", ASCENDING)])
    logger.info("indexes ensured", extra={"database": database.name})
