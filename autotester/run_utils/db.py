import logging
from typing import Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from autotester.config import MONGO_DB, MONGO_URL

logger = logging.getLogger(__name__)

USERS = "users"
TEST_PLANS = "test_plans"
TEST_REPORTS = "test_reports"

_client: Optional[MongoClient] = None


def get_client() -> MongoClient:
    global _client
    if _client is None:
        _client = MongoClient(MONGO_URL)
    return _client


def get_database() -> Database:
    return get_client()[MONGO_DB]


def get_user_collection() -> Collection:
    return get_database()[USERS]


def get_plans_collection() -> Collection:
    return get_database()[TEST_PLANS]


def get_reports_collection() -> Collection:
    return get_database()[TEST_REPORTS]


def to_object_id(value: str) -> Optional[ObjectId]:
    """Parse an opaque id; anything that is not an ObjectId maps to None."""
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def ensure_indexes(db: Database) -> None:
    db[USERS].create_index([("username", ASCENDING)], unique=True)
    db[USERS].create_index([("email", ASCENDING)], unique=True)
    db[TEST_PLANS].create_index([("ownerId", ASCENDING), ("createdAt", DESCENDING)])
    db[TEST_REPORTS].create_index([("ownerId", ASCENDING), ("createdAt", DESCENDING)])
    db[TEST_REPORTS].create_index([("testPlanId", ASCENDING), ("createdAt", DESCENDING)])
    db[TEST_REPORTS].create_index([("status", ASCENDING), ("createdAt", DESCENDING)])
    logger.info("MongoDB indexes ensured on %s", db.name)
