import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pymongo import DESCENDING
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from autotester.api.testplans.testplan_dto import TestPlan
from autotester.run_utils.db import to_object_id
from autotester.utils.errors import StorageError

logger = logging.getLogger(__name__)


def plan_from_doc(doc: Dict[str, Any]) -> TestPlan:
    data = {k: v for k, v in doc.items() if k != "_id"}
    return TestPlan(id=str(doc["_id"]), **data)


def search_filter(search: Optional[str], fields: Iterable[str]) -> Dict[str, Any]:
    """Case-insensitive literal substring match on any of ``fields``."""
    if not search:
        return {}
    pattern = re.escape(search)
    return {"$or": [{f: {"$regex": pattern, "$options": "i"}} for f in fields]}


class PlanStore:
    """Persistence of generated test plans. Plans are written once, never updated."""

    def __init__(self, collection: Collection):
        self.collection = collection

    def create(
        self,
        owner_id: str,
        doc_link: str,
        app_url: str,
        model_used: str,
        plan: List[Dict[str, Any]],
    ) -> str:
        now = datetime.now(timezone.utc)
        doc = {
            "ownerId": owner_id,
            "docLink": doc_link,
            "appUrl": app_url,
            "modelUsed": model_used,
            "plan": plan,
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            result = self.collection.insert_one(doc)
        except PyMongoError as e:
            raise StorageError(f"Failed to save test plan: {e}")
        logger.info("Test plan saved with ID: %s", result.inserted_id)
        return str(result.inserted_id)

    def get_by_id(self, plan_id: str) -> Optional[TestPlan]:
        oid = to_object_id(plan_id)
        if oid is None:
            return None
        try:
            doc = self.collection.find_one({"_id": oid})
        except PyMongoError as e:
            raise StorageError(f"Failed to retrieve test plan: {e}")
        return plan_from_doc(doc) if doc else None

    def get_many(self, plan_ids: Iterable[str]) -> Dict[str, TestPlan]:
        oids = [oid for oid in (to_object_id(pid) for pid in plan_ids) if oid is not None]
        if not oids:
            return {}
        try:
            docs = list(self.collection.find({"_id": {"$in": oids}}))
        except PyMongoError as e:
            raise StorageError(f"Failed to retrieve test plans: {e}")
        return {str(d["_id"]): plan_from_doc(d) for d in docs}

    def list(
        self,
        owner_id: str,
        search: Optional[str] = None,
        limit: int = 100,
        skip: int = 0,
    ) -> List[TestPlan]:
        query: Dict[str, Any] = {"ownerId": owner_id}
        query.update(search_filter(search, ("docLink", "appUrl")))
        try:
            cursor = (
                self.collection.find(query)
                .sort([("createdAt", DESCENDING), ("_id", DESCENDING)])
                .skip(skip)
                .limit(limit)
            )
            return [plan_from_doc(d) for d in cursor]
        except PyMongoError as e:
            raise StorageError(f"Failed to list test plans: {e}")

    def delete(self, plan_id: str) -> bool:
        oid = to_object_id(plan_id)
        if oid is None:
            return False
        try:
            return self.collection.delete_one({"_id": oid}).deleted_count == 1
        except PyMongoError as e:
            raise StorageError(f"Failed to delete test plan: {e}")
