import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from autotester.api.testplans.testplan_dto import TestReport
from autotester.run_utils.db import to_object_id
from autotester.run_utils.lifecycle import RunStatus, is_terminal
from autotester.utils.errors import StorageError

logger = logging.getLogger(__name__)


def report_from_doc(doc: Dict[str, Any]) -> TestReport:
    data = {k: v for k, v in doc.items() if k != "_id"}
    return TestReport(id=str(doc["_id"]), **data)


class ReportStore:
    """Persistence of test runs. Status changes go through ``update_status`` only."""

    def __init__(self, collection: Collection):
        self.collection = collection

    def create(self, plan_id: str, owner_id: str) -> TestReport:
        doc = {
            "_id": ObjectId(),
            "testPlanId": plan_id,
            "ownerId": owner_id,
            "status": RunStatus.QUEUED.value,
            "startTime": None,
            "endTime": None,
            "results": None,
            "createdAt": datetime.now(timezone.utc),
        }
        try:
            result = self.collection.insert_one(doc)
        except PyMongoError as e:
            raise StorageError(f"Failed to create test report: {e}")
        logger.info("Test report created with ID: %s, status: queued", result.inserted_id)
        return report_from_doc(doc)

    def get_by_id(self, report_id: str) -> Optional[TestReport]:
        oid = to_object_id(report_id)
        if oid is None:
            return None
        try:
            doc = self.collection.find_one({"_id": oid})
        except PyMongoError as e:
            raise StorageError(f"Failed to retrieve test report: {e}")
        return report_from_doc(doc) if doc else None

    def list(
        self,
        owner_id: str,
        status: Optional[RunStatus] = None,
        limit: int = 100,
        skip: int = 0,
    ) -> List[TestReport]:
        query: Dict[str, Any] = {"ownerId": owner_id}
        if status is not None:
            query["status"] = status.value
        try:
            cursor = (
                self.collection.find(query)
                .sort([("createdAt", DESCENDING), ("_id", DESCENDING)])
                .skip(skip)
                .limit(limit)
            )
            return [report_from_doc(d) for d in cursor]
        except PyMongoError as e:
            raise StorageError(f"Failed to list test reports: {e}")

    def update_status(
        self,
        report_id: str,
        current: RunStatus,
        target: RunStatus,
        results: Any = None,
    ) -> Optional[TestReport]:
        """
        Compare-and-swap ``current`` -> ``target``.

        Returns None when the stored status is no longer ``current``, i.e.
        another writer got there first.
        """
        oid = to_object_id(report_id)
        if oid is None:
            return None
        now = datetime.now(timezone.utc)
        changes: Dict[str, Any] = {"status": target.value}
        if target == RunStatus.RUNNING:
            changes["startTime"] = now
        if is_terminal(target):
            changes["endTime"] = now
        if results is not None:
            changes["results"] = results
        try:
            doc = self.collection.find_one_and_update(
                {"_id": oid, "status": current.value},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise StorageError(f"Failed to update test report: {e}")
        return report_from_doc(doc) if doc else None

    def delete(self, report_id: str) -> bool:
        oid = to_object_id(report_id)
        if oid is None:
            return False
        try:
            return self.collection.delete_one({"_id": oid}).deleted_count == 1
        except PyMongoError as e:
            raise StorageError(f"Failed to delete test report: {e}")

    def ids_for_plan(self, plan_id: str) -> List[str]:
        try:
            return [str(d["_id"]) for d in self.collection.find({"testPlanId": plan_id}, {"_id": 1})]
        except PyMongoError as e:
            raise StorageError(f"Failed to list test reports: {e}")

    def delete_for_plan(self, plan_id: str) -> int:
        try:
            return self.collection.delete_many({"testPlanId": plan_id}).deleted_count
        except PyMongoError as e:
            raise StorageError(f"Failed to delete test reports: {e}")
