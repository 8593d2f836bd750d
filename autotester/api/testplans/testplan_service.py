import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union

from autotester import config
from autotester.api.testplans.testplan_dto import (
    DeleteResponse,
    GenerateTestPlanRequest,
    GenerateTestPlanResponse,
    ListTestsResponse,
    PlanDocumentResponse,
    PlanListItem,
    PlanSummary,
    ReportDocumentResponse,
    ReportListItem,
    RunResponse,
    TestPlan,
    TestReport,
    TestReportDetail,
)
from autotester.generate.plan_core import PageFetcher, generate_test_plan
from autotester.run_utils.lifecycle import RunStatus, parse_status
from autotester.run_utils.llm import ModelGateway
from autotester.run_utils.plan_store import PlanStore
from autotester.run_utils.quota import UsageLimiter, as_utc
from autotester.run_utils.report_store import ReportStore
from autotester.run_utils.run_manager import RunManager
from autotester.utils.dto import CurrentUser
from autotester.utils.errors import Forbidden, InputInvalid, NotFound

logger = logging.getLogger(__name__)

DOCUMENT_TYPES = ("plan", "report")


@dataclass(frozen=True)
class PlanDocument:
    plan: TestPlan


@dataclass(frozen=True)
class ReportDocument:
    report: TestReport
    plan: Optional[TestPlan]


Document = Union[PlanDocument, ReportDocument]


def _summary(plan: Optional[TestPlan]) -> Optional[PlanSummary]:
    if plan is None:
        return None
    return PlanSummary(id=plan.id, docLink=plan.docLink, appUrl=plan.appUrl)


def _created(item: Union[PlanListItem, ReportListItem]) -> datetime:
    return as_utc(item.createdAt)


class TestPlanService:
    def __init__(
        self,
        plans: PlanStore,
        reports: ReportStore,
        limiter: UsageLimiter,
        gateway: ModelGateway,
        fetcher: PageFetcher,
    ):
        self.plans = plans
        self.reports = reports
        self.limiter = limiter
        self.gateway = gateway
        self.fetcher = fetcher
        self.runs = RunManager(plans, reports)

    async def generate(
        self, body: GenerateTestPlanRequest, user: CurrentUser
    ) -> GenerateTestPlanResponse:
        model = (body.model or "").strip() or config.DEFAULT_MODEL
        outcome = await generate_test_plan(
            user,
            body.docLink,
            body.appUrl,
            model,
            config.GENERATION_TEMPERATURE,
            limiter=self.limiter,
            fetcher=self.fetcher,
            gateway=self.gateway,
            plans=self.plans,
        )
        return GenerateTestPlanResponse(
            message="Test plan generated and saved successfully.",
            testPlanId=outcome.test_plan_id,
            generatedPlan=outcome.cases,
            docFetchDegraded=outcome.doc_fetch_degraded,
            warnings=outcome.warnings,
            rawAiResponse=outcome.raw_response if config.APP_ENV == "development" else None,
        )

    async def create_run(self, plan_id: str, user: CurrentUser) -> RunResponse:
        report = await self.runs.create_run(plan_id, user)
        return RunResponse(
            message="Test run initiated and queued successfully.",
            runId=report.id,
            testPlanId=report.testPlanId,
            status=report.status,
        )

    def find_document(self, document_id: str) -> Optional[Document]:
        """Reports shadow plans: an id is looked up as a report first."""
        report = self.reports.get_by_id(document_id)
        if report is not None:
            return ReportDocument(report, self.plans.get_by_id(report.testPlanId))
        plan = self.plans.get_by_id(document_id)
        if plan is not None:
            return PlanDocument(plan)
        return None

    def _accessible_document(self, document_id: str, user: CurrentUser) -> Document:
        document = self.find_document(document_id)
        if document is None:
            raise NotFound("Test Plan or Report not found")
        owner = (
            document.report.ownerId
            if isinstance(document, ReportDocument)
            else document.plan.ownerId
        )
        if not user.can_access(owner):
            raise Forbidden("Unauthorized access")
        return document

    def get_document(
        self, document_id: str, user: CurrentUser
    ) -> Union[PlanDocumentResponse, ReportDocumentResponse]:
        document = self._accessible_document(document_id, user)
        if isinstance(document, ReportDocument):
            logger.info("Fetching details for report ID %s for user %s", document_id, user.id)
            detail = TestReportDetail(
                **document.report.model_dump(), plan=_summary(document.plan)
            )
            return ReportDocumentResponse(
                message="Successfully retrieved report details.", data=detail
            )
        logger.info("Fetching details for plan ID %s for user %s", document_id, user.id)
        return PlanDocumentResponse(
            message="Successfully retrieved plan details.", data=document.plan
        )

    def list_documents(
        self,
        user: CurrentUser,
        doc_type: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 100,
        skip: int = 0,
    ) -> ListTestsResponse:
        if doc_type and doc_type not in DOCUMENT_TYPES:
            raise InputInvalid(f"Unknown type '{doc_type}'. Expected 'plan' or 'report'.")
        run_status: Optional[RunStatus] = parse_status(status) if status else None

        items: List[Union[PlanListItem, ReportListItem]] = []
        if not doc_type or doc_type == "plan":
            for plan in self.plans.list(user.id, search=search, limit=limit, skip=skip):
                items.append(PlanListItem(**plan.model_dump()))

        if not doc_type or doc_type == "report":
            reports = self.runs.list_runs(user, status=run_status, limit=limit, skip=skip)
            linked = self.plans.get_many({r.testPlanId for r in reports})
            for report in reports:
                plan = linked.get(report.testPlanId)
                if search and not self._report_matches(report, plan, search):
                    continue
                items.append(
                    ReportListItem(**report.model_dump(), plan=_summary(plan))
                )

        items.sort(key=_created, reverse=True)
        logger.info(
            "Fetching tests/reports for user %s. Found %d documents.", user.id, len(items)
        )
        return ListTestsResponse(
            message=f"Successfully retrieved tests and reports for user {user.id}.",
            data=items,
        )

    @staticmethod
    def _report_matches(report: TestReport, plan: Optional[TestPlan], search: str) -> bool:
        needle = search.lower()
        if plan is None:
            return False
        if needle in plan.docLink.lower() or needle in plan.appUrl.lower():
            return True
        if report.results is not None:
            return needle in json.dumps(report.results, default=str).lower()
        return False

    def delete_document(self, document_id: str, user: CurrentUser) -> DeleteResponse:
        document = self._accessible_document(document_id, user)
        if isinstance(document, ReportDocument):
            self.reports.delete(document.report.id)
            self.runs.forget_runs([document.report.id])
            logger.info("Deleted report %s", document.report.id)
            return DeleteResponse(message="Test report deleted.", type="report", id=document.report.id)

        self.runs.forget_runs(self.reports.ids_for_plan(document.plan.id))
        removed = self.reports.delete_for_plan(document.plan.id)
        self.plans.delete(document.plan.id)
        logger.info("Deleted plan %s and %d report(s)", document.plan.id, removed)
        return DeleteResponse(
            message="Test plan deleted.", type="plan", id=document.plan.id, deletedReports=removed
        )
