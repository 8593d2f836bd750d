import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse
from pymongo.collection import Collection

from autotester.api.testplans.testplan_dto import (
    DeleteResponse,
    DocumentResponse,
    GenerateTestPlanRequest,
    GenerateTestPlanResponse,
    ListTestsResponse,
    RunResponse,
)
from autotester.api.testplans.testplan_service import TestPlanService
from autotester.generate.fetcher import fetch_page_content
from autotester.generate.plan_core import PageFetcher
from autotester.run_utils.db import (
    get_plans_collection,
    get_reports_collection,
    get_user_collection,
)
from autotester.run_utils.events import RunEventHub, hub
from autotester.run_utils.llm import ModelGateway, get_model_gateway
from autotester.run_utils.plan_store import PlanStore
from autotester.run_utils.quota import UsageLimiter
from autotester.run_utils.report_store import ReportStore
from autotester.utils.auth import get_current_user, get_current_user_from_query
from autotester.utils.dto import CurrentUser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tests", tags=["Tests"])

HEARTBEAT_SECONDS = 15
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_page_fetcher() -> PageFetcher:
    return fetch_page_content


def get_testplan_service(
    users: Collection = Depends(get_user_collection),
    plans: Collection = Depends(get_plans_collection),
    reports: Collection = Depends(get_reports_collection),
    gateway: ModelGateway = Depends(get_model_gateway),
    fetcher: PageFetcher = Depends(get_page_fetcher),
) -> TestPlanService:
    return TestPlanService(
        plans=PlanStore(plans),
        reports=ReportStore(reports),
        limiter=UsageLimiter(users),
        gateway=gateway,
        fetcher=fetcher,
    )


def event_stream(channel: str, request: Request, events: RunEventHub = hub) -> StreamingResponse:
    return StreamingResponse(
        events.stream(channel, request.is_disconnected, HEARTBEAT_SECONDS),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post(
    "/generate",
    response_model=GenerateTestPlanResponse,
    status_code=status.HTTP_201_CREATED,
)
async def generate_tests(
    body: GenerateTestPlanRequest,
    user: CurrentUser = Depends(get_current_user),
    service: TestPlanService = Depends(get_testplan_service),
):
    return await service.generate(body, user)


@router.get("/runs/{run_id}/events")
async def stream_run_events(
    run_id: str,
    request: Request,
    user: CurrentUser = Depends(get_current_user_from_query),
    service: TestPlanService = Depends(get_testplan_service),
):
    service.runs.get_run(run_id, user)
    logger.info("User %s subscribed to events of run %s", user.id, run_id)
    return event_stream(run_id, request)


@router.post(
    "/{test_plan_id}/run",
    response_model=RunResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def run_tests(
    test_plan_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: TestPlanService = Depends(get_testplan_service),
):
    return await service.create_run(test_plan_id, user)


@router.get("", response_model=ListTestsResponse)
async def list_tests(
    doc_type: Optional[str] = Query(None, alias="type", description="'plan' or 'report'"),
    status_filter: Optional[str] = Query(None, alias="status", description="Report status filter"),
    search: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    skip: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    service: TestPlanService = Depends(get_testplan_service),
):
    return service.list_documents(
        user, doc_type=doc_type, status=status_filter, search=search, limit=limit, skip=skip
    )


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_test(
    document_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: TestPlanService = Depends(get_testplan_service),
):
    return service.get_document(document_id, user)


@router.delete("/{document_id}", response_model=DeleteResponse)
async def delete_test(
    document_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: TestPlanService = Depends(get_testplan_service),
):
    return service.delete_document(document_id, user)
