import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from autotester import config
from autotester.api.testplans.testplan_controller import event_stream, get_testplan_service
from autotester.api.testplans.testplan_dto import (
    EngineRunResponse,
    RunStatusUpdateRequest,
    TestReport,
)
from autotester.api.testplans.testplan_service import TestPlanService
from autotester.run_utils.events import ENGINE_CHANNEL
from autotester.run_utils.lifecycle import parse_status
from autotester.utils.errors import Forbidden

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/engine", tags=["Engine"])


def require_engine_token(x_engine_token: Optional[str] = Header(None)) -> None:
    expected = config.ENGINE_CALLBACK_TOKEN
    if not expected:
        raise Forbidden("Engine callbacks are disabled.")
    if not x_engine_token or not secrets.compare_digest(x_engine_token, expected):
        logger.warning("Rejected engine request with a bad token")
        raise Forbidden("Invalid engine token.")


@router.get("/runs/events", dependencies=[Depends(require_engine_token)])
async def stream_engine_events(request: Request):
    return event_stream(ENGINE_CHANNEL, request)


@router.get(
    "/runs/{run_id}",
    response_model=EngineRunResponse,
    dependencies=[Depends(require_engine_token)],
)
async def get_engine_run(
    run_id: str, service: TestPlanService = Depends(get_testplan_service)
):
    report, plan = service.runs.load_for_engine(run_id)
    return EngineRunResponse(report=report, plan=plan)


@router.patch(
    "/runs/{run_id}",
    response_model=TestReport,
    dependencies=[Depends(require_engine_token)],
)
async def update_engine_run(
    run_id: str,
    body: RunStatusUpdateRequest,
    service: TestPlanService = Depends(get_testplan_service),
):
    target = parse_status(body.status)
    return await service.runs.advance_run(run_id, target, body.results)
