from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from autotester.generate.extractor import InvalidPlan, parse_test_plan
from autotester.generate.prompt import build_test_plan_prompt
from autotester.run_utils.llm import EmptyModelResponse, ModelError, ModelGateway
from autotester.run_utils.plan_store import PlanStore
from autotester.run_utils.quota import UsageLimiter
from autotester.utils.dto import CurrentUser
from autotester.utils.errors import InputInvalid, MalformedOutput, UpstreamFailed

logger = logging.getLogger(__name__)

PageFetcher = Callable[[str], Awaitable[Optional[str]]]


@dataclass
class GenerationOutcome:
    test_plan_id: str
    cases: List[Dict[str, Any]]
    raw_response: str
    doc_fetch_degraded: bool = False
    warnings: List[str] = field(default_factory=list)


async def generate_test_plan(
    user: CurrentUser,
    doc_link: Optional[str],
    app_url: Optional[str],
    model: str,
    temperature: float,
    *,
    limiter: UsageLimiter,
    fetcher: PageFetcher,
    gateway: ModelGateway,
    plans: PlanStore,
) -> GenerationOutcome:
    """
    Quota -> fetch docs -> prompt -> model -> parse -> store, strictly in that order.

    A failed fetch is recovered here (URL-only prompt); model and parse
    failures propagate with the raw model text attached.
    """
    doc_link = (doc_link or "").strip()
    app_url = (app_url or "").strip()
    if not doc_link or not app_url:
        raise InputInvalid("Documentation link and App URL are required.")

    limiter.admit(user.id)

    logger.info("Fetching content from documentation link: %s", doc_link)
    doc_content = await fetcher(doc_link)
    degraded = doc_content is None
    if degraded:
        logger.warning(
            "Could not fetch content from documentation link: %s. Proceeding without doc content.",
            doc_link,
        )

    prompt = build_test_plan_prompt(app_url, doc_content)

    logger.info("Sending prompt to AI model %s for test generation.", model)
    try:
        raw = await gateway.generate(prompt, model, temperature)
    except EmptyModelResponse as e:
        raise UpstreamFailed(str(e), model=model, reason="empty_response")
    except ModelError as e:
        raise UpstreamFailed(str(e), model=model, reason="call_failed")

    result = parse_test_plan(raw)
    if isinstance(result, InvalidPlan):
        logger.error("Failed to parse or validate AI response: %s", result.reason)
        logger.info("Raw AI Response: %s", result.raw_text)
        raise MalformedOutput(result.reason, result.raw_text)

    plan_id = plans.create(
        owner_id=user.id,
        doc_link=doc_link,
        app_url=app_url,
        model_used=model,
        plan=result.cases,
    )
    return GenerationOutcome(
        test_plan_id=plan_id,
        cases=result.cases,
        raw_response=raw,
        doc_fetch_degraded=degraded,
        warnings=list(result.warnings),
    )
