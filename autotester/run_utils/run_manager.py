import logging
from typing import Any, Iterable, List, Optional, Tuple

from autotester.api.testplans.testplan_dto import TestPlan, TestReport
from autotester.run_utils.events import RunEventHub, hub
from autotester.run_utils.lifecycle import RunStatus, check_transition, is_terminal
from autotester.run_utils.plan_store import PlanStore
from autotester.run_utils.report_store import ReportStore
from autotester.utils.dto import CurrentUser
from autotester.utils.errors import Forbidden, InvalidTransition, NotFound

logger = logging.getLogger(__name__)


class RunManager:
    """Creates runs, guards who can see them, and applies engine status updates."""

    def __init__(self, plans: PlanStore, reports: ReportStore, events: RunEventHub = hub):
        self.plans = plans
        self.reports = reports
        self.events = events

    def _owned_plan(self, plan_id: str, user: CurrentUser) -> TestPlan:
        plan = self.plans.get_by_id(plan_id)
        if plan is None:
            raise NotFound("Test plan not found")
        if not user.can_access(plan.ownerId):
            raise Forbidden("Unauthorized: You do not own this test plan")
        return plan

    async def create_run(self, plan_id: str, user: CurrentUser) -> TestReport:
        plan = self._owned_plan(plan_id, user)
        logger.info("Triggering test run for test plan ID: %s", plan.id)
        # the report belongs to the plan owner, also when an admin triggers it
        report = self.reports.create(plan_id=plan.id, owner_id=plan.ownerId)
        await self.events.publish_run(
            report.id, "run.queued", status=report.status.value, testPlanId=plan.id
        )
        return report

    def get_run(self, run_id: str, user: CurrentUser) -> TestReport:
        report = self.reports.get_by_id(run_id)
        if report is None:
            raise NotFound("Test report not found")
        if not user.can_access(report.ownerId):
            raise Forbidden("Unauthorized access")
        return report

    def list_runs(
        self,
        user: CurrentUser,
        status: Optional[RunStatus] = None,
        limit: int = 100,
        skip: int = 0,
    ) -> List[TestReport]:
        return self.reports.list(user.id, status=status, limit=limit, skip=skip)

    def load_for_engine(self, run_id: str) -> Tuple[TestReport, Optional[TestPlan]]:
        report = self.reports.get_by_id(run_id)
        if report is None:
            raise NotFound("Test report not found")
        return report, self.plans.get_by_id(report.testPlanId)

    async def advance_run(
        self, run_id: str, target: RunStatus, results: Any = None
    ) -> TestReport:
        report = self.reports.get_by_id(run_id)
        if report is None:
            raise NotFound("Test report not found")
        check_transition(report.status, target)

        updated = self.reports.update_status(run_id, report.status, target, results)
        if updated is None:
            # someone else moved the run between our read and write
            current = self.reports.get_by_id(run_id)
            raise InvalidTransition(
                "Run status changed concurrently; reload and retry.",
                current=current.status.value if current else None,
                target=target.value,
            )
        logger.info("Run %s moved %s -> %s", run_id, report.status.value, target.value)
        await self.events.publish_run(
            run_id,
            "run.status",
            final=is_terminal(updated.status),
            status=updated.status.value,
            testPlanId=updated.testPlanId,
        )
        return updated

    def forget_runs(self, run_ids: Iterable[str]):
        """Drop the live event channels of deleted runs."""
        for run_id in run_ids:
            self.events.drop(run_id)
