from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

from autotester.run_utils.lifecycle import RunStatus

StepAction = Literal["navigate", "click", "type", "assert", "wait"]

ELEMENT_ACTIONS = ("click", "type")


class TestStep(BaseModel):
    action: StepAction = Field(..., description="What the step does.")
    selector: Optional[str] = Field(
        None, description="CSS selector of the element the step targets."
    )
    value: Optional[str] = Field(
        None, description="Text to type, or text to assert on."
    )
    expected: Optional[str] = Field(
        None, description="Expected outcome, for assertions."
    )
    optional: bool = Field(
        False, description="If true, failure of this step does not abort the run."
    )

    @model_validator(mode="after")
    def _check_action_fields(self) -> "TestStep":
        if self.action in ELEMENT_ACTIONS and not self.selector:
            raise ValueError(f"'{self.action}' step needs a selector")
        if self.action == "type" and self.value is None:
            raise ValueError("'type' step needs a value")
        if self.action == "assert" and self.expected is None and self.value is None:
            raise ValueError("'assert' step needs an expected outcome or value")
        return self


class TestCase(BaseModel):
    name: str = Field(..., description="Short name of the scenario.")
    description: Optional[str] = Field(None, description="Goal of the test.")
    steps: List[TestStep] = Field(..., min_length=1, description="Ordered steps.")


class TestPlan(BaseModel):
    id: str = Field(..., description="Opaque identifier of the plan.")
    ownerId: str = Field(..., description="User who generated the plan.")
    docLink: str = Field(..., description="Source documentation URL.")
    appUrl: str = Field(..., description="URL of the application under test.")
    modelUsed: str = Field(..., description="Model that produced the plan.")
    plan: List[Dict[str, Any]] = Field(
        ..., description="Test cases exactly as parsed from the model output."
    )
    createdAt: datetime
    updatedAt: datetime


class PlanSummary(BaseModel):
    id: str
    docLink: str
    appUrl: str


class TestReport(BaseModel):
    id: str = Field(..., description="Opaque identifier of the run.")
    testPlanId: str = Field(..., description="Plan this run executes.")
    ownerId: str = Field(..., description="User who requested the run.")
    status: RunStatus
    startTime: Optional[datetime] = None
    endTime: Optional[datetime] = None
    results: Optional[Any] = Field(
        None, description="Opaque payload written by the execution engine."
    )
    createdAt: datetime


class TestReportDetail(TestReport):
    plan: Optional[PlanSummary] = Field(None, description="Linked plan, if it still exists.")


class GenerateTestPlanRequest(BaseModel):
    docLink: Optional[str] = Field(None, description="Documentation page to read.")
    appUrl: Optional[str] = Field(None, description="Application under test.")
    model: Optional[str] = Field(None, description="Generation model id.")


class GenerateTestPlanResponse(BaseModel):
    message: str
    testPlanId: str
    generatedPlan: List[Dict[str, Any]]
    docFetchDegraded: bool = Field(
        False, description="True when the documentation could not be fetched."
    )
    warnings: List[str] = Field(default_factory=list)
    rawAiResponse: Optional[str] = None


class RunResponse(BaseModel):
    message: str
    runId: str
    testPlanId: str
    status: RunStatus


class PlanDocumentResponse(BaseModel):
    message: str
    type: Literal["plan"] = "plan"
    data: TestPlan


class ReportDocumentResponse(BaseModel):
    message: str
    type: Literal["report"] = "report"
    data: TestReportDetail


DocumentResponse = Annotated[
    Union[PlanDocumentResponse, ReportDocumentResponse], Field(discriminator="type")
]


class PlanListItem(TestPlan):
    type: Literal["plan"] = "plan"


class ReportListItem(TestReportDetail):
    type: Literal["report"] = "report"


ListItem = Annotated[Union[PlanListItem, ReportListItem], Field(discriminator="type")]


class ListTestsResponse(BaseModel):
    message: str
    data: List[ListItem]


class DeleteResponse(BaseModel):
    message: str
    type: Literal["plan", "report"]
    id: str
    deletedReports: int = 0


class RunStatusUpdateRequest(BaseModel):
    status: str = Field(..., description="Target status: running, completed or failed.")
    results: Optional[Any] = Field(None, description="Execution results payload.")


class EngineRunResponse(BaseModel):
    report: TestReport
    plan: Optional[TestPlan] = None
