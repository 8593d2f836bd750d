"""
Turn raw model text into test cases.

Plan-level shape is strict (a non-empty array of named cases, each with a
non-empty ``steps`` array) because persistence depends on it. Step-level
completeness is lenient: deviations are reported as warnings and the plan
is still accepted.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

from pydantic import ValidationError

from autotester.api.testplans.testplan_dto import TestStep

logger = logging.getLogger(__name__)

CODE_FENCE = re.compile(r"```[\w+-]*[ \t]*\r?\n(.*?)```", re.DOTALL)


@dataclass(frozen=True)
class ValidPlan:
    cases: List[Dict[str, Any]]
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class InvalidPlan:
    reason: str
    raw_text: str


ParseResult = Union[ValidPlan, InvalidPlan]


def extract_code_snippet(text: str) -> str:
    """Interior of the first fenced code block, or ``text`` unchanged."""
    match = CODE_FENCE.search(text or "")
    return match.group(1).strip() if match else text


def _step_warnings(case_index: int, steps: List[Any]) -> List[str]:
    warnings = []
    for step_index, step in enumerate(steps):
        where = f"case {case_index + 1}, step {step_index + 1}"
        if not isinstance(step, dict) or not isinstance(step.get("action"), str):
            warnings.append(f"{where}: missing string 'action'")
            continue
        try:
            TestStep.model_validate(step)
        except ValidationError as e:
            problems = "; ".join(err["msg"] for err in e.errors())
            warnings.append(f"{where}: {problems}")
    return warnings


def parse_test_plan(raw_text: str) -> ParseResult:
    snippet = extract_code_snippet(raw_text)
    try:
        data = json.loads(snippet)
    except (json.JSONDecodeError, TypeError) as e:
        return InvalidPlan(f"AI response is not valid JSON: {e}", raw_text)

    if not isinstance(data, list):
        return InvalidPlan("AI response is not a JSON array.", raw_text)
    if not data:
        return InvalidPlan("AI response JSON array is empty.", raw_text)

    warnings: List[str] = []
    for index, case in enumerate(data):
        if (
            not isinstance(case, dict)
            or not isinstance(case.get("name"), str)
            or not isinstance(case.get("steps"), list)
            or not case["steps"]
        ):
            return InvalidPlan(
                f"Test case {index + 1} is not a valid test case object "
                "(missing name or non-empty steps array).",
                raw_text,
            )
        warnings.extend(_step_warnings(index, case["steps"]))

    if warnings:
        logger.warning(
            "AI test plan accepted with %d step-level issue(s): %s",
            len(warnings),
            "; ".join(warnings[:10]),
        )
    return ValidPlan(cases=data, warnings=warnings)
