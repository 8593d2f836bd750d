from typing import Optional

NO_DOCUMENTATION_MARKER = "No documentation content available."

TEST_PLAN_PROMPT = """As an AI QA expert, analyze the following documentation content and the target web application URL to generate a comprehensive test plan.
Return the test plan as a JSON array of test case objects, and nothing else.
Each test case object must include:
- "name" (string, e.g. "Verify user login")
- "description" (string, explaining the goal of the test)
- "steps" (non-empty array of step objects)
Each step object must include:
- "action" (string, one of "navigate", "click", "type", "assert", "wait")
- "selector" (string, CSS selector of the element to interact with, when the action targets an element)
- "value" (string, text to type or text to assert, when applicable)
- "expected" (string, expected outcome or state after the step, for "assert" steps)
- "optional" (boolean, true if a failure of this step must not stop the test; default false)

The first step of every test case must be {{"action": "navigate", "value": "{app_url}"}}.
Focus on realistic user flows and edge cases described by the documentation.
Consider common web interactions: navigation, form submission, button and link clicks, text verification.
{fallback}
Target Web Application URL: {app_url}

Documentation Content:
{doc_content}

Generate the JSON test plan:"""

DOCS_GUIDANCE = "If the documentation is minimal, complement it with basic smoke tests of common page elements.\n"

NO_DOCS_GUIDANCE = (
    "The documentation could not be retrieved. Do not refuse or fail: generate basic smoke "
    "tests from the URL structure and common web elements alone.\n"
)


def build_test_plan_prompt(app_url: str, doc_content: Optional[str]) -> str:
    """Render the generation prompt. Pure: same inputs, same text."""
    return TEST_PLAN_PROMPT.format(
        app_url=app_url,
        fallback=DOCS_GUIDANCE if doc_content else NO_DOCS_GUIDANCE,
        doc_content=doc_content if doc_content else NO_DOCUMENTATION_MARKER,
    )
