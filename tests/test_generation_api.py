import json

import pytest
from bson import ObjectId

from autotester import config
from autotester.generate.prompt import NO_DOCUMENTATION_MARKER
from autotester.run_utils.llm import EmptyModelResponse, ModelCallFailed
from autotester.utils.dto import CurrentUser

from conftest import VALID_PLAN_JSON, auth_headers

BODY = {"docLink": "https://docs.example.com/login", "appUrl": "https://app.example.com"}


@pytest.fixture(autouse=True)
def production_env(monkeypatch):
    monkeypatch.setattr(config, "APP_ENV", "production")


def generate(client, user, body=BODY):
    return client.post("/api/tests/generate", json=body, headers=auth_headers(user))


def test_generation_stores_exactly_the_parsed_plan(client, make_user, gateway, fetcher, plans_collection):
    user = make_user()
    resp = generate(client, user)

    assert resp.status_code == 201
    data = resp.json()
    assert data["generatedPlan"] == json.loads(VALID_PLAN_JSON)
    assert data["docFetchDegraded"] is False
    assert data["warnings"] == []
    assert data["rawAiResponse"] is None

    stored = plans_collection.find_one({"_id": ObjectId(data["testPlanId"])})
    assert stored["plan"] == json.loads(VALID_PLAN_JSON)
    assert stored["ownerId"] == user.id
    assert stored["modelUsed"] == config.DEFAULT_MODEL
    assert fetcher.urls == [BODY["docLink"]]
    assert "Login page docs" in gateway.calls[0]["prompt"]


def test_requested_model_is_used(client, make_user, gateway):
    resp = generate(client, make_user(), {**BODY, "model": "gpt-4o-mini"})
    assert resp.status_code == 201
    assert gateway.calls[0]["model"] == "gpt-4o-mini"


def test_failed_fetch_degrades_to_url_only_prompt(client, make_user, gateway, fetcher):
    fetcher.content = None
    resp = generate(client, make_user())

    assert resp.status_code == 201
    assert resp.json()["docFetchDegraded"] is True
    assert NO_DOCUMENTATION_MARKER in gateway.calls[0]["prompt"]


def test_raw_response_is_exposed_in_development(client, make_user, monkeypatch):
    monkeypatch.setattr(config, "APP_ENV", "development")
    resp = generate(client, make_user())
    assert resp.json()["rawAiResponse"] == VALID_PLAN_JSON


def test_malformed_output_carries_raw_text(client, make_user, gateway, plans_collection):
    gateway.reply = "Sure! Here's your plan: {not json"
    resp = generate(client, make_user())

    assert resp.status_code == 502
    detail = resp.json()["detail"]
    assert detail["code"] == "malformed_output"
    assert detail["rawAiResponse"] == "Sure! Here's your plan: {not json"
    assert plans_collection.count_documents({}) == 0


def test_empty_array_is_malformed(client, make_user, gateway):
    gateway.reply = "```json\n[]\n```"
    resp = generate(client, make_user())

    assert resp.status_code == 502
    assert resp.json()["detail"]["code"] == "malformed_output"


def test_lenient_steps_come_back_as_warnings(client, make_user, gateway):
    gateway.reply = json.dumps([{"name": "x", "steps": [{"action": "click"}]}])
    resp = generate(client, make_user())

    assert resp.status_code == 201
    assert len(resp.json()["warnings"]) == 1


@pytest.mark.parametrize(
    "error,reason",
    [
        (ModelCallFailed("gpt-4o", "Failed to get response from AI model gpt-4o"), "call_failed"),
        (EmptyModelResponse("gpt-4o"), "empty_response"),
    ],
)
def test_model_failures_are_upstream_errors(client, make_user, gateway, error, reason):
    gateway.error = error
    resp = generate(client, make_user())

    assert resp.status_code == 502
    detail = resp.json()["detail"]
    assert detail["code"] == "upstream_failed"
    assert detail["reason"] == reason
    assert detail["error"] == str(error)


@pytest.mark.parametrize(
    "body", [{}, {"docLink": "https://docs.example.com"}, {"docLink": "  ", "appUrl": "https://a.example.com"}]
)
def test_missing_inputs_are_rejected_without_using_quota(client, make_user, users, body):
    user = make_user()
    resp = generate(client, user, body)

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "input_invalid"
    assert users.find_one({"_id": ObjectId(user.id)})["ai_request_count"] == 0


def test_daily_quota_rejects_request_over_limit(client, make_user, gateway):
    user = make_user()
    for _ in range(config.DAILY_AI_LIMIT):
        assert generate(client, user).status_code == 201

    resp = generate(client, user)
    assert resp.status_code == 429
    assert resp.json()["detail"]["limit"] == config.DAILY_AI_LIMIT
    assert len(gateway.calls) == config.DAILY_AI_LIMIT


def test_subscribers_are_not_limited(client, make_user):
    user = make_user(subscription_status="active")
    for _ in range(config.DAILY_AI_LIMIT + 2):
        assert generate(client, user).status_code == 201


def test_token_for_unknown_user_is_forbidden(client):
    ghost = CurrentUser(id=str(ObjectId()), username="ghost")
    resp = generate(client, ghost)
    assert resp.status_code == 403


def test_generation_requires_authentication(client):
    resp = client.post("/api/tests/generate", json=BODY)
    assert resp.status_code == 401
