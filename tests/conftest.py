"""Shared fixtures: mongomock collections, fake model/fetcher, an API client."""

from datetime import datetime, timezone
from typing import Callable, List, Optional

import mongomock
import pytest
from fastapi.testclient import TestClient

from autotester.api.auth.auth import create_access_token
from autotester.api.testplans.testplan_controller import get_page_fetcher
from autotester.main import app
from autotester.run_utils import db
from autotester.run_utils.events import hub
from autotester.run_utils.llm import get_model_gateway
from autotester.utils.dto import CurrentUser

VALID_PLAN_JSON = """[
  {
    "name": "Verify login",
    "description": "User can log in",
    "steps": [
      {"action": "navigate", "value": "https://app.example.com"},
      {"action": "type", "selector": "#user", "value": "alice"},
      {"action": "click", "selector": "#submit"},
      {"action": "assert", "selector": "h1", "expected": "Welcome"}
    ]
  }
]"""


class FakeGateway:
    """Returns canned text (or raises) and records every prompt it was sent."""

    def __init__(self, reply: str = VALID_PLAN_JSON, error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: List[dict] = []

    async def generate(self, prompt: str, model: str, temperature: float) -> str:
        self.calls.append({"prompt": prompt, "model": model, "temperature": temperature})
        if self.error is not None:
            raise self.error
        return self.reply


class FakeFetcher:
    def __init__(self, content: Optional[str] = "Login page docs: enter username and submit."):
        self.content = content
        self.urls: List[str] = []

    async def __call__(self, url: str) -> Optional[str]:
        self.urls.append(url)
        return self.content


@pytest.fixture()
def mongo_db():
    return mongomock.MongoClient()["autotester_test"]


@pytest.fixture()
def users(mongo_db):
    return mongo_db[db.USERS]


@pytest.fixture()
def plans_collection(mongo_db):
    return mongo_db[db.TEST_PLANS]


@pytest.fixture()
def reports_collection(mongo_db):
    return mongo_db[db.TEST_REPORTS]


@pytest.fixture()
def make_user(users) -> Callable[..., CurrentUser]:
    def _make(
        username: str = "alice",
        is_admin: bool = False,
        subscription_status: Optional[str] = None,
        ai_request_count: int = 0,
        last_ai_request_time: Optional[datetime] = None,
    ) -> CurrentUser:
        result = users.insert_one(
            {
                "username": username,
                "email": f"{username}@example.com",
                "password": "not-a-real-hash",
                "is_admin": is_admin,
                "subscription_status": subscription_status,
                "ai_request_count": ai_request_count,
                "last_ai_request_time": last_ai_request_time,
                "created_at": datetime.now(timezone.utc),
            }
        )
        return CurrentUser(id=str(result.inserted_id), username=username, is_admin=is_admin)

    return _make


def auth_headers(user: CurrentUser) -> dict:
    token = create_access_token(
        data={"sub": user.id, "username": user.username, "is_admin": user.is_admin}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture(autouse=True)
def clean_hub():
    hub.queues.clear()
    hub.history.clear()
    hub.finished.clear()
    yield
    hub.queues.clear()
    hub.history.clear()
    hub.finished.clear()


@pytest.fixture()
def client(users, plans_collection, reports_collection, gateway, fetcher):
    app.dependency_overrides[db.get_user_collection] = lambda: users
    app.dependency_overrides[db.get_plans_collection] = lambda: plans_collection
    app.dependency_overrides[db.get_reports_collection] = lambda: reports_collection
    app.dependency_overrides[get_model_gateway] = lambda: gateway
    app.dependency_overrides[get_page_fetcher] = lambda: fetcher
    yield TestClient(app)
    app.dependency_overrides.clear()
