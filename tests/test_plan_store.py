import json

import pytest

from autotester.run_utils.plan_store import PlanStore
from autotester.run_utils.report_store import ReportStore

from conftest import VALID_PLAN_JSON

CASES = json.loads(VALID_PLAN_JSON)


@pytest.fixture()
def store(plans_collection):
    return PlanStore(plans_collection)


def create(store, owner="u1", doc_link="https://docs.example.com/login", app_url="https://app.example.com"):
    return store.create(
        owner_id=owner, doc_link=doc_link, app_url=app_url, model_used="gpt-4o", plan=CASES
    )


def test_create_then_get_round_trips_plan(store):
    plan_id = create(store)
    plan = store.get_by_id(plan_id)

    assert plan.id == plan_id
    assert plan.ownerId == "u1"
    assert plan.plan == CASES
    assert plan.createdAt == plan.updatedAt


def test_reads_are_idempotent_and_never_create(store, plans_collection):
    plan_id = create(store)
    first = store.get_by_id(plan_id).model_dump_json()
    second = store.get_by_id(plan_id).model_dump_json()

    assert first == second
    assert plans_collection.count_documents({}) == 1


def test_unknown_and_malformed_ids_are_not_found(store):
    assert store.get_by_id("0123456789abcdef01234567") is None
    assert store.get_by_id("garbage") is None
    assert store.delete("garbage") is False


def test_list_is_owner_scoped_and_newest_first(store):
    first = create(store)
    second = create(store)
    create(store, owner="someone-else")

    listed = [p.id for p in store.list("u1")]
    assert listed == [second, first]


def test_list_pagination(store):
    ids = [create(store) for _ in range(5)]
    page = [p.id for p in store.list("u1", limit=2, skip=1)]
    assert page == [ids[3], ids[2]]


def test_search_is_case_insensitive_and_literal(store):
    match = create(store, doc_link="https://docs.example.com/Login(v2)")
    create(store, doc_link="https://docs.example.com/signup")

    assert [p.id for p in store.list("u1", search="login(V2")] == [match]
    assert store.list("u1", search=".*") == []


def test_get_many_skips_missing(store):
    plan_id = create(store)
    found = store.get_many([plan_id, "garbage", "0123456789abcdef01234567"])
    assert list(found) == [plan_id]


def test_delete_for_plan_removes_only_its_reports(reports_collection):
    reports = ReportStore(reports_collection)
    reports.create(plan_id="p1", owner_id="u1")
    reports.create(plan_id="p1", owner_id="u1")
    keep = reports.create(plan_id="p2", owner_id="u1")

    assert reports.delete_for_plan("p1") == 2
    assert [r.id for r in reports.list("u1")] == [keep.id]
